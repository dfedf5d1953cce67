"""
RouteWise package initialization.

This package provides the route optimisation engine used to plan
multi-stop trips: it decides the visiting order of a set of
destinations and the transport mode, distance, duration and cost of
each leg.

Modules:
    models       – Destinations, options, legs and routes.
    routing      – Distance/duration estimates via Mapbox with Haversine fallback.
    transport    – Transport mode selection.
    cost         – Per-kilometre cost model.
    optimisation – Exact permutation search and nearest neighbour heuristic.
    planner      – Route assembly: matrix fill, search and legs.
    geocode      – Address lookup through Nominatim.
    config       – Environment-driven settings.

The engine is stateless: every call builds and discards its own data.
"""

from routewise.models import (
    Coordinates,
    OptimizationOptions,
    OptimizedRoute,
    OptimizeFor,
    RouteLeg,
    TransportMode,
    TripDestination,
)
from routewise.planner import RouteAssembler, optimize_trip
from routewise.validation import InvalidInputError

__all__ = [
    "Coordinates",
    "InvalidInputError",
    "OptimizationOptions",
    "OptimizedRoute",
    "OptimizeFor",
    "RouteAssembler",
    "RouteLeg",
    "TransportMode",
    "TripDestination",
    "optimize_trip",
]
