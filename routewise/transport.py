"""
Transport mode selection for RouteWise.

An explicit preference from the caller always wins. Without one, the
mode is picked from the straight-line distance between the two stops.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

from routewise.models import OptimizationOptions, TransportMode, TripDestination
from routewise.routing import haversine_distance

# (exclusive upper bound in km, mode); anything beyond the last bound flies
DISTANCE_BANDS: Tuple[Tuple[float, TransportMode], ...] = (
    (5.0, TransportMode.WALK),
    (30.0, TransportMode.BIKE),
    (200.0, TransportMode.CAR),
    (500.0, TransportMode.TRAIN),
)


def mode_for_distance(distance_km: float, bands: Sequence[Tuple[float, TransportMode]] = DISTANCE_BANDS) -> TransportMode:
    """Classify a straight-line distance into a transport mode."""
    for upper, mode in bands:
        if distance_km < upper:
            return mode
    return TransportMode.FLIGHT


def select_mode(
    origin: TripDestination,
    destination: TripDestination,
    options: Optional[OptimizationOptions] = None,
) -> TransportMode:
    """Choose the transport mode for the leg ``origin`` -> ``destination``.

    Args:
        origin: Departure stop.
        destination: Arrival stop.
        options: If ``preferred_transport_modes`` is non-empty its first
            entry is returned regardless of distance.

    Returns:
        The selected ``TransportMode``.
    """
    if options is not None and options.preferred_transport_modes:
        return options.preferred_transport_modes[0]
    distance = haversine_distance(origin.coordinates.as_tuple(), destination.coordinates.as_tuple())
    return mode_for_distance(distance)
