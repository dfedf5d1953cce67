"""
Input validation for RouteWise.

All checks run before any estimation or search work starts, so a caller
sees a malformed request as an ``InvalidInputError`` with a clear cause
and never as a half-built route.
"""

from __future__ import annotations

import math
from numbers import Real
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from routewise.models import TripDestination


class InvalidInputError(ValueError):
    """Raised when the caller supplies destinations or options that cannot be routed."""


def check_coordinates(dest_id: Any, lat: float, lng: float) -> None:
    """Raise ``InvalidInputError`` unless ``lat``/``lng`` are finite and in range."""
    # bools and numeric strings are not coordinates
    if not all(isinstance(v, Real) and not isinstance(v, bool) for v in (lat, lng)):
        raise InvalidInputError(f"destination {dest_id!r} has non-numeric coordinates")
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidInputError(f"destination {dest_id!r} has non-finite coordinates ({lat}, {lng})")
    if not -90.0 <= lat <= 90.0:
        raise InvalidInputError(f"destination {dest_id!r} latitude {lat} outside [-90, 90]")
    if not -180.0 <= lng <= 180.0:
        raise InvalidInputError(f"destination {dest_id!r} longitude {lng} outside [-180, 180]")


def validate_destinations(destinations: Sequence["TripDestination"]) -> None:
    """Check a destination list before routing.

    Args:
        destinations: Destinations in caller order.

    Raises:
        InvalidInputError: if the list is empty, ids repeat, or a
            destination has missing, non-numeric or out-of-range
            coordinates.
    """
    if not destinations:
        raise InvalidInputError("at least one destination is required to build a route")
    seen = set()
    for dest in destinations:
        if dest.id in seen:
            raise InvalidInputError(f"duplicate destination id: {dest.id!r}")
        seen.add(dest.id)
        if getattr(dest, "coordinates", None) is None:
            raise InvalidInputError(f"destination {dest.id!r} is missing coordinates")
        check_coordinates(dest.id, dest.coordinates.lat, dest.coordinates.lng)
