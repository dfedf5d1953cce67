"""
Geocoding utilities for RouteWise.

This module provides a thin wrapper around the `geopy` library to turn
free‑form addresses into ``TripDestination`` objects that the route
engine can consume. It uses OpenStreetMap's Nominatim service via
geopy's API. A small cache is kept in memory to avoid repeated queries
for the same address.

Example usage:

    from routewise.geocode import geocode_destination
    dest = geocode_destination("stop-1", "Tokyo Tower")

``geocode_destination`` returns ``None`` if the address cannot be
geocoded.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional, Tuple

from geopy.exc import GeocoderServiceError, GeocoderTimedOut
from geopy.geocoders import Nominatim

from routewise.models import Coordinates, TripDestination

logger = logging.getLogger(__name__)

USER_AGENT = "routewise"

_geocoder: Optional[Nominatim] = None


def _get_geocoder() -> Nominatim:
    """Return a singleton Nominatim geocoder instance."""
    global _geocoder
    if _geocoder is None:
        # Nominatim's usage policy requires an identifying user agent.
        _geocoder = Nominatim(user_agent=USER_AGENT)
    return _geocoder


@lru_cache(maxsize=128)
def geocode_address(address: str) -> Optional[Tuple[float, float]]:
    """Geocode an address and return (latitude, longitude) or ``None``.

    If a timeout occurs, the request is retried once with a longer
    timeout.

    Args:
        address: Free form text to geocode.

    Returns:
        A tuple of (lat, lon) if geocoding succeeds, otherwise ``None``.
    """
    geocoder = _get_geocoder()
    for timeout in (10, 20):
        try:
            location = geocoder.geocode(address, timeout=timeout)
        except GeocoderTimedOut:
            logger.warning("geocoding %r timed out after %ss", address, timeout)
            continue
        except GeocoderServiceError as exc:
            logger.warning("geocoding %r failed: %s", address, exc)
            return None
        if location is None:
            return None
        return location.latitude, location.longitude
    return None


def geocode_destination(dest_id: str, address: str) -> Optional[TripDestination]:
    """Build a ``TripDestination`` for ``address``, or ``None`` if it cannot be found."""
    coords = geocode_address(address.strip())
    if coords is None:
        return None
    lat, lng = coords
    return TripDestination(id=dest_id, coordinates=Coordinates(lat, lng), name=address.strip())
