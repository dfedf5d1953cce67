"""
Routing utilities for RouteWise.

This module wraps network calls to the Mapbox Directions API to produce
distance and duration estimates for a pair of coordinates. If the
provider is not configured, times out, answers with an error, or finds
no route, the estimate falls back to the Haversine distance with
mode‑specific average speeds. The fallback never carries geometry.

Example usage:

    estimator = RouteEstimator(MapboxDirectionsClient(token))
    est = estimator.estimate(origin, destination, TransportMode.CAR)
    if est.is_fallback:
        ...

``RouteEstimator.estimate`` is the only place the engine talks to the
network and it never raises.
"""

from __future__ import annotations

import logging
import math
import threading
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

import requests

from routewise.config import DEFAULT_MAPBOX_BASE_URL, DEFAULT_PROVIDER_TIMEOUT_S, Settings
from routewise.models import (
    Coordinates,
    EstimateSource,
    OptimizationOptions,
    RouteEstimate,
    TransportMode,
)

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

# Average door-to-door speeds used when no routed figure is available (km/h).
SPEED_KMH: Mapping[TransportMode, float] = MappingProxyType({
    TransportMode.CAR: 80.0,
    TransportMode.TRAIN: 120.0,
    TransportMode.FLIGHT: 500.0,
    TransportMode.BUS: 60.0,
    TransportMode.WALK: 5.0,
    TransportMode.BIKE: 15.0,
})

# Mapbox has no rail/air/bus profiles; those modes are routed as driving.
MAPBOX_PROFILES: Mapping[TransportMode, str] = MappingProxyType({
    TransportMode.CAR: "driving",
    TransportMode.BIKE: "cycling",
    TransportMode.WALK: "walking",
    TransportMode.TRAIN: "driving",
    TransportMode.BUS: "driving",
    TransportMode.FLIGHT: "driving",
})


class ProviderUnavailable(Exception):
    """The routing provider could not produce a route for the request."""


class RoutingProvider(Protocol):
    def route(
        self,
        origin: Coordinates,
        destination: Coordinates,
        mode: TransportMode,
        options: Optional[OptimizationOptions] = None,
    ) -> RouteEstimate:
        ...


def haversine_distance(coord1: Tuple[float, float], coord2: Tuple[float, float]) -> float:
    """Compute the great‑circle distance between two coordinates in kilometers."""
    lat1, lon1 = coord1
    lat2, lon2 = coord2
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def compute_haversine_matrix(coords: Sequence[Tuple[float, float]]) -> List[List[float]]:
    """Compute a straight-line distance matrix in kilometers.

    Args:
        coords: List of (lat, lon) tuples.

    Returns:
        Square matrix where ``m[i][j]`` is the distance from ``i`` to ``j``.
    """
    n = len(coords)
    dist_matrix = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(n):
            if i == j:
                continue
            dist_matrix[i][j] = haversine_distance(coords[i], coords[j])
    return dist_matrix


def fallback_estimate(
    origin: Coordinates,
    destination: Coordinates,
    mode: TransportMode,
    speeds: Mapping[TransportMode, float] = SPEED_KMH,
) -> RouteEstimate:
    """Estimate a leg from straight-line distance and the mode's average speed.

    Returns:
        A ``RouteEstimate`` with ``source == EstimateSource.FALLBACK``.
    """
    if origin == destination:
        return RouteEstimate(distance_km=0.0, duration_min=0.0, source=EstimateSource.FALLBACK)
    distance = haversine_distance(origin.as_tuple(), destination.as_tuple())
    duration = distance / speeds[mode] * 60.0
    return RouteEstimate(distance_km=distance, duration_min=duration, source=EstimateSource.FALLBACK)


class MapboxDirectionsClient:
    """
    Thin client for the Mapbox Directions v5 API.

    Converts (lat, lng) to Mapbox's ``lng,lat`` order, maps transport
    modes to routing profiles, and normalises the first returned route to
    kilometres and minutes. Every failure surfaces as
    ``ProviderUnavailable``.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = DEFAULT_MAPBOX_BASE_URL,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ):
        if not access_token:
            raise ValueError("Mapbox access token is required")
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        # only a session created here is closed by close()
        self._owns_session = session is None
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["MapboxDirectionsClient"]:
        """Return a client, or ``None`` when no access token is configured."""
        if not settings.provider_enabled:
            return None
        return cls(
            settings.mapbox_access_token,
            base_url=settings.mapbox_base_url,
            timeout=settings.provider_timeout_s,
        )

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def build_url(self, origin: Coordinates, destination: Coordinates, profile: str) -> str:
        coords = ";".join(f"{c.lng},{c.lat}" for c in (origin, destination))
        return f"{self.base_url}/directions/v5/mapbox/{profile}/{coords}"

    def build_params(self, profile: str, options: Optional[OptimizationOptions]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "access_token": self.access_token,
            "geometries": "polyline",
            "overview": "full",
            "steps": "false",
        }
        # exclusions are only honoured by the driving profiles
        if options is not None and profile == "driving":
            exclude = []
            if options.avoid_highways:
                exclude.append("motorway")
            if options.avoid_tolls:
                exclude.append("toll")
            if exclude:
                params["exclude"] = ",".join(exclude)
        return params

    def route(
        self,
        origin: Coordinates,
        destination: Coordinates,
        mode: TransportMode,
        options: Optional[OptimizationOptions] = None,
    ) -> RouteEstimate:
        """Fetch the best route between two points.

        Raises:
            ProviderUnavailable: on network errors, timeouts, non-200
                responses, error codes, or an empty route list.
        """
        profile = MAPBOX_PROFILES[mode]
        url = self.build_url(origin, destination, profile)
        try:
            resp = self.session.get(url, params=self.build_params(profile, options), timeout=self.timeout)
        except requests.RequestException as exc:
            raise ProviderUnavailable(f"Mapbox request failed: {exc}") from exc
        if resp.status_code != 200:
            raise ProviderUnavailable(f"Mapbox returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderUnavailable("Mapbox returned a non-JSON body") from exc

        if data.get("code", "Ok") != "Ok":
            raise ProviderUnavailable(f"Mapbox error: {data.get('message', data.get('code'))}")
        routes = data.get("routes") or []
        if not routes:
            raise ProviderUnavailable("Mapbox found no route")
        best = routes[0]
        try:
            distance_km = float(best["distance"]) / 1000.0
            duration_min = float(best["duration"]) / 60.0
        except (KeyError, TypeError, ValueError) as exc:
            raise ProviderUnavailable("Mapbox route is missing distance or duration") from exc
        return RouteEstimate(
            distance_km=distance_km,
            duration_min=duration_min,
            source=EstimateSource.PROVIDER,
            geometry=best.get("geometry"),
            waypoints=tuple(data.get("waypoints") or ()),
        )


class RouteEstimator:
    """
    Distance/duration estimator with graceful degradation.

    Tries the routing provider first and falls back to
    ``fallback_estimate`` whenever the provider is missing or fails.
    """

    def __init__(
        self,
        provider: Optional[RoutingProvider] = None,
        speeds: Mapping[TransportMode, float] = SPEED_KMH,
    ):
        self.provider = provider
        self.speeds = speeds

    def estimate(
        self,
        origin: Coordinates,
        destination: Coordinates,
        mode: TransportMode,
        options: Optional[OptimizationOptions] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RouteEstimate:
        """Return the distance and duration between two points for ``mode``.

        Args:
            origin: Start coordinates.
            destination: End coordinates.
            mode: Transport mode; selects the provider profile and the
                fallback speed.
            options: Request options forwarded to the provider
                (highway/toll exclusions).
            cancel_event: When set, the provider is skipped.

        Returns:
            A ``RouteEstimate``; ``source`` tells which path produced it.
        """
        mode = TransportMode.parse(mode)
        if self.provider is None:
            logger.debug("no routing provider configured; using fallback for %s", mode.value)
            return self.fallback(origin, destination, mode)
        if cancel_event is not None and cancel_event.is_set():
            return self.fallback(origin, destination, mode)
        try:
            return self.provider.route(origin, destination, mode, options)
        except ProviderUnavailable as exc:
            logger.warning("routing provider unavailable (%s); using fallback", exc)
        except Exception:
            logger.exception("routing provider raised unexpectedly; using fallback")
        return self.fallback(origin, destination, mode)

    def fallback(self, origin: Coordinates, destination: Coordinates, mode: TransportMode) -> RouteEstimate:
        """Return the geometric estimate without consulting the provider."""
        return fallback_estimate(origin, destination, TransportMode.parse(mode), self.speeds)
