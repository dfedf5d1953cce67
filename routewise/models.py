"""
Data model for RouteWise.

Every object here is created fresh for a single optimisation call and
handed back to the caller; nothing is cached between calls. Inputs
(``TripDestination``, ``OptimizationOptions``) are frozen so the engine
cannot mutate what the caller passed in.

``OptimizedRoute.to_dict`` produces the JSON-serialisable camelCase
payload used at the service boundary, and ``from_dict`` on the input
types accepts the same shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from routewise.validation import InvalidInputError, check_coordinates


class TransportMode(str, Enum):
    CAR = "car"
    TRAIN = "train"
    FLIGHT = "flight"
    BUS = "bus"
    WALK = "walk"
    BIKE = "bike"

    @classmethod
    def parse(cls, value: Any) -> "TransportMode":
        """Return the mode for ``value`` or raise ``InvalidInputError``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidInputError(f"unknown transport mode: {value!r}") from None


class OptimizeFor(str, Enum):
    DISTANCE = "distance"
    TIME = "time"
    COST = "cost"
    SCENIC = "scenic"

    @classmethod
    def parse(cls, value: Any) -> "OptimizeFor":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidInputError(f"unknown optimisation criterion: {value!r}") from None


class EstimateSource(str, Enum):
    """Where a distance/duration figure came from."""

    PROVIDER = "provider"
    FALLBACK = "fallback"


class SearchKind(str, Enum):
    TRIVIAL = "trivial"
    EXACT = "exact"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def as_tuple(self) -> Tuple[float, float]:
        """Return ``(lat, lng)``."""
        return self.lat, self.lng


@dataclass(frozen=True)
class TripDestination:
    id: str
    coordinates: Coordinates
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TripDestination":
        """Build a destination from ``{"id", "coordinates": {"lat", "lng"}}``.

        Flat ``{"id", "lat", "lng"}`` payloads are accepted as well.

        Raises:
            InvalidInputError: if the id or coordinates are missing or
                malformed.
        """
        if "id" not in data or data["id"] is None:
            raise InvalidInputError("destination is missing an id")
        coords = data.get("coordinates", data)
        try:
            lat = float(coords["lat"])
            lng = float(coords["lng"])
        except (KeyError, TypeError, ValueError):
            raise InvalidInputError(
                f"destination {data['id']!r} has missing or non-numeric coordinates"
            ) from None
        check_coordinates(data["id"], lat, lng)
        return cls(id=str(data["id"]), coordinates=Coordinates(lat, lng), name=data.get("name"))


@dataclass(frozen=True)
class OptimizationOptions:
    optimize_for: OptimizeFor = OptimizeFor.DISTANCE
    preferred_transport_modes: Tuple[TransportMode, ...] = ()
    include_return: bool = False
    avoid_highways: bool = False
    avoid_tolls: bool = False

    def __post_init__(self) -> None:
        # normalise plain strings/lists handed in by callers
        object.__setattr__(self, "optimize_for", OptimizeFor.parse(self.optimize_for))
        object.__setattr__(
            self,
            "preferred_transport_modes",
            tuple(TransportMode.parse(m) for m in self.preferred_transport_modes),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OptimizationOptions":
        """Build options from the camelCase request payload."""
        modes = data.get("preferredTransportModes")
        if modes is None:
            modes = ()
        elif isinstance(modes, str):
            modes = (modes,)
        elif not isinstance(modes, (list, tuple)):
            raise InvalidInputError(f"preferredTransportModes must be a list, got {modes!r}")
        return cls(
            optimize_for=data.get("optimizeFor", OptimizeFor.DISTANCE),
            preferred_transport_modes=tuple(modes),
            include_return=_parse_flag(data, "includeReturn"),
            avoid_highways=_parse_flag(data, "avoidHighways"),
            avoid_tolls=_parse_flag(data, "avoidTolls"),
        )


def _parse_flag(data: Mapping[str, Any], key: str, default: bool = False) -> bool:
    """Read a JSON boolean; ``"true"``/``"false"`` strings are accepted too."""
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise InvalidInputError(f"{key} must be true or false, got {value!r}")


@dataclass(frozen=True)
class RouteEstimate:
    """Distance/duration for one origin/destination pair.

    ``source`` tells whether the routing provider answered or the
    geometric fallback was used; fallback estimates never carry geometry.
    """

    distance_km: float
    duration_min: float
    source: EstimateSource
    geometry: Optional[str] = None
    waypoints: Tuple[Any, ...] = ()

    @property
    def is_fallback(self) -> bool:
        return self.source is EstimateSource.FALLBACK


@dataclass
class RouteLeg:
    from_id: str
    to_id: str
    mode: TransportMode
    distance_km: float
    duration_min: float
    cost_estimate: float
    source: EstimateSource = EstimateSource.FALLBACK
    geometry: Optional[str] = None
    waypoints: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromId": self.from_id,
            "toId": self.to_id,
            "mode": self.mode.value,
            "distanceKm": self.distance_km,
            "durationMin": self.duration_min,
            "costEstimate": self.cost_estimate,
            "geometry": self.geometry,
            "waypoints": list(self.waypoints),
            "source": self.source.value,
        }


@dataclass
class OrderedDestination:
    id: str
    order: int  # 1-based


@dataclass
class RouteTotals:
    distance_km: float = 0.0
    duration_min: float = 0.0
    cost: float = 0.0

    @classmethod
    def from_legs(cls, legs: Sequence[RouteLeg]) -> "RouteTotals":
        return cls(
            distance_km=sum(leg.distance_km for leg in legs),
            duration_min=sum(leg.duration_min for leg in legs),
            cost=sum(leg.cost_estimate for leg in legs),
        )


@dataclass
class OptimizedRoute:
    ordered_destinations: List[OrderedDestination]
    legs: List[RouteLeg]
    totals: RouteTotals
    search: SearchKind = SearchKind.TRIVIAL

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON-serialisable representation of the route."""
        return {
            "orderedDestinations": [{"id": d.id, "order": d.order} for d in self.ordered_destinations],
            "legs": [leg.to_dict() for leg in self.legs],
            "totals": {
                "distanceKm": self.totals.distance_km,
                "durationMin": self.totals.duration_min,
                "cost": self.totals.cost,
            },
            "search": self.search.value,
        }
