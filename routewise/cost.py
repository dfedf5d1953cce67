"""
Cost model for RouteWise.

A flat per-kilometre rate for each transport mode. The figures are rough
estimates in the trip's currency and are meant for ranking legs, not
for quoting fares.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from routewise.models import TransportMode

COST_PER_KM: Mapping[TransportMode, float] = MappingProxyType({
    TransportMode.CAR: 0.5,
    TransportMode.TRAIN: 0.3,
    TransportMode.FLIGHT: 0.8,
    TransportMode.BUS: 0.2,
    TransportMode.WALK: 0.0,
    TransportMode.BIKE: 0.05,
})


def estimate_cost(distance_km: float, mode: TransportMode) -> float:
    """Return the estimated cost of travelling ``distance_km`` by ``mode``."""
    return distance_km * COST_PER_KM[TransportMode.parse(mode)]
