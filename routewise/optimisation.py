"""
Tour order optimisation for RouteWise.

This module chooses the visiting order for a set of destinations over a
precomputed distance matrix. The policy depends on the number of stops:

    - ``n <= 2``: the caller's order is kept; there is nothing to choose.
    - ``3 <= n <= exact_max_stops`` (default 8): every permutation from
      ``swap_permutations`` is scored and the cheapest kept. At 8 stops
      that is 40320 tours, which still answers interactively.
    - larger tours: ``nearest_neighbor`` from the first destination,
      optionally improved with ``two_opt``. This is an approximation and
      is reported as ``SearchKind.HEURISTIC``.

The objective is the sum of per-leg scores along the open path (no
closing leg). Per-leg scores come from a ``LegObjective`` strategy keyed
by the optimisation criterion; the scenic score is a placeholder
multiplier and is meant to be swapped out by callers that have a real
scenic signal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Iterator, List, Mapping, Optional, Sequence, Tuple

from routewise.models import OptimizationOptions, OptimizeFor, SearchKind, TripDestination

logger = logging.getLogger(__name__)

# (from_index, to_index, distance_km) -> score
LegObjective = Callable[[int, int, float], float]

EXACT_MAX_STOPS = 8
# 10! tours is the most an exhaustive search is allowed to score
EXACT_STOPS_LIMIT = 10
AVERAGE_SPEED_KMH = 80.0
COST_PER_KM = 0.5
SCENIC_FACTOR = 0.8


def distance_objective(i: int, j: int, distance_km: float) -> float:
    return distance_km


def time_objective(i: int, j: int, distance_km: float) -> float:
    return distance_km / AVERAGE_SPEED_KMH


def cost_objective(i: int, j: int, distance_km: float) -> float:
    return distance_km * COST_PER_KM


def scenic_objective(i: int, j: int, distance_km: float) -> float:
    # placeholder: no scenic-quality data exists yet
    return distance_km * SCENIC_FACTOR


DEFAULT_OBJECTIVES: Mapping[OptimizeFor, LegObjective] = MappingProxyType({
    OptimizeFor.DISTANCE: distance_objective,
    OptimizeFor.TIME: time_objective,
    OptimizeFor.COST: cost_objective,
    OptimizeFor.SCENIC: scenic_objective,
})


@dataclass
class TourResult:
    order: List[int]
    objective: float
    search: SearchKind


def swap_permutations(n: int) -> Iterator[Tuple[int, ...]]:
    """Lazily yield every permutation of ``range(n)``.

    Permutations are produced by recursive in-place swapping starting at
    position 0: position ``k`` takes each of the elements at ``k..n-1`` in
    turn (by swapping it into place), the rest is permuted recursively,
    then the swap is undone. For ``n = 3`` the order is::

        (0, 1, 2), (0, 2, 1), (1, 0, 2), (1, 2, 0), (2, 1, 0), (2, 0, 1)

    The first permutation is always the identity. The returned generator
    yields exactly ``n!`` tuples and cannot be restarted.
    """
    indices = list(range(n))

    def permute(start: int) -> Iterator[Tuple[int, ...]]:
        if start >= n - 1:
            yield tuple(indices)
            return
        for i in range(start, n):
            indices[start], indices[i] = indices[i], indices[start]
            yield from permute(start + 1)
            indices[start], indices[i] = indices[i], indices[start]

    if n == 0:
        yield ()
        return
    yield from permute(0)


def tour_cost(route: Sequence[int], weights: Sequence[Sequence[float]]) -> float:
    """Sum ``weights`` over consecutive pairs of ``route`` (open path)."""
    return sum(weights[route[k]][route[k + 1]] for k in range(len(route) - 1))


def nearest_neighbor(dist_matrix: Sequence[Sequence[float]], start: int = 0) -> List[int]:
    """Construct a route using the nearest neighbor heuristic.

    Args:
        dist_matrix: A square matrix of distances or travel times.
        start: Index of the start location in the matrix.

    Returns:
        A list of indices representing the visiting order, starting
        with ``start`` and including all other indices exactly once.
        Ties go to the lowest index.
    """
    n = len(dist_matrix)
    if n == 0:
        return []
    visited = [False] * n
    visited[start] = True
    route = [start]
    current = start
    for _ in range(n - 1):
        next_city = -1
        for j in range(n):
            if visited[j]:
                continue
            if next_city == -1 or dist_matrix[current][j] < dist_matrix[current][next_city]:
                next_city = j
        route.append(next_city)
        visited[next_city] = True
        current = next_city
    return route


def two_opt(route: List[int], dist_matrix: Sequence[Sequence[float]]) -> List[int]:
    """Perform 2‑opt optimisation on a given route.

    The algorithm iteratively reverses segments of the route to reduce
    the total open-path length until no improvements are found. The
    first stop stays fixed.

    Args:
        route: Initial route as a list of indices.
        dist_matrix: Square matrix of distances corresponding to the
            indices in ``route``.

    Returns:
        An optimised route with total length no greater than the input.
    """
    improved = True
    best = route.copy()
    best_length = tour_cost(best, dist_matrix)
    n = len(best)
    while improved:
        improved = False
        for i in range(1, n - 1):
            for j in range(i + 2, n + 1):
                new_route = best[:i] + best[i:j][::-1] + best[j:]
                new_length = tour_cost(new_route, dist_matrix)
                if new_length < best_length:
                    best = new_route
                    best_length = new_length
                    improved = True
                    break
            if improved:
                break
    return best


class TourOptimizer:
    """
    Chooses a visiting order for one trip.

    Args:
        objectives: Per-criterion leg scoring overrides, merged over
            ``DEFAULT_OBJECTIVES`` (e.g. a real scenic scorer).
        exact_max_stops: Largest tour solved by exhaustive search,
            clamped to 2..``EXACT_STOPS_LIMIT``.
        refine: Run ``two_opt`` after the nearest neighbour heuristic.
    """

    def __init__(
        self,
        objectives: Optional[Mapping[OptimizeFor, LegObjective]] = None,
        exact_max_stops: int = EXACT_MAX_STOPS,
        refine: bool = False,
    ):
        merged = dict(DEFAULT_OBJECTIVES)
        if objectives:
            merged.update({OptimizeFor.parse(k): v for k, v in objectives.items()})
        self.objectives: Mapping[OptimizeFor, LegObjective] = MappingProxyType(merged)
        self.exact_max_stops = max(2, min(exact_max_stops, EXACT_STOPS_LIMIT))
        self.refine = refine

    def weights(self, options: OptimizationOptions, distance_matrix: Sequence[Sequence[float]]) -> List[List[float]]:
        """Score every ordered pair once so tours are scored by lookup."""
        objective = self.objectives[options.optimize_for]
        n = len(distance_matrix)
        return [
            [0.0 if i == j else objective(i, j, distance_matrix[i][j]) for j in range(n)]
            for i in range(n)
        ]

    def search(
        self,
        destinations: Sequence[TripDestination],
        options: OptimizationOptions,
        distance_matrix: Sequence[Sequence[float]],
    ) -> TourResult:
        """Find the best visiting order the size policy allows.

        Args:
            destinations: Stops in caller order; index ``i`` matches row
                ``i`` of ``distance_matrix``.
            options: Supplies the optimisation criterion.
            distance_matrix: ``n x n`` distances in km.

        Returns:
            A ``TourResult`` with the order, its objective value and the
            kind of search that produced it.

        Raises:
            ValueError: if the matrix does not match the destinations.
        """
        n = len(destinations)
        if n <= 2:
            return TourResult(list(range(n)), 0.0, SearchKind.TRIVIAL)
        if len(distance_matrix) != n or any(len(row) != n for row in distance_matrix):
            raise ValueError(f"distance matrix must be {n}x{n}")

        weights = self.weights(options, distance_matrix)
        if n <= self.exact_max_stops:
            order, best = self._exhaustive(n, weights)
            logger.debug("exact search over %d stops, objective %.4f", n, best)
            return TourResult(order, best, SearchKind.EXACT)

        order = nearest_neighbor(distance_matrix, start=0)
        if self.refine:
            order = two_opt(order, weights)
        best = tour_cost(order, weights)
        logger.debug("heuristic search over %d stops, objective %.4f", n, best)
        return TourResult(order, best, SearchKind.HEURISTIC)

    def _exhaustive(self, n: int, weights: Sequence[Sequence[float]]) -> Tuple[List[int], float]:
        perms = swap_permutations(n)
        best_route = next(perms)
        best_cost = tour_cost(best_route, weights)
        for perm in perms:
            cost = tour_cost(perm, weights)
            # strictly cheaper; equal-cost tours keep the first one found
            if cost < best_cost:
                best_route = perm
                best_cost = cost
        return list(best_route), best_cost


def optimize_order(
    destinations: Sequence[TripDestination],
    options: OptimizationOptions,
    distance_matrix: Sequence[Sequence[float]],
    **optimizer_kwargs,
) -> List[int]:
    """Return the best-found permutation of ``range(len(destinations))``."""
    return TourOptimizer(**optimizer_kwargs).search(destinations, options, distance_matrix).order
