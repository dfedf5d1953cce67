"""
Route assembly for RouteWise.

``RouteAssembler.assemble`` turns destinations and options into a fully
populated ``OptimizedRoute``:

    1. validate the input (nothing else runs on bad input);
    2. estimate every ordered pair once, through a small thread pool,
       into a per-call ``EstimateTable``;
    3. search the visiting order over the resulting distance matrix;
    4. walk the winning order, emitting one ``RouteLeg`` per hop (plus
       the closing leg for round trips) and summing the totals.

Provider trouble never fails a request: degraded pairs carry fallback
figures. Cancellation (a caller ``threading.Event``) or a ``timeout``
stops waiting for outstanding lookups and fills them geometrically.

Example usage:

    route = optimize_trip(destinations, OptimizationOptions(optimize_for="time"))
    payload = route.to_dict()
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, Optional, Sequence, Tuple

from routewise.config import DEFAULT_MATRIX_CONCURRENCY, Settings, load_settings
from routewise.cost import estimate_cost
from routewise.models import (
    OptimizationOptions,
    OptimizedRoute,
    OrderedDestination,
    RouteEstimate,
    RouteLeg,
    RouteTotals,
    SearchKind,
    TransportMode,
    TripDestination,
)
from routewise.optimisation import TourOptimizer
from routewise.routing import MapboxDirectionsClient, RouteEstimator
from routewise.transport import select_mode
from routewise.validation import validate_destinations

logger = logging.getLogger(__name__)

# How often a blocked matrix fill re-checks the caller's cancel event (s).
_CANCEL_POLL_S = 0.05

PairKey = Tuple[str, str, TransportMode]
PairRequest = Tuple[TripDestination, TripDestination, TransportMode]


class EstimateTable:
    """
    Estimates for one optimisation call, keyed by ``(from_id, to_id, mode)``.

    The table is private to a single ``assemble`` call and is discarded
    with it. Worker threads only compute; results are stored by the
    calling thread.
    """

    def __init__(
        self,
        estimator: RouteEstimator,
        options: OptimizationOptions,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.estimator = estimator
        self.options = options
        self.cancel_event = cancel_event
        # set once the caller cancels or the deadline passes
        self.aborted = threading.Event()
        self._entries: Dict[PairKey, RouteEstimate] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: PairKey) -> bool:
        return key in self._entries

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _lookup(self, origin: TripDestination, destination: TripDestination, mode: TransportMode) -> RouteEstimate:
        return self.estimator.estimate(
            origin.coordinates, destination.coordinates, mode, self.options, self.aborted
        )

    def get(self, origin: TripDestination, destination: TripDestination, mode: TransportMode) -> RouteEstimate:
        """Return the memoised estimate, looking it up if it is missing."""
        key = (origin.id, destination.id, mode)
        if key not in self._entries:
            if self._cancelled():
                self.aborted.set()
            self._entries[key] = self._lookup(origin, destination, mode)
        return self._entries[key]

    def fill(
        self,
        pairs: Iterable[PairRequest],
        max_workers: int = DEFAULT_MATRIX_CONCURRENCY,
        timeout: Optional[float] = None,
    ) -> int:
        """Estimate all ``pairs`` concurrently with at most ``max_workers`` calls in flight.

        Args:
            pairs: ``(origin, destination, mode)`` requests; ones already
                in the table are skipped.
            max_workers: Size of the thread pool.
            timeout: Seconds to wait before giving up on outstanding
                lookups; ``None`` waits until all finish or the caller
                cancels.

        Returns:
            The number of pairs filled geometrically because the wait was
            cut short.
        """
        pending: Dict[PairKey, PairRequest] = {}
        for origin, destination, mode in pairs:
            key = (origin.id, destination.id, mode)
            if key not in self._entries:
                pending[key] = (origin, destination, mode)
        if not pending:
            return 0

        deadline = None if timeout is None else time.monotonic() + timeout
        executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="routewise-matrix")
        futures: Dict[Future, PairKey] = {
            executor.submit(self._lookup, *request): key for key, request in pending.items()
        }
        not_done = set(futures)
        try:
            while not_done:
                if self._cancelled():
                    break
                wait_s: Optional[float] = None
                if deadline is not None:
                    wait_s = deadline - time.monotonic()
                    if wait_s <= 0:
                        break
                if self.cancel_event is not None:
                    wait_s = _CANCEL_POLL_S if wait_s is None else min(wait_s, _CANCEL_POLL_S)
                done, not_done = wait(not_done, timeout=wait_s, return_when=FIRST_COMPLETED)
                for future in done:
                    self._entries[futures[future]] = future.result()
        finally:
            if not_done:
                self.aborted.set()
            executor.shutdown(wait=False, cancel_futures=True)

        for future in not_done:
            key = futures[future]
            origin, destination, mode = pending[key]
            self._entries[key] = self.estimator.fallback(origin.coordinates, destination.coordinates, mode)
        if not_done:
            logger.warning(
                "matrix fill interrupted; %d of %d pairs use geometric estimates",
                len(not_done), len(pending),
            )
        return len(not_done)


class RouteAssembler:
    """
    Builds an ``OptimizedRoute`` for one trip.

    Args:
        estimator: Distance/duration estimator (fallback-only if omitted).
        optimizer: Tour order optimizer.
        max_workers: Simultaneous provider calls while filling the matrix.
        mode_selector: ``(origin, destination, options) -> TransportMode``.
        cost_model: ``(distance_km, mode) -> cost``.
    """

    def __init__(
        self,
        estimator: Optional[RouteEstimator] = None,
        optimizer: Optional[TourOptimizer] = None,
        max_workers: int = DEFAULT_MATRIX_CONCURRENCY,
        mode_selector: Callable[..., TransportMode] = select_mode,
        cost_model: Callable[[float, TransportMode], float] = estimate_cost,
    ):
        self.estimator = estimator or RouteEstimator()
        self.optimizer = optimizer or TourOptimizer()
        self.max_workers = max(1, max_workers)
        self.mode_selector = mode_selector
        self.cost_model = cost_model

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "RouteAssembler":
        estimator = RouteEstimator(MapboxDirectionsClient.from_settings(settings))
        optimizer = TourOptimizer(exact_max_stops=settings.exact_max_stops)
        return cls(estimator, optimizer, max_workers=settings.matrix_concurrency, **kwargs)

    def close(self) -> None:
        """Release the routing provider's connections, if it holds any."""
        close = getattr(self.estimator.provider, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "RouteAssembler":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def assemble(
        self,
        destinations: Sequence[TripDestination],
        options: Optional[OptimizationOptions] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> OptimizedRoute:
        """Optimise the visiting order and build every leg.

        Args:
            destinations: Stops in caller order. Not modified.
            options: Optimisation options; defaults to shortest distance,
                one-way.
            cancel_event: Set by the caller to stop waiting on the
                provider; remaining pairs use geometric estimates.
            timeout: Seconds allowed for the matrix fill.

        Returns:
            The ``OptimizedRoute``.

        Raises:
            InvalidInputError: if the destinations are malformed.
        """
        destinations = list(destinations)
        validate_destinations(destinations)
        options = options or OptimizationOptions()
        n = len(destinations)
        started = time.perf_counter()

        if n < 2:
            return OptimizedRoute(
                ordered_destinations=[OrderedDestination(d.id, i + 1) for i, d in enumerate(destinations)],
                legs=[],
                totals=RouteTotals(),
                search=SearchKind.TRIVIAL,
            )

        modes = {
            (i, j): self.mode_selector(destinations[i], destinations[j], options)
            for i in range(n)
            for j in range(n)
            if i != j
        }
        table = EstimateTable(self.estimator, options, cancel_event)
        table.fill(
            ((destinations[i], destinations[j], mode) for (i, j), mode in modes.items()),
            max_workers=self.max_workers,
            timeout=timeout,
        )
        matrix = [
            [0.0 if i == j else table.get(destinations[i], destinations[j], modes[i, j]).distance_km for j in range(n)]
            for i in range(n)
        ]

        result = self.optimizer.search(destinations, options, matrix)
        order = result.order
        hops = list(zip(order, order[1:]))
        if options.include_return:
            hops.append((order[-1], order[0]))
        legs = [self._leg(table, destinations[a], destinations[b], modes[a, b]) for a, b in hops]

        route = OptimizedRoute(
            ordered_destinations=[OrderedDestination(destinations[idx].id, k + 1) for k, idx in enumerate(order)],
            legs=legs,
            totals=RouteTotals.from_legs(legs),
            search=result.search,
        )
        logger.info(
            "optimised %d stops (%s search, %s) in %.3fs: %.1f km, %.0f min",
            n, result.search.value, options.optimize_for.value,
            time.perf_counter() - started, route.totals.distance_km, route.totals.duration_min,
        )
        return route

    def _leg(
        self,
        table: EstimateTable,
        origin: TripDestination,
        destination: TripDestination,
        mode: TransportMode,
    ) -> RouteLeg:
        est = table.get(origin, destination, mode)
        return RouteLeg(
            from_id=origin.id,
            to_id=destination.id,
            mode=mode,
            distance_km=est.distance_km,
            duration_min=est.duration_min,
            cost_estimate=self.cost_model(est.distance_km, mode),
            source=est.source,
            geometry=est.geometry,
            waypoints=list(est.waypoints),
        )


def optimize_trip(
    destinations: Sequence[TripDestination],
    options: Optional[OptimizationOptions] = None,
    settings: Optional[Settings] = None,
    cancel_event: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
) -> OptimizedRoute:
    """Optimise a trip with an assembler built from ``settings``.

    When ``settings`` is omitted they are loaded from the environment.
    The provider connection is closed before returning; callers routing
    many trips should keep one ``RouteAssembler`` instead.
    """
    with RouteAssembler.from_settings(settings or load_settings()) as assembler:
        return assembler.assemble(destinations, options, cancel_event=cancel_event, timeout=timeout)
