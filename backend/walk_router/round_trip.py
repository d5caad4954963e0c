from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from .geo import BearingCone
from .logging_utils import log_event
from .outward_search import OutwardSearchResult, find_outward_walks_with_stats
from .return_search import ReturnSearchResult, find_return_path_with_stats
from .routing_graph import WalkGraph
from .settings import settings
from .walk_route import WalkRoute


@dataclass(frozen=True)
class RoundTripResult:
    routes: tuple[WalkRoute, ...] = ()
    outward: OutwardSearchResult = field(default_factory=OutwardSearchResult)
    dropped_legs: int = 0
    return_reasons: tuple[str, ...] = ()


def join_round_trip(outward: WalkRoute, back: WalkRoute) -> WalkRoute:
    """Outward leg followed by its return leg; the junction node appears once."""
    return outward.concat(back)


def assemble_round_trips(
    graph: WalkGraph,
    start_node: int,
    total_distance_m: float,
    *,
    tolerance: float | None = None,
    cone: BearingCone | None = None,
    time_budget_s: float | None = None,
    return_time_budget_s: float | None = None,
    penalty_factor: float | None = None,
    max_workers: int | None = None,
) -> RoundTripResult:
    """Loops of roughly `total_distance_m` that start and end at `start_node`.

    The outward search aims for half the distance. Each outward leg is closed
    with a return search from its end node that penalises the leg's own
    edges. Legs without a return path are dropped.
    """
    t0 = time.perf_counter()
    outward = find_outward_walks_with_stats(
        graph,
        start_node,
        float(total_distance_m) / 2.0,
        tolerance=tolerance,
        cone=cone,
        time_budget_s=time_budget_s,
    )
    legs = outward.routes
    workers = max(1, int(max_workers if max_workers is not None else settings.round_trip_workers))

    def _close(leg: WalkRoute) -> ReturnSearchResult:
        return find_return_path_with_stats(
            graph,
            leg.end_node,
            start_node,
            outward=leg,
            penalty_factor=penalty_factor,
            time_budget_s=return_time_budget_s,
        )

    if workers > 1 and len(legs) > 1:
        # Each search keeps its own frontier; the graph is shared read-only.
        with ThreadPoolExecutor(max_workers=min(workers, len(legs))) as executor:
            returns = list(executor.map(_close, legs))
    else:
        returns = [_close(leg) for leg in legs]

    routes: list[WalkRoute] = []
    reasons: list[str] = []
    for leg, back in zip(legs, returns, strict=True):
        reasons.append(back.termination_reason)
        if back.route is None or not back.route.segments:
            continue
        routes.append(join_round_trip(leg, back.route))

    dropped = len(legs) - len(routes)
    log_event(
        "round_trips_assembled",
        start_node=start_node,
        total_distance_m=float(total_distance_m),
        outward_legs=len(legs),
        round_trips=len(routes),
        dropped_legs=dropped,
        outward_termination=outward.termination_reason,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return RoundTripResult(
        routes=tuple(routes),
        outward=outward,
        dropped_legs=dropped,
        return_reasons=tuple(reasons),
    )
