from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from .geo import INVALID_BUCKET, QUADRANT_NAMES, BearingCone, bucket_for_bearing, initial_bearing_deg
from .logging_utils import log_event
from .routing_graph import GraphEdge, WalkGraph
from .settings import settings
from .walk_errors import WalkConfigError
from .walk_route import WalkRoute

# Parent-linked edge trail: (edge, previous trail) or None at the start node.
# Sibling frames share their common prefix instead of copying it.
_Trail = tuple[GraphEdge, "_Trail"] | None


@dataclass(frozen=True)
class OutwardSearchResult:
    best_by_bucket: Mapping[int, WalkRoute] = field(default_factory=dict)
    explored_states: int = 0
    routes_in_band: int = 0
    termination_reason: str = "exhausted"  # exhausted | deadline | state_budget | start_isolated
    elapsed_ms: float = 0.0

    @property
    def routes(self) -> tuple[WalkRoute, ...]:
        ordered = sorted(self.best_by_bucket.items(), key=lambda item: (item[1].cost, item[0]))
        return tuple(route for _bucket, route in ordered)

    @property
    def timed_out(self) -> bool:
        return self.termination_reason in {"deadline", "state_budget"}


def tolerance_band(target_m: float, tolerance: float) -> tuple[float, float]:
    target = float(target_m)
    tol = float(tolerance)
    if not math.isfinite(target) or target <= 0.0:
        raise WalkConfigError(
            reason_code="search_bounds_invalid",
            message="Target walk distance must be a positive number of metres.",
            details={"target_m": target_m},
        )
    if not math.isfinite(tol) or tol < 0.0 or tol >= 1.0:
        raise WalkConfigError(
            reason_code="search_bounds_invalid",
            message="Length tolerance must be in [0, 1).",
            details={"tolerance": tolerance},
        )
    return target * (1.0 - tol), target * (1.0 + tol)


def _materialize(start_node: int, trail: _Trail) -> WalkRoute:
    edges: list[GraphEdge] = []
    while trail is not None:
        edge, trail = trail
        edges.append(edge)
    edges.reverse()
    return WalkRoute.from_segments(start_node, edges)


def find_outward_walks_with_stats(
    graph: WalkGraph,
    start_node: int,
    target_m: float,
    *,
    tolerance: float | None = None,
    cone: BearingCone | None = None,
    time_budget_s: float | None = None,
    check_interval: int | None = None,
    max_states: int | None = None,
) -> OutwardSearchResult:
    """Cheapest simple path per bearing bucket whose length is within the band.

    Buckets are the four compass quadrants, or a single bucket for `cone`.
    Exploration is depth-first over an explicit stack; each frame carries its
    own visited set so different branches may pass through the same node.
    The deadline is only read every `check_interval` pops. When it expires the
    best routes found so far are returned.
    """
    lower, upper = tolerance_band(
        target_m,
        settings.walk_length_tolerance if tolerance is None else tolerance,
    )
    budget_s = settings.walk_search_timeout_s if time_budget_s is None else max(0.0, float(time_budget_s))
    interval = max(1, int(check_interval if check_interval is not None else settings.walk_search_check_interval))
    state_cap = max(0, int(settings.walk_search_max_states if max_states is None else max_states))
    started = time.monotonic()
    deadline = started + budget_s

    start_coords = graph.coords(start_node)
    if start_coords is None or not graph.edges_from(start_node):
        log_event(
            "outward_search_start_isolated",
            level=logging.WARNING,
            start_node=start_node,
            target_m=float(target_m),
        )
        return OutwardSearchResult(termination_reason="start_isolated")
    start_lat, start_lon = start_coords

    best_cost: dict[int, float] = {}
    best_trail: dict[int, _Trail] = {}
    stack: list[tuple[int, frozenset[int], float, float, _Trail]] = [
        (start_node, frozenset((start_node,)), 0.0, 0.0, None)
    ]
    iterations = 0
    explored = 0
    in_band = 0
    termination_reason = "exhausted"

    while stack:
        iterations += 1
        if iterations % interval == 0 and time.monotonic() >= deadline:
            termination_reason = "deadline"
            break
        if state_cap and explored >= state_cap:
            termination_reason = "state_budget"
            break

        node, visited, length, cost, trail = stack.pop()
        explored += 1

        if lower <= length <= upper:
            in_band += 1
            end = graph.nodes[node]
            bucket = bucket_for_bearing(initial_bearing_deg(start_lat, start_lon, end.lat, end.lon), cone)
            if bucket != INVALID_BUCKET and cost < best_cost.get(bucket, math.inf):
                best_cost[bucket] = cost
                best_trail[bucket] = trail

        if length > upper:
            continue

        for edge in graph.edges_from(node):
            nxt = edge.to_node
            if nxt in visited:
                continue
            next_length = length + edge.length_m
            if next_length > upper:
                # Would be pruned on pop without ever entering the band.
                continue
            stack.append((nxt, visited | {nxt}, next_length, cost + edge.cost, (edge, trail)))

    best_by_bucket = {bucket: _materialize(start_node, best_trail[bucket]) for bucket in sorted(best_trail)}
    elapsed_ms = round((time.monotonic() - started) * 1000.0, 2)
    log_event(
        "outward_search_finished",
        level=logging.WARNING if termination_reason != "exhausted" else logging.INFO,
        start_node=start_node,
        target_m=float(target_m),
        lower_m=round(lower, 2),
        upper_m=round(upper, 2),
        directed=cone is not None,
        explored_states=explored,
        routes_in_band=in_band,
        buckets_filled=["cone" if cone is not None else QUADRANT_NAMES[b] for b in best_by_bucket],
        termination_reason=termination_reason,
        elapsed_ms=elapsed_ms,
    )
    return OutwardSearchResult(
        best_by_bucket=best_by_bucket,
        explored_states=explored,
        routes_in_band=in_band,
        termination_reason=termination_reason,
        elapsed_ms=elapsed_ms,
    )


def find_outward_walks(
    graph: WalkGraph,
    start_node: int,
    target_m: float,
    *,
    tolerance: float | None = None,
    cone: BearingCone | None = None,
    time_budget_s: float | None = None,
    check_interval: int | None = None,
    max_states: int | None = None,
) -> tuple[WalkRoute, ...]:
    result = find_outward_walks_with_stats(
        graph,
        start_node,
        target_m,
        tolerance=tolerance,
        cone=cone,
        time_budget_s=time_budget_s,
        check_interval=check_interval,
        max_states=max_states,
    )
    return result.routes
