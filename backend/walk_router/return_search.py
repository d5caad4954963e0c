from __future__ import annotations

import heapq
import logging
import math
import time
from dataclasses import dataclass
from itertools import count

from .geo import haversine_m
from .logging_utils import log_event
from .routing_graph import EdgeKey, GraphEdge, WalkGraph
from .settings import settings
from .walk_route import WalkRoute


@dataclass(frozen=True)
class ReturnSearchResult:
    route: WalkRoute | None
    explored_states: int = 0
    termination_reason: str = "no_path"  # goal_reached | no_path | deadline | iteration_cap | endpoint_unavailable
    search_cost: float | None = None  # penalized g-score at the goal

    @property
    def found(self) -> bool:
        return self.route is not None


class PathNotFoundError(ValueError):
    pass


def normalize_no_path_reason(message: str) -> str:
    lowered = str(message or "").strip().lower()
    if "iteration cap" in lowered:
        return "iteration_cap"
    if "start/goal unavailable" in lowered:
        return "endpoint_unavailable"
    if "search deadline exceeded" in lowered:
        return "deadline"
    if "no path" in lowered:
        return "no_path"
    return "no_path"


def _astar_return_path(
    *,
    graph: WalkGraph,
    start: int,
    goal: int,
    penalized_edges: frozenset[EdgeKey],
    penalty_factor: float,
    max_iterations: int,
    check_interval: int,
    deadline_monotonic_s: float,
    explored_counter: list[int],
) -> tuple[WalkRoute, float]:
    if start not in graph.adjacency or goal not in graph.nodes:
        raise PathNotFoundError("start/goal unavailable")
    goal_node = graph.nodes[goal]
    # Scale keeps the straight-line estimate below any real path cost.
    h_scale = min(1.0, max(0.0, float(graph.min_cost_factor)))

    def _heuristic(node_id: int) -> float:
        node = graph.nodes[node_id]
        return haversine_m(node.lat, node.lon, goal_node.lat, goal_node.lon) * h_scale

    seq = count()
    g_score: dict[int, float] = {start: 0.0}
    came_from: dict[int, GraphEdge] = {}
    closed: set[int] = set()
    # Equal f-scores pop in insertion order via the sequence number.
    heap: list[tuple[float, int, int]] = [(_heuristic(start), next(seq), start)]
    iterations = 0

    while heap:
        iterations += 1
        if iterations > max_iterations:
            raise PathNotFoundError("iteration cap exceeded")
        if iterations % check_interval == 0 and time.monotonic() >= deadline_monotonic_s:
            raise PathNotFoundError("search deadline exceeded")

        _f, _seq, node = heapq.heappop(heap)
        if node in closed:
            continue
        closed.add(node)
        explored_counter[0] += 1

        if node == goal:
            edges: list[GraphEdge] = []
            cursor = goal
            while cursor != start:
                edge = came_from[cursor]
                edges.append(edge)
                cursor = edge.from_node
            edges.reverse()
            return WalkRoute.from_segments(start, edges), g_score[goal]

        base_g = g_score[node]
        for edge in graph.edges_from(node):
            nxt = edge.to_node
            if nxt in closed:
                continue
            step_cost = edge.cost
            if edge.key in penalized_edges:
                step_cost *= penalty_factor
            tentative = base_g + step_cost
            if tentative < g_score.get(nxt, math.inf):
                g_score[nxt] = tentative
                came_from[nxt] = edge
                heapq.heappush(heap, (tentative + _heuristic(nxt), next(seq), nxt))
    raise PathNotFoundError("no path")


def find_return_path_with_stats(
    graph: WalkGraph,
    start_node: int,
    goal_node: int,
    *,
    outward: WalkRoute | None = None,
    penalty_factor: float | None = None,
    time_budget_s: float | None = None,
    max_iterations: int | None = None,
    check_interval: int | None = None,
) -> ReturnSearchResult:
    """Least-cost path from start_node to goal_node that avoids doubling back.

    Edges of `outward` (matched by unordered node pair) cost `penalty_factor`
    times more while searching. The returned route always carries actual
    edge costs. Exhaustion, deadline and iteration cap come back as a result
    without a route.
    """
    penalized_edges = outward.edge_keys() if outward is not None else frozenset()
    factor = float(settings.return_penalty_factor if penalty_factor is None else penalty_factor)
    budget_s = settings.return_search_timeout_s if time_budget_s is None else max(0.0, float(time_budget_s))
    cap = max(1, int(settings.return_search_max_iterations if max_iterations is None else max_iterations))
    interval = max(1, int(settings.return_search_check_interval if check_interval is None else check_interval))
    started = time.monotonic()
    explored_counter = [0]
    try:
        route, search_cost = _astar_return_path(
            graph=graph,
            start=start_node,
            goal=goal_node,
            penalized_edges=penalized_edges,
            penalty_factor=max(1.0, factor),
            max_iterations=cap,
            check_interval=interval,
            deadline_monotonic_s=started + budget_s,
            explored_counter=explored_counter,
        )
    except PathNotFoundError as exc:
        reason = normalize_no_path_reason(str(exc))
        log_event(
            "return_search_no_path",
            level=logging.WARNING,
            start_node=start_node,
            goal_node=goal_node,
            penalized_edges=len(penalized_edges),
            explored_states=explored_counter[0],
            termination_reason=reason,
            elapsed_ms=round((time.monotonic() - started) * 1000.0, 2),
        )
        return ReturnSearchResult(
            route=None,
            explored_states=explored_counter[0],
            termination_reason=reason,
        )
    log_event(
        "return_search_finished",
        start_node=start_node,
        goal_node=goal_node,
        penalized_edges=len(penalized_edges),
        explored_states=explored_counter[0],
        length_m=round(route.length_m, 2),
        cost=round(route.cost, 2),
        elapsed_ms=round((time.monotonic() - started) * 1000.0, 2),
    )
    return ReturnSearchResult(
        route=route,
        explored_states=explored_counter[0],
        termination_reason="goal_reached",
        search_cost=float(search_cost),
    )


def find_return_path(
    graph: WalkGraph,
    start_node: int,
    goal_node: int,
    *,
    outward: WalkRoute | None = None,
    penalty_factor: float | None = None,
    time_budget_s: float | None = None,
    max_iterations: int | None = None,
    check_interval: int | None = None,
) -> WalkRoute | None:
    result = find_return_path_with_stats(
        graph,
        start_node,
        goal_node,
        outward=outward,
        penalty_factor=penalty_factor,
        time_budget_s=time_budget_s,
        max_iterations=max_iterations,
        check_interval=check_interval,
    )
    return result.route
