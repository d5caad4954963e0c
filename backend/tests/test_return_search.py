from __future__ import annotations

import math
import random
from collections.abc import Callable

import pytest

from walk_router.cost_model import PREFERRED_COST_MODEL
from walk_router.geo import EARTH_RADIUS_M
from walk_router.return_search import (
    find_return_path,
    find_return_path_with_stats,
    normalize_no_path_reason,
)
from walk_router.routing_graph import NetworkWay, WalkGraph, build_walk_graph
from walk_router.walk_route import WalkRoute

LAT0 = 51.5
LON0 = -0.1
LAT_STEP = math.degrees(100.0 / EARTH_RADIUS_M)
LON_STEP = LAT_STEP / math.cos(math.radians(LAT0))


def _grid(size: int = 3, *, category: Callable[[int, int], str] | None = None) -> WalkGraph:
    nodes = {
        row * size + col: (LAT0 + row * LAT_STEP, LON0 + col * LON_STEP)
        for row in range(size)
        for col in range(size)
    }
    pairs: list[tuple[int, int]] = []
    for row in range(size):
        for col in range(size):
            node_id = row * size + col
            if col + 1 < size:
                pairs.append((node_id, node_id + 1))
            if row + 1 < size:
                pairs.append((node_id, node_id + size))
    ways = [
        NetworkWay(
            id=2000 + idx,
            node_ids=(u, v),
            tags={"highway": category(u, v) if category is not None else "footway"},
        )
        for idx, (u, v) in enumerate(pairs)
    ]
    return build_walk_graph(nodes, ways, PREFERRED_COST_MODEL)


def _line() -> WalkGraph:
    nodes = {i: (LAT0 + i * LAT_STEP, LON0) for i in range(3)}
    ways = [NetworkWay(id=1, node_ids=(0, 1, 2), tags={"highway": "footway"})]
    return build_walk_graph(nodes, ways, PREFERRED_COST_MODEL)


def _route_through(graph: WalkGraph, path: list[int]) -> WalkRoute:
    edges = [next(e for e in graph.edges_from(u) if e.to_node == v) for u, v in zip(path, path[1:])]
    return WalkRoute.from_segments(path[0], edges)


def _brute_force_min_cost(graph: WalkGraph, start: int, goal: int) -> float:
    best = math.inf
    stack: list[tuple[int, frozenset[int], float]] = [(start, frozenset((start,)), 0.0)]
    while stack:
        node, visited, cost = stack.pop()
        if node == goal:
            best = min(best, cost)
            continue
        for edge in graph.edges_from(node):
            if edge.to_node not in visited:
                stack.append((edge.to_node, visited | {edge.to_node}, cost + edge.cost))
    return best


def test_return_search_matches_brute_force_optimum() -> None:
    rng = random.Random(20260301)
    categories = ["footway", "track", "residential", "service", "tertiary"]

    for _ in range(15):
        chosen: dict[tuple[int, int], str] = {}

        def _category(u: int, v: int) -> str:
            return chosen.setdefault((u, v), rng.choice(categories))

        graph = _grid(3, category=_category)
        start, goal = rng.sample(sorted(graph.adjacency), 2)

        result = find_return_path_with_stats(graph, start, goal, time_budget_s=10.0)

        assert result.found
        assert result.termination_reason == "goal_reached"
        assert result.route is not None
        assert result.route.path[0] == start
        assert result.route.path[-1] == goal
        assert result.route.cost == pytest.approx(_brute_force_min_cost(graph, start, goal))
        assert result.search_cost == pytest.approx(result.route.cost)


def test_penalty_steers_return_off_outward_edges() -> None:
    graph = _grid(3)
    outward = _route_through(graph, [0, 1, 2])

    shortest = find_return_path(graph, 2, 0, time_budget_s=10.0)
    penalized = find_return_path_with_stats(graph, 2, 0, outward=outward, penalty_factor=100.0, time_budget_s=10.0)

    assert shortest is not None
    assert shortest.path == (2, 1, 0)
    assert penalized.route is not None
    assert penalized.route.edge_keys().isdisjoint(outward.edge_keys())
    assert penalized.route.length_m > shortest.length_m
    assert penalized.route.cost >= shortest.cost
    assert penalized.search_cost == pytest.approx(penalized.route.cost)


def test_penalty_reuses_outward_edges_when_no_alternative() -> None:
    graph = _line()
    outward = _route_through(graph, [0, 1, 2])

    shortest = find_return_path(graph, 2, 0, time_budget_s=10.0)
    result = find_return_path_with_stats(graph, 2, 0, outward=outward, penalty_factor=100.0, time_budget_s=10.0)

    assert shortest is not None
    assert result.route is not None
    assert result.route.path == (2, 1, 0)
    assert result.route.length_m == pytest.approx(shortest.length_m)
    # Reported cost is the real walking cost, not the penalized search cost.
    assert result.route.cost == pytest.approx(shortest.cost)
    assert result.search_cost == pytest.approx(shortest.cost * 100.0)


def test_disconnected_goal_reports_no_path() -> None:
    nodes = {
        1: (LAT0, LON0),
        2: (LAT0 + LAT_STEP, LON0),
        3: (LAT0 + 5 * LAT_STEP, LON0),
        4: (LAT0 + 6 * LAT_STEP, LON0),
    }
    ways = [
        NetworkWay(id=1, node_ids=(1, 2), tags={"highway": "footway"}),
        NetworkWay(id=2, node_ids=(3, 4), tags={"highway": "footway"}),
    ]
    graph = build_walk_graph(nodes, ways, PREFERRED_COST_MODEL)

    result = find_return_path_with_stats(graph, 1, 4, time_budget_s=10.0)

    assert not result.found
    assert result.termination_reason == "no_path"
    assert result.explored_states == 2
    assert find_return_path(graph, 1, 4, time_budget_s=10.0) is None


def test_unknown_endpoint_is_reported() -> None:
    graph = _grid(3)

    assert find_return_path_with_stats(graph, 999, 0).termination_reason == "endpoint_unavailable"
    assert find_return_path_with_stats(graph, 0, 999).termination_reason == "endpoint_unavailable"


def test_iteration_cap_and_deadline_are_reported() -> None:
    graph = _grid(3)

    capped = find_return_path_with_stats(graph, 8, 0, max_iterations=1, time_budget_s=10.0)
    assert capped.termination_reason == "iteration_cap"
    assert capped.route is None

    expired = find_return_path_with_stats(graph, 8, 0, time_budget_s=0.0, check_interval=1)
    assert expired.termination_reason == "deadline"
    assert expired.explored_states == 0


def test_start_equal_to_goal_is_an_empty_route() -> None:
    result = find_return_path_with_stats(_grid(3), 4, 4, time_budget_s=10.0)

    assert result.found
    assert result.route is not None
    assert result.route.path == (4,)
    assert result.route.segments == ()
    assert result.route.length_m == 0.0


def test_normalize_no_path_reason() -> None:
    assert normalize_no_path_reason("iteration cap exceeded") == "iteration_cap"
    assert normalize_no_path_reason("start/goal unavailable") == "endpoint_unavailable"
    assert normalize_no_path_reason("search deadline exceeded") == "deadline"
    assert normalize_no_path_reason("no path") == "no_path"
    assert normalize_no_path_reason("") == "no_path"


def _diamond(*, east_first: bool) -> WalkGraph:
    """Two mirror-image branches 0 -> {1 west, 2 east} -> 3 with identical costs."""
    # Longitude 0 keeps both branches exactly symmetric in floating point.
    nodes = {
        0: (LAT0, 0.0),
        1: (LAT0 + LAT_STEP, -LON_STEP),
        2: (LAT0 + LAT_STEP, LON_STEP),
        3: (LAT0 + 2 * LAT_STEP, 0.0),
    }
    west = [NetworkWay(id=1, node_ids=(0, 1), tags={"highway": "footway"}), NetworkWay(id=3, node_ids=(1, 3), tags={"highway": "footway"})]
    east = [NetworkWay(id=2, node_ids=(0, 2), tags={"highway": "footway"}), NetworkWay(id=4, node_ids=(2, 3), tags={"highway": "footway"})]
    ways = east + west if east_first else west + east
    return build_walk_graph(nodes, ways, PREFERRED_COST_MODEL)


def test_equal_cost_paths_resolve_by_insertion_order() -> None:
    west_first = _diamond(east_first=False)
    east_first = _diamond(east_first=True)

    first = find_return_path(west_first, 0, 3, time_budget_s=10.0)
    repeat = find_return_path(west_first, 0, 3, time_budget_s=10.0)
    mirrored = find_return_path(east_first, 0, 3, time_budget_s=10.0)

    assert first is not None and repeat is not None and mirrored is not None
    assert first.cost == mirrored.cost
    # The neighbour pushed first wins an equal f-score.
    assert first.path == (0, 1, 3)
    assert repeat.path == first.path
    assert mirrored.path == (0, 2, 3)
