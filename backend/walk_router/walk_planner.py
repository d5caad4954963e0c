from __future__ import annotations

import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Literal

from .cost_model import CostModel, cost_model_from_mapping, get_cost_model
from .diversity import select_diverse_routes
from .geo import BearingCone
from .logging_utils import log_event
from .outward_search import find_outward_walks_with_stats
from .round_trip import assemble_round_trips
from .routing_graph import NetworkWay, WalkGraph, build_walk_graph, nearest_node, require_usable_graph
from .settings import settings
from .walk_errors import WalkConfigError
from .walk_route import WalkRoute

WalkType = Literal["round_trip", "one_way"]


@dataclass(frozen=True)
class WalkPlan:
    walk_type: str
    start_node: int
    snap_distance_m: float
    distance_m: float
    cost_model_name: str
    routes: tuple[WalkRoute, ...]
    candidate_count: int
    warnings: tuple[str, ...] = ()


def plan_walks(
    graph: WalkGraph,
    *,
    start_lat: float,
    start_lon: float,
    distance_m: float,
    walk_type: WalkType = "round_trip",
    max_routes: int | None = None,
    target_bearing_deg: float | None = None,
    cone_tolerance_deg: float | None = None,
    tolerance: float | None = None,
    overlap_threshold: float | None = None,
    time_budget_s: float | None = None,
) -> WalkPlan:
    """Snap the start, search, and keep a diverse cheapest-first route set.

    Running out of time or candidates is reported in `warnings`; only
    configuration and data problems raise.
    """
    t0 = time.perf_counter()
    require_usable_graph(graph)
    start_node, snap_distance_m = nearest_node(graph, lat=start_lat, lon=start_lon)
    cone = (
        BearingCone(
            target_deg=float(target_bearing_deg),
            tolerance_deg=float(
                settings.walk_cone_tolerance_deg if cone_tolerance_deg is None else cone_tolerance_deg
            ),
        )
        if target_bearing_deg is not None
        else None
    )
    warnings: list[str] = []

    if walk_type == "one_way":
        outward = find_outward_walks_with_stats(
            graph,
            start_node,
            distance_m,
            tolerance=tolerance,
            cone=cone,
            time_budget_s=time_budget_s,
        )
        candidates: tuple[WalkRoute, ...] = outward.routes
        if outward.timed_out:
            warnings.append(
                f"outward_search: {outward.termination_reason} (partial result after {outward.explored_states} states)"
            )
    elif walk_type == "round_trip":
        round_trips = assemble_round_trips(
            graph,
            start_node,
            distance_m,
            tolerance=tolerance,
            cone=cone,
            time_budget_s=time_budget_s,
        )
        candidates = round_trips.routes
        if round_trips.outward.timed_out:
            warnings.append(
                f"outward_search: {round_trips.outward.termination_reason} "
                f"(partial result after {round_trips.outward.explored_states} states)"
            )
        if round_trips.dropped_legs:
            dropped_reasons = sorted({r for r in round_trips.return_reasons if r != "goal_reached"})
            warnings.append(
                f"return_search: {round_trips.dropped_legs} outward leg(s) without a return path "
                f"({', '.join(dropped_reasons) or 'empty'})"
            )
    else:
        raise WalkConfigError(
            reason_code="search_bounds_invalid",
            message=f"Unknown walk type '{walk_type}'.",
            details={"walk_type": walk_type},
        )

    cap = int(max_routes if max_routes is not None else settings.max_walk_routes)
    selected = select_diverse_routes(candidates, max_routes=cap, overlap_threshold=overlap_threshold)
    if not candidates:
        warnings.append("no_route_candidates")
    elif len(selected) < min(cap, len(candidates)):
        warnings.append(f"diversity: kept {len(selected)} of {len(candidates)} candidates")

    log_event(
        "walk_plan",
        walk_type=walk_type,
        cost_model=graph.cost_model_name,
        start_node=start_node,
        snap_distance_m=round(snap_distance_m, 1),
        distance_m=float(distance_m),
        directed=cone is not None,
        candidate_count=len(candidates),
        selected_count=len(selected),
        warnings=warnings,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return WalkPlan(
        walk_type=walk_type,
        start_node=start_node,
        snap_distance_m=snap_distance_m,
        distance_m=float(distance_m),
        cost_model_name=graph.cost_model_name,
        routes=tuple(selected),
        candidate_count=len(candidates),
        warnings=tuple(warnings),
    )


def _resolve_cost_models(
    cost_models: Sequence[CostModel | str | Mapping[str, float]] | None,
) -> list[CostModel]:
    if cost_models is None:
        names = [settings.walk_cost_profile]
        if settings.walk_fallback_cost_profile:
            names.append(settings.walk_fallback_cost_profile)
        cost_models = names
    resolved: list[CostModel] = []
    for item in cost_models:
        if isinstance(item, CostModel):
            model = item
        elif isinstance(item, Mapping):
            model = cost_model_from_mapping(f"custom_{len(resolved)}", item)
        else:
            model = get_cost_model(item)
        if all(model.name != seen.name for seen in resolved):
            resolved.append(model)
    if not resolved:
        raise WalkConfigError(
            reason_code="cost_model_missing",
            message="At least one cost model must be supplied.",
        )
    return resolved


def plan_walks_from_network(
    nodes: Mapping[int, tuple[float, float]],
    ways: Iterable[NetworkWay],
    *,
    start_lat: float,
    start_lon: float,
    distance_m: float,
    walk_type: WalkType = "round_trip",
    cost_models: Sequence[CostModel | str | Mapping[str, float]] | None = None,
    max_routes: int | None = None,
    target_bearing_deg: float | None = None,
    tolerance: float | None = None,
    overlap_threshold: float | None = None,
    time_budget_s: float | None = None,
) -> WalkPlan:
    """Plan walks over raw network data, relaxing the cost model when needed.

    Each cost model is tried in order; the first plan with routes wins.
    Retries also widen the length tolerance to `walk_fallback_tolerance`,
    since a different cost model alone only reorders the same candidates.
    When none produce routes the last plan is returned with its warnings.
    """
    models = _resolve_cost_models(cost_models)
    way_list = list(ways)
    base_tolerance = float(settings.walk_length_tolerance if tolerance is None else tolerance)
    fallback_tolerance = max(base_tolerance, float(settings.walk_fallback_tolerance))

    def _plan_with(model: CostModel, search_tolerance: float) -> WalkPlan:
        return plan_walks(
            build_walk_graph(nodes, way_list, model),
            start_lat=start_lat,
            start_lon=start_lon,
            distance_m=distance_m,
            walk_type=walk_type,
            max_routes=max_routes,
            target_bearing_deg=target_bearing_deg,
            tolerance=search_tolerance,
            overlap_threshold=overlap_threshold,
            time_budget_s=time_budget_s,
        )

    plan = _plan_with(models[0], base_tolerance)
    fallback_warnings: list[str] = []
    for model in models[1:]:
        if plan.routes:
            break
        fallback_warnings.append(
            f"cost_model: {plan.cost_model_name} produced no routes, "
            f"retried with {model.name} (tolerance {fallback_tolerance:g})"
        )
        plan = _plan_with(model, fallback_tolerance)
    if fallback_warnings:
        plan = replace(plan, warnings=tuple(fallback_warnings) + plan.warnings)
    return plan
