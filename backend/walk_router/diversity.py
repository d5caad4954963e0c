from __future__ import annotations

import math
from collections.abc import Iterable

from .routing_graph import EdgeKey
from .settings import settings
from .walk_errors import WalkConfigError
from .walk_route import WalkRoute


def overlap_fraction(candidate_keys: frozenset[EdgeKey], selected_keys: frozenset[EdgeKey]) -> float:
    """Share of the candidate's edges that the selected route also uses."""
    if not candidate_keys:
        return 0.0
    return len(candidate_keys & selected_keys) / len(candidate_keys)


def select_diverse_routes(
    candidates: Iterable[WalkRoute],
    *,
    max_routes: int,
    overlap_threshold: float | None = None,
) -> list[WalkRoute]:
    """Greedy cheapest-first selection of routes that do not retrace each other.

    A candidate is rejected when more than `overlap_threshold` of its edges
    appear in an already-selected route, or more than `overlap_threshold` of
    that route's edges appear in the candidate. Candidates with no edges are
    skipped. Greedy, not globally optimal: cost wins over diversity.
    """
    threshold = float(settings.diversity_overlap_threshold if overlap_threshold is None else overlap_threshold)
    if not math.isfinite(threshold) or threshold < 0.0 or threshold > 1.0:
        raise WalkConfigError(
            reason_code="selector_bounds_invalid",
            message="Overlap threshold must be in [0, 1].",
            details={"overlap_threshold": overlap_threshold},
        )
    if max_routes < 0:
        raise WalkConfigError(
            reason_code="selector_bounds_invalid",
            message="max_routes must not be negative.",
            details={"max_routes": max_routes},
        )
    if max_routes == 0:
        return []

    # sorted() is stable, so equal-cost candidates keep their incoming order.
    ordered = sorted(candidates, key=lambda route: route.cost)
    selected: list[WalkRoute] = []
    selected_keys: list[frozenset[EdgeKey]] = []

    for route in ordered:
        keys = route.edge_keys()
        if not keys:
            continue
        if any(
            max(overlap_fraction(keys, kept), overlap_fraction(kept, keys)) > threshold for kept in selected_keys
        ):
            continue
        selected.append(route)
        selected_keys.append(keys)
        if len(selected) >= max_routes:
            break
    return selected
