from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        # configuration
        "cost_model_missing",
        "cost_model_invalid",
        "search_bounds_invalid",
        "selector_bounds_invalid",
        # data insufficiency
        "walk_graph_empty",
        "no_eligible_node",
        "network_data_invalid",
        "network_fetch_failed",
        "postcode_lookup_failed",
        # anything not classified above
        "walk_routing_failed",
    }
)


@dataclass
class WalkRoutingError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class WalkConfigError(WalkRoutingError):
    """Caller supplied an unusable model or bound. Not retried."""


class WalkDataError(WalkRoutingError):
    """The network data cannot support a walk at this location."""


def normalize_reason_code(reason_code: str, *, default: str = "walk_routing_failed") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
