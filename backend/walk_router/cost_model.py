from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from .settings import settings
from .walk_errors import WalkConfigError


@dataclass(frozen=True)
class CostModel:
    """Per-metre cost multiplier for each path category (OSM `highway` value).

    Lower values are preferred. Categories the model does not list use
    `default`.
    """

    name: str
    factors: Mapping[str, float] = field(default_factory=dict)
    default: float = 1.8

    def __post_init__(self) -> None:
        if not self.factors:
            raise WalkConfigError(
                reason_code="cost_model_invalid",
                message=f"Cost model '{self.name}' has no category factors.",
            )
        cleaned: dict[str, float] = {}
        for key, value in self.factors.items():
            category = str(key).strip().lower()
            factor = float(value)
            if not category or not math.isfinite(factor) or factor < 0.0:
                raise WalkConfigError(
                    reason_code="cost_model_invalid",
                    message=f"Cost model '{self.name}' has an invalid factor for '{key}'.",
                    details={"category": str(key), "factor": value},
                )
            cleaned[category] = factor
        default = float(self.default)
        if not math.isfinite(default) or default < 0.0:
            raise WalkConfigError(
                reason_code="cost_model_invalid",
                message=f"Cost model '{self.name}' has an invalid default factor.",
                details={"default": self.default},
            )
        object.__setattr__(self, "factors", MappingProxyType(cleaned))
        object.__setattr__(self, "default", default)

    def factor_for(self, category: str | None) -> float:
        key = str(category or "").strip().lower()
        return self.factors.get(key, self.default)

    @property
    def min_factor(self) -> float:
        return min(min(self.factors.values()), self.default)


def cost_model_from_mapping(name: str, mapping: Mapping[str, float] | None) -> CostModel:
    """Build a model from the flat `{"footway": 1.0, ..., "default": 1.8}` shape.

    A missing `default` entry falls back to the configured single multiplier.
    """
    if not mapping:
        raise WalkConfigError(
            reason_code="cost_model_missing",
            message="A cost model must be supplied to build the walk graph.",
        )
    factors = {str(k): float(v) for k, v in mapping.items() if str(k) != "default"}
    default = float(mapping.get("default", settings.walk_default_cost_factor))
    return CostModel(name=name, factors=factors, default=default)


PREFERRED_COST_MODEL = CostModel(
    name="preferred",
    factors={
        # dedicated walking paths
        "path": 1.0,
        "footway": 1.0,
        "pedestrian": 1.0,
        "track": 1.2,
        "cycleway": 1.2,
        "bridleway": 1.2,
        "living_street": 1.5,
        "residential": 1.5,
        "unclassified": 1.8,
        "service": 2.0,
        "tertiary": 2.5,
    },
    default=1.8,
)

RELAXED_COST_MODEL = CostModel(
    name="relaxed",
    factors={
        "path": 1.0,
        "footway": 1.0,
        "pedestrian": 1.0,
        "track": 1.1,
        "cycleway": 1.1,
        "bridleway": 1.1,
        "living_street": 1.2,
        "residential": 1.2,
        "unclassified": 1.3,
        "service": 1.3,
        "tertiary": 1.4,
    },
    default=1.3,
)

COST_MODELS: dict[str, CostModel] = {
    PREFERRED_COST_MODEL.name: PREFERRED_COST_MODEL,
    RELAXED_COST_MODEL.name: RELAXED_COST_MODEL,
}


def get_cost_model(name: str) -> CostModel:
    key = str(name or "").strip().lower()
    model = COST_MODELS.get(key)
    if model is None:
        raise WalkConfigError(
            reason_code="cost_model_missing",
            message=f"Unknown cost model '{name}'.",
            details={"available": sorted(COST_MODELS)},
        )
    return model
