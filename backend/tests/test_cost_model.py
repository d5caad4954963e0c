from __future__ import annotations

import math

import pytest

from walk_router.cost_model import (
    COST_MODELS,
    PREFERRED_COST_MODEL,
    RELAXED_COST_MODEL,
    CostModel,
    cost_model_from_mapping,
    get_cost_model,
)
from walk_router.settings import settings
from walk_router.walk_errors import WalkConfigError


def test_preferred_model_favours_dedicated_paths() -> None:
    assert PREFERRED_COST_MODEL.factor_for("footway") == 1.0
    assert PREFERRED_COST_MODEL.factor_for("path") == 1.0
    assert PREFERRED_COST_MODEL.factor_for("residential") == 1.5
    assert PREFERRED_COST_MODEL.factor_for("tertiary") == 2.5
    assert PREFERRED_COST_MODEL.factor_for("motorway_link") == PREFERRED_COST_MODEL.default
    assert PREFERRED_COST_MODEL.factor_for(None) == PREFERRED_COST_MODEL.default
    assert PREFERRED_COST_MODEL.min_factor == 1.0


def test_relaxed_model_is_never_stricter_than_preferred() -> None:
    for category, factor in PREFERRED_COST_MODEL.factors.items():
        assert RELAXED_COST_MODEL.factor_for(category) <= factor
    assert RELAXED_COST_MODEL.default <= PREFERRED_COST_MODEL.default


def test_factor_lookup_is_case_insensitive() -> None:
    model = CostModel(name="custom", factors={" Footway ": 0.5}, default=2.0)
    assert model.factor_for("FOOTWAY") == 0.5
    assert "footway" in model.factors


def test_cost_model_factors_are_read_only() -> None:
    with pytest.raises(TypeError):
        PREFERRED_COST_MODEL.factors["footway"] = 9.0  # type: ignore[index]


@pytest.mark.parametrize(
    "factors,default",
    [
        ({}, 1.0),
        ({"footway": -1.0}, 1.0),
        ({"footway": math.inf}, 1.0),
        ({"footway": 1.0}, math.nan),
    ],
)
def test_invalid_cost_models_are_rejected(factors: dict[str, float], default: float) -> None:
    with pytest.raises(WalkConfigError) as exc:
        CostModel(name="broken", factors=factors, default=default)
    assert exc.value.reason_code == "cost_model_invalid"


def test_cost_model_from_mapping_uses_configured_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "walk_default_cost_factor", 3.0)
    model = cost_model_from_mapping("city", {"footway": 1.0, "residential": 1.1})
    assert model.default == 3.0
    assert model.factor_for("service") == 3.0

    explicit = cost_model_from_mapping("city", {"footway": 1.0, "default": 1.4})
    assert explicit.default == 1.4
    assert "default" not in explicit.factors


def test_missing_cost_model_is_a_config_error() -> None:
    with pytest.raises(WalkConfigError) as exc:
        cost_model_from_mapping("empty", None)
    assert exc.value.reason_code == "cost_model_missing"

    with pytest.raises(WalkConfigError) as exc:
        get_cost_model("scenic")
    assert exc.value.reason_code == "cost_model_missing"
    assert exc.value.details == {"available": sorted(COST_MODELS)}


def test_get_cost_model_normalizes_name() -> None:
    assert get_cost_model(" Preferred ") is PREFERRED_COST_MODEL
    assert get_cost_model("relaxed") is RELAXED_COST_MODEL
