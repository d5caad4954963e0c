from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _running_in_docker() -> bool:
    """Best-effort check for container execution.

    Used only to pick sensible defaults. Environment variables always win.
    """
    return Path("/.dockerenv").exists() or os.environ.get("RUNNING_IN_DOCKER") == "1"


def _default_out_dir() -> str:
    # Keep logs in backend/out when running on the host.
    if _running_in_docker():
        return "/app/out"
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # HTTP server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, ge=1, le=65535, alias="API_PORT")

    # External collaborators (network data + postcode resolver)
    overpass_url: str = Field(default="https://overpass-api.de/api/interpreter", alias="OVERPASS_URL")
    postcodes_url: str = Field(default="https://api.postcodes.io/postcodes/", alias="POSTCODES_URL")
    http_request_timeout_s: float = Field(default=60.0, ge=1.0, le=300.0, alias="HTTP_REQUEST_TIMEOUT_S")
    http_max_retries: int = Field(default=3, ge=1, le=10, alias="HTTP_MAX_RETRIES")
    search_bbox_buffer_factor: float = Field(default=1.5, gt=0.0, le=10.0, alias="SEARCH_BBOX_BUFFER_FACTOR")

    # Cost model
    walk_cost_profile: str = Field(default="preferred", alias="WALK_COST_PROFILE")
    walk_fallback_cost_profile: str = Field(default="relaxed", alias="WALK_FALLBACK_COST_PROFILE")
    walk_default_cost_factor: float = Field(default=1.8, ge=0.0, alias="WALK_DEFAULT_COST_FACTOR")

    # Outward search (bounded DFS)
    walk_search_timeout_s: float = Field(default=60.0, ge=0.0, le=600.0, alias="WALK_SEARCH_TIMEOUT_S")
    walk_search_check_interval: int = Field(default=20_000, ge=1, alias="WALK_SEARCH_CHECK_INTERVAL")
    walk_search_max_states: int = Field(default=0, ge=0, alias="WALK_SEARCH_MAX_STATES")
    walk_length_tolerance: float = Field(default=0.2, ge=0.0, lt=1.0, alias="WALK_LENGTH_TOLERANCE")
    walk_fallback_tolerance: float = Field(default=0.35, ge=0.0, lt=1.0, alias="WALK_FALLBACK_TOLERANCE")
    walk_cone_tolerance_deg: float = Field(default=45.0, gt=0.0, le=180.0, alias="WALK_CONE_TOLERANCE_DEG")

    # Return search (penalized A*)
    return_penalty_factor: float = Field(default=100.0, ge=1.0, alias="RETURN_PENALTY_FACTOR")
    return_search_timeout_s: float = Field(default=60.0, ge=0.0, le=600.0, alias="RETURN_SEARCH_TIMEOUT_S")
    return_search_max_iterations: int = Field(default=500_000, ge=1, alias="RETURN_SEARCH_MAX_ITERATIONS")
    return_search_check_interval: int = Field(default=1_000, ge=1, alias="RETURN_SEARCH_CHECK_INTERVAL")
    round_trip_workers: int = Field(default=1, ge=1, le=32, alias="ROUND_TRIP_WORKERS")

    # Diversity selection
    diversity_overlap_threshold: float = Field(default=0.3, ge=0.0, le=1.0, alias="DIVERSITY_OVERLAP_THRESHOLD")
    max_walk_routes: int = Field(default=3, ge=1, le=16, alias="MAX_WALK_ROUTES")

    @model_validator(mode="after")
    def _normalize_profiles(self) -> "Settings":
        self.walk_cost_profile = self.walk_cost_profile.strip().lower() or "preferred"
        self.walk_fallback_cost_profile = self.walk_fallback_cost_profile.strip().lower()
        return self


settings = Settings()
