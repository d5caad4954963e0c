from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from .walk_route import WalkRoute


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class GeoJSONLineString(BaseModel):
    type: Literal["LineString"]
    coordinates: list[tuple[float, float]]  # [lon, lat]


class WalkRequest(BaseModel):
    postcode: str | None = Field(default=None, max_length=16)
    start: LatLng | None = None
    distance_km: float = Field(..., gt=0, le=50)
    walk_type: Literal["round_trip", "one_way"] = "round_trip"
    max_routes: int = Field(default=3, ge=1, le=8)
    target_bearing_deg: float | None = Field(default=None, ge=0, lt=360)

    @model_validator(mode="after")
    def _require_start(self) -> "WalkRequest":
        if self.start is None and not (self.postcode or "").strip():
            raise ValueError("either postcode or start must be provided")
        return self


class WalkMetrics(BaseModel):
    distance_km: float
    length_m: float
    cost: float
    segment_count: int
    est_duration_min: float


class WalkOption(BaseModel):
    id: str
    geometry: GeoJSONLineString
    metrics: WalkMetrics
    way_names: list[str] = Field(default_factory=list)
    path: list[int] = Field(default_factory=list)


class WalkResponse(BaseModel):
    start: LatLng
    postcode: str | None = None
    walk_type: str
    cost_model: str
    routes: list[WalkOption]
    warnings: list[str] = Field(default_factory=list)
    diagnostics: dict[str, int | float | str] = Field(default_factory=dict)


# Average walking pace used for the duration estimate.
WALKING_SPEED_KMH: float = 4.5


def walk_option_from_route(route: WalkRoute, *, option_id: str) -> WalkOption:
    distance_km = route.length_m / 1000.0
    return WalkOption(
        id=option_id,
        geometry=GeoJSONLineString(
            type="LineString",
            coordinates=[(lon, lat) for lon, lat in route.coordinates()],
        ),
        metrics=WalkMetrics(
            distance_km=round(distance_km, 3),
            length_m=round(route.length_m, 1),
            cost=round(route.cost, 1),
            segment_count=len(route.segments),
            est_duration_min=round(distance_km / WALKING_SPEED_KMH * 60.0, 1),
        ),
        way_names=route.way_names(),
        path=list(route.path),
    )
