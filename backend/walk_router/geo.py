from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_M = 6_371_000.0
INVALID_BUCKET = -1

QUADRANT_NAMES: dict[int, str] = {0: "NE", 1: "SE", 2: "SW", 3: "NW"}


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, a))))


def initial_bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float | None:
    """Initial compass bearing from point 1 to point 2, in [0, 360).

    Identical points have no bearing and return None.
    """
    if lat1 == lat2 and lon1 == lon2:
        return None
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dlambda = math.radians(lon2 - lon1)
    x = math.sin(dlambda) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlambda)
    bearing = (math.degrees(math.atan2(x, y)) + 360.0) % 360.0
    # (-tiny + 360) % 360 can round to exactly 360.0
    return 0.0 if bearing >= 360.0 else bearing


def bearing_delta_deg(a: float, b: float) -> float:
    diff = abs(float(a) - float(b)) % 360.0
    return min(diff, 360.0 - diff)


def quadrant_for_bearing(bearing: float | None) -> int:
    if bearing is None or not math.isfinite(bearing):
        return INVALID_BUCKET
    if 0.0 <= bearing < 90.0:
        return 0
    if 90.0 <= bearing < 180.0:
        return 1
    if 180.0 <= bearing < 270.0:
        return 2
    if 270.0 <= bearing <= 360.0:
        return 3
    return INVALID_BUCKET


@dataclass(frozen=True)
class BearingCone:
    """A single direction bucket: bearings within tolerance_deg of target_deg."""

    target_deg: float
    tolerance_deg: float = 45.0

    def contains(self, bearing: float | None) -> bool:
        if bearing is None or not math.isfinite(bearing):
            return False
        return bearing_delta_deg(bearing, self.target_deg % 360.0) <= self.tolerance_deg


def bucket_for_bearing(bearing: float | None, cone: BearingCone | None = None) -> int:
    if cone is None:
        return quadrant_for_bearing(bearing)
    return 0 if cone.contains(bearing) else INVALID_BUCKET


def search_bbox(
    lat: float,
    lon: float,
    distance_m: float,
    *,
    buffer_factor: float = 1.5,
) -> tuple[float, float, float, float]:
    """(west, south, east, north) box around a start point for network requests."""
    radius_lat = (max(0.0, distance_m) * buffer_factor) / 111_000.0
    radius_lon = radius_lat / max(1e-6, math.cos(math.radians(lat)))
    return (lon - radius_lon, lat - radius_lat, lon + radius_lon, lat + radius_lat)
