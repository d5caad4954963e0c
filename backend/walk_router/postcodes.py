from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

import httpx

from .logging_utils import log_event
from .settings import settings
from .walk_errors import WalkDataError


@dataclass(frozen=True)
class ResolvedLocation:
    lat: float
    lon: float
    postcode: str


class PostcodeClient:
    """Resolves a UK postcode to a single coordinate via postcodes.io."""

    def __init__(self, *, base_url: str | None = None, timeout_s: float | None = None) -> None:
        self.base_url = (base_url or settings.postcodes_url).rstrip("/") + "/"
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s or settings.http_request_timeout_s, connect=5.0),
            headers={"accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def lookup(self, postcode: str) -> ResolvedLocation:
        cleaned = str(postcode or "").strip()
        if not cleaned:
            raise WalkDataError(reason_code="postcode_lookup_failed", message="Postcode is empty.")
        url = f"{self.base_url}{quote(cleaned)}"
        try:
            resp = await self._client.get(url)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise WalkDataError(
                reason_code="postcode_lookup_failed",
                message=f"Postcode lookup failed: {type(e).__name__}: {e}",
                details={"postcode": cleaned},
            ) from e

        result = data.get("result") if isinstance(data, dict) else None
        if resp.status_code != 200 or not isinstance(result, dict):
            error = data.get("error") if isinstance(data, dict) else None
            raise WalkDataError(
                reason_code="postcode_lookup_failed",
                message=f"Postcode lookup failed: {error or 'Postcode not found'}",
                details={"postcode": cleaned, "status_code": resp.status_code},
            )
        try:
            location = ResolvedLocation(
                lat=float(result["latitude"]),
                lon=float(result["longitude"]),
                postcode=str(result.get("postcode") or cleaned),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise WalkDataError(
                reason_code="postcode_lookup_failed",
                message="Postcode lookup returned no coordinates.",
                details={"postcode": cleaned},
            ) from e
        log_event("postcode_resolved", postcode=location.postcode, lat=location.lat, lon=location.lon)
        return location
