from __future__ import annotations

import asyncio
from typing import Any, Final

import httpx

from .logging_utils import log_event
from .routing_graph import NetworkWay
from .settings import settings
from .walk_errors import WalkDataError

PEDESTRIAN_HIGHWAYS: Final[tuple[str, ...]] = (
    "footway",
    "path",
    "pedestrian",
    "track",
    "residential",
    "living_street",
    "service",
    "unclassified",
    "tertiary",
    "cycleway",
    "bridleway",
)

_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}


class NetworkDataError(WalkDataError):
    pass


def overpass_query(
    bbox: tuple[float, float, float, float],
    *,
    categories: tuple[str, ...] = PEDESTRIAN_HIGHWAYS,
    timeout_s: int = 60,
) -> str:
    """Overpass QL for walkable ways (plus their nodes) inside (west, south, east, north)."""
    if len(bbox) != 4:
        raise ValueError("bbox must be (west, south, east, north)")
    west, south, east, north = bbox
    pattern = "|".join(categories)
    return (
        f"[out:json][timeout:{int(timeout_s)}];"
        f'(way["highway"~"^({pattern})$"]({south},{west},{north},{east}););'
        "out body;>;out skel qt;"
    )


def _parse_node(raw: dict[str, Any]) -> tuple[int, float, float] | None:
    try:
        node_id = int(raw["id"])
        lat = float(raw["lat"])
        lon = float(raw["lon"])
    except (KeyError, TypeError, ValueError):
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return None
    return node_id, lat, lon


def _parse_way(raw: dict[str, Any]) -> NetworkWay | None:
    node_refs = raw.get("nodes")
    if not isinstance(node_refs, list):
        return None
    try:
        way_id = int(raw["id"])
        node_ids = tuple(int(ref) for ref in node_refs)
    except (KeyError, TypeError, ValueError):
        return None
    tags = raw.get("tags")
    if not isinstance(tags, dict):
        tags = {}
    return NetworkWay(id=way_id, node_ids=node_ids, tags={str(k): str(v) for k, v in tags.items()})


def parse_overpass_elements(
    payload: Any,
) -> tuple[dict[int, tuple[float, float]], list[NetworkWay]]:
    """Split an Overpass JSON payload into node coordinates and ways."""
    elements = payload.get("elements") if isinstance(payload, dict) else None
    if not isinstance(elements, list):
        raise NetworkDataError(
            reason_code="network_data_invalid",
            message="Network data payload has no element list.",
        )
    nodes: dict[int, tuple[float, float]] = {}
    ways: list[NetworkWay] = []
    for element in elements:
        if not isinstance(element, dict):
            continue
        kind = element.get("type")
        if kind == "node":
            parsed = _parse_node(element)
            if parsed is not None:
                node_id, lat, lon = parsed
                nodes[node_id] = (lat, lon)
        elif kind == "way":
            way = _parse_way(element)
            if way is not None:
                ways.append(way)
    return nodes, ways


class OverpassClient:
    def __init__(self, *, base_url: str | None = None, timeout_s: float | None = None) -> None:
        self.base_url = base_url or settings.overpass_url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s or settings.http_request_timeout_s, connect=10.0),
            headers={"accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_network(
        self,
        bbox: tuple[float, float, float, float],
        *,
        max_retries: int | None = None,
    ) -> tuple[dict[int, tuple[float, float]], list[NetworkWay]]:
        query = overpass_query(bbox)
        retries = max(1, int(max_retries or settings.http_max_retries))
        last_err: Exception | None = None

        for attempt in range(retries):
            try:
                resp = await self._client.post(self.base_url, data={"data": query})
                if resp.status_code in _RETRYABLE_STATUS:
                    last_err = httpx.HTTPStatusError(
                        f"Overpass HTTP {resp.status_code}", request=resp.request, response=resp
                    )
                else:
                    resp.raise_for_status()
                    nodes, ways = parse_overpass_elements(resp.json())
                    log_event(
                        "network_data_fetched",
                        bbox=list(bbox),
                        nodes=len(nodes),
                        ways=len(ways),
                        attempts=attempt + 1,
                    )
                    return nodes, ways
            except (httpx.TimeoutException, httpx.NetworkError, httpx.TransportError) as e:
                last_err = e
            except httpx.HTTPStatusError as e:
                raise NetworkDataError(
                    reason_code="network_fetch_failed",
                    message=f"Fetching network data failed: {e}",
                    details={"status_code": e.response.status_code},
                ) from e
            except NetworkDataError:
                raise
            except ValueError as e:
                # resp.json() on a non-JSON body
                raise NetworkDataError(
                    reason_code="network_data_invalid",
                    message="Network data response was not valid JSON.",
                ) from e

            if attempt < retries - 1:
                await asyncio.sleep(min(0.5 * (2**attempt), 4.0))

        detail = f"{type(last_err).__name__}: {last_err}" if last_err is not None else "unknown error"
        raise NetworkDataError(
            reason_code="network_fetch_failed",
            message=f"Fetching network data failed after {retries} attempts: {detail}",
        )
