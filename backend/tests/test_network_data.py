from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import httpx
import pytest

import walk_router.network_data as network_data
from walk_router.network_data import (
    NetworkDataError,
    OverpassClient,
    overpass_query,
    parse_overpass_elements,
)

BBOX = (-0.12, 51.49, -0.08, 51.51)


def _payload() -> dict[str, Any]:
    return {
        "elements": [
            {"type": "way", "id": 10, "nodes": [1, 2, 3], "tags": {"highway": "footway", "name": "Canal Path"}},
            {"type": "way", "id": 11, "nodes": "not-a-list"},
            {"type": "way", "id": 12, "nodes": [3, 4]},
            {"type": "node", "id": 1, "lat": 51.5, "lon": -0.1},
            {"type": "node", "id": 2, "lat": 51.5009, "lon": -0.1},
            {"type": "node", "id": 3, "lat": 51.5018, "lon": -0.1},
            {"type": "node", "id": 4, "lat": 151.0, "lon": -0.1},
            {"type": "node", "id": 5, "lon": -0.1},
            {"type": "relation", "id": 6},
            "junk",
        ]
    }


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> OverpassClient:
    client = OverpassClient(base_url="https://overpass.test/api/interpreter")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


async def _fetch(client: OverpassClient, **kwargs: Any) -> Any:
    try:
        return await client.fetch_network(BBOX, **kwargs)
    finally:
        await client.aclose()


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []

    async def _no_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr(network_data.asyncio, "sleep", _no_sleep)
    return recorded


def test_parse_overpass_elements_keeps_valid_nodes_and_ways() -> None:
    nodes, ways = parse_overpass_elements(_payload())

    assert nodes == {1: (51.5, -0.1), 2: (51.5009, -0.1), 3: (51.5018, -0.1)}
    assert [way.id for way in ways] == [10, 12]
    assert ways[0].node_ids == (1, 2, 3)
    assert ways[0].tags == {"highway": "footway", "name": "Canal Path"}
    assert ways[1].tags == {}


@pytest.mark.parametrize("payload", [{}, {"elements": "nope"}, [], None])
def test_parse_overpass_elements_rejects_malformed_payload(payload: Any) -> None:
    with pytest.raises(NetworkDataError) as exc:
        parse_overpass_elements(payload)
    assert exc.value.reason_code == "network_data_invalid"


def test_overpass_query_uses_south_west_north_east_order() -> None:
    query = overpass_query(BBOX, categories=("footway", "path"), timeout_s=25)

    assert query.startswith("[out:json][timeout:25];")
    assert '["highway"~"^(footway|path)$"]' in query
    assert "(51.49,-0.12,51.51,-0.08)" in query
    assert query.endswith("out body;>;out skel qt;")

    with pytest.raises(ValueError):
        overpass_query((1.0, 2.0, 3.0))  # type: ignore[arg-type]


def test_fetch_network_retries_transient_status(sleeps: list[float]) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if len(seen) == 1:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json=_payload())

    nodes, ways = asyncio.run(_fetch(_client(handler), max_retries=3))

    assert len(seen) == 2
    assert seen[0].method == "POST"
    assert seen[0].content.startswith(b"data=")
    assert sleeps == [0.5]
    assert set(nodes) == {1, 2, 3}
    assert len(ways) == 2


def test_fetch_network_does_not_retry_client_errors(sleeps: list[float]) -> None:
    calls = 0

    def handler(_request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(400, text="bad query")

    with pytest.raises(NetworkDataError) as exc:
        asyncio.run(_fetch(_client(handler), max_retries=3))

    assert exc.value.reason_code == "network_fetch_failed"
    assert exc.value.details == {"status_code": 400}
    assert calls == 1
    assert sleeps == []


def test_fetch_network_gives_up_after_transport_errors(sleeps: list[float]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkDataError) as exc:
        asyncio.run(_fetch(_client(handler), max_retries=2))

    assert exc.value.reason_code == "network_fetch_failed"
    assert "after 2 attempts" in exc.value.message
    assert sleeps == [0.5]


def test_fetch_network_rejects_invalid_body(sleeps: list[float]) -> None:
    def not_json(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>rate limited</html>")

    def no_elements(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"remark": "runtime error"})

    for handler in (not_json, no_elements):
        with pytest.raises(NetworkDataError) as exc:
            asyncio.run(_fetch(_client(handler)))
        assert exc.value.reason_code == "network_data_invalid"
    assert sleeps == []
