from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .geo import search_bbox
from .logging_utils import log_event
from .models import LatLng, WalkRequest, WalkResponse, walk_option_from_route
from .network_data import OverpassClient
from .postcodes import PostcodeClient
from .settings import settings
from .walk_errors import WalkConfigError, WalkRoutingError, normalize_reason_code
from .walk_planner import plan_walks_from_network


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.overpass = OverpassClient()
    app.state.postcodes = PostcodeClient()
    yield
    await app.state.overpass.aclose()
    await app.state.postcodes.aclose()


app = FastAPI(title="Walk Route Generator", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def overpass_client(request: Request) -> OverpassClient:
    client: OverpassClient | None = getattr(request.app.state, "overpass", None)  # type: ignore[attr-defined]
    if client is None:
        raise HTTPException(status_code=503, detail="Network data client not initialised")
    return client


def postcode_client(request: Request) -> PostcodeClient:
    client: PostcodeClient | None = getattr(request.app.state, "postcodes", None)  # type: ignore[attr-defined]
    if client is None:
        raise HTTPException(status_code=503, detail="Postcode client not initialised")
    return client


OverpassDep = Annotated[OverpassClient, Depends(overpass_client)]
PostcodeDep = Annotated[PostcodeClient, Depends(postcode_client)]


def _http_error(e: WalkRoutingError) -> HTTPException:
    reason_code = normalize_reason_code(e.reason_code)
    if isinstance(e, WalkConfigError):
        status_code = 400
    elif reason_code == "network_fetch_failed":
        status_code = 503
    else:
        status_code = 422
    return HTTPException(
        status_code=status_code,
        detail={"reason_code": reason_code, "message": e.message},
    )


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Backend is running. Visit /docs for the API UI.", "docs": "/docs"}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/walks", response_model=WalkResponse)
async def generate_walks(req: WalkRequest, overpass: OverpassDep, postcodes: PostcodeDep) -> WalkResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    distance_m = req.distance_km * 1000.0

    try:
        if req.start is not None:
            start_lat, start_lon, postcode = req.start.lat, req.start.lon, req.postcode
        else:
            location = await postcodes.lookup(req.postcode or "")
            start_lat, start_lon, postcode = location.lat, location.lon, location.postcode

        bbox = search_bbox(
            start_lat,
            start_lon,
            distance_m,
            buffer_factor=settings.search_bbox_buffer_factor,
        )
        nodes, ways = await overpass.fetch_network(bbox)
        t_fetch = time.perf_counter()

        # The searches are CPU bound; keep the event loop responsive.
        plan = await asyncio.to_thread(
            plan_walks_from_network,
            nodes,
            ways,
            start_lat=start_lat,
            start_lon=start_lon,
            distance_m=distance_m,
            walk_type=req.walk_type,
            max_routes=req.max_routes,
            target_bearing_deg=req.target_bearing_deg,
        )
    except WalkRoutingError as e:
        log_event(
            "walk_request_failed",
            request_id=request_id,
            reason_code=normalize_reason_code(e.reason_code),
            error_message=e.message,
            duration_ms=round((time.perf_counter() - t0) * 1000, 2),
        )
        raise _http_error(e) from e

    options = [walk_option_from_route(route, option_id=f"walk_{i}") for i, route in enumerate(plan.routes)]

    log_event(
        "walk_request",
        request_id=request_id,
        walk_type=req.walk_type,
        distance_m=distance_m,
        start={"lat": start_lat, "lon": start_lon},
        postcode=postcode,
        cost_model=plan.cost_model_name,
        network_nodes=len(nodes),
        network_ways=len(ways),
        candidate_count=plan.candidate_count,
        route_count=len(options),
        fetch_ms=round((t_fetch - t0) * 1000, 2),
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )

    return WalkResponse(
        start=LatLng(lat=start_lat, lon=start_lon),
        postcode=postcode,
        walk_type=plan.walk_type,
        cost_model=plan.cost_model_name,
        routes=options,
        warnings=list(plan.warnings),
        diagnostics={
            "start_node": plan.start_node,
            "snap_distance_m": round(plan.snap_distance_m, 1),
            "candidate_count": plan.candidate_count,
            "network_nodes": len(nodes),
            "network_ways": len(ways),
        },
    )


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
