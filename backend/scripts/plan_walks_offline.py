from __future__ import annotations

import argparse
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Sequence

from walk_router.network_data import parse_overpass_elements
from walk_router.walk_planner import WalkPlan, plan_walks_from_network


def _utc_now_compact() -> str:
    return datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Plan walks from a saved Overpass JSON extract and write GeoJSON."
    )
    parser.add_argument("--network-json", required=True)
    parser.add_argument("--lat", type=float, required=True)
    parser.add_argument("--lon", type=float, required=True)
    parser.add_argument("--distance-km", type=float, default=5.0)
    parser.add_argument("--walk-type", choices=("round_trip", "one_way"), default="round_trip")
    parser.add_argument("--max-routes", type=int, default=3)
    parser.add_argument("--bearing", type=float, default=None)
    parser.add_argument("--cost-model", action="append", default=None, dest="cost_models")
    parser.add_argument("--time-budget-s", type=float, default=None)
    parser.add_argument("--out-dir", default="out/walks")
    parser.add_argument("--output", default=None)
    return parser


def plan_to_geojson(plan: WalkPlan) -> dict[str, Any]:
    features = []
    for idx, route in enumerate(plan.routes):
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "LineString", "coordinates": route.coordinates()},
                "properties": {
                    "id": f"walk_{idx}",
                    "length_m": round(route.length_m, 1),
                    "cost": round(route.cost, 1),
                    "way_names": route.way_names(),
                },
            }
        )
    return {
        "type": "FeatureCollection",
        "features": features,
        "properties": {
            "walk_type": plan.walk_type,
            "cost_model": plan.cost_model_name,
            "start_node": plan.start_node,
            "distance_m": plan.distance_m,
            "candidate_count": plan.candidate_count,
            "warnings": list(plan.warnings),
        },
    }


def run_offline_plan(args: argparse.Namespace) -> dict[str, Any]:
    payload = json.loads(Path(args.network_json).read_text(encoding="utf-8"))
    nodes, ways = parse_overpass_elements(payload)
    plan = plan_walks_from_network(
        nodes,
        ways,
        start_lat=args.lat,
        start_lon=args.lon,
        distance_m=args.distance_km * 1000.0,
        walk_type=args.walk_type,
        cost_models=args.cost_models,
        max_routes=args.max_routes,
        target_bearing_deg=args.bearing,
        time_budget_s=args.time_budget_s,
    )
    collection = plan_to_geojson(plan)

    output = Path(args.output) if args.output else Path(args.out_dir) / f"walks_{_utc_now_compact()}.geojson"
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(collection, indent=2), encoding="utf-8")
    return {
        "output_file": str(output),
        "route_count": len(plan.routes),
        "cost_model": plan.cost_model_name,
        "warnings": list(plan.warnings),
    }


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    summary = run_offline_plan(args)
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
