from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from .cost_model import CostModel
from .geo import haversine_m
from .logging_utils import log_event
from .walk_errors import WalkConfigError, WalkDataError

EdgeKey = tuple[int, int]


def edge_key(u: int, v: int) -> EdgeKey:
    """Direction-independent identity of the segment between u and v."""
    return (u, v) if u <= v else (v, u)


@dataclass(frozen=True)
class GraphNode:
    id: int
    lat: float
    lon: float


@dataclass(frozen=True)
class GraphEdge:
    from_node: int
    to_node: int
    length_m: float
    cost: float
    geometry: tuple[tuple[float, float], ...]  # (lon, lat) pairs
    way_id: int
    way_name: str
    category: str

    @property
    def key(self) -> EdgeKey:
        return edge_key(self.from_node, self.to_node)


@dataclass(frozen=True)
class NetworkWay:
    id: int
    node_ids: tuple[int, ...]
    tags: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WalkGraph:
    nodes: Mapping[int, GraphNode]
    adjacency: Mapping[int, tuple[GraphEdge, ...]]
    cost_model_name: str
    min_cost_factor: float = 1.0

    def __len__(self) -> int:
        return len(self.adjacency)

    @property
    def is_empty(self) -> bool:
        return not self.adjacency

    @property
    def edge_count(self) -> int:
        return sum(len(edges) for edges in self.adjacency.values())

    def edges_from(self, node_id: int) -> tuple[GraphEdge, ...]:
        return self.adjacency.get(node_id, ())

    def coords(self, node_id: int) -> tuple[float, float] | None:
        node = self.nodes.get(node_id)
        if node is None:
            return None
        return node.lat, node.lon


def _way_name(way: NetworkWay) -> str:
    tags = way.tags or {}
    return str(tags.get("name") or tags.get("ref") or f"Way {way.id}")


def _way_category(way: NetworkWay) -> str:
    tags = way.tags or {}
    return str(tags.get("highway") or "unknown").strip().lower() or "unknown"


def build_walk_graph(
    nodes: Mapping[int, tuple[float, float]],
    ways: Iterable[NetworkWay],
    cost_model: CostModel | None,
) -> WalkGraph:
    """Build the undirected walking graph from raw network nodes and ways.

    `nodes` maps node id to (lat, lon). Each consecutive node pair of a way
    yields a forward and a reverse edge sharing length, cost and way
    attribution. Pairs with a missing node or zero length are skipped.
    """
    if cost_model is None:
        raise WalkConfigError(
            reason_code="cost_model_missing",
            message="A cost model must be supplied to build the walk graph.",
        )
    adjacency_mut: dict[int, list[GraphEdge]] = {}
    graph_nodes: dict[int, GraphNode] = {}
    ways_seen = 0
    segments_kept = 0
    segments_skipped = 0
    min_factor = math.inf

    for way in ways:
        ways_seen += 1
        node_ids = tuple(way.node_ids)
        if len(node_ids) < 2:
            continue
        way_name = _way_name(way)
        category = _way_category(way)
        cost_factor = cost_model.factor_for(category)
        for idx in range(1, len(node_ids)):
            u = node_ids[idx - 1]
            v = node_ids[idx]
            u_coords = nodes.get(u)
            v_coords = nodes.get(v)
            if u_coords is None or v_coords is None:
                segments_skipped += 1
                continue
            lat1, lon1 = u_coords
            lat2, lon2 = v_coords
            length_m = haversine_m(lat1, lon1, lat2, lon2)
            if not length_m > 0.0:
                segments_skipped += 1
                continue
            cost = length_m * cost_factor
            geometry = ((float(lon1), float(lat1)), (float(lon2), float(lat2)))
            forward = GraphEdge(
                from_node=u,
                to_node=v,
                length_m=length_m,
                cost=cost,
                geometry=geometry,
                way_id=way.id,
                way_name=way_name,
                category=category,
            )
            reverse = GraphEdge(
                from_node=v,
                to_node=u,
                length_m=length_m,
                cost=cost,
                geometry=geometry[::-1],
                way_id=way.id,
                way_name=way_name,
                category=category,
            )
            adjacency_mut.setdefault(u, []).append(forward)
            adjacency_mut.setdefault(v, []).append(reverse)
            graph_nodes.setdefault(u, GraphNode(id=u, lat=float(lat1), lon=float(lon1)))
            graph_nodes.setdefault(v, GraphNode(id=v, lat=float(lat2), lon=float(lon2)))
            min_factor = min(min_factor, cost_factor)
            segments_kept += 1

    adjacency = {node_id: tuple(edges) for node_id, edges in adjacency_mut.items()}
    log_event(
        "walk_graph_built",
        cost_model=cost_model.name,
        ways_seen=ways_seen,
        graph_nodes=len(adjacency),
        segments_kept=segments_kept,
        segments_skipped=segments_skipped,
    )
    return WalkGraph(
        nodes=MappingProxyType(graph_nodes),
        adjacency=MappingProxyType(adjacency),
        cost_model_name=cost_model.name,
        min_cost_factor=float(min_factor) if math.isfinite(min_factor) else 1.0,
    )


def require_usable_graph(graph: WalkGraph) -> WalkGraph:
    if graph.is_empty:
        raise WalkDataError(
            reason_code="walk_graph_empty",
            message="No usable path network was found in this area.",
            details={"cost_model": graph.cost_model_name},
        )
    return graph


def nearest_node(graph: WalkGraph, *, lat: float, lon: float) -> tuple[int, float]:
    """Closest node with at least one outgoing edge, and its distance in metres."""
    best_id: int | None = None
    best_dist = math.inf
    for node_id in graph.adjacency:
        node = graph.nodes.get(node_id)
        if node is None:
            continue
        dist = haversine_m(lat, lon, node.lat, node.lon)
        if dist < best_dist:
            best_dist = dist
            best_id = node_id
    if best_id is None:
        raise WalkDataError(
            reason_code="no_eligible_node",
            message="Could not link the start location to the path network.",
            details={"lat": lat, "lon": lon},
        )
    return best_id, float(best_dist)
