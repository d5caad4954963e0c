from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .routing_graph import EdgeKey, GraphEdge


@dataclass(frozen=True)
class WalkRoute:
    path: tuple[int, ...]
    segments: tuple[GraphEdge, ...]
    length_m: float
    cost: float

    @classmethod
    def from_segments(cls, start_node: int, segments: Sequence[GraphEdge]) -> WalkRoute:
        """Route value from consecutive edges; metrics use actual edge costs."""
        path = [start_node]
        length_m = 0.0
        cost = 0.0
        for edge in segments:
            if edge.from_node != path[-1]:
                raise ValueError(f"segment {edge.from_node}->{edge.to_node} does not continue from {path[-1]}")
            path.append(edge.to_node)
            length_m += edge.length_m
            cost += edge.cost
        return cls(path=tuple(path), segments=tuple(segments), length_m=length_m, cost=cost)

    @property
    def start_node(self) -> int:
        return self.path[0]

    @property
    def end_node(self) -> int:
        return self.path[-1]

    def edge_keys(self) -> frozenset[EdgeKey]:
        return frozenset(edge.key for edge in self.segments)

    def concat(self, other: WalkRoute) -> WalkRoute:
        if other.start_node != self.end_node:
            raise ValueError(f"route ending at {self.end_node} cannot continue from {other.start_node}")
        return WalkRoute(
            path=self.path + other.path[1:],
            segments=self.segments + other.segments,
            length_m=self.length_m + other.length_m,
            cost=self.cost + other.cost,
        )

    def coordinates(self) -> list[list[float]]:
        coords: list[list[float]] = []
        for edge in self.segments:
            for lon, lat in edge.geometry:
                point = [float(lon), float(lat)]
                if coords and coords[-1] == point:
                    continue
                coords.append(point)
        return coords

    def way_names(self) -> list[str]:
        names: list[str] = []
        for edge in self.segments:
            if not names or names[-1] != edge.way_name:
                names.append(edge.way_name)
        return names
