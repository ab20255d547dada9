"""In-memory geometry shared between pipeline steps.

The candidate mesh is an arena: vertices, edges and faces live in flat
containers and refer to each other by integer id only.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


@dataclass
class RawGroup:
    """A planar segment as supplied by the input file."""

    label: str
    indices: np.ndarray  # (K,) int64 point indices
    plane: tuple[float, float, float, float] | None = None


@dataclass
class PointCloud:
    points: np.ndarray  # (N, 3) float64
    groups: list[RawGroup] = field(default_factory=list)
    normals: np.ndarray | None = None  # (N, 3) float64

    @property
    def num_points(self) -> int:
        return len(self.points)

    def bbox(self) -> tuple[np.ndarray, np.ndarray]:
        return self.points.min(axis=0), self.points.max(axis=0)

    def scaled(self, factor: float) -> PointCloud:
        """Copy with all coordinates multiplied by ``factor``."""
        groups = []
        for g in self.groups:
            plane = None
            if g.plane is not None:
                a, b, c, d = g.plane
                plane = (a, b, c, d * factor)
            groups.append(RawGroup(label=g.label, indices=g.indices.copy(), plane=plane))
        normals = None if self.normals is None else self.normals.copy()
        return PointCloud(points=self.points * factor, groups=groups, normals=normals)


@dataclass(frozen=True)
class PlaneGroup:
    """A refined planar group: fitted plane ``normal . p + d = 0`` and its inliers."""

    id: int
    normal: np.ndarray  # (3,) unit
    d: float
    indices: np.ndarray  # (K,) int64, disjoint from every other group
    residual: float  # RMS point-to-plane distance
    max_distance: float
    label: str = ""

    @property
    def num_inliers(self) -> int:
        return len(self.indices)

    def signed_distance(self, pts: np.ndarray) -> np.ndarray:
        return pts @ self.normal + self.d


@dataclass(frozen=True)
class FaceConfidence:
    fitting: float
    coverage: float
    support_count: int = 0


@dataclass(frozen=True)
class CandidateEdge:
    id: int
    v0: int
    v1: int
    faces: tuple[int, ...]


@dataclass(frozen=True)
class CandidateFace:
    id: int
    plane_id: int
    vertex_ids: tuple[int, ...]  # ordered boundary loop
    edge_ids: tuple[int, ...]  # edge_ids[k] joins vertex_ids[k] -> vertex_ids[k+1]
    area: float
    confidence: FaceConfidence | None = None


@dataclass
class CandidateMesh:
    vertices: np.ndarray  # (V, 3)
    edges: list[CandidateEdge]
    faces: list[CandidateFace]
    planes: list[PlaneGroup]
    bbox_min: np.ndarray
    bbox_max: np.ndarray

    @property
    def num_faces(self) -> int:
        return len(self.faces)

    @property
    def bbox_diagonal(self) -> float:
        return float(np.linalg.norm(self.bbox_max - self.bbox_min))

    def face_points(self, face_id: int) -> np.ndarray:
        return self.vertices[list(self.faces[face_id].vertex_ids)]

    def faces_of_plane(self, plane_id: int) -> list[int]:
        return [f.id for f in self.faces if f.plane_id == plane_id]

    def has_confidences(self) -> bool:
        return all(f.confidence is not None for f in self.faces)


@dataclass
class AdjacencyConstraints:
    """Combinatorial constraints derived from the candidate mesh topology."""

    edge_fans: dict[int, tuple[int, ...]]  # edge id -> faces, every edge with >= 2 faces
    boundary_faces: frozenset[int]  # faces owning at least one single-face edge
    exclusions: list[tuple[int, int]]  # at most one of each pair may be selected
    vertex_fans: dict[int, tuple[int, ...]] = field(default_factory=dict)

    @property
    def over_shared_edges(self) -> dict[int, tuple[int, ...]]:
        return {e: fs for e, fs in self.edge_fans.items() if len(fs) > 2}


@dataclass
class ResultMesh:
    vertices: np.ndarray  # (K, 3)
    faces: list[list[int]]  # oriented polygons, indices into ``vertices``
    face_plane_ids: list[int]
    source_face_ids: list[int]

    @property
    def num_faces(self) -> int:
        return len(self.faces)

    def triangles(self) -> np.ndarray:
        """Fan-triangulate every polygon (faces are convex)."""
        tris = [
            (poly[0], poly[k], poly[k + 1])
            for poly in self.faces
            for k in range(1, len(poly) - 1)
        ]
        return np.asarray(tris, dtype=np.int64).reshape(-1, 3)
