"""Step 02: Candidate face generation.

Builds the over-complete candidate mesh: every refined plane is clipped to
the enlarged inlier bounding box and subdivided by its intersections with all
other planes. Arrangement cells become candidate faces; vertices and edges
that coincide across planes are shared in a single arena.
"""

from __future__ import annotations

import logging
from typing import ClassVar

import numpy as np
from scipy.spatial import cKDTree
from shapely.geometry import Polygon

from polyrecon.core.errors import GeometryError
from polyrecon.core.model import (
    CandidateEdge, CandidateFace, CandidateMesh, PlaneGroup, PointCloud,
)
from polyrecon.core.step_base import BaseStep
from polyrecon.utils.geometry import (
    box_planes, from_plane_2d, intersect_three_planes, min_interior_angle,
    polygon_area_3d, to_plane_2d,
)
from polyrecon.utils.parallel import parallel_map
from ._arrangement import Cell, build_plane_arrangement
from .config import CandidateGenerationConfig
from .contracts import CandidateGenerationInput, CandidateGenerationOutput

logger = logging.getLogger(__name__)


def _inlier_bbox(cloud: PointCloud, groups: list[PlaneGroup]) -> tuple[np.ndarray, np.ndarray]:
    inliers = cloud.points[np.concatenate([g.indices for g in groups])]
    return inliers.min(axis=0), inliers.max(axis=0)


def _place_vertices(
    arrangements: list[list[Cell]],
    all_planes: np.ndarray,
    tolerance: float,
) -> tuple[list[tuple[int, list[int]]], np.ndarray]:
    """Give every cell vertex a 3D position and a shared provisional id.

    Vertices are keyed by the (sorted) triple of planes meeting there and
    placed by solving that 3x3 system, so all planes agree on the position.
    """
    triple_ids: dict[tuple[int, ...], int] = {}
    positions: list[np.ndarray] = []
    loops: list[tuple[int, list[int]]] = []

    for pid, cells in enumerate(arrangements):
        normal = all_planes[pid, :3]
        d = float(all_planes[pid, 3])
        for cell in cells:
            loop = []
            for p2, key in zip(cell.points, cell.keys):
                triple = tuple(sorted({pid, *key}))
                vid = triple_ids.get(triple)
                if vid is None:
                    lifted = from_plane_2d(p2, normal, d)[0]
                    pos = None
                    if len(triple) == 3 and min(triple) >= 0:
                        pos = intersect_three_planes(all_planes[list(triple)])
                    if pos is None or np.linalg.norm(pos - lifted) > tolerance:
                        pos = lifted
                    vid = len(positions)
                    positions.append(pos)
                    triple_ids[triple] = vid
                loop.append(vid)
            loops.append((pid, loop))

    return loops, np.asarray(positions, dtype=float).reshape(-1, 3)


def _merge_coincident(positions: np.ndarray, tolerance: float) -> np.ndarray:
    """Union-Find over vertex pairs closer than ``tolerance``; returns canonical ids."""
    parent = np.arange(len(positions))

    def find(x: int) -> int:
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    if len(positions) > 1:
        for a, b in sorted(cKDTree(positions).query_pairs(tolerance)):
            ra, rb = find(a), find(b)
            if ra != rb:
                parent[max(ra, rb)] = min(ra, rb)
    return np.array([find(i) for i in range(len(positions))])


def _clean_loop(loop: list[int]) -> list[int] | None:
    """Drop repeated consecutive vertices; None if the loop is not a simple polygon."""
    cleaned: list[int] = []
    for v in loop:
        if not cleaned or cleaned[-1] != v:
            cleaned.append(v)
    while len(cleaned) > 1 and cleaned[0] == cleaned[-1]:
        cleaned.pop()
    if len(cleaned) < 3 or len(set(cleaned)) != len(cleaned):
        return None
    return cleaned


def generate_candidates(
    cloud: PointCloud,
    groups: list[PlaneGroup],
    cfg: CandidateGenerationConfig,
    max_workers: int | None = None,
) -> tuple[CandidateMesh, int]:
    """Build the candidate mesh. Returns (mesh, number of discarded cells)."""
    lo, hi = _inlier_bbox(cloud, groups)
    inlier_diag = float(np.linalg.norm(hi - lo))
    if inlier_diag <= 0:
        raise GeometryError("Planar groups have zero spatial extent")

    margin = max(cfg.bbox_margin_ratio, 1e-3) * inlier_diag
    bbox_min, bbox_max = lo - margin, hi + margin
    diag = float(np.linalg.norm(bbox_max - bbox_min))
    eps = 1e-9 * diag
    snap = cfg.snap_ratio * diag

    planes = np.array([[*g.normal, g.d] for g in groups], dtype=float)
    box = box_planes(bbox_min, bbox_max)
    center = 0.5 * (bbox_min + bbox_max)
    parallel_cos = float(np.cos(np.radians(cfg.parallel_angle_deg)))

    arrangements = parallel_map(
        lambda pid: build_plane_arrangement(
            pid, planes, box, center, 0.5 * diag, parallel_cos, eps,
        ),
        range(len(groups)),
        max_workers,
    )

    # --- Vertices: exact placement, then geometric merge ---
    all_planes = np.vstack([planes, box])
    loops, positions = _place_vertices(arrangements, all_planes, 1e-3 * diag)
    canonical = _merge_coincident(positions, snap)

    # --- Faces: clean loops and drop degenerate cells ---
    min_area = cfg.min_area_ratio * diag ** 2
    kept: list[tuple[int, list[int], float]] = []
    discarded = 0
    for pid, loop in loops:
        cleaned = _clean_loop([int(canonical[v]) for v in loop])
        if cleaned is None:
            discarded += 1
            continue
        poly3 = positions[cleaned]
        area = polygon_area_3d(poly3)
        if area < min_area:
            discarded += 1
            continue
        poly2 = to_plane_2d(poly3, groups[pid].normal, groups[pid].d)
        if min_interior_angle(poly2) < cfg.min_angle_deg or not Polygon(poly2).is_valid:
            discarded += 1
            continue
        kept.append((pid, cleaned, area))

    if len(kept) < cfg.min_candidate_faces:
        raise GeometryError(
            f"Only {len(kept)} non-degenerate candidate faces (need {cfg.min_candidate_faces}); "
            "check that the input has good planar segments"
        )

    # --- Compact vertex ids ---
    used = sorted({v for _, loop, _ in kept for v in loop})
    remap = {old: new for new, old in enumerate(used)}
    vertices = positions[used]

    # --- Edges shared by vertex pair ---
    edge_faces: dict[tuple[int, int], list[int]] = {}
    face_loops = []
    for fid, (_, loop, _) in enumerate(kept):
        loop = [remap[v] for v in loop]
        face_loops.append(loop)
        for k in range(len(loop)):
            a, b = loop[k], loop[(k + 1) % len(loop)]
            edge_faces.setdefault((min(a, b), max(a, b)), []).append(fid)

    edge_ids = {key: eid for eid, key in enumerate(sorted(edge_faces))}
    edges = [
        CandidateEdge(id=edge_ids[key], v0=key[0], v1=key[1], faces=tuple(edge_faces[key]))
        for key in sorted(edge_faces)
    ]
    faces = []
    for fid, ((pid, _, area), loop) in enumerate(zip(kept, face_loops)):
        eids = tuple(
            edge_ids[(min(loop[k], loop[(k + 1) % len(loop)]), max(loop[k], loop[(k + 1) % len(loop)]))]
            for k in range(len(loop))
        )
        faces.append(CandidateFace(
            id=fid, plane_id=pid, vertex_ids=tuple(loop), edge_ids=eids, area=area,
        ))

    mesh = CandidateMesh(
        vertices=vertices,
        edges=edges,
        faces=faces,
        planes=list(groups),
        bbox_min=bbox_min,
        bbox_max=bbox_max,
    )
    return mesh, discarded


class CandidateGenerationStep(
    BaseStep[CandidateGenerationInput, CandidateGenerationOutput, CandidateGenerationConfig]
):
    name: ClassVar[str] = "candidate_generation"
    input_type: ClassVar = CandidateGenerationInput
    output_type: ClassVar = CandidateGenerationOutput
    config_type: ClassVar = CandidateGenerationConfig
    failure_type: ClassVar = GeometryError

    def validate_inputs(self, inputs: CandidateGenerationInput) -> bool:
        if not inputs.groups:
            logger.error("No refined planes to intersect")
            return False
        return True

    def run(self, inputs: CandidateGenerationInput) -> CandidateGenerationOutput:
        mesh, discarded = generate_candidates(
            inputs.point_cloud, inputs.groups, self.config, self.max_workers,
        )

        per_plane = [len(mesh.faces_of_plane(g.id)) for g in inputs.groups]
        logger.info(
            f"Generated {mesh.num_faces} candidate faces, {len(mesh.edges)} edges, "
            f"{len(mesh.vertices)} vertices ({discarded} degenerate cells dropped)"
        )

        self.write_interim("candidates.json", {
            "bbox_min": mesh.bbox_min.tolist(),
            "bbox_max": mesh.bbox_max.tolist(),
            "faces_per_plane": per_plane,
            "num_edges": len(mesh.edges),
            "num_vertices": len(mesh.vertices),
        })

        return CandidateGenerationOutput(
            point_cloud=inputs.point_cloud,
            mesh=mesh,
            num_faces=mesh.num_faces,
            num_edges=len(mesh.edges),
            num_vertices=len(mesh.vertices),
            num_discarded=discarded,
        )
