"""Pairwise improper-intersection tests between candidate faces.

Two faces intersect improperly when they overlap along a segment (or an area,
for coincident planes) without merely meeting at a common boundary.
"""

from __future__ import annotations

import logging

import numpy as np
import shapely
from shapely.geometry import Polygon

from polyrecon.core.model import CandidateMesh
from polyrecon.utils.geometry import to_plane_2d

logger = logging.getLogger(__name__)


def candidate_pairs(mesh: CandidateMesh, tol: float) -> list[tuple[int, int]]:
    """Face pairs whose bounding boxes overlap, from different planes, not edge-adjacent.

    XY extents go through a shapely STRtree; the z extent is checked after.
    """
    if mesh.num_faces < 2:
        return []
    mins = np.array([mesh.face_points(f.id).min(axis=0) for f in mesh.faces]) - tol
    maxs = np.array([mesh.face_points(f.id).max(axis=0) for f in mesh.faces]) + tol
    boxes = shapely.box(mins[:, 0], mins[:, 1], maxs[:, 0], maxs[:, 1])
    tree = shapely.STRtree(boxes)
    left, right = tree.query(boxes)

    keep = left < right
    left, right = left[keep], right[keep]
    keep = (mins[left, 2] <= maxs[right, 2]) & (mins[right, 2] <= maxs[left, 2])
    left, right = left[keep], right[keep]

    plane_of = np.array([f.plane_id for f in mesh.faces])
    keep = plane_of[left] != plane_of[right]
    left, right = left[keep], right[keep]

    edge_sets = [set(f.edge_ids) for f in mesh.faces]
    return [
        (int(a), int(b))
        for a, b in zip(left, right)
        if not edge_sets[a] & edge_sets[b]
    ]


def _interval_on_line(
    pts: np.ndarray, s: np.ndarray, direction: np.ndarray, tol: float,
) -> tuple[float, float] | None:
    """Extent, along ``direction``, of a convex polygon's cut with the plane s = 0."""
    ts: list[float] = []
    n = len(pts)
    for k in range(n):
        k2 = (k + 1) % n
        if abs(s[k]) <= tol:
            ts.append(float(pts[k] @ direction))
        if (s[k] > tol and s[k2] < -tol) or (s[k] < -tol and s[k2] > tol):
            t = s[k] / (s[k] - s[k2])
            p = pts[k] + t * (pts[k2] - pts[k])
            ts.append(float(p @ direction))
    if not ts:
        return None
    return min(ts), max(ts)


def faces_intersect(
    mesh: CandidateMesh, a: int, b: int, tol: float, parallel_cos: float,
) -> bool:
    """True when faces ``a`` and ``b`` overlap beyond touching along boundaries."""
    fa, fb = mesh.faces[a], mesh.faces[b]
    pa, pb = mesh.planes[fa.plane_id], mesh.planes[fb.plane_id]
    pts_a, pts_b = mesh.face_points(a), mesh.face_points(b)

    if abs(float(np.dot(pa.normal, pb.normal))) >= parallel_cos:
        if np.abs(pb.signed_distance(pts_a)).max() > tol:
            return False
        poly_a = Polygon(to_plane_2d(pts_a, pa.normal, pa.d))
        poly_b = Polygon(to_plane_2d(pts_b, pa.normal, pa.d))
        return poly_a.intersection(poly_b).area > tol * mesh.bbox_diagonal

    sa = pb.signed_distance(pts_a)
    sb = pa.signed_distance(pts_b)
    straddle_a = sa.max() > tol and sa.min() < -tol
    straddle_b = sb.max() > tol and sb.min() < -tol
    if not (straddle_a or straddle_b):
        return False  # both end on the common line: touching at most

    direction = np.cross(pa.normal, pb.normal)
    direction /= np.linalg.norm(direction)
    ia = _interval_on_line(pts_a, sa, direction, tol)
    ib = _interval_on_line(pts_b, sb, direction, tol)
    if ia is None or ib is None:
        return False
    overlap = min(ia[1], ib[1]) - max(ia[0], ib[0])
    return overlap > tol
