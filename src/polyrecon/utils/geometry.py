"""3D geometry utilities: plane fitting, plane frames, polygon measures."""

from __future__ import annotations

import logging

import numpy as np

logger = logging.getLogger(__name__)


def fit_plane(points: np.ndarray) -> tuple[np.ndarray, float, bool]:
    """Least-squares plane through ``points`` via SVD of the centred cloud.

    Returns (unit normal, d, determined). ``determined`` is False when the
    points are (nearly) collinear or coincident, so the normal is arbitrary.
    """
    centroid = points.mean(axis=0)
    centered = points - centroid
    _, s, Vt = np.linalg.svd(centered, full_matrices=False)
    normal = Vt[-1]  # smallest singular value = plane normal
    normal = normal / np.linalg.norm(normal)
    d = -float(np.dot(normal, centroid))
    determined = len(s) == 3 and s[0] > 1e-12 and s[1] > 1e-9 * s[0]
    return normal, d, bool(determined)


def plane_basis(normal: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Orthonormal in-plane axes (u, v) with u x v = normal."""
    n = normal / np.linalg.norm(normal)
    ref = np.array([1.0, 0.0, 0.0])
    if abs(np.dot(n, ref)) > 0.9:
        ref = np.array([0.0, 1.0, 0.0])
    u = np.cross(n, ref)
    u /= np.linalg.norm(u)
    v = np.cross(n, u)
    return u, v


def plane_origin(normal: np.ndarray, d: float) -> np.ndarray:
    """Point of the plane closest to the coordinate origin."""
    return -d * normal


def to_plane_2d(points: np.ndarray, normal: np.ndarray, d: float) -> np.ndarray:
    """Project 3D points into the plane's 2D frame."""
    u, v = plane_basis(normal)
    local = np.atleast_2d(points) - plane_origin(normal, d)
    return np.column_stack([local @ u, local @ v])


def from_plane_2d(coords: np.ndarray, normal: np.ndarray, d: float) -> np.ndarray:
    """Lift 2D plane-frame coordinates back to 3D."""
    u, v = plane_basis(normal)
    coords = np.atleast_2d(coords)
    return plane_origin(normal, d) + coords[:, 0:1] * u + coords[:, 1:2] * v


def intersect_three_planes(planes: np.ndarray) -> np.ndarray | None:
    """Common point of three planes given as rows (a, b, c, d); None if degenerate."""
    A = planes[:, :3]
    b = -planes[:, 3]
    if abs(np.linalg.det(A)) < 1e-12:
        return None
    return np.linalg.solve(A, b)


def polygon_area_3d(points: np.ndarray) -> float:
    """Area of a planar 3D polygon (Newell's method)."""
    if len(points) < 3:
        return 0.0
    nxt = np.roll(points, -1, axis=0)
    return 0.5 * float(np.linalg.norm(np.cross(points, nxt).sum(axis=0)))


def polygon_area_2d(points: np.ndarray) -> float:
    """Signed shoelace area; positive for counter-clockwise loops."""
    x, y = points[:, 0], points[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def min_interior_angle(points: np.ndarray) -> float:
    """Smallest interior angle (degrees) of a polygon loop."""
    prev = np.roll(points, 1, axis=0) - points
    nxt = np.roll(points, -1, axis=0) - points
    lp = np.linalg.norm(prev, axis=1)
    ln = np.linalg.norm(nxt, axis=1)
    if np.any(lp < 1e-15) or np.any(ln < 1e-15):
        return 0.0
    cos = np.einsum("ij,ij->i", prev, nxt) / (lp * ln)
    return float(np.degrees(np.arccos(np.clip(cos, -1.0, 1.0))).min())


def box_planes(bbox_min: np.ndarray, bbox_max: np.ndarray) -> np.ndarray:
    """The six faces of an axis-aligned box as outward planes (a, b, c, d)."""
    rows = []
    for axis in range(3):
        n = np.zeros(3)
        n[axis] = -1.0
        rows.append([*n, bbox_min[axis]])
        n = np.zeros(3)
        n[axis] = 1.0
        rows.append([*n, -bbox_max[axis]])
    return np.asarray(rows, dtype=float)


def compute_footprint(points_2d: np.ndarray, mode: str = "concave", ratio: float = 0.3):
    """Footprint polygon of projected inliers.

    ``mode="concave"`` uses shapely's concave hull (guarded against
    over-concavity: it must keep 30% of the convex hull area), ``"convex"``
    the convex hull. Returns a shapely geometry or None for degenerate input.
    """
    from shapely import concave_hull
    from shapely.geometry import MultiPoint

    if points_2d is None or len(points_2d) < 3:
        return None

    mp = MultiPoint(points_2d.tolist())
    convex = mp.convex_hull
    if convex.geom_type != "Polygon" or convex.is_empty:
        return None
    if mode == "convex":
        return convex

    hull = concave_hull(mp, ratio=ratio)
    if hull.is_valid and not hull.is_empty and hull.geom_type in ("Polygon", "MultiPolygon"):
        if hull.area >= convex.area * 0.3:
            return hull
    logger.debug("Concave footprint rejected; using convex hull")
    return convex
