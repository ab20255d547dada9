"""Per-plane line arrangement.

A supporting plane is clipped to the enlarged bounding box and then split by
the intersection line of every other non-parallel plane. Cells are convex
polygons in the plane's 2D frame. Every cell vertex carries the ids of the two
cutting planes that define it, so the same 3D vertex is recognised from every
plane that contains it.

Cutting-plane ids: supporting planes use their own index, the six bounding
box faces use ``num_planes + k``, and the initial square uses negative ids.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from polyrecon.utils.geometry import plane_basis, plane_origin

logger = logging.getLogger(__name__)


@dataclass
class Cell:
    points: np.ndarray  # (k, 2) counter-clockwise
    keys: list[frozenset[int]]  # cutting planes through each vertex
    lines: list[int]  # cutting plane of the edge leaving each vertex


def line_in_plane(
    normal: np.ndarray, d: float, cutter: np.ndarray,
) -> np.ndarray | None:
    """Trace of ``cutter`` (a, b, c, d) in the 2D frame of plane (normal, d).

    Returns (alpha, beta, gamma) with unit (alpha, beta), so the value at a
    2D point is its signed in-plane distance to the line; None when parallel.
    """
    u, v = plane_basis(normal)
    origin = plane_origin(normal, d)
    n_c = cutter[:3]
    alpha = float(np.dot(n_c, u))
    beta = float(np.dot(n_c, v))
    gamma = float(np.dot(n_c, origin) + cutter[3])
    length = np.hypot(alpha, beta)
    if length < 1e-12:
        return None
    return np.array([alpha, beta, gamma]) / length


def _assemble(entries: list[tuple], lines: list[int], line_id: int) -> Cell | None:
    if len(entries) < 3:
        return None
    out_lines = []
    m = len(entries)
    for a in range(m):
        b = (a + 1) % m
        if entries[a][3] and entries[b][3]:
            out_lines.append(line_id)
        else:
            out_lines.append(lines[entries[a][2]])
    return Cell(
        points=np.array([e[0] for e in entries]),
        keys=[e[1] for e in entries],
        lines=out_lines,
    )


def split_cell(
    cell: Cell, coef: np.ndarray, line_id: int, eps: float,
) -> tuple[Cell | None, Cell | None]:
    """Split a convex cell by a line. Returns (positive side, negative side).

    Vertices within ``eps`` of the line belong to both sides; a cell that
    only touches the line is returned whole on its side.
    """
    s = cell.points @ coef[:2] + coef[2]
    if (s >= -eps).all():
        return cell, None
    if (s <= eps).all():
        return None, cell

    pos: list[tuple] = []
    neg: list[tuple] = []
    n = len(s)
    for k in range(n):
        k2 = (k + 1) % n
        sk, sk2 = s[k], s[k2]
        on = abs(sk) <= eps
        entry = (cell.points[k], cell.keys[k], k, on)
        if sk >= -eps:
            pos.append(entry)
        if sk <= eps:
            neg.append(entry)
        if (sk > eps and sk2 < -eps) or (sk < -eps and sk2 > eps):
            t = sk / (sk - sk2)
            p = cell.points[k] + t * (cell.points[k2] - cell.points[k])
            crossing = (p, frozenset((cell.lines[k], line_id)), k, True)
            pos.append(crossing)
            neg.append(crossing)

    return _assemble(pos, cell.lines, line_id), _assemble(neg, cell.lines, line_id)


def clip_cell(cell: Cell, coef: np.ndarray, line_id: int, eps: float) -> Cell | None:
    """Keep the part of ``cell`` on the non-positive side of the line."""
    _, inside = split_cell(cell, coef, line_id, eps)
    return inside


def domain_cell(
    normal: np.ndarray,
    d: float,
    box: np.ndarray,
    box_ids: list[int],
    center: np.ndarray,
    half_extent: float,
    eps: float,
) -> Cell | None:
    """Plane ∩ box as a labelled convex cell (None if they do not meet)."""
    c2 = np.array([
        np.dot(center - plane_origin(normal, d), axis) for axis in plane_basis(normal)
    ])
    r = 4.0 * half_extent
    square = np.array([[-r, -r], [r, -r], [r, r], [-r, r]]) + c2
    cell = Cell(
        points=square,
        keys=[frozenset((-4, -1)), frozenset((-1, -2)), frozenset((-2, -3)), frozenset((-3, -4))],
        lines=[-1, -2, -3, -4],
    )
    for row, bid in zip(box, box_ids):
        coef = line_in_plane(normal, d, row)
        if coef is None:
            # Parallel to this box face: either fully inside or fully outside
            if float(np.dot(row[:3], plane_origin(normal, d)) + row[3]) > eps:
                return None
            continue
        cell = clip_cell(cell, coef, bid, eps)
        if cell is None:
            return None
    return cell


def build_plane_arrangement(
    plane_id: int,
    planes: np.ndarray,
    box: np.ndarray,
    center: np.ndarray,
    half_extent: float,
    parallel_cos: float,
    eps: float,
) -> list[Cell]:
    """All arrangement cells of one supporting plane inside the box.

    ``planes`` holds every supporting plane as rows (a, b, c, d).
    """
    num_planes = len(planes)
    normal = planes[plane_id, :3]
    d = float(planes[plane_id, 3])
    box_ids = [num_planes + k for k in range(len(box))]

    domain = domain_cell(normal, d, box, box_ids, center, half_extent, eps)
    if domain is None:
        logger.warning(f"Plane {plane_id} does not cross the bounding box")
        return []

    cells = [domain]
    for other in range(num_planes):
        if other == plane_id:
            continue
        if abs(float(np.dot(planes[other, :3], normal))) >= parallel_cos:
            continue
        coef = line_in_plane(normal, d, planes[other])
        if coef is None:
            continue
        next_cells = []
        for cell in cells:
            pos, neg = split_cell(cell, coef, other, eps)
            if pos is not None:
                next_cells.append(pos)
            if neg is not None:
                next_cells.append(neg)
        cells = next_cells

    logger.debug(f"Plane {plane_id}: {len(cells)} arrangement cells")
    return cells
