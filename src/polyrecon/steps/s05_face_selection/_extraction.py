"""Turn a 0/1 solution into an oriented polygon mesh."""

from __future__ import annotations

import logging
from collections import deque

import numpy as np

from polyrecon.core.errors import GeometryError
from polyrecon.core.model import AdjacencyConstraints, CandidateMesh, ResultMesh

logger = logging.getLogger(__name__)


def _edge_direction(mesh: CandidateMesh, fid: int, k: int) -> int:
    """+1 when face ``fid`` walks its k-th edge from v0 to v1, -1 otherwise."""
    face = mesh.faces[fid]
    edge = mesh.edges[face.edge_ids[k]]
    return 1 if face.vertex_ids[k] == edge.v0 else -1


def check_edge_manifold(
    mesh: CandidateMesh, selected: list[int], closed: bool,
) -> dict[int, list[int]]:
    """Selected faces per edge; raises when an edge has too many or too few."""
    per_edge: dict[int, list[int]] = {}
    for fid in selected:
        for eid in mesh.faces[fid].edge_ids:
            per_edge.setdefault(eid, []).append(fid)

    over = [eid for eid, fs in per_edge.items() if len(fs) > 2]
    if over:
        raise GeometryError(f"{len(over)} edges carry more than two selected faces")
    if closed:
        open_edges = [eid for eid, fs in per_edge.items() if len(fs) == 1]
        if open_edges:
            raise GeometryError(f"{len(open_edges)} boundary edges in a closed-surface selection")
    return per_edge


def orient_faces(
    mesh: CandidateMesh, selected: list[int], per_edge: dict[int, list[int]],
) -> dict[int, bool]:
    """Flip flags making shared edges opposite, then outward per closed component."""
    flipped: dict[int, bool] = {}
    components: list[list[int]] = []
    inconsistent = 0

    for seed in selected:
        if seed in flipped:
            continue
        flipped[seed] = False
        component = [seed]
        queue = deque([seed])
        while queue:
            f = queue.popleft()
            face = mesh.faces[f]
            for k, eid in enumerate(face.edge_ids):
                for g in per_edge[eid]:
                    if g == f:
                        continue
                    kg = mesh.faces[g].edge_ids.index(eid)
                    same = _edge_direction(mesh, f, k) == _edge_direction(mesh, g, kg)
                    want = flipped[f] ^ same
                    if g not in flipped:
                        flipped[g] = want
                        component.append(g)
                        queue.append(g)
                    elif flipped[g] != want:
                        inconsistent += 1
        components.append(component)

    if inconsistent:
        logger.warning(f"{inconsistent} shared edges could not be oriented consistently")

    for component in components:
        closed = all(
            len(per_edge[eid]) == 2 for f in component for eid in mesh.faces[f].edge_ids
        )
        if not closed:
            continue
        volume = 0.0
        for f in component:
            pts = mesh.face_points(f)
            if flipped[f]:
                pts = pts[::-1]
            for k in range(1, len(pts) - 1):
                volume += float(np.dot(pts[0], np.cross(pts[k], pts[k + 1])))
        if volume < 0:
            for f in component:
                flipped[f] = not flipped[f]
    return flipped


def count_non_disk_vertices(
    mesh: CandidateMesh, selected: list[int], constraints: AdjacencyConstraints,
) -> int:
    """Vertices whose selected incident faces do not form a single edge-connected fan."""
    chosen = set(selected)
    used = {v for fid in selected for v in mesh.faces[fid].vertex_ids}
    bad = 0
    for v in used:
        fan = [f for f in constraints.vertex_fans.get(v, ()) if f in chosen]
        if len(fan) <= 1:
            continue
        # Faces around v are linked when they share an edge ending at v
        by_edge: dict[int, list[int]] = {}
        for f in fan:
            for eid in mesh.faces[f].edge_ids:
                e = mesh.edges[eid]
                if v in (e.v0, e.v1):
                    by_edge.setdefault(eid, []).append(f)
        seen = {fan[0]}
        stack = [fan[0]]
        while stack:
            f = stack.pop()
            for fs in by_edge.values():
                if f in fs:
                    for g in fs:
                        if g not in seen:
                            seen.add(g)
                            stack.append(g)
        if len(seen) != len(fan):
            bad += 1
    return bad


def extract_result(
    mesh: CandidateMesh,
    x: np.ndarray,
    constraints: AdjacencyConstraints,
    closed: bool,
) -> tuple[ResultMesh, list[int], int]:
    """Selected faces (x >= 0.5) as a compact, oriented ``ResultMesh``.

    Returns (result mesh, selected candidate face ids, non-disk vertex count).
    """
    selected = [f.id for f in mesh.faces if x[f.id] >= 0.5]
    if not selected:
        return ResultMesh(np.zeros((0, 3)), [], [], []), [], 0

    per_edge = check_edge_manifold(mesh, selected, closed)
    flipped = orient_faces(mesh, selected, per_edge)

    used = sorted({v for fid in selected for v in mesh.faces[fid].vertex_ids})
    remap = {old: new for new, old in enumerate(used)}
    polygons = []
    for fid in selected:
        loop = [remap[v] for v in mesh.faces[fid].vertex_ids]
        polygons.append(loop[::-1] if flipped[fid] else loop)

    non_disk = count_non_disk_vertices(mesh, selected, constraints)
    if non_disk:
        logger.warning(f"{non_disk} vertices have a non-disk neighbourhood in the result")

    result = ResultMesh(
        vertices=mesh.vertices[used].copy(),
        faces=polygons,
        face_plane_ids=[mesh.faces[fid].plane_id for fid in selected],
        source_face_ids=selected,
    )
    return result, selected, non_disk
