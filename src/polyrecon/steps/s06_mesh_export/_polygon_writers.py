"""Plain-text polygon writers (.obj, .off); polygons are written unsplit."""

from __future__ import annotations

from typing import TextIO

from polyrecon.core.model import ResultMesh


def _polygons(mesh: ResultMesh, triangulate: bool) -> list[list[int]]:
    if triangulate:
        return [list(map(int, tri)) for tri in mesh.triangles()]
    return mesh.faces


def write_obj(mesh: ResultMesh, f: TextIO, precision: int = 9, triangulate: bool = False) -> int:
    """Wavefront OBJ with one ``g plane_<id>`` group per supporting plane. Returns face count."""
    f.write(f"# {len(mesh.vertices)} vertices, {mesh.num_faces} faces\n")
    for x, y, z in mesh.vertices:
        f.write(f"v {x:.{precision}g} {y:.{precision}g} {z:.{precision}g}\n")

    polygons = _polygons(mesh, triangulate)
    plane_ids = mesh.face_plane_ids
    if triangulate:
        plane_ids = [
            pid for poly, pid in zip(mesh.faces, mesh.face_plane_ids) for _ in range(len(poly) - 2)
        ]
    current = None
    for poly, pid in zip(polygons, plane_ids):
        if pid != current:
            f.write(f"g plane_{pid}\n")
            current = pid
        f.write("f " + " ".join(str(v + 1) for v in poly) + "\n")
    return len(polygons)


def write_off(mesh: ResultMesh, f: TextIO, precision: int = 9, triangulate: bool = False) -> int:
    """Object File Format. Returns face count."""
    polygons = _polygons(mesh, triangulate)
    f.write("OFF\n")
    f.write(f"{len(mesh.vertices)} {len(polygons)} 0\n")
    for x, y, z in mesh.vertices:
        f.write(f"{x:.{precision}g} {y:.{precision}g} {z:.{precision}g}\n")
    for poly in polygons:
        f.write(f"{len(poly)} " + " ".join(str(v) for v in poly) + "\n")
    return len(polygons)
