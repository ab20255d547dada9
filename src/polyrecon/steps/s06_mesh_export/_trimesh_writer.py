"""Triangle-mesh export (.ply, .stl, .glb) through trimesh."""

from __future__ import annotations

import colorsys
import logging
from pathlib import Path

import numpy as np
import trimesh

from polyrecon.core.model import ResultMesh

logger = logging.getLogger(__name__)


def plane_colors(plane_ids: list[int]) -> dict[int, np.ndarray]:
    """Stable, well-separated RGBA (uint8) colour per plane id."""
    colors = {}
    for pid in sorted(set(plane_ids)):
        hue = (pid * 0.618033988749895) % 1.0
        r, g, b = colorsys.hsv_to_rgb(hue, 0.55, 0.95)
        colors[pid] = (np.array([r, g, b, 1.0]) * 255).astype(np.uint8)
    return colors


def to_trimesh(mesh: ResultMesh, color_by_plane: bool = True, y_up: bool = False) -> trimesh.Trimesh:
    triangles = mesh.triangles()
    verts = mesh.vertices.copy()
    if y_up:
        # Z-up -> Y-up: (x, y, z) -> (x, z, -y)
        verts = np.column_stack([verts[:, 0], verts[:, 2], -verts[:, 1]])

    face_colors = None
    if color_by_plane and mesh.num_faces:
        palette = plane_colors(mesh.face_plane_ids)
        face_colors = np.array([
            palette[pid]
            for poly, pid in zip(mesh.faces, mesh.face_plane_ids)
            for _ in range(len(poly) - 2)
        ])

    return trimesh.Trimesh(
        vertices=verts,
        faces=triangles,
        face_colors=face_colors,
        process=False,
    )


def write_trimesh(
    mesh: ResultMesh,
    output_path: Path,
    file_type: str,
    color_by_plane: bool = True,
    y_up: bool = False,
) -> int:
    """Export ``mesh`` as ``file_type`` to ``output_path``. Returns the triangle count."""
    tm = to_trimesh(mesh, color_by_plane=color_by_plane and file_type != "stl", y_up=y_up)
    if file_type == "glb":
        scene = trimesh.Scene()
        scene.add_geometry(tm, node_name="reconstruction")
        scene.export(str(output_path), file_type="glb")
    else:
        tm.export(str(output_path), file_type=file_type)

    size_kb = Path(output_path).stat().st_size / 1024
    logger.info(f"{file_type.upper()} written: {len(tm.faces)} triangles ({size_kb:.1f} KB)")
    return len(tm.faces)
