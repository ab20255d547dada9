"""I/O utilities: vertex-group (.vg) text reader/writer, JSON point-cloud documents."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterator, Optional

import numpy as np
from pydantic import BaseModel, Field, ValidationError

from polyrecon.core.errors import InputError
from polyrecon.core.model import PointCloud, RawGroup

logger = logging.getLogger(__name__)


# ── Vertex-group (.vg) text format ───────────────────────────────────
#
#   num_points: N            followed by N lines "x y z"
#   num_colors: N            followed by N lines "r g b"
#   num_normals: N           followed by N lines "nx ny nz"
#   num_groups: M            followed by M group blocks:
#       group_type: 0
#       num_group_parameters: 4
#       group_parameters: a b c d
#       group_label: name
#       group_color: r g b
#       group_num_point: K
#       i0 i1 ... iK-1
#       num_children: C      followed by C nested group blocks

class _Tokens:
    def __init__(self, text: str, source: Path):
        self._it: Iterator[str] = iter(text.split())
        self.source = source

    def next(self) -> str:
        try:
            return next(self._it)
        except StopIteration:
            raise InputError(f"Unexpected end of file in {self.source}") from None

    def key(self, name: str) -> None:
        token = self.next()
        if token.rstrip(":") != name:
            raise InputError(f"Expected '{name}:' in {self.source}, got {token!r}")
        if not token.endswith(":"):
            # "name :" written with a space
            if self.next() != ":":
                raise InputError(f"Expected ':' after '{name}' in {self.source}")

    def integer(self) -> int:
        token = self.next()
        try:
            return int(token)
        except ValueError:
            raise InputError(f"Expected an integer in {self.source}, got {token!r}") from None

    def floats(self, count: int) -> np.ndarray:
        values = [self.next() for _ in range(count)]
        try:
            return np.array(values, dtype=np.float64)
        except ValueError:
            raise InputError(f"Malformed numeric data in {self.source}") from None


def _read_vg_group(tokens: _Tokens, num_points: int) -> RawGroup:
    tokens.key("group_type")
    tokens.integer()
    tokens.key("num_group_parameters")
    num_params = tokens.integer()
    tokens.key("group_parameters")
    params = tokens.floats(num_params)
    tokens.key("group_label")
    label = tokens.next()
    tokens.key("group_color")
    tokens.floats(3)
    tokens.key("group_num_point")
    count = tokens.integer()
    indices = np.array([tokens.integer() for _ in range(count)], dtype=np.int64)
    if len(indices) and (indices.min() < 0 or indices.max() >= num_points):
        raise InputError(f"Group '{label}' references points outside [0, {num_points})")

    tokens.key("num_children")
    for _ in range(tokens.integer()):
        _read_vg_group(tokens, num_points)  # nested groups carry no extra planes

    plane = tuple(float(v) for v in params[:4]) if num_params >= 4 else None
    return RawGroup(label=label, indices=indices, plane=plane)


def read_vg(path: Path) -> PointCloud:
    """Read a vertex-group text file."""
    path = Path(path)
    tokens = _Tokens(path.read_text(encoding="utf-8"), path)

    tokens.key("num_points")
    num_points = tokens.integer()
    points = tokens.floats(3 * num_points).reshape(-1, 3)

    tokens.key("num_colors")
    tokens.floats(3 * tokens.integer())

    tokens.key("num_normals")
    num_normals = tokens.integer()
    normals = tokens.floats(3 * num_normals).reshape(-1, 3)
    if num_normals not in (0, num_points):
        raise InputError(f"{path}: {num_normals} normals for {num_points} points")

    tokens.key("num_groups")
    groups = [_read_vg_group(tokens, num_points) for _ in range(tokens.integer())]

    logger.info(f"Loaded {num_points} points, {len(groups)} groups from {path.name}")
    return PointCloud(
        points=points,
        groups=groups,
        normals=normals if num_normals else None,
    )


def write_vg(cloud: PointCloud, path: Path) -> None:
    """Write a vertex-group text file (grey colours, no child groups)."""
    lines = [f"num_points: {cloud.num_points}"]
    lines += [f"{x:.9g} {y:.9g} {z:.9g}" for x, y, z in cloud.points]
    lines.append("num_colors: 0")
    normals = cloud.normals if cloud.normals is not None else np.zeros((0, 3))
    lines.append(f"num_normals: {len(normals)}")
    lines += [f"{x:.9g} {y:.9g} {z:.9g}" for x, y, z in normals]
    lines.append(f"num_groups: {len(cloud.groups)}")
    for g in cloud.groups:
        params = g.plane if g.plane is not None else ()
        lines += [
            "group_type: 0",
            f"num_group_parameters: {len(params)}",
            "group_parameters: " + " ".join(f"{v:.9g}" for v in params),
            f"group_label: {(g.label or 'unnamed').replace(' ', '_')}",
            "group_color: 0.5 0.5 0.5",
            f"group_num_point: {len(g.indices)}",
            " ".join(str(int(i)) for i in g.indices),
            "num_children: 0",
        ]
    Path(path).write_text("\n".join(lines) + "\n", encoding="utf-8")


# ── JSON document format ─────────────────────────────────────────────

class GroupDocument(BaseModel):
    label: str = Field("", description="Free-form group name")
    indices: list[int] = Field(..., description="Inlier point indices")
    plane: Optional[tuple[float, float, float, float]] = Field(
        None, description="Precomputed plane (a, b, c, d) with a*x + b*y + c*z + d = 0"
    )


class PointCloudDocument(BaseModel):
    """JSON point cloud with planar groups."""

    points: list[tuple[float, float, float]]
    normals: Optional[list[tuple[float, float, float]]] = None
    groups: list[GroupDocument] = Field(default_factory=list)

    def to_point_cloud(self) -> PointCloud:
        points = np.asarray(self.points, dtype=np.float64).reshape(-1, 3)
        normals = None
        if self.normals:
            normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
            if len(normals) != len(points):
                raise InputError(f"{len(normals)} normals for {len(points)} points")
        groups = []
        for k, g in enumerate(self.groups):
            indices = np.asarray(g.indices, dtype=np.int64)
            if len(indices) and (indices.min() < 0 or indices.max() >= len(points)):
                raise InputError(f"Group {k} references points outside [0, {len(points)})")
            groups.append(RawGroup(label=g.label or f"group_{k}", indices=indices, plane=g.plane))
        return PointCloud(points=points, groups=groups, normals=normals)

    @classmethod
    def from_point_cloud(cls, cloud: PointCloud) -> PointCloudDocument:
        return cls(
            points=cloud.points.tolist(),
            normals=None if cloud.normals is None else cloud.normals.tolist(),
            groups=[
                GroupDocument(label=g.label, indices=g.indices.tolist(), plane=g.plane)
                for g in cloud.groups
            ],
        )


def read_json_cloud(path: Path) -> PointCloud:
    path = Path(path)
    try:
        doc = PointCloudDocument.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError) as e:
        raise InputError(f"Invalid point cloud document {path}: {e}") from e
    cloud = doc.to_point_cloud()
    logger.info(f"Loaded {cloud.num_points} points, {len(cloud.groups)} groups from {path.name}")
    return cloud


def write_json_cloud(cloud: PointCloud, path: Path) -> None:
    Path(path).write_text(PointCloudDocument.from_point_cloud(cloud).model_dump_json(), encoding="utf-8")


READERS = {
    ".vg": read_vg,
    ".json": read_json_cloud,
}


def read_point_cloud(path: Path) -> PointCloud:
    """Read a point cloud with planar groups, dispatching on the file suffix."""
    path = Path(path)
    if not path.exists():
        raise InputError(f"Input file not found: {path}")
    reader = READERS.get(path.suffix.lower())
    if reader is None:
        raise InputError(
            f"Unsupported input format '{path.suffix}' (expected one of {sorted(READERS)})"
        )
    try:
        return reader(path)
    except OSError as e:
        raise InputError(f"Cannot read {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise InputError(f"{path} is not UTF-8 text: {e}") from e
