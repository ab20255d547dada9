"""Shared pytest fixtures for polyrecon tests."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from polyrecon.core.model import PointCloud, RawGroup


def make_box_cloud(
    size: tuple[float, float, float] = (1.0, 1.0, 1.0),
    points_per_face: int = 150,
    margin: float = 0.05,
    noise: float = 0.0,
    seed: int = 0,
    faces: tuple[int, ...] = (0, 1, 2, 3, 4, 5),
) -> PointCloud:
    """Points sampled on the faces of an axis-aligned box at the origin.

    Face k lies on axis k // 2, at 0 (even k) or at the box size (odd k).
    Samples keep ``margin`` (relative) away from the box edges so that no
    point belongs to two faces. Normals point outward.
    """
    rng = np.random.default_rng(seed)
    size = np.asarray(size, dtype=float)
    points, normals, groups = [], [], []
    offset = 0
    for k in faces:
        axis, high = divmod(k, 2)
        others = [a for a in range(3) if a != axis]
        pts = np.zeros((points_per_face, 3))
        for a in others:
            lo, hi = margin * size[a], (1 - margin) * size[a]
            pts[:, a] = rng.uniform(lo, hi, points_per_face)
        pts[:, axis] = size[axis] if high else 0.0
        if noise > 0:
            pts[:, axis] += rng.normal(0.0, noise, points_per_face)
        n = np.zeros(3)
        n[axis] = 1.0 if high else -1.0

        points.append(pts)
        normals.append(np.tile(n, (points_per_face, 1)))
        groups.append(RawGroup(
            label=f"face_{k}",
            indices=np.arange(offset, offset + points_per_face, dtype=np.int64),
        ))
        offset += points_per_face

    return PointCloud(
        points=np.vstack(points),
        groups=groups,
        normals=np.vstack(normals),
    )


# (axis, offset, outward sign, range along the first other axis, range along the second)
_L_PRISM_WALLS = [
    (0, 0.0, -1.0, (0.0, 2.0), (0.0, 1.0)),
    (0, 1.0, 1.0, (1.0, 2.0), (0.0, 1.0)),
    (0, 2.0, 1.0, (0.0, 1.0), (0.0, 1.0)),
    (1, 0.0, -1.0, (0.0, 2.0), (0.0, 1.0)),
    (1, 1.0, 1.0, (1.0, 2.0), (0.0, 1.0)),
    (1, 2.0, 1.0, (0.0, 1.0), (0.0, 1.0)),
]


def make_l_prism_cloud(points_per_area: int = 120, margin: float = 0.05, seed: int = 3) -> PointCloud:
    """Points on an L-shaped prism: ([0,2]x[0,1] | [0,1]x[0,2]) x [0,1].

    The prism is not convex: the walls x = 1 and y = 1 meet at a reflex edge.
    Samples keep ``margin`` (absolute) away from the face edges.
    """
    rng = np.random.default_rng(seed)
    points, normals, groups = [], [], []
    offset = 0

    def add(label: str, pts: np.ndarray, normal: np.ndarray) -> None:
        nonlocal offset
        points.append(pts)
        normals.append(np.tile(normal, (len(pts), 1)))
        groups.append(RawGroup(label=label, indices=np.arange(offset, offset + len(pts), dtype=np.int64)))
        offset += len(pts)

    for axis, value, sign, (a0, a1), (b0, b1) in _L_PRISM_WALLS:
        others = [a for a in range(3) if a != axis]
        n_pts = int(points_per_area * (a1 - a0) * (b1 - b0))
        pts = np.zeros((n_pts, 3))
        pts[:, axis] = value
        pts[:, others[0]] = rng.uniform(a0 + margin, a1 - margin, n_pts)
        pts[:, others[1]] = rng.uniform(b0 + margin, b1 - margin, n_pts)
        normal = np.zeros(3)
        normal[axis] = sign
        add(f"wall_{axis}_{value:g}", pts, normal)

    for z, sign in ((0.0, -1.0), (1.0, 1.0)):
        n_pts = points_per_area * 3
        xy = rng.uniform(margin, 2.0 - margin, (4 * n_pts, 2))
        in_notch = (xy[:, 0] > 1.0 - margin) & (xy[:, 1] > 1.0 - margin)
        xy = xy[~in_notch][:n_pts]
        pts = np.column_stack([xy, np.full(len(xy), z)])
        add(f"cap_{z:g}", pts, np.array([0.0, 0.0, sign]))

    return PointCloud(points=np.vstack(points), groups=groups, normals=np.vstack(normals))


@pytest.fixture
def cube_cloud() -> PointCloud:
    return make_box_cloud()


@pytest.fixture
def box_cloud() -> PointCloud:
    """Non-cubic, slightly noisy box."""
    return make_box_cloud(size=(2.0, 1.0, 0.5), points_per_face=200, noise=1e-4, seed=7)


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    """Temporary data root for interim diagnostics."""
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def cube_vg(tmp_path: Path, cube_cloud: PointCloud) -> Path:
    from polyrecon.utils.io import write_vg

    path = tmp_path / "cube.vg"
    write_vg(cube_cloud, path)
    return path


@pytest.fixture
def box_factory():
    """``make_box_cloud`` for tests that need a custom box."""
    return make_box_cloud


@pytest.fixture
def l_prism_cloud() -> PointCloud:
    """Non-convex L-shaped prism."""
    return make_l_prism_cloud()
