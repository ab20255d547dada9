"""Fixtures for E2E reconstruction tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from polyrecon.core.model import PointCloud
from polyrecon.utils.io import write_json_cloud, write_vg


@pytest.fixture
def box_vg(tmp_path: Path, box_cloud: PointCloud) -> Path:
    path = tmp_path / "box.vg"
    write_vg(box_cloud, path)
    return path


@pytest.fixture
def cube_json(tmp_path: Path, cube_cloud: PointCloud) -> Path:
    path = tmp_path / "cube.json"
    write_json_cloud(cube_cloud, path)
    return path


@pytest.fixture
def walls_vg(tmp_path: Path, box_factory) -> Path:
    """Two perpendicular walls: nothing closed can be built from them."""
    path = tmp_path / "walls.vg"
    write_vg(box_factory(faces=(0, 2)), path)
    return path
