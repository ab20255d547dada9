"""Shared fixtures for step tests: a cube pushed through the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from polyrecon.core.model import AdjacencyConstraints, CandidateMesh, PlaneGroup, PointCloud


@dataclass
class Stages:
    cloud: PointCloud
    groups: list[PlaneGroup]
    mesh: CandidateMesh  # with confidences
    constraints: AdjacencyConstraints


def run_stages(cloud: PointCloud) -> Stages:
    from polyrecon.steps.s01_plane_refinement.config import PlaneRefinementConfig
    from polyrecon.steps.s01_plane_refinement.step import refine_planes
    from polyrecon.steps.s02_candidate_generation.config import CandidateGenerationConfig
    from polyrecon.steps.s02_candidate_generation.step import generate_candidates
    from polyrecon.steps.s03_confidence.config import ConfidenceConfig
    from polyrecon.steps.s03_confidence.step import evaluate_confidences
    from polyrecon.steps.s04_adjacency.config import AdjacencyConfig
    from polyrecon.steps.s04_adjacency.step import build_adjacency

    groups, _, _ = refine_planes(cloud, PlaneRefinementConfig())
    mesh, _ = generate_candidates(cloud, groups, CandidateGenerationConfig())
    mesh, _ = evaluate_confidences(cloud, mesh, ConfidenceConfig())
    constraints = build_adjacency(mesh, AdjacencyConfig())
    return Stages(cloud=cloud, groups=groups, mesh=mesh, constraints=constraints)


@pytest.fixture
def cube_stages(cube_cloud: PointCloud) -> Stages:
    return run_stages(cube_cloud)


@pytest.fixture
def stages_of():
    """Callable running s01..s04 on any point cloud."""
    return run_stages
