"""Step 04: Adjacency constraint extraction.

Derives, from the candidate mesh topology alone, the combinatorial structure
the face selection must respect: which faces share each edge, which faces sit
on the open boundary of the arrangement, and which pairs of faces cut through
each other and therefore cannot both be selected.
"""

from __future__ import annotations

import logging
from typing import ClassVar

import numpy as np

from polyrecon.core.errors import GeometryError
from polyrecon.core.model import AdjacencyConstraints, CandidateMesh
from polyrecon.core.step_base import BaseStep
from polyrecon.utils.parallel import parallel_map
from ._intersections import candidate_pairs, faces_intersect
from .config import AdjacencyConfig
from .contracts import AdjacencyInput, AdjacencyOutput

logger = logging.getLogger(__name__)


def build_adjacency(
    mesh: CandidateMesh,
    cfg: AdjacencyConfig,
    max_workers: int | None = None,
) -> AdjacencyConstraints:
    edge_fans = {e.id: e.faces for e in mesh.edges if len(e.faces) >= 2}
    boundary_faces = frozenset(
        fid for e in mesh.edges if len(e.faces) == 1 for fid in e.faces
    )

    vertex_fans: dict[int, list[int]] = {}
    for f in mesh.faces:
        for v in f.vertex_ids:
            vertex_fans.setdefault(v, []).append(f.id)

    exclusions: list[tuple[int, int]] = []
    if cfg.detect_intersections:
        tol = cfg.tolerance_ratio * mesh.bbox_diagonal
        parallel_cos = float(np.cos(np.radians(cfg.parallel_angle_deg)))
        pairs = candidate_pairs(mesh, tol)
        hits = parallel_map(
            lambda ab: faces_intersect(mesh, ab[0], ab[1], tol, parallel_cos),
            pairs,
            max_workers,
        )
        exclusions = [pair for pair, hit in zip(pairs, hits) if hit]
        logger.info(f"Intersection tests: {len(pairs)} candidate pairs, {len(exclusions)} intersecting")

    return AdjacencyConstraints(
        edge_fans=edge_fans,
        boundary_faces=boundary_faces,
        exclusions=exclusions,
        vertex_fans={v: tuple(fs) for v, fs in vertex_fans.items()},
    )


class AdjacencyStep(BaseStep[AdjacencyInput, AdjacencyOutput, AdjacencyConfig]):
    name: ClassVar[str] = "adjacency"
    input_type: ClassVar = AdjacencyInput
    output_type: ClassVar = AdjacencyOutput
    config_type: ClassVar = AdjacencyConfig
    failure_type: ClassVar = GeometryError

    def validate_inputs(self, inputs: AdjacencyInput) -> bool:
        if not inputs.mesh.edges:
            logger.error("Candidate mesh has no edges")
            return False
        return True

    def run(self, inputs: AdjacencyInput) -> AdjacencyOutput:
        constraints = build_adjacency(inputs.mesh, self.config, self.max_workers)
        over_shared = len(constraints.over_shared_edges)
        logger.info(
            f"Adjacency: {len(constraints.edge_fans)} fan edges ({over_shared} over-shared), "
            f"{len(constraints.boundary_faces)} boundary faces, "
            f"{len(constraints.exclusions)} exclusions"
        )
        return AdjacencyOutput(
            mesh=inputs.mesh,
            constraints=constraints,
            num_fan_edges=len(constraints.edge_fans),
            num_over_shared=over_shared,
            num_exclusions=len(constraints.exclusions),
        )
