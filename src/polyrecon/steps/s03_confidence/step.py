"""Step 03: Face confidence evaluation.

For every candidate face, measures how well its supporting group's inliers
back it up:
  fitting:  distance-weighted count of inliers inside the face, normalised
            by the total number of inliers
  coverage: fraction of the face area covered by the group footprint
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import ClassVar

import numpy as np
import shapely
from shapely.geometry import Polygon

from polyrecon.core.errors import GeometryError
from polyrecon.core.model import CandidateFace, CandidateMesh, FaceConfidence, PlaneGroup, PointCloud
from polyrecon.core.step_base import BaseStep
from polyrecon.utils.geometry import compute_footprint, to_plane_2d
from polyrecon.utils.parallel import parallel_map
from .config import ConfidenceConfig
from .contracts import ConfidenceInput, ConfidenceOutput

logger = logging.getLogger(__name__)


@dataclass
class _GroupSupport:
    coords: np.ndarray  # (K, 2) inliers in the plane frame
    distances: np.ndarray  # (K,) absolute point-to-plane distance
    footprint: object | None  # shapely geometry


def _group_support(cloud: PointCloud, group: PlaneGroup, cfg: ConfidenceConfig) -> _GroupSupport:
    pts = cloud.points[group.indices]
    coords = to_plane_2d(pts, group.normal, group.d)
    footprint = compute_footprint(coords, cfg.footprint_mode, cfg.concave_ratio)
    if footprint is not None:
        shapely.prepare(footprint)
    return _GroupSupport(
        coords=coords,
        distances=np.abs(group.signed_distance(pts)),
        footprint=footprint,
    )


def face_confidence(
    face: CandidateFace,
    mesh: CandidateMesh,
    support: _GroupSupport,
    epsilon: float,
    total_points: int,
) -> FaceConfidence:
    """Fitting and coverage scores of one face; (0, 0) without supporting points."""
    plane = mesh.planes[face.plane_id]
    polygon = Polygon(to_plane_2d(mesh.face_points(face.id), plane.normal, plane.d))
    if polygon.area <= 0 or len(support.coords) == 0:
        return FaceConfidence(fitting=0.0, coverage=0.0, support_count=0)

    inside = shapely.contains_xy(polygon, support.coords[:, 0], support.coords[:, 1])
    count = int(inside.sum())
    if count == 0:
        return FaceConfidence(fitting=0.0, coverage=0.0, support_count=0)

    if epsilon > 0:
        weights = np.clip(1.0 - support.distances[inside] / epsilon, 0.0, 1.0)
    else:
        weights = np.ones(count)
    fitting = float(weights.sum()) / max(total_points, 1)

    coverage = 0.0
    if support.footprint is not None:
        coverage = polygon.intersection(support.footprint).area / polygon.area
    return FaceConfidence(
        fitting=float(np.clip(fitting, 0.0, 1.0)),
        coverage=float(np.clip(coverage, 0.0, 1.0)),
        support_count=count,
    )


def evaluate_confidences(
    cloud: PointCloud,
    mesh: CandidateMesh,
    cfg: ConfidenceConfig,
    max_workers: int | None = None,
) -> tuple[CandidateMesh, int]:
    """Return a copy of ``mesh`` whose faces carry confidences, and the inlier total."""
    supports = parallel_map(
        lambda g: _group_support(cloud, g, cfg), mesh.planes, max_workers,
    )
    total_points = sum(g.num_inliers for g in mesh.planes)

    epsilon = float(np.mean([g.max_distance for g in mesh.planes]))
    if epsilon <= cfg.distance_floor_ratio * mesh.bbox_diagonal:
        epsilon = 0.0

    scores = parallel_map(
        lambda f: face_confidence(f, mesh, supports[f.plane_id], epsilon, total_points),
        mesh.faces,
        max_workers,
    )
    faces = [dataclasses.replace(f, confidence=c) for f, c in zip(mesh.faces, scores)]
    return dataclasses.replace(mesh, faces=faces), total_points


class ConfidenceStep(BaseStep[ConfidenceInput, ConfidenceOutput, ConfidenceConfig]):
    name: ClassVar[str] = "confidence"
    input_type: ClassVar = ConfidenceInput
    output_type: ClassVar = ConfidenceOutput
    config_type: ClassVar = ConfidenceConfig
    failure_type: ClassVar = GeometryError

    def validate_inputs(self, inputs: ConfidenceInput) -> bool:
        if inputs.mesh.num_faces == 0:
            logger.error("Candidate mesh has no faces")
            return False
        return True

    def run(self, inputs: ConfidenceInput) -> ConfidenceOutput:
        mesh, total_points = evaluate_confidences(
            inputs.point_cloud, inputs.mesh, self.config, self.max_workers,
        )

        fitting = np.array([f.confidence.fitting for f in mesh.faces])
        coverage = np.array([f.confidence.coverage for f in mesh.faces])
        supported = int(sum(1 for f in mesh.faces if f.confidence.support_count > 0))
        logger.info(
            f"Confidences: {supported}/{mesh.num_faces} faces supported, "
            f"mean fitting {fitting.mean():.4f}, mean coverage {coverage.mean():.3f}"
        )

        return ConfidenceOutput(
            mesh=mesh,
            total_points=total_points,
            num_supported=supported,
            mean_fitting=float(fitting.mean()),
            mean_coverage=float(coverage.mean()),
        )
