"""Step 01: Plane refinement.

Fits a least-squares plane to every raw group, drops groups that are too
small or too noisy, merges near-coplanar adjacent groups, and makes the
surviving groups point-disjoint.
"""

from __future__ import annotations

import logging
from typing import ClassVar

import numpy as np
from scipy.spatial import cKDTree

from polyrecon.core.errors import InputError
from polyrecon.core.model import PlaneGroup, PointCloud, RawGroup
from polyrecon.core.step_base import BaseStep
from polyrecon.utils.geometry import fit_plane
from polyrecon.utils.parallel import parallel_map
from .config import PlaneRefinementConfig
from .contracts import PlaneRefinementInput, PlaneRefinementOutput

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-group fitting
# ---------------------------------------------------------------------------

def _orient_to_normals(
    normal: np.ndarray, d: float, point_normals: np.ndarray | None,
) -> tuple[np.ndarray, float]:
    """Flip the plane so it agrees with the mean of the supplied point normals."""
    if point_normals is None or len(point_normals) == 0:
        return normal, d
    if float(np.dot(point_normals.mean(axis=0), normal)) < 0:
        return -normal, -d
    return normal, d


def _fit_indices(
    cloud: PointCloud,
    indices: np.ndarray,
    fallback_plane: tuple[float, float, float, float] | None = None,
) -> dict | None:
    """Fit a plane to ``cloud.points[indices]``; None when it cannot be determined."""
    pts = cloud.points[indices]
    normal, d, determined = fit_plane(pts)
    if not determined:
        if fallback_plane is None:
            return None
        a, b, c, dd = fallback_plane
        length = float(np.linalg.norm([a, b, c]))
        if length < 1e-12:
            return None
        normal = np.array([a, b, c]) / length
        d = dd / length

    point_normals = None if cloud.normals is None else cloud.normals[indices]
    normal, d = _orient_to_normals(normal, d, point_normals)

    dist = np.abs(pts @ normal + d)
    return {
        "normal": normal,
        "d": float(d),
        "indices": indices,
        "residual": float(np.sqrt(np.mean(dist ** 2))),
        "max_distance": float(dist.max()),
    }


def _fit_raw_group(
    cloud: PointCloud,
    raw: RawGroup,
    cfg: PlaneRefinementConfig,
    diagonal: float,
) -> dict | None:
    indices = np.unique(np.asarray(raw.indices, dtype=np.int64))
    indices = indices[(indices >= 0) & (indices < cloud.num_points)]
    if len(indices) < cfg.min_inliers:
        logger.info(f"Dropping group '{raw.label}': {len(indices)} inliers < {cfg.min_inliers}")
        return None

    fallback = raw.plane if cfg.use_input_planes else None
    fitted = _fit_indices(cloud, indices, fallback)
    if fitted is None:
        logger.info(f"Dropping group '{raw.label}': plane is undetermined (collinear inliers)")
        return None
    if fitted["residual"] > cfg.max_residual_ratio * diagonal:
        logger.info(
            f"Dropping group '{raw.label}': residual {fitted['residual']:.4g} exceeds "
            f"{cfg.max_residual_ratio:.3g} x diagonal"
        )
        return None
    fitted["label"] = raw.label
    return fitted


# ---------------------------------------------------------------------------
# Coplanar merging
# ---------------------------------------------------------------------------

def _should_merge(
    gi: dict, gj: dict,
    cloud: PointCloud,
    trees: list[cKDTree],
    i: int, j: int,
    cos_thresh: float,
    dist_thresh: float,
    overlap_ratio: float,
    adjacency: float,
) -> bool:
    """Near-parallel normals, enough points near each other's plane, touching inliers."""
    if abs(float(np.dot(gi["normal"], gj["normal"]))) < cos_thresh:
        return False

    pts_i = cloud.points[gi["indices"]]
    pts_j = cloud.points[gj["indices"]]
    near_i = np.mean(np.abs(pts_i @ gj["normal"] + gj["d"]) <= dist_thresh)
    near_j = np.mean(np.abs(pts_j @ gi["normal"] + gi["d"]) <= dist_thresh)
    if max(near_i, near_j) < overlap_ratio:
        return False

    # Spatial adjacency: query the smaller set against the larger one's tree
    if len(pts_i) <= len(pts_j):
        dists, _ = trees[j].query(pts_i, k=1, distance_upper_bound=adjacency)
    else:
        dists, _ = trees[i].query(pts_j, k=1, distance_upper_bound=adjacency)
    return bool(np.isfinite(dists).any())


def _merge_coplanar_groups(
    groups: list[dict],
    cloud: PointCloud,
    cfg: PlaneRefinementConfig,
    diagonal: float,
    max_workers: int | None = None,
) -> tuple[list[dict], int]:
    """Merge near-coplanar adjacent groups with Union-Find, then refit.

    Returns (groups, number of groups absorbed).
    """
    n = len(groups)
    if n <= 1:
        return groups, 0

    cos_thresh = np.cos(np.radians(cfg.merge_angle_deg))
    dist_thresh = max(
        float(np.mean([g["max_distance"] for g in groups])),
        cfg.merge_distance_ratio * diagonal,
    )
    adjacency = max(cfg.adjacency_ratio * diagonal, 1e-12)
    max_residual = cfg.max_residual_ratio * diagonal
    trees = [cKDTree(cloud.points[g["indices"]]) for g in groups]

    pairs = [(i, j) for i in range(n) for j in range(i + 1, n)]
    decisions = parallel_map(
        lambda ij: _should_merge(
            groups[ij[0]], groups[ij[1]], cloud, trees, ij[0], ij[1],
            cos_thresh, dist_thresh, cfg.merge_overlap_ratio, adjacency,
        ),
        pairs,
        max_workers,
    )

    # Union-Find
    parent = list(range(n))

    def find(x: int) -> int:
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    def union(a: int, b: int) -> None:
        ra, rb = find(a), find(b)
        if ra != rb:
            parent[max(ra, rb)] = min(ra, rb)

    for (i, j), merge in zip(pairs, decisions):
        if merge:
            union(i, j)

    clusters: dict[int, list[int]] = {}
    for i in range(n):
        clusters.setdefault(find(i), []).append(i)

    result: list[dict] = []
    for root in sorted(clusters):
        members = clusters[root]
        if len(members) == 1:
            result.append(groups[root])
            continue

        indices = np.unique(np.concatenate([groups[k]["indices"] for k in members]))
        ref = max(members, key=lambda k: len(groups[k]["indices"]))
        merged = _fit_indices(cloud, indices)
        if merged is None:
            result.extend(groups[k] for k in members)
            continue
        if merged["residual"] > max_residual:
            logger.info(
                f"Not merging {[groups[k]['label'] for k in members]}: merged residual "
                f"{merged['residual']:.4g} exceeds {max_residual:.4g}"
            )
            result.extend(groups[k] for k in members)
            continue
        if np.dot(merged["normal"], groups[ref]["normal"]) < 0:
            merged["normal"] = -merged["normal"]
            merged["d"] = -merged["d"]
        merged["label"] = groups[ref]["label"]
        logger.info(
            f"Merged {len(members)} groups "
            f"(labels={[groups[k]['label'] for k in members]}, {len(indices)} total inliers)"
        )
        result.append(merged)

    return result, n - len(result)


# ---------------------------------------------------------------------------
# Disjointness
# ---------------------------------------------------------------------------

def _make_disjoint(groups: list[dict], cloud: PointCloud) -> tuple[list[dict], int]:
    """Give every point claimed by several groups to the nearest plane.

    Returns (groups with updated indices, number of reassigned claims).
    """
    if len(groups) <= 1:
        return groups, 0

    sizes = [len(g["indices"]) for g in groups]
    all_idx = np.concatenate([g["indices"] for g in groups])
    all_gid = np.repeat(np.arange(len(groups)), sizes)
    normals = np.array([g["normal"] for g in groups])
    ds = np.array([g["d"] for g in groups])
    dists = np.abs(np.einsum("ij,ij->i", cloud.points[all_idx], normals[all_gid]) + ds[all_gid])

    # Sort by point index, then distance; the first claim per point wins
    order = np.lexsort((dists, all_idx))
    uniq, first = np.unique(all_idx[order], return_index=True)
    winners = all_gid[order][first]
    dropped = len(all_idx) - len(uniq)
    if dropped == 0:
        return groups, 0

    result = []
    for gid, g in enumerate(groups):
        indices = uniq[winners == gid]
        if len(indices) == len(g["indices"]):
            result.append(g)
            continue
        refit = _fit_indices(cloud, indices) if len(indices) >= 3 else None
        if refit is None:
            refit = {**g, "indices": indices}
        else:
            if np.dot(refit["normal"], g["normal"]) < 0:
                refit["normal"] = -refit["normal"]
                refit["d"] = -refit["d"]
            refit["label"] = g["label"]
        result.append(refit)
    logger.info(f"Reassigned {dropped} shared points to their nearest plane")
    return result, dropped


# ---------------------------------------------------------------------------
# Step class
# ---------------------------------------------------------------------------

def refine_planes(
    cloud: PointCloud,
    cfg: PlaneRefinementConfig,
    max_workers: int | None = None,
) -> tuple[list[PlaneGroup], int, int]:
    """Refine raw groups into point-disjoint planes.

    Returns (groups, merged count, dropped count). Raises InputError when no
    group survives.
    """
    bmin, bmax = cloud.bbox()
    diagonal = float(np.linalg.norm(bmax - bmin))
    if diagonal <= 0:
        raise InputError("Point cloud has zero extent")

    fitted = parallel_map(
        lambda raw: _fit_raw_group(cloud, raw, cfg, diagonal),
        cloud.groups,
        max_workers,
    )
    groups = [g for g in fitted if g is not None]
    dropped = len(fitted) - len(groups)

    merged = 0
    if cfg.merge_planes and len(groups) > 1:
        before = len(groups)
        groups, merged = _merge_coplanar_groups(groups, cloud, cfg, diagonal, max_workers)
        logger.info(f"Coplanar merge: {before} → {len(groups)} groups")

    groups, _ = _make_disjoint(groups, cloud)
    max_residual = cfg.max_residual_ratio * diagonal
    survivors = []
    for g in groups:
        if len(g["indices"]) < cfg.min_inliers:
            logger.info(
                f"Dropping group '{g.get('label', '')}': {len(g['indices'])} inliers after reassignment"
            )
        elif g["residual"] > max_residual:
            logger.info(
                f"Dropping group '{g.get('label', '')}': residual {g['residual']:.4g} after reassignment "
                f"exceeds {cfg.max_residual_ratio:.3g} x diagonal"
            )
        else:
            survivors.append(g)
    dropped += len(groups) - len(survivors)

    if not survivors:
        raise InputError(
            "No usable planar groups after refinement "
            f"({len(cloud.groups)} input groups, all too small or too noisy)"
        )

    planes = [
        PlaneGroup(
            id=i,
            normal=g["normal"],
            d=g["d"],
            indices=g["indices"],
            residual=g["residual"],
            max_distance=g["max_distance"],
            label=g.get("label", ""),
        )
        for i, g in enumerate(survivors)
    ]
    return planes, merged, dropped


class PlaneRefinementStep(
    BaseStep[PlaneRefinementInput, PlaneRefinementOutput, PlaneRefinementConfig]
):
    name: ClassVar[str] = "plane_refinement"
    input_type: ClassVar = PlaneRefinementInput
    output_type: ClassVar = PlaneRefinementOutput
    config_type: ClassVar = PlaneRefinementConfig
    failure_type: ClassVar = InputError

    def validate_inputs(self, inputs: PlaneRefinementInput) -> bool:
        cloud = inputs.point_cloud
        if cloud.num_points == 0:
            logger.error("Point cloud is empty")
            return False
        if not cloud.groups:
            logger.error("Planar segments do not exist")
            return False
        return True

    def run(self, inputs: PlaneRefinementInput) -> PlaneRefinementOutput:
        cloud = inputs.point_cloud
        groups, merged, dropped = refine_planes(cloud, self.config, self.max_workers)

        for g in groups:
            logger.info(
                f"Plane {g.id}: {g.num_inliers} inliers, residual {g.residual:.4g}, "
                f"normal {np.round(g.normal, 3)}"
            )
        logger.info(
            f"Refined {len(cloud.groups)} groups → {len(groups)} planes "
            f"({merged} merged, {dropped} dropped)"
        )

        self.write_interim("planes.json", [
            {
                "id": g.id,
                "label": g.label,
                "normal": g.normal.tolist(),
                "d": g.d,
                "num_inliers": g.num_inliers,
                "residual": g.residual,
            }
            for g in groups
        ])

        return PlaneRefinementOutput(
            point_cloud=cloud,
            groups=groups,
            num_input_groups=len(cloud.groups),
            num_merged=merged,
            num_dropped=dropped,
        )
