"""Configuration for Step 01: Plane refinement."""

from pydantic import BaseModel, Field


class PlaneRefinementConfig(BaseModel):
    min_inliers: int = Field(10, ge=3, description="Minimum inlier points per group")
    max_residual_ratio: float = Field(
        0.05, gt=0, description="Max RMS point-to-plane distance, relative to the bbox diagonal"
    )
    use_input_planes: bool = Field(
        True, description="Fall back to the supplied plane equation when the fit is degenerate"
    )

    # Coplanar merging
    merge_planes: bool = Field(True, description="Merge near-coplanar, adjacent groups")
    merge_angle_deg: float = Field(10.0, ge=0, description="Max angle (degrees) between normals to merge")
    merge_distance_ratio: float = Field(
        0.005, ge=0, description="Floor of the merge distance threshold, relative to the bbox diagonal"
    )
    merge_overlap_ratio: float = Field(
        0.3, gt=0, le=1, description="Min fraction of a group's points near the other plane"
    )
    adjacency_ratio: float = Field(
        0.05, ge=0, description="Max gap between inlier sets to count as adjacent, relative to the diagonal"
    )
