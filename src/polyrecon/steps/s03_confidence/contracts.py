"""I/O contracts for Step 03: Face confidence evaluation."""

from pydantic import BaseModel, ConfigDict, Field

from polyrecon.core.model import CandidateMesh, PointCloud


class ConfidenceInput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    point_cloud: PointCloud
    mesh: CandidateMesh = Field(..., description="Candidate mesh from s02")


class ConfidenceOutput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    mesh: CandidateMesh = Field(..., description="Candidate mesh with per-face confidences")
    total_points: int = Field(0, description="Inliers over all groups")
    num_supported: int = Field(0, description="Faces with at least one supporting point")
    mean_fitting: float = Field(0.0)
    mean_coverage: float = Field(0.0)
