"""I/O contracts for Step 00: Load point cloud."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from polyrecon.core.model import PointCloud


class LoadPointCloudInput(BaseModel):
    input_path: Path = Field(..., description="Point cloud with planar groups (.vg or .json)")


class LoadPointCloudOutput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    point_cloud: PointCloud
    num_points: int = Field(..., description="Number of points read")
    num_groups: int = Field(..., description="Number of non-empty planar groups")
    has_normals: bool = Field(False, description="Whether per-point normals were supplied")
