"""Configuration for Step 00: Load point cloud."""

from pydantic import BaseModel, Field


class LoadPointCloudConfig(BaseModel):
    drop_empty_groups: bool = Field(True, description="Silently skip groups with no points")
    reject_non_finite: bool = Field(
        True, description="Reject input containing NaN or infinite coordinates"
    )
