"""I/O contracts for Step 01: Plane refinement."""

from pydantic import BaseModel, ConfigDict, Field

from polyrecon.core.model import PlaneGroup, PointCloud


class PlaneRefinementInput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    point_cloud: PointCloud = Field(..., description="Points plus raw planar groups")


class PlaneRefinementOutput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    point_cloud: PointCloud
    groups: list[PlaneGroup] = Field(..., description="Refined, point-disjoint groups")
    num_input_groups: int = Field(0)
    num_merged: int = Field(0, description="Groups absorbed by a merge")
    num_dropped: int = Field(0, description="Groups discarded for size or residual")
