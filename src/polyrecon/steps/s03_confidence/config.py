"""Configuration for Step 03: Face confidence evaluation."""

from typing import Literal

from pydantic import BaseModel, Field


class ConfidenceConfig(BaseModel):
    footprint_mode: Literal["concave", "convex"] = Field(
        "concave", description="Group footprint used for coverage: concave hull or convex hull"
    )
    concave_ratio: float = Field(
        0.5, ge=0, le=1, description="shapely concave_hull ratio (1 = convex hull)"
    )
    distance_floor_ratio: float = Field(
        1e-9, ge=0,
        description="Below this fraction of the diagonal, point distances are ignored for fitting",
    )
