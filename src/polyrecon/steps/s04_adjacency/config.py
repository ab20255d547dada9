"""Configuration for Step 04: Adjacency constraint extraction."""

from pydantic import BaseModel, Field


class AdjacencyConfig(BaseModel):
    detect_intersections: bool = Field(
        True, description="Add mutual-exclusion constraints for improperly intersecting faces"
    )
    tolerance_ratio: float = Field(
        1e-6, gt=0, description="Intersection tolerance, relative to the bbox diagonal"
    )
    parallel_angle_deg: float = Field(
        1e-4, ge=0, description="Face planes closer than this angle (degrees) are treated as parallel"
    )
