"""Configuration for Step 02: Candidate face generation."""

from pydantic import BaseModel, Field


class CandidateGenerationConfig(BaseModel):
    bbox_margin_ratio: float = Field(
        0.05, ge=0, description="Bounding-box enlargement, relative to the inlier diagonal"
    )
    parallel_angle_deg: float = Field(
        0.1, ge=0, description="Planes closer than this angle (degrees) do not cut each other"
    )
    snap_ratio: float = Field(
        1e-6, gt=0, description="Vertex merge tolerance, relative to the bbox diagonal"
    )
    min_area_ratio: float = Field(
        1e-9, ge=0, description="Discard faces smaller than this fraction of diagonal²"
    )
    min_angle_deg: float = Field(
        0.01, ge=0, description="Discard sliver faces with a smaller interior angle (degrees)"
    )
    min_candidate_faces: int = Field(4, ge=1, description="Fail below this many candidates")
