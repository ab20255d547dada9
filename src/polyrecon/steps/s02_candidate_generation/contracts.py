"""I/O contracts for Step 02: Candidate face generation."""

from pydantic import BaseModel, ConfigDict, Field

from polyrecon.core.model import CandidateMesh, PlaneGroup, PointCloud


class CandidateGenerationInput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    point_cloud: PointCloud
    groups: list[PlaneGroup] = Field(..., description="Refined planes from s01")


class CandidateGenerationOutput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    point_cloud: PointCloud
    mesh: CandidateMesh
    num_faces: int = Field(0)
    num_edges: int = Field(0)
    num_vertices: int = Field(0)
    num_discarded: int = Field(0, description="Degenerate cells dropped")
