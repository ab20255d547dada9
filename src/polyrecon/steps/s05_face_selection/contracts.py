"""I/O contracts for Step 05: Face selection."""

from pydantic import BaseModel, ConfigDict, Field

from polyrecon.core.model import AdjacencyConstraints, CandidateMesh, ResultMesh


class FaceSelectionInput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    mesh: CandidateMesh = Field(..., description="Candidate mesh with confidences")
    constraints: AdjacencyConstraints = Field(..., description="Constraints from s04")


class FaceSelectionOutput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    result: ResultMesh
    selected_face_ids: list[int] = Field(default_factory=list)
    num_selected: int = Field(0)
    num_planes_used: int = Field(0)
    objective: float = Field(0.0)
    solver: str = Field("")
    non_manifold_vertices: int = Field(0, description="Vertices whose selected fan is not a disk")
