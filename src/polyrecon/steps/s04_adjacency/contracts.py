"""I/O contracts for Step 04: Adjacency constraint extraction."""

from pydantic import BaseModel, ConfigDict, Field

from polyrecon.core.model import AdjacencyConstraints, CandidateMesh


class AdjacencyInput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    mesh: CandidateMesh = Field(..., description="Candidate mesh from s02/s03")


class AdjacencyOutput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    mesh: CandidateMesh
    constraints: AdjacencyConstraints
    num_fan_edges: int = Field(0, description="Edges shared by two or more faces")
    num_over_shared: int = Field(0, description="Edges shared by more than two faces")
    num_exclusions: int = Field(0, description="Mutually exclusive face pairs")
