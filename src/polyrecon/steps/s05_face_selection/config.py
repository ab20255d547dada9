"""Configuration for Step 05: Face selection."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SolverKind(str, Enum):
    """Interchangeable integer-programming backends."""

    HIGHS = "highs"
    BRANCH_AND_BOUND = "branch_and_bound"


class FaceSelectionConfig(BaseModel):
    # Objective weights
    lambda_data_fitting: float = Field(0.43, ge=0, description="Weight of the data-fitting term")
    lambda_model_coverage: float = Field(0.27, ge=0, description="Weight of the coverage term")
    lambda_model_complexity: float = Field(0.30, ge=0, description="Weight of the complexity term")

    # Constraints
    closed_surface: bool = Field(
        True, description="Require every selected edge to have exactly two selected faces"
    )
    min_selected_faces: int = Field(4, ge=0, description="Lower bound on the selected face count (at least one face is always required)")

    # Solver
    solver: SolverKind = Field(SolverKind.HIGHS, description="Integer-programming backend")
    time_limit: Optional[float] = Field(None, gt=0, description="Solver time limit (seconds)")
    mip_rel_gap: float = Field(1e-6, ge=0, description="Relative optimality gap (highs)")
    node_limit: int = Field(200_000, gt=0, description="Node budget (branch_and_bound)")
