"""Common Pydantic models shared across pipeline steps."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from polyrecon.steps.s00_load_point_cloud.config import LoadPointCloudConfig
from polyrecon.steps.s01_plane_refinement.config import PlaneRefinementConfig
from polyrecon.steps.s02_candidate_generation.config import CandidateGenerationConfig
from polyrecon.steps.s03_confidence.config import ConfidenceConfig
from polyrecon.steps.s04_adjacency.config import AdjacencyConfig
from polyrecon.steps.s05_face_selection.config import FaceSelectionConfig
from polyrecon.steps.s06_mesh_export.config import MeshExportConfig
from .errors import InputError


class StepMeta(BaseModel):
    """Metadata attached to every step run for reproducibility."""

    step_name: str
    elapsed_seconds: float = 0.0
    params: dict[str, Any] = Field(default_factory=dict)


class ReconstructionConfig(BaseModel):
    """Top-level configuration, loaded from YAML and passed into every step."""

    data_root: Optional[Path] = Field(
        None, description="Directory for interim diagnostics (disabled when unset)"
    )
    max_workers: Optional[int] = Field(
        None, description="Worker pool size per step (defaults to the CPU count)"
    )
    loading: LoadPointCloudConfig = Field(default_factory=LoadPointCloudConfig)
    refinement: PlaneRefinementConfig = Field(default_factory=PlaneRefinementConfig)
    generation: CandidateGenerationConfig = Field(default_factory=CandidateGenerationConfig)
    confidence: ConfidenceConfig = Field(default_factory=ConfidenceConfig)
    adjacency: AdjacencyConfig = Field(default_factory=AdjacencyConfig)
    selection: FaceSelectionConfig = Field(default_factory=FaceSelectionConfig)
    export: MeshExportConfig = Field(default_factory=MeshExportConfig)

    def with_overrides(self, **selection_overrides: Any) -> ReconstructionConfig:
        """Copy with selection fields replaced; ``None`` values are ignored."""
        updates = {k: v for k, v in selection_overrides.items() if v is not None}
        if not updates:
            return self
        merged = {**self.selection.model_dump(), **updates}
        try:
            selection = FaceSelectionConfig.model_validate(merged)
        except ValidationError as e:
            raise InputError(f"Invalid selection parameters: {e}") from e
        return self.model_copy(update={"selection": selection})


class ReconstructionReport(BaseModel):
    """Summary returned by the driver after a successful run."""

    output_path: Optional[Path] = None
    num_points: int = 0
    num_groups: int = 0
    num_candidate_faces: int = 0
    num_selected_faces: int = 0
    objective: float = 0.0
    steps: list[StepMeta] = Field(default_factory=list)
