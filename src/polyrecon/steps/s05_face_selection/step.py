"""Step 05: Face selection.

Formulates the weighted mean data-fitting / mean coverage / complexity objective over
the candidate faces as a mixed 0/1 program, hands it to the configured solver
backend and extracts the selected faces as an oriented polygon mesh.
"""

from __future__ import annotations

import logging
import threading
from typing import ClassVar

from polyrecon.core.errors import InfeasibleSelectionError, OptimizationError
from polyrecon.core.step_base import BaseStep
from ._extraction import extract_result
from ._program import SolveStatus, formulate_selection
from ._solvers import create_solver
from .config import FaceSelectionConfig
from .contracts import FaceSelectionInput, FaceSelectionOutput

logger = logging.getLogger(__name__)


class FaceSelectionStep(BaseStep[FaceSelectionInput, FaceSelectionOutput, FaceSelectionConfig]):
    name: ClassVar[str] = "face_selection"
    input_type: ClassVar = FaceSelectionInput
    output_type: ClassVar = FaceSelectionOutput
    config_type: ClassVar = FaceSelectionConfig
    failure_type: ClassVar = OptimizationError

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.cancel_event = threading.Event()

    def cancel(self) -> None:
        """Ask a running solve to stop; honoured between solver iterations."""
        self.cancel_event.set()

    def validate_inputs(self, inputs: FaceSelectionInput) -> bool:
        if inputs.mesh.num_faces == 0:
            logger.error("Candidate mesh has no faces")
            return False
        if not inputs.mesh.has_confidences():
            logger.error("Candidate faces have no confidence scores")
            return False
        return True

    def run(self, inputs: FaceSelectionInput) -> FaceSelectionOutput:
        cfg = self.config
        mesh = inputs.mesh

        program = formulate_selection(mesh, inputs.constraints, cfg)
        solver = create_solver(
            cfg.solver,
            cancel_event=self.cancel_event,
            mip_rel_gap=cfg.mip_rel_gap,
            node_limit=cfg.node_limit,
        )
        logger.info(f"Solving with {cfg.solver.value} ({solver.description})")
        outcome = solver.solve(program, time_limit=cfg.time_limit)

        if outcome.status == SolveStatus.INFEASIBLE:
            raise InfeasibleSelectionError(
                "No face selection satisfies the constraints; the candidate faces "
                f"cannot form a valid surface ({outcome.message})"
            )
        if outcome.x is None or outcome.status == SolveStatus.NO_SOLUTION:
            raise OptimizationError(f"Solver returned no solution: {outcome.message}")
        if outcome.status == SolveStatus.FEASIBLE:
            logger.warning(f"Using a feasible but unproven solution: {outcome.message}")

        result, selected, non_disk = extract_result(
            mesh, outcome.x, inputs.constraints, cfg.closed_surface,
        )
        if not selected:
            raise OptimizationError("Solver selected no faces")

        planes_used = sorted(set(result.face_plane_ids))
        logger.info(
            f"Selected {len(selected)}/{mesh.num_faces} faces on "
            f"{len(planes_used)}/{len(mesh.planes)} planes, objective {outcome.objective:.6f}"
        )

        self.write_interim("selection.json", {
            "solver": cfg.solver.value,
            "status": outcome.status.value,
            "objective": outcome.objective,
            "selected_face_ids": selected,
            "planes_used": planes_used,
            "non_manifold_vertices": non_disk,
        })

        return FaceSelectionOutput(
            result=result,
            selected_face_ids=selected,
            num_selected=len(selected),
            num_planes_used=len(planes_used),
            objective=outcome.objective,
            solver=cfg.solver.value,
            non_manifold_vertices=non_disk,
        )
