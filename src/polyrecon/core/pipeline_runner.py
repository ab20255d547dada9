"""Reconstruction driver: runs s00..s06 in order with one explicit configuration."""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from .contracts import ReconstructionConfig, ReconstructionReport
from .errors import InputError
from .step_base import BaseStep

logger = logging.getLogger(__name__)

# (step name, module path, ReconstructionConfig section)
STEP_MODULES: list[tuple[str, str, str]] = [
    ("load_point_cloud", "polyrecon.steps.s00_load_point_cloud", "loading"),
    ("plane_refinement", "polyrecon.steps.s01_plane_refinement", "refinement"),
    ("candidate_generation", "polyrecon.steps.s02_candidate_generation", "generation"),
    ("confidence", "polyrecon.steps.s03_confidence", "confidence"),
    ("adjacency", "polyrecon.steps.s04_adjacency", "adjacency"),
    ("face_selection", "polyrecon.steps.s05_face_selection", "selection"),
    ("mesh_export", "polyrecon.steps.s06_mesh_export", "export"),
]


def load_reconstruction_config(config_path: Path) -> ReconstructionConfig:
    """Load and validate a reconstruction YAML file."""
    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except OSError as e:
        raise InputError(f"Cannot read config {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise InputError(f"Malformed YAML in {config_path}: {e}") from e
    try:
        return ReconstructionConfig(**raw)
    except (TypeError, ValidationError) as e:
        raise InputError(f"Invalid config {config_path}: {e}") from e


def import_step_class(module_path: str) -> type[BaseStep]:
    """Dynamically import a step class from its module path.

    Expects module_path like 'polyrecon.steps.s01_plane_refinement'
    and looks for a class ending in 'Step' in that module's step.py.
    """
    step_module = importlib.import_module(f"{module_path}.step")
    for attr_name in dir(step_module):
        attr = getattr(step_module, attr_name)
        if (
            isinstance(attr, type)
            and hasattr(attr, "run")
            and attr_name.endswith("Step")
            and attr_name != "BaseStep"
        ):
            return attr
    raise ImportError(f"No Step class found in {module_path}.step")


def build_steps(config: ReconstructionConfig) -> dict[str, BaseStep]:
    steps = {}
    for name, module, section in STEP_MODULES:
        step_cls = import_step_class(module)
        steps[name] = step_cls(
            config=getattr(config, section),
            data_root=config.data_root,
            max_workers=config.max_workers,
        )
    return steps


def run_reconstruction(
    input_path: Path,
    output_path: Path,
    config: Optional[ReconstructionConfig] = None,
) -> ReconstructionReport:
    """Reconstruct ``input_path`` into a polygonal mesh written to ``output_path``.

    Raises a ``ReconstructionError`` subclass naming the failed stage.
    """
    config = config or ReconstructionConfig()
    steps = build_steps(config)
    logger.info(f"Reconstruction: {input_path} -> {output_path} ({len(steps)} steps)")

    def execute(name: str, **fields):
        logger.info(f"--- Step: {name} ---")
        step = steps[name]
        return step.execute(step.input_type(**fields))

    loaded = execute("load_point_cloud", input_path=Path(input_path))
    refined = execute("plane_refinement", point_cloud=loaded.point_cloud)
    generated = execute("candidate_generation", point_cloud=refined.point_cloud, groups=refined.groups)
    scored = execute("confidence", point_cloud=generated.point_cloud, mesh=generated.mesh)

    report = ReconstructionReport(
        num_points=loaded.num_points,
        num_groups=len(refined.groups),
        num_candidate_faces=generated.num_faces,
    )
    # Points are not needed past confidence evaluation
    del loaded, refined, generated

    adjacency = execute("adjacency", mesh=scored.mesh)
    selection = execute("face_selection", mesh=adjacency.mesh, constraints=adjacency.constraints)
    exported = execute("mesh_export", result=selection.result, output_path=Path(output_path))

    report.output_path = exported.output_path
    report.num_selected_faces = selection.num_selected
    report.objective = selection.objective
    report.steps = [s.meta for s in steps.values() if s.meta is not None]
    logger.info(
        f"Reconstruction complete: {report.num_selected_faces} faces "
        f"from {report.num_candidate_faces} candidates -> {report.output_path}"
    )
    return report
