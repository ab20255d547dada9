"""polyrecon core: reconstruction driver, base step, shared contracts and errors."""

from .step_base import BaseStep
from .contracts import ReconstructionConfig, ReconstructionReport, StepMeta
from .errors import (
    ExportError,
    GeometryError,
    InfeasibleSelectionError,
    InputError,
    OptimizationError,
    ReconstructionError,
)
from .pipeline_runner import run_reconstruction, load_reconstruction_config
from .logging import setup_logging

__all__ = [
    "BaseStep",
    "ReconstructionConfig",
    "ReconstructionReport",
    "StepMeta",
    "ReconstructionError",
    "InputError",
    "GeometryError",
    "OptimizationError",
    "InfeasibleSelectionError",
    "ExportError",
    "run_reconstruction",
    "load_reconstruction_config",
    "setup_logging",
]
