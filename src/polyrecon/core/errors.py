"""Error taxonomy for the reconstruction pipeline.

Each step raises the kind matching the stage that failed; the CLI maps any
``ReconstructionError`` to a non-zero exit.
"""

from __future__ import annotations


class ReconstructionError(RuntimeError):
    """Base class for every fatal pipeline failure."""


class InputError(ReconstructionError):
    """Unreadable or empty point cloud, or no usable planar groups."""


class GeometryError(ReconstructionError):
    """Degenerate arrangement, too few candidate faces, inconsistent constraints."""


class OptimizationError(ReconstructionError):
    """Solver failure, timeout, or an empty selection."""


class InfeasibleSelectionError(OptimizationError, GeometryError):
    """The constraint set admits no selection at all."""


class ExportError(ReconstructionError):
    """The result mesh could not be written."""
