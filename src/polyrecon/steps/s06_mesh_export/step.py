"""Step 06: Mesh export.

Writes the selected polygon mesh to .obj/.off (polygons kept) or .ply/.stl/.glb
(fan-triangulated through trimesh). Output goes to a temporary sibling file
that is renamed into place only once fully written.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import ClassVar

from polyrecon.core.errors import ExportError
from polyrecon.core.step_base import BaseStep
from ._polygon_writers import write_obj, write_off
from ._trimesh_writer import write_trimesh
from .config import MeshExportConfig
from .contracts import MeshExportInput, MeshExportOutput

logger = logging.getLogger(__name__)

POLYGON_FORMATS = {"obj": write_obj, "off": write_off}
TRIMESH_FORMATS = ("ply", "stl", "glb")
SUPPORTED_FORMATS = (*POLYGON_FORMATS, *TRIMESH_FORMATS)


def output_format(path: Path) -> str:
    return Path(path).suffix.lower().lstrip(".")


class MeshExportStep(BaseStep[MeshExportInput, MeshExportOutput, MeshExportConfig]):
    name: ClassVar[str] = "mesh_export"
    input_type: ClassVar = MeshExportInput
    output_type: ClassVar = MeshExportOutput
    config_type: ClassVar = MeshExportConfig
    failure_type: ClassVar = ExportError

    def validate_inputs(self, inputs: MeshExportInput) -> bool:
        if inputs.result.num_faces == 0:
            logger.error("Nothing to export: result mesh has no faces")
            return False
        fmt = output_format(inputs.output_path)
        if fmt not in SUPPORTED_FORMATS:
            logger.error(f"Unsupported output format '.{fmt}' (expected one of {SUPPORTED_FORMATS})")
            return False
        return True

    def _write(self, inputs: MeshExportInput, fmt: str, tmp_path: Path) -> int:
        cfg = self.config
        if fmt in POLYGON_FORMATS:
            with open(tmp_path, "w") as f:
                return POLYGON_FORMATS[fmt](inputs.result, f, cfg.precision, cfg.triangulate)
        return write_trimesh(
            inputs.result,
            tmp_path,
            fmt,
            color_by_plane=cfg.color_by_plane,
            y_up=cfg.glb_y_up and fmt == "glb",
        )

    def run(self, inputs: MeshExportInput) -> MeshExportOutput:
        out = Path(inputs.output_path)
        fmt = output_format(out)
        try:
            out.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{out.stem}.", suffix=f".{fmt}.tmp", dir=out.parent)
            os.close(fd)
        except OSError as e:
            raise ExportError(f"Cannot write to {out.parent}: {e}") from e

        tmp_path = Path(tmp_name)
        try:
            num_faces = self._write(inputs, fmt, tmp_path)
            os.replace(tmp_path, out)
        except Exception as e:
            tmp_path.unlink(missing_ok=True)
            raise ExportError(f"Failed to write {out}: {e}") from e

        logger.info(
            f"Saved {fmt.upper()} mesh: {len(inputs.result.vertices)} vertices, "
            f"{num_faces} faces -> {out}"
        )
        return MeshExportOutput(
            output_path=out,
            file_format=fmt,
            num_vertices=len(inputs.result.vertices),
            num_faces=num_faces,
        )
