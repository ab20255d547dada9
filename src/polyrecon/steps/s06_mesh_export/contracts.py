"""I/O contracts for Step 06: Mesh export."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from polyrecon.core.model import ResultMesh


class MeshExportInput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    result: ResultMesh = Field(..., description="Selected, oriented polygon mesh from s05")
    output_path: Path = Field(..., description="Destination file; format from its suffix")


class MeshExportOutput(BaseModel):
    output_path: Path = Field(..., description="Path of the written mesh")
    file_format: str = Field(..., description="Format written (obj, off, ply, stl, glb)")
    num_vertices: int = Field(0, description="Vertices written")
    num_faces: int = Field(0, description="Faces written (triangles for triangulated output)")
