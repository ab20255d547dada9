"""Configuration for Step 06: Mesh export."""

from pydantic import BaseModel, Field


class MeshExportConfig(BaseModel):
    precision: int = Field(9, ge=1, le=17, description="Significant digits for text formats")
    triangulate: bool = Field(
        False, description="Fan-triangulate polygons in .obj/.off output (always on for trimesh formats)"
    )
    color_by_plane: bool = Field(True, description="Per-face colours by supporting plane (.ply/.glb)")
    glb_y_up: bool = Field(True, description="Convert Z-up coordinates to glTF's Y-up for .glb")
