"""
Scene assembly: MagicaVoxel scene graph -> sparse chunked grid.

Composes transforms down the scene graph, rasterizes every shape's
models at world coordinates and records their bounding regions.
"""

__version__ = "1.0.0"

from .build import (
    SPECIAL_INDEX,
    parse_translation,
    frame_transform,
    compose,
    placement_corner,
    voxel_offset,
    render_model,
    insert_scene,
    build_sparse_scene,
    build_place,
)

__all__ = [
    "SPECIAL_INDEX",
    "parse_translation",
    "frame_transform",
    "compose",
    "placement_corner",
    "voxel_offset",
    "render_model",
    "insert_scene",
    "build_sparse_scene",
    "build_place",
]
