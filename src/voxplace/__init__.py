"""
Shared modules for voxel placement.

Pipeline (one shot, single threaded):
- placement spec -> pieces (model name, offset)
- each model's scene graph -> cells in a sparse chunked grid + bounding regions
- each cell inside the regions -> block -> terrain store
"""

from .config import Config, FillMode, RunSummary
from .errors import (
    VoxPlaceError, ChunkMissingError, SceneGraphError,
    VoxFormatError, ModelNotFoundError, PlaceSpecError,
)
from .rotation import decode_rotation, rotation_or_identity, parse_rotation
from .grid import Cell, Chunk, SparseScene
from .regions import Aabb, BoundingRegionSet
from .blocks import (
    Block, BlockKind, SpriteKind, Medium,
    SpriteSpec, SolidSpec, RandomSpec, ReplacementTable,
    classify_cell, produce_block, choose_weighted,
)
from .vox import VoxModel, VoxScene, load_vox, parse_vox
from .io import ModelProvider, PieceSpec, PlaceSpec, TerrainStore

__all__ = [
    'Config', 'FillMode', 'RunSummary',
    'VoxPlaceError', 'ChunkMissingError', 'SceneGraphError',
    'VoxFormatError', 'ModelNotFoundError', 'PlaceSpecError',
    'decode_rotation', 'rotation_or_identity', 'parse_rotation',
    'Cell', 'Chunk', 'SparseScene',
    'Aabb', 'BoundingRegionSet',
    'Block', 'BlockKind', 'SpriteKind', 'Medium',
    'SpriteSpec', 'SolidSpec', 'RandomSpec', 'ReplacementTable',
    'classify_cell', 'produce_block', 'choose_weighted',
    'VoxModel', 'VoxScene', 'load_vox', 'parse_vox',
    'ModelProvider', 'PieceSpec', 'PlaceSpec', 'TerrainStore',
]
