"""
Scene assembly: place voxel models into a sparse chunked grid.

Each placement piece is a MagicaVoxel scene graph. Walking it composes
the transforms down every branch; at shape nodes the referenced models
are rasterized at their accumulated world transform.

Algorithm:
1. Start at identity rotation and the piece offset
2. Transform node: translation += R * t, R = R * r (frame 0 only)
3. Group node: every child gets the same, unmodified state
4. Shape node: rasterize each model that exists in the model table
5. Rasterize: center the rotated model on the translation, merge its
   AABB into the region set, allocate its chunks, write its voxels

Overlapping pieces are not combined; the last write to a cell wins.
"""

import numpy as np
from pathlib import Path
from typing import Optional, Tuple, List
import logging

logger = logging.getLogger(__name__)

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from voxplace.config import Config
from voxplace.errors import SceneGraphError
from voxplace.grid import SparseScene, OCCUPIED, SPECIAL
from voxplace.io import ModelProvider, PlaceSpec
from voxplace.regions import Aabb, BoundingRegionSet
from voxplace.rotation import identity, parse_rotation
from voxplace.vox import VoxScene, VoxModel, TransformNode, GroupNode, ShapeNode

# Palette index reserved for empty / invisible matter
SPECIAL_INDEX = 16


def parse_translation(text: Optional[str]) -> np.ndarray:
    """Parse a frame's "_t" attribute ("x y z"); malformed gives zero."""
    if text is None:
        return np.zeros(3, dtype=np.int64)
    parts = text.split(' ')
    try:
        if len(parts) < 3:
            raise ValueError(text)
        return np.array([int(parts[0]), int(parts[1]), int(parts[2])], dtype=np.int64)
    except ValueError:
        logger.debug(f"Unparseable translation {text!r}, using zero")
        return np.zeros(3, dtype=np.int64)


def frame_transform(node: TransformNode) -> Tuple[np.ndarray, np.ndarray]:
    """Local (rotation, translation) of a transform node's first frame."""
    if not node.frames:
        return identity(), np.zeros(3, dtype=np.int64)
    frame = node.frames[0]
    return parse_rotation(frame.get("_r")), parse_translation(frame.get("_t"))


def compose(
    rot: np.ndarray,
    trans: np.ndarray,
    local_rot: np.ndarray,
    local_trans: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Apply a child transform expressed in the parent's rotated space.

    Returns new arrays; the inputs are left untouched.
    """
    return rot @ local_rot, trans + rot @ local_trans


def placement_corner(rot: np.ndarray, trans: np.ndarray, model_size) -> Tuple[np.ndarray, np.ndarray]:
    """
    Rotated extent and min corner of a model centered on trans.

    Rotation is about the model's corner, so an axis flipped by the
    rotation shifts the footprint by one cell; the correction term
    compensates for it.

    Returns:
        (size, pos) as integer 3-vectors
    """
    model_size = np.asarray(model_size, dtype=np.int64)
    size = np.abs(rot) @ model_size
    flips = rot @ np.ones(3, dtype=np.int64)
    correction = -np.minimum(flips, 0)
    pos = trans - (size + correction) // 2
    return size, pos


def voxel_offset(rot: np.ndarray, model_size) -> np.ndarray:
    """Shift that moves rotated local coordinates back to non-negative."""
    rotated = rot @ np.asarray(model_size, dtype=np.int64)
    return np.where(rotated > 0, 0, -rotated - 1)


def render_model(
    palette: np.ndarray,
    model: VoxModel,
    sparse_scene: SparseScene,
    regions: BoundingRegionSet,
    rot: np.ndarray,
    trans: np.ndarray
) -> int:
    """
    Rasterize one model at an accumulated transform.

    Args:
        palette: (N, 3) RGB palette
        model: Model to place
        sparse_scene: Grid receiving the cells
        regions: Region set receiving the model's AABB
        rot: Accumulated 3x3 rotation
        trans: Accumulated translation (model center)

    Returns:
        Number of voxels written
    """
    if min(model.size) <= 0:
        logger.debug(f"Skipping model with degenerate size {model.size}")
        return 0

    size, pos = placement_corner(rot, trans, model.size)

    box = Aabb.from_corner(pos, size)
    regions.insert(box)

    # Chunks must exist before any voxel is written
    new_chunks = sparse_scene.ensure_range(box.min, box.max)

    voxels = np.asarray(model.voxels, dtype=np.int64).reshape(-1, 4)
    indices = voxels[:, 3]
    in_palette = (indices >= 0) & (indices < len(palette))
    voxels = voxels[in_palette]
    indices = indices[in_palette]
    if len(voxels) == 0:
        logger.debug(f"Model {model.size} has no voxels in the palette, footprint only")
        return 0

    offset = voxel_offset(rot, model.size)
    wpos = voxels[:, :3] @ rot.T + offset + pos
    colors = np.asarray(palette, dtype=np.uint8)[indices]
    flags = np.where(indices == SPECIAL_INDEX, OCCUPIED | SPECIAL, OCCUPIED).astype(np.uint8)

    sparse_scene.set_many(wpos, colors, flags)

    logger.debug(
        f"Rendered model {model.size} at {tuple(int(p) for p in pos)}: "
        f"{len(voxels)} voxels, {new_chunks} new chunks"
    )
    return len(voxels)


def insert_scene(
    vox: VoxScene,
    sparse_scene: SparseScene,
    regions: BoundingRegionSet,
    offset=(0, 0, 0),
    root: int = 0
) -> int:
    """
    Walk a scene graph depth-first and rasterize every shape.

    State (rotation, translation) is carried per stack entry, so sibling
    branches never see each other's transforms.

    Returns:
        Number of voxels written

    Raises:
        SceneGraphError: On a reference to a missing node or a cycle
    """
    max_depth = len(vox.nodes)
    written = 0
    stack: List[Tuple[int, np.ndarray, np.ndarray, int]] = [
        (root, identity(), np.asarray(offset, dtype=np.int64), 0)
    ]

    while stack:
        node_id, rot, trans, depth = stack.pop()
        if depth > max_depth:
            raise SceneGraphError(f"Scene graph cycle through node {node_id}")
        node = vox.nodes.get(node_id)
        if node is None:
            raise SceneGraphError(f"Scene graph references missing node {node_id}")

        if isinstance(node, TransformNode):
            local_rot, local_trans = frame_transform(node)
            child_rot, child_trans = compose(rot, trans, local_rot, local_trans)
            stack.append((node.child, child_rot, child_trans, depth + 1))

        elif isinstance(node, GroupNode):
            # Reversed so children pop in declaration order
            for child in reversed(node.children):
                stack.append((child, rot, trans, depth + 1))

        elif isinstance(node, ShapeNode):
            for model_id in node.models:
                if 0 <= model_id < len(vox.models):
                    written += render_model(vox.palette, vox.models[model_id], sparse_scene, regions, rot, trans)

    return written


def build_sparse_scene(
    vox: VoxScene,
    offset=(0, 0, 0),
    chunk_size: int = 32
) -> Tuple[SparseScene, BoundingRegionSet]:
    """Assemble a single voxel scene into a fresh grid and region set."""
    sparse_scene = SparseScene(chunk_size)
    regions = BoundingRegionSet()
    insert_scene(vox, sparse_scene, regions, offset)
    return sparse_scene, regions


def build_place(
    spec: PlaceSpec,
    provider: ModelProvider,
    config: Optional[Config] = None
) -> Tuple[SparseScene, BoundingRegionSet]:
    """
    Place every piece of a placement spec into one shared grid.

    Pieces are placed in order; later pieces overwrite earlier ones where
    they overlap. An empty spec places the fallback model at the origin.

    Args:
        spec: Placement spec
        provider: Model provider (missing models fall back)
        config: Configuration (chunk size)

    Returns:
        Tuple of (sparse_scene, regions)
    """
    config = config or Config()
    sparse_scene = SparseScene(config.chunk_size)
    regions = BoundingRegionSet()

    pieces = [(p.name, p.offset) for p in spec.pieces]
    if not pieces:
        logger.warning("Placement spec has no pieces, placing fallback model")
        pieces = [(provider.fallback, (0, 0, 0))]

    for name, offset in pieces:
        vox = provider.load_graceful(name)
        written = insert_scene(vox, sparse_scene, regions, offset)
        logger.info(f"Placed {name} at {offset}: {written} voxels")

    logger.info(f"Assembled {len(sparse_scene)} chunks, {len(regions)} bounding regions")
    return sparse_scene, regions
