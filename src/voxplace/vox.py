"""
MagicaVoxel .vox reader.

Decodes models (SIZE/XYZI pairs), the palette (RGBA) and the scene graph
(nTRN, nGRP, nSHP). Scene nodes are kept in an arena keyed by node id;
node 0 is the root. Palette indices are 0-based: file color index c maps
to palette[c - 1].
"""

import struct
from pathlib import Path
from typing import List, Tuple, Dict, Union
from dataclasses import dataclass, field
import numpy as np
import logging

from .errors import VoxFormatError

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = (150, 200)

# Default MagicaVoxel palette, 0xAABBGGRR, file color index order (entry 0 unused)
_DEFAULT_PALETTE_ABGR = [
    0x00000000, 0xffffffff, 0xffccffff, 0xff99ffff, 0xff66ffff, 0xff33ffff, 0xff00ffff, 0xffffccff,
    0xffccccff, 0xff99ccff, 0xff66ccff, 0xff33ccff, 0xff00ccff, 0xffff99ff, 0xffcc99ff, 0xff9999ff,
    0xff6699ff, 0xff3399ff, 0xff0099ff, 0xffff66ff, 0xffcc66ff, 0xff9966ff, 0xff6666ff, 0xff3366ff,
    0xff0066ff, 0xffff33ff, 0xffcc33ff, 0xff9933ff, 0xff6633ff, 0xff3333ff, 0xff0033ff, 0xffff00ff,
    0xffcc00ff, 0xff9900ff, 0xff6600ff, 0xff3300ff, 0xff0000ff, 0xffffffcc, 0xffccffcc, 0xff99ffcc,
    0xff66ffcc, 0xff33ffcc, 0xff00ffcc, 0xffffcccc, 0xffcccccc, 0xff99cccc, 0xff66cccc, 0xff33cccc,
    0xff00cccc, 0xffff99cc, 0xffcc99cc, 0xff9999cc, 0xff6699cc, 0xff3399cc, 0xff0099cc, 0xffff66cc,
    0xffcc66cc, 0xff9966cc, 0xff6666cc, 0xff3366cc, 0xff0066cc, 0xffff33cc, 0xffcc33cc, 0xff9933cc,
    0xff6633cc, 0xff3333cc, 0xff0033cc, 0xffff00cc, 0xffcc00cc, 0xff9900cc, 0xff6600cc, 0xff3300cc,
    0xff0000cc, 0xffffff99, 0xffccff99, 0xff99ff99, 0xff66ff99, 0xff33ff99, 0xff00ff99, 0xffffcc99,
    0xffcccc99, 0xff99cc99, 0xff66cc99, 0xff33cc99, 0xff00cc99, 0xffff9999, 0xffcc9999, 0xff999999,
    0xff669999, 0xff339999, 0xff009999, 0xffff6699, 0xffcc6699, 0xff996699, 0xff666699, 0xff336699,
    0xff006699, 0xffff3399, 0xffcc3399, 0xff993399, 0xff663399, 0xff333399, 0xff003399, 0xffff0099,
    0xffcc0099, 0xff990099, 0xff660099, 0xff330099, 0xff000099, 0xffffff66, 0xffccff66, 0xff99ff66,
    0xff66ff66, 0xff33ff66, 0xff00ff66, 0xffffcc66, 0xffcccc66, 0xff99cc66, 0xff66cc66, 0xff33cc66,
    0xff00cc66, 0xffff9966, 0xffcc9966, 0xff999966, 0xff669966, 0xff339966, 0xff009966, 0xffff6666,
    0xffcc6666, 0xff996666, 0xff666666, 0xff336666, 0xff006666, 0xffff3366, 0xffcc3366, 0xff993366,
    0xff663366, 0xff333366, 0xff003366, 0xffff0066, 0xffcc0066, 0xff990066, 0xff660066, 0xff330066,
    0xff000066, 0xffffff33, 0xffccff33, 0xff99ff33, 0xff66ff33, 0xff33ff33, 0xff00ff33, 0xffffcc33,
    0xffcccc33, 0xff99cc33, 0xff66cc33, 0xff33cc33, 0xff00cc33, 0xffff9933, 0xffcc9933, 0xff999933,
    0xff669933, 0xff339933, 0xff009933, 0xffff6633, 0xffcc6633, 0xff996633, 0xff666633, 0xff336633,
    0xff006633, 0xffff3333, 0xffcc3333, 0xff993333, 0xff663333, 0xff333333, 0xff003333, 0xffff0033,
    0xffcc0033, 0xff990033, 0xff660033, 0xff330033, 0xff000033, 0xffffff00, 0xffccff00, 0xff99ff00,
    0xff66ff00, 0xff33ff00, 0xff00ff00, 0xffffcc00, 0xffcccc00, 0xff99cc00, 0xff66cc00, 0xff33cc00,
    0xff00cc00, 0xffff9900, 0xffcc9900, 0xff999900, 0xff669900, 0xff339900, 0xff009900, 0xffff6600,
    0xffcc6600, 0xff996600, 0xff666600, 0xff336600, 0xff006600, 0xffff3300, 0xffcc3300, 0xff993300,
    0xff663300, 0xff333300, 0xff003300, 0xffff0000, 0xffcc0000, 0xff990000, 0xff660000, 0xff330000,
    0xff0000ee, 0xff0000dd, 0xff0000bb, 0xff0000aa, 0xff000088, 0xff000077, 0xff000055, 0xff000044,
    0xff000022, 0xff000011, 0xff00ee00, 0xff00dd00, 0xff00bb00, 0xff00aa00, 0xff008800, 0xff007700,
    0xff005500, 0xff004400, 0xff002200, 0xff001100, 0xffee0000, 0xffdd0000, 0xffbb0000, 0xffaa0000,
    0xff880000, 0xff770000, 0xff550000, 0xff440000, 0xff220000, 0xff110000, 0xffeeeeee, 0xffdddddd,
    0xffbbbbbb, 0xffaaaaaa, 0xff888888, 0xff777777, 0xff555555, 0xff444444, 0xff222222, 0xff111111,
]


def default_palette() -> np.ndarray:
    """Default palette as a (256, 3) RGB array in 0-based index order."""
    values = _DEFAULT_PALETTE_ABGR[1:] + _DEFAULT_PALETTE_ABGR[:1]
    return np.array(
        [(v & 0xFF, (v >> 8) & 0xFF, (v >> 16) & 0xFF) for v in values],
        dtype=np.uint8
    )


@dataclass
class VoxModel:
    """
    Single voxel model.

    voxels is an Nx4 integer array of (x, y, z, palette_index).
    """
    size: Tuple[int, int, int]
    voxels: np.ndarray

    @property
    def n_voxels(self) -> int:
        return len(self.voxels)


@dataclass
class TransformNode:
    child: int
    frames: List[Dict[str, str]] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass
class GroupNode:
    children: List[int] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass
class ShapeNode:
    models: List[int] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)


SceneNode = Union[TransformNode, GroupNode, ShapeNode]


@dataclass
class VoxScene:
    """Decoded .vox file: models, shared palette and scene graph arena."""
    models: List[VoxModel] = field(default_factory=list)
    palette: np.ndarray = field(default_factory=default_palette)
    nodes: Dict[int, SceneNode] = field(default_factory=dict)

    @property
    def n_voxels(self) -> int:
        return sum(m.n_voxels for m in self.models)

    @classmethod
    def single(cls, model: VoxModel, palette=None) -> "VoxScene":
        """Scene holding one model under a root transform, at the origin."""
        scene = cls(models=[model])
        if palette is not None:
            scene.palette = np.asarray(palette, dtype=np.uint8).reshape(-1, 3)
        scene.nodes = default_scene_graph(1)
        return scene


def default_scene_graph(n_models: int) -> Dict[int, SceneNode]:
    """Root transform -> group -> one untransformed shape per model."""
    nodes: Dict[int, SceneNode] = {
        0: TransformNode(child=1, frames=[{}]),
        1: GroupNode(children=[]),
    }
    for i in range(n_models):
        trn_id = 2 + 2 * i
        nodes[1].children.append(trn_id)
        nodes[trn_id] = TransformNode(child=trn_id + 1, frames=[{}])
        nodes[trn_id + 1] = ShapeNode(models=[i])
    return nodes


class _Reader:
    """Cursor over a chunk's content bytes."""

    def __init__(self, data: bytes, chunk_id: str):
        self.data = data
        self.pos = 0
        self.chunk_id = chunk_id

    def _take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise VoxFormatError(f"Truncated {self.chunk_id} chunk")
        out = self.data[self.pos:self.pos + n]
        self.pos += n
        return out

    def i32(self) -> int:
        return struct.unpack('<i', self._take(4))[0]

    def string(self) -> str:
        n = self.i32()
        if n < 0:
            raise VoxFormatError(f"Negative string length in {self.chunk_id} chunk")
        return self._take(n).decode('utf-8', errors='replace')

    def dict(self) -> Dict[str, str]:
        n = self.i32()
        return {self.string(): self.string() for _ in range(n)}


def _iter_chunks(data: bytes, start: int, end: int):
    """Yield (chunk_id, content) for the flat chunk list inside MAIN."""
    pos = start
    while pos < end:
        if pos + 12 > end:
            raise VoxFormatError("Truncated chunk header")
        chunk_id = data[pos:pos + 4].decode('ascii', errors='replace')
        content_size, children_size = struct.unpack('<II', data[pos + 4:pos + 12])
        content_start = pos + 12
        content_end = content_start + content_size
        if content_end > end:
            raise VoxFormatError(f"Chunk {chunk_id} runs past end of file")
        yield chunk_id, data[content_start:content_end]
        # Children of MAIN are siblings here; nested children are not used
        pos = content_end + (children_size if chunk_id != 'MAIN' else 0)


def parse_vox(data: bytes) -> VoxScene:
    """
    Decode .vox bytes.

    Args:
        data: Raw file content

    Returns:
        VoxScene; files without a scene graph get a default one placing
        every model at the origin

    Raises:
        VoxFormatError: If the data is not a valid .vox file
    """
    if len(data) < 8 or data[:4] != b'VOX ':
        raise VoxFormatError("Not a VOX file (bad magic)")
    version = struct.unpack('<I', data[4:8])[0]
    if version not in SUPPORTED_VERSIONS:
        logger.warning(f"VOX version {version} (expected one of {SUPPORTED_VERSIONS})")

    models: List[VoxModel] = []
    nodes: Dict[int, SceneNode] = {}
    palette = default_palette()
    current_size = None

    for chunk_id, content in _iter_chunks(data, 8, len(data)):
        if chunk_id == 'SIZE':
            if len(content) < 12:
                raise VoxFormatError("Invalid SIZE chunk")
            current_size = tuple(int(v) for v in struct.unpack('<III', content[:12]))

        elif chunk_id == 'XYZI':
            if current_size is None:
                raise VoxFormatError("XYZI chunk before SIZE")
            if len(content) < 4:
                raise VoxFormatError("Invalid XYZI chunk")
            n = struct.unpack('<I', content[:4])[0]
            if len(content) < 4 + 4 * n:
                raise VoxFormatError("Invalid XYZI chunk length")
            raw = np.frombuffer(content[4:4 + 4 * n], dtype=np.uint8).reshape((n, 4))
            voxels = raw.astype(np.int64)
            # File color index 0 is unused; stored indices are 0-based
            voxels[:, 3] -= 1
            voxels = voxels[voxels[:, 3] >= 0]
            models.append(VoxModel(size=current_size, voxels=voxels))
            current_size = None

        elif chunk_id == 'RGBA':
            if len(content) < 256 * 4:
                raise VoxFormatError("Invalid RGBA chunk")
            rgba = np.frombuffer(content[:256 * 4], dtype=np.uint8).reshape((256, 4))
            palette = rgba[:, :3].copy()

        elif chunk_id == 'nTRN':
            r = _Reader(content, chunk_id)
            node_id = r.i32()
            attributes = r.dict()
            child = r.i32()
            r.i32()  # reserved
            r.i32()  # layer
            n_frames = r.i32()
            frames = [r.dict() for _ in range(max(n_frames, 0))]
            nodes[node_id] = TransformNode(child=child, frames=frames, attributes=attributes)

        elif chunk_id == 'nGRP':
            r = _Reader(content, chunk_id)
            node_id = r.i32()
            attributes = r.dict()
            n_children = r.i32()
            children = [r.i32() for _ in range(max(n_children, 0))]
            nodes[node_id] = GroupNode(children=children, attributes=attributes)

        elif chunk_id == 'nSHP':
            r = _Reader(content, chunk_id)
            node_id = r.i32()
            attributes = r.dict()
            n_models = r.i32()
            model_ids = []
            for _ in range(max(n_models, 0)):
                model_ids.append(r.i32())
                r.dict()  # model attributes
            nodes[node_id] = ShapeNode(models=model_ids, attributes=attributes)

    if not nodes:
        nodes = default_scene_graph(len(models))

    logger.debug(f"Decoded VOX v{version}: {len(models)} models, {len(nodes)} scene nodes")
    return VoxScene(models=models, palette=palette, nodes=nodes)


def load_vox(path: Path) -> VoxScene:
    """Read and decode a .vox file."""
    path = Path(path)
    with open(path, 'rb') as f:
        data = f.read()
    scene = parse_vox(data)
    logger.info(f"Loaded {path.name}: {len(scene.models)} models, {scene.n_voxels} voxels")
    return scene
