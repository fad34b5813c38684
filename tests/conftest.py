"""Shared fixtures: synthesized .vox files and small voxel scenes."""

import struct
import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from voxplace.vox import VoxModel, VoxScene, TransformNode, GroupNode, ShapeNode


BLUE = (4, 119, 191)


# ============== .vox byte builder ==============

def _chunk(chunk_id: bytes, content: bytes, children: bytes = b"") -> bytes:
    return chunk_id + struct.pack("<II", len(content), len(children)) + content + children


def _string(s: str) -> bytes:
    data = s.encode("utf-8")
    return struct.pack("<i", len(data)) + data


def _dict(d: dict) -> bytes:
    out = struct.pack("<i", len(d))
    for k, v in d.items():
        out += _string(k) + _string(v)
    return out


def make_vox_bytes(models, palette=None, nodes=None, version=150) -> bytes:
    """
    Build a .vox file.

    Args:
        models: list of (size, voxels) with voxels as (x, y, z, file_color_index)
        palette: optional list of up to 256 RGB tuples (file index c -> palette[c - 1])
        nodes: optional list of scene nodes:
            ("trn", node_id, child, frame_dict)
            ("grp", node_id, [children])
            ("shp", node_id, [model_ids])
    """
    body = b""
    for size, voxels in models:
        body += _chunk(b"SIZE", struct.pack("<III", *size))
        content = struct.pack("<I", len(voxels))
        for v in voxels:
            content += struct.pack("<BBBB", *v)
        body += _chunk(b"XYZI", content)

    for node in nodes or []:
        kind, node_id = node[0], node[1]
        if kind == "trn":
            _, _, child, frame = node
            content = struct.pack("<i", node_id) + _dict({}) + struct.pack("<iiii", child, -1, 0, 1) + _dict(frame)
            body += _chunk(b"nTRN", content)
        elif kind == "grp":
            children = node[2]
            content = struct.pack("<i", node_id) + _dict({}) + struct.pack("<i", len(children))
            content += b"".join(struct.pack("<i", c) for c in children)
            body += _chunk(b"nGRP", content)
        elif kind == "shp":
            model_ids = node[2]
            content = struct.pack("<i", node_id) + _dict({}) + struct.pack("<i", len(model_ids))
            content += b"".join(struct.pack("<i", m) + _dict({}) for m in model_ids)
            body += _chunk(b"nSHP", content)

    if palette is not None:
        rgba = list(palette) + [(0, 0, 0)] * (256 - len(palette))
        body += _chunk(b"RGBA", b"".join(struct.pack("<BBBB", r, g, b, 255) for r, g, b in rgba))

    return b"VOX " + struct.pack("<I", version) + _chunk(b"MAIN", b"", body)


def write_vox(path: Path, *args, **kwargs) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_vox_bytes(*args, **kwargs))
    return path


# ============== Scene fixtures ==============

def blue_palette() -> np.ndarray:
    palette = np.zeros((256, 3), dtype=np.uint8)
    palette[0] = BLUE
    return palette


def single_voxel_scene(size=(2, 2, 2), color_index=0) -> VoxScene:
    """One voxel at local (0, 0, 0) in a model of the given size."""
    model = VoxModel(size=size, voxels=np.array([[0, 0, 0, color_index]]))
    return VoxScene.single(model, blue_palette())


def filled_model(size) -> VoxModel:
    """Model with every cell occupied, palette index 0."""
    w, h, d = size
    xs, ys, zs = np.meshgrid(np.arange(w), np.arange(h), np.arange(d), indexing="ij")
    voxels = np.column_stack([xs.ravel(), ys.ravel(), zs.ravel(), np.zeros(w * h * d, dtype=int)])
    return VoxModel(size=size, voxels=voxels)


def scene_with_nodes(models, nodes, palette=None) -> VoxScene:
    return VoxScene(
        models=list(models),
        palette=palette if palette is not None else blue_palette(),
        nodes=dict(nodes)
    )


@pytest.fixture
def blue_scene():
    return single_voxel_scene()


@pytest.fixture
def unit_model():
    return VoxModel(size=(1, 1, 1), voxels=np.array([[0, 0, 0, 0]]))


__all__ = [
    "BLUE", "make_vox_bytes", "write_vox", "blue_palette", "single_voxel_scene",
    "filled_model", "scene_with_nodes", "TransformNode", "GroupNode", "ShapeNode",
]
