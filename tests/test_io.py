"""
Tests for .vox decoding, model resolution, placement specs and the
terrain store.
"""

import json
from pathlib import Path

import numpy as np
import pytest

from voxplace.blocks import Block, BlockKind, SpriteKind, RandomSpec, SolidSpec
from voxplace.config import FillMode
from voxplace.errors import VoxFormatError, ModelNotFoundError, PlaceSpecError
from voxplace.io import ModelProvider, PieceSpec, PlaceSpec, TerrainStore
from voxplace.vox import (
    parse_vox,
    load_vox,
    default_palette,
    TransformNode,
    GroupNode,
    ShapeNode,
)

from conftest import BLUE, make_vox_bytes, write_vox

REPO_ROOT = Path(__file__).parent.parent


# ============== Vox Reader ==============

class TestParseVox:

    def test_models_and_zero_based_indices(self):
        data = make_vox_bytes([((2, 3, 4), [(0, 0, 0, 1), (1, 2, 3, 17)])])
        scene = parse_vox(data)
        assert len(scene.models) == 1
        model = scene.models[0]
        assert model.size == (2, 3, 4)
        np.testing.assert_array_equal(model.voxels, [[0, 0, 0, 0], [1, 2, 3, 16]])

    def test_palette_chunk(self):
        data = make_vox_bytes([((1, 1, 1), [(0, 0, 0, 1)])], palette=[BLUE, (9, 8, 7)])
        scene = parse_vox(data)
        assert scene.palette.shape == (256, 3)
        assert tuple(scene.palette[0]) == BLUE
        assert tuple(scene.palette[1]) == (9, 8, 7)

    def test_default_palette_when_missing(self):
        scene = parse_vox(make_vox_bytes([((1, 1, 1), [(0, 0, 0, 1)])]))
        np.testing.assert_array_equal(scene.palette, default_palette())
        # file index 1 is white in the default palette
        assert tuple(scene.palette[0]) == (255, 255, 255)

    def test_scene_graph_nodes(self):
        nodes = [
            ("trn", 0, 1, {}),
            ("grp", 1, [2, 4]),
            ("trn", 2, 3, {"_t": "1 2 3", "_r": "17"}),
            ("shp", 3, [0]),
            ("trn", 4, 5, {}),
            ("shp", 5, [1]),
        ]
        models = [((1, 1, 1), [(0, 0, 0, 1)]), ((2, 2, 2), [])]
        scene = parse_vox(make_vox_bytes(models, nodes=nodes, version=200))

        assert isinstance(scene.nodes[0], TransformNode)
        assert scene.nodes[0].child == 1
        assert isinstance(scene.nodes[1], GroupNode)
        assert scene.nodes[1].children == [2, 4]
        assert scene.nodes[2].frames == [{"_t": "1 2 3", "_r": "17"}]
        assert isinstance(scene.nodes[5], ShapeNode)
        assert scene.nodes[5].models == [1]
        assert scene.models[1].n_voxels == 0

    def test_default_scene_graph_without_nodes(self):
        scene = parse_vox(make_vox_bytes([((1, 1, 1), []), ((1, 1, 1), [])]))
        shapes = [n for n in scene.nodes.values() if isinstance(n, ShapeNode)]
        assert sorted(m for s in shapes for m in s.models) == [0, 1]
        assert isinstance(scene.nodes[0], TransformNode)

    def test_bad_magic(self):
        with pytest.raises(VoxFormatError):
            parse_vox(b"NOPE" + b"\x00" * 20)

    def test_xyzi_before_size(self):
        data = bytearray(make_vox_bytes([((1, 1, 1), [(0, 0, 0, 1)])]))
        # Rename SIZE so XYZI appears without one
        idx = data.index(b"SIZE")
        data[idx:idx + 4] = b"JUNK"
        with pytest.raises(VoxFormatError):
            parse_vox(bytes(data))

    def test_truncated_file(self):
        data = make_vox_bytes([((1, 1, 1), [(0, 0, 0, 1)])])
        with pytest.raises(VoxFormatError):
            parse_vox(data[:-3])

    def test_load_vox_from_file(self, tmp_path):
        path = write_vox(tmp_path / "thing.vox", [((3, 3, 3), [(1, 1, 1, 2)])])
        scene = load_vox(path)
        assert scene.n_voxels == 1


# ============== Model Provider ==============

class TestModelProvider:

    def test_dotted_specifier_path(self, tmp_path):
        provider = ModelProvider(tmp_path)
        assert provider.path_for("dungeon.tower") == tmp_path / "dungeon" / "tower.vox"

    def test_resolve_and_cache(self, tmp_path):
        write_vox(tmp_path / "dungeon" / "tower.vox", [((1, 1, 1), [(0, 0, 0, 1)])])
        provider = ModelProvider(tmp_path)
        first = provider.resolve("dungeon.tower")
        assert first.n_voxels == 1
        assert provider.resolve("dungeon.tower") is first

    def test_missing_raises(self, tmp_path):
        with pytest.raises(ModelNotFoundError):
            ModelProvider(tmp_path).resolve("nothing.here")

    def test_undecodable_file_raises_not_found(self, tmp_path):
        (tmp_path / "broken.vox").write_bytes(b"garbage")
        with pytest.raises(ModelNotFoundError):
            ModelProvider(tmp_path).resolve("broken")

    def test_graceful_uses_fallback(self, tmp_path, caplog):
        write_vox(tmp_path / "voxygen" / "voxel" / "not_found.vox", [((1, 1, 1), [(0, 0, 0, 1)])])
        provider = ModelProvider(tmp_path)
        with caplog.at_level("WARNING"):
            scene = provider.load_graceful("missing.model")
        assert scene is provider.resolve("voxygen.voxel.not_found")
        assert "missing.model" in caplog.text


# ============== Placement Spec ==============

class TestPlaceSpec:

    def test_from_dict(self):
        spec = PlaceSpec.from_dict({
            "pieces": [["a.b", [1, 2, 3]], {"name": "c", "offset": [0, 0, -1]}],
            "fill_within_regions": False,
            "replacements": [{"color": [4, 119, 191], "block": {"kind": "Water"}}],
        })
        assert spec.pieces == [PieceSpec("a.b", (1, 2, 3)), PieceSpec("c", (0, 0, -1))]
        assert spec.fill_mode is FillMode.OCCUPIED
        assert spec.replacements.get(BLUE) == SolidSpec(BlockKind.WATER)

    def test_defaults(self):
        spec = PlaceSpec.from_dict({})
        assert spec.pieces == []
        assert len(spec.replacements) == 0
        assert spec.fill_mode is FillMode.REGIONS

    @pytest.mark.parametrize("data", [
        {"pieces": [["name"]]},
        {"pieces": [["", [0, 0, 0]]]},
        {"pieces": [["a", [0, 0]]]},
        {"pieces": [["a", "0 0 0"]]},
        {"fill_within_regions": "yes"},
        {"replacements": [{"color": [1, 2, 3], "block": {"kind": "Nope"}}]},
        ["not", "a", "mapping"],
    ])
    def test_invalid(self, data):
        with pytest.raises(PlaceSpecError):
            PlaceSpec.from_dict(data)

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "place.yaml"
        path.write_text(
            "pieces:\n"
            "  - [dungeon.tower, [0, 10, 0]]\n"
            "replacements:\n"
            "  - color: [1, 2, 3]\n"
            "    block: {sprite: StreetLamp}\n"
        )
        spec = PlaceSpec.load(path)
        assert spec.pieces == [PieceSpec("dungeon.tower", (0, 10, 0))]
        assert len(spec.replacements) == 1

    def test_load_json(self, tmp_path):
        path = tmp_path / "place.json"
        path.write_text(json.dumps({"pieces": [["x", [1, 1, 1]]]}))
        assert PlaceSpec.load(path).pieces == [PieceSpec("x", (1, 1, 1))]

    def test_load_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("pieces: [unclosed\n")
        with pytest.raises(PlaceSpecError):
            PlaceSpec.load(path)

    def test_shipped_example_spec(self):
        spec = PlaceSpec.load(REPO_ROOT / "config" / "place.yaml")
        assert len(spec.pieces) == 1
        assert len(spec.replacements) == 8
        assert isinstance(spec.replacements.get((63, 96, 12)), RandomSpec)
        assert spec.replacements.get((170, 56, 56)) == SolidSpec(BlockKind.LAVA, (255, 65, 0))


# ============== Terrain Store ==============

class TestTerrainStore:

    def test_pending_reads(self, tmp_path):
        store = TerrainStore(tmp_path / "terrain")
        store.set_block((1, 2, 3), Block.new(BlockKind.MISC, BLUE))
        assert store.get_block((1, 2, 3)) == Block.new(BlockKind.MISC, BLUE)
        assert store.get_block((0, 0, 0)) is None
        assert store.n_pending == 1

    def test_flush_writes_one_file_per_chunk(self, tmp_path):
        store = TerrainStore(tmp_path / "terrain", chunk_size=16)
        store.set_block((0, 0, 0), Block.empty())
        store.set_block((15, 0, 0), Block.air(SpriteKind.FIRE_BOWL_GROUND))
        store.set_block((-1, 0, 0), Block.new(BlockKind.ROCK, (5, 5, 5)))

        assert store.flush_all() == 2
        assert store.n_pending == 0
        assert (tmp_path / "terrain" / "chunk_0_0_0.json").exists()
        assert (tmp_path / "terrain" / "chunk_-1_0_0.json").exists()
        # Read back from disk
        assert store.get_block((15, 0, 0)) == Block.air(SpriteKind.FIRE_BOWL_GROUND)
        assert store.get_block((-1, 0, 0)) == Block.new(BlockKind.ROCK, (5, 5, 5))

    def test_flush_merges_with_existing(self, tmp_path):
        first = TerrainStore(tmp_path)
        first.set_block((1, 1, 1), Block.new(BlockKind.SAND, (1, 1, 1)))
        first.set_block((2, 2, 2), Block.new(BlockKind.SAND, (2, 2, 2)))
        first.flush_all()

        second = TerrainStore(tmp_path)
        second.set_block((2, 2, 2), Block.empty())
        second.flush_all()

        fresh = TerrainStore(tmp_path)
        assert fresh.get_block((1, 1, 1)) == Block.new(BlockKind.SAND, (1, 1, 1))
        assert fresh.get_block((2, 2, 2)) == Block.empty()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
