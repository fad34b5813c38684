"""
Tests for configuration loading and saving.
"""

import json
from pathlib import Path

import pytest

from voxplace.config import Config, FillMode, RunSummary


# ============== Config ==============

class TestConfig:

    def test_defaults(self):
        config = Config()
        assert config.chunk_size == 32
        assert config.fill_mode is None
        assert config.fallback_model == "voxygen.voxel.not_found"

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            Config(chunk_size=0)

    def test_save_then_load(self, tmp_path):
        config = Config(
            chunk_size=8,
            fill_mode=FillMode.OCCUPIED,
            seed=7,
            asset_dir=tmp_path / "assets",
            terrain_dir=tmp_path / "terrain",
            show_progress=False
        )
        path = tmp_path / "out" / "config.json"
        config.save(path)

        loaded = Config.from_json(path)

        assert loaded == config
        assert isinstance(loaded.asset_dir, Path)

    def test_partial_file_uses_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"chunk_size": 16}))
        config = Config.from_json(path)
        assert config.chunk_size == 16
        assert config.terrain_dir == Path("terrain")
        assert config.fill_mode is None

    @pytest.mark.parametrize("content", [
        '{"chunk_sz": 8}',
        '[1, 2, 3]',
        '{"chunk_size": 8',
        '{"fill_mode": "everywhere"}',
        '{"chunk_size": -1}',
    ])
    def test_invalid_file(self, tmp_path, content):
        path = tmp_path / "config.json"
        path.write_text(content)
        with pytest.raises(ValueError):
            Config.from_json(path)


# ============== Run Summary ==============

class TestRunSummary:

    def test_save(self, tmp_path):
        summary = RunSummary(
            n_pieces=1, n_chunks=8, n_regions=1, n_blocks=8, n_empty=7,
            fill_mode="regions", seed=3, config=Config().to_dict()
        )
        path = tmp_path / "nested" / "summary.json"
        summary.save(path)

        with open(path) as f:
            data = json.load(f)
        assert data["n_blocks"] == 8
        assert data["chunk_files_written"] == 0
        assert data["config"]["chunk_size"] == 32


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
