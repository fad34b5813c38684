"""
Data I/O utilities.

Handles resolving model assets, loading placement specs and persisting
classified blocks. Asset specifiers are dotted paths relative to the
asset directory: "dungeon.tower" -> <asset_dir>/dungeon/tower.vox
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Dict, Any, Tuple, Union
from dataclasses import dataclass, field

from .blocks import Block, ReplacementTable
from .config import FillMode
from .errors import ModelNotFoundError, PlaceSpecError, VoxFormatError
from .vox import VoxScene, load_vox

logger = logging.getLogger(__name__)

try:
    import yaml
    YAML_AVAILABLE = True
except ImportError:
    YAML_AVAILABLE = False
    logger.warning("PyYAML not available")

Vec3 = Tuple[int, int, int]


# ============== Model provider ==============

class ModelProvider:
    """
    Resolve asset specifiers to decoded voxel scenes.

    Decoded scenes are cached by specifier. Models can also be registered
    in memory, which takes precedence over the asset directory.
    """

    def __init__(self, asset_dir: Path = Path("assets"), fallback: str = "voxygen.voxel.not_found"):
        self.asset_dir = Path(asset_dir)
        self.fallback = fallback
        self._cache: Dict[str, VoxScene] = {}

    def register(self, name: str, scene: VoxScene) -> None:
        self._cache[name] = scene

    def path_for(self, name: str) -> Path:
        return self.asset_dir.joinpath(*name.split('.')).with_suffix('.vox')

    def resolve(self, name: str) -> VoxScene:
        """
        Load a model by specifier.

        Raises:
            ModelNotFoundError: If the file is missing or cannot be decoded
        """
        if name in self._cache:
            return self._cache[name]

        path = self.path_for(name)
        if not path.exists():
            raise ModelNotFoundError(f"No asset for {name!r} at {path}")
        try:
            scene = load_vox(path)
        except (OSError, VoxFormatError) as e:
            raise ModelNotFoundError(f"Could not load {name!r}: {e}") from e

        self._cache[name] = scene
        return scene

    def load_graceful(self, name: str) -> VoxScene:
        """Resolve a model, substituting the fallback model on failure."""
        try:
            return self.resolve(name)
        except ModelNotFoundError as e:
            logger.warning(f"Could not load vox file for placement: {name} ({e})")
            return self.resolve(self.fallback)


# ============== Placement spec ==============

@dataclass
class PieceSpec:
    """One model placed at an integer offset."""
    name: str
    offset: Vec3 = (0, 0, 0)

    @classmethod
    def parse(cls, data: Any) -> "PieceSpec":
        """Accepts [name, [x, y, z]] or {"name": ..., "offset": [x, y, z]}."""
        if isinstance(data, dict):
            name, offset = data.get("name"), data.get("offset", (0, 0, 0))
        elif isinstance(data, (list, tuple)) and len(data) == 2:
            name, offset = data
        else:
            raise PlaceSpecError(f"Piece must be [name, [x, y, z]], got {data!r}")
        if not isinstance(name, str) or not name:
            raise PlaceSpecError(f"Piece name must be a non-empty string, got {name!r}")
        try:
            x, y, z = (int(v) for v in offset)
        except (TypeError, ValueError):
            raise PlaceSpecError(f"Piece offset must be [x, y, z], got {offset!r}")
        return cls(name=name, offset=(x, y, z))


@dataclass
class PlaceSpec:
    """
    What to place and how to turn it into blocks.

    fill_mode REGIONS writes every cell inside the placed regions;
    OCCUPIED writes only cells holding a voxel.
    """
    pieces: List[PieceSpec] = field(default_factory=list)
    replacements: ReplacementTable = field(default_factory=ReplacementTable)
    fill_mode: FillMode = FillMode.REGIONS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaceSpec":
        if not isinstance(data, dict):
            raise PlaceSpecError(f"Placement spec must be a mapping, got {type(data).__name__}")
        pieces = [PieceSpec.parse(p) for p in data.get("pieces") or []]
        fill_within = data.get("fill_within_regions", True)
        if not isinstance(fill_within, bool):
            raise PlaceSpecError(f"fill_within_regions must be true or false, got {fill_within!r}")
        return cls(
            pieces=pieces,
            replacements=ReplacementTable.from_list(data.get("replacements")),
            fill_mode=FillMode.REGIONS if fill_within else FillMode.OCCUPIED
        )

    @classmethod
    def load(cls, path: Path) -> "PlaceSpec":
        """
        Load a placement spec from YAML (.yaml/.yml) or JSON.

        Raises:
            PlaceSpecError: If the file cannot be parsed
        """
        path = Path(path)
        with open(path) as f:
            if path.suffix in ('.yaml', '.yml'):
                if not YAML_AVAILABLE:
                    raise ImportError("PyYAML required for YAML placement specs")
                try:
                    data = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise PlaceSpecError(f"Invalid YAML in {path}: {e}") from e
            else:
                try:
                    data = json.load(f)
                except json.JSONDecodeError as e:
                    raise PlaceSpecError(f"Invalid JSON in {path}: {e}") from e

        spec = cls.from_dict(data or {})
        logger.info(
            f"Loaded placement spec {path.name}: {len(spec.pieces)} pieces, "
            f"{len(spec.replacements)} replacements, fill={spec.fill_mode.value}"
        )
        return spec


# ============== Terrain store ==============

class TerrainStore:
    """
    File-backed block storage keyed by world position.

    Writes are buffered per chunk and persisted by flush_all(), which
    merges them into any existing chunk_X_Y_Z.json files.
    """

    def __init__(self, terrain_dir: Path, chunk_size: int = 32):
        self.terrain_dir = Path(terrain_dir)
        self.chunk_size = chunk_size
        self._pending: Dict[Vec3, Dict[Vec3, Block]] = {}

    def _key(self, wpos) -> Vec3:
        s = self.chunk_size
        return (int(wpos[0]) // s, int(wpos[1]) // s, int(wpos[2]) // s)

    def chunk_path(self, key: Vec3) -> Path:
        return self.terrain_dir / f"chunk_{key[0]}_{key[1]}_{key[2]}.json"

    @property
    def n_pending(self) -> int:
        return sum(len(blocks) for blocks in self._pending.values())

    def set_block(self, wpos, block: Block) -> None:
        wpos = (int(wpos[0]), int(wpos[1]), int(wpos[2]))
        self._pending.setdefault(self._key(wpos), {})[wpos] = block

    def _read_chunk(self, key: Vec3) -> Dict[Vec3, Block]:
        path = self.chunk_path(key)
        if not path.exists():
            return {}
        with open(path) as f:
            data = json.load(f)
        return {
            tuple(entry["pos"]): Block.from_dict(entry["block"])
            for entry in data.get("blocks", [])
        }

    def get_block(self, wpos) -> Optional[Block]:
        """Read a block back: pending writes first, then disk."""
        wpos = (int(wpos[0]), int(wpos[1]), int(wpos[2]))
        key = self._key(wpos)
        pending = self._pending.get(key, {})
        if wpos in pending:
            return pending[wpos]
        return self._read_chunk(key).get(wpos)

    def flush_all(self) -> int:
        """
        Persist all pending writes.

        Returns:
            Number of chunk files written
        """
        self.terrain_dir.mkdir(parents=True, exist_ok=True)
        written = 0
        for key, blocks in self._pending.items():
            merged = self._read_chunk(key)
            merged.update(blocks)
            with open(self.chunk_path(key), 'w') as f:
                json.dump({
                    "key": list(key),
                    "chunk_size": self.chunk_size,
                    "blocks": [
                        {"pos": list(pos), "block": block.to_dict()}
                        for pos, block in sorted(merged.items())
                    ]
                }, f)
            written += 1
        logger.info(f"Flushed {self.n_pending} blocks into {written} chunk files in {self.terrain_dir}")
        self._pending.clear()
        return written
