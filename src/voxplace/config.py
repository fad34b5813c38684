"""
Configuration and run metadata for voxel placement.

Fill Model:
- REGIONS (default): every cell inside a placed model's bounding box is
  written, empty cells become explicit "no block" values
- OCCUPIED: only occupied cells are written, surrounding terrain is kept
"""

from enum import Enum
from dataclasses import dataclass, field, fields
from typing import Optional, Dict, Any
import json
from pathlib import Path


class FillMode(Enum):
    """
    Which grid cells are handed to the terrain store.

    REGIONS: cells covered by the bounding region set
        - Carves the structure's footprint out of existing terrain
        - Matches the behavior of a placed prefab

    OCCUPIED: cells holding a voxel
        - Leaves the surrounding terrain untouched
    """
    REGIONS = "regions"
    OCCUPIED = "occupied"


@dataclass
class RunSummary:
    """
    Summary of a placement run, written next to the terrain output.
    """
    n_pieces: int
    n_chunks: int
    n_regions: int
    n_blocks: int
    n_empty: int
    fill_mode: str
    seed: Optional[int] = None
    chunk_files_written: int = 0
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_pieces": self.n_pieces,
            "n_chunks": self.n_chunks,
            "n_regions": self.n_regions,
            "n_blocks": self.n_blocks,
            "n_empty": self.n_empty,
            "fill_mode": self.fill_mode,
            "seed": self.seed,
            "chunk_files_written": self.chunk_files_written,
            "config": self.config
        }

    def save(self, path: Path) -> None:
        """Save summary to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


@dataclass
class Config:
    """
    Global configuration for a placement run.

    Grid chunks are cubes of chunk_size cells. The fill mode normally
    comes from the placement spec; fill_mode here overrides it.
    """

    # Grid chunk edge length (cells)
    chunk_size: int = 32

    # Overrides the spec's fill_within_regions flag when set
    fill_mode: Optional[FillMode] = None

    # Seed for weighted block choices (None = fresh entropy)
    seed: Optional[int] = None

    # Asset substituted when a piece's model cannot be loaded
    fallback_model: str = "voxygen.voxel.not_found"

    # Paths (relative to working directory)
    asset_dir: Path = field(default_factory=lambda: Path("assets"))
    terrain_dir: Path = field(default_factory=lambda: Path("terrain"))

    show_progress: bool = True

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk_size": self.chunk_size,
            "fill_mode": self.fill_mode.value if self.fill_mode else None,
            "seed": self.seed,
            "fallback_model": self.fallback_model,
            "asset_dir": str(self.asset_dir),
            "terrain_dir": str(self.terrain_dir),
            "show_progress": self.show_progress
        }

    @classmethod
    def from_json(cls, path: Path) -> "Config":
        """
        Load config from JSON file.

        Raises:
            ValueError: If the file is not valid JSON, is not an object,
                or names an unknown field
        """
        with open(path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must hold a JSON object")
        unknown = set(data) - {fld.name for fld in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown config fields in {path}: {sorted(unknown)}")
        if data.get("fill_mode") is not None:
            data["fill_mode"] = FillMode(data["fill_mode"])
        data["asset_dir"] = Path(data.get("asset_dir", "assets"))
        data["terrain_dir"] = Path(data.get("terrain_dir", "terrain"))
        return cls(**data)

    def save(self, path: Path) -> None:
        """Save config to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

