#!/usr/bin/env python3
"""
Vox Place - Orchestrator

Assemble the pieces of a placement spec into a sparse voxel grid,
classify every cell and write the resulting blocks to the terrain store.

Usage:
    python src/place_all.py --spec config/place.yaml --assets assets --terrain terrain
    python src/place_all.py --spec place.json --fill occupied --seed 7 -v
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
from tqdm import tqdm

# Add src to path
sys.path.insert(0, str(Path(__file__).parent))

from voxplace.config import Config, FillMode, RunSummary
from voxplace.errors import VoxPlaceError
from voxplace.grid import Cell, Chunk, SparseScene
from voxplace.regions import BoundingRegionSet
from voxplace.blocks import classify_cell
from voxplace.io import ModelProvider, PlaceSpec, TerrainStore
from assembly.build import build_place

logger = logging.getLogger(__name__)


def chunk_positions(sparse_scene: SparseScene, key) -> np.ndarray:
    """World positions of every cell in a chunk, [x, y, z] index order."""
    s = sparse_scene.chunk_size
    local = np.stack(np.meshgrid(np.arange(s), np.arange(s), np.arange(s), indexing='ij'), axis=-1)
    return local.reshape(-1, 3) + np.array(sparse_scene.key_pos(key))


def select_cells(
    chunk: Chunk,
    wpos: np.ndarray,
    regions: BoundingRegionSet,
    fill_mode: FillMode
) -> np.ndarray:
    """Flat indices of the cells in a chunk that should be written."""
    if fill_mode is FillMode.REGIONS:
        mask = regions.contains_points(wpos)
    else:
        mask = chunk.occupied_mask().reshape(-1)
    return np.flatnonzero(mask)


def fill_terrain(
    sparse_scene: SparseScene,
    regions: BoundingRegionSet,
    spec: PlaceSpec,
    store: TerrainStore,
    config: Config,
    rng: Optional[np.random.Generator] = None
) -> RunSummary:
    """
    Classify the assembled grid and hand every selected cell to the store.

    Args:
        sparse_scene: Assembled grid
        regions: Bounding regions of the placed models
        spec: Placement spec (replacement table, fill mode)
        store: Terrain store receiving the blocks
        config: Configuration (fill mode override, seed, progress)
        rng: Random source; created from config.seed if omitted

    Returns:
        RunSummary (chunk_files_written is filled in by the caller)
    """
    rng = rng if rng is not None else np.random.default_rng(config.seed)
    fill_mode = config.fill_mode or spec.fill_mode

    n_blocks = 0
    n_empty = 0
    for key, chunk in tqdm(
        sparse_scene.iter(),
        total=len(sparse_scene),
        desc="Filling chunks",
        unit="chunk",
        disable=not config.show_progress
    ):
        logger.debug(f"Filling chunk {key}")
        wpos = chunk_positions(sparse_scene, key)
        flat_colors = chunk.colors.reshape(-1, 3)
        flat_flags = chunk.flags.reshape(-1)

        for i in select_cells(chunk, wpos, regions, fill_mode):
            cell = Cell.from_raw(flat_colors[i], int(flat_flags[i]))
            block = classify_cell(cell, spec.replacements, rng)
            store.set_block(wpos[i], block)
            n_blocks += 1
            if cell.is_empty:
                n_empty += 1

    logger.info(f"Classified {n_blocks} cells ({n_empty} empty) in {len(sparse_scene)} chunks")

    return RunSummary(
        n_pieces=len(spec.pieces),
        n_chunks=len(sparse_scene),
        n_regions=len(regions),
        n_blocks=n_blocks,
        n_empty=n_empty,
        fill_mode=fill_mode.value,
        seed=config.seed,
        config=config.to_dict()
    )


def run_place(spec: PlaceSpec, config: Config) -> Tuple[RunSummary, SparseScene, BoundingRegionSet]:
    """Assemble, classify and persist one placement spec."""
    provider = ModelProvider(config.asset_dir, config.fallback_model)
    sparse_scene, regions = build_place(spec, provider, config)

    store = TerrainStore(config.terrain_dir, config.chunk_size)
    summary = fill_terrain(sparse_scene, regions, spec, store, config)
    summary.chunk_files_written = store.flush_all()
    return summary, sparse_scene, regions


def main():
    parser = argparse.ArgumentParser(
        description="Vox Place - Place MagicaVoxel scenes into terrain"
    )
    parser.add_argument(
        "--spec", "-s",
        type=Path,
        default=Path("place.yaml"),
        help="Placement spec (YAML or JSON)"
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=None,
        help="Config JSON file"
    )
    parser.add_argument(
        "--assets", "-a",
        type=Path,
        default=None,
        help="Asset directory for model specifiers"
    )
    parser.add_argument(
        "--terrain", "-t",
        type=Path,
        default=None,
        help="Terrain output directory"
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Grid chunk edge length"
    )
    parser.add_argument(
        "--fill",
        choices=["regions", "occupied"],
        default=None,
        help="Override the spec's fill mode"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for weighted block choices"
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Where to write the run summary (default: <terrain>/place_summary.json)"
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging"
    )

    args = parser.parse_args()

    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    # Build config
    try:
        config = Config.from_json(args.config) if args.config else Config()
    except (OSError, ValueError, TypeError) as e:
        logger.error(f"Invalid config {args.config}: {e}")
        sys.exit(1)
    if args.assets is not None:
        config.asset_dir = args.assets
    if args.terrain is not None:
        config.terrain_dir = args.terrain
    if args.chunk_size is not None:
        config.chunk_size = args.chunk_size
    if args.fill is not None:
        config.fill_mode = FillMode(args.fill)
    if args.seed is not None:
        config.seed = args.seed
    if args.no_progress:
        config.show_progress = False

    logger.info(f"Spec: {args.spec}")
    logger.info(f"Assets: {config.asset_dir}")
    logger.info(f"Terrain: {config.terrain_dir}")

    try:
        spec = PlaceSpec.load(args.spec)
        summary, _, _ = run_place(spec, config)
    except (VoxPlaceError, OSError, ValueError) as e:
        logger.error(f"Placement failed: {e}")
        sys.exit(1)

    # Save summary
    summary_path = args.summary or config.terrain_dir / "place_summary.json"
    summary.save(summary_path)
    logger.info(f"Summary saved to: {summary_path}")

    logger.info(f"{'='*60}")
    logger.info(
        f"COMPLETE: {summary.n_blocks} blocks in {summary.chunk_files_written} chunk files "
        f"({summary.n_regions} regions)"
    )
    logger.info(f"{'='*60}")


if __name__ == "__main__":
    main()
