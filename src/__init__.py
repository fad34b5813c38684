"""
Vox Place - MagicaVoxel scene placement into a chunked block world.

Pipeline:
- voxplace: shared modules (grid, regions, blocks, .vox reader, I/O)
- assembly: scene graph -> sparse chunked grid
- place_all: classify the grid and write the terrain store

Usage:
    python src/place_all.py --spec config/place.yaml --assets assets --terrain terrain
"""

__version__ = "1.0.0"
