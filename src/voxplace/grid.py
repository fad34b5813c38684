"""
Sparse chunked voxel grid.

World space is split into cubic chunks of chunk_size cells. Chunks are
allocated on demand and never freed during a run. A cell can only be
written once its chunk exists; writing anywhere else is a bug in the
caller's allocation order and raises ChunkMissingError.
"""

import numpy as np
from typing import Tuple, Optional, Dict, Iterator, Any
from dataclasses import dataclass
import logging

from .errors import ChunkMissingError

logger = logging.getLogger(__name__)

Vec3 = Tuple[int, int, int]

# Cell flag bits
OCCUPIED = 1 << 0
HOLLOW = 1 << 1
GLOWY = 1 << 2
SHINY = 1 << 3
SPECIAL = 1 << 4


@dataclass(frozen=True)
class Cell:
    """
    State of one grid position.

    An empty cell has no color. Occupied cells carry an RGB color and
    the hollow / glowy / shiny / special flags.
    """
    color: Optional[Vec3] = None
    hollow: bool = False
    glowy: bool = False
    shiny: bool = False
    special: bool = False

    @classmethod
    def empty(cls) -> "Cell":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.color is None

    @property
    def flags(self) -> int:
        if self.color is None:
            return 0
        bits = OCCUPIED
        if self.hollow:
            bits |= HOLLOW
        if self.glowy:
            bits |= GLOWY
        if self.shiny:
            bits |= SHINY
        if self.special:
            bits |= SPECIAL
        return bits

    @classmethod
    def from_raw(cls, color: np.ndarray, flags: int) -> "Cell":
        """Build a Cell from a chunk's stored color and flag bits."""
        if not flags & OCCUPIED:
            return cls.empty()
        return cls(
            color=(int(color[0]), int(color[1]), int(color[2])),
            hollow=bool(flags & HOLLOW),
            glowy=bool(flags & GLOWY),
            shiny=bool(flags & SHINY),
            special=bool(flags & SPECIAL)
        )


class Chunk:
    """
    Fixed-size cube of cells, initially all empty.

    Colors and flags are stored as dense numpy arrays indexed [x, y, z].
    The meta slot is reserved for the storage backend.
    """

    def __init__(self, size: int, meta: Any = None):
        self.size = size
        self.colors = np.zeros((size, size, size, 3), dtype=np.uint8)
        self.flags = np.zeros((size, size, size), dtype=np.uint8)
        self.meta = meta

    def get(self, local: Vec3) -> Cell:
        x, y, z = local
        return Cell.from_raw(self.colors[x, y, z], int(self.flags[x, y, z]))

    def set(self, local: Vec3, cell: Cell) -> None:
        x, y, z = local
        self.colors[x, y, z] = cell.color if cell.color is not None else (0, 0, 0)
        self.flags[x, y, z] = cell.flags

    def occupied_mask(self) -> np.ndarray:
        """Boolean [x, y, z] mask of occupied cells."""
        return (self.flags & OCCUPIED) != 0

    @property
    def n_occupied(self) -> int:
        return int(self.occupied_mask().sum())

    def iter_cells(self) -> Iterator[Tuple[Vec3, Cell]]:
        """Yield (local_pos, cell) for every cell in the chunk."""
        for x in range(self.size):
            for y in range(self.size):
                for z in range(self.size):
                    yield (x, y, z), self.get((x, y, z))


class SparseScene:
    """
    Mapping from chunk key to Chunk.

    Chunk key = floor(world position / chunk_size) per axis.
    """

    def __init__(self, chunk_size: int = 32):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size
        self._chunks: Dict[Vec3, Chunk] = {}

    def __len__(self) -> int:
        return len(self._chunks)

    def __contains__(self, key: Vec3) -> bool:
        return tuple(key) in self._chunks

    def pos_key(self, wpos) -> Vec3:
        """Chunk key owning a world position."""
        s = self.chunk_size
        return (int(wpos[0]) // s, int(wpos[1]) // s, int(wpos[2]) // s)

    def key_pos(self, key) -> Vec3:
        """World position of a chunk's minimum corner."""
        s = self.chunk_size
        return (int(key[0]) * s, int(key[1]) * s, int(key[2]) * s)

    def get_key(self, key) -> Optional[Chunk]:
        return self._chunks.get(tuple(int(k) for k in key))

    def ensure_chunk(self, key) -> Chunk:
        """Insert an empty chunk at key unless one is already there."""
        key = tuple(int(k) for k in key)
        chunk = self._chunks.get(key)
        if chunk is None:
            chunk = Chunk(self.chunk_size)
            self._chunks[key] = chunk
        return chunk

    def ensure_range(self, min_wpos, max_wpos) -> int:
        """
        Ensure every chunk overlapping an inclusive world box exists.

        Returns:
            Number of chunks newly allocated
        """
        min_key = self.pos_key(min_wpos)
        max_key = self.pos_key(max_wpos)
        before = len(self._chunks)
        for x in range(min_key[0], max_key[0] + 1):
            for y in range(min_key[1], max_key[1] + 1):
                for z in range(min_key[2], max_key[2] + 1):
                    self.ensure_chunk((x, y, z))
        return len(self._chunks) - before

    def get(self, wpos) -> Optional[Cell]:
        """
        Read the cell at a world position.

        Returns None when the owning chunk does not exist, which is
        distinct from an allocated but empty cell.
        """
        key = self.pos_key(wpos)
        chunk = self._chunks.get(key)
        if chunk is None:
            return None
        origin = self.key_pos(key)
        return chunk.get(tuple(int(w) - o for w, o in zip(wpos, origin)))

    def set(self, wpos, cell: Cell) -> None:
        key = self.pos_key(wpos)
        chunk = self._chunks.get(key)
        if chunk is None:
            raise ChunkMissingError(f"Write to {tuple(wpos)} but chunk {key} is not allocated")
        origin = self.key_pos(key)
        chunk.set(tuple(int(w) - o for w, o in zip(wpos, origin)), cell)

    def set_many(self, wpos: np.ndarray, colors: np.ndarray, flags: np.ndarray) -> None:
        """
        Write many cells at once, grouped by chunk.

        All owning chunks are checked before anything is written, so a
        missing chunk leaves the grid untouched.

        Args:
            wpos: Nx3 integer world positions
            colors: Nx3 uint8 colors
            flags: N uint8 flag bits
        """
        wpos = np.asarray(wpos, dtype=np.int64).reshape(-1, 3)
        if len(wpos) == 0:
            return
        colors = np.asarray(colors, dtype=np.uint8).reshape(-1, 3)
        flags = np.asarray(flags, dtype=np.uint8).reshape(-1)

        keys = np.floor_divide(wpos, self.chunk_size)
        unique_keys, inverse = np.unique(keys, axis=0, return_inverse=True)
        inverse = inverse.reshape(-1)

        chunks = []
        for key in unique_keys:
            chunk = self._chunks.get(tuple(int(k) for k in key))
            if chunk is None:
                raise ChunkMissingError(f"Write into chunk {tuple(int(k) for k in key)} which is not allocated")
            chunks.append(chunk)

        local = wpos - keys * self.chunk_size
        for i, chunk in enumerate(chunks):
            mask = inverse == i
            lx, ly, lz = local[mask].T
            chunk.colors[lx, ly, lz] = colors[mask]
            chunk.flags[lx, ly, lz] = flags[mask]

    def iter(self) -> Iterator[Tuple[Vec3, Chunk]]:
        """Yield (key, chunk) in allocation order."""
        return iter(list(self._chunks.items()))

    items = iter

    @property
    def n_occupied(self) -> int:
        return sum(chunk.n_occupied for chunk in self._chunks.values())
