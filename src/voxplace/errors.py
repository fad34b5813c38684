"""
Exception types raised by the placement pipeline.

Recoverable conditions (missing model, bad rotation, out-of-palette voxel)
never raise; they are substituted or skipped where they are detected.
Everything here aborts the run.
"""


class VoxPlaceError(Exception):
    """Base class for all placement errors."""


class ChunkMissingError(VoxPlaceError, LookupError):
    """A cell was written into a chunk that was never allocated."""


class SceneGraphError(VoxPlaceError, ValueError):
    """The scene graph references a missing node or contains a cycle."""


class VoxFormatError(VoxPlaceError, ValueError):
    """A .vox file could not be decoded."""


class ModelNotFoundError(VoxPlaceError, LookupError):
    """No model could be resolved for an asset specifier."""


class PlaceSpecError(VoxPlaceError, ValueError):
    """The placement spec is malformed."""
