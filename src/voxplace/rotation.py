"""
MagicaVoxel rotation decoding.

A rotation is stored in a transform frame's "_r" attribute as one byte:
- bits 0-1: index of the non-zero entry in row 0
- bits 2-3: index of the non-zero entry in row 1
- bits 4, 5, 6: sign of rows 0, 1, 2 (set = negative)

Row 2 takes whichever axis rows 0 and 1 left over. The result is one of the
48 signed permutation matrices (24 proper rotations plus their mirrors).
"""

import numpy as np
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Reserved selector value: there is no fourth axis
_RESERVED_AXIS = 3


def identity() -> np.ndarray:
    """Fresh 3x3 integer identity matrix."""
    return np.eye(3, dtype=np.int64)


def decode_rotation(code: int) -> Optional[np.ndarray]:
    """
    Decode a rotation byte into a signed permutation matrix.

    Args:
        code: Encoded rotation (0-255)

    Returns:
        3x3 integer matrix, or None if the encoding is invalid
        (a selector is 3, both selectors pick the same axis, or the
        value does not fit in a byte)
    """
    if not 0 <= code <= 0xFF:
        return None

    first = code & 3
    second = (code >> 2) & 3
    if first == _RESERVED_AXIS or second == _RESERVED_AXIS or first == second:
        return None
    third = ~(first | second) & 3

    rot = np.zeros((3, 3), dtype=np.int64)
    for row, axis in enumerate((first, second, third)):
        rot[row, axis] = -1 if (code >> (4 + row)) & 1 else 1
    return rot


def rotation_or_identity(code: int) -> np.ndarray:
    """Decode a rotation byte, falling back to identity on invalid input."""
    rot = decode_rotation(code)
    if rot is None:
        logger.debug(f"Invalid rotation encoding {code}, using identity")
        return identity()
    return rot


def parse_rotation(text: Optional[str]) -> np.ndarray:
    """
    Parse a transform frame's "_r" attribute.

    Missing or non-numeric values give identity.
    """
    if text is None:
        return identity()
    try:
        code = int(text.strip())
    except ValueError:
        logger.debug(f"Unparseable rotation {text!r}, using identity")
        return identity()
    return rotation_or_identity(code)


def is_signed_permutation(matrix: np.ndarray) -> bool:
    """True if every row and column holds exactly one entry of +/-1."""
    matrix = np.asarray(matrix)
    if matrix.shape != (3, 3):
        return False
    if not np.all(np.isin(matrix, (-1, 0, 1))):
        return False
    nonzero = matrix != 0
    return bool(np.all(nonzero.sum(axis=0) == 1) and np.all(nonzero.sum(axis=1) == 1))
