"""
Axis-aligned bounding regions covering placed models.

The region set is a covering approximation, not a decomposition:
boxes that contain one another collapse into the larger one, boxes that
merely overlap are both kept.
"""

import numpy as np
from typing import Tuple, List, Iterator
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)

Vec3 = Tuple[int, int, int]


@dataclass(frozen=True)
class Aabb:
    """Integer box with inclusive min and max corners."""
    min: Vec3
    max: Vec3

    @classmethod
    def from_corner(cls, pos, size) -> "Aabb":
        """Box starting at pos spanning size cells per axis."""
        lo = tuple(int(p) for p in pos)
        hi = tuple(int(p) + int(s) - 1 for p, s in zip(pos, size))
        return cls(min=lo, max=hi)

    @property
    def size(self) -> Vec3:
        return tuple(hi - lo + 1 for lo, hi in zip(self.min, self.max))

    def contains_point(self, p) -> bool:
        return all(lo <= int(v) <= hi for lo, v, hi in zip(self.min, p, self.max))

    def contains_aabb(self, other: "Aabb") -> bool:
        return all(a <= b for a, b in zip(self.min, other.min)) and \
            all(a >= b for a, b in zip(self.max, other.max))

    def intersects(self, other: "Aabb") -> bool:
        return all(
            a_lo <= b_hi and b_lo <= a_hi
            for a_lo, a_hi, b_lo, b_hi in zip(self.min, self.max, other.min, other.max)
        )

    def contains_points(self, points: np.ndarray) -> np.ndarray:
        """Vectorized containment test for Nx3 points."""
        points = np.asarray(points).reshape(-1, 3)
        return np.all((points >= np.array(self.min)) & (points <= np.array(self.max)), axis=1)


class BoundingRegionSet:
    """Minimal covering set of placed model bounding boxes."""

    def __init__(self):
        self._boxes: List[Aabb] = []

    def __len__(self) -> int:
        return len(self._boxes)

    def __iter__(self) -> Iterator[Aabb]:
        return iter(list(self._boxes))

    @property
    def boxes(self) -> List[Aabb]:
        return list(self._boxes)

    def insert(self, box: Aabb) -> bool:
        """
        Merge a box into the set.

        A box already covered by an existing one is dropped. Otherwise
        every existing box it covers is removed and the box is added.

        Returns:
            True if the set changed
        """
        for existing in self._boxes:
            if existing.contains_aabb(box):
                logger.debug(f"Region {box} covered by {existing}")
                return False

        kept = [existing for existing in self._boxes if not box.contains_aabb(existing)]
        removed = len(self._boxes) - len(kept)
        if removed:
            logger.debug(f"Region {box} subsumes {removed} existing region(s)")
        kept.append(box)
        self._boxes = kept
        return True

    def contains_point(self, p) -> bool:
        return any(box.contains_point(p) for box in self._boxes)

    def contains_points(self, points: np.ndarray) -> np.ndarray:
        """Vectorized test: True where a point lies in any region."""
        points = np.asarray(points).reshape(-1, 3)
        mask = np.zeros(len(points), dtype=bool)
        for box in self._boxes:
            mask |= box.contains_points(points)
        return mask

    def bounds(self) -> Aabb:
        """Single box enclosing every region."""
        if not self._boxes:
            raise ValueError("Region set is empty")
        lo = tuple(min(b.min[i] for b in self._boxes) for i in range(3))
        hi = tuple(max(b.max[i] for b in self._boxes) for i in range(3))
        return Aabb(min=lo, max=hi)
