"""
Axis-aligned bounding boxes for mesh quantization domains.

Boxes are computed once from LOD-0 data and reused as the quantization
domain of every LOD of a mesh, so they are small immutable value objects.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np


@dataclass(frozen=True)
class AABB:
    """Axis-aligned bounding box with (3,) float64 corners."""
    min: np.ndarray
    max: np.ndarray

    @classmethod
    def from_points(cls, points: np.ndarray) -> 'AABB':
        """
        Compute the bounding box of a point set.

        Args:
            points: Points of shape (N, 2) or (N, 3). 2D points get z = 0.

        Returns:
            Bounding box; an empty point set yields a degenerate box at the origin.
        """
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[0] == 0:
            return cls(np.zeros(3), np.zeros(3))
        if points.shape[1] < 3:
            pad = np.zeros((points.shape[0], 3 - points.shape[1]))
            points = np.concatenate([points, pad], axis=1)
        return cls(points[:, :3].min(axis=0), points[:, :3].max(axis=0))

    @property
    def center(self) -> np.ndarray:
        return (self.min + self.max) * 0.5

    @property
    def half_size(self) -> np.ndarray:
        return (self.max - self.min) * 0.5

    @property
    def size(self) -> np.ndarray:
        return self.max - self.min

    def corners(self) -> np.ndarray:
        """Return the 8 corners as (8, 3)."""
        lo, hi = self.min, self.max
        return np.array([
            [x, y, z]
            for x in (lo[0], hi[0])
            for y in (lo[1], hi[1])
            for z in (lo[2], hi[2])
        ], dtype=np.float64)

    def transform(self, matrix: np.ndarray) -> 'AABB':
        """
        Bound of this box after a 4x4 column-vector transform.

        Args:
            matrix: (4, 4) transformation matrix

        Returns:
            Axis-aligned box enclosing the 8 transformed corners
        """
        corners = self.corners()
        homo = np.concatenate([corners, np.ones((8, 1))], axis=1)
        transformed = (np.asarray(matrix, dtype=np.float64) @ homo.T).T[:, :3]
        return AABB(transformed.min(axis=0), transformed.max(axis=0))

    def union(self, other: 'AABB') -> 'AABB':
        return AABB(np.minimum(self.min, other.min), np.maximum(self.max, other.max))


def union_all(boxes: Iterable[AABB]) -> Optional[AABB]:
    """Union of a sequence of boxes, or None if the sequence is empty."""
    result = None
    for box in boxes:
        result = box if result is None else result.union(box)
    return result
