"""
In-memory point cloud model shared by the PCD and LAS codecs.

Provides the PointCloud dataclass (float32 positions plus 8-bit RGB) and
helpers for packing colors into the 0x00RRGGBB integers used by PCD.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, NamedTuple, Optional, Tuple

import numpy as np

DEFAULT_COLOR: Tuple[int, int, int] = (255, 255, 255)


class Point(NamedTuple):
    """A single colored point."""

    position: Tuple[float, float, float]
    color: Tuple[int, int, int]


def pack_rgb(rgb: np.ndarray) -> np.ndarray:
    """
    Pack (N, 3) uint8 colors into 0x00RRGGBB integers.

    Parameters
    ----------
    rgb : np.ndarray
        (N, 3) array of red, green, blue channels.

    Returns
    -------
    np.ndarray
        (N,) uint32 array.
    """
    rgb = np.asarray(rgb, dtype=np.uint32)
    return (rgb[:, 0] << 16) | (rgb[:, 1] << 8) | rgb[:, 2]


def unpack_rgb(packed: np.ndarray) -> np.ndarray:
    """Split 0x00RRGGBB integers into an (N, 3) uint8 array."""
    packed = np.asarray(packed, dtype=np.uint32)
    return np.column_stack(
        [(packed >> 16) & 0xFF, (packed >> 8) & 0xFF, packed & 0xFF]
    ).astype(np.uint8)


@dataclass
class PointCloud:
    """Container for colored point cloud data.

    Parameters
    ----------
    xyz : np.ndarray
        (N, 3) array of XYZ coordinates, stored as float32.
    rgb : np.ndarray, optional
        (N, 3) array of 8-bit colors. Defaults to white for every point.
    width : int
        Number of points per row (equals N for unorganized clouds).
    height : int
        Number of rows (1 for unorganized clouds).
    is_dense : bool
        False when invalid (NaN/Inf) points were dropped while loading.
    """

    xyz: np.ndarray
    rgb: Optional[np.ndarray] = None
    width: int = 0
    height: int = 1
    is_dense: bool = True

    def __post_init__(self):
        """Validate shapes and take ownership of the arrays."""
        self.xyz = np.array(self.xyz, dtype=np.float32)
        if self.xyz.size == 0:
            self.xyz = self.xyz.reshape(0, 3)

        if self.xyz.ndim != 2 or self.xyz.shape[1] != 3:
            raise ValueError(f"xyz must have shape (N, 3), got {self.xyz.shape}")

        if self.rgb is None:
            self.rgb = np.tile(
                np.array(DEFAULT_COLOR, dtype=np.uint8), (len(self.xyz), 1)
            )
        else:
            rgb = np.asarray(self.rgb)
            if rgb.size == 0:
                rgb = rgb.reshape(0, 3)
            if rgb.ndim != 2 or rgb.shape[1] != 3:
                raise ValueError(f"rgb must have shape (N, 3), got {rgb.shape}")
            if len(rgb) != len(self.xyz):
                raise ValueError(
                    f"rgb length ({len(rgb)}) must match xyz length ({len(self.xyz)})"
                )
            self.rgb = np.array(rgb, dtype=np.uint8)

        if self.width == 0 and len(self.xyz) > 0:
            self.width = len(self.xyz)

    @classmethod
    def from_points(cls, points: Iterable[Point], **kwargs) -> "PointCloud":
        """Build a cloud from an iterable of ``Point`` (or (position, color) pairs)."""
        points = list(points)
        xyz = np.array([p[0] for p in points], dtype=np.float32).reshape(-1, 3)
        rgb = np.array([p[1] for p in points], dtype=np.uint8).reshape(-1, 3)
        return cls(xyz=xyz, rgb=rgb, **kwargs)

    def __len__(self) -> int:
        return len(self.xyz)

    def __iter__(self) -> Iterator[Point]:
        for i in range(len(self.xyz)):
            yield self[i]

    def __getitem__(self, index: int) -> Point:
        pos = self.xyz[index]
        col = self.rgb[index]
        return Point(
            (float(pos[0]), float(pos[1]), float(pos[2])),
            (int(col[0]), int(col[1]), int(col[2])),
        )

    @property
    def n_points(self) -> int:
        """Return number of points in the cloud."""
        return len(self.xyz)

    @property
    def packed_rgb(self) -> np.ndarray:
        """Return colors packed as 0x00RRGGBB uint32 values."""
        return pack_rgb(self.rgb)

    def finite_mask(self) -> np.ndarray:
        """Return a boolean mask of points whose coordinates are all finite."""
        return np.isfinite(self.xyz).all(axis=1)

    def bounding_box(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Return (min, max) corners of the cloud.

        Both corners are zero for an empty cloud.
        """
        if self.n_points == 0:
            zero = np.zeros(3, dtype=np.float32)
            return zero, zero.copy()
        return self.xyz.min(axis=0), self.xyz.max(axis=0)

    @property
    def bounds(self) -> Dict[str, tuple]:
        """Return min/max for each dimension.

        Returns
        -------
        dict
            Dictionary with 'x', 'y', 'z' keys containing (min, max) tuples.
        """
        mins, maxs = self.bounding_box()
        return {
            "x": (float(mins[0]), float(maxs[0])),
            "y": (float(mins[1]), float(maxs[1])),
            "z": (float(mins[2]), float(maxs[2])),
        }

    @property
    def centroid(self) -> np.ndarray:
        """Return centroid of the point cloud."""
        if self.n_points == 0:
            return np.zeros(3, dtype=np.float64)
        return self.xyz.astype(np.float64).mean(axis=0)

    @property
    def extent(self) -> Dict[str, float]:
        """Return extent (range) for each dimension."""
        bounds = self.bounds
        return {
            "x": bounds["x"][1] - bounds["x"][0],
            "y": bounds["y"][1] - bounds["y"][0],
            "z": bounds["z"][1] - bounds["z"][0],
        }
