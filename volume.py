# volume.py
"""
Axis-aligned box volumes and the sampling helpers built on them.

A Volume is the unit of configuration for both the containment zone a
particle must stay inside and the creation zones new particles are
spawned in. This module provides uniform point sampling inside one box,
count-uniform sampling across several boxes, and inclusive containment
tests.
"""
import logging
import numpy as np
from typing import Any, Dict, Sequence

# --- Data Contracts ---
#
# class Volume:
#   - __init__(self, position, size):
#     - Inputs:
#       - position: 3 floats, the center of the box.
#       - size: 3 floats, the full extents along each axis.
#     - Side Effects: None. Raises ValueError if any size component is negative.
#     - Invariants:
#       - self.position and self.size are read-only float64 arrays of shape (3,).
#       - self.minimum == position - size / 2, self.maximum == position + size / 2.
#
# sample_point(volume: Volume, rng: np.random.Generator) -> np.ndarray:
#   - Outputs: float64 array of shape (3,) inside the box.
#
# sample_weighted(volumes: Sequence[Volume], rng) -> np.ndarray:
#   - Outputs: a point in one of the volumes. The volume is picked uniformly
#     by index, NOT in proportion to its size.
#
# contains(volume: Volume, point) -> bool:
#   - Outputs: True iff minimum <= point <= maximum on every axis.


class Volume:
    """
    An immutable axis-aligned box, centered at `position` with full
    extents `size`.
    """
    def __init__(self, position: Sequence[float], size: Sequence[float]):
        self.position = np.array(position, dtype=np.float64).reshape(3)
        self.size = np.array(size, dtype=np.float64).reshape(3)

        if np.any(self.size < 0):
            msg = (
                f"Configuration error: volume size {self.size.tolist()} has a "
                f"negative extent. Every component must be >= 0."
            )
            logging.critical(msg)
            raise ValueError(msg)

        half = self.size / 2
        self.minimum = self.position - half
        self.maximum = self.position + half

        for array in (self.position, self.size, self.minimum, self.maximum):
            array.setflags(write=False)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Volume":
        """Builds a volume from a {"position": [...], "size": [...]} mapping."""
        if 'size' not in config:
            msg = f"Configuration error: volume {config!r} has no 'size'."
            logging.critical(msg)
            raise ValueError(msg)
        return cls(config.get('position', (0.0, 0.0, 0.0)), config['size'])

    @property
    def volume_size(self) -> float:
        return float(self.size[0] * self.size[1] * self.size[2])

    def __repr__(self) -> str:
        return f"Volume(position={self.position.tolist()}, size={self.size.tolist()})"


def sample_point(volume: Volume, rng: np.random.Generator) -> np.ndarray:
    """Returns a uniformly distributed point inside the box."""
    return volume.minimum + rng.random(3) * volume.size


def sample_points(volume: Volume, count: int, rng: np.random.Generator) -> np.ndarray:
    """Vectorised sample_point: returns an array of shape (count, 3)."""
    return volume.minimum + rng.random((count, 3)) * volume.size


def sample_weighted(volumes: Sequence[Volume], rng: np.random.Generator) -> np.ndarray:
    """
    Picks one of the volumes uniformly by index and samples a point in it.

    Each volume is equally likely regardless of its size. Callers that
    want density proportional to size must correct for it themselves.
    """
    if len(volumes) == 0:
        raise ValueError("Cannot sample from an empty list of volumes.")
    index = int(rng.integers(len(volumes)))
    return sample_point(volumes[index], rng)


def sample_weighted_points(volumes: Sequence[Volume], count: int, rng: np.random.Generator) -> np.ndarray:
    """
    Vectorised sample_weighted. Every point picks its volume independently.
    """
    if len(volumes) == 0:
        raise ValueError("Cannot sample from an empty list of volumes.")
    lows = np.stack([v.minimum for v in volumes])
    sizes = np.stack([v.size for v in volumes])
    indices = rng.integers(len(volumes), size=count)
    return lows[indices] + rng.random((count, 3)) * sizes[indices]


def contains(volume: Volume, point: Sequence[float]) -> bool:
    """Inclusive point-in-box test."""
    p = np.asarray(point, dtype=np.float64)
    return bool(np.all(volume.minimum <= p) and np.all(p <= volume.maximum))


def contains_points(volume: Volume, points: np.ndarray) -> np.ndarray:
    """Vectorised contains: returns a boolean mask of shape (n,)."""
    points = np.asarray(points, dtype=np.float64)
    return np.all((volume.minimum <= points) & (points <= volume.maximum), axis=1)


def total_volume_size(volumes: Sequence[Volume]) -> float:
    return float(sum(v.volume_size for v in volumes))
