# transform.py
"""
Reference frames and instance transforms.

This module defines the ParentTransform (the frame particle positions are
converted to and from), the InstanceBuffer (the fixed-size sink handed to
the renderer), and emit_transforms, which writes one 4x4 matrix per pool
slot into that sink.
"""
import logging
import numpy as np
from numba import jit
from typing import Any, Optional, Sequence

from constants import INSTANCE_SCALE_FACTOR, PARKED_POSITION

# --- Data Contracts ---
#
# class ParentTransform:
#   - __init__(self, matrix: Optional[np.ndarray] = None):
#     - Inputs: an optional 4x4 affine matrix (defaults to identity).
#     - Invariants: self.inverse is always the inverse of self.matrix.
#
#   - local_to_world(points) / world_to_local(points) -> np.ndarray:
#     - Inputs: an array of shape (3,) or (n, 3).
#     - Outputs: a new array of the same shape.
#
# emit_transforms(positions, sizes, count, out) -> np.ndarray:
#   - Inputs:
#     - positions: float64 array (limit, 3); slots 0..count-1 are live.
#     - sizes: float64 array (limit,).
#     - count: int, number of live particles.
#     - out: float32 array (capacity, 4, 4).
#   - Outputs: `out`, with every slot written exactly once.
#   - Invariants:
#     - slot i < count: translation = positions[i], identity rotation,
#       uniform scale sizes[i] * INSTANCE_SCALE_FACTOR.
#     - slot i >= count: translation = PARKED_POSITION, zero scale.
#
# class InstanceBuffer:
#   - __init__(self, capacity: int, color, opacity, texture):
#     - Side Effects: allocates a float32 (capacity, 4, 4) matrix array,
#       initially all parked.
#   - dispose(self) -> None: releases the matrices. Later writes raise RuntimeError.


class ParentTransform:
    """
    A 4x4 affine frame. Particles are simulated in world space, but their
    spawn and containment volumes are defined in this frame's local space.
    """
    def __init__(self, matrix: Optional[np.ndarray] = None):
        self.set_matrix(np.identity(4) if matrix is None else matrix)

    @classmethod
    def from_translation(cls, offset: Sequence[float]) -> "ParentTransform":
        matrix = np.identity(4)
        matrix[:3, 3] = offset
        return cls(matrix)

    def set_matrix(self, matrix: np.ndarray) -> None:
        matrix = np.array(matrix, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"Parent transform must be 4x4, got shape {matrix.shape}.")
        # Raises numpy.linalg.LinAlgError for a degenerate frame.
        self.inverse = np.linalg.inv(matrix)
        self.matrix = matrix

    @property
    def position(self) -> np.ndarray:
        return self.matrix[:3, 3].copy()

    def translate(self, delta: Sequence[float]) -> None:
        """Moves the frame's origin by `delta` in world units."""
        matrix = self.matrix.copy()
        matrix[:3, 3] += np.asarray(delta, dtype=np.float64)
        self.set_matrix(matrix)

    def local_to_world(self, points: np.ndarray) -> np.ndarray:
        return _apply_affine(self.matrix, points)

    def world_to_local(self, points: np.ndarray) -> np.ndarray:
        return _apply_affine(self.inverse, points)


def _apply_affine(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    points = np.asarray(points, dtype=np.float64)
    return points @ matrix[:3, :3].T + matrix[:3, 3]


@jit(nopython=True)
def _compose_transforms_numba(positions, sizes, count, out, parked, scale_factor):
    """
    Numba-jitted composition of per-slot instance matrices.

    Every slot of `out` is rewritten, so a slot that held a live particle
    last frame can never keep a stale position.
    """
    capacity = out.shape[0]
    for i in range(capacity):
        out[i, :, :] = 0.0
        out[i, 3, 3] = 1.0
        if i < count:
            scale = sizes[i] * scale_factor
            out[i, 0, 0] = scale
            out[i, 1, 1] = scale
            out[i, 2, 2] = scale
            out[i, 0, 3] = positions[i, 0]
            out[i, 1, 3] = positions[i, 1]
            out[i, 2, 3] = positions[i, 2]
        else:
            # Zero scale keeps the parked slot invisible.
            out[i, 0, 3] = parked[0]
            out[i, 1, 3] = parked[1]
            out[i, 2, 3] = parked[2]


_PARKED = np.array(PARKED_POSITION, dtype=np.float64)


def emit_transforms(positions: np.ndarray, sizes: np.ndarray, count: int, out: np.ndarray) -> np.ndarray:
    """
    Writes one transform per slot of `out`: live particles first, the
    parked transform for the rest.
    """
    capacity = out.shape[0]
    if count > capacity:
        raise ValueError(
            f"Cannot emit {count} live particles into a buffer of capacity {capacity}."
        )
    _compose_transforms_numba(positions, sizes, count, out, _PARKED, INSTANCE_SCALE_FACTOR)
    return out


def parked_matrices(capacity: int) -> np.ndarray:
    """Returns a float32 (capacity, 4, 4) array with every slot parked."""
    matrices = np.zeros((capacity, 4, 4), dtype=np.float32)
    matrices[:, 3, 3] = 1.0
    matrices[:, :3, 3] = _PARKED
    return matrices


class InstanceBuffer:
    """
    The fixed-size instance sink shared with the renderer.

    The presentational fields (color, opacity, texture) are carried for the
    renderer and never interpreted here.
    """
    def __init__(self, capacity: int, color: Any = None, opacity: float = 1.0, texture: Any = None):
        self.capacity = capacity
        self.color = color
        self.opacity = opacity
        self.texture = texture
        self.matrices: Optional[np.ndarray] = parked_matrices(capacity)
        self.needs_update = True
        self.disposed = False

    def write(self, positions: np.ndarray, sizes: np.ndarray, count: int) -> np.ndarray:
        if self.disposed:
            raise RuntimeError("Cannot write to an instance buffer after dispose().")
        emit_transforms(positions, sizes, count, self.matrices)
        self.needs_update = True
        return self.matrices

    def visible_count(self) -> int:
        if self.matrices is None:
            return 0
        return int(np.count_nonzero(self.matrices[:, 0, 0]))

    def dispose(self) -> None:
        if self.disposed:
            return
        self.matrices = None
        self.disposed = True
        logging.debug(f"Instance buffer of capacity {self.capacity} disposed.")
