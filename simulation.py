# simulation.py
"""
Handles the per-tick orchestration of one particle emitter.

This module defines the ParticleSimulation class, which owns the
configuration of an emitter, attaches it to a parent frame, and on every
tick tops the pool back up from the creation zones, advances and culls
the pool, and writes the resulting instance transforms into the sink.
"""
import logging
import math
import numpy as np
from typing import Any, Dict, List, Optional, Sequence

from constants import (
    DEFAULT_BROWNIAN_FORCE, DEFAULT_COLOR, DEFAULT_LIFETIME, DEFAULT_LIMIT,
    DEFAULT_OPACITY, DEFAULT_SHRINK_OVER_TIME, DEFAULT_START_SIZE,
    DEFAULT_START_VELOCITY
)
from particle import ParticlePool
from transform import InstanceBuffer, ParentTransform, parked_matrices
from utils import as_vector3
from volume import Volume, sample_points, sample_weighted_points, total_volume_size

# --- Data Contracts ---
#
# class ParticleSimulation:
#   - __init__(self, zone: Volume, creation_zones=None, ...):
#     - Inputs:
#       - zone: Volume, the containment volume (parent-local space).
#       - creation_zones: Optional[List[Volume]], defaults to [zone].
#       - start_velocity, start_size, brownian_force, lifetime, limit,
#         shrink_over_time: engine parameters.
#       - texture, opacity, color: opaque, handed to the InstanceBuffer.
#       - rng / seed: the injected random source, or a seed to build one.
#     - Side Effects: Validates the configuration. Raises ValueError on
#       misuse. Allocates an empty pool.
#
#   - attach(self, parent: ParentTransform, sink=None, prefill=True) -> None:
#     - Side Effects: Stores the frame, creates or adopts the sink and, if
#       prefill, fills every slot with a particle sampled in `zone`.
#       Raises RuntimeError if called twice.
#
#   - tick(self, dt: float) -> np.ndarray:
#     - Outputs: float32 array (limit, 4, 4), one transform per slot.
#     - Side Effects: spawn, then advance and cull, then emit.
#     - Invariants: the returned array always has exactly `limit` entries.
#
#   - release(self) -> None:
#     - Side Effects: disposes the sink.


# Engine parameters accepted by from_params besides the volumes
_PARAM_KEYS = (
    'start_velocity', 'start_size', 'brownian_force', 'lifetime', 'limit',
    'texture', 'opacity', 'color', 'shrink_over_time', 'debug', 'seed',
)


class ParticleSimulation:
    """
    A bounded-capacity particle emitter living inside an axis-aligned
    containment volume.
    """
    def __init__(
        self,
        zone: Volume,
        creation_zones: Optional[Sequence[Volume]] = None,
        start_velocity: Sequence[float] = DEFAULT_START_VELOCITY,
        start_size: float = DEFAULT_START_SIZE,
        brownian_force: float = DEFAULT_BROWNIAN_FORCE,
        lifetime: float = DEFAULT_LIFETIME,
        limit: int = DEFAULT_LIMIT,
        texture: Any = None,
        opacity: float = DEFAULT_OPACITY,
        color: Any = DEFAULT_COLOR,
        shrink_over_time: bool = DEFAULT_SHRINK_OVER_TIME,
        debug: bool = False,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ):
        self.zone = zone
        self.creation_zones: List[Volume] = [zone] if creation_zones is None else list(creation_zones)
        self.start_velocity = as_vector3(start_velocity, 'start_velocity')
        self.start_size = float(start_size)
        self.brownian_force = float(brownian_force)
        self.lifetime = float(lifetime)
        self.limit = int(limit)
        self.texture = texture
        self.opacity = opacity
        self.color = color
        self.shrink_over_time = bool(shrink_over_time)
        self.debug = debug

        self._validate()

        # All randomness of this emitter comes from one generator.
        self.rng = rng if rng is not None else np.random.default_rng(seed)

        self.pool = ParticlePool(
            limit=self.limit,
            lifetime=self.lifetime,
            start_size=self.start_size,
            start_velocity=self.start_velocity,
            brownian_force=self.brownian_force,
            shrink_over_time=self.shrink_over_time,
            rng=self.rng,
        )

        self.parent: Optional[ParentTransform] = None
        self.sink: Optional[InstanceBuffer] = None
        self._detached_output: Optional[np.ndarray] = None

        self.creation_zone_percentage = self._compute_creation_zone_percentage()

        logging.info(
            f"ParticleSimulation initialized: limit {self.limit}, lifetime {self.lifetime}, "
            f"{len(self.creation_zones)} creation zone(s)."
        )
        logging.debug(f"Creation zone percentage: {self.creation_zone_percentage:.4f}")

    @classmethod
    def from_params(cls, params: Dict[str, Any], rng: Optional[np.random.Generator] = None) -> "ParticleSimulation":
        """
        Builds an emitter from a configuration dictionary, as found in the
        presets of config.json. Omitted keys fall back to the defaults.
        """
        if 'zone' not in params:
            msg = "Configuration error: a particle system needs a 'zone'."
            logging.critical(msg)
            raise ValueError(msg)

        kwargs: Dict[str, Any] = {'zone': Volume.from_config(params['zone'])}
        if params.get('creation_zones') is not None:
            kwargs['creation_zones'] = [Volume.from_config(z) for z in params['creation_zones']]
        unknown = sorted(set(params) - set(_PARAM_KEYS) - {'zone', 'creation_zones'})
        if unknown:
            logging.warning(f"Ignoring unrecognised particle system keys: {', '.join(unknown)}.")
        for key in _PARAM_KEYS:
            if key in params:
                kwargs[key] = params[key]
        return cls(rng=rng, **kwargs)

    def _validate(self) -> None:
        problems = []
        if self.limit < 0:
            problems.append(f"limit must be >= 0, got {self.limit}")
        if not self.lifetime > 0:
            problems.append(f"lifetime must be > 0, got {self.lifetime}")
        if self.brownian_force < 0:
            problems.append(f"brownian_force must be >= 0, got {self.brownian_force}")
        if self.start_size < 0:
            problems.append(f"start_size must be >= 0, got {self.start_size}")
        if not self.creation_zones:
            problems.append("creation_zones must not be empty (omit it to spawn in the zone)")

        if problems:
            msg = "Configuration error: " + "; ".join(problems) + "."
            logging.critical(msg)
            raise ValueError(msg)

    def _compute_creation_zone_percentage(self) -> float:
        """
        Ratio of the total creation volume to the containment volume.

        Spawning is scaled by its inverse so that thin creation shells still
        refill the zone to about `limit` particles.
        """
        zone_size = self.zone.volume_size
        creation_size = total_volume_size(self.creation_zones)
        if zone_size == 0 or creation_size == 0:
            logging.warning(
                f"Degenerate volume (zone {zone_size}, creation zones {creation_size}). "
                f"Using a creation zone percentage of 1."
            )
            return 1.0
        return creation_size / zone_size

    @property
    def live_count(self) -> int:
        return len(self.pool)

    @property
    def attached(self) -> bool:
        return self.parent is not None

    def attach(self, parent: ParentTransform, sink: Optional[InstanceBuffer] = None, prefill: bool = True) -> None:
        """
        Attaches the emitter to its reference frame. With `prefill`, every
        slot is filled at once so the effect starts at full density.
        """
        if self.parent is not None:
            raise RuntimeError("ParticleSimulation.attach() may only be called once.")
        if sink is not None and sink.capacity != self.limit:
            raise ValueError(
                f"Instance buffer capacity {sink.capacity} does not match limit {self.limit}."
            )

        self.parent = parent
        self.sink = sink if sink is not None else InstanceBuffer(
            self.limit, color=self.color, opacity=self.opacity, texture=self.texture
        )

        if prefill:
            local = sample_points(self.zone, self.limit, self.rng)
            self.pool.spawn_many(parent.local_to_world(local))

        logging.info(f"ParticleSimulation attached with {self.live_count} particles.")

    def spawn(self, position: Sequence[float]) -> bool:
        """Spawns one particle at a world position. No-op until attached."""
        if self.parent is None:
            return False
        return self.pool.spawn(position)

    def creation_count(self) -> int:
        missing = self.limit - self.live_count
        return max(0, math.floor(missing / self.creation_zone_percentage))

    def tick(self, dt: float) -> np.ndarray:
        """
        Advances the emitter by `dt` and returns one transform per slot.
        """
        if self.parent is None:
            # Nothing to simulate without a frame, but the renderer still
            # receives a complete, fully parked buffer.
            if self._detached_output is None:
                self._detached_output = parked_matrices(self.limit)
            return self._detached_output

        if self.sink.disposed:
            raise RuntimeError("Cannot tick a ParticleSimulation after release().")

        # 1. Top the pool back up from the creation zones
        count = self.creation_count()
        # Spawns past the free slots would be dropped, so only those are sampled.
        sampled = min(count, self.pool.free_slots)
        if sampled:
            local = sample_weighted_points(self.creation_zones, sampled, self.rng)
            self.pool.spawn_many(self.parent.local_to_world(local))

        # 2. Advance and cull against the containment volume
        self.pool.tick(dt, self.zone, self.parent.inverse)

        # 3. Emit one transform per slot
        return self.sink.write(self.pool.positions, self.pool.sizes, self.pool.count)

    def release(self) -> None:
        """Releases the instance buffer. The pool needs no teardown."""
        if self.sink is not None:
            self.sink.dispose()
        logging.info("ParticleSimulation released.")
