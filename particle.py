# particle.py
"""
Manages the state of all particles in one emitter.

This module defines the ParticlePool class, which stores particle data
(age, size, position, velocity) in fixed-capacity NumPy arrays, spawns new
particles into free slots, and advances and culls the live set each tick.
"""
import logging
import numpy as np
from numba import jit
from typing import Iterator, NamedTuple, Sequence

from volume import Volume

# --- Data Contracts ---
#
# class ParticlePool:
#   - __init__(self, limit, lifetime, start_size, start_velocity,
#              brownian_force, shrink_over_time, rng):
#     - Inputs:
#       - limit: int, the fixed capacity.
#       - lifetime: float, the ceiling of a new particle's age.
#       - start_size: float, the size of a new particle.
#       - start_velocity: 3 floats, copied into every new particle.
#       - brownian_force: float, the width of the per-tick velocity perturbation.
#       - shrink_over_time: bool, whether size follows the remaining age.
#       - rng: np.random.Generator, the source of all randomness.
#     - Side Effects: allocates the state arrays. The pool starts empty.
#     - Invariants:
#       - self.ages, self.sizes have shape (limit,); self.positions,
#         self.velocities have shape (limit, 3); all float64.
#       - Slots 0..count-1 are live, slots count..limit-1 are free.
#       - 0 <= count <= limit.
#
#   - spawn(self, position) -> bool:
#     - Side Effects: occupies slot `count` with age in (0, lifetime].
#     - Outputs: False (and no change) if the pool is full.
#
#   - tick(self, dt, zone, world_to_local) -> int:
#     - Inputs:
#       - dt: float, elapsed time.
#       - zone: Volume, the containment volume in local space.
#       - world_to_local: 4x4 float64 matrix.
#     - Outputs: the new live count.
#     - Invariants: survivors keep their relative order and every survivor
#       has age > 0 and a local position inside `zone`.


class Particle(NamedTuple):
    """A read-only snapshot of one live particle."""
    age: float
    size: float
    position: np.ndarray
    velocity: np.ndarray


@jit(nopython=True)
def _advance_numba(
    ages, sizes, positions, velocities, perturbation, count, dt,
    lifetime, start_size, shrink_over_time, world_to_local, zone_min, zone_max
):
    """
    Numba-jitted advance and cull.

    Survivors are written back over the front of the arrays in their
    original order. The write index never passes the read index, so the
    compaction is safe in place.
    """
    alive = 0
    for i in range(count):
        age = ages[i] - dt

        vx = velocities[i, 0] + perturbation[i, 0]
        vy = velocities[i, 1] + perturbation[i, 1]
        vz = velocities[i, 2] + perturbation[i, 2]

        px = positions[i, 0] + vx
        py = positions[i, 1] + vy
        pz = positions[i, 2] + vz

        size = sizes[i]
        if shrink_over_time:
            size = (age / lifetime) * start_size

        if age <= 0.0:
            continue

        # Containment is tested in the parent's local space
        lx = world_to_local[0, 0] * px + world_to_local[0, 1] * py + world_to_local[0, 2] * pz + world_to_local[0, 3]
        ly = world_to_local[1, 0] * px + world_to_local[1, 1] * py + world_to_local[1, 2] * pz + world_to_local[1, 3]
        lz = world_to_local[2, 0] * px + world_to_local[2, 1] * py + world_to_local[2, 2] * pz + world_to_local[2, 3]

        if not (zone_min[0] <= lx <= zone_max[0]
                and zone_min[1] <= ly <= zone_max[1]
                and zone_min[2] <= lz <= zone_max[2]):
            continue

        ages[alive] = age
        sizes[alive] = size
        positions[alive, 0] = px
        positions[alive, 1] = py
        positions[alive, 2] = pz
        velocities[alive, 0] = vx
        velocities[alive, 1] = vy
        velocities[alive, 2] = vz
        alive += 1
    return alive


class ParticlePool:
    """
    A fixed-capacity container for the particles of one emitter.
    """
    def __init__(
        self,
        limit: int,
        lifetime: float,
        start_size: float,
        start_velocity: Sequence[float],
        brownian_force: float,
        shrink_over_time: bool,
        rng: np.random.Generator,
    ):
        self.limit = int(limit)
        self.lifetime = float(lifetime)
        self.start_size = float(start_size)
        self.start_velocity = np.array(start_velocity, dtype=np.float64).reshape(3)
        self.brownian_force = float(brownian_force)
        self.shrink_over_time = bool(shrink_over_time)
        self.rng = rng

        self.ages = np.zeros(self.limit, dtype=np.float64)
        self.sizes = np.zeros(self.limit, dtype=np.float64)
        self.positions = np.zeros((self.limit, 3), dtype=np.float64)
        self.velocities = np.zeros((self.limit, 3), dtype=np.float64)
        self.count = 0

        logging.debug(
            f"ParticlePool allocated. Capacity: {self.limit}, "
            f"positions shape: {self.positions.shape}, "
            f"velocities shape: {self.velocities.shape}"
        )

    def __len__(self) -> int:
        return self.count

    def __getitem__(self, index: int) -> Particle:
        if not -self.count <= index < self.count:
            raise IndexError(f"Particle index {index} out of range for {self.count} live particles.")
        index %= self.count
        return Particle(
            age=float(self.ages[index]),
            size=float(self.sizes[index]),
            position=self.positions[index].copy(),
            velocity=self.velocities[index].copy(),
        )

    def __iter__(self) -> Iterator[Particle]:
        for i in range(self.count):
            yield self[i]

    @property
    def free_slots(self) -> int:
        return self.limit - self.count

    def _new_ages(self, n: int) -> np.ndarray:
        # 1 - random() lies in (0, 1], so a new particle is never born dead.
        return self.lifetime * (1.0 - self.rng.random(n))

    def spawn(self, position: Sequence[float]) -> bool:
        """Adds one particle at `position`. Returns False if the pool is full."""
        if self.count >= self.limit:
            return False
        i = self.count
        self.ages[i] = self._new_ages(1)[0]
        self.sizes[i] = self.start_size
        self.positions[i] = position
        self.velocities[i] = self.start_velocity
        self.count += 1
        return True

    def spawn_many(self, positions: np.ndarray) -> int:
        """
        Spawns one particle per row of `positions`, in order, until the pool
        is full. Returns the number spawned.
        """
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        n = min(len(positions), self.free_slots)
        if n < len(positions):
            logging.debug(f"Pool full: dropped {len(positions) - n} of {len(positions)} spawns.")
        if n == 0:
            return 0
        start, end = self.count, self.count + n
        self.ages[start:end] = self._new_ages(n)
        self.sizes[start:end] = self.start_size
        self.positions[start:end] = positions[:n]
        self.velocities[start:end] = self.start_velocity
        self.count = end
        return n

    def tick(self, dt: float, zone: Volume, world_to_local: np.ndarray) -> int:
        """
        Advances every live particle by one step and drops the ones that
        expired or left `zone`. Returns the new live count.
        """
        force = self.brownian_force
        perturbation = self.rng.random((self.count, 3)) * force - force / 2
        self.count = _advance_numba(
            self.ages, self.sizes, self.positions, self.velocities, perturbation,
            self.count, float(dt), self.lifetime, self.start_size, self.shrink_over_time,
            np.ascontiguousarray(world_to_local, dtype=np.float64),
            np.array(zone.minimum), np.array(zone.maximum),
        )
        return self.count
