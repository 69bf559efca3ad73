# spawner.py

import logging
from typing import Optional

import numpy as np

import constants
from particle_store import Handle

logger = logging.getLogger("ball_sim")


class CadenceSpawner:
    """
    Drops a new ball every `spawn_every` frames along the top of the arena.

    The spawn point sweeps to the right by `spawn_x_stride` per ball and wraps
    around, so the arena fills evenly. An optional horizontal jitter is drawn
    from the master RNG. Spawning stops once `max_particles` balls exist.

    Data Contract:
    - Inputs:
        - config (dict): The 'spawning' section of the config file.
        - rng (np.random.Generator): The master seeded random number generator.
    - Outputs: The new ball's handle from maybe_spawn(), or None.
    - Side Effects: Adds balls to the simulation.
    """
    def __init__(self, config: dict, rng: np.random.Generator):
        self.every = int(config.get('spawn_every', constants.SPAWN_EVERY))
        self.radius = float(config.get('radius', constants.SPAWN_RADIUS))
        self.mass = float(config.get('mass', constants.SPAWN_MASS))
        self.restitution = float(config.get('restitution', constants.SPAWN_RESTITUTION))
        self.x_stride = float(config.get('x_stride', constants.SPAWN_X_STRIDE))
        self.jitter = float(config.get('jitter', constants.SPAWN_JITTER))
        self.max_particles = int(config.get('max_particles', constants.MAX_PARTICLES))
        self.rng = rng
        self.spawned = 0

        if self.every < 1:
            raise ValueError(f"spawn_every must be at least 1, got {self.every}")

    def next_position(self, width: float):
        """Where the next ball enters: sweeping x inside [r, width - r], y = r."""
        span = max(width - 2.0 * self.radius, 0.0)
        x = self.radius + (self.spawned * self.x_stride) % span if span > 0 else width / 2.0
        if self.jitter > 0:
            x += self.rng.uniform(-self.jitter, self.jitter)
            x = min(max(x, self.radius), width - self.radius)
        return x, self.radius

    def maybe_spawn(self, sim) -> Optional[Handle]:
        if sim.frame % self.every != 0:
            return None
        if sim.particle_count >= self.max_particles:
            return None

        x, y = self.next_position(sim.width)
        handle = sim.spawn(x, y, self.radius, self.mass, self.restitution)
        self.spawned += 1
        if sim.particle_count == self.max_particles:
            logger.info(f"Spawn limit of {self.max_particles} balls reached at frame {sim.frame}.")
        return handle
