# simulation.py

import enum
import logging
from typing import List, Optional, Tuple

import numpy as np

import constants
from boundary import clamp_slots
from collision_detector import detect
from collision_resolver import resolve_contacts
from integrator import integrate_slots
from particle_store import Handle, InvalidSpawn, Particle, ParticleStore
from spatial_grid import SpatialGrid

logger = logging.getLogger("ball_sim")


class InvariantViolation(RuntimeError):
    """A step left the particle state numerically inconsistent."""


class SimulationState(enum.Enum):
    IDLE = "idle"
    STEPPING = "stepping"


class Simulation:
    """
    Owns the particle store and the spatial grid and advances them one frame
    at a time.

    One step runs: integrate all -> substeps x {rebuild grid, detect, resolve}
    -> clamp all to the arena.

    Data Contract:
    - Inputs:
        - config (dict): The 'simulation' section of the config file. Missing
          keys fall back to constants.py.
    - Outputs: Handles from spawn(); (position, radius) tuples from snapshot().
    - Side Effects: Mutates the particle store in place on step().
    - Invariants: Between steps every live particle lies inside the arena
      (position +/- radius within [0, width] x [0, height]).
    """
    def __init__(self, config: Optional[dict] = None):
        config = dict(config or {})
        self.config = config
        self.width = float(config.get('width', constants.WIDTH))
        self.height = float(config.get('height', constants.HEIGHT))
        self.gravity = np.array(config.get('gravity', constants.GRAVITY), dtype=np.float64)
        self.damping = float(config.get('damping', constants.DAMPING))
        self.substeps = int(config.get('substeps', constants.SUBSTEPS))
        self.max_radius = float(config.get('max_radius', constants.MAX_RADIUS))
        self.dt = float(config.get('dt', constants.DT))
        self.position_correction_factor = float(
            config.get('position_correction_factor', constants.POSITION_CORRECTION_FACTOR)
        )
        self.contact_epsilon = float(config.get('contact_epsilon', constants.CONTACT_EPSILON))
        self.impulse_response = bool(config.get('impulse_response', constants.IMPULSE_RESPONSE))
        self.debug_invariants = bool(config.get('debug_invariants', False))
        self._validate_config()

        self.store = ParticleStore()
        self.grid = SpatialGrid(2.0 * self.max_radius, self.width, self.height)
        self.state = SimulationState.IDLE
        self.frame = 0
        self.last_dt = self.dt

        # --- Per-step counters for logging ---
        self.contacts_detected = 0
        self.contacts_resolved = 0
        self.wall_contacts = 0
        self.max_penetration = 0.0

        logger.info(
            f"Simulation created: arena {self.width:g}x{self.height:g}, gravity {self.gravity.tolist()}, "
            f"damping {self.damping}, {self.substeps} substeps, dt {self.dt:.5f}."
        )
        logger.info(
            f"Spatial grid cell size {self.grid.cell_size} "
            f"({self.grid.grid_width}x{self.grid.grid_height} cells)."
        )

    def _validate_config(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"arena must have positive size, got {self.width}x{self.height}")
        if not 0.0 < self.damping <= 1.0:
            raise ValueError(f"damping must be in (0, 1], got {self.damping}")
        if self.substeps < 1:
            raise ValueError(f"substeps must be at least 1, got {self.substeps}")
        if self.max_radius <= 0:
            raise ValueError(f"max_radius must be positive, got {self.max_radius}")
        if not (np.isfinite(self.dt) and self.dt > 0):
            raise ValueError(f"dt must be positive and finite, got {self.dt}")
        if self.gravity.shape != (2,):
            raise ValueError(f"gravity must be a 2-vector, got {self.gravity.tolist()}")

    # --- External interface ---

    def spawn(self, x: float, y: float, radius: float, mass: float, restitution: float,
              velocity: Tuple[float, float] = (0.0, 0.0)) -> Handle:
        """
        Adds a ball. `velocity` is in units per second and is converted into the
        initial position history (previous = position - velocity * dt).
        Raises InvalidSpawn without touching the store if the ball is invalid.
        """
        previous = (x - velocity[0] * self.dt, y - velocity[1] * self.dt)
        try:
            handle = self.store.insert(x, y, radius, mass, restitution, previous=previous)
        except InvalidSpawn as e:
            logger.warning(f"Spawn rejected at ({x}, {y}): {e}")
            raise

        if radius > self.max_radius:
            logger.warning(
                f"Ball radius {radius} exceeds max_radius {self.max_radius}; "
                f"some of its collisions may be missed."
            )
        logger.debug(f"Ball spawned: {handle}, pos=({x:.1f}, {y:.1f}), r={radius}, m={mass}, e={restitution}")
        return handle

    def remove(self, handle: Handle) -> bool:
        return self.store.remove(handle)

    def get(self, handle: Handle) -> Optional[Particle]:
        return self.store.get(handle)

    @property
    def particle_count(self) -> int:
        return len(self.store)

    def snapshot(self) -> List[Tuple[Tuple[float, float], float]]:
        """Read-only ((x, y), radius) per live ball, in slot order, for a renderer."""
        slots = self.store.active_slots()
        positions = self.store.positions[slots]
        radii = self.store.radii[slots]
        return [((float(p[0]), float(p[1])), float(r)) for p, r in zip(positions, radii)]

    def step(self, dt: Optional[float] = None):
        """
        Runs one full frame. `dt` defaults to the configured frame time and
        must be positive and finite; a bad value raises ValueError before
        anything is touched.
        """
        if self.state is SimulationState.STEPPING:
            raise RuntimeError("step() called while a step is already running")
        dt = self.dt if dt is None else float(dt)
        if not (np.isfinite(dt) and dt > 0):
            raise ValueError(f"dt must be positive and finite, got {dt}")

        self.state = SimulationState.STEPPING
        try:
            slots = self.store.active_slots()

            # --- 1. Verlet integration ---
            integrate_slots(self.store, slots, dt, self.gravity, self.damping)

            # --- 2. Collision substeps ---
            self._handle_collisions(slots)

            # --- 3. Arena confinement as the final step ---
            self.wall_contacts = clamp_slots(self.store, slots, self.width, self.height)

            self.frame += 1
            self.last_dt = dt
            if self.debug_invariants:
                self.check_invariants()
        finally:
            self.state = SimulationState.IDLE

    def _handle_collisions(self, slots: np.ndarray):
        """
        Repeats grid rebuild, detection and resolution `substeps` times so that
        clusters of overlapping balls converge towards separation.
        """
        self.contacts_detected = 0
        self.contacts_resolved = 0
        self.max_penetration = 0.0
        if len(slots) < 2:
            return

        store = self.store
        for _ in range(self.substeps):
            self.grid.rebuild_arrays(
                slots, store.generations[slots], store.positions[slots], store.radii[slots]
            )
            contacts = detect(self.grid, store, self.contact_epsilon)
            if len(contacts) == 0:
                break
            self.contacts_detected += len(contacts)
            self.max_penetration = max(self.max_penetration, contacts.max_penetration)
            self.contacts_resolved += resolve_contacts(
                store, contacts, self.position_correction_factor,
                self.contact_epsilon, self.impulse_response
            )

    # --- Diagnostics ---

    def check_invariants(self):
        """
        Raises InvariantViolation if any live ball has a non-finite position
        or position history.
        """
        slots = self.store.active_slots()
        finite = (np.isfinite(self.store.positions[slots]).all(axis=1)
                  & np.isfinite(self.store.previous_positions[slots]).all(axis=1))
        if not finite.all():
            bad = slots[~finite].tolist()
            logger.error(f"Non-finite state after frame {self.frame} in slots {bad}.")
            raise InvariantViolation(f"non-finite particle state in slots {bad}")

    def get_total_kinetic_energy(self) -> float:
        """
        KE = sum(0.5 * m * v^2), with v the implicit velocity divided by the
        frame time of the most recent step.
        Static (infinite mass) balls are left out.
        """
        slots = self.store.active_slots()
        if len(slots) == 0:
            return 0.0
        velocities = (self.store.positions[slots] - self.store.previous_positions[slots]) / self.last_dt
        masses = self.store.masses[slots]
        finite = np.isfinite(masses)
        vel_sq = np.sum(velocities[finite] ** 2, axis=1)
        return float(np.sum(0.5 * masses[finite] * vel_sq))
