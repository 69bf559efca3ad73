# particle_store.py

import logging
import math
from dataclasses import dataclass
from typing import Iterator, NamedTuple, Optional, Tuple

import numpy as np

logger = logging.getLogger("ball_sim")

INITIAL_CAPACITY = 64


class InvalidSpawn(ValueError):
    """Raised when a spawn request violates the particle invariants."""


class Handle(NamedTuple):
    """Generation-tagged reference to a store slot."""
    index: int
    generation: int


@dataclass(frozen=True)
class Particle:
    """Read-only copy of one particle's state."""
    position: Tuple[float, float]
    previous_position: Tuple[float, float]
    radius: float
    mass: float
    restitution: float

    @property
    def velocity(self) -> Tuple[float, float]:
        return (self.position[0] - self.previous_position[0],
                self.position[1] - self.previous_position[1])


def inverse_mass(mass: float) -> float:
    """Zero and infinite masses are static anchors with no inverse mass."""
    if mass <= 0.0 or not math.isfinite(mass):
        return 0.0
    return 1.0 / mass


class ParticleView:
    """
    Write-through view onto a single store slot.

    `position` and `previous_position` are NumPy row views, so in-place edits
    (view.position += ...) land directly in the store's arrays.
    """
    __slots__ = ('store', 'index')

    def __init__(self, store: "ParticleStore", index: int):
        self.store = store
        self.index = index

    @property
    def position(self) -> np.ndarray:
        return self.store.positions[self.index]

    @position.setter
    def position(self, value):
        self.store.positions[self.index] = value

    @property
    def previous_position(self) -> np.ndarray:
        return self.store.previous_positions[self.index]

    @previous_position.setter
    def previous_position(self, value):
        self.store.previous_positions[self.index] = value

    @property
    def velocity(self) -> np.ndarray:
        return self.position - self.previous_position

    @property
    def radius(self) -> float:
        return float(self.store.radii[self.index])

    @radius.setter
    def radius(self, value: float):
        self.store.radii[self.index] = value

    @property
    def mass(self) -> float:
        return float(self.store.masses[self.index])

    @mass.setter
    def mass(self, value: float):
        self.store.masses[self.index] = value
        self.store.inverse_masses[self.index] = inverse_mass(value)

    @property
    def restitution(self) -> float:
        return float(self.store.restitutions[self.index])

    @restitution.setter
    def restitution(self, value: float):
        self.store.restitutions[self.index] = value

    @property
    def slice(self) -> slice:
        """Length-one slice selecting this slot in the store's arrays."""
        return slice(self.index, self.index + 1)


class ParticleStore:
    """
    Owns all particle state in a reusable slot arena.

    State is kept as a Structure of Arrays so the physics passes can work on
    whole columns at once. Slots are addressed through generation-tagged
    handles; removing a particle bumps its slot generation so that any handle
    still pointing at the slot stops resolving, even after the slot is reused.

    Data Contract:
    - Inputs: initial_capacity (int) - Number of slots to pre-allocate.
    - Outputs: Handles from insert(); particle copies or views from lookups.
    - Side Effects: Grows its arrays (doubling) when full.
    - Invariants:
        - For every live slot: radius > 0, mass > 0, 0 <= restitution <= 1.
        - All per-slot arrays share the same length (capacity).
        - inverse_masses[i] == inverse_mass(masses[i]).
    """
    def __init__(self, initial_capacity: int = INITIAL_CAPACITY):
        self.capacity = 0
        self.positions = np.empty((0, 2), dtype=np.float64)
        self.previous_positions = np.empty((0, 2), dtype=np.float64)
        self.radii = np.empty(0, dtype=np.float64)
        self.masses = np.empty(0, dtype=np.float64)
        self.inverse_masses = np.empty(0, dtype=np.float64)
        self.restitutions = np.empty(0, dtype=np.float64)
        self.generations = np.empty(0, dtype=np.int64)
        self.alive = np.empty(0, dtype=np.bool_)
        self._free_slots = []
        self._next_slot = 0
        self._count = 0
        self._ensure_capacity(max(1, initial_capacity))

    def _ensure_capacity(self, required: int):
        """Grow every per-slot array so at least `required` slots exist."""
        if required <= self.capacity:
            return
        new_capacity = max(required, self.capacity * 2)

        def grow(array, fill):
            shape = (new_capacity,) + array.shape[1:]
            grown = np.full(shape, fill, dtype=array.dtype)
            grown[:self.capacity] = array
            return grown

        self.positions = grow(self.positions, 0.0)
        self.previous_positions = grow(self.previous_positions, 0.0)
        self.radii = grow(self.radii, 0.0)
        self.masses = grow(self.masses, 0.0)
        self.inverse_masses = grow(self.inverse_masses, 0.0)
        self.restitutions = grow(self.restitutions, 0.0)
        self.generations = grow(self.generations, 0)
        self.alive = grow(self.alive, False)
        logger.debug(f"ParticleStore capacity grown from {self.capacity} to {new_capacity}.")
        self.capacity = new_capacity

    @staticmethod
    def validate(x: float, y: float, radius: float, mass: float, restitution: float):
        """Raises InvalidSpawn if the requested particle breaks an invariant."""
        if not (math.isfinite(x) and math.isfinite(y)):
            raise InvalidSpawn(f"position must be finite, got ({x}, {y})")
        if not (math.isfinite(radius) and radius > 0):
            raise InvalidSpawn(f"radius must be positive and finite, got {radius}")
        if not mass > 0:
            raise InvalidSpawn(f"mass must be positive, got {mass}")
        if not 0.0 <= restitution <= 1.0:
            raise InvalidSpawn(f"restitution must be in [0, 1], got {restitution}")

    def insert(self, x: float, y: float, radius: float, mass: float, restitution: float,
               previous: Optional[Tuple[float, float]] = None) -> Handle:
        """
        Adds a particle and returns its handle. `previous` seeds the implicit
        velocity; it defaults to the position itself (particle at rest).
        """
        self.validate(x, y, radius, mass, restitution)
        if previous is None:
            previous = (x, y)
        if not (math.isfinite(previous[0]) and math.isfinite(previous[1])):
            raise InvalidSpawn(f"previous position must be finite, got {previous}")

        if self._free_slots:
            index = self._free_slots.pop()
        else:
            self._ensure_capacity(self._next_slot + 1)
            index = self._next_slot
            self._next_slot += 1

        self.positions[index] = (x, y)
        self.previous_positions[index] = previous
        self.radii[index] = radius
        self.masses[index] = mass
        self.inverse_masses[index] = inverse_mass(mass)
        self.restitutions[index] = restitution
        self.alive[index] = True
        self._count += 1
        return Handle(index, int(self.generations[index]))

    def remove(self, handle: Handle) -> bool:
        """Frees the slot behind `handle`. Returns False for stale handles."""
        if not self.is_alive(handle):
            return False
        index = handle.index
        self.alive[index] = False
        self.generations[index] += 1
        self._free_slots.append(index)
        self._count -= 1
        return True

    def is_alive(self, handle: Handle) -> bool:
        index = handle.index
        return (0 <= index < self._next_slot
                and bool(self.alive[index])
                and int(self.generations[index]) == handle.generation)

    def handle_at(self, index: int) -> Handle:
        return Handle(int(index), int(self.generations[index]))

    def get(self, handle: Handle) -> Optional[Particle]:
        if not self.is_alive(handle):
            return None
        return self._particle_at(handle.index)

    def get_mut(self, handle: Handle) -> Optional[ParticleView]:
        if not self.is_alive(handle):
            return None
        return ParticleView(self, handle.index)

    def get_pair_mut(self, first: Handle, second: Handle) -> Tuple[Optional[ParticleView], Optional[ParticleView]]:
        """
        Returns mutable views onto two distinct particles. Both sides are None
        when the handles name the same slot, so a pair can never alias.
        """
        if first.index == second.index:
            return None, None
        return self.get_mut(first), self.get_mut(second)

    def _particle_at(self, index: int) -> Particle:
        pos = self.positions[index]
        prev = self.previous_positions[index]
        return Particle(
            position=(float(pos[0]), float(pos[1])),
            previous_position=(float(prev[0]), float(prev[1])),
            radius=float(self.radii[index]),
            mass=float(self.masses[index]),
            restitution=float(self.restitutions[index]),
        )

    def active_slots(self) -> np.ndarray:
        """Indices of live slots, ascending."""
        return np.flatnonzero(self.alive[:self._next_slot])

    def iter(self) -> Iterator[Tuple[Handle, Particle]]:
        for index in self.active_slots():
            yield self.handle_at(index), self._particle_at(int(index))

    def __iter__(self):
        return self.iter()

    def __len__(self):
        return self._count
