# integrator.py

"""
Position Verlet integration.

Velocity is never stored. It is the displacement between the current and the
previous position, so anything that moves a particle (collision correction,
wall reflection) automatically changes its velocity on the next frame.

Data Contract:
- integrate_arrays(positions, previous_positions, dt, gravity, damping) -> None
    - Inputs: (N, 2) float arrays (or views), dt in seconds, gravity as a
      2-vector in units / s^2, damping in (0, 1].
    - Side Effects: Mutates both arrays in place.
    - Invariants: After the call, positions - previous_positions equals
      damping * old_velocity + gravity * dt^2.
"""

import numpy as np


def implicit_velocity(positions: np.ndarray, previous_positions: np.ndarray) -> np.ndarray:
    """Per-frame displacement, i.e. the Verlet velocity."""
    return positions - previous_positions


def integrate_arrays(positions: np.ndarray, previous_positions: np.ndarray, dt: float,
                     gravity: np.ndarray, damping: float):
    """
    x(t+dt) = x(t) + damping * (x(t) - x(t-dt)) + g * dt^2
    """
    velocity = positions - previous_positions
    new_positions = positions + velocity * damping + np.asarray(gravity) * (dt * dt)
    previous_positions[...] = positions
    positions[...] = new_positions


def integrate(particle, dt: float, gravity: np.ndarray, damping: float):
    """Advances a single ParticleView by one frame. Static anchors stay put."""
    store = particle.store
    if store.inverse_masses[particle.index] == 0.0:
        return
    rows = particle.slice
    integrate_arrays(store.positions[rows], store.previous_positions[rows], dt, gravity, damping)


def integrate_slots(store, slots: np.ndarray, dt: float, gravity: np.ndarray, damping: float):
    """
    Advances the given store slots, skipping static anchors (zero inverse
    mass). Fancy indexing copies, so results are written back.
    """
    slots = slots[store.inverse_masses[slots] > 0.0]
    if len(slots) == 0:
        return
    positions = store.positions[slots]
    previous = store.previous_positions[slots]
    integrate_arrays(positions, previous, dt, gravity, damping)
    store.positions[slots] = positions
    store.previous_positions[slots] = previous
