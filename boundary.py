# boundary.py

import numpy as np


def clamp_arrays(positions: np.ndarray, previous_positions: np.ndarray, radii: np.ndarray,
                 restitutions: np.ndarray, width: float, height: float) -> int:
    """
    Vectorized arena confinement.

    A particle crossing a wall is projected back onto it, and its previous
    position is moved to the far side so the implicit velocity on that axis
    becomes -velocity * restitution. Returns the number of wall contacts.
    """
    contacts = 0
    extents = (width, height)
    for axis in (0, 1):
        velocity = positions[:, axis] - previous_positions[:, axis]
        low_mask = positions[:, axis] - radii < 0
        high_mask = positions[:, axis] + radii > extents[axis]
        hit_mask = low_mask | high_mask
        if not hit_mask.any():
            continue

        positions[low_mask, axis] = radii[low_mask]
        positions[high_mask, axis] = extents[axis] - radii[high_mask]
        previous_positions[hit_mask, axis] = (
            positions[hit_mask, axis] + velocity[hit_mask] * restitutions[hit_mask]
        )
        contacts += int(np.count_nonzero(hit_mask))
    return contacts


def clamp(particle, width: float, height: float) -> bool:
    """Confines a single ParticleView. Returns True if it touched a wall."""
    store = particle.store
    if store.inverse_masses[particle.index] == 0.0:
        return False
    rows = particle.slice
    return clamp_arrays(
        store.positions[rows], store.previous_positions[rows],
        store.radii[rows], store.restitutions[rows], width, height
    ) > 0


def clamp_slots(store, slots: np.ndarray, width: float, height: float) -> int:
    """Confines the given store slots, writing the results back. Static anchors are left where they are."""
    slots = slots[store.inverse_masses[slots] > 0.0]
    if len(slots) == 0:
        return 0
    positions = store.positions[slots]
    previous = store.previous_positions[slots]
    contacts = clamp_arrays(positions, previous, store.radii[slots],
                            store.restitutions[slots], width, height)
    store.positions[slots] = positions
    store.previous_positions[slots] = previous
    return contacts
