# collision_resolver.py

from typing import Optional

import numba
import numpy as np

from collision_detector import ContactSet
from constants import CONTACT_EPSILON, POSITION_CORRECTION_FACTOR
from particle_store import Handle, ParticleStore


@numba.jit(nopython=True)
def _resolve_contacts_jit(pairs, normals, penetrations, distances_sq, contact_restitutions,
                          positions, previous_positions, inverse_masses,
                          correction_factor, epsilon, apply_impulse):
    """
    Numba-accelerated sequential contact solver.

    Contacts are applied in the order given, each one reading the positions
    left by the previous ones. Modifies positions (and, with apply_impulse,
    previous positions) in place. Returns the number of contacts applied.
    """
    resolved = 0
    for k in range(pairs.shape[0]):
        # Coincident centers: the normal is arbitrary, leave them alone
        if distances_sq[k] <= epsilon:
            continue

        i = pairs[k, 0]
        j = pairs[k, 1]
        inv_i = inverse_masses[i]
        inv_j = inverse_masses[j]
        inv_sum = inv_i + inv_j
        if inv_sum <= 0.0:
            continue

        nx = normals[k, 0]
        ny = normals[k, 1]
        restitution = contact_restitutions[k]

        # 1. Positional correction, split by inverse-mass share
        separation = penetrations[k] * restitution * correction_factor
        share_i = inv_i / inv_sum
        share_j = inv_j / inv_sum
        positions[i, 0] += nx * separation * share_i
        positions[i, 1] += ny * separation * share_i
        positions[j, 0] -= nx * separation * share_j
        positions[j, 1] -= ny * separation * share_j

        # 2. Optional velocity impulse, applied through the position history
        if apply_impulse:
            v_rel_x = (positions[i, 0] - previous_positions[i, 0]) - (positions[j, 0] - previous_positions[j, 0])
            v_rel_y = (positions[i, 1] - previous_positions[i, 1]) - (positions[j, 1] - previous_positions[j, 1])
            v_rel_dot_normal = v_rel_x * nx + v_rel_y * ny
            if v_rel_dot_normal < 0.0:
                impulse = -(1.0 + restitution) * v_rel_dot_normal / inv_sum
                previous_positions[i, 0] -= impulse * inv_i * nx
                previous_positions[i, 1] -= impulse * inv_i * ny
                previous_positions[j, 0] += impulse * inv_j * nx
                previous_positions[j, 1] += impulse * inv_j * ny

        resolved += 1
    return resolved


def resolve_contacts(store: ParticleStore, contacts: ContactSet,
                     correction_factor: float = POSITION_CORRECTION_FACTOR,
                     epsilon: float = CONTACT_EPSILON, impulse_response: bool = False) -> int:
    """
    Applies every contact of one substep to the store.

    The restitution of a contact is the smaller of the two particles'. Each
    contact separates its pair by penetration * restitution * correction_factor.
    Contacts whose centers coincide (distance_sq <= epsilon) have no defined
    direction and are skipped, so such a pair stays coincident until another
    contact or a wall moves one of them.
    """
    if len(contacts) == 0:
        return 0
    a = contacts.pairs[:, 0]
    b = contacts.pairs[:, 1]
    contact_restitutions = np.minimum(store.restitutions[a], store.restitutions[b])
    return _resolve_contacts_jit(
        contacts.pairs, contacts.normals, contacts.penetrations, contacts.distances_sq,
        contact_restitutions, store.positions, store.previous_positions, store.inverse_masses,
        float(correction_factor), float(epsilon), bool(impulse_response)
    )


def resolve(store: ParticleStore, handle_a: Handle, handle_b: Handle, normal, penetration: float,
            restitution: Optional[float] = None, distance_sq: Optional[float] = None,
            correction_factor: float = POSITION_CORRECTION_FACTOR,
            epsilon: float = CONTACT_EPSILON, impulse_response: bool = False) -> bool:
    """
    Resolves a single contact between two particles.

    `normal` points from b towards a. When `restitution` is omitted the smaller
    of the two particles' restitutions is used; when `distance_sq` is omitted it
    is measured from the current positions. Returns False if either handle is
    stale, both name the same particle, or the contact was skipped (both
    static, or coincident centers).
    """
    first, second = store.get_pair_mut(handle_a, handle_b)
    if first is None or second is None:
        return False
    if restitution is None:
        restitution = min(first.restitution, second.restitution)
    if distance_sq is None:
        diff = first.position - second.position
        distance_sq = float(diff @ diff)

    resolved = _resolve_contacts_jit(
        np.array([[first.index, second.index]], dtype=np.int64),
        np.array([normal], dtype=np.float64).reshape(1, 2),
        np.array([penetration], dtype=np.float64),
        np.array([distance_sq], dtype=np.float64),
        np.array([restitution], dtype=np.float64),
        store.positions, store.previous_positions, store.inverse_masses,
        float(correction_factor), float(epsilon), bool(impulse_response)
    )
    return resolved == 1
