# collision_detector.py

"""
Narrow-phase circle-circle contact detection.

Takes the broad-phase candidate pairs from the spatial grid and keeps the ones
whose circles actually touch, annotated with the separating normal (pointing
from b to a) and the penetration depth.
"""
from typing import NamedTuple, Tuple

import numpy as np

from constants import CONTACT_EPSILON
from particle_store import Handle, ParticleStore
from spatial_grid import SpatialGrid

# Normal used for (nearly) coincident centers, where no direction is defined.
FALLBACK_NORMAL = (1.0, 0.0)


class Contact(NamedTuple):
    handle_a: Handle
    handle_b: Handle
    normal: Tuple[float, float]
    penetration: float
    distance_sq: float


class ContactSet:
    """
    Confirmed contacts of one substep, stored column-wise.

    Behaves as a read-only sequence of Contact tuples for callers that want
    handles, while the resolver consumes the arrays directly.

    Invariants:
    - pairs[k, 0] < pairs[k, 1] and rows are in ascending lexicographic order.
    - normals are unit length.
    - penetrations >= 0.
    """
    def __init__(self, pairs: np.ndarray, generations: np.ndarray, normals: np.ndarray,
                 penetrations: np.ndarray, distances_sq: np.ndarray):
        self.pairs = pairs
        self.generations = generations
        self.normals = normals
        self.penetrations = penetrations
        self.distances_sq = distances_sq

    @classmethod
    def empty(cls) -> "ContactSet":
        return cls(
            np.empty((0, 2), dtype=np.int64), np.empty((0, 2), dtype=np.int64),
            np.empty((0, 2), dtype=np.float64), np.empty(0, dtype=np.float64),
            np.empty(0, dtype=np.float64),
        )

    def __len__(self):
        return len(self.pairs)

    def __getitem__(self, k: int) -> Contact:
        a, b = self.pairs[k]
        gen_a, gen_b = self.generations[k]
        return Contact(
            handle_a=Handle(int(a), int(gen_a)),
            handle_b=Handle(int(b), int(gen_b)),
            normal=(float(self.normals[k, 0]), float(self.normals[k, 1])),
            penetration=float(self.penetrations[k]),
            distance_sq=float(self.distances_sq[k]),
        )

    def __iter__(self):
        for k in range(len(self)):
            yield self[k]

    @property
    def max_penetration(self) -> float:
        if len(self) == 0:
            return 0.0
        return float(self.penetrations.max())


def detect_pairs(pairs: np.ndarray, positions: np.ndarray, radii: np.ndarray,
                 epsilon: float = CONTACT_EPSILON):
    """
    Vectorized exact test over candidate pairs.

    Returns (mask, normals, penetrations, distances_sq) for the pairs that
    touch (distance <= r_a + r_b). Coincident centers get FALLBACK_NORMAL
    rather than a division by zero.
    """
    a = pairs[:, 0]
    b = pairs[:, 1]
    diffs = positions[a] - positions[b]
    distances_sq = np.einsum('ij,ij->i', diffs, diffs)
    radius_sums = radii[a] + radii[b]

    mask = distances_sq <= radius_sums * radius_sums
    diffs = diffs[mask]
    distances_sq = distances_sq[mask]
    radius_sums = radius_sums[mask]

    distances = np.sqrt(distances_sq)
    degenerate = distances_sq <= epsilon
    safe_distances = np.where(degenerate, 1.0, distances)
    normals = diffs / safe_distances[:, np.newaxis]
    normals[degenerate] = FALLBACK_NORMAL

    penetrations = radius_sums - distances
    return mask, normals, penetrations, distances_sq


def detect(grid: SpatialGrid, store: ParticleStore, epsilon: float = CONTACT_EPSILON) -> ContactSet:
    """
    Confirms the grid's candidate pairs against the store's current positions.

    Data Contract:
    - Inputs: a grid rebuilt from the store's live particles, the store.
    - Outputs: ContactSet in ascending (min index, max index) order.
    - Side Effects: None. Positions are only read.
    """
    candidates = grid.candidate_pair_slots()
    if len(candidates) == 0:
        return ContactSet.empty()

    mask, normals, penetrations, distances_sq = detect_pairs(
        candidates, store.positions, store.radii, epsilon
    )
    pairs = candidates[mask]
    generations = store.generations[pairs]
    return ContactSet(pairs, generations, normals, penetrations, distances_sq)
