# spatial_grid.py

import logging
import math
from typing import Iterable, List, Tuple

import numba
import numpy as np

from particle_store import Handle

logger = logging.getLogger("ball_sim")

_NO_PAIRS = np.empty((0, 2), dtype=np.int64)


@numba.jit(nopython=True)
def _scan_candidate_pairs_jit(grid_slots, grid_offsets, grid_width, grid_height, out, write):
    """
    Numba-accelerated broad-phase pair enumeration over the flattened grid.

    Each unordered pair of slots sharing a cell or sitting in adjacent cells is
    visited exactly once: pairs inside a cell by list position, pairs across
    cells only when the lower slot index owns the current cell. With
    write=False the pairs are only counted, so the caller can size `out`.
    Returns the number of pairs.
    """
    count = 0
    num_cells = grid_width * grid_height

    for cell_idx in range(num_cells):
        cell_x = cell_idx % grid_width
        cell_y = cell_idx // grid_width

        start_idx = grid_offsets[cell_idx]
        end_idx = grid_offsets[cell_idx + 1]
        if start_idx == end_idx:
            continue

        # 1. Pairs within the cell itself
        for i in range(start_idx, end_idx):
            a = grid_slots[i]
            for j in range(i + 1, end_idx):
                b = grid_slots[j]
                if write:
                    out[count, 0] = min(a, b)
                    out[count, 1] = max(a, b)
                count += 1

        # 2. Pairs with the 8 neighboring cells
        for dy in range(-1, 2):
            for dx in range(-1, 2):
                if dx == 0 and dy == 0:
                    continue

                neighbor_x = cell_x + dx
                neighbor_y = cell_y + dy
                if 0 <= neighbor_x < grid_width and 0 <= neighbor_y < grid_height:
                    neighbor_idx = neighbor_y * grid_width + neighbor_x
                    neighbor_start_idx = grid_offsets[neighbor_idx]
                    neighbor_end_idx = grid_offsets[neighbor_idx + 1]

                    for i in range(start_idx, end_idx):
                        a = grid_slots[i]
                        for j in range(neighbor_start_idx, neighbor_end_idx):
                            b = grid_slots[j]
                            # Avoid double-counting: the pair is seen from both cells
                            if a < b:
                                if write:
                                    out[count, 0] = a
                                    out[count, 1] = b
                                count += 1
    return count


class SpatialGrid:
    """
    Uniform bucketing grid for the collision broad phase.

    Cells are `cell_size` wide, which should be twice the largest radius so that
    any two touching circles sit in the same or adjacent cells. The grid is a
    derived index: it is rebuilt from scratch every substep and holds only slot
    indices, never particle data.

    Data Contract:
    - Inputs:
        - cell_size (float): Edge length of a cell, > 0.
        - width, height (float): Arena extent the grid covers.
    - Outputs: Candidate handles / pairs from the last rebuild.
    - Side Effects: None outside the grid's own arrays.
    - Invariants: After rebuild, grid_slots is sorted by cell and, within a
      cell, by ascending slot index. grid_offsets has num_cells + 1 entries.
    """
    def __init__(self, cell_size: float, width: float, height: float):
        if not cell_size > 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self.cell_size = float(cell_size)
        self.grid_width = max(1, int(math.ceil(width / self.cell_size)))
        self.grid_height = max(1, int(math.ceil(height / self.cell_size)))
        num_cells = self.grid_width * self.grid_height

        # grid_offsets[i] is the start of cell i in grid_slots; cell i holds
        # grid_offsets[i+1] - grid_offsets[i] entries.
        self.grid_offsets = np.zeros(num_cells + 1, dtype=np.int64)
        self.grid_slots = np.empty(0, dtype=np.int64)
        self.oversized = 0

        # Per-slot lookup tables for the handle-level queries
        self._slot_cells = np.empty(0, dtype=np.int64)
        self._slot_generations = np.empty(0, dtype=np.int64)
        self._pairs = None

        logger.debug(
            f"Spatial grid created with cell size {self.cell_size} "
            f"({self.grid_width}x{self.grid_height} cells)."
        )

    @property
    def num_cells(self) -> int:
        return self.grid_width * self.grid_height

    def cell_coords(self, positions: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """floor(p / cell_size), clipped so off-arena positions land in edge cells."""
        cell_xs = np.floor(positions[:, 0] / self.cell_size).astype(np.int64)
        cell_ys = np.floor(positions[:, 1] / self.cell_size).astype(np.int64)
        np.clip(cell_xs, 0, self.grid_width - 1, out=cell_xs)
        np.clip(cell_ys, 0, self.grid_height - 1, out=cell_ys)
        return cell_xs, cell_ys

    def rebuild(self, entries: Iterable[Tuple[Handle, object, float]]):
        """Rebuilds the grid from (Handle, position, radius) entries."""
        entries = list(entries)
        slots = np.array([handle.index for handle, _, _ in entries], dtype=np.int64)
        generations = np.array([handle.generation for handle, _, _ in entries], dtype=np.int64)
        positions = np.array([tuple(position) for _, position, _ in entries], dtype=np.float64).reshape(-1, 2)
        radii = np.array([radius for _, _, radius in entries], dtype=np.float64)
        self.rebuild_arrays(slots, generations, positions, radii)

    def rebuild_arrays(self, slots: np.ndarray, generations: np.ndarray,
                       positions: np.ndarray, radii: np.ndarray):
        """
        Populates the flattened grid with a counting sort:
        1. Compute the cell index of every entry.
        2. Count entries per cell and accumulate the offsets.
        3. Order the slots by cell (stable, so slot order is kept within a cell).
        """
        slots = np.asarray(slots, dtype=np.int64)
        num_cells = self.num_cells
        self._pairs = None

        if len(slots) == 0:
            self.grid_offsets[:] = 0
            self.grid_slots = np.empty(0, dtype=np.int64)
            self._slot_cells = np.empty(0, dtype=np.int64)
            self._slot_generations = np.empty(0, dtype=np.int64)
            self.oversized = 0
            return

        cell_xs, cell_ys = self.cell_coords(positions)
        entry_cells = cell_ys * self.grid_width + cell_xs

        counts = np.bincount(entry_cells, minlength=num_cells)
        self.grid_offsets[0] = 0
        self.grid_offsets[1:] = np.cumsum(counts)

        # Sort by (cell, slot) so rebuilds are independent of the entry order
        order = np.lexsort((slots, entry_cells))
        self.grid_slots = slots[order]

        table_size = int(slots.max()) + 1
        self._slot_cells = np.full(table_size, -1, dtype=np.int64)
        self._slot_cells[slots] = entry_cells
        self._slot_generations = np.full(table_size, -1, dtype=np.int64)
        self._slot_generations[slots] = np.asarray(generations, dtype=np.int64)

        # Radii beyond half a cell can miss true contacts; counted, not fatal.
        self.oversized = int(np.count_nonzero(np.asarray(radii) * 2.0 > self.cell_size))

    def _knows(self, handle: Handle) -> bool:
        index = handle.index
        return (0 <= index < len(self._slot_cells)
                and self._slot_cells[index] >= 0
                and self._slot_generations[index] == handle.generation)

    def candidates_for(self, handle: Handle) -> List[Handle]:
        """Handles in the 3x3 block of cells around `handle`, excluding itself."""
        if not self._knows(handle):
            return []
        cell = int(self._slot_cells[handle.index])
        cell_x = cell % self.grid_width
        cell_y = cell // self.grid_width

        found = []
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                check_x, check_y = cell_x + dx, cell_y + dy
                if 0 <= check_x < self.grid_width and 0 <= check_y < self.grid_height:
                    cell_idx = check_y * self.grid_width + check_x
                    start = self.grid_offsets[cell_idx]
                    end = self.grid_offsets[cell_idx + 1]
                    found.extend(int(s) for s in self.grid_slots[start:end] if s != handle.index)
        return [Handle(index, int(self._slot_generations[index])) for index in sorted(found)]

    def candidate_pair_slots(self) -> np.ndarray:
        """
        All candidate pairs as an (M, 2) array of slot indices, each row
        (lower, higher), rows in ascending lexicographic order.
        """
        if self._pairs is not None:
            return self._pairs
        if len(self.grid_slots) < 2:
            self._pairs = _NO_PAIRS
            return self._pairs

        count = _scan_candidate_pairs_jit(
            self.grid_slots, self.grid_offsets, self.grid_width, self.grid_height,
            _NO_PAIRS, False
        )
        pairs = np.empty((count, 2), dtype=np.int64)
        _scan_candidate_pairs_jit(
            self.grid_slots, self.grid_offsets, self.grid_width, self.grid_height,
            pairs, True
        )
        order = np.lexsort((pairs[:, 1], pairs[:, 0]))
        self._pairs = pairs[order]
        return self._pairs

    def all_candidate_pairs(self) -> List[Tuple[Handle, Handle]]:
        generations = self._slot_generations
        return [
            (Handle(int(a), int(generations[a])), Handle(int(b), int(generations[b])))
            for a, b in self.candidate_pair_slots()
        ]
