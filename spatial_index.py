# spatial_index.py
"""
Spatial index and neighbor query stage.

The index is a uniform grid stored CSR-style (per-cell offsets into one
array of row numbers), built by a Numba counting sort. Each rebuild produces
a fresh immutable GridSnapshot which is swapped in atomically, so a query
always runs against one complete snapshot even if a rebuild lands while it
is in flight.

The neighbor query stage turns the index into one neighbor list per
particle. It runs as two Numba prange passes (count, then fill) and every
particle's list is written to its own slice of the output.
"""
import logging
import math
import threading
import time
from typing import List, Optional, Tuple

import numpy as np
from numba import jit, prange

import constants

# --- Data Contracts ---
#
# class GridSnapshot:
#   - Immutable. Holds copies of the positions and identities it was built
#     from, the grid origin, cell size and CSR arrays.
#
# class SpatialIndex:
#   - __init__(self, cell_size: float, max_cells_per_axis: int = ...):
#     - cell_size should equal the interaction radius.
#   - rebuild(self, positions: np.ndarray, identities: Optional[np.ndarray] = None) -> None:
#     - Side Effects: replaces the current snapshot (atomic swap under a lock).
#   - snapshot(self) -> GridSnapshot
#   - within_distance(self, point, radius) -> List[Tuple[np.ndarray, int]]:
#     - Unordered (position, identity) pairs with distance <= radius. May
#       include the query originator. Empty index -> [].
#
# class IndexRefresher:
#   - refresh_if_due(self, positions, now=None) -> bool:
#     - Rebuilds the index when `interval` seconds of wall time have passed.
#
# query_neighbors(index, centers, radius, live_count) -> NeighborLists:
#   - Row i starts with i itself, followed by every other live identity
#     within `radius` of centers[i]. Identities >= live_count are stale
#     and dropped.

_NO_IDENTITY = -1


@jit(nopython=True)
def _build_grid_numba(positions, origin_x, origin_y, cell_size, cells_x, cells_y):
    """
    Numba-jitted counting sort of the particles into grid cells.

    Returns (cell_start, order): the rows in cell c are
    order[cell_start[c]:cell_start[c + 1]].
    """
    particle_count = positions.shape[0]
    cell_count = cells_x * cells_y
    cell_of = np.empty(particle_count, dtype=np.int64)
    cell_start = np.zeros(cell_count + 1, dtype=np.int64)

    for i in range(particle_count):
        cx = int((positions[i, 0] - origin_x) / cell_size)
        cy = int((positions[i, 1] - origin_y) / cell_size)
        cx = min(max(cx, 0), cells_x - 1)
        cy = min(max(cy, 0), cells_y - 1)
        cell = cx + cy * cells_x
        cell_of[i] = cell
        cell_start[cell + 1] += 1

    for c in range(cell_count):
        cell_start[c + 1] += cell_start[c]

    fill = cell_start[:-1].copy()
    order = np.empty(particle_count, dtype=np.int64)
    for i in range(particle_count):
        cell = cell_of[i]
        order[fill[cell]] = i
        fill[cell] += 1
    return cell_start, order


@jit(nopython=True)
def _scan_cells(
    x, y, radius, skip_identity, live_count,
    positions, identities, cell_start, order,
    origin_x, origin_y, cell_size, cells_x, cells_y,
    out, out_start, write, emit_rows
):
    """
    Counts the entries within `radius` of (x, y).

    With `write` set, also stores them into `out` starting at `out_start`:
    snapshot row numbers if `emit_rows`, otherwise identities.
    """
    radius_sq = radius * radius
    x0 = max(int(math.floor((x - radius - origin_x) / cell_size)), 0)
    x1 = min(int(math.floor((x + radius - origin_x) / cell_size)), cells_x - 1)
    y0 = max(int(math.floor((y - radius - origin_y) / cell_size)), 0)
    y1 = min(int(math.floor((y + radius - origin_y) / cell_size)), cells_y - 1)

    found = 0
    for cy in range(y0, y1 + 1):
        for cx in range(x0, x1 + 1):
            cell = cx + cy * cells_x
            for k in range(cell_start[cell], cell_start[cell + 1]):
                row = order[k]
                identity = identities[row]
                if identity == skip_identity:
                    continue
                if live_count >= 0 and identity >= live_count:
                    continue
                dx = positions[row, 0] - x
                dy = positions[row, 1] - y
                if dx * dx + dy * dy <= radius_sq:
                    if write:
                        if emit_rows:
                            out[out_start + found] = row
                        else:
                            out[out_start + found] = identity
                    found += 1
    return found


@jit(nopython=True, parallel=True)
def _neighbor_lists_numba(
    centers, center_identities, radius, live_count, lead_with_self, emit_rows,
    positions, identities, cell_start, order,
    origin_x, origin_y, cell_size, cells_x, cells_y
):
    """
    Numba-jitted batched radius query.

    Two passes over the query points: the first counts matches to size each
    row, the second fills the rows. Rows never overlap, so both passes run
    in parallel without a shared accumulator.
    """
    query_count = centers.shape[0]
    lead = 1 if lead_with_self else 0
    counts = np.zeros(query_count, dtype=np.int64)
    scratch = np.empty(0, dtype=np.int64)

    for i in prange(query_count):
        counts[i] = lead + _scan_cells(
            centers[i, 0], centers[i, 1], radius, center_identities[i], live_count,
            positions, identities, cell_start, order,
            origin_x, origin_y, cell_size, cells_x, cells_y,
            scratch, 0, False, emit_rows
        )

    offsets = np.zeros(query_count + 1, dtype=np.int64)
    for i in range(query_count):
        offsets[i + 1] = offsets[i] + counts[i]

    members = np.empty(offsets[query_count], dtype=np.int64)
    for i in prange(query_count):
        start = offsets[i]
        if lead_with_self:
            members[start] = center_identities[i]
        _scan_cells(
            centers[i, 0], centers[i, 1], radius, center_identities[i], live_count,
            positions, identities, cell_start, order,
            origin_x, origin_y, cell_size, cells_x, cells_y,
            members, start + lead, True, emit_rows
        )
    return offsets, members


class GridSnapshot:
    """One immutable build of the grid."""

    def __init__(self, positions: np.ndarray, identities: np.ndarray, cell_size: float, max_cells_per_axis: int):
        self.positions = np.array(positions, dtype=np.float64).reshape(-1, 2)
        self.identities = np.array(identities, dtype=np.int64)
        if self.identities.shape[0] != self.positions.shape[0]:
            raise ValueError(
                f"Got {self.identities.shape[0]} identities for {self.positions.shape[0]} positions."
            )

        # Non-finite rows are clamped into the edge cells by the build kernel.
        finite = self.positions[np.isfinite(self.positions).all(axis=1)]
        if len(finite) > 0:
            lower = finite.min(axis=0)
            upper = finite.max(axis=0)
        else:
            lower = upper = np.zeros(2)
        span = upper - lower

        # Grow the cells rather than the grid if a coordinate ran far away.
        self.cell_size = float(max(cell_size, span.max() / max_cells_per_axis))
        self.origin_x = float(lower[0])
        self.origin_y = float(lower[1])
        self.cells_x = int(span[0] // self.cell_size) + 1
        self.cells_y = int(span[1] // self.cell_size) + 1

        self.cell_start, self.order = _build_grid_numba(
            self.positions, self.origin_x, self.origin_y,
            self.cell_size, self.cells_x, self.cells_y
        )
        for array in (self.positions, self.identities, self.cell_start, self.order):
            array.setflags(write=False)

    def __len__(self):
        return self.positions.shape[0]

    def query(self, centers: np.ndarray, center_identities: np.ndarray, radius: float,
              live_count: int = -1, lead_with_self: bool = False,
              emit_rows: bool = False) -> Tuple[np.ndarray, np.ndarray]:
        """
        Batched radius query against this snapshot.

        Args:
            centers (np.ndarray): (m, 2) query points.
            center_identities (np.ndarray): (m,) identity excluded from each
                query point's own result; -1 excludes nothing.
            radius (float): Inclusive query radius.
            live_count (int): Identities at or above this are stale and
                dropped; -1 keeps everything.
            lead_with_self (bool): Start every row with its center identity.
            emit_rows (bool): Emit snapshot row numbers instead of identities.

        Returns:
            Tuple[np.ndarray, np.ndarray]: CSR (offsets, members).
        """
        centers = np.ascontiguousarray(centers, dtype=np.float64).reshape(-1, 2)
        center_identities = np.ascontiguousarray(center_identities, dtype=np.int64)
        return _neighbor_lists_numba(
            centers, center_identities, float(radius), int(live_count), lead_with_self, emit_rows,
            self.positions, self.identities, self.cell_start, self.order,
            self.origin_x, self.origin_y, self.cell_size, self.cells_x, self.cells_y
        )


class SpatialIndex:
    """
    Radius-query index over particle positions, rebuilt wholesale.

    Rebuilds never mutate a live snapshot: the new grid is built off to the
    side and then published with a single reference swap.
    """

    def __init__(self, cell_size: float, max_cells_per_axis: int = constants.MAX_GRID_CELLS_PER_AXIS):
        if not cell_size > 0:
            raise ValueError(f"Spatial index cell size must be positive, got {cell_size!r}.")
        self.cell_size = float(cell_size)
        self.max_cells_per_axis = int(max_cells_per_axis)
        self._lock = threading.Lock()
        self._snapshot = GridSnapshot(np.empty((0, 2)), np.empty(0, dtype=np.int64),
                                      self.cell_size, self.max_cells_per_axis)
        self.rebuild_count = 0

    def rebuild(self, positions: np.ndarray, identities: Optional[np.ndarray] = None) -> None:
        """
        Builds a new snapshot and publishes it atomically.

        Args:
            positions (np.ndarray): (n, 2) positions; copied, so later
                moves do not leak into the snapshot.
            identities (Optional[np.ndarray]): (n,) identities, arange(n)
                if omitted.
        """
        if identities is None:
            identities = np.arange(len(positions), dtype=np.int64)
        snapshot = GridSnapshot(positions, identities, self.cell_size, self.max_cells_per_axis)
        with self._lock:
            self._snapshot = snapshot
            self.rebuild_count += 1
        logging.debug(
            f"Spatial index rebuilt: {len(snapshot)} entries, "
            f"{snapshot.cells_x}x{snapshot.cells_y} cells of {snapshot.cell_size:.2f}."
        )

    def snapshot(self) -> GridSnapshot:
        """Returns the current snapshot; hold on to it for a consistent read."""
        with self._lock:
            return self._snapshot

    def __len__(self):
        return len(self.snapshot())

    def within_distance(self, point, radius: float) -> List[Tuple[np.ndarray, int]]:
        """
        All entries within `radius` of `point`, in no particular order.

        The result may include the particle the query is centered on;
        callers exclude it themselves.

        Returns:
            List[Tuple[np.ndarray, int]]: (position, identity) pairs, empty
            if nothing is in range.
        """
        snapshot = self.snapshot()
        if len(snapshot) == 0:
            return []
        center = np.asarray(point, dtype=np.float64).reshape(1, 2)
        _, rows = snapshot.query(center, np.array([_NO_IDENTITY]), radius, emit_rows=True)
        return [(snapshot.positions[row], int(snapshot.identities[row])) for row in rows]


class IndexRefresher:
    """Rebuilds a SpatialIndex on a fixed wall-clock cadence."""

    def __init__(self, index: SpatialIndex, interval: float):
        if not interval > 0:
            raise ValueError(f"Index refresh interval must be positive, got {interval!r}.")
        self.index = index
        self.interval = float(interval)
        self.last_refresh: Optional[float] = None

    def refresh_if_due(self, positions: np.ndarray, now: Optional[float] = None) -> bool:
        """
        Rebuilds the index if `interval` seconds have passed since the last rebuild.

        Args:
            positions (np.ndarray): Current (n, 2) positions.
            now (Optional[float]): Wall-clock reading; time.monotonic() if omitted.

        Returns:
            bool: True if a rebuild happened.
        """
        if now is None:
            now = time.monotonic()
        if self.last_refresh is not None and now - self.last_refresh < self.interval:
            return False
        self.index.rebuild(positions)
        self.last_refresh = now
        return True


class NeighborLists:
    """
    Per-tick neighbor lists in CSR form.

    Row i is members[offsets[i]:offsets[i + 1]]; its first entry is the
    particle itself.
    """

    def __init__(self, offsets: np.ndarray, members: np.ndarray):
        self.offsets = offsets
        self.members = members

    def __len__(self):
        return len(self.offsets) - 1

    def row(self, i: int) -> np.ndarray:
        return self.members[self.offsets[i]:self.offsets[i + 1]]

    def total_pairs(self) -> int:
        """Neighbor entries across all rows, self entries excluded."""
        return int(len(self.members) - len(self))


def query_neighbors(index: SpatialIndex, centers: np.ndarray, radius: float, live_count: int) -> NeighborLists:
    """
    Builds the neighbor list of every particle from the current index snapshot.

    Args:
        index (SpatialIndex): The index to read; one snapshot is used throughout.
        centers (np.ndarray): (n, 2) query centers, row i for identity i.
        radius (float): Interaction radius.
        live_count (int): Current population; larger identities are stale.

    Returns:
        NeighborLists: Row i is [i, neighbors of i...].
    """
    identities = np.arange(len(centers), dtype=np.int64)
    offsets, members = index.snapshot().query(
        centers, identities, radius, live_count=live_count, lead_with_self=True
    )
    return NeighborLists(offsets, members)
