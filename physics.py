# physics.py
"""
Force law, acceleration accumulation, integration and boundary wrapping.

The force law and the per-particle accumulation are Numba-jitted; the
accumulation runs one particle per prange iteration and only ever writes
that particle's own output row. Integration and wrapping are plain NumPy
array operations.
"""
import math
from typing import Tuple

import numpy as np
from numba import jit, prange

from attraction import AttractionMatrix
from spatial_index import NeighborLists

# --- Data Contracts ---
#
# force(attraction_factor: float, normalized_distance: float, beta: float) -> float:
#   - d < beta:        d / beta - 1               (repulsion, -1 at d = 0)
#   - beta <= d < 1:   a * (1 - |2d - 1 - beta| / (1 - beta))  (peak a at (1 + beta) / 2)
#   - d >= 1:          0
#
# compute_accelerations(positions, types, attraction, neighbors, max_radius, beta)
#     -> Tuple[np.ndarray, np.ndarray]:
#   - Outputs: (identities (n,), accelerations (n, 2)). Row k belongs to
#     identities[k], the head of neighbor row k.
#   - Invariants: pairs at exactly zero distance contribute nothing.
#     Separation is the raw difference of coordinates; it is NOT shortened
#     across the periodic boundary.
#
# friction_factor(dt: float, half_time: float) -> float:
#   - 0.5 ** (dt / half_time)
#
# integrate(positions, velocities, identities, accelerations, dt, half_time) -> None:
#   - Side Effects: v' = friction * v + a * dt ; x' = x + v' * dt, in place.
#     NaN and infinity propagate untouched.
#
# wrap_positions(positions, width, height) -> None:
#   - Side Effects: maps every coordinate into [-extent/2, extent/2), in place.


@jit(nopython=True)
def force(attraction_factor, normalized_distance, beta):
    """Signed force magnitude along the direction to the other particle."""
    if normalized_distance < beta:
        return normalized_distance / beta - 1.0
    elif normalized_distance < 1.0:
        numerator = abs(2.0 * normalized_distance - 1.0 - beta)
        denominator = 1.0 - beta
        return attraction_factor * (1.0 - numerator / denominator)
    return 0.0


@jit(nopython=True, parallel=True)
def _accelerations_numba(positions, types, matrix, offsets, members, max_radius, beta):
    row_count = offsets.shape[0] - 1
    identities = np.empty(row_count, dtype=np.int64)
    accelerations = np.zeros((row_count, 2), dtype=np.float64)

    for row in prange(row_count):
        start = offsets[row]
        end = offsets[row + 1]
        this = members[start]
        this_type = types[this]
        px = positions[this, 0]
        py = positions[this, 1]

        ax = 0.0
        ay = 0.0
        for k in range(start + 1, end):
            other = members[k]
            vx = positions[other, 0] - px
            vy = positions[other, 1] - py
            distance = math.sqrt(vx * vx + vy * vy)
            # Coincident particles have no direction.
            if distance == 0.0:
                continue
            magnitude = force(matrix[this_type, types[other]], distance / max_radius, beta)
            ax += vx / distance * magnitude
            ay += vy / distance * magnitude

        identities[row] = this
        accelerations[row, 0] = ax * max_radius
        accelerations[row, 1] = ay * max_radius
    return identities, accelerations


def compute_accelerations(
    positions: np.ndarray,
    types: np.ndarray,
    attraction: AttractionMatrix,
    neighbors: NeighborLists,
    max_radius: float,
    beta: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Net acceleration of every particle from its neighbor list.

    Args:
        positions (np.ndarray): (n, 2) current positions.
        types (np.ndarray): (n,) particle types.
        attraction (AttractionMatrix): Type-to-type coefficients.
        neighbors (NeighborLists): Rows of [self, neighbors...].
        max_radius (float): Interaction radius; distances are normalized by it
            and the summed force is scaled by it.
        beta (float): Repulsion-core fraction of the radius.

    Returns:
        Tuple[np.ndarray, np.ndarray]: (identities, accelerations), one row
        per neighbor row.
    """
    return _accelerations_numba(
        np.ascontiguousarray(positions, dtype=np.float64),
        np.ascontiguousarray(types, dtype=np.int64),
        attraction.values,
        neighbors.offsets,
        neighbors.members,
        float(max_radius),
        float(beta),
    )


def friction_factor(dt: float, half_time: float) -> float:
    """Velocity multiplier per step of `dt` for a speed half-life of `half_time`."""
    return 0.5 ** (dt / half_time)


def integrate(
    positions: np.ndarray,
    velocities: np.ndarray,
    identities: np.ndarray,
    accelerations: np.ndarray,
    dt: float,
    half_time: float,
) -> None:
    """
    Semi-implicit Euler step with exponential velocity decay, in place.

    Args:
        positions (np.ndarray): (n, 2) positions, updated with the new velocity.
        velocities (np.ndarray): (n, 2) velocities.
        identities (np.ndarray): Rows to update, matching `accelerations`.
        accelerations (np.ndarray): (k, 2) accelerations for those rows.
        dt (float): Fixed time step in seconds.
        half_time (float): Friction half-life in seconds.
    """
    friction = friction_factor(dt, half_time)
    velocities[identities] = friction * velocities[identities] + accelerations * dt
    positions[identities] += velocities[identities] * dt


def wrap_coordinate(values: np.ndarray, extent: float) -> np.ndarray:
    """Maps values into [-extent / 2, extent / 2) with a Euclidean remainder."""
    half = extent / 2.0
    shifted = np.mod(values + half, extent)
    # np.mod can round a tiny negative up to exactly `extent`.
    shifted = np.where(shifted >= extent, shifted - extent, shifted)
    return shifted - half


def wrap_positions(positions: np.ndarray, width: float, height: float) -> None:
    """Toroidal wrap of every particle back into the centered domain."""
    positions[:, 0] = wrap_coordinate(positions[:, 0], width)
    positions[:, 1] = wrap_coordinate(positions[:, 1], height)
