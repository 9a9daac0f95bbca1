# particle.py
"""
Manages the state of all particles in the simulation.

This module defines the ParticleSystem class, an indexed arena of particle
records stored as parallel NumPy arrays. A particle's identity is its row
number, so resolving a neighbor's data is a plain array index.
"""
import logging
import numpy as np
from typing import Dict, Any, Optional

# --- Data Contracts ---
#
# class ParticleSystem:
#   - __init__(self, params: Dict[str, Any], width: float, height: float, rng: np.random.Generator):
#     - Inputs:
#       - params: Dictionary of simulation parameters from config.json.
#         - "particle_count": int
#         - "particle_types": int
#       - width, height: size of the centered simulation domain.
#       - rng: the run's seeded generator.
#     - Outputs: None
#     - Side Effects: Initializes internal NumPy arrays for particle state.
#     - Invariants:
#       - self.positions is a NumPy array of shape (N, 2) of dtype float64,
#         uniform in [-width/2, width/2) x [-height/2, height/2).
#       - self.velocities is a NumPy array of shape (N, 2) of dtype float64.
#       - self.types is a NumPy array of shape (N,) of dtype int32.
#       - self.identities is arange(N) and never changes.
#       - N never changes after construction.
#
#   - sync_render_positions(self) -> None:
#     - Side Effects: copies positions into render_positions, the buffer the
#       neighbor query centers on.


class ParticleSystem:
    """
    A container for all particles, managing their state via NumPy arrays.
    """
    def __init__(self, params: Dict[str, Any], width: float, height: float, rng: np.random.Generator):
        particle_count = int(params['particle_count'])
        particle_types = int(params['particle_types'])

        positions = rng.uniform(
            low=[-width / 2.0, -height / 2.0],
            high=[width / 2.0, height / 2.0],
            size=(particle_count, 2)
        )
        types = rng.integers(
            low=0,
            high=particle_types,
            size=particle_count,
            dtype=np.int32
        )
        self._assign(positions, types, None, particle_types)

        logging.info(
            f"ParticleSystem initialized with {self.particle_count} "
            f"particles of {self.particle_types} types."
        )
        logging.debug(
            f"Particle data arrays created. "
            f"Positions shape: {self.positions.shape}, "
            f"Velocities shape: {self.velocities.shape}, "
            f"Types shape: {self.types.shape}"
        )

    @classmethod
    def from_arrays(cls, positions, types, velocities=None, particle_types: Optional[int] = None) -> "ParticleSystem":
        """Builds an arena from explicit state instead of a random draw."""
        system = cls.__new__(cls)
        types = np.asarray(types, dtype=np.int32)
        if particle_types is None:
            particle_types = int(types.max()) + 1 if types.size else 1
        system._assign(positions, types, velocities, particle_types)
        return system

    def _assign(self, positions, types, velocities, particle_types: int) -> None:
        self.positions = np.array(positions, dtype=np.float64).reshape(-1, 2)
        self.particle_count = self.positions.shape[0]
        self.particle_types = particle_types
        self.types = np.array(types, dtype=np.int32).reshape(self.particle_count)
        if velocities is None:
            self.velocities = np.zeros((self.particle_count, 2), dtype=np.float64)
        else:
            self.velocities = np.array(velocities, dtype=np.float64).reshape(self.particle_count, 2)
        if self.particle_count and (self.types.min() < 0 or self.types.max() >= particle_types):
            raise ValueError(f"Particle types must lie in [0, {particle_types}).")
        self.identities = np.arange(self.particle_count, dtype=np.int64)
        self.render_positions = self.positions.copy()

    def sync_render_positions(self) -> None:
        np.copyto(self.render_positions, self.positions)

    def __len__(self):
        return self.particle_count
