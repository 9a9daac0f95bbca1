# simulation.py
"""
Handles the core simulation logic.

This module defines the Simulation class, which advances the particle system
by one fixed time step as a three-stage pipeline: neighbor query, force
accumulation, integration. Boundary wrapping and spatial index refreshes run
on their own cadence, driven by the host loop.
"""
import logging
import numpy as np
from typing import Dict, Any, Optional

import constants
from attraction import AttractionMatrix
from particle import ParticleSystem
from physics import compute_accelerations, friction_factor, integrate, wrap_positions
from spatial_index import IndexRefresher, SpatialIndex, query_neighbors
from utils import assert_finite, simulation_parameters, validate_parameters

# --- Data Contracts ---
#
# class FixedTimestep:
#   - __init__(self, hz: float, max_ticks_per_update: int = MAX_TICKS_PER_UPDATE):
#     - dt = 1 / hz.
#   - advance(self, elapsed: float) -> int:
#     - Adds wall time to the accumulator and returns the number of fixed
#       ticks now due. A backlog beyond max_ticks_per_update is dropped.
#
# class Simulation:
#   - __init__(self, particles: ParticleSystem, attraction: AttractionMatrix, params: Dict[str, Any]):
#     - Inputs:
#       - particles: An initialized ParticleSystem object.
#       - attraction: The run's AttractionMatrix; its size must match
#         particles.particle_types.
#       - params: Dictionary of simulation parameters from config.json.
#         Missing keys fall back to constants.py.
#     - Side Effects: Validates parameters (ValueError on failure) and
#       builds the spatial index from the initial positions.
#
#   - tick(self) -> None:
#     - Side Effects: one fixed dt of neighbor query, acceleration and
#       integration on the particle arrays.
#     - Invariants: Particle count remains constant.
#
#   - wrap(self) -> None: toroidal wrap of all positions.
#   - refresh_index(self, now: Optional[float] = None) -> bool
#   - step(self) -> None: sync render positions, tick, wrap, rebuild index.


class FixedTimestep:
    """Accumulates wall time and releases it as whole fixed ticks."""

    def __init__(self, hz: float, max_ticks_per_update: int = constants.MAX_TICKS_PER_UPDATE):
        if not hz > 0:
            raise ValueError(f"Tick rate must be positive, got {hz!r}.")
        self.hz = float(hz)
        self.dt = 1.0 / self.hz
        self.max_ticks_per_update = max_ticks_per_update
        self.accumulator = 0.0

    def advance(self, elapsed: float) -> int:
        """
        Adds elapsed wall time and returns how many fixed ticks are due.

        Args:
            elapsed (float): Seconds since the previous call.

        Returns:
            int: Ticks to run now, at most max_ticks_per_update.
        """
        self.accumulator += elapsed
        ticks = int(self.accumulator // self.dt)
        self.accumulator -= ticks * self.dt
        if ticks > self.max_ticks_per_update:
            logging.warning(
                f"Simulation is {ticks} ticks behind; dropping "
                f"{ticks - self.max_ticks_per_update} of them."
            )
            ticks = self.max_ticks_per_update
            self.accumulator = 0.0
        return ticks


class Simulation:
    """
    Runs the particle-life pipeline over a ParticleSystem.
    """
    def __init__(self, particles: ParticleSystem, attraction: AttractionMatrix, params: Dict[str, Any]):
        params = simulation_parameters({'simulation_parameters': params})
        params['particle_count'] = particles.particle_count
        params['particle_types'] = particles.particle_types
        validate_parameters(params)

        if attraction.number_of_types != particles.particle_types:
            msg = (
                f"Configuration error: Attraction matrix size {attraction.number_of_types} "
                f"does not match particle_types ({particles.particle_types})."
            )
            logging.critical(msg)
            raise ValueError(msg)

        self.particles = particles
        self.attraction = attraction
        self.world_width = float(params['world_width'])
        self.world_height = float(params['world_height'])
        self.beta = float(params['beta_repulsion_distance'])
        self.max_radius = float(params['max_radius_of_effect'])
        self.friction_half_time = float(params['friction_half_time'])
        self.clock = FixedTimestep(params['tick_rate'])
        self.delta_time = self.clock.dt
        self.tick_count = 0

        self.index = SpatialIndex(cell_size=self.max_radius)
        self.refresher = IndexRefresher(self.index, params['index_refresh_interval'])
        self.refresher.refresh_if_due(self.particles.positions)
        grid = self.index.snapshot()

        logging.info("Simulation logic initialized and configuration validated.")
        logging.info(
            f"Spatial grid enabled for performance: "
            f"{grid.cells_x}x{grid.cells_y} grid, "
            f"cell size {grid.cell_size:.2f}, refreshed every "
            f"{self.refresher.interval * 1000.0:.1f}ms."
        )
        logging.info(
            f"dt={self.delta_time:.3f}s, interaction radius {self.max_radius:.2f}, "
            f"friction factor per tick {friction_factor(self.delta_time, self.friction_half_time):.4f}."
        )

    def tick(self):
        """
        Executes one fixed time step of the simulation.
        """
        particles = self.particles

        # 1. Neighbor lists around each particle's rendered position
        neighbors = query_neighbors(
            self.index, particles.render_positions, self.max_radius, particles.particle_count
        )

        # 2. Net acceleration per particle
        identities, accelerations = compute_accelerations(
            particles.positions, particles.types, self.attraction,
            neighbors, self.max_radius, self.beta
        )

        # 3. Velocity and position update
        integrate(
            particles.positions, particles.velocities, identities, accelerations,
            self.delta_time, self.friction_half_time
        )
        self.tick_count += 1

    def wrap(self):
        """Wraps every position back into the toroidal domain."""
        wrap_positions(self.particles.positions, self.world_width, self.world_height)

    def refresh_index(self, now: Optional[float] = None) -> bool:
        """Rebuilds the spatial index if the refresh interval has elapsed."""
        return self.refresher.refresh_if_due(self.particles.positions, now)

    def rebuild_index(self):
        self.index.rebuild(self.particles.positions)

    def step(self):
        """
        One complete headless cycle, in frame order.
        """
        self.particles.sync_render_positions()
        self.tick()
        self.wrap()
        self.rebuild_index()

    def check_finite(self):
        """Raises FloatingPointError if any position or velocity is NaN or infinite."""
        assert_finite("positions", self.particles.positions)
        assert_finite("velocities", self.particles.velocities)

    def mean_speed(self) -> float:
        if self.particles.particle_count == 0:
            return 0.0
        return float(np.mean(np.linalg.norm(self.particles.velocities, axis=1)))
