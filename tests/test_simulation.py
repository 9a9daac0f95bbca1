import logging

import numpy as np
import pytest

from attraction import AttractionMatrix
from particle import ParticleSystem
from physics import compute_accelerations
from simulation import FixedTimestep, Simulation
from spatial_index import SpatialIndex, query_neighbors
from utils import resolve_seed

RADIUS = 20.0
DT = 0.1

PARAMS = {
    'world_width': 800.0,
    'world_height': 800.0,
    'beta_repulsion_distance': 0.5,
    'max_radius_of_effect': RADIUS,
    'friction_half_time': 0.4,
    'tick_rate': 1.0 / DT,
    'index_refresh_interval': 0.003,
}


def two_particle_sim(separation, factor, types=(0, 0), number_of_types=1):
    positions = [[-separation / 2.0, 0.0], [separation / 2.0, 0.0]]
    particles = ParticleSystem.from_arrays(positions, types, particle_types=number_of_types)
    attraction = AttractionMatrix(np.full((number_of_types, number_of_types), factor))
    return Simulation(particles, attraction, PARAMS)


def test_pair_in_attraction_shell_moves_together():
    sim = two_particle_sim(0.75 * RADIUS, 0.5)
    sim.tick()

    v = sim.particles.velocities
    # force(0.5, 0.75) = 0.5, acceleration = 0.5 * RADIUS = 10, v = a * dt.
    assert v[0] == pytest.approx([1.0, 0.0])
    assert v[1] == pytest.approx([-1.0, 0.0])
    assert np.linalg.norm(v[0]) == pytest.approx(0.5 * RADIUS * DT)


def test_pair_in_repulsion_core_moves_apart_regardless_of_type():
    for factor, types, number_of_types in ((1.0, (0, 0), 1), (-1.0, (0, 1), 2), (0.3, (1, 0), 2)):
        sim = two_particle_sim(0.1 * RADIUS, factor, types, number_of_types)
        sim.tick()
        v = sim.particles.velocities
        # force(a, 0.1) = 0.1 / 0.5 - 1 = -0.8, acceleration = -0.8 * RADIUS.
        assert v[0] == pytest.approx([-0.8 * RADIUS * DT, 0.0])
        assert v[1] == pytest.approx([0.8 * RADIUS * DT, 0.0])


def test_pair_beyond_radius_does_not_interact():
    sim = two_particle_sim(1.5 * RADIUS, 1.0)
    sim.tick()
    assert np.all(sim.particles.velocities == 0.0)


def test_asymmetric_matrix_gives_asymmetric_response():
    positions = [[-7.5, 0.0], [7.5, 0.0]]
    particles = ParticleSystem.from_arrays(positions, [0, 1], particle_types=2)
    attraction = AttractionMatrix([[0.0, 1.0], [-1.0, 0.0]])
    sim = Simulation(particles, attraction, PARAMS)
    sim.tick()
    v = sim.particles.velocities
    # Type 0 chases type 1, type 1 flees type 0.
    assert v[0, 0] > 0.0
    assert v[1, 0] > 0.0


def test_coincident_particles_are_skipped():
    particles = ParticleSystem.from_arrays([[5.0, 5.0], [5.0, 5.0], [12.0, 5.0]], [0, 0, 0])
    attraction = AttractionMatrix([[0.5]])
    sim = Simulation(particles, attraction, PARAMS)
    sim.tick()
    sim.check_finite()
    # The coincident pair only feels the third particle.
    assert sim.particles.velocities[0] == pytest.approx(sim.particles.velocities[1])


def test_accelerations_are_keyed_by_identity():
    positions = np.array([[0.0, 0.0], [12.0, 0.0], [300.0, 300.0]])
    types = np.array([0, 0, 0])
    index = SpatialIndex(cell_size=RADIUS)
    index.rebuild(positions)
    neighbors = query_neighbors(index, positions, RADIUS, live_count=3)
    identities, accelerations = compute_accelerations(
        positions, types, AttractionMatrix([[1.0]]), neighbors, RADIUS, 0.5
    )
    assert identities.tolist() == [0, 1, 2]
    assert accelerations[2] == pytest.approx([0.0, 0.0])
    # force(1.0, 0.6) = 0.4, scaled by the radius.
    assert accelerations[0] == pytest.approx([0.4 * RADIUS, 0.0])
    assert accelerations[1] == pytest.approx([-0.4 * RADIUS, 0.0])


def test_distance_is_not_shortened_across_the_wrap():
    # 10 units apart through the boundary, 790 units apart in raw coordinates.
    sim = two_particle_sim(790.0, 1.0)
    sim.tick()
    assert np.all(sim.particles.velocities == 0.0)


def test_population_is_conserved():
    _, rng = resolve_seed(42)
    params = dict(PARAMS, particle_count=600, particle_types=4, world_width=200.0, world_height=200.0)
    particles = ParticleSystem(params, 200.0, 200.0, rng)
    sim = Simulation(particles, AttractionMatrix.random(4, rng), params)

    for _ in range(20):
        sim.step()

    assert sim.particles.particle_count == 600
    assert sim.particles.positions.shape == (600, 2)
    assert sim.tick_count == 20
    sim.check_finite()
    assert np.all(sim.particles.positions >= -100.0)
    assert np.all(sim.particles.positions < 100.0)


def test_same_seed_reproduces_run():
    def run(seed):
        _, rng = resolve_seed(seed)
        params = dict(PARAMS, particle_count=200, particle_types=3, world_width=100.0, world_height=100.0)
        attraction = AttractionMatrix.random(3, rng)
        particles = ParticleSystem(params, 100.0, 100.0, rng)
        sim = Simulation(particles, attraction, params)
        for _ in range(5):
            sim.step()
        return sim.particles.positions.copy()

    assert np.array_equal(run(5), run(5))
    assert not np.array_equal(run(5), run(6))


def test_wrap_happens_outside_tick():
    sim = two_particle_sim(1.5 * RADIUS, 0.0)
    sim.particles.positions[0] = [399.0, 0.0]
    sim.particles.velocities[0] = [100.0, 0.0]
    sim.tick()
    assert sim.particles.positions[0, 0] > 400.0
    sim.wrap()
    assert -400.0 <= sim.particles.positions[0, 0] < 400.0


def test_matrix_size_must_match_types():
    particles = ParticleSystem.from_arrays([[0.0, 0.0]], [1], particle_types=3)
    with pytest.raises(ValueError):
        Simulation(particles, AttractionMatrix(np.zeros((2, 2))), PARAMS)


@pytest.mark.parametrize("key,value", [
    ('max_radius_of_effect', 0.0),
    ('friction_half_time', 0.0),
    ('tick_rate', -1.0),
    ('beta_repulsion_distance', 1.0),
])
def test_invalid_physics_is_fatal(key, value):
    particles = ParticleSystem.from_arrays([[0.0, 0.0]], [0])
    with pytest.raises(ValueError):
        Simulation(particles, AttractionMatrix([[0.0]]), dict(PARAMS, **{key: value}))


def test_fixed_timestep_accumulates():
    clock = FixedTimestep(10.0)
    assert clock.dt == pytest.approx(0.1)
    assert clock.advance(0.05) == 0
    assert clock.advance(0.06) == 1
    assert clock.advance(0.25) == 2
    assert clock.accumulator == pytest.approx(0.06)


def test_fixed_timestep_drops_backlog():
    clock = FixedTimestep(10.0, max_ticks_per_update=3)
    assert clock.advance(2.0) == 3
    assert clock.advance(0.0) == 0


def test_startup_logs_grid_geometry(caplog):
    positions = [[-100.0, -50.0], [100.0, 50.0]]
    particles = ParticleSystem.from_arrays(positions, [0, 0], particle_types=1)
    with caplog.at_level(logging.INFO):
        sim = Simulation(particles, AttractionMatrix([[0.0]]), PARAMS)

    grid = sim.index.snapshot()
    assert (grid.cells_x, grid.cells_y) == (11, 6)
    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO]
    assert any("11x6 grid" in m and f"cell size {RADIUS:.2f}" in m for m in messages)
