import numpy as np
import pygame
import pytest

import main
from attraction import AttractionMatrix
from particle import ParticleSystem
from simulation import Simulation
from visualization import Visualizer, draw_particles, type_colors, world_to_screen


def test_world_to_screen_centers_and_flips_y():
    positions = np.array([[0.0, 0.0], [-400.0, 400.0], [399.0, -399.0]])
    pixels = world_to_screen(positions, 800.0, 800.0, 800, 800)
    assert pixels.tolist() == [[400, 400], [0, 0], [799, 799]]


def test_world_to_screen_scales_to_window():
    pixels = world_to_screen(np.array([[100.0, 0.0]]), 800.0, 800.0, 400, 200)
    assert pixels.tolist() == [[250, 100]]


def test_type_colors_step_hue():
    colors = type_colors(5, 10.0)
    assert len(colors) == 5
    hues = [color.hsva[0] for color in colors]
    for index, hue in enumerate(hues):
        assert hue == pytest.approx((10.0 + 97.0 * index) % 360.0, abs=1.5)


def test_type_colors_prefer_config_and_fill_the_rest():
    colors = type_colors(3, 0.0, [[255, 0, 0]])
    assert tuple(colors[0])[:3] == (255, 0, 0)
    assert len(colors) == 3


def test_type_colors_fall_back_on_bad_config():
    colors = type_colors(2, 0.0, [[300, 0, 0]])
    assert len(colors) == 2
    assert colors[0].hsva[1] == pytest.approx(60, abs=1.0)


def test_draw_particles_reads_state_without_mutating_it():
    particles = ParticleSystem.from_arrays([[0.0, 0.0], [-100.0, 100.0]], [0, 1])
    before = particles.positions.copy(), particles.velocities.copy(), particles.types.copy()
    colors = [pygame.Color(255, 0, 0), pygame.Color(0, 0, 255)]
    surface = pygame.Surface((200, 200))
    surface.fill((0, 0, 0))

    draw_particles(surface, particles.positions, particles.types, colors, 1.5, 400.0, 400.0)

    assert tuple(surface.get_at((100, 100)))[:3] == (255, 0, 0)
    assert tuple(surface.get_at((50, 50)))[:3] == (0, 0, 255)
    assert np.array_equal(particles.positions, before[0])
    assert np.array_equal(particles.velocities, before[1])
    assert np.array_equal(particles.types, before[2])


def test_windowed_loop_runs_fixed_ticks_and_stops(monkeypatch):
    monkeypatch.setenv("SDL_VIDEODRIVER", "dummy")
    monkeypatch.setenv("SDL_AUDIODRIVER", "dummy")
    params = {
        'world_width': 100.0,
        'world_height': 100.0,
        'max_radius_of_effect': 20.0,
        'friction_half_time': 0.4,
        'tick_rate': 10.0,
        'index_refresh_interval': 1e-6,
    }
    particles = ParticleSystem.from_arrays(
        [[49.0, 0.0], [-30.0, 10.0]], [0, 1], velocities=[[40.0, 0.0], [0.0, 0.0]]
    )
    sim = Simulation(particles, AttractionMatrix([[0.0, 0.0], [0.0, 0.0]]), params)
    rebuilds_at_start = sim.index.rebuild_count
    # One frame is exactly one fixed tick, whatever the wall clock does.
    monkeypatch.setattr(Visualizer, "tick_clock", lambda self: sim.clock.dt)

    steps = main.run_windowed(
        sim, {'window_width': 100, 'window_height': 100, 'base_hue': 0.0},
        max_steps=2, log_throttle=1, rng=np.random.default_rng(0)
    )

    assert steps == 2
    assert sim.tick_count == 2
    positions = sim.particles.positions
    assert np.all(positions >= -50.0) and np.all(positions < 50.0)
    # 49 + 2 ticks of drift crosses the right edge and comes back on the left.
    assert positions[0, 0] < 0.0
    assert sim.index.rebuild_count > rebuilds_at_start
