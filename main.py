# main.py
"""
Main entry point for the Particle Life simulation.

This script orchestrates the entire simulation lifecycle:
1. Loads configuration from `config.json` (or the path given by --config).
2. Initializes the logging system.
3. Validates parameters and sets up the particles and attraction matrix.
4. Runs the main loop, windowed or headless.
5. Handles clean shutdown.
"""
import argparse
import logging
import sys
import time
from utils import (
    setup_logging, load_config, resolve_seed, simulation_parameters, validate_parameters
)
import cProfile
import pstats
import io

import constants


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Particle Life simulation")
    parser.add_argument("--config", default="config.json", help="Path to the JSON configuration file.")
    parser.add_argument("--headless", action="store_true", help="Run without opening a window.")
    parser.add_argument("--steps", type=int, default=None, help="Override run_control.max_steps.")
    return parser.parse_args(argv)


def build_simulation(sim_params: dict):
    """Creates the particle arena, attraction matrix and simulation from validated parameters."""
    from attraction import AttractionMatrix
    from particle import ParticleSystem
    from simulation import Simulation

    seed_used, rng = resolve_seed(sim_params.get('seed'))
    sim_params['seed'] = seed_used
    logging.info(f"Using seed {seed_used}.")

    width = float(sim_params['world_width'])
    height = float(sim_params['world_height'])

    # Matrix first so a given seed always yields the same matrix.
    if sim_params.get('attraction_matrix') is not None:
        attraction = AttractionMatrix(sim_params['attraction_matrix'])
    else:
        attraction = AttractionMatrix.random(sim_params['particle_types'], rng)
    particles = ParticleSystem(sim_params, width, height, rng)
    sim = Simulation(particles, attraction, sim_params)
    return sim, rng


def _log_progress(sim, step_num: int, max_steps: int) -> None:
    if max_steps:
        logging.info(f"Simulation step {step_num}/{max_steps}")
    else:
        logging.info(f"Simulation step {step_num}")
    logging.debug(f"Step {step_num} | Average Velocity: {sim.mean_speed():.4f}")
    sim.check_finite()


def run_headless(sim, max_steps: int, log_throttle: int) -> int:
    step_num = 0
    while not max_steps or step_num < max_steps:
        sim.step()
        step_num += 1
        if step_num % log_throttle == 0:
            _log_progress(sim, step_num, max_steps)
    logging.info(f"Reached max_steps ({max_steps}). Stopping simulation.")
    return step_num


def run_windowed(sim, vis_params: dict, max_steps: int, log_throttle: int, rng) -> int:
    from visualization import Visualizer

    visualizer = Visualizer(
        particle_types=sim.particles.particle_types,
        world_width=sim.world_width,
        world_height=sim.world_height,
        vis_params=vis_params,
        base_hue=vis_params.get('base_hue', float(rng.random() * 360.0)),
    )

    step_num = 0
    running = True
    visualizer.tick_clock()
    try:
        while running:
            elapsed = visualizer.tick_clock()
            sim.particles.sync_render_positions()

            for _ in range(sim.clock.advance(elapsed)):
                sim.tick()
                step_num += 1
                if step_num % log_throttle == 0:
                    _log_progress(sim, step_num, max_steps)
                if max_steps and step_num >= max_steps:
                    logging.info(f"Reached max_steps ({max_steps}). Stopping simulation.")
                    running = False
                    break

            sim.wrap()
            sim.refresh_index(time.monotonic())

            if not visualizer.draw(sim.particles):
                running = False
    finally:
        visualizer.close()
    return step_num


def main(argv=None) -> int:
    """
    The main function to run the simulation.
    """
    args = parse_args(argv)

    # Logging is not set up yet, so we use a print for this one error.
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"FATAL: Could not load {args.config}. Error: {e}")
        return 1

    setup_logging(config)

    logging.info("--- Particle Life Simulation Starting ---")

    sim_params = simulation_parameters(config)
    run_params = config.get('run_control', {})
    vis_params = config.get('visualization', {})

    try:
        validate_parameters(sim_params)
    except ValueError:
        return 1

    sim, rng = build_simulation(sim_params)

    log_throttle = max(1, int(run_params.get('log_throttle_steps', constants.LOG_THROTTLE_STEPS)))
    max_steps = args.steps if args.steps is not None else int(run_params.get('max_steps', 0))
    headless = args.headless or bool(run_params.get('headless', False))

    profiler = cProfile.Profile() if run_params.get('profile', False) else None

    if profiler is not None:
        profiler.enable()
    if headless:
        steps_run = run_headless(sim, max_steps, log_throttle)
    else:
        steps_run = run_windowed(sim, vis_params, max_steps, log_throttle, rng)
    if profiler is not None:
        profiler.disable()

    logging.info(f"Simulation loop finished after {steps_run} ticks.")

    if profiler is not None:
        logging.info("--- Performance Profile ---")
        s = io.StringIO()
        # Sort by cumulative time spent in the function
        stats = pstats.Stats(profiler, stream=s).sort_stats('cumtime')
        stats.print_stats(20) # Print top 20 slowest functions
        logging.info(f"\n{s.getvalue()}")

    logging.info("--- Particle Life Simulation Shutting Down ---")
    return 0


if __name__ == "__main__":
    sys.exit(main())
