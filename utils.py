# utils.py
"""
Utility functions for the simulation framework.

This module provides helper functions, such as logging setup, config loading
and parameter validation, that are used across different parts of the
application but do not belong to a specific domain like physics or rendering.
"""
import logging
import logging.handlers
import json
import os
from typing import Dict, Any, Optional, Tuple

import numpy as np

import constants

# --- Data Contracts ---
#
# setup_logging(config: Dict[str, Any]) -> None:
#   - Inputs:
#     - config: A dictionary containing a "logging" key with "level",
#       "format", and "log_file" sub-keys.
#   - Outputs: None
#   - Side Effects: Configures the root Python logger. Creates a log
#     directory if it doesn't exist. Sets up a console handler and a
#     rotating file handler.
#   - Invariants: After this function runs, the logging system is
#     initialized and ready for use throughout the application.
#
# load_config(path: str) -> Dict[str, Any]:
#   - Raises FileNotFoundError / json.JSONDecodeError after logging them.
#
# simulation_parameters(config: Dict[str, Any]) -> Dict[str, Any]:
#   - Returns the "simulation_parameters" section with every missing key
#     filled from constants.py.
#
# validate_parameters(params: Dict[str, Any]) -> None:
#   - Raises ValueError (after a CRITICAL log line) for any physically
#     invalid parameter. Nothing is clamped or corrected.
#
# resolve_seed(seed: Optional[int]) -> Tuple[int, np.random.Generator]:
#   - None draws a fresh seed from OS entropy; the seed used is returned
#     so the run can be reproduced.
#
# assert_finite(name: str, values: np.ndarray) -> None:
#   - Raises FloatingPointError if any entry is NaN or infinite.

SIMULATION_DEFAULTS = {
    'seed': None,
    'particle_count': constants.NUMBER_OF_PARTICLES,
    'particle_types': constants.NUMBER_OF_TYPES,
    'world_width': constants.WORLD_WIDTH,
    'world_height': constants.WORLD_HEIGHT,
    'beta_repulsion_distance': constants.BETA_REPULSION_DISTANCE,
    'max_radius_of_effect': constants.MAXIMUM_RADIUS_OF_EFFECT,
    'friction_half_time': constants.FRICTION_HALF_TIME,
    'tick_rate': constants.TICK_RATE,
    'index_refresh_interval': constants.INDEX_REFRESH_INTERVAL,
}

# Parameters that divide something or size the world: they must be > 0.
_POSITIVE_PARAMETERS = (
    'max_radius_of_effect',
    'friction_half_time',
    'tick_rate',
    'index_refresh_interval',
    'world_width',
    'world_height',
)


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Configures the logging system from a configuration dictionary.

    Sets up logging to both the console and a rotating file.
    """
    log_config = config.get('logging', {})
    log_level = log_config.get('level', 'INFO').upper()
    log_format = log_config.get('format', '%(asctime)s - %(levelname)s - %(message)s')
    log_file_path = log_config.get('log_file', 'logs/simulation.log')

    # Ensure the log directory exists
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(log_level)

    # Clear existing handlers to avoid duplication
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Rotates when the log reaches 1MB, keeps 5 backup logs.
    file_handler = logging.handlers.RotatingFileHandler(
        log_file_path, maxBytes=1024*1024, backupCount=5
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logging.info("Logging system initialized.")
    logging.debug(f"Log level set to {log_level}.")
    logging.debug(f"Log file path: {log_file_path}")


def load_config(path: str) -> Dict[str, Any]:
    """Loads a JSON configuration file."""
    logging.info(f"Loading configuration from {path}...")
    try:
        with open(path, 'r') as f:
            config = json.load(f)
        logging.info("Configuration loaded successfully.")
        return config
    except FileNotFoundError:
        logging.error(f"Configuration file not found at {path}.")
        raise
    except json.JSONDecodeError:
        logging.error(f"Error decoding JSON from {path}.")
        raise


def simulation_parameters(config: Dict[str, Any]) -> Dict[str, Any]:
    """Merges the config's simulation section over the defaults."""
    params = dict(SIMULATION_DEFAULTS)
    params.update(config.get('simulation_parameters', {}))
    return params


def _fail(msg: str) -> None:
    logging.critical(msg)
    raise ValueError(msg)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, (bool, np.bool_))


def _is_integer(value: Any) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, (bool, np.bool_))


def validate_parameters(params: Dict[str, Any]) -> None:
    """
    Rejects configurations the physics cannot run with.

    A zero radius or half-life would divide by zero on the first tick, so
    these are treated as fatal at startup rather than discovered mid-run.
    Values of the wrong type (e.g. a quoted number in config.json) are
    rejected the same way.

    Args:
        params (Dict[str, Any]): Simulation parameters, defaults merged in.

    Raises:
        ValueError: On the first invalid parameter, after a CRITICAL log line.
    """
    for key in _POSITIVE_PARAMETERS:
        value = params.get(key)
        if not _is_number(value) or not np.isfinite(value) or value <= 0:
            _fail(f"Configuration error: '{key}' must be a positive number, got {value!r}.")

    beta = params.get('beta_repulsion_distance')
    if not _is_number(beta) or not 0.0 < beta < 1.0:
        _fail(
            f"Configuration error: 'beta_repulsion_distance' must lie strictly "
            f"between 0 and 1, got {beta!r}."
        )

    num_types = params.get('particle_types')
    if not _is_integer(num_types) or num_types < 1:
        _fail(f"Configuration error: 'particle_types' must be an integer >= 1, got {num_types!r}.")

    count = params.get('particle_count')
    if not _is_integer(count) or count < 0:
        _fail(f"Configuration error: 'particle_count' must be a non-negative integer, got {count!r}.")

    matrix = params.get('attraction_matrix')
    if matrix is not None:
        try:
            matrix = np.asarray(matrix, dtype=np.float64)
        except (TypeError, ValueError) as e:
            _fail(f"Configuration error: Attraction matrix is not a numeric table: {e}.")
        if matrix.shape != (num_types, num_types):
            _fail(
                f"Configuration error: Attraction matrix shape {matrix.shape} "
                f"does not match particle_types ({num_types}). The matrix must be square "
                f"and its dimensions must equal the number of particle types."
            )
        if not np.all(np.isfinite(matrix)) or np.any(np.abs(matrix) > 1.0):
            _fail("Configuration error: Attraction matrix entries must be finite and within [-1, 1].")

    seed = params.get('seed')
    if seed is not None and (not _is_integer(seed) or seed < 0):
        _fail(f"Configuration error: 'seed' must be null or a non-negative integer, got {seed!r}.")


def resolve_seed(seed: Optional[int]) -> Tuple[int, np.random.Generator]:
    """
    Picks the run's seed and builds the generator every component draws from.

    Args:
        seed (Optional[int]): A fixed seed, or None for a fresh one from OS entropy.

    Returns:
        Tuple[int, np.random.Generator]: The seed actually used (log it to
        reproduce the run) and a generator seeded with it.
    """
    if seed is None:
        seed_seq = np.random.SeedSequence()
        seed_used = int(seed_seq.generate_state(1, dtype=np.uint64)[0])
    else:
        seed_used = int(seed)
    return seed_used, np.random.default_rng(seed_used)


def assert_finite(name: str, values: np.ndarray) -> None:
    """Raises FloatingPointError if `values` holds any NaN or infinity."""
    finite = np.isfinite(values)
    if finite.all():
        return
    bad = np.argwhere(~finite)
    row = int(bad[0][0]) if bad.size else -1
    raise FloatingPointError(
        f"{name} contains {int((~finite).sum())} non-finite value(s); first at row {row}."
    )
