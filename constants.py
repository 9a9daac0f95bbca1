# constants.py
"""
Application-level constants.

These values are the defaults used when `config.json` leaves a parameter
out, plus the rendering properties that are not part of the experimental
configuration.
"""

# --- Simulation defaults ---
NUMBER_OF_PARTICLES = 10000
NUMBER_OF_TYPES = 5
WORLD_WIDTH = 800.0
WORLD_HEIGHT = 800.0

# Fraction of the interaction radius inside which every pair repels.
BETA_REPULSION_DISTANCE = 0.5
# Interaction radius in world units.
MAXIMUM_RADIUS_OF_EFFECT = 20.0
# Seconds for a free particle's speed to halve.
FRICTION_HALF_TIME = 0.4

# Fixed simulation rate in Hz (dt = 0.1 s).
TICK_RATE = 10.0
# Wall-clock seconds between spatial index rebuilds.
INDEX_REFRESH_INTERVAL = 0.003
# Upper bound on fixed ticks run for a single display frame.
MAX_TICKS_PER_UPDATE = 5

# Upper bound on grid cells along one axis of the spatial index.
MAX_GRID_CELLS_PER_AXIS = 1024

# --- Visualization settings ---
FPS = 60
PARTICLE_SIZE = 1.5
BACKGROUND_COLOR = (24, 24, 24) # Dark Gray
# Hue step in degrees between consecutive particle types.
TYPE_HUE_STEP = 97.0
TYPE_SATURATION = 60
TYPE_VALUE = 100

# --- Run control ---
LOG_THROTTLE_STEPS = 100
