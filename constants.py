# constants.py

"""
Application Constants

This module defines the static defaults for the simulation core. Any value
can be overridden by the 'simulation' or 'spawning' sections of config.json;
these are used when a key is absent.

Data Contract:
- All values are immutable constants.
- Units are specified in comments where applicable.
"""

# Arena dimensions
WIDTH = 640  # Pixels
HEIGHT = 480  # Pixels

# Framerate the host loop is expected to tick at
FPS = 60  # Frames per second
DT = 1.0 / FPS  # Seconds per frame

# Physics
GRAVITY = (0.0, 30.0)  # Pixels / s^2
DAMPING = 0.99  # Fraction of the implicit velocity kept each frame, in (0, 1]
SUBSTEPS = 8  # Detect/resolve iterations per frame
MAX_RADIUS = 10.0  # Pixels. Grid cells are 2 * MAX_RADIUS wide.

# Contact solver
POSITION_CORRECTION_FACTOR = 1.0  # Scales the positional correction per substep
CONTACT_EPSILON = 1e-9  # Squared distance below which centers count as coincident
IMPULSE_RESPONSE = False  # Add a velocity impulse on top of positional correction

# Spawning
SPAWN_EVERY = 10  # Frames between spawns
SPAWN_RADIUS = 10.0  # Pixels
SPAWN_MASS = 1.0
SPAWN_RESTITUTION = 0.8
SPAWN_X_STRIDE = 10.0  # Pixels the spawn point moves to the right each spawn
SPAWN_JITTER = 0.0  # Pixels of random horizontal offset
MAX_PARTICLES = 1000

# Logging cadence for the driver
LOG_EVERY = 100  # Ticks
