# constants.py
"""
Application-level constants.

These values are static and do not change between simulation runs.
They hold the engine defaults used when a parameter is omitted from the
configuration, the layout of emitted instance transforms, and the
settings of the optional pygame viewer.
"""

# --- Engine Defaults ---
# Used by ParticleSimulation when a parameter is not supplied.
DEFAULT_LIMIT = 10000
DEFAULT_LIFETIME = 10.0
DEFAULT_START_SIZE = 1.0
DEFAULT_BROWNIAN_FORCE = 0.01
DEFAULT_START_VELOCITY = (0.1, -0.1, -0.1)
DEFAULT_OPACITY = 1.0
DEFAULT_COLOR = '0xffffff'
DEFAULT_SHRINK_OVER_TIME = True

# --- Instance Transforms ---
# Ratio between a particle's size and the uniform scale of its instance.
INSTANCE_SCALE_FACTOR = 0.2
# Where dead slots are parked. Parked slots also get zero scale.
PARKED_POSITION = (0.0, 0.0, 10000.0)

# Visualization settings
FPS = 60
WINDOW_WIDTH = 1280
WINDOW_HEIGHT = 800
BACKGROUND_COLOR = (36, 44, 40)  # Dark moss
DEFAULT_ZOOM = 1.5  # Screen pixels per world unit
PAN_SPEED = 120.0   # World units per second while an arrow key is held
MIN_DRAW_RADIUS = 1

# --- Debug Overlay ---
ZONE_COLOR = (255, 0, 0)           # Containment volume wireframe
CREATION_ZONE_COLOR = (0, 255, 0)  # Spawn volume wireframes
HUD_TEXT_COLOR = (235, 235, 235)
