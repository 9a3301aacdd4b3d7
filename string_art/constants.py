# string_art/constants.py
"""Default parameters and fixed constants for the string art engine."""

# -------------------------------------------------------------------
# Image processing
# -------------------------------------------------------------------

IMG_SIZE = 500

GRAYSCALE_WEIGHTS = (0.299, 0.587, 0.114)  # red, green, blue

MIN_IMAGE_DIMENSION = 100
MAX_IMAGE_DIMENSION = 4000
MAX_IMAGE_ASPECT_RATIO = 3.0

# -------------------------------------------------------------------
# String art parameters
# -------------------------------------------------------------------

SHAPES = ("circle", "rectangle")
DEFAULT_SHAPE = "circle"

N_PINS = 288  # 36 * 8
MAX_LINES = 4000
LINE_WEIGHT = 20
MIN_DISTANCE = 20

# Physical measurements (mm)
HOOP_DIAMETER = 500

# -------------------------------------------------------------------
# Optimizer
# -------------------------------------------------------------------

RECENT_PINS_WINDOW = 20  # anti-backtracking FIFO capacity
PROGRESS_INTERVAL = 10   # lines between progress events

# -------------------------------------------------------------------
# Validation bounds (inclusive)
# -------------------------------------------------------------------

PINS_RANGE = (3, 1000)
LINES_RANGE = (1, 10000)
LINE_WEIGHT_RANGE = (1, 255)
THREAD_THICKNESS_RANGE = (0.01, 5.0)
MIN_DISTANCE_RANGE = (1, 50)
IMG_SIZE_RANGE = (100, 2000)

# -------------------------------------------------------------------
# Yarn model
# -------------------------------------------------------------------

DEFAULT_VISUAL_MULTIPLIER = 1.10

# kg/m^3
MATERIAL_DENSITY = {
    "cotton": 1540.0,
    "nylon": 1140.0,
    "polyester": 1380.0,
    "unknown": 1380.0,
}
