"""Shared constants for map dimensions, depth range and field of view."""

from typing import Final

# --- Map dimensions ---
MAP_WIDTH: Final[int] = 80
MAP_HEIGHT: Final[int] = 50

# --- Depth range ---
MIN_DEPTH: Final[int] = 0
MAX_DEPTH: Final[int] = 50

# --- Field of view ---
FOV_RADIUS: Final[int] = 20

# --- Generation ---
DEFAULT_MAX_ATTEMPTS: Final[int] = 8
DEFAULT_FALLBACK_MARGIN: Final[int] = 2
# Floor tiles below this count fail a generation attempt
DEFAULT_MIN_FLOOR_TILES: Final[int] = 24
DEFAULT_GROWTH_STEP_BUDGET: Final[int] = 20_000

# Smallest map edge the config accepts
MIN_MAP_SIZE: Final[int] = 8
