# delve/world/tiles.py
"""Tile categories, their traversal/sight properties and lookup tables."""

from enum import IntEnum
from typing import Final, NamedTuple

import numpy as np


class TileCategory(IntEnum):
    FLOOR = 0
    WALL = 1
    WATER = 2
    STAIR_UP = 3
    STAIR_DOWN = 4
    # A door is one tile with an open/closed tag; both states share the grid
    DOOR_CLOSED = 5
    DOOR_OPEN = 6


class VisibilityState(IntEnum):
    UNSEEN = 0
    SEEN = 1
    VISIBLE = 2


class WallFace(IntEnum):
    """Rendering hint for wall tiles, derived from the tile below."""

    NONE = 0
    FACE = 1  # wall with a non-wall tile below it
    TOP = 2  # wall with wall (or the map edge) below it


class TileType(NamedTuple):
    walkable: bool
    blocks_sight: bool
    glyph: str


TILE_TYPES: Final[dict[TileCategory, TileType]] = {
    TileCategory.FLOOR: TileType(walkable=True, blocks_sight=False, glyph="."),
    TileCategory.WALL: TileType(walkable=False, blocks_sight=True, glyph="#"),
    TileCategory.WATER: TileType(walkable=False, blocks_sight=False, glyph="~"),
    TileCategory.STAIR_UP: TileType(walkable=True, blocks_sight=False, glyph="<"),
    TileCategory.STAIR_DOWN: TileType(walkable=True, blocks_sight=False, glyph=">"),
    TileCategory.DOOR_CLOSED: TileType(walkable=False, blocks_sight=True, glyph="+"),
    TileCategory.DOOR_OPEN: TileType(walkable=True, blocks_sight=False, glyph="'"),
}

GLYPH_TO_CATEGORY: Final[dict[str, TileCategory]] = {
    tile_type.glyph: category for category, tile_type in TILE_TYPES.items()
}


def _build_lookup(attribute: str) -> np.ndarray:
    table = np.zeros(len(TileCategory), dtype=bool)
    for category, tile_type in TILE_TYPES.items():
        table[int(category)] = getattr(tile_type, attribute)
    return table


# Indexed by category code; ``WALKABLE_LUT[tiles]`` vectorizes the predicate
WALKABLE_LUT: Final[np.ndarray] = _build_lookup("walkable")
OPAQUE_LUT: Final[np.ndarray] = _build_lookup("blocks_sight")


def is_walkable(category: int) -> bool:
    """True if an observer may stand on or pass through ``category``."""
    return bool(WALKABLE_LUT[int(category)])


def blocks_sight(category: int) -> bool:
    """True if ``category`` stops a line of sight passing through it."""
    return bool(OPAQUE_LUT[int(category)])


def is_door(category: int) -> bool:
    return int(category) in (TileCategory.DOOR_OPEN, TileCategory.DOOR_CLOSED)
