# delve/world/grid_map.py
from typing import Any, Iterator, Optional, Tuple

import numpy as np
import structlog

from delve.errors import OutOfBoundsError
from delve.world.tiles import (
    GLYPH_TO_CATEGORY,
    OPAQUE_LUT,
    TILE_TYPES,
    WALKABLE_LUT,
    TileCategory,
    WallFace,
    is_door,
    is_walkable,
)

log = structlog.get_logger(__name__)

Point = Tuple[int, int]


class GridMap:
    """Fixed-size grid of tile categories stored as one flat ``uint8`` array.

    Tiles are indexed ``y * width + x``.  ``grid`` exposes a ``(height,
    width)`` view over the same buffer for vectorized passes; writes through
    either are visible in both.
    """

    def __init__(
        self, width: int, height: int, fill: TileCategory = TileCategory.WALL
    ) -> None:
        if width <= 0 or height <= 0:
            log.error("Invalid map dimensions", width=width, height=height)
            raise ValueError("Map width and height must be positive integers.")
        self._width = int(width)
        self._height = int(height)
        self.tiles: np.ndarray = np.full(
            self._width * self._height, fill_value=int(fill), dtype=np.uint8
        )
        log.debug("GridMap initialized", width=self._width, height=self._height)

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def grid(self) -> np.ndarray:
        """2D ``(height, width)`` view over :attr:`tiles`."""
        return self.tiles.reshape(self._height, self._width)

    # --- Coordinates ---
    def in_bounds(self, x: int, y: int) -> bool:
        """Checks if the given coordinates are within the map boundaries."""
        return 0 <= x < self._width and 0 <= y < self._height

    def _check(self, x: int, y: int) -> None:
        if not (0 <= x < self._width and 0 <= y < self._height):
            raise OutOfBoundsError(x, y, self._width, self._height)

    def index(self, x: int, y: int) -> int:
        self._check(x, y)
        return y * self._width + x

    def position(self, index: int) -> Point:
        if not 0 <= index < self.tiles.size:
            raise IndexError(f"Tile index {index} outside grid of {self.tiles.size}")
        return index % self._width, index // self._width

    # --- Access ---
    def get(self, x: int, y: int) -> TileCategory:
        self._check(x, y)
        return TileCategory(int(self.tiles[y * self._width + x]))

    def set(self, x: int, y: int, category: TileCategory) -> None:
        self._check(x, y)
        self.tiles[y * self._width + x] = int(category)

    def walkable_at(self, x: int, y: int) -> bool:
        return is_walkable(self.get(x, y))

    def walkable_mask(self) -> np.ndarray:
        """Boolean ``(height, width)`` array of walkable tiles."""
        return WALKABLE_LUT[self.grid]

    def opaque_mask(self) -> np.ndarray:
        """Boolean ``(height, width)`` array of sight-blocking tiles."""
        return OPAQUE_LUT[self.grid]

    def count(self, category: TileCategory) -> int:
        return int(np.count_nonzero(self.tiles == int(category)))

    # --- Queries ---
    def floor_positions(self) -> Iterator[Point]:
        """Yield every walkable coordinate in row-major order.

        A fresh generator is returned on each call, so iteration can be
        restarted; the map is read lazily as the generator advances.
        """
        width = self._width
        for index in np.flatnonzero(WALKABLE_LUT[self.tiles]):
            yield int(index) % width, int(index) // width

    def positions_of(self, category: TileCategory) -> Iterator[Point]:
        width = self._width
        for index in np.flatnonzero(self.tiles == int(category)):
            yield int(index) % width, int(index) // width

    def find_nearby_walkable(self, center: Point, max_radius: int) -> Optional[Point]:
        """Search square rings of growing radius around ``center``.

        Ring ``r`` is every in-bounds cell at Chebyshev distance ``r``,
        scanned row-major; the first walkable cell found is returned.
        """
        cx, cy = center
        for radius in range(max(0, max_radius) + 1):
            for y in range(cy - radius, cy + radius + 1):
                if not 0 <= y < self._height:
                    continue
                on_edge_row = abs(y - cy) == radius
                # Interior rows of a ring only contribute their two end cells
                xs = (
                    range(cx - radius, cx + radius + 1)
                    if on_edge_row
                    else (cx - radius, cx + radius)
                )
                for x in xs:
                    if 0 <= x < self._width and WALKABLE_LUT[
                        self.tiles[y * self._width + x]
                    ]:
                        return x, y
        return None

    # --- Rendering hints ---
    def wall_faces(self) -> np.ndarray:
        """Classify walls by what lies directly below them (``y + 1``)."""
        grid = self.grid
        is_wall = grid == int(TileCategory.WALL)
        below_is_wall = np.ones_like(is_wall)
        below_is_wall[:-1, :] = is_wall[1:, :]
        faces = np.full(grid.shape, int(WallFace.NONE), dtype=np.uint8)
        faces[is_wall & ~below_is_wall] = int(WallFace.FACE)
        faces[is_wall & below_is_wall] = int(WallFace.TOP)
        return faces

    def wall_face(self, x: int, y: int) -> WallFace:
        self._check(x, y)
        if self.tiles[y * self._width + x] != int(TileCategory.WALL):
            return WallFace.NONE
        if y + 1 >= self._height:
            return WallFace.TOP
        below = self.tiles[(y + 1) * self._width + x]
        return WallFace.TOP if below == int(TileCategory.WALL) else WallFace.FACE

    # --- Mutation helpers ---
    def fill_rect(
        self, x1: int, y1: int, x2: int, y2: int, category: TileCategory
    ) -> None:
        """Fill the inclusive rectangle, clipped to the map."""
        x_start, y_start = max(0, x1), max(0, y1)
        x_end, y_end = min(self._width, x2 + 1), min(self._height, y2 + 1)
        if x_start < x_end and y_start < y_end:
            self.grid[y_start:y_end, x_start:x_end] = int(category)

    def toggle_door(self, x: int, y: int) -> TileCategory:
        """Flip a door between open and closed; returns the new category."""
        current = self.get(x, y)
        if not is_door(current):
            raise ValueError(f"Tile at ({x}, {y}) is {current.name}, not a door")
        if current == TileCategory.DOOR_OPEN:
            new = TileCategory.DOOR_CLOSED
        else:
            new = TileCategory.DOOR_OPEN
        self.set(x, y, new)
        log.debug("Door toggled", pos=(x, y), state=new.name)
        return new

    # --- Copy / compare / serialise ---
    def copy(self) -> "GridMap":
        clone = GridMap.__new__(GridMap)
        clone._width = self._width
        clone._height = self._height
        clone.tiles = self.tiles.copy()
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GridMap):
            return NotImplemented
        return (
            self._width == other._width
            and self._height == other._height
            and np.array_equal(self.tiles, other.tiles)
        )

    def __repr__(self) -> str:
        return f"GridMap(width={self._width}, height={self._height})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self._width,
            "height": self._height,
            "tiles": [int(t) for t in self.tiles],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GridMap":
        width, height = int(data["width"]), int(data["height"])
        tiles = np.asarray(data["tiles"], dtype=np.uint8)
        if tiles.size != width * height:
            raise ValueError(
                f"Tile sequence has {tiles.size} entries, expected {width * height}"
            )
        if tiles.size and int(tiles.max()) >= len(TileCategory):
            raise ValueError(f"Unknown tile category code {int(tiles.max())}")
        game_map = cls(width, height)
        game_map.tiles[:] = tiles
        return game_map

    @classmethod
    def from_rows(cls, rows: list[str]) -> "GridMap":
        """Build a map from ASCII rows using the tile glyphs."""
        if not rows or any(len(row) != len(rows[0]) for row in rows):
            raise ValueError("Rows must be non-empty and of equal length")
        game_map = cls(len(rows[0]), len(rows))
        for y, row in enumerate(rows):
            for x, char in enumerate(row):
                game_map.set(x, y, GLYPH_TO_CATEGORY[char])
        return game_map

    def render_ascii(self) -> str:
        lines = []
        for row in self.grid:
            lines.append("".join(TILE_TYPES[TileCategory(int(t))].glyph for t in row))
        return "\n".join(lines)
