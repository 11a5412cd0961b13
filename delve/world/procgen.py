# delve/world/procgen.py
from dataclasses import dataclass, field
from itertools import islice
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple, Union

import numpy as np
import structlog

from delve.constants import (
    DEFAULT_FALLBACK_MARGIN,
    DEFAULT_GROWTH_STEP_BUDGET,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MIN_FLOOR_TILES,
    MAX_DEPTH,
)
from delve.errors import GenerationFailure
from delve.utils.game_rng import GameRNG
from delve.world.biome import BiomeType
from delve.world.grid_map import GridMap, Point
from delve.world.regions import bfs_distances, neighbor_offsets, walkable_regions
from delve.world.tiles import TileCategory

log = structlog.get_logger(__name__)

# --- Organic growth ---
TARGET_SIZE_RANGE = (300, 399)
COMPACT_WINDOW = 8  # only the oldest frontier cells are growth candidates
FAR_RADIUS = 12
FAR_ACCEPT_PROBABILITY = 0.7
DIVISION_MARGIN = 3
DOORWAYS_PER_DIVISION = (1, 2)
DOORWAY_WIDTH = (1, 3)

# --- Cellular ---
CELLULAR_FLOOR_PROBABILITY = 0.45
CELLULAR_PASSES = 4

# --- BSP ---
MIN_LEAF_SIZE = 6
ROOM_MAX_SIZE_RATIO = 0.8
ROOM_MIN_SIZE = 4
MAX_BSP_DEPTH = 4

# --- Stairs ---
# The down-stair is drawn from tiles at least this fraction of the farthest
# walk distance away from the up-stair
STAIR_SEPARATION_RATIO = 0.5


class _AttemptRejected(Exception):
    """One generation attempt produced an unusable layout."""


def stairs_required(depth: Optional[int], max_depth: int = MAX_DEPTH) -> Tuple[bool, bool]:
    """``(needs_up, needs_down)`` for a depth; ``None`` means no stairs."""
    if depth is None:
        return False, False
    if not 0 <= depth <= max_depth:
        raise ValueError(f"Depth {depth} outside 0..{max_depth}")
    return depth > 0, depth < max_depth


def max_divisions_for_depth(depth: Optional[int]) -> int:
    """Deeper levels allow more interior walls, capped at five."""
    return 3 + min((depth or 0) // 5, 2)


@dataclass(frozen=True)
class StairPositions:
    up: Optional[Point] = None
    down: Optional[Point] = None

    def get(self, category: TileCategory) -> Optional[Point]:
        if category == TileCategory.STAIR_UP:
            return self.up
        if category == TileCategory.STAIR_DOWN:
            return self.down
        raise ValueError(f"{category!r} is not a stair category")

    def to_dict(self) -> Dict[str, Optional[List[int]]]:
        return {
            "up": list(self.up) if self.up is not None else None,
            "down": list(self.down) if self.down is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StairPositions":
        up, down = data.get("up"), data.get("down")
        return cls(
            up=(int(up[0]), int(up[1])) if up is not None else None,
            down=(int(down[0]), int(down[1])) if down is not None else None,
        )


@dataclass
class GenerationSettings:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    connectivity: int = 4
    min_floor_tiles: int = DEFAULT_MIN_FLOOR_TILES
    fallback_margin: int = DEFAULT_FALLBACK_MARGIN
    growth_step_budget: int = DEFAULT_GROWTH_STEP_BUDGET
    max_depth: int = MAX_DEPTH

    def __post_init__(self) -> None:
        neighbor_offsets(self.connectivity)
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.fallback_margin < 0:
            raise ValueError("fallback_margin must be non-negative")


@dataclass
class GeneratedLevel:
    grid_map: GridMap
    stairs: StairPositions
    biome: BiomeType
    wall_faces: np.ndarray = field(repr=False)
    seed: Optional[int] = None
    attempts: int = 0


class EllipseMask:
    """Elliptical growth boundary kept one tile inside the grid edges."""

    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        cx, cy = (width - 1) / 2.0, (height - 1) / 2.0
        rx, ry = max((width - 2) / 2.0, 0.5), max((height - 2) / 2.0, 0.5)
        ys, xs = np.mgrid[0:height, 0:width]
        inside = ((xs - cx) / rx) ** 2 + ((ys - cy) / ry) ** 2 <= 1.0
        inner = np.zeros((height, width), dtype=bool)
        inner[1 : height - 1, 1 : width - 1] = True
        self.mask: np.ndarray = inside & inner

    def contains(self, x: int, y: int) -> bool:
        return (
            0 <= x < self.width and 0 <= y < self.height and bool(self.mask[y, x])
        )

    @property
    def size(self) -> int:
        return int(np.count_nonzero(self.mask))


class Rect(NamedTuple):
    """A rectangle on the map, inclusive on both corners."""

    x1: int
    y1: int
    x2: int
    y2: int

    @property
    def width(self) -> int:
        return self.x2 - self.x1 + 1

    @property
    def height(self) -> int:
        return self.y2 - self.y1 + 1

    def carve(self, grid_map: GridMap) -> None:
        grid_map.fill_rect(self.x1, self.y1, self.x2, self.y2, TileCategory.FLOOR)


class BSPNode:
    def __init__(self, rect: Rect) -> None:
        self.rect: Rect = rect
        self.left: Union["BSPNode", None] = None
        self.right: Union["BSPNode", None] = None
        self.room: Union[Rect, None] = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None

    def get_leaves(self) -> Iterator["BSPNode"]:
        if self.is_leaf:
            yield self
        else:
            if self.left:
                yield from self.left.get_leaves()
            if self.right:
                yield from self.right.get_leaves()

    def get_room(self) -> Union[Rect, None]:
        if self.room:
            return self.room
        room = None
        if self.left:
            room = self.left.get_room()
        if not room and self.right:
            room = self.right.get_room()
        return room


@dataclass
class _Division:
    start: Point
    end: Point
    horizontal: bool

    def cells(self) -> List[Point]:
        if self.horizontal:
            return [(x, self.start[1]) for x in range(self.start[0], self.end[0] + 1)]
        return [(self.start[0], y) for y in range(self.start[1], self.end[1] + 1)]


def orthogonal_line(start: Point, end: Point) -> List[Point]:
    """4-connected near-straight line from ``start`` to ``end`` inclusive.

    Each step moves along one axis only, picking whichever axis keeps the
    walk closest to the ideal segment.
    """
    x, y = start
    x1, y1 = end
    dx, dy = abs(x1 - x), abs(y1 - y)
    sx = 1 if x1 > x else -1
    sy = 1 if y1 > y else -1
    points = [(x, y)]
    ix = iy = 0
    while ix < dx or iy < dy:
        if (1 + 2 * ix) * dy < (1 + 2 * iy) * dx:
            x += sx
            ix += 1
        else:
            y += sy
            iy += 1
        points.append((x, y))
    return points


# --- Organic growth ---
def _grow_blob(
    mask: EllipseMask, rng: GameRNG, target: int, step_budget: int
) -> List[Point]:
    """Grow a floor blob from the map centre inside ``mask``.

    ``active`` and ``frontier`` are insertion-ordered dicts; candidates are
    drawn from the oldest ``COMPACT_WINDOW`` frontier cells, and cells far
    from the centre are only accepted with ``FAR_ACCEPT_PROBABILITY``.
    """
    cx, cy = mask.width // 2, mask.height // 2
    if not mask.contains(cx, cy):
        raise _AttemptRejected("map too small for organic growth")

    active: Dict[Point, None] = {(cx, cy): None}
    frontier: Dict[Point, None] = {}

    def extend_frontier(px: int, py: int) -> None:
        for dx, dy in ((0, 1), (1, 0), (0, -1), (-1, 0)):
            cell = (px + dx, py + dy)
            if cell not in active and cell not in frontier and mask.contains(*cell):
                frontier[cell] = None

    extend_frontier(cx, cy)
    far_sq = FAR_RADIUS * FAR_RADIUS
    steps = 0
    while len(active) < target and frontier:
        steps += 1
        if steps > step_budget:
            raise _AttemptRejected("growth step budget exceeded")
        window = min(COMPACT_WINDOW, len(frontier))
        pick = next(islice(frontier, rng.get_int(0, window - 1), None))
        dist_sq = (pick[0] - cx) ** 2 + (pick[1] - cy) ** 2
        if dist_sq < far_sq or rng.coin_flip(FAR_ACCEPT_PROBABILITY):
            del frontier[pick]
            active[pick] = None
            extend_frontier(*pick)
    log.debug("Blob grown", size=len(active), target=target, steps=steps)
    return list(active)


def _plan_divisions(
    blob: List[Point], count: int, rng: GameRNG
) -> List[_Division]:
    xs = [p[0] for p in blob]
    ys = [p[1] for p in blob]
    min_x, max_x, min_y, max_y = min(xs), max(xs), min(ys), max(ys)
    divisions: List[_Division] = []
    for _ in range(count):
        horizontal = rng.coin_flip()
        if horizontal:
            if max_y - min_y < 2 * DIVISION_MARGIN + 1:
                continue
            y = rng.get_int(min_y + DIVISION_MARGIN, max_y - DIVISION_MARGIN - 1)
            divisions.append(_Division((min_x, y), (max_x, y), True))
        else:
            if max_x - min_x < 2 * DIVISION_MARGIN + 1:
                continue
            x = rng.get_int(min_x + DIVISION_MARGIN, max_x - DIVISION_MARGIN - 1)
            divisions.append(_Division((x, min_y), (x, max_y), False))
    return divisions


def _punch_doorways(
    grid_map: GridMap, division: _Division, blob_mask: np.ndarray, rng: GameRNG
) -> int:
    """Reopen 1..2 gaps in a division wall; only blob cells become floor."""
    cells = division.cells()
    length = len(cells) - 1
    opened = 0
    for _ in range(rng.get_int(*DOORWAYS_PER_DIVISION)):
        width = rng.get_int(*DOORWAY_WIDTH)
        upper = length - (width + 2) - 1
        if upper >= 2:
            offset = rng.get_int(2, upper)
        else:
            offset = max(0, (length - width) // 2)
        for x, y in cells[offset : offset + width]:
            if blob_mask[y, x]:
                grid_map.set(x, y, TileCategory.FLOOR)
                opened += 1
    return opened


def _carve_organic(
    grid_map: GridMap,
    rng: GameRNG,
    biome: BiomeType,
    depth: Optional[int],
    settings: GenerationSettings,
) -> None:
    mask = EllipseMask(grid_map.width, grid_map.height)
    target = min(rng.get_int(*TARGET_SIZE_RANGE), mask.size)
    blob = _grow_blob(mask, rng, target, settings.growth_step_budget)

    blob_mask = np.zeros((grid_map.height, grid_map.width), dtype=bool)
    for x, y in blob:
        blob_mask[y, x] = True
    grid_map.grid[blob_mask] = int(TileCategory.FLOOR)

    lo, hi = biome.config.divisions
    count = min(rng.get_int(lo, hi), max_divisions_for_depth(depth))
    divisions = _plan_divisions(blob, count, rng)
    for division in divisions:
        for x, y in division.cells():
            if grid_map.get(x, y) == TileCategory.FLOOR:
                grid_map.set(x, y, TileCategory.WALL)
    doorway_tiles = sum(
        _punch_doorways(grid_map, division, blob_mask, rng) for division in divisions
    )
    log.debug(
        "Organic layout carved",
        blob=len(blob),
        divisions=len(divisions),
        doorway_tiles=doorway_tiles,
    )


# --- Cellular automata ---
def _carve_cellular(
    grid_map: GridMap,
    rng: GameRNG,
    biome: BiomeType,
    depth: Optional[int],
    settings: GenerationSettings,
) -> None:
    """Random fill then smoothing: a cell is wall with more than 4 wall neighbours."""
    width, height = grid_map.width, grid_map.height
    if width < 3 or height < 3:
        raise _AttemptRejected("map too small for cellular layout")
    grid = grid_map.grid
    interior = rng.random_array((height - 2, width - 2)) < CELLULAR_FLOOR_PROBABILITY
    grid[1 : height - 1, 1 : width - 1] = np.where(
        interior, int(TileCategory.FLOOR), int(TileCategory.WALL)
    )
    for _ in range(CELLULAR_PASSES):
        walls = (grid == int(TileCategory.WALL)).astype(np.int8)
        padded = np.pad(walls, 1, constant_values=1)
        wall_count = sum(
            padded[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
            for dy in (-1, 0, 1)
            for dx in (-1, 0, 1)
            if dx or dy
        )
        smoothed = np.where(
            wall_count > 4, int(TileCategory.WALL), int(TileCategory.FLOOR)
        )
        grid[1 : height - 1, 1 : width - 1] = smoothed[1 : height - 1, 1 : width - 1]
    log.debug("Cellular layout carved", floor=grid_map.count(TileCategory.FLOOR))


# --- BSP rooms and corridors ---
def _split_node_recursive(node: BSPNode, rng: GameRNG, depth: int) -> bool:
    if depth >= MAX_BSP_DEPTH:
        return False

    rect = node.rect
    if rect.width > rect.height and rect.width / rect.height >= 1.25:
        split_horizontally = False
    elif rect.height > rect.width and rect.height / rect.width >= 1.25:
        split_horizontally = True
    else:
        split_horizontally = rng.coin_flip()

    max_size = rect.height if split_horizontally else rect.width
    if max_size <= MIN_LEAF_SIZE * 2:
        return False

    if split_horizontally:
        split_y = rng.get_int(rect.y1 + MIN_LEAF_SIZE, rect.y2 - MIN_LEAF_SIZE)
        node.left = BSPNode(Rect(rect.x1, rect.y1, rect.x2, split_y - 1))
        node.right = BSPNode(Rect(rect.x1, split_y, rect.x2, rect.y2))
    else:
        split_x = rng.get_int(rect.x1 + MIN_LEAF_SIZE, rect.x2 - MIN_LEAF_SIZE)
        node.left = BSPNode(Rect(rect.x1, rect.y1, split_x - 1, rect.y2))
        node.right = BSPNode(Rect(split_x, rect.y1, rect.x2, rect.y2))

    _split_node_recursive(node.left, rng, depth + 1)
    _split_node_recursive(node.right, rng, depth + 1)
    return True


def _create_rooms_in_leaves(root_node: BSPNode, rng: GameRNG) -> List[Rect]:
    rooms: List[Rect] = []
    for leaf in root_node.get_leaves():
        max_w = int(leaf.rect.width * ROOM_MAX_SIZE_RATIO)
        max_h = int(leaf.rect.height * ROOM_MAX_SIZE_RATIO)
        room_w = rng.get_int(ROOM_MIN_SIZE, max(ROOM_MIN_SIZE, max_w))
        room_h = rng.get_int(ROOM_MIN_SIZE, max(ROOM_MIN_SIZE, max_h))
        room_x1 = rng.get_int(leaf.rect.x1, max(leaf.rect.x1, leaf.rect.x2 - room_w + 1))
        room_y1 = rng.get_int(leaf.rect.y1, max(leaf.rect.y1, leaf.rect.y2 - room_h + 1))
        room = Rect(
            room_x1,
            room_y1,
            min(leaf.rect.x2, room_x1 + room_w - 1),
            min(leaf.rect.y2, room_y1 + room_h - 1),
        )
        if room.width >= 1 and room.height >= 1:
            leaf.room = room
            rooms.append(room)
    return rooms


def _carve_l_tunnel(
    grid_map: GridMap, start: Point, end: Point, rng: GameRNG
) -> None:
    (x1, y1), (x2, y2) = start, end
    if rng.coin_flip():
        Rect(min(x1, x2), y1, max(x1, x2), y1).carve(grid_map)
        Rect(x2, min(y1, y2), x2, max(y1, y2)).carve(grid_map)
    else:
        Rect(x1, min(y1, y2), x1, max(y1, y2)).carve(grid_map)
        Rect(min(x1, x2), y2, max(x1, x2), y2).carve(grid_map)


def _connect_rooms(node: BSPNode, grid_map: GridMap, rng: GameRNG) -> None:
    if node.is_leaf:
        return
    if node.left:
        _connect_rooms(node.left, grid_map, rng)
    if node.right:
        _connect_rooms(node.right, grid_map, rng)

    left_room = node.left.get_room() if node.left else None
    right_room = node.right.get_room() if node.right else None
    if left_room and right_room:
        lx = rng.get_int(left_room.x1, left_room.x2)
        ly = rng.get_int(left_room.y1, left_room.y2)
        rx = rng.get_int(right_room.x1, right_room.x2)
        ry = rng.get_int(right_room.y1, right_room.y2)
        _carve_l_tunnel(grid_map, (lx, ly), (rx, ry), rng)


def _carve_bsp(
    grid_map: GridMap,
    rng: GameRNG,
    biome: BiomeType,
    depth: Optional[int],
    settings: GenerationSettings,
) -> None:
    if grid_map.width < 3 or grid_map.height < 3:
        raise _AttemptRejected("map too small for rooms")
    root_node = BSPNode(Rect(1, 1, grid_map.width - 2, grid_map.height - 2))
    _split_node_recursive(root_node, rng, 0)
    rooms = _create_rooms_in_leaves(root_node, rng)
    if not rooms:
        raise _AttemptRejected("BSP produced no rooms")
    for room in rooms:
        room.carve(grid_map)
    _connect_rooms(root_node, grid_map, rng)
    log.debug("BSP layout carved", rooms=len(rooms))


CARVERS = {
    "organic": _carve_organic,
    "cellular": _carve_cellular,
    "bsp": _carve_bsp,
}


# --- Post-processing shared by all algorithms ---
def _flood_water(grid_map: GridMap, rng: GameRNG, biome: BiomeType) -> int:
    if not biome.config.allows(TileCategory.WATER):
        return 0
    lo, hi = biome.config.water_pools
    pools = rng.get_int(lo, hi)
    flooded = 0
    for _ in range(pools):
        floors = list(grid_map.positions_of(TileCategory.FLOOR))
        if not floors:
            break
        cx, cy = rng.choice(floors)
        radius = rng.get_int(1, 2)
        for y in range(cy - radius, cy + radius + 1):
            for x in range(cx - radius, cx + radius + 1):
                if (
                    (x - cx) ** 2 + (y - cy) ** 2 <= radius * radius
                    and grid_map.in_bounds(x, y)
                    and grid_map.get(x, y) == TileCategory.FLOOR
                ):
                    grid_map.set(x, y, TileCategory.WATER)
                    flooded += 1
    return flooded


def connect_regions(grid_map: GridMap, connectivity: int = 4) -> int:
    """Join every walkable component to the largest one; returns tunnels dug.

    Each minor component is linked from its tile nearest its own centroid to
    the closest tile of the main component with a 4-connected tunnel. The
    component and its tunnel then count as part of the main component.
    """
    regions = walkable_regions(grid_map, connectivity)
    if len(regions) <= 1:
        return 0
    main_index = max(range(len(regions)), key=lambda i: len(regions[i]))
    main = np.array(regions[main_index], dtype=np.int64)
    tunnels = 0
    for index, region in enumerate(regions):
        if index == main_index:
            continue
        cells = np.array(region, dtype=np.int64)
        centroid = cells.mean(axis=0)
        start = cells[int(np.argmin(((cells - centroid) ** 2).sum(axis=1)))]
        target = main[int(np.argmin(((main - start) ** 2).sum(axis=1)))]
        path = orthogonal_line(
            (int(start[0]), int(start[1])), (int(target[0]), int(target[1]))
        )
        carved = []
        for x, y in path:
            if not grid_map.walkable_at(x, y):
                grid_map.set(x, y, TileCategory.FLOOR)
                carved.append((x, y))
        parts = [main, cells]
        if carved:
            parts.append(np.array(carved, dtype=np.int64))
        main = np.concatenate(parts)
        tunnels += 1
        log.debug(
            "Joined region",
            size=len(region),
            start=(int(start[0]), int(start[1])),
            target=(int(target[0]), int(target[1])),
            carved=len(carved),
        )
    return tunnels


def _place_doors(grid_map: GridMap, rng: GameRNG, biome: BiomeType) -> int:
    """Turn room entrances (one-tile chokepoints next to open space) into open doors."""
    chance = biome.config.door_chance
    if chance <= 0.0 or not biome.config.allows(TileCategory.DOOR_OPEN):
        return 0
    grid = grid_map.grid
    height, width = grid.shape
    floor = grid == int(TileCategory.FLOOR)
    wall = np.pad(grid == int(TileCategory.WALL), 1, constant_values=True)
    open_ = np.pad(grid_map.walkable_mask(), 1, constant_values=False)

    def shifted(a: np.ndarray, dx: int, dy: int) -> np.ndarray:
        return a[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]

    horizontal = (
        floor
        & shifted(wall, -1, 0)
        & shifted(wall, 1, 0)
        & shifted(open_, 0, -1)
        & shifted(open_, 0, 1)
    )
    vertical = (
        floor
        & shifted(wall, 0, -1)
        & shifted(wall, 0, 1)
        & shifted(open_, -1, 0)
        & shifted(open_, 1, 0)
    )
    choke = np.pad(horizontal | vertical, 1, constant_values=False)
    room_side = open_ & ~choke
    entrance = (
        horizontal & (shifted(room_side, 0, -1) | shifted(room_side, 0, 1))
    ) | (vertical & (shifted(room_side, -1, 0) | shifted(room_side, 1, 0)))

    placed: List[Point] = []
    for flat in np.flatnonzero(entrance):
        y, x = divmod(int(flat), width)
        if any(abs(x - px) + abs(y - py) <= 1 for px, py in placed):
            continue
        if rng.coin_flip(chance):
            grid_map.set(x, y, TileCategory.DOOR_OPEN)
            placed.append((x, y))
    return len(placed)


def _place_stairs(
    grid_map: GridMap,
    rng: GameRNG,
    depth: Optional[int],
    settings: GenerationSettings,
) -> StairPositions:
    needs_up, needs_down = stairs_required(depth, settings.max_depth)
    if not (needs_up or needs_down):
        return StairPositions()
    floors = list(grid_map.positions_of(TileCategory.FLOOR))
    if len(floors) < int(needs_up) + int(needs_down):
        raise _AttemptRejected("not enough floor for stairs")

    up: Optional[Point] = None
    down: Optional[Point] = None
    if needs_up:
        up = rng.choice(floors)
    if needs_down:
        if up is None:
            down = rng.choice(floors)
        else:
            dist = bfs_distances(grid_map.walkable_mask(), up, settings.connectivity)
            far = int(dist.max())
            threshold = max(1, int(np.ceil(far * STAIR_SEPARATION_RATIO)))
            candidates = [p for p in floors if dist[p[1], p[0]] >= threshold]
            if not candidates:
                raise _AttemptRejected("no reachable tile for the down-stair")
            down = rng.choice(candidates)

    if up is not None:
        grid_map.set(up[0], up[1], TileCategory.STAIR_UP)
    if down is not None:
        grid_map.set(down[0], down[1], TileCategory.STAIR_DOWN)
    return StairPositions(up=up, down=down)


class MapGenerator:
    """Seeded, retrying level generator dispatching on the biome's algorithm."""

    def __init__(self, settings: Optional[GenerationSettings] = None) -> None:
        self.settings = settings or GenerationSettings()

    def generate(
        self,
        width: int,
        height: int,
        biome: BiomeType,
        rng: GameRNG,
        depth: Optional[int] = None,
    ) -> GeneratedLevel:
        """Generate a connected level, retrying with fresh sub-seeds.

        Raises:
            GenerationFailure: when every attempt is rejected.
        """
        stairs_required(depth, self.settings.max_depth)
        algorithm = biome.config.algorithm
        if algorithm not in CARVERS:
            raise ValueError(f"Unknown generation algorithm {algorithm!r}")
        gen_log = log.bind(
            width=width, height=height, biome=biome.value, depth=depth, algorithm=algorithm
        )
        reason = "no attempts made"
        for attempt in range(1, self.settings.max_attempts + 1):
            seed = rng.sub_seed()
            try:
                grid_map, stairs = self._attempt(
                    width, height, biome, GameRNG(seed), depth
                )
            except _AttemptRejected as e:
                reason = str(e)
                gen_log.debug(
                    "Generation attempt rejected", attempt=attempt, seed=seed, reason=reason
                )
                continue
            gen_log.info(
                "Level generated",
                attempt=attempt,
                seed=seed,
                floor=sum(1 for _ in grid_map.floor_positions()),
                stairs=stairs,
            )
            return GeneratedLevel(
                grid_map=grid_map,
                stairs=stairs,
                biome=biome,
                wall_faces=grid_map.wall_faces(),
                seed=seed,
                attempts=attempt,
            )
        gen_log.warning(
            "Generation attempts exhausted",
            attempts=self.settings.max_attempts,
            reason=reason,
        )
        raise GenerationFailure(self.settings.max_attempts, reason)

    def _attempt(
        self,
        width: int,
        height: int,
        biome: BiomeType,
        rng: GameRNG,
        depth: Optional[int],
    ) -> Tuple[GridMap, StairPositions]:
        settings = self.settings
        grid_map = GridMap(width, height, fill=TileCategory.WALL)
        CARVERS[biome.config.algorithm](grid_map, rng, biome, depth, settings)
        _flood_water(grid_map, rng, biome)

        if int(np.count_nonzero(grid_map.walkable_mask())) < settings.min_floor_tiles:
            raise _AttemptRejected("too few floor tiles")
        connect_regions(grid_map, settings.connectivity)
        if len(walkable_regions(grid_map, settings.connectivity)) > 1:
            raise _AttemptRejected("layout still disconnected")
        _place_doors(grid_map, rng, biome)

        stairs = _place_stairs(grid_map, rng, depth, settings)
        if stairs.up is not None and stairs.down is not None:
            dist = bfs_distances(grid_map.walkable_mask(), stairs.up, settings.connectivity)
            if dist[stairs.down[1], stairs.down[0]] < 0:
                raise _AttemptRejected("stairs not mutually reachable")
        return grid_map, stairs


def fallback_level(
    width: int,
    height: int,
    biome: BiomeType,
    depth: Optional[int] = None,
    margin: int = DEFAULT_FALLBACK_MARGIN,
    max_depth: int = MAX_DEPTH,
) -> GeneratedLevel:
    """A single rectangular room with stairs in opposite corners."""
    margin = max(0, min(margin, (width - 1) // 2, (height - 1) // 2))
    grid_map = GridMap(width, height, fill=TileCategory.WALL)
    room = Rect(margin, margin, width - 1 - margin, height - 1 - margin)
    room.carve(grid_map)

    needs_up, needs_down = stairs_required(depth, max_depth)
    up = (room.x1, room.y1) if needs_up else None
    down = (room.x2, room.y2) if needs_down else None
    if up is not None and up == down:
        # One-tile room: only the way back up survives
        down = None
    if up is not None:
        grid_map.set(up[0], up[1], TileCategory.STAIR_UP)
    if down is not None:
        grid_map.set(down[0], down[1], TileCategory.STAIR_DOWN)
    log.info("Fallback room built", width=width, height=height, room=room, depth=depth)
    return GeneratedLevel(
        grid_map=grid_map,
        stairs=StairPositions(up=up, down=down),
        biome=biome,
        wall_faces=grid_map.wall_faces(),
        seed=None,
        attempts=0,
    )


def generate_level(
    width: int,
    height: int,
    biome: BiomeType,
    seed: int,
    depth: Optional[int] = None,
    settings: Optional[GenerationSettings] = None,
) -> GeneratedLevel:
    """Generate a level, substituting the fallback room on failure."""
    settings = settings or GenerationSettings()
    try:
        return MapGenerator(settings).generate(width, height, biome, GameRNG(seed), depth)
    except GenerationFailure as e:
        log.warning(
            "Map generation failed, using fallback room",
            seed=seed,
            depth=depth,
            attempts=e.attempts,
            reason=e.reason,
        )
        return fallback_level(
            width, height, biome, depth, settings.fallback_margin, settings.max_depth
        )
