# delve/world/regions.py
"""Flood-fill helpers over walkable tiles.

All traversals are breadth-first from ``collections.deque`` and discover
regions in row-major order, so results depend only on the tiles.
"""

from collections import deque
from typing import List, Tuple

import numpy as np

from delve.world.grid_map import GridMap, Point

NEIGHBORS_4: Tuple[Tuple[int, int], ...] = ((0, -1), (1, 0), (0, 1), (-1, 0))
NEIGHBORS_8: Tuple[Tuple[int, int], ...] = NEIGHBORS_4 + (
    (1, -1),
    (1, 1),
    (-1, 1),
    (-1, -1),
)


def neighbor_offsets(connectivity: int) -> Tuple[Tuple[int, int], ...]:
    if connectivity == 4:
        return NEIGHBORS_4
    if connectivity == 8:
        return NEIGHBORS_8
    raise ValueError(f"connectivity must be 4 or 8, got {connectivity}")


def flood_fill(
    passable: np.ndarray, start: Point, connectivity: int = 4
) -> List[Point]:
    """Cells reachable from ``start`` through ``passable`` (a ``(h, w)`` mask).

    Returned in visit order, ``start`` first.  An impassable start yields an
    empty list.
    """
    height, width = passable.shape
    sx, sy = start
    if not (0 <= sx < width and 0 <= sy < height) or not passable[sy, sx]:
        return []
    offsets = neighbor_offsets(connectivity)
    visited = np.zeros(passable.shape, dtype=bool)
    visited[sy, sx] = True
    order: List[Point] = [(sx, sy)]
    queue = deque([(sx, sy)])
    while queue:
        cx, cy = queue.popleft()
        for dx, dy in offsets:
            nx, ny = cx + dx, cy + dy
            if (
                0 <= nx < width
                and 0 <= ny < height
                and passable[ny, nx]
                and not visited[ny, nx]
            ):
                visited[ny, nx] = True
                order.append((nx, ny))
                queue.append((nx, ny))
    return order


def find_regions(passable: np.ndarray, connectivity: int = 4) -> List[List[Point]]:
    """All connected components of ``passable``, discovered row-major."""
    height, width = passable.shape
    labelled = np.zeros(passable.shape, dtype=bool)
    regions: List[List[Point]] = []
    for flat in np.flatnonzero(passable):
        y, x = divmod(int(flat), width)
        if labelled[y, x]:
            continue
        region = flood_fill(passable, (x, y), connectivity)
        for rx, ry in region:
            labelled[ry, rx] = True
        regions.append(region)
    return regions


def walkable_regions(grid_map: GridMap, connectivity: int = 4) -> List[List[Point]]:
    return find_regions(grid_map.walkable_mask(), connectivity)


def is_fully_connected(grid_map: GridMap, connectivity: int = 4) -> bool:
    """True when every walkable tile belongs to one component.

    A map without walkable tiles counts as connected.
    """
    return len(walkable_regions(grid_map, connectivity)) <= 1


def bfs_distances(
    passable: np.ndarray, start: Point, connectivity: int = 4
) -> np.ndarray:
    """Step distance from ``start`` to every cell; ``-1`` where unreachable."""
    height, width = passable.shape
    dist = np.full(passable.shape, -1, dtype=np.int32)
    sx, sy = start
    if not (0 <= sx < width and 0 <= sy < height) or not passable[sy, sx]:
        return dist
    offsets = neighbor_offsets(connectivity)
    dist[sy, sx] = 0
    queue = deque([(sx, sy)])
    while queue:
        cx, cy = queue.popleft()
        next_d = dist[cy, cx] + 1
        for dx, dy in offsets:
            nx, ny = cx + dx, cy + dy
            if (
                0 <= nx < width
                and 0 <= ny < height
                and passable[ny, nx]
                and dist[ny, nx] < 0
            ):
                dist[ny, nx] = next_d
                queue.append((nx, ny))
    return dist


def reachable(grid_map: GridMap, a: Point, b: Point, connectivity: int = 4) -> bool:
    dist = bfs_distances(grid_map.walkable_mask(), a, connectivity)
    bx, by = b
    return grid_map.in_bounds(bx, by) and bool(dist[by, bx] >= 0)
