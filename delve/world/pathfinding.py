# delve/world/pathfinding.py
import heapq
from collections import defaultdict
from typing import Callable, Dict, List, Optional

import structlog

from delve.world.grid_map import GridMap, Point
from delve.world.regions import neighbor_offsets

log = structlog.get_logger(__name__)

# Expanded nodes per map tile before the search gives up
NODE_BUDGET_FACTOR = 4


def manhattan(a: Point, b: Point) -> int:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def chebyshev(a: Point, b: Point) -> int:
    return max(abs(a[0] - b[0]), abs(a[1] - b[1]))


def find_path(
    start: Point,
    goal: Point,
    grid_map: GridMap,
    max_nodes: Optional[int] = None,
    connectivity: int = 4,
) -> List[Point]:
    """
    A* over walkable tiles with unit-cost moves.

    ``connectivity`` 4 moves orthogonally under a Manhattan heuristic; 8
    adds diagonal steps under a Chebyshev heuristic, matching levels
    generated with 8-way connectivity.

    Returns the positions after ``start`` up to and including ``goal``; an
    empty list when ``start == goal``, either end is not walkable, no path
    exists, or ``max_nodes`` expansions were spent.
    """
    offsets = neighbor_offsets(connectivity)
    heuristic: Callable[[Point, Point], int] = (
        manhattan if connectivity == 4 else chebyshev
    )
    if not (
        grid_map.in_bounds(*start)
        and grid_map.in_bounds(*goal)
        and grid_map.walkable_at(*start)
        and grid_map.walkable_at(*goal)
    ):
        return []
    if start == goal:
        return []
    if max_nodes is None:
        max_nodes = grid_map.width * grid_map.height * NODE_BUDGET_FACTOR

    walkable = grid_map.walkable_mask()
    open_set: list[tuple[int, int, Point]] = []
    came_from: Dict[Point, Point] = {}
    g_score: Dict[Point, int] = defaultdict(lambda: 1 << 30)
    g_score[start] = 0
    counter = 0
    heapq.heappush(open_set, (heuristic(start, goal), counter, start))

    nodes_explored = 0
    while open_set and nodes_explored < max_nodes:
        current_f, _, current = heapq.heappop(open_set)
        nodes_explored += 1
        if current_f > g_score[current] + heuristic(current, goal):
            continue

        if current == goal:
            path: List[Point] = []
            node = current
            while node in came_from:
                path.append(node)
                node = came_from[node]
            path.reverse()
            return path

        for dx, dy in offsets:
            nx, ny = current[0] + dx, current[1] + dy
            if not grid_map.in_bounds(nx, ny) or not walkable[ny, nx]:
                continue
            tentative = g_score[current] + 1
            neighbor = (nx, ny)
            if tentative < g_score[neighbor]:
                came_from[neighbor] = current
                g_score[neighbor] = tentative
                counter += 1
                heapq.heappush(
                    open_set, (tentative + heuristic(neighbor, goal), counter, neighbor)
                )

    log.debug(
        "No path found", start=start, goal=goal, nodes_explored=nodes_explored
    )
    return []
