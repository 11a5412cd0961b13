import pytest

from delve.world.biome import BiomeType
from delve.world.grid_map import GridMap
from delve.world.pathfinding import find_path
from delve.world.procgen import GenerationSettings, generate_level
from delve.world.regions import bfs_distances


def _maze() -> GridMap:
    return GridMap.from_rows(
        [
            "#########",
            "#.......#",
            "#######.#",
            "#.......#",
            "#.#######",
            "#.......#",
            "#########",
        ]
    )


def _assert_valid(path, start, grid_map):
    previous = start
    for step in path:
        assert abs(step[0] - previous[0]) + abs(step[1] - previous[1]) == 1
        assert grid_map.walkable_at(*step)
        previous = step


def test_path_through_maze_is_shortest():
    gm = _maze()
    path = find_path((1, 1), (7, 5), gm)
    assert path[-1] == (7, 5)
    assert (1, 1) not in path
    _assert_valid(path, (1, 1), gm)
    assert len(path) == bfs_distances(gm.walkable_mask(), (1, 1))[5, 7]


def test_same_start_and_goal_is_empty():
    assert find_path((1, 1), (1, 1), _maze()) == []


def test_blocked_endpoints_give_empty_path():
    gm = _maze()
    assert find_path((0, 0), (1, 1), gm) == []
    assert find_path((1, 1), (4, 2), gm) == []
    assert find_path((1, 1), (40, 2), gm) == []


def test_unreachable_goal():
    gm = GridMap.from_rows(["#######", "#..#..#", "#######"])
    assert find_path((1, 1), (5, 1), gm) == []


def test_node_budget_stops_search():
    gm = _maze()
    assert find_path((1, 1), (7, 5), gm, max_nodes=3) == []


def test_path_on_generated_level():
    level = generate_level(60, 40, BiomeType.CINDER_GAOL, seed=8, depth=2)
    gm = level.grid_map
    path = find_path(level.stairs.up, level.stairs.down, gm)
    assert path[-1] == level.stairs.down
    _assert_valid(path, level.stairs.up, gm)
    assert len(path) == bfs_distances(gm.walkable_mask(), level.stairs.up)[
        level.stairs.down[1], level.stairs.down[0]
    ]


def test_diagonal_steps_need_eight_way_connectivity():
    gm = GridMap.from_rows(
        [
            "#####",
            "#.###",
            "##.##",
            "###.#",
            "#####",
        ]
    )
    assert find_path((1, 1), (3, 3), gm) == []
    assert find_path((1, 1), (3, 3), gm, connectivity=8) == [(2, 2), (3, 3)]


@pytest.mark.parametrize("seed", range(6))
def test_eight_way_levels_are_walkable_stair_to_stair(seed):
    level = generate_level(
        60,
        40,
        BiomeType.UNDERGLADE,
        seed=seed,
        depth=3,
        settings=GenerationSettings(connectivity=8),
    )
    gm = level.grid_map
    up, down = level.stairs.up, level.stairs.down
    path = find_path(up, down, gm, connectivity=8)
    assert path and path[-1] == down
    previous = up
    for step in path:
        assert max(abs(step[0] - previous[0]), abs(step[1] - previous[1])) == 1
        assert gm.walkable_at(*step)
        previous = step
    assert len(path) == bfs_distances(gm.walkable_mask(), up, 8)[down[1], down[0]]
