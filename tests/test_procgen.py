import numpy as np
import pytest

from delve.errors import GenerationFailure
from delve.utils.game_rng import GameRNG
from delve.world.biome import BiomeType
from delve.world.grid_map import GridMap
from delve.world.procgen import (
    EllipseMask,
    GenerationSettings,
    MapGenerator,
    StairPositions,
    connect_regions,
    fallback_level,
    generate_level,
    max_divisions_for_depth,
    orthogonal_line,
    stairs_required,
)
from delve.world.regions import bfs_distances, is_fully_connected, reachable
from delve.world.tiles import TileCategory

BIOMES = [BiomeType.CAVERNS, BiomeType.UNDERGLADE, BiomeType.CINDER_GAOL]


def _generate(biome, seed, depth=5, width=80, height=50, **settings):
    generator = MapGenerator(GenerationSettings(**settings))
    return generator.generate(width, height, biome, GameRNG(seed), depth)


@pytest.mark.parametrize("biome", BIOMES)
@pytest.mark.parametrize("seed", [1, 7, 42, 1234])
def test_generated_level_is_connected(biome, seed):
    level = _generate(biome, seed)
    gm = level.grid_map
    assert is_fully_connected(gm)
    assert sum(1 for _ in gm.floor_positions()) >= 24
    # edges stay solid
    grid = gm.grid
    assert not gm.walkable_mask()[0, :].any()
    assert not gm.walkable_mask()[-1, :].any()
    assert not gm.walkable_mask()[:, 0].any()
    assert not gm.walkable_mask()[:, -1].any()
    assert grid.shape == (50, 80)


@pytest.mark.parametrize("biome", BIOMES)
def test_stairs_placed_and_mutually_reachable(biome):
    level = _generate(biome, 99, depth=3)
    stairs = level.stairs
    assert stairs.up is not None and stairs.down is not None
    assert stairs.up != stairs.down
    gm = level.grid_map
    assert gm.get(*stairs.up) == TileCategory.STAIR_UP
    assert gm.get(*stairs.down) == TileCategory.STAIR_DOWN
    assert gm.count(TileCategory.STAIR_UP) == 1
    assert gm.count(TileCategory.STAIR_DOWN) == 1
    assert reachable(gm, stairs.up, stairs.down)
    dist = bfs_distances(gm.walkable_mask(), stairs.up)
    for x, y in gm.floor_positions():
        assert dist[y, x] >= 0


def test_depth_rule_for_stairs():
    top = _generate(BiomeType.CAVERNS, 5, depth=0)
    assert top.stairs.up is None and top.stairs.down is not None
    bottom = _generate(BiomeType.CAVERNS, 5, depth=50)
    assert bottom.stairs.up is not None and bottom.stairs.down is None
    plain = _generate(BiomeType.CAVERNS, 5, depth=None)
    assert plain.stairs == StairPositions()
    assert plain.grid_map.count(TileCategory.STAIR_UP) == 0
    assert plain.grid_map.count(TileCategory.STAIR_DOWN) == 0


def test_stairs_required_rejects_out_of_range_depth():
    assert stairs_required(0) == (False, True)
    assert stairs_required(25) == (True, True)
    assert stairs_required(50) == (True, False)
    with pytest.raises(ValueError):
        stairs_required(51)
    with pytest.raises(ValueError):
        _generate(BiomeType.CAVERNS, 1, depth=-1)


@pytest.mark.parametrize("biome", BIOMES)
def test_generation_is_deterministic(biome):
    a = _generate(biome, 2024)
    b = _generate(biome, 2024)
    assert np.array_equal(a.grid_map.tiles, b.grid_map.tiles)
    assert a.stairs == b.stairs
    assert a.seed == b.seed
    c = _generate(biome, 2025)
    assert not np.array_equal(a.grid_map.tiles, c.grid_map.tiles)


def test_wall_faces_reported_with_level():
    level = _generate(BiomeType.CAVERNS, 3)
    assert np.array_equal(level.wall_faces, level.grid_map.wall_faces())


def test_water_only_in_biomes_that_allow_it():
    for seed in range(4):
        gaol = _generate(BiomeType.CINDER_GAOL, seed)
        assert gaol.grid_map.count(TileCategory.WATER) == 0
    pool = _generate(BiomeType.STYGIAN_POOL, 8)
    assert pool.grid_map.count(TileCategory.WATER) > 0
    assert is_fully_connected(pool.grid_map)


def test_doors_keep_level_connected():
    for seed in range(6):
        level = _generate(BiomeType.CINDER_GAOL, seed)
        gm = level.grid_map
        assert gm.count(TileCategory.DOOR_CLOSED) == 0
        assert is_fully_connected(gm)


def test_eight_way_connectivity_setting():
    level = _generate(BiomeType.UNDERGLADE, 11, connectivity=8)
    assert is_fully_connected(level.grid_map, connectivity=8)


def test_ellipse_mask_stays_inside_edges():
    mask = EllipseMask(80, 50)
    assert not mask.mask[0, :].any() and not mask.mask[-1, :].any()
    assert not mask.mask[:, 0].any() and not mask.mask[:, -1].any()
    assert mask.contains(40, 25)
    assert not mask.contains(1, 1)
    assert mask.size > 400


def test_orthogonal_line_is_four_connected():
    path = orthogonal_line((2, 3), (9, -1))
    assert path[0] == (2, 3) and path[-1] == (9, -1)
    assert len(path) == 7 + 4 + 1
    for (ax, ay), (bx, by) in zip(path, path[1:]):
        assert abs(ax - bx) + abs(ay - by) == 1


def test_connect_regions_joins_components():
    gm = GridMap.from_rows(
        [
            "############",
            "#...####...#",
            "#...####...#",
            "############",
            "#.##########",
            "############",
        ]
    )
    assert not is_fully_connected(gm)
    tunnels = connect_regions(gm)
    assert tunnels == 2
    assert is_fully_connected(gm)


def test_generator_exhausts_attempts():
    generator = MapGenerator(GenerationSettings(max_attempts=3, min_floor_tiles=10_000))
    with pytest.raises(GenerationFailure) as excinfo:
        generator.generate(40, 30, BiomeType.CAVERNS, GameRNG(1), depth=2)
    assert excinfo.value.attempts == 3
    assert "floor" in excinfo.value.reason


def test_growth_budget_aborts_attempt():
    generator = MapGenerator(GenerationSettings(max_attempts=2, growth_step_budget=5))
    with pytest.raises(GenerationFailure):
        generator.generate(80, 50, BiomeType.CAVERNS, GameRNG(1), depth=1)


def test_fallback_room_layout():
    level = fallback_level(10, 10, BiomeType.CAVERNS)
    gm = level.grid_map
    assert gm.count(TileCategory.FLOOR) == 36
    assert gm.count(TileCategory.WALL) == 64
    for x, y in gm.floor_positions():
        assert 2 <= x <= 7 and 2 <= y <= 7
    assert level.seed is None and level.attempts == 0


def test_fallback_room_stairs_in_opposite_corners():
    level = fallback_level(10, 10, BiomeType.CAVERNS, depth=4)
    assert level.stairs == StairPositions(up=(2, 2), down=(7, 7))
    assert level.grid_map.get(2, 2) == TileCategory.STAIR_UP
    assert level.grid_map.get(7, 7) == TileCategory.STAIR_DOWN


def test_generate_level_falls_back_on_failure():
    settings = GenerationSettings(max_attempts=2, min_floor_tiles=10_000)
    level = generate_level(10, 10, BiomeType.CAVERNS, seed=5, settings=settings)
    assert level.grid_map.count(TileCategory.FLOOR) == 36
    assert level.attempts == 0


def test_generate_level_succeeds_normally():
    level = generate_level(80, 50, BiomeType.CAVERNS, seed=5, depth=1)
    assert level.attempts >= 1
    assert level.seed is not None


def test_max_divisions_grows_with_depth():
    assert max_divisions_for_depth(0) == 3
    assert max_divisions_for_depth(5) == 4
    assert max_divisions_for_depth(40) == 5
