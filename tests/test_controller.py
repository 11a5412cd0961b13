import numpy as np
import pytest

from delve.config import DelveConfig, TransitionSettings
from delve.levels.controller import (
    ControllerState,
    LevelController,
    TransitionDirection,
    TransitionRejection,
)
from delve.levels.level_store import LevelStore
from delve.world.biome import BiomeType
from delve.world.procgen import GenerationSettings
from delve.world.tiles import TileCategory, VisibilityState

UP = TransitionDirection.UP
DOWN = TransitionDirection.DOWN


def _controller(**overrides) -> LevelController:
    max_depth = overrides.pop("max_depth", 50)
    config = DelveConfig(
        map_width=40,
        map_height=30,
        fov_radius=8,
        max_depth=max_depth,
        seed=4242,
        generation=GenerationSettings(max_depth=max_depth),
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    controller = LevelController(config)
    controller.start()
    return controller


def _take_stairs(controller: LevelController, direction: TransitionDirection):
    stair = controller.stairs.get(direction.departure_stair)
    assert stair is not None
    assert controller.set_observer_position(stair)
    return controller.request_transition(direction)


def test_start_places_observer_on_walkable_tile():
    controller = _controller()
    assert controller.current_depth() == 0
    x, y = controller.observer_position()
    assert controller.grid_map.walkable_at(x, y)
    assert controller.state_of(x, y) == VisibilityState.VISIBLE
    assert controller.stairs.up is None
    assert controller.stairs.down is not None
    assert 0 in controller.store
    assert controller.state is ControllerState.IDLE


def test_controller_requires_start():
    controller = LevelController(DelveConfig(seed=1))
    with pytest.raises(RuntimeError):
        controller.current_depth()
    with pytest.raises(RuntimeError):
        controller.request_transition(DOWN)


def test_going_up_from_surface_is_rejected():
    controller = _controller()
    before = controller.observer_position()
    result = controller.request_transition(UP)
    assert not result.accepted
    assert result.reason is TransitionRejection.AT_SURFACE
    assert controller.current_depth() == 0
    assert controller.observer_position() == before


def test_transition_requires_standing_on_stairs():
    controller = _controller()
    off_stair = next(
        p
        for p in controller.grid_map.floor_positions()
        if controller.tile_at(*p) == TileCategory.FLOOR
    )
    assert controller.set_observer_position(off_stair)
    result = controller.request_transition(DOWN)
    assert not result.accepted
    assert result.reason is TransitionRejection.NOT_ON_STAIRS
    assert controller.current_depth() == 0


def test_stair_requirement_can_be_disabled():
    controller = _controller(transitions=TransitionSettings(require_stair=False))
    result = controller.request_transition(DOWN)
    assert result.accepted
    assert controller.current_depth() == 1


def test_descend_and_return_restores_level():
    controller = _controller()
    stair_down = controller.stairs.down
    assert controller.set_observer_position(stair_down)
    tiles_before = controller.grid_map.tiles.copy()
    states_before = controller.visibility.states

    result = controller.request_transition(DOWN)
    assert result.accepted and result.depth == 1
    assert controller.current_depth() == 1
    assert controller.observer_position() == controller.stairs.up
    assert result.position == controller.stairs.up
    assert controller.tile_at(*controller.observer_position()) == TileCategory.STAIR_UP
    # a fresh level starts unexplored apart from the current view
    assert not np.any(controller.visibility.states == VisibilityState.SEEN)

    result = _take_stairs(controller, UP)
    assert result.accepted and result.depth == 0
    assert controller.observer_position() == stair_down
    assert np.array_equal(controller.grid_map.tiles, tiles_before)
    assert np.array_equal(controller.visibility.states, states_before)


def test_revisiting_depth_restores_exactly():
    controller = _controller()
    controller.force_transition(DOWN)
    controller.force_transition(DOWN)
    tiles = controller.grid_map.tiles.copy()
    stairs = controller.stairs
    biome = controller.biome
    controller.force_transition(UP)
    controller.force_transition(DOWN)
    assert controller.current_depth() == 2
    assert np.array_equal(controller.grid_map.tiles, tiles)
    assert controller.stairs == stairs
    assert controller.biome is biome
    assert controller.store.depths() == [0, 1, 2]


def test_force_transition_ignores_stairs_but_not_bounds():
    controller = _controller(max_depth=2)
    assert controller.force_transition(DOWN).accepted
    assert controller.force_transition(DOWN).accepted
    assert controller.current_depth() == 2
    assert controller.stairs.down is None
    assert controller.stairs.up is not None
    result = controller.force_transition(DOWN)
    assert not result.accepted
    assert result.reason is TransitionRejection.AT_MAX_DEPTH


def test_same_session_seed_reproduces_levels():
    a = _controller()
    b = _controller()
    assert np.array_equal(a.grid_map.tiles, b.grid_map.tiles)
    a.force_transition(DOWN)
    b.force_transition(DOWN)
    assert np.array_equal(a.grid_map.tiles, b.grid_map.tiles)
    assert a.seed_for_depth(1) == b.seed_for_depth(1)
    assert a.seed_for_depth(1) != a.seed_for_depth(2)


def test_biome_schedule_and_carry_over():
    controller = _controller(biome_schedule={1: BiomeType.UNDERGLADE})
    assert controller.biome is BiomeType.CAVERNS
    controller.force_transition(DOWN)
    assert controller.biome is BiomeType.UNDERGLADE
    controller.force_transition(DOWN)
    assert controller.biome is BiomeType.UNDERGLADE
    controller.force_transition(UP)
    controller.force_transition(UP)
    assert controller.biome is BiomeType.CAVERNS


def test_move_observer_rejects_blocked_tiles():
    controller = _controller()
    before = controller.observer_position()
    assert not controller.set_observer_position((0, 0))
    assert not controller.set_observer_position((-5, 3))
    assert controller.observer_position() == before


def test_move_observer_updates_visibility():
    controller = _controller()
    x, y = controller.observer_position()
    for dx, dy in ((1, 0), (-1, 0), (0, 1), (0, -1)):
        if controller.move_observer(dx, dy):
            assert controller.observer_position() == (x + dx, y + dy)
            assert controller.state_of(x + dx, y + dy) == VisibilityState.VISIBLE
            break
    else:
        pytest.fail("observer boxed in at spawn")


def test_regenerate_current_resets_visibility():
    controller = _controller()
    old_seed = controller.seed_for_depth(0)
    old_tiles = controller.grid_map.tiles.copy()
    controller.regenerate_current()
    assert controller.seed_for_depth(0) != old_seed
    assert not np.array_equal(controller.grid_map.tiles, old_tiles)
    assert not np.any(controller.visibility.states == VisibilityState.SEEN)
    assert np.array_equal(controller.store.restore(0).grid_map.tiles, controller.grid_map.tiles)


def test_cycle_biome_order():
    controller = _controller()
    assert controller.cycle_biome() is BiomeType.CINDER_GAOL
    assert controller.biome is BiomeType.CINDER_GAOL
    assert controller.store.restore(0).biome is BiomeType.CINDER_GAOL
    assert controller.cycle_biome() is BiomeType.UNDERGLADE
    assert controller.cycle_biome() is BiomeType.CAVERNS


def test_cycle_biome_from_outside_rotation_returns_to_caverns():
    controller = _controller(start_biome=BiomeType.STYGIAN_POOL)
    assert controller.biome is BiomeType.STYGIAN_POOL
    assert controller.cycle_biome() is BiomeType.CAVERNS


def test_reveal_all_passthrough():
    controller = _controller()
    controller.reveal_all(True)
    assert controller.state_of(0, 0) == VisibilityState.VISIBLE
    controller.reveal_all(False)
    assert controller.state_of(0, 0) == VisibilityState.UNSEEN


def test_toggle_door_updates_map():
    controller = _controller()
    observer = controller.observer_position()
    target = next(p for p in controller.grid_map.floor_positions() if p != observer)
    controller.grid_map.set(*target, TileCategory.DOOR_OPEN)
    assert controller.toggle_door(*target) == TileCategory.DOOR_CLOSED
    assert controller.tile_at(*target) == TileCategory.DOOR_CLOSED
    assert controller.toggle_door(*target) == TileCategory.DOOR_OPEN
    with pytest.raises(ValueError):
        controller.toggle_door(*observer)


def test_path_to_known_stair():
    controller = _controller()
    spawn = controller.observer_position()
    assert controller.path_to_known_stair(TileCategory.STAIR_UP) is None
    stair = controller.stairs.down
    if controller.visibility.states[stair[1] * 40 + stair[0]] == VisibilityState.UNSEEN:
        assert controller.path_to_known_stair(TileCategory.STAIR_DOWN) is None
    assert controller.set_observer_position(stair)
    assert controller.path_to_known_stair(TileCategory.STAIR_DOWN) == []
    if spawn == stair:
        return
    assert controller.set_observer_position(spawn)
    path = controller.path_to_known_stair(TileCategory.STAIR_DOWN)
    assert path is not None
    assert path[-1] == stair
    previous = spawn
    for step in path:
        assert abs(step[0] - previous[0]) + abs(step[1] - previous[1]) == 1
        assert controller.grid_map.walkable_at(*step)
        previous = step


def test_save_session(tmp_path):
    controller = _controller()
    controller.force_transition(DOWN)
    path = tmp_path / "session.json"
    controller.save(path)
    loaded = LevelStore.load(path)
    assert loaded.depths() == [0, 1]
    resumed = LevelController(controller.config, store=loaded)
    resumed.start(1)
    assert np.array_equal(resumed.grid_map.tiles, controller.grid_map.tiles)


def test_path_to_known_stair_follows_generation_connectivity():
    controller = _controller(generation=GenerationSettings(max_depth=50, connectivity=8))
    spawn = controller.observer_position()
    stair = controller.stairs.down
    if spawn == stair:
        return
    assert controller.set_observer_position(stair)
    assert controller.set_observer_position(spawn)
    path = controller.path_to_known_stair(TileCategory.STAIR_DOWN)
    assert path is not None and path[-1] == stair
    previous = spawn
    for step in path:
        assert max(abs(step[0] - previous[0]), abs(step[1] - previous[1])) == 1
        assert controller.grid_map.walkable_at(*step)
        previous = step
