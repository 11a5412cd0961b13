# delve/levels/controller.py
"""Depth transitions: capture the departing level, restore or generate the
arriving one, place the observer and rebind visibility."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import structlog

from delve.config import DelveConfig
from delve.constants import MIN_DEPTH
from delve.levels.level_store import LevelStore
from delve.utils.game_rng import GameRNG, derive_seed
from delve.world.biome import BiomeType
from delve.world.fov import VisibilityEngine
from delve.world.grid_map import GridMap, Point
from delve.world.pathfinding import find_path
from delve.world.procgen import GeneratedLevel, StairPositions, generate_level
from delve.world.tiles import TileCategory, VisibilityState, WallFace

log = structlog.get_logger(__name__)


class TransitionDirection(Enum):
    UP = "up"
    DOWN = "down"

    @property
    def delta(self) -> int:
        return -1 if self is TransitionDirection.UP else 1

    @property
    def departure_stair(self) -> TileCategory:
        """Stair the observer must stand on to leave in this direction."""
        if self is TransitionDirection.UP:
            return TileCategory.STAIR_UP
        return TileCategory.STAIR_DOWN

    @property
    def arrival_stair(self) -> TileCategory:
        """Stair the observer appears on after moving in this direction."""
        if self is TransitionDirection.UP:
            return TileCategory.STAIR_DOWN
        return TileCategory.STAIR_UP


class TransitionRejection(Enum):
    AT_SURFACE = "at_surface"
    AT_MAX_DEPTH = "at_max_depth"
    NOT_ON_STAIRS = "not_on_stairs"
    BUSY = "busy"


class ControllerState(Enum):
    IDLE = "idle"
    RESOLVING = "resolving"


@dataclass(frozen=True)
class TransitionResult:
    accepted: bool
    depth: int
    position: Optional[Point]
    reason: Optional[TransitionRejection] = None


LoadedLevel = Tuple[GridMap, StairPositions, BiomeType, Optional[np.ndarray]]


class LevelController:
    def __init__(
        self,
        config: Optional[DelveConfig] = None,
        store: Optional[LevelStore] = None,
    ) -> None:
        self.config = config or DelveConfig()
        self.store = store if store is not None else LevelStore()
        self.session_seed: int = (
            self.config.seed if self.config.seed is not None else GameRNG().initial_seed
        )
        self.state = ControllerState.IDLE
        self.grid_map: Optional[GridMap] = None
        self.visibility: Optional[VisibilityEngine] = None
        self._depth: Optional[int] = None
        self._stairs = StairPositions()
        self._biome = self.config.start_biome
        self._observer: Optional[Point] = None
        self._regen_counts: Dict[int, int] = {}
        self._log = log.bind(session_seed=self.session_seed)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def current_depth(self) -> int:
        self._require_started()
        return self._depth  # type: ignore[return-value]

    def observer_position(self) -> Point:
        self._require_started()
        return self._observer  # type: ignore[return-value]

    def tile_at(self, x: int, y: int) -> TileCategory:
        return self._map().get(x, y)

    def wall_face(self, x: int, y: int) -> WallFace:
        return self._map().wall_face(x, y)

    def state_of(self, x: int, y: int) -> VisibilityState:
        return self._engine().state_of(x, y)

    @property
    def biome(self) -> BiomeType:
        return self._biome

    @property
    def stairs(self) -> StairPositions:
        return self._stairs

    def seed_for_depth(self, depth: int) -> int:
        return derive_seed(self.session_seed, depth, self._regen_counts.get(depth, 0))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self, depth: int = MIN_DEPTH) -> Point:
        """Enter ``depth`` and spawn the observer near the map centre."""
        self._check_depth(depth)
        grid_map, stairs, biome, states = self._load_depth(depth)
        position = self._centre_spawn(grid_map)
        self._activate(depth, grid_map, stairs, biome, states, position)
        self._log.info("Controller started", depth=depth, biome=biome.value, observer=position)
        return position

    def request_transition(self, direction: TransitionDirection) -> TransitionResult:
        """Take the stairs in ``direction`` if the observer stands on them."""
        return self._transition(direction, require_stair=self.config.transitions.require_stair)

    def force_transition(self, direction: TransitionDirection) -> TransitionResult:
        """Change depth without standing on a stair."""
        return self._transition(direction, require_stair=False)

    def _transition(
        self, direction: TransitionDirection, require_stair: bool
    ) -> TransitionResult:
        self._require_started()
        depth = self._depth
        assert depth is not None
        reason: Optional[TransitionRejection] = None
        if self.state is ControllerState.RESOLVING:
            reason = TransitionRejection.BUSY
        elif direction is TransitionDirection.UP and depth <= MIN_DEPTH:
            reason = TransitionRejection.AT_SURFACE
        elif direction is TransitionDirection.DOWN and depth >= self.config.max_depth:
            reason = TransitionRejection.AT_MAX_DEPTH
        elif require_stair and self.tile_at(*self.observer_position()) != direction.departure_stair:
            reason = TransitionRejection.NOT_ON_STAIRS
        if reason is not None:
            self._log.info(
                "Transition rejected",
                depth=depth,
                direction=direction.value,
                reason=reason.value,
            )
            return TransitionResult(False, depth, self._observer, reason)

        target = depth + direction.delta
        self.state = ControllerState.RESOLVING
        try:
            self.capture_current()
            grid_map, stairs, biome, states = self._load_depth(target)
            arrival = stairs.get(direction.arrival_stair)
            if arrival is not None and grid_map.walkable_at(*arrival):
                position = arrival
            else:
                position = self._centre_spawn(grid_map)
            self._activate(target, grid_map, stairs, biome, states, position)
        finally:
            self.state = ControllerState.IDLE
        self._log.info(
            "Depth transition",
            origin=depth,
            depth=target,
            direction=direction.value,
            biome=biome.value,
            observer=position,
        )
        return TransitionResult(True, target, position)

    # ------------------------------------------------------------------
    # Observer
    # ------------------------------------------------------------------
    def move_observer(self, dx: int, dy: int) -> bool:
        x, y = self.observer_position()
        return self.set_observer_position((x + dx, y + dy))

    def set_observer_position(self, position: Point) -> bool:
        """Move to a walkable in-bounds tile; returns False and stays put otherwise."""
        grid_map = self._map()
        x, y = position
        if not grid_map.in_bounds(x, y) or not grid_map.walkable_at(x, y):
            return False
        self._observer = (x, y)
        self._engine().update(self._observer)
        return True

    # ------------------------------------------------------------------
    # Debug and map interaction
    # ------------------------------------------------------------------
    def regenerate_current(self, biome: Optional[BiomeType] = None) -> Point:
        """Replace the current depth with a freshly seeded map."""
        depth = self.current_depth()
        if biome is not None:
            self._biome = biome
        self._regen_counts[depth] = self._regen_counts.get(depth, 0) + 1
        level = self._generate(depth, self._biome)
        self.store.capture(
            depth,
            level.grid_map,
            level.stairs,
            self._biome,
            np.zeros(level.grid_map.tiles.size, dtype=np.uint8),
        )
        position = self._centre_spawn(level.grid_map)
        self._activate(depth, level.grid_map, level.stairs, self._biome, None, position)
        self._log.info(
            "Level regenerated",
            depth=depth,
            biome=self._biome.value,
            regen=self._regen_counts[depth],
        )
        return position

    def cycle_biome(self) -> BiomeType:
        new_biome = self._biome.next_in_cycle()
        self.regenerate_current(new_biome)
        return new_biome

    def reveal_all(self, enabled: bool) -> None:
        self._engine().debug_reveal_all(enabled)

    def toggle_door(self, x: int, y: int) -> TileCategory:
        """Open or close the door at ``(x, y)`` and refresh visibility."""
        if self._observer == (x, y):
            raise ValueError("Cannot toggle a door the observer is standing in")
        new_category = self._map().toggle_door(x, y)
        engine = self._engine()
        engine.notify_map_changed()
        engine.update(self.observer_position())
        return new_category

    def path_to_known_stair(self, kind: TileCategory) -> Optional[List[Point]]:
        """A* steps to the stair of ``kind`` if it has already been seen."""
        stair = self._stairs.get(kind)
        if stair is None:
            return None
        engine = self._engine()
        stored = engine.states[stair[1] * self._map().width + stair[0]]
        if stored == int(VisibilityState.UNSEEN):
            return None
        start = self.observer_position()
        if start == stair:
            return []
        path = find_path(
            start, stair, self._map(), connectivity=self.config.generation.connectivity
        )
        return path or None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def capture_current(self) -> None:
        """Write the live level into the store."""
        self.store.capture(
            self.current_depth(),
            self._map(),
            self._stairs,
            self._biome,
            self._engine().states,
        )

    def save(self, path: Union[str, Path]) -> None:
        self.capture_current()
        self.store.save(path)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _require_started(self) -> None:
        if self._depth is None:
            raise RuntimeError("LevelController.start() has not been called")

    def _map(self) -> GridMap:
        self._require_started()
        assert self.grid_map is not None
        return self.grid_map

    def _engine(self) -> VisibilityEngine:
        self._require_started()
        assert self.visibility is not None
        return self.visibility

    def _check_depth(self, depth: int) -> None:
        if not MIN_DEPTH <= depth <= self.config.max_depth:
            raise ValueError(f"Depth {depth} outside {MIN_DEPTH}..{self.config.max_depth}")

    def _generate(self, depth: int, biome: BiomeType) -> GeneratedLevel:
        return generate_level(
            self.config.map_width,
            self.config.map_height,
            biome,
            self.seed_for_depth(depth),
            depth,
            self.config.generation,
        )

    def _load_depth(self, depth: int) -> LoadedLevel:
        """Restore ``depth`` from the store, generating and capturing it on a miss."""
        snapshot = self.store.restore(depth)
        if snapshot is not None:
            self._log.debug("Restored level", depth=depth, biome=snapshot.biome.value)
            return snapshot.grid_map, snapshot.stairs, snapshot.biome, snapshot.visibility
        biome = self.config.biome_schedule.get(depth, self._biome)
        level = self._generate(depth, biome)
        self.store.capture(
            depth,
            level.grid_map,
            level.stairs,
            biome,
            np.zeros(level.grid_map.tiles.size, dtype=np.uint8),
        )
        return level.grid_map, level.stairs, biome, None

    def _centre_spawn(self, grid_map: GridMap) -> Point:
        centre = (grid_map.width // 2, grid_map.height // 2)
        position = grid_map.find_nearby_walkable(
            centre, max(grid_map.width, grid_map.height)
        )
        if position is None:
            raise RuntimeError("Level has no walkable tile to spawn on")
        return position

    def _activate(
        self,
        depth: int,
        grid_map: GridMap,
        stairs: StairPositions,
        biome: BiomeType,
        states: Optional[np.ndarray],
        position: Point,
    ) -> None:
        self._depth = depth
        self.grid_map = grid_map
        self._stairs = stairs
        self._biome = biome
        self._observer = position
        if self.visibility is None:
            self.visibility = VisibilityEngine(grid_map, self.config.fov_radius, states)
        else:
            self.visibility.attach(grid_map, states)
            self.visibility.cache.reset_stats()
        self.visibility.update(position)
