"""Per-depth cache of visited levels.

Each visited depth keeps one :class:`LevelSnapshot` holding private copies
of its tiles, stairs, biome and visibility states.  Re-capturing a depth
overwrites its snapshot.  The store can be flattened to plain dicts and
written to JSON so a session survives a restart.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import structlog

from delve.world.biome import BiomeType
from delve.world.grid_map import GridMap
from delve.world.procgen import StairPositions
from delve.world.tiles import VisibilityState

log = structlog.get_logger(__name__)

FORMAT_VERSION = 1


@dataclass(eq=False)
class LevelSnapshot:
    depth: int
    grid_map: GridMap
    stairs: StairPositions
    biome: BiomeType
    visibility: np.ndarray

    def copy(self) -> "LevelSnapshot":
        return LevelSnapshot(
            depth=self.depth,
            grid_map=self.grid_map.copy(),
            stairs=self.stairs,
            biome=self.biome,
            visibility=self.visibility.copy(),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LevelSnapshot):
            return NotImplemented
        return (
            self.depth == other.depth
            and self.grid_map == other.grid_map
            and self.stairs == other.stairs
            and self.biome == other.biome
            and np.array_equal(self.visibility, other.visibility)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "depth": self.depth,
            "width": self.grid_map.width,
            "height": self.grid_map.height,
            "tiles": [int(t) for t in self.grid_map.tiles],
            "stairs": self.stairs.to_dict(),
            "biome": self.biome.value,
            "visibility": [int(v) for v in self.visibility],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LevelSnapshot":
        grid_map = GridMap.from_dict(data)
        visibility = np.asarray(data["visibility"], dtype=np.uint8)
        if visibility.size != grid_map.tiles.size:
            raise ValueError(
                f"Visibility has {visibility.size} entries, expected {grid_map.tiles.size}"
            )
        if visibility.size and int(visibility.max()) > int(VisibilityState.VISIBLE):
            raise ValueError(f"Unknown visibility state {int(visibility.max())}")
        return cls(
            depth=int(data["depth"]),
            grid_map=grid_map,
            stairs=StairPositions.from_dict(data.get("stairs") or {}),
            biome=BiomeType(data["biome"]),
            visibility=visibility,
        )


class LevelStore:
    def __init__(self) -> None:
        self._snapshots: Dict[int, LevelSnapshot] = {}

    def capture(
        self,
        depth: int,
        grid_map: GridMap,
        stairs: StairPositions,
        biome: BiomeType,
        visibility: np.ndarray,
    ) -> None:
        """Store or overwrite the snapshot for ``depth`` from copies of the inputs."""
        visibility = np.asarray(visibility, dtype=np.uint8).reshape(-1).copy()
        if visibility.size != grid_map.tiles.size:
            raise ValueError(
                f"Visibility has {visibility.size} entries, map has {grid_map.tiles.size}"
            )
        replaced = depth in self._snapshots
        self._snapshots[depth] = LevelSnapshot(
            depth=depth,
            grid_map=grid_map.copy(),
            stairs=stairs,
            biome=biome,
            visibility=visibility,
        )
        log.debug("Level captured", depth=depth, biome=biome.value, replaced=replaced)

    def restore(self, depth: int) -> Optional[LevelSnapshot]:
        """Copy of the snapshot for ``depth``, or ``None`` if never captured."""
        snapshot = self._snapshots.get(depth)
        if snapshot is None:
            log.debug("Level store miss", depth=depth)
            return None
        return snapshot.copy()

    def __contains__(self, depth: object) -> bool:
        return depth in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)

    def depths(self) -> List[int]:
        return sorted(self._snapshots)

    def discard(self, depth: int) -> bool:
        return self._snapshots.pop(depth, None) is not None

    def clear(self) -> None:
        self._snapshots.clear()

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": FORMAT_VERSION,
            "levels": [self._snapshots[d].to_dict() for d in sorted(self._snapshots)],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LevelStore":
        version = data.get("version", FORMAT_VERSION)
        if version != FORMAT_VERSION:
            raise ValueError(f"Unsupported level store version: {version}")
        store = cls()
        for record in data.get("levels", []):
            snapshot = LevelSnapshot.from_dict(record)
            store._snapshots[snapshot.depth] = snapshot
        return store

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f)
        log.info("Level store saved", path=str(path), levels=len(self))

    @classmethod
    def load(cls, path: Union[str, Path]) -> "LevelStore":
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            log.error("Failed to load level store", path=str(path), error=str(e))
            raise
        store = cls.from_dict(data)
        log.info("Level store loaded", path=str(path), levels=len(store))
        return store
