# delve/world/fov.py
"""
Field of view and visibility tracking.

The numba kernels in :mod:`delve.world.los` do the tracing; this module owns
the per-tile UNSEEN/SEEN/VISIBLE state machine, the incremental update over
the union of the old and new visible sets, and the symmetric LOS cache.
"""

import time
from typing import Dict, List, Optional, Set, Tuple

import numpy as np
import structlog

from delve.constants import FOV_RADIUS
from delve.errors import OutOfBoundsError
from delve.world.grid_map import GridMap, Point
from delve.world.los import trace_clear, visible_mask
from delve.world.tiles import VisibilityState

log = structlog.get_logger(__name__)

PairKey = Tuple[Point, Point]


class LosCache:
    """Line-of-sight results keyed by the unordered pair of endpoints."""

    def __init__(self) -> None:
        self._entries: Dict[PairKey, bool] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(a: Point, b: Point) -> PairKey:
        return (a, b) if a <= b else (b, a)

    def get(self, a: Point, b: Point) -> Optional[bool]:
        result = self._entries.get(self.key(a, b))
        if result is None:
            self.misses += 1
        else:
            self.hits += 1
        return result

    def put(self, a: Point, b: Point, clear: bool) -> None:
        self._entries[self.key(a, b)] = clear

    def clear(self) -> None:
        self._entries.clear()

    def reset_stats(self) -> None:
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "size": len(self._entries)}


class VisibilityEngine:
    def __init__(
        self,
        grid_map: GridMap,
        radius: int = FOV_RADIUS,
        states: Optional[np.ndarray] = None,
    ) -> None:
        self.radius = radius
        self.cache = LosCache()
        self._debug_reveal = False
        self.attach(grid_map, states)

    # --- Map binding ---
    def attach(self, grid_map: GridMap, states: Optional[np.ndarray] = None) -> None:
        """Bind to ``grid_map``, restoring ``states`` or starting all UNSEEN.

        Clears the LOS cache; the next :meth:`update` always recomputes.
        """
        size = grid_map.width * grid_map.height
        if states is None:
            stored = np.full(size, int(VisibilityState.UNSEEN), dtype=np.uint8)
        else:
            stored = np.asarray(states, dtype=np.uint8).reshape(-1).copy()
            if stored.size != size:
                raise ValueError(
                    f"Visibility array has {stored.size} entries, map has {size}"
                )
        self.grid_map = grid_map
        self._states = stored
        self._opaque = grid_map.opaque_mask()
        self._visible = (stored == int(VisibilityState.VISIBLE)).reshape(
            grid_map.height, grid_map.width
        )
        self._observer: Optional[Point] = None
        self._dirty = True
        self.cache.clear()
        log.debug(
            "Visibility attached",
            width=grid_map.width,
            height=grid_map.height,
            restored=states is not None,
        )

    def notify_map_changed(self) -> None:
        """Pick up tile mutations that may affect sight."""
        self._opaque = self.grid_map.opaque_mask()
        self.cache.clear()
        self._dirty = True

    def _check(self, point: Point) -> None:
        x, y = point
        if not self.grid_map.in_bounds(x, y):
            raise OutOfBoundsError(x, y, self.grid_map.width, self.grid_map.height)

    # --- Line of sight ---
    def line_of_sight(self, a: Point, b: Point) -> bool:
        """Symmetric, cached LOS; the endpoints themselves never block.

        The trace always runs from the smaller to the larger endpoint so a
        cache miss gives the same answer in both directions.
        """
        self._check(a)
        self._check(b)
        if a == b:
            return True
        cached = self.cache.get(a, b)
        if cached is not None:
            return cached
        (x0, y0), (x1, y1) = LosCache.key(a, b)
        clear = bool(trace_clear(x0, y0, x1, y1, self._opaque))
        self.cache.put(a, b, clear)
        return clear

    def compute_visible(
        self, observer: Point, radius: Optional[int] = None
    ) -> np.ndarray:
        """Boolean ``(height, width)`` mask of tiles seen from ``observer``.

        Distance is Euclidean on squared integers; negative radii act as 0.
        The observer tile is always included.  Runs the bulk kernel and
        neither reads nor fills the pair cache, which serves only
        :meth:`line_of_sight` queries; the traces use the same endpoint
        ordering, so both agree.
        """
        self._check(observer)
        radius = self.radius if radius is None else radius
        ox, oy = observer
        return visible_mask(ox, oy, max(0, int(radius)), self._opaque)

    # --- State machine ---
    def update(self, observer: Point) -> Set[Point]:
        """Advance visibility for ``observer``; returns coordinates that changed.

        Only tiles in the previous or the new visible set are written:
        VISIBLE tiles falling out of view become SEEN, newly visible tiles
        become VISIBLE.
        """
        self._check(observer)
        if not self._dirty and observer == self._observer:
            return set()

        start_time = time.perf_counter()
        new_visible = self.compute_visible(observer)
        states = self._states.reshape(self.grid_map.height, self.grid_map.width)
        demoted = self._visible & ~new_visible
        promoted = new_visible & (states != int(VisibilityState.VISIBLE))
        states[demoted] = int(VisibilityState.SEEN)
        states[new_visible] = int(VisibilityState.VISIBLE)

        self._visible = new_visible
        self._observer = observer
        self._dirty = False

        changed = demoted | promoted
        ys, xs = np.nonzero(changed)
        log.debug(
            "Visibility updated",
            observer=observer,
            visible=int(np.count_nonzero(new_visible)),
            changed=len(xs),
            duration_ms=f"{(time.perf_counter() - start_time) * 1000:.2f}",
        )
        return {(int(x), int(y)) for x, y in zip(xs, ys)}

    # --- Queries ---
    def debug_reveal_all(self, enabled: bool) -> None:
        """Report every tile as VISIBLE without touching stored states."""
        self._debug_reveal = bool(enabled)
        log.info("Debug reveal toggled", enabled=self._debug_reveal)

    def state_of(self, x: int, y: int) -> VisibilityState:
        self._check((x, y))
        if self._debug_reveal:
            return VisibilityState.VISIBLE
        return VisibilityState(int(self._states[y * self.grid_map.width + x]))

    @property
    def states(self) -> np.ndarray:
        """Copy of the stored flat state array."""
        return self._states.copy()

    def effective_states(self) -> np.ndarray:
        if self._debug_reveal:
            return np.full_like(self._states, int(VisibilityState.VISIBLE))
        return self._states.copy()

    def visible_positions(self) -> List[Point]:
        ys, xs = np.nonzero(self._visible)
        return [(int(x), int(y)) for x, y in zip(xs, ys)]

    def cache_stats(self) -> Dict[str, int]:
        return self.cache.stats()
