"""delve/world/los.py

Numba-accelerated Bresenham line of sight over an opacity grid.

Only the tiles strictly between the two endpoints are tested, so a wall
at the far end is itself visible and the observer's own tile never blocks.
"""

from __future__ import annotations

import numba
import numpy as np


@numba.njit(cache=True)
def trace_clear(
    x0: int,
    y0: int,
    x1: int,
    y1: int,
    opaque: np.ndarray,
) -> bool:
    """Return ``True`` if no opaque tile lies between two in-bounds points.

    ``opaque`` is indexed ``[y, x]``.  The walk is ordinary Bresenham from
    ``(x0, y0)`` toward ``(x1, y1)``; callers wanting a direction-independent
    answer must order the endpoints themselves.
    """
    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx + dy

    x, y = x0, y0
    while True:
        if x == x1 and y == y1:
            return True
        e2 = 2 * err
        if e2 >= dy:
            err += dy
            x += sx
        if e2 <= dx:
            err += dx
            y += sy
        if x == x1 and y == y1:
            return True
        if opaque[y, x]:
            return False


@numba.njit(cache=True)
def visible_mask(
    ox: int,
    oy: int,
    radius: int,
    opaque: np.ndarray,
) -> np.ndarray:
    """Boolean mask of tiles within ``radius`` that ``(ox, oy)`` can see.

    Scans only the radius bounding box and traces from the smaller endpoint
    of each pair, ordered by ``(x, y)``, so results agree with the cached
    pairwise predicate.
    """
    height, width = opaque.shape
    result = np.zeros((height, width), dtype=np.bool_)
    result[oy, ox] = True
    if opaque[oy, ox] or radius <= 0:
        return result
    r_sq = radius * radius
    y_lo = max(0, oy - radius)
    y_hi = min(height - 1, oy + radius)
    x_lo = max(0, ox - radius)
    x_hi = min(width - 1, ox + radius)
    for ty in range(y_lo, y_hi + 1):
        for tx in range(x_lo, x_hi + 1):
            ddx = tx - ox
            ddy = ty - oy
            if ddx * ddx + ddy * ddy > r_sq:
                continue
            if tx < ox or (tx == ox and ty < oy):
                clear = trace_clear(tx, ty, ox, oy, opaque)
            else:
                clear = trace_clear(ox, oy, tx, ty, opaque)
            if clear:
                result[ty, tx] = True
    return result


__all__ = ["trace_clear", "visible_mask"]
