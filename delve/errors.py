"""Exception types raised by the dungeon core."""

from __future__ import annotations


class OutOfBoundsError(IndexError):
    """A grid coordinate outside the map extents was accessed."""

    def __init__(self, x: int, y: int, width: int, height: int) -> None:
        super().__init__(
            f"Coordinate ({x}, {y}) outside {width}x{height} grid"
        )
        self.x = x
        self.y = y
        self.width = width
        self.height = height


class GenerationFailure(RuntimeError):
    """The map generator ran out of attempts without a valid layout."""

    def __init__(self, attempts: int, reason: str) -> None:
        super().__init__(f"Map generation failed after {attempts} attempts: {reason}")
        self.attempts = attempts
        self.reason = reason


class ConfigError(ValueError):
    """A configuration value could not be interpreted."""
