"""Delve: tile-based dungeon simulation core.

Procedural map generation, per-depth level persistence and an incremental
field-of-view engine for a turn-based exploration game.
"""

__version__ = "0.1.0"
