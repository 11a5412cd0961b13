# delve/__main__.py
"""Command line demo: build a session, walk down some stairs, dump the view."""

import argparse
import logging
import sys
from typing import List, Optional

import structlog

from delve.config import load_config
from delve.errors import ConfigError
from delve.levels.controller import LevelController, TransitionDirection
from delve.utils.logging_utils import setup_logging
from delve.world.biome import BiomeType
from delve.world.tiles import TILE_TYPES, VisibilityState

log = structlog.get_logger(__name__)


def render_view(controller: LevelController) -> str:
    """ASCII view of the current level; unseen tiles are blank."""
    grid_map = controller.grid_map
    assert grid_map is not None
    observer = controller.observer_position()
    rows = []
    for y in range(grid_map.height):
        row = []
        for x in range(grid_map.width):
            if (x, y) == observer:
                row.append("@")
            elif controller.state_of(x, y) == VisibilityState.UNSEEN:
                row.append(" ")
            else:
                row.append(TILE_TYPES[grid_map.get(x, y)].glyph)
        rows.append("".join(row))
    return "\n".join(rows)


def descend(controller: LevelController, levels: int) -> int:
    """Step onto the down-stair and take it, ``levels`` times."""
    for _ in range(levels):
        stair = controller.stairs.down
        if stair is None:
            log.info("No down-stair on this level", depth=controller.current_depth())
            break
        controller.set_observer_position(stair)
        result = controller.request_transition(TransitionDirection.DOWN)
        if not result.accepted:
            break
    return controller.current_depth()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="delve", description="Generate and explore a persistent dungeon."
    )
    parser.add_argument("--config", default=None, help="Path to a YAML config file.")
    parser.add_argument("--seed", type=int, default=None, help="Override the session seed.")
    parser.add_argument(
        "--biome",
        default=None,
        choices=[b.value for b in BiomeType],
        help="Override the starting biome.",
    )
    parser.add_argument(
        "--descend", type=int, default=0, help="Number of levels to walk down."
    )
    parser.add_argument(
        "--reveal", action="store_true", help="Show the whole map (debug reveal)."
    )
    parser.add_argument("--save", default=None, help="Write the level store to JSON.")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: from config).",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cli_level = "DEBUG" if args.verbose else args.log_level
    setup_logging(cli_level or logging.INFO)
    try:
        config = load_config(args.config)
    except ConfigError as e:
        log.error("Invalid configuration", error=str(e))
        return 2

    if cli_level is None:
        setup_logging(config.log_level)
    if args.seed is not None:
        config.seed = args.seed
    if args.biome is not None:
        config.start_biome = BiomeType(args.biome)

    controller = LevelController(config)
    controller.start()
    depth = descend(controller, max(0, args.descend))
    if args.reveal:
        controller.reveal_all(True)

    print(
        f"Depth {depth} ({controller.biome.config.name}), "
        f"seed {controller.session_seed}, observer {controller.observer_position()}"
    )
    print(render_view(controller))

    if args.save:
        controller.save(args.save)
    return 0


if __name__ == "__main__":
    sys.exit(main())
