# delve/config.py
"""YAML configuration for the dungeon core.

``load_config`` reads ``config/delve.yaml`` (or a given path) with
``yaml.safe_load`` and turns it into a :class:`DelveConfig`.  A missing file
yields the defaults; malformed YAML is logged and re-raised; values that
parse but make no sense raise :class:`~delve.errors.ConfigError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import structlog
import yaml

from delve.constants import (
    FOV_RADIUS,
    MAP_HEIGHT,
    MAP_WIDTH,
    MAX_DEPTH,
    MIN_MAP_SIZE,
)
from delve.errors import ConfigError
from delve.utils.logging_utils import LEVEL_NAMES
from delve.world.biome import BiomeType
from delve.world.procgen import GenerationSettings

log = structlog.get_logger(__name__)

PROJECT_DIR = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_FILE = PROJECT_DIR / "config" / "delve.yaml"

_TOP_LEVEL_KEYS = {
    "map",
    "fov_radius",
    "max_depth",
    "seed",
    "start_biome",
    "biome_schedule",
    "generation",
    "transitions",
    "log_level",
}


@dataclass
class TransitionSettings:
    require_stair: bool = True


@dataclass
class DelveConfig:
    map_width: int = MAP_WIDTH
    map_height: int = MAP_HEIGHT
    fov_radius: int = FOV_RADIUS
    max_depth: int = MAX_DEPTH
    seed: Optional[int] = None
    start_biome: BiomeType = BiomeType.CAVERNS
    biome_schedule: Dict[int, BiomeType] = field(default_factory=dict)
    generation: GenerationSettings = field(default_factory=GenerationSettings)
    transitions: TransitionSettings = field(default_factory=TransitionSettings)
    log_level: str = "INFO"


def _int(value: Any, name: str, minimum: Optional[int] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return section


def _biome(value: Any, name: str) -> BiomeType:
    try:
        return BiomeType.from_name(str(value))
    except ValueError as e:
        raise ConfigError(f"{name}: {e}") from e


def config_from_dict(data: Dict[str, Any]) -> DelveConfig:
    """Build a :class:`DelveConfig` from parsed YAML."""
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")
    unknown = sorted(set(data) - _TOP_LEVEL_KEYS)
    if unknown:
        log.warning("Ignoring unknown config keys", keys=unknown)

    config = DelveConfig()
    map_section = _section(data, "map")
    config.map_width = _int(
        map_section.get("width", config.map_width), "map.width", MIN_MAP_SIZE
    )
    config.map_height = _int(
        map_section.get("height", config.map_height), "map.height", MIN_MAP_SIZE
    )
    config.fov_radius = _int(data.get("fov_radius", config.fov_radius), "fov_radius", 0)
    config.max_depth = _int(data.get("max_depth", config.max_depth), "max_depth", 1)

    seed = data.get("seed")
    config.seed = None if seed is None else _int(seed, "seed", 0)

    if "start_biome" in data:
        config.start_biome = _biome(data["start_biome"], "start_biome")
    schedule = data.get("biome_schedule") or {}
    if not isinstance(schedule, dict):
        raise ConfigError("'biome_schedule' must map depths to biome names")
    for depth, name in schedule.items():
        depth = _int(depth, "biome_schedule depth", 0)
        if depth > config.max_depth:
            raise ConfigError(f"biome_schedule depth {depth} exceeds max_depth")
        config.biome_schedule[depth] = _biome(name, f"biome_schedule[{depth}]")

    gen = _section(data, "generation")
    defaults = GenerationSettings()
    try:
        config.generation = GenerationSettings(
            max_attempts=_int(
                gen.get("max_attempts", defaults.max_attempts), "generation.max_attempts", 1
            ),
            connectivity=_int(
                gen.get("connectivity", defaults.connectivity), "generation.connectivity"
            ),
            min_floor_tiles=_int(
                gen.get("min_floor_tiles", defaults.min_floor_tiles),
                "generation.min_floor_tiles",
                1,
            ),
            fallback_margin=_int(
                gen.get("fallback_margin", defaults.fallback_margin),
                "generation.fallback_margin",
                0,
            ),
            growth_step_budget=_int(
                gen.get("growth_step_budget", defaults.growth_step_budget),
                "generation.growth_step_budget",
                1,
            ),
            max_depth=config.max_depth,
        )
    except ValueError as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(f"generation: {e}") from e
    # The fallback room must hold both stairs in distinct corners
    inner = min(config.map_width, config.map_height) - 2 * config.generation.fallback_margin
    if inner < 2:
        raise ConfigError(
            f"generation.fallback_margin {config.generation.fallback_margin} leaves no "
            f"room for stairs on a {config.map_width}x{config.map_height} map"
        )

    transitions = _section(data, "transitions")
    require_stair = transitions.get("require_stair", True)
    if not isinstance(require_stair, bool):
        raise ConfigError("transitions.require_stair must be true or false")
    config.transitions = TransitionSettings(require_stair=require_stair)

    level = str(data.get("log_level", config.log_level)).upper()
    if level.lower() not in LEVEL_NAMES:
        raise ConfigError(f"Unknown log_level {level!r}")
    config.log_level = level
    return config


def load_config(path: Union[str, Path, None] = None) -> DelveConfig:
    """Load configuration from ``path`` (default ``config/delve.yaml``)."""
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_FILE
    if not config_path.is_file():
        log.warning("Config file not found, using defaults", path=str(config_path))
        return DelveConfig()
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        log.error(
            "Error parsing YAML config", path=str(config_path), error=str(e), exc_info=True
        )
        raise
    if data is None:
        log.warning("Config file is empty, using defaults", path=str(config_path))
        return DelveConfig()
    config = config_from_dict(data)
    log.info("Config loaded", path=str(config_path), seed=config.seed)
    return config
