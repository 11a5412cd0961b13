import pytest
import yaml

from delve.config import DEFAULT_CONFIG_FILE, DelveConfig, config_from_dict, load_config
from delve.errors import ConfigError
from delve.world.biome import BiomeType
from delve.world.procgen import fallback_level


def test_repository_config_loads():
    assert DEFAULT_CONFIG_FILE.is_file()
    config = load_config()
    assert config.map_width == 80 and config.map_height == 50
    assert config.seed == 1337
    assert config.start_biome is BiomeType.CAVERNS
    assert config.biome_schedule[10] is BiomeType.CINDER_GAOL
    assert config.generation.max_depth == config.max_depth
    assert config.transitions.require_stair


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(tmp_path / "nope.yaml")
    assert config == DelveConfig()


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == DelveConfig()


def test_malformed_yaml_raises(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("map: [unclosed\n", encoding="utf-8")
    with pytest.raises(yaml.YAMLError):
        load_config(path)


def test_partial_config_keeps_defaults(tmp_path):
    path = tmp_path / "small.yaml"
    path.write_text(
        "map:\n  width: 40\nstart_biome: Cinder Gaol\nlog_level: debug\n",
        encoding="utf-8",
    )
    config = load_config(path)
    assert config.map_width == 40
    assert config.map_height == DelveConfig().map_height
    assert config.start_biome is BiomeType.CINDER_GAOL
    assert config.log_level == "DEBUG"
    assert config.seed is None


@pytest.mark.parametrize(
    "data",
    [
        {"start_biome": "lava_lake"},
        {"biome_schedule": {3: "nowhere"}},
        {"biome_schedule": {99: "caverns"}},
        {"map": {"width": "wide"}},
        {"map": {"height": 1}},
        {"map": {"width": 7}},
        {"map": {"width": 8, "height": 8}, "generation": {"fallback_margin": 4}},
        {"max_depth": 0},
        {"seed": -4},
        {"generation": {"connectivity": 6}},
        {"generation": {"max_attempts": 0}},
        {"transitions": {"require_stair": "yes"}},
        {"log_level": "chatty"},
        {"map": [80, 50]},
    ],
)
def test_invalid_values_raise_config_error(data):
    with pytest.raises(ConfigError):
        config_from_dict(data)


def test_config_error_is_value_error():
    with pytest.raises(ValueError):
        config_from_dict(["not", "a", "mapping"])


def test_unknown_keys_are_ignored():
    config = config_from_dict({"fov_radius": 5, "colour_scheme": "dark"})
    assert config.fov_radius == 5


def test_smallest_accepted_map_fits_both_fallback_stairs():
    config = config_from_dict(
        {"map": {"width": 8, "height": 8}, "generation": {"fallback_margin": 3}}
    )
    room = fallback_level(
        config.map_width,
        config.map_height,
        BiomeType.CAVERNS,
        depth=5,
        margin=config.generation.fallback_margin,
    )
    assert room.stairs.up is not None and room.stairs.down is not None
    assert room.stairs.up != room.stairs.down
