# delve/world/biome.py
"""Biome palette: which tile categories a biome may use and how it is carved."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Tuple

from delve.world.tiles import TileCategory

_BASE_CATEGORIES = frozenset(
    {
        TileCategory.FLOOR,
        TileCategory.WALL,
        TileCategory.STAIR_UP,
        TileCategory.STAIR_DOWN,
    }
)
_WET = _BASE_CATEGORIES | {TileCategory.WATER}
_DOORS = frozenset({TileCategory.DOOR_OPEN, TileCategory.DOOR_CLOSED})


class BiomeType(Enum):
    CAVERNS = "caverns"
    UNDERGLADE = "underglade"
    FUNGAL_DEEP = "fungal_deep"
    CINDER_GAOL = "cinder_gaol"
    ABYSSAL_HOLD = "abyssal_hold"
    NETHER_GRANGE = "nether_grange"
    CHTHONIC_CRYPTS = "chthonic_crypts"
    HYPOGEAL_KNOT = "hypogeal_knot"
    STYGIAN_POOL = "stygian_pool"

    @classmethod
    def from_name(cls, name: str) -> "BiomeType":
        """Accepts the enum value, the member name or the display name."""
        key = name.strip().lower().replace(" ", "_").replace("-", "_")
        for biome in cls:
            if biome.value == key or biome.config.name.lower().replace(" ", "_") == key:
                return biome
        raise ValueError(f"Unknown biome: {name!r}")

    @property
    def config(self) -> "BiomeConfig":
        return BIOME_CONFIGS[self]

    def next_in_cycle(self) -> "BiomeType":
        """Debug biome rotation; biomes outside the rotation restart it."""
        return _CYCLE.get(self, BiomeType.CAVERNS)


@dataclass(frozen=True)
class BiomeConfig:
    name: str
    description: str
    allowed: FrozenSet[TileCategory]
    algorithm: str = "organic"
    divisions: Tuple[int, int] = (2, 4)
    water_pools: Tuple[int, int] = (0, 0)
    door_chance: float = 0.0

    def allows(self, category: TileCategory) -> bool:
        return category in self.allowed


BIOME_CONFIGS: Dict[BiomeType, BiomeConfig] = {
    BiomeType.CAVERNS: BiomeConfig(
        name="Caverns",
        description="Natural underground caves with rough stone walls and frequent water.",
        allowed=_WET,
        water_pools=(1, 3),
    ),
    BiomeType.UNDERGLADE: BiomeConfig(
        name="Underglade",
        description="Subterranean forest of mossy ground and glowing flora.",
        allowed=_WET,
        algorithm="cellular",
        water_pools=(0, 2),
    ),
    BiomeType.FUNGAL_DEEP: BiomeConfig(
        name="Fungal Deep",
        description="Spore-filled caves dominated by giant mushrooms.",
        allowed=_WET,
        algorithm="cellular",
        water_pools=(1, 2),
    ),
    BiomeType.CINDER_GAOL: BiomeConfig(
        name="Cinder Gaol",
        description="Ancient prison complex with charred walls and abandoned cells.",
        allowed=_BASE_CATEGORIES | _DOORS,
        algorithm="bsp",
        door_chance=0.6,
    ),
    BiomeType.ABYSSAL_HOLD: BiomeConfig(
        name="Abyssal Hold",
        description="Smooth dark stone under walls that swallow the light.",
        allowed=_WET,
        water_pools=(0, 1),
    ),
    BiomeType.NETHER_GRANGE: BiomeConfig(
        name="Nether Grange",
        description="Cracked blackened earth between walls of molten rock.",
        allowed=_BASE_CATEGORIES,
        divisions=(2, 3),
    ),
    BiomeType.CHTHONIC_CRYPTS: BiomeConfig(
        name="Chthonic Crypts",
        description="Burial grounds with walls lined by tombs and sarcophagi.",
        allowed=_BASE_CATEGORIES | _DOORS,
        divisions=(3, 4),
        door_chance=0.3,
    ),
    BiomeType.HYPOGEAL_KNOT: BiomeConfig(
        name="Hypogeal Knot",
        description="A confusing knot of tunnels and small chambers.",
        allowed=_WET,
        divisions=(3, 5),
        water_pools=(0, 1),
    ),
    BiomeType.STYGIAN_POOL: BiomeConfig(
        name="Stygian Pool",
        description="A dark underground lake ringed by slick stone.",
        allowed=_WET,
        divisions=(1, 2),
        water_pools=(3, 5),
    ),
}

_CYCLE: Dict[BiomeType, BiomeType] = {
    BiomeType.CAVERNS: BiomeType.CINDER_GAOL,
    BiomeType.CINDER_GAOL: BiomeType.UNDERGLADE,
    BiomeType.UNDERGLADE: BiomeType.CAVERNS,
}
