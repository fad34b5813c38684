"""
Block values and cell classification.

A populated cell becomes a Block either through the color replacement
table (exact RGB match) or through its flags. Block specs form a closed
set of variants:
- SpriteSpec: a sprite standing in air or water
- SolidSpec: a solid block of some kind with an override color
- RandomSpec: weighted choice among nested specs

Randomness always comes from an explicit numpy Generator so runs are
reproducible given a seed.
"""

import numpy as np
from enum import Enum
from typing import Tuple, Optional, Dict, List, Union, Any
from dataclasses import dataclass, field
import logging

from .errors import PlaceSpecError
from .grid import Cell

logger = logging.getLogger(__name__)

Rgb = Tuple[int, int, int]


class BlockKind(Enum):
    AIR = "Air"
    WATER = "Water"
    LAVA = "Lava"
    ROCK = "Rock"
    WEAK_ROCK = "WeakRock"
    GLOWING_ROCK = "GlowingRock"
    GRASS = "Grass"
    EARTH = "Earth"
    SAND = "Sand"
    SNOW = "Snow"
    ICE = "Ice"
    WOOD = "Wood"
    LEAVES = "Leaves"
    MISC = "Misc"

    @property
    def is_fluid(self) -> bool:
        return self in (BlockKind.AIR, BlockKind.WATER)


class SpriteKind(Enum):
    EMPTY = "Empty"
    STREET_LAMP = "StreetLamp"
    LIANA = "Liana"
    COOKING_POT = "CookingPot"
    JUNGLE_RED_GRASS = "JungleRedGrass"
    JUNGLE_FERN = "JungleFern"
    DUNGEON_CHEST4 = "DungeonChest4"
    FIRE_BOWL_GROUND = "FireBowlGround"


class Medium(Enum):
    """Fluid a sprite is placed in."""
    AIR = "air"
    WATER = "water"

    @property
    def kind(self) -> BlockKind:
        return BlockKind.WATER if self is Medium.WATER else BlockKind.AIR


@dataclass(frozen=True)
class Block:
    """
    Output value for the terrain store.

    Fluid blocks (air, water) carry a sprite; solid blocks carry a color.
    """
    kind: BlockKind
    color: Rgb = (0, 0, 0)
    sprite: Optional[SpriteKind] = None

    @classmethod
    def new(cls, kind: BlockKind, color: Rgb = (0, 0, 0)) -> "Block":
        if kind.is_fluid:
            return cls(kind=kind, sprite=SpriteKind.EMPTY)
        return cls(kind=kind, color=tuple(int(c) for c in color))

    @classmethod
    def air(cls, sprite: SpriteKind) -> "Block":
        return cls(kind=BlockKind.AIR, sprite=sprite)

    @classmethod
    def water(cls, sprite: SpriteKind) -> "Block":
        return cls(kind=BlockKind.WATER, sprite=sprite)

    @classmethod
    def empty(cls) -> "Block":
        """Explicit 'no block' value: air without a sprite."""
        return cls.air(SpriteKind.EMPTY)

    @property
    def is_empty(self) -> bool:
        return self == Block.empty()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value}
        if self.sprite is not None:
            data["sprite"] = self.sprite.value
        else:
            data["color"] = list(self.color)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Block":
        kind = BlockKind(data["kind"])
        if "sprite" in data:
            return cls(kind=kind, sprite=SpriteKind(data["sprite"]))
        return cls(kind=kind, color=tuple(data.get("color", (0, 0, 0))))


# ============== Block specs ==============

@dataclass(frozen=True)
class SpriteSpec:
    sprite: SpriteKind
    medium: Medium = Medium.AIR


@dataclass(frozen=True)
class SolidSpec:
    kind: BlockKind
    color: Rgb = (0, 0, 0)


@dataclass(frozen=True)
class RandomSpec:
    """Weighted choice; choices are (weight, spec) in declaration order."""
    choices: Tuple[Tuple[float, "BlockSpec"], ...]

    @property
    def total_weight(self) -> float:
        return float(sum(w for w, _ in self.choices))


BlockSpec = Union[SpriteSpec, SolidSpec, RandomSpec]


def choose_weighted(choices, draw: float):
    """
    Pick from (weight, item) pairs given a uniform draw in [0, 1).

    The draw is scaled to the total weight; the first item whose
    cumulative weight exceeds it wins.
    """
    if not choices:
        raise ValueError("No choices to pick from")
    total = float(sum(w for w, _ in choices))
    if total <= 0:
        raise ValueError("Total weight must be positive")
    target = draw * total
    cumulative = 0.0
    for weight, item in choices:
        cumulative += weight
        if cumulative > target:
            return item
    # draw == 1.0 or rounding at the top end
    return choices[-1][1]


def produce_block(spec: BlockSpec, rng: np.random.Generator) -> Block:
    """Evaluate a block spec, drawing from rng for random choices."""
    if isinstance(spec, SpriteSpec):
        return Block(kind=spec.medium.kind, sprite=spec.sprite)
    if isinstance(spec, SolidSpec):
        return Block.new(spec.kind, spec.color)
    if isinstance(spec, RandomSpec):
        return produce_block(choose_weighted(spec.choices, float(rng.random())), rng)
    raise TypeError(f"Unknown block spec: {spec!r}")


@dataclass
class ReplacementTable:
    """Exact color to block spec mapping."""
    entries: Dict[Rgb, BlockSpec] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, color: Rgb) -> Optional[BlockSpec]:
        return self.entries.get(tuple(int(c) for c in color))

    @classmethod
    def from_list(cls, items: Optional[List[Dict[str, Any]]]) -> "ReplacementTable":
        """
        Build a table from placement spec entries.

        Each entry is {"color": [r, g, b], "block": <spec>}.
        """
        table = cls()
        for i, item in enumerate(items or []):
            if not isinstance(item, dict) or "color" not in item or "block" not in item:
                raise PlaceSpecError(f"Replacement {i} needs 'color' and 'block': {item!r}")
            color = parse_color(item["color"])
            if color in table.entries:
                logger.warning(f"Duplicate replacement for color {color}, keeping the last one")
            table.entries[color] = parse_block_spec(item["block"])
        return table


def parse_color(value) -> Rgb:
    try:
        r, g, b = (int(c) for c in value)
    except (TypeError, ValueError):
        raise PlaceSpecError(f"Color must be [r, g, b], got {value!r}")
    if not all(0 <= c <= 255 for c in (r, g, b)):
        raise PlaceSpecError(f"Color components must be 0-255, got {value!r}")
    return (r, g, b)


def parse_block_spec(data: Any) -> BlockSpec:
    """
    Parse a block spec from its mapping form.

    {"kind": K, "color": [r, g, b]}      -> SolidSpec
    {"sprite": S, "medium": "air"}       -> SpriteSpec
    {"random": [{"weight": w, "block": spec}, ...]} -> RandomSpec
    """
    if not isinstance(data, dict):
        raise PlaceSpecError(f"Block spec must be a mapping, got {data!r}")
    try:
        if "random" in data:
            choices = []
            for choice in data["random"]:
                weight = float(choice.get("weight", 1.0))
                if weight < 0:
                    raise PlaceSpecError(f"Negative weight in {choice!r}")
                choices.append((weight, parse_block_spec(choice["block"])))
            spec = RandomSpec(choices=tuple(choices))
            if not choices or spec.total_weight <= 0:
                raise PlaceSpecError(f"Random spec needs a positive total weight: {data!r}")
            return spec
        if "sprite" in data:
            return SpriteSpec(
                sprite=SpriteKind(data["sprite"]),
                medium=Medium(data.get("medium", "air"))
            )
        if "kind" in data:
            return SolidSpec(
                kind=BlockKind(data["kind"]),
                color=parse_color(data.get("color", (0, 0, 0)))
            )
    except PlaceSpecError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise PlaceSpecError(f"Invalid block spec {data!r}: {e}")
    raise PlaceSpecError(f"Block spec needs one of 'kind', 'sprite' or 'random': {data!r}")


def classify_cell(
    cell: Cell,
    table: Optional[ReplacementTable],
    rng: np.random.Generator
) -> Block:
    """
    Convert a grid cell into a block.

    Args:
        cell: Grid cell (empty or occupied)
        table: Color replacement table, may be None
        rng: Random source for weighted specs

    Returns:
        Block for the terrain store
    """
    if cell.is_empty:
        return Block.empty()

    if table is not None:
        spec = table.get(cell.color)
        if spec is not None:
            return produce_block(spec, rng)

    if cell.hollow:
        return Block.air(SpriteKind.EMPTY)
    elif cell.glowy:
        return Block.new(BlockKind.GLOWING_ROCK, cell.color)
    elif cell.shiny:
        return Block.water(SpriteKind.EMPTY)
    else:
        return Block.new(BlockKind.MISC, cell.color)
