"""
Hamlet organism: a handful of houses in a rough ring around a well.

Internal dirt paths run from every door to the centre, and one external
anchor south of the ring is where region roads attach. There is no
overlap retry at this level: the house count is capped at 8 so the
angular spacing stays safe.
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from overworld.composer.grid import Bounds, Point, round_half_up
from overworld.composer.rng import SeededRNG

MAX_HOUSES = 8

HOUSE_SIZES = {
    'house-small': (6, 6),
    'house-medium': (8, 7),
}


@dataclass(frozen=True)
class HamletConfig:
    houses: int
    well: bool = False
    fences: bool = False
    house_style: str = 'small'  # small | medium | mixed


@dataclass(frozen=True)
class HousePlacement:
    archetype: str
    position: Point  # top-left corner
    footprint: Tuple[int, int]  # (width, height)
    door_anchor: Point

    @property
    def rect(self) -> Bounds:
        return Bounds(self.position[0], self.position[1], self.footprint[0], self.footprint[1])


@dataclass
class HamletLayout:
    bounds: Bounds
    houses: List[HousePlacement] = field(default_factory=list)
    well_position: Optional[Point] = None
    internal_paths: List[Tuple[Point, Point]] = field(default_factory=list)
    external_anchors: List[Point] = field(default_factory=list)

    @property
    def center(self) -> Point:
        return self.bounds.center


def _pick_archetype(style: str, rng: SeededRNG) -> str:
    if style == 'medium':
        return 'house-medium'
    if style == 'mixed':
        return 'house-medium' if rng.chance(0.4) else 'house-small'
    return 'house-small'


def layout_hamlet(bounds: Bounds, config: HamletConfig, seed: int = 0,
                  rng: Optional[SeededRNG] = None) -> HamletLayout:
    """
    Lay out a hamlet inside `bounds`.

    Per house the generator is drawn in this order: angle jitter (next),
    radius offset (next_int), then archetype (chance) for the mixed style
    only.

    Args:
        bounds: Box the hamlet occupies
        config: House count and style
        seed: Seed for a private generator when `rng` is not given
        rng: Generator to draw from instead of a fresh one

    Returns:
        HamletLayout with houses, well, internal paths and the external anchor
    """
    if rng is None:
        rng = SeededRNG(seed)

    cx, cy = bounds.center
    n = min(config.houses, MAX_HOUSES)

    max_radius = min(bounds.width, bounds.height) // 2 - 4
    radius = max(8, min(max_radius, 8 + n * 2))

    layout = HamletLayout(bounds=bounds)

    for i in range(n):
        angle = (i / n) * math.pi * 2 + rng.next() * 0.3
        r = radius + rng.next_int(-2, 2)
        archetype = _pick_archetype(config.house_style, rng)

        w, h = HOUSE_SIZES[archetype]
        hx = cx + round_half_up(math.cos(angle) * r) - w // 2
        hy = cy + round_half_up(math.sin(angle) * r) - h // 2
        door = (hx + w // 2, hy + h)

        layout.houses.append(HousePlacement(archetype, (hx, hy), (w, h), door))
        layout.internal_paths.append((door, (cx, cy)))

    if config.well:
        layout.well_position = (cx, cy)

    # Roads from outside attach south of the ring
    layout.external_anchors.append((cx, cy + radius + 4))

    return layout
