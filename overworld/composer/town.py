"""
Town organism: services and houses on a ring around a central feature.

A town is not a separate map. It is a cluster of buildings on the
region's continuous outdoor grid, and the only transitions are the
service doors into nested world instances.

Layout:
1. Central feature at the box centre
2. Services on the ring (priority angles), then residential houses
3. Internal road from every door to the centre
4. Four entry anchors on the box edges for region roads

Every building yields a placement result: Placed, PlacedWithOverlap (the
outward fallback still collides) or Failed (the footprint is larger than
the caller's limits and the building is dropped). Candidates that spill
over the limits are slid back inside them before the overlap test.

Every service consumes the next world-slot id whether or not its building
was placed. Slots of dropped services and slots beyond the service count
are listed in `missing_doors`.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from overworld.config import get_logger
from overworld.composer.ddl import TownDefinition, TownService
from overworld.composer.grid import Bounds, Point, clamp, round_half_up
from overworld.composer.rng import SeededRNG

logger = get_logger(__name__)

TOWN_DIMENSIONS = {
    'hamlet': (30, 30),
    'village': (45, 45),
    'town': (60, 55),
    'city': (80, 70),
}

SERVICE_ARCHETYPES = {
    'weapon-shop': 'weapon-shop',
    'armor-shop': 'weapon-shop',
    'general-store': 'weapon-shop',
    'inn': 'tavern',
    'tavern': 'tavern',
    'library': 'library',
    'church': 'house-medium',
    'blacksmith': 'weapon-shop',
    'tailor': 'house-small',
    'cartographer': 'house-small',
    'fishmonger': 'house-small',
    'huntmaster': 'house-small',
    'guild-hall': 'house-medium',
    'elder-house': 'house-small',
}

# Outdoor footprints in tiles (width, height)
FOOTPRINTS = {
    'weapon-shop': (25, 22),
    'tavern': (25, 22),
    'library': (25, 22),
    'house-small': (20, 19),
    'house-medium': (25, 22),
}

MAX_FOOTPRINT = 25
BUILDING_GAP = 2
PLACEMENT_ATTEMPTS = 8
MIN_RING_RADIUS = 14


# ============================================================================
# PLACEMENT RESULTS
# ============================================================================

@dataclass(frozen=True)
class Placed:
    archetype: str
    position: Point
    attempts: int
    fallback: bool = False


@dataclass(frozen=True)
class PlacedWithOverlap:
    """Fallback position accepted although it collides with earlier buildings."""
    archetype: str
    position: Point
    overlaps: Tuple[int, ...]  # indices into TownLayout.buildings


@dataclass(frozen=True)
class Failed:
    archetype: str
    position: Point
    reason: str


PlacementResult = Union[Placed, PlacedWithOverlap, Failed]


# ============================================================================
# LAYOUT TYPES
# ============================================================================

@dataclass(frozen=True)
class CentralFeature:
    type: str
    position: Point


@dataclass(frozen=True)
class BuildingPlacement:
    archetype: str
    position: Point  # top-left corner
    footprint: Tuple[int, int]
    door_anchor: Point
    service: Optional[TownService] = None
    interior_id: Optional[str] = None

    @property
    def rect(self) -> Bounds:
        return Bounds(self.position[0], self.position[1], self.footprint[0], self.footprint[1])


@dataclass
class TownLayout:
    bounds: Bounds
    central_feature: Optional[CentralFeature] = None
    buildings: List[BuildingPlacement] = field(default_factory=list)
    internal_roads: List[Tuple[Point, Point]] = field(default_factory=list)
    entry_anchors: List[Point] = field(default_factory=list)
    npc_positions: Dict[str, Point] = field(default_factory=dict)
    door_positions: Dict[str, Point] = field(default_factory=dict)
    placements: List[PlacementResult] = field(default_factory=list)
    missing_doors: List[str] = field(default_factory=list)

    @property
    def center(self) -> Point:
        return self.bounds.center

    @property
    def degraded(self) -> List[PlacementResult]:
        return [p for p in self.placements if not isinstance(p, Placed)]


def estimate_town_size(size: str) -> Tuple[int, int]:
    """Outdoor footprint (width, height) for a town size, village if unknown."""
    return TOWN_DIMENSIONS.get(size, TOWN_DIMENSIONS['village'])


def ring_radius(bounds: Bounds, total_buildings: int) -> int:
    """
    Ring radius wide enough that the largest footprint cannot overlap its
    neighbour at the narrowest angular gap.
    """
    if total_buildings > 1:
        angular_gap = 2 * math.pi / total_buildings
        min_for_spacing = math.ceil((MAX_FOOTPRINT + 4) / (2 * math.sin(angular_gap / 2)))
    else:
        min_for_spacing = 0
    return max(
        min_for_spacing,
        MIN_RING_RADIUS,
        min(min(bounds.width, bounds.height) // 2 - 4, 10 + total_buildings * 3),
    )


class _RingPlacer:
    """Places footprints on the ring with jittered retries and an outward fallback."""

    def __init__(self, layout: TownLayout, radius: int, total: int, rng: SeededRNG,
                 limits: Optional[Bounds]):
        self.layout = layout
        self.radius = radius
        self.total = total
        self.rng = rng
        self.limits = limits
        self.cx, self.cy = layout.center

    def _corner(self, angle: float, r: int, footprint: Tuple[int, int]) -> Point:
        w, h = footprint
        return (
            self.cx + round_half_up(math.cos(angle) * r) - w // 2,
            self.cy + round_half_up(math.sin(angle) * r) - h // 2,
        )

    def _overlaps(self, corner: Point, footprint: Tuple[int, int]) -> Tuple[int, ...]:
        candidate = Bounds(corner[0], corner[1], footprint[0], footprint[1])
        return tuple(
            i for i, existing in enumerate(self.layout.buildings)
            if existing.rect.intersects(candidate, gap=BUILDING_GAP)
        )

    def _fits(self, footprint: Tuple[int, int]) -> bool:
        if self.limits is None:
            return True
        # Door row sits one below the footprint
        return footprint[0] <= self.limits.width and footprint[1] + 1 <= self.limits.height

    def _slide_inside(self, corner: Point, footprint: Tuple[int, int]) -> Point:
        if self.limits is None:
            return corner
        w, h = footprint[0], footprint[1] + 1
        return (
            clamp(corner[0], self.limits.x, self.limits.right - w),
            clamp(corner[1], self.limits.y, self.limits.bottom - h),
        )

    def place(self, base_angle: float, archetype: str) -> PlacementResult:
        footprint = FOOTPRINTS.get(archetype, FOOTPRINTS['house-small'])
        if not self._fits(footprint):
            corner = self._corner(base_angle, self.radius, footprint)
            logger.warning(f"Town building '{archetype}' dropped: {footprint} does not fit in {self.limits}")
            return Failed(archetype, corner, reason='footprint larger than map limits')

        for attempt in range(PLACEMENT_ATTEMPTS):
            jitter = 0 if attempt == 0 else self.rng.next() * 0.5 - 0.25
            r = self.radius + self.rng.next_int(-2, 2) + attempt
            corner = self._slide_inside(self._corner(base_angle + jitter, r, footprint), footprint)

            if not self._overlaps(corner, footprint):
                return Placed(archetype, corner, attempts=attempt + 1)

        corner = self._slide_inside(self._corner(base_angle, self.radius + self.total * 2, footprint), footprint)
        overlaps = self._overlaps(corner, footprint)
        if overlaps:
            logger.warning(
                f"Town building '{archetype}' placed at fallback {corner} overlapping buildings {list(overlaps)}"
            )
            return PlacedWithOverlap(archetype, corner, overlaps)

        logger.debug(f"Town building '{archetype}' placed at fallback {corner}")
        return Placed(archetype, corner, attempts=PLACEMENT_ATTEMPTS, fallback=True)


def layout_town(bounds: Bounds, town: TownDefinition, interior_ids: Sequence[str] = (),
                seed: int = 0, rng: Optional[SeededRNG] = None,
                limits: Optional[Bounds] = None) -> TownLayout:
    """
    Lay out a town inside `bounds`.

    Draw order: each service draws its angle jitter (next) and then the
    placement loop; each house draws its archetype (chance), its angle
    jitter (next) and then the placement loop. Attempt 0 draws no angle
    jitter.

    Args:
        bounds: Box the town is centred in (the ring may spill outside it)
        town: Services and house count
        interior_ids: World instance ids handed out to service doors in order
        seed: Seed for a private generator when `rng` is not given
        rng: Generator to draw from instead of a fresh one
        limits: Optional rectangle every footprint and its door row are kept inside

    Returns:
        TownLayout; `placements` has one result per building in order
    """
    if rng is None:
        rng = SeededRNG(seed)

    layout = TownLayout(bounds=bounds)
    cx, cy = layout.center

    if town.central_feature:
        layout.central_feature = CentralFeature(town.central_feature, (cx, cy))

    services = list(town.services)
    total = len(services) + town.houses
    placer = _RingPlacer(layout, ring_radius(bounds, total), total, rng, limits)
    interior_index = 0

    def emit(result, service=None):
        nonlocal interior_index
        layout.placements.append(result)

        interior_id = None
        if service is not None and interior_index < len(interior_ids):
            interior_id = interior_ids[interior_index]
            interior_index += 1

        if isinstance(result, Failed):
            if interior_id:
                layout.missing_doors.append(interior_id)
            return

        w, h = FOOTPRINTS.get(result.archetype, FOOTPRINTS['house-small'])
        door = (result.position[0] + w // 2, result.position[1] + h)

        layout.buildings.append(BuildingPlacement(
            result.archetype, result.position, (w, h), door, service, interior_id
        ))
        layout.internal_roads.append((door, (cx, cy)))

        if interior_id:
            layout.door_positions[interior_id] = door
        if service is not None and service.keeper_npc:
            layout.npc_positions[service.keeper_npc] = (door[0] + 1, door[1] + 1)

    # Services first: they get the priority angles
    for i, service in enumerate(services):
        archetype = SERVICE_ARCHETYPES.get(service.type, 'house-small')
        base_angle = (i / total) * math.pi * 2 + rng.next() * 0.2
        emit(placer.place(base_angle, archetype), service)

    for h in range(town.houses):
        slot = len(services) + h
        archetype = 'house-medium' if rng.chance(0.3) else 'house-small'
        base_angle = (slot / total) * math.pi * 2 + rng.next() * 0.2
        emit(placer.place(base_angle, archetype))

    # Slots beyond the service count never get a door
    layout.missing_doors.extend(interior_ids[interior_index:])

    layout.entry_anchors = [
        (cx, bounds.y),  # north
        (cx, bounds.y + bounds.height - 1),  # south
        (bounds.x + bounds.width - 1, cy),  # east
        (bounds.x, cy),  # west
    ]

    logger.debug(
        f"Town laid out: {len(layout.buildings)}/{total} buildings, "
        f"{len(layout.degraded)} degraded placements"
    )
    return layout
