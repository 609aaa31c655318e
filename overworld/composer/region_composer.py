"""
Region composer: one region's continuous outdoor map.

Towns are not separate maps, they are building clusters embedded in the
region's outdoor grid; the only transitions are building doors into
nested world instances.

This module implements RegionComposer which exposes:
    composer = RegionComposer(region, registry=registry, seed=42)
    region_map = composer.compose()

or simply compose_region(region, ...). The grid passes through the
phases in a fixed order enforced by GridState:

    size -> anchors -> ORGANISMS -> NUDGE -> ROUTING -> WILD_FEATURES
         -> SAFE_ZONES -> FILL
"""

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from overworld.config import ComposerSettings, PerformanceTimer, get_logger, get_composer_logger
from overworld.composer.archetypes import ArchetypeRegistry, ReferenceLayout
from overworld.composer.biomes import BiomeDefinition, get_biome
from overworld.composer.ddl import (
    AnchorDefinition, RegionDefinition, RegionMetrics, TownDefinition,
    calculate_region_metrics, world_slot_ids
)
from overworld.composer.fill_engine import FillResult, run_fill_engine
from overworld.composer.grid import (
    Bounds, CollisionGrid, GridPhase, GridState, Point,
    BLOCKED, PASSABLE, ROAD, RESERVED,
    bfs_distance_field, create_collision_grid, manhattan, mark_area, mark_clearance
)
from overworld.composer.hamlet import HamletConfig, HamletLayout, layout_hamlet
from overworld.composer.path_router import (
    PathRequest, RoutedPath, passable_mask, route_all, unrouted_requests
)
from overworld.composer.rng import SeededRNG, hash_string
from overworld.composer.town import Failed, PlacementResult, TownLayout, estimate_town_size, layout_town

POSITION_ORDER = {'start': 0, 'middle': 1, 'end': 2, 'side': 3}
ORGANISM_SEED_RANGE = 100000


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass(frozen=True)
class RegionExit:
    """Edge of this region's map leading to another region."""
    direction: str
    target_region: str
    position: Optional[Point] = None
    condition: Optional[str] = None


@dataclass
class PlacedAnchor:
    anchor: AnchorDefinition
    bounds: Bounds
    entry_anchors: List[Point] = field(default_factory=list)
    town_layout: Optional[TownLayout] = None
    hamlet_layout: Optional[HamletLayout] = None
    footprints: List[Bounds] = field(default_factory=list)
    reference_layouts: Dict[str, ReferenceLayout] = field(default_factory=dict)

    @property
    def center(self) -> Point:
        return self.bounds.center

    def internal_paths(self) -> List[Tuple[Point, Point]]:
        if self.town_layout is not None:
            return list(self.town_layout.internal_roads)
        if self.hamlet_layout is not None:
            return list(self.hamlet_layout.internal_paths)
        return []


@dataclass(frozen=True)
class WildFeaturePlacement:
    type: str
    placement: str
    position: Point


@dataclass(frozen=True)
class SafeZone:
    position: Point  # top-left
    size: int
    waypoint: Point


@dataclass(frozen=True)
class ArchetypePlaceholder:
    """A building drawn without reference data because its archetype failed to load."""
    anchor_id: str
    archetype: str
    position: Point


@dataclass
class RegionMap:
    region_id: str
    width: int
    height: int
    biome: BiomeDefinition
    metrics: RegionMetrics
    grid: CollisionGrid
    placed_anchors: List[PlacedAnchor] = field(default_factory=list)
    routed_paths: List[RoutedPath] = field(default_factory=list)
    wild_features: List[WildFeaturePlacement] = field(default_factory=list)
    safe_zones: List[SafeZone] = field(default_factory=list)
    fill: Optional[FillResult] = None
    door_transitions: Dict[str, Point] = field(default_factory=dict)
    npc_positions: Dict[str, Point] = field(default_factory=dict)
    region_exits: List[RegionExit] = field(default_factory=list)
    placeholders: List[ArchetypePlaceholder] = field(default_factory=list)
    placements: Dict[str, List[PlacementResult]] = field(default_factory=dict)
    missing_doors: List[str] = field(default_factory=list)
    diagnostics: Dict[str, Any] = field(default_factory=dict)
    unrouted: List[PathRequest] = field(default_factory=list)

    def entry_points(self) -> List[Point]:
        """Every anchor entry anchor followed by every exit position."""
        points = [entry for placed in self.placed_anchors for entry in placed.entry_anchors]
        points.extend(exit_.position for exit_ in self.region_exits)
        return points

    def placed_anchor(self, anchor_id: str) -> Optional[PlacedAnchor]:
        for placed in self.placed_anchors:
            if placed.anchor.id == anchor_id:
                return placed
        return None


# ============================================================================
# SIZING AND EDGE HELPERS
# ============================================================================

def calculate_map_size(metrics: RegionMetrics, settings: Optional[ComposerSettings] = None) -> Tuple[int, int]:
    """Arrange the region's outdoor screens in a square-ish grid, capped per axis."""
    settings = settings or ComposerSettings()
    screens = max(1, metrics.outdoor_screens)
    cols = math.ceil(math.sqrt(screens))
    rows = math.ceil(screens / cols)
    return (
        min(settings.max_map_size, cols * settings.screen_tiles),
        min(settings.max_map_size, rows * settings.screen_tiles),
    )


def direction_to_edge_position(direction: str, width: int, height: int) -> Point:
    """Midpoint of the map edge facing `direction`."""
    if direction == 'north':
        return (width // 2, 0)
    if direction == 'east':
        return (width - 1, height // 2)
    if direction == 'west':
        return (0, height // 2)
    return (width // 2, height - 1)


def nudge_point(mask: np.ndarray, point: Point, max_radius: int) -> Optional[Point]:
    """
    First cell passable in `mask` on expanding square rings around `point`.

    Rings are scanned row by row, top to bottom, left to right. Returns
    `point` itself when already passable, None when nothing is found.
    """
    height, width = mask.shape
    x, y = point

    def ok(px, py):
        return 0 <= px < width and 0 <= py < height and mask[py, px]

    if ok(x, y):
        return point

    for r in range(1, max_radius + 1):
        for ny in range(y - r, y + r + 1):
            edge_row = abs(ny - y) == r
            columns = range(x - r, x + r + 1) if edge_row else (x - r, x + r)
            for nx in columns:
                if ok(nx, ny):
                    return (nx, ny)
    return None


# ============================================================================
# REGION COMPOSER
# ============================================================================

class RegionComposer:
    """
    Compose one region.

    Args:
        region: Region declaration
        registry: Archetype registry for per-building reference data (optional)
        seed: Composition seed, defaults to hash_string(region.id)
        map_size: (width, height) override, otherwise derived from the time budget
        exits: Exits to neighbouring regions; missing positions go on the map edge
        settings: Tunable knobs
        rng: Generator to draw from instead of SeededRNG(seed)
    """

    def __init__(self, region: RegionDefinition, registry: Optional[ArchetypeRegistry] = None,
                 seed: Optional[int] = None, map_size: Optional[Tuple[int, int]] = None,
                 exits: Optional[Sequence[RegionExit]] = None,
                 settings: Optional[ComposerSettings] = None, rng: Optional[SeededRNG] = None):
        self.region = region
        self.registry = registry
        self.settings = settings or ComposerSettings()
        self.seed = seed if seed is not None else hash_string(region.id)
        self.rng = rng or SeededRNG(self.seed)
        self.map_size = map_size
        self.exits = list(exits or [])
        self.biome = get_biome(region.biome)
        self.logger = get_logger(__name__)

        self.diagnostics: Dict[str, Any] = {
            'degraded_placements': 0,
            'failed_placements': 0,
            'missing_doors': 0,
            'placeholders': 0,
            'nudged_points': 0,
            'stuck_points': 0,
            'unrouted_paths': 0,
            'wild_feature_shortfall': {},
            'scatter_shortfall': {},
        }

    # -------------------------
    # Entry point
    # -------------------------
    def compose(self) -> RegionMap:
        with PerformanceTimer(self.logger, f"Compose region '{self.region.id}'"):
            region_map = self._compose()

        get_composer_logger().info(
            f"Region '{region_map.region_id}' ({self.biome.id}) {region_map.width}x{region_map.height}: "
            f"{len(region_map.placed_anchors)} anchors, {len(region_map.routed_paths)} roads, "
            f"{len(region_map.unrouted)} unrouted, {len(region_map.wild_features)} wild features, "
            f"{len(region_map.door_transitions)} doors"
        )
        return region_map

    def _compose(self) -> RegionMap:
        # Phase 1: map size from the time budget
        metrics = calculate_region_metrics(self.region)
        width, height = self.map_size or calculate_map_size(metrics, self.settings)
        self.logger.info(f"Region '{self.region.id}' seed {self.seed}: {width}x{height} tiles")

        grid = create_collision_grid(width, height)
        state = GridState(grid)
        region_map = RegionMap(
            region_id=self.region.id, width=width, height=height,
            biome=self.biome, metrics=metrics, grid=grid,
            region_exits=[self._resolve_exit(exit_, width, height) for exit_ in self.exits],
            diagnostics=self.diagnostics,
        )

        # Phase 2: anchor boxes
        region_map.placed_anchors = self.position_anchors(self.region.anchors, width, height)

        # Phase 3: organisms
        state.enter(GridPhase.ORGANISMS)
        for placed in region_map.placed_anchors:
            self._layout_anchor(placed, region_map)

        # Phase 4: move entry points off blocked cells
        state.enter(GridPhase.NUDGE)
        self._nudge(region_map)

        # Phase 5: roads
        state.enter(GridPhase.ROUTING)
        requests = self.build_path_requests(region_map.placed_anchors, region_map.region_exits)
        region_map.routed_paths = route_all(grid, requests)
        region_map.unrouted = unrouted_requests(requests, region_map.routed_paths)
        self.diagnostics['unrouted_paths'] = len(region_map.unrouted)

        # Phase 6: wild features
        state.enter(GridPhase.WILD_FEATURES)
        region_map.wild_features = self._place_wild_features(grid)

        # Phase 7: rest stops along main roads
        state.enter(GridPhase.SAFE_ZONES)
        region_map.safe_zones = self._place_safe_zones(grid, region_map.routed_paths)

        # Phase 8: fill
        state.enter(GridPhase.FILL)
        region_map.fill = run_fill_engine(
            grid, self.biome, self.seed + self.settings.fill_seed_offset,
            connection_tiles=[exit_.position for exit_ in region_map.region_exits],
            gap_width=self.biome.road_width,
        )
        self.diagnostics['scatter_shortfall'] = dict(region_map.fill.scatter_shortfall)

        return region_map

    # -------------------------
    # Anchors
    # -------------------------
    def _resolve_exit(self, exit_: RegionExit, width: int, height: int) -> RegionExit:
        if exit_.position is not None:
            return exit_
        return replace(exit_, position=direction_to_edge_position(exit_.direction, width, height))

    def position_anchors(self, anchors: Sequence[AnchorDefinition], width: int, height: int) -> List[PlacedAnchor]:
        """
        Resolve position hints into boxes.

        Anchors are stably sorted start < middle < end < side (explicit
        coordinates rank with middle) and packed into a grid of cells with
        jitter. Explicit anchors get a fixed box at their coordinates.
        """
        if not anchors:
            return []

        padding = self.settings.anchor_padding
        margin = self.settings.anchor_cell_margin
        box = self.settings.anchor_box_size

        def order(anchor):
            if isinstance(anchor.position, tuple):
                return 1
            return POSITION_ORDER.get(anchor.position, 1)

        ordered = sorted(anchors, key=order)
        cols = math.ceil(math.sqrt(len(ordered)))
        rows = math.ceil(len(ordered) / cols)
        cell_w = (width - padding * 2) // cols
        cell_h = (height - padding * 2) // rows

        placed = []
        for i, anchor in enumerate(ordered):
            if isinstance(anchor.position, tuple):
                x, y = anchor.position
                placed.append(PlacedAnchor(anchor, Bounds(x, y, box, box)))
                continue

            x = padding + (i % cols) * cell_w
            y = padding + (i // cols) * cell_h
            if anchor.town is not None:
                town_w, town_h = estimate_town_size(anchor.town.size)
                w, h = min(town_w, cell_w - margin), min(town_h, cell_h - margin)
            else:
                w, h = min(box, cell_w - margin), min(box, cell_h - margin)

            x += self.rng.next_int(0, max(0, cell_w - w - margin))
            y += self.rng.next_int(0, max(0, cell_h - h - margin))
            placed.append(PlacedAnchor(anchor, Bounds(x, y, w, h)))

        return placed

    def _layout_anchor(self, placed: PlacedAnchor, region_map: RegionMap):
        """Dispatch an anchor to its organism and stamp the footprints."""
        anchor = placed.anchor
        town = anchor.town

        if town is not None and town.size == 'hamlet':
            self._layout_hamlet(placed, town, region_map)
        elif town is not None:
            self._layout_town(placed, town, region_map)
        else:
            self._layout_landmark(placed)

        for rect in placed.footprints:
            mark_area(region_map.grid, rect.x, rect.y, rect.width, rect.height, BLOCKED)
            mark_clearance(region_map.grid, rect.x, rect.y, rect.width, rect.height,
                           self.settings.clearance_radius)

        cx, cy = placed.center
        scatter = self.settings.npc_scatter
        for npc in anchor.npcs:
            if npc.id not in region_map.npc_positions:
                nx = cx + self.rng.next_int(-scatter, scatter)
                ny = cy + self.rng.next_int(-scatter, scatter)
                region_map.npc_positions[npc.id] = (nx, ny)

        self.logger.debug(
            f"Anchor '{anchor.id}' ({anchor.type}) at {placed.bounds}: "
            f"{len(placed.footprints)} footprints, {len(placed.entry_anchors)} entries"
        )

    def _organism_seed(self) -> int:
        return math.floor(self.rng.next() * ORGANISM_SEED_RANGE)

    def _layout_town(self, placed: PlacedAnchor, town: TownDefinition, region_map: RegionMap):
        limits = Bounds(0, 0, region_map.width, region_map.height)
        layout = layout_town(placed.bounds, town, world_slot_ids(placed.anchor),
                             seed=self._organism_seed(), limits=limits)
        placed.town_layout = layout
        placed.entry_anchors = list(layout.entry_anchors)
        placed.footprints = [building.rect for building in layout.buildings]

        region_map.door_transitions.update(layout.door_positions)
        region_map.npc_positions.update(layout.npc_positions)
        region_map.placements[placed.anchor.id] = list(layout.placements)
        self._record_missing_doors(placed, layout.missing_doors, region_map)

        for result in layout.degraded:
            key = 'failed_placements' if isinstance(result, Failed) else 'degraded_placements'
            self.diagnostics[key] += 1

        for building in layout.buildings:
            self._load_reference(placed, building.archetype, building.position, region_map)

    def _layout_hamlet(self, placed: PlacedAnchor, town: TownDefinition, region_map: RegionMap):
        config = HamletConfig(houses=len(town.services) + town.houses, well=True, house_style='mixed')
        layout = layout_hamlet(placed.bounds, config, seed=self._organism_seed())
        placed.hamlet_layout = layout
        placed.entry_anchors = list(layout.external_anchors)
        placed.footprints = [house.rect for house in layout.houses]

        # The first houses serve the town's services
        slot_ids = world_slot_ids(placed.anchor)
        served = min(len(town.services), len(layout.houses))
        for service, house, slot_id in zip(town.services, layout.houses, slot_ids + [None] * len(town.services)):
            if slot_id is not None:
                region_map.door_transitions[slot_id] = house.door_anchor
            if service.keeper_npc:
                door_x, door_y = house.door_anchor
                region_map.npc_positions[service.keeper_npc] = (door_x + 1, door_y + 1)
        self._record_missing_doors(placed, slot_ids[served:], region_map)

        for house in layout.houses:
            self._load_reference(placed, house.archetype, house.position, region_map)

    def _record_missing_doors(self, placed: PlacedAnchor, slot_ids: Sequence[str], region_map: RegionMap):
        for slot_id in slot_ids:
            self.logger.warning(f"Anchor '{placed.anchor.id}': world slot '{slot_id}' has no door")
        region_map.missing_doors.extend(slot_ids)
        self.diagnostics['missing_doors'] += len(slot_ids)

    def _layout_landmark(self, placed: PlacedAnchor):
        size = self.settings.landmark_footprint
        offset = self.settings.landmark_entry_offset
        cx, cy = placed.center
        half = size // 2
        placed.footprints = [Bounds(cx - half, cy - half, size, size)]
        placed.entry_anchors = [
            (cx, cy - offset),  # north
            (cx, cy + offset),  # south
            (cx + offset, cy),  # east
            (cx - offset, cy),  # west
        ]

    def _load_reference(self, placed: PlacedAnchor, archetype: str, position: Point, region_map: RegionMap):
        if self.registry is None or archetype in placed.reference_layouts:
            return
        layout = self.registry.try_load(archetype)
        if layout is None:
            region_map.placeholders.append(ArchetypePlaceholder(placed.anchor.id, archetype, position))
            self.diagnostics['placeholders'] += 1
            return
        placed.reference_layouts[archetype] = layout

    # -------------------------
    # Nudge
    # -------------------------
    def _nudge(self, region_map: RegionMap):
        """Move entry anchors, exits and NPCs that ended up blocked to the nearest usable cell."""
        road_mask = passable_mask(region_map.grid, self.biome.road_width)
        walk_mask = region_map.grid.data != BLOCKED
        max_radius = self.settings.nudge_max_radius

        def nudge(point, mask, label):
            moved = nudge_point(mask, point, max_radius)
            if moved is None:
                self.diagnostics['stuck_points'] += 1
                self.logger.warning(f"{label} at {point} has no usable cell within {max_radius} tiles")
                return point
            if moved != point:
                self.diagnostics['nudged_points'] += 1
                self.logger.debug(f"{label} nudged {point} -> {moved}")
            return moved

        for placed in region_map.placed_anchors:
            placed.entry_anchors = [
                nudge(entry, road_mask, f"Entry of '{placed.anchor.id}'") for entry in placed.entry_anchors
            ]

        region_map.region_exits = [
            replace(exit_, position=nudge(exit_.position, road_mask, f"Exit to '{exit_.target_region}'"))
            for exit_ in region_map.region_exits
        ]

        for npc_id, position in list(region_map.npc_positions.items()):
            region_map.npc_positions[npc_id] = nudge(position, walk_mask, f"NPC '{npc_id}'")

    # -------------------------
    # Roads
    # -------------------------
    def build_path_requests(self, anchors: Sequence[PlacedAnchor], exits: Sequence[RegionExit]) -> List[PathRequest]:
        """
        Main road chain through the anchors in placement order, exits to
        their nearest entry, branch shortcuts between non-adjacent anchors,
        then every organism's internal paths.
        """
        width = self.biome.road_width
        terrain = self.biome.road_terrain
        requests: List[PathRequest] = []

        for current, following in zip(anchors, anchors[1:]):
            if current.entry_anchors and following.entry_anchors:
                requests.append(PathRequest(current.entry_anchors[0], following.entry_anchors[0],
                                            width, terrain, 'main'))

        for exit_ in exits:
            nearest, best = None, None
            for placed in anchors:
                for entry in placed.entry_anchors:
                    dist = manhattan(exit_.position, entry)
                    if best is None or dist < best:
                        nearest, best = entry, dist
            if nearest is not None:
                requests.append(PathRequest(exit_.position, nearest, width, terrain, 'main'))

        branch_width = max(1, width - 1)
        for i in range(len(anchors)):
            for j in range(i + 2, len(anchors)):
                if not anchors[i].entry_anchors or not anchors[j].entry_anchors:
                    continue
                a, b = anchors[i].entry_anchors[0], anchors[j].entry_anchors[0]
                if manhattan(a, b) < self.settings.branch_max_distance:
                    requests.append(PathRequest(a, b, branch_width, terrain, 'branch'))

        for placed in anchors:
            for door, center in placed.internal_paths():
                requests.append(PathRequest(door, center, 1, terrain, 'internal'))

        return requests

    # -------------------------
    # Wild features
    # -------------------------
    def _edge_depth(self) -> int:
        edge = self.biome.default_edge
        return 0 if edge.type == 'none' else edge.depth

    def _wild_rule_ok(self, placement: str, x: int, y: int, distance: int, width: int, height: int) -> bool:
        s = self.settings
        if placement == 'near-path':
            return s.near_path_min <= distance <= s.near_path_max
        if placement == 'off-path':
            return distance >= s.off_path_min
        # hidden: tucked into a corner, or along an edge well away from roads
        from_x = min(x, width - 1 - x)
        from_y = min(y, height - 1 - y)
        in_corner = from_x < s.hidden_corner_margin and from_y < s.hidden_corner_margin
        along_edge = min(from_x, from_y) < s.hidden_edge_margin and distance >= s.hidden_min_distance
        return in_corner or along_edge

    def _place_wild_features(self, grid: CollisionGrid) -> List[WildFeaturePlacement]:
        features = self.region.connective_tissue.wild_features
        if not features:
            return []

        s = self.settings
        ys, xs = np.nonzero(grid.data == ROAD)
        distances = bfs_distance_field(grid, zip(xs.tolist(), ys.tolist()))
        # Without roads every cell counts as far from them
        no_road_distance = grid.width + grid.height if xs.size == 0 else -1
        depth = self._edge_depth()
        placed: List[WildFeaturePlacement] = []

        for feature in features:
            count = 0
            attempts = 0
            budget = s.wild_feature_attempt_factor * feature.count

            while count < feature.count and attempts < budget:
                attempts += 1
                x = self.rng.next_int(0, grid.width - 1)
                y = self.rng.next_int(0, grid.height - 1)

                if not (depth <= x < grid.width - depth and depth <= y < grid.height - depth):
                    continue
                if grid.data[y, x] != PASSABLE:
                    continue
                distance = int(distances[y, x])
                if distance < 0:
                    distance = no_road_distance
                if distance < 0 or not self._wild_rule_ok(feature.placement, x, y, distance,
                                                          grid.width, grid.height):
                    continue
                if any(manhattan((x, y), other.position) < s.wild_feature_spacing for other in placed):
                    continue

                placed.append(WildFeaturePlacement(feature.type, feature.placement, (x, y)))
                mark_area(grid, x, y, 1, 1, RESERVED)
                count += 1

            if count < feature.count:
                self.diagnostics['wild_feature_shortfall'][feature.type] = (
                    self.diagnostics['wild_feature_shortfall'].get(feature.type, 0) + feature.count - count
                )
                self.logger.warning(
                    f"Wild feature '{feature.type}' ({feature.placement}) placed {count}/{feature.count} "
                    f"after {attempts} attempts"
                )

        return placed

    # -------------------------
    # Safe zones
    # -------------------------
    def _place_safe_zones(self, grid: CollisionGrid, routed: Sequence[RoutedPath]) -> List[SafeZone]:
        interval = self.region.connective_tissue.safe_zone_interval
        if not interval:
            return []

        step = int(interval * 60 * self.settings.walk_speed_tps)
        if step <= 0:
            return []

        size = self.settings.safe_zone_size
        zones: List[SafeZone] = []

        for path in routed:
            if path.request.priority != 'main':
                continue
            half = path.request.width // 2
            for index in range(step, len(path.waypoints), step):
                x, y = path.waypoints[index]
                candidates = [
                    (x - size // 2, y - half - size),  # above
                    (x - size // 2, y + half + 1),  # below
                    (x - half - size, y - size // 2),  # left
                    (x + half + 1, y - size // 2),  # right
                ]
                self.rng.shuffle(candidates)
                for zx, zy in candidates:
                    if not (0 <= zx and 0 <= zy and zx + size <= grid.width and zy + size <= grid.height):
                        continue
                    if np.all(grid.data[zy:zy + size, zx:zx + size] == PASSABLE):
                        mark_area(grid, zx, zy, size, size, RESERVED)
                        zones.append(SafeZone((zx, zy), size, (x, y)))
                        break

        if zones:
            self.logger.debug(f"Placed {len(zones)} safe zones every {step} road tiles")
        return zones


def compose_region(region: RegionDefinition, registry: Optional[ArchetypeRegistry] = None,
                   seed: Optional[int] = None, map_size: Optional[Tuple[int, int]] = None,
                   exits: Optional[Sequence[RegionExit]] = None,
                   settings: Optional[ComposerSettings] = None,
                   rng: Optional[SeededRNG] = None) -> RegionMap:
    """Compose one region's outdoor map (see RegionComposer)."""
    return RegionComposer(region, registry, seed, map_size, exits, settings, rng).compose()
