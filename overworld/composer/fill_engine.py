"""
Biome-aware fill for the space composition left empty.

This module implements FillEngine which exposes:
    engine = FillEngine(grid, biome, seed, connection_tiles=exits, gap_width=3)
    result = engine.run()

Stages, all drawing from one SeededRNG in this order:
    1. base ground on every open (0) or reserved (3) cell
    2. ground variant clusters painted over the base ground
    3. scatter objects on open ground, under exclusion radii
    4. path dressing alongside roads, at junctions and at road ends
    5. edge treatment around the map border (no draws)

The collision grid is only read.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from overworld.config import get_logger
from overworld.composer.biomes import BiomeDefinition, GroundVariant, ScatterRule
from overworld.composer.grid import CollisionGrid, Point, PASSABLE, ROAD, RESERVED, round_half_up
from overworld.composer.rng import SeededRNG

VARIANT_SEED_ATTEMPTS = 50
SCATTER_ATTEMPT_FACTOR = 10
EDGE_BIAS_CHANCE = 0.6
EDGE_BAND_NEAR = 0.15
EDGE_BAND_FAR = 0.85

ALONG_HORIZONTAL = [(0, -1), (0, -2), (0, 1), (0, 2)]
ALONG_VERTICAL = [(-1, 0), (-2, 0), (1, 0), (2, 0)]
ALONG_AMBIGUOUS = [(0, -1), (0, 1), (-1, 0), (1, 0)]
JUNCTION_OFFSETS = [(-1, -1), (1, -1), (-1, 1), (1, 1)]
END_OFFSETS = [(-1, 0), (1, 0), (0, -1), (0, 1)]


@dataclass(frozen=True)
class ScatterPlacement:
    object_ref: str
    x: int
    y: int


@dataclass(frozen=True)
class EdgePlacement:
    type: str
    x: int
    y: int


@dataclass
class FillResult:
    ground_terrain: np.ndarray  # object [y, x]: terrain label or None
    scatter_objects: List[ScatterPlacement] = field(default_factory=list)
    path_dress_objects: List[ScatterPlacement] = field(default_factory=list)
    edge_tiles: List[EdgePlacement] = field(default_factory=list)
    scatter_shortfall: Dict[str, int] = field(default_factory=dict)


class FillEngine:
    """
    Populate a composed grid with ground, scatter, path dressing and edges.

    Args:
        grid: Collision grid after every earlier composition phase
        biome: Biome recipe
        seed: Seed for the fill generator
        connection_tiles: Region exit tiles; the edge keeps a gap around them
        gap_width: Gap width around each connection tile (road width)
    """

    def __init__(self, grid: CollisionGrid, biome: BiomeDefinition, seed: int,
                 connection_tiles: Iterable[Point] = (), gap_width: int = 1):
        self.grid = grid
        self.biome = biome
        self.seed = seed
        self.connection_tiles = list(connection_tiles)
        self.gap_width = gap_width
        self.rng = SeededRNG(seed)
        self.logger = get_logger(__name__)

    # -------------------------
    # Entry point
    # -------------------------
    def run(self) -> FillResult:
        data = self.grid.data

        # Phase 1: base ground where the cell is open or reserved
        ground = np.full((self.grid.height, self.grid.width), None, dtype=object)
        ground[(data == PASSABLE) | (data == RESERVED)] = self.biome.base_ground
        result = FillResult(ground_terrain=ground)

        # Phase 2: variant patches
        self._paint_ground_variants(ground)

        # Phase 3: scatter
        result.scatter_objects, result.scatter_shortfall = self._scatter()

        # Phase 4: path dressing
        result.path_dress_objects = self._dress_paths()

        # Phase 5: border
        result.edge_tiles = self._edges()

        self.logger.debug(
            f"Fill '{self.biome.id}' seed {self.seed}: {len(result.scatter_objects)} scatter, "
            f"{len(result.path_dress_objects)} dressing, {len(result.edge_tiles)} edge tiles"
        )
        return result

    # -------------------------
    # Ground variants
    # -------------------------
    def _paint_ground_variants(self, ground: np.ndarray):
        """
        Paint organic patches: each cluster seeds on a random base-ground
        tile and grows by picking random frontier tiles.
        """
        base = self.biome.base_ground
        width, height = self.grid.width, self.grid.height
        eligible = int(np.count_nonzero(ground == base))

        for variant in self.biome.ground_variants:
            avg_cluster = (variant.cluster_size[0] + variant.cluster_size[1]) / 2
            cluster_count = round_half_up(variant.frequency * eligible / avg_cluster)

            for _ in range(cluster_count):
                seed_tile = self._find_base_tile(ground, base)
                if seed_tile is None:
                    continue
                target = self.rng.next_int(variant.cluster_size[0], variant.cluster_size[1])
                self._grow_cluster(ground, base, variant, seed_tile, target, width, height)

    def _find_base_tile(self, ground: np.ndarray, base: str) -> Optional[Point]:
        for _ in range(VARIANT_SEED_ATTEMPTS):
            tx = self.rng.next_int(0, self.grid.width - 1)
            ty = self.rng.next_int(0, self.grid.height - 1)
            if ground[ty, tx] == base:
                return (tx, ty)
        return None

    def _grow_cluster(self, ground, base, variant: GroundVariant, start: Point, target: int,
                      width: int, height: int):
        painted = set()
        frontier = [start]

        while len(painted) < target and frontier:
            fi = self.rng.next_int(0, len(frontier) - 1)
            x, y = frontier[fi]
            frontier[fi] = frontier[-1]
            frontier.pop()

            if (x, y) in painted or ground[y, x] != base:
                continue

            ground[y, x] = variant.terrain
            painted.add((x, y))

            for nx, ny in ((x - 1, y), (x + 1, y), (x, y - 1), (x, y + 1)):
                if not (0 <= nx < width and 0 <= ny < height):
                    continue
                if (nx, ny) in painted or ground[ny, nx] != base:
                    continue
                frontier.append((nx, ny))

    # -------------------------
    # Scatter
    # -------------------------
    def _scatter(self) -> Tuple[List[ScatterPlacement], Dict[str, int]]:
        width, height = self.grid.width, self.grid.height
        data = self.grid.data
        area = width * height

        placements: List[ScatterPlacement] = []
        shortfall: Dict[str, int] = {}
        # exclusion radius of the object on each cell, -1 where empty
        radii = np.full((height, width), -1, dtype=np.int32)
        max_radius = 0

        for rule in self.biome.scatter:
            expected = round_half_up(rule.frequency * area / 100)
            max_attempts = expected * SCATTER_ATTEMPT_FACTOR
            placed = 0
            attempts = 0

            while placed < expected and attempts < max_attempts:
                attempts += 1
                x, y = self._scatter_candidate(rule, width, height)

                if data[y, x] != PASSABLE:
                    continue
                if self._too_close(radii, x, y, max(rule.exclusion_radius, max_radius), rule.exclusion_radius):
                    continue

                placements.append(ScatterPlacement(rule.object_ref, x, y))
                radii[y, x] = rule.exclusion_radius
                max_radius = max(max_radius, rule.exclusion_radius)
                placed += 1

            if placed < expected:
                shortfall[rule.object_ref] = shortfall.get(rule.object_ref, 0) + expected - placed
                self.logger.warning(
                    f"Scatter '{rule.object_ref}' under-filled: {placed}/{expected} after {attempts} attempts"
                )

        return placements, shortfall

    def _scatter_candidate(self, rule: ScatterRule, width: int, height: int) -> Point:
        x = self.rng.next_int(1, width - 2)
        y = self.rng.next_int(1, height - 2)

        if rule.prefer_edges and self.rng.chance(EDGE_BIAS_CHANCE):
            side = self.rng.next_int(0, 3)
            if side == 0:
                y = self.rng.next_int(0, int(height * EDGE_BAND_NEAR))
            elif side == 1:
                y = self.rng.next_int(int(height * EDGE_BAND_FAR), height - 1)
            elif side == 2:
                x = self.rng.next_int(0, int(width * EDGE_BAND_NEAR))
            else:
                x = self.rng.next_int(int(width * EDGE_BAND_FAR), width - 1)

        return x, y

    @staticmethod
    def _too_close(radii: np.ndarray, x: int, y: int, reach: int, own_radius: int) -> bool:
        """True when an earlier object lies closer (Manhattan) than max(own, its) radius."""
        if reach <= 0:
            return False
        height, width = radii.shape
        x0, y0 = max(0, x - reach + 1), max(0, y - reach + 1)
        x1, y1 = min(width, x + reach), min(height, y + reach)
        window = radii[y0:y1, x0:x1]
        ys, xs = np.nonzero(window >= 0)
        if ys.size == 0:
            return False
        distances = np.abs(xs + x0 - x) + np.abs(ys + y0 - y)
        return bool(np.any(distances < np.maximum(own_radius, window[ys, xs])))

    # -------------------------
    # Path dressing
    # -------------------------
    def _dress_paths(self) -> List[ScatterPlacement]:
        rules = self.biome.path_dress
        if not rules:
            return []

        width, height = self.grid.width, self.grid.height
        road = self.grid.data == ROAD

        # Orthogonal road neighbour count per cell
        padded = np.pad(road, 1).astype(np.int8)
        neighbours = (
            padded[:-2, 1:-1] + padded[2:, 1:-1] + padded[1:-1, :-2] + padded[1:-1, 2:]
        )
        road_tiles = [(int(x), int(y)) for y, x in zip(*np.nonzero(road))]

        placements: List[ScatterPlacement] = []
        occupied = set()

        for rule in rules:
            if rule.placement == 'alongside':
                spacing = max(rule.spacing, 1)
                for counter, (x, y) in enumerate(road_tiles, start=1):
                    if counter % spacing != 0:
                        continue
                    horizontal = (x > 0 and road[y, x - 1]) or (x < width - 1 and road[y, x + 1])
                    vertical = (y > 0 and road[y - 1, x]) or (y < height - 1 and road[y + 1, x])
                    if horizontal and not vertical:
                        offsets = list(ALONG_HORIZONTAL)
                    elif vertical and not horizontal:
                        offsets = list(ALONG_VERTICAL)
                    else:
                        offsets = list(ALONG_AMBIGUOUS)
                    self._place_dressing(rule.object_ref, x, y, offsets, occupied, placements)

            elif rule.placement == 'at-junctions':
                for x, y in road_tiles:
                    if neighbours[y, x] >= 3:
                        self._place_dressing(rule.object_ref, x, y, list(JUNCTION_OFFSETS), occupied, placements)

            elif rule.placement == 'at-ends':
                for x, y in road_tiles:
                    if neighbours[y, x] == 1:
                        self._place_dressing(rule.object_ref, x, y, list(END_OFFSETS), occupied, placements)

        return placements

    def _place_dressing(self, object_ref: str, x: int, y: int, offsets: List[Tuple[int, int]],
                        occupied: set, placements: List[ScatterPlacement]):
        self.rng.shuffle(offsets)
        for dx, dy in offsets:
            px, py = x + dx, y + dy
            if not self.grid.in_bounds(px, py):
                continue
            if self.grid.data[py, px] not in (PASSABLE, RESERVED) or (px, py) in occupied:
                continue
            placements.append(ScatterPlacement(object_ref, px, py))
            occupied.add((px, py))
            return

    # -------------------------
    # Edges
    # -------------------------
    def _in_gap(self, x: int, y: int) -> bool:
        half = self.gap_width // 2
        return any(abs(x - cx) <= half and abs(y - cy) <= half for cx, cy in self.connection_tiles)

    def _edges(self) -> List[EdgePlacement]:
        edge = self.biome.default_edge
        if edge.type == 'none':
            return []

        width, height = self.grid.width, self.grid.height
        placements: List[EdgePlacement] = []

        def emit(x, y):
            if edge.gap_for_connections and self._in_gap(x, y):
                return
            placements.append(EdgePlacement(edge.type, x, y))

        for depth in range(edge.depth):
            for x in range(width):
                emit(x, depth)
            for x in range(width):
                emit(x, height - 1 - depth)
            for y in range(edge.depth, height - edge.depth):
                emit(depth, y)
            for y in range(edge.depth, height - edge.depth):
                emit(width - 1 - depth, y)

        return placements


def run_fill_engine(grid: CollisionGrid, biome: BiomeDefinition, seed: int,
                    connection_tiles: Sequence[Point] = (), gap_width: int = 1) -> FillResult:
    """Run every fill stage over `grid` (see FillEngine)."""
    return FillEngine(grid, biome, seed, connection_tiles, gap_width).run()
