"""
Collision grid and spatial primitives (NumPy-backed).

The collision grid is the one piece of shared spatial state: every
composition phase reads the occupancy left by earlier phases and may only
raise cells to a more occupied value. Cell values:

    PASSABLE (0)  open ground
    BLOCKED  (1)  building footprint or feature, never walkable
    ROAD     (2)  routed road, cheaper for later routes
    RESERVED (3)  clearance around footprints, walkable but discouraged

GridState pins the order in which phases may touch the grid.
"""

import math
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple

import numpy as np

from overworld.config import get_logger
from overworld.composer.errors import PhaseOrderError

logger = get_logger(__name__)

Point = Tuple[int, int]

PASSABLE = 0
BLOCKED = 1
ROAD = 2
RESERVED = 3


# ============================================================================
# NEIGHBOURHOOD
# ============================================================================

CARDINAL_OFFSETS = ((0, -1), (0, 1), (1, 0), (-1, 0))  # N, S, E, W


# ============================================================================
# GEOMETRY
# ============================================================================

@dataclass(frozen=True)
class Bounds:
    """Axis-aligned rectangle in tile coordinates."""
    x: int
    y: int
    width: int
    height: int

    @property
    def center(self) -> Point:
        return (self.x + self.width // 2, self.y + self.height // 2)

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def contains(self, point: Point) -> bool:
        return self.x <= point[0] < self.right and self.y <= point[1] < self.bottom

    def intersects(self, other: 'Bounds', gap: int = 0) -> bool:
        """AABB overlap test; `gap` inflates both rectangles' far edges."""
        return (
            other.x < self.right + gap and other.right + gap > self.x and
            other.y < self.bottom + gap and other.bottom + gap > self.y
        )

    def inside(self, other: 'Bounds') -> bool:
        return (
            self.x >= other.x and self.y >= other.y and
            self.right <= other.right and self.bottom <= other.bottom
        )


def valid_pos(x: int, y: int, width: int, height: int) -> bool:
    return 0 <= x < width and 0 <= y < height


def neighbors_4(x: int, y: int, width: int, height: int) -> Iterator[Point]:
    """In-bounds cardinal neighbours of (x, y)."""
    for dx, dy in CARDINAL_OFFSETS:
        if valid_pos(x + dx, y + dy, width, height):
            yield (x + dx, y + dy)


def manhattan(a: Point, b: Point) -> int:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (also for negatives)."""
    return int(math.floor(value + 0.5))


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


# ============================================================================
# COLLISION GRID
# ============================================================================

class CollisionGrid:
    """
    Width x height occupancy grid.

    `data` is a uint8 array indexed [y, x].
    """

    def __init__(self, width: int, height: int, data: Optional[np.ndarray] = None):
        self.width = width
        self.height = height
        if data is None:
            data = np.zeros((height, width), dtype=np.uint8)
        self.data = data

    def in_bounds(self, x: int, y: int) -> bool:
        return valid_pos(x, y, self.width, self.height)

    def get(self, x: int, y: int) -> int:
        return int(self.data[y, x])

    def is_walkable(self, x: int, y: int) -> bool:
        return self.in_bounds(x, y) and self.data[y, x] != BLOCKED

    def count(self, value: int) -> int:
        return int(np.count_nonzero(self.data == value))

    def copy(self) -> 'CollisionGrid':
        return CollisionGrid(self.width, self.height, self.data.copy())

    def __repr__(self):
        return (
            f"CollisionGrid({self.width}x{self.height}, blocked={self.count(BLOCKED)}, "
            f"road={self.count(ROAD)}, reserved={self.count(RESERVED)})"
        )


def create_collision_grid(width: int, height: int) -> CollisionGrid:
    """Create an all-passable grid."""
    return CollisionGrid(width, height)


def _clip(grid: CollisionGrid, x: int, y: int, w: int, h: int) -> Optional[Tuple[int, int, int, int]]:
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(grid.width, x + w), min(grid.height, y + h)
    if x0 >= x1 or y0 >= y1:
        return None
    return x0, y0, x1, y1


def mark_area(grid: CollisionGrid, x: int, y: int, w: int, h: int, value: int):
    """
    Unconditionally overwrite a rectangle (clipped to the grid).

    Args:
        grid: Grid to mutate
        x, y: Top-left corner
        w, h: Rectangle size
        value: Cell value to write
    """
    clipped = _clip(grid, x, y, w, h)
    if clipped is None:
        return
    x0, y0, x1, y1 = clipped
    grid.data[y0:y1, x0:x1] = value


def mark_clearance(grid: CollisionGrid, x: int, y: int, w: int, h: int, radius: int):
    """
    Raise the passable cells in a ring of `radius` around a rectangle to
    RESERVED.

    Cells inside the rectangle and cells that are already blocked, road or
    reserved are left alone.
    """
    clipped = _clip(grid, x - radius, y - radius, w + 2 * radius, h + 2 * radius)
    if clipped is None:
        return
    x0, y0, x1, y1 = clipped
    region = grid.data[y0:y1, x0:x1]
    ring = region == PASSABLE

    inner = _clip(grid, x, y, w, h)
    if inner is not None:
        ix0, iy0, ix1, iy1 = inner
        ring[iy0 - y0:iy1 - y0, ix0 - x0:ix1 - x0] = False

    region[ring] = RESERVED


def stamp_road(grid: CollisionGrid, points: Iterable[Point], width: int):
    """Raise passable cells within width // 2 of every point to ROAD."""
    half = width // 2
    for px, py in points:
        clipped = _clip(grid, px - half, py - half, 2 * half + 1, 2 * half + 1)
        if clipped is None:
            continue
        x0, y0, x1, y1 = clipped
        region = grid.data[y0:y1, x0:x1]
        region[region == PASSABLE] = ROAD


# ============================================================================
# DISTANCE FIELDS
# ============================================================================

def bfs_distance_field(
    grid: CollisionGrid,
    sources: Iterable[Point],
    walkable: Optional[np.ndarray] = None,
    with_sources: bool = False
):
    """
    Multi-source 4-directional BFS.

    Args:
        grid: Grid to walk
        sources: Start cells; out-of-bounds or non-walkable ones are ignored
        walkable: Optional boolean mask [y, x]; defaults to every non-blocked cell
        with_sources: Also return which source reached each cell

    Returns:
        int32 array [y, x] of step distances, -1 where unreached. With
        `with_sources`, a (distances, origins) pair where origins holds the
        index into `sources` of the source whose wave claimed the cell.
    """
    if walkable is None:
        walkable = grid.data != BLOCKED

    distances = np.full((grid.height, grid.width), -1, dtype=np.int32)
    origins = np.full((grid.height, grid.width), -1, dtype=np.int32)
    queue = deque()

    for index, (x, y) in enumerate(sources):
        if grid.in_bounds(x, y) and walkable[y, x] and distances[y, x] == -1:
            distances[y, x] = 0
            origins[y, x] = index
            queue.append((x, y))

    while queue:
        x, y = queue.popleft()
        step = distances[y, x] + 1
        for nx, ny in neighbors_4(x, y, grid.width, grid.height):
            if distances[ny, nx] != -1 or not walkable[ny, nx]:
                continue
            distances[ny, nx] = step
            origins[ny, nx] = origins[y, x]
            queue.append((nx, ny))

    if with_sources:
        return distances, origins
    return distances


# ============================================================================
# PHASE PIPELINE
# ============================================================================

class GridPhase(Enum):
    """Composition phases, in the only order they may touch the grid."""
    ORGANISMS = 1
    NUDGE = 2
    ROUTING = 3
    WILD_FEATURES = 4
    SAFE_ZONES = 5
    FILL = 6


class GridState:
    """
    A collision grid plus the phase it has reached.

    Phases can be skipped but never revisited or run backwards, so the
    occupancy each phase sees is always the one left by its predecessors.
    """

    def __init__(self, grid: CollisionGrid):
        self.grid = grid
        self.phase: Optional[GridPhase] = None
        self.history: List[GridPhase] = []

    def enter(self, phase: GridPhase) -> CollisionGrid:
        if self.phase is not None and phase.value <= self.phase.value:
            raise PhaseOrderError(
                f"Cannot enter {phase.name} after {self.phase.name}; "
                f"order is {' -> '.join(p.name for p in GridPhase)}"
            )
        logger.debug(f"Grid phase: {phase.name}")
        self.phase = phase
        self.history.append(phase)
        return self.grid

    @property
    def finished(self) -> bool:
        return self.phase is GridPhase.FILL
