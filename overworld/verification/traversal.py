"""
Traversal verification: BFS reachability at every level.

The same check works for an organism (entries -> doors), a region
(entries and exits -> doors, anchors, NPCs) and a world (start region ->
every region over the connection graph). Only the collision grid and the
entry/target points are needed.

The verifier never repairs anything. Unreached targets fail the report;
walkable pockets that no entry reaches are listed as disconnected zones.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

from overworld.config import get_logger
from overworld.composer.ddl import WorldDefinition, world_slot_ids
from overworld.composer.grid import BLOCKED, CollisionGrid, Point, bfs_distance_field, neighbors_4
from overworld.composer.region_composer import RegionMap

logger = get_logger(__name__)

Target = Tuple[str, Optional[Point]]


# ============================================================================
# REPORT TYPES
# ============================================================================

@dataclass(frozen=True)
class TargetResult:
    id: str
    position: Optional[Point]
    reachable: bool
    distance: int  # -1 when unreachable
    reached_from: Optional[Point] = None


@dataclass(frozen=True)
class DisconnectedZone:
    representative: Point
    tile_count: int


@dataclass
class TraversalReport:
    level: str
    subject: str
    passed: bool
    reachable_tiles: int
    total_walkable_tiles: int
    coverage_percent: float
    targets: List[TargetResult] = field(default_factory=list)
    disconnected_zones: List[DisconnectedZone] = field(default_factory=list)

    @property
    def unreachable(self) -> List[TargetResult]:
        return [t for t in self.targets if not t.reachable]


@dataclass
class RegionGraphReport:
    start_region: str
    passed: bool
    reachable: List[str] = field(default_factory=list)
    unreachable: List[str] = field(default_factory=list)


# ============================================================================
# FLOOD FILLS
# ============================================================================

def bfs_flood_fill(grid: CollisionGrid, entries: Iterable[Point]) -> np.ndarray:
    """
    Distance from the nearest entry for every cell.

    Walkable is any cell that is not blocked. Entries outside the grid or
    on blocked cells are ignored.

    Returns:
        int32 array [y, x], -1 where unreached
    """
    return bfs_distance_field(grid, entries)


def find_disconnected_zones(grid: CollisionGrid, distances: np.ndarray) -> List[DisconnectedZone]:
    """Group walkable cells the first fill never reached into 4-connected zones (row-major order)."""
    walkable = grid.data != BLOCKED
    visited = distances >= 0
    zones = []

    for y, x in np.argwhere(walkable & ~visited):
        x, y = int(x), int(y)
        if visited[y, x]:
            continue

        visited[y, x] = True
        stack = [(x, y)]
        tile_count = 0
        while stack:
            px, py = stack.pop()
            tile_count += 1
            for nx, ny in neighbors_4(px, py, grid.width, grid.height):
                if visited[ny, nx] or not walkable[ny, nx]:
                    continue
                visited[ny, nx] = True
                stack.append((nx, ny))

        zones.append(DisconnectedZone((x, y), tile_count))

    return zones


# ============================================================================
# VERIFICATION
# ============================================================================

def verify_traversal(grid: CollisionGrid, entries: Sequence[Point], targets: Sequence[Target],
                     level: str = 'region', subject: str = '') -> TraversalReport:
    """
    Check that every target is reachable from at least one entry.

    Args:
        grid: Finished collision grid
        entries: Entry points the player can stand on
        targets: (id, position) pairs that must be reachable; a None position
            stands for something that was never placed and always fails
        level: tile | organism | region | world
        subject: Name of what is being verified, for the report

    Returns:
        TraversalReport; passed when every target was reached
    """
    entries = list(entries)
    distances, origins = bfs_distance_field(grid, entries, with_sources=True)

    walkable = grid.data != BLOCKED
    total_walkable = int(np.count_nonzero(walkable))
    reachable_tiles = int(np.count_nonzero(walkable & (distances >= 0)))

    results = []
    for target_id, position in targets:
        distance = -1
        reached_from = None
        if position is not None and grid.in_bounds(*position):
            x, y = position
            distance = int(distances[y, x])
            if distance >= 0:
                reached_from = entries[int(origins[y, x])]
        reachable = distance >= 0
        results.append(TargetResult(
            id=target_id,
            position=position,
            reachable=reachable,
            distance=distance,
            reached_from=reached_from,
        ))

    coverage = round(reachable_tiles / total_walkable * 100, 2) if total_walkable else 100.0

    report = TraversalReport(
        level=level,
        subject=subject,
        passed=all(result.reachable for result in results),
        reachable_tiles=reachable_tiles,
        total_walkable_tiles=total_walkable,
        coverage_percent=coverage,
        targets=results,
        disconnected_zones=find_disconnected_zones(grid, distances),
    )

    logger.debug(
        f"Traversal {level}/{subject}: {len(results) - len(report.unreachable)}/{len(results)} targets, "
        f"{len(report.disconnected_zones)} disconnected zones"
    )
    return report


def verify_full_connectivity(grid: CollisionGrid, subject: str = '') -> TraversalReport:
    """
    Flood from the first walkable cell (row-major) and report every other
    walkable pocket. Passes when the grid has no disconnected zone.
    """
    walkable = np.argwhere(grid.data != BLOCKED)
    if len(walkable) == 0:
        return TraversalReport('tile', subject, True, 0, 0, 100.0)

    y, x = walkable[0]
    report = verify_traversal(grid, [(int(x), int(y))], [], level='tile', subject=subject)
    report.passed = not report.disconnected_zones
    return report


def region_targets(region_map: RegionMap) -> List[Target]:
    """
    Doors, anchor entries, region exits and NPCs of a composed region.

    Doors come from the world slots every town anchor declares, so a slot
    whose building was never placed shows up as an unplaced target.
    """
    targets: List[Target] = []
    for placed in region_map.placed_anchors:
        if placed.anchor.town is None:
            continue
        for slot_id in world_slot_ids(placed.anchor):
            targets.append((f"door:{slot_id}", region_map.door_transitions.get(slot_id)))
    for placed in region_map.placed_anchors:
        for i, entry in enumerate(placed.entry_anchors):
            targets.append((f"entry:{placed.anchor.id}:{i}", entry))
    for exit_ in region_map.region_exits:
        targets.append((f"exit:{exit_.target_region}", exit_.position))
    for npc_id, position in region_map.npc_positions.items():
        targets.append((f"npc:{npc_id}", position))
    return targets


def verify_region(region_map: RegionMap) -> TraversalReport:
    """Every door, entry, exit and NPC reachable from the region's entry points."""
    return verify_traversal(
        region_map.grid, region_map.entry_points(), region_targets(region_map),
        level='region', subject=region_map.region_id,
    )


# ============================================================================
# REGION GRAPH
# ============================================================================

def region_graph_reachable(world_or_connections: Union[WorldDefinition, Iterable], start: str) -> Set[str]:
    """
    Regions reachable from `start` over connections taken in either direction.

    Accepts a WorldDefinition or any iterable of objects with `from_region`
    and `to_region` (declared or resolved connections).
    """
    if isinstance(world_or_connections, WorldDefinition):
        connections = world_or_connections.region_connections
    else:
        connections = world_or_connections

    adjacency: Dict[str, Set[str]] = {}
    for conn in connections:
        adjacency.setdefault(conn.from_region, set()).add(conn.to_region)
        adjacency.setdefault(conn.to_region, set()).add(conn.from_region)

    reached = {start}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for neighbor in sorted(adjacency.get(current, ())):
            if neighbor not in reached:
                reached.add(neighbor)
                queue.append(neighbor)
    return reached


def verify_region_graph(world: WorldDefinition) -> RegionGraphReport:
    """Every declared region reachable from the start region."""
    start = world.properties.start_region
    reached = region_graph_reachable(world, start)
    reachable = [region_id for region_id in world.region_ids if region_id in reached]
    unreachable = [region_id for region_id in world.region_ids if region_id not in reached]
    return RegionGraphReport(
        start_region=start,
        passed=start in world.region_ids and not unreachable,
        reachable=reachable,
        unreachable=unreachable,
    )


# ============================================================================
# FORMATTING
# ============================================================================

def format_report(report: TraversalReport) -> str:
    """Human-readable summary: status line, unreachable targets, disconnected zones."""
    status = 'PASS' if report.passed else 'FAIL'
    lines = [
        f"[{status}] {report.level}/{report.subject} - {report.coverage_percent}% coverage "
        f"({report.reachable_tiles}/{report.total_walkable_tiles} tiles)"
    ]

    failed = report.unreachable
    if failed:
        lines.append(f"  Unreachable targets ({len(failed)}):")
        for target in failed:
            if target.position is None:
                lines.append(f"    - {target.id} not placed")
            else:
                lines.append(f"    - {target.id} at ({target.position[0]}, {target.position[1]})")

    if report.disconnected_zones:
        lines.append(f"  Disconnected zones ({len(report.disconnected_zones)}):")
        for zone in report.disconnected_zones:
            lines.append(
                f"    - {zone.tile_count} tiles near ({zone.representative[0]}, {zone.representative[1]})"
            )

    return '\n'.join(lines)


def format_region_graph_report(report: RegionGraphReport) -> str:
    status = 'PASS' if report.passed else 'FAIL'
    lines = [
        f"[{status}] world/region-graph - {len(report.reachable)}/"
        f"{len(report.reachable) + len(report.unreachable)} regions reachable from '{report.start_region}'"
    ]
    for region_id in report.unreachable:
        lines.append(f"    - {region_id} unreachable")
    return '\n'.join(lines)
