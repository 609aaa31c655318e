"""
Path router: A* roads on the collision grid.

Roads are grid-aligned (4-directional). A cell is passable for a road of
width w when no cell within w // 2 of it is blocked. Existing roads are
cheap (0.5) so later routes merge into them, reserved clearance is
expensive (3), open ground costs 1.

route_all() routes main roads first, then branches, then internal paths,
stamping each accepted road before the next request so route order is
part of the result.
"""

import heapq
from dataclasses import dataclass
from itertools import count
from typing import Dict, List, Optional, Sequence

import numpy as np

from overworld.config import get_logger
from overworld.composer.grid import (
    CollisionGrid, Point, BLOCKED, ROAD, RESERVED,
    clamp, round_half_up, stamp_road
)

logger = get_logger(__name__)

PRIORITY_ORDER = {'main': 0, 'branch': 1, 'internal': 2}

ROAD_COST = 0.5
RESERVED_COST = 3.0
GROUND_COST = 1.0

# North, east, south, west
ROUTE_DIRECTIONS = [(0, -1), (1, 0), (0, 1), (-1, 0)]


@dataclass(frozen=True)
class PathRequest:
    start: Point
    end: Point
    width: int = 1
    terrain: str = 'road.dirt'
    priority: str = 'main'  # main | branch | internal


@dataclass(frozen=True)
class RoutedPath:
    request: PathRequest
    waypoints: List[Point]
    length: int


def is_passable(grid: CollisionGrid, x: int, y: int, road_width: int = 1) -> bool:
    """True when the road band centred on (x, y) is in bounds and free of blocked cells."""
    half = road_width // 2
    x0, y0, x1, y1 = x - half, y - half, x + half + 1, y + half + 1
    if x0 < 0 or y0 < 0 or x1 > grid.width or y1 > grid.height:
        return False
    return not np.any(grid.data[y0:y1, x0:x1] == BLOCKED)


def passable_mask(grid: CollisionGrid, road_width: int = 1) -> np.ndarray:
    """
    is_passable() for every cell at once.

    Returns:
        bool array [y, x]
    """
    half = road_width // 2
    window = 2 * half + 1
    mask = np.zeros((grid.height, grid.width), dtype=bool)
    if grid.width < window or grid.height < window:
        return mask

    blocked = (grid.data == BLOCKED).astype(np.int32)
    summed = np.pad(blocked, ((1, 0), (1, 0))).cumsum(axis=0).cumsum(axis=1)
    counts = (
        summed[window:, window:] - summed[:-window, window:]
        - summed[window:, :-window] + summed[:-window, :-window]
    )
    mask[half:grid.height - half, half:grid.width - half] = counts == 0
    return mask


def move_cost(grid: CollisionGrid, x: int, y: int) -> float:
    cell = grid.data[y, x]
    if cell == ROAD:
        return ROAD_COST
    if cell == RESERVED:
        return RESERVED_COST
    return GROUND_COST


def _heuristic(x: int, y: int, goal: Point) -> float:
    dx = abs(x - goal[0])
    dy = abs(y - goal[1])
    return dx + dy + min(dx, dy) * 0.001


def find_path(grid: CollisionGrid, start: Point, end: Point,
              road_width: int = 1) -> Optional[List[Point]]:
    """
    A* search between two points for a road of the given width.

    Endpoints are rounded and clamped onto the grid. The start cell itself
    is not checked for passability; every other cell on the path is.

    Args:
        grid: Collision grid (read only)
        start: Start point
        end: Goal point
        road_width: Road width in tiles

    Returns:
        Waypoints from start to goal inclusive, or None when no route exists
        within width * height * 2 expansions
    """
    width, height = grid.width, grid.height
    sx = clamp(round_half_up(start[0]), 0, width - 1)
    sy = clamp(round_half_up(start[1]), 0, height - 1)
    goal = (clamp(round_half_up(end[0]), 0, width - 1), clamp(round_half_up(end[1]), 0, height - 1))

    passable = passable_mask(grid, road_width)
    tie = count()
    frontier = [(_heuristic(sx, sy, goal), next(tie), (sx, sy), 0.0)]
    came_from: Dict[Point, Optional[Point]] = {(sx, sy): None}
    best_g: Dict[Point, float] = {(sx, sy): 0.0}
    closed = set()

    iterations = 0
    max_iterations = width * height * 2

    while frontier and iterations < max_iterations:
        iterations += 1
        _, _, current, g = heapq.heappop(frontier)

        if current == goal:
            path: List[Point] = []
            while current is not None:
                path.append(current)
                current = came_from[current]
            path.reverse()
            return path

        if current in closed:
            continue
        closed.add(current)

        x, y = current
        for dx, dy in ROUTE_DIRECTIONS:
            nx, ny = x + dx, y + dy
            if not (0 <= nx < width and 0 <= ny < height):
                continue
            if (nx, ny) in closed or not passable[ny, nx]:
                continue

            new_g = g + move_cost(grid, nx, ny)
            if new_g < best_g.get((nx, ny), float('inf')):
                best_g[(nx, ny)] = new_g
                came_from[(nx, ny)] = current
                heapq.heappush(frontier, (new_g + _heuristic(nx, ny, goal), next(tie), (nx, ny), new_g))

    return None


def route_all(grid: CollisionGrid, requests: Sequence[PathRequest]) -> List[RoutedPath]:
    """
    Route requests in priority order, stamping each accepted road.

    The sort is stable, so requests of equal priority keep their given
    order. Requests without a route are logged and skipped.
    """
    ordered = sorted(requests, key=lambda r: PRIORITY_ORDER.get(r.priority, len(PRIORITY_ORDER)))
    results: List[RoutedPath] = []

    for request in ordered:
        waypoints = find_path(grid, request.start, request.end, request.width)
        if waypoints is None:
            logger.warning(
                f"No {request.priority} route from {request.start} to {request.end} (width {request.width})"
            )
            continue

        results.append(RoutedPath(request, waypoints, len(waypoints)))
        stamp_road(grid, waypoints, request.width)

    logger.debug(f"Routed {len(results)}/{len(requests)} path requests")
    return results


def unrouted_requests(requests: Sequence[PathRequest], routed: Sequence[RoutedPath]) -> List[PathRequest]:
    """Requests with no matching routed path, in request order."""
    remaining = list(routed)
    missing = []
    for request in requests:
        for i, path in enumerate(remaining):
            if path.request is request:
                del remaining[i]
                break
        else:
            missing.append(request)
    return missing
