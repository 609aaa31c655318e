import numpy as np
import pytest

from overworld.composer.errors import PhaseOrderError
from overworld.composer.grid import (
    BLOCKED, PASSABLE, RESERVED, ROAD, Bounds, GridPhase, GridState,
    bfs_distance_field, create_collision_grid, mark_area, mark_clearance,
    round_half_up, stamp_road
)


@pytest.fixture
def grid():
    return create_collision_grid(20, 10)


def test_new_grid_is_all_passable(grid):
    assert grid.data.shape == (10, 20)
    assert grid.count(PASSABLE) == 200


def test_mark_area_clips_to_grid(grid):
    mark_area(grid, 18, 8, 5, 5, BLOCKED)
    assert grid.count(BLOCKED) == 4
    assert grid.get(19, 9) == BLOCKED
    assert not grid.is_walkable(19, 9)
    assert grid.is_walkable(0, 0)
    assert not grid.is_walkable(20, 0)


def test_copy_is_independent(grid):
    clone = grid.copy()
    mark_area(clone, 0, 0, 2, 2, BLOCKED)
    assert clone.count(BLOCKED) == 4
    assert grid.count(BLOCKED) == 0


def test_clearance_rings_rectangle_without_touching_it(grid):
    mark_area(grid, 5, 4, 2, 2, BLOCKED)
    mark_clearance(grid, 5, 4, 2, 2, 1)

    assert grid.count(BLOCKED) == 4
    assert grid.count(RESERVED) == 12
    assert grid.get(4, 3) == RESERVED
    assert grid.get(7, 6) == RESERVED
    assert grid.get(8, 4) == PASSABLE


def test_clearance_leaves_roads_alone(grid):
    stamp_road(grid, [(3, 3)], 1)
    mark_clearance(grid, 4, 3, 1, 1, 1)
    assert grid.get(3, 3) == ROAD


def test_stamp_road_never_overwrites_blocked(grid):
    mark_area(grid, 5, 5, 1, 1, BLOCKED)
    stamp_road(grid, [(5, 4)], 3)
    assert grid.get(5, 5) == BLOCKED
    assert grid.count(ROAD) == 8


def test_bounds_intersection_with_gap():
    a = Bounds(0, 0, 5, 5)
    assert not a.intersects(Bounds(7, 0, 5, 5))
    assert a.intersects(Bounds(7, 0, 5, 5), gap=3)
    assert Bounds(1, 1, 2, 2).inside(a)
    assert a.center == (2, 2)


def test_round_half_up_matches_game_rounding():
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -2
    assert round_half_up(-2.6) == -3


def test_distance_field_reports_claiming_source(grid):
    mark_area(grid, 10, 0, 1, 10, BLOCKED)
    distances, origins = bfs_distance_field(grid, [(50, 50), (0, 0), (19, 9)], with_sources=True)

    # indices refer to the given source list, skipped sources included
    assert origins[0, 1] == 1
    assert origins[9, 18] == 2
    assert origins[0, 10] == -1
    assert distances[9, 18] == 1


def test_distance_field_walks_around_walls(grid):
    mark_area(grid, 5, 0, 1, 9, BLOCKED)
    distances = bfs_distance_field(grid, [(0, 0)])

    assert distances[0, 0] == 0
    assert distances[0, 5] == -1
    # Down to row 9, across the gap, back up
    assert distances[0, 6] == 6 + 9 + 9
    assert distances.dtype == np.int32


def test_distance_field_ignores_blocked_sources(grid):
    mark_area(grid, 0, 0, 1, 1, BLOCKED)
    distances = bfs_distance_field(grid, [(0, 0), (99, 99)])
    assert (distances == -1).all()


def test_grid_state_enforces_phase_order(grid):
    state = GridState(grid)
    state.enter(GridPhase.ORGANISMS)
    state.enter(GridPhase.ROUTING)  # skipping NUDGE is allowed

    with pytest.raises(PhaseOrderError):
        state.enter(GridPhase.NUDGE)
    with pytest.raises(PhaseOrderError):
        state.enter(GridPhase.ROUTING)

    state.enter(GridPhase.FILL)
    assert state.finished
    assert state.history == [GridPhase.ORGANISMS, GridPhase.ROUTING, GridPhase.FILL]
