import numpy as np
import pytest

from overworld.composer.grid import BLOCKED, ROAD, create_collision_grid, mark_area
from overworld.composer.path_router import (
    PathRequest, find_path, is_passable, passable_mask, route_all, unrouted_requests
)


@pytest.fixture
def field():
    return create_collision_grid(30, 20)


def _wall(grid, x):
    mark_area(grid, x, 0, 1, grid.height, BLOCKED)


def test_straight_road_on_open_ground(field):
    path = find_path(field, (2, 10), (27, 10), road_width=3)

    assert path[0] == (2, 10)
    assert path[-1] == (27, 10)
    assert len(path) == 26
    assert all(y == 10 for _, y in path)


def test_endpoints_are_rounded(field):
    path = find_path(field, (2.5, 10.2), (6, 10))
    assert path[0] == (3, 10)
    assert len(path) == 4


def test_road_detours_around_an_obstacle(field):
    mark_area(field, 10, 5, 1, 10, BLOCKED)
    path = find_path(field, (5, 10), (15, 10))

    assert path is not None
    assert all(field.get(x, y) != BLOCKED for x, y in path)
    for (x1, y1), (x2, y2) in zip(path, path[1:]):
        assert abs(x1 - x2) + abs(y1 - y2) == 1


def test_wall_blocks_every_route(field):
    _wall(field, 15)
    assert find_path(field, (2, 10), (27, 10)) is None


def test_route_all_orders_by_priority_and_stamps(field):
    branch = PathRequest((5, 2), (5, 17), width=1, priority='branch')
    main = PathRequest((2, 10), (27, 10), width=3, priority='main')

    routed = route_all(field, [branch, main])

    assert [r.request.priority for r in routed] == ['main', 'branch']
    assert routed[0].length == 26
    # Width-3 band around x = 2..27 on rows 9..11, then the branch adds its own column
    assert field.count(ROAD) == 28 * 3 + (16 - 3)


def test_branch_joins_the_main_road_early(field):
    main = PathRequest((0, 5), (29, 5), width=1, priority='main')
    branch = PathRequest((2, 9), (27, 5), width=1, priority='branch')

    routed = route_all(field, [branch, main])

    # road cells cost half, so the branch climbs straight onto the main road and follows it
    assert routed[1].waypoints == [(2, 9), (2, 8), (2, 7), (2, 6)] + [(x, 5) for x in range(2, 28)]
    assert field.count(ROAD) == 30 + 4


def test_route_all_skips_unroutable_requests(field):
    _wall(field, 15)
    blocked = PathRequest((2, 10), (27, 10), priority='main')
    local = PathRequest((2, 2), (10, 2), priority='internal')

    routed = route_all(field, [blocked, local])

    assert [r.request for r in routed] == [local]
    assert unrouted_requests([blocked, local], routed) == [blocked]


@pytest.mark.parametrize('road_width', [1, 2, 3, 5])
def test_passable_mask_matches_single_cell_check(field, road_width):
    mark_area(field, 7, 3, 2, 4, BLOCKED)
    mark_area(field, 20, 12, 1, 1, BLOCKED)

    mask = passable_mask(field, road_width)
    expected = np.array([
        [is_passable(field, x, y, road_width) for x in range(field.width)]
        for y in range(field.height)
    ])
    assert (mask == expected).all()
