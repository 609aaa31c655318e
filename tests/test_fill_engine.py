from collections import Counter
from dataclasses import replace

import numpy as np
import pytest

from overworld.composer.biomes import EdgeTreatment, ScatterRule, get_biome
from overworld.composer.grid import (
    BLOCKED, PASSABLE, RESERVED, ROAD, create_collision_grid, mark_area, mark_clearance,
    round_half_up, stamp_road
)
from overworld.composer.fill_engine import FillEngine, run_fill_engine


@pytest.fixture
def farmland():
    return get_biome('farmland')


@pytest.fixture
def composed_grid():
    """40x40 grid with one building, its clearance and a road past it."""
    grid = create_collision_grid(40, 40)
    mark_area(grid, 10, 10, 6, 6, BLOCKED)
    mark_clearance(grid, 10, 10, 6, 6, 2)
    stamp_road(grid, [(x, 20) for x in range(5, 35)], 3)
    return grid


def test_edges_ring_the_map(farmland):
    result = run_fill_engine(create_collision_grid(40, 40), farmland, seed=3)

    # forest depth 3: two full rows and two trimmed columns per ring
    assert len(result.edge_tiles) == 3 * (40 + 40 + 34 + 34)
    assert {tile.type for tile in result.edge_tiles} == {'forest'}


def test_edges_leave_a_gap_for_connections(farmland):
    result = run_fill_engine(create_collision_grid(40, 40), farmland, seed=3,
                             connection_tiles=[(20, 39)], gap_width=3)

    assert len(result.edge_tiles) == 444 - 6
    positions = {(tile.x, tile.y) for tile in result.edge_tiles}
    assert (20, 39) not in positions
    assert (19, 38) not in positions
    assert (20, 37) in positions


def test_no_edge_treatment(farmland):
    bare = replace(farmland, default_edge=EdgeTreatment('none', 0))
    assert run_fill_engine(create_collision_grid(20, 20), bare, seed=1).edge_tiles == []


def test_ground_only_on_open_and_reserved_cells(farmland, composed_grid):
    result = run_fill_engine(composed_grid, farmland, seed=8)
    ground = result.ground_terrain
    data = composed_grid.data

    open_cells = (data == PASSABLE) | (data == RESERVED)
    assert all(label is None for label in ground[~open_cells])
    assert all(label.startswith('ground.') for label in ground[open_cells])
    # variant patches are painted over the base ground
    assert 'ground.dark-grass' in set(ground[open_cells])


def test_fill_leaves_the_collision_grid_alone(farmland, composed_grid):
    before = composed_grid.data.copy()
    run_fill_engine(composed_grid, farmland, seed=8)
    assert np.array_equal(before, composed_grid.data)


def test_scatter_respects_exclusion_radii(farmland, composed_grid):
    result = run_fill_engine(composed_grid, farmland, seed=21)
    radius = {rule.object_ref: rule.exclusion_radius for rule in farmland.scatter}

    objects = result.scatter_objects
    assert objects
    for obj in objects:
        assert composed_grid.get(obj.x, obj.y) == PASSABLE
    for i, a in enumerate(objects):
        for b in objects[i + 1:]:
            distance = abs(a.x - b.x) + abs(a.y - b.y)
            assert distance >= max(radius[a.object_ref], radius[b.object_ref])


def test_scatter_shortfall_accounts_for_every_rule():
    grid = create_collision_grid(30, 30)
    biome = replace(
        get_biome('farmland'),
        ground_variants=[], path_dress=[],
        scatter=[ScatterRule('rock.gray-1', 20, 6)],
    )
    result = FillEngine(grid, biome, seed=5).run()

    expected = round_half_up(20 * 900 / 100)
    placed = Counter(obj.object_ref for obj in result.scatter_objects)
    # radius 6 cannot fit 180 rocks into 900 tiles
    assert result.scatter_shortfall['rock.gray-1'] > 0
    assert placed['rock.gray-1'] + result.scatter_shortfall['rock.gray-1'] == expected


def test_path_dressing_sits_beside_roads(farmland, composed_grid):
    result = run_fill_engine(composed_grid, farmland, seed=13)
    dressing = result.path_dress_objects

    assert any(obj.object_ref == 'fence.wood-1' for obj in dressing)
    positions = [(obj.x, obj.y) for obj in dressing]
    assert len(positions) == len(set(positions))
    for x, y in positions:
        assert composed_grid.get(x, y) in (PASSABLE, RESERVED)


def test_same_seed_same_fill(farmland, composed_grid):
    a = run_fill_engine(composed_grid, farmland, seed=99)
    b = run_fill_engine(composed_grid, farmland, seed=99)

    assert a.scatter_objects == b.scatter_objects
    assert a.path_dress_objects == b.path_dress_objects
    assert np.array_equal(a.ground_terrain, b.ground_terrain)


def test_road_cells_stay_unpainted(farmland, composed_grid):
    result = run_fill_engine(composed_grid, farmland, seed=2)
    assert all(label is None for label in result.ground_terrain[composed_grid.data == ROAD])
