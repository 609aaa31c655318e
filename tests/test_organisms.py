import pytest

from overworld.composer.ddl import TownDefinition, TownService
from overworld.composer.grid import BLOCKED, Bounds, create_collision_grid, mark_area
from overworld.composer.hamlet import MAX_HOUSES, HamletConfig, layout_hamlet
from overworld.composer.rng import SeededRNG
from overworld.composer.town import (
    BUILDING_GAP, FOOTPRINTS, Failed, Placed, layout_town, ring_radius
)
from overworld.verification.traversal import verify_traversal


def _make_town(services=(), houses=0, size='village', central_feature='well'):
    return TownDefinition(
        size=size,
        services=[TownService(type=service, keeper_npc=f"{service}-keeper") for service in services],
        houses=houses,
        central_feature=central_feature,
    )


@pytest.fixture
def market_town():
    return _make_town(services=('weapon-shop', 'inn', 'library', 'blacksmith'), houses=3)


# --- Hamlet ---

def test_hamlet_ring_well_and_anchor():
    layout = layout_hamlet(Bounds(5, 5, 30, 30), HamletConfig(houses=3, well=True, house_style='mixed'), seed=9)

    assert len(layout.houses) == 3
    assert layout.well_position == (20, 20)
    # radius = min(30 // 2 - 4, 8 + 3 * 2) = 11, anchor 4 further south
    assert layout.external_anchors == [(20, 35)]
    assert all(center == (20, 20) for _, center in layout.internal_paths)


def test_hamlet_doors_sit_below_houses():
    layout = layout_hamlet(Bounds(0, 0, 40, 40), HamletConfig(houses=5), seed=1)
    for house in layout.houses:
        x, y = house.position
        w, h = house.footprint
        assert house.archetype == 'house-small'
        assert house.door_anchor == (x + w // 2, y + h)


def test_hamlet_caps_house_count():
    layout = layout_hamlet(Bounds(0, 0, 60, 60), HamletConfig(houses=12), seed=2)
    assert len(layout.houses) == MAX_HOUSES


def test_hamlet_draw_order():
    rng = SeededRNG(4, trace=True)
    layout_hamlet(Bounds(0, 0, 30, 30), HamletConfig(houses=3, house_style='mixed'), rng=rng)
    assert rng.ops() == ['next', 'next_int', 'chance'] * 3


def test_hamlet_small_style_draws_no_chance():
    rng = SeededRNG(4, trace=True)
    layout_hamlet(Bounds(0, 0, 30, 30), HamletConfig(houses=2), rng=rng)
    assert rng.ops() == ['next', 'next_int'] * 2


def test_hamlet_is_deterministic():
    config = HamletConfig(houses=4, house_style='mixed')
    a = layout_hamlet(Bounds(0, 0, 30, 30), config, seed=77)
    b = layout_hamlet(Bounds(0, 0, 30, 30), config, seed=77)
    assert a.houses == b.houses


# --- Town ---

def test_town_places_every_building(market_town):
    layout = layout_town(Bounds(40, 40, 45, 45), market_town, seed=42)

    assert len(layout.buildings) == 7
    assert len(layout.placements) == 7
    assert sum(1 for b in layout.buildings if b.service is not None) == 4
    assert layout.central_feature.position == (62, 62)
    assert layout.entry_anchors == [(62, 40), (62, 84), (84, 62), (40, 62)]


def test_town_doors_are_reachable():
    # Two buildings face each other across the centre and never collide
    layout = layout_town(Bounds(40, 40, 45, 45), _make_town(services=('inn', 'library')), seed=42)
    assert all(isinstance(result, Placed) and result.attempts == 1 for result in layout.placements)

    grid = create_collision_grid(130, 130)
    for building in layout.buildings:
        rect = building.rect
        mark_area(grid, rect.x, rect.y, rect.width, rect.height, BLOCKED)

    targets = [(f"door-{i}", b.door_anchor) for i, b in enumerate(layout.buildings)]
    report = verify_traversal(grid, layout.entry_anchors, targets, level='organism', subject='market-town')

    assert report.passed
    assert report.disconnected_zones == []


def test_town_keepers_and_interiors(market_town):
    layout = layout_town(Bounds(40, 40, 45, 45), market_town, interior_ids=['smithy', 'inn-hall'], seed=42)

    services = [b for b in layout.buildings if b.service is not None]
    assert [b.interior_id for b in services] == ['smithy', 'inn-hall', None, None]
    assert layout.door_positions == {'smithy': services[0].door_anchor, 'inn-hall': services[1].door_anchor}

    door_x, door_y = services[0].door_anchor
    assert layout.npc_positions['weapon-shop-keeper'] == (door_x + 1, door_y + 1)


def test_town_service_archetypes(market_town):
    layout = layout_town(Bounds(40, 40, 45, 45), market_town, seed=42)
    archetypes = [b.archetype for b in layout.buildings[:4]]
    assert archetypes == ['weapon-shop', 'tavern', 'library', 'weapon-shop']
    for building in layout.buildings:
        assert building.footprint == FOOTPRINTS[building.archetype]


def test_single_service_town_draw_order():
    rng = SeededRNG(8, trace=True)
    layout_town(Bounds(0, 0, 45, 45), _make_town(services=('inn',)), rng=rng)
    assert rng.ops() == ['next', 'next_int']


def test_single_building_ring_radius_stays_bounded():
    assert ring_radius(Bounds(0, 0, 45, 45), 1) == 14


def test_town_slides_buildings_inside_the_limits():
    limits = Bounds(0, 0, 50, 50)
    layout = layout_town(Bounds(0, 0, 45, 45), _make_town(houses=6), seed=5, limits=limits)

    assert len(layout.placements) == 6
    assert not any(isinstance(result, Failed) for result in layout.placements)
    assert len(layout.buildings) == 6
    for building in layout.buildings:
        rect = building.rect
        # door row included
        assert Bounds(rect.x, rect.y, rect.width, rect.height + 1).inside(limits)
        assert limits.contains(building.door_anchor)


def test_failed_service_keeps_its_slot(caplog):
    # A weapon-shop is 25 wide and cannot fit; the tailor's small house can
    town = _make_town(services=('blacksmith', 'tailor'))
    layout = layout_town(Bounds(0, 0, 45, 45), town, interior_ids=['smithy', 'tailor-shop'],
                         seed=3, limits=Bounds(0, 0, 22, 40))

    assert isinstance(layout.placements[0], Failed)
    assert not isinstance(layout.placements[1], Failed)
    assert [b.interior_id for b in layout.buildings] == ['tailor-shop']
    assert layout.door_positions == {'tailor-shop': layout.buildings[0].door_anchor}
    assert layout.missing_doors == ['smithy']
    assert 'blacksmith-keeper' not in layout.npc_positions
    assert 'tailor-keeper' in layout.npc_positions
    assert 'dropped' in caplog.text


def test_slots_beyond_the_services_are_missing():
    layout = layout_town(Bounds(40, 40, 45, 45), _make_town(services=('inn',), houses=2),
                         interior_ids=['inn-hall', 'cellar', 'attic'], seed=1)

    assert list(layout.door_positions) == ['inn-hall']
    assert layout.missing_doors == ['cellar', 'attic']


@pytest.mark.parametrize('seed', range(8))
def test_placed_buildings_never_touch(market_town, seed):
    layout = layout_town(Bounds(40, 40, 45, 45), market_town, seed=seed)

    clean = [b for b, result in zip(layout.buildings, layout.placements) if isinstance(result, Placed)]
    for i, first in enumerate(clean):
        for second in clean[i + 1:]:
            assert not first.rect.intersects(second.rect, gap=BUILDING_GAP)


def test_full_town_verifies(market_town):
    layout = layout_town(Bounds(40, 40, 45, 45), market_town, seed=42)
    assert len(layout.buildings) == 7

    grid = create_collision_grid(130, 130)
    for building in layout.buildings:
        rect = building.rect
        mark_area(grid, rect.x, rect.y, rect.width, rect.height, BLOCKED)

    targets = [(f"door-{i}", b.door_anchor) for i, b in enumerate(layout.buildings)]
    report = verify_traversal(grid, layout.entry_anchors, targets, level='organism', subject='market-town')

    assert report.passed
    assert report.disconnected_zones == []
