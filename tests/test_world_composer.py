import json
import os

import numpy as np
import pytest

from overworld.composer.ddl import RegionConnection
from overworld.composer.errors import DDLError
from overworld.composer.world_composer import (
    FALLBACK_SOURCE_POSITION, build_exit_map, compose_single_region, compose_world, region_seed
)
from overworld.composer.world_loader import load_world_ddl
from overworld.composer.rng import hash_string
from overworld.verification.traversal import verify_region


def _connection(from_region, to_region, direction=None, condition=None):
    return RegionConnection(from_region, to_region, 'adjacent', condition=condition, direction=direction)


# --- Loader ---

def test_load_world_ddl(ddl_root):
    loaded = load_world_ddl(ddl_root)

    assert loaded.world.name == 'Test World'
    assert loaded.world.region_ids == ['meadow', 'hills']
    assert loaded.world.region('hills').biome == 'mountain'
    assert list(loaded.interiors) == ['shrine-crypt']
    assert loaded.instances['hermit-hut'].template_id == 'residence'


def test_missing_region_file(ddl_root):
    os.remove(os.path.join(ddl_root, 'regions', 'hills.json'))
    with pytest.raises(DDLError) as excinfo:
        load_world_ddl(ddl_root)
    assert 'hills.json' in str(excinfo.value)


def test_broken_json(ddl_root):
    with open(os.path.join(ddl_root, 'world.json'), 'w', encoding='utf-8') as f:
        f.write('{"name": ')
    with pytest.raises(DDLError) as excinfo:
        load_world_ddl(ddl_root)
    assert 'Invalid JSON' in str(excinfo.value)


def test_region_list_must_be_a_list(ddl_root):
    path = os.path.join(ddl_root, 'world.json')
    with open(path, encoding='utf-8') as f:
        data = json.load(f)
    data['regions'] = 'meadow'
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f)

    with pytest.raises(DDLError):
        load_world_ddl(ddl_root)


# --- Exits ---

def test_exit_map_mirrors_connections():
    exits = build_exit_map([_connection('meadow', 'hills', 'east', condition='bridge-fixed')], ['meadow', 'hills'])

    assert [(e.direction, e.target_region) for e in exits['meadow']] == [('east', 'hills')]
    assert [(e.direction, e.target_region) for e in exits['hills']] == [('west', 'meadow')]
    assert exits['hills'][0].condition == 'bridge-fixed'
    assert exits['meadow'][0].position is None


def test_exit_map_skips_mirror_when_reverse_is_declared():
    exits = build_exit_map([
        _connection('meadow', 'hills', 'east'),
        _connection('hills', 'meadow', 'north'),
    ], ['meadow', 'hills'])

    assert [e.direction for e in exits['meadow']] == ['east']
    assert [e.direction for e in exits['hills']] == ['north']


def test_exit_map_defaults_to_south_and_ignores_other_regions():
    exits = build_exit_map([_connection('meadow', 'coast')], ['meadow'])
    assert [e.direction for e in exits['meadow']] == ['south']
    assert 'coast' not in exits


def test_region_seed():
    assert region_seed(None, 'meadow') is None
    assert region_seed(0, 'meadow') == hash_string('meadow')
    assert region_seed(5, 'meadow') == 5 + hash_string('meadow')


# --- Whole world ---

def test_compose_world(ddl_root):
    world = compose_world(ddl_root, seed=1)

    assert world.name == 'Test World'
    assert (world.start_region, world.start_anchor) == ('meadow', 'old-shrine')
    assert list(world.region_maps) == ['meadow', 'hills']
    assert world.interior_maps['shrine-crypt'].name == 'Shrine Crypt'
    assert world.interior_maps['shrine-crypt'].transitions['up'].to == 'meadow'
    assert world.instances['hermit-hut'].valid

    for region_map in world.region_maps.values():
        assert verify_region(region_map).passed


def test_connections_use_exit_positions(ddl_root):
    world = compose_world(ddl_root, seed=1)

    meadow_exit = world.region_maps['meadow'].region_exits[0]
    hills_exit = world.region_maps['hills'].region_exits[0]
    assert (meadow_exit.direction, hills_exit.direction) == ('east', 'west')
    # both edge midpoints are nudged one ring inward to fit the road band
    assert meadow_exit.position == (78, 39)
    assert hills_exit.position == (1, 39)

    conn = world.connections[0]
    assert (conn.from_region, conn.to_region, conn.type) == ('meadow', 'hills', 'adjacent')
    assert conn.source_position == meadow_exit.position
    assert conn.target_position == hills_exit.position


def test_partial_world_uses_fallback_positions(ddl_root):
    world = compose_world(ddl_root, seed=1, regions=['hills'])

    assert list(world.region_maps) == ['hills']
    assert world.connections[0].source_position == FALLBACK_SOURCE_POSITION
    assert world.connections[0].target_position == (1, 39)


def test_unknown_region_requested(ddl_root):
    with pytest.raises(DDLError) as excinfo:
        compose_world(ddl_root, regions=['swamp'])
    assert 'swamp' in str(excinfo.value)


def test_single_region_matches_world_build(ddl_root):
    loaded = load_world_ddl(ddl_root)
    alone = compose_single_region(loaded, 'hills', seed=3)
    together = compose_world(loaded, seed=3).region_maps['hills']

    assert np.array_equal(alone.grid.data, together.grid.data)
    assert alone.region_exits == together.region_exits


def test_single_region_not_found(ddl_root):
    with pytest.raises(DDLError):
        compose_single_region(ddl_root, 'swamp')


def test_unknown_instance_template(ddl_root):
    path = os.path.join(ddl_root, 'instances', 'hermit-hut.json')
    with open(path, encoding='utf-8') as f:
        data = json.load(f)
    data['templateId'] = 'castle'
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f)

    with pytest.raises(DDLError):
        compose_world(ddl_root, seed=1)


def test_invalid_instance_is_reported_not_raised(ddl_root):
    path = os.path.join(ddl_root, 'instances', 'hermit-hut.json')
    with open(path, encoding='utf-8') as f:
        data = json.load(f)
    data['slotValues'] = {}
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f)

    resolved = compose_world(ddl_root, seed=1).instances['hermit-hut']
    assert not resolved.valid
    assert resolved.errors == ['Required slot "resident" not provided in instance "hermit-hut"']
