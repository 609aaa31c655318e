import json
import logging
import os

import pytest

from conftest import _make_hamlet

from overworld import main as cli
from overworld.composer.town import FOOTPRINTS
from overworld.main import WorldBuild, parse_args


@pytest.fixture
def quiet_logging(monkeypatch):
    """Keep main() from creating log folders in the project root."""
    monkeypatch.setattr('overworld.config.setup_logging', lambda root: logging.getLogger('Overworld'))


def test_parse_args():
    args = parse_args(['ddl', '--seed', '7', '--region', 'meadow', '--region', 'hills'])
    assert args.ddl_root == 'ddl'
    assert args.seed == 7
    assert args.regions == ['meadow', 'hills']
    assert args.config is None


def test_world_build_passes(ddl_root):
    build = WorldBuild(ddl_root, seed=1)

    assert build.run()
    assert build.ddl_report.passed
    assert build.graph_report.passed
    assert set(build.traversal_reports) == {'meadow', 'hills'}
    assert build.world.instances['hermit-hut'].valid


def test_world_build_single_region(ddl_root):
    build = WorldBuild(ddl_root, seed=1, regions=['hills'])
    assert build.run()
    assert list(build.traversal_reports) == ['hills']


def test_world_build_stops_on_broken_declaration(ddl_root):
    os.remove(os.path.join(ddl_root, 'regions', 'hills.json'))
    build = WorldBuild(ddl_root, seed=1)

    assert not build.run()
    assert build.world is None
    assert build.traversal_reports == {}


def test_disconnected_region_graph_fails_the_build(ddl_root):
    path = os.path.join(ddl_root, 'world.json')
    with open(path, encoding='utf-8') as f:
        data = json.load(f)
    data['regionConnections'] = []
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f)

    build = WorldBuild(ddl_root, seed=1)
    assert not build.run()
    assert build.graph_report.unreachable == ['hills']


def test_unplaced_building_fails_the_build(ddl_root, monkeypatch):
    monkeypatch.setitem(FOOTPRINTS, 'tavern', (200, 200))
    path = os.path.join(ddl_root, 'regions', 'hills.json')
    with open(path, encoding='utf-8') as f:
        data = json.load(f)
    inn = _make_hamlet('hill-inn', services=('inn',), houses=0)
    inn['town']['size'] = 'village'
    data['anchors'].append(inn)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f)

    build = WorldBuild(ddl_root, seed=1)
    assert not build.run()
    assert build.failed_regions == ['hills']
    assert build.world.region_maps['hills'].diagnostics['failed_placements'] == 1


def test_main_exit_codes(ddl_root, quiet_logging):
    assert cli.main([ddl_root, '--seed', '1']) == 0

    os.remove(os.path.join(ddl_root, 'interiors', 'shrine-crypt.json'))
    assert cli.main([ddl_root, '--seed', '1']) == 1


def test_main_reads_settings_file(ddl_root, tmp_path, quiet_logging):
    config = tmp_path / 'composer.json'
    config.write_text('{"composer": {"npc_scatter": 1}}', encoding='utf-8')
    assert cli.main([ddl_root, '--seed', '2', '--config', str(config)]) == 0
