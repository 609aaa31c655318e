import json

import pytest

from overworld.composer.ddl import AnchorDefinition, RegionDefinition


# --- Declaration builders ---

def _make_landmark(anchor_id, kind='shrine', position='middle', npcs=()):
    return {
        'id': anchor_id,
        'name': anchor_id.title(),
        'type': kind,
        'position': position,
        'npcs': [{'id': npc, 'role': 'villager', 'placement': 'center'} for npc in npcs],
    }


def _make_hamlet(anchor_id, services=('inn',), houses=2, slots=(), position='middle'):
    return {
        'id': anchor_id,
        'name': anchor_id.title(),
        'type': 'town',
        'position': position,
        'town': {
            'size': 'hamlet',
            'services': [{'type': service, 'keeperNpc': f"{anchor_id}-{service}-keeper"} for service in services],
            'houses': houses,
        },
        'worldSlots': [{'instanceId': slot} for slot in slots],
    }


def _make_region(region_id, anchors, biome='farmland', play_time=0.5, wild_features=(),
                 safe_zone_interval=None):
    tissue = {
        'pathDensity': 'moderate',
        'safePathRatio': 0.6,
        'wildFeatures': list(wild_features),
    }
    if safe_zone_interval is not None:
        tissue['safeZoneInterval'] = safe_zone_interval
    return {
        'id': region_id,
        'name': region_id.title(),
        'biome': biome,
        'acts': [1],
        'playTimeMinutes': play_time,
        'difficulty': 'easy',
        'anchors': list(anchors),
        'connectiveTissue': tissue,
    }


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding='utf-8')


# --- Fixtures ---

@pytest.fixture
def landmark_region_data():
    return _make_region('meadow', [
        _make_landmark('old-shrine', 'shrine', 'start', npcs=('hermit',)),
        _make_landmark('ruined-camp', 'camp', 'end'),
        _make_landmark('watch-post', 'landmark', 'middle'),
    ])


@pytest.fixture
def landmark_region(landmark_region_data):
    return RegionDefinition.from_dict(landmark_region_data)


@pytest.fixture
def ddl_root(tmp_path):
    """A two-region world on disk with one interior and one world instance."""
    root = tmp_path / 'ddl'

    _write(root / 'world.json', {
        'name': 'Test World',
        'properties': {'startRegion': 'meadow', 'startAnchor': 'old-shrine', 'vibrancySystem': False},
        'regions': ['meadow', 'hills'],
        'regionConnections': [
            {'from': 'meadow', 'to': 'hills', 'connectionType': 'adjacent', 'direction': 'east'},
        ],
    })

    meadow = _make_region('meadow', [
        _make_landmark('old-shrine', 'shrine', 'start', npcs=('hermit',)),
        _make_landmark('ruined-camp', 'camp', 'end'),
    ], wild_features=[{'type': 'berry-bush', 'count': 1, 'placement': 'near-path'}])
    meadow['anchors'][0]['interiors'] = ['shrine-crypt']
    _write(root / 'regions' / 'meadow.json', meadow)

    _write(root / 'regions' / 'hills.json', _make_region('hills', [
        _make_landmark('hill-gate', 'gate', 'start'),
        _make_landmark('lookout', 'landmark', 'end'),
    ], biome='mountain'))

    _write(root / 'interiors' / 'shrine-crypt.json', {
        'id': 'shrine-crypt',
        'name': 'Shrine Crypt',
        'archetype': 'castle-room',
        'parentAnchor': 'old-shrine',
        'transitions': {'up': {'to': 'meadow', 'type': 'stairs'}},
    })

    _write(root / 'instances' / 'hermit-hut.json', {
        'id': 'hermit-hut',
        'name': "Hermit's Hut",
        'templateId': 'residence',
        'parentAnchor': 'old-shrine',
        'slotValues': {'resident': 'hermit'},
    })

    return str(root)


@pytest.fixture
def hamlet_anchor():
    return AnchorDefinition.from_dict(
        _make_hamlet('brookend', services=('inn', 'weapon-shop'), houses=2, slots=('brookend-inn',))
    )
