import pytest

from overworld.composer.errors import DDLError
from overworld.composer.world_template import (
    BranchingLayout, HubAndSpokeLayout, LinearLayout, SingleLayout, WORLD_TEMPLATES, WorldInstance,
    get_world_template, validate_world_instance
)


def _make_instance(template_id, slot_values, instance_id='test-instance'):
    return WorldInstance.from_dict({
        'id': instance_id,
        'templateId': template_id,
        'parentAnchor': 'brookend',
        'slotValues': slot_values,
    })


def test_builtin_templates():
    assert [t.id for t in WORLD_TEMPLATES] == ['shop-single', 'inn', 'residence', 'dungeon', 'fortress', 'market']
    assert isinstance(get_world_template('shop-single').layout, SingleLayout)
    assert isinstance(get_world_template('dungeon').layout, LinearLayout)
    assert isinstance(get_world_template('market').layout, HubAndSpokeLayout)
    assert get_world_template('missing') is None


def test_layout_type_tags():
    assert get_world_template('residence').layout.type == 'single'
    assert get_world_template('inn').layout.type == 'linear'
    assert get_world_template('market').layout.type == 'hub-and-spoke'

    fortress = get_world_template('fortress').layout
    assert isinstance(fortress, BranchingLayout)
    assert fortress.type == 'branching'
    gated = [c for c in fortress.connections if c.condition]
    assert {c.to_region for c in gated} == {'throne', 'arena'}


def test_template_slot_lookup():
    template = get_world_template('dungeon')
    assert template.slot('theme').required
    assert template.slot('boss').required is False
    assert template.slot('nope') is None


def test_valid_instance_has_no_errors():
    instance = _make_instance('shop-single', {'keeper': 'smith', 'shop-type': 'weapons'})
    assert validate_world_instance(instance, get_world_template('shop-single')) == []


def test_missing_required_slot():
    instance = _make_instance('shop-single', {'shop-type': 'weapons'}, instance_id='forge')
    errors = validate_world_instance(instance, get_world_template('shop-single'))
    assert errors == ['Required slot "keeper" not provided in instance "forge"']


def test_option_outside_allowed_set():
    instance = _make_instance('shop-single', {'keeper': 'smith', 'shop-type': 'pets'})
    errors = validate_world_instance(instance, get_world_template('shop-single'))
    assert len(errors) == 1
    assert errors[0].startswith('Slot "shop-type" value "pets" not in allowed options: weapons, armor')


def test_list_values_are_checked_item_by_item():
    instance = _make_instance('market', {'wings': ['armorer', 'florist', 'tailor']})
    errors = validate_world_instance(instance, get_world_template('market'))
    assert len(errors) == 1
    assert '"florist"' in errors[0]


@pytest.mark.parametrize('floors, expected', [
    (3, []),
    (0, ['Region count 0 below minimum 1']),
    (12, ['Region count 12 above maximum 10']),
])
def test_dungeon_floor_count_bounds(floors, expected):
    instance = _make_instance('dungeon', {'floor-count': floors, 'theme': 'shadow'})
    assert validate_world_instance(instance, get_world_template('dungeon')) == expected


def test_instance_requires_template_and_parent():
    with pytest.raises(DDLError):
        WorldInstance.from_dict({'id': 'lost', 'parentAnchor': 'brookend'})
    with pytest.raises(DDLError):
        WorldInstance.from_dict({'id': 'lost', 'templateId': 'inn'})
    with pytest.raises(DDLError):
        WorldInstance.from_dict({'id': 'lost', 'templateId': 'inn', 'parentAnchor': 'x', 'slotValues': [1]})


def test_instance_defaults():
    instance = _make_instance('residence', {'resident': 'hermit'})
    assert instance.name == 'test-instance'
    assert instance.biome is None
    assert instance.properties == {}
