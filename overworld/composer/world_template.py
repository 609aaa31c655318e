"""
World templates: the shape of a nested world.

A shop, an inn, a dungeon and a fortress are all worlds. A template says
how many regions such a world has and how they connect; a WorldInstance
fills the template's slots (keeper NPC, theme, floor count...) and hangs
off an anchor's world slot in the parent region.

Layouts:
    single         one region (shops, residences)
    linear         N regions in a row (dungeon floors)
    hub-and-spoke  a central hall with N wings (markets)
    branching      named regions with explicit, sometimes gated, links
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from overworld.composer.errors import DDLError

# ============================================================================
# LAYOUTS
# ============================================================================

@dataclass(frozen=True)
class SingleLayout:
    archetype: str
    size: str = 'small'  # tiny | small | medium | large
    type: str = field(default='single', init=False)


@dataclass(frozen=True)
class LinearLayout:
    archetype: str
    connection_type: str  # stairs | door | portal | corridor
    region_count: Tuple[int, int]  # (min, max)
    type: str = field(default='linear', init=False)


@dataclass(frozen=True)
class HubAndSpokeLayout:
    hub_archetype: str
    spoke_archetype: str
    connection_type: str  # archway | door | corridor
    spoke_count: Tuple[int, int]  # (min, max)
    type: str = field(default='hub-and-spoke', init=False)


@dataclass(frozen=True)
class BranchRegion:
    id: str
    name: str
    archetype: str


@dataclass(frozen=True)
class BranchConnection:
    from_region: str
    to_region: str
    type: str  # door | corridor | stairs | gate
    condition: Optional[str] = None


@dataclass(frozen=True)
class BranchingLayout:
    regions: Tuple[BranchRegion, ...]
    connections: Tuple[BranchConnection, ...]
    type: str = field(default='branching', init=False)


TemplateLayout = Union[SingleLayout, LinearLayout, HubAndSpokeLayout, BranchingLayout]


# ============================================================================
# TEMPLATES AND INSTANCES
# ============================================================================

@dataclass(frozen=True)
class TemplateSlot:
    """A customizable value an instance may (or must) provide."""
    id: str
    name: str
    type: str
    required: bool
    default: Any = None
    options: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class WorldTemplate:
    id: str
    category: str
    description: str
    layout: TemplateLayout
    slots: Tuple[TemplateSlot, ...]
    defaults: Dict[str, Any] = field(default_factory=dict)

    def slot(self, slot_id: str) -> Optional[TemplateSlot]:
        for slot in self.slots:
            if slot.id == slot_id:
                return slot
        return None


@dataclass(frozen=True)
class WorldInstance:
    """A configured world: a template plus slot values, hung off a parent anchor."""
    id: str
    name: str
    template_id: str
    parent_anchor: str
    slot_values: Dict[str, Any] = field(default_factory=dict)
    biome: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data, context='instance'):
        if not isinstance(data, dict):
            raise DDLError(f"{context}: expected an object, got {type(data).__name__}")
        for key in ('id', 'templateId', 'parentAnchor'):
            if data.get(key) is None:
                raise DDLError(f"{context}: missing required field '{key}'")
        slot_values = data.get('slotValues') or {}
        if not isinstance(slot_values, dict):
            raise DDLError(f"instance '{data['id']}': 'slotValues' must be an object")
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            template_id=data['templateId'],
            parent_anchor=data['parentAnchor'],
            slot_values=dict(slot_values),
            biome=data.get('biome'),
            properties=dict(data.get('properties') or {}),
        )


# ============================================================================
# BUILT-IN TEMPLATES
# ============================================================================

WORLD_TEMPLATES = [
    WorldTemplate(
        id='shop-single',
        category='Commerce',
        description='Single-room shop: one keeper, one inventory, one door',
        layout=SingleLayout(archetype='weapon-shop', size='small'),
        slots=(
            TemplateSlot('keeper', 'Shopkeeper', 'npc', required=True),
            TemplateSlot('shop-type', 'Shop Type', 'inventory', required=True, options=(
                'weapons', 'armor', 'general', 'magic', 'fish', 'herbs',
                'tailor', 'cartographer', 'huntmaster',
            )),
            TemplateSlot('theme', 'Decor Theme', 'theme', required=False, default='standard'),
        ),
    ),
    WorldTemplate(
        id='inn',
        category='Hospitality',
        description='Inn or tavern: ground floor tavern plus an optional upper floor of rooms',
        layout=LinearLayout(archetype='tavern', connection_type='stairs', region_count=(1, 2)),
        slots=(
            TemplateSlot('innkeeper', 'Innkeeper', 'npc', required=True),
            TemplateSlot('rooms', 'Room Count', 'count', required=False, default=3),
            TemplateSlot('style', 'Tavern Style', 'theme', required=False, default='rustic'),
        ),
    ),
    WorldTemplate(
        id='residence',
        category='Residential',
        description='Private home with personal belongings and dialogue triggers',
        layout=SingleLayout(archetype='house-small', size='small'),
        slots=(
            TemplateSlot('resident', 'Resident', 'npc', required=True),
            TemplateSlot('theme', 'Home Style', 'theme', required=False, default='humble'),
        ),
    ),
    WorldTemplate(
        id='dungeon',
        category='Dungeon',
        description='Linear dungeon: N floors connected by stairs, difficulty rising',
        layout=LinearLayout(archetype='dungeon-room', connection_type='stairs', region_count=(1, 10)),
        slots=(
            TemplateSlot('floor-count', 'Number of Floors', 'count', required=True),
            TemplateSlot('theme', 'Dungeon Theme', 'theme', required=True,
                         options=('crystal', 'water', 'shadow', 'fire', 'void')),
            TemplateSlot('boss', 'Boss Enemy', 'boss', required=False),
            TemplateSlot('encounters', 'Encounter Set', 'enemy-set', required=False),
        ),
    ),
    WorldTemplate(
        id='fortress',
        category='Fortress',
        description='Branching fortress: named areas joined by corridors, some gated',
        layout=BranchingLayout(
            regions=(
                BranchRegion('entrance', 'Entrance Hall', 'castle-room'),
                BranchRegion('gallery', 'Gallery', 'castle-room'),
                BranchRegion('archive', 'Archive', 'library'),
                BranchRegion('throne', 'Throne Room', 'castle-room'),
                BranchRegion('arena', 'Boss Arena', 'castle-room'),
            ),
            connections=(
                BranchConnection('entrance', 'gallery', 'corridor'),
                BranchConnection('entrance', 'archive', 'corridor'),
                BranchConnection('gallery', 'throne', 'gate', condition='gallery-key'),
                BranchConnection('archive', 'throne', 'gate', condition='archive-key'),
                BranchConnection('throne', 'arena', 'door', condition='throne-cleared'),
            ),
        ),
        slots=(
            TemplateSlot('theme', 'Fortress Theme', 'theme', required=True),
            TemplateSlot('boss', 'Final Boss', 'boss', required=True),
            TemplateSlot('guards', 'Guard Set', 'enemy-set', required=False),
        ),
    ),
    WorldTemplate(
        id='market',
        category='Commerce',
        description='Market hall: central hub plus N shop wings, each a different vendor',
        layout=HubAndSpokeLayout(hub_archetype='house-medium', spoke_archetype='weapon-shop',
                                 connection_type='archway', spoke_count=(2, 8)),
        slots=(
            TemplateSlot('greeter', 'Market Greeter', 'npc', required=False),
            TemplateSlot('wings', 'Market Wings', 'feature', required=True, options=(
                'armorer', 'herbalist', 'tailor', 'jeweler', 'bookshop',
                'enchanter', 'alchemist', 'weaponsmith',
            )),
        ),
    ),
]

_TEMPLATES_BY_ID = {template.id: template for template in WORLD_TEMPLATES}


def get_world_template(template_id: str) -> Optional[WorldTemplate]:
    return _TEMPLATES_BY_ID.get(template_id)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_world_instance(instance: WorldInstance, template: WorldTemplate) -> List[str]:
    """
    Check an instance's slot values against its template.

    String values of option-constrained slots must be one of the options;
    list values are checked item by item. Linear layouts also bound the
    'floor-count' (or 'region-count') value.

    Returns:
        List of error messages, empty when the instance is valid
    """
    errors = []
    values = instance.slot_values

    for slot in template.slots:
        if slot.required and slot.id not in values:
            errors.append(f"Required slot \"{slot.id}\" not provided in instance \"{instance.id}\"")

        if slot.options and slot.id in values:
            value = values[slot.id]
            candidates = value if isinstance(value, list) else [value]
            for candidate in candidates:
                if isinstance(candidate, str) and candidate not in slot.options:
                    errors.append(
                        f"Slot \"{slot.id}\" value \"{candidate}\" not in allowed options: "
                        f"{', '.join(slot.options)}"
                    )

    if isinstance(template.layout, LinearLayout):
        count = values.get('floor-count', values.get('region-count'))
        low, high = template.layout.region_count
        if _is_number(count):
            if count < low:
                errors.append(f"Region count {count} below minimum {low}")
            if count > high:
                errors.append(f"Region count {count} above maximum {high}")

    return errors
