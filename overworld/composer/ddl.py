"""
World declaration data model.

The declaration is a top-down hierarchy:

    WORLD
      └── REGIONS (biome, time budget, connective tissue)
           └── ANCHORS (towns, dungeons, landmarks)
                ├── TOWNS (services + houses, laid out by the organisms)
                └── INTERIORS / WORLD SLOTS (the only real transitions)

Every type has a `from_dict` accepting the camelCase JSON shape used on
disk. Parsing is strict: a missing required field or an anchor whose
payload does not match its type raises DDLError. Once built the objects
are treated as read-only.

USAGE:
    region = RegionDefinition.from_dict(json.load(f))
    metrics = calculate_region_metrics(region)
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from overworld.config import (
    WALK_SPEED_TPS, SECONDS_PER_MINUTE, SCREEN_TRAVERSAL_TILES,
    DIALOGUE_SHARE, COMBAT_SHARE, DEFAULT_ENCOUNTER_STEPS
)
from overworld.composer.errors import DDLError
from overworld.composer.grid import round_half_up

CONNECTION_TYPES = ('adjacent', 'gate', 'ferry', 'portal')
DIRECTIONS = ('north', 'south', 'east', 'west')
DIFFICULTIES = ('easy', 'medium', 'hard', 'extreme')
POSITION_HINTS = ('start', 'middle', 'end', 'side')
TOWN_SIZES = ('hamlet', 'village', 'town', 'city')
LANDMARK_KINDS = ('shrine', 'fortress', 'camp', 'landmark', 'gate')
ANCHOR_TYPES = ('town', 'dungeon') + LANDMARK_KINDS
WILD_PLACEMENTS = ('near-path', 'off-path', 'hidden')

Position = Union[str, Tuple[int, int]]


# ============================================================================
# PARSING HELPERS
# ============================================================================

def _expect_mapping(data: Any, context: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise DDLError(f"{context}: expected an object, got {type(data).__name__}")
    return data


def _require(data: Dict[str, Any], key: str, context: str) -> Any:
    if key not in data or data[key] is None:
        raise DDLError(f"{context}: missing required field '{key}'")
    return data[key]


def _choice(value: Any, allowed: Tuple[str, ...], what: str, context: str) -> str:
    if value not in allowed:
        raise DDLError(f"{context}: invalid {what} {value!r} (expected one of {', '.join(allowed)})")
    return value


def _pair(value: Any, what: str, context: str) -> Tuple[int, int]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise DDLError(f"{context}: {what} must be a two-element list, got {value!r}")
    try:
        return (int(value[0]), int(value[1]))
    except (TypeError, ValueError):
        raise DDLError(f"{context}: {what} must hold numbers, got {value!r}") from None


def _list_of(data: Dict[str, Any], key: str, parser, context: str) -> list:
    items = data.get(key) or []
    if not isinstance(items, list):
        raise DDLError(f"{context}: '{key}' must be a list")
    return [parser(item, f"{context}.{key}[{i}]") for i, item in enumerate(items)]


# ============================================================================
# WORLD LEVEL
# ============================================================================

@dataclass(frozen=True)
class WorldProperties:
    start_region: str
    start_anchor: str
    vibrancy_system: bool = False

    @classmethod
    def from_dict(cls, data, context='properties'):
        data = _expect_mapping(data, context)
        return cls(
            start_region=_require(data, 'startRegion', context),
            start_anchor=_require(data, 'startAnchor', context),
            vibrancy_system=bool(data.get('vibrancySystem', False)),
        )


@dataclass(frozen=True)
class RegionConnection:
    """How two regions join geographically."""
    from_region: str
    to_region: str
    connection_type: str
    condition: Optional[str] = None
    direction: Optional[str] = None

    @classmethod
    def from_dict(cls, data, context='connection'):
        data = _expect_mapping(data, context)
        direction = data.get('direction')
        if direction is not None:
            _choice(direction, DIRECTIONS, 'direction', context)
        return cls(
            from_region=_require(data, 'from', context),
            to_region=_require(data, 'to', context),
            connection_type=_choice(
                _require(data, 'connectionType', context), CONNECTION_TYPES, 'connection type', context
            ),
            condition=data.get('condition'),
            direction=direction,
        )


# ============================================================================
# CONNECTIVE TISSUE
# ============================================================================

@dataclass(frozen=True)
class WildFeature:
    type: str
    count: int
    placement: str

    @classmethod
    def from_dict(cls, data, context='wildFeature'):
        data = _expect_mapping(data, context)
        return cls(
            type=_require(data, 'type', context),
            count=int(_require(data, 'count', context)),
            placement=_choice(_require(data, 'placement', context), WILD_PLACEMENTS, 'placement', context),
        )


@dataclass(frozen=True)
class BarrierDefinition:
    between: Tuple[str, str]
    type: str
    condition: str

    @classmethod
    def from_dict(cls, data, context='barrier'):
        data = _expect_mapping(data, context)
        between = _require(data, 'between', context)
        if not isinstance(between, (list, tuple)) or len(between) != 2:
            raise DDLError(f"{context}: 'between' must name two anchors")
        return cls(
            between=(str(between[0]), str(between[1])),
            type=_require(data, 'type', context),
            condition=_require(data, 'condition', context),
        )


@dataclass(frozen=True)
class ConnectiveTissueRules:
    """Rules for the outdoor space between anchors."""
    path_density: str
    safe_path_ratio: float
    safe_zone_interval: Optional[float] = None  # minutes of walk time
    wild_features: List[WildFeature] = field(default_factory=list)
    barriers: List[BarrierDefinition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data, context='connectiveTissue'):
        data = _expect_mapping(data, context)
        return cls(
            path_density=_require(data, 'pathDensity', context),
            safe_path_ratio=float(_require(data, 'safePathRatio', context)),
            safe_zone_interval=data.get('safeZoneInterval'),
            wild_features=_list_of(data, 'wildFeatures', WildFeature.from_dict, context),
            barriers=_list_of(data, 'barriers', BarrierDefinition.from_dict, context),
        )


@dataclass(frozen=True)
class EncounterConfig:
    enemies: List[str]
    level_range: Tuple[int, int]
    average_steps_between_encounters: int = DEFAULT_ENCOUNTER_STEPS
    rate_modifier: Optional[float] = None

    @classmethod
    def from_dict(cls, data, context='encounters'):
        data = _expect_mapping(data, context)
        return cls(
            enemies=list(data.get('enemies') or []),
            level_range=_pair(_require(data, 'levelRange', context), 'levelRange', context),
            average_steps_between_encounters=int(
                data.get('averageStepsBetweenEncounters', DEFAULT_ENCOUNTER_STEPS)
            ),
            rate_modifier=data.get('rateModifier'),
        )


@dataclass(frozen=True)
class WeatherConfig:
    default: str
    dynamic: bool = False

    @classmethod
    def from_dict(cls, data, context='weather'):
        data = _expect_mapping(data, context)
        return cls(default=_require(data, 'default', context), dynamic=bool(data.get('dynamic', False)))


# ============================================================================
# ANCHOR PAYLOADS
# ============================================================================

@dataclass(frozen=True)
class AnchorNpc:
    id: str
    role: str
    placement: str

    @classmethod
    def from_dict(cls, data, context='npc'):
        data = _expect_mapping(data, context)
        return cls(
            id=_require(data, 'id', context),
            role=data.get('role', ''),
            placement=data.get('placement', 'center'),
        )


@dataclass(frozen=True)
class AnchorEvent:
    id: str
    trigger: str
    repeat: str
    description: str
    quest: Optional[str] = None

    @classmethod
    def from_dict(cls, data, context='event'):
        data = _expect_mapping(data, context)
        return cls(
            id=_require(data, 'id', context),
            trigger=data.get('trigger', 'action'),
            repeat=data.get('repeat', 'once'),
            description=data.get('description', ''),
            quest=data.get('quest'),
        )


@dataclass(frozen=True)
class WorldSlot:
    """Door from an anchor into a nested world instance."""
    instance_id: str
    transition_type: str = 'door'
    entry_region: Optional[str] = None
    condition: Optional[str] = None

    @classmethod
    def from_dict(cls, data, context='worldSlot'):
        data = _expect_mapping(data, context)
        return cls(
            instance_id=_require(data, 'instanceId', context),
            transition_type=data.get('transitionType', 'door'),
            entry_region=data.get('entryRegion'),
            condition=data.get('condition'),
        )


@dataclass(frozen=True)
class TownService:
    type: str
    keeper_npc: Optional[str] = None
    building_name: Optional[str] = None
    quests: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data, context='service'):
        data = _expect_mapping(data, context)
        return cls(
            type=_require(data, 'type', context),
            keeper_npc=data.get('keeperNpc'),
            building_name=data.get('buildingName'),
            quests=list(data.get('quests') or []),
        )


@dataclass(frozen=True)
class TownDefinition:
    size: str
    services: List[TownService] = field(default_factory=list)
    houses: int = 0
    central_feature: Optional[str] = None
    walled: bool = False
    map_size: Optional[Tuple[int, int]] = None
    road_style: Optional[str] = None

    @classmethod
    def from_dict(cls, data, context='town'):
        data = _expect_mapping(data, context)
        map_size = data.get('mapSize')
        return cls(
            size=_choice(_require(data, 'size', context), TOWN_SIZES, 'town size', context),
            services=_list_of(data, 'services', TownService.from_dict, context),
            houses=int(data.get('houses', 0)),
            central_feature=data.get('centralFeature'),
            walled=bool(data.get('walled', False)),
            map_size=_pair(map_size, 'mapSize', context) if map_size is not None else None,
            road_style=data.get('roadStyle'),
        )


@dataclass(frozen=True)
class DungeonDefinition:
    floors: int
    theme: str
    boss: Optional[str] = None
    reward: Optional[str] = None
    interiors: List[str] = field(default_factory=list)
    world_slots: List[WorldSlot] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data, context='dungeon'):
        data = _expect_mapping(data, context)
        return cls(
            floors=int(_require(data, 'floors', context)),
            theme=_require(data, 'theme', context),
            boss=data.get('boss'),
            reward=data.get('reward'),
            interiors=list(data.get('interiors') or []),
            world_slots=_list_of(data, 'worldSlots', WorldSlot.from_dict, context),
        )


# Anchor sites: exactly one payload per anchor kind

@dataclass(frozen=True)
class TownSite:
    town: TownDefinition

    @property
    def type(self) -> str:
        return 'town'


@dataclass(frozen=True)
class DungeonSite:
    dungeon: DungeonDefinition

    @property
    def type(self) -> str:
        return 'dungeon'


@dataclass(frozen=True)
class LandmarkSite:
    kind: str

    @property
    def type(self) -> str:
        return self.kind


AnchorSite = Union[TownSite, DungeonSite, LandmarkSite]


def _parse_site(data: Dict[str, Any], context: str) -> AnchorSite:
    anchor_type = _choice(_require(data, 'type', context), ANCHOR_TYPES, 'anchor type', context)

    if anchor_type != 'town' and data.get('town') is not None:
        raise DDLError(f"{context}: '{anchor_type}' anchor must not carry a town payload")
    if anchor_type != 'dungeon' and data.get('dungeon') is not None:
        raise DDLError(f"{context}: '{anchor_type}' anchor must not carry a dungeon payload")

    if anchor_type == 'town':
        return TownSite(TownDefinition.from_dict(_require(data, 'town', context), f"{context}.town"))
    if anchor_type == 'dungeon':
        return DungeonSite(DungeonDefinition.from_dict(_require(data, 'dungeon', context), f"{context}.dungeon"))
    return LandmarkSite(anchor_type)


def _parse_position(value: Any, context: str) -> Position:
    if isinstance(value, str):
        return _choice(value, POSITION_HINTS, 'position hint', context)
    return _pair(value, 'position', context)


@dataclass(frozen=True)
class AnchorDefinition:
    """
    Something that gives a region purpose.

    `site` carries the kind-specific payload; `type` is its tag.
    """
    id: str
    name: str
    site: AnchorSite
    position: Position = 'middle'
    importance: str = 'minor'
    quests: List[str] = field(default_factory=list)
    npcs: List[AnchorNpc] = field(default_factory=list)
    events: List[AnchorEvent] = field(default_factory=list)
    interiors: List[str] = field(default_factory=list)
    world_slots: List[WorldSlot] = field(default_factory=list)

    @property
    def type(self) -> str:
        return self.site.type

    @property
    def town(self) -> Optional[TownDefinition]:
        return self.site.town if isinstance(self.site, TownSite) else None

    @property
    def dungeon(self) -> Optional[DungeonDefinition]:
        return self.site.dungeon if isinstance(self.site, DungeonSite) else None

    @classmethod
    def from_dict(cls, data, context='anchor'):
        data = _expect_mapping(data, context)
        anchor_id = _require(data, 'id', context)
        context = f"anchor '{anchor_id}'"
        return cls(
            id=anchor_id,
            name=data.get('name', anchor_id),
            site=_parse_site(data, context),
            position=_parse_position(data.get('position', 'middle'), context),
            importance=data.get('importance', 'minor'),
            quests=list(data.get('quests') or []),
            npcs=_list_of(data, 'npcs', AnchorNpc.from_dict, context),
            events=_list_of(data, 'events', AnchorEvent.from_dict, context),
            interiors=list(data.get('interiors') or []),
            world_slots=_list_of(data, 'worldSlots', WorldSlot.from_dict, context),
        )


# ============================================================================
# REGION AND WORLD
# ============================================================================

@dataclass(frozen=True)
class RegionDefinition:
    """Biome zone with a play-time budget and its anchors."""
    id: str
    name: str
    biome: str
    acts: List[int]
    play_time_minutes: float
    difficulty: str
    anchors: List[AnchorDefinition]
    connective_tissue: ConnectiveTissueRules
    encounters: Optional[EncounterConfig] = None
    ambient_music: Optional[str] = None
    weather: Optional[WeatherConfig] = None
    start_vibrancy: Optional[float] = None

    def anchor(self, anchor_id: str) -> Optional[AnchorDefinition]:
        for anchor in self.anchors:
            if anchor.id == anchor_id:
                return anchor
        return None

    @classmethod
    def from_dict(cls, data, context='region'):
        data = _expect_mapping(data, context)
        region_id = _require(data, 'id', context)
        context = f"region '{region_id}'"
        encounters = data.get('encounters')
        weather = data.get('weather')
        return cls(
            id=region_id,
            name=data.get('name', region_id),
            biome=_require(data, 'biome', context),
            acts=list(data.get('acts') or []),
            play_time_minutes=_require(data, 'playTimeMinutes', context),
            difficulty=_choice(_require(data, 'difficulty', context), DIFFICULTIES, 'difficulty', context),
            anchors=_list_of(data, 'anchors', AnchorDefinition.from_dict, context),
            connective_tissue=ConnectiveTissueRules.from_dict(
                _require(data, 'connectiveTissue', context), f"{context}.connectiveTissue"
            ),
            encounters=EncounterConfig.from_dict(encounters, f"{context}.encounters") if encounters else None,
            ambient_music=data.get('ambientMusic'),
            weather=WeatherConfig.from_dict(weather, f"{context}.weather") if weather else None,
            start_vibrancy=data.get('startVibrancy'),
        )


@dataclass(frozen=True)
class WorldDefinition:
    name: str
    properties: WorldProperties
    regions: List[RegionDefinition]
    region_connections: List[RegionConnection] = field(default_factory=list)

    def region(self, region_id: str) -> Optional[RegionDefinition]:
        for region in self.regions:
            if region.id == region_id:
                return region
        return None

    @property
    def region_ids(self) -> List[str]:
        return [region.id for region in self.regions]

    @classmethod
    def from_dict(cls, data, context='world'):
        data = _expect_mapping(data, context)
        return cls(
            name=_require(data, 'name', context),
            properties=WorldProperties.from_dict(_require(data, 'properties', context)),
            regions=_list_of(data, 'regions', RegionDefinition.from_dict, context),
            region_connections=_list_of(data, 'regionConnections', RegionConnection.from_dict, context),
        )


# ============================================================================
# INTERIORS
# ============================================================================

@dataclass(frozen=True)
class InteriorTransition:
    to: str
    type: str


@dataclass(frozen=True)
class InteriorDefinition:
    """One interior map stamped from an archetype."""
    id: str
    archetype: str
    name: Optional[str] = None
    parent_anchor: Optional[str] = None
    floor: Optional[int] = None
    theme: Optional[str] = None
    npcs: List[AnchorNpc] = field(default_factory=list)
    objects: List[str] = field(default_factory=list)
    enemies: List[str] = field(default_factory=list)
    boss: Optional[str] = None
    transitions: Dict[str, InteriorTransition] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data, context='interior'):
        data = _expect_mapping(data, context)
        interior_id = _require(data, 'id', context)
        context = f"interior '{interior_id}'"

        transitions = {}
        for key, value in (data.get('transitions') or {}).items():
            value = _expect_mapping(value, f"{context}.transitions.{key}")
            transitions[key] = InteriorTransition(
                to=_require(value, 'to', f"{context}.transitions.{key}"),
                type=value.get('type', 'door'),
            )

        return cls(
            id=interior_id,
            archetype=_require(data, 'archetype', context),
            name=data.get('name'),
            parent_anchor=data.get('parentAnchor'),
            floor=data.get('floor'),
            theme=data.get('theme'),
            npcs=_list_of(data, 'npcs', AnchorNpc.from_dict, context),
            objects=list(data.get('objects') or []),
            enemies=list(data.get('enemies') or []),
            boss=data.get('boss'),
            transitions=transitions,
        )


# ============================================================================
# CHRONOMETER
# ============================================================================

@dataclass(frozen=True)
class RegionMetrics:
    """Time budget translated into walking distance and map count."""
    total_walking_tiles: int
    outdoor_screens: int
    estimated_encounters: int
    safe_zone_count: int
    anchor_count: int
    avg_maps_per_connection: int


def calculate_region_metrics(region: RegionDefinition) -> RegionMetrics:
    """
    Derive walking distance and outdoor screen count from a region's
    play-time budget and difficulty.

    Args:
        region: Region to measure

    Returns:
        RegionMetrics for the region
    """
    total_seconds = region.play_time_minutes * SECONDS_PER_MINUTE
    combat_share = COMBAT_SHARE.get(region.difficulty, COMBAT_SHARE['extreme'])
    exploration_share = 1 - combat_share - DIALOGUE_SHARE

    walking_seconds = total_seconds * exploration_share
    total_walking_tiles = round_half_up(walking_seconds * WALK_SPEED_TPS)
    outdoor_screens = max(1, math.ceil(total_walking_tiles / SCREEN_TRAVERSAL_TILES))

    encounter_steps = (
        region.encounters.average_steps_between_encounters
        if region.encounters else DEFAULT_ENCOUNTER_STEPS
    )
    estimated_encounters = round_half_up(total_walking_tiles / encounter_steps)

    interval = region.connective_tissue.safe_zone_interval
    safe_zone_count = math.floor(region.play_time_minutes / interval) if interval else 0

    return RegionMetrics(
        total_walking_tiles=total_walking_tiles,
        outdoor_screens=outdoor_screens,
        estimated_encounters=estimated_encounters,
        safe_zone_count=safe_zone_count,
        anchor_count=len(region.anchors),
        avg_maps_per_connection=max(
            1, round_half_up(outdoor_screens / max(1, len(region.anchors) - 1))
        ),
    )


def world_slot_ids(anchor: AnchorDefinition) -> List[str]:
    """Instance ids of the anchor's world slots, then its dungeon's."""
    ids = [slot.instance_id for slot in anchor.world_slots]
    if anchor.dungeon is not None:
        ids.extend(slot.instance_id for slot in anchor.dungeon.world_slots)
    return ids


def anchor_interior_ids(anchor: AnchorDefinition) -> List[str]:
    """Interior ids on the anchor, then its dungeon floors."""
    ids = list(anchor.interiors)
    if anchor.dungeon is not None:
        ids.extend(anchor.dungeon.interiors)
    return ids
