"""
World composer: the outermost layer.

1. Load the split declaration (or take an already loaded one)
2. Compose every requested region as one outdoor map, towns embedded
3. Collect interior maps and world instances
4. Wire region connections to exit positions on both maps

USAGE:
    world = compose_world("ddl/", seed=7)
    for region_id, region_map in world.region_maps.items():
        ...
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Union

from overworld.config import ComposerSettings, PerformanceTimer, get_logger, get_composer_logger
from overworld.composer.archetypes import ArchetypeRegistry
from overworld.composer.ddl import AnchorNpc, InteriorDefinition, InteriorTransition, RegionConnection
from overworld.composer.errors import DDLError
from overworld.composer.grid import Point
from overworld.composer.region_composer import RegionExit, RegionMap, compose_region
from overworld.composer.rng import hash_string
from overworld.composer.world_loader import LoadedWorld, load_world_ddl
from overworld.composer.world_template import (
    WorldInstance, WorldTemplate, get_world_template, validate_world_instance
)

logger = get_logger(__name__)

OPPOSITE_DIRECTION = {'north': 'south', 'south': 'north', 'east': 'west', 'west': 'east'}
DEFAULT_EXIT_DIRECTION = 'south'

# Positions used for a connection whose region was not composed in this run
FALLBACK_SOURCE_POSITION = (50, 99)
FALLBACK_TARGET_POSITION = (50, 0)


@dataclass(frozen=True)
class ComposedInterior:
    id: str
    name: str
    archetype: str
    parent_anchor: Optional[str]
    floor: Optional[int] = None
    theme: Optional[str] = None
    npcs: List[AnchorNpc] = field(default_factory=list)
    objects: List[str] = field(default_factory=list)
    transitions: Dict[str, InteriorTransition] = field(default_factory=dict)

    @classmethod
    def from_definition(cls, interior: InteriorDefinition):
        return cls(
            id=interior.id,
            name=interior.name or interior.id,
            archetype=interior.archetype,
            parent_anchor=interior.parent_anchor,
            floor=interior.floor,
            theme=interior.theme,
            npcs=list(interior.npcs),
            objects=list(interior.objects),
            transitions=dict(interior.transitions),
        )


@dataclass(frozen=True)
class ResolvedInstance:
    instance: WorldInstance
    template: WorldTemplate
    errors: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class ResolvedConnection:
    from_region: str
    to_region: str
    type: str
    condition: Optional[str]
    source_position: Point
    target_position: Point


@dataclass
class ComposedWorld:
    name: str
    start_region: str
    start_anchor: str
    region_maps: Dict[str, RegionMap] = field(default_factory=dict)
    interior_maps: Dict[str, ComposedInterior] = field(default_factory=dict)
    instances: Dict[str, ResolvedInstance] = field(default_factory=dict)
    connections: List[ResolvedConnection] = field(default_factory=list)


# ============================================================================
# CONNECTIONS
# ============================================================================

def build_exit_map(connections: Iterable[RegionConnection], region_ids: Iterable[str]) -> Dict[str, List[RegionExit]]:
    """
    Exits per composed region.

    A connection gives its `from` region an exit facing its direction
    (south when undeclared) and its `to` region the mirrored exit back,
    unless the declaration already has the reverse connection. Positions
    are left unset so each region places them on its own map edge.
    """
    connections = list(connections)
    composed = set(region_ids)
    declared = {(c.from_region, c.to_region) for c in connections}
    exits: Dict[str, List[RegionExit]] = {}

    for conn in connections:
        direction = conn.direction or DEFAULT_EXIT_DIRECTION
        if conn.from_region in composed:
            exits.setdefault(conn.from_region, []).append(
                RegionExit(direction, conn.to_region, condition=conn.condition)
            )
        if conn.to_region in composed and (conn.to_region, conn.from_region) not in declared:
            exits.setdefault(conn.to_region, []).append(
                RegionExit(OPPOSITE_DIRECTION[direction], conn.from_region, condition=conn.condition)
            )

    return exits


def _exit_position(region_map: Optional[RegionMap], target: str) -> Optional[Point]:
    if region_map is None:
        return None
    for exit_ in region_map.region_exits:
        if exit_.target_region == target:
            return exit_.position
    return None


def resolve_connections(connections: Iterable[RegionConnection],
                        region_maps: Dict[str, RegionMap]) -> List[ResolvedConnection]:
    """Pair every connection with the exit positions on both composed maps."""
    resolved = []
    for conn in connections:
        source = _exit_position(region_maps.get(conn.from_region), conn.to_region)
        target = _exit_position(region_maps.get(conn.to_region), conn.from_region)
        resolved.append(ResolvedConnection(
            from_region=conn.from_region,
            to_region=conn.to_region,
            type=conn.connection_type,
            condition=conn.condition,
            source_position=source if source is not None else FALLBACK_SOURCE_POSITION,
            target_position=target if target is not None else FALLBACK_TARGET_POSITION,
        ))
    return resolved


def resolve_instances(instances: Dict[str, WorldInstance]) -> Dict[str, ResolvedInstance]:
    resolved = {}
    for instance_id, instance in instances.items():
        template = get_world_template(instance.template_id)
        if template is None:
            raise DDLError(f"instance '{instance_id}': unknown world template '{instance.template_id}'")
        errors = validate_world_instance(instance, template)
        for error in errors:
            logger.warning(f"World instance '{instance_id}': {error}")
        resolved[instance_id] = ResolvedInstance(instance, template, errors)
    return resolved


# ============================================================================
# COMPOSITION
# ============================================================================

def _load(source: Union[str, LoadedWorld]) -> LoadedWorld:
    return source if isinstance(source, LoadedWorld) else load_world_ddl(source)


def region_seed(seed: Optional[int], region_id: str) -> Optional[int]:
    """Per-region seed, or None to let the region fall back to its own default."""
    return seed + hash_string(region_id) if seed is not None else None


def compose_world(source: Union[str, LoadedWorld], registry: Optional[ArchetypeRegistry] = None,
                  seed: Optional[int] = None, regions: Optional[Sequence[str]] = None,
                  settings: Optional[ComposerSettings] = None) -> ComposedWorld:
    """
    Compose the game world.

    Args:
        source: Declaration root directory or a LoadedWorld
        registry: Archetype registry for building reference data
        seed: World seed; each region uses seed + hash_string(region id)
        regions: Only compose these region ids (incremental builds)
        settings: Composer knobs

    Returns:
        ComposedWorld
    """
    loaded = _load(source)
    world = loaded.world

    if regions is not None:
        unknown = [region_id for region_id in regions if world.region(region_id) is None]
        if unknown:
            raise DDLError(f"Unknown regions requested: {', '.join(unknown)}")
        to_compose = [region for region in world.regions if region.id in regions]
    else:
        to_compose = list(world.regions)

    composed = ComposedWorld(
        name=world.name,
        start_region=world.properties.start_region,
        start_anchor=world.properties.start_anchor,
    )

    with PerformanceTimer(logger, f"Compose world '{world.name}'"):
        exit_map = build_exit_map(world.region_connections, [region.id for region in to_compose])

        for region in to_compose:
            composed.region_maps[region.id] = compose_region(
                region, registry,
                seed=region_seed(seed, region.id),
                exits=exit_map.get(region.id, []),
                settings=settings,
            )

        for interior_id, interior in loaded.interiors.items():
            composed.interior_maps[interior_id] = ComposedInterior.from_definition(interior)

        composed.instances = resolve_instances(loaded.instances)
        composed.connections = resolve_connections(world.region_connections, composed.region_maps)

    get_composer_logger().info(
        f"World '{world.name}': {len(composed.region_maps)}/{len(world.regions)} regions, "
        f"{len(composed.interior_maps)} interiors, {len(composed.instances)} instances, "
        f"{len(composed.connections)} connections"
    )
    return composed


def compose_single_region(source: Union[str, LoadedWorld], region_id: str,
                          registry: Optional[ArchetypeRegistry] = None, seed: Optional[int] = None,
                          settings: Optional[ComposerSettings] = None) -> RegionMap:
    """Compose one region with its exits, for incremental builds."""
    world = _load(source).world
    region = world.region(region_id)
    if region is None:
        raise DDLError(f"Region not found: {region_id}")

    exits = build_exit_map(world.region_connections, [region_id]).get(region_id, [])
    return compose_region(region, registry, seed=region_seed(seed, region_id), exits=exits, settings=settings)
