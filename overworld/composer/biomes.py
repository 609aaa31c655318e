"""
Biome recipes.

A biome is the visual theme applied to every map composed in a region:
base ground and patches, road style, scatter objects, path dressing and
the treatment of the map border.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from overworld.composer.errors import UnknownBiomeError


@dataclass(frozen=True)
class ScatterRule:
    object_ref: str
    frequency: float  # average count per 100 tiles
    exclusion_radius: int
    prefer_edges: bool = False
    prefer_paths: bool = False


@dataclass(frozen=True)
class PathDressRule:
    object_ref: str
    placement: str  # alongside | at-junctions | at-ends
    spacing: int


@dataclass(frozen=True)
class GroundVariant:
    terrain: str
    frequency: float
    cluster_size: Tuple[int, int]


@dataclass(frozen=True)
class EdgeTreatment:
    type: str
    depth: int
    gap_for_connections: bool = True


@dataclass(frozen=True)
class BiomeDefinition:
    id: str
    name: str
    base_ground: str
    road_terrain: str
    road_width: int
    default_edge: EdgeTreatment
    ground_variants: List[GroundVariant] = field(default_factory=list)
    path_dress: List[PathDressRule] = field(default_factory=list)
    scatter: List[ScatterRule] = field(default_factory=list)
    scene_template: Optional[str] = None


# ============================================================================
# BIOME TABLE
# ============================================================================

farmland = BiomeDefinition(
    id='farmland', name='Farmland',
    base_ground='ground.grass',
    ground_variants=[
        GroundVariant('ground.dark-grass', 0.15, (3, 8)),
        GroundVariant('ground.light-grass', 0.05, (2, 4)),
    ],
    road_terrain='road.dirt', road_width=3,
    path_dress=[
        PathDressRule('fence.wood-1', 'alongside', 1),
        PathDressRule('prop.lamppost-1', 'at-junctions', 8),
    ],
    scatter=[
        ScatterRule('tree.emerald-3', 4, 3, prefer_edges=True),
        ScatterRule('tree.emerald-2', 2, 3, prefer_edges=True),
        ScatterRule('bush.emerald-1', 3, 2),
        ScatterRule('flower.wild-1', 2, 1),
        ScatterRule('rock.gray-1', 1, 4),
    ],
    default_edge=EdgeTreatment('forest', 3, True),
    scene_template='farm-shore',
)

village = BiomeDefinition(
    id='village', name='Village',
    base_ground='ground.grass',
    ground_variants=[GroundVariant('ground.light-grass', 0.1, (2, 5))],
    road_terrain='road.brick', road_width=3,
    path_dress=[
        PathDressRule('prop.lamppost-1', 'alongside', 8),
        PathDressRule('prop.signpost-1', 'at-junctions', 0),
    ],
    scatter=[
        ScatterRule('tree.emerald-3', 3, 3),
        ScatterRule('bush.emerald-1', 2, 2),
        ScatterRule('flower.garden-1', 3, 1, prefer_paths=True),
    ],
    default_edge=EdgeTreatment('forest', 4, True),
    scene_template='village-bridge',
)

forest = BiomeDefinition(
    id='forest', name='Forest',
    base_ground='ground.dark-grass',
    ground_variants=[
        GroundVariant('ground.grass', 0.2, (3, 6)),
        GroundVariant('ground.dirt', 0.05, (2, 3)),
    ],
    road_terrain='road.dirt', road_width=2,
    scatter=[
        ScatterRule('tree.emerald-4', 12, 2),
        ScatterRule('tree.emerald-3', 8, 2),
        ScatterRule('tree.emerald-2', 5, 2),
        ScatterRule('bush.emerald-2', 6, 1),
        ScatterRule('mushroom.red-1', 2, 3),
        ScatterRule('rock.moss-1', 2, 4),
    ],
    default_edge=EdgeTreatment('forest', 5, True),
)

mountain = BiomeDefinition(
    id='mountain', name='Mountain',
    base_ground='ground.light-grass',
    ground_variants=[
        GroundVariant('ground.grass', 0.15, (3, 6)),
        GroundVariant('ground.dirt', 0.1, (2, 4)),
    ],
    road_terrain='road.stone', road_width=2,
    path_dress=[PathDressRule('prop.signpost-1', 'at-junctions', 0)],
    scatter=[
        ScatterRule('rock.gray-2', 6, 3),
        ScatterRule('rock.gray-1', 4, 2),
        ScatterRule('tree.pine-2', 3, 3, prefer_edges=True),
        ScatterRule('bush.dry-1', 2, 2),
    ],
    default_edge=EdgeTreatment('cliff', 4, True),
    scene_template='mountain-village',
)

marsh = BiomeDefinition(
    id='marsh', name='Marsh',
    base_ground='ground.dark-grass',
    ground_variants=[
        GroundVariant('water.shallow', 0.2, (3, 8)),
        GroundVariant('ground.mud', 0.15, (2, 5)),
    ],
    road_terrain='road.plank', road_width=2,
    scatter=[
        ScatterRule('tree.dead-1', 4, 3),
        ScatterRule('reed.tall-1', 6, 1),
        ScatterRule('mushroom.purple-1', 2, 3),
        ScatterRule('marsh-grass.1', 4, 1),
    ],
    default_edge=EdgeTreatment('water', 3, True),
)

desert = BiomeDefinition(
    id='desert', name='Desert',
    base_ground='ground.sand',
    ground_variants=[GroundVariant('ground.light-sand', 0.1, (3, 6))],
    road_terrain='road.sand', road_width=3,
    scatter=[
        ScatterRule('cactus.1', 2, 5),
        ScatterRule('rock.sandstone-1', 3, 4),
        ScatterRule('bush.dry-1', 2, 3),
    ],
    default_edge=EdgeTreatment('cliff', 3, True),
    scene_template='desert-town',
)

snow = BiomeDefinition(
    id='snow', name='Snow',
    base_ground='ground.snow',
    ground_variants=[
        GroundVariant('ground.ice', 0.1, (2, 5)),
        GroundVariant('ground.snow-light', 0.1, (3, 6)),
    ],
    road_terrain='road.stone', road_width=2,
    scatter=[
        ScatterRule('tree.snow-pine-2', 5, 3),
        ScatterRule('rock.snow-1', 3, 3),
        ScatterRule('snowdrift.1', 4, 2),
    ],
    default_edge=EdgeTreatment('cliff', 4, True),
    scene_template='frost-peak',
)

dungeon = BiomeDefinition(
    id='dungeon', name='Dungeon',
    base_ground='ground.stone',
    ground_variants=[
        GroundVariant('ground.dark-stone', 0.15, (2, 4)),
        GroundVariant('water.deep', 0.05, (3, 6)),
    ],
    road_terrain='road.stone', road_width=3,
    scatter=[
        ScatterRule('crystal.blue-1', 1, 6),
        ScatterRule('rubble.1', 3, 3),
        ScatterRule('bone.1', 1, 5),
    ],
    default_edge=EdgeTreatment('wall', 2, False),
)

sketch = BiomeDefinition(
    id='sketch', name='Sketch Realm',
    base_ground='ground.sand',
    ground_variants=[
        GroundVariant('void', 0.1, (2, 6)),
        GroundVariant('ground.light-sand', 0.1, (3, 5)),
    ],
    road_terrain='road.faint', road_width=2,
    scatter=[
        ScatterRule('outline.tree-1', 2, 4),
        ScatterRule('outline.rock-1', 2, 4),
        ScatterRule('sketch.fragment-1', 1, 5),
    ],
    default_edge=EdgeTreatment('void', 3, True),
)

BIOMES: Dict[str, BiomeDefinition] = {
    biome.id: biome
    for biome in (farmland, village, forest, mountain, marsh, desert, snow, dungeon, sketch)
}


# ============================================================================
# LOOKUP
# ============================================================================

def get_biome(biome_id: str) -> BiomeDefinition:
    """
    Get a biome definition by id.

    Raises:
        UnknownBiomeError: If the id is not in the table
    """
    biome = BIOMES.get(biome_id)
    if biome is None:
        raise UnknownBiomeError(f"Unknown biome: {biome_id}. Available: {', '.join(BIOMES)}")
    return biome
