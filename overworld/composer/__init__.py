"""
Composer Package - Region and World Map Composition

This package turns a world declaration (world -> regions -> anchors ->
towns/interiors) into concrete outdoor maps. A region is one continuous
outdoor map; towns are building clusters embedded in it, and the only
transitions are building doors into nested world instances.

MODULES:
--------
grid.py
    Collision grid (NumPy), rectangle/clearance/road marking, BFS distance
    fields and the GridState phase pipeline.

rng.py
    Seeded linear congruential generator with draw tracing.

ddl.py
    Typed declaration model parsed from camelCase JSON, plus the
    chronometer (play time -> walking tiles -> map size).

biomes.py / archetypes.py
    Biome fill rules and the archetype registry of reference layouts.

hamlet.py / town.py
    Organisms: building clusters laid out on a ring around a centre.

path_router.py
    A* road routing with width-aware passability and road merging.

fill_engine.py
    Ground, variants, scatter, path dressing and edge treatment.

region_composer.py
    Orchestrates one region through the fixed phase order.

world_loader.py / world_template.py / world_composer.py
    Split-file loading, nested world templates and whole-world composition.

USAGE:
------
```python
from overworld.composer import compose_world

world = compose_world("ddl/", seed=7)
region_map = world.region_maps["heartfield"]
print(region_map.width, region_map.height, len(region_map.routed_paths))
```

PIPELINE (per region):
----------------------
1. **Size**: time budget -> outdoor screens -> map dimensions
2. **Anchors**: position hints -> boxes
3. **Organisms**: towns, hamlets and landmark footprints stamped on the grid
4. **Nudge**: entry points moved off blocked cells
5. **Routing**: main chain, exits, branches, internal paths
6. **Wild features**: placed by distance from the road network
7. **Safe zones**: rest stops along main roads
8. **Fill**: ground, scatter, dressing, edges
"""

from overworld.composer.errors import (
    ComposerError, DDLError, UnknownBiomeError, UnknownArchetypeError,
    ArchetypeLoadError, PhaseOrderError
)
from overworld.composer.grid import (
    Bounds, CollisionGrid, GridPhase, GridState,
    PASSABLE, BLOCKED, ROAD, RESERVED, create_collision_grid
)
from overworld.composer.rng import SeededRNG, hash_string
from overworld.composer.ddl import RegionDefinition, WorldDefinition, calculate_region_metrics
from overworld.composer.biomes import BIOMES, get_biome
from overworld.composer.archetypes import ArchetypeRegistry
from overworld.composer.hamlet import HamletConfig, layout_hamlet
from overworld.composer.town import Placed, PlacedWithOverlap, Failed, layout_town
from overworld.composer.path_router import PathRequest, RoutedPath, find_path, route_all
from overworld.composer.fill_engine import FillEngine, run_fill_engine
from overworld.composer.region_composer import RegionExit, RegionMap, compose_region
from overworld.composer.world_loader import LoadedWorld, load_world_ddl
from overworld.composer.world_template import WorldInstance, get_world_template, validate_world_instance
from overworld.composer.world_composer import ComposedWorld, compose_world, compose_single_region

__all__ = [
    # Errors
    'ComposerError',
    'DDLError',
    'UnknownBiomeError',
    'UnknownArchetypeError',
    'ArchetypeLoadError',
    'PhaseOrderError',

    # Grid
    'Bounds',
    'CollisionGrid',
    'GridPhase',
    'GridState',
    'PASSABLE',
    'BLOCKED',
    'ROAD',
    'RESERVED',
    'create_collision_grid',

    # Randomness
    'SeededRNG',
    'hash_string',

    # Declaration
    'RegionDefinition',
    'WorldDefinition',
    'calculate_region_metrics',
    'BIOMES',
    'get_biome',
    'ArchetypeRegistry',

    # Organisms
    'HamletConfig',
    'layout_hamlet',
    'Placed',
    'PlacedWithOverlap',
    'Failed',
    'layout_town',

    # Roads and fill
    'PathRequest',
    'RoutedPath',
    'find_path',
    'route_all',
    'FillEngine',
    'run_fill_engine',

    # Composition
    'RegionExit',
    'RegionMap',
    'compose_region',
    'LoadedWorld',
    'load_world_ddl',
    'WorldInstance',
    'get_world_template',
    'validate_world_instance',
    'ComposedWorld',
    'compose_world',
    'compose_single_region',
]
