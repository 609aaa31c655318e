"""
World declaration loader.

The declaration is split across files:

    <ddl_root>/world.json          name, properties, region ids, connections
    <ddl_root>/regions/<id>.json   one file per region
    <ddl_root>/interiors/*.json    one file per interior map
    <ddl_root>/instances/*.json    optional world instances (shops, dungeons...)

load_world_ddl() reads world.json, resolves every region id to its file
and parses the whole tree into the typed model. Any missing file or bad
JSON raises DDLError naming the file.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict

from overworld.config import get_logger
from overworld.composer.ddl import InteriorDefinition, WorldDefinition
from overworld.composer.errors import DDLError
from overworld.composer.world_template import WorldInstance

logger = get_logger(__name__)


@dataclass
class LoadedWorld:
    world: WorldDefinition
    interiors: Dict[str, InteriorDefinition] = field(default_factory=dict)
    instances: Dict[str, WorldInstance] = field(default_factory=dict)


def read_json(path: str) -> Any:
    """Read one declaration file, turning I/O and parse errors into DDLError."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except FileNotFoundError:
        raise DDLError(f"Missing declaration file: {path}") from None
    except json.JSONDecodeError as e:
        raise DDLError(f"Invalid JSON in {path}: {e}") from None
    except OSError as e:
        raise DDLError(f"Cannot read {path}: {e}") from None


def _json_files(directory: str):
    if not os.path.isdir(directory):
        return []
    return sorted(name for name in os.listdir(directory) if name.endswith('.json'))


def load_world_ddl(ddl_root: str) -> LoadedWorld:
    """
    Load and parse the complete world declaration.

    Args:
        ddl_root: Directory holding world.json

    Returns:
        LoadedWorld with the world, interiors by id and instances by id
    """
    world_path = os.path.join(ddl_root, 'world.json')
    world_data = read_json(world_path)
    if not isinstance(world_data, dict):
        raise DDLError(f"{world_path}: expected an object")

    region_ids = world_data.get('regions') or []
    if not isinstance(region_ids, list):
        raise DDLError(f"{world_path}: 'regions' must be a list of region ids")

    regions = []
    for region_id in region_ids:
        regions.append(read_json(os.path.join(ddl_root, 'regions', f"{region_id}.json")))

    world = WorldDefinition.from_dict({**world_data, 'regions': regions})

    interiors = {}
    interiors_dir = os.path.join(ddl_root, 'interiors')
    for name in _json_files(interiors_dir):
        interior = InteriorDefinition.from_dict(read_json(os.path.join(interiors_dir, name)), name)
        interiors[interior.id] = interior

    instances = {}
    instances_dir = os.path.join(ddl_root, 'instances')
    for name in _json_files(instances_dir):
        instance = WorldInstance.from_dict(read_json(os.path.join(instances_dir, name)), name)
        instances[instance.id] = instance

    logger.info(
        f"Loaded world '{world.name}': {len(world.regions)} regions, "
        f"{len(interiors)} interiors, {len(instances)} instances"
    )
    return LoadedWorld(world, interiors, instances)
