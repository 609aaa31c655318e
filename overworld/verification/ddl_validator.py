"""
Declaration integrity checks.

Works on the raw JSON files (not the parsed model) so that one broken
file does not hide the problems in the others. Two kinds of check:

    schema       each file exists, parses and carries its required fields
    referential  every id that points somewhere resolves (region files,
                 interior refs, parent anchors, transitions, connections)

plus one completeness check: every interior is used by some anchor.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from overworld.config import get_logger

logger = get_logger(__name__)

WORLD_FIELDS = ('name', 'properties', 'regions', 'regionConnections')
REGION_FIELDS = ('id', 'name', 'biome', 'anchors')
INTERIOR_FIELDS = ('id', 'name', 'archetype')


@dataclass(frozen=True)
class DDLCheck:
    description: str
    category: str  # schema | referential | completeness
    passed: bool
    detail: Optional[str] = None


@dataclass
class DDLValidationReport:
    passed: bool
    total_checks: int
    passed_checks: int
    checks: List[DDLCheck] = field(default_factory=list)

    @property
    def failed(self) -> List[DDLCheck]:
        return [check for check in self.checks if not check.passed]


class _Checks:
    """Accumulates check results."""

    def __init__(self):
        self.checks: List[DDLCheck] = []

    def add(self, description: str, category: str, passed: bool, detail: Optional[str] = None):
        self.checks.append(DDLCheck(description, category, passed, None if passed else detail))
        return passed

    def report(self) -> DDLValidationReport:
        passed = sum(1 for check in self.checks if check.passed)
        return DDLValidationReport(
            passed=passed == len(self.checks),
            total_checks=len(self.checks),
            passed_checks=passed,
            checks=self.checks,
        )


def _load_json(path: str):
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def _anchors(region: Dict[str, Any]) -> List[Dict[str, Any]]:
    anchors = region.get('anchors')
    if not isinstance(anchors, list):
        return []
    return [anchor for anchor in anchors if isinstance(anchor, dict)]


def _anchor_interiors(anchor: Dict[str, Any]):
    """(kind, interior id) for the anchor's own interiors and its dungeon floors."""
    for interior_id in anchor.get('interiors') or []:
        yield 'Interior', interior_id
    dungeon = anchor.get('dungeon')
    if isinstance(dungeon, dict):
        for interior_id in dungeon.get('interiors') or []:
            yield 'Dungeon interior', interior_id


def validate_ddl(ddl_root: str) -> DDLValidationReport:
    """
    Validate every declaration file under `ddl_root`.

    Args:
        ddl_root: Directory holding world.json, regions/ and interiors/

    Returns:
        DDLValidationReport; stops early when world.json is missing or
        unparseable
    """
    checks = _Checks()

    # Phase 1: world.json
    world_path = os.path.join(ddl_root, 'world.json')
    if not checks.add('world.json exists', 'schema', os.path.exists(world_path), f"Missing: {world_path}"):
        return checks.report()

    try:
        world = _load_json(world_path)
    except (OSError, json.JSONDecodeError) as e:
        checks.add('world.json is valid JSON', 'schema', False, f"Parse error: {e}")
        return checks.report()
    checks.add('world.json is valid JSON', 'schema', True)

    if not isinstance(world, dict):
        checks.add('world.json is an object', 'schema', False, f"Got {type(world).__name__}")
        return checks.report()

    for name in WORLD_FIELDS:
        checks.add(f'world.json has "{name}" field', 'schema', name in world, f"Missing field: {name}")

    region_ids = [r for r in world.get('regions') or [] if isinstance(r, str)]

    # Phase 2: region files
    regions: Dict[str, Dict[str, Any]] = {}
    for region_id in region_ids:
        path = os.path.join(ddl_root, 'regions', f"{region_id}.json")
        if not checks.add(f"Region file exists: {region_id}.json", 'referential',
                          os.path.exists(path), f"Missing: {path}"):
            continue

        try:
            data = _load_json(path)
        except (OSError, json.JSONDecodeError) as e:
            checks.add(f"{region_id}.json is valid JSON", 'schema', False, f"Parse error: {e}")
            continue
        if not isinstance(data, dict):
            checks.add(f"{region_id}.json is an object", 'schema', False, f"Got {type(data).__name__}")
            continue

        regions[region_id] = data
        for name in REGION_FIELDS:
            checks.add(f'{region_id}.json has "{name}" field', 'schema', name in data,
                       f"Missing field: {name} in {region_id}")
        checks.add(f"{region_id}.json id matches filename", 'schema', data.get('id') == region_id,
                   f"File is {region_id}.json but id field is \"{data.get('id')}\"")

    # Phase 3: interior files
    interiors: Dict[str, Dict[str, Any]] = {}
    interiors_dir = os.path.join(ddl_root, 'interiors')
    files = sorted(f for f in os.listdir(interiors_dir) if f.endswith('.json')) if os.path.isdir(interiors_dir) else []

    for name in files:
        try:
            data = _load_json(os.path.join(interiors_dir, name))
        except (OSError, json.JSONDecodeError) as e:
            checks.add(f"{name} is valid JSON", 'schema', False, f"Parse error: {e}")
            continue
        if not isinstance(data, dict):
            checks.add(f"{name} is an object", 'schema', False, f"Got {type(data).__name__}")
            continue

        interior_id = data.get('id', name[:-len('.json')])
        interiors[interior_id] = data
        for key in INTERIOR_FIELDS:
            checks.add(f'Interior {interior_id} has "{key}" field', 'schema', key in data,
                       f"Missing field: {key} in {interior_id}")

    # Phase 4: anchor ids and interior refs
    anchor_ids: Set[str] = set()
    seen_in: Dict[str, str] = {}
    referenced: Set[str] = set()

    for region_id, region in regions.items():
        for anchor in _anchors(region):
            anchor_id = anchor.get('id')
            if anchor_id:
                first = seen_in.get(anchor_id)
                checks.add(f"Anchor id \"{anchor_id}\" in {region_id} is unique", 'referential',
                           first is None, f"Also declared in {first}")
                seen_in.setdefault(anchor_id, region_id)
                anchor_ids.add(anchor_id)

            for kind, interior_id in _anchor_interiors(anchor):
                referenced.add(interior_id)
                checks.add(f"{kind} ref \"{interior_id}\" in {region_id}/{anchor_id or '?'} exists",
                           'referential', interior_id in interiors, f"No interiors/{interior_id}.json found")

    # Phase 5: parent anchors
    for interior_id, interior in interiors.items():
        parent = interior.get('parentAnchor')
        if parent:
            checks.add(f"Interior \"{interior_id}\" parentAnchor \"{parent}\" exists", 'referential',
                       parent in anchor_ids, f"No anchor with id \"{parent}\" found in any region")

    # Phase 6: interior transitions (to an interior, a region or an anchor)
    for interior_id, interior in interiors.items():
        transitions = interior.get('transitions') or {}
        if not isinstance(transitions, dict):
            continue
        for direction, transition in transitions.items():
            target = transition.get('to') if isinstance(transition, dict) else None
            if not target:
                continue
            resolves = target in interiors or target in region_ids or target in anchor_ids
            checks.add(f"Interior \"{interior_id}\" transition {direction} -> \"{target}\" resolves",
                       'referential', resolves,
                       f"Transition target \"{target}\" not found in interiors, regions, or anchors")

    # Phase 7: region connections
    for conn in world.get('regionConnections') or []:
        if not isinstance(conn, dict):
            continue
        for end in ('from', 'to'):
            region_ref = conn.get(end)
            if region_ref:
                checks.add(f"Connection {end} \"{region_ref}\" references valid region", 'referential',
                           region_ref in region_ids, f"Region \"{region_ref}\" not in world.regions")

    # Phase 8: every interior used somewhere
    for interior_id in interiors:
        checks.add(f"Interior \"{interior_id}\" is referenced by at least one anchor", 'completeness',
                   interior_id in referenced, f"Orphan interior: {interior_id} not referenced by any anchor")

    report = checks.report()
    logger.info(f"DDL validation: {report.passed_checks}/{report.total_checks} checks passed")
    return report


def format_ddl_report(report: DDLValidationReport) -> str:
    status = 'PASS' if report.passed else 'FAIL'
    lines = [f"[{status}] DDL Integrity: {report.passed_checks}/{report.total_checks} checks passed"]

    if report.failed:
        lines.append('')
        lines.append('Failed checks:')
        for check in report.failed:
            lines.append(f"  [{check.category}] {check.description}")
            if check.detail:
                lines.append(f"    -> {check.detail}")

    return '\n'.join(lines)
