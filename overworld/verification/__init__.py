"""
Verification Package - Build-Time Proof of Composed Worlds

traversal.py
    BFS reachability over a finished collision grid (organism, region and
    world levels) plus region-graph connectivity.

ddl_validator.py
    Schema and referential integrity of the split declaration files.
"""

from overworld.verification.traversal import (
    TraversalReport, TargetResult, DisconnectedZone, RegionGraphReport,
    bfs_flood_fill, verify_traversal, verify_full_connectivity,
    verify_region, verify_region_graph, region_graph_reachable,
    format_report, format_region_graph_report
)
from overworld.verification.ddl_validator import (
    DDLCheck, DDLValidationReport, validate_ddl, format_ddl_report
)

__all__ = [
    'TraversalReport',
    'TargetResult',
    'DisconnectedZone',
    'RegionGraphReport',
    'bfs_flood_fill',
    'verify_traversal',
    'verify_full_connectivity',
    'verify_region',
    'verify_region_graph',
    'region_graph_reachable',
    'format_report',
    'format_region_graph_report',
    'DDLCheck',
    'DDLValidationReport',
    'validate_ddl',
    'format_ddl_report',
]
