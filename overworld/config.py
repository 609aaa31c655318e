"""
Configuration and utility functions for the Overworld composer.

Holds the walking-model and map-size constants, the ComposerSettings
knobs (optionally read from JSON), per-run log files, project root
discovery and a small timing context manager.
"""

import json
import os
import logging
import sys
import time
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from pathlib import Path
import shutil

# ============================================================================
# CONFIGURATION CONSTANTS
# ============================================================================

# Walking model (chronometer)
WALK_SPEED_TPS = 4  # tiles walked per second
SECONDS_PER_MINUTE = 60
SCREEN_TRAVERSAL_TILES = 120  # average tiles walked to cross one screen
DIALOGUE_SHARE = 0.15
COMBAT_SHARE = {
    'easy': 0.2,
    'medium': 0.3,
    'hard': 0.4,
    'extreme': 0.5,
}
DEFAULT_ENCOUNTER_STEPS = 200

# Map dimensions
SCREEN_TILES = 80  # one outdoor "screen" is roughly 80x80 tiles
MAX_MAP_SIZE = 200  # hard cap on either map dimension


# ============================================================================
# COMPOSER SETTINGS
# ============================================================================

@dataclass
class ComposerSettings:
    """Tunable knobs for region composition (defaults match the constants)."""
    walk_speed_tps: int = WALK_SPEED_TPS
    screen_tiles: int = SCREEN_TILES
    max_map_size: int = MAX_MAP_SIZE

    # Anchor positioning
    anchor_padding: int = 8
    anchor_box_size: int = 20  # explicit-position and non-town anchors
    anchor_cell_margin: int = 4

    # Organism stamping
    clearance_radius: int = 2
    landmark_footprint: int = 5
    landmark_entry_offset: int = 5
    npc_scatter: int = 3

    # Roads
    branch_max_distance: int = 80
    nudge_max_radius: int = 20

    # Wild features (distances in tiles from the nearest road)
    near_path_min: int = 5
    near_path_max: int = 8
    off_path_min: int = 15
    hidden_min_distance: int = 8
    hidden_corner_margin: int = 12
    hidden_edge_margin: int = 8
    wild_feature_spacing: int = 10
    wild_feature_attempt_factor: int = 50

    # Safe zones
    safe_zone_size: int = 5

    # Fill
    fill_seed_offset: int = 1000


def load_settings(config_path="config/composer.json"):
    """
    Load ComposerSettings from a JSON file.

    Only keys that ComposerSettings declares are used; anything else in
    the file is ignored.

    Args:
        config_path: Path to the configuration file

    Returns:
        ComposerSettings: Loaded settings (defaults on any problem)
    """
    logger = get_logger(__name__)

    if not os.path.exists(config_path):
        logger.warning("Config file not found: %s, using defaults", config_path)
        return ComposerSettings()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Error loading config: %s, using defaults", e)
        return ComposerSettings()

    section = data.get('composer', {}) if isinstance(data, dict) else {}
    allowed_keys = {f.name for f in fields(ComposerSettings)}
    filtered = {k: v for k, v in section.items() if k in allowed_keys}
    ignored = sorted(set(section) - allowed_keys)
    if ignored:
        logger.debug(f"Ignoring unknown composer settings: {ignored}")
    return ComposerSettings(**filtered)


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

LOG_FORMAT = '[%(asctime)s] - [%(name)s] - [%(levelname)s] - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LOG_MAX_AGE = timedelta(days=1)


def setup_logging(project_root, level=logging.DEBUG):
    """
    Route composer logs to a per-run file under log_dump/ and to stdout.

    Logs from earlier days are moved to old_log_dump/ first.

    Args:
        project_root: Directory that receives log_dump/ and old_log_dump/
        level: Root logger level

    Returns:
        logging.Logger: The top-level 'Overworld' logger
    """
    root = Path(project_root)
    run_dir = root / "log_dump"
    archive_dir = root / "old_log_dump"
    for folder in (run_dir, archive_dir):
        folder.mkdir(exist_ok=True)

    _archive_old_logs(run_dir, archive_dir)

    run_log = run_dir / f"compose_{datetime.now():%Y%m%d_%H%M%S}.log"
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=[logging.FileHandler(run_log, encoding='utf-8'), logging.StreamHandler(sys.stdout)],
    )

    logger = logging.getLogger('Overworld')
    logger.info(f"Composer logging to {run_log}")
    return logger


def _archive_old_logs(log_dir, archive_dir):
    """Move *.log files last written more than LOG_MAX_AGE ago into archive_dir."""
    cutoff = datetime.now() - LOG_MAX_AGE
    stale = [p for p in log_dir.glob("*.log") if datetime.fromtimestamp(p.stat().st_mtime) < cutoff]
    for log_file in stale:
        shutil.move(str(log_file), str(archive_dir / log_file.name))


def get_logger(name=None):
    """Module logger; call as `get_logger(__name__)`. No name gives 'Overworld'."""
    return logging.getLogger(name or 'Overworld')


def get_composer_logger():
    """Logger that carries one-line summaries of composed regions and worlds."""
    return logging.getLogger('Overworld.Composition')


class PerformanceTimer:
    """
    Times a block and logs how long it took.

        with PerformanceTimer(logger, "compose meadow") as timer:
            ...
        timer.elapsed  # seconds
    """

    def __init__(self, logger, operation_name):
        self.logger = logger
        self.operation_name = operation_name
        self.started = None
        self.elapsed = None

    def __enter__(self):
        self.started = time.perf_counter()
        self.logger.debug(f"Starting: {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self.started
        self.logger.info(f"Completed: {self.operation_name} in {self.elapsed:.3f}s")
        return False


# ============================================================================
# PROJECT ROOT
# ============================================================================

_cached_root = None


def get_project_root(marker="overworld"):
    """
    Walk up from this file until a directory containing `marker` is found.

    The answer is cached after the first call.

    Raises:
        FileNotFoundError: If no ancestor holds `marker`
    """
    global _cached_root

    if _cached_root:
        return _cached_root

    logger = get_logger(__name__)
    candidate = Path(__file__).resolve().parent
    logger.debug(f"Searching for project root from {candidate}")

    for directory in (candidate, *candidate.parents):
        if (directory / marker).is_dir():
            _cached_root = str(directory)
            logger.info(f"Project root: {_cached_root}")
            return _cached_root

    logger.error(f"No directory above {candidate} contains '{marker}'")
    raise FileNotFoundError(f"Could not find project root containing '{marker}'")
