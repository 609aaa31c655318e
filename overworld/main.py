import argparse
import sys


class WorldBuild:
    """
    Compose a world declaration and prove it.

    Steps: declaration integrity, region-graph connectivity, region
    composition, then traversal verification of every composed region.
    """

    def __init__(self, ddl_root, seed=None, regions=None, registry=None, settings=None):
        from overworld.config import get_logger

        self.logger = get_logger(__name__)
        self.ddl_root = ddl_root
        self.seed = seed
        self.regions = list(regions) if regions else None
        self.registry = registry
        self.settings = settings

        self.world = None
        self.ddl_report = None
        self.graph_report = None
        self.traversal_reports = {}
        self.failed_regions = []

    def run(self) -> bool:
        from overworld.composer.world_composer import compose_world
        from overworld.composer.world_loader import load_world_ddl
        from overworld.verification.ddl_validator import format_ddl_report, validate_ddl
        from overworld.verification.traversal import (
            format_region_graph_report, format_report, verify_region, verify_region_graph
        )

        self.logger.info("=" * 60)
        self.logger.info(f"World build started: {self.ddl_root} (seed {self.seed})")

        # ---------------------------
        # DECLARATION
        # ---------------------------

        self.ddl_report = validate_ddl(self.ddl_root)
        self._log_report(self.ddl_report.passed, format_ddl_report(self.ddl_report))
        if not self.ddl_report.passed:
            self.logger.error("Declaration is broken, skipping composition")
            return False

        loaded = load_world_ddl(self.ddl_root)
        self.graph_report = verify_region_graph(loaded.world)
        self._log_report(self.graph_report.passed, format_region_graph_report(self.graph_report))

        # ---------------------------
        # COMPOSITION
        # ---------------------------

        self.world = compose_world(loaded, self.registry, seed=self.seed,
                                   regions=self.regions, settings=self.settings)

        # ---------------------------
        # TRAVERSAL
        # ---------------------------

        for region_id, region_map in self.world.region_maps.items():
            report = verify_region(region_map)
            self.traversal_reports[region_id] = report
            self._log_report(report.passed, format_report(report))
            if region_map.unrouted:
                self.logger.warning(f"Region '{region_id}': {len(region_map.unrouted)} unrouted path requests")
            if region_map.diagnostics['failed_placements']:
                self.failed_regions.append(region_id)
                self.logger.error(
                    f"Region '{region_id}': {region_map.diagnostics['failed_placements']} buildings could not be placed"
                )

        passed = (
            self.ddl_report.passed
            and self.graph_report.passed
            and not self.failed_regions
            and all(report.passed for report in self.traversal_reports.values())
        )
        self.logger.info(f"World build {'PASSED' if passed else 'FAILED'}")
        self.logger.info("=" * 60)
        return passed

    def _log_report(self, passed, text):
        for line in text.splitlines():
            if passed:
                self.logger.info(line)
            else:
                self.logger.warning(line)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='overworld', description='Compose and verify a world declaration.')
    parser.add_argument('ddl_root', help='Directory holding world.json, regions/ and interiors/')
    parser.add_argument('--seed', type=int, default=None, help='World seed (default: per-region hash)')
    parser.add_argument('--region', action='append', dest='regions', metavar='ID',
                        help='Only compose this region (repeatable)')
    parser.add_argument('--config', default=None, help='Composer settings JSON file')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    from overworld.config import get_project_root, load_settings, setup_logging

    args = parse_args(argv)

    # Initialize logging first
    project_root = get_project_root()
    logger = setup_logging(project_root)
    logger.info(f"Project root: {project_root}")

    settings = load_settings(args.config) if args.config else None

    try:
        build = WorldBuild(args.ddl_root, seed=args.seed, regions=args.regions, settings=settings)
        return 0 if build.run() else 1
    except Exception as e:
        logger.critical(f"Critical error in world build: {e}", exc_info=True)
        raise
    finally:
        logger.info("World build terminated")


# ------------------------ # ENTRY POINT # ------------------------

if __name__ == "__main__":
    sys.exit(main())
