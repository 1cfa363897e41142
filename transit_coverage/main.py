#!/usr/bin/env python3
"""
Transit Coverage Analysis - Main Entry Point

Computes, for every neighborhood, the share of its area (and population)
inside the union of station walking catchments, then exports the snapshot.

Usage:
    python -m transit_coverage.main --stations stations.geojson \\
        --neighborhoods neighborhoods.geojson [--output-dir Output] \\
        [--owner alice] [--max-candidate-radius 600] [--workers 4]

Exit codes:
    0 = success, 1 = analysis error, 2 = bad arguments / missing input
"""

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# Fix Windows console encoding for emoji support
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

from transit_coverage.config import CONFIG
from transit_coverage.config_types import AppConfig
from transit_coverage.data_loader import load_neighborhoods, load_stations
from transit_coverage.exporters import (
    export_catchments_geojson,
    export_results_csv,
    export_results_geojson,
    export_snapshot_json,
)
from transit_coverage.geometry.spatial_index import CatchmentIndex
from transit_coverage.models.data_models import AnalysisSnapshot
from transit_coverage.models.errors import CoverageAnalysisError
from transit_coverage.parallel.cached_coverage_orchestrator import (
    compute_coverage_cached,
)
from transit_coverage.parallel.snapshot_store import SnapshotStore

# ═══════════════════════════════════════════════════════════════════════════
# 🎯 MODULE-LEVEL CONFIG
# ═══════════════════════════════════════════════════════════════════════════

APP_CONFIG = AppConfig.from_dict(CONFIG)

SNAPSHOT_STORE = SnapshotStore()

EXIT_OK = 0
EXIT_ANALYSIS_ERROR = 1
EXIT_BAD_INPUT = 2


# ═══════════════════════════════════════════════════════════════════════════
# 📋 LOGGING SETUP
# ═══════════════════════════════════════════════════════════════════════════


def setup_logging(
    app_config: Optional[AppConfig] = None,
) -> Tuple[logging.Logger, Optional[Path]]:
    """Configure logging with file and console handlers.

    Handlers are attached to the "TransitCoverage" logger so every module
    logger under it ("TransitCoverage.Cache", ...) is captured. Modules that
    log under ``__name__`` are attached through the "transit_coverage" logger.

    Returns:
        Tuple of (logger, run_log_folder); the folder is None when file
        logging is disabled.

    Folder naming convention:
        run_{MMDD}_{HHMM}, e.g. run_0129_1028
    """
    app_config = app_config or APP_CONFIG
    level = getattr(logging, app_config.logging.level, logging.INFO)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(message)s"))
    handlers: List[logging.Handler] = [console]

    run_log_folder = None
    if app_config.logging.log_to_file:
        timestamp = datetime.now().strftime("%m%d_%H%M")
        run_log_folder = app_config.log_dir / f"run_{timestamp}"
        run_log_folder.mkdir(parents=True, exist_ok=True)

        fh = logging.FileHandler(run_log_folder / "main.log", encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handlers.append(fh)

    for name in ("TransitCoverage", "transit_coverage"):
        named = logging.getLogger(name)
        named.setLevel(level)
        named.handlers.clear()
        named.propagate = False
        for handler in handlers:
            named.addHandler(handler)

    return logging.getLogger("TransitCoverage"), run_log_folder


# ═══════════════════════════════════════════════════════════════════════════
# 🧭 ARGUMENTS
# ═══════════════════════════════════════════════════════════════════════════


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="transit_coverage",
        description="Neighborhood coverage by transit station walking catchments.",
    )
    parser.add_argument(
        "--stations",
        default=APP_CONFIG.file_paths.stations_geojson or None,
        help="Station points (GeoJSON or any geopandas-readable file)",
    )
    parser.add_argument(
        "--neighborhoods",
        default=APP_CONFIG.file_paths.neighborhoods_geojson or None,
        help="Neighborhood polygons (GeoJSON or any geopandas-readable file)",
    )
    parser.add_argument(
        "--output-dir",
        default=APP_CONFIG.file_paths.output_dir,
        help="Directory for JSON / CSV / GeoJSON outputs",
    )
    parser.add_argument("--owner", default="cli", help="Snapshot owner id")
    parser.add_argument(
        "--max-candidate-radius",
        type=float,
        default=None,
        help="Candidate search radius in metres (never below the largest station radius)",
    )
    parser.add_argument(
        "--workers", type=int, default=None, help="Worker count (-1 = auto)"
    )
    return parser


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 ANALYSIS WORKFLOW
# ═══════════════════════════════════════════════════════════════════════════


def _log_summary(snapshot: AnalysisSnapshot, logger: logging.Logger) -> None:
    meta = snapshot.metadata
    logger.info("=" * 60)
    logger.info("📊 COVERAGE SUMMARY")
    logger.info("=" * 60)
    logger.info(f"   {snapshot.summary()}")
    logger.info(
        f"   Rejected stations: {len(meta.rejected_stations)}, "
        f"degenerate intersections: {meta.degenerate_results}, "
        f"station failures: {meta.station_failures}"
    )
    for result in snapshot.rankings.by_uncovered_population:
        logger.info(
            f"   ⚠️ {result.neighborhood_name}: {result.uncovered_population} "
            f"uncovered ({result.coverage_percentage:.2f}% covered)"
        )


def run_coverage_analysis(
    stations_path: str,
    neighborhoods_path: str,
    output_dir: Path,
    owner_id: str = "cli",
    max_candidate_radius_m: Optional[float] = None,
    app_config: Optional[AppConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, Any]:
    """
    Load inputs, run the (cached) analysis, export outputs.

    Returns:
        Dict with the snapshot, output file paths and phase timings.
    """
    app_config = app_config or APP_CONFIG
    logger = logger or logging.getLogger("TransitCoverage")
    timings: Dict[str, float] = {}
    total_start = time.perf_counter()

    # Phase 1: Load inputs
    t0 = time.perf_counter()
    stations = load_stations(stations_path).records
    neighborhoods = load_neighborhoods(neighborhoods_path).records
    timings["load"] = time.perf_counter() - t0

    # Phase 2: Coverage
    t0 = time.perf_counter()
    snapshot = SNAPSHOT_STORE.run_analysis(
        owner_id,
        compute_coverage_cached,
        stations,
        neighborhoods,
        max_candidate_radius_m=max_candidate_radius_m,
        config=app_config,
        analysis_type=app_config.coverage.analysis_type,
    )
    timings["coverage"] = time.perf_counter() - t0

    # Phase 3: Exports
    t0 = time.perf_counter()
    output_dir = Path(output_dir)
    logger.info(f"📤 Exporting outputs to {output_dir}")
    outputs = {
        "snapshot_json": export_snapshot_json(
            snapshot, output_dir / "coverage_snapshot.json", logger
        ),
        "results_csv": export_results_csv(
            snapshot, output_dir / "coverage_results.csv", logger
        ),
        "results_geojson": export_results_geojson(
            snapshot,
            neighborhoods,
            output_dir / "coverage_results.geojson",
            app_config.coverage.multipolygon_mode,
            logger,
        ),
        "catchments_geojson": export_catchments_geojson(
            CatchmentIndex(stations, app_config.catchment),
            output_dir / "station_catchments.geojson",
            logger,
        ),
    }
    timings["export"] = time.perf_counter() - t0
    timings["total"] = time.perf_counter() - total_start

    _log_summary(snapshot, logger)
    logger.info(f"⏱️ Total time: {timings['total']:.2f}s")
    return {"snapshot": snapshot, "outputs": outputs, "timings": timings}


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    app_config = APP_CONFIG
    if args.workers is not None:
        try:
            app_config = app_config.with_overrides("parallel", max_workers=args.workers)
        except ValueError as e:
            print(f"❌ {e}", file=sys.stderr)
            return EXIT_BAD_INPUT

    logger, run_log_folder = setup_logging(app_config)
    logger.info("=" * 60)
    logger.info("🚏 Transit Coverage Analysis")
    logger.info("=" * 60)
    if run_log_folder is not None:
        logger.info(f"   Log folder: {run_log_folder}")

    if not args.stations or not args.neighborhoods:
        logger.error("❌ Both --stations and --neighborhoods are required")
        return EXIT_BAD_INPUT

    try:
        run_coverage_analysis(
            args.stations,
            args.neighborhoods,
            Path(args.output_dir),
            owner_id=args.owner,
            max_candidate_radius_m=args.max_candidate_radius,
            app_config=app_config,
            logger=logger,
        )
    except FileNotFoundError as e:
        logger.error(f"❌ {e}")
        return EXIT_BAD_INPUT
    except CoverageAnalysisError as e:
        logger.error(f"❌ Analysis failed: {e}")
        logger.error(f"   {e.to_dict()}")
        return EXIT_ANALYSIS_ERROR
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
