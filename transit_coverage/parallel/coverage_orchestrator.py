"""
Orchestrator for parallel neighborhood coverage computation.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Run one complete coverage analysis. Build the catchment
index once, split neighborhoods into chunks, dispatch the chunks to a
joblib worker pool, join every result (the single barrier), then reduce
single-threaded into an immutable AnalysisSnapshot.

Patterns:
- should_use_parallel() check for environment validation
- Always uses parallel infrastructure (n_jobs=1 for small inputs)
- Threading backend by default: shapely releases the GIL and workers share
  the read-only CatchmentIndex; loky workers rebuild it from station records
- Inline sequential fallback on dispatch errors (fallback_on_error)
- Progress reported as chunk results arrive; cancel flag checked between
  neighborhoods (workers) and between chunks (collector)

Key Functions:
- compute_coverage(): Main entry point
- _dispatch_chunks(): Parallel job dispatch (also handles n_jobs=1)
- _reduce_outcomes(): Outcomes → results + metadata counters

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import os
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from joblib import Parallel, delayed

from transit_coverage.config_types import AppConfig, normalize_config
from transit_coverage.coverage_calculator import NeighborhoodOutcome
from transit_coverage.geometry.spatial_index import CatchmentIndex
from transit_coverage.models.data_models import (
    AnalysisSnapshot,
    CoverageResult,
    Neighborhood,
    SnapshotMetadata,
    Station,
)
from transit_coverage.models.errors import (
    AnalysisCancelledError,
    EmptyDatasetError,
    NoValidNeighborhoodsError,
)
from transit_coverage.parallel.coverage_worker import worker_process_chunk
from transit_coverage.rankings import build_snapshot

logger = logging.getLogger("TransitCoverage.Orchestrator")

ProgressCallback = Callable[[int, int], None]


# ═══════════════════════════════════════════════════════════════════════════
# 🔍 PARALLEL DECISION LOGIC
# ═══════════════════════════════════════════════════════════════════════════


def should_use_parallel(
    n_neighborhoods: int,
    config: Union[Dict[str, Any], AppConfig, None],
) -> Tuple[bool, str]:
    """
    Determine if more than one worker should be used.

    Args:
        n_neighborhoods: Number of neighborhoods to process.
        config: Main CONFIG dictionary or AppConfig object.

    Returns:
        Tuple of (should_use: bool, reason: str).
    """
    parallel_config = normalize_config(config).parallel

    # Check master toggle
    if not parallel_config.enabled:
        return False, "Parallel disabled in config"

    # Check minimum job threshold
    minimum = parallel_config.min_neighborhoods_for_parallel
    if n_neighborhoods < minimum:
        return False, f"Only {n_neighborhoods} neighborhoods (< {minimum} threshold)"

    if parallel_config.max_workers == 1:
        return False, "max_workers=1"

    return True, f"OK ({n_neighborhoods} neighborhoods)"


def get_effective_worker_count(
    n_chunks: int,
    config: Union[Dict[str, Any], AppConfig, None],
) -> int:
    """
    Calculate worker count based on chunk count and config.

    Args:
        n_chunks: Number of jobs to process.
        config: Main CONFIG dictionary or AppConfig object.

    Returns:
        Number of workers to use (>= 1).
    """
    parallel_config = normalize_config(config).parallel
    max_workers = parallel_config.max_workers

    if max_workers == -1:
        # Auto-detect based on CPU cores
        cpu_count = os.cpu_count() or 4
        max_workers = min(cpu_count, parallel_config.optimal_workers_default)

    # Don't use more workers than chunks
    return max(1, min(max_workers, n_chunks))


def _chunk_neighborhoods(
    neighborhoods: List[Neighborhood], chunk_size: int
) -> List[List[Neighborhood]]:
    return [
        neighborhoods[i : i + chunk_size]
        for i in range(0, len(neighborhoods), chunk_size)
    ]


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 MAIN ORCHESTRATOR FUNCTION
# ═══════════════════════════════════════════════════════════════════════════


def compute_coverage(
    stations: Iterable[Station],
    neighborhoods: Iterable[Neighborhood],
    max_candidate_radius_m: Optional[float] = None,
    config: Union[Dict[str, Any], AppConfig, None] = None,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> AnalysisSnapshot:
    """
    Run a full coverage analysis and return a new snapshot.

    Args:
        stations: Station records (explicit input, nothing is read globally).
        neighborhoods: Neighborhood records.
        max_candidate_radius_m: Candidate search radius override; never
            below the largest effective station radius.
        config: CONFIG dict or AppConfig (None = module CONFIG).
        progress_callback: Called with (completed, total) as chunks finish.
        cancel_event: When set, the run stops and raises.

    Returns:
        AnalysisSnapshot with results ordered by coverage descending.

    Raises:
        EmptyDatasetError: No stations or no neighborhoods (before any work).
        NoValidNeighborhoodsError: Every neighborhood was skipped.
        AnalysisCancelledError: cancel_event was set; no snapshot produced.
    """
    stations = list(stations)
    neighborhoods = list(neighborhoods)
    if not stations or not neighborhoods:
        raise EmptyDatasetError(len(stations), len(neighborhoods))

    start_time = time.time()
    app_config = normalize_config(config)
    if max_candidate_radius_m is None:
        max_candidate_radius_m = app_config.coverage.max_candidate_radius_m
    total = len(neighborhoods)

    logger.info("=" * 60)
    logger.info("🧮 COMPUTING TRANSIT COVERAGE")
    logger.info("=" * 60)
    logger.info(f"   Stations: {len(stations)}")
    logger.info(f"   Neighborhoods: {total}")

    if cancel_event is not None and cancel_event.is_set():
        raise AnalysisCancelledError(0, total)

    index = CatchmentIndex(
        stations, app_config.catchment, app_config.coverage.candidate_margin_m
    )
    logger.info(
        f"   Search radius: {index.effective_search_radius(max_candidate_radius_m):.0f}m"
    )

    chunks = _chunk_neighborhoods(neighborhoods, app_config.parallel.chunk_size)
    use_parallel, reason = should_use_parallel(total, app_config)
    n_workers = get_effective_worker_count(len(chunks), app_config) if use_parallel else 1
    if not use_parallel:
        reason = f"{reason} -> using n_jobs=1"
    logger.info(f"   ⚡ Parallel processing: {reason}")

    chunk_results = _dispatch_chunks(
        chunks,
        index,
        stations,
        app_config,
        max_candidate_radius_m,
        n_workers,
        progress_callback,
        cancel_event,
    )

    results, counters = _reduce_outcomes(chunk_results)
    if not results:
        raise NoValidNeighborhoodsError(counters["skipped"])

    metadata = SnapshotMetadata(
        analysis_type=app_config.coverage.analysis_type,
        created_at=datetime.now(timezone.utc).isoformat(),
        duration_s=round(time.time() - start_time, 3),
        total_neighborhoods=total,
        total_stations=len(stations),
        skipped_neighborhoods=counters["skipped"],
        rejected_stations=dict(index.rejected),
        degenerate_results=counters["degenerate"],
        station_failures=counters["station_failures"],
        placeholder_rows=counters["placeholders"],
        worker_count=n_workers,
    )
    snapshot = build_snapshot(results, metadata, app_config.coverage.top_n)

    logger.info("=" * 60)
    logger.info("✅ COVERAGE COMPLETE")
    logger.info(f"   {snapshot.summary()}")
    logger.info(
        f"   Degenerate: {metadata.degenerate_results}, "
        f"station failures: {metadata.station_failures}, "
        f"rejected stations: {len(metadata.rejected_stations)}"
    )
    logger.info(f"   Total time: {metadata.duration_s:.1f}s")
    logger.info("=" * 60)
    return snapshot


# ═══════════════════════════════════════════════════════════════════════════
# ⚡ PARALLEL DISPATCH
# ═══════════════════════════════════════════════════════════════════════════


def _collect(
    results_iter: Iterable[Dict[str, Any]],
    total: int,
    progress_callback: Optional[ProgressCallback],
    cancel_event: Optional[threading.Event],
) -> List[Dict[str, Any]]:
    """Consume chunk results in order, reporting progress and honouring cancel."""
    collected: List[Dict[str, Any]] = []
    completed = 0
    for chunk_result in results_iter:
        collected.append(chunk_result)
        completed += chunk_result.get("completed", 0)
        if chunk_result.get("cancelled") or (
            cancel_event is not None and cancel_event.is_set()
        ):
            logger.warning(f"🛑 Analysis cancelled at {completed}/{total}")
            raise AnalysisCancelledError(completed, total)
        if progress_callback is not None:
            progress_callback(completed, total)
    return collected


def _dispatch_chunks(
    chunks: List[List[Neighborhood]],
    index: CatchmentIndex,
    stations: List[Station],
    app_config: AppConfig,
    max_radius_m: Optional[float],
    n_workers: int,
    progress_callback: Optional[ProgressCallback],
    cancel_event: Optional[threading.Event],
) -> List[Dict[str, Any]]:
    """
    Dispatch chunk jobs and join them.

    Args:
        chunks: Neighborhood chunks
        index: CatchmentIndex built for this run
        stations: Station records (serialized for process workers)
        app_config: Typed config
        max_radius_m: Candidate search radius override
        n_workers: joblib n_jobs
        progress_callback: (completed, total) reporter
        cancel_event: Cancellation flag

    Returns:
        List of chunk result dicts in chunk order
    """
    parallel_config = app_config.parallel
    backend = parallel_config.backend
    total = sum(len(c) for c in chunks)
    config_dict = app_config.as_dict()

    # Thread workers share the index and the cancel flag; process workers
    # receive station records and rebuild the index
    shared_memory = backend == "threading" or n_workers == 1
    station_records = None if shared_memory else [s.as_dict() for s in stations]
    worker_index = index if shared_memory else None
    worker_cancel = cancel_event if shared_memory else None

    logger.info(
        f"🚀 Dispatching {len(chunks)} chunks to {n_workers} workers ({backend})..."
    )

    try:
        dispatch_start = time.time()
        results_iter = Parallel(
            n_jobs=n_workers,
            backend=backend,
            verbose=parallel_config.verbose,
            return_as="generator",
        )(
            delayed(worker_process_chunk)(
                chunk_key=f"chunk_{i:04d}",
                neighborhoods=chunk,
                config=config_dict,
                max_radius_m=max_radius_m,
                index=worker_index,
                station_records=station_records,
                cancel_event=worker_cancel,
            )
            for i, chunk in enumerate(chunks)
        )
        results_list = _collect(results_iter, total, progress_callback, cancel_event)
        logger.info(f"   ⏱️ Parallel dispatch completed in {time.time() - dispatch_start:.1f}s")

    except (ImportError, RuntimeError, OSError) as e:
        logger.warning(f"⚠️ Parallel dispatch failed: {e}")
        if not parallel_config.fallback_on_error:
            raise
        logger.info("📋 Falling back to inline sequential processing...")
        results_list = _collect(
            (
                worker_process_chunk(
                    chunk_key=f"chunk_{i:04d}",
                    neighborhoods=chunk,
                    config=config_dict,
                    max_radius_m=max_radius_m,
                    index=index,
                    cancel_event=cancel_event,
                )
                for i, chunk in enumerate(chunks)
            ),
            total,
            progress_callback,
            cancel_event,
        )

    return results_list


# ═══════════════════════════════════════════════════════════════════════════
# 📦 RESULT REDUCTION
# ═══════════════════════════════════════════════════════════════════════════


def _reduce_outcomes(
    chunk_results: List[Dict[str, Any]],
) -> Tuple[List[CoverageResult], Dict[str, Any]]:
    """
    Flatten chunk results into coverage results and run counters.

    A chunk that failed as a whole marks each of its neighborhoods as
    skipped with the chunk error as the reason.

    Returns:
        Tuple of (results, counters) where counters holds skipped
        (id → reason), degenerate, station_failures, placeholders
    """
    results: List[CoverageResult] = []
    skipped: Dict[str, str] = {}
    degenerate = 0
    station_failures = 0
    placeholders = 0

    for chunk_result in chunk_results:
        if not chunk_result.get("success"):
            error = chunk_result.get("error") or "Unknown error"
            logger.warning(f"⚠️ {chunk_result.get('key')}: {error}")
            for nid in chunk_result.get("neighborhood_ids", []):
                skipped[nid] = f"worker error: {error}"
            continue

        outcome: NeighborhoodOutcome
        for outcome in chunk_result.get("outcomes", []):
            degenerate += outcome.degenerate_count
            station_failures += outcome.station_failures
            if outcome.skipped:
                skipped[outcome.neighborhood_id] = outcome.skip_reason or "skipped"
                continue
            if outcome.is_placeholder:
                placeholders += 1
            results.append(outcome.result)

    logger.info(
        f"📦 Collected {len(results)} results, {len(skipped)} skipped, "
        f"{placeholders} placeholders"
    )
    return results, {
        "skipped": skipped,
        "degenerate": degenerate,
        "station_failures": station_failures,
        "placeholders": placeholders,
    }


# ═══════════════════════════════════════════════════════════════════════════
# 📦 MODULE EXPORTS
# ═══════════════════════════════════════════════════════════════════════════

__all__ = [
    # Main entry point
    "compute_coverage",
    # Parallel decision functions
    "should_use_parallel",
    "get_effective_worker_count",
]
