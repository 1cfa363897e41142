"""
Worker function for processing one chunk of neighborhoods.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Run compute_neighborhood_coverage() over a contiguous chunk
of neighborhoods and hand back a serializable result dict.
THIN WRAPPER pattern - all coverage logic lives in coverage_calculator.py.

Worker patterns:
- Accept only picklable parameters (records, dicts, the shared index when
  running on the threading backend)
- Return dict with success/error status, never raise to the dispatcher
- Check the cancel event between neighborhoods
- Quiet logging (DEBUG per neighborhood) to avoid interleaved output

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import threading
import time
from typing import Any, Dict, List, Optional

from transit_coverage.config_types import AppConfig
from transit_coverage.coverage_calculator import (
    NeighborhoodOutcome,
    compute_neighborhood_coverage,
)
from transit_coverage.geometry.spatial_index import CatchmentIndex
from transit_coverage.models.data_models import Neighborhood, stations_from_dicts


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 WORKER LOGGING SETUP
# ═══════════════════════════════════════════════════════════════════════════


def _setup_worker_logging(chunk_key: str) -> logging.Logger:
    """
    Named logger for this chunk so parallel log lines can be told apart.

    Args:
        chunk_key: Unique key for this chunk (used in logger name)

    Returns:
        Logger instance for this worker
    """
    return logging.getLogger(f"TransitCoverage.Worker.{chunk_key}")


def _create_empty_result(chunk_key: str, neighborhood_ids: List[str]) -> Dict[str, Any]:
    """
    Create initial result structure with default values.

    Args:
        chunk_key: Unique key for this chunk
        neighborhood_ids: Ids of the neighborhoods in this chunk

    Returns:
        Dict with initialized result structure
    """
    return {
        "key": chunk_key,
        "success": False,
        "cancelled": False,
        "neighborhood_ids": neighborhood_ids,
        "outcomes": [],
        "completed": 0,
        "duration_seconds": 0.0,
        "error": None,
    }


def _process_neighborhood(
    neighborhood: Neighborhood,
    index: CatchmentIndex,
    app_config: AppConfig,
    max_radius_m: Optional[float],
    logger: logging.Logger,
) -> NeighborhoodOutcome:
    """Coverage for one neighborhood; an unexpected failure skips only it."""
    try:
        return compute_neighborhood_coverage(
            neighborhood, index, app_config, max_radius_m
        )
    except Exception as e:
        reason = f"neighborhood error: {type(e).__name__}: {e}"
        logger.warning(f"⚠️ Neighborhood {neighborhood.neighborhood_id} skipped: {reason}")
        return NeighborhoodOutcome(
            neighborhood_id=neighborhood.neighborhood_id, skip_reason=reason
        )


# ═══════════════════════════════════════════════════════════════════════════
# 🏭 MAIN WORKER FUNCTION
# ═══════════════════════════════════════════════════════════════════════════


def worker_process_chunk(
    chunk_key: str,
    neighborhoods: List[Neighborhood],
    config: Dict[str, Any],
    max_radius_m: Optional[float] = None,
    index: Optional[CatchmentIndex] = None,
    station_records: Optional[List[Dict[str, Any]]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    """
    Compute coverage for every neighborhood in one chunk.

    Thread workers share the run's CatchmentIndex. Process workers (loky)
    receive station records instead and rebuild the index locally.

    Args:
        chunk_key: Unique key for this chunk (e.g., "chunk_0003")
        neighborhoods: Neighborhood records for this chunk
        config: CONFIG-shaped dict (AppConfig.as_dict())
        max_radius_m: Candidate search radius override
        index: Shared CatchmentIndex (threading backend)
        station_records: Station dicts used when no index is shared
        cancel_event: Checked between neighborhoods; when set the chunk
            stops early and reports cancelled=True

    Returns:
        Dict with key, success, cancelled, neighborhood_ids, outcomes
        (List[NeighborhoodOutcome]), completed, duration_seconds, error
    """
    start_time = time.time()
    logger = _setup_worker_logging(chunk_key)
    result = _create_empty_result(
        chunk_key, [n.neighborhood_id for n in neighborhoods]
    )

    try:
        app_config = AppConfig.from_dict(config)
        if index is None:
            stations = stations_from_dicts(station_records or [])
            index = CatchmentIndex(
                stations, app_config.catchment, app_config.coverage.candidate_margin_m
            )

        outcomes: List[NeighborhoodOutcome] = []
        for neighborhood in neighborhoods:
            if cancel_event is not None and cancel_event.is_set():
                result["cancelled"] = True
                logger.debug(f"   {chunk_key}: cancelled after {len(outcomes)}")
                break
            outcomes.append(
                _process_neighborhood(
                    neighborhood, index, app_config, max_radius_m, logger
                )
            )

        result["outcomes"] = outcomes
        result["completed"] = len(outcomes)
        result["success"] = True
        result["duration_seconds"] = time.time() - start_time
        logger.debug(
            f"   {chunk_key}: {len(outcomes)} neighborhoods in "
            f"{result['duration_seconds']:.2f}s"
        )
        return result

    except Exception as e:
        result["error"] = f"{type(e).__name__}: {e}"
        result["duration_seconds"] = time.time() - start_time
        logger.error("❌ %s: %s", chunk_key, result["error"])
        return result


__all__ = ["worker_process_chunk"]
