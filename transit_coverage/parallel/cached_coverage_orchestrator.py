"""
Cached wrapper for coverage computation.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Add a caching layer around compute_coverage().
This module provides a drop-in replacement that checks the disk cache first.

Flow:
1. Fingerprint stations, neighborhoods and result-affecting settings
2. Cache HIT: return the stored snapshot, re-attributed to the current owner
3. Cache MISS: run compute_coverage(), stamp the fingerprint into the
   snapshot metadata, save, prune old entries

Usage:
    # Instead of:
    from transit_coverage.parallel.coverage_orchestrator import compute_coverage

    # Use:
    from transit_coverage.parallel.cached_coverage_orchestrator import (
        compute_coverage_cached,
    )

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from transit_coverage.config_types import AppConfig, normalize_config
from transit_coverage.models.data_models import (
    AnalysisSnapshot,
    Neighborhood,
    Station,
)
from transit_coverage.parallel.coverage_cache import (
    compute_cache_fingerprint,
    get_cache_stats,
    load_from_cache,
    prune_old_cache,
    save_to_cache,
)
from transit_coverage.parallel.coverage_orchestrator import (
    ProgressCallback,
    compute_coverage,
)

logger = logging.getLogger("TransitCoverage.CachedOrchestrator")


# ═══════════════════════════════════════════════════════════════════════════
# 🔑 CACHE HELPERS
# ═══════════════════════════════════════════════════════════════════════════


def _resolve_cache_dir(app_config: AppConfig, workspace_root: Optional[Path]) -> Path:
    cache_dir = app_config.cache.cache_path
    if workspace_root is not None and not cache_dir.is_absolute():
        return Path(workspace_root) / cache_dir
    return cache_dir


def _log_cache_stats_and_try_load(
    cache_dir: Path,
    fingerprint: str,
    app_config: AppConfig,
) -> Optional[AnalysisSnapshot]:
    """
    Report cache stats and attempt to load the cached snapshot.

    Returns:
        Cached snapshot, or None on miss / force overwrite
    """
    stats = get_cache_stats(cache_dir)
    if stats["exists"]:
        logger.info(
            "   Cache entries: %d (%s MB)", stats["entries"], stats["total_size_mb"]
        )

    if app_config.cache.force_overwrite:
        logger.info("   ⚠️ FORCE OVERWRITE enabled - will recompute and overwrite cache")
        return None

    log = logger if app_config.cache.log_cache_hits else None
    return load_from_cache(
        cache_dir, fingerprint, log, lock_timeout_s=app_config.cache.lock_timeout_s
    )


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 CACHED ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════


def compute_coverage_cached(
    stations: Iterable[Station],
    neighborhoods: Iterable[Neighborhood],
    max_candidate_radius_m: Optional[float] = None,
    config: Union[Dict[str, Any], AppConfig, None] = None,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
    owner_id: Optional[str] = None,
    workspace_root: Optional[Path] = None,
) -> AnalysisSnapshot:
    """
    compute_coverage() WITH CACHING.

    Args:
        stations: Station records.
        neighborhoods: Neighborhood records.
        max_candidate_radius_m: Candidate search radius override.
        config: CONFIG dict or AppConfig (None = module CONFIG).
        progress_callback: Forwarded to compute_coverage(); on a cache hit it
            is called once with (total, total).
        cancel_event: Forwarded to compute_coverage().
        owner_id: Owner the returned snapshot is attributed to.
        workspace_root: Base for a relative cache_dir (None = CWD).

    Returns:
        AnalysisSnapshot (fresh or cached) with metadata.owner_id = owner_id.
    """
    start_time = time.time()
    app_config = normalize_config(config)
    stations = list(stations)
    neighborhoods = list(neighborhoods)

    # Fast path: caching disabled
    if not app_config.cache.enabled:
        logger.info("📦 Caching disabled - running full computation")
        snapshot = compute_coverage(
            stations,
            neighborhoods,
            max_candidate_radius_m=max_candidate_radius_m,
            config=app_config,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
        )
        return snapshot.with_owner(owner_id)

    fingerprint = compute_cache_fingerprint(
        stations, neighborhoods, app_config, max_candidate_radius_m
    )
    cache_dir = _resolve_cache_dir(app_config, workspace_root)

    logger.info("=" * 60)
    logger.info("🔍 CHECKING COVERAGE CACHE")
    logger.info("=" * 60)
    logger.info("   Fingerprint: %s", fingerprint)

    cached = _log_cache_stats_and_try_load(cache_dir, fingerprint, app_config)
    if cached is not None:
        logger.info("=" * 60)
        logger.info("⚡ CACHE HIT - Skipping computation (%.2fs)", time.time() - start_time)
        logger.info("=" * 60)
        if progress_callback is not None:
            total = cached.metadata.total_neighborhoods
            progress_callback(total, total)
        return cached.with_owner(owner_id)

    # CACHE MISS - Run full computation
    logger.info("   💨 Cache miss - computing coverage...")
    snapshot = compute_coverage(
        stations,
        neighborhoods,
        max_candidate_radius_m=max_candidate_radius_m,
        config=app_config,
        progress_callback=progress_callback,
        cancel_event=cancel_event,
    )
    snapshot = replace(
        snapshot, metadata=replace(snapshot.metadata, input_fingerprint=fingerprint)
    )

    save_to_cache(
        cache_dir,
        fingerprint,
        snapshot,
        logger,
        lock_timeout_s=app_config.cache.lock_timeout_s,
    )
    prune_old_cache(cache_dir, max_entries=app_config.cache.max_cache_entries, log=logger)

    return snapshot.with_owner(owner_id)


# ═══════════════════════════════════════════════════════════════════════════
# 📦 MODULE EXPORTS
# ═══════════════════════════════════════════════════════════════════════════

__all__ = [
    "compute_coverage_cached",
]
