"""
Parallel processing package for neighborhood coverage computation.

Provides the joblib-based orchestrator, the per-chunk worker, the
fingerprinted disk cache and the per-owner snapshot store.
"""

from transit_coverage.parallel.cached_coverage_orchestrator import (
    compute_coverage_cached,
)
from transit_coverage.parallel.coverage_cache import (
    compute_cache_fingerprint,
    get_cache_stats,
    invalidate_cache,
    load_from_cache,
    prune_old_cache,
    save_to_cache,
)
from transit_coverage.parallel.coverage_orchestrator import (
    compute_coverage,
    get_effective_worker_count,
    should_use_parallel,
)
from transit_coverage.parallel.snapshot_store import SnapshotStore

__all__ = [
    # Orchestration
    "compute_coverage",
    "compute_coverage_cached",
    "get_effective_worker_count",
    "should_use_parallel",
    # Snapshot slots
    "SnapshotStore",
    # Cache
    "compute_cache_fingerprint",
    "get_cache_stats",
    "invalidate_cache",
    "load_from_cache",
    "prune_old_cache",
    "save_to_cache",
]
