"""
Coverage Cache Management Module

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Persist AnalysisSnapshots to disk keyed by an input
fingerprint. Enables skipping the whole geometry pass when stations,
neighborhoods and result-affecting settings are unchanged.

Key Functions:
- compute_cache_fingerprint(): Deterministic hash of all inputs
- load_from_cache(): Load cached snapshot if valid
- save_to_cache(): Persist snapshot to cache directory
- prune_old_cache(): Keep only the newest entries
- invalidate_cache(): Clear specific or all cached snapshots
- get_cache_stats(): Report cache status for logging

Cache Format:
- Pickle files keyed by SHA256 fingerprint
- JSON manifest for human-readable cache registry
- Writes (and reads) guarded by a per-entry filelock, files replaced
  atomically so a reader never sees a partial pickle

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import hashlib
import json
import logging
import os
import pickle
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import filelock

from transit_coverage.config_types import AppConfig, normalize_config
from transit_coverage.models.data_models import (
    AnalysisSnapshot,
    Neighborhood,
    Station,
)

logger = logging.getLogger("TransitCoverage.Cache")

CACHE_FILE_PREFIX = "transit_coverage_"
MANIFEST_NAME = "cache_manifest.json"
CACHE_VERSION = "1.0"
DEFAULT_LOCK_TIMEOUT_S = 120.0


# ═══════════════════════════════════════════════════════════════════════════
# 🔑 FINGERPRINT COMPUTATION
# ═══════════════════════════════════════════════════════════════════════════


def _neighborhood_record(neighborhood: Neighborhood) -> Dict[str, Any]:
    record = neighborhood.as_dict()
    # Geometry as canonical JSON (shapely tuples and GeoJSON lists agree)
    record["geometry"] = json.dumps(record["geometry"], sort_keys=True, default=str)
    return record


def compute_cache_fingerprint(
    stations: Iterable[Station],
    neighborhoods: Iterable[Neighborhood],
    config: Union[Dict[str, Any], AppConfig, None] = None,
    max_candidate_radius_m: Optional[float] = None,
) -> str:
    """
    Compute deterministic fingerprint from all cache-affecting inputs.

    The fingerprint is a SHA256 hash of every input that affects the
    analysis result. If ANY of these inputs change, the fingerprint changes
    and the cache entry no longer matches.

    Args:
        stations: Station records (order-independent)
        neighborhoods: Neighborhood records (order-independent)
        config: CONFIG dict or AppConfig; only result-affecting settings
            (catchment, coverage policy, top_n) are hashed
        max_candidate_radius_m: Call-level search radius override

    Returns:
        SHA256 hex string (first 16 chars for readability)
    """
    app_config = normalize_config(config)
    hasher = hashlib.sha256()

    # === STATIONS ===
    station_records = sorted(
        (s.as_dict() for s in stations), key=lambda r: r["station_id"]
    )
    payload = json.dumps(station_records, sort_keys=True, default=str)
    hasher.update(payload.encode("utf-8"))

    # === NEIGHBORHOODS ===
    neighborhood_records = sorted(
        (_neighborhood_record(n) for n in neighborhoods),
        key=lambda r: r["neighborhood_id"],
    )
    payload = json.dumps(neighborhood_records, sort_keys=True, default=str)
    hasher.update(payload.encode("utf-8"))

    # === SETTINGS ===
    settings = app_config.fingerprint_settings()
    settings["max_candidate_radius_m"] = max_candidate_radius_m
    hasher.update(json.dumps(settings, sort_keys=True, default=str).encode("utf-8"))

    return hasher.hexdigest()[:16]


# ═══════════════════════════════════════════════════════════════════════════
# 💾 CACHE I/O
# ═══════════════════════════════════════════════════════════════════════════


def get_cache_path(cache_dir: Path, fingerprint: str) -> Path:
    """
    Get cache file path for given fingerprint.

    Args:
        cache_dir: Cache directory path
        fingerprint: Cache key fingerprint (16-char hex string)

    Returns:
        Path to cache file (may not exist yet)
    """
    return Path(cache_dir) / f"{CACHE_FILE_PREFIX}{fingerprint}.pkl"


def _lock_for(cache_path: Path, timeout_s: float) -> filelock.FileLock:
    return filelock.FileLock(str(cache_path) + ".lock", timeout=timeout_s)


def load_from_cache(
    cache_dir: Path,
    fingerprint: str,
    log: Optional[logging.Logger] = None,
    lock_timeout_s: float = DEFAULT_LOCK_TIMEOUT_S,
) -> Optional[AnalysisSnapshot]:
    """
    Load a cached snapshot if present and valid.

    Returns None on any problem (missing file, lock timeout, corruption,
    wrong format); corrupted files are deleted.

    Args:
        cache_dir: Cache directory path
        fingerprint: Cache key fingerprint
        log: Optional logger for status messages
        lock_timeout_s: Seconds to wait for a concurrent writer

    Returns:
        AnalysisSnapshot, or None on cache miss or error
    """
    cache_path = get_cache_path(cache_dir, fingerprint)

    if not cache_path.exists():
        if log:
            log.info(f"   ❌ Cache miss: {fingerprint}")
        return None

    try:
        with _lock_for(cache_path, lock_timeout_s):
            with open(cache_path, "rb") as f:
                cached_data = pickle.load(f)

        # Validate structure
        if not isinstance(cached_data, dict):
            raise ValueError("Invalid cache format: not a dict")
        snapshot = cached_data.get("snapshot")
        if not isinstance(snapshot, AnalysisSnapshot):
            raise ValueError("Invalid cache format: missing snapshot")

        if log:
            log.info(f"   ✅ Cache HIT: {fingerprint}")
            log.info(f"      Created: {cached_data.get('timestamp', 'unknown')}")
            log.info(f"      Results: {len(snapshot.results)}")
        return snapshot

    except filelock.Timeout:
        if log:
            log.warning(f"   ⏱️ Cache lock timeout ({fingerprint}), treating as miss")
        return None
    except (OSError, EOFError, ValueError, AttributeError, pickle.UnpicklingError) as e:
        if log:
            log.warning(f"   ⚠️ Cache corrupted ({fingerprint}): {e}")
        # Delete corrupted cache file
        try:
            cache_path.unlink(missing_ok=True)
        except OSError as unlink_err:
            logger.debug(f"Could not delete corrupted cache file: {unlink_err}")
        return None


def save_to_cache(
    cache_dir: Path,
    fingerprint: str,
    snapshot: AnalysisSnapshot,
    log: Optional[logging.Logger] = None,
    lock_timeout_s: float = DEFAULT_LOCK_TIMEOUT_S,
) -> bool:
    """
    Save a snapshot to cache.

    Creates the cache directory if needed, writes to a temporary file and
    atomically replaces the entry while holding its lock.

    Args:
        cache_dir: Cache directory path
        fingerprint: Cache key fingerprint
        snapshot: Snapshot to persist
        log: Optional logger
        lock_timeout_s: Seconds to wait for a concurrent writer

    Returns:
        True if save succeeded, False otherwise
    """
    cache_dir = Path(cache_dir)
    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
        cache_path = get_cache_path(cache_dir, fingerprint)

        cached_data = {
            "fingerprint": fingerprint,
            "timestamp": datetime.now().isoformat(),
            "snapshot": snapshot,
            "version": CACHE_VERSION,
        }

        with _lock_for(cache_path, lock_timeout_s):
            fd, tmp_name = tempfile.mkstemp(dir=str(cache_dir), suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    pickle.dump(cached_data, f, protocol=pickle.HIGHEST_PROTOCOL)
                os.replace(tmp_name, cache_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
            _update_manifest(cache_dir, fingerprint, len(snapshot.results))

        if log:
            size_mb = cache_path.stat().st_size / (1024 * 1024)
            log.info(f"   💾 Cache saved: {fingerprint} ({size_mb:.2f} MB)")
        return True

    except filelock.Timeout:
        if log:
            log.warning(f"   ⏱️ Cache lock timeout ({fingerprint}), not saved")
        return False
    except (OSError, pickle.PicklingError, TypeError) as e:
        if log:
            log.warning(f"   ⚠️ Failed to save cache: {e}")
        return False


def _read_manifest(cache_dir: Path) -> Dict[str, Any]:
    manifest_path = cache_dir / MANIFEST_NAME
    if not manifest_path.exists():
        return {"entries": [], "version": CACHE_VERSION}
    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            manifest = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.debug(f"Manifest unreadable, starting fresh: {e}")
        return {"entries": [], "version": CACHE_VERSION}
    manifest.setdefault("entries", [])
    return manifest


def _write_manifest(cache_dir: Path, manifest: Dict[str, Any]) -> None:
    manifest_path = cache_dir / MANIFEST_NAME
    try:
        with open(manifest_path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=2)
    except OSError as e:
        logger.debug(f"Manifest write failed: {e}")


def _update_manifest(cache_dir: Path, fingerprint: str, result_count: int) -> None:
    """Add or refresh the manifest entry for ``fingerprint``."""
    manifest = _read_manifest(cache_dir)
    manifest["entries"] = [
        e for e in manifest["entries"] if e.get("fingerprint") != fingerprint
    ]
    manifest["entries"].append(
        {
            "fingerprint": fingerprint,
            "created": datetime.now().isoformat(),
            "results": result_count,
        }
    )
    _write_manifest(cache_dir, manifest)


def _drop_from_manifest(cache_dir: Path, fingerprints: List[str]) -> None:
    if not fingerprints:
        return
    manifest = _read_manifest(cache_dir)
    manifest["entries"] = [
        e for e in manifest["entries"] if e.get("fingerprint") not in fingerprints
    ]
    _write_manifest(cache_dir, manifest)


def _fingerprint_of(cache_file: Path) -> str:
    return cache_file.stem[len(CACHE_FILE_PREFIX):]


# ═══════════════════════════════════════════════════════════════════════════
# 🧹 CACHE MANAGEMENT
# ═══════════════════════════════════════════════════════════════════════════


def _entries_newest_first(cache_dir: Path) -> List[Path]:
    """Snapshot pickles in ``cache_dir``, most recently written first."""
    if not cache_dir.is_dir():
        return []
    return sorted(
        cache_dir.glob(f"{CACHE_FILE_PREFIX}*.pkl"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )


def _delete_entries(cache_dir: Path, doomed: Iterable[Path]) -> List[str]:
    """Unlink snapshot pickles and their manifest rows; returns removed fingerprints."""
    removed: List[str] = []
    for path in doomed:
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.debug(f"Could not remove {path.name}: {e}")
            continue
        removed.append(_fingerprint_of(path))
    _drop_from_manifest(cache_dir, removed)
    return removed


def prune_old_cache(
    cache_dir: Path,
    max_entries: int = 10,
    log: Optional[logging.Logger] = None,
) -> int:
    """
    Trim the cache to the ``max_entries`` most recently written snapshots.

    Returns:
        Number of snapshots removed
    """
    cache_dir = Path(cache_dir)
    removed = _delete_entries(cache_dir, _entries_newest_first(cache_dir)[max_entries:])
    if log and removed:
        log.info(f"   🧹 Pruned {len(removed)} old cache entries")
    return len(removed)


def invalidate_cache(
    cache_dir: Path,
    fingerprint: Optional[str] = None,
    log: Optional[logging.Logger] = None,
) -> int:
    """
    Drop one cached snapshot by fingerprint, or every snapshot when
    ``fingerprint`` is None (e.g. after a station dataset is republished).

    Returns:
        Number of snapshots removed
    """
    cache_dir = Path(cache_dir)
    if fingerprint:
        doomed = [get_cache_path(cache_dir, fingerprint)]
    else:
        doomed = _entries_newest_first(cache_dir)
    removed = _delete_entries(cache_dir, doomed)
    if log and removed:
        log.info(f"   🗑️ Invalidated {len(removed)} cache entries")
    return len(removed)


def get_cache_stats(cache_dir: Path) -> Dict[str, Any]:
    """
    Summarize the cache directory for the run log.

    Keys: exists, entries, total_size_mb, newest (fingerprint or None),
    cache_dir.
    """
    cache_dir = Path(cache_dir)
    entries = _entries_newest_first(cache_dir)
    size_bytes = sum(p.stat().st_size for p in entries)
    return {
        "exists": cache_dir.is_dir(),
        "entries": len(entries),
        "total_size_mb": round(size_bytes / (1024 * 1024), 2),
        "newest": _fingerprint_of(entries[0]) if entries else None,
        "cache_dir": str(cache_dir),
    }


# ═══════════════════════════════════════════════════════════════════════════
# 📦 MODULE EXPORTS
# ═══════════════════════════════════════════════════════════════════════════

__all__ = [
    "compute_cache_fingerprint",
    "load_from_cache",
    "save_to_cache",
    "prune_old_cache",
    "invalidate_cache",
    "get_cache_stats",
    "get_cache_path",
]
