#!/usr/bin/env python3
"""
Transit Coverage Analysis - Configuration

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Centralized configuration for the coverage analysis engine.
Single source of truth for catchment radii, coverage policy, worker pool,
result cache, file paths and logging.

Configuration Sections (ordered by importance for analysis tuning):
1. catchment: Station walking-catchment radius range and buffer resolution
2. coverage: Invalid-geometry policy, candidate radius, ranking size
3. parallel: Worker pool settings
4. cache: Fingerprinted result cache settings
5. file_paths: Input/output file locations (bottom - rarely changed)
6. logging: Log level and folder naming

Navigation Guide:
- Use VS Code outline (Ctrl+Shift+O) to jump between sections
"""

import os
from typing import Dict, Any, TypeVar, Callable, Optional

T = TypeVar("T")


def _env_or_default(
    key: str, default: T, type_fn: Optional[Callable[[str], T]] = None
) -> T:
    """
    Get value from environment variable or use default.

    Args:
        key: Environment variable name (e.g., "TC_DEFAULT_RADIUS_M")
        default: Default value if env var not set
        type_fn: Optional type conversion function (e.g., float, int)

    Returns:
        Value from environment (converted) or default

    Example:
        >>> _env_or_default("TC_DEFAULT_RADIUS_M", 400.0, float)
        400.0  # If env var not set
    """
    val = os.getenv(key)
    if val is not None:
        if type_fn is not None:
            return type_fn(val)
        return val  # type: ignore
    return default


def _env_bool(key: str, default: bool) -> bool:
    """
    Get boolean value from environment variable.

    Treats "true", "1", "yes" as True (case-insensitive).
    Any other value or unset returns default.
    """
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 ENVIRONMENT VARIABLE OVERRIDES
# ═══════════════════════════════════════════════════════════════════════════
# TC_DEFAULT_RADIUS_M     - float, radius for stations without one (default: 400)
# TC_MIN_RADIUS_M         - float, lower clamp for catchment radius (default: 300)
# TC_MAX_RADIUS_M         - float, upper clamp for catchment radius (default: 500)
# TC_BUFFER_SEGMENTS      - int, vertices per catchment ring (default: 128)
# TC_INVALID_POLICY       - "skip" or "emit_zero" (default: "skip")
# TC_MULTIPOLYGON_MODE    - "first_part" or "all_parts" (default: "first_part")
# TC_MAX_WORKERS          - int, -1 = auto (default: -1)
# TC_PARALLEL_BACKEND     - "threading" or "loky" (default: "threading")
# TC_CACHE_ENABLED        - "true" or "false" (default: "false")
#
# Example usage:
#   export TC_MAX_WORKERS=4
#   export TC_INVALID_POLICY=emit_zero
#   python -m transit_coverage.main --stations s.geojson --neighborhoods n.geojson
# ═══════════════════════════════════════════════════════════════════════════

# ═══════════════════════════════════════════════════════════════════════════
# ⚙️ MASTER CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════

CONFIG: Dict[str, Any] = {
    # ═══════════════════════════════════════════════════════════════════════
    # 🚏 STATION CATCHMENTS
    # ═══════════════════════════════════════════════════════════════════════
    "catchment": {
        # Radius used when a station record carries none
        "default_radius_m": _env_or_default("TC_DEFAULT_RADIUS_M", 400.0, float),
        # Walking distance range accepted by the planners' UI
        "min_radius_m": _env_or_default("TC_MIN_RADIUS_M", 300.0, float),
        "max_radius_m": _env_or_default("TC_MAX_RADIUS_M", 500.0, float),
        # Ring vertices; 128 keeps the polygon within 0.05% of the true disk area
        "buffer_segments": _env_or_default("TC_BUFFER_SEGMENTS", 128, int),
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 📊 COVERAGE CALCULATION
    # ═══════════════════════════════════════════════════════════════════════
    "coverage": {
        # "skip": drop neighborhoods with unusable geometry (logged + counted)
        # "emit_zero": keep a flagged placeholder row with 0% coverage
        "invalid_geometry_policy": _env_or_default("TC_INVALID_POLICY", "skip"),
        # "first_part": only the first polygon of a MultiPolygon is analysed
        "multipolygon_mode": _env_or_default("TC_MULTIPOLYGON_MODE", "first_part"),
        # None = use the largest effective station radius in the dataset
        "max_candidate_radius_m": None,
        # Extra metres added to the candidate search region
        "candidate_margin_m": 5.0,
        # Size of each ranking table
        "top_n": 5,
        "analysis_type": "coverage",
    },
    # ═══════════════════════════════════════════════════════════════════════
    # ⚡ PARALLEL PROCESSING
    # ═══════════════════════════════════════════════════════════════════════
    "parallel": {
        "enabled": True,
        "max_workers": _env_or_default("TC_MAX_WORKERS", -1, int),
        "optimal_workers_default": 8,
        # Fewer neighborhoods than this run with n_jobs=1 (same code path)
        "min_neighborhoods_for_parallel": 20,
        # Neighborhoods per task; small datasets amortize dispatch overhead
        "chunk_size": 8,
        # Shapely releases the GIL, so threads scale for geometry work
        "backend": _env_or_default("TC_PARALLEL_BACKEND", "threading"),
        # Fall back to sequential on any parallel error
        "fallback_on_error": True,
        "verbose": 0,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 💾 RESULT CACHE
    # ═══════════════════════════════════════════════════════════════════════
    "cache": {
        "enabled": _env_bool("TC_CACHE_ENABLED", False),
        # Force overwrite - recompute and overwrite existing cache even if valid
        "force_overwrite": False,
        "cache_dir": "transit_coverage/cache",
        # Maximum cache entries to keep (oldest are pruned)
        "max_cache_entries": 10,
        "lock_timeout_s": 120.0,
        # Log cache hits/misses
        "log_cache_hits": True,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 📁 FILE PATHS
    # ═══════════════════════════════════════════════════════════════════════
    "file_paths": {
        "stations_geojson": "",
        "neighborhoods_geojson": "",
        "output_dir": "Output",
        "log_dir": "logs",
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 📋 LOGGING
    # ═══════════════════════════════════════════════════════════════════════
    "logging": {
        "level": _env_or_default("TC_LOG_LEVEL", "INFO"),
        "log_to_file": True,
    },
}
