"""
═══════════════════════════════════════════════════════════════════════════════
📋 UNIFIED CONFIGURATION TYPES
═══════════════════════════════════════════════════════════════════════════════

ARCHITECTURAL OVERVIEW
----------------------
Responsibility: Define all configuration dataclasses for the coverage engine.
Replaces scattered CONFIG dictionary access with typed, validated config objects.

It provides:
1. Type-safe configuration dataclasses
2. A single AppConfig facade that wraps all settings
3. Factory methods to create configs from the CONFIG dictionary

Usage:
    from transit_coverage.config import CONFIG
    from transit_coverage.config_types import AppConfig

    # Create once at application startup
    app_config = AppConfig.from_dict(CONFIG)

    # Use throughout the application
    radius = app_config.catchment.clamp_radius(station.radius_m)

NAVIGATION GUIDE
----------------
# ═════ 1. CATCHMENT CONFIGURATION
# ═════ 2. COVERAGE CONFIGURATION
# ═════ 3. PARALLEL PROCESSING CONFIGURATION
# ═════ 4. CACHE CONFIGURATION
# ═════ 5. FILE PATHS / LOGGING CONFIGURATION
# ═════ 6. APP CONFIG (MASTER FACADE)

═══════════════════════════════════════════════════════════════════════════════
"""

import copy
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, Union


INVALID_GEOMETRY_POLICIES = ("skip", "emit_zero")
MULTIPOLYGON_MODES = ("first_part", "all_parts")
PARALLEL_BACKENDS = ("threading", "loky", "multiprocessing")


# ═══════════════════════════════════════════════════════════════════════════════
# 🚏 1. CATCHMENT CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CatchmentConfig:
    """
    Station catchment settings.

    Attributes:
        default_radius_m: Radius for stations that carry none.
        min_radius_m: Lower clamp for catchment radius.
        max_radius_m: Upper clamp for catchment radius.
        buffer_segments: Number of vertices in each geodesic catchment ring.
    """

    default_radius_m: float = 400.0
    min_radius_m: float = 300.0
    max_radius_m: float = 500.0
    buffer_segments: int = 128

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CatchmentConfig":
        """Create CatchmentConfig from CONFIG['catchment'] dictionary."""
        return cls(
            default_radius_m=float(d.get("default_radius_m", 400.0)),
            min_radius_m=float(d.get("min_radius_m", 300.0)),
            max_radius_m=float(d.get("max_radius_m", 500.0)),
            buffer_segments=int(d.get("buffer_segments", 128)),
        )

    def __post_init__(self) -> None:
        """Validate radius range."""
        if self.min_radius_m <= 0:
            raise ValueError(f"min_radius_m must be > 0, got {self.min_radius_m}")
        if self.max_radius_m < self.min_radius_m:
            raise ValueError(
                f"max_radius_m ({self.max_radius_m}) must be >= "
                f"min_radius_m ({self.min_radius_m})"
            )
        if self.buffer_segments < 8:
            raise ValueError(
                f"buffer_segments must be >= 8, got {self.buffer_segments}"
            )

    def clamp_radius(self, radius_m: Optional[float]) -> float:
        """Clamp a station radius into [min_radius_m, max_radius_m].

        Missing radii take default_radius_m before clamping.

        Raises:
            ValueError: Radius is not a finite number
        """
        if radius_m is None:
            radius_m = self.default_radius_m
        radius_m = float(radius_m)
        if not math.isfinite(radius_m):
            raise ValueError(f"Station radius must be finite, got {radius_m}")
        return min(self.max_radius_m, max(self.min_radius_m, radius_m))


# ═══════════════════════════════════════════════════════════════════════════════
# 📊 2. COVERAGE CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CoverageConfig:
    """
    Per-neighborhood coverage calculation settings.

    Attributes:
        invalid_geometry_policy: "skip" drops neighborhoods with unusable
            geometry, "emit_zero" keeps a flagged placeholder row.
        multipolygon_mode: "first_part" analyses only the first polygon of a
            MultiPolygon, "all_parts" keeps every part.
        max_candidate_radius_m: Candidate search distance (None = largest
            effective station radius).
        candidate_margin_m: Extra metres added to the search region.
        top_n: Size of each ranking table.
        analysis_type: Snapshot slot name used by the snapshot store.
    """

    invalid_geometry_policy: str = "skip"
    multipolygon_mode: str = "first_part"
    max_candidate_radius_m: Optional[float] = None
    candidate_margin_m: float = 5.0
    top_n: int = 5
    analysis_type: str = "coverage"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CoverageConfig":
        """Create CoverageConfig from CONFIG['coverage'] dictionary."""
        max_candidate = d.get("max_candidate_radius_m")
        return cls(
            invalid_geometry_policy=d.get("invalid_geometry_policy", "skip"),
            multipolygon_mode=d.get("multipolygon_mode", "first_part"),
            max_candidate_radius_m=(
                float(max_candidate) if max_candidate is not None else None
            ),
            candidate_margin_m=float(d.get("candidate_margin_m", 5.0)),
            top_n=int(d.get("top_n", 5)),
            analysis_type=d.get("analysis_type", "coverage"),
        )

    def __post_init__(self) -> None:
        """Validate policy names and ranking size."""
        if self.invalid_geometry_policy not in INVALID_GEOMETRY_POLICIES:
            raise ValueError(
                f"invalid_geometry_policy must be one of {INVALID_GEOMETRY_POLICIES}, "
                f"got {self.invalid_geometry_policy}"
            )
        if self.multipolygon_mode not in MULTIPOLYGON_MODES:
            raise ValueError(
                f"multipolygon_mode must be one of {MULTIPOLYGON_MODES}, "
                f"got {self.multipolygon_mode}"
            )
        if self.top_n < 1:
            raise ValueError(f"top_n must be >= 1, got {self.top_n}")
        if self.candidate_margin_m < 0:
            raise ValueError(
                f"candidate_margin_m must be >= 0, got {self.candidate_margin_m}"
            )


# ═══════════════════════════════════════════════════════════════════════════════
# ⚡ 3. PARALLEL PROCESSING CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ParallelConfig:
    """
    Configuration for the neighborhood worker pool.

    Attributes:
        enabled: Master toggle for parallel processing.
        max_workers: Number of workers (-1 = auto).
        optimal_workers_default: Default worker count when auto-detecting.
        min_neighborhoods_for_parallel: Minimum neighborhoods to justify parallel.
        chunk_size: Neighborhoods per dispatched task.
        backend: Joblib backend ("threading" or "loky").
        fallback_on_error: Fall back to sequential on dispatch errors.
        verbose: Joblib verbosity level (0-10).
    """

    enabled: bool = True
    max_workers: int = -1
    optimal_workers_default: int = 8
    min_neighborhoods_for_parallel: int = 20
    chunk_size: int = 8
    backend: str = "threading"
    fallback_on_error: bool = True
    verbose: int = 0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ParallelConfig":
        """Create ParallelConfig from CONFIG['parallel'] dictionary."""
        return cls(
            enabled=d.get("enabled", True),
            max_workers=int(d.get("max_workers", -1)),
            optimal_workers_default=int(d.get("optimal_workers_default", 8)),
            min_neighborhoods_for_parallel=int(
                d.get("min_neighborhoods_for_parallel", 20)
            ),
            chunk_size=int(d.get("chunk_size", 8)),
            backend=d.get("backend", "threading"),
            fallback_on_error=d.get("fallback_on_error", True),
            verbose=int(d.get("verbose", 0)),
        )

    def __post_init__(self) -> None:
        """Validate worker settings."""
        if self.backend not in PARALLEL_BACKENDS:
            raise ValueError(
                f"backend must be one of {PARALLEL_BACKENDS}, got {self.backend}"
            )
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.max_workers == 0 or self.max_workers < -1:
            raise ValueError(
                f"max_workers must be -1 (auto) or >= 1, got {self.max_workers}"
            )


# ═══════════════════════════════════════════════════════════════════════════════
# 💾 4. CACHE CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CacheConfig:
    """
    Configuration for the fingerprinted snapshot cache.

    Cache eliminates recomputation when stations, neighborhoods and
    result-affecting settings are unchanged.

    Attributes:
        enabled: Master toggle for caching.
        force_overwrite: Force recompute even if cache exists.
        cache_dir: Directory for cache files.
        max_cache_entries: Maximum entries before pruning.
        lock_timeout_s: Seconds to wait for a cache file lock.
        log_cache_hits: Log cache hits/misses.
    """

    enabled: bool = False
    force_overwrite: bool = False
    cache_dir: str = "transit_coverage/cache"
    max_cache_entries: int = 10
    lock_timeout_s: float = 120.0
    log_cache_hits: bool = True

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CacheConfig":
        """Create CacheConfig from CONFIG['cache'] dictionary."""
        return cls(
            enabled=d.get("enabled", False),
            force_overwrite=d.get("force_overwrite", False),
            cache_dir=d.get("cache_dir", "transit_coverage/cache"),
            max_cache_entries=int(d.get("max_cache_entries", 10)),
            lock_timeout_s=float(d.get("lock_timeout_s", 120.0)),
            log_cache_hits=d.get("log_cache_hits", True),
        )

    @property
    def cache_path(self) -> Path:
        """Get cache directory as Path object."""
        return Path(self.cache_dir)


# ═══════════════════════════════════════════════════════════════════════════════
# 📁 5. FILE PATHS / LOGGING CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class FilePathsConfig:
    """
    File path configuration for inputs and outputs.

    Attributes:
        stations_geojson: Path to station points GeoJSON.
        neighborhoods_geojson: Path to neighborhood polygons GeoJSON.
        output_dir: Directory for output files.
        log_dir: Directory for log files.
    """

    stations_geojson: str = ""
    neighborhoods_geojson: str = ""
    output_dir: str = "Output"
    log_dir: str = "logs"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FilePathsConfig":
        """Create FilePathsConfig from CONFIG['file_paths'] dictionary."""
        return cls(
            stations_geojson=d.get("stations_geojson", ""),
            neighborhoods_geojson=d.get("neighborhoods_geojson", ""),
            output_dir=d.get("output_dir", "Output"),
            log_dir=d.get("log_dir", "logs"),
        )

    @property
    def output_path(self) -> Path:
        """Get output directory as relative Path object."""
        return Path(self.output_dir)

    @property
    def log_path(self) -> Path:
        """Get log directory as relative Path object."""
        return Path(self.log_dir)


@dataclass(frozen=True)
class LoggingConfig:
    """Log level and file logging toggle."""

    level: str = "INFO"
    log_to_file: bool = True

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LoggingConfig":
        """Create LoggingConfig from CONFIG['logging'] dictionary."""
        return cls(
            level=str(d.get("level", "INFO")).upper(),
            log_to_file=d.get("log_to_file", True),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# 🎯 6. APP CONFIG (MASTER FACADE)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class AppConfig:
    """
    Master configuration object for the coverage engine.

    Create it once using AppConfig.from_dict(CONFIG) and pass it to the
    functions that need settings. Engine entry points also accept the raw
    dict and normalize it themselves.

    Attributes:
        catchment: Station catchment configuration.
        coverage: Coverage calculation configuration.
        parallel: Worker pool configuration.
        cache: Result cache configuration.
        file_paths: File path configuration.
        logging: Logging configuration.

    Example:
        from transit_coverage.config import CONFIG
        from transit_coverage.config_types import AppConfig

        app_config = AppConfig.from_dict(CONFIG)
        snapshot = compute_coverage(stations, neighborhoods, config=app_config)
    """

    catchment: CatchmentConfig = field(default_factory=CatchmentConfig)
    coverage: CoverageConfig = field(default_factory=CoverageConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    file_paths: FilePathsConfig = field(default_factory=FilePathsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Raw config dict, kept for fingerprinting and overrides
    _raw_config: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "AppConfig":
        """
        Create AppConfig from the CONFIG dictionary.

        Args:
            config_dict: The CONFIG dictionary from config.py (or a partial
                dict; missing sections take their defaults).

        Returns:
            AppConfig instance with all settings populated.
        """
        return cls(
            catchment=CatchmentConfig.from_dict(config_dict.get("catchment", {})),
            coverage=CoverageConfig.from_dict(config_dict.get("coverage", {})),
            parallel=ParallelConfig.from_dict(config_dict.get("parallel", {})),
            cache=CacheConfig.from_dict(config_dict.get("cache", {})),
            file_paths=FilePathsConfig.from_dict(config_dict.get("file_paths", {})),
            logging=LoggingConfig.from_dict(config_dict.get("logging", {})),
            _raw_config=config_dict,
        )

    @classmethod
    def default(cls) -> "AppConfig":
        """AppConfig built from the module-level CONFIG dictionary."""
        from transit_coverage.config import CONFIG

        return cls.from_dict(CONFIG)

    def with_overrides(self, section: str, **values: Any) -> "AppConfig":
        """
        Return a new AppConfig with keys of one section replaced.

        Example:
            single = app_config.with_overrides("parallel", max_workers=1)
        """
        raw = copy.deepcopy(self._raw_config) if self._raw_config else self.as_dict()
        raw.setdefault(section, {}).update(values)
        return AppConfig.from_dict(raw)

    def as_dict(self) -> Dict[str, Any]:
        """Typed settings back as a CONFIG-shaped dictionary."""
        from dataclasses import asdict

        return {
            "catchment": asdict(self.catchment),
            "coverage": asdict(self.coverage),
            "parallel": asdict(self.parallel),
            "cache": asdict(self.cache),
            "file_paths": asdict(self.file_paths),
            "logging": asdict(self.logging),
        }

    def fingerprint_settings(self) -> Dict[str, Any]:
        """Settings that change analysis results (used for cache keys)."""
        return {
            "catchment": {
                "default_radius_m": self.catchment.default_radius_m,
                "min_radius_m": self.catchment.min_radius_m,
                "max_radius_m": self.catchment.max_radius_m,
                "buffer_segments": self.catchment.buffer_segments,
            },
            "coverage": {
                "invalid_geometry_policy": self.coverage.invalid_geometry_policy,
                "multipolygon_mode": self.coverage.multipolygon_mode,
                "max_candidate_radius_m": self.coverage.max_candidate_radius_m,
                "top_n": self.coverage.top_n,
            },
        }

    @property
    def log_dir(self) -> Path:
        """Get log directory as Path object."""
        return self.file_paths.log_path

    @property
    def output_dir(self) -> Path:
        """Get output directory as Path object."""
        return self.file_paths.output_path


def normalize_config(
    config: Union[Dict[str, Any], AppConfig, None],
) -> AppConfig:
    """
    Normalize config to AppConfig for internal use.

    Accepts None (module CONFIG), a raw CONFIG dictionary or an AppConfig.
    """
    if config is None:
        return AppConfig.default()
    if isinstance(config, AppConfig):
        return config
    return AppConfig.from_dict(config)
