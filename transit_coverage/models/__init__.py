"""Data models package for typed station, neighborhood and coverage data structures."""

from .data_models import (
    AdminLevel,
    AnalysisSnapshot,
    Catchment,
    CoverageResult,
    Neighborhood,
    RankingTables,
    SingleNeighborhoodCoverage,
    SnapshotMetadata,
    Station,
    StationCategory,
    # Batch conversion utilities
    results_to_dicts,
    stations_from_dicts,
)

from .errors import (
    AnalysisCancelledError,
    ConcurrencyError,
    ConflictingRunError,
    CoverageAnalysisError,
    DegenerateResultError,
    EmptyDatasetError,
    GeometryError,
    InputError,
    MalformedGeometryError,
    NoValidNeighborhoodsError,
)

__all__ = [
    # Entity models
    "AdminLevel",
    "Catchment",
    "Neighborhood",
    "Station",
    "StationCategory",
    # Result models
    "AnalysisSnapshot",
    "CoverageResult",
    "RankingTables",
    "SingleNeighborhoodCoverage",
    "SnapshotMetadata",
    # Batch conversion utilities
    "results_to_dicts",
    "stations_from_dicts",
    # Errors
    "AnalysisCancelledError",
    "ConcurrencyError",
    "ConflictingRunError",
    "CoverageAnalysisError",
    "DegenerateResultError",
    "EmptyDatasetError",
    "GeometryError",
    "InputError",
    "MalformedGeometryError",
    "NoValidNeighborhoodsError",
]
