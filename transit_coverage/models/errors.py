"""
Exception hierarchy for the coverage analysis engine.

Architectural Overview:
=======================
Every error the engine raises derives from CoverageAnalysisError and carries
a ``details`` dict, so the presentation layer can render a consistent JSON
body via ``to_dict()`` without inspecting exception types.

Key Interactions:
-----------------
- Geometry errors (MalformedGeometryError, DegenerateResultError) are
  entity-level: they are recovered at the per-station / per-neighborhood seam
  and counted in snapshot metadata. They never abort a batch.
- Input errors (EmptyDatasetError, NoValidNeighborhoodsError) are
  dataset-level: raised to the caller before (or instead of) producing a
  snapshot.
- ConflictingRunError is raised by SnapshotStore when an owner already has a
  run in flight.
- AnalysisCancelledError is raised by the orchestrator when the cancel event
  is set; no snapshot is produced.

Navigation: Use VS Code outline (Ctrl+Shift+O) for quick navigation
"""

from typing import Any, Dict, Optional


# ═══════════════════════════════════════════════════════════════════════════
# 🧱 BASE EXCEPTION SECTION
# ═══════════════════════════════════════════════════════════════════════════


class CoverageAnalysisError(Exception):
    """Base class for all coverage engine errors."""

    error_code = "coverage_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        """Consistent error body for API / CLI consumers."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# ═══════════════════════════════════════════════════════════════════════════
# 📐 GEOMETRY ERRORS SECTION
# ═══════════════════════════════════════════════════════════════════════════


class GeometryError(CoverageAnalysisError):
    """Entity-level geometry failure (recovered locally)."""

    error_code = "geometry_error"


class MalformedGeometryError(GeometryError):
    """Geometry is missing, empty, non-finite or has no positive area."""

    error_code = "malformed_geometry"


class DegenerateResultError(GeometryError):
    """Boolean operation failed or produced an unusable result."""

    error_code = "degenerate_result"


# ═══════════════════════════════════════════════════════════════════════════
# 📥 INPUT ERRORS SECTION
# ═══════════════════════════════════════════════════════════════════════════


class InputError(CoverageAnalysisError):
    """Dataset-level input failure (raised to the caller)."""

    error_code = "input_error"


class EmptyDatasetError(InputError):
    """No stations or no neighborhoods were supplied."""

    error_code = "empty_dataset"

    def __init__(self, stations_count: int, neighborhoods_count: int):
        missing = []
        if stations_count == 0:
            missing.append("stations")
        if neighborhoods_count == 0:
            missing.append("neighborhoods")
        super().__init__(
            f"Cannot run coverage analysis without {' and '.join(missing)}",
            {
                "stations_count": stations_count,
                "neighborhoods_count": neighborhoods_count,
            },
        )
        self.stations_count = stations_count
        self.neighborhoods_count = neighborhoods_count


class NoValidNeighborhoodsError(InputError):
    """Every neighborhood was skipped because of unusable geometry."""

    error_code = "no_valid_neighborhoods"

    def __init__(self, skipped: Dict[str, str]):
        super().__init__(
            f"All {len(skipped)} neighborhoods were skipped (invalid geometry)",
            {"skipped_count": len(skipped), "skipped": dict(skipped)},
        )
        self.skipped = dict(skipped)


# ═══════════════════════════════════════════════════════════════════════════
# 🔒 CONCURRENCY ERRORS SECTION
# ═══════════════════════════════════════════════════════════════════════════


class ConcurrencyError(CoverageAnalysisError):
    """Run coordination failure."""

    error_code = "concurrency_error"


class ConflictingRunError(ConcurrencyError):
    """An analysis for this owner is already in progress."""

    error_code = "conflicting_run"

    def __init__(self, owner_id: str, analysis_type: str = "coverage"):
        super().__init__(
            f"An analysis is already running for owner '{owner_id}'",
            {"owner_id": owner_id, "analysis_type": analysis_type},
        )
        self.owner_id = owner_id


class AnalysisCancelledError(CoverageAnalysisError):
    """The cancel event was set before the run completed."""

    error_code = "analysis_cancelled"

    def __init__(self, completed: int, total: int):
        super().__init__(
            f"Analysis cancelled after {completed}/{total} neighborhoods",
            {"completed": completed, "total": total},
        )
        self.completed = completed
        self.total = total


# ═══════════════════════════════════════════════════════════════════════════
# 📦 MODULE EXPORTS
# ═══════════════════════════════════════════════════════════════════════════

__all__ = [
    "CoverageAnalysisError",
    "GeometryError",
    "MalformedGeometryError",
    "DegenerateResultError",
    "InputError",
    "EmptyDatasetError",
    "NoValidNeighborhoodsError",
    "ConcurrencyError",
    "ConflictingRunError",
    "AnalysisCancelledError",
]
