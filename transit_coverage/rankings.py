"""
Aggregation and ranking of coverage results.

Turns the per-neighborhood CoverageResult list of a run into the immutable
AnalysisSnapshot: results ordered by coverage (descending) plus four top-N
ranking tables. Everything here is pure; no I/O, no logging side effects
beyond DEBUG.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
from typing import Callable, Iterable, List, Sequence

from transit_coverage.models.data_models import (
    AnalysisSnapshot,
    CoverageResult,
    RankingTables,
    SnapshotMetadata,
)

logger = logging.getLogger(__name__)


def sort_results(results: Iterable[CoverageResult]) -> List[CoverageResult]:
    """Order results by coverage percentage, descending (stable for ties)."""
    return sorted(results, key=lambda r: r.coverage_percentage, reverse=True)


def _top(
    results: Sequence[CoverageResult],
    key: Callable[[CoverageResult], float],
    top_n: int,
) -> tuple:
    return tuple(sorted(results, key=key, reverse=True)[:top_n])


def compute_rankings(
    results: Iterable[CoverageResult], top_n: int = 5
) -> RankingTables:
    """
    Build the four independent top-N ranking tables.

    Placeholder rows (geometry_valid=False) never appear in rankings. The
    uncovered-percentage table only considers neighborhoods with population.

    Args:
        results: Coverage results of one run
        top_n: Table size

    Returns:
        RankingTables
    """
    ranked = [r for r in results if r.geometry_valid]
    populated = [r for r in ranked if r.population > 0]
    return RankingTables(
        by_stations_count=_top(ranked, lambda r: r.stations_count, top_n),
        by_population=_top(ranked, lambda r: r.population, top_n),
        by_uncovered_population=_top(ranked, lambda r: r.uncovered_population, top_n),
        by_uncovered_percentage=_top(
            populated, lambda r: r.uncovered_population / r.population, top_n
        ),
    )


def build_snapshot(
    results: Iterable[CoverageResult],
    metadata: SnapshotMetadata,
    top_n: int = 5,
) -> AnalysisSnapshot:
    """
    Assemble a complete, immutable AnalysisSnapshot.

    Args:
        results: Coverage results in any order
        metadata: Run metadata (counts, timings, provenance)
        top_n: Ranking table size

    Returns:
        AnalysisSnapshot with results sorted by coverage descending
    """
    ordered = sort_results(results)
    rankings = compute_rankings(ordered, top_n)
    logger.debug(f"   Snapshot assembled: {len(ordered)} results, top_n={top_n}")
    return AnalysisSnapshot(
        results=tuple(ordered), rankings=rankings, metadata=metadata
    )


__all__ = ["build_snapshot", "compute_rankings", "sort_results"]
