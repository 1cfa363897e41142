"""
Unit tests for result ordering, ranking tables and snapshot assembly.

Run with: python -m pytest transit_coverage/_tests/test_rankings.py -v
"""

from transit_coverage.models.data_models import (
    AdminLevel,
    CoverageResult,
    SnapshotMetadata,
)
from transit_coverage.rankings import build_snapshot, compute_rankings, sort_results


def _result(nid, coverage, population=1000, stations=1, valid=True):
    covered = round(population * coverage / 100.0)
    return CoverageResult(
        neighborhood_id=nid,
        neighborhood_name=nid.upper(),
        admin_level=AdminLevel.NEIGHBORHOOD,
        population=population,
        stations_count=stations,
        coverage_percentage=coverage,
        covered_population=covered,
        uncovered_population=population - covered,
        coverage_ratio=coverage / 100.0,
        geometry_valid=valid,
    )


class TestSortResults:
    """Coverage percentage descending, ties keep input order."""

    def test_descending(self):
        ordered = sort_results([_result("a", 10.0), _result("b", 90.0), _result("c", 50.0)])
        assert [r.neighborhood_id for r in ordered] == ["b", "c", "a"]

    def test_stable_for_ties(self):
        ordered = sort_results([_result("x", 40.0), _result("y", 40.0), _result("z", 40.0)])
        assert [r.neighborhood_id for r in ordered] == ["x", "y", "z"]


class TestComputeRankings:
    """Four independent top-N tables."""

    def test_tables(self):
        results = [
            _result("a", 90.0, population=100, stations=5),
            _result("b", 10.0, population=5000, stations=1),
            _result("c", 50.0, population=2000, stations=3),
        ]
        rankings = compute_rankings(results, top_n=2)
        assert [r.neighborhood_id for r in rankings.by_stations_count] == ["a", "c"]
        assert [r.neighborhood_id for r in rankings.by_population] == ["b", "c"]
        assert [r.neighborhood_id for r in rankings.by_uncovered_population] == ["b", "c"]
        assert [r.neighborhood_id for r in rankings.by_uncovered_percentage] == ["b", "c"]

    def test_percentage_table_excludes_unpopulated(self):
        results = [_result("empty", 0.0, population=0), _result("full", 20.0)]
        rankings = compute_rankings(results)
        assert [r.neighborhood_id for r in rankings.by_uncovered_percentage] == ["full"]
        assert len(rankings.by_population) == 2

    def test_placeholders_excluded(self):
        results = [_result("ok", 20.0), _result("broken", 0.0, population=9999, valid=False)]
        rankings = compute_rankings(results)
        for table in (
            rankings.by_stations_count,
            rankings.by_population,
            rankings.by_uncovered_population,
            rankings.by_uncovered_percentage,
        ):
            assert "broken" not in [r.neighborhood_id for r in table]

    def test_top_n_larger_than_results(self):
        rankings = compute_rankings([_result("only", 30.0)], top_n=5)
        assert len(rankings.by_population) == 1


class TestBuildSnapshot:
    """Snapshot holds sorted results, rankings and the given metadata."""

    def test_snapshot(self):
        metadata = SnapshotMetadata(total_neighborhoods=2, total_stations=3)
        snapshot = build_snapshot([_result("a", 10.0), _result("b", 80.0)], metadata, top_n=1)
        assert [r.neighborhood_id for r in snapshot.results] == ["b", "a"]
        assert isinstance(snapshot.results, tuple)
        assert len(snapshot.rankings.by_population) == 1
        assert snapshot.metadata is metadata
        assert snapshot.get_result("a").coverage_percentage == 10.0
        assert snapshot.get_result("missing") is None

    def test_summary_and_totals(self):
        snapshot = build_snapshot(
            [_result("a", 50.0), _result("b", 100.0)], SnapshotMetadata(total_stations=4)
        )
        assert snapshot.total_population == 2000
        assert snapshot.total_covered_population == 1500
        assert "75.0% population covered" in snapshot.summary()

    def test_with_owner_returns_copy(self):
        snapshot = build_snapshot([_result("a", 50.0)], SnapshotMetadata())
        owned = snapshot.with_owner("alice")
        assert owned.metadata.owner_id == "alice"
        assert snapshot.metadata.owner_id is None
        assert owned.results == snapshot.results
