"""
Unit tests for per-neighborhood coverage computation.

Tests:
1. Concrete scenarios (single centred station, no stations, identical
   stations, malformed geometry)
2. Properties: ratio bound, population conservation, idempotence,
   single-station monotonicity, no double counting, winding independence
3. Invalid-geometry policies (skip / emit_zero)
4. Interactive single-neighborhood query

Run with: python -m pytest transit_coverage/_tests/test_coverage_calculator.py -v
"""

import math

import pytest

from conftest import (
    CENTER_LAT,
    CENTER_LON,
    engine_config,
    make_neighborhood,
    make_station,
    offset,
    square_geojson,
)
from transit_coverage.config_types import AppConfig
from transit_coverage.coverage_calculator import (
    build_result,
    compute_neighborhood_coverage,
    compute_single_neighborhood_coverage,
    round_half_up,
)
from transit_coverage.geometry.spatial_index import CatchmentIndex
from transit_coverage.models.errors import MalformedGeometryError


def _coverage(neighborhood, stations, config=None):
    app_config = AppConfig.from_dict(config or engine_config())
    index = CatchmentIndex(stations, app_config.catchment)
    return compute_neighborhood_coverage(neighborhood, index, app_config)


# ═══════════════════════════════════════════════════════════════════════════
# CONCRETE SCENARIOS
# ═══════════════════════════════════════════════════════════════════════════


class TestScenarios:
    """Reference scenarios with analytically known answers."""

    def test_single_centred_station(self, neighborhood, center_station):
        outcome = _coverage(neighborhood, [center_station])
        result = outcome.result
        # π·400² / 1 km²
        assert result.coverage_percentage == pytest.approx(50.27, abs=0.1)
        assert result.covered_population == pytest.approx(503, abs=1)
        assert result.uncovered_population == 1000 - result.covered_population
        assert result.stations_count == 1
        assert result.station_ids == ("s1",)

    def test_no_stations(self, neighborhood):
        result = _coverage(neighborhood, []).result
        assert result.coverage_percentage == 0
        assert result.stations_count == 0
        assert result.covered_population == 0
        assert result.uncovered_population == 1000

    def test_identical_stations_counted_but_not_double_covered(
        self, neighborhood, center_station
    ):
        single = _coverage(neighborhood, [center_station]).result
        double = _coverage(
            neighborhood, [center_station, make_station("s2")]
        ).result
        assert double.stations_count == 2
        assert double.coverage_percentage == pytest.approx(
            single.coverage_percentage, abs=1e-6
        )

    def test_malformed_geometry_skipped(self, center_station):
        broken = make_neighborhood(geometry={"type": "Polygon", "coordinates": []})
        outcome = _coverage(broken, [center_station])
        assert outcome.skipped
        assert outcome.result is None
        assert "Empty coordinate array" in outcome.skip_reason


# ═══════════════════════════════════════════════════════════════════════════
# PROPERTIES
# ═══════════════════════════════════════════════════════════════════════════


class TestProperties:
    """Invariants that must hold for any input."""

    @pytest.mark.parametrize("distance", [0.0, 300.0, 600.0, 850.0, 2000.0])
    def test_ratio_bound_and_conservation(self, neighborhood, distance):
        station = make_station(
            "s1", *offset(CENTER_LON, CENTER_LAT, 60.0, distance), radius_m=500.0
        )
        result = _coverage(neighborhood, [station]).result
        assert 0.0 <= result.coverage_ratio <= 1.0
        assert 0.0 <= result.coverage_percentage <= 100.0
        assert result.covered_population + result.uncovered_population == result.population
        assert abs(result.covered_population - 1000 * result.coverage_ratio) <= 1

    def test_full_coverage_is_clamped(self):
        small = make_neighborhood(geometry=square_geojson(half_side_m=100.0))
        result = _coverage(small, [make_station()]).result
        assert result.coverage_percentage == 100.0
        assert result.covered_population == 1000
        assert result.uncovered_population == 0

    def test_idempotence(self, neighborhood):
        stations = [
            make_station("a"),
            make_station("b", *offset(CENTER_LON, CENTER_LAT, 90.0, 450.0)),
        ]
        first = _coverage(neighborhood, stations).result
        second = _coverage(neighborhood, stations).result
        assert abs(first.coverage_ratio - second.coverage_ratio) < 1e-6

    def test_single_station_monotonicity(self, neighborhood):
        stations = [make_station("a", *offset(CENTER_LON, CENTER_LAT, 270.0, 300.0))]
        before = _coverage(neighborhood, stations).result
        added = stations + [make_station("b", *offset(CENTER_LON, CENTER_LAT, 90.0, 300.0))]
        after = _coverage(neighborhood, added).result
        assert after.coverage_percentage >= before.coverage_percentage
        assert after.stations_count == 2

    def test_no_double_counting(self, neighborhood):
        a = make_station("a", *offset(CENTER_LON, CENTER_LAT, 270.0, 150.0))
        b = make_station("b", *offset(CENTER_LON, CENTER_LAT, 90.0, 150.0))
        only_a = _coverage(neighborhood, [a]).result.coverage_ratio
        only_b = _coverage(neighborhood, [b]).result.coverage_ratio
        both = _coverage(neighborhood, [a, b]).result.coverage_ratio
        assert both < only_a + only_b
        assert both > max(only_a, only_b)

    def test_winding_independence(self, center_station):
        ccw = make_neighborhood(geometry=square_geojson())
        cw = make_neighborhood(geometry=square_geojson(clockwise=True))
        assert _coverage(ccw, [center_station]).result.coverage_ratio == pytest.approx(
            _coverage(cw, [center_station]).result.coverage_ratio, abs=1e-9
        )

    def test_distant_station_not_counted(self, neighborhood):
        lon, lat = offset(CENTER_LON, CENTER_LAT, 90.0, 1500.0)
        outcome = _coverage(neighborhood, [make_station("out", lon, lat)])
        assert outcome.result.stations_count == 0
        assert outcome.result.coverage_percentage == 0.0

    def test_edge_touching_catchment_not_counted(self, center_station):
        app_config = AppConfig.from_dict(engine_config())
        index = CatchmentIndex([center_station], app_config.catchment)
        ring = list(index.catchments[0].polygon.exterior.coords)
        (x1, y1), (x2, y2) = ring[0], ring[1]
        cx, cy = center_station.lon, center_station.lat
        # Quad on the far side of one catchment edge, sharing that edge exactly
        outer = [
            [x1, y1],
            [x2, y2],
            [x2 + 2 * (x2 - cx), y2 + 2 * (y2 - cy)],
            [x1 + 2 * (x1 - cx), y1 + 2 * (y1 - cy)],
            [x1, y1],
        ]
        touching = make_neighborhood("edge", {"type": "Polygon", "coordinates": [outer]})

        outcome = compute_neighborhood_coverage(touching, index, app_config)
        assert outcome.result.stations_count == 0
        assert outcome.result.coverage_percentage == 0.0
        assert outcome.result.covered_population == 0
        assert outcome.degenerate_count == 1

    def test_zero_population(self, center_station):
        empty = make_neighborhood(population=0)
        result = _coverage(empty, [center_station]).result
        assert result.coverage_percentage > 0
        assert result.covered_population == 0
        assert result.uncovered_population == 0


# ═══════════════════════════════════════════════════════════════════════════
# POLICIES AND HELPERS
# ═══════════════════════════════════════════════════════════════════════════


class TestInvalidGeometryPolicy:
    """skip drops the neighborhood; emit_zero keeps a flagged row."""

    def test_emit_zero_placeholder(self, center_station):
        config = engine_config()
        config["coverage"]["invalid_geometry_policy"] = "emit_zero"
        broken = make_neighborhood(geometry={"type": "Polygon", "coordinates": [[]]})
        outcome = _coverage(broken, [center_station], config)
        assert outcome.is_placeholder
        assert outcome.result.geometry_valid is False
        assert outcome.result.coverage_percentage == 0.0
        assert outcome.result.uncovered_population == 1000
        assert outcome.skip_reason


class TestHelpers:
    """Rounding and result assembly."""

    @pytest.mark.parametrize(
        "value,expected", [(0.5, 1), (1.5, 2), (2.5, 3), (502.49, 502), (0.0, 0)]
    )
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_build_result_clamps_and_sorts(self, neighborhood):
        result = build_result(neighborhood, 1.2, ["b", "a", "b"])
        assert result.coverage_ratio == 1.0
        assert result.station_ids == ("a", "b")
        assert result.stations_count == 2

    def test_build_result_non_finite_ratio(self, neighborhood):
        result = build_result(neighborhood, math.nan, [])
        assert result.coverage_ratio == 0.0
        assert result.covered_population == 0


class TestSingleNeighborhoodCoverage:
    """Interactive query without a batch run."""

    def test_matches_batch_result(self, neighborhood, center_station):
        config = engine_config()
        single = compute_single_neighborhood_coverage(
            neighborhood, [center_station], config
        )
        batch = _coverage(neighborhood, [center_station], config).result
        assert single.coverage_percentage == batch.coverage_percentage
        assert single.station_ids == ("s1",)
        assert single.stations_count == 1

    def test_station_ids_sorted(self, neighborhood):
        stations = [make_station("z"), make_station("a")]
        single = compute_single_neighborhood_coverage(
            neighborhood, stations, engine_config()
        )
        assert single.station_ids == ("a", "z")

    def test_malformed_geometry_raises(self, center_station):
        broken = make_neighborhood(geometry={"type": "Polygon", "coordinates": []})
        with pytest.raises(MalformedGeometryError):
            compute_single_neighborhood_coverage(
                broken, [center_station], engine_config()
            )
