"""
Unit tests for the catchment candidate index.

Run with: python -m pytest transit_coverage/_tests/test_spatial_index.py -v
"""

import pytest
from shapely.geometry import shape

from conftest import CENTER_LAT, CENTER_LON, make_station, offset, square_geojson
from transit_coverage.config_types import CatchmentConfig
from transit_coverage.geometry import spatial_index
from transit_coverage.geometry.spatial_index import CatchmentIndex


class TestCatchmentIndexBuild:
    """Catchments are built once per station with clamped radii."""

    def test_radius_clamped_to_range(self):
        index = CatchmentIndex(
            [
                make_station("small", radius_m=100.0),
                make_station("big", radius_m=2000.0),
                make_station("missing", radius_m=None),
            ]
        )
        assert index.get("small").radius_m == 300.0
        assert index.get("big").radius_m == 500.0
        assert index.get("missing").radius_m == 400.0
        assert index.clamped_count == 2
        assert index.max_radius_m == 500.0

    def test_custom_range(self):
        config = CatchmentConfig(default_radius_m=250.0, min_radius_m=100.0, max_radius_m=300.0)
        index = CatchmentIndex([make_station(radius_m=None)], config)
        assert index.get("s1").radius_m == 250.0

    def test_bad_station_rejected(self):
        index = CatchmentIndex(
            [make_station("ok"), make_station("bad", lat=float("nan"))]
        )
        assert len(index) == 1
        assert "bad" in index.rejected

    @pytest.mark.parametrize("radius", [float("nan"), float("inf")])
    def test_non_finite_radius_rejected(self, radius):
        index = CatchmentIndex([make_station("ok"), make_station("odd", radius_m=radius)])
        assert [c.station_id for c in index.catchments] == ["ok"]
        assert "finite" in index.rejected["odd"]
        assert index.clamped_count == 0

    def test_duplicate_station_id_rejected(self):
        index = CatchmentIndex([make_station("dup"), make_station("dup", lon=CENTER_LON + 0.01)])
        assert len(index) == 1
        assert index.rejected["dup"] == "duplicate station id"

    def test_empty_index(self):
        index = CatchmentIndex([])
        assert len(index) == 0
        assert index.max_radius_m == 0.0
        assert index.candidates(shape(square_geojson())) == []


class TestCandidates:
    """Candidate lookup may return extra catchments but never miss one."""

    def _stations(self):
        return [
            make_station("inside"),
            # Station outside the square whose catchment reaches in
            make_station("near", *offset(CENTER_LON, CENTER_LAT, 90.0, 800.0), radius_m=400.0),
            make_station("far", *offset(CENTER_LON, CENTER_LAT, 90.0, 10_000.0)),
        ]

    def test_finds_overlapping_catchments(self):
        index = CatchmentIndex(self._stations())
        ids = [c.station_id for c in index.candidates(shape(square_geojson()))]
        assert "inside" in ids
        assert "near" in ids
        assert "far" not in ids

    def test_results_in_station_order(self):
        index = CatchmentIndex(list(reversed(self._stations())))
        ids = [c.station_id for c in index.candidates(shape(square_geojson()))]
        assert ids == ["near", "inside"]

    def test_search_radius_never_below_largest_radius(self):
        index = CatchmentIndex(self._stations())
        assert index.effective_search_radius(10.0) == index.max_radius_m
        assert index.effective_search_radius(5000.0) == 5000.0
        assert index.effective_search_radius(None) == index.max_radius_m

    def test_small_override_keeps_candidates(self):
        index = CatchmentIndex(self._stations())
        ids = [c.station_id for c in index.candidates(shape(square_geojson()), 1.0)]
        assert "near" in ids

    def test_query_failure_scans_everything(self, monkeypatch):
        index = CatchmentIndex(self._stations())

        def _fail(geometry, distance_m):
            raise ValueError("projection failed")

        monkeypatch.setattr(spatial_index, "expand_geometry", _fail)
        candidates = index.candidates(shape(square_geojson()))
        assert len(candidates) == 3

    @pytest.mark.parametrize("bearing", [0.0, 45.0, 135.0, 225.0, 315.0])
    def test_no_false_negatives_around_square(self, bearing):
        # 890 m out with a 500 m radius: overlaps on the axes, grazes on diagonals
        lon, lat = offset(CENTER_LON, CENTER_LAT, bearing, 890.0)
        index = CatchmentIndex([make_station("edge", lon, lat, radius_m=500.0)])
        square = shape(square_geojson())
        overlaps = index.get("edge").polygon.intersects(square)
        found = bool(index.candidates(square))
        assert found or not overlaps
