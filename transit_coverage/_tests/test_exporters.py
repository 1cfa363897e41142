"""
Unit tests for snapshot exports.

Run with: python -m pytest transit_coverage/_tests/test_exporters.py -v
"""

import json

import geopandas as gpd
import pandas as pd
import pytest

from conftest import engine_config, make_neighborhood, make_station
from transit_coverage.exporters import (
    catchments_to_geojson,
    export_catchments_geojson,
    export_results_csv,
    export_results_geojson,
    export_snapshot_json,
    results_to_geodataframe,
    snapshot_to_dict,
)
from transit_coverage.geometry.spatial_index import CatchmentIndex
from transit_coverage.parallel.coverage_orchestrator import compute_coverage


@pytest.fixture
def run():
    config = engine_config()
    config["coverage"]["invalid_geometry_policy"] = "emit_zero"
    stations = [make_station("s1"), make_station("s2")]
    neighborhoods = [
        make_neighborhood("n1"),
        make_neighborhood("broken", {"type": "Polygon", "coordinates": []}, population=50),
    ]
    snapshot = compute_coverage(stations, neighborhoods, config=config)
    return stations, neighborhoods, snapshot


class TestSnapshotJson:
    def test_dict_layout(self, run):
        _, _, snapshot = run
        data = snapshot_to_dict(snapshot)
        assert set(data) == {"results", "rankings", "metadata"}
        assert data["results"][0]["neighborhood_id"] == "n1"
        assert data["results"][0]["station_ids"] == ["s1", "s2"]
        assert data["metadata"]["placeholder_rows"] == 1

    def test_export(self, run, tmp_path):
        _, _, snapshot = run
        path = export_snapshot_json(snapshot, tmp_path / "out" / "snapshot.json")
        loaded = json.loads(path.read_text(encoding="utf-8"))
        assert len(loaded["results"]) == 2


class TestResultsCsv:
    def test_export(self, run, tmp_path):
        _, _, snapshot = run
        path = export_results_csv(snapshot, tmp_path / "results.csv")
        df = pd.read_csv(path)
        assert list(df["neighborhood_id"]) == ["n1", "broken"]
        assert df.loc[0, "station_ids"] == "s1;s2"
        assert (df["covered_population"] + df["uncovered_population"] == df["population"]).all()


class TestGeojson:
    def test_catchment_feature_ids(self, run):
        stations, _, _ = run
        fc = catchments_to_geojson(CatchmentIndex(stations))
        assert fc["type"] == "FeatureCollection"
        assert [f["id"] for f in fc["features"]] == ["buffer_s1", "buffer_s2"]
        assert fc["features"][0]["geometry"]["type"] == "Polygon"
        assert fc["features"][0]["properties"]["radius_m"] == 400.0

    def test_export_catchments(self, run, tmp_path):
        stations, _, _ = run
        path = export_catchments_geojson(CatchmentIndex(stations), tmp_path / "c.geojson")
        assert len(json.loads(path.read_text(encoding="utf-8"))["features"]) == 2

    def test_results_geodataframe(self, run):
        _, neighborhoods, snapshot = run
        gdf = results_to_geodataframe(snapshot, neighborhoods)
        assert str(gdf.crs) == "EPSG:4326"
        assert gdf.loc[gdf["neighborhood_id"] == "n1", "geometry"].iloc[0].area > 0
        assert gdf.loc[gdf["neighborhood_id"] == "broken", "geometry"].iloc[0] is None

    def test_export_results(self, run, tmp_path):
        _, neighborhoods, snapshot = run
        path = export_results_geojson(snapshot, neighborhoods, tmp_path / "r.geojson")
        gdf = gpd.read_file(path)
        assert len(gdf) == 2
        assert set(gdf["neighborhood_id"]) == {"n1", "broken"}
