"""
End-to-end test of the command line entry point.

Run with: python -m pytest transit_coverage/_tests/test_main.py -v
"""

import json
import logging

import pytest

from conftest import CENTER_LAT, CENTER_LON, square_geojson
from transit_coverage import main as cli


@pytest.fixture
def isolated_logging():
    yield
    for name in ("TransitCoverage", "transit_coverage"):
        named = logging.getLogger(name)
        for handler in list(named.handlers):
            handler.close()
            named.removeHandler(handler)
        named.propagate = True


def _write_inputs(tmp_path):
    stations = tmp_path / "stations.geojson"
    stations.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    {
                        "type": "Feature",
                        "geometry": {"type": "Point", "coordinates": [CENTER_LON, CENTER_LAT]},
                        "properties": {"id": "s1", "bufferRadius": 400},
                    }
                ],
            }
        ),
        encoding="utf-8",
    )
    neighborhoods = tmp_path / "neighborhoods.geojson"
    neighborhoods.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    {
                        "type": "Feature",
                        "geometry": square_geojson(),
                        "properties": {"id": "n1", "name": "Centru", "population": 1000},
                    }
                ],
            }
        ),
        encoding="utf-8",
    )
    return stations, neighborhoods


def test_cli_run_writes_outputs(tmp_path, monkeypatch, isolated_logging):
    monkeypatch.chdir(tmp_path)
    stations, neighborhoods = _write_inputs(tmp_path)
    output_dir = tmp_path / "out"

    code = cli.main(
        [
            "--stations", str(stations),
            "--neighborhoods", str(neighborhoods),
            "--output-dir", str(output_dir),
            "--owner", "tester",
            "--workers", "1",
        ]
    )

    assert code == cli.EXIT_OK
    snapshot = json.loads((output_dir / "coverage_snapshot.json").read_text(encoding="utf-8"))
    assert snapshot["metadata"]["owner_id"] == "tester"
    assert snapshot["results"][0]["coverage_percentage"] == pytest.approx(50.27, abs=0.1)
    assert (output_dir / "coverage_results.csv").exists()
    assert (output_dir / "coverage_results.geojson").exists()
    assert (output_dir / "station_catchments.geojson").exists()
    assert cli.SNAPSHOT_STORE.get_latest("tester") is not None


def test_cli_missing_input(tmp_path, monkeypatch, isolated_logging):
    monkeypatch.chdir(tmp_path)
    code = cli.main(
        [
            "--stations", str(tmp_path / "missing.geojson"),
            "--neighborhoods", str(tmp_path / "missing.geojson"),
        ]
    )
    assert code == cli.EXIT_BAD_INPUT


def test_cli_invalid_worker_count(isolated_logging):
    assert cli.main(["--stations", "a", "--neighborhoods", "b", "--workers", "0"]) == (
        cli.EXIT_BAD_INPUT
    )
