"""
Shared fixtures for the transit coverage test suite.

Neighborhood squares are built from true geodesic offsets so expected
areas can be stated in square metres.
"""

from typing import Any, Dict, Optional

import pytest
from pyproj import Geod

from transit_coverage.models.data_models import AdminLevel, Neighborhood, Station

# Bucharest city centre
CENTER_LON = 26.10
CENTER_LAT = 44.43

_GEOD = Geod(ellps="WGS84")


def offset(lon: float, lat: float, azimuth: float, distance_m: float):
    """(lon, lat) reached from a point along a geodesic."""
    end_lon, end_lat, _ = _GEOD.fwd(lon, lat, azimuth, distance_m)
    return end_lon, end_lat


def square_geojson(
    lon: float = CENTER_LON,
    lat: float = CENTER_LAT,
    half_side_m: float = 500.0,
    clockwise: bool = False,
) -> Dict[str, Any]:
    """GeoJSON Polygon of a ~(2 * half_side_m)² square centred on (lon, lat)."""
    west = offset(lon, lat, 270.0, half_side_m)[0]
    east = offset(lon, lat, 90.0, half_side_m)[0]
    south = offset(lon, lat, 180.0, half_side_m)[1]
    north = offset(lon, lat, 0.0, half_side_m)[1]
    ring = [[west, south], [east, south], [east, north], [west, north], [west, south]]
    if clockwise:
        ring = ring[::-1]
    return {"type": "Polygon", "coordinates": [ring]}


def make_neighborhood(
    neighborhood_id: str = "n1",
    geometry: Optional[Dict[str, Any]] = None,
    population: int = 1000,
    name: Optional[str] = None,
) -> Neighborhood:
    return Neighborhood(
        neighborhood_id=neighborhood_id,
        name=name or f"Neighborhood {neighborhood_id}",
        geometry=geometry if geometry is not None else square_geojson(),
        population=population,
        admin_level=AdminLevel.NEIGHBORHOOD,
    )


def make_station(
    station_id: str = "s1",
    lon: float = CENTER_LON,
    lat: float = CENTER_LAT,
    radius_m: Optional[float] = 400.0,
) -> Station:
    return Station(station_id=station_id, lon=lon, lat=lat, radius_m=radius_m)


def engine_config(**parallel_overrides: Any) -> Dict[str, Any]:
    """CONFIG-shaped dict: single worker, cache off, no file logging."""
    parallel = {
        "enabled": True,
        "max_workers": 1,
        "min_neighborhoods_for_parallel": 20,
        "chunk_size": 8,
        "backend": "threading",
        "fallback_on_error": True,
        "verbose": 0,
    }
    parallel.update(parallel_overrides)
    return {
        "catchment": {
            "default_radius_m": 400.0,
            "min_radius_m": 300.0,
            "max_radius_m": 500.0,
            "buffer_segments": 128,
        },
        "coverage": {
            "invalid_geometry_policy": "skip",
            "multipolygon_mode": "first_part",
            "max_candidate_radius_m": None,
            "candidate_margin_m": 5.0,
            "top_n": 5,
            "analysis_type": "coverage",
        },
        "parallel": parallel,
        "cache": {"enabled": False},
        "logging": {"level": "INFO", "log_to_file": False},
    }


@pytest.fixture
def config() -> Dict[str, Any]:
    return engine_config()


@pytest.fixture
def square() -> Dict[str, Any]:
    return square_geojson()


@pytest.fixture
def neighborhood() -> Neighborhood:
    return make_neighborhood()


@pytest.fixture
def center_station() -> Station:
    return make_station()
