"""
Transit Coverage Export Module - JSON, CSV, and GeoJSON exports.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Write analysis snapshots and station catchments in formats
the presentation layer and GIS tools consume.

Export Formats:
- JSON: Full snapshot (results, rankings, metadata)
- CSV: Per-neighborhood results table for spreadsheets
- GeoJSON: Station catchment polygons (feature ids "buffer_{station_id}")
  and neighborhood results joined to their geometries

Key Entry Points:
- export_snapshot_json(): Snapshot → JSON file
- export_results_csv(): Results table → CSV file
- catchments_to_geojson(): CatchmentIndex → FeatureCollection dict
- export_results_geojson(): Results + geometries → GeoJSON file

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import geopandas as gpd
import pandas as pd
from shapely.geometry import mapping

from transit_coverage.geometry.geodesy import prepare_neighborhood_geometry
from transit_coverage.geometry.spatial_index import CatchmentIndex
from transit_coverage.models.data_models import (
    AnalysisSnapshot,
    Neighborhood,
    results_to_dicts,
)

logger = logging.getLogger("TransitCoverage.Exporters")

CRS_WGS84 = "EPSG:4326"

RESULT_COLUMNS = [
    "neighborhood_id",
    "neighborhood_name",
    "admin_level",
    "population",
    "stations_count",
    "coverage_percentage",
    "covered_population",
    "uncovered_population",
    "uncovered_percentage",
    "coverage_ratio",
    "geometry_valid",
    "station_ids",
]


# ═══════════════════════════════════════════════════════════════════════════
# 📸 SNAPSHOT JSON
# ═══════════════════════════════════════════════════════════════════════════


def snapshot_to_dict(snapshot: AnalysisSnapshot) -> Dict[str, Any]:
    """
    Convert a snapshot to a JSON-serializable dict.

    Returns:
        Dict with "results", "rankings" and "metadata" keys
    """
    return {
        "results": results_to_dicts(list(snapshot.results)),
        "rankings": snapshot.rankings.as_dict(),
        "metadata": snapshot.metadata.as_dict(),
    }


def export_snapshot_json(
    snapshot: AnalysisSnapshot,
    output_path: Union[str, Path],
    log: Optional[logging.Logger] = None,
) -> Path:
    """
    Write the full snapshot as JSON.

    Args:
        snapshot: Snapshot to export
        output_path: Destination file (parent folders are created)
        log: Logger instance (optional)

    Returns:
        Path of the written file
    """
    log = log or logger
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(snapshot_to_dict(snapshot), f, indent=2, ensure_ascii=False)
    log.info(f"   ✅ Snapshot JSON: {output_path}")
    return output_path


# ═══════════════════════════════════════════════════════════════════════════
# 📤 CSV EXPORT
# ═══════════════════════════════════════════════════════════════════════════


def results_to_dataframe(snapshot: AnalysisSnapshot) -> pd.DataFrame:
    """Results table in snapshot order; station ids joined with ';'."""
    rows = []
    for result in snapshot.results:
        row = result.as_dict()
        row["station_ids"] = ";".join(result.station_ids)
        rows.append(row)
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def export_results_csv(
    snapshot: AnalysisSnapshot,
    output_path: Union[str, Path],
    log: Optional[logging.Logger] = None,
) -> Path:
    """
    Export per-neighborhood results to CSV (overwrites existing).

    Args:
        snapshot: Snapshot to export
        output_path: Destination CSV file
        log: Logger instance (optional)

    Returns:
        Path of the written file
    """
    log = log or logger
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df = results_to_dataframe(snapshot)
    df.to_csv(output_path, index=False)
    log.info(f"   ✅ Results CSV: {output_path} ({len(df)} rows)")
    return output_path


# ═══════════════════════════════════════════════════════════════════════════
# 🗺️ GEOJSON EXPORT
# ═══════════════════════════════════════════════════════════════════════════


def catchments_to_geojson(index: CatchmentIndex) -> Dict[str, Any]:
    """
    Station catchments as a GeoJSON FeatureCollection.

    Args:
        index: CatchmentIndex of the run

    Returns:
        FeatureCollection dict; feature ids are "buffer_{station_id}"
    """
    features = [
        {
            "type": "Feature",
            "id": f"buffer_{c.station_id}",
            "geometry": mapping(c.polygon),
            "properties": {
                "station_id": c.station_id,
                "radius_m": c.radius_m,
                "area_m2": round(c.area_m2, 1),
            },
        }
        for c in index.catchments
    ]
    return {"type": "FeatureCollection", "features": features}


def results_to_geodataframe(
    snapshot: AnalysisSnapshot,
    neighborhoods: Iterable[Neighborhood],
    multipolygon_mode: str = "first_part",
) -> gpd.GeoDataFrame:
    """
    Join snapshot results to neighborhood geometries.

    Geometries are the normalized polygons the analysis used; placeholder
    rows (invalid geometry) get an empty geometry.

    Args:
        snapshot: Snapshot whose results are exported
        neighborhoods: Neighborhood records of the run
        multipolygon_mode: Must match the analysis setting

    Returns:
        GeoDataFrame in EPSG:4326, snapshot order
    """
    geometry_by_id = {n.neighborhood_id: n.geometry for n in neighborhoods}
    df = results_to_dataframe(snapshot)

    geometries: List[Any] = []
    for nid in df["neighborhood_id"]:
        prepared = prepare_neighborhood_geometry(geometry_by_id.get(nid), multipolygon_mode)
        geometries.append(prepared.geometry if prepared.ok else None)

    return gpd.GeoDataFrame(df, geometry=geometries, crs=CRS_WGS84)


def export_results_geojson(
    snapshot: AnalysisSnapshot,
    neighborhoods: Iterable[Neighborhood],
    output_path: Union[str, Path],
    multipolygon_mode: str = "first_part",
    log: Optional[logging.Logger] = None,
) -> Path:
    """
    Export coverage results with neighborhood polygons to GeoJSON.

    Args:
        snapshot: Snapshot to export
        neighborhoods: Neighborhood records of the run
        output_path: Destination GeoJSON file
        multipolygon_mode: Must match the analysis setting
        log: Logger instance (optional)

    Returns:
        Path of the written file
    """
    log = log or logger
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    gdf = results_to_geodataframe(snapshot, neighborhoods, multipolygon_mode)
    gdf.to_file(output_path, driver="GeoJSON")
    log.info(f"   ✅ Results GeoJSON: {output_path} ({len(gdf)} features)")
    return output_path


def export_catchments_geojson(
    index: CatchmentIndex,
    output_path: Union[str, Path],
    log: Optional[logging.Logger] = None,
) -> Path:
    """Write catchments_to_geojson() output to a file."""
    log = log or logger
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(catchments_to_geojson(index), f, indent=2)
    log.info(f"   ✅ Catchments GeoJSON: {output_path} ({len(index)} features)")
    return output_path


# ═══════════════════════════════════════════════════════════════════════════
# 📦 MODULE EXPORTS
# ═══════════════════════════════════════════════════════════════════════════

__all__ = [
    "catchments_to_geojson",
    "export_catchments_geojson",
    "export_results_csv",
    "export_results_geojson",
    "export_snapshot_json",
    "results_to_dataframe",
    "results_to_geodataframe",
    "snapshot_to_dict",
]
