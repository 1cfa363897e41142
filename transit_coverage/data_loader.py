"""
Data loading for stations and neighborhoods.

═══════════════════════════════════════════════════════════════════════════════
ARCHITECTURAL OVERVIEW
═══════════════════════════════════════════════════════════════════════════════

Responsibility: Turn already-normalized GeoJSON (FeatureCollections or files
readable by geopandas) into Station / Neighborhood records.

Property lookup is deliberately confined to this boundary:
- id: feature.id, then properties.id
- station radius: properties.bufferRadius, then properties.radius_m
- station mode: properties.category, then properties.type
- population / admin_level / name for neighborhoods

Features with a missing id or the wrong geometry type are skipped, logged
and counted in the LoadResult.

For Navigation: Use VS Code outline (Ctrl+Shift+O)

═══════════════════════════════════════════════════════════════════════════════
"""

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar, Union

import geopandas as gpd
import pandas as pd
from shapely.geometry import mapping

from transit_coverage.models.data_models import (
    AdminLevel,
    Neighborhood,
    Station,
    StationCategory,
)

logger = logging.getLogger(__name__)

CRS_WGS84 = "EPSG:4326"
STATION_GEOMETRY_TYPES = ("Point",)
NEIGHBORHOOD_GEOMETRY_TYPES = ("Polygon", "MultiPolygon")

T = TypeVar("T")


# ═══════════════════════════════════════════════════════════════════════════════
# 📋 LOAD RESULT
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class LoadResult(Generic[T]):
    """Records built from a feature collection plus what was skipped.

    Iterating a LoadResult iterates its records.
    """

    records: List[T] = field(default_factory=list)
    skipped: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def __iter__(self) -> Iterator[T]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


# ═══════════════════════════════════════════════════════════════════════════════
# 🔧 PROPERTY HELPERS
# ═══════════════════════════════════════════════════════════════════════════════


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _first_present(properties: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = properties.get(key)
        if not _is_missing(value):
            return value
    return None


def _feature_id(feature: Dict[str, Any]) -> Optional[str]:
    properties = feature.get("properties") or {}
    raw = feature.get("id")
    if _is_missing(raw):
        raw = properties.get("id")
    if _is_missing(raw):
        return None
    return str(raw)


def _to_float(value: Any) -> Optional[float]:
    if _is_missing(value):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _to_text(value: Any) -> Optional[str]:
    return None if _is_missing(value) else str(value)


def _to_population(value: Any, feature_id: str) -> int:
    number = _to_float(value)
    if number is None:
        return 0
    if number < 0:
        logger.warning(f"⚠️ Negative population for {feature_id}, using 0")
        return 0
    return int(round(number))


def _to_lines(value: Any) -> Tuple[str, ...]:
    if _is_missing(value):
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    try:
        return tuple(str(v) for v in value if not _is_missing(v))
    except TypeError:
        return (str(value),)


# ═══════════════════════════════════════════════════════════════════════════════
# 🚏 STATIONS
# ═══════════════════════════════════════════════════════════════════════════════


def station_from_feature(feature: Dict[str, Any]) -> Station:
    """
    Build a Station from one GeoJSON Point feature.

    Raises:
        ValueError: Missing id, non-Point geometry or unreadable coordinates
    """
    station_id = _feature_id(feature)
    if station_id is None:
        raise ValueError("missing id")
    geometry = feature.get("geometry") or {}
    if geometry.get("type") not in STATION_GEOMETRY_TYPES:
        raise ValueError(f"geometry type {geometry.get('type')!r} is not a Point")
    coordinates = geometry.get("coordinates") or ()
    if len(coordinates) < 2:
        raise ValueError("point has no coordinates")

    properties = feature.get("properties") or {}
    return Station(
        station_id=station_id,
        lon=float(coordinates[0]),
        lat=float(coordinates[1]),
        radius_m=_to_float(_first_present(properties, "bufferRadius", "radius_m")),
        category=StationCategory.from_string(
            _first_present(properties, "category", "type")
        ),
        dataset_id=_to_text(_first_present(properties, "datasetId", "dataset_id")),
        name=_to_text(_first_present(properties, "name")),
        lines=_to_lines(properties.get("lines")),
    )


def stations_from_geojson(feature_collection: Dict[str, Any]) -> LoadResult[Station]:
    """
    Build Station records from a GeoJSON FeatureCollection.

    Args:
        feature_collection: Dict with a "features" list of Point features

    Returns:
        LoadResult with stations and (feature index, reason) for skips
    """
    result: LoadResult[Station] = LoadResult()
    for i, feature in enumerate(feature_collection.get("features") or []):
        try:
            result.records.append(station_from_feature(feature))
        except (TypeError, ValueError) as e:
            result.skipped.append((i, str(e)))
            logger.warning(f"⚠️ Station feature #{i} skipped: {e}")
    logger.info(
        f"   🚏 Loaded {len(result)} stations ({result.skipped_count} skipped)"
    )
    return result


# ═══════════════════════════════════════════════════════════════════════════════
# 🏘️ NEIGHBORHOODS
# ═══════════════════════════════════════════════════════════════════════════════


def neighborhood_from_feature(feature: Dict[str, Any]) -> Neighborhood:
    """
    Build a Neighborhood from one GeoJSON Polygon / MultiPolygon feature.

    Geometry content is not validated here; the engine reports malformed
    rings as skipped neighborhoods.

    Raises:
        ValueError: Missing id or non-polygonal geometry type
    """
    neighborhood_id = _feature_id(feature)
    if neighborhood_id is None:
        raise ValueError("missing id")
    geometry = feature.get("geometry") or {}
    if geometry.get("type") not in NEIGHBORHOOD_GEOMETRY_TYPES:
        raise ValueError(
            f"geometry type {geometry.get('type')!r} is not a Polygon/MultiPolygon"
        )

    properties = feature.get("properties") or {}
    name = _first_present(properties, "name", "name:en")
    return Neighborhood(
        neighborhood_id=neighborhood_id,
        name=str(name) if name is not None else neighborhood_id,
        geometry=geometry,
        population=_to_population(properties.get("population"), neighborhood_id),
        admin_level=AdminLevel.from_value(
            _first_present(properties, "admin_level", "adminLevel")
        ),
        dataset_id=_to_text(_first_present(properties, "datasetId", "dataset_id")),
    )


def neighborhoods_from_geojson(
    feature_collection: Dict[str, Any],
) -> LoadResult[Neighborhood]:
    """
    Build Neighborhood records from a GeoJSON FeatureCollection.

    Args:
        feature_collection: Dict with a "features" list of polygon features

    Returns:
        LoadResult with neighborhoods and (feature index, reason) for skips
    """
    result: LoadResult[Neighborhood] = LoadResult()
    for i, feature in enumerate(feature_collection.get("features") or []):
        try:
            result.records.append(neighborhood_from_feature(feature))
        except (TypeError, ValueError) as e:
            result.skipped.append((i, str(e)))
            logger.warning(f"⚠️ Neighborhood feature #{i} skipped: {e}")
    logger.info(
        f"   🏘️ Loaded {len(result)} neighborhoods ({result.skipped_count} skipped)"
    )
    return result


# ═══════════════════════════════════════════════════════════════════════════════
# 🗺️ GEODATAFRAME / FILE INPUT
# ═══════════════════════════════════════════════════════════════════════════════


def _ensure_wgs84(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Assume WGS84 when no CRS is set, otherwise reproject to it."""
    if gdf.crs is None:
        return gdf.set_crs(CRS_WGS84)
    if gdf.crs.to_epsg() != 4326:
        logger.info(f"   🔄 Reprojecting from {gdf.crs.to_string()} to {CRS_WGS84}")
        return gdf.to_crs(CRS_WGS84)
    return gdf


def _cell_value(value: Any) -> Any:
    """NaN / NA cells become None; list-like cells are kept as they are."""
    if isinstance(value, (str, bytes)):
        return value
    if hasattr(value, "__len__"):
        return value
    try:
        return None if pd.isna(value) else value
    except (TypeError, ValueError):
        return value


def _geodataframe_features(gdf: gpd.GeoDataFrame) -> Dict[str, Any]:
    """GeoDataFrame rows as a FeatureCollection dict; properties.id wins over the index."""
    gdf = _ensure_wgs84(gdf)
    geometry_column = gdf.geometry.name
    features = []
    for idx, row in gdf.iterrows():
        properties = {
            key: _cell_value(value)
            for key, value in row.drop(labels=[geometry_column]).items()
        }
        geometry = row[geometry_column]
        features.append(
            {
                "type": "Feature",
                "id": idx if _is_missing(properties.get("id")) else properties["id"],
                "properties": properties,
                "geometry": (
                    dict(mapping(geometry))
                    if geometry is not None and not geometry.is_empty
                    else None
                ),
            }
        )
    return {"type": "FeatureCollection", "features": features}


def stations_from_geodataframe(gdf: gpd.GeoDataFrame) -> LoadResult[Station]:
    """Build Station records from a point GeoDataFrame (reprojected to WGS84)."""
    return stations_from_geojson(_geodataframe_features(gdf))


def neighborhoods_from_geodataframe(
    gdf: gpd.GeoDataFrame,
) -> LoadResult[Neighborhood]:
    """Build Neighborhood records from a polygon GeoDataFrame (reprojected to WGS84)."""
    return neighborhoods_from_geojson(_geodataframe_features(gdf))


def _read(path: Union[str, Path], name: str) -> gpd.GeoDataFrame:
    path = Path(path)
    logger.info(f"📂 Loading {name}: {path}")
    if not path.exists():
        raise FileNotFoundError(f"{name.capitalize()} file not found: {path}")
    gdf = gpd.read_file(path)
    logger.info(f"   ✅ Read {len(gdf)} features")
    return gdf


def load_stations(path: Union[str, Path]) -> LoadResult[Station]:
    """Read a station file (GeoJSON or any format geopandas reads)."""
    return stations_from_geodataframe(_read(path, "stations"))


def load_neighborhoods(path: Union[str, Path]) -> LoadResult[Neighborhood]:
    """Read a neighborhood file (GeoJSON or any format geopandas reads)."""
    return neighborhoods_from_geodataframe(_read(path, "neighborhoods"))


# ═══════════════════════════════════════════════════════════════════════════════
# 📦 MODULE EXPORTS
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = [
    "LoadResult",
    "load_neighborhoods",
    "load_stations",
    "neighborhood_from_feature",
    "neighborhoods_from_geodataframe",
    "neighborhoods_from_geojson",
    "station_from_feature",
    "stations_from_geodataframe",
    "stations_from_geojson",
]
