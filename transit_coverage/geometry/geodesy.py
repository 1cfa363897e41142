"""
Geodesic geometry primitives (WGS84 ellipsoid).

═══════════════════════════════════════════════════════════════════════════════
ARCHITECTURAL OVERVIEW
═══════════════════════════════════════════════════════════════════════════════

Responsibility: Everything that needs real-world metres on lon/lat data.
- geodesic_area: ellipsoidal area of (multi)polygons, holes subtracted
- geodesic_buffer: station catchment disk via the forward geodesic problem
- normalize_polygon: GeoJSON / shapely input → clean, CCW-oriented polygon
- prepare_neighborhood_geometry: the never-raising boundary wrapper
- expand_geometry: metric outward buffer through a local azimuthal projection

All coordinates are (lon, lat) in degrees. Areas are square metres.

For Navigation: Use VS Code outline (Ctrl+Shift+O)

═══════════════════════════════════════════════════════════════════════════════
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import shapely
from pyproj import CRS, Geod, Transformer
from shapely.errors import GEOSException
from shapely.geometry import (
    GeometryCollection,
    MultiPolygon,
    Polygon,
    mapping,
)
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient
from shapely.validation import make_valid

from transit_coverage.models.errors import MalformedGeometryError

logger = logging.getLogger(__name__)

GEOD = Geod(ellps="WGS84")
CRS_WGS84 = "EPSG:4326"

Coord = Tuple[float, float]
PolygonalGeometry = Union[Polygon, MultiPolygon]


# ═══════════════════════════════════════════════════════════════════════════════
# 📐 AREA
# ═══════════════════════════════════════════════════════════════════════════════


def ring_signed_area(coords: Sequence[Sequence[float]]) -> float:
    """
    Signed geodesic area of one ring.

    Counter-clockwise rings are positive. A closing vertex equal to the first
    is ignored.

    Args:
        coords: Sequence of (lon, lat) pairs

    Returns:
        Signed area in square metres (0.0 for fewer than 3 vertices)
    """
    points = [(float(c[0]), float(c[1])) for c in coords]
    if len(points) > 1 and points[0] == points[-1]:
        points = points[:-1]
    if len(points) < 3:
        return 0.0
    lons = [p[0] for p in points]
    lats = [p[1] for p in points]
    area, _ = GEOD.polygon_area_perimeter(lons, lats)
    return float(area)


def _ring_area(coords: Sequence[Sequence[float]]) -> float:
    """Unsigned ring area; a clockwise ring is reversed and measured again."""
    area = ring_signed_area(coords)
    if area < 0:
        area = ring_signed_area(list(coords)[::-1])
    if not math.isfinite(area) or area <= 0:
        return 0.0
    return area


def _polygon_area(polygon: Polygon) -> float:
    if polygon.is_empty:
        return 0.0
    area = _ring_area(polygon.exterior.coords)
    for interior in polygon.interiors:
        area -= _ring_area(interior.coords)
    return max(area, 0.0)


def geodesic_area(geometry: Optional[BaseGeometry]) -> float:
    """
    Geodesic area of a polygonal geometry on the WGS84 ellipsoid.

    Polygon area = exterior - holes, MultiPolygon area = sum of parts.
    Polygonal members of a GeometryCollection are summed; anything else
    (points, lines, None, empty) has area 0.

    Args:
        geometry: Shapely geometry in lon/lat degrees

    Returns:
        Area in square metres (>= 0)
    """
    if geometry is None or geometry.is_empty:
        return 0.0
    return float(sum(_polygon_area(p) for p in polygonal_parts(geometry)))


def polygonal_parts(geometry: Optional[BaseGeometry]) -> List[Polygon]:
    """
    Flatten a geometry into its non-empty Polygon members.

    Args:
        geometry: Any shapely geometry (or None)

    Returns:
        List of Polygons (empty for non-polygonal input)
    """
    if geometry is None or geometry.is_empty:
        return []
    if isinstance(geometry, Polygon):
        return [geometry]
    if isinstance(geometry, (MultiPolygon, GeometryCollection)):
        parts: List[Polygon] = []
        for member in geometry.geoms:
            parts.extend(polygonal_parts(member))
        return parts
    return []


# ═══════════════════════════════════════════════════════════════════════════════
# 🔵 CATCHMENT BUFFER
# ═══════════════════════════════════════════════════════════════════════════════


def geodesic_buffer(
    lon: float, lat: float, radius_m: float, segments: int = 128
) -> Polygon:
    """
    Geodesic disk of ``radius_m`` around (lon, lat).

    Each vertex is the forward geodesic from the centre at evenly spaced
    azimuths. Longitudes are unwrapped around the centre longitude so the
    ring stays contiguous across the antimeridian.

    Args:
        lon: Centre longitude in degrees
        lat: Centre latitude in degrees
        radius_m: Catchment radius in metres (> 0)
        segments: Number of ring vertices (>= 3)

    Returns:
        Counter-clockwise Polygon in lon/lat degrees

    Raises:
        MalformedGeometryError: Non-finite centre, radius <= 0, or a ring
            that cannot be built
    """
    details = {"lon": lon, "lat": lat, "radius_m": radius_m}
    if not all(math.isfinite(float(v)) for v in (lon, lat, radius_m)):
        raise MalformedGeometryError("Non-finite catchment parameters", details)
    if radius_m <= 0:
        raise MalformedGeometryError("Catchment radius must be > 0", details)
    if not -90.0 <= lat <= 90.0:
        raise MalformedGeometryError("Latitude out of range", details)
    if segments < 3:
        raise MalformedGeometryError(
            "Catchment ring needs at least 3 segments", {**details, "segments": segments}
        )

    # Descending azimuths trace the ring counter-clockwise
    azimuths = np.linspace(360.0, 0.0, segments, endpoint=False)
    n = len(azimuths)
    lons, lats, _ = GEOD.fwd(
        np.full(n, float(lon)), np.full(n, float(lat)), azimuths, np.full(n, float(radius_m))
    )
    lons = np.asarray(lons, dtype=float)
    lats = np.asarray(lats, dtype=float)
    if not (np.all(np.isfinite(lons)) and np.all(np.isfinite(lats))):
        raise MalformedGeometryError("Geodesic buffer produced non-finite vertices", details)

    lons = lon + ((lons - lon + 180.0) % 360.0) - 180.0

    try:
        polygon = Polygon(list(zip(lons.tolist(), lats.tolist())))
        if not polygon.is_valid:
            # Rings around a pole fold over after unwrapping
            parts = polygonal_parts(make_valid(polygon))
            if not parts:
                raise MalformedGeometryError("Geodesic buffer ring collapsed", details)
            polygon = max(parts, key=lambda p: p.area)
    except GEOSException as e:
        raise MalformedGeometryError(f"Geodesic buffer failed: {e}", details) from e

    return orient(polygon, sign=1.0)


# ═══════════════════════════════════════════════════════════════════════════════
# 🧹 POLYGON NORMALIZATION
# ═══════════════════════════════════════════════════════════════════════════════


def _clean_ring(coords: Any, role: str) -> List[Coord]:
    """
    Drop consecutive duplicates and the closing vertex of one ring.

    Raises:
        MalformedGeometryError: Empty ring, non-finite coordinates, or fewer
            than 3 distinct vertices
    """
    if coords is None or len(coords) == 0:
        raise MalformedGeometryError(f"Empty {role} ring")
    cleaned: List[Coord] = []
    for c in coords:
        try:
            x, y = float(c[0]), float(c[1])
        except (TypeError, ValueError, IndexError, KeyError) as e:
            raise MalformedGeometryError(f"Unreadable {role} coordinate: {c!r}") from e
        if not (math.isfinite(x) and math.isfinite(y)):
            raise MalformedGeometryError(f"Non-finite {role} coordinate: ({x}, {y})")
        if cleaned and cleaned[-1] == (x, y):
            continue
        cleaned.append((x, y))
    if len(cleaned) > 1 and cleaned[0] == cleaned[-1]:
        cleaned.pop()
    if len(set(cleaned)) < 3:
        raise MalformedGeometryError(
            f"{role.capitalize()} ring has fewer than 3 distinct vertices",
            {"vertices": len(set(cleaned))},
        )
    return cleaned


def _polygon_from_rings(rings: Any) -> Polygon:
    if rings is None or len(rings) == 0:
        raise MalformedGeometryError("Polygon has no rings")
    exterior = _clean_ring(rings[0], "exterior")
    holes = []
    for hole in rings[1:]:
        try:
            holes.append(_clean_ring(hole, "interior"))
        except MalformedGeometryError as e:
            logger.debug(f"Dropping degenerate hole: {e}")
    return Polygon(exterior, holes)


def _as_geojson_mapping(geometry: Any) -> Dict[str, Any]:
    if geometry is None:
        raise MalformedGeometryError("Geometry is missing")
    if isinstance(geometry, BaseGeometry):
        if geometry.is_empty:
            raise MalformedGeometryError("Geometry is empty")
        return dict(mapping(geometry))
    if isinstance(geometry, dict):
        if geometry.get("type") == "Feature":
            return _as_geojson_mapping(geometry.get("geometry"))
        return geometry
    raise MalformedGeometryError(
        f"Unsupported geometry object: {type(geometry).__name__}"
    )


def normalize_polygon(
    geometry: Any, multipolygon_mode: str = "first_part"
) -> PolygonalGeometry:
    """
    Turn GeoJSON-like or shapely input into a clean, oriented polygon.

    Steps:
    1. MultiPolygon: keep only the first part ("first_part") or all parts
    2. Drop consecutive duplicate vertices and the closing vertex per ring
    3. Reject empty arrays, non-finite values, < 3 distinct vertices
    4. Repair self-intersections with make_valid (polygonal parts only)
    5. Orient exteriors counter-clockwise, holes clockwise

    Args:
        geometry: GeoJSON mapping (Polygon / MultiPolygon / Feature) or shapely geometry
        multipolygon_mode: "first_part" or "all_parts"

    Returns:
        Polygon or MultiPolygon in lon/lat degrees

    Raises:
        MalformedGeometryError: If no usable polygon can be produced
    """
    geojson = _as_geojson_mapping(geometry)
    geom_type = geojson.get("type")
    coordinates = geojson.get("coordinates")
    if coordinates is None or len(coordinates) == 0:
        raise MalformedGeometryError(
            "Empty coordinate array", {"geometry_type": geom_type}
        )

    if geom_type == "Polygon":
        polygons = [_polygon_from_rings(coordinates)]
    elif geom_type == "MultiPolygon":
        parts = coordinates[:1] if multipolygon_mode == "first_part" else coordinates
        polygons = []
        for rings in parts:
            try:
                polygons.append(_polygon_from_rings(rings))
            except MalformedGeometryError:
                if multipolygon_mode == "first_part":
                    raise
                logger.debug("Dropping malformed MultiPolygon part")
        if not polygons:
            raise MalformedGeometryError("MultiPolygon has no usable parts")
    else:
        raise MalformedGeometryError(
            f"Unsupported geometry type: {geom_type}", {"geometry_type": geom_type}
        )

    try:
        repaired: List[Polygon] = []
        for polygon in polygons:
            if polygon.is_valid:
                repaired.append(polygon)
            else:
                fixed = polygonal_parts(make_valid(polygon))
                logger.debug(f"Repaired invalid polygon into {len(fixed)} part(s)")
                repaired.extend(fixed)
    except GEOSException as e:
        raise MalformedGeometryError(f"Polygon repair failed: {e}") from e

    repaired = [orient(p, sign=1.0) for p in repaired if not p.is_empty]
    if not repaired:
        raise MalformedGeometryError("Polygon collapsed during repair")
    if len(repaired) == 1:
        return repaired[0]
    return MultiPolygon(repaired)


@dataclass(frozen=True)
class PreparedGeometry:
    """Tagged result of neighborhood geometry preparation.

    Exactly one of (geometry, error) is set.
    """

    geometry: Optional[PolygonalGeometry] = None
    area_m2: float = 0.0
    error: Optional[MalformedGeometryError] = None

    @property
    def ok(self) -> bool:
        """True when the geometry is usable for coverage."""
        return self.error is None and self.geometry is not None


def prepare_neighborhood_geometry(
    geometry: Any, multipolygon_mode: str = "first_part"
) -> PreparedGeometry:
    """
    Normalize a neighborhood geometry and measure it, without raising.

    Args:
        geometry: Raw neighborhood geometry (GeoJSON mapping or shapely)
        multipolygon_mode: "first_part" or "all_parts"

    Returns:
        PreparedGeometry with geometry + area, or with the error that made
        the neighborhood unusable (including area <= 0)
    """
    try:
        polygon = normalize_polygon(geometry, multipolygon_mode)
        area = geodesic_area(polygon)
    except MalformedGeometryError as e:
        return PreparedGeometry(error=e)
    except (GEOSException, TypeError, ValueError, KeyError) as e:
        return PreparedGeometry(error=MalformedGeometryError(f"Unusable geometry: {e}"))
    except Exception as e:
        logger.warning(f"⚠️ Unexpected geometry failure: {type(e).__name__}: {e}")
        return PreparedGeometry(
            error=MalformedGeometryError(f"Unusable geometry: {type(e).__name__}: {e}")
        )

    if not math.isfinite(area) or area <= 0:
        return PreparedGeometry(
            error=MalformedGeometryError(
                "Neighborhood area is not positive", {"area_m2": area}
            )
        )
    return PreparedGeometry(geometry=polygon, area_m2=area)


# ═══════════════════════════════════════════════════════════════════════════════
# ↔️ METRIC EXPANSION
# ═══════════════════════════════════════════════════════════════════════════════


def _local_aeqd(lon: float, lat: float) -> CRS:
    """Azimuthal equidistant CRS centred on (lon, lat)."""
    return CRS.from_proj4(
        f"+proj=aeqd +lat_0={lat} +lon_0={lon} +datum=WGS84 +units=m +no_defs"
    )


def _reproject(transformer: Transformer):
    """Coordinate-array callback for shapely.transform()."""

    def _apply(coords: np.ndarray) -> np.ndarray:
        xs, ys = transformer.transform(coords[:, 0], coords[:, 1])
        return np.column_stack([xs, ys])

    return _apply


def expand_geometry(geometry: BaseGeometry, distance_m: float) -> BaseGeometry:
    """
    Grow a lon/lat geometry outward by ``distance_m`` metres.

    Projects to an azimuthal equidistant CRS centred on the geometry,
    buffers in metres, and projects back to WGS84.

    Args:
        geometry: Shapely geometry in lon/lat degrees
        distance_m: Outward distance in metres (>= 0)

    Returns:
        Expanded geometry in lon/lat degrees
    """
    if distance_m <= 0:
        return geometry
    centre = geometry.centroid
    local_crs = _local_aeqd(centre.x, centre.y)
    to_local = Transformer.from_crs(CRS_WGS84, local_crs, always_xy=True)
    to_wgs84 = Transformer.from_crs(local_crs, CRS_WGS84, always_xy=True)

    local_geom = shapely.transform(geometry, _reproject(to_local))
    expanded = local_geom.buffer(distance_m, quad_segs=16)
    return shapely.transform(expanded, _reproject(to_wgs84))


# ═══════════════════════════════════════════════════════════════════════════════
# 📦 MODULE EXPORTS
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = [
    "GEOD",
    "PreparedGeometry",
    "expand_geometry",
    "geodesic_area",
    "geodesic_buffer",
    "normalize_polygon",
    "polygonal_parts",
    "prepare_neighborhood_geometry",
    "ring_signed_area",
]
