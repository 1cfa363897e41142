"""
Boolean geometry operations with validated outcomes.

═══════════════════════════════════════════════════════════════════════════════
ARCHITECTURAL OVERVIEW
═══════════════════════════════════════════════════════════════════════════════

Responsibility: Wrap shapely's intersection / union so that every result the
coverage calculator sees has passed an explicit acceptance rule.

Key Rules:
- intersect(): a result counts only if it is ring- or path-based, has at
  least one non-empty ring/path, and positive geodesic area. Boundary
  touches (points, lines, zero area) return None.
- union_polygons(): batched unary_union first; if it raises or fails its
  postcondition (polygonal, non-empty, area >= largest input), fall back to
  a left fold where each step must not shrink the accumulated area.

GEOSException is converted to DegenerateResultError here; callers catch it
per station.

For Navigation: Use VS Code outline (Ctrl+Shift+O)

═══════════════════════════════════════════════════════════════════════════════
"""

import logging
from typing import List, Optional, Sequence

from shapely.errors import GEOSException
from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiLineString,
    MultiPolygon,
    Polygon,
)
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from transit_coverage.geometry.geodesy import geodesic_area, polygonal_parts
from transit_coverage.models.errors import DegenerateResultError

logger = logging.getLogger(__name__)

# Relative slack for the "area must not shrink" checks (noding round-off)
AREA_TOLERANCE = 1e-9

RING_KINDS = (Polygon, MultiPolygon)
PATH_KINDS = (LineString, MultiLineString)


def _as_polygonal(parts: List[Polygon]) -> Optional[BaseGeometry]:
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return MultiPolygon(parts)


def _has_nonempty_rings_or_paths(geometry: BaseGeometry) -> bool:
    if isinstance(geometry, Polygon):
        return not geometry.exterior.is_empty
    if isinstance(geometry, LineString):
        return not geometry.is_empty and len(geometry.coords) > 1
    if isinstance(geometry, (MultiPolygon, MultiLineString)):
        return any(_has_nonempty_rings_or_paths(g) for g in geometry.geoms)
    return False


# ═══════════════════════════════════════════════════════════════════════════════
# ✂️ INTERSECTION
# ═══════════════════════════════════════════════════════════════════════════════


def intersects(a: BaseGeometry, b: BaseGeometry) -> bool:
    """
    Cheap overlap test.

    Prepare ``a`` with shapely.prepare() beforehand when it is tested against
    many geometries.

    Raises:
        DegenerateResultError: If the geometry engine fails
    """
    try:
        return bool(a.intersects(b))
    except GEOSException as e:
        raise DegenerateResultError(f"intersects() failed: {e}") from e


def intersect(a: BaseGeometry, b: BaseGeometry) -> Optional[BaseGeometry]:
    """
    Intersection of ``a`` and ``b`` under the acceptance rule.

    Args:
        a: Catchment polygon (lon/lat)
        b: Neighborhood polygon (lon/lat)

    Returns:
        Polygonal intersection with positive geodesic area, or None if the
        result is empty, a bare boundary touch, or otherwise unusable

    Raises:
        DegenerateResultError: If the geometry engine fails
    """
    try:
        result = a.intersection(b)
    except GEOSException as e:
        raise DegenerateResultError(f"intersection() failed: {e}") from e

    if result is None or result.is_empty:
        return None

    if isinstance(result, GeometryCollection) and not isinstance(
        result, RING_KINDS + PATH_KINDS
    ):
        result = _as_polygonal(polygonal_parts(result))
        if result is None:
            return None

    if not isinstance(result, RING_KINDS + PATH_KINDS):
        return None
    if not _has_nonempty_rings_or_paths(result):
        return None

    area = geodesic_area(result)
    if area <= 0:
        return None
    return result


# ═══════════════════════════════════════════════════════════════════════════════
# 🔗 UNION
# ═══════════════════════════════════════════════════════════════════════════════


def _fold_union(polygons: Sequence[BaseGeometry]) -> BaseGeometry:
    """Left fold that only accepts accumulators whose area did not shrink."""
    accumulator = polygons[0]
    accumulated_area = geodesic_area(accumulator)
    rejected = 0

    for polygon in polygons[1:]:
        try:
            candidate = _as_polygonal(polygonal_parts(accumulator.union(polygon)))
        except GEOSException as e:
            logger.debug(f"   Fold step failed, keeping accumulator: {e}")
            rejected += 1
            continue
        if candidate is None:
            rejected += 1
            continue
        candidate_area = geodesic_area(candidate)
        if candidate_area + AREA_TOLERANCE * accumulated_area >= accumulated_area:
            accumulator = candidate
            accumulated_area = candidate_area
        else:
            logger.debug(
                f"   Fold step shrank area ({accumulated_area:.1f} → "
                f"{candidate_area:.1f} m²), keeping accumulator"
            )
            rejected += 1

    if rejected:
        logger.warning(f"⚠️ Fold union rejected {rejected}/{len(polygons) - 1} steps")
    return accumulator


def union_polygons(polygons: Sequence[BaseGeometry]) -> BaseGeometry:
    """
    Union of polygonal geometries with a validated area postcondition.

    Strategy order:
    1. Batched unary_union, accepted if polygonal, non-empty and its area is
       at least the largest input area
    2. Left fold, where each step must not shrink the accumulated area

    Args:
        polygons: Non-empty sequence of Polygon / MultiPolygon

    Returns:
        Polygon or MultiPolygon covering every input

    Raises:
        ValueError: If ``polygons`` is empty
    """
    if len(polygons) == 0:
        raise ValueError("union_polygons() requires at least one polygon")
    if len(polygons) == 1:
        return polygons[0]

    largest_area = max(geodesic_area(p) for p in polygons)

    try:
        batched = _as_polygonal(polygonal_parts(unary_union(list(polygons))))
    except GEOSException as e:
        logger.warning(f"⚠️ Batched union failed ({e}), falling back to fold")
        batched = None

    if batched is not None:
        batched_area = geodesic_area(batched)
        if batched_area + AREA_TOLERANCE * largest_area >= largest_area:
            logger.debug(f"   Batched union of {len(polygons)} pieces accepted")
            return batched
        logger.warning(
            f"⚠️ Batched union area {batched_area:.1f} m² < largest input "
            f"{largest_area:.1f} m², falling back to fold"
        )
    else:
        logger.debug("   Batched union returned nothing polygonal, using fold")

    return _fold_union(polygons)


# ═══════════════════════════════════════════════════════════════════════════════
# 📦 MODULE EXPORTS
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = [
    "intersect",
    "intersects",
    "polygonal_parts",
    "union_polygons",
]
