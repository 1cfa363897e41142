"""Geodesic geometry primitives, boolean operations and the catchment index."""

from .boolean_ops import intersect, intersects, union_polygons
from .geodesy import (
    PreparedGeometry,
    expand_geometry,
    geodesic_area,
    geodesic_buffer,
    normalize_polygon,
    polygonal_parts,
    prepare_neighborhood_geometry,
    ring_signed_area,
)
from .spatial_index import CatchmentIndex

__all__ = [
    "CatchmentIndex",
    "PreparedGeometry",
    "expand_geometry",
    "geodesic_area",
    "geodesic_buffer",
    "intersect",
    "intersects",
    "normalize_polygon",
    "polygonal_parts",
    "prepare_neighborhood_geometry",
    "ring_signed_area",
    "union_polygons",
]
