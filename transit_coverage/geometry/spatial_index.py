"""
Spatial candidate index over station catchments.

═══════════════════════════════════════════════════════════════════════════════
ARCHITECTURAL OVERVIEW
═══════════════════════════════════════════════════════════════════════════════

Responsibility: Build every station's catchment once per run and answer
"which catchments could touch this neighborhood?" quickly.

Key Features:
- One geodesic catchment per station, radius clamped to the configured range
- shapely STRtree over catchment polygons (read-only, safe to share between
  worker threads)
- Candidate query expands the neighborhood geodesically by the search radius
  plus a safety margin; false positives are allowed, false negatives are not
- Any query failure falls back to a full scan of all catchments

For Navigation: Use VS Code outline (Ctrl+Shift+O)

═══════════════════════════════════════════════════════════════════════════════
"""

import logging
from typing import Dict, Iterable, List, Optional

from pyproj.exceptions import ProjError
from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry
from shapely.strtree import STRtree

from transit_coverage.config_types import CatchmentConfig
from transit_coverage.geometry.geodesy import (
    expand_geometry,
    geodesic_area,
    geodesic_buffer,
)
from transit_coverage.models.data_models import Catchment, Station
from transit_coverage.models.errors import MalformedGeometryError

logger = logging.getLogger(__name__)


class CatchmentIndex:
    """
    Catchments for one run, indexed for candidate lookup.

    Attributes:
        catchments: Successfully built catchments, in station input order
        rejected: station_id → reason for stations whose catchment failed
        clamped_count: Number of stations whose radius was clamped

    Example:
        index = CatchmentIndex(stations, app_config.catchment)
        for catchment in index.candidates(neighborhood_polygon):
            ...
    """

    def __init__(
        self,
        stations: Iterable[Station],
        catchment_config: Optional[CatchmentConfig] = None,
        margin_m: float = 5.0,
    ) -> None:
        self.config = catchment_config or CatchmentConfig()
        self.margin_m = margin_m
        self.catchments: List[Catchment] = []
        self.rejected: Dict[str, str] = {}
        self.clamped_count = 0
        self._by_id: Dict[str, Catchment] = {}

        for station in stations:
            self._add_station(station)

        self._tree: Optional[STRtree] = None
        if self.catchments:
            try:
                self._tree = STRtree([c.polygon for c in self.catchments])
            except GEOSException as e:
                logger.warning(f"⚠️ STRtree build failed ({e}); queries will scan")

        logger.info(
            f"🚏 Built {len(self.catchments)} catchments "
            f"({len(self.rejected)} rejected, {self.clamped_count} radius clamped)"
        )

    # ───────────────────────────────────────────────────────────────────────
    # Construction
    # ───────────────────────────────────────────────────────────────────────

    def _add_station(self, station: Station) -> None:
        if station.station_id in self._by_id or station.station_id in self.rejected:
            self.rejected.setdefault(station.station_id, "duplicate station id")
            logger.warning(f"⚠️ Duplicate station id '{station.station_id}' ignored")
            return

        try:
            radius = self.config.clamp_radius(station.radius_m)
        except (TypeError, ValueError) as e:
            self.rejected[station.station_id] = str(e)
            logger.warning(f"⚠️ Station {station.station_id} rejected: {e}")
            return
        if station.radius_m is not None and radius != station.radius_m:
            self.clamped_count += 1
            logger.debug(
                f"   Station {station.station_id}: radius {station.radius_m} m "
                f"clamped to {radius} m"
            )

        try:
            polygon = geodesic_buffer(
                station.lon, station.lat, radius, self.config.buffer_segments
            )
            area = geodesic_area(polygon)
        except (MalformedGeometryError, GEOSException, TypeError, ValueError) as e:
            self.rejected[station.station_id] = str(e)
            logger.warning(f"⚠️ Station {station.station_id} rejected: {e}")
            return

        catchment = Catchment(
            station_id=station.station_id,
            radius_m=radius,
            polygon=polygon,
            area_m2=area,
            lon=station.lon,
            lat=station.lat,
        )
        self.catchments.append(catchment)
        self._by_id[station.station_id] = catchment

    # ───────────────────────────────────────────────────────────────────────
    # Queries
    # ───────────────────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self.catchments)

    def get(self, station_id: str) -> Optional[Catchment]:
        """Catchment for one station id, or None if missing / rejected."""
        return self._by_id.get(station_id)

    @property
    def max_radius_m(self) -> float:
        """Largest effective catchment radius in this index (0 if empty)."""
        if not self.catchments:
            return 0.0
        return max(c.radius_m for c in self.catchments)

    def effective_search_radius(self, max_radius_m: Optional[float] = None) -> float:
        """Search radius, never below the largest effective catchment radius."""
        if max_radius_m is None:
            return self.max_radius_m
        return max(float(max_radius_m), self.max_radius_m)

    def candidates(
        self, geometry: BaseGeometry, max_radius_m: Optional[float] = None
    ) -> List[Catchment]:
        """
        Catchments that may overlap ``geometry``.

        Args:
            geometry: Neighborhood polygon in lon/lat degrees
            max_radius_m: Search radius override (clamped up to the largest
                effective radius)

        Returns:
            Candidate catchments in station input order (superset of the
            catchments that actually overlap)
        """
        if not self.catchments:
            return []
        if self._tree is None:
            return list(self.catchments)

        radius = self.effective_search_radius(max_radius_m)
        try:
            region = expand_geometry(geometry, radius + self.margin_m)
            hits = self._tree.query(region, predicate="intersects")
        except (GEOSException, ProjError, ValueError, TypeError) as e:
            logger.warning(f"⚠️ Candidate query failed ({e}); scanning all catchments")
            return list(self.catchments)
        return [self.catchments[i] for i in sorted(int(i) for i in hits)]


# ═══════════════════════════════════════════════════════════════════════════════
# 📦 MODULE EXPORTS
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ["CatchmentIndex"]
