"""
Per-neighborhood coverage calculator.

═══════════════════════════════════════════════════════════════════════════════
ARCHITECTURAL OVERVIEW
═══════════════════════════════════════════════════════════════════════════════

Responsibility: For one neighborhood, compute the share of its area inside
the union of station catchments and the derived covered / uncovered
population.

Algorithm (per neighborhood N):
1. Prepare N's geometry (normalize + geodesic area). Unusable geometry is
   skipped, or emitted as a flagged zero row under the "emit_zero" policy
2. Candidate catchments from the CatchmentIndex
3. For each candidate: intersects() then intersect(); accepted pieces are
   collected and their station ids recorded once each
4. ratio = area(union(pieces)) / area(N), clamped to [0, 1]
5. percentage = round(ratio * 100, 2), covered = round_half_up(pop * ratio)

Failure Semantics:
- A station whose intersection fails is excluded for this neighborhood only
- Zero-area touches are counted as degenerate results, never as coverage

For Navigation: Use VS Code outline (Ctrl+Shift+O)

═══════════════════════════════════════════════════════════════════════════════
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set, Union

import shapely
from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry

from transit_coverage.config_types import AppConfig, normalize_config
from transit_coverage.geometry.boolean_ops import intersect, intersects, union_polygons
from transit_coverage.geometry.geodesy import (
    geodesic_area,
    prepare_neighborhood_geometry,
)
from transit_coverage.geometry.spatial_index import CatchmentIndex
from transit_coverage.models.data_models import (
    Catchment,
    CoverageResult,
    Neighborhood,
    SingleNeighborhoodCoverage,
    Station,
)
from transit_coverage.models.errors import DegenerateResultError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# 📋 OUTCOME TYPE
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class NeighborhoodOutcome:
    """What one neighborhood contributed to a run.

    ``result`` is None when the neighborhood was skipped; ``skip_reason``
    then says why. Placeholder rows carry both a result and the reason.
    """

    neighborhood_id: str
    result: Optional[CoverageResult] = None
    skip_reason: Optional[str] = None
    degenerate_count: int = 0
    station_failures: int = 0

    @property
    def skipped(self) -> bool:
        return self.result is None

    @property
    def is_placeholder(self) -> bool:
        return self.result is not None and not self.result.geometry_valid


@dataclass
class _CoverageAccumulator:
    pieces: List[BaseGeometry]
    station_ids: Set[str]
    degenerate_count: int = 0
    station_failures: int = 0


# ═══════════════════════════════════════════════════════════════════════════════
# 🔢 ARITHMETIC HELPERS
# ═══════════════════════════════════════════════════════════════════════════════


def round_half_up(value: float) -> int:
    """Round a non-negative value to the nearest int, .5 going up."""
    return int(math.floor(value + 0.5))


def clamp_ratio(ratio: float) -> float:
    """Clamp a coverage ratio into [0, 1]; non-finite becomes 0."""
    if not math.isfinite(ratio):
        return 0.0
    return min(1.0, max(0.0, ratio))


def build_result(
    neighborhood: Neighborhood,
    ratio: float,
    station_ids: Iterable[str],
    geometry_valid: bool = True,
) -> CoverageResult:
    """
    Assemble a CoverageResult from a coverage ratio.

    Args:
        neighborhood: The neighborhood the ratio belongs to
        ratio: Covered area / neighborhood area
        station_ids: Distinct contributing station ids
        geometry_valid: False for placeholder rows

    Returns:
        CoverageResult with covered + uncovered == population
    """
    ratio = clamp_ratio(ratio)
    ids = tuple(sorted(set(station_ids)))
    population = max(0, int(neighborhood.population))
    covered = min(population, round_half_up(population * ratio)) if population else 0
    return CoverageResult(
        neighborhood_id=neighborhood.neighborhood_id,
        neighborhood_name=neighborhood.name,
        admin_level=neighborhood.admin_level,
        population=population,
        stations_count=len(ids),
        coverage_percentage=min(100.0, max(0.0, round(ratio * 100.0, 2))),
        covered_population=covered,
        uncovered_population=population - covered,
        coverage_ratio=ratio,
        geometry_valid=geometry_valid,
        station_ids=ids,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# ✂️ INTERSECTION LOOP
# ═══════════════════════════════════════════════════════════════════════════════


def _collect_pieces(
    neighborhood_id: str,
    geometry: BaseGeometry,
    candidates: List[Catchment],
) -> _CoverageAccumulator:
    """Intersect each candidate catchment with the neighborhood."""
    acc = _CoverageAccumulator(pieces=[], station_ids=set())
    shapely.prepare(geometry)

    for catchment in candidates:
        try:
            if not intersects(geometry, catchment.polygon):
                continue
            piece = intersect(catchment.polygon, geometry)
        except (DegenerateResultError, GEOSException) as e:
            acc.station_failures += 1
            logger.warning(
                f"⚠️ Station {catchment.station_id} excluded from "
                f"{neighborhood_id}: {e}"
            )
            continue

        if piece is None:
            acc.degenerate_count += 1
            logger.debug(
                f"   Station {catchment.station_id} only touches {neighborhood_id}"
            )
            continue

        acc.station_ids.add(catchment.station_id)
        acc.pieces.append(piece)

    return acc


def _coverage_ratio(pieces: List[BaseGeometry], area_m2: float) -> float:
    if not pieces:
        return 0.0
    covered = union_polygons(pieces)
    return clamp_ratio(geodesic_area(covered) / area_m2)


# ═══════════════════════════════════════════════════════════════════════════════
# 🏘️ BATCH ENTRY POINT (ONE NEIGHBORHOOD)
# ═══════════════════════════════════════════════════════════════════════════════


def compute_neighborhood_coverage(
    neighborhood: Neighborhood,
    index: CatchmentIndex,
    config: Union[Dict[str, Any], AppConfig, None] = None,
    max_radius_m: Optional[float] = None,
) -> NeighborhoodOutcome:
    """
    Compute coverage for one neighborhood against a prebuilt index.

    Never raises for entity-level problems: invalid geometry becomes a skip
    (or placeholder row) and per-station failures are counted.

    Args:
        neighborhood: Neighborhood record
        index: CatchmentIndex built once for the run
        config: CONFIG dict or AppConfig (None = module CONFIG)
        max_radius_m: Candidate search radius override

    Returns:
        NeighborhoodOutcome with the result (or skip reason) and counters
    """
    app_config = normalize_config(config)
    coverage_cfg = app_config.coverage
    nid = neighborhood.neighborhood_id

    prepared = prepare_neighborhood_geometry(
        neighborhood.geometry, coverage_cfg.multipolygon_mode
    )
    if not prepared.ok:
        reason = str(prepared.error)
        if coverage_cfg.invalid_geometry_policy == "emit_zero":
            logger.warning(f"⚠️ Neighborhood {nid}: {reason} (emitting zero row)")
            return NeighborhoodOutcome(
                neighborhood_id=nid,
                result=build_result(neighborhood, 0.0, (), geometry_valid=False),
                skip_reason=reason,
            )
        logger.warning(f"⚠️ Neighborhood {nid} skipped: {reason}")
        return NeighborhoodOutcome(neighborhood_id=nid, skip_reason=reason)

    candidates = index.candidates(prepared.geometry, max_radius_m)
    acc = _collect_pieces(nid, prepared.geometry, candidates)
    ratio = _coverage_ratio(acc.pieces, prepared.area_m2)

    result = build_result(neighborhood, ratio, acc.station_ids)
    logger.debug(
        f"   {nid}: {len(candidates)} candidates, {result.stations_count} stations, "
        f"{result.coverage_percentage:.2f}%"
    )
    return NeighborhoodOutcome(
        neighborhood_id=nid,
        result=result,
        degenerate_count=acc.degenerate_count,
        station_failures=acc.station_failures,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# 🖱️ INTERACTIVE QUERY
# ═══════════════════════════════════════════════════════════════════════════════


def compute_single_neighborhood_coverage(
    neighborhood: Neighborhood,
    stations: Iterable[Station],
    config: Union[Dict[str, Any], AppConfig, None] = None,
) -> SingleNeighborhoodCoverage:
    """
    Coverage of one neighborhood without a batch run (map click path).

    Args:
        neighborhood: Neighborhood record
        stations: Stations to consider
        config: CONFIG dict or AppConfig (None = module CONFIG)

    Returns:
        SingleNeighborhoodCoverage with percentage and sorted station ids

    Raises:
        MalformedGeometryError: If the neighborhood geometry is unusable
    """
    app_config = normalize_config(config)
    prepared = prepare_neighborhood_geometry(
        neighborhood.geometry, app_config.coverage.multipolygon_mode
    )
    if not prepared.ok:
        raise prepared.error

    index = CatchmentIndex(
        stations, app_config.catchment, app_config.coverage.candidate_margin_m
    )
    candidates = index.candidates(
        prepared.geometry, app_config.coverage.max_candidate_radius_m
    )
    acc = _collect_pieces(neighborhood.neighborhood_id, prepared.geometry, candidates)
    ratio = _coverage_ratio(acc.pieces, prepared.area_m2)
    return SingleNeighborhoodCoverage(
        neighborhood_id=neighborhood.neighborhood_id,
        coverage_percentage=min(100.0, max(0.0, round(ratio * 100.0, 2))),
        station_ids=tuple(sorted(acc.station_ids)),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# 📦 MODULE EXPORTS
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = [
    "NeighborhoodOutcome",
    "build_result",
    "clamp_ratio",
    "compute_neighborhood_coverage",
    "compute_single_neighborhood_coverage",
    "round_half_up",
]
