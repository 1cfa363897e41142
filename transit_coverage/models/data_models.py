"""
Typed data models for transit coverage analysis.

Architectural Overview:
=======================
This module contains the dataclasses that flow through the engine. Input
entities (Station, Neighborhood) and outputs (CoverageResult, RankingTables,
AnalysisSnapshot) are frozen: a new run produces new objects, nothing is
mutated in place.

Key Interactions:
-----------------
- Input: data_loader builds Station / Neighborhood from GeoJSON features
- Processing: spatial_index builds one Catchment per station per run
- Output: coverage_calculator emits CoverageResult, rankings assembles the
  AnalysisSnapshot
- Boundary: as_dict() / from_dict() convert to plain dicts for JSON, caching
  and worker transport
- Navigation: Use VS Code outline (Ctrl+Shift+O) for quick navigation

Invariant:
----------
CoverageResult.covered_population + uncovered_population == population

MODIFICATION POINT: Add new StationCategory values here for new transit modes
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple


# ═══════════════════════════════════════════════════════════════════════════
# 🏷️ ENUMS SECTION
# ═══════════════════════════════════════════════════════════════════════════


class StationCategory(Enum):
    """Transit mode of a station. Informational only.

    Does not influence coverage; it is carried through to exports.
    """

    BUS = "bus"
    TRAM = "tram"
    METRO = "metro"
    TRAIN = "train"
    OTHER = "other"

    @classmethod
    def from_string(cls, s: Optional[str]) -> "StationCategory":
        """Convert string to StationCategory, with fallback to OTHER.

        Args:
            s: String like "bus", "Metro", "train" (case-insensitive)

        Returns:
            Matching StationCategory enum member, or OTHER if not found
        """
        if s is None:
            return cls.OTHER
        value = str(s).strip().lower()
        for member in cls:
            if member.value == value:
                return member
        return cls.OTHER


class AdminLevel(Enum):
    """OSM administrative level of a neighborhood polygon.

    8 = district / sector, 9 = neighborhood, 10 = sub-neighborhood.
    """

    DISTRICT = 8
    NEIGHBORHOOD = 9
    SUB_NEIGHBORHOOD = 10

    @classmethod
    def from_value(cls, v: Any) -> "AdminLevel":
        """Convert int or numeric string to AdminLevel, with fallback to DISTRICT.

        Args:
            v: 8, 9, 10, "9", AdminLevel or anything else

        Returns:
            Matching AdminLevel enum member, or DISTRICT if not recognized
        """
        if isinstance(v, AdminLevel):
            return v
        try:
            level = int(v)
        except (TypeError, ValueError):
            return cls.DISTRICT
        for member in cls:
            if member.value == level:
                return member
        return cls.DISTRICT


# ═══════════════════════════════════════════════════════════════════════════
# 🚏 INPUT ENTITIES SECTION
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Station:
    """Immutable transit station with its walking-catchment radius.

    The radius is stored as supplied; clamping to the configured range
    happens when the catchment is built (see CatchmentIndex).

    Usage Examples:
    ---------------
    ```python
    st = Station(station_id="s1", lon=26.10, lat=44.43, radius_m=400.0,
                 category=StationCategory.METRO)
    d = st.as_dict()
    st2 = Station.from_dict(d)
    ```
    """

    station_id: str
    lon: float
    lat: float
    radius_m: Optional[float] = None
    category: StationCategory = StationCategory.OTHER
    dataset_id: Optional[str] = None
    name: Optional[str] = None
    lines: Tuple[str, ...] = ()

    def as_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON / cache fingerprinting.

        Returns:
            Dict with all fields, category as string value
        """
        result: Dict[str, Any] = {
            "station_id": self.station_id,
            "lon": self.lon,
            "lat": self.lat,
            "radius_m": self.radius_m,
            "category": self.category.value,
        }
        # Only include optional fields if set
        if self.dataset_id is not None:
            result["dataset_id"] = self.dataset_id
        if self.name is not None:
            result["name"] = self.name
        if self.lines:
            result["lines"] = list(self.lines)
        return result

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Station":
        """Create Station from dict produced by as_dict().

        Args:
            d: Dictionary with at least station_id, lon, lat

        Returns:
            Station instance

        Raises:
            KeyError: If station_id, lon or lat are missing
        """
        category_value = d.get("category")
        if isinstance(category_value, StationCategory):
            category = category_value
        else:
            category = StationCategory.from_string(category_value)

        radius = d.get("radius_m")
        return cls(
            station_id=str(d["station_id"]),
            lon=float(d["lon"]),
            lat=float(d["lat"]),
            radius_m=float(radius) if radius is not None else None,
            category=category,
            dataset_id=d.get("dataset_id"),
            name=d.get("name"),
            lines=tuple(str(line) for line in d.get("lines", ()) or ()),
        )


@dataclass(frozen=True)
class Neighborhood:
    """Immutable neighborhood polygon with its population.

    ``geometry`` is a GeoJSON-like mapping (Polygon / MultiPolygon) or a
    shapely geometry. It is validated by the engine, not here, so a record
    with broken geometry can still be reported as skipped.
    """

    neighborhood_id: str
    name: str
    geometry: Any = field(compare=False, hash=False, repr=False)
    population: int = 0
    admin_level: AdminLevel = AdminLevel.DISTRICT
    dataset_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.population < 0:
            raise ValueError(
                f"population must be >= 0, got {self.population} "
                f"for neighborhood {self.neighborhood_id}"
            )

    def with_population(self, population: int) -> "Neighborhood":
        """Create a copy with an updated population.

        Args:
            population: New population (>= 0)

        Returns:
            New Neighborhood instance, all other fields preserved
        """
        return replace(self, population=int(population))

    def as_dict(self) -> Dict[str, Any]:
        """Convert to dict with the geometry as a GeoJSON mapping."""
        geometry = self.geometry
        if hasattr(geometry, "__geo_interface__"):
            geometry = geometry.__geo_interface__
        result: Dict[str, Any] = {
            "neighborhood_id": self.neighborhood_id,
            "name": self.name,
            "geometry": geometry,
            "population": self.population,
            "admin_level": self.admin_level.value,
        }
        if self.dataset_id is not None:
            result["dataset_id"] = self.dataset_id
        return result

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Neighborhood":
        """Create Neighborhood from dict produced by as_dict().

        Raises:
            KeyError: If neighborhood_id or geometry are missing
        """
        return cls(
            neighborhood_id=str(d["neighborhood_id"]),
            name=str(d.get("name") or d["neighborhood_id"]),
            geometry=d["geometry"],
            population=int(d.get("population", 0) or 0),
            admin_level=AdminLevel.from_value(d.get("admin_level", 8)),
            dataset_id=d.get("dataset_id"),
        )


@dataclass(frozen=True)
class Catchment:
    """Geodesic walking catchment of one station (ephemeral, per run)."""

    station_id: str
    radius_m: float
    polygon: Any = field(compare=False, hash=False, repr=False)
    area_m2: float = 0.0
    lon: float = 0.0
    lat: float = 0.0


# ═══════════════════════════════════════════════════════════════════════════
# 📊 RESULT SECTION
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CoverageResult:
    """Coverage of one neighborhood by the union of station catchments.

    Key Fields:
    -----------
    - coverage_percentage: round(ratio * 100, 2), in [0, 100]
    - coverage_ratio: full-precision area ratio, in [0, 1]
    - geometry_valid: False only for placeholder rows emitted under the
      ``emit_zero`` invalid-geometry policy
    """

    neighborhood_id: str
    neighborhood_name: str
    admin_level: AdminLevel
    population: int
    stations_count: int
    coverage_percentage: float
    covered_population: int
    uncovered_population: int
    coverage_ratio: float = 0.0
    geometry_valid: bool = True
    station_ids: Tuple[str, ...] = ()

    @property
    def uncovered_percentage(self) -> float:
        """Share of population outside every catchment (0 when population is 0)."""
        if self.population <= 0:
            return 0.0
        return round(self.uncovered_population / self.population * 100.0, 2)

    def as_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON / CSV export."""
        return {
            "neighborhood_id": self.neighborhood_id,
            "neighborhood_name": self.neighborhood_name,
            "admin_level": self.admin_level.value,
            "population": self.population,
            "stations_count": self.stations_count,
            "coverage_percentage": self.coverage_percentage,
            "covered_population": self.covered_population,
            "uncovered_population": self.uncovered_population,
            "uncovered_percentage": self.uncovered_percentage,
            "coverage_ratio": self.coverage_ratio,
            "geometry_valid": self.geometry_valid,
            "station_ids": list(self.station_ids),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CoverageResult":
        """Create CoverageResult from dict produced by as_dict()."""
        return cls(
            neighborhood_id=str(d["neighborhood_id"]),
            neighborhood_name=str(d.get("neighborhood_name", "")),
            admin_level=AdminLevel.from_value(d.get("admin_level", 8)),
            population=int(d.get("population", 0)),
            stations_count=int(d.get("stations_count", 0)),
            coverage_percentage=float(d.get("coverage_percentage", 0.0)),
            covered_population=int(d.get("covered_population", 0)),
            uncovered_population=int(d.get("uncovered_population", 0)),
            coverage_ratio=float(d.get("coverage_ratio", 0.0)),
            geometry_valid=bool(d.get("geometry_valid", True)),
            station_ids=tuple(d.get("station_ids", ())),
        )


@dataclass(frozen=True)
class SingleNeighborhoodCoverage:
    """Interactive single-neighborhood query result."""

    neighborhood_id: str
    coverage_percentage: float
    station_ids: Tuple[str, ...] = ()

    @property
    def stations_count(self) -> int:
        """Number of distinct stations contributing coverage."""
        return len(self.station_ids)


@dataclass(frozen=True)
class RankingTables:
    """Four independent top-N tables derived from one result set."""

    by_stations_count: Tuple[CoverageResult, ...] = ()
    by_population: Tuple[CoverageResult, ...] = ()
    by_uncovered_population: Tuple[CoverageResult, ...] = ()
    by_uncovered_percentage: Tuple[CoverageResult, ...] = ()

    def as_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        """Each table as a list of result dicts."""
        return {
            "by_stations_count": [r.as_dict() for r in self.by_stations_count],
            "by_population": [r.as_dict() for r in self.by_population],
            "by_uncovered_population": [
                r.as_dict() for r in self.by_uncovered_population
            ],
            "by_uncovered_percentage": [
                r.as_dict() for r in self.by_uncovered_percentage
            ],
        }


# ═══════════════════════════════════════════════════════════════════════════
# 📸 SNAPSHOT SECTION
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SnapshotMetadata:
    """Run provenance and error counts for one AnalysisSnapshot.

    ``skipped_neighborhoods`` and ``rejected_stations`` map entity id to the
    reason it was excluded.
    """

    owner_id: Optional[str] = None
    analysis_type: str = "coverage"
    created_at: str = ""
    duration_s: float = 0.0
    total_neighborhoods: int = 0
    total_stations: int = 0
    skipped_neighborhoods: Dict[str, str] = field(default_factory=dict)
    rejected_stations: Dict[str, str] = field(default_factory=dict)
    degenerate_results: int = 0
    station_failures: int = 0
    placeholder_rows: int = 0
    input_fingerprint: Optional[str] = None
    worker_count: int = 1

    @property
    def skipped_count(self) -> int:
        """Number of neighborhoods excluded from the result set."""
        return len(self.skipped_neighborhoods)

    def with_owner(self, owner_id: Optional[str]) -> "SnapshotMetadata":
        """Create a copy attributed to a different owner."""
        return replace(self, owner_id=owner_id)

    def as_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON export."""
        return {
            "owner_id": self.owner_id,
            "analysis_type": self.analysis_type,
            "created_at": self.created_at,
            "duration_s": self.duration_s,
            "total_neighborhoods": self.total_neighborhoods,
            "total_stations": self.total_stations,
            "skipped_count": self.skipped_count,
            "skipped_neighborhoods": dict(self.skipped_neighborhoods),
            "rejected_stations": dict(self.rejected_stations),
            "degenerate_results": self.degenerate_results,
            "station_failures": self.station_failures,
            "placeholder_rows": self.placeholder_rows,
            "input_fingerprint": self.input_fingerprint,
            "worker_count": self.worker_count,
        }


@dataclass(frozen=True)
class AnalysisSnapshot:
    """Complete, immutable output of one analysis run.

    ``results`` is ordered by coverage percentage, descending.
    """

    results: Tuple[CoverageResult, ...]
    rankings: RankingTables
    metadata: SnapshotMetadata

    def get_result(self, neighborhood_id: str) -> Optional[CoverageResult]:
        """Look up one neighborhood's result by id."""
        for result in self.results:
            if result.neighborhood_id == neighborhood_id:
                return result
        return None

    @property
    def total_population(self) -> int:
        """Population summed over all reported neighborhoods."""
        return sum(r.population for r in self.results)

    @property
    def total_covered_population(self) -> int:
        """Covered population summed over all reported neighborhoods."""
        return sum(r.covered_population for r in self.results)

    def with_owner(self, owner_id: Optional[str]) -> "AnalysisSnapshot":
        """Create a copy whose metadata is attributed to ``owner_id``."""
        return replace(self, metadata=self.metadata.with_owner(owner_id))

    def summary(self) -> str:
        """Human-readable one-line summary of the run.

        Returns:
            String like "42 neighborhoods, 130 stations → 61.3% population covered"
        """
        total = self.total_population
        share = (self.total_covered_population / total * 100.0) if total else 0.0
        return (
            f"{len(self.results)} neighborhoods, {self.metadata.total_stations} "
            f"stations → {share:.1f}% population covered "
            f"({self.metadata.skipped_count} skipped)"
        )


# ═══════════════════════════════════════════════════════════════════════════
# 🔄 BATCH CONVERSION UTILITIES SECTION
# ═══════════════════════════════════════════════════════════════════════════


def stations_from_dicts(dicts: List[Dict[str, Any]]) -> List[Station]:
    """Convert list of dicts to Station instances.

    Use at system boundaries (cache files, worker transport).
    """
    return [Station.from_dict(d) for d in dicts]


def results_to_dicts(results: List[CoverageResult]) -> List[Dict[str, Any]]:
    """Convert CoverageResult instances to dicts for serialization."""
    return [r.as_dict() for r in results]
