"""
Transit Coverage Analysis

Neighborhood coverage by the union of transit station walking catchments,
measured geodesically on WGS84.
"""

from transit_coverage.config import CONFIG
from transit_coverage.config_types import AppConfig
from transit_coverage.coverage_calculator import compute_single_neighborhood_coverage
from transit_coverage.models import *  # noqa: F401,F403
from transit_coverage.models import __all__ as _models_all
from transit_coverage.parallel import (
    SnapshotStore,
    compute_coverage,
    compute_coverage_cached,
)

__version__ = "1.0.0"

__all__ = [
    "CONFIG",
    "AppConfig",
    "SnapshotStore",
    "compute_coverage",
    "compute_coverage_cached",
    "compute_single_neighborhood_coverage",
] + list(_models_all)
