"""
Unit tests for typed configuration.

Run with: python -m pytest transit_coverage/_tests/test_config_types.py -v
"""

import pytest

from transit_coverage.config import CONFIG, _env_bool, _env_or_default
from transit_coverage.config_types import (
    AppConfig,
    CatchmentConfig,
    CoverageConfig,
    ParallelConfig,
    normalize_config,
)


class TestFromDict:
    """CONFIG dictionary to typed sections."""

    def test_module_config_is_valid(self):
        app_config = AppConfig.from_dict(CONFIG)
        assert app_config.catchment.min_radius_m <= app_config.catchment.default_radius_m
        assert app_config.coverage.invalid_geometry_policy in ("skip", "emit_zero")

    def test_missing_sections_take_defaults(self):
        app_config = AppConfig.from_dict({})
        assert app_config.catchment.default_radius_m == 400.0
        assert app_config.coverage.top_n == 5
        assert app_config.parallel.backend == "threading"
        assert app_config.cache.enabled is False

    def test_normalize_config(self):
        app_config = AppConfig.from_dict({})
        assert normalize_config(app_config) is app_config
        assert isinstance(normalize_config({}), AppConfig)
        assert isinstance(normalize_config(None), AppConfig)

    def test_with_overrides(self):
        app_config = AppConfig.from_dict({"parallel": {"max_workers": 4}})
        single = app_config.with_overrides("parallel", max_workers=1)
        assert single.parallel.max_workers == 1
        assert app_config.parallel.max_workers == 4

    def test_fingerprint_settings_exclude_workers(self):
        settings = AppConfig.from_dict({}).fingerprint_settings()
        assert "parallel" not in settings
        assert settings["catchment"]["buffer_segments"] == 128


class TestValidation:
    """__post_init__ rejects inconsistent settings."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"min_radius_m": 0.0},
            {"min_radius_m": 500.0, "max_radius_m": 300.0},
            {"buffer_segments": 4},
        ],
    )
    def test_catchment(self, kwargs):
        with pytest.raises(ValueError):
            CatchmentConfig(**kwargs)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"invalid_geometry_policy": "ignore"},
            {"multipolygon_mode": "largest"},
            {"top_n": 0},
            {"candidate_margin_m": -1.0},
        ],
    )
    def test_coverage(self, kwargs):
        with pytest.raises(ValueError):
            CoverageConfig(**kwargs)

    @pytest.mark.parametrize(
        "kwargs", [{"backend": "dask"}, {"chunk_size": 0}, {"max_workers": 0}]
    )
    def test_parallel(self, kwargs):
        with pytest.raises(ValueError):
            ParallelConfig(**kwargs)

    def test_clamp_radius(self):
        config = CatchmentConfig()
        assert config.clamp_radius(None) == 400.0
        assert config.clamp_radius(100.0) == 300.0
        assert config.clamp_radius(900.0) == 500.0
        assert config.clamp_radius(420.0) == 420.0
        with pytest.raises(ValueError):
            config.clamp_radius(float("nan"))


class TestEnvironmentOverrides:
    """_env_or_default / _env_bool helpers."""

    def test_env_or_default(self, monkeypatch):
        monkeypatch.delenv("TC_TEST_VALUE", raising=False)
        assert _env_or_default("TC_TEST_VALUE", 400.0, float) == 400.0
        monkeypatch.setenv("TC_TEST_VALUE", "350")
        assert _env_or_default("TC_TEST_VALUE", 400.0, float) == 350.0

    @pytest.mark.parametrize("raw,expected", [("true", True), ("1", True), ("no", False)])
    def test_env_bool(self, monkeypatch, raw, expected):
        monkeypatch.setenv("TC_TEST_FLAG", raw)
        assert _env_bool("TC_TEST_FLAG", not expected) is expected
