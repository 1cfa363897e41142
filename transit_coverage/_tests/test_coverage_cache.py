"""
Unit tests for the fingerprinted coverage cache.

Tests:
1. Fingerprint determinism and order independence
2. Result-affecting settings change the fingerprint, others do not
3. Save / load round trip, corruption handling
4. Pruning, invalidation, stats, manifest
5. Cached orchestrator: hit, miss, owner re-attribution

Run with: python -m pytest transit_coverage/_tests/test_coverage_cache.py -v
"""

import json
import os

import numpy as np

from conftest import (
    CENTER_LAT,
    CENTER_LON,
    engine_config,
    make_neighborhood,
    make_station,
    offset,
    square_geojson,
)
from transit_coverage.models.data_models import SnapshotMetadata, Station
from transit_coverage.parallel import cached_coverage_orchestrator
from transit_coverage.parallel.cached_coverage_orchestrator import compute_coverage_cached
from transit_coverage.parallel.coverage_cache import (
    MANIFEST_NAME,
    compute_cache_fingerprint,
    get_cache_path,
    get_cache_stats,
    invalidate_cache,
    load_from_cache,
    prune_old_cache,
    save_to_cache,
)
from transit_coverage.rankings import build_snapshot


def _inputs():
    stations = [
        make_station("a"),
        make_station("b", *offset(CENTER_LON, CENTER_LAT, 90.0, 300.0)),
    ]
    neighborhoods = [
        make_neighborhood("n1"),
        make_neighborhood("n2", square_geojson(CENTER_LON + 0.02, CENTER_LAT)),
    ]
    return stations, neighborhoods


def _snapshot():
    return build_snapshot([], SnapshotMetadata(total_stations=2))


def _cache_config(tmp_path, **cache_overrides):
    config = engine_config()
    config["cache"] = {
        "enabled": True,
        "force_overwrite": False,
        "cache_dir": str(tmp_path / "cache"),
        "max_cache_entries": 10,
        "lock_timeout_s": 5.0,
        "log_cache_hits": True,
    }
    config["cache"].update(cache_overrides)
    return config


# ═══════════════════════════════════════════════════════════════════════════
# FINGERPRINT
# ═══════════════════════════════════════════════════════════════════════════


class TestFingerprint:
    """Fingerprint covers inputs and result-affecting settings only."""

    def test_determinism(self):
        stations, neighborhoods = _inputs()
        key1 = compute_cache_fingerprint(stations, neighborhoods, engine_config())
        key2 = compute_cache_fingerprint(stations, neighborhoods, engine_config())
        assert key1 == key2
        assert len(key1) == 16

    def test_input_order_independence(self):
        stations, neighborhoods = _inputs()
        forward = compute_cache_fingerprint(stations, neighborhoods, engine_config())
        backward = compute_cache_fingerprint(
            stations[::-1], neighborhoods[::-1], engine_config()
        )
        assert forward == backward

    def test_station_change_changes_key(self):
        stations, neighborhoods = _inputs()
        moved = [stations[0], make_station("b", radius_m=450.0)]
        assert compute_cache_fingerprint(
            stations, neighborhoods, engine_config()
        ) != compute_cache_fingerprint(moved, neighborhoods, engine_config())

    def test_population_change_changes_key(self):
        stations, neighborhoods = _inputs()
        updated = [neighborhoods[0].with_population(5), neighborhoods[1]]
        assert compute_cache_fingerprint(
            stations, neighborhoods, engine_config()
        ) != compute_cache_fingerprint(stations, updated, engine_config())

    def test_result_setting_changes_key(self):
        stations, neighborhoods = _inputs()
        config = engine_config()
        config["coverage"]["invalid_geometry_policy"] = "emit_zero"
        assert compute_cache_fingerprint(
            stations, neighborhoods, engine_config()
        ) != compute_cache_fingerprint(stations, neighborhoods, config)

    def test_worker_setting_does_not_change_key(self):
        stations, neighborhoods = _inputs()
        assert compute_cache_fingerprint(
            stations, neighborhoods, engine_config()
        ) == compute_cache_fingerprint(
            stations, neighborhoods, engine_config(max_workers=8)
        )

    def test_numpy_scalar_fields_hash(self):
        _, neighborhoods = _inputs()
        tagged = Station("np", CENTER_LON, CENTER_LAT, 400.0, dataset_id=np.int64(5))
        key = compute_cache_fingerprint([tagged], neighborhoods, engine_config())
        assert len(key) == 16

    def test_radius_override_changes_key(self):
        stations, neighborhoods = _inputs()
        assert compute_cache_fingerprint(
            stations, neighborhoods, engine_config()
        ) != compute_cache_fingerprint(stations, neighborhoods, engine_config(), 800.0)


# ═══════════════════════════════════════════════════════════════════════════
# CACHE I/O
# ═══════════════════════════════════════════════════════════════════════════


class TestCacheIO:
    """Persisted snapshots, manifest and housekeeping."""

    def test_miss_when_absent(self, tmp_path):
        assert load_from_cache(tmp_path, "0123456789abcdef") is None

    def test_save_then_load(self, tmp_path):
        snapshot = _snapshot()
        assert save_to_cache(tmp_path, "0123456789abcdef", snapshot)
        loaded = load_from_cache(tmp_path, "0123456789abcdef")
        assert loaded == snapshot

    def test_manifest_updated(self, tmp_path):
        save_to_cache(tmp_path, "aaaaaaaaaaaaaaaa", _snapshot())
        save_to_cache(tmp_path, "aaaaaaaaaaaaaaaa", _snapshot())
        save_to_cache(tmp_path, "bbbbbbbbbbbbbbbb", _snapshot())
        manifest = json.loads((tmp_path / MANIFEST_NAME).read_text(encoding="utf-8"))
        fingerprints = [e["fingerprint"] for e in manifest["entries"]]
        assert sorted(fingerprints) == ["aaaaaaaaaaaaaaaa", "bbbbbbbbbbbbbbbb"]

    def test_corrupted_file_deleted(self, tmp_path):
        path = get_cache_path(tmp_path, "cccccccccccccccc")
        path.write_bytes(b"not a pickle")
        assert load_from_cache(tmp_path, "cccccccccccccccc") is None
        assert not path.exists()

    def test_no_temp_files_left(self, tmp_path):
        save_to_cache(tmp_path, "dddddddddddddddd", _snapshot())
        assert list(tmp_path.glob("*.tmp")) == []

    def test_prune_keeps_newest(self, tmp_path):
        for i in range(4):
            fingerprint = f"{i:016d}"
            save_to_cache(tmp_path, fingerprint, _snapshot())
            os.utime(get_cache_path(tmp_path, fingerprint), (1000 + i, 1000 + i))

        assert prune_old_cache(tmp_path, max_entries=2) == 2
        assert not get_cache_path(tmp_path, f"{0:016d}").exists()
        assert get_cache_path(tmp_path, f"{3:016d}").exists()
        stats = get_cache_stats(tmp_path)
        assert stats["entries"] == 2
        assert stats["newest"] == f"{3:016d}"

    def test_invalidate(self, tmp_path):
        save_to_cache(tmp_path, "eeeeeeeeeeeeeeee", _snapshot())
        save_to_cache(tmp_path, "ffffffffffffffff", _snapshot())
        assert invalidate_cache(tmp_path, "eeeeeeeeeeeeeeee") == 1
        assert invalidate_cache(tmp_path, "eeeeeeeeeeeeeeee") == 0
        assert invalidate_cache(tmp_path) == 1
        assert get_cache_stats(tmp_path)["entries"] == 0

    def test_stats_for_missing_dir(self, tmp_path):
        stats = get_cache_stats(tmp_path / "missing")
        assert stats["exists"] is False
        assert stats["entries"] == 0


# ═══════════════════════════════════════════════════════════════════════════
# CACHED ORCHESTRATOR
# ═══════════════════════════════════════════════════════════════════════════


class TestCachedOrchestrator:
    """compute_coverage_cached() wraps compute_coverage()."""

    def test_second_run_is_a_hit(self, tmp_path, monkeypatch):
        stations, neighborhoods = _inputs()
        config = _cache_config(tmp_path)

        first = compute_coverage_cached(stations, neighborhoods, config=config, owner_id="alice")
        assert first.metadata.input_fingerprint is not None

        def _must_not_run(*args, **kwargs):
            raise AssertionError("compute_coverage called on a cache hit")

        monkeypatch.setattr(cached_coverage_orchestrator, "compute_coverage", _must_not_run)
        progress = []
        second = compute_coverage_cached(
            stations,
            neighborhoods,
            config=config,
            owner_id="bob",
            progress_callback=lambda done, total: progress.append((done, total)),
        )
        assert second.metadata.owner_id == "bob"
        assert second.results == first.results
        assert progress == [(2, 2)]

    def test_force_overwrite_recomputes(self, tmp_path):
        stations, neighborhoods = _inputs()
        compute_coverage_cached(stations, neighborhoods, config=_cache_config(tmp_path))
        again = compute_coverage_cached(
            stations,
            neighborhoods,
            config=_cache_config(tmp_path, force_overwrite=True),
        )
        assert len(again.results) == 2
        assert get_cache_stats(tmp_path / "cache")["entries"] == 1

    def test_disabled_cache_writes_nothing(self, tmp_path):
        stations, neighborhoods = _inputs()
        snapshot = compute_coverage_cached(
            stations,
            neighborhoods,
            config=_cache_config(tmp_path, enabled=False),
            owner_id="alice",
        )
        assert snapshot.metadata.owner_id == "alice"
        assert snapshot.metadata.input_fingerprint is None
        assert not (tmp_path / "cache").exists()
