import json
import threading
import time

import pytest

from service_map.core import cache as cache_mod
from service_map.core.config import Settings
from service_map.core.storage import KeyValueStore
from service_map.models import CacheEntry, LocationRecord

NOW = 1_700_000_000.0


def _record(record_id, location_type="bosch", lat=47.0, lng=8.0):
    return LocationRecord(id=record_id, type=location_type, category=location_type, lat=lat, lng=lng)


@pytest.fixture
def settings():
    return Settings(cache_ttl_seconds=30 * 60, refresh_interval_seconds=3600)


@pytest.fixture
def store(tmp_path):
    return KeyValueStore(str(tmp_path))


def _seed(store, settings, records, age_seconds):
    entry = CacheEntry(timestamp=int((NOW - age_seconds) * 1000), data=records)
    store.set_item(settings.cache_key, json.dumps(entry.to_dict()))


def test_cached_records_shown_then_replaced_by_network(store, settings):
    cached = [_record("c1"), _record("c2", "mercedes"), _record("c3", "certified_hub")]
    _seed(store, settings, cached, age_seconds=10 * 60)
    fresh = [_record("n1"), _record("n2")]
    updates = []

    cache = cache_mod.RevalidatingCache(
        lambda: fresh, store, settings, on_update=lambda records, source: updates.append((source, [r.id for r in records])), clock=lambda: NOW
    )

    assert cache.load_cached() is True
    assert cache.state == cache_mod.DISPLAYING_CACHED
    assert cache.loading is False
    assert [r.id for r in cache.records] == ["c3", "c1", "c2"]

    assert cache.refresh() is True
    assert cache.state == cache_mod.DISPLAYING_FRESH
    assert [r.id for r in cache.records] == ["n1", "n2"]
    assert updates == [("cache", ["c3", "c1", "c2"]), ("network", ["n1", "n2"])]

    persisted = json.loads(store.get_item(settings.cache_key))
    assert persisted["timestamp"] == int(NOW * 1000)
    assert [item["id"] for item in persisted["data"]] == ["n1", "n2"]


def test_stale_cache_is_still_shown(store, settings):
    _seed(store, settings, [_record("old")], age_seconds=5 * 3600)
    cache = cache_mod.RevalidatingCache(lambda: [], store, settings, clock=lambda: NOW)
    assert cache.load_cached() is True
    assert [r.id for r in cache.records] == ["old"]


def test_corrupt_or_empty_cache_is_a_miss(store, settings):
    cache = cache_mod.RevalidatingCache(lambda: [], store, settings, clock=lambda: NOW)
    assert cache.load_cached() is False

    store.set_item(settings.cache_key, "{broken")
    assert cache.load_cached() is False
    assert store.get_item(settings.cache_key) is None

    store.set_item(settings.cache_key, json.dumps({"timestamp": 1, "data": [{"id": "x"}]}))
    assert cache.load_cached() is False
    assert cache.loading is True


def test_failure_without_data_surfaces_error(store, settings):
    def fail():
        raise RuntimeError("network down")

    cache = cache_mod.RevalidatingCache(fail, store, settings, clock=lambda: NOW)

    assert cache.refresh() is False
    assert cache.state == cache_mod.ERROR
    assert cache.error == "Failed to load locations"
    assert cache.loading is False


def test_failure_after_cached_data_is_silent(store, settings, caplog):
    _seed(store, settings, [_record("c1")], age_seconds=60)

    def fail():
        raise RuntimeError("network down")

    cache = cache_mod.RevalidatingCache(fail, store, settings, clock=lambda: NOW)
    cache.load_cached()

    with caplog.at_level("WARNING"):
        assert cache.refresh() is False

    assert cache.error is None
    assert cache.state == cache_mod.DISPLAYING_CACHED
    assert [r.id for r in cache.records] == ["c1"]
    assert "keeping current data" in " ".join(caplog.messages)


def test_slow_fetch_never_overwrites_newer_result(store, settings):
    calls = []

    def fetch():
        calls.append(len(calls))
        if len(calls) == 1:
            # A second refresh starts and finishes while the first is still in flight.
            assert cache.refresh() is True
            return [_record("stale")]
        return [_record("newer")]

    cache = cache_mod.RevalidatingCache(fetch, store, settings, clock=lambda: NOW)

    assert cache.refresh() is False
    assert [r.id for r in cache.records] == ["newer"]
    assert cache.state == cache_mod.DISPLAYING_FRESH


def test_cache_read_after_network_result_is_ignored(store, settings):
    _seed(store, settings, [_record("cached")], age_seconds=60)
    cache = cache_mod.RevalidatingCache(lambda: [_record("net")], store, settings, clock=lambda: NOW)

    cache.refresh()
    assert cache.load_cached() is False
    assert [r.id for r in cache.records] == ["net"]


def test_start_serves_cache_and_revalidates_in_background(store, settings):
    _seed(store, settings, [_record("c1")], age_seconds=60)
    release = threading.Event()

    def fetch():
        release.wait(timeout=5)
        return [_record("n1")]

    with cache_mod.RevalidatingCache(fetch, store, settings, clock=lambda: NOW) as cache:
        assert [r.id for r in cache.records] == ["c1"]
        assert cache.tick() is None  # first refresh still in flight
        release.set()
        assert cache.pending.result(timeout=5) is True
        assert [r.id for r in cache.records] == ["n1"]


def test_tick_requires_start(store, settings):
    cache = cache_mod.RevalidatingCache(lambda: [], store, settings)
    with pytest.raises(RuntimeError):
        cache.tick()


def test_periodic_refresh_repeats_until_stopped(store):
    settings = Settings(refresh_interval_seconds=0.05)
    calls = []
    enough = threading.Event()

    def fetch():
        calls.append(len(calls))
        if len(calls) >= 3:
            enough.set()
        return [_record(f"n{len(calls)}")]

    cache = cache_mod.RevalidatingCache(fetch, store, settings, clock=lambda: NOW)
    cache.start()
    try:
        assert enough.wait(timeout=5)
    finally:
        pending = cache.pending
        cache.stop()
    if pending is not None:
        pending.result(timeout=5)

    settled = len(calls)
    assert settled >= 3
    time.sleep(0.3)
    assert len(calls) == settled
