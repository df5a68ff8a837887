"""Stale-while-revalidate layer in front of the Source Loader.

On start the persisted entry (if any) is shown straight away, whatever its
age, and a network refresh is started in parallel. The refresh repeats on a
fixed interval until ``stop()``. Every fetch carries a generation number and
only a result newer than the last applied one replaces the displayed data, so
a slow fetch can never overwrite fresher data. Cached data is generation 0.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from service_map.core.config import Settings
from service_map.core.storage import KeyValueStore
from service_map.etl.transform import sort_by_priority
from service_map.models import CacheEntry, LocationRecord

logger = logging.getLogger(__name__)

IDLE = "idle"
DISPLAYING_CACHED = "displaying_cached"
FETCHING = "fetching"
DISPLAYING_FRESH = "displaying_fresh"
ERROR = "error"

UpdateListener = Callable[[List[LocationRecord], str], None]


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


class RevalidatingCache:
    def __init__(
        self,
        fetch: Callable[[], List[LocationRecord]],
        store: KeyValueStore,
        settings: Settings,
        on_update: Optional[UpdateListener] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fetch = fetch
        self._store = store
        self._settings = settings
        self._on_update = on_update
        self._clock = clock

        self._lock = threading.Lock()
        self._next_generation = 0
        self._applied_generation = -1
        self._in_flight = 0
        self._display_state = IDLE

        self._executor: Optional[ThreadPoolExecutor] = None
        self._timer: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self.pending: Optional[Future] = None

        self.state = IDLE
        self.records: List[LocationRecord] = []
        self.error: Optional[str] = None
        self.loading = True

    # ---------- Cache ----------

    def read_cache(self) -> Optional[CacheEntry]:
        raw = self._store.get_item(self._settings.cache_key)
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            entry = CacheEntry(
                timestamp=int(payload["timestamp"]),
                data=[LocationRecord.from_dict(item) for item in payload.get("data") or []],
            )
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Discarding corrupt cache entry %s: %s", self._settings.cache_key, exc)
            self._store.remove_item(self._settings.cache_key)
            return None
        return entry

    def write_cache(self, records: List[LocationRecord]) -> None:
        entry = CacheEntry(timestamp=_now_ms(self._clock), data=list(records))
        self._store.set_item(self._settings.cache_key, json.dumps(entry.to_dict()))

    def load_cached(self) -> bool:
        """Show the persisted entry if it holds any data. Returns whether it was shown."""
        entry = self.read_cache()
        if entry is None or not entry.data:
            logger.info("No usable cache entry; waiting for network data")
            return False

        ttl_ms = self._settings.cache_ttl_seconds * 1000
        fresh = entry.is_fresh(_now_ms(self._clock), ttl_ms)
        records = sort_by_priority(entry.data)
        with self._lock:
            if self._applied_generation >= 0:
                logger.debug("Network data already applied; skipping cache display")
                return False
            self._applied_generation = 0
            self.records = records
            self.loading = False
            self._display_state = DISPLAYING_CACHED
            if not self._in_flight:
                self.state = DISPLAYING_CACHED
        logger.info("Serving %d cached locations (fresh=%s)", len(records), fresh)
        self._notify(records, "cache")
        return True

    # ---------- Network ----------

    def refresh(self) -> bool:
        """Fetch once and apply the result if nothing newer has been applied. Returns True if applied."""
        with self._lock:
            self._next_generation += 1
            generation = self._next_generation
            self._in_flight += 1
            self.state = FETCHING

        try:
            records = sort_by_priority(self._fetch())
        except Exception as exc:  # noqa: BLE001
            self._fail(generation, exc)
            return False

        with self._lock:
            self._in_flight -= 1
            if generation <= self._applied_generation:
                logger.info("Discarding stale fetch generation=%s (applied=%s)", generation, self._applied_generation)
                self.state = FETCHING if self._in_flight else self._display_state
                return False
            self._applied_generation = generation
            self.records = records
            self.error = None
            self.loading = False
            self._display_state = DISPLAYING_FRESH
            self.state = FETCHING if self._in_flight else DISPLAYING_FRESH

        self.write_cache(records)
        logger.info("Applied %d fresh locations (generation=%s)", len(records), generation)
        self._notify(records, "network")
        return True

    def _fail(self, generation: int, exc: Exception) -> None:
        with self._lock:
            self._in_flight -= 1
            has_data = self._applied_generation >= 0
            if has_data:
                self.state = FETCHING if self._in_flight else self._display_state
            else:
                self.error = "Failed to load locations"
                self.loading = False
                self.state = ERROR
        if has_data:
            logger.warning("Background refresh failed (generation=%s); keeping current data: %s", generation, exc)
        else:
            logger.error("Loading locations failed (generation=%s): %s", generation, exc)

    def _notify(self, records: List[LocationRecord], source: str) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(records, source)
        except Exception:  # noqa: BLE001
            logger.exception("Location update listener failed")

    # ---------- Lifecycle ----------

    def start(self) -> "RevalidatingCache":
        """Show cached data, then revalidate in the background and every refresh interval."""
        self._stop.clear()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="location-refresh")
        self.load_cached()
        self.tick()
        self._timer = threading.Thread(target=self._run_timer, name="location-refresh-timer", daemon=True)
        self._timer.start()
        return self

    def tick(self) -> Optional[Future]:
        """Submit a background refresh unless one is already in flight."""
        if self._executor is None:
            raise RuntimeError("cache is not started")
        if self.pending is not None and not self.pending.done():
            logger.info("Refresh already in flight; skipping tick")
            return None
        self.pending = self._executor.submit(self.refresh)
        return self.pending

    def _run_timer(self) -> None:
        interval = self._settings.refresh_interval_seconds
        while not self._stop.wait(interval):
            try:
                self.tick()
            except RuntimeError:
                break

    def stop(self) -> None:
        """Cancel the periodic refresh. In-flight fetches finish but are not awaited."""
        self._stop.set()
        if self._timer is not None and self._timer is not threading.current_thread():
            self._timer.join(timeout=1)
        self._timer = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def __enter__(self) -> "RevalidatingCache":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
