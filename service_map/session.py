"""UI boundary: loaded records, filter state and selection behind one object."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

from service_map.core.cache import RevalidatingCache
from service_map.core.config import Settings
from service_map.core.storage import KeyValueStore
from service_map.etl.colors import ColorAssigner, discovered_labels
from service_map.geo.clustering import to_feature_collection
from service_map.geo.filters import FilterState, category_counts, visible
from service_map.geo.placement import place_markers
from service_map.geo.selection import HeadlessMapView, SelectionCoordinator
from service_map.geo.viewport import Bounds, Viewport
from service_map.loader import load_locations
from service_map.models import LocationRecord

logger = logging.getLogger(__name__)


class MapSession:
    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        fetch: Optional[Callable[[], List[LocationRecord]]] = None,
        view: Optional[HeadlessMapView] = None,
    ) -> None:
        self.settings = settings
        self._lock = threading.RLock()
        self._initial_view = ((settings.map_center[1], settings.map_center[0]), settings.map_zoom)
        self.view = view or HeadlessMapView(center=self._initial_view[0], zoom=self._initial_view[1])
        self.selection = SelectionCoordinator(self.view, settings.select_zoom, settings.fly_duration_ms)
        self.colors = ColorAssigner(store, settings.color_map_key)
        self.filter_state = FilterState()
        self.records: List[LocationRecord] = []
        self.cache = RevalidatingCache(
            fetch or (lambda: load_locations(settings)),
            store,
            settings,
            on_update=self._on_records,
        )

    # ---------- Data updates ----------

    def _on_records(self, records: List[LocationRecord], source: str) -> None:
        with self._lock:
            self.records = list(records)
            self.colors.update(records)
            self.filter_state = self.filter_state.with_categories(discovered_labels(records))
            selected = self.selection.selected
            if selected is not None:
                self.selection.selected = next((r for r in records if r.id == selected.id), None)
            self._fit_initial_view()
        logger.info("Session now holds %d locations from %s", len(records), source)

    def _fit_initial_view(self) -> None:
        at_initial = (tuple(self.view.center), self.view.zoom) == self._initial_view
        bounds = Bounds.around(self.visible_records)
        if not at_initial or bounds is None:
            return
        viewport = Viewport(center=self.view.center, zoom=self.view.zoom)
        viewport.fit_bounds(bounds, padding=50)
        self.view.center = viewport.center
        self.view.zoom = viewport.zoom
        self.view.commands.append({"op": "fitBounds", "bounds": [bounds.west, bounds.south, bounds.east, bounds.north]})

    # ---------- Derived state ----------

    @property
    def visible_records(self) -> List[LocationRecord]:
        return visible(self.records, self.filter_state)

    @property
    def selected_record(self) -> Optional[LocationRecord]:
        return self.selection.selected

    def find(self, record_id: str) -> Optional[LocationRecord]:
        return next((r for r in self.records if r.id == record_id), None)

    # ---------- Commands ----------

    def select_record(self, record_id: Optional[str]) -> Optional[LocationRecord]:
        """Select by id, or clear with ``None``. Unknown ids raise ``KeyError`` and change nothing."""
        with self._lock:
            if record_id is None:
                self.selection.select(None)
                return None
            record = self.find(record_id)
            if record is None:
                raise KeyError(record_id)
            self.selection.select(record, self.colors.colors)
            return record

    def select_feature(self, properties: Mapping[str, Any]) -> Optional[LocationRecord]:
        with self._lock:
            return self.selection.select_feature(
                self.records, properties, self.settings.coordinate_tolerance, self.colors.colors
            )

    def set_filter(self, partial: Mapping[str, Any]) -> FilterState:
        with self._lock:
            self.filter_state = self.filter_state.update(partial)
            self._fit_initial_view()
            return self.filter_state

    def markers(self, viewport: Viewport) -> List[LocationRecord]:
        return place_markers(self.visible_records, viewport, self.settings.marker_min_pixel_distance)

    def features(self) -> Dict[str, Any]:
        return to_feature_collection(self.visible_records, self.colors.colors)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            shown = self.visible_records
            selected = self.selection.selected
            return {
                "status": {"state": self.cache.state, "loading": self.cache.loading, "error": self.cache.error},
                "records": [r.to_dict() for r in self.records],
                "visibleRecords": [r.to_dict() for r in shown],
                "selectedRecord": selected.to_dict() if selected else None,
                "filterState": self.filter_state.to_dict(),
                "counts": category_counts(self.records),
                "colors": dict(self.colors.colors),
                "summary": f"Showing {len(shown)} of {len(self.records)} locations",
            }

    # ---------- Lifecycle ----------

    def start(self) -> "MapSession":
        self.cache.start()
        return self

    def stop(self) -> None:
        self.cache.stop()

    def __enter__(self) -> "MapSession":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
