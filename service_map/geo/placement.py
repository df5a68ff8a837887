"""Client-side marker de-overlap.

Records are walked in priority order and kept unless they land within the
minimum pixel distance of an already kept marker of the same group. HEERO
types (service excellence, certified hub) and everything else form two
groups that never suppress each other, so a HEERO marker is only ever hidden
by another HEERO marker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from service_map.etl.categorize import OTHER_MARKER_SIZE, TYPE_STYLES, is_heero
from service_map.etl.transform import sort_by_priority
from service_map.geo.viewport import Projection, pixel_distance
from service_map.models import LocationRecord

logger = logging.getLogger(__name__)

DEFAULT_OTHER_COLOR = "#6B7280"


@dataclass(frozen=True)
class MarkerStyle:
    color: str
    size: int


def marker_style(record: LocationRecord, colors: Optional[Dict[str, str]] = None) -> MarkerStyle:
    style = TYPE_STYLES.get(record.type)
    if style is not None:
        return MarkerStyle(style.color, style.size)
    color = (colors or {}).get(record.category, DEFAULT_OTHER_COLOR)
    return MarkerStyle(color, OTHER_MARKER_SIZE)


def _competes(a: LocationRecord, b: LocationRecord) -> bool:
    return is_heero(a.type) == is_heero(b.type)


def place_markers(records: List[LocationRecord], projection: Projection, min_distance: float = 40.0) -> List[LocationRecord]:
    """Greedy non-overlapping subset, in priority order."""
    shown: List[LocationRecord] = []
    for record in sort_by_priority(records):
        point = (record.lng, record.lat)
        too_close = any(
            _competes(record, kept) and pixel_distance(projection, point, (kept.lng, kept.lat)) < min_distance
            for kept in shown
        )
        if not too_close:
            shown.append(record)
    return shown


class MarkerEngine(Protocol):
    """Subset of the map engine needed to draw individual markers."""

    def add_marker(self, record: LocationRecord, style: MarkerStyle) -> Any:
        ...

    def remove_marker(self, handle: Any) -> None:
        ...


class MarkerLayer:
    """Owns the marker handles it adds and removes all of them on ``clear`` or exit."""

    def __init__(self, engine: MarkerEngine) -> None:
        self._engine = engine
        self._handles: List[Any] = []

    def replace(self, records: List[LocationRecord], colors: Optional[Dict[str, str]] = None) -> None:
        self.clear()
        for record in records:
            self._handles.append(self._engine.add_marker(record, marker_style(record, colors)))

    def clear(self) -> None:
        handles, self._handles = self._handles, []
        for handle in handles:
            try:
                self._engine.remove_marker(handle)
            except Exception:  # noqa: BLE001
                logger.exception("Failed to remove marker %r", handle)

    def __len__(self) -> int:
        return len(self._handles)

    def __enter__(self) -> "MarkerLayer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear()


class MarkerPlacer:
    """Recomputes the shown markers when the visible set changes or the camera settles."""

    def __init__(self, layer: MarkerLayer, projection: Projection, min_distance: float = 40.0) -> None:
        self.layer = layer
        self.projection = projection
        self.min_distance = min_distance
        self.visible: List[LocationRecord] = []
        self.colors: Dict[str, str] = {}
        self.shown: List[LocationRecord] = []

    def set_visible(self, records: List[LocationRecord], colors: Optional[Dict[str, str]] = None) -> List[LocationRecord]:
        self.visible = list(records)
        if colors is not None:
            self.colors = dict(colors)
        return self.redraw()

    def on_move_end(self, projection: Optional[Projection] = None) -> List[LocationRecord]:
        if projection is not None:
            self.projection = projection
        return self.redraw()

    def redraw(self) -> List[LocationRecord]:
        self.shown = place_markers(self.visible, self.projection, self.min_distance)
        # Drawn lowest priority first so the most important markers end up on top.
        self.layer.replace(self.shown[::-1], self.colors)
        logger.debug("Showing %d of %d visible markers", len(self.shown), len(self.visible))
        return self.shown
