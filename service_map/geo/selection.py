"""Selection and popup coordination between the list, the markers and the camera."""

from __future__ import annotations

import html
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from service_map.core.errors import CoordinateResolutionMiss
from service_map.etl.categorize import TYPE_STYLES, display_label
from service_map.models import LocationRecord

logger = logging.getLogger(__name__)


def resolve_record(
    records: Iterable[LocationRecord],
    properties: Mapping[str, Any],
    tolerance: float = 0.001,
) -> LocationRecord:
    """Find the record behind a clicked feature, by id first, then by coordinates within ``tolerance`` degrees."""
    records = list(records)
    record_id = properties.get("id")
    if record_id is not None:
        for record in records:
            if record.id == str(record_id):
                return record

    try:
        lat = float(properties["lat"])
        lng = float(properties["lng"])
    except (KeyError, TypeError, ValueError):
        raise CoordinateResolutionMiss(f"no record with id {record_id!r}") from None

    for record in records:
        if abs(record.lat - lat) <= tolerance and abs(record.lng - lng) <= tolerance:
            return record
    raise CoordinateResolutionMiss(f"no record near ({lat}, {lng})")


def build_popup_html(record: LocationRecord, colors: Optional[Dict[str, str]] = None) -> str:
    """Popup markup; phone, website, rating, review count and subcategories only appear when present."""
    esc = html.escape
    parts = [
        '<div class="p-4 max-w-sm">',
        f'<h3 class="font-bold text-lg mb-2 text-gray-800">{esc(record.company_name or "")}</h3>',
        '<div class="space-y-2 text-sm">',
        f'<p class="address">📍 {esc(record.address or "")}</p>',
    ]
    if record.phone_number:
        phone = esc(str(record.phone_number), quote=True)
        parts.append(f'<p class="phone">📞 <a href="tel:{phone}">{phone}</a></p>')
    if record.url1:
        parts.append(f'<p class="website">🌐 <a href="{esc(record.url1, quote=True)}" target="_blank">Visit Website</a></p>')

    parts.append('<div class="meta">')
    label = display_label(record.type, record.category)
    if label:
        style = TYPE_STYLES.get(record.type)
        if style is not None:
            parts.append(f'<span class="badge {style.badge_class}">{esc(label)}</span>')
        else:
            color = esc((colors or {}).get(record.category, ""), quote=True)
            parts.append(f'<span class="badge" style="color: {color}">{esc(label)}</span>')
    if record.rating:
        rating = f'<span class="rating">★ {record.rating:g}'
        if record.review_count:
            rating += f' <span class="reviews">({record.review_count} Reviews)</span>'
        parts.append(rating + "</span>")
    if record.subcategories:
        shown = ", ".join(esc(s) for s in record.subcategories[:2])
        more = " ..." if len(record.subcategories) > 2 else ""
        parts.append(f'<span class="subcategories">{shown}{more}</span>')
    parts.append("</div></div></div>")
    return "".join(parts)


class MapView(Protocol):
    def fly_to(self, center: Tuple[float, float], zoom: float, duration_ms: int) -> None:
        ...

    def close_popup(self) -> None:
        ...

    def open_popup(self, lnglat: Tuple[float, float], content: str) -> None:
        ...


# Oldest commands are dropped when a client never collects them.
MAX_PENDING_COMMANDS = 50


@dataclass
class HeadlessMapView:
    """Map engine stand-in that queues camera and popup commands for a remote client."""

    center: Tuple[float, float]
    zoom: float
    transition_ms: int = 0
    popup: Optional[Dict[str, Any]] = None
    commands: Deque[Dict[str, Any]] = field(default_factory=lambda: deque(maxlen=MAX_PENDING_COMMANDS))

    def fly_to(self, center: Tuple[float, float], zoom: float, duration_ms: int) -> None:
        self.center = center
        self.zoom = zoom
        self.transition_ms = duration_ms
        self.commands.append({"op": "flyTo", "center": list(center), "zoom": zoom, "duration": duration_ms})

    def close_popup(self) -> None:
        if self.popup is not None:
            self.commands.append({"op": "closePopup"})
        self.popup = None

    def open_popup(self, lnglat: Tuple[float, float], content: str) -> None:
        self.popup = {"lngLat": list(lnglat), "html": content}
        self.commands.append({"op": "openPopup", **self.popup})

    def drain_commands(self) -> List[Dict[str, Any]]:
        """Hand the queued camera and popup commands to the client and forget them."""
        drained = list(self.commands)
        self.commands.clear()
        return drained

    def to_dict(self) -> Dict[str, Any]:
        return {
            "center": list(self.center),
            "zoom": self.zoom,
            "transitionMs": self.transition_ms,
            "popup": self.popup,
        }


class SelectionCoordinator:
    def __init__(self, view: MapView, zoom: float = 12.0, duration_ms: int = 1000) -> None:
        self.view = view
        self.zoom = zoom
        self.duration_ms = duration_ms
        self.selected: Optional[LocationRecord] = None

    def select(self, record: Optional[LocationRecord], colors: Optional[Dict[str, str]] = None) -> None:
        """Select ``record`` or clear the highlight with ``None``.

        Clearing does not move the camera or close an open popup.
        """
        self.selected = record
        if record is None:
            return
        self.view.fly_to((record.lng, record.lat), self.zoom, self.duration_ms)
        self.view.close_popup()
        self.view.open_popup((record.lng, record.lat), build_popup_html(record, colors))
        logger.debug("Selected %s", record.id)

    def select_feature(
        self,
        records: Iterable[LocationRecord],
        properties: Mapping[str, Any],
        tolerance: float = 0.001,
        colors: Optional[Dict[str, str]] = None,
    ) -> Optional[LocationRecord]:
        """Handle a marker click; a click that matches no record leaves the selection alone."""
        try:
            record = resolve_record(records, properties, tolerance)
        except CoordinateResolutionMiss as exc:
            logger.debug("Ignoring click without a matching record: %s", exc)
            return None
        self.select(record, colors)
        return record
