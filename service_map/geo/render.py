"""Interactive HTML map export with folium."""

import logging
from typing import Dict, List, Optional

import folium
from folium.plugins import MarkerCluster

from service_map.core.config import Settings
from service_map.etl.categorize import PRIORITY, TYPE_STYLES, priority_of
from service_map.geo.placement import MarkerLayer, MarkerPlacer, MarkerStyle, marker_style
from service_map.geo.selection import build_popup_html
from service_map.geo.viewport import Bounds, Viewport
from service_map.models import LocationRecord

logger = logging.getLogger(__name__)

STRATEGIES = ("cluster", "greedy")

# Colour of the cluster bubble follows the best priority among its children.
_CLUSTER_COLORS = ", ".join(f"{PRIORITY[t]}: '{style.color}'" for t, style in TYPE_STYLES.items())

ICON_CREATE_FUNCTION = (
    "function(cluster) {"
    " var best = 99;"
    " cluster.getAllChildMarkers().forEach(function(marker) {"
    "   var p = marker.options && marker.options.priority;"
    "   if (typeof p === 'number' && p < best) { best = p; }"
    " });"
    " var colors = {" + _CLUSTER_COLORS + "};"
    " var color = colors[best] || '#6B7280';"
    " return L.divIcon({"
    "   html: '<div style=\"background:' + color + ';color:#fff;border-radius:50%;"
    "width:40px;height:40px;line-height:40px;text-align:center\"><span>' + cluster.getChildCount() + '</span></div>',"
    "   className: 'marker-cluster priority-' + best,"
    "   iconSize: new L.Point(40, 40)"
    " });"
    "}"
)


def _marker(record: LocationRecord, colors: Optional[Dict[str, str]], style: Optional[MarkerStyle] = None) -> folium.Marker:
    style = style or marker_style(record, colors)
    half = style.size // 2
    icon = folium.DivIcon(
        html=(
            f'<div style="width:{style.size}px;height:{style.size}px;border-radius:50%;'
            f'background:{style.color};box-shadow:0 2px 8px rgba(0,0,0,0.15)"></div>'
        ),
        icon_size=(style.size, style.size),
        icon_anchor=(half, half),
    )
    return folium.Marker(
        location=(record.lat, record.lng),
        popup=folium.Popup(build_popup_html(record, colors), max_width=350),
        tooltip=record.company_name or record.category or None,
        icon=icon,
        priority=priority_of(record.type),
    )


class FoliumMarkerEngine:
    """Draws markers into a folium layer; handles are the folium markers themselves."""

    def __init__(self, target: folium.FeatureGroup, colors: Optional[Dict[str, str]] = None) -> None:
        self.target = target
        self.colors = colors

    def add_marker(self, record: LocationRecord, style: MarkerStyle) -> folium.Marker:
        return _marker(record, self.colors, style).add_to(self.target)

    def remove_marker(self, handle: folium.Marker) -> None:
        self.target._children.pop(handle.get_name(), None)


def build_map(
    records: List[LocationRecord],
    settings: Settings,
    colors: Optional[Dict[str, str]] = None,
    strategy: str = "cluster",
    viewport: Optional[Viewport] = None,
) -> folium.Map:
    """Render ``records`` with either engine clustering or greedy de-overlap at ``viewport``."""
    if strategy not in STRATEGIES:
        raise ValueError(f"strategy must be one of {STRATEGIES}, got {strategy!r}")

    if viewport is None:
        viewport = Viewport(center=(settings.map_center[1], settings.map_center[0]), zoom=settings.map_zoom)
        bounds = Bounds.around(records)
        if bounds is not None:
            viewport.fit_bounds(bounds, padding=50)

    fmap = folium.Map(
        location=(viewport.center[1], viewport.center[0]),
        zoom_start=round(viewport.zoom),
        tiles=settings.map_tiles,
        control_scale=True,
    )

    if strategy == "cluster":
        target = MarkerCluster(
            name="Locations",
            options={"showCoverageOnHover": False},
            icon_create_function=ICON_CREATE_FUNCTION,
        ).add_to(fmap)
        shown = records
        for record in sorted(shown, key=lambda r: priority_of(r.type), reverse=True):
            _marker(record, colors).add_to(target)
    else:
        target = folium.FeatureGroup(name="Locations").add_to(fmap)
        layer = MarkerLayer(FoliumMarkerEngine(target, colors))
        placer = MarkerPlacer(layer, viewport, settings.marker_min_pixel_distance)
        shown = placer.set_visible(records, colors)

    logger.info("Rendered %d of %d locations with strategy=%s", len(shown), len(records), strategy)
    return fmap
