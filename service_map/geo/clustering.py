"""Engine-assisted clustering: point features carrying a priority for cluster icons."""

import math
from itertools import combinations
from typing import Any, Dict, Iterable, List, Optional

from service_map.etl.categorize import OTHER_PRIORITY, PRIORITY, priority_of
from service_map.geo.placement import marker_style
from service_map.geo.viewport import Viewport, pixel_distance
from service_map.models import OTHER, LocationRecord

CLUSTER_RADIUS = 50
CLUSTER_MAX_ZOOM = 14

# Aggregation handed to the engine so each cluster carries the best (lowest) priority.
CLUSTER_PROPERTIES = {"priority": ["min", ["get", "priority"]]}


def icon_reference(record: LocationRecord, colors: Optional[Dict[str, str]] = None) -> str:
    if record.type == OTHER:
        return f"marker-other-{marker_style(record, colors).color.lstrip('#').lower()}"
    return f"marker-{record.type}"


def to_feature(record: LocationRecord, colors: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    style = marker_style(record, colors)
    return {
        "type": "Feature",
        "id": record.id,
        "geometry": {"type": "Point", "coordinates": [record.lng, record.lat]},
        "properties": {
            "id": record.id,
            "type": record.type,
            "category": record.category,
            "priority": priority_of(record.type),
            "icon": icon_reference(record, colors),
            "color": style.color,
            "size": style.size,
            "companyName": record.company_name,
            "address": record.address,
            "city": record.city,
            "phoneNumber": record.phone_number,
            "url1": record.url1,
            "rating": record.rating,
            "reviewCount": record.review_count,
        },
    }


def to_feature_collection(records: Iterable[LocationRecord], colors: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Features sorted by priority so draw order is deterministic for a given input."""
    ordered = sorted(records, key=lambda r: (priority_of(r.type), r.id))
    return {"type": "FeatureCollection", "features": [to_feature(r, colors) for r in ordered]}


def cluster_source_options(radius: int = CLUSTER_RADIUS, max_zoom: int = CLUSTER_MAX_ZOOM) -> Dict[str, Any]:
    return {
        "cluster": True,
        "clusterRadius": radius,
        "clusterMaxZoom": max_zoom,
        "clusterProperties": CLUSTER_PROPERTIES,
    }


def representative_priority(members: Iterable[Any]) -> int:
    """Lowest priority among cluster members (records or feature dicts)."""
    priorities: List[int] = []
    for member in members:
        if isinstance(member, LocationRecord):
            priorities.append(priority_of(member.type))
        else:
            priorities.append(int(member["properties"]["priority"]))
    return min(priorities) if priorities else OTHER_PRIORITY


def cluster_icon_type(priority: int) -> str:
    for location_type, rank in PRIORITY.items():
        if rank == priority:
            return location_type
    return OTHER


def expansion_zoom(
    members: Iterable[LocationRecord],
    current_zoom: float,
    radius: int = CLUSTER_RADIUS,
    max_zoom: int = CLUSTER_MAX_ZOOM,
) -> int:
    """Zoom to fly to when a cluster is clicked: the first whole zoom where two members sit further apart than ``radius`` pixels.

    Members that never separate are shown individually one level past ``max_zoom``.
    """
    points = [(r.lng, r.lat) for r in members]
    if len(points) < 2:
        return max_zoom + 1
    viewport = Viewport(center=points[0], zoom=current_zoom)
    for zoom in range(math.floor(current_zoom) + 1, max_zoom + 1):
        viewport.zoom = zoom
        if any(pixel_distance(viewport, a, b) > radius for a, b in combinations(points, 2)):
            return zoom
    return max_zoom + 1
