"""Static GeoJSON point files, one file per fixed location type."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import requests

from service_map.core.errors import ParseError, SourceFetchError

logger = logging.getLogger(__name__)
_SESSION = requests.Session()


def read_geojson(path_or_url: str) -> Dict[str, Any]:
    """Load a FeatureCollection from a local path or an http(s) URL."""
    if path_or_url.startswith(("http://", "https://")):
        try:
            response = _SESSION.get(path_or_url, timeout=10)
            response.raise_for_status()
            text = response.text
        except requests.RequestException as exc:
            logger.error("GeoJSON fetch failed for %s: %s", path_or_url, exc)
            raise SourceFetchError(f"geojson fetch failed: {exc}") from exc
    else:
        try:
            text = Path(path_or_url).read_text(encoding="utf-8")
        except OSError as exc:
            raise SourceFetchError(f"cannot read {path_or_url}: {exc}") from exc

    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise ParseError(f"{path_or_url} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("features"), list):
        raise ParseError(f"{path_or_url} is not a FeatureCollection")
    return payload


def _is_point(feature: Any) -> bool:
    if not isinstance(feature, dict):
        return False
    geometry = feature.get("geometry") or {}
    return geometry.get("type") == "Point" and isinstance(geometry.get("coordinates"), list)


def parse_features(payload: Dict[str, Any], location_type: str) -> List[Dict[str, Any]]:
    """Turn point features into raw rows; the file's type is authoritative."""
    rows: List[Dict[str, Any]] = []
    points = [feature for feature in payload.get("features", []) if _is_point(feature)]
    for index, feature in enumerate(points):
        props = feature.get("properties") or {}
        coords = feature["geometry"]["coordinates"]
        rows.append(
            {
                "id": f"{location_type}-location-{index}",
                "type": location_type,
                "category": props.get("Category") or location_type,
                "name": props.get("Company_Name") or props.get("Company Name"),
                "address": props.get("Address") or props.get("Adress"),
                "latitude": coords[1] if len(coords) > 1 else None,
                "longitude": coords[0] if coords else None,
                "website": props.get("URL1"),
                "rating": props.get("Rating"),
                "review_count": props.get("Review_Count"),
                "subcategories": props.get("Subcategories"),
                "phone": props.get("PhoneNumber"),
                "city": props.get("City"),
                "search_query": props.get("Search_Query"),
            }
        )
    return rows
