"""Utilities for transforming raw source rows into location records."""

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from service_map.etl.categorize import classify, priority_of
from service_map.models import KNOWN_TYPES, OTHER, LocationRecord

logger = logging.getLogger(__name__)


def parse_coordinates(lat: Any, lng: Any) -> Optional[Tuple[float, float]]:
    """Return ``(lat, lng)`` or ``None`` when either value is missing, unparsable, zero or out of range."""
    lat_val = _safe_float(lat)
    lng_val = _safe_float(lng)
    if lat_val is None or lng_val is None:
        return None
    if lat_val == 0 or lng_val == 0:
        return None
    if not (-90.0 <= lat_val <= 90.0 and -180.0 <= lng_val <= 180.0):
        return None
    return lat_val, lng_val


def to_location_record(row: Dict[str, Any]) -> Optional[LocationRecord]:
    """Normalize one raw row; returns ``None`` if the row has no usable coordinates."""
    coords = parse_coordinates(row.get("latitude"), row.get("longitude"))
    if coords is None:
        logger.debug("Dropping row %s without valid coordinates", row.get("id"))
        return None

    label = _strip_or_none(row.get("category")) or ""
    preset_type = row.get("type")
    if preset_type in KNOWN_TYPES:
        location_type = preset_type
    else:
        location_type, _ = classify(row.get("classify_text") or label)
    if location_type == OTHER and not label:
        label = _strip_or_none(row.get("classify_text")) or ""

    return LocationRecord(
        id=str(row["id"]),
        type=location_type,
        category=label,
        lat=coords[0],
        lng=coords[1],
        company_name=_strip_or_none(row.get("name")),
        address=_strip_or_none(row.get("address")),
        city=_strip_or_none(row.get("city")),
        phone_number=_strip_or_none(row.get("phone")),
        url1=_strip_or_none(row.get("website")) or "",
        rating=_safe_float(row.get("rating")),
        review_count=_safe_int(row.get("review_count")),
        subcategories=parse_subcategories(row.get("subcategories")),
        search_query=_strip_or_none(row.get("search_query")),
    )


def normalize_rows(rows: Iterable[Dict[str, Any]]) -> List[LocationRecord]:
    records: List[LocationRecord] = []
    dropped = 0
    for row in rows:
        record = to_location_record(row)
        if record is None:
            dropped += 1
            continue
        records.append(record)
    if dropped:
        logger.info("Dropped %d rows without valid coordinates", dropped)
    return records


def sort_by_priority(records: Iterable[LocationRecord]) -> List[LocationRecord]:
    """Stable sort, lower priority number first."""
    return sorted(records, key=lambda record: priority_of(record.type))


def parse_subcategories(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        items = str(value).replace('"', "").split(",")
    return [item.strip() for item in items if item and item.strip()]


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


_LEADING_INT = re.compile(r"^[+-]?\d+")


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def _safe_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and not math.isfinite(value) else int(value)

    if isinstance(value, str):
        # Thousands separators are dropped, then the leading integer is read: "1,204" -> 1204, "12.0" -> 12.
        match = _LEADING_INT.match(value.strip().replace(",", "").replace("\u2019", "").replace("'", ""))
        if match:
            return int(match.group())
    return None
