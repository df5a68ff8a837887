"""Client utilities for the published spreadsheet CSV export."""

import csv
import io
import logging
from typing import Any, Dict, List

import requests

from service_map.core.errors import ParseError, SourceFetchError

logger = logging.getLogger(__name__)
_SESSION = requests.Session()

SHEET_COLUMNS = (
    "Category",
    "Name",
    "Address",
    "Latitude",
    "Longitude",
    "Website",
    "Rating",
    "Review Count",
    "Phone Number",
    "City",
)

# Header-less layout of the CSV bundled with the app.
EMBEDDED_COLUMNS = (
    "City",
    "Website",
    "Address",
    "Latitude",
    "Longitude",
    "Category",
    "Rating",
    "Review Count",
    "Subcategories",
    "Name",
    "Phone Number",
)


def fetch_sheet_csv(url: str) -> str:
    if not url:
        raise SourceFetchError("No spreadsheet URL configured")
    try:
        response = _SESSION.get(url, timeout=10)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.error("Spreadsheet fetch failed for %s: %s", url, exc)
        raise SourceFetchError(f"spreadsheet fetch failed: {exc}") from exc
    response.encoding = response.encoding or "utf-8"
    return response.text


def _row_to_raw(row: Dict[str, Any], index: int, prefix: str) -> Dict[str, Any]:
    return {
        "id": f"{prefix}-{index}",
        "category": row.get("Category"),
        "name": row.get("Name"),
        "address": row.get("Address"),
        "latitude": row.get("Latitude"),
        "longitude": row.get("Longitude"),
        "website": row.get("Website"),
        "rating": row.get("Rating"),
        "review_count": row.get("Review Count"),
        "subcategories": row.get("Subcategories"),
        "phone": row.get("Phone Number"),
        "city": row.get("City"),
    }


def _has_coordinates(row: Dict[str, Any]) -> bool:
    return bool((row.get("Latitude") or "").strip() and (row.get("Longitude") or "").strip())


def parse_sheet_csv(text: str, prefix: str = "location") -> List[Dict[str, Any]]:
    """Parse the header-row export. Rows missing latitude or longitude are skipped before ids are assigned."""
    if not text or not text.strip():
        return []
    try:
        reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
        if not reader.fieldnames or "Latitude" not in reader.fieldnames or "Longitude" not in reader.fieldnames:
            raise ParseError(f"spreadsheet header is missing coordinate columns: {reader.fieldnames}")
        rows = [row for row in reader if row and _has_coordinates(row)]
    except csv.Error as exc:
        raise ParseError(f"malformed spreadsheet CSV: {exc}") from exc

    return [_row_to_raw(row, index, prefix) for index, row in enumerate(rows)]


def parse_embedded_csv(text: str, prefix: str = "embedded-location") -> List[Dict[str, Any]]:
    """Parse the header-less bundled CSV.

    A quoted ``"lat,lng"`` pair in the Latitude column is accepted as well as
    separate Latitude and Longitude columns. Classification looks at the
    category and the company name together.
    """
    if not text or not text.strip():
        return []
    raws: List[Dict[str, Any]] = []
    try:
        for values in csv.reader(io.StringIO(text.strip())):
            if not any(value.strip() for value in values):
                continue
            row = {column: (values[i].strip() if i < len(values) else "") for i, column in enumerate(EMBEDDED_COLUMNS)}
            if "," in row["Latitude"] and not row["Longitude"]:
                row["Latitude"], row["Longitude"] = (part.strip() for part in row["Latitude"].split(",", 1))
            if not _has_coordinates(row):
                continue
            raw = _row_to_raw(row, len(raws), prefix)
            raw["classify_text"] = f"{row['Category']} {row['Name']}".strip()
            raws.append(raw)
    except csv.Error as exc:
        raise ParseError(f"malformed embedded CSV: {exc}") from exc
    return raws
