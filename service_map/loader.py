"""Source Loader: fetch every configured source and normalize it into location records."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

from service_map.core.config import Settings
from service_map.core.errors import ParseError, SourceFetchError
from service_map.etl.categorize import priority_of
from service_map.etl.transform import normalize_rows, sort_by_priority
from service_map.models import LocationRecord
from service_map.vendors import geojson_files, sheets

logger = logging.getLogger(__name__)

SourceReader = Callable[[], List[Dict[str, Any]]]


def build_sources(settings: Settings) -> List[Tuple[str, SourceReader]]:
    """Named source readers in precedence order, highest-priority categories first."""
    sources: List[Tuple[str, SourceReader]] = []

    ordered_types = sorted(settings.geojson_sources, key=priority_of)
    for location_type in ordered_types:
        path = settings.geojson_sources[location_type]

        def read_geojson(path: str = path, location_type: str = location_type) -> List[Dict[str, Any]]:
            return geojson_files.parse_features(geojson_files.read_geojson(path), location_type)

        sources.append((f"geojson:{location_type}", read_geojson))

    if settings.sheet_csv_url:
        url = settings.sheet_csv_url
        sources.append(("sheet", lambda: sheets.parse_sheet_csv(sheets.fetch_sheet_csv(url))))

    if settings.embedded_csv_path:
        csv_path = settings.embedded_csv_path

        def read_embedded() -> List[Dict[str, Any]]:
            try:
                text = Path(csv_path).read_text(encoding="utf-8")
            except OSError as exc:
                raise SourceFetchError(f"cannot read {csv_path}: {exc}") from exc
            return sheets.parse_embedded_csv(text)

        sources.append(("embedded", read_embedded))

    return sources


def load_locations(settings: Settings) -> List[LocationRecord]:
    """Load all sources, concatenated in precedence order and sorted by priority.

    A source that fails to parse contributes nothing. ``SourceFetchError`` is
    raised only when no source could be fetched at all.
    """
    sources = build_sources(settings)
    if not sources:
        raise SourceFetchError("no location sources are configured")

    rows: List[Dict[str, Any]] = []
    failures: List[str] = []
    for name, read in sources:
        try:
            source_rows = read()
        except SourceFetchError as exc:
            logger.warning("Source %s failed: %s", name, exc)
            failures.append(name)
            continue
        except ParseError as exc:
            logger.warning("Source %s returned unparsable data, ignoring it: %s", name, exc)
            continue
        logger.info("Source %s returned %d rows", name, len(source_rows))
        rows.extend(source_rows)

    if len(failures) == len(sources):
        raise SourceFetchError(f"all location sources failed: {', '.join(failures)}")

    records = sort_by_priority(normalize_rows(rows))
    logger.info("Loaded %d locations from %d sources", len(records), len(sources) - len(failures))
    return records
