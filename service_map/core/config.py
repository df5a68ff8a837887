"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when a configured value cannot be parsed."""


@dataclass(frozen=True)
class Settings:
    sheet_csv_url: str = ""
    geojson_sources: Dict[str, str] = field(default_factory=dict)
    embedded_csv_path: str = ""
    storage_dir: str = ".service_map"
    cache_key: str = "locations_cache_v1"
    cache_ttl_seconds: int = 30 * 60
    refresh_interval_seconds: int = 5 * 60
    color_map_key: str = "category_colors_v1"
    marker_min_pixel_distance: float = 40.0
    coordinate_tolerance: float = 0.001
    select_zoom: float = 12.0
    fly_duration_ms: int = 1000
    map_tiles: str = "OpenStreetMap"
    map_center: Tuple[float, float] = (47.3769, 8.5417)
    map_zoom: float = 6.0
    server_port: int = 8080


def _get_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be numeric, got {raw!r}") from exc


def parse_geojson_sources(raw: str) -> Dict[str, str]:
    """Parse ``type=path`` pairs separated by commas, e.g. ``bosch=data/bosch.geojson``."""
    sources: Dict[str, str] = {}
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        if "=" not in chunk:
            raise ConfigError(f"GEOJSON_SOURCES entry {chunk!r} must look like type=path")
        location_type, path = chunk.split("=", 1)
        sources[location_type.strip()] = path.strip()
    return sources


def _parse_center(raw: str) -> Tuple[float, float]:
    try:
        lat_raw, lng_raw = raw.split(",", 1)
        return float(lat_raw), float(lng_raw)
    except ValueError as exc:
        raise ConfigError(f"MAP_CENTER must look like 'lat,lng', got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    sheet_csv_url = os.getenv("SHEET_CSV_URL", "").strip()
    geojson_sources = parse_geojson_sources(os.getenv("GEOJSON_SOURCES", ""))
    embedded_csv_path = os.getenv("EMBEDDED_CSV_PATH", "").strip()
    center_raw = os.getenv("MAP_CENTER")
    map_center = _parse_center(center_raw) if center_raw else Settings.map_center

    if not (sheet_csv_url or geojson_sources or embedded_csv_path):
        logger.warning("No location source is configured; set SHEET_CSV_URL, GEOJSON_SOURCES or EMBEDDED_CSV_PATH.")

    return Settings(
        sheet_csv_url=sheet_csv_url,
        geojson_sources=geojson_sources,
        embedded_csv_path=embedded_csv_path,
        storage_dir=os.getenv("STORAGE_DIR", ".service_map"),
        cache_key=os.getenv("CACHE_KEY", "locations_cache_v1"),
        cache_ttl_seconds=_get_number("CACHE_TTL_SECONDS", 30 * 60, int),
        refresh_interval_seconds=_get_number("REFRESH_INTERVAL_SECONDS", 5 * 60, int),
        color_map_key=os.getenv("COLOR_MAP_KEY", "category_colors_v1"),
        marker_min_pixel_distance=_get_number("MARKER_MIN_PIXEL_DISTANCE", 40.0, float),
        coordinate_tolerance=_get_number("COORDINATE_TOLERANCE", 0.001, float),
        select_zoom=_get_number("SELECT_ZOOM", 12.0, float),
        fly_duration_ms=_get_number("FLY_DURATION_MS", 1000, int),
        map_tiles=os.getenv("MAP_TILES", "OpenStreetMap"),
        map_center=map_center,
        map_zoom=_get_number("MAP_ZOOM", 6.0, float),
        server_port=_get_number("SERVER_PORT", _get_number("PORT", 8080, int), int),
    )
