"""Web-Mercator viewport used to turn coordinates into screen pixels."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Tuple

from service_map.models import LocationRecord

TILE_SIZE = 512
MAX_LATITUDE = 85.051129


class Projection(Protocol):
    def project(self, lng: float, lat: float) -> Tuple[float, float]:
        ...


@dataclass(frozen=True)
class Bounds:
    west: float
    south: float
    east: float
    north: float

    @classmethod
    def around(cls, records: Iterable[LocationRecord]) -> Optional["Bounds"]:
        records = list(records)
        if not records:
            return None
        return cls(
            west=min(r.lng for r in records),
            south=min(r.lat for r in records),
            east=max(r.lng for r in records),
            north=max(r.lat for r in records),
        )


def _world_xy(lng: float, lat: float, zoom: float, tile_size: int) -> Tuple[float, float]:
    scale = tile_size * (2 ** zoom)
    lat = max(-MAX_LATITUDE, min(MAX_LATITUDE, lat))
    x = (lng + 180.0) / 360.0 * scale
    sin_lat = math.sin(math.radians(lat))
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * scale
    return x, y


def _unproject(x: float, y: float, tile_size: int) -> Tuple[float, float]:
    """Inverse of ``_world_xy`` at zoom 0, returning ``(lng, lat)``."""
    lng = x / tile_size * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / tile_size))))
    return lng, lat


@dataclass
class Viewport:
    """Camera state: ``center`` is ``(lng, lat)``, ``width``/``height`` in pixels."""

    center: Tuple[float, float]
    zoom: float
    width: int = 1024
    height: int = 768
    tile_size: int = TILE_SIZE

    def project(self, lng: float, lat: float) -> Tuple[float, float]:
        cx, cy = _world_xy(self.center[0], self.center[1], self.zoom, self.tile_size)
        x, y = _world_xy(lng, lat, self.zoom, self.tile_size)
        return x - cx + self.width / 2, y - cy + self.height / 2

    def pixel_distance(self, a: LocationRecord, b: LocationRecord) -> float:
        return pixel_distance(self, (a.lng, a.lat), (b.lng, b.lat))

    def fit_bounds(self, bounds: Bounds, padding: int = 50, max_zoom: float = 22.0) -> None:
        """Move the camera so ``bounds`` fills the viewport minus ``padding`` on every side."""
        usable_w = max(self.width - 2 * padding, 1)
        usable_h = max(self.height - 2 * padding, 1)
        x0, y0 = _world_xy(bounds.west, bounds.north, 0, self.tile_size)
        x1, y1 = _world_xy(bounds.east, bounds.south, 0, self.tile_size)
        span_x = max(abs(x1 - x0), 1e-9)
        span_y = max(abs(y1 - y0), 1e-9)
        mid_x, mid_y = (x0 + x1) / 2, (y0 + y1) / 2
        self.center = _unproject(mid_x, mid_y, self.tile_size)
        zoom = math.log2(min(usable_w / span_x, usable_h / span_y))
        self.zoom = max(0.0, min(max_zoom, zoom))


def pixel_distance(projection: Projection, lnglat_a: Tuple[float, float], lnglat_b: Tuple[float, float]) -> float:
    ax, ay = projection.project(*lnglat_a)
    bx, by = projection.project(*lnglat_b)
    return math.hypot(ax - bx, ay - by)
