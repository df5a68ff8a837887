"""Core data models shared by the location pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

SERVICE_EXCELLENCE = "service_excellence"
CERTIFIED_HUB = "certified_hub"
BOSCH = "bosch"
MERCEDES = "mercedes"
OTHER = "other"

KNOWN_TYPES = (SERVICE_EXCELLENCE, CERTIFIED_HUB, BOSCH, MERCEDES)
HEERO_TYPES = frozenset({SERVICE_EXCELLENCE, CERTIFIED_HUB})

# Persisted/wire field names, kept compatible with existing cache entries.
_WIRE_FIELDS = {
    "id": "id",
    "type": "type",
    "category": "category",
    "lat": "lat",
    "lng": "lng",
    "company_name": "companyName",
    "address": "address",
    "city": "city",
    "phone_number": "phoneNumber",
    "url1": "url1",
    "rating": "rating",
    "review_count": "reviewCount",
    "subcategories": "subcategories",
    "search_query": "searchQuery",
}


@dataclass(slots=True)
class LocationRecord:
    """Normalized service point with valid, non-zero coordinates and a resolved type."""

    id: str
    type: str
    lat: float
    lng: float
    category: str = ""
    company_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    phone_number: Optional[str] = None
    url1: str = ""
    rating: Optional[float] = None
    review_count: Optional[int] = None
    subcategories: List[str] = field(default_factory=list)
    search_query: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for attr, wire in _WIRE_FIELDS.items():
            value = getattr(self, attr)
            payload[wire] = list(value) if isinstance(value, list) else value
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "LocationRecord":
        """Rebuild a record from its wire form; raises ``KeyError``/``TypeError``/``ValueError`` on bad input."""
        kwargs: Dict[str, Any] = {}
        for attr, wire in _WIRE_FIELDS.items():
            if wire in payload:
                kwargs[attr] = payload[wire]
        kwargs["lat"] = float(payload["lat"])
        kwargs["lng"] = float(payload["lng"])
        kwargs["id"] = str(payload["id"])
        kwargs["type"] = str(payload["type"])
        if kwargs.get("subcategories") is None:
            kwargs["subcategories"] = []
        if kwargs.get("url1") is None:
            kwargs["url1"] = ""
        if kwargs.get("category") is None:
            kwargs["category"] = ""
        return cls(**kwargs)


@dataclass(slots=True)
class CacheEntry:
    """Persisted snapshot of the last successful load."""

    timestamp: int
    data: List[LocationRecord] = field(default_factory=list)

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        return now_ms - self.timestamp < ttl_ms

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "data": [record.to_dict() for record in self.data]}
