"""Map free-text category labels to canonical location types."""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from service_map.models import BOSCH, CERTIFIED_HUB, HEERO_TYPES, MERCEDES, OTHER, SERVICE_EXCELLENCE

OTHER_PRIORITY = 99

PRIORITY: Dict[str, int] = {
    SERVICE_EXCELLENCE: 0,
    CERTIFIED_HUB: 1,
    BOSCH: 2,
    MERCEDES: 3,
    OTHER: OTHER_PRIORITY,
}

# Ordered: the first rule with a matching keyword wins.
CATEGORY_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (BOSCH, ("bosch",)),
    (MERCEDES, ("mercedes",)),
    (SERVICE_EXCELLENCE, ("service excellence", "heero motors excellence center")),
    (CERTIFIED_HUB, ("certified heero hub", "heero hub")),
)


@dataclass(frozen=True)
class TypeStyle:
    label: str
    color: str
    size: int
    badge_class: str


TYPE_STYLES: Dict[str, TypeStyle] = {
    SERVICE_EXCELLENCE: TypeStyle("Service Excellence Center HEERO MOTORS", "#F49D16", 48, "bg-orange-100 text-[#F49D16]"),
    CERTIFIED_HUB: TypeStyle("Certified HEERO Hubs", "#F49D16", 36, "bg-orange-100 text-[#F49D16]"),
    BOSCH: TypeStyle("Bosch Car Service", "#000000", 32, "bg-red-100 text-red-800"),
    MERCEDES: TypeStyle("Mercedes-Benz Van Service", "#FF0000", 32, "bg-gray-100 text-gray-800"),
}

OTHER_MARKER_SIZE = 28


def classify(label: Optional[str]) -> Tuple[str, int]:
    """Return ``(type, priority)`` for a raw category label, case-insensitively."""
    lowered = (label or "").lower()
    for location_type, keywords in CATEGORY_RULES:
        if any(keyword in lowered for keyword in keywords):
            return location_type, PRIORITY[location_type]
    return OTHER, OTHER_PRIORITY


def priority_of(location_type: str) -> int:
    return PRIORITY.get(location_type, OTHER_PRIORITY)


def is_heero(location_type: str) -> bool:
    return location_type in HEERO_TYPES


def display_label(location_type: str, category: str = "") -> str:
    style = TYPE_STYLES.get(location_type)
    if style is not None:
        return style.label
    return category


def reserved_colors() -> set:
    """Colours owned by the fixed categories; never handed out to discovered ones."""
    return {style.color.lower() for style in TYPE_STYLES.values()}
