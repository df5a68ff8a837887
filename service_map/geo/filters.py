"""Filter state and derivation of the visible record subset."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping

from service_map.models import BOSCH, CERTIFIED_HUB, MERCEDES, OTHER, SERVICE_EXCELLENCE, LocationRecord

# Known-type flag names, as accepted by ``FilterState.update``.
TYPE_FLAGS = {
    SERVICE_EXCELLENCE: "show_service_excellence",
    CERTIFIED_HUB: "show_certified_hub",
    BOSCH: "show_bosch",
    MERCEDES: "show_mercedes",
}

_WIRE_NAMES = {
    "showServiceExcellence": "show_service_excellence",
    "showCertifiedHub": "show_certified_hub",
    "showBosch": "show_bosch",
    "showMercedes": "show_mercedes",
    "searchTerm": "search_term",
}


@dataclass(frozen=True)
class FilterState:
    show_service_excellence: bool = True
    show_certified_hub: bool = True
    show_bosch: bool = True
    show_mercedes: bool = True
    dynamic: Dict[str, bool] = field(default_factory=dict)
    search_term: str = ""

    def update(self, partial: Mapping[str, Any]) -> "FilterState":
        """Return a copy with ``partial`` applied. Accepts snake_case or camelCase keys.

        ``dynamic`` entries are merged into the existing mapping.
        """
        changes: Dict[str, Any] = {}
        for key, value in partial.items():
            name = _WIRE_NAMES.get(key, key)
            if name == "dynamic":
                if not isinstance(value, Mapping):
                    raise ValueError("dynamic must be a mapping of category to bool")
                if not all(isinstance(flag, bool) for flag in value.values()):
                    raise ValueError("dynamic category flags must be booleans")
                merged = dict(self.dynamic)
                merged.update({str(label): flag for label, flag in value.items()})
                changes["dynamic"] = merged
            elif name == "search_term":
                changes["search_term"] = "" if value is None else str(value)
            elif name in TYPE_FLAGS.values():
                if not isinstance(value, bool):
                    raise ValueError(f"{key} must be a boolean")
                changes[name] = value
            else:
                raise ValueError(f"unknown filter field: {key}")
        return replace(self, **changes)

    def with_categories(self, labels: Iterable[str]) -> "FilterState":
        """Add newly discovered categories, visible by default; existing toggles are kept."""
        new = {label: True for label in labels if label and label not in self.dynamic}
        if not new:
            return self
        return replace(self, dynamic={**self.dynamic, **new})

    def type_enabled(self, record: LocationRecord) -> bool:
        if record.type == OTHER:
            return self.dynamic.get(record.category, True)
        flag = TYPE_FLAGS.get(record.type)
        return bool(getattr(self, flag)) if flag else True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "showServiceExcellence": self.show_service_excellence,
            "showCertifiedHub": self.show_certified_hub,
            "showBosch": self.show_bosch,
            "showMercedes": self.show_mercedes,
            "dynamic": dict(self.dynamic),
            "searchTerm": self.search_term,
        }


def matches_search(record: LocationRecord, term: str) -> bool:
    term = (term or "").strip().lower()
    if not term:
        return True
    return any(term in value.lower() for value in (record.city, record.company_name, record.address) if value)


def visible(records: Iterable[LocationRecord], state: FilterState) -> List[LocationRecord]:
    """Order-preserving subset passing both the type toggles and the search term."""
    return [r for r in records if state.type_enabled(r) and matches_search(r, state.search_term)]


def category_counts(records: Iterable[LocationRecord]) -> Dict[str, int]:
    """Counts per known type plus one entry per discovered category label."""
    counts: Counter = Counter()
    for record in records:
        counts[record.category if record.type == OTHER else record.type] += 1
    return dict(counts)
