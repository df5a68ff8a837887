"""Stable display colours for categories discovered at load time.

Known types have fixed colours (see ``categorize.TYPE_STYLES``). Every other
category label gets the first unused colour of ``PALETTE``; once a label has a
colour it keeps it, and the mapping is persisted so it survives restarts.

When the palette runs out a random HSL colour is generated. That fallback is
non-deterministic: if the persisted map is lost, an overflow label may come
back with a different colour, and two overflow labels may collide.
"""

import json
import logging
import random
from typing import Dict, Iterable, Optional

from service_map.core.storage import KeyValueStore
from service_map.etl.categorize import reserved_colors
from service_map.models import OTHER, LocationRecord

logger = logging.getLogger(__name__)

PALETTE = (
    "#1F77B4",
    "#2CA02C",
    "#9467BD",
    "#8C564B",
    "#E377C2",
    "#17BECF",
    "#BCBD22",
    "#7F7F7F",
    "#D62728",
    "#FF7F0E",
    "#393B79",
    "#637939",
    "#843C39",
    "#7B4173",
    "#3182BD",
    "#31A354",
)


def random_fallback_color(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    hue = rng.randint(0, 359)
    return f"hsl({hue}, 65%, 50%)"


def assign_colors(
    color_map: Dict[str, str],
    labels: Iterable[str],
    rng: Optional[random.Random] = None,
) -> Dict[str, str]:
    """Return a new map with a colour for every label; existing entries are never changed."""
    updated = dict(color_map)
    used = {color.lower() for color in updated.values()} | reserved_colors()

    for label in labels:
        if not label or label in updated:
            continue
        color = next((c for c in PALETTE if c.lower() not in used), None)
        if color is None:
            color = random_fallback_color(rng)
            logger.warning("Colour palette exhausted; assigned random colour %s to %r", color, label)
        updated[label] = color
        used.add(color.lower())
    return updated


def discovered_labels(records: Iterable[LocationRecord]) -> list:
    """Distinct ``other`` category labels in first-seen order."""
    seen: Dict[str, None] = {}
    for record in records:
        if record.type == OTHER and record.category:
            seen.setdefault(record.category, None)
    return list(seen)


def load_color_map(store: KeyValueStore, key: str) -> Dict[str, str]:
    raw = store.get_item(key)
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        logger.warning("Ignoring corrupt colour map under %s: %s", key, exc)
        return {}
    if not isinstance(payload, dict):
        logger.warning("Ignoring colour map under %s: expected an object", key)
        return {}
    return {str(label): str(color) for label, color in payload.items()}


class ColorAssigner:
    """Keeps the persisted colour map in step with the categories seen so far."""

    def __init__(self, store: KeyValueStore, key: str, rng: Optional[random.Random] = None) -> None:
        self._store = store
        self._key = key
        self._rng = rng
        self.colors: Dict[str, str] = load_color_map(store, key)

    def update(self, records: Iterable[LocationRecord]) -> Dict[str, str]:
        updated = assign_colors(self.colors, discovered_labels(records), rng=self._rng)
        if updated != self.colors:
            self.colors = updated
            self._store.set_item(self._key, json.dumps(updated))
            logger.info("Colour map now holds %d discovered categories", len(updated))
        return self.colors
