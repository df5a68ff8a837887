import json
import random

from service_map.core.storage import KeyValueStore
from service_map.etl import colors
from service_map.models import LocationRecord


def test_new_label_gets_first_unused_palette_color():
    updated = colors.assign_colors({}, ["Tyre Shop"])
    assert updated == {"Tyre Shop": colors.PALETTE[0]}


def test_existing_colors_are_never_reassigned():
    current = {"Tyre Shop": colors.PALETTE[3]}
    first = colors.assign_colors(current, ["Tyre Shop", "Car Wash"])
    second = colors.assign_colors(first, ["Car Wash", "Tyre Shop", "Detailing"])

    assert first["Tyre Shop"] == colors.PALETTE[3]
    assert second["Tyre Shop"] == colors.PALETTE[3]
    assert second["Car Wash"] == first["Car Wash"] == colors.PALETTE[0]
    assert current == {"Tyre Shop": colors.PALETTE[3]}


def test_palette_colors_are_unique_until_exhausted():
    labels = [f"cat-{i}" for i in range(len(colors.PALETTE))]
    updated = colors.assign_colors({}, labels)
    assert len(set(updated.values())) == len(colors.PALETTE)
    assert not set(c.lower() for c in updated.values()) & {"#f49d16", "#000000", "#ff0000"}


def test_exhausted_palette_uses_random_hsl_fallback():
    labels = [f"cat-{i}" for i in range(len(colors.PALETTE) + 1)]
    updated = colors.assign_colors({}, labels, rng=random.Random(7))
    assert updated[labels[-1]].startswith("hsl(")


def test_color_assigner_persists_changes(tmp_path):
    store = KeyValueStore(str(tmp_path))
    records = [
        LocationRecord(id="1", type="other", category="Tyre Shop", lat=47.0, lng=8.0),
        LocationRecord(id="2", type="bosch", category="Bosch", lat=47.1, lng=8.1),
    ]

    assigner = colors.ColorAssigner(store, "colors")
    assert assigner.update(records) == {"Tyre Shop": colors.PALETTE[0]}
    assert json.loads(store.get_item("colors")) == {"Tyre Shop": colors.PALETTE[0]}

    reloaded = colors.ColorAssigner(store, "colors")
    assert reloaded.colors == {"Tyre Shop": colors.PALETTE[0]}


def test_corrupt_color_map_is_ignored(tmp_path):
    store = KeyValueStore(str(tmp_path))
    store.set_item("colors", "[1, 2")
    assert colors.load_color_map(store, "colors") == {}
