import math

from service_map.geo import placement
from service_map.geo.viewport import Viewport
from service_map.models import LocationRecord

ZURICH = (8.5417, 47.3769)
# Roughly five metres east of ZURICH.
FIVE_METRES_EAST = ZURICH[0] + 5 / (111_320 * math.cos(math.radians(ZURICH[1])))


def _record(record_id, location_type, lng, lat=ZURICH[1]):
    return LocationRecord(id=record_id, type=location_type, category=location_type, lat=lat, lng=lng)


def _viewport(zoom=15):
    return Viewport(center=ZURICH, zoom=zoom)


def test_five_metres_is_within_threshold_at_zoom_15():
    viewport = _viewport()
    a = _record("a", "bosch", ZURICH[0])
    b = _record("b", "bosch", FIVE_METRES_EAST)
    assert viewport.pixel_distance(a, b) < 40


def test_heero_and_other_groups_do_not_suppress_each_other():
    hub = _record("hub", "service_excellence", FIVE_METRES_EAST)
    van = _record("van", "mercedes", ZURICH[0])

    shown = placement.place_markers([van, hub], _viewport())

    assert [r.id for r in shown] == ["hub", "van"]


def test_same_group_keeps_first_after_sort():
    first = _record("m1", "mercedes", ZURICH[0])
    second = _record("m2", "mercedes", FIVE_METRES_EAST)

    shown = placement.place_markers([first, second], _viewport())

    assert [r.id for r in shown] == ["m1"]


def test_higher_priority_wins_within_group():
    bosch = _record("b", "bosch", ZURICH[0])
    mercedes = _record("m", "mercedes", FIVE_METRES_EAST)
    hub_a = _record("h", "certified_hub", ZURICH[0])
    hub_b = _record("s", "service_excellence", FIVE_METRES_EAST)

    shown = placement.place_markers([mercedes, hub_a, bosch, hub_b], _viewport())

    assert [r.id for r in shown] == ["s", "b"]


def test_far_apart_records_all_shown():
    a = _record("a", "bosch", ZURICH[0])
    b = _record("b", "bosch", ZURICH[0] + 0.05)
    assert len(placement.place_markers([a, b], _viewport(zoom=12))) == 2


def test_placement_is_deterministic():
    records = [_record(f"r{i}", t, ZURICH[0] + i * 1e-5) for i, t in enumerate(["mercedes", "bosch", "other", "bosch"])]
    viewport = _viewport()
    assert placement.place_markers(records, viewport) == placement.place_markers(records, viewport)


class FakeEngine:
    def __init__(self):
        self.markers = {}
        self.removed = []
        self._next = 0

    def add_marker(self, record, style):
        self._next += 1
        self.markers[self._next] = (record.id, style)
        return self._next

    def remove_marker(self, handle):
        self.removed.append(handle)
        del self.markers[handle]


def test_marker_layer_releases_handles_on_exit():
    engine = FakeEngine()
    records = [_record("a", "bosch", ZURICH[0]), _record("t", "other", ZURICH[0] + 1)]
    records[1].category = "Tyre Shop"

    with placement.MarkerLayer(engine) as layer:
        layer.replace(records, {"Tyre Shop": "#1F77B4"})
        assert len(layer) == 2
        assert engine.markers[2][1] == placement.MarkerStyle("#1F77B4", 28)
        layer.replace(records[:1])
        assert engine.removed == [1, 2]

    assert engine.markers == {}


def test_marker_placer_redraws_on_move_end():
    engine = FakeEngine()
    placer = placement.MarkerPlacer(placement.MarkerLayer(engine), _viewport(zoom=15))
    records = [_record("m1", "mercedes", ZURICH[0]), _record("m2", "mercedes", ZURICH[0] + 0.001)]

    assert [r.id for r in placer.set_visible(records)] == ["m1", "m2"]
    assert [r.id for r in placer.on_move_end(_viewport(zoom=8))] == ["m1"]
    assert len(engine.markers) == 1
