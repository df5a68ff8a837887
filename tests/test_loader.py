import json

import pytest

from service_map import loader
from service_map.core.config import Settings
from service_map.core.errors import ParseError, SourceFetchError


def _collection(*coords):
    return {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "properties": {"Company_Name": f"P{i}"}, "geometry": {"type": "Point", "coordinates": list(c)}}
            for i, c in enumerate(coords)
        ],
    }


def _write(tmp_path, name, payload):
    path = tmp_path / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def test_geojson_sources_follow_priority_order(tmp_path):
    settings = Settings(
        geojson_sources={
            "mercedes": _write(tmp_path, "m.geojson", _collection((8.0, 47.0))),
            "bosch": _write(tmp_path, "b.geojson", _collection((8.1, 47.1), (0, 0))),
            "service_excellence": _write(tmp_path, "s.geojson", _collection((8.2, 47.2))),
        }
    )

    assert [name for name, _ in loader.build_sources(settings)] == [
        "geojson:service_excellence",
        "geojson:bosch",
        "geojson:mercedes",
    ]
    records = loader.load_locations(settings)
    assert [r.id for r in records] == [
        "service_excellence-location-0",
        "bosch-location-0",
        "mercedes-location-0",
    ]


def test_partial_failure_uses_remaining_sources(tmp_path, monkeypatch):
    settings = Settings(
        sheet_csv_url="https://sheet.example/csv",
        geojson_sources={"bosch": _write(tmp_path, "b.geojson", _collection((8.1, 47.1)))},
    )

    def fail(url):
        raise SourceFetchError("boom")

    monkeypatch.setattr(loader.sheets, "fetch_sheet_csv", fail)

    records = loader.load_locations(settings)
    assert [r.id for r in records] == ["bosch-location-0"]


def test_unparsable_source_contributes_nothing(tmp_path, monkeypatch):
    settings = Settings(
        sheet_csv_url="https://sheet.example/csv",
        geojson_sources={"bosch": _write(tmp_path, "b.geojson", _collection((8.1, 47.1)))},
    )
    monkeypatch.setattr(loader.sheets, "fetch_sheet_csv", lambda url: "text")

    def bad_parse(text):
        raise ParseError("bad csv")

    monkeypatch.setattr(loader.sheets, "parse_sheet_csv", bad_parse)

    assert len(loader.load_locations(settings)) == 1


def test_all_sources_failing_raises(tmp_path):
    settings = Settings(geojson_sources={"bosch": str(tmp_path / "missing.geojson")})
    with pytest.raises(SourceFetchError):
        loader.load_locations(settings)


def test_no_sources_configured_raises():
    with pytest.raises(SourceFetchError):
        loader.load_locations(Settings())


def test_sheet_rows_sorted_by_priority(monkeypatch):
    csv_text = (
        "Category,Name,Address,Latitude,Longitude,Website,Rating,Review Count,Phone Number,City\n"
        "Mercedes Van,M,,47.0,8.0,,,,,\n"
        "Certified HEERO Hub,H,,47.1,8.1,,,,,\n"
        "Tyre Shop,T,,47.2,8.2,,,,,\n"
    )
    monkeypatch.setattr(loader.sheets, "fetch_sheet_csv", lambda url: csv_text)

    records = loader.load_locations(Settings(sheet_csv_url="https://sheet.example/csv"))

    assert [(r.type, r.id) for r in records] == [
        ("certified_hub", "location-1"),
        ("mercedes", "location-0"),
        ("other", "location-2"),
    ]
