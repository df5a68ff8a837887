import pytest
import requests

from service_map.core.errors import ParseError, SourceFetchError
from service_map.etl.transform import normalize_rows
from service_map.vendors import sheets

SHEET_CSV = (
    "Category,Name,Address,Latitude,Longitude,Website,Rating,Review Count,Subcategories,Phone Number,City\n"
    "Bosch Car Service,Garage A,Street 1,47.1,8.1,https://a.example,4.6,12,,+41 1,Bern\n"
    "Tyre Shop,Garage B,Street 2,,,,,,,,Basel\n"
    "Mercedes-Benz Van,Garage C,\"Street 3, Floor 2\",46.2,7.2,,,,\"Vans,Trucks\",,Sion\n"
)


class DummyResponse:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text
        self.encoding = "utf-8"

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class DummySession:
    def __init__(self):
        self.calls = []
        self.response = DummyResponse()

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


@pytest.fixture
def patch_session(monkeypatch):
    session = DummySession()
    monkeypatch.setattr(sheets, "_SESSION", session)
    return session


def test_fetch_sheet_csv_success(patch_session):
    patch_session.response = DummyResponse(text=SHEET_CSV)
    assert sheets.fetch_sheet_csv("https://sheet.example/csv") == SHEET_CSV
    assert patch_session.calls == [("https://sheet.example/csv", 10)]


def test_fetch_sheet_csv_http_error(patch_session):
    patch_session.response = DummyResponse(status_code=500)
    with pytest.raises(SourceFetchError):
        sheets.fetch_sheet_csv("https://sheet.example/csv")


def test_fetch_sheet_csv_network_error(patch_session):
    patch_session.response = requests.ConnectionError("down")
    with pytest.raises(SourceFetchError):
        sheets.fetch_sheet_csv("https://sheet.example/csv")


def test_parse_sheet_csv_skips_rows_without_coordinates():
    rows = sheets.parse_sheet_csv(SHEET_CSV)

    assert [row["id"] for row in rows] == ["location-0", "location-1"]
    assert rows[1]["address"] == "Street 3, Floor 2"
    assert rows[1]["subcategories"] == "Vans,Trucks"


def test_parse_sheet_csv_requires_coordinate_columns():
    with pytest.raises(ParseError):
        sheets.parse_sheet_csv("Category,Name\nBosch,Garage\n")
    assert sheets.parse_sheet_csv("") == []


def test_embedded_row_end_to_end():
    raws = sheets.parse_embedded_csv("Zurich,,Bahnhofstrasse 1,47.3769,8.5417,,,,,Bosch Service,555-1234")
    records = normalize_rows(raws)

    assert len(records) == 1
    record = records[0]
    assert record.type == "bosch"
    assert record.lat == 47.3769
    assert record.lng == 8.5417
    assert record.company_name == "Bosch Service"
    assert record.phone_number == "555-1234"
    assert record.city == "Zurich"


def test_embedded_csv_accepts_quoted_coordinate_pair():
    raws = sheets.parse_embedded_csv('Geneva,,Rue 2,"46.2044, 6.1432",,Mercedes Van,,,,Garage M,\n,,,,,,,,,,\n')
    records = normalize_rows(raws)

    assert [(r.type, r.lat, r.lng) for r in records] == [("mercedes", 46.2044, 6.1432)]
