from __future__ import annotations

import pytest

from makerspace.integrations import machines as m
from tests.conftest import FakeSpreadsheet

BRAND = {"ok": "green", "warn": "amber", "danger": "red", "cardEdge": "grey"}

HEADER = [
    "Name", "Category", "Location", "Status", "Hazard Class", "Access",
    "Access Chips", "Tags", "Thumbnail URL", "Detail URL", "Description", "Specs",
]


def test_normalize_key():
    assert m.normalize_key("  Hazard   Class ") == "hazard_class"
    assert m.normalize_key("Thumbnail URL") == "thumbnail_url"


def test_split_to_list():
    assert m.split_to_list("wood; metal,  acrylic ,,") == ["wood", "metal", "acrylic"]
    assert m.split_to_list("") == []
    assert m.split_to_list(None) == []


@pytest.mark.parametrize(
    "status, expected",
    [
        ("Down for repair", "red"),
        ("OFFLINE", "red"),
        ("Out of Service", "red"),
        ("Restricted - staff only", "amber"),
        ("limited hours", "amber"),
        ("Available", "green"),
        ("", "green"),
    ],
)
def test_pick_status_color(status, expected):
    assert m.pick_status_color(status, BRAND) == expected


@pytest.mark.parametrize(
    "hazard, expected",
    [("3", "red"), (" 2 ", "amber"), (1, "green"), ("", "grey"), ("4", "grey")],
)
def test_pick_hazard_color(hazard, expected):
    assert m.pick_hazard_color(hazard, BRAND) == expected


def test_load_machines_shapes_rows():
    values = [
        HEADER,
        ["  Laser Cutter ", "Cutting", "Shop", "Limited", "2", "Badge", "Laser; Safety", "wood,acrylic",
         "http://img", "http://detail", " Cuts things ", "60W"],
        ["", "", "", "", "", "", "", "", "", "", "", ""],
        ["3D Printer", "Printing", "Lab", "Down", "1", "", "", "", "", "", "", ""],
    ]

    machines = m.load_machines(values, BRAND)

    assert [x["name"] for x in machines] == ["Laser Cutter", "3D Printer"]
    laser = machines[0]
    assert laser["hazard_class"] == "2"
    assert laser["access_chips"] == ["Laser", "Safety"]
    assert laser["tags"] == ["wood", "acrylic"]
    assert laser["thumbnail_url"] == "http://img"
    assert laser["detail_url"] == "http://detail"
    assert laser["description"] == "Cuts things"
    assert laser["status_color"] == "amber"
    assert laser["hazard_color"] == "amber"
    assert machines[1]["status_color"] == "red"
    assert machines[1]["tags"] == []


def test_load_machines_accepts_squashed_header_aliases():
    values = [
        ["Name", "HazardClass", "AccessChips", "ThumbnailURL", "DetailURL"],
        ["Lathe", "3", "Metal", "t.png", "d.html"],
    ]

    lathe = m.load_machines(values, BRAND)[0]

    assert lathe["hazard_class"] == "3"
    assert lathe["hazard_color"] == "red"
    assert lathe["access_chips"] == ["Metal"]
    assert lathe["thumbnail_url"] == "t.png"
    assert lathe["detail_url"] == "d.html"


def test_load_machines_keeps_extra_columns():
    values = [["Name", "Owner Team"], ["Bandsaw", "Wood shop"]]

    assert m.load_machines(values, BRAND)[0]["owner_team"] == "Wood shop"


def test_load_machines_needs_a_data_row():
    assert m.load_machines([HEADER], BRAND) == []
    assert m.load_machines([], BRAND) == []


def test_get_machines_reads_configured_tab(app, monkeypatch):
    opened = []

    def fake_open(sheet_id, credentials_json=None):
        opened.append(sheet_id)
        return FakeSpreadsheet({"Machines": [["Name", "Status"], ["Mill", "ok"]]})

    monkeypatch.setattr(m, "open_spreadsheet", fake_open)

    machines = m.get_machines(app)

    assert opened == ["machines-sheet"]
    assert machines[0]["name"] == "Mill"


def test_get_machines_missing_tab(app, monkeypatch):
    monkeypatch.setattr(m, "open_spreadsheet", lambda *a, **k: FakeSpreadsheet({}))

    with pytest.raises(ValueError, match='Sheet "Machines" not found.'):
        m.get_machines(app)


def test_get_machines_requires_sheet_id(app):
    app.config["MACHINES_SPREADSHEET_ID"] = ""

    with pytest.raises(RuntimeError):
        m.get_machines(app)
