from __future__ import annotations

import gspread
import pytest

from makerspace import create_app


class FakeWorksheet:
    def __init__(self, title, values):
        self.title = title
        self._values = values

    def get_all_values(self):
        return [list(r) for r in self._values]


class FakeSpreadsheet:
    def __init__(self, tabs):
        self._tabs = {name: FakeWorksheet(name, values) for name, values in tabs.items()}

    def worksheet(self, name):
        try:
            return self._tabs[name]
        except KeyError:
            raise gspread.exceptions.WorksheetNotFound(name)


class _Request:
    def __init__(self, payload):
        self._payload = payload

    def execute(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeCalendar:
    """Stand-in for the Calendar API service: events().list and freebusy().query."""

    def __init__(self, events=(), busy=None, page_size=None, list_error=None):
        self._list_error = list_error
        self._events = list(events)
        self._busy = busy if busy is not None else {"calendars": {}}
        self._page_size = page_size
        self.list_calls = []
        self.freebusy_calls = []

    def events(self):
        return self

    def list(self, **kwargs):
        self.list_calls.append(kwargs)
        if self._list_error is not None:
            return _Request(self._list_error)
        start = int(kwargs.get("pageToken") or 0)
        size = self._page_size or len(self._events) or 1
        items = self._events[start : start + size]
        page = {"items": items}
        if start + size < len(self._events):
            page["nextPageToken"] = str(start + size)
        return _Request(page)

    def freebusy(self):
        return self

    def query(self, body):
        self.freebusy_calls.append(body)
        return _Request(self._busy)


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "CACHE_DIR": str(tmp_path / "cache"),
            "WARM_SCHEDULER_ENABLED": False,
            "MACHINES_SPREADSHEET_ID": "machines-sheet",
            "STAFF_SPREADSHEET_ID": "staff-sheet",
            "EDIT_HOOK_TOKEN": "",
            "ADMIN_TOKEN": "",
        }
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()
