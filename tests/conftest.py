# Shared pytest fixtures
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from datafeed.clusters import ClusterMap
from datafeed.config import Settings
from datafeed.sheets import RangeParseError, SheetInfo


class FakeGateway:
    """In-memory stand-in for the spreadsheet service.

    ``sheets`` maps sheet title -> raw rows (header first). ``errors`` maps a
    sheet title to the exception its read raises; ``"*"`` fails every call.
    Reading a title that is not in ``sheets`` fails like the real API does.
    """

    def __init__(self, sheets: Optional[Dict[str, List[List[str]]]] = None, errors: Optional[Dict[str, Exception]] = None):
        self.sheets = dict(sheets or {})
        self.errors = dict(errors or {})
        self.calls: List[tuple] = []

    def list_sheets(self, spreadsheet_id: str) -> List[SheetInfo]:
        self.calls.append(("list", spreadsheet_id))
        if "*" in self.errors:
            raise self.errors["*"]
        return [SheetInfo(title=title, id=idx) for idx, title in enumerate(self.sheets)]

    def get_rows(self, spreadsheet_id: str, sheet_title: str, range_: str) -> List[List[str]]:
        self.calls.append(("get", sheet_title, range_))
        for key in (sheet_title, "*"):
            if key in self.errors:
                raise self.errors[key]
        if sheet_title not in self.sheets:
            raise RangeParseError(f"Unable to parse range: '{sheet_title}'!{range_}")
        return [list(r) for r in self.sheets[sheet_title]]


@pytest.fixture()
def settings() -> Settings:
    return Settings(spreadsheet_id="sheet-123", api_key="test-key")


@pytest.fixture()
def cluster_map() -> ClusterMap:
    return ClusterMap()


@pytest.fixture()
def fixed_now() -> datetime:
    return datetime(2024, 6, 14, 9, 30, 0, tzinfo=timezone.utc)


@pytest.fixture()
def make_gateway():
    def _make(sheets=None, errors=None) -> FakeGateway:
        return FakeGateway(sheets, errors)

    return _make


@pytest.fixture()
def kpi_rows() -> List[List[str]]:
    return [
        ["Branch Name", "Cluster Name", "Branch Vintage", "Visits Target MTD", "Visits Actual MTD",
         "LOS Log Target MTD In Nos.", "LOS Log Actual MTD In Nos."],
        ["Gurugram", "Gurugram", ">6M", "100", "80", "10", "5"],
        ["Bhiwadi", "Gurugram", "<6M", "50", "50", "10", "10"],
        ["Pitampura", "Delhi", ">6M", "200", "50", "20", "4"],
        ["Yelahanka", "Karnataka", "<6M", "40", "30", "", "3"],
    ]
