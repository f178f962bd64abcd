from __future__ import annotations

from types import SimpleNamespace

import gspread
import pytest
import requests
from google.auth import exceptions as google_auth_exceptions

from datafeed.config import Settings
from datafeed.sheets import (
    EmptyResult,
    GSpreadGateway,
    PermissionDenied,
    RangeParseError,
    SheetInfo,
    TransportFailure,
    build_client,
    classify_error,
    quote_range,
    resolve_sheet_title,
)


class FakeResponse:
    def __init__(self, code: int, message: str = "boom"):
        self.status_code = code
        self.text = message
        self._payload = {"error": {"code": code, "message": message, "status": "ERR"}}

    def json(self):
        return self._payload


class FakeHttpClient:
    def __init__(self, sheets=None, values=None, error=None):
        self.sheets = sheets or []
        self.values = values
        self.error = error
        self.requests = []

    def fetch_sheet_metadata(self, key):
        self.requests.append(("metadata", key))
        if self.error is not None:
            raise self.error
        return {
            "spreadsheetId": key,
            "sheets": [{"properties": {"title": title, "sheetId": sheet_id}} for title, sheet_id in self.sheets],
        }

    def values_get(self, key, range_):
        self.requests.append(("values", range_))
        if self.error is not None:
            raise self.error
        body = {"range": range_}
        if self.values is not None:
            body["values"] = self.values
        return body


class FakeClient:
    def __init__(self, http_client):
        self.http_client = http_client

    def open_by_key(self, key):
        raise AssertionError("open_by_key costs an extra metadata request")


SHEETS = [SheetInfo("Sheet1", 0), SheetInfo("Branch Target Leads", 1)]


def test_resolve_sheet_title_is_case_insensitive():
    assert resolve_sheet_title(SHEETS, "branch target leads") == "Branch Target Leads"


def test_resolve_sheet_title_falls_back_to_first():
    assert resolve_sheet_title(SHEETS, "Missing") == "Sheet1"
    assert resolve_sheet_title(SHEETS, None) == "Sheet1"
    assert resolve_sheet_title([], "Sheet1") is None


def test_quote_range_escapes_quotes():
    assert quote_range("Bob's Sheet", "A1:Z1000") == "'Bob''s Sheet'!A1:Z1000"


@pytest.mark.parametrize(
    "exc, kind",
    [
        (gspread.exceptions.APIError(FakeResponse(403, "The caller does not have permission")), "permission_denied"),
        (gspread.exceptions.APIError(FakeResponse(500)), "transport"),
        (gspread.exceptions.APIError(FakeResponse(400, "Unable to parse range: 'X'!A1:Z1000")), "range_parse"),
        (gspread.exceptions.WorksheetNotFound("X"), "range_parse"),
        (gspread.exceptions.SpreadsheetNotFound(), "permission_denied"),
        (google_auth_exceptions.RefreshError("invalid_grant"), "permission_denied"),
        (requests.exceptions.ConnectionError("refused"), "transport"),
        (requests.exceptions.Timeout("slow"), "transport"),
        (RuntimeError("weird"), "transport"),
    ],
)
def test_classify_error(exc, kind):
    err = classify_error(exc)
    assert err.kind == kind
    assert err.cause is exc


def test_classify_error_passes_sheets_errors_through():
    err = EmptyResult("nothing")
    assert classify_error(err) is err


def test_permission_message_has_sharing_hint():
    err = classify_error(gspread.exceptions.APIError(FakeResponse(403)))
    assert isinstance(err, PermissionDenied)
    assert "Anyone with the link" in str(err)


def test_gateway_lists_and_reads(settings):
    http = FakeHttpClient(sheets=[("Sheet1", 0), ("Credit Logins", 7)], values=[["Branch", "Target"], ["Gurugram", None]])
    gateway = GSpreadGateway(settings, client=FakeClient(http))
    assert gateway.list_sheets("sheet-123") == [SheetInfo("Sheet1", 0), SheetInfo("Credit Logins", 7)]
    assert gateway.get_rows("sheet-123", "Credit Logins", "A1:Z1000") == [["Branch", "Target"], ["Gurugram", ""]]
    assert http.requests == [("metadata", "sheet-123"), ("values", "'Credit Logins'!A1:Z1000")]


def test_reading_rows_is_a_single_request(settings):
    http = FakeHttpClient(values=[["Branch"], ["Gurugram"]])
    gateway = GSpreadGateway(settings, client=FakeClient(http))
    gateway.get_rows("sheet-123", "Sheet1", "A1:Z1000")
    assert http.requests == [("values", "'Sheet1'!A1:Z1000")]


def test_gateway_handles_missing_values(settings):
    gateway = GSpreadGateway(settings, client=FakeClient(FakeHttpClient()))
    assert gateway.get_rows("sheet-123", "Sheet1", "A1:Z1000") == []
    assert gateway.list_sheets("sheet-123") == []


def test_gateway_classifies_client_errors(settings):
    gateway = GSpreadGateway(settings, client=FakeClient(FakeHttpClient(error=requests.exceptions.ConnectionError("down"))))
    with pytest.raises(TransportFailure) as info:
        gateway.list_sheets("sheet-123")
    assert isinstance(info.value.__cause__, requests.exceptions.ConnectionError)

    bad_range = gspread.exceptions.APIError(FakeResponse(400, "Unable to parse range: 'X'!A1:Z1000"))
    gateway = GSpreadGateway(settings, client=FakeClient(FakeHttpClient(error=bad_range)))
    with pytest.raises(RangeParseError):
        gateway.get_rows("sheet-123", "X", "A1:Z1000")

    missing = gspread.exceptions.APIError(FakeResponse(404, "Requested entity was not found."))
    gateway = GSpreadGateway(settings, client=FakeClient(FakeHttpClient(error=missing)))
    with pytest.raises(PermissionDenied):
        gateway.get_rows("sheet-123", "Sheet1", "A1:Z1000")


def test_build_client_requires_credentials():
    with pytest.raises(PermissionDenied):
        build_client(Settings(api_key=None))


def test_build_client_rejects_bad_service_account_json():
    with pytest.raises(PermissionDenied):
        build_client(Settings(service_account_json="{not json"))


def test_build_client_uses_api_key(monkeypatch):
    calls = {}

    class HttpClient:
        def set_timeout(self, timeout):
            calls["timeout"] = timeout

    def fake_api_key(key):
        calls["key"] = key
        return SimpleNamespace(http_client=HttpClient())

    monkeypatch.setattr(gspread, "api_key", fake_api_key)
    build_client(Settings(api_key="abc", request_timeout=3.0))
    assert calls == {"key": "abc", "timeout": 3.0}
