from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Sequence

import gspread
import requests
from google.auth import exceptions as google_auth_exceptions
from google.oauth2.service_account import Credentials

from datafeed.config import Settings


logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]

PERMISSION_HINT = (
    "Permission denied. Make sure the Google Sheet is publicly accessible or shared with the service account. "
    'To fix this issue: open the Google Sheet, click "Share" and set access to "Anyone with the link" can view.'
)
RANGE_HINT = "Sheet name error. The sheet name in the spreadsheet might be different."

RawRow = List[str]


class SheetsError(Exception):
    kind = "transport"

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class PermissionDenied(SheetsError):
    kind = "permission_denied"


class RangeParseError(SheetsError):
    kind = "range_parse"


class TransportFailure(SheetsError):
    kind = "transport"


class EmptyResult(SheetsError):
    kind = "empty"


@dataclass(frozen=True)
class SheetInfo:
    title: str
    id: int

    def to_dict(self) -> dict:
        return {"title": self.title, "id": self.id}


class SheetGateway(Protocol):
    """The only component that talks to the spreadsheet service."""

    def list_sheets(self, spreadsheet_id: str) -> List[SheetInfo]: ...

    def get_rows(self, spreadsheet_id: str, sheet_title: str, range_: str) -> List[RawRow]: ...


def _status_code(exc: BaseException) -> Optional[int]:
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return code
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def classify_error(exc: BaseException) -> SheetsError:
    """Map client-library exceptions onto the error kinds the pipeline handles."""
    if isinstance(exc, SheetsError):
        return exc
    message = str(exc) or type(exc).__name__
    if isinstance(exc, gspread.exceptions.WorksheetNotFound) or "Unable to parse range" in message:
        return RangeParseError(f"{RANGE_HINT} ({message})", cause=exc)
    if isinstance(exc, gspread.exceptions.SpreadsheetNotFound):
        return PermissionDenied(PERMISSION_HINT, cause=exc)
    if isinstance(exc, gspread.exceptions.APIError):
        if _status_code(exc) in (403, 404):
            return PermissionDenied(PERMISSION_HINT, cause=exc)
        return TransportFailure(f"API error: {message}", cause=exc)
    if isinstance(exc, (google_auth_exceptions.RefreshError, google_auth_exceptions.DefaultCredentialsError)):
        return PermissionDenied(f"Authentication failed: {message}", cause=exc)
    if isinstance(exc, (requests.exceptions.RequestException, google_auth_exceptions.TransportError)):
        return TransportFailure(f"Network error: {message}", cause=exc)
    return TransportFailure(f"Failed to fetch data from Google Sheets: {message}", cause=exc)


def resolve_sheet_title(sheets: Sequence[SheetInfo], requested: Optional[str]) -> Optional[str]:
    """Case-insensitive title match, falling back to the first sheet."""
    if not sheets:
        return None
    if requested:
        wanted = requested.strip().lower()
        for info in sheets:
            if info.title.lower() == wanted:
                return info.title
        logger.info("Sheet %r not found, using first sheet %r", requested, sheets[0].title)
    return sheets[0].title


def quote_range(sheet_title: str, range_: str) -> str:
    escaped = sheet_title.replace("'", "''")
    return f"'{escaped}'!{range_}"


def _as_raw_rows(values: Any) -> List[RawRow]:
    rows: List[RawRow] = []
    for row in values or []:
        rows.append(["" if cell is None else str(cell) for cell in row])
    return rows


def build_client(settings: Settings) -> gspread.Client:
    if settings.service_account_json:
        try:
            info = json.loads(settings.service_account_json)
        except json.JSONDecodeError as e:
            raise PermissionDenied("GOOGLE_SERVICE_ACCOUNT_JSON is not valid JSON", cause=e) from e
        client = gspread.authorize(Credentials.from_service_account_info(info, scopes=SCOPES))
    elif settings.service_account_file:
        client = gspread.authorize(Credentials.from_service_account_file(settings.service_account_file, scopes=SCOPES))
    elif settings.api_key:
        client = gspread.api_key(settings.api_key)
    else:
        raise PermissionDenied("No Google credentials configured (GOOGLE_API_KEY or a service account)")
    client.http_client.set_timeout(settings.request_timeout)
    return client


class GSpreadGateway:
    """:class:`SheetGateway` backed by gspread; every failure surfaces as a :class:`SheetsError`.

    Calls go straight to the HTTP client so reading a sheet costs one request
    rather than an extra metadata lookup per ``open_by_key``.
    """

    def __init__(self, settings: Settings, client: Optional[gspread.Client] = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def client(self) -> gspread.Client:
        if self._client is None:
            self._client = build_client(self.settings)
        return self._client

    def list_sheets(self, spreadsheet_id: str) -> List[SheetInfo]:
        try:
            meta = self.client.http_client.fetch_sheet_metadata(spreadsheet_id)
        except SheetsError:
            raise
        except Exception as exc:
            raise classify_error(exc) from exc
        return [
            SheetInfo(title=s["properties"]["title"], id=int(s["properties"]["sheetId"])) for s in meta.get("sheets", [])
        ]

    def get_rows(self, spreadsheet_id: str, sheet_title: str, range_: str) -> List[RawRow]:
        try:
            response = self.client.http_client.values_get(spreadsheet_id, quote_range(sheet_title, range_))
        except SheetsError:
            raise
        except Exception as exc:
            raise classify_error(exc) from exc
        return _as_raw_rows(response.get("values"))
