from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from datafeed.charts import build_chart, build_chart_data, check_chart_type, to_vega_spec, to_widget_data
from datafeed.clusters import ClusterMap
from datafeed.config import Settings
from datafeed.filters import (
    DEFAULT_ALIASES,
    DashboardFilters,
    Selection,
    ViewerIdentity,
    apply_dashboard_filters,
    apply_role_filter,
    resolve_column,
)
from datafeed.metrics import aggregate_metrics, metric_columns
from datafeed.metrics_dashboard import compute_dashboard
from datafeed.normalize import NormalizedSheet, normalize_rows
from datafeed.sample_data import SAMPLE_DATA_VERSION, sample_sheet
from datafeed.sheet_types import KPI_SUMMARY, SHEET_TYPES, SheetType, sheet_type_for_title
from datafeed.sheets import (
    EmptyResult,
    RangeParseError,
    SheetGateway,
    classify_error,
    resolve_sheet_title,
)


logger = logging.getLogger(__name__)

REAL_TIME = "real-time"
SAMPLE = "sample"
MOCK = "mock"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(now: datetime) -> str:
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class SheetFetch:
    sheet: NormalizedSheet
    sheet_name: str
    data_source: str
    error: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.data_source == REAL_TIME


def _read_rows(gateway: SheetGateway, settings: Settings, requested: str) -> Tuple[str, NormalizedSheet]:
    # One values call on the happy path; the sheet list is only fetched to recover a bad title.
    title = requested
    try:
        raw = gateway.get_rows(settings.spreadsheet_id, title, settings.sheet_range)
    except RangeParseError:
        sheets = gateway.list_sheets(settings.spreadsheet_id)
        resolved = resolve_sheet_title(sheets, requested)
        if resolved is None:
            raise EmptyResult("No sheets found in the spreadsheet")
        if resolved == requested:
            resolved = sheets[0].title
            if resolved == requested:
                raise
        logger.warning("Range for sheet %r could not be parsed, retrying with %r", requested, resolved)
        title = resolved
        raw = gateway.get_rows(settings.spreadsheet_id, title, settings.sheet_range)
    sheet = normalize_rows(raw)
    if sheet.empty:
        raise EmptyResult(f"No data found in sheet {title!r}")
    return title, sheet


def fetch_sheet(
    gateway: SheetGateway,
    sheet_type: SheetType,
    *,
    settings: Settings,
    sheet_name: Optional[str] = None,
) -> SheetFetch:
    """Fetch and normalize one sheet, substituting sample data on any failure.

    An empty sheet yields ``sample``; any other gateway failure yields ``mock``.
    """
    requested = (sheet_name or "").strip() or sheet_type.title
    try:
        title, sheet = _read_rows(gateway, settings, requested)
    except EmptyResult as exc:
        logger.info("Serving sample data for %s: %s", sheet_type.key, exc)
        return SheetFetch(sample_sheet(sheet_type.key), requested, SAMPLE)
    except Exception as exc:
        err = classify_error(exc)
        logger.warning("Serving mock data for %s (%s): %s", sheet_type.key, err.kind, err)
        return SheetFetch(sample_sheet(sheet_type.key), requested, MOCK, str(err))
    return SheetFetch(sheet, title, REAL_TIME)


def _filter_echo(identity: Optional[ViewerIdentity], selection: Selection) -> Dict[str, Any]:
    return {
        "role": identity.role if identity else None,
        "cluster": selection.cluster or (identity.cluster if identity else None),
        "branch": selection.branch or (identity.branch if identity else None),
    }


def _finish(payload: Dict[str, Any], fetched: SheetFetch) -> Dict[str, Any]:
    payload["dataSource"] = fetched.data_source
    if not fetched.is_live:
        payload["sampleVersion"] = SAMPLE_DATA_VERSION
    if fetched.error:
        payload["error"] = fetched.error
    return payload


def scoped_rows(
    fetched: SheetFetch,
    sheet_type: SheetType,
    identity: Optional[ViewerIdentity],
    *,
    selection: Selection,
    cluster_map: ClusterMap,
) -> List[Dict[str, Any]]:
    # Placeholder rows are served as-is so viewers always see the full fixed set.
    if not fetched.is_live:
        return list(fetched.sheet.rows)
    return apply_role_filter(
        fetched.sheet.rows,
        identity,
        cluster_map=cluster_map,
        selection=selection,
        aliases=sheet_type.aliases,
        columns=fetched.sheet.headers,
    )


def fetch_sheet_payload(
    gateway: SheetGateway,
    sheet_type: SheetType,
    identity: Optional[ViewerIdentity],
    *,
    settings: Settings,
    cluster_map: ClusterMap,
    selection: Selection = Selection(),
    sheet_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utc_now()
    fetched = fetch_sheet(gateway, sheet_type, settings=settings, sheet_name=sheet_name)
    rows = scoped_rows(fetched, sheet_type, identity, selection=selection, cluster_map=cluster_map)
    payload: Dict[str, Any] = {
        "data": rows,
        "lastUpdated": iso_timestamp(now),
        "sheetName": fetched.sheet_name,
        "filters": _filter_echo(identity, selection),
    }
    if sheet_type.metrics:
        summary = aggregate_metrics(rows, metric_columns(sheet_type.metrics))
        payload["summary"] = {key: agg.to_dict() for key, agg in summary.items()}
    return _finish(payload, fetched)


def fetch_dashboard_payload(
    gateway: SheetGateway,
    identity: Optional[ViewerIdentity],
    filters: DashboardFilters,
    *,
    settings: Settings,
    cluster_map: ClusterMap,
    sheet_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utc_now()
    fetched = fetch_sheet(gateway, KPI_SUMMARY, settings=settings, sheet_name=sheet_name)
    rows = scoped_rows(fetched, KPI_SUMMARY, identity, selection=filters.selection, cluster_map=cluster_map)
    if fetched.is_live:
        rows = apply_dashboard_filters(rows, filters, aliases=KPI_SUMMARY.aliases)
    payload = compute_dashboard(rows, filters, now=now)
    payload["lastUpdated"] = iso_timestamp(now)
    return _finish(payload, fetched)


def resolve_label_column(headers: List[str], sheet_type: SheetType, label_column: Optional[str] = None) -> str:
    """Pick the x-axis column, falling back to the branch aliases when the default is absent."""
    label = label_column or sheet_type.label_column
    if label in headers:
        return label
    return resolve_column(headers, (label,) + sheet_type.aliases.get("branch", ())) or label


def fetch_chart_payload(
    gateway: SheetGateway,
    sheet_type: SheetType,
    identity: Optional[ViewerIdentity],
    *,
    settings: Settings,
    cluster_map: ClusterMap,
    chart_type: str = "bar",
    selection: Selection = Selection(),
    label_column: Optional[str] = None,
    metric: str = "",
    sheet_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    check_chart_type(chart_type)
    series = sheet_type.chart_series(metric)
    now = now or utc_now()
    fetched = fetch_sheet(gateway, sheet_type, settings=settings, sheet_name=sheet_name)
    rows = scoped_rows(fetched, sheet_type, identity, selection=selection, cluster_map=cluster_map)
    label = resolve_label_column(fetched.sheet.headers, sheet_type, label_column)
    chart_data = build_chart_data(rows, label, series)
    payload: Dict[str, Any] = {
        "chart": chart_data.to_dict(),
        "widget": to_widget_data(chart_data, chart_type),
        "vegaLite": to_vega_spec(build_chart(chart_data, chart_type, title=sheet_type.title)),
        "lastUpdated": iso_timestamp(now),
        "sheetName": fetched.sheet_name,
    }
    return _finish(payload, fetched)


def _sample_sheets_payload(data_source: str, error: Optional[str], selection: Selection, now: datetime) -> Dict[str, Any]:
    sheets = []
    data: Dict[str, Any] = {}
    for idx, st in enumerate(SHEET_TYPES.values()):
        sample = sample_sheet(st.key)
        sheets.append({"title": st.title, "id": idx})
        data[st.title] = {"headers": sample.headers, "rows": sample.rows}
    payload: Dict[str, Any] = {
        "sheets": sheets,
        "data": data,
        "filters": {"cluster": selection.cluster, "branch": selection.branch},
        "lastUpdated": iso_timestamp(now),
        "dataSource": data_source,
        "sampleVersion": SAMPLE_DATA_VERSION,
    }
    if error:
        payload["error"] = error
    return payload


def fetch_all_sheets_payload(
    gateway: SheetGateway,
    *,
    settings: Settings,
    cluster_map: ClusterMap,
    identity: Optional[ViewerIdentity] = None,
    selection: Selection = Selection(),
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Every sheet in the spreadsheet, each role-filtered (CEO dashboard)."""
    now = now or utc_now()
    try:
        sheets = gateway.list_sheets(settings.spreadsheet_id)
    except Exception as exc:
        err = classify_error(exc)
        logger.warning("Listing sheets failed (%s), serving mock data: %s", err.kind, err)
        return _sample_sheets_payload(MOCK, str(err), selection, now)
    if not sheets:
        logger.info("Spreadsheet has no sheets, serving sample data")
        return _sample_sheets_payload(SAMPLE, None, selection, now)

    data: Dict[str, Any] = {}
    failures = 0
    total_rows = 0
    for info in sheets:
        try:
            sheet = normalize_rows(gateway.get_rows(settings.spreadsheet_id, info.title, settings.sheet_range))
        except Exception as exc:
            err = classify_error(exc)
            logger.warning("Reading sheet %r failed (%s): %s", info.title, err.kind, err)
            failures += 1
            data[info.title] = {"headers": [], "rows": [], "error": f"Failed to fetch data from sheet: {info.title} - {err}"}
            continue
        st = sheet_type_for_title(info.title)
        rows = apply_role_filter(
            sheet.rows,
            identity,
            cluster_map=cluster_map,
            selection=selection,
            aliases=st.aliases if st else DEFAULT_ALIASES,
            columns=sheet.headers,
        )
        total_rows += len(sheet.rows)
        data[info.title] = {"headers": sheet.headers, "rows": rows}

    if failures == len(sheets):
        return _sample_sheets_payload(MOCK, "Failed to fetch data from every sheet", selection, now)
    if failures == 0 and total_rows == 0:
        return _sample_sheets_payload(SAMPLE, None, selection, now)
    return {
        "sheets": [info.to_dict() for info in sheets],
        "data": data,
        "filters": {"cluster": selection.cluster, "branch": selection.branch},
        "lastUpdated": iso_timestamp(now),
        "dataSource": REAL_TIME,
    }


def list_sheets_payload(gateway: SheetGateway, *, settings: Settings, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utc_now()
    try:
        sheets = [info.to_dict() for info in gateway.list_sheets(settings.spreadsheet_id)]
    except Exception as exc:
        err = classify_error(exc)
        logger.warning("Listing sheets failed (%s): %s", err.kind, err)
        sheets = [{"title": st.title, "id": idx} for idx, st in enumerate(SHEET_TYPES.values())]
        return {"sheets": sheets, "lastUpdated": iso_timestamp(now), "dataSource": MOCK, "error": str(err)}
    return {"sheets": sheets, "lastUpdated": iso_timestamp(now), "dataSource": REAL_TIME}


def check_connection(gateway: SheetGateway, *, settings: Settings) -> Dict[str, Any]:
    missing = settings.missing_variables()
    if missing:
        return {"success": False, "message": f"Missing environment variables: {', '.join(missing)}", "missing": missing}
    try:
        sheets = gateway.list_sheets(settings.spreadsheet_id)
    except Exception as exc:
        err = classify_error(exc)
        return {"success": False, "message": f"Connection failed: {err}", "kind": err.kind, "missing": []}
    return {
        "success": True,
        "message": "Successfully connected to Google Sheets",
        "sheetNames": [info.title for info in sheets],
        "missing": [],
    }
