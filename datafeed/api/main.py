from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Literal, Optional

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from datafeed.api.schemas import ClusterMapResponse, UserCreateModel, UserListResponse, UserPublicModel, UserResponse
from datafeed.clusters import ClusterMap, load_cluster_map
from datafeed.config import NO_CACHE_HEADERS, Settings, configure_logging, load_settings
from datafeed.filters import InvalidViewerError, normalize_filters, normalize_identity, selection_for
from datafeed.pipeline import (
    check_connection,
    fetch_all_sheets_payload,
    fetch_chart_payload,
    fetch_dashboard_payload,
    fetch_sheet_payload,
    list_sheets_payload,
)
from datafeed.sheet_types import (
    BRANCH_DISBURSEMENT,
    BRANCH_TARGET_LEADS,
    CREDIT_LOGINS,
    GREEN_AMBER_LEADS,
    SheetType,
    get_sheet_type,
)
from datafeed.sheets import GSpreadGateway, SheetGateway
from datafeed.users import (
    DuplicateEmployeeIdError,
    InMemoryUserStore,
    JsonFileUserStore,
    UserNotFoundError,
    UserStore,
    UserValidationError,
    create_user,
)


configure_logging(load_settings().log_level)

app = FastAPI(title="DataFeed Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(load_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def disable_caching(request: Request, call_next):
    response = await call_next(request)
    for key, value in NO_CACHE_HEADERS.items():
        response.headers[key] = value
    return response


def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def _cluster_map() -> ClusterMap:
    return load_cluster_map(load_settings().cluster_map_path)


def get_cluster_map() -> ClusterMap:
    return _cluster_map()


def get_gateway(settings: Settings = Depends(get_settings)) -> SheetGateway:
    return GSpreadGateway(settings)


@lru_cache(maxsize=1)
def _user_store() -> UserStore:
    path = load_settings().users_path
    return JsonFileUserStore(path) if path else InMemoryUserStore()


def get_user_store() -> UserStore:
    return _user_store()


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _sheet_endpoint(
    sheet_type: SheetType,
    role: Optional[str],
    cluster: Optional[str],
    branch: Optional[str],
    sheet_name: Optional[str],
    gateway: SheetGateway,
    settings: Settings,
    cluster_map: ClusterMap,
) -> JSONResponse:
    try:
        identity = normalize_identity(role, cluster, branch)
        selection = selection_for(identity, cluster, branch)
    except InvalidViewerError as exc:
        return _error(exc, 400)
    try:
        payload = fetch_sheet_payload(
            gateway,
            sheet_type,
            identity,
            settings=settings,
            cluster_map=cluster_map,
            selection=selection,
            sheet_name=sheet_name,
        )
        return _json(payload)
    except Exception as exc:
        logger.exception("%s failed", sheet_type.key)
        return _error(exc, 500)


@app.get("/branch-target-leads")
def branch_target_leads(
    role: Optional[str] = Query(default=None),
    cluster: Optional[str] = Query(default=None),
    branch: Optional[str] = Query(default=None),
    sheet_name: Optional[str] = Query(default=None, alias="sheetName"),
    gateway: SheetGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
    cluster_map: ClusterMap = Depends(get_cluster_map),
):
    return _sheet_endpoint(BRANCH_TARGET_LEADS, role, cluster, branch, sheet_name, gateway, settings, cluster_map)


@app.get("/branch-disbursement-data")
def branch_disbursement_data(
    role: Optional[str] = Query(default=None),
    cluster: Optional[str] = Query(default=None),
    branch: Optional[str] = Query(default=None),
    sheet_name: Optional[str] = Query(default=None, alias="sheetName"),
    gateway: SheetGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
    cluster_map: ClusterMap = Depends(get_cluster_map),
):
    return _sheet_endpoint(BRANCH_DISBURSEMENT, role, cluster, branch, sheet_name, gateway, settings, cluster_map)


@app.get("/green-amber-leads-data")
def green_amber_leads_data(
    role: Optional[str] = Query(default=None),
    cluster: Optional[str] = Query(default=None),
    branch: Optional[str] = Query(default=None),
    sheet_name: Optional[str] = Query(default=None, alias="sheetName"),
    gateway: SheetGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
    cluster_map: ClusterMap = Depends(get_cluster_map),
):
    return _sheet_endpoint(GREEN_AMBER_LEADS, role, cluster, branch, sheet_name, gateway, settings, cluster_map)


@app.get("/credit-logins")
def credit_logins(
    role: Optional[str] = Query(default=None),
    cluster: Optional[str] = Query(default=None),
    branch: Optional[str] = Query(default=None),
    sheet_name: Optional[str] = Query(default=None, alias="sheetName"),
    gateway: SheetGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
    cluster_map: ClusterMap = Depends(get_cluster_map),
):
    return _sheet_endpoint(CREDIT_LOGINS, role, cluster, branch, sheet_name, gateway, settings, cluster_map)


@app.get("/dashboard-data")
def dashboard_data(
    role: Optional[str] = Query(default=None),
    cluster: Optional[str] = Query(default=None),
    branch: Optional[str] = Query(default=None),
    region: str = Query(default="All"),
    branch_age: str = Query(default="All", alias="branchAge"),
    time_frame: str = Query(default="MTD", alias="timeFrame"),
    sheet_name: Optional[str] = Query(default=None, alias="sheetName"),
    gateway: SheetGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
    cluster_map: ClusterMap = Depends(get_cluster_map),
):
    try:
        identity = normalize_identity(role, cluster, branch)
        filters = normalize_filters(
            {
                "region": region,
                "branch_age": branch_age,
                "time_frame": time_frame,
                "selection": selection_for(identity, cluster, branch),
            }
        )
    except InvalidViewerError as exc:
        return _error(exc, 400)
    try:
        payload = fetch_dashboard_payload(
            gateway, identity, filters, settings=settings, cluster_map=cluster_map, sheet_name=sheet_name
        )
        return _json(payload)
    except Exception as exc:
        logger.exception("dashboard_data failed")
        return _error(exc, 500)


@app.get("/ceo-dashboard-data")
def ceo_dashboard_data(
    role: Optional[str] = Query(default=None),
    cluster: Optional[str] = Query(default=None),
    branch: Optional[str] = Query(default=None),
    gateway: SheetGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
    cluster_map: ClusterMap = Depends(get_cluster_map),
):
    try:
        identity = normalize_identity(role, cluster, branch)
        selection = selection_for(identity, cluster, branch)
    except InvalidViewerError as exc:
        return _error(exc, 400)
    try:
        payload = fetch_all_sheets_payload(
            gateway, settings=settings, cluster_map=cluster_map, identity=identity, selection=selection
        )
        return _json(payload)
    except Exception as exc:
        logger.exception("ceo_dashboard_data failed")
        return _error(exc, 500)


@app.get("/charts/{sheet_type}")
def chart_data(
    sheet_type: str,
    role: Optional[str] = Query(default=None),
    cluster: Optional[str] = Query(default=None),
    branch: Optional[str] = Query(default=None),
    sheet_name: Optional[str] = Query(default=None, alias="sheetName"),
    chart_type: Literal["bar", "line", "pie"] = Query(default="bar", alias="type"),
    label: Optional[str] = Query(default=None),
    metric: str = Query(default=""),
    gateway: SheetGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
    cluster_map: ClusterMap = Depends(get_cluster_map),
):
    try:
        st = get_sheet_type(sheet_type)
        identity = normalize_identity(role, cluster, branch)
        selection = selection_for(identity, cluster, branch)
        if metric:
            st.metric(metric)
    except (ValueError, KeyError) as exc:
        return _error(exc, 400)
    try:
        payload = fetch_chart_payload(
            gateway,
            st,
            identity,
            settings=settings,
            cluster_map=cluster_map,
            chart_type=chart_type,
            selection=selection,
            label_column=label,
            metric=metric,
            sheet_name=sheet_name,
        )
        return _json(payload)
    except Exception as exc:
        logger.exception("chart_data failed")
        return _error(exc, 500)


@app.get("/branch-clusters")
def branch_clusters(cluster_map: ClusterMap = Depends(get_cluster_map)):
    return _json(ClusterMapResponse(clusters=cluster_map.to_dict()).model_dump())


@app.get("/meta/sheets")
def meta_sheets(gateway: SheetGateway = Depends(get_gateway), settings: Settings = Depends(get_settings)):
    try:
        return _json(list_sheets_payload(gateway, settings=settings))
    except Exception as exc:
        logger.exception("meta_sheets failed")
        return _error(exc, 500)


@app.get("/meta/connection")
def meta_connection(gateway: SheetGateway = Depends(get_gateway), settings: Settings = Depends(get_settings)):
    return _json(check_connection(gateway, settings=settings))


@app.get("/users")
def list_users(store: UserStore = Depends(get_user_store)):
    users = [UserPublicModel(**u.public()) for u in store.list()]
    return _json(UserListResponse(users=users).model_dump())


@app.post("/users")
def post_user(body: UserCreateModel, store: UserStore = Depends(get_user_store)):
    try:
        user = create_user(store, body.model_dump())
    except UserValidationError as exc:
        return JSONResponse(status_code=400, content={"success": False, "message": str(exc)})
    except DuplicateEmployeeIdError as exc:
        return JSONResponse(status_code=409, content={"success": False, "message": str(exc)})
    response = UserResponse(message="User created successfully", user=UserPublicModel(**user.public()))
    return _json(response.model_dump(), status_code=201)


@app.delete("/users")
def delete_user(user_id: str = Query(default="", alias="id"), store: UserStore = Depends(get_user_store)):
    if not user_id:
        return JSONResponse(status_code=400, content={"success": False, "error": "User ID is required"})
    try:
        store.delete(user_id)
    except UserNotFoundError as exc:
        return JSONResponse(status_code=404, content={"success": False, "error": str(exc)})
    return _json({"success": True, "message": "User deleted successfully"})


@app.get("/users/check-employee-id")
def check_employee_id(employee_id: str = Query(default="", alias="employeeId"), store: UserStore = Depends(get_user_store)):
    if not employee_id:
        return JSONResponse(status_code=400, content={"success": False, "error": "Employee ID is required"})
    user = store.find(employee_id)
    if user is None:
        return JSONResponse(status_code=404, content={"success": False, "error": "User not found"})
    return _json({"success": True, "user": UserPublicModel(**user.public()).model_dump()})
