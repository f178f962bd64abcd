import altair as alt
import pandas as pd
import streamlit as st
from contextlib import contextmanager
from typing import Dict, List, Optional

from datafeed.charts import build_chart, build_chart_data, from_mapping
from datafeed.clusters import ALL_BRANCHES, ALL_CLUSTERS, load_cluster_map
from datafeed.config import configure_logging, load_settings
from datafeed.filters import (
    BRANCH_AGES,
    REGIONS,
    ROLE_BRANCH,
    ROLE_CEO,
    ROLE_CLUSTER,
    TIME_FRAMES,
    VIEWER_ROLES,
    normalize_filters,
    selection_for,
)
from datafeed.pipeline import MOCK, SAMPLE, fetch_dashboard_payload, fetch_sheet_payload, resolve_label_column
from datafeed.sheet_types import SHEET_TYPES
from datafeed.sheets import GSpreadGateway
from datafeed.users import (
    DuplicateEmployeeIdError,
    InMemoryUserStore,
    JsonFileUserStore,
    UserNotFoundError,
    UserValidationError,
    authenticate,
    create_user,
    identity_for,
)

alt.data_transformers.disable_max_rows()
configure_logging(load_settings().log_level)


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def format_scope_chips(payload: Dict) -> str:
    scope = payload.get("filters") or {}
    chips = [
        f"Role: {scope.get('role') or 'Any'}",
        f"Cluster: {scope.get('cluster') or scope.get('userCluster') or 'All'}",
        f"Branch: {scope.get('branch') or scope.get('userBranch') or 'All'}",
        f"Source: {payload.get('dataSource', 'unknown')}",
    ]
    return "".join(f"<span class='chip'>{txt}</span>" for txt in chips)


def render_page_header(title: str, breadcrumb: str, payload: Dict, export_df: Optional[pd.DataFrame] = None):
    inject_base_styles()
    c1, c2 = st.columns([7, 3])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        btn_cols = st.columns(2)
        if btn_cols[0].button("Refresh"):
            st.rerun()
        if export_df is not None and not export_df.empty:
            btn_cols[1].download_button(
                "Export CSV",
                data=export_df.to_csv(index=False).encode("utf-8"),
                file_name=f"{title.lower().replace(' ', '_')}.csv",
                mime="text/csv",
            )
    st.markdown(f"<div class='chip-row'>{format_scope_chips(payload)}</div>", unsafe_allow_html=True)
    render_source_banner(payload)


def render_source_banner(payload: Dict):
    source = payload.get("dataSource")
    if source == MOCK:
        st.warning(f"Google Sheets is unavailable, showing sample data (v{payload.get('sampleVersion')}). {payload.get('error', '')}")
    elif source == SAMPLE:
        st.info(f"The sheet has no rows yet, showing sample data (v{payload.get('sampleVersion')}).")


def render_kpi_tiles(summary: Dict[str, Dict[str, float]], labels: Dict[str, str]):
    if not summary:
        return
    cols = st.columns(len(summary))
    for col, (key, agg) in zip(cols, summary.items()):
        col.metric(
            labels.get(key, key),
            f"{agg['actual']:,.0f} / {agg['target']:,.0f}",
            delta=f"{agg['achievement']:.1f}% achieved",
            delta_color="off",
        )


# ---------- Shared resources ----------
@st.cache_resource
def get_gateway():
    return GSpreadGateway(load_settings())


@st.cache_resource
def get_cluster_map():
    return load_cluster_map(load_settings().cluster_map_path)


@st.cache_resource
def get_user_store():
    path = load_settings().users_path
    return JsonFileUserStore(path) if path else InMemoryUserStore()


# ---------- Sign-in ----------
st.set_page_config(page_title="DataFeed KPI Dashboard", layout="wide")
inject_base_styles()

store = get_user_store()
if "user" not in st.session_state:
    st.title("DataFeed KPI Dashboard")
    with st.form("sign_in"):
        employee_id = st.text_input("Employee ID")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in")
    if submitted:
        user = authenticate(store, employee_id, password)
        if user is None:
            st.error("Invalid employee ID or password.")
        else:
            st.session_state["user"] = user
            st.rerun()
    st.stop()

user = st.session_state["user"]
identity = identity_for(user)
settings = load_settings()
gateway = get_gateway()
cluster_map = get_cluster_map()

# ----- Sidebar: navigation + filters -----
with st.sidebar:
    st.markdown(f"**{user.name}**  \n{user.role}")
    if st.button("Sign out"):
        st.session_state.pop("user", None)
        st.rerun()

    st.markdown("### Navigate")
    pages = ["Dashboard", "Sheets"]
    if user.role == ROLE_CEO:
        pages.append("Users")
    nav_choice = st.radio("Navigate", pages, index=0)

    st.markdown("---")
    st.markdown("### Quick filters")
    cluster_choice: Optional[str] = None
    branch_choice: Optional[str] = None
    if identity.role == ROLE_CEO:
        cluster_choice = st.selectbox("Cluster", [ALL_CLUSTERS] + cluster_map.names())
        branch_options = cluster_map.branches_for(cluster_choice) if cluster_choice != ALL_CLUSTERS else cluster_map.all_branches()
        branch_choice = st.selectbox("Branch", [ALL_BRANCHES] + list(branch_options))
    elif identity.role == ROLE_CLUSTER:
        branch_choice = st.selectbox("Branch", [ALL_BRANCHES] + list(cluster_map.branches_for(identity.cluster)))
    region = st.selectbox("Region", REGIONS)
    branch_age = st.selectbox("Branch vintage", BRANCH_AGES)
    time_frame = st.radio("Time frame", TIME_FRAMES, horizontal=True)

selection = selection_for(identity, cluster_choice, branch_choice)


def render_dashboard():
    filters = normalize_filters(
        {"region": region, "branch_age": branch_age, "time_frame": time_frame, "selection": selection}
    )
    payload = fetch_dashboard_payload(gateway, identity, filters, settings=settings, cluster_map=cluster_map)
    render_page_header("KPI Dashboard", f"Home / {payload['dateInfo']['formattedDate']}", payload)

    labels = {m.key: m.label for m in SHEET_TYPES["kpi_summary"].metrics}
    render_kpi_tiles(payload["kpis"], labels)

    perf = payload["performanceData"]
    left, right = st.columns(2)
    with left:
        with card("Cluster achievement"):
            if perf["labels"]:
                chart = from_mapping(perf["labels"], {s["name"]: s["values"] for s in perf["series"]})
                st.altair_chart(build_chart(chart, "bar"), use_container_width=True)
            else:
                st.info("No cluster column in the KPI sheet.")
    with right:
        with card("Cluster performance"):
            rows: List[Dict] = []
            for cluster, per_metric in payload["clusterPerformance"].items():
                row = {"Cluster": cluster}
                row.update({labels.get(k, k): v["achievement"] for k, v in per_metric.items()})
                rows.append(row)
            st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


def render_sheets():
    sheet_key = st.selectbox(
        "Sheet", list(SHEET_TYPES), format_func=lambda key: SHEET_TYPES[key].title.replace("Sheet1", "KPI Summary")
    )
    sheet_type = SHEET_TYPES[sheet_key]
    payload = fetch_sheet_payload(
        gateway, sheet_type, identity, settings=settings, cluster_map=cluster_map, selection=selection
    )
    table = pd.DataFrame(payload["data"])
    render_page_header(sheet_type.title, f"Sheets / {payload['sheetName']}", payload, export_df=table)

    if payload.get("summary"):
        render_kpi_tiles(payload["summary"], {m.key: m.label for m in sheet_type.metrics})

    chart_type = st.radio("Chart", ["bar", "line", "pie"], horizontal=True)
    series = sheet_type.chart_series()
    if series and not table.empty:
        label = resolve_label_column(list(table.columns), sheet_type)
        chart = build_chart_data(payload["data"], label, series)
        with card(f"{sheet_type.title} chart"):
            st.altair_chart(build_chart(chart, chart_type, title=sheet_type.title), use_container_width=True)
    with card("Rows"):
        if table.empty:
            st.info("No rows visible for your scope.")
        else:
            st.dataframe(table, use_container_width=True, hide_index=True)


def render_users():
    render_page_header("Users", "Admin / Users", {"dataSource": "local", "filters": {"role": user.role}})
    users = store.list()
    st.dataframe(pd.DataFrame([u.public() for u in users]), use_container_width=True, hide_index=True)

    with card("Create user"):
        with st.form("create_user", clear_on_submit=True):
            c1, c2 = st.columns(2)
            name = c1.text_input("Name")
            email = c2.text_input("Email")
            employee_id = c1.text_input("Employee ID")
            password = c2.text_input("Password", type="password")
            roles = st.multiselect("Roles", VIEWER_ROLES, default=[ROLE_BRANCH])
            clusters = st.multiselect("Clusters", cluster_map.names())
            branches = st.multiselect("Branches", cluster_map.all_branches())
            submitted = st.form_submit_button("Create")
        if submitted:
            payload = {
                "name": name,
                "email": email,
                "employeeId": employee_id,
                "password": password,
                "role": roles[0] if roles else "",
                "roles": roles,
                "cluster": clusters,
                "branch": branches,
            }
            try:
                created = create_user(store, payload)
            except (UserValidationError, DuplicateEmployeeIdError) as exc:
                st.error(str(exc))
            else:
                st.success(f"Created {created.name} ({created.employeeId}).")

    with card("Delete user"):
        options = {f"{u.name} ({u.employeeId})": u.id for u in users if u.id != user.id}
        choice = st.selectbox("User", list(options) or ["-"])
        if st.button("Delete", disabled=not options):
            try:
                store.delete(options[choice])
            except UserNotFoundError as exc:
                st.error(str(exc))
            else:
                st.rerun()


if nav_choice == "Dashboard":
    render_dashboard()
elif nav_choice == "Sheets":
    render_sheets()
else:
    render_users()
