from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from evpm.backend import BackendError, ScriptBackend, SessionExpiredError
from evpm.charts import PACING_COLORS
from evpm.config import get_settings
from evpm.constants import FILTER_LABELS, METRICS
from evpm.data import format_number, format_percent, ingest_snapshot, prepare_context
from evpm.filters import DEBT_METRICS, FilterState
from evpm.hierarchy import DrillDown
from evpm.log import setup_logging
from evpm.metrics_daily import compute_daily
from evpm.metrics_debt import compute_debt
from evpm.metrics_debug import compute_debug
from evpm.metrics_overview import compute_overview
from evpm.metrics_performance import compute_performance
from evpm.session import METADATA_LISTS, Role, scope_for_user
from evpm.store import AppStateStore, build_invite_link, consume_invite
from evpm.sync import SyncCoordinator
from evpm.uploads import read_sheet, upload

settings = get_settings()
setup_logging(settings.log_level)


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .greeting {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .card-actions {font-size: 0.9rem;color: #2563eb;}
        .kpi {border-left: 6px solid #e5e7eb;border-radius: 10px;padding: 10px 12px;background: #f9fafb;margin-bottom: 8px;}
        .kpi .label {font-size: 0.8rem;color: #6b7280;font-weight: 600;}
        .kpi .value {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .kpi .sub {font-size: 0.8rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str, actions: Optional[str] = None):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header">
            <div class="card-title">{title}</div>
            <div class="card-actions">{actions or ""}</div>
          </div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def show_chart(payload: Dict[str, Any], name: str, empty_msg: str = "No data for the current filters."):
    spec = (payload.get("charts") or {}).get(name)
    if spec:
        st.vega_lite_chart(spec, use_container_width=True)
    else:
        st.info(empty_msg)


def kpi_tile(kpi: Dict[str, Any]):
    color = PACING_COLORS.get(kpi["status"], "#e5e7eb")
    st.markdown(
        f"""
        <div class="kpi" style="border-left-color:{color};">
          <div class="label">{kpi['metric']}</div>
          <div class="value">{format_percent(kpi['ach_pct'])}</div>
          <div class="sub">Ach {kpi['actual_display']} / Plan {kpi['plan_display']}</div>
          <div class="sub">Target {format_percent(kpi['target_pct'], 0)}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


# ---------- session state ----------
def get_store() -> AppStateStore:
    if "store" not in st.session_state:
        st.session_state["store"] = AppStateStore(settings.state_dir)
    return st.session_state["store"]


def get_coordinator(store: AppStateStore) -> SyncCoordinator:
    if "coordinator" not in st.session_state:
        st.session_state["coordinator"] = SyncCoordinator(store)
    return st.session_state["coordinator"]


def run_sync(coordinator: SyncCoordinator) -> None:
    try:
        with st.spinner("Secure sync..."):
            result = coordinator.sync_data()
    except SessionExpiredError:
        st.session_state["session_expired"] = True
        reset_filter_widgets()
        st.session_state.pop("filter_state", None)
        st.rerun()
        return
    if result.skipped:
        st.toast("A sync is already running.")
    elif not result.ok:
        st.warning(f"Sync failed, showing cached data. {result.error or ''}")
    elif not result.cached:
        st.warning("Data synced but could not be saved locally; it will be re-fetched next time.")


@st.cache_data(show_spinner=False)
def snapshot_context(last_updated: str, username: str, _data: Dict[str, Any]) -> Dict[str, Any]:
    return ingest_snapshot(_data)


def reset_filter_widgets():
    for key in list(st.session_state.keys()):
        if str(key).startswith("flt_"):
            del st.session_state[key]


# ---------- screens ----------
def render_setup(store: AppStateStore):
    st.title(settings.app_name)
    st.subheader("Connect to your data backend")
    url = st.text_input("Backend script URL", value=store.sync_url, placeholder="https://script.google.com/macros/s/.../exec")
    if st.button("Save", type="primary"):
        if not url.strip():
            st.error("Enter the backend URL shared by your administrator.")
        else:
            store.set_sync_url(url)
            st.rerun()


def render_login(store: AppStateStore, coordinator: SyncCoordinator):
    st.title(settings.app_name)
    if st.session_state.pop("session_expired", False):
        st.error("Your session has expired. Please log in again.")

    if store.metadata is None and not st.session_state.get("_metadata_tried"):
        st.session_state["_metadata_tried"] = True
        with st.spinner("Loading directory..."):
            coordinator.sync_metadata()

    roles = list(Role)
    role = st.selectbox("Role", roles, format_func=lambda r: r.label)
    identity = ""
    if role is not Role.ADMIN:
        names: List[str] = list((store.metadata or {}).get(METADATA_LISTS.get(role, ""), []) or [])
        if names:
            identity = st.selectbox("Select name / branch / code", names, index=None, placeholder="Search...") or ""
        else:
            identity = st.text_input("Name / branch / code")
    password = st.text_input("Password", type="password")

    if st.button("Login", type="primary"):
        try:
            with st.spinner("Signing in..."):
                coordinator.login(role, identity, password)
        except (BackendError, ValueError) as exc:
            st.error(str(exc))
            return
        st.session_state.pop("filter_state", None)
        reset_filter_widgets()
        run_sync(coordinator)
        st.rerun()

    with st.expander("Backend"):
        st.caption(store.sync_url)
        if st.button("Change backend URL"):
            store.set_sync_url("")
            st.rerun()


def render_header(store: AppStateStore, coordinator: SyncCoordinator):
    user = store.user
    c1, c2, c3 = st.columns([6, 2, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='greeting'>Welcome back</div><div class='page-title'>{user.display_name}</div>"
            f"<div class='greeting'>{user.job_title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if st.button("Refresh"):
            run_sync(coordinator)
            st.rerun()
        if store.last_updated:
            st.caption(f"Synced {store.last_updated[:16].replace('T', ' ')}")
    with c3:
        if st.button("Logout"):
            coordinator.logout()
            st.session_state.pop("filter_state", None)
            reset_filter_widgets()
            st.rerun()


def render_sidebar(state: FilterState, dates: List[str]):
    with st.sidebar:
        st.markdown("### Filters")
        for key, value in state.scope.items():
            if key in FILTER_LABELS:
                st.text_input(FILTER_LABELS[key], value=value, disabled=True, key=f"pinned_{key}")
        for key in state.editable_keys:
            options = state.options_for(key)
            current = [v for v in state.selection.get(key, []) if v in options]
            chosen = st.multiselect(FILTER_LABELS.get(key, key), options=options, default=current, key=f"flt_{key}")
            state.set_filter(key, chosen)

        day = st.date_input("Date", value=date.fromisoformat(state.selected_date), key="flt_date")
        state.set_date(day.isoformat())
        if dates and state.selected_date not in dates:
            st.caption(f"Latest data: {dates[-1]}")

        if st.button("Clear all"):
            state.clear_all()
            reset_filter_widgets()
            st.rerun()


def render_dashboard_page(filters, ctx):
    overview = compute_overview(filters, ctx)
    vis = overview["visibility"]
    if overview["date"]["is_fallback"]:
        st.warning(f"No data for {overview['date']['selected']}; showing {overview['date']['effective']}.")

    tg = overview["time_gone"]
    top = st.columns([2, 5])
    with top[0]:
        with card("Time Gone", actions=tg["date_label"]):
            show_chart(overview, "time_gone")
            st.caption(f"{tg['passed_days']} of {tg['total_days']} working days")
    with top[1]:
        with card("KPIs"):
            cols = st.columns(len(overview["kpis"]))
            for col, kpi in zip(cols, overview["kpis"]):
                with col:
                    kpi_tile(kpi)
        with card("Debt"):
            d = overview["debt"]
            dc = st.columns(3)
            dc[0].metric("Total Debt", d["total_display"])
            dc[1].metric("Due", d["due_display"], delta=format_percent(d["due_pct"]), delta_color="off")
            dc[2].metric("Overdue", d["overdue_display"], delta=format_percent(d["overdue_pct"]), delta_color="off")

    perf = compute_performance(filters, ctx)
    if vis["show_channel"]:
        with card("Channel Performance"):
            st.selectbox("KPI", METRICS, key="flt_kpi_channel_kpi")
            show_chart(perf, "channel")

    hierarchy = perf["hierarchy"]
    if hierarchy["visible"]:
        with card(hierarchy["title"]):
            show_chart(perf, "hierarchy")
    if perf["peers"] is not None:
        with card("Team Performance"):
            show_chart(perf, "peers")

    if vis["show_ranking"] and perf["ranking"] is not None:
        rc = st.columns(2)
        with rc[0]:
            with card(f"Top {filters.top_n} Distributors"):
                show_chart(perf, "top")
        with rc[1]:
            with card(f"Bottom {filters.top_n} Distributors"):
                show_chart(perf, "bottom")


def render_debt_page(filters, ctx):
    payload = compute_debt(filters, ctx)
    t = payload["totals"]
    cols = st.columns(3)
    cols[0].metric("Total Debt", format_number(t["total_debt"]))
    cols[1].metric("Due", format_number(t["due"]), delta=format_percent(t["due_pct"]), delta_color="off")
    cols[2].metric("Overdue", format_number(t["overdue"]), delta=format_percent(t["overdue_pct"]), delta_color="off")
    if not payload["visible"]:
        st.info("No lower level to break debt down by.")
        return
    with card(payload["title"]):
        show_chart(payload, "breakdown")
        if payload["rows"]:
            st.dataframe(pd.DataFrame(payload["rows"]), hide_index=True, use_container_width=True)


def render_daily_page(filters, ctx):
    payload = compute_daily(filters, ctx)
    with card(f"Daily {payload['metric']} Progress"):
        show_chart(payload, "daily", "No achievement history up to the selected date.")
        if payload["points"]:
            st.dataframe(pd.DataFrame(payload["points"]), hide_index=True, use_container_width=True)


def render_debug_page(filters, ctx):
    payload = compute_debug(filters, ctx)
    with card("Data Quality / Debug"):
        st.write(payload["row_counts"])
        st.write(payload["cleaning_checks"])
        st.write({"effective_date": payload["effective_date"]})
        if payload["date_coverage"]:
            st.markdown("**Date coverage**")
            st.dataframe(pd.DataFrame(payload["date_coverage"]), hide_index=True)
        if payload["unmatched_achievements"]:
            st.markdown("**Achievements without a plan row**")
            st.dataframe(pd.DataFrame(payload["unmatched_achievements"]), hide_index=True)


def render_settings_page(store: AppStateStore, coordinator: SyncCoordinator):
    with card("Backend"):
        url = st.text_input("Backend script URL", value=store.sync_url)
        if st.button("Save URL"):
            store.set_sync_url(url)
            st.success("Saved.")
        base = st.text_input("App address", value="http://localhost:8501")
        try:
            st.code(build_invite_link(base, store.sync_url))
        except ValueError as exc:
            st.info(str(exc))

    with card("Uploads"):
        kind = st.radio("Upload", ["plan", "achieved", "users"], horizontal=True, format_func=lambda k: {"plan": "Plan", "achieved": "Achievement", "users": "Users"}[k])
        day = ""
        if kind == "achieved":
            day = st.date_input("Achievement date", value=date.today()).isoformat()
        file = st.file_uploader("Spreadsheet (.xlsx or .csv)", type=["xlsx", "csv"])
        if file is not None and st.button("Send", type="primary"):
            try:
                rows = read_sheet(file, file.name)
                with st.spinner("Uploading..."):
                    with ScriptBackend(store.sync_url) as backend:
                        upload(backend, store.user, kind, rows, day=day)
            except (BackendError, ValueError) as exc:
                st.error(str(exc))
            else:
                st.success(f"Uploaded {len(rows)} rows.")
                run_sync(coordinator)

    with card("Data"):
        if st.button("Refresh data now"):
            run_sync(coordinator)
            st.rerun()


# ---------- UI setup ----------
st.set_page_config(page_title=settings.app_name, layout="wide")
inject_base_styles()

store = get_store()
coordinator = get_coordinator(store)

if consume_invite(st.query_params, store):
    st.toast("Backend configured from invite link.")

if not store.sync_url:
    render_setup(store)
    st.stop()

if store.user is None:
    render_login(store, coordinator)
    st.stop()

if not st.session_state.get("_synced"):
    st.session_state["_synced"] = True
    run_sync(coordinator)
    if store.user is None:
        st.rerun()

render_header(store, coordinator)

data_ctx = snapshot_context(store.last_updated, store.user.username, store.data)
scope = scope_for_user(store.user)
if st.session_state.get("filter_state_user") != store.user.username or "filter_state" not in st.session_state:
    st.session_state["filter_state"] = FilterState(data_ctx["plans"], scope, data_ctx["dates"])
    st.session_state["filter_state_user"] = store.user.username
state: FilterState = st.session_state["filter_state"]
# Fresh sync: keep selections, swap in the new rows.
state.plans = data_ctx["plans"]
state.dates = sorted(data_ctx["dates"])

with st.sidebar:
    st.markdown("### Navigate")
    pages = ["Dashboard", "Debt", "Daily", "Data Quality"] + (["Settings"] if store.user.is_admin else [])
    current_page = st.radio("Navigate", pages, index=0)
render_sidebar(state, data_ctx["dates"])

with st.sidebar:
    st.markdown("---")
    with st.expander("Card settings", expanded=False):
        for card_key, label in (("breakdown_kpi", "Breakdown KPI"), ("ranking_kpi", "Ranking KPI"), ("daily_kpi", "Daily KPI")):
            st.selectbox(label, METRICS, key=f"flt_kpi_{card_key}")
        drill = DrillDown(state.depth)
        drill_keys = list(drill.option_keys)
        if st.session_state.get("flt_breakdown_key") not in drill_keys:
            st.session_state.pop("flt_breakdown_key", None)
        breakdown_key = st.selectbox("Breakdown level", drill_keys, format_func=lambda k: FILTER_LABELS.get(k, k), key="flt_breakdown_key") if drill_keys else None
        debt_drill = DrillDown(state.depth, terminal_empty=True)
        debt_keys = list(debt_drill.option_keys)
        if st.session_state.get("flt_debt_key") not in debt_keys:
            st.session_state.pop("flt_debt_key", None)
        debt_key = st.selectbox("Debt level", debt_keys, format_func=lambda k: FILTER_LABELS.get(k, k), key="flt_debt_key") if debt_keys else None
        debt_metric = st.selectbox("Debt metric", DEBT_METRICS, key="flt_debt_metric")
        top_n = st.slider("Top / bottom N", min_value=1, max_value=20, value=settings.top_n, key="flt_top_n")

for card_key in ("channel_kpi", "breakdown_kpi", "ranking_kpi", "daily_kpi"):
    metric = st.session_state.get(f"flt_kpi_{card_key}")
    if metric:
        state.set_kpi(card_key, metric)

filters = state.snapshot(breakdown_key=breakdown_key, debt_key=debt_key, debt_metric=debt_metric, top_n=top_n)
ctx = prepare_context(filters, data_ctx)

if data_ctx["plans"].empty:
    st.info("No plan data yet. Use Refresh to sync, or ask an administrator to upload a plan.")

if current_page == "Dashboard":
    render_dashboard_page(filters, ctx)
elif current_page == "Debt":
    render_debt_page(filters, ctx)
elif current_page == "Daily":
    render_daily_page(filters, ctx)
elif current_page == "Settings":
    render_settings_page(store, coordinator)
else:
    render_debug_page(filters, ctx)
