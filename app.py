import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Optional

import altair as alt
import pandas as pd
import streamlit as st

from bitterguard.charts import disease_doughnut, scans_line
from bitterguard.config import get_settings
from bitterguard.data import compute_filter_options, get_backend
from bitterguard.errors import DataAccessError, describe_failure
from bitterguard.filters import MONTH_NAMES, FilterState, TimeScope, date_range_text, normalize_filters
from bitterguard.metrics_counts import compute_disease_counts
from bitterguard.metrics_overview import compute_overview
from bitterguard.metrics_recent import compute_recent_scans
from bitterguard.report import generate_report, summary_text

alt.data_transformers.disable_max_rows()
logger = logging.getLogger(__name__)

TIME_SCOPE_LABELS = {TimeScope.ALL.value: "All Time", TimeScope.YEAR.value: "By Year", TimeScope.MONTH.value: "By Month"}


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
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .card-actions {font-size: 0.9rem;color: #2e7d32;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f1f8e9;border: 1px solid #dcedc8;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #33691e;}
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


def format_filter_summary(filters: FilterState) -> str:
    barangay_chip = f"Barangay: {filters.location}" if filters.location else "Barangay: All"
    period_chip = f"Period: {date_range_text(filters)}"
    return "".join([f"<span class='chip'>{txt}</span>" for txt in [barangay_chip, period_chip]])


def render_page_header(title: str, breadcrumb: str, filter_summary_html: str):
    inject_base_styles()
    st.markdown(
        f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
        unsafe_allow_html=True,
    )
    st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


# ---------- Filter state ----------
def _apply_filters():
    st.session_state["filters"] = normalize_filters(
        {
            "location": st.session_state.get("f_location") or "",
            "time_scope": st.session_state.get("f_time_scope") or TimeScope.ALL.value,
            "year": st.session_state.get("f_year"),
            "month": st.session_state.get("f_month"),
        }
    )


def _clear_filters():
    st.session_state["f_location"] = ""
    st.session_state["f_time_scope"] = TimeScope.ALL.value
    st.session_state["f_year"] = None
    st.session_state["f_month"] = None
    st.session_state["filters"] = FilterState()


# ---------- UI setup ----------
st.set_page_config(page_title="BitterGuard Admin Dashboard", layout="wide")
inject_base_styles()
st.title("BitterGuard Admin Dashboard")
st.caption("Bitter gourd leaf disease scans from the BitterGuard mobile app.")

settings = get_settings()
tz = settings.tz
try:
    backend = get_backend()
except DataAccessError as exc:
    st.error(f"{exc.message}")
    st.stop()

if "filters" not in st.session_state:
    st.session_state["filters"] = FilterState()

try:
    options = compute_filter_options(backend, tz)
except DataAccessError as exc:
    logger.exception("filter options failed")
    st.warning(describe_failure(exc, "load filter options"))
    options = {"locations": [], "years": []}

# ----- Sidebar: filters -----
with st.sidebar:
    st.markdown("### Filters")
    with st.form("filters_form"):
        st.selectbox(
            "Barangay",
            options=[""] + options["locations"],
            format_func=lambda v: v or "All Barangays",
            key="f_location",
        )
        st.selectbox(
            "Time period",
            options=list(TIME_SCOPE_LABELS),
            format_func=TIME_SCOPE_LABELS.get,
            key="f_time_scope",
        )
        st.selectbox(
            "Year",
            options=[None] + options["years"],
            format_func=lambda v: "Select year" if v is None else str(v),
            key="f_year",
        )
        st.selectbox(
            "Month",
            options=[None] + list(range(1, 13)),
            format_func=lambda m: "Select month" if m is None else MONTH_NAMES[m - 1],
            key="f_month",
            help="Used with the 'By Month' period.",
        )
        btn_cols = st.columns(2)
        btn_cols[0].form_submit_button("Apply", on_click=_apply_filters, type="primary")
        btn_cols[1].form_submit_button("Clear", on_click=_clear_filters)
    st.caption(f"Auto refresh every {settings.refresh_seconds // 60 or 1} min.")


def render_kpi_tiles(stats: Dict[str, Any]):
    def fmt(value: Optional[int]) -> str:
        return f"{value:,}" if value is not None else "N/A"

    cols = st.columns(4)
    cols[0].metric("Total Scans", fmt(stats.get("total_scans")), help="Scans matching the barangay and period filters.")
    cols[1].metric("Total Users", fmt(stats.get("total_users")), help="Registered app users.")
    cols[2].metric("Scans Today", fmt(stats.get("scans_today")), help="Scans since midnight; ignores the period filter.")
    cols[3].metric("Active Users", fmt(stats.get("active_users")), help="Distinct users with a scan in the last 30 days; ignores the period filter.")


def render_disease_table(filters: FilterState):
    try:
        counts = compute_disease_counts(filters, backend, tz)
    except DataAccessError as exc:
        logger.exception("disease counts failed")
        st.error(describe_failure(exc, "load disease counts"))
        return
    if counts["empty"]:
        st.info(counts["message"])
        return
    table = pd.DataFrame(counts["rows"]).rename(
        columns={"category_label": "Category", "label": "Disease/Status", "count": "Count", "percentage": "Percentage"}
    )
    st.dataframe(
        table[["Category", "Disease/Status", "Count", "Percentage"]],
        hide_index=True,
        use_container_width=True,
        column_config={
            "Count": st.column_config.NumberColumn(format="%d"),
            "Percentage": st.column_config.ProgressColumn(format="%.1f%%", min_value=0, max_value=100),
        },
    )


def render_recent_scans(filters: FilterState):
    try:
        recent = compute_recent_scans(filters, backend, tz, limit=settings.recent_limit)
    except DataAccessError as exc:
        logger.exception("recent scans failed")
        st.error(describe_failure(exc, "load recent scans"))
        return
    for warning in recent["warnings"]:
        st.warning(warning)
    if recent["empty"]:
        st.info(recent["message"])
        return
    table = pd.DataFrame(recent["rows"])[["user", "disease", "confidence", "location", "date"]]
    table.columns = ["User", "Disease", "Confidence", "Location", "Date"]
    st.dataframe(table, hide_index=True, use_container_width=True)


def render_report(filters: FilterState):
    if not st.button("Generate Report", key="generate_report"):
        return
    try:
        report = generate_report(filters, backend, tz, datetime.now(tz).date())
    except DataAccessError as exc:
        logger.exception("report failed")
        st.error(describe_failure(exc, "generate the report"))
        return
    if report["empty"]:
        st.info(report["message"])
        return
    for warning in report["warnings"]:
        st.warning(warning)
    summary = report["summary"]
    st.download_button(
        "Download CSV",
        data=report["csv"].encode("utf-8"),
        file_name=summary["file_name"],
        mime="text/csv",
    )
    with st.expander("Report summary", expanded=True):
        st.text(summary_text(summary))


# ----- Dashboard (re-runs on the refresh timer) -----
@st.fragment(run_every=settings.refresh_seconds)
def render_dashboard():
    filters: FilterState = st.session_state["filters"]
    render_page_header("Dashboard", "Home / Dashboard", format_filter_summary(filters))

    overview = compute_overview(filters, backend, tz)
    for message in dict.fromkeys(overview["errors"].values()):
        st.error(message)
    st.caption(f"Last refreshed {datetime.fromisoformat(overview['as_of']):%b %d, %Y %I:%M %p}")

    with card("Key Statistics"):
        render_kpi_tiles(overview["stats"])

    chart_cols = st.columns(2)
    with chart_cols[0]:
        with card("Disease Distribution"):
            distribution = overview["disease_distribution"]
            if distribution is None:
                st.info("Disease distribution unavailable.")
            elif distribution["empty"]:
                st.info(distribution["message"])
            else:
                st.altair_chart(disease_doughnut(distribution["rows"]), use_container_width=True)
    with chart_cols[1]:
        with card("Scans Over Time", actions="Last 7 days"):
            series = overview["scans_over_time"]
            if series is None:
                st.info("Scan trend unavailable.")
            else:
                st.altair_chart(scans_line(series), use_container_width=True)

    with card("Disease Counts"):
        render_disease_table(filters)
    with card("Recent Scans"):
        render_recent_scans(filters)
    with card("Report"):
        render_report(filters)


render_dashboard()
