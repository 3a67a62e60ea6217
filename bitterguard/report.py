"""Filtered scan report (CSV) and its summary."""

from __future__ import annotations

import csv
import logging
from datetime import date, tzinfo
from typing import Any, Dict

import pandas as pd

from bitterguard.data import DataBackend, clean_text, fetch_user_directory, format_timestamp
from bitterguard.errors import DataAccessError, describe_failure
from bitterguard.filters import FilterState, date_range_text, derive_bounds, filters_dict
from bitterguard.labels import format_confidence, normalize_label
from bitterguard.metrics_counts import as_mapping, compute_category_counts

logger = logging.getLogger(__name__)

REPORT_COLUMNS = ["ID", "User Email", "User Phone", "Disease", "Confidence", "Location", "Date"]
NO_REPORT_DATA_MESSAGE = "No data available for the selected filters to generate a report."


def report_filename(today: date) -> str:
    return f"BitterGuard_Report_{today.isoformat()}.csv"


def build_report_frame(scans: pd.DataFrame, directory: Dict[str, Dict[str, Any]], tz: tzinfo) -> pd.DataFrame:
    rows = []
    for scan in scans.to_dict(orient="records"):
        user = directory.get(clean_text(scan.get("user_id")) or "", {})
        rows.append(
            {
                "ID": clean_text(scan.get("id")) or "",
                "User Email": user.get("email") or "N/A",
                "User Phone": user.get("phone") or "N/A",
                "Disease": normalize_label(scan.get("prediction")),
                "Confidence": format_confidence(scan.get("confidence"), scan.get("prediction"), placeholder="N/A"),
                "Location": clean_text(scan.get("location")) or "N/A",
                "Date": format_timestamp(scan.get("timestamp"), tz),
            }
        )
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def report_csv(frame: pd.DataFrame) -> str:
    return frame.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")


def build_report_summary(filters: FilterState, scans: pd.DataFrame, today: date) -> Dict[str, Any]:
    return {
        "total_scans": int(len(scans)),
        "date_range": date_range_text(filters),
        "barangay": filters.location.strip() or "All Barangays",
        "diseases": as_mapping(compute_category_counts(scans)),
        "file_name": report_filename(today),
    }


def summary_text(summary: Dict[str, Any]) -> str:
    lines = [
        "BitterGuard Disease Detection Report",
        "",
        f"Date Range: {summary['date_range']}",
        f"Barangay: {summary['barangay']}",
        f"Total Scans: {summary['total_scans']}",
        "",
        "Disease Summary:",
    ]
    lines.extend(f"- {disease}: {count}" for disease, count in summary["diseases"].items())
    return "\n".join(lines)


def generate_report(filters: FilterState, backend: DataBackend, tz: tzinfo, today: date) -> Dict[str, Any]:
    bounds = derive_bounds(filters, tz)
    scans = backend.fetch_scans(bounds, descending=True)
    if scans.empty:
        return {"filters": filters_dict(filters), "empty": True, "message": NO_REPORT_DATA_MESSAGE, "warnings": []}

    warnings = []
    try:
        directory = fetch_user_directory(backend, scans)
    except DataAccessError as exc:
        logger.warning("user lookup for report failed: %s", exc)
        warnings.append(describe_failure(exc, "load user details"))
        directory = {}

    frame = build_report_frame(scans, directory, tz)
    summary = build_report_summary(filters, scans, today)
    return {
        "filters": filters_dict(filters),
        "empty": False,
        "message": None,
        "warnings": warnings,
        "frame": frame,
        "csv": report_csv(frame),
        "summary": summary,
    }
