from datetime import timezone

import pytest

from bitterguard.data import FrameBackend
from bitterguard.errors import DataAccessError
from bitterguard.filters import FilterState, TimeScope
from bitterguard.metrics_counts import as_mapping
from bitterguard.metrics_overview import compute_overview, run_parallel
from bitterguard.metrics_recent import compute_recent_scans

from tests.conftest import NOW

UTC = timezone.utc


def test_overview_all_time(backend):
    payload = compute_overview(FilterState(), backend, UTC, now=NOW)
    assert payload["errors"] == {}
    assert payload["stats"] == {"total_users": 3, "total_scans": 6, "scans_today": 1, "active_users": 2}
    distribution = payload["disease_distribution"]
    assert [(r["label"], r["count"], r["percentage"]) for r in distribution["rows"]] == [
        ("Mosaic Virus", 2, 50.0),
        ("Downey Mildew", 1, 25.0),
        ("No Disease Detected", 1, 25.0),
    ]
    series = payload["scans_over_time"]
    assert list(series) == [
        "2024-03-09", "2024-03-10", "2024-03-11", "2024-03-12", "2024-03-13", "2024-03-14", "2024-03-15",
    ]
    assert series["2024-03-12"] == 1 and series["2024-03-13"] == 1 and series["2024-03-15"] == 1
    assert set(payload["charts"]) == {"disease_distribution", "scans_over_time"}


def test_overview_period_filter_only_affects_filter_consistent_stats(backend):
    filters = FilterState(location="STO. ANGEL", time_scope=TimeScope.YEAR, year=2023)
    payload = compute_overview(filters, backend, UTC, now=NOW)
    # Only scan 5 is in 2023; today/active users ignore the year but keep the barangay.
    assert payload["stats"]["total_scans"] == 1
    assert payload["stats"]["scans_today"] == 1
    assert payload["stats"]["active_users"] == 2
    assert payload["disease_distribution"]["empty"] is True
    assert "disease_distribution" not in payload["charts"]
    assert sum(payload["scans_over_time"].values()) == 2


def test_overview_month_boundary_is_inclusive(backend):
    payload = compute_overview(FilterState(time_scope=TimeScope.MONTH, year=2023, month=12), backend, UTC, now=NOW)
    assert payload["stats"]["total_scans"] == 1


class _UsersDenied(FrameBackend):
    def count_users(self):
        raise DataAccessError("permission denied for table users", code="42501")


def test_failed_statistic_is_isolated(scans, users):
    payload = compute_overview(FilterState(), _UsersDenied(scans, users), UTC, now=NOW)
    assert payload["stats"]["total_users"] is None
    assert payload["stats"]["total_scans"] == 6
    assert list(payload["errors"]) == ["total_users"]
    assert "access restrictions" in payload["errors"]["total_users"]


def test_run_parallel_reports_generic_failure():
    def boom():
        raise RuntimeError("socket closed")

    results, errors = run_parallel({"ok": lambda: 1, "bad": boom})
    assert results == {"ok": 1, "bad": None}
    assert "try again" in errors["bad"]


def test_recent_scans_rows(backend):
    payload = compute_recent_scans(FilterState(), backend, UTC, limit=3)
    rows = payload["rows"]
    assert [r["id"] for r in rows] == ["1", "2", "3"]
    assert rows[0] == {
        "id": "1",
        "user": "grower@example.com",
        "disease": "Mosaic Virus",
        "confidence": "74.4%",
        "location": "Barangay Sto. Angel, San Pablo",
        "date": "Mar 15, 2024, 09:00 AM",
    }
    assert rows[1]["user"] == "09998887777"
    assert rows[1]["confidence"] == "91.0%"
    assert rows[2]["confidence"] == "—"


def test_recent_scans_empty(backend):
    payload = compute_recent_scans(FilterState(location="Nowhere"), backend, UTC)
    assert payload["empty"] is True
    assert payload["rows"] == []


class _UsersLookupFails(FrameBackend):
    def fetch_users(self, user_ids):
        raise DataAccessError("RLS policy violation")


def test_recent_scans_falls_back_to_user_ids(scans, users):
    payload = compute_recent_scans(FilterState(), _UsersLookupFails(scans, users), UTC, limit=1)
    assert payload["rows"][0]["user"] == "u1"
    assert payload["warnings"] and "access restrictions" in payload["warnings"][0]


def test_distribution_matches_standalone_counts(backend):
    payload = compute_overview(FilterState(location="san roque"), backend, UTC, now=NOW)
    assert as_mapping(payload["disease_distribution"]) == {"No Disease Detected": 1}


@pytest.mark.parametrize("limit", [1, 6, 50])
def test_recent_scans_limit(backend, limit):
    payload = compute_recent_scans(FilterState(), backend, UTC, limit=limit)
    assert len(payload["rows"]) == min(limit, 6)
