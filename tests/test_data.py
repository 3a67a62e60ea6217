from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import pandas as pd
import pytest
from postgrest.exceptions import APIError

from bitterguard.data import (
    FrameBackend,
    SupabaseBackend,
    compute_filter_options,
    fetch_user_directory,
    format_timestamp,
    location_options,
    user_display_name,
)
from bitterguard.errors import DataAccessError
from bitterguard.filters import FilterState, QueryBounds, TimeScope, derive_bounds, to_epoch_ms

UTC = timezone.utc


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []
        self._range = None

    def _record(self, *call):
        self.calls.append(call)
        return self

    def select(self, columns, count=None):
        return self._record("select", columns, count)

    def ilike(self, column, pattern):
        return self._record("ilike", column, pattern)

    def gte(self, column, value):
        return self._record("gte", column, value)

    def lte(self, column, value):
        return self._record("lte", column, value)

    def order(self, column, desc=False):
        return self._record("order", column, desc)

    def limit(self, size):
        return self._record("limit", size)

    def in_(self, column, values):
        return self._record("in_", column, list(values))

    def range(self, start, end):
        self._range = (start, end)
        return self._record("range", start, end)

    def execute(self):
        self.client.executed.append(self)
        if self.client.error is not None:
            raise self.client.error
        rows = self.client.tables.get(self.table, [])
        page = rows[self._range[0]:self._range[1] + 1] if self._range else rows
        return SimpleNamespace(data=page, count=len(rows))


class FakeClient:
    def __init__(self, tables=None, error=None):
        self.tables = tables or {}
        self.error = error
        self.executed = []

    def table(self, name):
        return FakeQuery(self, name)


def _scan_rows(n):
    return [{"id": str(i), "prediction": "Mosaic Virus", "timestamp": str(1_700_000_000_000 + i)} for i in range(n)]


def test_supabase_query_applies_predicates():
    client = FakeClient({"history": _scan_rows(2)})
    backend = SupabaseBackend(client)
    bounds = derive_bounds(FilterState(location="Sto. Angel", time_scope=TimeScope.YEAR, year=2024), UTC)
    backend.fetch_scans(bounds, ["prediction", "timestamp"], descending=True)

    calls = client.executed[0].calls
    assert ("select", "prediction, timestamp", None) in calls
    assert ("ilike", "location", "%Sto. Angel%") in calls
    assert ("gte", "timestamp", str(bounds.from_ms)) in calls
    assert ("lte", "timestamp", str(bounds.to_ms)) in calls
    assert ("order", "timestamp", True) in calls


def test_supabase_unbounded_query_has_no_predicates():
    client = FakeClient({"history": []})
    SupabaseBackend(client).fetch_scans(QueryBounds())
    names = [call[0] for call in client.executed[0].calls]
    assert "ilike" not in names and "gte" not in names and "lte" not in names


def test_supabase_fetch_paginates():
    client = FakeClient({"history": _scan_rows(5)})
    backend = SupabaseBackend(client, page_size=2)
    frame = backend.fetch_scans(QueryBounds())
    assert frame["id"].tolist() == ["0", "1", "2", "3", "4"]
    ranges = [call for q in client.executed for call in q.calls if call[0] == "range"]
    assert ranges == [("range", 0, 1), ("range", 2, 3), ("range", 4, 5)]


def test_supabase_pages_have_stable_order():
    client = FakeClient({"history": _scan_rows(3)})
    SupabaseBackend(client, page_size=2).fetch_scans(QueryBounds(), descending=True)
    for query in client.executed:
        orders = [call for call in query.calls if call[0] == "order"]
        assert orders == [("order", "timestamp", True), ("order", "id", True)]


def test_supabase_fetch_respects_limit():
    client = FakeClient({"history": _scan_rows(5)})
    frame = SupabaseBackend(client, page_size=2).fetch_scans(QueryBounds(), limit=3)
    assert len(frame) == 3
    assert len(client.executed) == 2


def test_supabase_counts_use_exact_count():
    client = FakeClient({"history": _scan_rows(4), "users": [{"id": "u1"}, {"id": "u2"}]})
    backend = SupabaseBackend(client)
    assert backend.count_scans(QueryBounds()) == 4
    assert backend.count_users() == 2
    assert ("select", "id", "exact") in client.executed[0].calls
    assert ("limit", 1) in client.executed[0].calls


def test_supabase_fetch_users_filters_ids():
    client = FakeClient({"users": [{"id": "u1", "email": "a@b.c", "phone": None}]})
    frame = SupabaseBackend(client).fetch_users(["u1", None, "u2"])
    assert ("in_", "id", ["u1", "u2"]) in client.executed[0].calls
    assert list(frame.columns) == ["id", "email", "phone"]


def test_api_errors_are_wrapped():
    error = APIError({"message": "permission denied for table history", "code": "42501", "hint": None, "details": None})
    backend = SupabaseBackend(FakeClient(error=error))
    with pytest.raises(DataAccessError) as info:
        backend.count_scans(QueryBounds())
    assert info.value.code == "42501"
    assert "permission denied" in info.value.message


def test_network_errors_are_wrapped():
    backend = SupabaseBackend(FakeClient(error=httpx.ConnectError("connection refused")))
    with pytest.raises(DataAccessError) as info:
        backend.fetch_scans(QueryBounds())
    assert info.value.code == "network"


def test_frame_backend_location_is_case_insensitive(backend):
    assert backend.count_scans(QueryBounds(location_substring="STO. ANGEL")) == 3
    assert backend.count_scans(QueryBounds(location_substring="roque")) == 2


def test_frame_backend_location_is_literal():
    frame = pd.DataFrame({"location": ["50% off", "500 off"], "timestamp": ["1", "2"]})
    assert FrameBackend(frame).count_scans(QueryBounds(location_substring="50%")) == 1


def test_frame_backend_time_bounds_exclude_missing_timestamps():
    frame = pd.DataFrame({"id": ["a", "b", "c"], "timestamp": ["100", None, "300"]})
    backend = FrameBackend(frame)
    assert backend.count_scans(QueryBounds()) == 3
    assert backend.count_scans(QueryBounds(from_ms=50)) == 2
    assert backend.count_scans(QueryBounds(from_ms=100, to_ms=100)) == 1


def test_frame_backend_ordering_and_limit(backend):
    newest = backend.fetch_scans(QueryBounds(), ["id"], descending=True, limit=2)
    oldest = backend.fetch_scans(QueryBounds(), ["id"])
    assert newest["id"].tolist() == ["1", "2"]
    assert oldest["id"].tolist()[0] == "5"


def test_from_csv(tmp_path, scans, users):
    scans.to_csv(tmp_path / "scans.csv", index=False)
    users.to_csv(tmp_path / "users.csv", index=False)
    backend = FrameBackend.from_csv(tmp_path)
    assert backend.count_scans(QueryBounds()) == 6
    assert backend.count_users() == 3


def test_from_csv_missing_snapshot(tmp_path):
    with pytest.raises(DataAccessError) as info:
        FrameBackend.from_csv(tmp_path)
    assert info.value.code == "not_found"


def test_filter_options(backend):
    options = compute_filter_options(backend, UTC)
    assert options["years"] == [2024, 2023]
    assert "San Roque" in options["locations"]
    assert "Sto. Angel" in options["locations"]


def test_location_options_extracts_barangay():
    frame = pd.DataFrame({"location": ["Barangay Poblacion, Calauan", "Poblacion", " ", None, "BARANGAY Bayog"]})
    assert location_options(frame) == ["Bayog", "Poblacion"]


def test_format_timestamp():
    value = str(to_epoch_ms(datetime(2024, 3, 5, 14, 30, tzinfo=UTC)))
    assert format_timestamp(value, UTC) == "Mar 5, 2024, 02:30 PM"
    assert format_timestamp(value, timezone(timedelta(hours=8))) == "Mar 5, 2024, 10:30 PM"
    assert format_timestamp(None) == "N/A"
    assert format_timestamp("garbage") == "N/A"


def test_user_directory_and_display_names(backend, scans):
    directory = fetch_user_directory(backend, scans)
    assert directory["u1"] == {"email": "grower@example.com", "phone": "09171234567"}
    assert user_display_name("u1", directory) == "grower@example.com"
    assert user_display_name("u2", directory) == "09998887777"
    assert user_display_name("3f2a9c1d-77aa", directory) == "3f2a9c1d"
    assert user_display_name(None, directory) == "Unknown"
