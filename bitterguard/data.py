from __future__ import annotations

import logging
import re
from datetime import datetime, timezone, tzinfo
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import httpx
import pandas as pd
from postgrest.exceptions import APIError
from supabase import Client, create_client

from bitterguard.config import Settings, get_settings
from bitterguard.errors import DataAccessError
from bitterguard.filters import QueryBounds

logger = logging.getLogger(__name__)

SCAN_COLUMNS = ["id", "user_id", "prediction", "confidence", "location", "timestamp"]
USER_COLUMNS = ["id", "email", "phone"]

SCANS_FILE = "scans.csv"
USERS_FILE = "users.csv"

BARANGAY_RE = re.compile(r"barangay\s+([^,]+)", re.IGNORECASE)


def scans_frame(rows: Iterable[dict], columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    cols = list(columns or SCAN_COLUMNS)
    df = pd.DataFrame(list(rows))
    for col in cols:
        if col not in df.columns:
            df[col] = None
    return df[cols] if not df.empty else pd.DataFrame(columns=cols)


def parse_timestamp_ms(value: object) -> Optional[int]:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return None
    try:
        return int(float(str(value).strip()))
    except Exception:
        return None


def ms_to_datetime(value: object, tz: tzinfo = timezone.utc) -> Optional[datetime]:
    ms = parse_timestamp_ms(value)
    if ms is None:
        return None
    try:
        return datetime.fromtimestamp(ms / 1000, tz=tz)
    except (OverflowError, OSError, ValueError):
        return None


def format_timestamp(value: object, tz: tzinfo = timezone.utc) -> str:
    dt = ms_to_datetime(value, tz)
    if dt is None:
        return "N/A"
    return f"{dt:%b} {dt.day}, {dt:%Y, %I:%M %p}"


def location_options(scans: pd.DataFrame) -> List[str]:
    """Distinct barangay names for the location filter."""
    if scans.empty or "location" not in scans.columns:
        return []
    names = set()
    for location in scans["location"].dropna().astype(str):
        location = location.strip()
        if not location:
            continue
        match = BARANGAY_RE.search(location)
        names.add(match.group(1).strip() if match else location)
    return sorted(names)


def year_options(scans: pd.DataFrame, tz: tzinfo = timezone.utc) -> List[int]:
    if scans.empty or "timestamp" not in scans.columns:
        return []
    years = {dt.year for dt in (ms_to_datetime(v, tz) for v in scans["timestamp"]) if dt is not None}
    return sorted(years, reverse=True)


class DataBackend:
    """Read-only access to the scan records and users collections."""

    def fetch_scans(
        self,
        bounds: QueryBounds,
        columns: Optional[Sequence[str]] = None,
        *,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> pd.DataFrame:
        raise NotImplementedError

    def count_scans(self, bounds: QueryBounds) -> int:
        raise NotImplementedError

    def count_users(self) -> int:
        raise NotImplementedError

    def fetch_users(self, user_ids: Sequence[str]) -> pd.DataFrame:
        raise NotImplementedError


class FrameBackend(DataBackend):
    """Backend over in-memory DataFrames (CSV snapshots, tests)."""

    def __init__(self, scans: pd.DataFrame, users: Optional[pd.DataFrame] = None) -> None:
        scans = scans.copy()
        for col in SCAN_COLUMNS:
            if col not in scans.columns:
                scans[col] = None
        self.scans = scans.reset_index(drop=True)
        self.users = users if users is not None else pd.DataFrame(columns=USER_COLUMNS)

    @classmethod
    def from_csv(cls, data_dir: Path) -> "FrameBackend":
        scans_path = Path(data_dir) / SCANS_FILE
        users_path = Path(data_dir) / USERS_FILE
        if not scans_path.exists():
            raise DataAccessError(f"Snapshot file not found: {scans_path}", code="not_found")
        scans = pd.read_csv(scans_path, dtype=str)
        users = pd.read_csv(users_path, dtype=str) if users_path.exists() else None
        return cls(scans, users)

    def _select(self, bounds: QueryBounds) -> pd.DataFrame:
        df = self.scans
        if df.empty:
            return df
        mask = pd.Series(True, index=df.index)
        if bounds.location_substring:
            mask &= df["location"].astype("string").str.contains(bounds.location_substring, case=False, regex=False, na=False)
        if bounds.has_time_bounds:
            ts = pd.to_numeric(df["timestamp"], errors="coerce")
            mask &= ts.notna()
            if bounds.from_ms is not None:
                mask &= ts >= bounds.from_ms
            if bounds.to_ms is not None:
                mask &= ts <= bounds.to_ms
        return df[mask]

    def fetch_scans(self, bounds, columns=None, *, descending=False, limit=None):
        df = self._select(bounds)
        if not df.empty:
            df = df.sort_values("timestamp", ascending=not descending, key=lambda s: pd.to_numeric(s, errors="coerce"), kind="stable")
        if limit is not None:
            df = df.head(limit)
        cols = list(columns) if columns else list(df.columns)
        return df[cols].reset_index(drop=True)

    def count_scans(self, bounds):
        return int(len(self._select(bounds)))

    def count_users(self):
        return int(len(self.users))

    def fetch_users(self, user_ids):
        if not user_ids or self.users.empty:
            return pd.DataFrame(columns=USER_COLUMNS)
        wanted = {str(u) for u in user_ids}
        return self.users[self.users["id"].astype(str).isin(wanted)].reset_index(drop=True)


class SupabaseBackend(DataBackend):
    """Backend over the Supabase (PostgREST) tables used by the mobile app."""

    def __init__(self, client: Client, *, scans_table: str = "history", users_table: str = "users", page_size: int = 1000) -> None:
        self.client = client
        self.scans_table = scans_table
        self.users_table = users_table
        self.page_size = page_size

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseBackend":
        client = create_client(settings.supabase_url, settings.supabase_key)
        return cls(client, scans_table=settings.scans_table, users_table=settings.users_table)

    def _execute(self, build: Callable[[], Any]) -> Any:
        try:
            return build().execute()
        except APIError as exc:
            raise DataAccessError(
                exc.message or str(exc),
                code=str(exc.code) if exc.code is not None else None,
                hint=exc.hint,
                details=exc.details,
            ) from exc
        except httpx.HTTPError as exc:
            raise DataAccessError(str(exc) or type(exc).__name__, code="network") from exc

    def _scan_query(self, bounds: QueryBounds, columns: str, count: Optional[str] = None):
        query = self.client.table(self.scans_table).select(columns, count=count)
        if bounds.location_pattern:
            query = query.ilike("location", bounds.location_pattern)
        if bounds.from_ms is not None:
            query = query.gte("timestamp", str(bounds.from_ms))
        if bounds.to_ms is not None:
            query = query.lte("timestamp", str(bounds.to_ms))
        return query

    def fetch_scans(self, bounds, columns=None, *, descending=False, limit=None):
        select = ", ".join(columns) if columns else "*"

        def page(start: int, size: int):
            return lambda: (
                self._scan_query(bounds, select)
                .order("timestamp", desc=descending)
                .order("id", desc=descending)
                .range(start, start + size - 1)
            )

        rows: List[dict] = []
        while True:
            size = self.page_size if limit is None else min(self.page_size, limit - len(rows))
            if size <= 0:
                break
            batch = self._execute(page(len(rows), size)).data or []
            rows.extend(batch)
            if len(batch) < size:
                break
        logger.debug("fetched %d rows from %s for %s", len(rows), self.scans_table, bounds)
        return scans_frame(rows, list(columns) if columns else None)

    def count_scans(self, bounds):
        response = self._execute(lambda: self._scan_query(bounds, "id", count="exact").limit(1))
        return int(response.count or 0)

    def count_users(self):
        response = self._execute(lambda: self.client.table(self.users_table).select("id", count="exact").limit(1))
        return int(response.count or 0)

    def fetch_users(self, user_ids):
        ids = [str(u) for u in user_ids if u]
        if not ids:
            return pd.DataFrame(columns=USER_COLUMNS)
        response = self._execute(
            lambda: self.client.table(self.users_table).select(", ".join(USER_COLUMNS)).in_("id", ids)
        )
        return scans_frame(response.data or [], USER_COLUMNS)


@lru_cache(maxsize=1)
def _backend_for(settings: Settings) -> DataBackend:
    if settings.data_dir is not None:
        return FrameBackend.from_csv(settings.data_dir)
    if settings.supabase_url and settings.supabase_key:
        return SupabaseBackend.from_settings(settings)
    raise DataAccessError(
        "No data backend configured. Set SUPABASE_URL and SUPABASE_KEY, or BITTERGUARD_DATA_DIR.",
        code="config",
    )


def get_backend() -> DataBackend:
    return _backend_for(get_settings())


def fetch_user_directory(backend: DataBackend, scans: pd.DataFrame) -> Dict[str, Dict[str, Any]]:
    """Map user_id -> {email, phone} for the users referenced by ``scans``."""
    if scans.empty or "user_id" not in scans.columns:
        return {}
    ids = sorted({str(u) for u in scans["user_id"].dropna() if str(u).strip()})
    if not ids:
        return {}
    users = backend.fetch_users(ids)
    directory: Dict[str, Dict[str, Any]] = {}
    for row in users.to_dict(orient="records"):
        directory[str(row.get("id"))] = {
            "email": clean_text(row.get("email")),
            "phone": clean_text(row.get("phone")),
        }
    return directory


def clean_text(value: object) -> Optional[str]:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    text = str(value).strip()
    return text or None


def user_display_name(user_id: object, directory: Dict[str, Dict[str, Any]]) -> str:
    uid = clean_text(user_id)
    user = directory.get(uid or "", {})
    return user.get("email") or user.get("phone") or (uid[:8] if uid else None) or "Unknown"


def compute_filter_options(backend: DataBackend, tz: tzinfo = timezone.utc) -> Dict[str, List[Any]]:
    scans = backend.fetch_scans(QueryBounds(), ["location", "timestamp"])
    return {"locations": location_options(scans), "years": year_options(scans, tz)}
