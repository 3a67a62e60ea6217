from __future__ import annotations

import calendar
import logging
from dataclasses import asdict, dataclass, replace
from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


class TimeScope(str, Enum):
    ALL = "all"
    YEAR = "year"
    MONTH = "month"


@dataclass(frozen=True)
class FilterState:
    location: str = ""
    time_scope: TimeScope = TimeScope.ALL
    year: Optional[int] = None
    month: Optional[int] = None


@dataclass(frozen=True)
class QueryBounds:
    """Selection predicate shared by every scan query in a refresh.

    ``from_ms`` and ``to_ms`` are both inclusive epoch milliseconds.
    """

    location_substring: Optional[str] = None
    from_ms: Optional[int] = None
    to_ms: Optional[int] = None

    @property
    def location_pattern(self) -> Optional[str]:
        """ILIKE pattern for case-insensitive containment."""
        if not self.location_substring:
            return None
        escaped = (
            self.location_substring.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        return f"%{escaped}%"

    @property
    def has_time_bounds(self) -> bool:
        return self.from_ms is not None or self.to_ms is not None

    def location_only(self) -> "QueryBounds":
        return QueryBounds(location_substring=self.location_substring)

    def between(self, from_ms: Optional[int] = None, to_ms: Optional[int] = None) -> "QueryBounds":
        return replace(self, from_ms=from_ms, to_ms=to_ms)


def _as_int(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except Exception:
        return None


def normalize_filters(raw: dict) -> FilterState:
    location = str(raw.get("location") or "").strip()

    try:
        time_scope = TimeScope(str(raw.get("time_scope") or "all").lower())
    except ValueError:
        time_scope = TimeScope.ALL

    year = _as_int(raw.get("year"))
    if not _valid_year(year):
        year = None
    month = _as_int(raw.get("month"))
    if not _valid_month(month):
        month = None
    if time_scope is not TimeScope.MONTH:
        month = None

    return FilterState(location=location, time_scope=time_scope, year=year, month=month)


def to_epoch_ms(dt: datetime) -> int:
    return int(round(dt.timestamp() * 1000))


def start_of_day(day: date, tz: tzinfo = timezone.utc) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=tz)


def year_bounds(year: int, tz: tzinfo = timezone.utc) -> tuple[int, int]:
    start = datetime(year, 1, 1, tzinfo=tz)
    end = datetime(year, 12, 31, 23, 59, 59, 999000, tzinfo=tz)
    return to_epoch_ms(start), to_epoch_ms(end)


def month_bounds(year: int, month: int, tz: tzinfo = timezone.utc) -> tuple[int, int]:
    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1, tzinfo=tz)
    end = datetime(year, month, last_day, 23, 59, 59, 999000, tzinfo=tz)
    return to_epoch_ms(start), to_epoch_ms(end)


def _valid_year(year: Optional[int]) -> bool:
    return year is not None and 1 <= year <= 9999


def _valid_month(month: Optional[int]) -> bool:
    return month is not None and 1 <= month <= 12


def derive_bounds(filters: FilterState, tz: tzinfo = timezone.utc) -> QueryBounds:
    location = (filters.location or "").strip() or None

    # Out-of-range year/month counts as incomplete: no time bounds.
    from_ms: Optional[int] = None
    to_ms: Optional[int] = None
    if filters.time_scope is TimeScope.YEAR and _valid_year(filters.year):
        from_ms, to_ms = year_bounds(filters.year, tz)
    elif filters.time_scope is TimeScope.MONTH and _valid_year(filters.year) and _valid_month(filters.month):
        from_ms, to_ms = month_bounds(filters.year, filters.month, tz)

    bounds = QueryBounds(location_substring=location, from_ms=from_ms, to_ms=to_ms)
    logger.debug("derived bounds %s from %s", bounds, filters)
    return bounds


def today_window(now: datetime, tz: tzinfo = timezone.utc) -> tuple[int, None]:
    """Scans Today: local midnight onwards."""
    local = now.astimezone(tz)
    return to_epoch_ms(start_of_day(local.date(), tz)), None


def rolling_window(now: datetime, days: int) -> tuple[int, None]:
    return to_epoch_ms(now - timedelta(days=days)), None


def series_window(today: date, days: int = 7, tz: tzinfo = timezone.utc) -> tuple[int, None]:
    first_day = today - timedelta(days=days - 1)
    return to_epoch_ms(start_of_day(first_day, tz)), None


def date_range_text(filters: FilterState) -> str:
    if filters.time_scope is TimeScope.YEAR and _valid_year(filters.year):
        return f"Year {filters.year}"
    if filters.time_scope is TimeScope.MONTH and _valid_year(filters.year) and _valid_month(filters.month):
        return f"{MONTH_NAMES[filters.month - 1]} {filters.year}"
    return "All Time"


def filters_dict(filters: FilterState) -> dict:
    out = asdict(filters)
    out["time_scope"] = filters.time_scope.value
    return out
