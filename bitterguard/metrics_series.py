from __future__ import annotations

from collections import Counter
from datetime import date, timedelta, timezone, tzinfo
from typing import Dict

import pandas as pd

from bitterguard.data import ms_to_datetime

SERIES_DAYS = 7
ACTIVE_USER_DAYS = 30


def compute_scans_over_time(
    scans: pd.DataFrame, today: date, tz: tzinfo = timezone.utc, days: int = SERIES_DAYS
) -> Dict[str, int]:
    """Scan counts per local calendar date for the ``days`` ending ``today``.

    Every date in the window is present, zero when there were no scans.
    """
    by_date: Counter = Counter()
    if not scans.empty and "timestamp" in scans.columns:
        for value in scans["timestamp"]:
            dt = ms_to_datetime(value, tz)
            if dt is not None:
                by_date[dt.date()] += 1

    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    return {day.isoformat(): int(by_date.get(day, 0)) for day in window}


def compute_active_users(scans: pd.DataFrame) -> int:
    if scans.empty or "user_id" not in scans.columns:
        return 0
    users = scans["user_id"].dropna().astype(str).str.strip()
    return int(users[users != ""].nunique())
