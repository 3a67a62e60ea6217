from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, Optional, Tuple

from bitterguard.charts import disease_doughnut, scans_line, to_vega_spec
from bitterguard.data import DataBackend
from bitterguard.errors import describe_failure
from bitterguard.filters import (
    FilterState,
    derive_bounds,
    filters_dict,
    rolling_window,
    series_window,
    today_window,
)
from bitterguard.metrics_counts import compute_disease_distribution
from bitterguard.metrics_series import (
    ACTIVE_USER_DAYS,
    SERIES_DAYS,
    compute_active_users,
    compute_scans_over_time,
)

logger = logging.getLogger(__name__)

STAT_KEYS = ("total_users", "total_scans", "scans_today", "active_users")


def run_parallel(tasks: Dict[str, Callable[[], Any]]) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """Run independent reads concurrently; a failure only affects its own key."""
    results: Dict[str, Any] = {}
    errors: Dict[str, str] = {}
    with ThreadPoolExecutor(max_workers=max(1, len(tasks))) as pool:
        futures = {name: pool.submit(fn) for name, fn in tasks.items()}
        for name, future in futures.items():
            try:
                results[name] = future.result()
            except Exception as exc:
                logger.exception("%s failed", name)
                errors[name] = describe_failure(exc)
                results[name] = None
    return results, errors


def compute_overview(
    filters: FilterState, backend: DataBackend, tz: tzinfo, *, now: Optional[datetime] = None
) -> Dict[str, Any]:
    now = now or datetime.now(tz)
    today = now.astimezone(tz).date()
    bounds = derive_bounds(filters, tz)
    # Scans Today, Active Users and the 7-day series keep only the location
    # dimension and apply their own window.
    location_bounds = bounds.location_only()

    tasks: Dict[str, Callable[[], Any]] = {
        "total_users": backend.count_users,
        "total_scans": lambda: backend.count_scans(bounds),
        "scans_today": lambda: backend.count_scans(location_bounds.between(*today_window(now, tz))),
        "active_users": lambda: compute_active_users(
            backend.fetch_scans(location_bounds.between(*rolling_window(now, ACTIVE_USER_DAYS)), ["user_id"])
        ),
        "disease_distribution": lambda: compute_disease_distribution(backend.fetch_scans(bounds, ["prediction"])),
        "scans_over_time": lambda: compute_scans_over_time(
            backend.fetch_scans(location_bounds.between(*series_window(today, SERIES_DAYS, tz)), ["timestamp"]),
            today,
            tz,
        ),
    }
    results, errors = run_parallel(tasks)

    charts: Dict[str, Any] = {}
    distribution = results.get("disease_distribution")
    if distribution and not distribution["empty"]:
        charts["disease_distribution"] = to_vega_spec(disease_doughnut(distribution["rows"]))
    series = results.get("scans_over_time")
    if series:
        charts["scans_over_time"] = to_vega_spec(scans_line(series))

    return {
        "filters": filters_dict(filters),
        "as_of": now.isoformat(),
        "stats": {key: results.get(key) for key in STAT_KEYS},
        "disease_distribution": distribution,
        "scans_over_time": series,
        "charts": charts,
        "errors": errors,
    }
