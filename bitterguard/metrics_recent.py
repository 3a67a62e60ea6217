from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Any, Dict

from bitterguard.data import DataBackend, clean_text, fetch_user_directory, format_timestamp, user_display_name
from bitterguard.errors import DataAccessError, describe_failure
from bitterguard.filters import FilterState, derive_bounds, filters_dict
from bitterguard.labels import format_confidence, normalize_label

logger = logging.getLogger(__name__)

RECENT_LIMIT = 10


def compute_recent_scans(filters: FilterState, backend: DataBackend, tz: tzinfo, *, limit: int = RECENT_LIMIT) -> Dict[str, Any]:
    bounds = derive_bounds(filters, tz)
    scans = backend.fetch_scans(bounds, descending=True, limit=max(1, int(limit)))
    payload: Dict[str, Any] = {"filters": filters_dict(filters), "rows": [], "empty": scans.empty, "warnings": []}
    if scans.empty:
        payload["message"] = "No scans found"
        return payload

    try:
        directory = fetch_user_directory(backend, scans)
    except DataAccessError as exc:
        logger.warning("user lookup for recent scans failed: %s", exc)
        payload["warnings"].append(describe_failure(exc, "load user details"))
        directory = {}

    payload["rows"] = [
        {
            "id": scan.get("id"),
            "user": user_display_name(scan.get("user_id"), directory),
            "disease": normalize_label(scan.get("prediction")),
            "confidence": format_confidence(scan.get("confidence"), scan.get("prediction")),
            "location": clean_text(scan.get("location")) or "N/A",
            "date": format_timestamp(scan.get("timestamp"), tz),
        }
        for scan in scans.to_dict(orient="records")
    ]
    return payload
