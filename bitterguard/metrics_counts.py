from __future__ import annotations

from datetime import tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from bitterguard.data import DataBackend
from bitterguard.filters import FilterState, derive_bounds, filters_dict
from bitterguard.labels import Category, categorize, category_style, label_color, normalize_label

NO_DATA_MESSAGE = "No scans found for the selected filters."
DISTRIBUTION_CATEGORIES = (Category.DISEASE, Category.NO_DISEASE)


def percentages(counts: List[int]) -> List[float]:
    """Each count as a share of ``sum(counts)``, rounded half-up to one decimal."""
    total = sum(counts)
    if total <= 0:
        return [0.0 for _ in counts]
    tenth = Decimal("0.1")
    return [float((Decimal(c) * 100 / Decimal(total)).quantize(tenth, rounding=ROUND_HALF_UP)) for c in counts]


def empty_counts() -> Dict[str, Any]:
    return {"total": 0, "empty": True, "message": NO_DATA_MESSAGE, "rows": []}


def _count_labels(predictions: pd.Series, categories: Optional[Iterable[Category]] = None) -> Dict[str, Any]:
    if predictions.empty:
        return empty_counts()
    labels = predictions.map(normalize_label)
    if categories is not None:
        keep = set(categories)
        labels = labels[labels.map(categorize).isin(keep)]
    if labels.empty:
        return empty_counts()

    # groupby(sort=False) keeps first-seen order; the stable sort keeps it on ties.
    counts = labels.groupby(labels, sort=False).size().sort_values(ascending=False, kind="stable")
    shares = percentages(counts.tolist())

    rows = []
    for (label, count), pct in zip(counts.items(), shares):
        category = categorize(label)
        rows.append(
            {
                "label": label,
                "category": category.value,
                "category_label": category_style(category)["label"],
                "count": int(count),
                "percentage": pct,
                "color": label_color(label),
            }
        )
    return {"total": int(counts.sum()), "empty": False, "message": None, "rows": rows}


def compute_category_counts(scans: pd.DataFrame) -> Dict[str, Any]:
    predictions = scans["prediction"] if "prediction" in scans.columns else pd.Series(dtype=object)
    return _count_labels(predictions)


def compute_disease_distribution(scans: pd.DataFrame) -> Dict[str, Any]:
    """Like category counts, restricted to diseases and "No Disease Detected"."""
    predictions = scans["prediction"] if "prediction" in scans.columns else pd.Series(dtype=object)
    return _count_labels(predictions, DISTRIBUTION_CATEGORIES)


def as_mapping(result: Dict[str, Any]) -> Dict[str, int]:
    return {row["label"]: row["count"] for row in result["rows"]}


def compute_disease_counts(filters: FilterState, backend: DataBackend, tz: tzinfo) -> Dict[str, Any]:
    bounds = derive_bounds(filters, tz)
    scans = backend.fetch_scans(bounds, ["prediction", "location", "timestamp"])
    return {"filters": filters_dict(filters), **compute_category_counts(scans)}
