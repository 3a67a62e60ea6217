"""Classification label normalization.

The mobile classifier emits free text that varies by confidence tier and
language ("Mosaic Virus (low confidence)", "Walang nakitang sakit", ...).
Everything downstream works on the normalized label and its ``Category``;
raw text is only inspected here.
"""

from __future__ import annotations

import math
import numbers
import re
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Category(str, Enum):
    DISEASE = "disease"
    NO_DISEASE = "no-disease"
    NO_LEAF = "no-leaf"
    ERROR = "error"
    UNKNOWN = "unknown"


NO_LEAF_LABEL = "No Bitter Gourd Leaf Detected"
NO_DISEASE_LABEL = "No Disease Detected"
ERROR_LABEL = "Error in Analysis"
UNKNOWN_LABEL = "Unknown"

# First match wins.
LABEL_RULES: List[Tuple[Tuple[str, ...], str, Category]] = [
    (("no bitter gourd leaf", "walang nakitang dahon", "no leaf detected"), NO_LEAF_LABEL, Category.NO_LEAF),
    (("no disease", "walang nakitang sakit"), NO_DISEASE_LABEL, Category.NO_DISEASE),
    (("error", "no valid detection", "invalid detection"), ERROR_LABEL, Category.ERROR),
    (("downey mildew", "downy mildew"), "Downey Mildew", Category.DISEASE),
    (("fusarium wilt",), "Fusarium Wilt", Category.DISEASE),
    (("mosaic virus",), "Mosaic Virus", Category.DISEASE),
]

LOW_CONFIDENCE_RE = re.compile(r"\(\s*low confidence\s*\)", re.IGNORECASE)

CATEGORY_STYLES: Dict[Category, Dict[str, str]] = {
    Category.DISEASE: {"color": "#2196F3", "label": "Detected Disease"},
    Category.NO_DISEASE: {"color": "#4CAF50", "label": "No Disease"},
    Category.NO_LEAF: {"color": "#757575", "label": "No Leaf Detected"},
    Category.ERROR: {"color": "#F44336", "label": "Error"},
    Category.UNKNOWN: {"color": "#607D8B", "label": "Unknown"},
}

DISEASE_COLORS: Dict[str, str] = {
    "mosaic virus": "#2196F3",
    "downey mildew": "#FF9800",
    "downy mildew": "#FF9800",
    "fusarium wilt": "#9C27B0",
    "no disease detected": "#4CAF50",
    "walang nakitang sakit": "#4CAF50",
}

FALLBACK_COLORS = [
    "#00BCD4",  # cyan
    "#F44336",  # red
    "#FFC107",  # amber
    "#795548",  # brown
    "#607D8B",  # blue grey
    "#E91E63",  # pink
    "#009688",  # teal
    "#3F51B5",  # indigo
]

EMPTY_CONFIDENCE = "EMPTY"


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _match_rule(text: str) -> Optional[Tuple[str, Category]]:
    lowered = text.lower()
    for markers, label, category in LABEL_RULES:
        if any(m in lowered for m in markers):
            return label, category
    return None


def normalize_label(raw: object) -> str:
    if _is_missing(raw):
        return UNKNOWN_LABEL
    text = str(raw)
    matched = _match_rule(text)
    if matched is not None:
        return matched[0]
    stripped = LOW_CONFIDENCE_RE.sub("", text).strip()
    return stripped or UNKNOWN_LABEL


def categorize(label: object) -> Category:
    """Category of a raw or already-normalized label."""
    if _is_missing(label):
        return Category.UNKNOWN
    text = str(label)
    if text.strip().lower() == UNKNOWN_LABEL.lower():
        return Category.UNKNOWN
    matched = _match_rule(text)
    if matched is not None:
        return matched[1]
    if not LOW_CONFIDENCE_RE.sub("", text).strip():
        return Category.UNKNOWN
    return Category.DISEASE


def category_style(category: Category) -> Dict[str, str]:
    return CATEGORY_STYLES.get(category, CATEGORY_STYLES[Category.UNKNOWN])


def label_hash(text: str) -> int:
    """Signed 32-bit ``h * 31 + unit`` hash over UTF-16 code units."""
    h = 0
    units = text.encode("utf-16-le")
    for i in range(0, len(units), 2):
        h = (h * 31 + int.from_bytes(units[i:i + 2], "little")) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def disease_color(label: str) -> str:
    name = label.lower()
    if name in DISEASE_COLORS:
        return DISEASE_COLORS[name]
    if name:
        for key, color in DISEASE_COLORS.items():
            if key in name or name in key:
                return color
    return FALLBACK_COLORS[abs(label_hash(label)) % len(FALLBACK_COLORS)]


def label_color(label: str) -> str:
    """Display color for a normalized label.

    Diseases and "no disease" use the per-disease palette; the other
    categories use their category color.
    """
    category = categorize(label)
    if category in (Category.DISEASE, Category.NO_DISEASE):
        return disease_color(label)
    return category_style(category)["color"]


def parse_confidence(value: object, label: object = None) -> Optional[float]:
    """Confidence as a 0-100 percentage, or None when it does not apply."""
    if categorize(label) is Category.NO_LEAF:
        return None
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip() == EMPTY_CONFIDENCE:
        return None
    # a stored numeric 0 means the model gave no confidence
    if isinstance(value, numbers.Number) and value == 0:
        return None

    text = str(value).strip()
    is_percent = "%" in text
    try:
        num = Decimal(text.replace("%", "").strip())
    except InvalidOperation:
        return None
    if not num.is_finite():
        return None
    if is_percent or num > 1:
        return float(num)
    return float(num * 100)


def format_confidence(value: object, label: object = None, placeholder: str = "—") -> str:
    pct = parse_confidence(value, label)
    return f"{pct:.1f}%" if pct is not None else placeholder
