from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from bitterguard.data import FrameBackend
from bitterguard.filters import to_epoch_ms

NOW = datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc)


def ms(dt: datetime) -> str:
    return str(to_epoch_ms(dt))


@pytest.fixture
def scans() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"id": "1", "user_id": "u1", "prediction": "Mosaic Virus (low confidence)", "confidence": "74.4%",
             "location": "Barangay Sto. Angel, San Pablo", "timestamp": ms(NOW - timedelta(hours=1))},
            {"id": "2", "user_id": "u2", "prediction": "mosaic virus", "confidence": 0.91,
             "location": "Barangay Sto. Angel, San Pablo", "timestamp": ms(NOW - timedelta(days=2))},
            {"id": "3", "user_id": "u1", "prediction": "No disease detected", "confidence": "EMPTY",
             "location": "Barangay San Roque", "timestamp": ms(NOW - timedelta(days=3))},
            {"id": "4", "user_id": "u3", "prediction": "No Bitter Gourd Leaf Detected", "confidence": 0.5,
             "location": "Barangay San Roque", "timestamp": ms(NOW - timedelta(days=40))},
            {"id": "5", "user_id": None, "prediction": "Error in analysis", "confidence": None,
             "location": "barangay sto. angel", "timestamp": ms(datetime(2023, 12, 31, 23, 59, 59, 999000, tzinfo=timezone.utc))},
            {"id": "6", "user_id": "u2", "prediction": "Downy Mildew", "confidence": "88",
             "location": None, "timestamp": ms(NOW - timedelta(days=10))},
        ]
    )


@pytest.fixture
def users() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"id": "u1", "email": "grower@example.com", "phone": "09171234567"},
            {"id": "u2", "email": None, "phone": "09998887777"},
            {"id": "u3", "email": "agri@example.com", "phone": None},
        ]
    )


@pytest.fixture
def backend(scans, users) -> FrameBackend:
    return FrameBackend(scans, users)
