"""JSON API over the dashboard compute functions.

Serve with ``uvicorn api.main:app`` (install the ``serve`` extra).
"""
from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import ErrorResponse, FilterOptionsResponse, FilterStateModel, ReportSummaryResponse
from bitterguard.config import get_settings
from bitterguard.data import compute_filter_options, get_backend
from bitterguard.errors import DataAccessError, describe_failure
from bitterguard.filters import FilterState, normalize_filters
from bitterguard.metrics_counts import compute_disease_counts
from bitterguard.metrics_overview import compute_overview
from bitterguard.metrics_recent import compute_recent_scans
from bitterguard.report import generate_report


app = FastAPI(title="BitterGuard Admin Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _filters_from_model(model: FilterStateModel) -> FilterState:
    return normalize_filters(model.model_dump())


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception, action: str) -> JSONResponse:
    if isinstance(exc, DataAccessError):
        body = ErrorResponse(error=str(exc), type=type(exc).__name__, code=exc.code, message=describe_failure(exc, action))
        return JSONResponse(status_code=502, content=body.model_dump())
    body = ErrorResponse(error=str(exc), type=type(exc).__name__)
    return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))


@app.get("/meta/filters", response_model=FilterOptionsResponse)
def meta_filters():
    try:
        return _json(compute_filter_options(get_backend(), get_settings().tz))
    except Exception as exc:
        logger.exception("meta_filters failed")
        return _error(exc, "load filter options")


@app.post("/overview")
def overview(filters: FilterStateModel):
    try:
        f = _filters_from_model(filters)
        return _json(compute_overview(f, get_backend(), get_settings().tz))
    except Exception as exc:
        logger.exception("overview failed")
        return _error(exc, "load dashboard data")


@app.post("/disease-counts")
def disease_counts(filters: FilterStateModel):
    try:
        f = _filters_from_model(filters)
        return _json(compute_disease_counts(f, get_backend(), get_settings().tz))
    except Exception as exc:
        logger.exception("disease_counts failed")
        return _error(exc, "load disease counts")


@app.post("/recent-scans")
def recent_scans(filters: FilterStateModel, limit: Optional[int] = Query(default=None, ge=1, le=500)):
    try:
        settings = get_settings()
        f = _filters_from_model(filters)
        return _json(compute_recent_scans(f, get_backend(), settings.tz, limit=limit or settings.recent_limit))
    except Exception as exc:
        logger.exception("recent_scans failed")
        return _error(exc, "load recent scans")


@app.post("/report/summary", response_model=ReportSummaryResponse)
def report_summary(filters: FilterStateModel):
    try:
        tz = get_settings().tz
        report = generate_report(_filters_from_model(filters), get_backend(), tz, datetime.now(tz).date())
        if report["empty"]:
            return JSONResponse(status_code=404, content={"error": report["message"]})
        return _json(report["summary"])
    except Exception as exc:
        logger.exception("report_summary failed")
        return _error(exc, "generate the report")


@app.post("/export/report")
def export_report(filters: FilterStateModel):
    try:
        tz = get_settings().tz
        report = generate_report(_filters_from_model(filters), get_backend(), tz, datetime.now(tz).date())
    except Exception as exc:
        logger.exception("export_report failed")
        return _error(exc, "generate the report")

    if report["empty"]:
        return JSONResponse(status_code=404, content={"error": report["message"]})
    filename = report["summary"]["file_name"]
    return Response(
        content=report["csv"].encode("utf-8"),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
