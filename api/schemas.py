from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class FilterStateModel(BaseModel):
    location: str = ""
    time_scope: Literal["all", "year", "month"] = "all"
    year: Optional[int] = Field(default=None, ge=1, le=9999)
    month: Optional[int] = Field(default=None, ge=1, le=12)


class FilterOptionsResponse(BaseModel):
    locations: List[str]
    years: List[int]


class ErrorResponse(BaseModel):
    error: str
    type: str
    code: Optional[str] = None
    message: Optional[str] = None


class ReportSummaryResponse(BaseModel):
    total_scans: int
    date_range: str
    barangay: str
    diseases: Dict[str, int]
    file_name: str
