from __future__ import annotations

from typing import Optional

ACCESS_CODES = {"42501", "42P17", "PGRST301", "401", "403"}
ACCESS_MARKERS = ("permission", "row-level security", "row level security", "access denied")


class DataAccessError(Exception):
    """A data backend call failed. Carries the backend's code, message and hint."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.hint = hint
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "hint": self.hint, "details": self.details}


def is_access_restricted(exc: BaseException) -> bool:
    code = str(getattr(exc, "code", "") or "")
    if code in ACCESS_CODES:
        return True
    text = " ".join(str(part) for part in (getattr(exc, "message", None) or str(exc), getattr(exc, "hint", None)) if part)
    if "RLS" in text:
        return True
    lowered = text.lower()
    return any(m in lowered for m in ACCESS_MARKERS)


def describe_failure(exc: BaseException, action: str = "load dashboard data") -> str:
    if is_access_restricted(exc):
        return f"Unable to {action} due to access restrictions. Please contact your administrator."
    return f"Unable to {action}. Please refresh the page or try again later."
