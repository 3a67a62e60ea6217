from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "Asia/Manila"
DEFAULT_ALLOWED_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:8501")


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    data_dir: Optional[Path] = None
    timezone: str = DEFAULT_TIMEZONE
    scans_table: str = "history"
    users_table: str = "users"
    refresh_seconds: int = 300
    recent_limit: int = 10
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS

    @property
    def tz(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC")


def _int_env(env: Mapping[str, str], key: str, default: int) -> int:
    try:
        value = int(env.get(key, default))
    except Exception:
        return default
    return value if value > 0 else default


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    data_dir = (env.get("BITTERGUARD_DATA_DIR") or "").strip()
    origins = [o.strip() for o in (env.get("BITTERGUARD_ALLOWED_ORIGINS") or "").split(",") if o.strip()]
    return Settings(
        supabase_url=env.get("SUPABASE_URL") or None,
        supabase_key=env.get("SUPABASE_KEY") or env.get("SUPABASE_ANON_KEY") or None,
        data_dir=Path(data_dir) if data_dir else None,
        timezone=(env.get("BITTERGUARD_TIMEZONE") or DEFAULT_TIMEZONE).strip(),
        scans_table=env.get("BITTERGUARD_SCANS_TABLE") or "history",
        users_table=env.get("BITTERGUARD_USERS_TABLE") or "users",
        refresh_seconds=_int_env(env, "BITTERGUARD_REFRESH_SECONDS", 300),
        recent_limit=_int_env(env, "BITTERGUARD_RECENT_LIMIT", 10),
        allowed_origins=tuple(origins) or DEFAULT_ALLOWED_ORIGINS,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
