from __future__ import annotations

import os
from datetime import date, datetime, timezone
from typing import Any


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    return str(v).strip().lower() in {"1", "true", "yes", "on", "y", "t"}


def now_iso() -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix, second precision.
    """
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def getenv_str(name: str, default: str | None = None) -> str | None:
    """
    Typed wrapper for environment access; blank counts as unset.
    """
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return val.strip()
