from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from typing import Any

_WS_RE = re.compile(r"\s+")


def clean_text(s: str | None) -> str:
    """Trim and collapse internal whitespace (including newlines/nbsp)."""
    if not s:
        return ""
    return _WS_RE.sub(" ", str(s).replace("\xa0", " ")).strip()


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
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix.
    """
    return utcnow().isoformat().replace("+00:00", "Z")


def getenv_str(name: str, default: str | None = None) -> str | None:
    """
    Typed wrapper for environment access.
    """
    val = os.getenv(name)
    return val if val is not None else default
