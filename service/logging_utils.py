# service/logging_utils.py
"""
Structured JSONL logs for the NCHD jobs service.

Two streams share one writer:
  activity  run starts/finishes, collector outcomes, HTTP triggers, schedules
  error     collector failures, persistence errors, unexpected exceptions

Each stream appends one JSON object per line to <LOG_DIR>/<prefix>-YYYY-MM-DD.jsonl.
Environment (read on every write, so tests and containers can redirect):

  LOG_DIR                 base directory (default /app/local/logs)
  ACTIVITY_LOG_PREFIX     activity file prefix (default "activity")
  ERROR_LOG_PREFIX        error file prefix (default "error")
  ACTIVITY_LOG_MAX_BYTES  size rotation threshold for both streams; <=0 disables it
  LOG_DISABLE=1           drop every record
"""

from __future__ import annotations

import contextlib
import datetime as _dt
import json
import os
import socket
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

REDACTED = "***REDACTED***"

# Substrings of keys whose values never reach disk (case-insensitive)
_SECRET_KEY_PARTS = frozenset(
    {
        "password",
        "token",
        "apikey",
        "api_key",
        "secret",
        "authorization",
        "cookie",
    }
)

_HOST_META = {"host": socket.gethostname(), "pid": os.getpid()}


@dataclass(frozen=True)
class _Stream:
    prefix_env: str
    default_prefix: str

    def prefix(self) -> str:
        return os.getenv(self.prefix_env, self.default_prefix)

    def path_for(self, day: _dt.date | None = None) -> str:
        day = day or _dt.date.today()
        return os.path.join(_log_dir(), f"{self.prefix()}-{day.isoformat()}.jsonl")


ACTIVITY = _Stream("ACTIVITY_LOG_PREFIX", "activity")
ERROR = _Stream("ERROR_LOG_PREFIX", "error")


# ---- Public API --------------------------------------------------------------


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Append one activity record. The caller's dict is never mutated.
    Raises on serialization or unrecoverable I/O errors.
    """
    _append(ACTIVITY, record)


def write_error_log(record: dict[str, Any]) -> None:
    _append(ERROR, record)


def get_activity_log_path() -> str:
    return ACTIVITY.path_for()


def get_error_log_path() -> str:
    return ERROR.path_for()


def redact(record: dict[str, Any], keys: Iterable[str] | None = None) -> dict[str, Any]:
    """Deep copy of `record` with secret-like keys and bearer tokens scrubbed."""
    return _scrub(record, frozenset(k.lower() for k in keys) if keys else _SECRET_KEY_PARTS)


# ---- Internals ---------------------------------------------------------------


def _disabled() -> bool:
    return os.getenv("LOG_DISABLE", "").strip().lower() in {"1", "true", "yes", "on"}


def _log_dir() -> str:
    return os.getenv("LOG_DIR", "/app/local/logs")


def _max_bytes() -> int:
    try:
        return int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0"))
    except ValueError:
        return 0


def _scrub(value: Any, parts: frozenset[str]) -> Any:
    if isinstance(value, dict):
        return {
            k: REDACTED if isinstance(k, str) and any(p in k.lower() for p in parts) else _scrub(v, parts)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v, parts) for v in value)
    if isinstance(value, str) and "bearer " in value.lower():
        scheme = value.split(" ", 1)[0]
        return f"{scheme} {REDACTED}"
    return value


def _envelope(record: dict[str, Any]) -> dict[str, Any]:
    out = _scrub(record, _SECRET_KEY_PARTS)
    out.setdefault("ts", _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="seconds"))
    meta = out.get("_meta")
    out["_meta"] = {**(meta if isinstance(meta, dict) else {}), **_HOST_META}
    return out


def _rotate_if_large(path: str) -> None:
    limit = _max_bytes()
    if limit <= 0:
        return
    try:
        if os.path.getsize(path) < limit:
            return
    except FileNotFoundError:
        return
    stamp = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    with contextlib.suppress(FileNotFoundError):
        os.replace(path, f"{path}.{stamp}")


def _append(stream: _Stream, record: dict[str, Any]) -> None:
    if _disabled():
        return
    path = stream.path_for()
    # Serialize before touching the filesystem; default=str covers stray datetimes/enums.
    line = json.dumps(_envelope(record), ensure_ascii=False, separators=(",", ":"), default=str) + "\n"
    data = line.encode("utf-8")

    for attempt in (1, 2):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        _rotate_if_large(path)
        try:
            fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o644)
            try:
                os.write(fd, data)  # single O_APPEND write keeps lines whole
            finally:
                os.close(fd)
            return
        except OSError:
            if attempt == 2:
                raise
