from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any

# Prefer the service JSONL writer; fall back to stdlib logging when the engine
# is used without the service package (e.g. imported as a library).
_logging_backend = None
try:
    from service import logging_utils as _svc_logging  # type: ignore

    _logging_backend = _svc_logging
except ImportError:
    _logging_backend = None

_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "cron_secret",
    "authorization",
    "auth",
    "bearer",
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """
    Copy the record into JSON-safe form and redact secret-like top-level keys.
    Nested redaction happens again in service.logging_utils.
    """
    redacted = _jsonable(record)
    for k in list(redacted.keys()):
        lk = k.lower()
        if lk in _REDACT_KEYS or lk.endswith("_secret"):
            redacted[k] = "***REDACTED***"
    return redacted


def activity(record: dict[str, Any]) -> None:
    """
    Write an activity record to the JSONL activity log if available.
    Falls back to stdlib logging as structured info.
    """
    payload = _redact_record(record)
    if _logging_backend is not None:
        try:
            _logging_backend.write_activity_log(payload)
            return
        except (OSError, TypeError, ValueError):
            logging.getLogger("nchd_jobs.activity").debug("activity log write failed", exc_info=True)
    logging.getLogger("nchd_jobs.activity").info(payload)


def error(record: dict[str, Any]) -> None:
    """
    Write an error record to the JSONL error log if available.
    Falls back to stdlib logging as structured error.
    """
    payload = _redact_record(record)
    if _logging_backend is not None:
        try:
            _logging_backend.write_error_log(payload)
            return
        except (OSError, TypeError, ValueError):
            logging.getLogger("nchd_jobs.error").debug("error log write failed", exc_info=True)
    logging.getLogger("nchd_jobs.error").error(payload)
