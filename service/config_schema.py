# service/config_schema.py
"""
Service configuration (JSON, or YAML when PyYAML is installed).

    {
      "timezone": "Europe/Dublin",
      "module": {"sqlite_path": "/app/local/state/nchd_jobs.db", "collector_timeout_sec": 120},
      "schedule": [
        {"id": "nightly", "trigger": {"cron": "0 2 * * *"}},
        {"id": "hse-midday", "collector": "hse", "daily_time": {"time": "12:30"}}
      ],
      "http": {"host": "0.0.0.0", "port": 8000,
               "api_key_env": "SCRAPE_API_KEY", "cron_secret_env": "CRON_SECRET"}
    }

`module` holds Settings kwargs for the engine. A schedule entry without
`collector` runs every collector; with one it runs just that collector.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the config is invalid."""


@dataclass
class _LoadResult:
    """Internal convenience container (not required by callers)."""

    cfg: dict[str, Any]
    source: str


@dataclass(frozen=True)
class HttpSettings:
    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str | None = None
    cron_secret: str | None = None


_TOP_LEVEL_KEYS = {"timezone", "module", "schedule", "http"}
_TRIGGER_FIELDS = ("cron", "interval", "date", "daily_time")
_HTTP_KEYS = {"host", "port", "api_key_env", "cron_secret_env"}
_DAILY_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Load the service configuration.

    Resolution order:
      1) Explicit `path` argument (if provided)
      2) os.environ['CONFIG_PATH'] (if set and the file exists)
      3) Internal default (empty module settings, default schedule)

    Returns:
        dict with keys timezone, module, schedule, http.
    """
    resolved_path = path or os.environ.get("CONFIG_PATH")
    if resolved_path and not path and not os.path.exists(resolved_path):
        logger.info("CONFIG_PATH %s does not exist; using default config.", resolved_path)
        resolved_path = None
    if not resolved_path:
        logger.info("No config file provided; using default config.")
        cfg: dict[str, Any] = {}
    else:
        cfg = _read_any(resolved_path).cfg

    _apply_top_level_defaults(cfg)
    return cfg


def validate(cfg: dict[str, Any]) -> None:
    """
    Validate the configuration. Raise ConfigError on any problem.
    No prints, no sys.exit().
    """
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a dict.")

    unknown = set(cfg) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigError(f"Unknown top-level key(s): {sorted(unknown)}")

    tz = cfg.get("timezone")
    if tz is not None and not isinstance(tz, str):
        raise ConfigError("'timezone' must be a string if provided.")

    module = cfg.get("module")
    if module is not None and not isinstance(module, dict):
        raise ConfigError("'module' must be an object of engine settings.")

    http = cfg.get("http")
    if http is not None:
        if not isinstance(http, dict):
            raise ConfigError("'http' must be an object.")
        bad = set(http) - _HTTP_KEYS
        if bad:
            raise ConfigError(f"'http' has unknown field(s): {sorted(bad)}")
        if "port" in http:
            port = _to_int(http["port"], field="http.port", job_id="http", allow_zero=False)
            if port > 65535:
                raise ConfigError("'http.port' must be <= 65535.")
        for k in ("host", "api_key_env", "cron_secret_env"):
            if k in http and not isinstance(http[k], str):
                raise ConfigError(f"'http.{k}' must be a string.")

    schedule = cfg.get("schedule")
    if schedule is None:
        return
    if not isinstance(schedule, list):
        raise ConfigError("'schedule' must be a list.")

    seen_ids: set[str] = set()
    for idx, entry in enumerate(schedule):
        if not isinstance(entry, dict):
            raise ConfigError(f"Schedule entry at index {idx} must be an object/dict.")

        job_id = _derive_job_id(entry, idx)
        if job_id in seen_ids:
            raise ConfigError(f"Duplicate schedule id '{job_id}'.")
        seen_ids.add(job_id)

        collector = entry.get("collector")
        if collector is not None and (not isinstance(collector, str) or not collector.strip()):
            raise ConfigError(f"Schedule '{job_id}': 'collector' must be a non-empty string if provided.")

        # Exactly one trigger among cron | interval | date | daily_time,
        # nested under "trigger": {...} or at entry top-level (not both).
        trigger_container = entry.get("trigger", entry)
        if "trigger" in entry and not isinstance(trigger_container, dict):
            raise ConfigError(f"Schedule '{job_id}': 'trigger' must be an object when present.")
        if "trigger" in entry:
            also_top_level = [k for k in _TRIGGER_FIELDS if k in entry]
            if also_top_level:
                raise ConfigError(
                    f"Schedule '{job_id}': do not mix top-level triggers {also_top_level} with nested 'trigger'."
                )

        present_triggers = [k for k in _TRIGGER_FIELDS if k in trigger_container]
        if len(present_triggers) != 1:
            raise ConfigError(
                f"Schedule '{job_id}': exactly one trigger required among {', '.join(_TRIGGER_FIELDS)}."
            )

        trig_key = present_triggers[0]
        trig_val = trigger_container[trig_key]
        if trig_key == "interval":
            if not isinstance(trig_val, dict):
                raise ConfigError(f"Schedule '{job_id}': interval must be an object of time kwargs.")
            _validate_int_map(
                {k: v for k, v in trig_val.items() if k not in ("timezone", "start_date", "end_date")},
                job_id,
                allow_zero=True,
            )
        if trig_key == "cron" and not isinstance(trig_val, (str, dict)):
            raise ConfigError(f"Schedule '{job_id}': cron must be a crontab string or an object.")
        if trig_key == "date" and not (isinstance(trig_val, str) and trig_val.strip()) and not isinstance(trig_val, dict):
            raise ConfigError(f"Schedule '{job_id}': date must be a non-empty ISO-8601 string.")
        if trig_key == "daily_time":
            times = trig_val.get("time") if isinstance(trig_val, dict) else trig_val
            for t in times if isinstance(times, list) else [times]:
                _validate_daily_time(t, job_id)

        _require_optional_bool(entry, "coalesce", job_id)
        _require_optional_int(entry, "max_instances", job_id, allow_zero=False)
        _require_optional_int(entry, "misfire_grace_time", job_id, allow_zero=True)

        for opt_str in ("summary", "description"):
            if opt_str in entry and not isinstance(entry[opt_str], str):
                raise ConfigError(f"Schedule '{job_id}': '{opt_str}' must be a string if provided.")


def resolve_http(cfg: dict[str, Any]) -> HttpSettings:
    """Resolve the http block, reading the API key / cron secret from the named env vars."""
    http = cfg.get("http") or {}

    def _env(name_key: str) -> str | None:
        name = http.get(name_key)
        if not isinstance(name, str) or not name.strip():
            return None
        return os.getenv(name.strip()) or None

    return HttpSettings(
        host=str(http.get("host") or "0.0.0.0"),
        port=_to_int(http.get("port", 8000), field="http.port", job_id="http", allow_zero=False),
        api_key=_env("api_key_env"),
        cron_secret=_env("cron_secret_env"),
    )


def _apply_top_level_defaults(cfg: dict[str, Any]) -> None:
    tz = cfg.get("timezone")
    if not isinstance(tz, str) or not tz.strip():
        cfg["timezone"] = os.environ.get("TZ", "UTC")

    if not isinstance(cfg.get("module"), dict):
        cfg["module"] = {}

    http = cfg.get("http")
    if not isinstance(http, dict):
        http = {}
    cfg["http"] = {
        "host": "0.0.0.0",
        "port": 8000,
        "api_key_env": "SCRAPE_API_KEY",
        "cron_secret_env": "CRON_SECRET",
        **http,
    }

    schedule = cfg.get("schedule")
    if not isinstance(schedule, list):
        cfg["schedule"] = []
        return

    normalized: list[dict[str, Any]] = []
    for idx, entry in enumerate(schedule):
        if not isinstance(entry, dict):
            raise ConfigError(f"Schedule entry at index {idx} must be an object/dict.")
        entry_copy = dict(entry)
        entry_copy["id"] = _derive_job_id(entry_copy, idx)
        if isinstance(entry_copy.get("collector"), str):
            entry_copy["collector"] = entry_copy["collector"].strip().lower()

        if "coalesce" in entry_copy:
            entry_copy["coalesce"] = _to_bool(entry_copy["coalesce"], field="coalesce", job_id=entry_copy["id"])
        for n, allow_zero in (("max_instances", False), ("misfire_grace_time", True)):
            if n in entry_copy:
                entry_copy[n] = _to_int(entry_copy[n], field=n, job_id=entry_copy["id"], allow_zero=allow_zero)
        normalized.append(entry_copy)

    cfg["schedule"] = normalized


def _derive_job_id(entry: dict[str, Any], idx: int) -> str:
    # id | name | collector → id
    for key in ("id", "name", "collector"):
        v = entry.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return f"run_all_{idx}"


def _validate_daily_time(dt: Any, job_id: str) -> None:
    if not isinstance(dt, str):
        raise ConfigError(f"Schedule '{job_id}': 'daily_time' must be a string like 'HH:MM'.")
    m = _DAILY_TIME_RE.match(dt.strip())
    if not m:
        raise ConfigError(f"Schedule '{job_id}': 'daily_time' must match HH:MM (24h).")
    hour, minute = int(m.group(1)), int(m.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ConfigError(f"Schedule '{job_id}': 'daily_time' hour/minute out of range (00:00..23:59).")


def _require_optional_bool(entry: dict[str, Any], field: str, job_id: str) -> None:
    if field in entry:
        _to_bool(entry[field], field=field, job_id=job_id)  # will raise if invalid


def _require_optional_int(entry: dict[str, Any], field: str, job_id: str, *, allow_zero: bool) -> None:
    if field in entry:
        _to_int(entry[field], field=field, job_id=job_id, allow_zero=allow_zero)  # will raise if invalid


def _validate_int_map(m: dict[str, Any], job_id: str, *, allow_zero: bool) -> None:
    for k, v in m.items():
        _to_int(v, field=f"interval.{k}", job_id=job_id, allow_zero=allow_zero)


def _to_bool(value: Any, *, field: str, job_id: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in {"1", "true", "yes", "on"}:
            return True
        if v in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"'{job_id}': '{field}' must be a boolean (or boolean-like string).")


def _to_int(value: Any, *, field: str, job_id: str, allow_zero: bool) -> int:
    try:
        iv = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"'{job_id}': '{field}' must be an integer.") from err
    if iv < 0 or (iv == 0 and not allow_zero):
        raise ConfigError(f"'{job_id}': '{field}' must be >= {'0' if allow_zero else '1'} (got {iv}).")
    return iv


def _read_any(path: str) -> _LoadResult:
    lower = path.lower()
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    if lower.endswith(".yml") or lower.endswith(".yaml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Top-level YAML must be a mapping/object.")
        return _LoadResult(cfg=data, source=path)

    # JSON for .json and as the fallback for unknown extensions
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Top-level JSON must be an object.")
    return _LoadResult(cfg=data, source=path)
