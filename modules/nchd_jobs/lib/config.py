from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .utils import getenv_str, truthy

DEFAULT_SQLITE_PATH = "/app/local/state/nchd_jobs.db"


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Models
# -----------------------------
@dataclass
class Settings:
    """
    Canonical configuration for an 'nchd_jobs' run.

    Collector selection is by registered name. When `collectors` is empty every
    available collector runs, in registration order. Browser collectors are only
    registered when `enable_browser` is true (None = auto-detect Playwright).
    """

    sqlite_path: str = DEFAULT_SQLITE_PATH
    hospitals_path: str | None = None

    # Orchestration
    collectors: list[str] = field(default_factory=list)
    collector_timeout_sec: float = 120.0
    enable_browser: bool | None = None
    skip_network: bool = False

    # Normalization defaults
    default_deadline_days: int = 21

    # Politeness / paging
    delay_seconds: float = 2.0
    max_pages: int = 5
    http_timeout_sec: float = 20.0

    # Per-collector extras, e.g. {"stub": {"items": [...]}}
    collector_params: dict[str, dict[str, Any]] = field(default_factory=dict)

    def params_for(self, name: str) -> dict[str, Any]:
        return dict(self.collector_params.get(name) or {})

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs, falling back to environment variables.

        Expected kwargs (all optional):

            sqlite_path: str = $NCHD_SQLITE_PATH or "/app/local/state/nchd_jobs.db"
            hospitals_path: str  # alternative hospitals.json
            collectors: list[str] | "a,b"  # run only these (registration order kept)
            collector_timeout_sec: float = 120
            enable_browser: bool  # default: $NCHD_ENABLE_BROWSER, else auto-detect
            skip_network: bool = false  # only the stub collector is registered
            default_deadline_days: int = 21
            delay_seconds: float = 2.0
            max_pages: int = 5
            http_timeout_sec: float = 20
            collector_params: {name: {...}}
        """
        kw = dict(kwargs or {})

        sqlite_path = str(kw.get("sqlite_path") or getenv_str("NCHD_SQLITE_PATH") or DEFAULT_SQLITE_PATH)
        hospitals_path = str(kw.get("hospitals_path") or "").strip() or None

        enable_raw = kw.get("enable_browser", getenv_str("NCHD_ENABLE_BROWSER"))
        enable_browser = None if enable_raw is None or enable_raw == "" else truthy(enable_raw)

        collector_params = kw.get("collector_params") or {}
        if not isinstance(collector_params, dict):
            raise ConfigError("'collector_params' must be an object keyed by collector name.")

        try:
            settings = cls(
                sqlite_path=sqlite_path,
                hospitals_path=hospitals_path,
                collectors=_parse_names(kw.get("collectors")),
                collector_timeout_sec=float(kw.get("collector_timeout_sec") or 120.0),
                enable_browser=enable_browser,
                skip_network=truthy(kw.get("skip_network")),
                default_deadline_days=int(kw.get("default_deadline_days") or 21),
                delay_seconds=float(kw.get("delay_seconds") if kw.get("delay_seconds") is not None else 2.0),
                max_pages=int(kw.get("max_pages") or 5),
                http_timeout_sec=float(kw.get("http_timeout_sec") or 20.0),
                collector_params={str(k).strip().lower(): dict(v or {}) for k, v in collector_params.items()},
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid nchd_jobs settings: {e}") from e

        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _parse_names(value: Any) -> list[str]:
    """Accepts None, "hse,rezoomo" or ["hse", "rezoomo"]; returns lower-cased names."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        raise ConfigError("'collectors' must be a list of names or a comma-separated string.")
    return [str(v).strip().lower() for v in value if str(v).strip()]


def _validate_settings(s: Settings) -> None:
    if not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty.")
    if s.collector_timeout_sec <= 0:
        raise ConfigError("'collector_timeout_sec' must be > 0.")
    if s.default_deadline_days <= 0:
        raise ConfigError("'default_deadline_days' must be >= 1.")
    if s.delay_seconds < 0:
        raise ConfigError("'delay_seconds' must be >= 0.")
    if s.max_pages <= 0:
        raise ConfigError("'max_pages' must be >= 1.")
    if s.http_timeout_sec <= 0:
        raise ConfigError("'http_timeout_sec' must be > 0.")
