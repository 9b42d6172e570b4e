from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from .lib.browser import browser_available
from .lib.collectors import catalogue
from .lib.collectors.base import Collector
from .lib.config import ConfigError, Settings
from .lib.hospitals import HospitalResolver, load_hospitals
from .lib.logging_bridge import activity as log_activity
from .lib.normalize import Normalizer
from .lib.orchestrator import Orchestrator, OrchestratorBuilder
from .lib.store import JobStore, SqliteJobStore
from .lib.utils import utcnow

LOG = logging.getLogger(__name__)


def _selected(settings: Settings, known: dict[str, type[Collector]]) -> list[type[Collector]]:
    if settings.skip_network:
        return [known["stub"]] if "stub" in known else []
    if settings.collectors:
        unknown = [n for n in settings.collectors if n not in known]
        if unknown:
            raise ConfigError(f"Unknown collector(s): {', '.join(unknown)}. Known: {', '.join(known)}")
        return [cls for name, cls in known.items() if name in settings.collectors]
    return [cls for cls in known.values() if cls.default_enabled]


def build_orchestrator(
    settings: Settings,
    *,
    store: JobStore | None = None,
    collector_classes: Iterable[type[Collector]] | None = None,
    browser_ok: bool | Callable[[], bool] | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Orchestrator:
    """
    Composition root: hospitals -> resolver -> normalizer -> collectors -> orchestrator.

    Browser collectors are registered only when a browser can run here
    (settings.enable_browser, else Playwright auto-detection). The store
    defaults to SQLite at settings.sqlite_path. `collector_classes` replaces
    the built-in catalogue, in run order.
    """
    known = catalogue() if collector_classes is None else catalogue(collector_classes)
    resolver = HospitalResolver(load_hospitals(settings.hospitals_path))
    normalizer = Normalizer(resolver, default_deadline_days=settings.default_deadline_days, clock=clock)

    if browser_ok is None:
        browser_ok = settings.enable_browser if settings.enable_browser is not None else browser_available

    builder = OrchestratorBuilder(
        store if store is not None else SqliteJobStore(settings.sqlite_path),
        timeout_sec=settings.collector_timeout_sec,
        clock=clock,
    )
    browser_factories = []
    for cls in _selected(settings, known):
        if cls.requires_browser:
            browser_factories.append(lambda cls=cls: cls.from_settings(settings, normalizer))
        else:
            builder.with_collector(cls.from_settings(settings, normalizer))
    if browser_factories:
        builder.with_browser_collectors(browser_factories, available=browser_ok)

    orchestrator = builder.build()
    LOG.debug("Registered collectors: %s", ", ".join(orchestrator.collector_names) or "(none)")
    return orchestrator


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'nchd_jobs' module.

    Accepts kwargs (from scheduler/CLI), including:
      sqlite_path: str = "/app/local/state/nchd_jobs.db"
      collectors: list[str] | "a,b"   # default: every enabled collector
      collector_timeout_sec: float = 120
      enable_browser: bool             # default: auto-detect Playwright
      skip_network: bool = False       # stub collector only
      collector_params: {name: {...}}

    Returns the run summary as a JSON-safe dict (plus a short 'message').
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "nchd_jobs.main",
        "op": "start",
        "sqlite_path": settings.sqlite_path,
        "collectors": settings.collectors or "all",
        "flags": {
            "skip_network": settings.skip_network,
            "enable_browser": settings.enable_browser,
        },
    })

    summary = build_orchestrator(settings).run_all()
    meta = summary.to_dict()
    meta["message"] = (
        f"{summary.total_scraped} scraped, {summary.total_saved} saved, "
        f"{summary.duplicates_removed} duplicate(s), {len(summary.errors)} error(s)"
    )
    return meta
