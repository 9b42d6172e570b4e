# service/scheduler.py
"""
APScheduler wiring for periodic scrapes.

Every schedule entry becomes one job that calls either Orchestrator.run_all()
or Orchestrator.run_one(collector). With no entries configured a single
nightly run of every collector is scheduled.
"""

from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, time, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from modules.nchd_jobs.lib.orchestrator import Orchestrator

from . import config_schema
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)

DEFAULT_SCHEDULE: list[dict[str, Any]] = [
    {
        "id": "daily-scrape",
        "trigger": {"daily_time": {"time": "02:00", "timezone": "UTC"}},
        "summary": "Nightly run of every collector",
    }
]

TRIGGER_KINDS = ("interval", "cron", "date", "daily_time")

_INTERVAL_UNITS = ("weeks", "days", "hours", "minutes", "seconds")
_INTERVAL_FIELDS = {*_INTERVAL_UNITS, "jitter", "timezone", "start_date", "end_date"}
_CRON_FIELDS = {
    "second",
    "minute",
    "hour",
    "day",
    "day_of_week",
    "month",
    "timezone",
    "start_date",
    "end_date",
    "jitter",
}
_DAILY_FIELDS = {"time", "day_of_week", "timezone"}


@dataclass(frozen=True, slots=True)
class JobSpec:
    id: str
    trigger: BaseTrigger
    collector: str | None  # None -> run_all()
    max_instances: int = 1
    coalesce: bool = True
    misfire_grace_time: int | None = None
    summary: str | None = None

    @property
    def target(self) -> str:
        return self.collector or "all collectors"


class SchedulerController:
    """Lifecycle handle returned by start(); the CLI owns it."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # In-flight scrapes finish on their own thread.
            self._scheduler.shutdown(wait=False)
        self._stopped.set()

    def join(self, timeout: float | None = None) -> bool:
        return self._stopped.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return [job.id for job in self._scheduler.get_jobs()]


class ScrapeJob:
    """
    The callable APScheduler runs for one schedule entry.

    Exceptions are logged and recorded, never raised into APScheduler, so one
    bad night does not unschedule the job.
    """

    def __init__(self, orchestrator: Orchestrator, spec: JobSpec) -> None:
        self.orchestrator = orchestrator
        self.spec = spec

    def __call__(self) -> None:
        started = _time.monotonic()
        LOG.info("Job[%s] starting (%s)", self.spec.id, self.spec.target)
        try:
            outcome = self._run()
        except Exception:
            LOG.exception("Job[%s] raised an exception.", self.spec.id)
            self._record("error", _time.monotonic() - started)
            return
        elapsed = _time.monotonic() - started
        LOG.info("Job[%s] finished in %.3fs", self.spec.id, elapsed)
        self._record("ok", elapsed, outcome)

    def _run(self) -> dict[str, Any]:
        if self.spec.collector:
            result = self.orchestrator.run_one(self.spec.collector)
            return {"success": result.success, "count": result.count, "error": result.error}
        summary = self.orchestrator.run_all()
        return {
            "total_scraped": summary.total_scraped,
            "total_saved": summary.total_saved,
            "errors": summary.errors,
        }

    def _record(self, status: str, elapsed: float, outcome: dict[str, Any] | None = None) -> None:
        try:
            write_activity_log({
                "source": "scheduler",
                "event": "job_run",
                "fields": {
                    "job_id": self.spec.id,
                    "collector": self.spec.collector,
                    "status": status,
                    "duration_ms": int(elapsed * 1000),
                    "summary": self.spec.summary,
                    "outcome": outcome,
                },
            })
        except (OSError, TypeError, ValueError):
            LOG.debug("activity log write failed for job[%s]", self.spec.id, exc_info=True)


# ---- Module API -------------------------------------------------------------


def build_scheduler(orchestrator: Orchestrator, cfg: dict[str, Any]) -> BackgroundScheduler:
    """
    One job per valid schedule entry; nothing is started. Entries that fail to
    parse, or that name a collector the orchestrator does not have, are logged
    and skipped.
    """
    tz = scheduler_timezone(cfg)
    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults={"coalesce": True, "max_instances": 1},
        # The orchestrator serializes runs; one worker is enough.
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )

    known = set(orchestrator.collector_names)
    for spec in _job_specs(cfg, tz):
        if spec.collector is not None and spec.collector not in known:
            LOG.error("Skipping schedule entry %s: collector %r is not registered", spec.id, spec.collector)
            continue
        scheduler.add_job(
            func=ScrapeJob(orchestrator, spec),
            trigger=spec.trigger,
            id=spec.id,
            max_instances=spec.max_instances,
            coalesce=spec.coalesce,
            misfire_grace_time=spec.misfire_grace_time,
            replace_existing=True,
        )
        LOG.debug("Registered job[%s] -> %s via %s", spec.id, spec.target, spec.trigger)
    return scheduler


def start(orchestrator: Orchestrator, cfg: dict[str, Any] | None = None) -> SchedulerController:
    if cfg is None:
        cfg = config_schema.load_config()
    scheduler = build_scheduler(orchestrator, cfg)
    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


def upcoming_runs(
    cfg: dict[str, Any], count: int = 3, now: datetime | None = None
) -> list[tuple[JobSpec, list[datetime]]]:
    """Next `count` fire times of every valid schedule entry, in config order."""
    tz = scheduler_timezone(cfg)
    now = now or datetime.now(tz)
    return [(spec, fire_times(spec.trigger, now, count)) for spec in _job_specs(cfg, tz)]


def fire_times(trigger: BaseTrigger, start: datetime, count: int) -> list[datetime]:
    """Fire times strictly after `start`, seeding previous_fire_time so interval triggers anchor on it."""
    out: list[datetime] = []
    prev, now = start, start
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        out.append(nxt)
        prev, now = nxt, nxt + timedelta(microseconds=1)
    return out


def scheduler_timezone(cfg: dict[str, Any]):
    """config['timezone'], then $TZ, then UTC. APScheduler 3.x wants pytz here."""
    name = cfg.get("timezone") or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid or missing tz '%s')", name)
        return pytz.UTC


def build_trigger(definition: dict[str, Any], tz: Any) -> BaseTrigger:
    """
    Build an APScheduler trigger from exactly one of:

      {"interval": {weeks|days|hours|minutes|seconds, jitter?, start_date?, end_date?, timezone?}}
      {"cron": "m h dom mon dow"}  or  {"cron": {second?, minute?, hour?, day?, ...}}
      {"date": ISO|epoch|datetime}  or  {"date": {"run_at": ..., "timezone"?: ...}}
      {"daily_time": "HH:MM"}  or  {"daily_time": {"time": "HH:MM[:SS]" | [...], "day_of_week"?, "timezone"?}}

    A block's own timezone wins over `tz`; naive dates are read in `tz`.
    Raises ValueError for anything else.
    """
    if not isinstance(definition, dict):
        raise ValueError("trigger definition must be a dict")
    present = [k for k in TRIGGER_KINDS if definition.get(k) is not None]
    if len(present) != 1:
        raise ValueError(f"exactly one of {TRIGGER_KINDS} must be provided")
    kind = present[0]
    return _BUILDERS[kind](definition[kind], _zone(tz))


# ---- Trigger builders ---------------------------------------------------------


def _zone(value: Any) -> tzinfo | None:
    if not value:
        return None
    if isinstance(value, tzinfo):
        return value
    return ZoneInfo(str(value))


def _reject_unknown(kind: str, block: dict[str, Any], allowed: set[str]) -> None:
    unknown = set(block) - allowed
    if unknown:
        raise ValueError(f"{kind} has unknown field(s): {sorted(unknown)}")


def _non_negative(kind: str, block: dict[str, Any], name: str) -> int:
    try:
        value = int(block.get(name, 0))
    except (TypeError, ValueError) as err:
        raise ValueError(f"{kind}.{name} must be an integer") from err
    if value < 0:
        raise ValueError(f"{kind}.{name} must be >= 0")
    return value


def _interval(block: Any, default_tz: tzinfo | None) -> BaseTrigger:
    if not isinstance(block, dict):
        raise ValueError("interval must be an object with time fields")
    _reject_unknown("interval", block, _INTERVAL_FIELDS)

    units = {u: _non_negative("interval", block, u) for u in _INTERVAL_UNITS}
    kwargs: dict[str, Any] = {u: v for u, v in units.items() if v}
    if not kwargs:
        raise ValueError("interval must be greater than 0 (provide at least one nonzero time field)")
    jitter = _non_negative("interval", block, "jitter")
    if jitter:
        kwargs["jitter"] = jitter
    for key in ("start_date", "end_date"):
        if key in block:
            kwargs[key] = block[key]
    return IntervalTrigger(timezone=_zone(block.get("timezone")) or default_tz, **kwargs)


def _cron(block: Any, default_tz: tzinfo | None) -> BaseTrigger:
    if isinstance(block, str):
        fields = block.split()
        if len(fields) != 5:
            raise ValueError(f"cron string must have 5 fields (got {len(fields)}): {block!r}")
        return CronTrigger.from_crontab(block, timezone=default_tz)
    if not isinstance(block, dict):
        raise ValueError("cron must be a crontab string or an object")
    _reject_unknown("cron", block, _CRON_FIELDS)

    fields = {k: v for k, v in block.items() if k != "timezone"}
    fields.setdefault("second", 0)
    fields.setdefault("minute", 0)
    fields.setdefault("hour", 0)
    return CronTrigger(timezone=_zone(block.get("timezone")) or default_tz, **fields)


def _date(block: Any, default_tz: tzinfo | None) -> BaseTrigger:
    if isinstance(block, dict):
        run_at = block.get("run_at")
        zone = _zone(block.get("timezone")) or default_tz
    else:
        run_at, zone = block, default_tz
    if run_at is None:
        raise ValueError("date trigger requires 'run_at' (or a non-empty scalar value)")

    if isinstance(run_at, (int, float)):
        when = datetime.fromtimestamp(run_at, tz=zone)
    elif isinstance(run_at, datetime):
        when = run_at
    else:
        try:
            when = datetime.fromisoformat(str(run_at).replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid date.run_at: {run_at!r}") from e
    if when.tzinfo is None:
        when = when.replace(tzinfo=zone)
    return DateTrigger(run_date=when, timezone=when.tzinfo or zone)


def _clock_time(text: str) -> tuple[int, int, int]:
    parts = text.split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"daily_time.time must be 'HH:MM' or 'HH:MM:SS', got {text!r}")
    try:
        hh, mm, ss = (int(p) for p in (*parts, "0")[:3])
    except ValueError as err:
        raise ValueError(f"daily_time.time must contain integers: {text!r}") from err
    time(hh, mm, ss)  # range check
    return hh, mm, ss


def _daily(block: Any, default_tz: tzinfo | None) -> BaseTrigger:
    if isinstance(block, str):
        block = {"time": block}
    if not isinstance(block, dict):
        raise ValueError("daily_time must be an object or 'HH:MM' string")
    _reject_unknown("daily_time", block, _DAILY_FIELDS)

    times = block.get("time")
    if times is None:
        raise ValueError("daily_time requires 'time'")
    if isinstance(times, str):
        times = [times]
    if not isinstance(times, Iterable):
        raise ValueError("daily_time.time must be a string or list of strings")

    zone = _zone(block.get("timezone")) or default_tz
    # One CronTrigger per exact time; a single cron with hour/minute lists would cross-product them.
    triggers = [
        CronTrigger(hour=h, minute=m, second=s, day_of_week=block.get("day_of_week"), timezone=zone)
        for h, m, s in sorted({_clock_time(str(t)) for t in times})
    ]
    return triggers[0] if len(triggers) == 1 else OrTrigger(triggers)


_BUILDERS: dict[str, Callable[[Any, tzinfo | None], BaseTrigger]] = {
    "interval": _interval,
    "cron": _cron,
    "date": _date,
    "daily_time": _daily,
}


# ---- Schedule entries -----------------------------------------------------------


def _job_specs(cfg: dict[str, Any], tz: Any) -> list[JobSpec]:
    entries = cfg.get("schedule") or DEFAULT_SCHEDULE
    if not isinstance(entries, list):
        raise ValueError("config.schedule must be a list")
    specs = []
    for raw in entries:
        try:
            specs.append(_job_spec(raw, tz))
        except (KeyError, TypeError, ValueError):
            LOG.exception("Skipping schedule entry due to config error: %r", raw)
    return specs


def _job_spec(raw: dict[str, Any], tz: Any) -> JobSpec:
    collector = raw.get("collector")
    collector = collector.strip().lower() if isinstance(collector, str) and collector.strip() else None
    definition = raw["trigger"] if "trigger" in raw else {k: raw[k] for k in TRIGGER_KINDS if k in raw}
    return JobSpec(
        id=str(raw.get("id") or raw.get("name") or collector or "run_all"),
        trigger=build_trigger(definition, tz),
        collector=collector,
        max_instances=_int_or(raw.get("max_instances"), 1),
        coalesce=bool(raw.get("coalesce", True)),
        misfire_grace_time=_int_or(raw.get("misfire_grace_time"), None),
        summary=raw.get("summary") or raw.get("description"),
    )


def _int_or(v: Any, default: int | None) -> int | None:
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default
