"""
Orchestrator: runs the registered collectors one at a time, bounds each run
with a timeout, pools their postings, deduplicates, and hands the unique set to
the job store.

Run phases (exposed as `Orchestrator.state`):

    IDLE -> RUNNING (one collector at a time, see `current`) -> AGGREGATING
         -> DEDUPLICATING -> PERSISTING -> IDLE

Nothing in a run is fatal: run_all() always returns an OrchestrationSummary,
with one error string per failed or timed-out collector and a distinct
"persistence: ..." entry when the store rejects the run.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from enum import Enum
from typing import Any

from . import logging_bridge
from .browser import browser_available
from .collectors.base import Collector, CollectorError
from .dedup import deduplicate, normalize_title
from .models import NormalizedPosting, OrchestrationSummary, RunLogEntry, RunResult
from .store import JobStore, UpsertStats
from .utils import utcnow

LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 120.0


class CollectorTimeout(CollectorError):
    """A collector did not return within the per-collector timeout."""


class CollectorNotFound(KeyError):
    """No collector is registered under the requested name."""


class RunState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    AGGREGATING = "AGGREGATING"
    DEDUPLICATING = "DEDUPLICATING"
    PERSISTING = "PERSISTING"


class Orchestrator:
    def __init__(
        self,
        collectors: Sequence[Collector],
        store: JobStore | None = None,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        clock: Callable[[], datetime] = utcnow,
    ):
        names = [c.name for c in collectors]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate collector name(s): {', '.join(dupes)}")
        self._collectors: list[Collector] = list(collectors)
        self.store = store
        self.timeout_sec = float(timeout_sec)
        self._clock = clock
        # One run at a time; scheduler and HTTP triggers share an instance.
        self._run_lock = threading.Lock()
        self.state = RunState.IDLE
        self.current: str | None = None

    # ------------------------------------------------------------------ queries

    def list_collectors(self) -> list[dict[str, Any]]:
        return [c.describe() for c in self._collectors]

    @property
    def collector_names(self) -> list[str]:
        return [c.name for c in self._collectors]

    def _find(self, name: str) -> Collector:
        key = (name or "").strip().lower()
        for c in self._collectors:
            if c.name == key:
                return c
        raise CollectorNotFound(name)

    # ------------------------------------------------------------------ runs

    def run_one(self, name: str) -> RunResult:
        """
        Run a single collector by name under the same timeout as run_all.
        The result is reported, not persisted.
        """
        collector = self._find(name)
        with self._run_lock:
            try:
                result, _timed_out = self._invoke(collector)
            finally:
                self._set_state(RunState.IDLE)
        return result

    def run_all(self) -> OrchestrationSummary:
        with self._run_lock:
            try:
                return self._run_all()
            finally:
                self._set_state(RunState.IDLE)

    def _run_all(self) -> OrchestrationSummary:
        summary = OrchestrationSummary(started_at=self._clock())
        logging_bridge.activity({
            "component": "nchd_jobs.orchestrator",
            "op": "start",
            "collectors": self.collector_names,
            "timeout_sec": self.timeout_sec,
        })

        # (collector, result, started_at, completed_at, timed_out)
        outcomes: list[tuple[Collector, RunResult, datetime, datetime, bool]] = []
        for collector in self._collectors:
            t0 = self._clock()
            result, timed_out = self._invoke(collector)
            outcomes.append((collector, result, t0, self._clock(), timed_out))
            if not timed_out:
                summary.collectors_run.append(collector.name)
            if not result.success:
                summary.errors.append(f"{collector.name}: {result.error}")

        self._set_state(RunState.AGGREGATING)
        pooled = [p for _c, result, *_rest in outcomes for p in result.postings]
        summary.total_scraped = len(pooled)

        self._set_state(RunState.DEDUPLICATING)
        deduped = deduplicate(pooled)
        summary.duplicates_removed = deduped.duplicates
        logging_bridge.activity({
            "component": "nchd_jobs.orchestrator",
            "op": "dedup",
            "pooled": len(pooled),
            "unique": len(deduped.unique),
            "duplicates_removed": deduped.duplicates,
        })

        stats = UpsertStats()
        if self.store is not None:
            self._set_state(RunState.PERSISTING)
            try:
                stats = self.store.upsert(deduped.unique)
            except Exception as e:
                summary.errors.append(f"persistence: {e}")
                logging_bridge.error({
                    "component": "nchd_jobs.orchestrator",
                    "op": "persist",
                    "unique": len(deduped.unique),
                    "error": repr(e),
                })
            else:
                summary.total_saved = stats.saved
                summary.total_new = stats.inserted
                summary.total_updated = stats.updated
                summary.persisted = True
                summary.total_deactivated = self._deactivate_stale(outcomes, deduped.unique, summary.errors)
            self._record_run(outcomes, stats)

        summary.completed_at = self._clock()
        summary.duration_seconds = (summary.completed_at - summary.started_at).total_seconds()
        logging_bridge.activity({
            "component": "nchd_jobs.orchestrator",
            "op": "summary",
            **summary.to_dict(),
        })
        return summary

    # ------------------------------------------------------------------ internals

    def _set_state(self, state: RunState, current: str | None = None) -> None:
        self.state = state
        self.current = current

    def _invoke(self, collector: Collector) -> tuple[RunResult, bool]:
        """
        Race collector.run() against the timeout in a single-use daemon thread.

        On expiry the worker is abandoned, not killed: it keeps unwinding in the
        background (releasing its own session) but its postings never reach
        this run, and it cannot hold the process open at exit.
        Returns (result, timed_out).
        """
        self._set_state(RunState.RUNNING, collector.name)
        outcome: dict[str, Any] = {}

        def _target() -> None:
            try:
                outcome["result"] = collector.run()
            except Exception as e:
                outcome["error"] = e

        worker = threading.Thread(target=_target, name=f"collector-{collector.name}", daemon=True)
        worker.start()
        worker.join(self.timeout_sec)

        timed_out = worker.is_alive()
        if timed_out:
            err = CollectorTimeout(f"timed out after {self.timeout_sec:g}s")
            result = RunResult(collector=collector.name, success=False, error=str(err))
            logging_bridge.error({
                "component": "nchd_jobs.orchestrator",
                "op": "collector_timeout",
                "collector": collector.name,
                "timeout_sec": self.timeout_sec,
            })
        elif "error" in outcome:
            # Collectors are meant to report failures in their RunResult.
            e = outcome["error"]
            result = RunResult(collector=collector.name, success=False, error=str(e) or type(e).__name__)
            logging_bridge.error({
                "component": "nchd_jobs.orchestrator",
                "op": "collector_raised",
                "collector": collector.name,
                "error": repr(e),
            })
        else:
            result = outcome["result"]

        logging_bridge.activity({
            "component": "nchd_jobs.orchestrator",
            "op": "collector",
            "collector": collector.name,
            "platform": collector.platform,
            "success": result.success,
            "count": result.count,
            "error": result.error,
        })
        return result, timed_out

    def _deactivate_stale(
        self,
        outcomes: Iterable[tuple[Collector, RunResult, datetime, datetime, bool]],
        unique: Sequence[NormalizedPosting],
        errors: list[str],
    ) -> int:
        """
        Sweep every successfully listed platform. A failing sweep is reported
        in `errors` and leaves the saved rows and the other platforms alone.
        """
        assert self.store is not None
        # Only a source that listed successfully is treated as a closed world.
        active_titles = {normalize_title(p.title) for p in unique}
        platforms = []
        for collector, result, *_rest in outcomes:
            if result.success and collector.platform not in platforms:
                platforms.append(collector.platform)
        total = 0
        for platform in platforms:
            try:
                n = self.store.deactivate_stale(platform, active_titles)
            except Exception as e:
                errors.append(f"persistence: deactivate_stale failed for {platform.value}: {e}")
                logging_bridge.error({
                    "component": "nchd_jobs.orchestrator",
                    "op": "deactivate_stale",
                    "platform": platform.value,
                    "error": repr(e),
                })
                continue
            if n:
                LOG.info("Deactivated %d stale %s posting(s)", n, platform.value)
            total += n
        return total

    def _record_run(
        self,
        outcomes: Iterable[tuple[Collector, RunResult, datetime, datetime, bool]],
        stats: UpsertStats,
    ) -> None:
        assert self.store is not None
        entries: list[RunLogEntry] = []
        for collector, result, t0, t1, _timed_out in outcomes:
            inserted, updated = stats.by_platform.get(collector.platform.value, [0, 0])
            if result.success:
                status = "SUCCESS"
            elif result.postings:
                status = "PARTIAL"
            else:
                status = "FAILURE"
            entries.append(
                RunLogEntry(
                    source=collector.name,
                    status=status,
                    jobs_found=result.count,
                    jobs_new=inserted,
                    jobs_updated=updated,
                    error_message=result.error,
                    started_at=t0,
                    completed_at=t1,
                    duration_seconds=(t1 - t0).total_seconds(),
                )
            )
        try:
            self.store.record_run(entries)
        except Exception as e:
            # Run logs are diagnostics; losing them does not fail the run.
            logging_bridge.error({
                "component": "nchd_jobs.orchestrator",
                "op": "record_run",
                "error": repr(e),
            })


class OrchestratorBuilder:
    """
    Assembles an Orchestrator from always-available collectors plus
    environment-gated browser collectors.

        orch = (
            OrchestratorBuilder(store=store)
            .with_collector(HseCollector.from_settings(settings, normalizer))
            .with_browser_collectors([lambda: RezoomoCollector(normalizer)])
            .build()
        )
    """

    def __init__(
        self,
        store: JobStore | None = None,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._timeout_sec = timeout_sec
        self._clock = clock
        self._collectors: list[Collector] = []

    def with_collector(self, collector: Collector) -> OrchestratorBuilder:
        if any(c.name == collector.name for c in self._collectors):
            raise ValueError(f"Collector {collector.name!r} is already registered")
        self._collectors.append(collector)
        return self

    def with_browser_collectors(
        self,
        factories: Iterable[Callable[[], Collector]],
        *,
        available: bool | Callable[[], bool] = browser_available,
    ) -> OrchestratorBuilder:
        """Register the collectors built by `factories` only when a browser can run here."""
        ok = available() if callable(available) else bool(available)
        if not ok:
            LOG.info("Browser unavailable; skipping browser collectors")
            return self
        for factory in factories:
            self.with_collector(factory())
        return self

    def build(self) -> Orchestrator:
        return Orchestrator(self._collectors, self._store, timeout_sec=self._timeout_sec, clock=self._clock)
