# tests/test_orchestrator.py
import threading
from datetime import timedelta

import pytest

from modules.nchd_jobs.lib.models import RunResult, SourcePlatform
from modules.nchd_jobs.lib.normalize import Normalizer
from modules.nchd_jobs.lib.orchestrator import (
    CollectorNotFound,
    Orchestrator,
    OrchestratorBuilder,
    RunState,
)
from modules.nchd_jobs.lib.store import UpsertStats

from conftest import FIXED_NOW, ListCollector, raw


class RecordingStore:
    """JobStore double: records calls; `fail` makes upsert raise."""

    def __init__(self, fail=None):
        self.fail = fail
        self.upserts = []
        self.deactivated = []
        self.runs = []

    def upsert(self, postings):
        if self.fail is not None:
            raise self.fail
        self.upserts.append(list(postings))
        stats = UpsertStats(inserted=len(postings))
        for p in postings:
            stats.by_platform.setdefault(p.source_platform.value, [0, 0])[0] += 1
        return stats

    def deactivate_stale(self, source_platform, active_title_keys):
        self.deactivated.append((source_platform, set(active_title_keys)))
        return 0

    def record_run(self, entries):
        self.runs.append(list(entries))


class BlockingCollector(ListCollector):
    """Blocks in run() until released (or a safety timeout)."""

    def __init__(self, name, normalizer):
        super().__init__(name, normalizer)
        self.release = threading.Event()
        self.finished = threading.Event()
        self.thread = None

    def run(self):
        self.thread = threading.current_thread()
        try:
            self.release.wait(timeout=10)
            return RunResult(collector=self.name)
        finally:
            self.finished.set()


# ---------------------------------------------------------------------
# Aggregation + dedup
# ---------------------------------------------------------------------
def test_same_job_from_two_sources_is_saved_once(make_collector, store, clock):
    hse = make_collector(
        "hse",
        [raw("SHO General Medicine MW26GM1", location="Limerick", deadline="2025-03-20")],
    )
    rezoomo = make_collector(
        "rezoomo",
        [
            raw(
                "SHO General Medicine",
                platform=SourcePlatform.REZOOMO,
                location="University Hospital Limerick",
                deadline="20 March 2025",
            )
        ],
        platform=SourcePlatform.REZOOMO,
    )
    orch = Orchestrator([hse, rezoomo], store, clock=clock)

    summary = orch.run_all()

    assert summary.total_scraped == 2
    assert summary.duplicates_removed == 1
    assert summary.total_saved == 1
    assert summary.collectors_run == ["hse", "rezoomo"]
    assert summary.errors == []
    assert summary.persisted is True
    (row,) = store.active_postings()
    assert row["county"] == "Limerick"
    assert row["hospital_id"] == "uhl"


def test_second_identical_run_only_updates(make_collector, store, clock):
    collector = make_collector("hse", [raw("SHO Medicine CUH"), raw("Registrar Surgery UHG")])
    orch = Orchestrator([collector], store, clock=clock)

    first = orch.run_all()
    second = orch.run_all()

    assert (first.total_new, first.total_updated) == (2, 0)
    assert second.total_new == 0
    assert second.total_updated == second.total_saved == 2
    assert second.total_deactivated == 0


def test_undated_posting_seen_next_day_is_updated_not_duplicated(resolver, store, clock):
    candidates = [raw("SHO Medicine CUH")]
    day_one = Normalizer(resolver, clock=lambda: FIXED_NOW)
    day_two = Normalizer(resolver, clock=lambda: FIXED_NOW + timedelta(days=1))

    first = Orchestrator([ListCollector("hse", day_one, candidates)], store, clock=clock).run_all()
    second = Orchestrator([ListCollector("hse", day_two, candidates)], store, clock=clock).run_all()

    assert first.total_new == 1
    assert (second.total_new, second.total_updated) == (0, 1)
    assert second.total_deactivated == 0
    (row,) = store.active_postings()
    assert row["deadline_defaulted"] == 1
    assert row["deadline_date"] == (FIXED_NOW + timedelta(days=21)).date().isoformat()


def test_summary_timestamps_and_state(make_collector, clock):
    orch = Orchestrator([make_collector("hse", [raw("SHO Medicine CUH")])], clock=clock)
    summary = orch.run_all()
    assert summary.started_at < summary.completed_at
    assert summary.duration_seconds > 0
    assert orch.state == RunState.IDLE
    assert orch.current is None


def test_no_store_means_not_persisted(make_collector, clock):
    orch = Orchestrator([make_collector("hse", [raw("SHO Medicine CUH")])], clock=clock)
    summary = orch.run_all()
    assert summary.total_scraped == 1
    assert summary.total_saved == 0
    assert summary.persisted is False


# ---------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------
def test_failing_collectors_do_not_stop_the_run(make_collector, clock):
    store = RecordingStore()
    good = make_collector("hse", [raw("SHO Medicine CUH")])
    partial = make_collector(
        "rezoomo",
        [raw("Registrar Surgery UHG", platform=SourcePlatform.REZOOMO)],
        platform=SourcePlatform.REZOOMO,
        error="2 of 8 page(s) failed",
    )
    broken = make_collector("irishjobs", platform=SourcePlatform.IRISH_JOBS, raises=RuntimeError("kaput"))
    orch = Orchestrator([good, partial, broken], store, clock=clock)

    summary = orch.run_all()

    assert summary.collectors_run == ["hse", "rezoomo", "irishjobs"]
    assert summary.errors == ["rezoomo: 2 of 8 page(s) failed", "irishjobs: kaput"]
    assert summary.total_scraped == 2
    assert summary.total_saved == 2

    (entries,) = store.runs
    assert [(e.source, e.status, e.jobs_found, e.jobs_new) for e in entries] == [
        ("hse", "SUCCESS", 1, 1),
        ("rezoomo", "PARTIAL", 1, 1),
        ("irishjobs", "FAILURE", 0, 0),
    ]
    assert all(e.duration_seconds > 0 for e in entries)


def test_all_collectors_failing_still_returns_summary(make_collector, clock):
    orch = Orchestrator(
        [
            make_collector("hse", error="network unreachable"),
            make_collector("rezoomo", platform=SourcePlatform.REZOOMO, raises=ValueError()),
        ],
        RecordingStore(),
        clock=clock,
    )
    summary = orch.run_all()
    assert summary.total_scraped == summary.total_saved == 0
    assert summary.errors == ["hse: network unreachable", "rezoomo: ValueError"]


def test_timed_out_collector_is_abandoned(make_collector, normalizer, store, clock):
    slow = BlockingCollector("slow", normalizer)
    fast = make_collector("fast", [raw("SHO Medicine CUH")])
    orch = Orchestrator([slow, fast], store, timeout_sec=0.2, clock=clock)

    try:
        summary = orch.run_all()
    finally:
        slow.release.set()

    assert summary.errors == ["slow: timed out after 0.2s"]
    assert summary.collectors_run == ["fast"]
    # An abandoned worker must not keep the interpreter alive at exit.
    assert slow.thread.daemon is True
    assert summary.total_saved == 1
    assert slow.finished.wait(timeout=5)
    statuses = {r["source"]: r["status"] for r in store.run_logs()}
    assert statuses == {"slow": "FAILURE", "fast": "SUCCESS"}


def test_persistence_failure_is_reported_distinctly(make_collector, clock):
    store = RecordingStore(fail=RuntimeError("disk full"))
    orch = Orchestrator([make_collector("hse", [raw("SHO Medicine CUH")])], store, clock=clock)

    summary = orch.run_all()

    assert summary.total_scraped == 1
    assert summary.total_saved == 0
    assert summary.persisted is False
    assert summary.errors == ["persistence: disk full"]
    # Run logs are still attempted.
    assert len(store.runs) == 1


def test_failed_stale_sweep_keeps_saved_counts(make_collector, clock):
    class SweepFailingStore(RecordingStore):
        def deactivate_stale(self, source_platform, active_title_keys):
            if source_platform == SourcePlatform.ABOUT_HSE:
                raise RuntimeError("database is locked")
            return super().deactivate_stale(source_platform, active_title_keys)

    store = SweepFailingStore()
    hse = make_collector("hse", [raw("SHO Medicine CUH")])
    rezoomo = make_collector(
        "rezoomo",
        [raw("Registrar Surgery UHG", platform=SourcePlatform.REZOOMO)],
        platform=SourcePlatform.REZOOMO,
    )
    orch = Orchestrator([hse, rezoomo], store, clock=clock)

    summary = orch.run_all()

    assert summary.total_saved == summary.total_new == 2
    assert summary.persisted is True
    assert summary.errors == ["persistence: deactivate_stale failed for ABOUT_HSE: database is locked"]
    # The other platform is still swept.
    assert [platform for platform, _ in store.deactivated] == [SourcePlatform.REZOOMO]
    assert len(store.runs) == 1


# ---------------------------------------------------------------------
# Stale deactivation
# ---------------------------------------------------------------------
def test_listing_that_drops_a_job_deactivates_it(normalizer, store, clock):
    first = Orchestrator(
        [ListCollector("hse", normalizer, [raw("SHO Medicine CUH"), raw("Registrar Surgery UHG")])],
        store,
        clock=clock,
    ).run_all()
    second = Orchestrator(
        [ListCollector("hse", normalizer, [raw("SHO Medicine CUH")])],
        store,
        clock=clock,
    ).run_all()

    assert first.total_deactivated == 0
    assert second.total_deactivated == 1
    assert [r["title"] for r in store.active_postings()] == ["SHO Medicine CUH"]


def test_failed_listing_never_deactivates(normalizer, store, clock):
    Orchestrator(
        [ListCollector("hse", normalizer, [raw("SHO Medicine CUH"), raw("Registrar Surgery UHG")])],
        store,
        clock=clock,
    ).run_all()
    summary = Orchestrator(
        [ListCollector("hse", normalizer, [raw("SHO Medicine CUH")], error="page 2 failed")],
        store,
        clock=clock,
    ).run_all()

    assert summary.total_deactivated == 0
    assert len(store.active_postings()) == 2


def test_deactivation_only_for_successful_platforms(make_collector, clock):
    store = RecordingStore()
    ok = make_collector("hse", [raw("SHO Medicine CUH")])
    failed = make_collector("rezoomo", platform=SourcePlatform.REZOOMO, error="blocked")
    Orchestrator([ok, failed], store, clock=clock).run_all()
    assert store.deactivated == [(SourcePlatform.ABOUT_HSE, {"sho medicine cuh"})]


# ---------------------------------------------------------------------
# Single-collector runs
# ---------------------------------------------------------------------
def test_run_one_reports_without_persisting(make_collector, clock):
    store = RecordingStore()
    hse = make_collector("hse", [raw("SHO Medicine CUH")])
    other = make_collector("rezoomo", platform=SourcePlatform.REZOOMO)
    orch = Orchestrator([hse, other], store, clock=clock)

    result = orch.run_one("HSE")

    assert result.success and result.count == 1
    assert other.calls == 0
    assert store.upserts == [] and store.runs == []


def test_run_one_unknown_name(make_collector):
    orch = Orchestrator([make_collector("hse")])
    with pytest.raises(CollectorNotFound):
        orch.run_one("nope")


def test_run_one_timeout(normalizer):
    slow = BlockingCollector("slow", normalizer)
    orch = Orchestrator([slow], timeout_sec=0.1)
    try:
        result = orch.run_one("slow")
    finally:
        slow.release.set()
    assert result.success is False
    assert result.error == "timed out after 0.1s"


# ---------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------
def test_duplicate_names_rejected(make_collector):
    with pytest.raises(ValueError, match="hse"):
        Orchestrator([make_collector("hse"), make_collector("hse")])
    with pytest.raises(ValueError):
        OrchestratorBuilder().with_collector(make_collector("hse")).with_collector(make_collector("hse"))


def test_builder_gates_browser_collectors(make_collector):
    factories = [lambda: make_collector("rezoomo", platform=SourcePlatform.REZOOMO)]

    without = OrchestratorBuilder().with_collector(make_collector("hse")).with_browser_collectors(
        factories, available=False
    )
    assert without.build().collector_names == ["hse"]

    with_browser = OrchestratorBuilder().with_collector(make_collector("hse")).with_browser_collectors(
        factories, available=lambda: True
    )
    assert with_browser.build().collector_names == ["hse", "rezoomo"]


def test_list_collectors(make_collector):
    orch = Orchestrator([make_collector("hse"), make_collector("irishjobs", platform=SourcePlatform.IRISH_JOBS)])
    assert orch.list_collectors() == [
        {"name": "hse", "platform": "ABOUT_HSE", "requires_browser": False},
        {"name": "irishjobs", "platform": "IRISH_JOBS", "requires_browser": False},
    ]
