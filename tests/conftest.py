# tests/conftest.py
import os
import re
import tempfile
from datetime import datetime, timedelta, timezone

import pytest
from freezegun import freeze_time

from modules.nchd_jobs.lib.collectors.base import CandidateBuffer, Collector
from modules.nchd_jobs.lib.hospitals import HospitalResolver, load_hospitals
from modules.nchd_jobs.lib.models import RawCandidate, RunResult, SourcePlatform
from modules.nchd_jobs.lib.normalize import Normalizer
from modules.nchd_jobs.lib.store import SqliteJobStore

FIXED_NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="nchd-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.setenv("CONFIG_PATH", "/nonexistent/nchd-config.json")
    for name in (
        "NCHD_SQLITE_PATH",
        "NCHD_ENABLE_BROWSER",
        "SCRAPE_API_KEY",
        "CRON_SECRET",
        "LOG_DISABLE",
        "ACTIVITY_LOG_MAX_BYTES",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------
class TickingClock:
    """Deterministic clock: each call advances by `step` seconds."""

    def __init__(self, start: datetime = FIXED_NOW, step: float = 1.0):
        self.now = start
        self.step = timedelta(seconds=step)

    def __call__(self) -> datetime:
        value = self.now
        self.now = self.now + self.step
        return value


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def resolver():
    return HospitalResolver(load_hospitals())


@pytest.fixture
def normalizer(resolver):
    return Normalizer(resolver, clock=lambda: FIXED_NOW)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "nchd_jobs.db")


@pytest.fixture
def store(db_path):
    return SqliteJobStore(db_path)


def raw(title, *, platform=SourcePlatform.ABOUT_HSE, url=None, location="", deadline=None, **extra):
    """Shorthand RawCandidate builder for tests."""
    url = url or f"https://example.ie/{platform.value.lower()}/" + re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return RawCandidate(
        title=title,
        source_url=url,
        source_platform=platform,
        raw_location_text=location,
        application_url=url,
        deadline_text=deadline,
        **extra,
    )


class ListCollector(Collector):
    """
    In-memory collector: normalizes `candidates` through the real buffer.
    `error` makes the run fail after emitting everything (partial result);
    `raises` makes run() itself raise, breaking the collector contract.
    """

    def __init__(self, name, normalizer, candidates=(), *, platform=SourcePlatform.ABOUT_HSE, error=None, raises=None):
        self.name = name
        self.platform = platform
        self.normalizer = normalizer
        self.candidates = list(candidates)
        self.error = error
        self.raises = raises
        self.calls = 0

    @classmethod
    def from_settings(cls, settings, normalizer):  # pragma: no cover
        raise NotImplementedError

    def run(self):
        self.calls += 1
        if self.raises is not None:
            raise self.raises
        buffer = CandidateBuffer(self.normalizer)
        for c in self.candidates:
            buffer.emit(c)
        if self.error:
            return RunResult(collector=self.name, postings=buffer.postings, success=False, error=self.error)
        return RunResult(collector=self.name, postings=buffer.postings)


@pytest.fixture
def make_collector(normalizer):
    def _make(name, candidates=(), **kw):
        return ListCollector(name, normalizer, candidates, **kw)

    return _make
