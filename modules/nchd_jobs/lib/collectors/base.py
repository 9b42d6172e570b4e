from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from .. import classifiers, logging_bridge
from ..browser import BrowserSession
from ..config import Settings
from ..http_client import HttpClient
from ..models import NormalizedPosting, RawCandidate, RunResult, SourcePlatform
from ..normalize import Normalizer
from ..utils import clean_text
from .listing import candidate_from_card, parse_listing

LOG = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 5

Emit = Callable[[RawCandidate], bool]


class CollectorError(Exception):
    """Base exception for collector failures."""


@dataclass(frozen=True)
class ListingPage:
    label: str
    url: str
    # Resolved when a listing names no hospital of its own.
    fallback_hospital: str | None = None


class CandidateBuffer:
    """
    Per-run sink handed to collectors as `emit`.

    Applies the NCHD gate (non-NCHD titles are dropped, never defaulted),
    skips repeats of the same (title, url) within the run, and normalizes.
    """

    def __init__(self, normalizer: Normalizer):
        self._normalizer = normalizer
        self._seen: set[tuple[str, str]] = set()
        self.postings: list[NormalizedPosting] = []
        self.dropped = 0

    def emit(self, raw: RawCandidate) -> bool:
        title = clean_text(raw.title)
        if len(title) < MIN_TITLE_LENGTH or not classifiers.is_nchd_job(title):
            self.dropped += 1
            return False
        key = (title.lower(), raw.application_url or raw.source_url)
        if key in self._seen:
            return False
        self._seen.add(key)
        self.postings.append(self._normalizer.normalize(raw))
        return True


class Collector(ABC):
    """
    Abstract collector interface.

    Contract:
      - run() returns ONE RunResult and never raises.
      - On failure: success=False with a descriptive error, but every posting
        emitted before the failure is still returned.
      - Zero results is a valid, successful outcome.
      - Do NOT touch the job store or any shared buffer.
    """

    # Concrete subclasses MUST set these; name is the selection key.
    name: str = ""
    platform: SourcePlatform = SourcePlatform.DIRECT_HOSPITAL
    requires_browser: bool = False
    # Collectors with default_enabled=False only run when selected by name.
    default_enabled: bool = True

    @abstractmethod
    def run(self) -> RunResult:
        raise NotImplementedError

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: Settings, normalizer: Normalizer) -> Collector:
        raise NotImplementedError

    def describe(self) -> dict[str, Any]:
        return {"name": self.name, "platform": self.platform.value, "requires_browser": self.requires_browser}

    def _failed(self, buffer: CandidateBuffer, exc: BaseException) -> RunResult:
        message = str(exc) or type(exc).__name__
        logging_bridge.error({
            "component": "nchd_jobs.collector",
            "op": "run",
            "collector": self.name,
            "partial_count": len(buffer.postings),
            "error": repr(exc),
        })
        LOG.warning("Collector %s failed after %d posting(s): %s", self.name, len(buffer.postings), message)
        return RunResult(collector=self.name, postings=buffer.postings, success=False, error=message)


class HttpCollector(Collector):
    """
    Stateless variant: plain HTTP fetches + HTML parsing.
    Subclasses implement collect(client, emit).
    """

    def __init__(
        self,
        normalizer: Normalizer,
        *,
        params: dict[str, Any] | None = None,
        delay_seconds: float = 2.0,
        max_pages: int = 5,
        client_factory: Callable[[], HttpClient] = HttpClient,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.normalizer = normalizer
        self.params = dict(params or {})
        self.delay_seconds = float(delay_seconds)
        self.max_pages = int(self.params.get("max_pages") or max_pages)
        self._client_factory = client_factory
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, normalizer: Normalizer) -> HttpCollector:
        timeout = settings.http_timeout_sec
        return cls(
            normalizer,
            params=settings.params_for(cls.name),
            delay_seconds=settings.delay_seconds,
            max_pages=settings.max_pages,
            client_factory=lambda: HttpClient(timeout=timeout),
        )

    @abstractmethod
    def collect(self, client: HttpClient, emit: Emit) -> None:
        raise NotImplementedError

    def run(self) -> RunResult:
        buffer = CandidateBuffer(self.normalizer)
        try:
            with self._client_factory() as client:
                self.collect(client, buffer.emit)
        except Exception as e:
            return self._failed(buffer, e)
        return RunResult(collector=self.name, postings=buffer.postings)

    def pause(self) -> None:
        if self.delay_seconds > 0:
            self._sleep(self.delay_seconds)


class BrowserCollector(Collector):
    """
    Stateful variant: drives a headless browser session.

    The session is acquired inside run() with a `with` block, so it is released
    on success, on error, and when the orchestrator has abandoned this run after
    a timeout (the worker thread still unwinds through the context manager).
    """

    requires_browser = True

    def __init__(
        self,
        normalizer: Normalizer,
        *,
        params: dict[str, Any] | None = None,
        delay_seconds: float = 3.0,
        session_factory: Callable[[], BrowserSession] = BrowserSession,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.normalizer = normalizer
        self.params = dict(params or {})
        self.delay_seconds = float(delay_seconds)
        self._session_factory = session_factory
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, normalizer: Normalizer) -> BrowserCollector:
        return cls(
            normalizer,
            params=settings.params_for(cls.name),
            delay_seconds=settings.delay_seconds,
        )

    @abstractmethod
    def collect(self, session: BrowserSession, emit: Emit) -> None:
        raise NotImplementedError

    def run(self) -> RunResult:
        buffer = CandidateBuffer(self.normalizer)
        try:
            with self._session_factory() as session:
                self.collect(session, buffer.emit)
        except Exception as e:
            return self._failed(buffer, e)
        return RunResult(collector=self.name, postings=buffer.postings)

    def pause(self) -> None:
        if self.delay_seconds > 0:
            self._sleep(self.delay_seconds)

    def load_all(self, session: BrowserSession, selector: str | None, max_clicks: int = 5) -> int:
        """Scroll, then click a "load more" control until it disappears (bounded)."""
        session.scroll_to_bottom()
        clicks = 0
        while selector and clicks < max_clicks and session.click_if_exists(selector):
            clicks += 1
        return clicks

    def collect_pages(
        self,
        session: BrowserSession,
        emit: Emit,
        pages: Sequence[ListingPage],
        *,
        wait_for: str,
        load_more: str | None = None,
    ) -> None:
        """
        Visit each listing page in order and emit its cards.

        Every page is attempted; failures are collected and raised once at the
        end, so postings from the healthy pages still reach the RunResult.
        """
        failures: list[str] = []
        for idx, page in enumerate(pages):
            if idx > 0:
                self.pause()
            try:
                session.goto(page.url, wait_for=wait_for)
                self.load_all(session, load_more)
                cards = parse_listing(session.content(), page.url)
            except Exception as e:
                LOG.warning("%s: %s failed: %s", self.name, page.label, e)
                failures.append(f"{page.label}: {e}")
                continue
            kept = sum(
                emit(
                    candidate_from_card(
                        card,
                        platform=self.platform,
                        listing_url=page.url,
                        fallback_hospital=page.fallback_hospital,
                    )
                )
                for card in cards
            )
            LOG.info("%s: %s -> %d NCHD posting(s)", self.name, page.label, kept)
        if failures:
            raise CollectorError(f"{len(failures)} of {len(pages)} page(s) failed: " + "; ".join(failures))
