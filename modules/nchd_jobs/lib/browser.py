"""
Scoped headless-browser session for collectors whose boards render client-side.

Playwright is optional: it is imported only when a session is opened, and
`browser_available()` lets the composition root skip browser collectors on
hosts without it. Use as a context manager so the browser is released on every
exit path:

    with BrowserSession() as session:
        session.goto(url, wait_for=".job-listing")
        html = session.content()
"""

from __future__ import annotations

import importlib.util
import logging
import time
from typing import Any

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .http_client import DEFAULT_USER_AGENT

LOG = logging.getLogger(__name__)

NAV_ATTEMPTS = 3


class BrowserUnavailable(RuntimeError):
    """Playwright (or its browser binaries) cannot be used on this host."""


class NavigationError(RuntimeError):
    """A page navigation failed after the browser accepted the request."""


def browser_available() -> bool:
    return importlib.util.find_spec("playwright") is not None


class BrowserSession:
    def __init__(
        self,
        *,
        headless: bool = True,
        nav_timeout_ms: int = 30_000,
        selector_timeout_ms: int = 15_000,
        pause_seconds: float = 1.5,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.headless = headless
        self.nav_timeout_ms = nav_timeout_ms
        self.selector_timeout_ms = selector_timeout_ms
        self.pause_seconds = pause_seconds
        self.user_agent = user_agent
        self._pw: Any = None
        self._browser: Any = None
        self._page: Any = None

    # ---- lifecycle ----------------------------------------------------------

    def open(self) -> BrowserSession:
        if self._page is not None:
            return self
        try:
            from playwright.sync_api import sync_playwright
        except ImportError as e:
            raise BrowserUnavailable("playwright is not installed (pip install playwright)") from e

        self._pw = sync_playwright().start()
        try:
            self._browser = self._pw.chromium.launch(
                headless=self.headless,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
            self._page = self._browser.new_page(
                user_agent=self.user_agent,
                viewport={"width": 1280, "height": 800},
            )
        except Exception as e:
            self.close()
            raise BrowserUnavailable(f"could not launch chromium: {e}") from e
        LOG.debug("Browser session opened")
        return self

    def close(self) -> None:
        """Idempotent; releases page, browser and driver in that order."""
        for name in ("_page", "_browser"):
            handle = getattr(self, name)
            setattr(self, name, None)
            if handle is not None:
                try:
                    handle.close()
                except Exception:
                    LOG.debug("Closing %s failed", name.strip("_"), exc_info=True)
        if self._pw is not None:
            pw, self._pw = self._pw, None
            try:
                pw.stop()
            except Exception:
                LOG.debug("Stopping playwright failed", exc_info=True)
        LOG.debug("Browser session closed")

    @property
    def is_open(self) -> bool:
        return self._page is not None

    def __enter__(self) -> BrowserSession:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ---- page helpers -------------------------------------------------------

    @property
    def page(self) -> Any:
        if self._page is None:
            raise BrowserUnavailable("browser session is not open")
        return self._page

    @retry(
        stop=stop_after_attempt(NAV_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(NavigationError),
        reraise=True,
    )
    def goto(self, url: str, *, wait_for: str | None = None) -> None:
        """Navigate (retried with backoff); a missing wait_for selector is only a warning."""
        from playwright.sync_api import Error as PlaywrightError

        try:
            self.page.goto(url, wait_until="networkidle", timeout=self.nav_timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(f"navigation to {url} failed: {e}") from e

        if wait_for:
            try:
                self.page.wait_for_selector(wait_for, timeout=self.selector_timeout_ms)
            except PlaywrightError:
                LOG.warning("Selector %r not found on %s, continuing", wait_for, url)

    def content(self) -> str:
        return self.page.content()

    def scroll_to_bottom(self) -> None:
        self.page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
        self._pause()

    def click_if_exists(self, selector: str) -> bool:
        el = self.page.query_selector(selector)
        if el is None:
            return False
        el.click()
        self._pause()
        return True

    def _pause(self) -> None:
        if self.pause_seconds > 0:
            time.sleep(self.pause_seconds)
