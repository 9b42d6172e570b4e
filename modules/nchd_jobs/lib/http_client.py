# nchd_jobs/http_client.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class HttpClient:
    """
    Shared HTTP client for the stateless collectors.

    Transport errors and 429/5xx responses are retried with exponential backoff
    (bounded by `retries`); a 4xx page or an empty listing is returned as-is and
    is not retried.
    """

    def __init__(
        self,
        timeout: float = 20.0,
        user_agent: str = DEFAULT_USER_AGENT,
        *,
        retries: int = 3,
        backoff_factor: float = 1.0,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-IE,en;q=0.9",
        })

        retry = Retry(
            total=retries,
            backoff_factor=backoff_factor,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET", "HEAD"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=8)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def get_text(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        encoding: str | None = None,
    ) -> str:
        """GET and return decoded text. Raises requests.HTTPError on a final 4xx/5xx."""
        resp = self.session.get(url, params=params, headers=headers, timeout=timeout or self.timeout)
        resp.raise_for_status()
        if encoding:
            resp.encoding = encoding
        elif not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        return resp.text

    def close(self) -> None:
        try:
            self.session.close()
        except requests.RequestException:
            LOG.debug("HttpClient.close() failed", exc_info=True)
