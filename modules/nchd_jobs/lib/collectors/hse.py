# modules/nchd_jobs/lib/collectors/hse.py
from __future__ import annotations

import logging
import re
from datetime import timedelta

import requests

from ..http_client import HttpClient
from ..models import RawCandidate, SourcePlatform
from ..normalize import parse_deadline
from ..utils import clean_text, truthy
from .base import Emit, HttpCollector
from .listing import ListingCard, absolute_url, extract_contact_details, soup_of

LOG = logging.getLogger(__name__)

_JOB_HREF_RE = re.compile(r"/jobs/job-search/[^/?#]+/?$")
_COUNTY_RE = re.compile(r"County:\s*([A-Z][A-Za-z]+)")
_POSTED_RE = re.compile(
    r"\d{1,2}\s+(?:January|February|March|April|May|June|July|August|September|October|November|December)\s+\d{4}"
)
_CLOSING_RE = re.compile(r"Closing(?:\s+date)?:?\s*([^\n|]+)", re.IGNORECASE)


def parse_hse_listing(html: str, base_url: str = "https://about.hse.ie") -> list[ListingCard]:
    """
    Cards from an about.hse.ie search results page.
    date_text carries the closing date when shown, else the posted date
    prefixed with "posted " (the caller derives the deadline from it).
    """
    soup = soup_of(html)
    out: list[ListingCard] = []
    seen: set[str] = set()
    for a in soup.find_all("a", href=_JOB_HREF_RE):
        url = absolute_url(base_url, a.get("href"))
        if not url or url in seen:
            continue
        seen.add(url)

        card = a.find_parent(["article", "li"]) or a.parent
        heading = card.find(["h3", "h2"]) if card is not None else None
        title = clean_text((heading or a).get_text(" "))
        if not title:
            continue

        text = card.get_text("\n") if card is not None else ""
        county = _COUNTY_RE.search(text)
        closing = _CLOSING_RE.search(text)
        posted = _POSTED_RE.search(text)
        if closing and parse_deadline(closing.group(1)):
            date_text = clean_text(closing.group(1))
        elif posted:
            date_text = f"posted {posted.group(0)}"
        else:
            date_text = ""

        out.append(
            ListingCard(
                title=title,
                url=url,
                location_text=county.group(1) if county else "",
                date_text=date_text,
                context_text=clean_text(text),
            )
        )
    return out


class HseCollector(HttpCollector):
    """
    about.hse.ie "medical and dental" search, pages 1..max_pages.

    params:
      fetch_details: bool  # also GET each job page for contacts/salary/PDF (default false)
    """

    name = "hse"
    platform = SourcePlatform.ABOUT_HSE
    BASE_URL = "https://about.hse.ie"
    SEARCH_URL = "https://about.hse.ie/jobs/job-search/"

    def collect(self, client: HttpClient, emit: Emit) -> None:
        fetch_details = truthy(self.params.get("fetch_details"))
        for page in range(1, self.max_pages + 1):
            if page > 1:
                self.pause()
            list_url = f"{self.SEARCH_URL}?category=medical+and+dental&page={page}"
            cards = parse_hse_listing(client.get_text(list_url), self.BASE_URL)
            LOG.debug("HSE page %d: %d card(s)", page, len(cards))
            if not cards:
                break
            for card in cards:
                details = self._details(client, card.url) if fetch_details else {}
                emit(
                    RawCandidate(
                        title=card.title,
                        source_url=list_url,
                        source_platform=self.platform,
                        raw_location_text=card.location_text,
                        application_url=card.url,
                        deadline_text=self._deadline_text(card.date_text),
                        **details,
                    )
                )

    def _deadline_text(self, date_text: str) -> str | None:
        if not date_text.startswith("posted "):
            return date_text or None
        posted = parse_deadline(date_text)
        if posted is None:
            return None
        # HSE campaigns typically close three weeks after posting.
        return (posted + timedelta(days=self.normalizer.default_deadline_days)).date().isoformat()

    def _details(self, client: HttpClient, url: str) -> dict[str, str]:
        self.pause()
        try:
            return extract_contact_details(client.get_text(url))
        except requests.RequestException as e:
            LOG.warning("HSE detail page %s unavailable: %s", url, e)
            return {}
