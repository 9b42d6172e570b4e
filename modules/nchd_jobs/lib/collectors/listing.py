"""
Markup helpers shared by the job-board collectors.

Boards change their markup often, so card detection is deliberately loose:
try a list of card selectors, and when none produce a usable card fall back to
job-looking links.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urljoin

from bs4 import BeautifulSoup  # pip install beautifulsoup4 html5lib
from bs4.element import Tag

from ..models import RawCandidate, SourcePlatform
from ..utils import clean_text

CARD_SELECTOR = (
    ".job-listing, .job-card, .job-result, .vacancy, [class*='job-card'], [class*='job-item'], "
    "[class*='job-result'], [class*='result-item'], [data-job-id], article, .search-result, [class*='listing']"
)
TITLE_SELECTOR = "h2 a, h3 a, h4 a, a[class*='title'], h2, h3"
LOCATION_SELECTOR = "[class*='location'], [class*='county'], .meta"
DATE_SELECTOR = "[class*='date'], [class*='deadline'], time"
JOB_LINK_PATTERNS: tuple[str, ...] = ("/job/", "/jobs/", "/vacancy/")

_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_CONTACT_RE = re.compile(r"(?:Dr\.?|Contact:)\s+([A-Z][a-z]+\s+[A-Z][a-z]+)")
_CLINICAL_LEAD_RE = re.compile(r"Clinical Lead:?\s*([A-Z][a-z]+\s+[A-Z][a-z]+)", re.IGNORECASE)
_ROTATION_RE = re.compile(r"Rotation:?\s*([^<\n]+)", re.IGNORECASE)
_SALARY_RE = re.compile(r"€\s*([\d,]+)\s*-\s*€\s*([\d,]+)")


@dataclass(frozen=True)
class ListingCard:
    title: str
    url: str
    location_text: str = ""
    date_text: str = ""
    context_text: str = ""


def candidate_from_card(
    card: ListingCard,
    *,
    platform: SourcePlatform,
    listing_url: str,
    hint_text: str = "",
    fallback_hospital: str | None = None,
) -> RawCandidate:
    # Link-only cards carry no location; their surrounding text is the best hint.
    context = "" if card.location_text else card.context_text
    return RawCandidate(
        title=card.title,
        source_url=card.url or listing_url,
        source_platform=platform,
        raw_location_text=card.location_text,
        application_url=card.url or None,
        deadline_text=card.date_text or None,
        hint_text=clean_text(f"{hint_text} {context}"),
        fallback_hospital=fallback_hospital,
    )


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html5lib")


def absolute_url(base_url: str, href: str | None) -> str:
    href = (href or "").strip()
    if not href or href.startswith(("#", "javascript:", "mailto:")):
        return ""
    return urljoin(base_url, href)


def parse_listing(
    html: str,
    base_url: str,
    *,
    card_selector: str = CARD_SELECTOR,
    link_patterns: tuple[str, ...] = JOB_LINK_PATTERNS,
) -> list[ListingCard]:
    """
    Return cards in document order. When card selectors nest (a "listings"
    wrapper around ".job-card" items) only the innermost elements count.
    """
    soup = soup_of(html)
    matched = soup.select(card_selector)
    matched_ids = {id(el) for el in matched}
    innermost = [el for el in matched if not any(id(d) in matched_ids for d in el.find_all(True))]
    cards = [c for c in (_card_from_element(el, base_url) for el in innermost) if c]
    if cards:
        return cards
    return _cards_from_links(soup, base_url, link_patterns)


def _card_from_element(el: Tag, base_url: str) -> ListingCard | None:
    title_el = el.select_one(TITLE_SELECTOR)
    if title_el is None:
        return None
    title = clean_text(title_el.get_text(" "))
    if not title:
        return None

    href = title_el.get("href") if title_el.name == "a" else None
    if not href:
        link = el.select_one("a[href]")
        href = link.get("href") if link is not None else None

    location = " ".join(clean_text(x.get_text(" ")) for x in el.select(LOCATION_SELECTOR))
    dates = " ".join(clean_text(x.get("datetime") or x.get_text(" ")) for x in el.select(DATE_SELECTOR))
    return ListingCard(
        title=title,
        url=absolute_url(base_url, href),
        location_text=clean_text(location),
        date_text=clean_text(dates),
        context_text=clean_text(el.get_text(" ")),
    )


def _cards_from_links(soup: BeautifulSoup, base_url: str, link_patterns: tuple[str, ...]) -> list[ListingCard]:
    selector = ", ".join(f'a[href*="{p}"]' for p in link_patterns)
    out: list[ListingCard] = []
    for a in soup.select(selector):
        url = absolute_url(base_url, a.get("href"))
        title = clean_text(a.get_text(" "))
        if not url or not title or url.rstrip("/") == base_url.rstrip("/"):
            continue
        parent = a.find_parent(["li", "div", "tr", "article"])
        out.append(ListingCard(title=title, url=url, context_text=clean_text(parent.get_text(" ")) if parent else ""))
    return out


def extract_contact_details(html: str) -> dict[str, str]:
    """
    Best-effort contact/role details from a job detail page. Missing fields are
    simply absent from the result.
    """
    soup = soup_of(html)
    text = soup.get_text("\n")
    details: dict[str, str] = {}

    pdf = soup.select_one('a[href$=".pdf"], a[href*=".pdf?"]')
    if pdf is not None and pdf.get("href"):
        details["job_spec_pdf_url"] = pdf["href"].strip()

    mailto = soup.select_one('a[href^="mailto:"]')
    email_match = _EMAIL_RE.search(mailto["href"] if mailto is not None else "") or _EMAIL_RE.search(text)
    if email_match:
        details["informal_enquiries_email"] = email_match.group(0)

    for key, pattern in (
        ("informal_enquiries_name", _CONTACT_RE),
        ("clinical_lead", _CLINICAL_LEAD_RE),
        ("rotational_detail", _ROTATION_RE),
    ):
        m = pattern.search(text)
        if m:
            details[key] = clean_text(m.group(1))

    salary = _SALARY_RE.search(text)
    if salary:
        details["salary_range"] = f"€{salary.group(1)} - €{salary.group(2)}"
    return details
