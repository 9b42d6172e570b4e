from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone

from dateutil import parser as date_parser

from . import classifiers
from .hospitals import HospitalResolver, county_from_ref_code
from .models import CanonicalHospital, HospitalGroup, NormalizedPosting, RawCandidate, SourcePlatform
from .utils import clean_text, utcnow

LOG = logging.getLogger(__name__)

DEFAULT_DEADLINE_DAYS = 21
DEFAULT_GROUP = HospitalGroup.IEHG

_MONTHS = (
    r"Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?"
    r"|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?"
)
_DATE_PATTERNS = (
    re.compile(rf"\b\d{{1,2}}(?:st|nd|rd|th)?\s+(?:{_MONTHS}),?\s+\d{{4}}\b", re.IGNORECASE),
    # month-first: "March 12, 2026"
    re.compile(rf"\b(?:{_MONTHS})\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b"),
    re.compile(r"\b\d{4}-\d{2}-\d{2}(?:[T ][\d:.]+(?:Z|[+-]\d{2}:?\d{2})?)?\b"),
)

_FALLBACK_FACILITY = {
    SourcePlatform.ABOUT_HSE: "HSE Facility",
    SourcePlatform.HSE_NRS: "HSE Facility",
    SourcePlatform.HEALTHCARE_JOBS: "Healthcare Facility",
}


def parse_deadline(text: str | None) -> datetime | None:
    """
    Find a date in free text ("12 March 2026", "March 12, 2026", "12/03/2026",
    "2026-03-12")
    and return it as an aware UTC datetime. Day-first; None when nothing parses.
    """
    if not text:
        return None
    for pattern in _DATE_PATTERNS:
        m = pattern.search(text)
        if not m:
            continue
        try:
            dt = date_parser.parse(m.group(0), dayfirst=not m.group(0)[:4].isdigit())
        except (ValueError, OverflowError):
            LOG.debug("Unparseable date fragment %r", m.group(0))
            continue
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    return None


def estimate_start_date(deadline: datetime) -> date:
    """NCHD rotations start in July and January: Jan-Jun deadlines -> 13 July, else 13 January next year."""
    if deadline.month <= 6:
        return date(deadline.year, 7, 13)
    return date(deadline.year + 1, 1, 13)


class Normalizer:
    """
    Turns a RawCandidate into a NormalizedPosting.

    Composed into every collector rather than inherited. Never raises for a
    candidate with a title: every unresolved field has a documented default.
    """

    def __init__(
        self,
        resolver: HospitalResolver,
        *,
        default_deadline_days: int = DEFAULT_DEADLINE_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.resolver = resolver
        self.default_deadline_days = int(default_deadline_days)
        self._clock = clock

    def default_deadline(self, now: datetime | None = None) -> datetime:
        return (now or self._clock()) + timedelta(days=self.default_deadline_days)

    def resolve_hospital(self, raw: RawCandidate) -> tuple[CanonicalHospital | None, str]:
        """Return (hospital or None, county). County is never empty."""
        search = clean_text(" ".join(p for p in (raw.title, raw.raw_location_text, raw.hint_text) if p))
        ref_county = county_from_ref_code(search)

        hospital = self.resolver.resolve(search)
        if hospital is None and raw.fallback_hospital:
            fallback = self.resolver.resolve(raw.fallback_hospital)
            if fallback is not None and (ref_county is None or fallback.county == ref_county):
                hospital = fallback
        inferred = ref_county or self.resolver.infer_county(search)
        if hospital is None:
            hospital = self.resolver.resolve_by_county(inferred)

        county = ref_county or (hospital.county if hospital is not None else inferred)
        return hospital, county

    def normalize(self, raw: RawCandidate) -> NormalizedPosting:
        scraped_at = self._clock()
        title = clean_text(raw.title)
        description = clean_text(raw.raw_location_text)

        hospital, county = self.resolve_hospital(raw)
        if hospital is not None:
            hospital_name = hospital.name
            group = hospital.hospital_group
        else:
            hospital_name = _FALLBACK_FACILITY.get(raw.source_platform, "Irish Healthcare Facility")
            group = DEFAULT_GROUP

        deadline = parse_deadline(raw.deadline_text)
        defaulted = deadline is None
        if defaulted:
            deadline = self.default_deadline(scraped_at)

        return NormalizedPosting(
            title=title,
            grade=classifiers.classify_grade(title),
            specialty=classifiers.classify_specialty(title),
            scheme_type=classifiers.classify_scheme_type(title, description),
            hospital_name=hospital_name,
            hospital_group=group,
            county=county,
            application_deadline=deadline,
            source_platform=raw.source_platform,
            source_url=raw.source_url,
            scraped_at=scraped_at,
            hospital_id=hospital.id if hospital is not None else None,
            application_url=raw.application_url or raw.source_url,
            historical_tier=classifiers.hospital_tier(hospital_name),
            informal_enquiries_email=raw.informal_enquiries_email,
            informal_enquiries_name=raw.informal_enquiries_name,
            clinical_lead=raw.clinical_lead,
            rotational_detail=raw.rotational_detail,
            salary_range=raw.salary_range,
            job_spec_pdf_url=raw.job_spec_pdf_url,
            deadline_defaulted=defaulted,
        )
