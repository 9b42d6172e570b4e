# tests/test_normalize.py
from datetime import date, datetime, timedelta, timezone

import pytest

from modules.nchd_jobs.lib.collectors.base import CandidateBuffer
from modules.nchd_jobs.lib.models import (
    Grade,
    HospitalGroup,
    HospitalTier,
    SchemeType,
    SourcePlatform,
    Specialty,
)
from modules.nchd_jobs.lib.normalize import Normalizer, estimate_start_date, parse_deadline

from conftest import FIXED_NOW, raw


# ----------------------------
# Dates
# ----------------------------
@pytest.mark.parametrize(
    "text, expected",
    [
        ("Closing date: 12 March 2026", date(2026, 3, 12)),
        ("Closes 1st April 2026 at noon", date(2026, 4, 1)),
        ("Closing date: March 12, 2026", date(2026, 3, 12)),
        ("Apply by Sept 3rd 2026", date(2026, 9, 3)),
        ("Closes 7 Nov 2026", date(2026, 11, 7)),
        ("Deadline 05/04/2026", date(2026, 4, 5)),
        ("2026-03-12", date(2026, 3, 12)),
        ("2026-03-12T17:00:00Z", date(2026, 3, 12)),
    ],
)
def test_parse_deadline_formats(text, expected):
    dt = parse_deadline(text)
    assert dt is not None
    assert dt.tzinfo is not None
    assert dt.date() == expected


@pytest.mark.parametrize("text", [None, "", "asap", "31/02/2026"])
def test_parse_deadline_unparseable(text):
    assert parse_deadline(text) is None


def test_estimate_start_date():
    assert estimate_start_date(datetime(2026, 3, 1, tzinfo=timezone.utc)) == date(2026, 7, 13)
    assert estimate_start_date(datetime(2026, 6, 30, tzinfo=timezone.utc)) == date(2026, 7, 13)
    assert estimate_start_date(datetime(2026, 9, 1, tzinfo=timezone.utc)) == date(2027, 1, 13)


# ----------------------------
# Normalizer
# ----------------------------
def test_normalize_full_candidate(normalizer):
    p = normalizer.normalize(
        raw(
            "Registrar in Respiratory Medicine - University Hospital Galway",
            location="Galway",
            deadline="Closing date: 12 March 2025",
        )
    )
    assert p.grade == Grade.REGISTRAR
    assert p.specialty == Specialty.RESPIRATORY
    assert p.scheme_type == SchemeType.NON_TRAINING_SERVICE
    assert p.hospital_id == "uhg"
    assert p.hospital_name == "University Hospital Galway"
    assert p.hospital_group == HospitalGroup.SAOLTA
    assert p.county == "Galway"
    assert p.historical_tier == HospitalTier.TOP_TIER
    assert p.application_deadline.date() == date(2025, 3, 12)
    assert p.scraped_at == FIXED_NOW
    assert p.application_url == p.source_url


def test_missing_deadline_defaults_to_three_weeks(normalizer):
    p = normalizer.normalize(raw("SHO General Medicine Beaumont"))
    assert p.application_deadline == FIXED_NOW + timedelta(days=21)
    assert p.deadline_defaulted is True


def test_parsed_deadline_is_not_flagged_as_default(normalizer):
    p = normalizer.normalize(raw("SHO General Medicine Beaumont", deadline="12 March 2025"))
    assert p.deadline_defaulted is False


def test_default_deadline_is_configurable(resolver):
    n = Normalizer(resolver, default_deadline_days=7, clock=lambda: FIXED_NOW)
    p = n.normalize(raw("SHO General Medicine Beaumont"))
    assert p.application_deadline == FIXED_NOW + timedelta(days=7)


def test_ref_code_is_authoritative_for_county(normalizer):
    p = normalizer.normalize(raw("SHO Emergency Medicine Mater MW26EM1"))
    assert p.county == "Limerick"
    assert p.hospital_id == "uhl"


def test_unnamed_hospital_uses_default_county_primary(normalizer):
    p = normalizer.normalize(raw("NCHD Psychiatry"))
    assert p.county == "Dublin"
    assert p.hospital_id == "mater"


def test_unresolved_hospital_falls_back_per_platform(normalizer):
    hse = normalizer.normalize(raw("NCHD Psychiatry", location="Meath", platform=SourcePlatform.ABOUT_HSE))
    assert hse.hospital_name == "HSE Facility"
    assert hse.hospital_id is None
    assert hse.hospital_group == HospitalGroup.IEHG
    assert hse.county == "Meath"
    assert hse.historical_tier is None

    other = normalizer.normalize(raw("NCHD Psychiatry", location="Offaly", platform=SourcePlatform.IRISH_JOBS))
    assert other.hospital_name == "Irish Healthcare Facility"


def test_county_only_resolves_primary_hospital(normalizer):
    p = normalizer.normalize(raw("SHO Paediatrics", location="Co. Cork"))
    assert p.hospital_id == "cuh"
    assert p.county == "Cork"


def test_unserved_county_keeps_county_without_hospital(normalizer):
    p = normalizer.normalize(raw("SHO Psychiatry", location="Meath"))
    assert p.hospital_id is None
    assert p.county == "Meath"


def test_fallback_hospital_used_only_when_nothing_else_matches(normalizer):
    p = normalizer.normalize(raw("SHO General Medicine", fallback_hospital="Connolly Hospital"))
    assert p.hospital_id == "connolly"

    p = normalizer.normalize(raw("SHO General Medicine Tallaght", fallback_hospital="Connolly Hospital"))
    assert p.hospital_id == "tallaght"


def test_scheme_uses_description(normalizer):
    p = normalizer.normalize(raw("Registrar Psychiatry", location="Higher Specialist Training rotation"))
    assert p.scheme_type == SchemeType.TRAINING_HST


def test_grade_ignores_description(normalizer):
    p = normalizer.normalize(raw("SHO Medicine", location="reports to the Specialist Registrar"))
    assert p.grade == Grade.SHO


def test_contact_details_pass_through(normalizer):
    p = normalizer.normalize(
        raw(
            "SHO Medicine CUH",
            informal_enquiries_email="dr@hse.ie",
            salary_range="€50,000 - €60,000",
        )
    )
    assert p.informal_enquiries_email == "dr@hse.ie"
    assert p.salary_range == "€50,000 - €60,000"


# ----------------------------
# CandidateBuffer (NCHD gate + in-run repeats)
# ----------------------------
def test_buffer_drops_non_nchd_and_short_titles(normalizer):
    buf = CandidateBuffer(normalizer)
    assert buf.emit(raw("SHO General Medicine Beaumont"))
    assert not buf.emit(raw("Clinical Nurse Manager 2"))
    assert not buf.emit(raw("SHO"))
    assert buf.dropped == 2
    assert len(buf.postings) == 1


def test_buffer_skips_repeated_title_and_url(normalizer):
    buf = CandidateBuffer(normalizer)
    c = raw("SHO General Medicine Beaumont", url="https://x.ie/1")
    assert buf.emit(c)
    assert not buf.emit(c)
    assert buf.emit(raw("SHO General Medicine Beaumont", url="https://x.ie/2"))
    assert len(buf.postings) == 2
