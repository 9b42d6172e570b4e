# tests/live/test_http_collectors_live.py
from __future__ import annotations

import os

import pytest

from modules.nchd_jobs.lib.collectors.healthcarejobs import HealthcareJobsCollector
from modules.nchd_jobs.lib.collectors.hse import HseCollector
from modules.nchd_jobs.lib.hospitals import HospitalResolver, load_hospitals
from modules.nchd_jobs.lib.normalize import Normalizer


def _normalizer() -> Normalizer:
    return Normalizer(HospitalResolver(load_hospitals()))


def _print_result(label: str, result, max_items: int | None = None) -> None:
    # allow override via env (e.g., NCHD_MAX_PRINT=999)
    if max_items is None:
        env_max = os.getenv("NCHD_MAX_PRINT")
        max_items = int(env_max) if env_max else 25
    print(f"\n[{label}] postings: {result.count}  success: {result.success}  error: {result.error}")
    for p in result.postings[:max_items]:
        print(f"  • {p.title}  [{p.hospital_name}, {p.county}]  {p.grade.value}/{p.specialty.value}")


@pytest.mark.live
def test_hse_listing_live():
    """
    Live smoke test against about.hse.ie. Zero postings is tolerated (listings
    change), but whatever comes back must be fully normalized.
    """
    collector = HseCollector(_normalizer(), max_pages=1, delay_seconds=2.0)
    result = collector.run()

    _print_result("hse", result)

    assert result.collector == "hse"
    for p in result.postings:
        assert p.title.strip()
        assert p.source_url.startswith("http")
        assert p.county
        assert p.application_deadline.tzinfo is not None


@pytest.mark.live
def test_healthcarejobs_listing_live():
    collector = HealthcareJobsCollector(_normalizer(), max_pages=1, delay_seconds=2.0)
    result = collector.run()

    _print_result("healthcarejobs", result)

    assert result.collector == "healthcarejobs"
    for p in result.postings:
        assert p.title.strip()
        assert p.source_url.startswith("http")
        assert p.hospital_name
