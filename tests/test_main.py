# tests/test_main.py
import pytest

from modules.nchd_jobs import main
from modules.nchd_jobs.lib.collectors.healthcarejobs import HealthcareJobsCollector
from modules.nchd_jobs.lib.collectors.hse import HseCollector
from modules.nchd_jobs.lib.config import ConfigError, Settings
from modules.nchd_jobs.lib.store import count_rows

STUB_ITEMS = [
    {"title": "SHO General Medicine", "location": "University Hospital Galway", "deadline": "2030-03-12"},
    {"title": "SHO General Medicine", "location": "Galway", "deadline": "12 March 2030", "url": "https://x.ie/2"},
    {"title": "Staff Nurse", "location": "Cork"},
]


def _settings(db_path, **kw):
    return Settings.from_env_and_kwargs({"sqlite_path": db_path, **kw})


def test_default_selection_without_browser(db_path):
    orch = main.build_orchestrator(_settings(db_path), browser_ok=False)
    assert orch.collector_names == ["hse", "healthcarejobs"]


def test_default_selection_with_browser(db_path):
    orch = main.build_orchestrator(_settings(db_path), browser_ok=True)
    assert orch.collector_names == ["hse", "healthcarejobs", "rezoomo", "irishjobs", "doctorjobs"]


def test_enable_browser_setting_is_respected(db_path):
    orch = main.build_orchestrator(_settings(db_path, enable_browser=False))
    assert "rezoomo" not in orch.collector_names


def test_named_selection_keeps_registration_order(db_path):
    orch = main.build_orchestrator(_settings(db_path, collectors="stub,hse"), browser_ok=False)
    assert orch.collector_names == ["hse", "stub"]


def test_collector_classes_override_the_catalogue(db_path):
    orch = main.build_orchestrator(
        _settings(db_path),
        collector_classes=[HealthcareJobsCollector, HseCollector],
        browser_ok=False,
    )
    assert orch.collector_names == ["healthcarejobs", "hse"]


def test_unknown_collector_name(db_path):
    with pytest.raises(ConfigError, match="Unknown collector"):
        main.build_orchestrator(_settings(db_path, collectors=["linkedin"]), browser_ok=False)


def test_skip_network_registers_only_the_stub(db_path):
    orch = main.build_orchestrator(_settings(db_path, skip_network=True), browser_ok=True)
    assert orch.collector_names == ["stub"]


def test_timeout_setting_reaches_orchestrator(db_path):
    orch = main.build_orchestrator(_settings(db_path, collector_timeout_sec=5), browser_ok=False)
    assert orch.timeout_sec == 5.0


def test_run_end_to_end_with_stub(db_path):
    meta = main.run(
        sqlite_path=db_path,
        skip_network=True,
        collector_params={"stub": {"items": STUB_ITEMS}},
    )

    assert meta["collectors_run"] == ["stub"]
    assert meta["total_scraped"] == 2
    assert meta["duplicates_removed"] == 1
    assert meta["total_saved"] == 1
    assert meta["persisted"] is True
    assert meta["message"] == "2 scraped, 1 saved, 1 duplicate(s), 0 error(s)"
    assert count_rows(db_path) == 1
