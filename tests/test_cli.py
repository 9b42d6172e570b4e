# tests/test_cli.py
import json

import pytest

from service import cli


def _stub_kwargs(db_path, items):
    return [
        f"sqlite_path={db_path}",
        "skip_network=true",
        "collector_params=" + json.dumps({"stub": {"items": items}}),
    ]


ITEMS = [
    {"title": "SHO General Medicine", "location": "Galway"},
    {"title": "Registrar Psychiatry", "location": "Cork"},
]


def test_run_all_with_stub_prints_summary(db_path, capsys):
    rc = cli.main(["run", "--kwargs", *_stub_kwargs(db_path, ITEMS)])
    out = capsys.readouterr().out
    assert rc == 0
    assert "Scraped 2, saved 2 (new 2, updated 0, deactivated 0)" in out


def test_run_all_json(db_path, capsys):
    rc = cli.main(["run", "--json", "--kwargs", *_stub_kwargs(db_path, ITEMS)])
    payload = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert payload["collectors_run"] == ["stub"]
    assert payload["total_saved"] == 2


def test_run_nothing_found_exits_1(db_path, capsys):
    rc = cli.main(["run", "--kwargs", *_stub_kwargs(db_path, [])])
    assert rc == 1
    assert "Scraped 0, saved 0" in capsys.readouterr().out


def test_run_single_collector(db_path, capsys):
    rc = cli.main(["run", "--collector", "stub", "--kwargs", *_stub_kwargs(db_path, ITEMS)])
    assert rc == 0
    assert "stub: 2 posting(s), OK" in capsys.readouterr().out


def test_run_unknown_collector_exits_1(db_path, capsys):
    rc = cli.main(["run", "--collector", "linkedin", "--kwargs", *_stub_kwargs(db_path, ITEMS)])
    assert rc == 1
    assert "unknown collector 'linkedin'" in capsys.readouterr().err


@pytest.mark.parametrize(
    "kwargs",
    [
        ["no-equals-sign"],
        ["collector_timeout_sec=-5"],
        ["collectors=linkedin"],
    ],
)
def test_run_bad_kwargs_exit_2(db_path, kwargs, capsys):
    rc = cli.main(["run", "--kwargs", f"sqlite_path={db_path}", *kwargs])
    assert rc == 2
    assert capsys.readouterr().err.startswith("ERROR:")


def test_list_collectors(db_path, monkeypatch, capsys):
    monkeypatch.setenv("NCHD_SQLITE_PATH", db_path)
    monkeypatch.setenv("NCHD_ENABLE_BROWSER", "0")
    rc = cli.main(["list-collectors"])
    out = capsys.readouterr().out
    assert rc == 0
    assert "| hse" in out
    assert "| healthcarejobs" in out
    assert "rezoomo" not in out


def test_validate_config(tmp_path, monkeypatch, capsys):
    good = tmp_path / "good.json"
    good.write_text(json.dumps({"schedule": [{"id": "nightly", "daily_time": "02:00"}]}), encoding="utf-8")
    assert cli.main(["--config", str(good), "validate-config"]) == 0
    out = capsys.readouterr().out
    assert "OK" in out
    assert "| nightly" in out
    assert "all collectors" in out

    assert cli.main(["--config", str(good), "validate-config", "--preview", "0"]) == 0
    assert "SCHEDULE" not in capsys.readouterr().out

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"module": {"max_pages": -1}}), encoding="utf-8")
    assert cli.main(["--config", str(bad), "validate-config"]) == 1
    assert "configuration invalid" in capsys.readouterr().err
