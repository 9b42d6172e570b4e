# service/cli.py
"""
User-facing command-line entrypoints for the container.

Subcommands
-----------
serve [--no-http]
    - Builds the orchestrator from the config's `module` settings
    - Starts the APScheduler loop via service.scheduler.start()
    - Serves the HTTP trigger (service.http_trigger) with uvicorn
    - Stops the scheduler when the server exits (SIGINT/SIGTERM)

run [--collector NAME] [--kwargs k=v ...] [--json]
    - Runs every collector (or just NAME) once and prints a summary
    - Exits 1 when nothing was scraped and nothing was saved

list-collectors
    - Prints the collectors this host would register

validate-config [--preview N]
    - Loads/validates config (and the engine settings inside it)
    - Prints the next N fire times of every schedule entry
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from modules.nchd_jobs.lib.config import ConfigError as SettingsError
from modules.nchd_jobs.lib.config import Settings
from modules.nchd_jobs.lib.orchestrator import CollectorNotFound, Orchestrator
from modules.nchd_jobs.main import build_orchestrator
from service import config_schema as _config_schema
from service import logging_utils as L
from service import scheduler as _scheduler

LOG = logging.getLogger("service.cli")


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Parse key=value strings into a dict.
    - Values that look like JSON (true/false/null/number/object/array) are parsed.
    - Otherwise keep as raw strings.
    """
    out: dict[str, Any] = {}
    for raw in pairs:
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {raw!r}")
        try:
            out[k] = json.loads(v)
        except json.JSONDecodeError:
            out[k] = v
    return out


def _print_table(rows: Iterable[tuple[str, ...]], headers: tuple[str, ...]) -> None:
    """Very simple column table printer."""
    rows = list(rows)
    widths = [max(len(h), *(len(r[i]) for r in rows)) if rows else len(h) for i, h in enumerate(headers)]
    sep = "+-" + "-+-".join("-" * w for w in widths) + "-+"
    print(sep)
    print("| " + " | ".join(h.ljust(w) for h, w in zip(headers, widths)) + " |")
    print(sep)
    for r in rows:
        print("| " + " | ".join(c.ljust(w) for c, w in zip(r, widths)) + " |")
    print(sep)


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat()


def _settings_from(cfg: dict[str, Any], overrides: dict[str, Any] | None = None) -> Settings:
    kwargs = {**(cfg.get("module") or {}), **(overrides or {})}
    return Settings.from_env_and_kwargs(kwargs)


def _build(cfg: dict[str, Any], overrides: dict[str, Any] | None = None) -> Orchestrator:
    return build_orchestrator(_settings_from(cfg, overrides))


# ------------------------------ Subcommands ----------------------------------
def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
        _config_schema.validate(cfg)
        _settings_from(cfg)
        runs = _scheduler.upcoming_runs(cfg, count=args.preview)
    except KeyboardInterrupt:
        return 130
    except (_config_schema.ConfigError, SettingsError, ValueError) as e:
        LOG.error("Configuration validation failed: %s", e)
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1

    print("OK: configuration is valid.")
    if args.preview > 0:
        _print_table(
            [
                (spec.id, spec.target, ", ".join(t.isoformat(timespec="minutes") for t in times) or "(none)")
                for spec, times in runs
            ],
            headers=("SCHEDULE", "RUNS", "NEXT"),
        )
    return 0


def cmd_list_collectors(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
        orchestrator = _build(cfg)
    except KeyboardInterrupt:
        return 130
    except (_config_schema.ConfigError, SettingsError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    rows = [
        (c["name"], c["platform"], "yes" if c.get("requires_browser") else "no")
        for c in orchestrator.list_collectors()
    ]
    if not rows:
        print("No collectors available.")
        return 0
    _print_table(rows, headers=("COLLECTOR", "PLATFORM", "BROWSER"))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    start_time = time.monotonic()
    try:
        kwargs = _parse_kv_pairs(args.kwargs or [])
        LOG.debug("Run collector=%s with kwargs=%s", args.collector or "all", kwargs)
        cfg = _config_schema.load_config(args.config)
        orchestrator = _build(cfg, kwargs)
    except KeyboardInterrupt:
        return 130
    except (argparse.ArgumentTypeError, _config_schema.ConfigError, SettingsError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    try:
        if args.collector:
            result = orchestrator.run_one(args.collector)
            payload: dict[str, Any] = {
                "collector": result.collector,
                "success": result.success,
                "count": result.count,
                "error": result.error,
            }
            found_anything = result.count > 0
        else:
            summary = orchestrator.run_all()
            payload = summary.to_dict()
            found_anything = summary.total_scraped > 0 or summary.total_saved > 0
    except KeyboardInterrupt:
        return 130
    except CollectorNotFound:
        print(
            f"ERROR: unknown collector {args.collector!r}. Available: {', '.join(orchestrator.collector_names)}",
            file=sys.stderr,
        )
        return 1

    duration_ms = int((time.monotonic() - start_time) * 1000)
    try:
        L.write_activity_log({
            "event": "cli_run",
            "collector": args.collector,
            "trigger_type": "adhoc",
            "kwargs": kwargs,
            "duration_ms": duration_ms,
            "result": payload,
        })
    except OSError:
        LOG.debug("activity log write failed", exc_info=True)

    if args.json:
        print(json.dumps(payload, indent=2, default=str))
    elif args.collector:
        status = "OK" if payload["success"] else f"FAILED ({payload['error']})"
        print(f"{payload['collector']}: {payload['count']} posting(s), {status}")
    else:
        print(
            f"Scraped {payload['total_scraped']}, saved {payload['total_saved']} "
            f"(new {payload['total_new']}, updated {payload['total_updated']}, "
            f"deactivated {payload['total_deactivated']}), "
            f"{payload['duplicates_removed']} duplicate(s) removed in {payload['duration_seconds']}s"
        )
        for err in payload["errors"]:
            print(f"  error: {err}")

    return 0 if found_anything else 1


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the scheduler plus the HTTP trigger until a termination signal.
    With --no-http only the scheduler runs.
    """
    try:
        cfg = _config_schema.load_config(args.config)
        _config_schema.validate(cfg)
        orchestrator = _build(cfg)
        http = _config_schema.resolve_http(cfg)
    except (_config_schema.ConfigError, SettingsError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    L.write_activity_log({"ts": _now_iso(), "event": "serve_start", "collectors": orchestrator.collector_names})
    sched = None
    try:
        sched = _scheduler.start(orchestrator, cfg)
        LOG.info("Scheduler started: jobs=%s", list(sched.get_job_ids()))

        if args.no_http:
            _wait_for_signal()
        else:
            import uvicorn

            from service.http_trigger import create_app

            app = create_app(orchestrator, api_key=http.api_key, cron_secret=http.cron_secret)
            # uvicorn installs its own SIGINT/SIGTERM handlers and returns on shutdown.
            uvicorn.run(app, host=http.host, port=http.port, log_level=os.getenv("LOG_LEVEL", "info").lower())
        return 0
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        LOG.exception("Fatal error in serve: %s", e)
        return 1
    finally:
        _safe_stop("scheduler", sched)
        L.write_activity_log({"ts": _now_iso(), "event": "serve_stop"})


def _wait_for_signal() -> None:
    stop_event = threading.Event()

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)
    while not stop_event.is_set():
        time.sleep(0.3)


def _safe_stop(name: str, handle: Any) -> None:
    """Best-effort stop & join for a scheduler-like controller."""
    if handle is None:
        return
    try:
        handle.stop()
        handle.join(timeout=10.0)
    except Exception:  # pragma: no cover
        LOG.exception("Error stopping %s", name)


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m service.cli",
        description="NCHD job aggregation service tools",
    )
    p.add_argument(
        "--config",
        help="Path to config file (fallbacks to CONFIG_PATH env or built-in defaults).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # serve
    sp = sub.add_parser("serve", help="Run the scheduler and the HTTP trigger.")
    sp.add_argument("--no-http", action="store_true", help="Run only the scheduler.")
    sp.set_defaults(func=cmd_serve)

    # run
    sp = sub.add_parser("run", help="Run the collectors once and print a summary.")
    sp.add_argument("--collector", help="Run only this collector (not persisted).")
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Engine settings overrides (JSON values supported), e.g. skip_network=true.",
    )
    sp.add_argument("--json", action="store_true", help="Print the summary as JSON.")
    sp.set_defaults(func=cmd_run)

    # list-collectors
    sp = sub.add_parser("list-collectors", help="Print the collectors that would run on this host.")
    sp.set_defaults(func=cmd_list_collectors)

    # validate-config
    sp = sub.add_parser("validate-config", help="Verify configuration correctness.")
    sp.add_argument("--preview", type=int, default=3, metavar="N", help="Show the next N fire times per schedule entry (0 to skip).")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
