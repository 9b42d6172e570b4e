# service/http_trigger.py
"""
HTTP trigger for the shared orchestrator.

POST /api/scrape[?scraper=NAME]
    Manual trigger. When an API key is configured the request must carry
    `Authorization: Bearer <key>`. With `scraper`, runs that collector only
    (reported, not persisted); otherwise runs every collector.

GET /api/scrape
    Cron trigger: runs every collector when called with
    `Authorization: Bearer <cron secret>` or an `x-cron: 1` / `x-vercel-cron: 1`
    header. Any other GET just lists the registered collectors.

GET /healthz
    Liveness, including the orchestrator's current phase.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any

from fastapi import FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from modules.nchd_jobs.lib.models import RunResult
from modules.nchd_jobs.lib.orchestrator import CollectorNotFound, Orchestrator

from .logging_utils import write_activity_log, write_error_log

logger = logging.getLogger(__name__)


def _bearer_matches(header: str | None, secret: str | None) -> bool:
    if not secret or not header:
        return False
    return hmac.compare_digest(header.strip(), f"Bearer {secret}")


def _single_run_payload(name: str, result: RunResult) -> dict[str, Any]:
    """Summary-shaped payload for a single-collector run."""
    return {
        "total_scraped": result.count,
        "total_saved": 0,
        "duplicates_removed": 0,
        "collectors_run": [name],
        "errors": [f"{name}: {result.error}"] if not result.success else [],
        "persisted": False,
    }


def _log(event: str, **fields: Any) -> None:
    try:
        write_activity_log({"source": "http_trigger", "event": event, "fields": fields})
    except (OSError, TypeError, ValueError):
        logger.debug("activity log write failed", exc_info=True)


def create_app(
    orchestrator: Orchestrator,
    *,
    api_key: str | None = None,
    cron_secret: str | None = None,
) -> FastAPI:
    app = FastAPI(title="NCHD job aggregation", docs_url=None, redoc_url=None)

    @app.exception_handler(Exception)
    def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error in %s %s", request.method, request.url.path)
        try:
            write_error_log({"where": "http_trigger", "path": request.url.path, "error": repr(exc)})
        except (OSError, TypeError, ValueError):
            logger.debug("error log write failed", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Scraping failed", "message": str(exc)},
        )

    @app.get("/healthz")
    def healthz() -> dict[str, Any]:
        return {"status": "ok", "state": orchestrator.state.value, "current": orchestrator.current}

    @app.post("/api/scrape")
    def trigger_scrape(
        scraper: str | None = Query(default=None),
        authorization: str | None = Header(default=None),
    ):
        if api_key and not _bearer_matches(authorization, api_key):
            return JSONResponse(status_code=401, content={"error": "Unauthorized. Invalid API key."})

        if scraper:
            try:
                result = orchestrator.run_one(scraper)
            except CollectorNotFound:
                return JSONResponse(
                    status_code=404,
                    content={
                        "success": False,
                        "error": "Unknown scraper",
                        "message": f"No scraper named {scraper!r}. Available: {', '.join(orchestrator.collector_names)}",
                    },
                )
            data = _single_run_payload(scraper.strip().lower(), result)
        else:
            data = orchestrator.run_all().to_dict()

        _log("manual_scrape", scraper=scraper, total_scraped=data["total_scraped"], errors=len(data["errors"]))
        return {
            "success": True,
            "message": f"Successfully scraped {data['total_scraped']} jobs from {len(data['collectors_run'])} source(s)",
            "data": data,
        }

    @app.get("/api/scrape")
    def cron_scrape(
        authorization: str | None = Header(default=None),
        x_cron: str | None = Header(default=None),
        x_vercel_cron: str | None = Header(default=None),
    ):
        is_cron = _bearer_matches(authorization, cron_secret) or "1" in (x_cron, x_vercel_cron)
        if is_cron:
            data = orchestrator.run_all().to_dict()
            _log("cron_scrape", total_scraped=data["total_scraped"], errors=len(data["errors"]))
            return {
                "success": True,
                "message": f"Cron scrape: {data['total_scraped']} jobs from {len(data['collectors_run'])} source(s)",
                "data": data,
            }

        scrapers = orchestrator.list_collectors()
        return {
            "success": True,
            "scrapers": scrapers,
            "message": f"{len(scrapers)} scraper(s) available. Use POST to trigger scraping.",
        }

    return app
