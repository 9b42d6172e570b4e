"""
Job store: the persistence boundary for normalized postings.

The orchestrator only depends on the `JobStore` protocol. `SqliteJobStore` is
the bundled implementation:

  - identity is (normalized title, lower-cased hospital name, deadline day),
    the same key the in-run dedup uses, so re-delivering a posting updates it
    in place (idempotent upsert);
  - a posting whose deadline was a placeholder matches its earlier row from the
    same platform even though the placeholder moves with the scrape date;
  - stale deactivation is scoped to one source platform and only flips rows
    that are currently active;
  - one scraping_logs row is written per collector per run.
"""

from __future__ import annotations

import contextlib
import os
import sqlite3
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from .dedup import normalize_title
from .logging_bridge import error as log_error
from .models import NormalizedPosting, RunLogEntry, SourcePlatform
from .normalize import estimate_start_date
from .utils import now_iso

DEFAULT_DURATION_MONTHS = 6


class StoreError(RuntimeError):
    """Raised when the backing store rejects a read or write."""


@dataclass
class UpsertStats:
    inserted: int = 0
    updated: int = 0
    # platform value -> [inserted, updated]
    by_platform: dict[str, list[int]] = field(default_factory=dict)

    @property
    def saved(self) -> int:
        return self.inserted + self.updated


class JobStore(Protocol):
    def upsert(self, postings: Sequence[NormalizedPosting]) -> UpsertStats: ...

    def deactivate_stale(self, source_platform: SourcePlatform, active_title_keys: Iterable[str]) -> int: ...

    def record_run(self, entries: Sequence[RunLogEntry]) -> None: ...


def store_source(platform: SourcePlatform) -> str:
    """Coarse source family kept alongside the exact platform."""
    if platform in (SourcePlatform.HSE_NRS, SourcePlatform.ABOUT_HSE):
        return "NRS"
    if platform in (SourcePlatform.REZOOMO, SourcePlatform.HEALTHCARE_JOBS):
        return platform.value
    return "DIRECT_HOSPITAL"


def contract_type(posting: NormalizedPosting) -> str:
    return "Training" if posting.scheme_type.is_training else "Specified Purpose"


# ---- SQLite implementation ---------------------------------------------------


class SqliteJobStore:
    def __init__(self, sqlite_path: str):
        self.sqlite_path = sqlite_path
        init_db(sqlite_path)

    def upsert(self, postings: Sequence[NormalizedPosting]) -> UpsertStats:
        stats = UpsertStats()
        ts = now_iso()
        try:
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _apply_pragmas(conn)
                cur = conn.cursor()
                cur.execute("BEGIN IMMEDIATE")
                try:
                    for p in postings:
                        row = _row_for(p, ts)
                        row_id = _find_existing(cur, row)
                        counts = stats.by_platform.setdefault(p.source_platform.value, [0, 0])
                        if row_id is None:
                            cols = ", ".join(row)
                            marks = ", ".join("?" for _ in row)
                            cur.execute(
                                f"INSERT INTO postings ({cols}, created_at) VALUES ({marks}, ?)",
                                (*row.values(), ts),
                            )
                            stats.inserted += 1
                            counts[0] += 1
                        else:
                            if p.deadline_defaulted:
                                # No real deadline this time: keep whatever is stored.
                                for col in _DEADLINE_COLUMNS:
                                    row.pop(col)
                            sets = ", ".join(f"{c} = ?" for c in row)
                            cur.execute(f"UPDATE postings SET {sets} WHERE id = ?", (*row.values(), row_id))
                            stats.updated += 1
                            counts[1] += 1
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        except sqlite3.Error as e:
            log_error({
                "component": "nchd_jobs.store",
                "op": "upsert",
                "sqlite_path": self.sqlite_path,
                "error": repr(e),
            })
            raise StoreError(f"upsert failed: {e}") from e
        return stats

    def deactivate_stale(self, source_platform: SourcePlatform, active_title_keys: Iterable[str]) -> int:
        """
        Mark active rows of `source_platform` inactive when their normalized
        title is not among `active_title_keys`. Returns the number deactivated.
        """
        keep = set(active_title_keys)
        ts = now_iso()
        try:
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _apply_pragmas(conn)
                cur = conn.cursor()
                cur.execute("BEGIN IMMEDIATE")
                cur.execute(
                    "SELECT id, title_key FROM postings WHERE source_platform = ? AND is_active = 1",
                    (source_platform.value,),
                )
                stale = [(ts, row_id) for row_id, title_key in cur.fetchall() if title_key not in keep]
                cur.executemany("UPDATE postings SET is_active = 0, updated_at = ? WHERE id = ?", stale)
                conn.commit()
        except sqlite3.Error as e:
            log_error({
                "component": "nchd_jobs.store",
                "op": "deactivate_stale",
                "source_platform": source_platform.value,
                "error": repr(e),
            })
            raise StoreError(f"deactivate_stale failed: {e}") from e
        return len(stale)

    def record_run(self, entries: Sequence[RunLogEntry]) -> None:
        try:
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _apply_pragmas(conn)
                cur = conn.cursor()
                cur.execute("BEGIN IMMEDIATE")
                cur.executemany(
                    """
                    INSERT INTO scraping_logs (source, status, jobs_found, jobs_new, jobs_updated,
                                               error_message, started_at, completed_at, duration_seconds)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            e.source,
                            e.status,
                            e.jobs_found,
                            e.jobs_new,
                            e.jobs_updated,
                            e.error_message,
                            e.started_at.isoformat(),
                            e.completed_at.isoformat(),
                            round(e.duration_seconds, 3),
                        )
                        for e in entries
                    ],
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"record_run failed: {e}") from e

    # ---- read helpers (CLI, tests, diagnostics) ----

    def active_postings(self, source_platform: SourcePlatform | None = None) -> list[dict[str, Any]]:
        sql = "SELECT * FROM postings WHERE is_active = 1"
        args: tuple[Any, ...] = ()
        if source_platform is not None:
            sql += " AND source_platform = ?"
            args = (source_platform.value,)
        with contextlib.closing(_connect(self.sqlite_path)) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(sql + " ORDER BY id", args).fetchall()
        return [dict(r) for r in rows]

    def run_logs(self) -> list[dict[str, Any]]:
        with contextlib.closing(_connect(self.sqlite_path)) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute("SELECT * FROM scraping_logs ORDER BY id").fetchall()
        return [dict(r) for r in rows]


# ---- Public helpers -----------------------------------------------------------


def init_db(sqlite_path: str) -> None:
    """
    Ensure the SQLite database and schema exist.
    Safe to call multiple times.
    """
    _ensure_dir(sqlite_path)
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _apply_pragmas(conn)
        _ensure_schema(conn)


def count_rows(sqlite_path: str, *, active_only: bool = False) -> int:
    """Return rows in the postings table; 0 if DB missing/empty."""
    if not os.path.exists(sqlite_path):
        return 0
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _ensure_schema(conn)
        sql = "SELECT COUNT(*) FROM postings" + (" WHERE is_active = 1" if active_only else "")
        (n,) = conn.execute(sql).fetchone()
    return int(n or 0)


def reset_db(sqlite_path: str) -> None:
    """
    Remove the DB file entirely (for pytest fixtures).
    Safe if it doesn't exist.
    """
    for suffix in ("", "-wal", "-shm"):
        with contextlib.suppress(FileNotFoundError):
            os.remove(sqlite_path + suffix)


# ---- Internal utilities -------------------------------------------------------

_DEADLINE_COLUMNS = ("deadline_date", "deadline_defaulted", "application_deadline", "start_date")


def _find_existing(cur: sqlite3.Cursor, row: dict[str, Any]) -> int | None:
    """
    id of the stored row this posting updates.

    The exact identity wins. Otherwise an active row from the same platform
    whose deadline was only a placeholder is the same posting seen on an
    earlier day, so it is updated rather than duplicated.
    """
    cur.execute(
        "SELECT id FROM postings WHERE title_key = ? AND hospital_key = ? AND deadline_date = ?",
        (row["title_key"], row["hospital_key"], row["deadline_date"]),
    )
    hit = cur.fetchone()
    if hit is not None:
        return hit[0]
    cur.execute(
        """
        SELECT id FROM postings
        WHERE title_key = ? AND hospital_key = ? AND source_platform = ?
          AND deadline_defaulted = 1 AND is_active = 1
        ORDER BY id DESC LIMIT 1
        """,
        (row["title_key"], row["hospital_key"], row["source_platform"]),
    )
    hit = cur.fetchone()
    return hit[0] if hit is not None else None


def _row_for(p: NormalizedPosting, ts: str) -> dict[str, Any]:
    return {
        "title": p.title,
        "title_key": normalize_title(p.title),
        "hospital_key": p.hospital_name.strip().lower(),
        "deadline_date": p.application_deadline.date().isoformat(),
        "deadline_defaulted": int(p.deadline_defaulted),
        "grade": p.grade.value,
        "specialty": p.specialty.value,
        "scheme_type": p.scheme_type.value,
        "hospital_id": p.hospital_id,
        "hospital_name": p.hospital_name,
        "hospital_group": p.hospital_group.value,
        "county": p.county,
        "application_deadline": p.application_deadline.isoformat(),
        "application_url": p.application_url,
        "source_url": p.source_url,
        "source_platform": p.source_platform.value,
        "source": store_source(p.source_platform),
        "historical_tier": p.historical_tier.value if p.historical_tier else None,
        "start_date": estimate_start_date(p.application_deadline).isoformat(),
        "contract_type": contract_type(p),
        "duration_months": DEFAULT_DURATION_MONTHS,
        "informal_enquiries_email": p.informal_enquiries_email,
        "informal_enquiries_name": p.informal_enquiries_name,
        "clinical_lead": p.clinical_lead,
        "rotational_detail": p.rotational_detail,
        "salary_range": p.salary_range,
        "job_spec_pdf_url": p.job_spec_pdf_url,
        "is_active": 1,
        "scraped_at": p.scraped_at.isoformat(),
        "updated_at": ts,
        "last_scraped_at": ts,
    }


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # isolation_level=None gives autocommit mode; we manage transactions explicitly.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA temp_store=MEMORY;")


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS postings (
          id INTEGER PRIMARY KEY,
          title TEXT NOT NULL,
          title_key TEXT NOT NULL,
          hospital_key TEXT NOT NULL,
          deadline_date TEXT NOT NULL,
          deadline_defaulted INTEGER NOT NULL DEFAULT 0,
          grade TEXT NOT NULL,
          specialty TEXT NOT NULL,
          scheme_type TEXT NOT NULL,
          hospital_id TEXT,
          hospital_name TEXT NOT NULL,
          hospital_group TEXT NOT NULL,
          county TEXT NOT NULL,
          application_deadline TEXT NOT NULL,
          application_url TEXT,
          source_url TEXT NOT NULL,
          source_platform TEXT NOT NULL,
          source TEXT NOT NULL,
          historical_tier TEXT,
          start_date TEXT,
          contract_type TEXT,
          duration_months INTEGER,
          informal_enquiries_email TEXT,
          informal_enquiries_name TEXT,
          clinical_lead TEXT,
          rotational_detail TEXT,
          salary_range TEXT,
          job_spec_pdf_url TEXT,
          is_active INTEGER NOT NULL DEFAULT 1,
          scraped_at TEXT NOT NULL,
          created_at TEXT NOT NULL,
          updated_at TEXT NOT NULL,
          last_scraped_at TEXT NOT NULL
        );
        """
    )
    columns = {row[1] for row in conn.execute("PRAGMA table_info(postings)")}
    if "deadline_defaulted" not in columns:
        conn.execute("ALTER TABLE postings ADD COLUMN deadline_defaulted INTEGER NOT NULL DEFAULT 0")
    conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_postings_identity
          ON postings (title_key, hospital_key, deadline_date);
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS ix_postings_platform_active ON postings (source_platform, is_active);")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS scraping_logs (
          id INTEGER PRIMARY KEY,
          source TEXT NOT NULL,
          status TEXT NOT NULL CHECK (status IN ('SUCCESS', 'PARTIAL', 'FAILURE')),
          jobs_found INTEGER NOT NULL DEFAULT 0,
          jobs_new INTEGER NOT NULL DEFAULT 0,
          jobs_updated INTEGER NOT NULL DEFAULT 0,
          error_message TEXT,
          started_at TEXT NOT NULL,
          completed_at TEXT NOT NULL,
          duration_seconds REAL NOT NULL
        );
        """
    )
