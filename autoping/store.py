from __future__ import annotations

import sqlite3
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from autoping.errors import JobStoreError
from autoping.models import Job


logger = structlog.get_logger(__name__)

SCHEMA_VERSION = 2

DEFAULT_EMAIL_RATE_LIMIT = 30

# Columns update_job_fields may touch; id and created_at are immutable.
UPDATABLE_COLUMNS = frozenset(
    {
        "url",
        "interval",
        "status",
        "alert_email",
        "original_interval",
        "failure_state",
        "failure_count",
        "failure_cycles",
        "failure_started_at",
        "pause_until",
        "permanently_paused",
        "email_rate_limit",
        "last_email_sent",
        "email_sent_at",
        "last_email_type",
        "last_run",
        "last_duration",
        "last_result",
    }
)


def _utc_ts() -> float:
    return float(time.time())


def _connect(path: str) -> sqlite3.Connection:
    p = str(path or "").strip()
    if not p:
        raise ValueError("Missing db_path")
    if p != ":memory:":
        Path(p).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(p, timeout=30, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000;")
    try:
        conn.execute("PRAGMA journal_mode = WAL;")
    except sqlite3.DatabaseError:
        pass
    return conn


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table});").fetchall()
    return any(str(r["name"]) == str(column) for r in rows)


def _apply_v1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          url TEXT NOT NULL,
          interval TEXT NOT NULL,
          status TEXT NOT NULL DEFAULT 'active',
          last_run REAL,
          last_duration INTEGER,
          last_result TEXT,
          created_at REAL NOT NULL
        );
        """
    )


def _apply_v2(conn: sqlite3.Connection) -> None:
    """
    v2 adds failure escalation and alert bookkeeping.
    """
    columns = [
        ("failure_count", "INTEGER NOT NULL DEFAULT 0"),
        ("original_interval", "TEXT"),
        ("failure_state", "TEXT NOT NULL DEFAULT 'normal'"),
        ("pause_until", "REAL"),
        ("last_email_sent", "REAL"),
        ("alert_email", "TEXT"),
        ("failure_started_at", "REAL"),
        ("last_email_type", "TEXT"),
        ("email_sent_at", "REAL"),
        ("email_rate_limit", f"INTEGER DEFAULT {DEFAULT_EMAIL_RATE_LIMIT}"),
        ("failure_cycles", "INTEGER NOT NULL DEFAULT 0"),
        ("permanently_paused", "INTEGER NOT NULL DEFAULT 0"),
    ]
    for name, ddl in columns:
        if not _column_exists(conn, "jobs", name):
            conn.execute(f"ALTER TABLE jobs ADD COLUMN {name} {ddl};")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_jobs_created_at ON jobs(created_at DESC);")


def _ensure_schema_conn(conn: sqlite3.Connection) -> None:
    conn.execute("CREATE TABLE IF NOT EXISTS schema_meta (k TEXT PRIMARY KEY, v TEXT NOT NULL);")
    row = conn.execute("SELECT v FROM schema_meta WHERE k='version'").fetchone()
    cur = int(row["v"]) if row and row["v"] else 0
    if cur >= SCHEMA_VERSION:
        return

    if cur == 0:
        _apply_v1(conn)
        _apply_v2(conn)
    elif cur == 1:
        _apply_v2(conn)
    else:
        raise RuntimeError(f"Unsupported schema version upgrade path cur={cur} target={SCHEMA_VERSION}")
    conn.execute("INSERT OR REPLACE INTO schema_meta (k, v) VALUES ('version', ?)", (str(SCHEMA_VERSION),))


def _db_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Enum):
        return value.value
    return value


class JobStore:
    """
    sqlite-backed job persistence.

    One connection shared across threads; every statement runs under a single
    lock so writers are serialized and each partial update is applied atomically.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = _connect(self.db_path)
        return self._conn

    def ensure_schema(self) -> None:
        with self._lock:
            try:
                _ensure_schema_conn(self._connection())
            except sqlite3.Error as exc:
                raise JobStoreError(f"schema setup failed: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def create_job(
        self,
        *,
        url: str,
        interval: str,
        alert_email: str | None = None,
        email_rate_limit: int | None = None,
    ) -> Job:
        rate_limit = int(email_rate_limit) if email_rate_limit else DEFAULT_EMAIL_RATE_LIMIT
        with self._lock:
            try:
                conn = self._connection()
                cur = conn.execute(
                    "INSERT INTO jobs (url, interval, alert_email, email_rate_limit, created_at) VALUES (?, ?, ?, ?, ?)",
                    (url, interval, alert_email or None, rate_limit, _utc_ts()),
                )
                row = conn.execute("SELECT * FROM jobs WHERE id=?", (cur.lastrowid,)).fetchone()
            except sqlite3.Error as exc:
                raise JobStoreError(f"create failed: {exc}") from exc
        logger.info("Created job", job_id=row["id"], url=url, interval=interval)
        return Job.from_row(row)

    def get_job(self, job_id: int) -> Job | None:
        with self._lock:
            try:
                row = self._connection().execute("SELECT * FROM jobs WHERE id=?", (int(job_id),)).fetchone()
            except sqlite3.Error as exc:
                raise JobStoreError(f"read failed for job {job_id}: {exc}") from exc
        return Job.from_row(row) if row else None

    def list_jobs(self) -> list[Job]:
        with self._lock:
            try:
                rows = self._connection().execute("SELECT * FROM jobs ORDER BY created_at DESC, id DESC").fetchall()
            except sqlite3.Error as exc:
                raise JobStoreError(f"list failed: {exc}") from exc
        return [Job.from_row(r) for r in rows]

    def update_job_fields(self, job_id: int, fields: dict[str, Any]) -> Job | None:
        """Apply a partial update in one statement and return the fresh row (None if the job is gone)."""
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown job fields: {sorted(unknown)}")
        with self._lock:
            try:
                conn = self._connection()
                if fields:
                    names = sorted(fields)
                    assignments = ", ".join(f"{name}=?" for name in names)
                    params = [_db_value(fields[name]) for name in names]
                    cur = conn.execute(f"UPDATE jobs SET {assignments} WHERE id=?", (*params, int(job_id)))
                    if cur.rowcount == 0:
                        return None
                row = conn.execute("SELECT * FROM jobs WHERE id=?", (int(job_id),)).fetchone()
            except sqlite3.Error as exc:
                raise JobStoreError(f"update failed for job {job_id}: {exc}") from exc
        return Job.from_row(row) if row else None

    def delete_job(self, job_id: int) -> bool:
        with self._lock:
            try:
                cur = self._connection().execute("DELETE FROM jobs WHERE id=?", (int(job_id),))
            except sqlite3.Error as exc:
                raise JobStoreError(f"delete failed for job {job_id}: {exc}") from exc
        return cur.rowcount > 0
