from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from autoping.models import EmailType, FailureState, JobStatus
from autoping.store import JobStore


def test_create_job_defaults(store: JobStore) -> None:
    job = store.create_job(url="https://example.org", interval="5 minutes", alert_email="ops@example.org")
    assert job.id > 0
    assert job.status == JobStatus.ACTIVE
    assert job.failure_state == FailureState.NORMAL
    assert job.failure_count == 0
    assert job.failure_cycles == 0
    assert job.permanently_paused is False
    assert job.email_rate_limit == 30
    assert job.pause_until is None
    assert job.original_interval is None
    assert job.last_run is None
    assert job.created_at is not None


def test_blank_alert_email_is_stored_as_absent(store: JobStore) -> None:
    job = store.create_job(url="https://example.org", interval="1 minute", alert_email="")
    assert job.alert_email is None


def test_update_job_fields_is_partial(store: JobStore) -> None:
    job = store.create_job(url="https://example.org", interval="1 minute", email_rate_limit=10)
    updated = store.update_job_fields(
        job.id,
        {
            "failure_state": FailureState.PAUSED,
            "pause_until": 1234.5,
            "last_email_type": EmailType.FAILURE,
            "permanently_paused": False,
        },
    )
    assert updated is not None
    assert updated.failure_state == FailureState.PAUSED
    assert updated.pause_until == 1234.5
    assert updated.last_email_type == EmailType.FAILURE
    assert updated.email_rate_limit == 10
    assert updated.url == "https://example.org"

    cleared = store.update_job_fields(job.id, {"pause_until": None, "failure_state": FailureState.NORMAL})
    assert cleared is not None
    assert cleared.pause_until is None


def test_update_unknown_job_returns_none(store: JobStore) -> None:
    assert store.update_job_fields(999, {"failure_count": 1}) is None
    assert store.get_job(999) is None


def test_update_rejects_unknown_columns(store: JobStore) -> None:
    job = store.create_job(url="https://example.org", interval="1 minute")
    with pytest.raises(ValueError):
        store.update_job_fields(job.id, {"id": 5})


def test_list_and_delete(store: JobStore) -> None:
    a = store.create_job(url="https://a.example.org", interval="1 minute")
    b = store.create_job(url="https://b.example.org", interval="1 minute")
    ids = [j.id for j in store.list_jobs()]
    assert ids == [b.id, a.id]

    assert store.delete_job(a.id) is True
    assert store.delete_job(a.id) is False
    assert [j.id for j in store.list_jobs()] == [b.id]


def test_ensure_schema_is_idempotent(tmp_path: Path) -> None:
    s = JobStore(str(tmp_path / "again.db"))
    s.ensure_schema()
    s.create_job(url="https://example.org", interval="1 minute")
    s.ensure_schema()
    assert len(s.list_jobs()) == 1
    s.close()


def test_ensure_schema_migrates_v1_database(tmp_path: Path) -> None:
    path = tmp_path / "old.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE schema_meta (k TEXT PRIMARY KEY, v TEXT NOT NULL)")
    conn.execute("INSERT INTO schema_meta (k, v) VALUES ('version', '1')")
    conn.execute(
        "CREATE TABLE jobs (id INTEGER PRIMARY KEY AUTOINCREMENT, url TEXT NOT NULL, interval TEXT NOT NULL, "
        "status TEXT NOT NULL DEFAULT 'active', last_run REAL, last_duration INTEGER, last_result TEXT, "
        "created_at REAL NOT NULL)"
    )
    conn.execute("INSERT INTO jobs (url, interval, created_at) VALUES ('https://legacy.example.org', '1 hour', 1.0)")
    conn.commit()
    conn.close()

    s = JobStore(str(path))
    s.ensure_schema()
    [job] = s.list_jobs()
    assert job.url == "https://legacy.example.org"
    assert job.failure_state == FailureState.NORMAL
    assert job.failure_cycles == 0
    assert job.email_rate_limit == 30
    s.close()
