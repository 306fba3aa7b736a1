"""Operator-facing commands and the job listing, shared by the HTTP API and tests."""

from __future__ import annotations

import time
from typing import Any, Callable

import structlog

from autoping import intervals
from autoping.errors import JobNotFoundError, JobPermanentlyPausedError
from autoping.models import FailureState, Job, JobStatus
from autoping.scheduler import ProbeScheduler
from autoping.store import JobStore


logger = structlog.get_logger(__name__)


def compute_next_run(job: Job, now_ts: float) -> float | None:
    """Paused jobs report their resume time, since no probe fires before it."""
    if job.is_stopped:
        return None
    if job.failure_state == FailureState.PAUSED and job.pause_until is not None:
        return max(float(job.pause_until), now_ts)
    return intervals.next_run_after(job.interval, now_ts)


class MonitorService:
    def __init__(
        self,
        store: JobStore,
        scheduler: ProbeScheduler,
        *,
        default_email_rate_limit: int = 30,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.scheduler = scheduler
        self.default_email_rate_limit = default_email_rate_limit
        self.clock = clock

    def _require(self, job_id: int) -> Job:
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self) -> list[dict[str, Any]]:
        now = self.clock()
        out = []
        for job in self.store.list_jobs():
            row = job.to_dict()
            row["next_run"] = compute_next_run(job, now)
            out.append(row)
        return out

    async def create_job(
        self,
        *,
        url: str,
        interval: str,
        alert_email: str | None = None,
        email_rate_limit: int | None = None,
    ) -> Job:
        job = self.store.create_job(
            url=url,
            interval=interval,
            alert_email=alert_email,
            email_rate_limit=email_rate_limit or self.default_email_rate_limit,
        )

        logger.info("New job created, performing immediate first ping", job_id=job.id, url=url)
        started = self.clock()
        probe = await self.scheduler.probe(url)
        async with self.scheduler.job_lock(job.id):
            updated = self.store.update_job_fields(
                job.id,
                {"last_run": started, "last_duration": probe.duration_ms, "last_result": probe.result_text},
            )
            if updated is not None:
                self.scheduler.start(updated)
        if updated is None:
            logger.info("Job deleted during first ping", job_id=job.id)
            self.scheduler.forget(job.id)
            raise JobNotFoundError(job.id)
        return updated

    async def toggle_job(self, job_id: int) -> Job:
        async with self.scheduler.job_lock(job_id):
            job = self._require(job_id)
            if job.is_stopped and job.permanently_paused:
                raise JobPermanentlyPausedError(job_id)
            new_status = JobStatus.STOPPED if job.status == JobStatus.ACTIVE else JobStatus.ACTIVE
            if new_status == JobStatus.STOPPED:
                # Cancel before the write so no tick can start in between.
                self.scheduler.stop(job_id)
            updated = self.store.update_job_fields(job_id, {"status": new_status})
            if updated is None:
                raise JobNotFoundError(job_id)
            self.scheduler.start(updated)
        logger.info("Toggled job", job_id=job_id, status=new_status.value)
        return updated

    async def reset_job(self, job_id: int) -> Job:
        async with self.scheduler.job_lock(job_id):
            job = self._require(job_id)
            transition = self.scheduler.state_machine.manual_reset(job)
            updated = self.store.update_job_fields(job_id, transition.updates)
            if updated is None:
                raise JobNotFoundError(job_id)
            self.scheduler.start(updated)
        return updated

    async def update_alert_email(self, job_id: int, alert_email: str | None) -> Job:
        async with self.scheduler.job_lock(job_id):
            updated = self.store.update_job_fields(job_id, {"alert_email": alert_email or None})
        if updated is None:
            raise JobNotFoundError(job_id)
        logger.info("Alert email updated", job_id=job_id, alert_email=updated.alert_email)
        return updated

    async def delete_job(self, job_id: int) -> None:
        async with self.scheduler.job_lock(job_id):
            self._require(job_id)
            self.scheduler.stop(job_id)
            if not self.store.delete_job(job_id):
                raise JobNotFoundError(job_id)
        self.scheduler.forget(job_id)
        logger.info("Job deleted", job_id=job_id)
