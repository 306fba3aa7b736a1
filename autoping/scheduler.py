"""Per-job probe timers on top of APScheduler."""

from __future__ import annotations

import asyncio
import dataclasses
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from autoping.errors import JobStoreError
from autoping.history import FailureHistory
from autoping.intervals import next_run_after, period_seconds
from autoping.models import FailureState, Job, ProbeResult
from autoping.state_machine import FailureStateMachine
from autoping.store import JobStore


logger = structlog.get_logger(__name__)

ProbeFunc = Callable[[str], Awaitable[ProbeResult]]

PROBE = "probe"
RESUME = "resume"

_INACTIVE_STATES = (FailureState.PAUSED, FailureState.PERMANENTLY_PAUSED)


def _utc(ts: float) -> datetime:
    return datetime.fromtimestamp(float(ts), tz=timezone.utc)


class ProbeScheduler:
    """
    Owns every timer: at most one periodic probe and one deferred resume per job id.

    All arming and cancelling goes through start()/stop(); self.handles is the only
    record of what is armed.
    """

    def __init__(
        self,
        store: JobStore,
        state_machine: FailureStateMachine,
        probe: ProbeFunc,
        *,
        clock: Callable[[], float] = time.time,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.store = store
        self.state_machine = state_machine
        self.probe = probe
        self.clock = clock
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.handles: Dict[int, Dict[str, Any]] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self.running = False

    @property
    def history(self) -> FailureHistory:
        return self.state_machine.history

    async def startup(self):
        """Start the timer loop."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.start()
        self.running = True
        logger.info("Probe scheduler started")

    async def shutdown(self):
        """Stop the timer loop; armed handles die with it."""
        if not self.running:
            return

        self.scheduler.shutdown(wait=False)
        self.running = False
        self.handles.clear()
        logger.info("Probe scheduler stopped")

    def job_lock(self, job_id: int) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[job_id] = lock
        return lock

    def load_all(self) -> int:
        """Arm timers for every persisted job, resuming pauses that expired while we were down."""
        jobs = self.store.list_jobs()
        for job in jobs:
            self.start(job)
        logger.info("Loaded jobs from database", count=len(jobs))
        return len(jobs)

    def _cancel(self, job_id: int) -> None:
        for kind, handle in self.handles.pop(job_id, {}).items():
            try:
                handle.remove()
            except JobLookupError:
                # One-shot resume handles remove themselves after firing.
                pass
            logger.debug("Cancelled timer", job_id=job_id, kind=kind)

    def start(self, job: Job) -> None:
        self._cancel(job.id)

        if job.is_stopped:
            logger.info("Job is stopped", job_id=job.id, url=job.url)
            return

        if job.failure_state == FailureState.PAUSED:
            now = self.clock()
            if job.pause_until is None or job.pause_until <= now:
                self._resume_now(job)
                return
            handle = self.scheduler.add_job(
                self.resume_job,
                trigger=DateTrigger(run_date=_utc(job.pause_until)),
                id=f"{RESUME}:{job.id}",
                args=(job.id,),
                name=f"resume {job.url}",
                replace_existing=True,
                misfire_grace_time=None,
            )
            self.handles[job.id] = {RESUME: handle}
            logger.info("Job is paused", job_id=job.id, resume_in_seconds=round(job.pause_until - now))
            return

        period = period_seconds(job.interval)
        first_run = next_run_after(job.interval, self.clock())
        handle = self.scheduler.add_job(
            self.run_tick,
            trigger=IntervalTrigger(seconds=period, start_date=_utc(first_run), timezone=timezone.utc),
            id=f"{PROBE}:{job.id}",
            args=(job.id,),
            name=f"probe {job.url}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
        )
        self.handles[job.id] = {PROBE: handle}
        logger.info("Started job", job_id=job.id, url=job.url, interval=job.interval, state=job.failure_state.value)

    def stop(self, job_id: int) -> None:
        self._cancel(job_id)
        self.history.clear(job_id)

    def forget(self, job_id: int) -> None:
        """Drop everything held for a deleted job, lock included."""
        self.stop(job_id)
        self._locks.pop(job_id, None)

    def has_timer(self, job_id: int, kind: str = PROBE) -> bool:
        return kind in self.handles.get(job_id, {})

    def _persist(self, job: Job, updates: Dict[str, Any]) -> Optional[Job]:
        """Write updates; on a store error keep going with the in-memory result."""
        try:
            return self.store.update_job_fields(job.id, updates)
        except JobStoreError as e:
            logger.error("Failed to persist job state", job_id=job.id, error=str(e), fields=sorted(updates))
            return dataclasses.replace(job, **updates)

    def _resume_now(self, job: Job) -> None:
        transition = self.state_machine.resume_after_pause(job)
        updated = self._persist(job, transition.updates)
        if updated is None:
            logger.warning("Job vanished before resume", job_id=job.id)
            return
        self.start(updated)

    async def resume_job(self, job_id: int) -> None:
        async with self.job_lock(job_id):
            self.handles.get(job_id, {}).pop(RESUME, None)
            try:
                job = self.store.get_job(job_id)
            except JobStoreError as e:
                logger.error("Failed to load job for resume", job_id=job_id, error=str(e))
                return
            if job is None or job.is_stopped or job.failure_state != FailureState.PAUSED:
                return
            self._resume_now(job)

    async def run_tick(self, job_id: int) -> None:
        """One probe for one job: probe, record, escalate, reprogram."""
        try:
            job = self.store.get_job(job_id)
        except JobStoreError as e:
            logger.error("Failed to load job for tick", job_id=job_id, error=str(e))
            return
        if job is None:
            logger.warning("Tick for unknown job, cancelling", job_id=job_id)
            self._cancel(job_id)
            return
        if job.is_stopped or job.failure_state in _INACTIVE_STATES:
            return

        now = self.clock()
        logger.debug("Pinging", job_id=job_id, url=job.url)
        probe = await self.probe(job.url)
        if probe.succeeded:
            logger.info("Probe ok", job_id=job_id, result=probe.result_text, duration_ms=probe.duration_ms)
        else:
            logger.warning("Probe failed", job_id=job_id, result=probe.result_text, duration_ms=probe.duration_ms)

        async with self.job_lock(job_id):
            snapshot = {"last_run": now, "last_duration": probe.duration_ms, "last_result": probe.result_text}
            current = self._persist(job, snapshot)
            if current is None:
                logger.info("Job deleted during probe, dropping result", job_id=job_id)
                return
            if current.is_stopped or current.failure_state in _INACTIVE_STATES:
                logger.info("Job stopped during probe, skipping escalation", job_id=job_id)
                return

            transition = await self.state_machine.apply(current, probe, now)
            updated = self._persist(current, transition.updates) if transition.updates else current
            if updated is None:
                return
            if transition.previous_state != transition.next_state:
                logger.info(
                    "Job state changed",
                    job_id=job_id,
                    previous=transition.previous_state.value,
                    next=transition.next_state.value,
                )
            if transition.reschedule:
                self.start(updated)

    def get_scheduler_status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "job_count": len(self.handles),
            "paused_jobs": sum(1 for h in self.handles.values() if RESUME in h),
        }
