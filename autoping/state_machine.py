"""Failure escalation for monitored jobs.

A job probes at its own cadence while healthy (NORMAL). The first failure
switches it to 15 second probing (RAPID_CHECK). Three consecutive failures
pause probing for five minutes (PAUSED) and send a rate-limited alert email;
when the pause expires the job resumes at its original cadence and one failure
cycle is counted. A job that hits the threshold again after five cycles is
stopped for good (PERMANENTLY_PAUSED) until an operator resets it.

The machine returns field updates for the caller to persist; it never touches
the store or the timers itself.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any

import structlog

from autoping.errors import JobNotPermanentlyPausedError
from autoping.history import FailureHistory
from autoping.intervals import RAPID_CHECK_INTERVAL
from autoping.models import EmailType, FailureState, Job, JobStatus, ProbeResult
from autoping.notifications.desktop import DesktopNotifier
from autoping.notifications.email import Mailer, format_downtime
from autoping.notifications.throttle import can_send


logger = structlog.get_logger(__name__)

FAILURE_THRESHOLD = 3
MAX_FAILURE_CYCLES = 5
PAUSE_DURATION_SECONDS = 5 * 60
RAPID_CHECK_CADENCE = RAPID_CHECK_INTERVAL


@dataclass(frozen=True)
class Transition:
    job_id: int
    previous_state: FailureState
    next_state: FailureState
    updates: dict[str, Any] = field(default_factory=dict)
    # The caller must re-run Scheduler.start() once the updates are persisted.
    reschedule: bool = False


class FailureStateMachine:
    def __init__(
        self,
        mailer: Mailer,
        desktop: DesktopNotifier,
        history: FailureHistory,
        *,
        default_rate_limit_minutes: int = 60,
    ):
        self.mailer = mailer
        self.desktop = desktop
        self.history = history
        self.default_rate_limit_minutes = default_rate_limit_minutes

    async def apply(self, job: Job, probe: ProbeResult, now: float) -> Transition:
        if probe.succeeded:
            return await self.on_success(job, now)
        return await self.on_failure(job, probe, now)

    async def _send_recovery(self, job: Job, now: float) -> dict[str, Any]:
        """Attempt the recovery email and return the alert stamp fields for it."""
        downtime = format_downtime(now - job.failure_started_at if job.failure_started_at is not None else None)
        sent = False
        if job.alert_email:
            sent = await self.mailer.send_recovery(job, downtime)
        else:
            logger.warning("No alert email configured, skipping recovery email", job_id=job.id)

        if sent:
            return {"email_sent_at": now, "last_email_type": EmailType.RECOVERY, "last_email_sent": now}
        # The failure alert counts as answered even when the recovery mail did not go out.
        return {"email_sent_at": None, "last_email_type": None}

    async def on_success(self, job: Job, now: float) -> Transition:
        if job.failure_state == FailureState.RAPID_CHECK:
            restored = job.original_interval or job.interval
            logger.info("Job recovered, returning to normal interval", job_id=job.id, interval=restored)
            updates: dict[str, Any] = {
                "failure_count": 0,
                "failure_cycles": 0,
                "failure_state": FailureState.NORMAL,
                "interval": restored,
                "original_interval": None,
                "failure_started_at": None,
            }
            updates.update(await self._send_recovery(dataclasses.replace(job, interval=restored), now))
            self.history.clear(job.id)
            return Transition(
                job_id=job.id,
                previous_state=job.failure_state,
                next_state=FailureState.NORMAL,
                updates=updates,
                reschedule=restored != job.interval,
            )

        updates = {"failure_count": 0, "failure_started_at": None}
        if job.last_email_type == EmailType.FAILURE and job.email_sent_at is not None:
            logger.info("Job recovered after a failure alert", job_id=job.id)
            updates["failure_cycles"] = 0
            updates.update(await self._send_recovery(job, now))
        self.history.clear(job.id)
        return Transition(
            job_id=job.id,
            previous_state=job.failure_state,
            next_state=job.failure_state,
            updates=updates,
        )

    async def on_failure(self, job: Job, probe: ProbeResult, now: float) -> Transition:
        self.history.record(job.id, ts=now, probe=probe)
        new_count = job.failure_count + 1

        if job.failure_state == FailureState.NORMAL:
            logger.info(
                "First failure detected, switching to rapid check",
                job_id=job.id,
                interval=RAPID_CHECK_CADENCE,
                result=probe.result_text,
            )
            return Transition(
                job_id=job.id,
                previous_state=job.failure_state,
                next_state=FailureState.RAPID_CHECK,
                updates={
                    "failure_count": new_count,
                    "failure_state": FailureState.RAPID_CHECK,
                    "original_interval": job.interval,
                    "interval": RAPID_CHECK_CADENCE,
                    "failure_started_at": now,
                },
                reschedule=True,
            )

        if job.failure_state != FailureState.RAPID_CHECK:
            # Paused jobs do not tick; a late result only updates the counter.
            logger.warning("Failure outside of active checking", job_id=job.id, state=job.failure_state.value)
            return Transition(
                job_id=job.id,
                previous_state=job.failure_state,
                next_state=job.failure_state,
                updates={"failure_count": new_count},
            )

        if new_count < FAILURE_THRESHOLD:
            logger.warning("Job failure", job_id=job.id, failure_count=new_count, threshold=FAILURE_THRESHOLD)
            return Transition(
                job_id=job.id,
                previous_state=job.failure_state,
                next_state=FailureState.RAPID_CHECK,
                updates={"failure_count": new_count},
            )

        if job.failure_cycles >= MAX_FAILURE_CYCLES:
            return await self._permanently_pause(job, new_count)
        return await self._pause(job, new_count, now)

    async def _permanently_pause(self, job: Job, new_count: int) -> Transition:
        logger.error(
            "Job exceeded failure cycles, permanently pausing",
            job_id=job.id,
            url=job.url,
            failure_cycles=job.failure_cycles,
            max_failure_cycles=MAX_FAILURE_CYCLES,
        )
        await self.desktop.notify(
            "AutoPing - Site Permanently Paused",
            f"{job.url} has failed {MAX_FAILURE_CYCLES} cycles and requires manual intervention.",
        )
        return Transition(
            job_id=job.id,
            previous_state=job.failure_state,
            next_state=FailureState.PERMANENTLY_PAUSED,
            updates={
                "failure_count": new_count,
                "failure_state": FailureState.PERMANENTLY_PAUSED,
                "permanently_paused": True,
                "status": JobStatus.STOPPED,
                "interval": job.original_interval or job.interval,
                "original_interval": None,
                "pause_until": None,
            },
            reschedule=True,
        )

    async def _pause(self, job: Job, new_count: int, now: float) -> Transition:
        pause_until = now + PAUSE_DURATION_SECONDS
        logger.warning(
            "Failure threshold reached, pausing",
            job_id=job.id,
            failure_count=new_count,
            cycle=job.failure_cycles + 1,
            max_failure_cycles=MAX_FAILURE_CYCLES,
            pause_until=pause_until,
        )
        updates: dict[str, Any] = {
            "failure_count": new_count,
            "failure_state": FailureState.PAUSED,
            "pause_until": pause_until,
        }

        rate_limit = job.email_rate_limit or self.default_rate_limit_minutes
        if not job.alert_email:
            logger.warning("No alert email configured, skipping failure email", job_id=job.id)
        elif not can_send(job.last_email_sent, rate_limit, now_ts=now):
            logger.warning("Email rate limit active, skipping failure email", job_id=job.id, rate_limit=rate_limit)
        else:
            view = dataclasses.replace(job, failure_count=new_count)
            if await self.mailer.send_failure(view, self.history.get(job.id)):
                updates.update({"last_email_sent": now, "email_sent_at": now, "last_email_type": EmailType.FAILURE})
                await self.desktop.notify(
                    "AutoPing - Site Down Alert",
                    f"{job.url} has failed {FAILURE_THRESHOLD} times. Email alert sent to {job.alert_email}",
                )

        return Transition(
            job_id=job.id,
            previous_state=job.failure_state,
            next_state=FailureState.PAUSED,
            updates=updates,
            reschedule=True,
        )

    def resume_after_pause(self, job: Job) -> Transition:
        restored = job.original_interval or job.interval
        cycles = job.failure_cycles + 1
        logger.info(
            "Resuming job after pause",
            job_id=job.id,
            cycle=cycles,
            max_failure_cycles=MAX_FAILURE_CYCLES,
            interval=restored,
        )
        self.history.clear(job.id)
        return Transition(
            job_id=job.id,
            previous_state=job.failure_state,
            next_state=FailureState.NORMAL,
            updates={
                "failure_state": FailureState.NORMAL,
                "failure_count": 0,
                "failure_cycles": cycles,
                "interval": restored,
                "original_interval": None,
                "pause_until": None,
            },
            reschedule=True,
        )

    def manual_reset(self, job: Job) -> Transition:
        if not job.permanently_paused and job.failure_state != FailureState.PERMANENTLY_PAUSED:
            raise JobNotPermanentlyPausedError(job.id)
        logger.info("Manually resetting permanently paused job", job_id=job.id)
        self.history.clear(job.id)
        return Transition(
            job_id=job.id,
            previous_state=job.failure_state,
            next_state=FailureState.NORMAL,
            updates={
                "status": JobStatus.ACTIVE,
                "failure_state": FailureState.NORMAL,
                "failure_count": 0,
                "failure_cycles": 0,
                "permanently_paused": False,
                "pause_until": None,
                "failure_started_at": None,
                "interval": job.original_interval or job.interval,
                "original_interval": None,
            },
            reschedule=True,
        )
