from __future__ import annotations

import time
from typing import Any, Callable

import httpx
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from autoping import __version__, intervals
from autoping.api.schema import CreateJobRequest, UpdateEmailRequest
from autoping.config import AutoPingConfig
from autoping.errors import (
    JobNotFoundError,
    JobNotPermanentlyPausedError,
    JobPermanentlyPausedError,
    JobStoreError,
)
from autoping.history import FailureHistory
from autoping.notifications.desktop import DesktopNotifier
from autoping.notifications.email import Mailer
from autoping.probe import probe_url
from autoping.scheduler import ProbeFunc, ProbeScheduler
from autoping.service import MonitorService
from autoping.state_machine import FAILURE_THRESHOLD, PAUSE_DURATION_SECONDS, FailureStateMachine
from autoping.store import JobStore


logger = structlog.get_logger(__name__)


def create_app(
    config: AutoPingConfig,
    *,
    probe: ProbeFunc | None = None,
    mailer: Mailer | None = None,
    desktop: DesktopNotifier | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    store = JobStore(config.db_path)
    http: dict[str, httpx.AsyncClient | None] = {"client": None}

    async def _default_probe(url: str):
        client = http["client"]
        if client is None:
            client = httpx.AsyncClient(headers={"User-Agent": config.user_agent})
            http["client"] = client
        return await probe_url(client, url, timeout=config.probe_timeout_seconds)

    state_machine = FailureStateMachine(
        mailer or Mailer(config.smtp, threshold=FAILURE_THRESHOLD, pause_minutes=PAUSE_DURATION_SECONDS // 60),
        desktop or DesktopNotifier(enabled=config.desktop_notifications),
        FailureHistory(),
        default_rate_limit_minutes=config.email_rate_limit_minutes,
    )
    scheduler = ProbeScheduler(store, state_machine, probe or _default_probe, clock=clock)
    service = MonitorService(store, scheduler, default_email_rate_limit=config.default_email_rate_limit, clock=clock)

    app = FastAPI(title="AutoPing", version=__version__)
    app.state.config = config
    app.state.store = store
    app.state.scheduler = scheduler
    app.state.service = service

    @app.on_event("startup")
    async def _startup() -> None:
        store.ensure_schema()
        await scheduler.startup()
        scheduler.load_all()
        logger.info("AutoPing started", db_path=config.db_path)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await scheduler.shutdown()
        client = http["client"]
        if client is not None:
            await client.aclose()
            http["client"] = None
        store.close()
        logger.info("AutoPing stopped")

    @app.exception_handler(JobStoreError)
    async def _store_error(request: Request, exc: JobStoreError) -> JSONResponse:
        logger.error("Job store error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"detail": "storage_error"})

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "healthy", "service": "autoping", "scheduler": scheduler.get_scheduler_status()}

    @app.get("/api/intervals")
    async def list_intervals() -> dict[str, Any]:
        return {"intervals": intervals.user_selectable()}

    @app.get("/api/jobs")
    async def list_jobs() -> list[dict[str, Any]]:
        return service.list_jobs()

    @app.post("/api/jobs")
    async def create_job(body: CreateJobRequest) -> dict[str, Any]:
        try:
            job = await service.create_job(
                url=body.url,
                interval=body.interval,
                alert_email=body.alert_email,
                email_rate_limit=body.email_rate_limit,
            )
        except JobNotFoundError as exc:
            # Deleted while the first ping was in flight.
            raise HTTPException(status_code=404, detail="job_not_found") from exc
        return job.to_dict()

    @app.patch("/api/jobs/{job_id}/toggle")
    async def toggle_job(job_id: int) -> dict[str, Any]:
        try:
            job = await service.toggle_job(job_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail="job_not_found") from exc
        except JobPermanentlyPausedError as exc:
            raise HTTPException(status_code=409, detail="job_permanently_paused") from exc
        return job.to_dict()

    @app.patch("/api/jobs/{job_id}/reset")
    async def reset_job(job_id: int) -> dict[str, Any]:
        try:
            job = await service.reset_job(job_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail="job_not_found") from exc
        except JobNotPermanentlyPausedError as exc:
            raise HTTPException(status_code=400, detail="job_not_permanently_paused") from exc
        return {"message": "Job reset and resumed", "id": job.id, "job": job.to_dict()}

    @app.patch("/api/jobs/{job_id}/email")
    async def update_email(job_id: int, body: UpdateEmailRequest) -> dict[str, Any]:
        try:
            job = await service.update_alert_email(job_id, body.alert_email)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail="job_not_found") from exc
        return {"message": "Alert email updated", "id": job.id, "alert_email": job.alert_email}

    @app.delete("/api/jobs/{job_id}")
    async def delete_job(job_id: int) -> dict[str, Any]:
        try:
            await service.delete_job(job_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail="job_not_found") from exc
        return {"message": "Job deleted", "id": job_id}

    return app
