from __future__ import annotations


class AutoPingError(Exception):
    """Base class for errors raised by AutoPing commands."""


class JobNotFoundError(AutoPingError):
    def __init__(self, job_id: int):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobNotPermanentlyPausedError(AutoPingError):
    def __init__(self, job_id: int):
        super().__init__("Job is not permanently paused")
        self.job_id = job_id


class JobPermanentlyPausedError(AutoPingError):
    def __init__(self, job_id: int):
        super().__init__("Job is permanently paused; reset it to resume monitoring")
        self.job_id = job_id


class JobStoreError(AutoPingError):
    """A read or write against the job database failed."""
