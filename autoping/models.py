from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    ACTIVE = "active"
    STOPPED = "stopped"


class FailureState(str, Enum):
    NORMAL = "normal"
    RAPID_CHECK = "rapid_check"
    PAUSED = "paused"
    PERMANENTLY_PAUSED = "permanently_paused"


class EmailType(str, Enum):
    FAILURE = "failure"
    RECOVERY = "recovery"


@dataclass(frozen=True)
class ProbeResult:
    succeeded: bool
    duration_ms: int
    result_text: str


@dataclass(frozen=True)
class FailureRecord:
    time: float
    result: str
    duration: int


@dataclass(frozen=True)
class Job:
    id: int
    url: str
    interval: str
    status: JobStatus = JobStatus.ACTIVE
    alert_email: str | None = None
    created_at: float | None = None

    original_interval: str | None = None
    failure_state: FailureState = FailureState.NORMAL
    failure_count: int = 0
    failure_cycles: int = 0
    failure_started_at: float | None = None
    pause_until: float | None = None
    permanently_paused: bool = False

    email_rate_limit: int | None = None
    last_email_sent: float | None = None
    email_sent_at: float | None = None
    last_email_type: EmailType | None = None

    last_run: float | None = None
    last_duration: int | None = None
    last_result: str | None = None

    @property
    def is_stopped(self) -> bool:
        return self.status == JobStatus.STOPPED

    @classmethod
    def from_row(cls, row: sqlite3.Row | dict[str, Any]) -> "Job":
        data = dict(row)
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in data.items() if k in known}

        data["status"] = JobStatus(data.get("status") or JobStatus.ACTIVE.value)
        data["failure_state"] = FailureState(data.get("failure_state") or FailureState.NORMAL.value)
        email_type = data.get("last_email_type")
        data["last_email_type"] = EmailType(email_type) if email_type else None
        data["permanently_paused"] = bool(data.get("permanently_paused"))
        data["failure_count"] = int(data.get("failure_count") or 0)
        data["failure_cycles"] = int(data.get("failure_cycles") or 0)
        # Empty strings from hand-edited rows mean "absent", never "cleared to a value".
        for name in ("alert_email", "original_interval", "last_result"):
            if data.get(name) == "":
                data[name] = None
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["status"] = self.status.value
        out["failure_state"] = self.failure_state.value
        out["last_email_type"] = self.last_email_type.value if self.last_email_type else None
        out["permanently_paused"] = int(self.permanently_paused)
        return out
