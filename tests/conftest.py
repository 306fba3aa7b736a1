from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from autoping.history import FailureHistory
from autoping.models import FailureRecord, Job, ProbeResult
from autoping.scheduler import ProbeScheduler
from autoping.state_machine import FailureStateMachine
from autoping.store import JobStore


T0 = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = T0):
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += float(seconds)


class FakeMailer:
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.failures: list[tuple[Job, list[FailureRecord]]] = []
        self.recoveries: list[tuple[Job, str]] = []

    async def send_failure(self, job: Job, history: list[FailureRecord]) -> bool:
        self.failures.append((job, list(history)))
        return self.succeed

    async def send_recovery(self, job: Job, downtime: str) -> bool:
        self.recoveries.append((job, downtime))
        return self.succeed


class FakeDesktop:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def notify(self, title: str, message: str) -> bool:
        self.sent.append((title, message))
        return True


class ScriptedProbe:
    """Returns queued outcomes (True = success); succeeds once the script runs out."""

    def __init__(self, outcomes: list[bool] | None = None):
        self.outcomes = list(outcomes or [])
        self.calls: list[str] = []
        self.before_return: Callable[[], None] | None = None

    def queue(self, *outcomes: bool) -> None:
        self.outcomes.extend(outcomes)

    async def __call__(self, url: str) -> ProbeResult:
        self.calls.append(url)
        ok = self.outcomes.pop(0) if self.outcomes else True
        if self.before_return is not None:
            self.before_return()
        if ok:
            return ProbeResult(succeeded=True, duration_ms=12, result_text="Success: 200")
        return ProbeResult(succeeded=False, duration_ms=30, result_text="Error: Request failed with status code 503")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def desktop() -> FakeDesktop:
    return FakeDesktop()


@pytest.fixture
def state_machine(mailer: FakeMailer, desktop: FakeDesktop) -> FailureStateMachine:
    return FailureStateMachine(mailer, desktop, FailureHistory(), default_rate_limit_minutes=60)


@pytest.fixture
def store(tmp_path: Path) -> JobStore:
    s = JobStore(str(tmp_path / "autoping.db"))
    s.ensure_schema()
    yield s
    s.close()


@pytest.fixture
def probe() -> ScriptedProbe:
    return ScriptedProbe()


@pytest.fixture
def scheduler(store: JobStore, state_machine: FailureStateMachine, probe: ScriptedProbe, clock: FakeClock) -> ProbeScheduler:
    # Never started: timers stay pending so tests can inspect them and drive ticks by hand.
    return ProbeScheduler(store, state_machine, probe, clock=clock)
