from __future__ import annotations

from collections import deque

from autoping.models import FailureRecord, ProbeResult


MAX_FAILURE_HISTORY = 5


class FailureHistory:
    """Recent failures per job, kept in memory only to enrich alert emails."""

    def __init__(self, max_entries: int = MAX_FAILURE_HISTORY):
        self.max_entries = max_entries
        self._entries: dict[int, deque[FailureRecord]] = {}

    def record(self, job_id: int, *, ts: float, probe: ProbeResult) -> None:
        buf = self._entries.get(job_id)
        if buf is None:
            buf = deque(maxlen=self.max_entries)
            self._entries[job_id] = buf
        buf.append(FailureRecord(time=ts, result=probe.result_text, duration=probe.duration_ms))

    def get(self, job_id: int) -> list[FailureRecord]:
        return list(self._entries.get(job_id, ()))

    def clear(self, job_id: int) -> None:
        self._entries.pop(job_id, None)

    def __contains__(self, job_id: int) -> bool:
        return job_id in self._entries
