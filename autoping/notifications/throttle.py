from __future__ import annotations

import time


def can_send(last_sent_ts: float | None, rate_limit_minutes: float, *, now_ts: float | None = None) -> bool:
    """True when no alert was sent yet or at least rate_limit_minutes have passed since the last one."""
    if last_sent_ts is None:
        return True
    now = time.time() if now_ts is None else float(now_ts)
    minutes_since = (now - float(last_sent_ts)) / 60.0
    return minutes_since >= float(rate_limit_minutes)
