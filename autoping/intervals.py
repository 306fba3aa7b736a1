from __future__ import annotations

import math


RAPID_CHECK_INTERVAL = "15 seconds"
DEFAULT_INTERVAL = "1 minute"

_PERIOD_SECONDS: dict[str, int] = {
    "15 seconds": 15,
    "30 seconds": 30,
    "1 minute": 60,
    "5 minutes": 5 * 60,
    "30 minutes": 30 * 60,
    "1 hour": 60 * 60,
}

# An occurrence this close to "now" is treated as already firing.
_MIN_LEAD_SECONDS = 1.0


def known_intervals() -> list[str]:
    return list(_PERIOD_SECONDS)


def user_selectable() -> list[str]:
    return [label for label in _PERIOD_SECONDS if label != RAPID_CHECK_INTERVAL]


def is_known(label: str | None) -> bool:
    return label in _PERIOD_SECONDS


def period_seconds(label: str | None) -> int:
    """Repeat period for a cadence label; unknown labels fall back to one minute."""
    return _PERIOD_SECONDS.get(str(label or ""), _PERIOD_SECONDS[DEFAULT_INTERVAL])


def next_run_after(label: str | None, now_ts: float) -> float:
    """
    Next occurrence of the cadence strictly after now_ts.

    Occurrences sit on multiples of the period counted from the unix epoch, which
    for every catalog cadence lands on the same wall-clock instants a cron
    expression would (":00/:15/:30/:45" seconds, top of the hour, ...).
    """
    period = period_seconds(label)
    nxt = (math.floor(now_ts / period) + 1) * period
    if nxt - now_ts < _MIN_LEAD_SECONDS:
        nxt += period
    return float(nxt)
