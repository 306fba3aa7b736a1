from __future__ import annotations

import time

import httpx

from autoping.models import ProbeResult


DEFAULT_PROBE_TIMEOUT_SECONDS = 30.0


def _error_message(exc: Exception) -> str:
    msg = str(exc or "").strip()
    if isinstance(exc, httpx.TimeoutException):
        return f"timeout: {msg}" if msg else "timeout"
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


async def probe_url(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> ProbeResult:
    """
    One GET against url.

    Anything below 500 counts as reachable, client errors included; 5xx, timeouts
    and transport errors are failures. Never raises for network problems.
    """
    started = time.perf_counter()
    try:
        resp = await client.get(url, follow_redirects=True, timeout=timeout)
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
        elapsed_ms = int((time.perf_counter() - started) * 1000.0)
        return ProbeResult(succeeded=False, duration_ms=elapsed_ms, result_text=f"Error: {_error_message(e)}")

    elapsed_ms = int((time.perf_counter() - started) * 1000.0)
    if resp.status_code >= 500:
        return ProbeResult(
            succeeded=False,
            duration_ms=elapsed_ms,
            result_text=f"Error: Request failed with status code {resp.status_code}",
        )
    return ProbeResult(succeeded=True, duration_ms=elapsed_ms, result_text=f"Success: {resp.status_code}")
