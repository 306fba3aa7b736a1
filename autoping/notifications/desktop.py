from __future__ import annotations

import asyncio
import shutil

import structlog


logger = structlog.get_logger(__name__)


class DesktopNotifier:
    """Fire-and-forget local notifications through notify-send; outcome is only logged."""

    def __init__(self, enabled: bool = True, *, timeout_seconds: float = 5.0):
        self.enabled = enabled
        self.timeout_seconds = timeout_seconds

    async def notify(self, title: str, message: str) -> bool:
        if not self.enabled:
            return False
        binary = shutil.which("notify-send")
        if not binary:
            logger.info("Desktop notification (no notifier available)", title=title, message=message)
            return False
        try:
            proc = await asyncio.create_subprocess_exec(
                binary,
                "--app-name=AutoPing",
                title,
                message,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning("Desktop notification failed", title=title, error=str(e))
            return False
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            logger.warning("Desktop notification failed", title=title, error=str(e) or type(e).__name__)
            return False
        if proc.returncode != 0:
            logger.warning(
                "Desktop notification failed",
                title=title,
                returncode=proc.returncode,
                stderr=(stderr or b"").decode("utf-8", "replace")[:300],
            )
            return False
        logger.info("Desktop notification sent", title=title)
        return True
