"""Failure and recovery alert emails over SMTP."""

from __future__ import annotations

import asyncio
import smtplib
import ssl
import time
from datetime import datetime
from email.message import EmailMessage

import structlog
from jinja2 import Environment, select_autoescape

from autoping.config import SmtpConfig
from autoping.models import FailureRecord, Job


logger = structlog.get_logger(__name__)

_text_env = Environment(autoescape=False, trim_blocks=True, lstrip_blocks=True)
_html_env = Environment(autoescape=select_autoescape(default_for_string=True), trim_blocks=True, lstrip_blocks=True)

_FAILURE_TEXT = _text_env.from_string(
    """AutoPing Alert - Domain Unreachable
====================================

Your monitored domain has failed to respond after {{ threshold }} consecutive ping attempts.

Domain: {{ job.url }}
Status: OFFLINE
Check Interval: {{ job.interval }}
Failure Count: {{ job.failure_count }} consecutive failures
Last Checked: {{ last_checked }}
Last Result: {{ job.last_result or "N/A" }}

Failure History:
{% for line in history_lines %}
  {{ line }}
{% else %}
No detailed failure history available
{% endfor %}

Next Steps:
- AutoPing will pause monitoring for {{ pause_minutes }} minutes
- After {{ pause_minutes }} minutes, normal ping interval will resume
- You will be notified again only if the issue persists

---
This is an automated notification from AutoPing.
Monitoring Job ID: {{ job.id }} | Generated at {{ generated_at }}
"""
)

_FAILURE_HTML = _html_env.from_string(
    """<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: #764ba2; color: white; padding: 24px; border-radius: 10px 10px 0 0; text-align: center;">
    <h1 style="margin: 0;">AutoPing Alert</h1>
    <p style="margin: 8px 0 0 0;">Domain Unreachable</p>
  </div>
  <div style="background: #f8f9fa; padding: 24px; border-radius: 0 0 10px 10px;">
    <p><strong>Alert:</strong> Your monitored domain has failed to respond after {{ threshold }} consecutive ping attempts.</p>
    <table style="width: 100%; background: white; padding: 12px;">
      <tr><td><strong>Domain:</strong></td><td>{{ job.url }}</td></tr>
      <tr><td><strong>Status:</strong></td><td style="color: #dc3545;"><strong>OFFLINE</strong></td></tr>
      <tr><td><strong>Check Interval:</strong></td><td>{{ job.interval }}</td></tr>
      <tr><td><strong>Failure Count:</strong></td><td>{{ job.failure_count }} consecutive failures</td></tr>
      <tr><td><strong>Last Checked:</strong></td><td>{{ last_checked }}</td></tr>
      <tr><td><strong>Last Result:</strong></td><td>{{ job.last_result or "N/A" }}</td></tr>
    </table>
    <h3>Failure History:</h3>
    <pre style="background: white; padding: 12px; white-space: pre-wrap;">
{%- for line in history_lines %}
{{ line }}
{%- else %}
No detailed failure history available
{%- endfor %}
</pre>
    <p><strong>Next Steps:</strong></p>
    <ul>
      <li>AutoPing will pause monitoring for {{ pause_minutes }} minutes</li>
      <li>After {{ pause_minutes }} minutes, normal ping interval will resume</li>
      <li>You will be notified again only if the issue persists</li>
    </ul>
  </div>
  <p style="text-align: center; color: #666; font-size: 12px;">
    This is an automated notification from AutoPing.<br>
    Monitoring Job ID: {{ job.id }} | Generated at {{ generated_at }}
  </p>
</body>
</html>
"""
)

_RECOVERY_TEXT = _text_env.from_string(
    """AutoPing Recovery - Domain Back Online
======================================

Good News! Your monitored domain is now responding successfully!

Domain: {{ job.url }}
Status: ONLINE
Downtime Duration: {{ downtime }}
Recovery Time: {{ generated_at }}
Check Interval: {{ job.interval }}
Last Result: {{ job.last_result or "Success" }}

Status:
- Domain is responding normally
- AutoPing has resumed normal monitoring at {{ job.interval }} intervals
- You will be notified if the issue occurs again

---
This is an automated notification from AutoPing.
Monitoring Job ID: {{ job.id }} | Generated at {{ generated_at }}
"""
)

_RECOVERY_HTML = _html_env.from_string(
    """<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: #16a34a; color: white; padding: 24px; border-radius: 10px 10px 0 0; text-align: center;">
    <h1 style="margin: 0;">AutoPing Recovery</h1>
    <p style="margin: 8px 0 0 0;">Domain Back Online</p>
  </div>
  <div style="background: #f8f9fa; padding: 24px; border-radius: 0 0 10px 10px;">
    <p><strong>Good News!</strong> Your monitored domain is now responding successfully!</p>
    <table style="width: 100%; background: white; padding: 12px;">
      <tr><td><strong>Domain:</strong></td><td>{{ job.url }}</td></tr>
      <tr><td><strong>Status:</strong></td><td style="color: #16a34a;"><strong>ONLINE</strong></td></tr>
      <tr><td><strong>Downtime Duration:</strong></td><td>{{ downtime }}</td></tr>
      <tr><td><strong>Recovery Time:</strong></td><td>{{ generated_at }}</td></tr>
      <tr><td><strong>Check Interval:</strong></td><td>{{ job.interval }}</td></tr>
      <tr><td><strong>Last Result:</strong></td><td>{{ job.last_result or "Success" }}</td></tr>
    </table>
    <ul>
      <li>Domain is responding normally</li>
      <li>AutoPing has resumed normal monitoring at {{ job.interval }} intervals</li>
      <li>You will be notified if the issue occurs again</li>
    </ul>
  </div>
  <p style="text-align: center; color: #666; font-size: 12px;">
    This is an automated notification from AutoPing.<br>
    Monitoring Job ID: {{ job.id }} | Generated at {{ generated_at }}
  </p>
</body>
</html>
"""
)


def _format_local(ts: float | None) -> str:
    if ts is None:
        return "N/A"
    return datetime.fromtimestamp(float(ts)).strftime("%Y-%m-%d %H:%M:%S")


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'s' if n != 1 else ''}"


def format_downtime(seconds: float | None) -> str:
    if seconds is None:
        return "Unknown"
    total = max(0, int(seconds))
    minutes, secs = divmod(total, 60)
    if minutes > 0:
        return f"{_plural(minutes, 'minute')} {_plural(secs, 'second')}"
    return _plural(secs, "second")


def build_failure_message(
    job: Job,
    history: list[FailureRecord],
    *,
    sender: str | None,
    threshold: int = 3,
    pause_minutes: int = 5,
) -> EmailMessage:
    ctx = {
        "job": job,
        "threshold": threshold,
        "pause_minutes": pause_minutes,
        "last_checked": _format_local(job.last_run),
        "history_lines": [f"{i}. {_format_local(f.time)} - {f.result}" for i, f in enumerate(history, start=1)],
        "generated_at": _format_local(time.time()),
    }
    msg = EmailMessage()
    msg["From"] = sender or ""
    msg["To"] = job.alert_email or ""
    msg["Subject"] = f"AutoPing Alert: {job.url} is DOWN"
    msg.set_content(_FAILURE_TEXT.render(**ctx))
    msg.add_alternative(_FAILURE_HTML.render(**ctx), subtype="html")
    return msg


def build_recovery_message(job: Job, downtime: str, *, sender: str | None) -> EmailMessage:
    ctx = {"job": job, "downtime": downtime, "generated_at": _format_local(time.time())}
    msg = EmailMessage()
    msg["From"] = sender or ""
    msg["To"] = job.alert_email or ""
    msg["Subject"] = f"AutoPing Recovery: {job.url} is BACK ONLINE"
    msg.set_content(_RECOVERY_TEXT.render(**ctx))
    msg.add_alternative(_RECOVERY_HTML.render(**ctx), subtype="html")
    return msg


class Mailer:
    """Best-effort SMTP delivery; every failure is logged and reported as False."""

    def __init__(self, config: SmtpConfig, *, threshold: int = 3, pause_minutes: int = 5):
        self.config = config
        self.threshold = threshold
        self.pause_minutes = pause_minutes

    def _deliver(self, msg: EmailMessage) -> None:
        cfg = self.config
        if cfg.secure:
            with smtplib.SMTP_SSL(cfg.host, cfg.port, timeout=cfg.timeout_seconds, context=ssl.create_default_context()) as server:
                server.login(cfg.user, cfg.password)
                server.send_message(msg)
            return
        with smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout_seconds) as server:
            server.starttls(context=ssl.create_default_context())
            server.login(cfg.user, cfg.password)
            server.send_message(msg)

    async def _send(self, job: Job, msg: EmailMessage, *, kind: str) -> bool:
        if not self.config.configured:
            logger.warning("Email not configured; skipping notification", job_id=job.id, kind=kind)
            return False
        if not job.alert_email:
            logger.warning("No alert email configured; skipping notification", job_id=job.id, kind=kind)
            return False
        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError, ValueError) as e:
            logger.error("Email delivery failed", job_id=job.id, kind=kind, to=job.alert_email, error=str(e))
            return False
        logger.info("Email sent", job_id=job.id, kind=kind, to=job.alert_email)
        return True

    async def send_failure(self, job: Job, history: list[FailureRecord]) -> bool:
        msg = build_failure_message(
            job, history, sender=self.config.sender, threshold=self.threshold, pause_minutes=self.pause_minutes
        )
        return await self._send(job, msg, kind="failure")

    async def send_recovery(self, job: Job, downtime: str) -> bool:
        msg = build_recovery_message(job, downtime, sender=self.config.sender)
        return await self._send(job, msg, kind="recovery")
