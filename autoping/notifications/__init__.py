"""Alert delivery: rate limiting, email and local desktop notifications."""

from .desktop import DesktopNotifier
from .email import Mailer, format_downtime
from .throttle import can_send

__all__ = ["DesktopNotifier", "Mailer", "can_send", "format_downtime"]
