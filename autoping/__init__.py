"""AutoPing: scheduled HTTP uptime probing with failure escalation and email alerts."""

__version__ = "0.1.0"
