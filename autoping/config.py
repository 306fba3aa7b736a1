"""Configuration management for AutoPing."""

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class SmtpConfig(BaseModel):
    """Outbound mail transport settings."""
    host: str = Field(default="smtp.gmail.com", description="SMTP server hostname")
    port: int = Field(default=587, description="SMTP server port")
    secure: bool = Field(default=False, description="Use implicit TLS (SMTP over SSL) instead of STARTTLS")
    user: Optional[str] = Field(default=None, description="SMTP login user")
    password: Optional[str] = Field(default=None, description="SMTP login password")
    email_from: Optional[str] = Field(default=None, description="From address; defaults to the SMTP user")
    timeout_seconds: float = Field(default=30.0, description="Socket timeout for one delivery")

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)

    @property
    def sender(self) -> Optional[str]:
        return self.email_from or self.user


class AutoPingConfig(BaseModel):
    """Main configuration for the AutoPing service."""

    # Server settings
    host: str = Field(default="127.0.0.1", description="Address the HTTP API binds to")
    port: int = Field(default=3001, description="Port the HTTP API listens on")
    log_level: str = Field(default="INFO", description="Logging level")

    # Storage
    db_path: str = Field(default="autoping.db", description="Path to the sqlite job database")

    # Probing
    probe_timeout_seconds: float = Field(default=30.0, description="Timeout for one HTTP probe")
    user_agent: str = Field(default="AutoPing Monitor", description="User-Agent header sent with probes")

    # Alerting
    default_email_rate_limit: int = Field(default=30, description="Per-job rate limit (minutes) assigned on create")
    email_rate_limit_minutes: int = Field(default=60, description="Throttle used when a job has no rate limit")
    desktop_notifications: bool = Field(default=True, description="Attempt local desktop notifications")
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def load_config(config_path: Optional[str] = None) -> AutoPingConfig:
    """Load configuration from file or environment variables."""
    if config_path is None:
        config_path = os.getenv("AUTOPING_CONFIG", "config/autoping.yaml")

    config_data = {}

    # Load from file if exists
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
    if not isinstance(config_data, dict):
        raise ValueError("Config YAML must be a mapping")

    env_overrides = {
        "db_path": os.getenv("DB_PATH"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
        "log_level": os.getenv("LOG_LEVEL"),
        "email_rate_limit_minutes": os.getenv("EMAIL_RATE_LIMIT_MINUTES"),
        "probe_timeout_seconds": os.getenv("PROBE_TIMEOUT_SECONDS"),
        "desktop_notifications": os.getenv("DESKTOP_NOTIFICATIONS"),
    }
    smtp_overrides = {
        "host": os.getenv("SMTP_HOST"),
        "port": os.getenv("SMTP_PORT"),
        "secure": os.getenv("SMTP_SECURE"),
        "user": os.getenv("SMTP_USER"),
        "password": os.getenv("SMTP_PASS"),
        "email_from": os.getenv("EMAIL_FROM"),
    }

    for key, value in env_overrides.items():
        if value is not None:
            if key in ["port", "email_rate_limit_minutes"]:
                value = int(value)
            elif key in ["probe_timeout_seconds"]:
                value = float(value)
            elif key in ["desktop_notifications"]:
                value = _env_bool(value)
            config_data[key] = value

    smtp_data = dict(config_data.get("smtp") or {})
    for key, value in smtp_overrides.items():
        if value is not None:
            if key == "port":
                value = int(value)
            elif key == "secure":
                value = _env_bool(value)
            smtp_data[key] = value
    config_data["smtp"] = smtp_data

    return AutoPingConfig(**config_data)
