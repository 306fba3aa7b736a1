from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator

from autoping import intervals


class CreateJobRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2000)
    interval: str = Field(..., min_length=1, max_length=40)
    alert_email: str | None = Field(None, max_length=320)
    email_rate_limit: int | None = Field(None, ge=1, le=7 * 24 * 60)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        s = value.strip()
        parts = urlsplit(s)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError("url must be an absolute http(s) URL")
        return s

    @field_validator("interval")
    @classmethod
    def _check_interval(cls, value: str) -> str:
        s = value.strip()
        if s not in intervals.user_selectable():
            raise ValueError(f"interval must be one of: {', '.join(intervals.user_selectable())}")
        return s

    @field_validator("alert_email")
    @classmethod
    def _blank_email_is_none(cls, value: str | None) -> str | None:
        s = (value or "").strip()
        return s or None


class UpdateEmailRequest(BaseModel):
    alert_email: str | None = Field(None, max_length=320)
