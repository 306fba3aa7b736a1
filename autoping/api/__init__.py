"""HTTP API for managing monitoring jobs."""

from .app import create_app

__all__ = ["create_app"]
