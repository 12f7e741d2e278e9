"""
Admin HTTP surface for the notification outbox.

A single FastAPI application exposing a health check and read-only
outbox inspection endpoints.
"""

from api.main import app

__all__ = ["app"]
