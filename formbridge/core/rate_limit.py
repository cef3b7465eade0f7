"""Rate limiting configuration for inbound endpoints."""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from formbridge.core.config import settings

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")

# Storage defaults to in-memory; set RATE_LIMIT_STORAGE_URI=redis://... for multi-worker
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://" if IS_TESTING else settings.RATE_LIMIT_STORAGE_URI,
    enabled=not IS_TESTING and settings.RATE_LIMIT_WEBHOOK > 0,
)


def webhook_limit() -> str:
    """Limit string for the Airtable webhook endpoint."""
    return f"{max(settings.RATE_LIMIT_WEBHOOK, 1)}/minute"
