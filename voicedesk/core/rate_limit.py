"""Rate limiting for public endpoints (webhook intake)."""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from voicedesk.core.config import settings

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")

# In-memory storage: the API runs as a single process
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=not IS_TESTING,
)


def webhook_limit() -> str:
    if settings.RATE_LIMIT_WEBHOOK <= 0:
        return "1000000/minute"
    return f"{settings.RATE_LIMIT_WEBHOOK}/minute"
