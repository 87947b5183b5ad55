"""Rate limiting configuration using slowapi.

Provides a module-level Limiter instance that can be imported by routers
for per-endpoint rate limiting, and wired into the FastAPI app in main.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from leave_ledger.config import settings

# Batch endpoints (annual allocation, outbox dispatch) opt in with
# @limiter.limit(BATCH_RATE_LIMIT).
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)

BATCH_RATE_LIMIT = "10/minute"
