"""Rate limiting configuration."""
import os
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings


def get_client_ip(request):
    """Get client IP for rate limiting, considering proxies."""
    # Check X-Forwarded-For header (from reverse proxies)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first one
        return forwarded.split(",")[0].strip()

    return get_remote_address(request)


# Uses Redis if REDIS_URL is set, falls back to memory for local dev
limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["100/minute"],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)

# Mail clients behind corporate proxies share IPs and prefetch images,
# so the public endpoints are generous.
RATE_LIMITS = {
    "track_open": "600/minute",
    "vote": "60/minute",
    "public_poll": "120/minute",

    # Authenticated endpoints
    "send_email": "20/minute",
    "mediator_read": "200/minute",
    "mediator_write": "100/minute",
}
