"""Shared API dependencies."""
from fastapi import HTTPException

from app.db import get_db
from app.core.config import settings
from app.core.exceptions import (
    AccessDeniedError,
    NotFoundError,
    PollStateError,
    VotingTokenError,
)
from app.core.security import get_current_user
from app.mail.delivery import DeliveryEngine
from app.mail.transport import build_transport

__all__ = [
    "get_db",
    "get_current_user",
    "get_delivery_engine",
    "get_settings",
    "http_error",
]


def get_settings():
    """Settings as a dependency so tests can point URLs elsewhere."""
    return settings


def get_delivery_engine() -> DeliveryEngine:
    """Delivery engine over the configured transport."""
    return DeliveryEngine(
        build_transport(settings),
        max_attempts=settings.EMAIL_MAX_ATTEMPTS,
        base_delay=settings.EMAIL_RETRY_BASE_DELAY,
    )


def http_error(error: ValueError) -> HTTPException:
    """Map a service-layer error to its HTTP status."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (AccessDeniedError, VotingTokenError)):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, PollStateError):
        return HTTPException(status_code=409, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))
