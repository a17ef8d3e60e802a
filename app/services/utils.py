"""Shared utilities for service layer."""
from typing import Any, Callable

from sqlalchemy.orm import Session

from app.core.exceptions import AccessDeniedError
from app.core.logging_config import get_logger

logger = get_logger(__name__)


def run_best_effort(db: Session, action: str, func: Callable[..., Any], *args, **kwargs) -> bool:
    """
    Run a side effect whose failure must not undo the caller's work.

    The session is rolled back on failure so the caller can keep using it.

    Returns:
        True if ``func`` completed, False if it raised (the error is logged).
    """
    try:
        func(db, *args, **kwargs)
        return True
    except Exception as e:
        db.rollback()
        logger.warning("best_effort_failed", action=action, error=str(e), error_type=type(e).__name__)
        return False


def ensure_owner(entity, acting_user: str) -> None:
    """Raise AccessDeniedError unless ``acting_user`` created ``entity``."""
    if entity.created_by != acting_user:
        raise AccessDeniedError("Access denied")
