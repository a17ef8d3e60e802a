"""Middleware package."""
from app.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
