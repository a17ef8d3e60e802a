"""Main API router for v1."""
from fastapi import APIRouter

from app.api.v1.endpoints import notices, polls, public, tracking

api_router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
api_router.include_router(polls.router, prefix="/polls", tags=["Polls"])
api_router.include_router(notices.router, prefix="/notices", tags=["Notices"])
api_router.include_router(tracking.router, prefix="/tracking", tags=["Email Tracking"])
api_router.include_router(public.router, tags=["Public"])

# Links in emails that have already gone out point at the unversioned paths
legacy_router = APIRouter(prefix="/api")
legacy_router.include_router(public.router, tags=["Public"])
