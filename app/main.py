"""Main FastAPI application."""
from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import Session
from sqlalchemy import text

from app.api.v1.router import api_router, legacy_router
from app.api.deps import get_db
from app.core.config import settings
from app.core.rate_limit import limiter
from app.core.logging_config import setup_logging, get_logger
from app.middleware import LoggingMiddleware

# Initialize structured logging
setup_logging(level=settings.LOG_LEVEL)
logger = get_logger(__name__)

# Validate production configuration after logging is configured
if settings.ENVIRONMENT == "production":
    settings.validate_production_config()

logger.info(
    "application_starting",
    app_title=settings.APP_TITLE,
    app_version=settings.APP_VERSION,
    environment=settings.ENVIRONMENT,
    email_provider=settings.EMAIL_PROVIDER,
)

app = FastAPI(
    title=settings.APP_TITLE,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION
)

# Add rate limiter to app state
app.state.limiter = limiter

# Add rate limit exceeded exception handler
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add logging middleware (must be added before other middleware for proper request tracking)
app.add_middleware(LoggingMiddleware)


@app.middleware("http")
async def add_api_version_header(request: Request, call_next):
    """Add X-API-Version header to all responses for version tracking."""
    response = await call_next(request)
    response.headers["X-API-Version"] = settings.APP_VERSION
    return response

# Bearer tokens, not cookies, so credentials are not needed cross-origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-API-Version"],
)

app.include_router(api_router)
app.include_router(legacy_router)


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
        - status: "healthy" or "unhealthy"
        - database: connection status and pool metrics
        - email_provider: configured transport
        - environment: current environment setting

    Returns 503 if database is unreachable.
    """
    from app.db.session import engine

    health_status = {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "email_provider": settings.EMAIL_PROVIDER,
        "database": {
            "status": "connected",
            "pool": engine.pool.status(),
        },
    }

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["database"]["status"] = f"error: {str(e)}"
        logger.error("health_check_failed", error=str(e))
        raise HTTPException(status_code=503, detail=health_status)

    return health_status
