"""
GTC Membership API - Main entry point.

Manages the membership records of the club:

- Members: the record store, lifecycle transitions and validation
- Applications: acceptance and membership number assignment
- Import: CSV reconciliation with an emailed change summary
- Mailing list: Mailchimp subscription status and metadata sync

All endpoints are served under /api/v1/, apart from /api/health.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gtc_api.api.v1 import api_router
from gtc_api.core.config import get_settings
from gtc_api.core.exceptions import GtcError
from gtc_api.core.logging import configure_logging
from gtc_api.db.base import init_db
from gtc_api.schemas.common import HealthResponse

settings = get_settings()
configure_logging(settings)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    # Startup: create tables if they don't exist
    await init_db()
    logger.info(f"{settings.APP_NAME} started ({settings.APP_ENV})")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# HEALTH CHECK
# ============================================================================

@app.get("/api/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(code=200, message="API is healthy.")


# ============================================================================
# V1 API ENDPOINTS
# ============================================================================

# Members - /api/v1/member/*, Users - /api/v1/user/*
app.include_router(
    api_router,
    prefix=settings.API_V1_PREFIX,
)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(GtcError)
async def gtc_error_handler(request: Request, exc: GtcError):
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    content = {"detail": exc.detail}
    messages = getattr(exc, "messages", None)
    if messages:
        content["messages"] = messages
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc)}
        )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "gtc_api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
