"""
FastAPI application entry point for PharmaCare Access.

Exposes authentication, payment reconciliation, company membership and
access-scope routes. Core components receive store capabilities and
settings through FastAPI dependencies.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from pharmacare import __version__
from pharmacare.api.routes import health, auth, payments, company, admin, access
from pharmacare.config.settings import load_settings
from pharmacare.database.store import StoreError, StoreUnavailableError
from pharmacare.integrations.chapa.client import get_chapa_client
from pharmacare.services.access_resolver import AccessDeniedError

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting PharmaCare Access API", extra={"version": __version__})

    settings = load_settings()

    if settings.database_url:
        # Mask credentials for safe logging
        masked = settings.database_url.split("@")[-1]
        logger.info("DATABASE_URL configured", extra={"host_db": masked})
    else:
        logger.error("DATABASE_URL is not set. Store-backed endpoints will return 503.")

    app.state.chapa_client = None
    if settings.chapa_secret_key:
        app.state.chapa_client = get_chapa_client(settings)
        logger.info("Chapa client configured", extra={"base_url": settings.chapa_base_url})
    else:
        logger.warning("CHAPA_SECRET_KEY not set. Checkout and verification calls will fail.")

    yield

    # Shutdown
    if app.state.chapa_client is not None:
        await app.state.chapa_client.close()
    logger.info("Shutting down PharmaCare Access API")


# Create FastAPI app
app = FastAPI(
    title="PharmaCare Access API",
    description="Tenant access resolution and subscription entitlement for PharmaCare",
    version=__version__,
    lifespan=lifespan
)

cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in cors_origins if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include health route (bypasses authentication)
app.include_router(health.router)

# Include auth routes (login and registration are public)
app.include_router(auth.router)

# Include payment routes (webhook uses optional HMAC verification, not JWT)
app.include_router(payments.router)

# Include company member routes (requires company admin role)
app.include_router(company.router)

# Include admin routes (requires admin role)
app.include_router(admin.router)

# Include access scope introspection (requires authentication)
app.include_router(access.router)


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError):
    logger.warning("Access denied", extra={
        "path": request.url.path,
        "owner_id": exc.owner_id,
    })
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"error": "Forbidden", "detail": str(exc)}
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("Store error", extra={
        "path": request.url.path,
        "error_type": type(exc).__name__,
    })
    detail = "Database not available" if isinstance(exc, StoreUnavailableError) else "Database error"
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Service unavailable", "detail": detail}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
