"""
Database engine and session management with connection pooling.

Builds the StoreCapabilities object used by the core components and
exposes it as a FastAPI dependency.

Usage:
    from pharmacare.database.session import get_store_capabilities

    @router.get("/items")
    async def get_items(store: StoreCapabilities = Depends(get_store_capabilities)):
        ...
"""

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from fastapi import HTTPException, status

from pharmacare.config.settings import AppSettings, load_settings
from pharmacare.database.store import StoreCapabilities, StoreUnavailableError

logger = logging.getLogger(__name__)

# Built lazily on first request
_capabilities: Optional[StoreCapabilities] = None


def create_store_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    Uses connection pooling with sensible defaults for production:
    - pool_size: 5 connections
    - max_overflow: 10 additional connections under load
    - pool_pre_ping: Verify connections before use
    """
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})

    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connection health
        pool_recycle=1800,   # Recycle connections after 30 minutes
    )


def _session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def build_store_capabilities(settings: AppSettings) -> StoreCapabilities:
    """
    Build standard and elevated capabilities from settings.

    Raises:
        StoreUnavailableError: If DATABASE_URL is not configured
    """
    if not settings.database_url:
        raise StoreUnavailableError("DATABASE_URL environment variable is not set")

    standard_engine = create_store_engine(settings.database_url)

    if settings.database_service_url:
        elevated_engine = create_store_engine(settings.database_service_url)
    else:
        logger.warning(
            "DATABASE_SERVICE_URL not set; elevated capability bound to the standard database URL"
        )
        elevated_engine = standard_engine

    logger.info("Store capabilities created", extra={
        "elevated_separate": elevated_engine is not standard_engine
    })

    return StoreCapabilities(
        standard_factory=_session_factory(standard_engine),
        elevated_factory=_session_factory(elevated_engine),
    )


def capabilities_for_engine(engine: Engine) -> StoreCapabilities:
    """Bind both capability levels to one engine (jobs and tests)."""
    factory = _session_factory(engine)
    return StoreCapabilities(standard_factory=factory, elevated_factory=factory)


def get_store_capabilities() -> StoreCapabilities:
    """
    FastAPI dependency for the store capabilities.

    Raises HTTP 503 if the database is not configured.
    """
    global _capabilities
    if _capabilities is None:
        try:
            _capabilities = build_store_capabilities(load_settings())
        except StoreUnavailableError as e:
            logger.error("Failed to create store capabilities", extra={"error": str(e)})
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Database not configured"
            )
    return _capabilities
