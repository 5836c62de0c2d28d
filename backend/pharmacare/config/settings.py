"""
Environment-driven application settings.

Settings are read once per process by load_settings() and passed into
components explicitly. Tests construct AppSettings directly.
"""

import os
import logging
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Used only when ENV is development or test
DEVELOPMENT_JWT_SECRET = "pharmacare-development-secret"


class AppSettings(BaseModel):
    """Configuration for the PharmaCare backend."""

    env: str = "production"
    verbose_auth_errors: bool = False

    database_url: Optional[str] = None
    database_service_url: Optional[str] = None

    jwt_secret: str = Field(..., min_length=1)
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "pharmacare"
    jwt_lifetime_hours: int = 24

    chapa_secret_key: Optional[str] = None
    chapa_base_url: str = "https://api.chapa.co/v1"
    chapa_webhook_secret: Optional[str] = None
    gateway_timeout_seconds: float = 10.0
    payment_currency: str = "ETB"

    frontend_url: str = "http://localhost:5173"
    backend_url: str = "http://localhost:8000"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    @property
    def is_development(self) -> bool:
        return self.env in ("development", "test")


def _normalize_database_url(database_url: Optional[str]) -> Optional[str]:
    """Handle postgres:// URLs (SQLAlchemy requires postgresql://)."""
    if database_url and database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def settings_from_env() -> AppSettings:
    """
    Build settings from environment variables.

    Raises:
        ValueError: If JWT_SECRET is missing outside development/test
    """
    env = os.getenv("ENV", "production").lower()

    jwt_secret = os.getenv("JWT_SECRET")
    if not jwt_secret:
        if env not in ("development", "test"):
            raise ValueError("JWT_SECRET environment variable is required")
        logger.warning("JWT_SECRET not set, using development secret", extra={"env": env})
        jwt_secret = DEVELOPMENT_JWT_SECRET

    cors_origins = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
        if origin.strip()
    ]

    return AppSettings(
        env=env,
        verbose_auth_errors=_env_flag("AUTH_VERBOSE_ERRORS", default=env == "development"),
        database_url=_normalize_database_url(os.getenv("DATABASE_URL")),
        database_service_url=_normalize_database_url(os.getenv("DATABASE_SERVICE_URL")),
        jwt_secret=jwt_secret,
        jwt_issuer=os.getenv("JWT_ISSUER", "pharmacare"),
        jwt_lifetime_hours=int(os.getenv("JWT_LIFETIME_HOURS", "24")),
        chapa_secret_key=os.getenv("CHAPA_SECRET_KEY"),
        chapa_base_url=os.getenv("CHAPA_BASE_URL", "https://api.chapa.co/v1").rstrip("/"),
        chapa_webhook_secret=os.getenv("CHAPA_WEBHOOK_SECRET"),
        gateway_timeout_seconds=float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10")),
        payment_currency=os.getenv("PAYMENT_CURRENCY", "ETB"),
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/"),
        backend_url=os.getenv("BACKEND_URL", "http://localhost:8000").rstrip("/"),
        cors_origins=cors_origins,
    )


@lru_cache(maxsize=1)
def load_settings() -> AppSettings:
    """Get the process-wide settings (read from the environment once)."""
    return settings_from_env()
