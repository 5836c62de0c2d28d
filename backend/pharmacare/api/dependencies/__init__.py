"""
API Dependencies module.

Provides shared FastAPI dependencies for route handlers.
"""

from pharmacare.api.dependencies.auth import get_current_claims, require_roles
from pharmacare.api.dependencies.access import get_access_scope
from pharmacare.api.dependencies.services import (
    get_settings,
    get_gateway,
    get_access_resolver,
    get_entitlement_service,
    get_session_issuer,
    get_payment_reconciler,
    get_principal_service,
)

__all__ = [
    "get_current_claims",
    "require_roles",
    "get_access_scope",
    "get_settings",
    "get_gateway",
    "get_access_resolver",
    "get_entitlement_service",
    "get_session_issuer",
    "get_payment_reconciler",
    "get_principal_service",
]
