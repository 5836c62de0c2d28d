"""
Service wiring for route handlers.

Every core component is built per request from the injected store
capabilities and settings. Tests override get_store_capabilities,
get_settings and get_gateway.
"""

from typing import Optional

from fastapi import Depends, Request

from pharmacare.auth.session_token import SessionTokenCodec
from pharmacare.config.settings import AppSettings, load_settings
from pharmacare.database.session import get_store_capabilities
from pharmacare.database.store import StoreCapabilities
from pharmacare.integrations.chapa.client import ChapaClient
from pharmacare.services.access_resolver import AccessResolver
from pharmacare.services.entitlement_service import EntitlementService
from pharmacare.services.payment_reconciler import PaymentReconciler
from pharmacare.services.principal_service import PrincipalService
from pharmacare.services.session_issuer import SessionIssuer


def get_settings() -> AppSettings:
    return load_settings()


def get_gateway(request: Request) -> Optional[ChapaClient]:
    """Chapa client created in the app lifespan (None if not configured)."""
    return getattr(request.app.state, "chapa_client", None)


def get_access_resolver(store: StoreCapabilities = Depends(get_store_capabilities)) -> AccessResolver:
    return AccessResolver(store)


def get_entitlement_service(store: StoreCapabilities = Depends(get_store_capabilities)) -> EntitlementService:
    return EntitlementService(store)


def get_session_issuer(
    store: StoreCapabilities = Depends(get_store_capabilities),
    settings: AppSettings = Depends(get_settings),
    entitlements: EntitlementService = Depends(get_entitlement_service),
) -> SessionIssuer:
    return SessionIssuer(
        store,
        SessionTokenCodec(settings),
        entitlements,
        verbose_errors=settings.verbose_auth_errors,
    )


def get_payment_reconciler(
    store: StoreCapabilities = Depends(get_store_capabilities),
    settings: AppSettings = Depends(get_settings),
    gateway: Optional[ChapaClient] = Depends(get_gateway),
) -> PaymentReconciler:
    return PaymentReconciler(store, gateway, settings)


def get_principal_service(store: StoreCapabilities = Depends(get_store_capabilities)) -> PrincipalService:
    return PrincipalService(store)
