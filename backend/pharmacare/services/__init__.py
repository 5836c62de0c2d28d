"""
Business logic services.
"""

from pharmacare.services.access_resolver import AccessResolver, AccessScope, AccessDeniedError
from pharmacare.services.entitlement_service import EntitlementService, Entitlement
from pharmacare.services.payment_reconciler import PaymentReconciler
from pharmacare.services.principal_service import PrincipalService
from pharmacare.services.session_issuer import SessionIssuer

__all__ = [
    "AccessResolver",
    "AccessScope",
    "AccessDeniedError",
    "EntitlementService",
    "Entitlement",
    "PaymentReconciler",
    "PrincipalService",
    "SessionIssuer",
]
