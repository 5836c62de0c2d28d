"""
Chapa payment gateway integration.
"""

from pharmacare.integrations.chapa.client import (
    ChapaClient,
    CheckoutSession,
    VerificationResult,
    get_chapa_client,
)
from pharmacare.integrations.chapa.exceptions import GatewayError, GatewayTimeoutError

__all__ = [
    "ChapaClient",
    "CheckoutSession",
    "VerificationResult",
    "get_chapa_client",
    "GatewayError",
    "GatewayTimeoutError",
]
