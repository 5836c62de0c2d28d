"""
Chapa REST API client for checkout initialization and verification.

Endpoints used:
- POST /transaction/initialize
- GET  /transaction/verify/{tx_ref}

Documentation: https://developer.chapa.co/
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

import httpx

from pharmacare.config.settings import AppSettings
from pharmacare.integrations.chapa.exceptions import GatewayError, GatewayTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.chapa.co/v1"


@dataclass
class CheckoutSession:
    """Result of initializing a hosted checkout."""
    checkout_url: str
    raw: dict = field(default_factory=dict)


@dataclass
class VerificationResult:
    """Result of verifying a transaction by tx_ref."""
    tx_ref: str
    succeeded: bool
    transaction_id: Optional[str] = None
    raw: dict = field(default_factory=dict)


class ChapaClient:
    """
    Client for Chapa payment operations.

    All calls are bounded by a short timeout. Timeouts raise
    GatewayTimeoutError, other transport or API failures raise GatewayError.

    SECURITY: The secret key is sent as a bearer token and never logged.
    """

    def __init__(self, secret_key: str, base_url: str = DEFAULT_BASE_URL, timeout_seconds: float = 10.0):
        if not secret_key:
            raise ValueError("secret_key is required")

        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=5.0),
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
            }
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(self, method: str, path: str, tx_ref: str, payload: Optional[dict] = None) -> dict:
        """
        Send a request and return the decoded JSON body.

        Raises:
            GatewayTimeoutError: If the request timed out
            GatewayError: On transport errors or non-2xx responses
        """
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, json=payload)
        except httpx.TimeoutException as e:
            logger.warning("Chapa API timeout", extra={"tx_ref": tx_ref, "path": path})
            raise GatewayTimeoutError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error("Chapa API request error", extra={"tx_ref": tx_ref, "error": str(e)})
            raise GatewayError(f"Request error: {e}")

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}

        if response.status_code >= 400:
            logger.error("Chapa API error", extra={
                "tx_ref": tx_ref,
                "status_code": response.status_code,
                "response_text": response.text[:500],
            })
            raise GatewayError(
                body.get("message") or f"Chapa API error: {response.status_code}",
                status_code=response.status_code,
                response=body,
            )

        return body

    async def initialize_transaction(
        self,
        tx_ref: str,
        amount: Decimal,
        currency: str,
        email: str,
        full_name: Optional[str],
        callback_url: str,
        return_url: str,
        description: str,
        phone: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Initialize a hosted checkout.

        Returns:
            CheckoutSession with the URL the payer is redirected to

        Raises:
            GatewayError: If Chapa rejects the request or is unreachable
        """
        name_parts = (full_name or "User").split()
        payload = {
            "amount": str(amount),
            "currency": currency,
            "email": email,
            "first_name": name_parts[0] if name_parts else "User",
            "last_name": " ".join(name_parts[1:]) or "User",
            "tx_ref": tx_ref,
            "callback_url": callback_url,
            "return_url": return_url,
            "customization": {"title": "PharmaCare", "description": description[:100]},
        }
        if phone:
            payload["phone_number"] = phone

        body = await self._request("POST", "/transaction/initialize", tx_ref, payload)

        checkout_url = (body.get("data") or {}).get("checkout_url")
        if body.get("status") != "success" or not checkout_url:
            raise GatewayError(body.get("message") or "Checkout initialization failed", response=body)

        logger.info("Chapa checkout initialized", extra={"tx_ref": tx_ref})
        return CheckoutSession(checkout_url=checkout_url, raw=body)

    async def verify_transaction(self, tx_ref: str) -> VerificationResult:
        """
        Ask Chapa for the state of a transaction.

        A transaction counts as succeeded only if both the envelope and the
        transaction status are "success".
        """
        body = await self._request("GET", f"/transaction/verify/{tx_ref}", tx_ref)
        data = body.get("data") or {}
        succeeded = body.get("status") == "success" and data.get("status") == "success"
        transaction_id = data.get("reference") or data.get("id")
        return VerificationResult(
            tx_ref=tx_ref,
            succeeded=succeeded,
            transaction_id=str(transaction_id) if transaction_id else None,
            raw=body,
        )


def get_chapa_client(settings: AppSettings) -> ChapaClient:
    """
    Factory function to create a ChapaClient from settings.

    Raises:
        ValueError: If CHAPA_SECRET_KEY is not configured
    """
    return ChapaClient(
        secret_key=settings.chapa_secret_key,
        base_url=settings.chapa_base_url,
        timeout_seconds=settings.gateway_timeout_seconds,
    )
