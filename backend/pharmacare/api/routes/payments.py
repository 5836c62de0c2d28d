"""
Payment routes: checkout, gateway webhook, verification and history.

SECURITY: When CHAPA_WEBHOOK_SECRET is configured, webhooks must carry a
hex HMAC-SHA256 of the raw body in Chapa-Signature (or x-chapa-signature).
"""

import hmac
import hashlib
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from pharmacare.api.dependencies.auth import get_current_claims
from pharmacare.api.dependencies.services import get_settings, get_payment_reconciler
from pharmacare.auth.session_token import SessionClaims
from pharmacare.config.settings import AppSettings
from pharmacare.integrations.chapa.exceptions import GatewayError
from pharmacare.services.payment_reconciler import (
    PaymentReconciler,
    PaymentReconcilerError,
    PaymentNotFoundError,
    InvalidPlanError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["payments"])

SIGNATURE_HEADERS = ("Chapa-Signature", "x-chapa-signature")


class CreatePaymentRequest(BaseModel):
    plan_id: str = Field(..., alias="planId")
    email: str
    full_name: Optional[str] = Field(None, alias="fullName")
    phone: Optional[str] = None
    account_type: Optional[str] = Field(None, alias="accountType")
    frontend_url: Optional[str] = Field(None, alias="frontendUrl")

    model_config = {"populate_by_name": True}


class CreatePaymentResponse(BaseModel):
    success: bool = True
    payment_url: str = Field(..., serialization_alias="paymentUrl")
    tx_ref: str = Field(..., serialization_alias="txRef")
    amount: float


class WebhookResponse(BaseModel):
    success: bool = True
    message: str
    status: Optional[str] = None


class VerifyResponse(BaseModel):
    success: bool = True
    is_paid: bool = Field(..., serialization_alias="isPaid")
    status: str
    subscription_end_date: Optional[str] = Field(None, serialization_alias="subscriptionEndDate")
    payment: dict


def verify_chapa_signature(data: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Verify a Chapa webhook signature (hex HMAC-SHA256 of the raw body).

    Returns:
        True if signature is valid, False otherwise
    """
    if not signature or not secret:
        return False
    computed = hmac.new(secret.encode("utf-8"), data, hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, signature.strip().lower())


@router.post(
    "/payments/create",
    response_model=CreatePaymentResponse,
    response_model_by_alias=True,
)
async def create_payment(
    body: CreatePaymentRequest,
    claims: SessionClaims = Depends(get_current_claims),
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
):
    """Start a hosted checkout for a plan."""
    try:
        result = await reconciler.create_payment(
            plan_id=body.plan_id,
            email=body.email,
            full_name=body.full_name,
            phone=body.phone,
            principal_id=claims.user_id,
            account_kind=body.account_type or claims.account_kind,
            frontend_url=body.frontend_url,
        )
    except InvalidPlanError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except GatewayError as e:
        logger.error("Checkout initialization failed", extra={
            "plan_id": body.plan_id,
            "error": str(e),
        })
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Payment gateway error")
    except PaymentReconcilerError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return CreatePaymentResponse(payment_url=result.payment_url, tx_ref=result.tx_ref, amount=result.amount)


@router.post("/payments/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    settings: AppSettings = Depends(get_settings),
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
):
    """
    Gateway callback.

    200 for any recognized tx_ref (including no-ops), 404 for unknown.
    """
    body = await request.body()

    if settings.chapa_webhook_secret:
        signature = next(
            (request.headers.get(h) for h in SIGNATURE_HEADERS if request.headers.get(h)),
            None,
        )
        if not verify_chapa_signature(body, signature, settings.chapa_webhook_secret):
            logger.warning("Invalid webhook signature")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    # ValueError covers malformed JSON and bodies that are not valid UTF-8
    try:
        payload = json.loads(body) if body else {}
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")

    tx_ref = payload.get("tx_ref") or payload.get("txRef")
    if not tx_ref:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing tx_ref")

    result = await reconciler.handle_webhook(tx_ref, payload.get("status"), payload)
    if not result.found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    return WebhookResponse(message=result.message, status=result.status)


@router.get(
    "/payments/{tx_ref}/verify",
    response_model=VerifyResponse,
    response_model_by_alias=True,
)
async def verify_payment(
    tx_ref: str,
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
):
    """Verify a payment, asking the gateway if it is still pending."""
    try:
        outcome = await reconciler.verify_payment(tx_ref)
    except PaymentNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    end_date = outcome.subscription_end_date
    return VerifyResponse(
        is_paid=outcome.is_paid,
        status=outcome.status,
        subscription_end_date=end_date.isoformat() if end_date else None,
        payment=outcome.payment,
    )


@router.get("/payments/mine")
async def my_payments(
    claims: SessionClaims = Depends(get_current_claims),
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
):
    return {"success": True, "payments": reconciler.payments_for(claims.user_id, claims.email)}


@router.get("/subscriptions/mine")
async def my_subscriptions(
    claims: SessionClaims = Depends(get_current_claims),
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
):
    return {"success": True, "subscriptions": reconciler.subscriptions_for(claims.user_id)}
