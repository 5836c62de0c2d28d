"""
Payment reconciliation with idempotent entitlement propagation.

A PaymentRecord moves pending -> paid or pending -> failed exactly once.
Two independent triggers drive the transition and may race:
- the gateway webhook (handle_webhook)
- on-demand verification by the client (verify_payment)

Idempotency:
- The pending -> terminal transition is a conditional update
  (WHERE tx_ref = ? AND status = 'pending'). Only the caller whose update
  affects a row propagates entitlement.
- SubscriptionEvent.tx_ref is unique. A duplicate insert means the grant
  was already propagated.

Failure semantics:
- No store session is held across a gateway call.
- Gateway failures during verification leave the record pending.
- Propagation failures are logged and never roll back the paid transition.
  repropagate() retries them.
"""

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pharmacare.config.settings import AppSettings
from pharmacare.database.store import StoreCapabilities
from pharmacare.integrations.chapa.client import ChapaClient
from pharmacare.integrations.chapa.exceptions import GatewayError
from pharmacare.models.base import utc_now, ensure_utc
from pharmacare.models.company import Company
from pharmacare.models.payment import PaymentRecord, PaymentStatus
from pharmacare.models.principal import AccountKind, Role
from pharmacare.models.subscription_event import SubscriptionEvent, SubscriptionEventStatus
from pharmacare.repositories.principal_directory import PrincipalDirectory, normalize_email
from pharmacare.services.entitlement_service import EntitlementStatus
from pharmacare.services.plan_catalog import get_plan, is_company_plan, calculate_end_date

logger = logging.getLogger(__name__)

GATEWAY_SUCCESS = "success"
TX_REF_PREFIX = "pharmacare"


class PaymentReconcilerError(Exception):
    """Base exception for payment reconciliation."""
    pass


class PaymentNotFoundError(PaymentReconcilerError):
    """Raised when no payment exists for a tx_ref."""

    def __init__(self, tx_ref: str):
        self.tx_ref = tx_ref
        super().__init__(f"Payment not found: {tx_ref}")


class InvalidPlanError(PaymentReconcilerError):
    """Raised when checkout is requested for an unknown plan."""
    pass


@dataclass
class CheckoutResult:
    """Result of creating a payment."""
    payment_url: str
    tx_ref: str
    amount: float


@dataclass
class WebhookResult:
    """Result of handling a gateway callback."""
    found: bool
    processed: bool
    status: Optional[str] = None
    message: str = ""


@dataclass
class VerificationOutcome:
    """Result of on-demand verification."""
    tx_ref: str
    status: str
    subscription_end_date: Optional[datetime] = None
    payment: dict = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID


def generate_tx_ref(now: datetime) -> str:
    """pharmacare_<epoch ms>_<6 random chars>"""
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(6))
    return f"{TX_REF_PREFIX}_{int(now.timestamp() * 1000)}_{suffix}"


class PaymentReconciler:
    """Drives PaymentRecords to a terminal state and propagates entitlement."""

    def __init__(
        self,
        store: StoreCapabilities,
        gateway: Optional[ChapaClient],
        settings: AppSettings,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            store: Store capabilities
            gateway: Chapa client (None disables checkout and verification calls)
            settings: Application settings
            clock: Source of the current UTC time
        """
        self.store = store
        self.gateway = gateway
        self.settings = settings
        self.clock = clock

    def _require_gateway(self) -> ChapaClient:
        if self.gateway is None:
            raise GatewayError("Payment gateway is not configured")
        return self.gateway

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def create_payment(
        self,
        plan_id: str,
        email: str,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        principal_id: Optional[str] = None,
        account_kind: Optional[str] = None,
        frontend_url: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Initialize a hosted checkout and record a pending payment.

        Raises:
            InvalidPlanError: If plan_id is not in the catalogue
            GatewayError: If the gateway rejects the checkout
        """
        plan = get_plan(plan_id)
        if plan is None:
            raise InvalidPlanError(f"Invalid plan: {plan_id}")

        email = normalize_email(email)
        if not email:
            raise PaymentReconcilerError("Email is required")

        tx_ref = generate_tx_ref(self.clock())
        frontend = (frontend_url or self.settings.frontend_url).rstrip("/")

        checkout = await self._require_gateway().initialize_transaction(
            tx_ref=tx_ref,
            amount=plan.price,
            currency=self.settings.payment_currency,
            email=email,
            full_name=full_name,
            phone=phone,
            callback_url=f"{self.settings.backend_url}/api/payments/webhook",
            return_url=f"{frontend}/subscription/success?tx_ref={tx_ref}",
            description=plan.name,
        )

        with self.store.standard() as session:
            session.add(PaymentRecord(
                tx_ref=tx_ref,
                principal_id=principal_id,
                principal_email=email,
                principal_name=full_name or "User",
                principal_phone=phone,
                account_type=account_kind or AccountKind.INDIVIDUAL.value,
                plan_id=plan.id,
                plan_name=plan.name,
                amount=plan.price,
                currency=self.settings.payment_currency,
                status=PaymentStatus.PENDING,
                payment_url=checkout.checkout_url,
                gateway_response=checkout.raw,
            ))
            session.commit()

        logger.info("Payment created", extra={
            "tx_ref": tx_ref,
            "plan_id": plan.id,
            "account_type": account_kind,
        })
        return CheckoutResult(payment_url=checkout.checkout_url, tx_ref=tx_ref, amount=float(plan.price))

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def handle_webhook(self, tx_ref: str, status: Optional[str], raw: Optional[dict] = None) -> WebhookResult:
        """
        Apply a gateway callback.

        Unknown tx_ref returns found=False and changes nothing. A terminal
        record is acknowledged without side effects.
        """
        payment = self._load(tx_ref)
        if payment is None:
            logger.warning("Webhook for unknown tx_ref", extra={"tx_ref": tx_ref})
            return WebhookResult(found=False, processed=False, message="Payment not found")

        if payment.is_terminal:
            logger.info("Webhook for terminal payment ignored", extra={
                "tx_ref": tx_ref,
                "status": payment.status,
            })
            return WebhookResult(
                found=True, processed=False, status=payment.status, message="Already processed"
            )

        raw = raw or {}
        if status == GATEWAY_SUCCESS:
            transitioned = self._transition(
                tx_ref, PaymentStatus.PAID, raw, transaction_id=raw.get("transaction_id") or raw.get("reference")
            )
            if transitioned:
                self._propagate_safely(tx_ref)
        else:
            transitioned = self._transition(tx_ref, PaymentStatus.FAILED, raw)

        current = self._load(tx_ref)
        return WebhookResult(
            found=True,
            processed=transitioned,
            status=current.status if current else None,
            message="Processed" if transitioned else "Already processed",
        )

    async def verify_payment(self, tx_ref: str) -> VerificationOutcome:
        """
        Verify a payment on demand.

        Paid records return immediately without a gateway call. Pending
        records are checked with the gateway; gateway failures return the
        pending state unchanged.

        Raises:
            PaymentNotFoundError: If tx_ref is unknown
        """
        payment = self._load(tx_ref)
        if payment is None:
            raise PaymentNotFoundError(tx_ref)

        if payment.status != PaymentStatus.PENDING:
            return self._outcome(tx_ref)

        try:
            result = await self._require_gateway().verify_transaction(tx_ref)
        except GatewayError as e:
            logger.warning("Gateway verification failed, payment left pending", extra={
                "tx_ref": tx_ref,
                "error": str(e),
            })
            return self._outcome(tx_ref)

        if not result.succeeded:
            logger.info("Gateway has not confirmed payment", extra={"tx_ref": tx_ref})
            return self._outcome(tx_ref)

        if self._transition(tx_ref, PaymentStatus.PAID, result.raw, transaction_id=result.transaction_id):
            self._propagate_safely(tx_ref)

        return self._outcome(tx_ref)

    def repropagate(self, tx_ref: str) -> Optional[datetime]:
        """
        Retry propagation for a paid payment with no SubscriptionEvent.

        Returns:
            Entitlement end date, or None if the payment is not paid
        """
        payment = self._load(tx_ref)
        if payment is None:
            raise PaymentNotFoundError(tx_ref)
        if payment.status != PaymentStatus.PAID:
            return None
        return self._propagate(tx_ref)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def payments_for(self, principal_id: str, email: Optional[str] = None) -> list[dict]:
        with self.store.standard() as session:
            query = session.query(PaymentRecord)
            if email:
                query = query.filter(
                    (PaymentRecord.principal_id == principal_id)
                    | (PaymentRecord.principal_email == normalize_email(email))
                )
            else:
                query = query.filter(PaymentRecord.principal_id == principal_id)
            return [p.to_dict() for p in query.order_by(PaymentRecord.created_at.desc()).all()]

    def subscriptions_for(self, principal_id: str) -> list[dict]:
        with self.store.standard() as session:
            events = (
                session.query(SubscriptionEvent)
                .filter(SubscriptionEvent.principal_id == principal_id)
                .order_by(SubscriptionEvent.created_at.desc())
                .all()
            )
            return [e.to_dict() for e in events]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, tx_ref: str) -> Optional[PaymentRecord]:
        with self.store.standard() as session:
            return session.query(PaymentRecord).filter(PaymentRecord.tx_ref == tx_ref).first()

    def _outcome(self, tx_ref: str) -> VerificationOutcome:
        with self.store.standard() as session:
            payment = session.query(PaymentRecord).filter(PaymentRecord.tx_ref == tx_ref).first()
            end_date = None
            if payment.status == PaymentStatus.PAID:
                end_date = self._event_end_date(session, tx_ref)
            return VerificationOutcome(
                tx_ref=tx_ref,
                status=payment.status,
                subscription_end_date=end_date,
                payment=payment.to_dict(),
            )

    @staticmethod
    def _event_end_date(session: Session, tx_ref: str) -> Optional[datetime]:
        end_date = (
            session.query(SubscriptionEvent.end_date)
            .filter(SubscriptionEvent.tx_ref == tx_ref)
            .scalar()
        )
        return ensure_utc(end_date)

    def _transition(
        self,
        tx_ref: str,
        new_status: str,
        raw: dict,
        transaction_id: Optional[str] = None,
    ) -> bool:
        """
        Move a pending payment to a terminal state.

        Returns:
            True if this call performed the transition
        """
        now = self.clock()
        values = {
            "status": new_status,
            "gateway_response": raw,
            "updated_at": now,
        }
        if new_status == PaymentStatus.PAID:
            values["paid_at"] = now
        if transaction_id:
            values["transaction_id"] = str(transaction_id)

        with self.store.elevated() as session:
            result = session.execute(
                update(PaymentRecord)
                .where(
                    PaymentRecord.tx_ref == tx_ref,
                    PaymentRecord.status == PaymentStatus.PENDING,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()

        transitioned = result.rowcount == 1
        logger.info("Payment transition", extra={
            "tx_ref": tx_ref,
            "new_status": new_status,
            "applied": transitioned,
        })
        return transitioned

    def _propagate_safely(self, tx_ref: str) -> Optional[datetime]:
        try:
            return self._propagate(tx_ref)
        except Exception:
            logger.error("Entitlement propagation failed; payment stays paid", extra={
                "tx_ref": tx_ref,
            }, exc_info=True)
            return None

    def _propagate(self, tx_ref: str) -> Optional[datetime]:
        """
        Grant the entitlement bought by a paid payment.

        Company-typed grants (company plan, company checkout, or a
        company admin payer) with a resolvable company set the company
        mirror and cascade to every member in both stores. Otherwise only
        the payer's own mirror changes. One SubscriptionEvent is appended,
        keyed by tx_ref.

        Returns:
            End date of the granted entitlement
        """
        with self.store.elevated() as session:
            existing_end = self._event_end_date(session, tx_ref)
            if existing_end is not None:
                return existing_end

            payment = session.query(PaymentRecord).filter(PaymentRecord.tx_ref == tx_ref).first()
            # Term starts at payment time, not propagation time
            start_date = ensure_utc(payment.paid_at) or self.clock()
            end_date = calculate_end_date(payment.plan_id, start_date)
            status = EntitlementStatus.ACTIVE

            directory = PrincipalDirectory(session)
            principal = directory.find_by_email(payment.principal_email)
            grant_company_id = None

            if principal is None:
                logger.warning("Paying principal not found, recording history only", extra={
                    "tx_ref": tx_ref,
                })
            else:
                company_typed = (
                    is_company_plan(payment.plan_id)
                    or payment.account_type == AccountKind.COMPANY.value
                    or principal.role == Role.COMPANY_ADMIN.value
                )
                if company_typed and principal.company_id:
                    grant_company_id = principal.company_id
                    company = session.query(Company).filter(Company.id == grant_company_id).first()
                    if company is not None:
                        company.mirror_entitlement(status, payment.plan_id, end_date)
                    touched = directory.cascade_entitlement(
                        grant_company_id, status, payment.plan_id, end_date
                    )
                    logger.info("Company entitlement cascaded", extra={
                        "tx_ref": tx_ref,
                        "company_id": grant_company_id,
                        "principals_updated": touched,
                    })
                else:
                    directory.mirror_principal_entitlement(principal.id, status, payment.plan_id, end_date)

            session.add(SubscriptionEvent(
                principal_id=principal.id if principal else None,
                principal_email=payment.principal_email,
                company_id=grant_company_id,
                plan_id=payment.plan_id,
                plan_name=payment.plan_name,
                amount=payment.amount,
                currency=payment.currency,
                status=SubscriptionEventStatus.ACTIVE,
                payment_method=payment.payment_method,
                tx_ref=tx_ref,
                start_date=start_date,
                end_date=end_date,
            ))

            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.info("Entitlement already propagated", extra={"tx_ref": tx_ref})
                return self._event_end_date(session, tx_ref)

        logger.info("Entitlement propagated", extra={
            "tx_ref": tx_ref,
            "plan_id": payment.plan_id,
            "company_id": grant_company_id,
            "end_date": end_date.isoformat(),
        })
        return end_date
