"""
Payment reconciliation job.

Catches up on state the request path could not finish:
- verifies pending payments older than a grace window with the gateway
  (missed webhooks, abandoned polling)
- re-propagates paid payments that have no SubscriptionEvent
  (propagation failed after the paid transition)
- marks lapsed entitlement mirrors as expired

Usage:
    python -m pharmacare.jobs.reconcile_payments
"""

import sys
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from pharmacare.config.settings import load_settings
from pharmacare.database.session import build_store_capabilities
from pharmacare.database.store import StoreCapabilities
from pharmacare.integrations.chapa.client import get_chapa_client
from pharmacare.models.base import utc_now
from pharmacare.models.payment import PaymentRecord, PaymentStatus
from pharmacare.models.subscription_event import SubscriptionEvent
from pharmacare.services.entitlement_service import EntitlementService
from pharmacare.services.payment_reconciler import PaymentReconciler

logger = logging.getLogger(__name__)

# Pending payments younger than this are left to the webhook
PENDING_GRACE_MINUTES = 15

# Pending payments older than this are no longer checked
MAX_PENDING_AGE_DAYS = 7

# Maximum payments to verify per run (gateway rate limits)
MAX_PAYMENTS_PER_RUN = 200


class ReconciliationStats:
    """Track reconciliation run statistics."""

    def __init__(self):
        self.pending_checked = 0
        self.payments_confirmed = 0
        self.repropagated = 0
        self.mirrors_expired = 0
        self.errors = 0
        self.start_time = utc_now()

    def to_dict(self) -> dict:
        duration = (utc_now() - self.start_time).total_seconds()
        return {
            "pending_checked": self.pending_checked,
            "payments_confirmed": self.payments_confirmed,
            "repropagated": self.repropagated,
            "mirrors_expired": self.mirrors_expired,
            "errors": self.errors,
            "duration_seconds": duration
        }


def find_stale_pending(store: StoreCapabilities, now: datetime) -> list[str]:
    grace_cutoff = now - timedelta(minutes=PENDING_GRACE_MINUTES)
    age_cutoff = now - timedelta(days=MAX_PENDING_AGE_DAYS)
    with store.standard() as session:
        rows = (
            session.query(PaymentRecord.tx_ref)
            .filter(
                PaymentRecord.status == PaymentStatus.PENDING,
                PaymentRecord.created_at < grace_cutoff,
                PaymentRecord.created_at > age_cutoff,
            )
            .order_by(PaymentRecord.created_at)
            .limit(MAX_PAYMENTS_PER_RUN)
            .all()
        )
    return [row[0] for row in rows]


def find_unpropagated(store: StoreCapabilities) -> list[str]:
    """Paid payments with no matching SubscriptionEvent."""
    with store.standard() as session:
        rows = (
            session.query(PaymentRecord.tx_ref)
            .outerjoin(SubscriptionEvent, SubscriptionEvent.tx_ref == PaymentRecord.tx_ref)
            .filter(
                PaymentRecord.status == PaymentStatus.PAID,
                SubscriptionEvent.id.is_(None),
            )
            .all()
        )
    return [row[0] for row in rows]


async def run_reconciliation(
    store: StoreCapabilities,
    reconciler: PaymentReconciler,
    entitlements: EntitlementService,
    now: Optional[datetime] = None,
) -> dict:
    """
    Run the payment reconciliation job.

    Returns:
        Statistics dictionary with job results
    """
    logger.info("Starting payment reconciliation job")
    stats = ReconciliationStats()
    now = now or utc_now()

    for tx_ref in find_stale_pending(store, now):
        stats.pending_checked += 1
        try:
            outcome = await reconciler.verify_payment(tx_ref)
            if outcome.is_paid:
                stats.payments_confirmed += 1
        except Exception as e:
            logger.error("Error verifying pending payment", extra={
                "tx_ref": tx_ref,
                "error": str(e)
            })
            stats.errors += 1

    for tx_ref in find_unpropagated(store):
        try:
            if reconciler.repropagate(tx_ref) is not None:
                stats.repropagated += 1
        except Exception as e:
            logger.error("Error re-propagating payment", extra={
                "tx_ref": tx_ref,
                "error": str(e)
            })
            stats.errors += 1

    stats.mirrors_expired = entitlements.expire_lapsed_mirrors(now)

    result = stats.to_dict()
    logger.info("Reconciliation job completed", extra=result)
    return result


async def _run_from_env() -> dict:
    settings = load_settings()
    store = build_store_capabilities(settings)
    async with get_chapa_client(settings) as gateway:
        reconciler = PaymentReconciler(store, gateway, settings)
        return await run_reconciliation(store, reconciler, EntitlementService(store))


def main():
    """Entry point for running reconciliation job from command line."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        result = asyncio.run(_run_from_env())
        print(f"Reconciliation completed: {result}")
        sys.exit(0)
    except Exception as e:
        print(f"Reconciliation failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
