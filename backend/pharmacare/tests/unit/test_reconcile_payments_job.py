"""
Unit tests for the payment reconciliation job.

Tests cover:
- Selection of stale pending payments
- Gateway confirmation of missed webhooks
- Re-propagation of paid payments without history
- Expiry sweep and error accounting
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from pharmacare.integrations.chapa.client import VerificationResult
from pharmacare.jobs import reconcile_payments
from pharmacare.jobs.reconcile_payments import (
    find_stale_pending,
    find_unpropagated,
    run_reconciliation,
)
from pharmacare.models import User, PaymentRecord, SubscriptionEvent
from pharmacare.services.entitlement_service import EntitlementService
from pharmacare.services.payment_reconciler import PaymentReconciler


@pytest.fixture
def reconciler(store, gateway, settings, clock):
    return PaymentReconciler(store, gateway, settings, clock=clock)


@pytest.fixture
def entitlements(store, clock):
    return EntitlementService(store, clock=clock)


class TestSelection:
    """Which payments the job looks at."""

    def test_stale_pending_window(self, store, factory, now):
        factory.payment("tx_fresh", "a@x.com", created_at=now - timedelta(minutes=5))
        factory.payment("tx_stale", "a@x.com", created_at=now - timedelta(hours=2))
        factory.payment("tx_ancient", "a@x.com", created_at=now - timedelta(days=8))
        factory.payment("tx_paid", "a@x.com", status="paid", created_at=now - timedelta(hours=2))

        assert find_stale_pending(store, now) == ["tx_stale"]

    def test_unpropagated(self, store, factory, now):
        factory.payment("tx_orphan", "a@x.com", status="paid")
        factory.payment("tx_done", "a@x.com", status="paid")
        factory.subscription_event("tx_done", "a@x.com", end_date=now + timedelta(days=30))
        factory.payment("tx_failed", "a@x.com", status="failed")

        assert find_unpropagated(store) == ["tx_orphan"]


class TestRunReconciliation:
    """End-to-end job run against the test database."""

    @pytest.mark.asyncio
    async def test_catches_up_missed_state(self, store, reconciler, entitlements, gateway, factory, now):
        user = factory.user("solo@pharmacare.test")
        factory.user(
            "lapsed@pharmacare.test",
            subscription_status="active",
            subscription_plan="individual_monthly",
            subscription_end_date=now - timedelta(days=1),
        )
        factory.payment("tx_missed", "solo@pharmacare.test")
        factory.payment("tx_orphan", "solo@pharmacare.test", status="paid", plan_id="individual_yearly")
        gateway.verify_transaction.side_effect = lambda tx_ref: VerificationResult(
            tx_ref=tx_ref, succeeded=True, raw={"status": "success", "data": {"status": "success"}}
        )

        result = await run_reconciliation(store, reconciler, entitlements, now=now)

        assert result["pending_checked"] == 1
        assert result["payments_confirmed"] == 1
        assert result["repropagated"] == 1
        assert result["mirrors_expired"] == 1
        assert result["errors"] == 0
        assert factory.get(PaymentRecord, tx_ref="tx_missed").status == "paid"
        assert factory.count(SubscriptionEvent) == 2
        assert factory.get(User, id=user.id).subscription_status == "active"
        assert factory.get(User, email="lapsed@pharmacare.test").subscription_status == "expired"

    @pytest.mark.asyncio
    async def test_unconfirmed_stays_pending(self, store, reconciler, entitlements, factory, now):
        factory.payment("tx_waiting", "solo@pharmacare.test")

        result = await run_reconciliation(store, reconciler, entitlements, now=now)

        assert result["pending_checked"] == 1
        assert result["payments_confirmed"] == 0
        assert factory.get(PaymentRecord, tx_ref="tx_waiting").status == "pending"

    @pytest.mark.asyncio
    async def test_errors_are_counted_and_run_continues(self, store, reconciler, entitlements, gateway, factory, now):
        factory.payment("tx_a", "a@x.com", created_at=now - timedelta(hours=3))
        factory.payment("tx_b", "b@x.com", created_at=now - timedelta(hours=2))
        gateway.verify_transaction.side_effect = RuntimeError("unexpected")

        result = await run_reconciliation(store, reconciler, entitlements, now=now)

        assert result["pending_checked"] == 2
        assert result["errors"] == 2


class TestMain:
    """Command line entry point."""

    def test_exit_zero_on_success(self):
        with patch.object(reconcile_payments, "_run_from_env", new=AsyncMock(return_value={"errors": 0})):
            with pytest.raises(SystemExit) as exc_info:
                reconcile_payments.main()

        assert exc_info.value.code == 0

    def test_exit_one_on_failure(self):
        with patch.object(
            reconcile_payments, "_run_from_env", new=AsyncMock(side_effect=RuntimeError("no database"))
        ):
            with pytest.raises(SystemExit) as exc_info:
                reconcile_payments.main()

        assert exc_info.value.code == 1
