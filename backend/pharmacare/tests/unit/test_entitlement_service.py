"""
Unit tests for the entitlement read path and the plan catalogue.

Tests cover:
- Company mirror overrides the principal mirror
- History fallback when the company mirror drifts to inactive
- Expiry of lapsed mirrors
"""

from datetime import timedelta

import pytest

from pharmacare.models import Company, User, CompanyUser, SubscriptionEvent
from pharmacare.repositories.principal_directory import PrincipalDirectory
from pharmacare.services.entitlement_service import (
    EntitlementService,
    EntitlementSource,
    effective_mirror_status,
)
from pharmacare.services.plan_catalog import calculate_end_date, is_company_plan, get_plan


@pytest.fixture
def entitlements(store, clock):
    return EntitlementService(store, clock=clock)


def _record(store, email):
    with store.standard() as session:
        return PrincipalDirectory(session).find_by_email(email)


class TestCompanyEntitlement:
    """Company entitlement wins over the principal's own mirror."""

    def test_active_company_mirror_wins(self, entitlements, factory, store, now):
        end = now + timedelta(days=20)
        company = factory.company(subscription_status="active", subscription_plan="company_pro", subscription_end_date=end)
        factory.company_user("nurse@acme.test", company_id=company.id, subscription_status="inactive")

        result = entitlements.current_entitlement(_record(store, "nurse@acme.test"))

        assert result.is_active
        assert result.plan_id == "company_pro"
        assert result.end_date == end
        assert result.source == EntitlementSource.COMPANY

    def test_history_fallback_when_company_mirror_drifts(self, entitlements, factory, store, now):
        company = factory.company(subscription_status="inactive")
        factory.user("admin@acme.test", role="company_admin", company_id=company.id)
        factory.subscription_event(
            "tx_hist", "admin@acme.test", end_date=now + timedelta(days=10), company_id=company.id
        )

        result = entitlements.current_entitlement(_record(store, "admin@acme.test"))

        assert result.is_active
        assert result.plan_id == "company_basic"
        assert result.source == EntitlementSource.COMPANY_HISTORY

    def test_history_fallback_does_not_persist(self, entitlements, factory, store, now):
        company = factory.company(subscription_status="inactive")
        factory.user("admin@acme.test", role="company_admin", company_id=company.id)
        factory.subscription_event(
            "tx_hist", "admin@acme.test", end_date=now + timedelta(days=10), company_id=company.id
        )

        entitlements.current_entitlement(_record(store, "admin@acme.test"))

        assert factory.get(Company, id=company.id).subscription_status == "inactive"

    def test_latest_history_event_is_used(self, entitlements, factory, now):
        company = factory.company(subscription_status="inactive")
        factory.subscription_event("tx_a", "a@acme.test", end_date=now + timedelta(days=5), company_id=company.id)
        factory.subscription_event(
            "tx_b", "a@acme.test", end_date=now + timedelta(days=300), company_id=company.id, plan_id="company_pro"
        )

        result = entitlements.company_entitlement(company.id)

        assert result.plan_id == "company_pro"

    def test_expired_history_is_ignored(self, entitlements, factory, store, now):
        company = factory.company(subscription_status="inactive")
        factory.user("admin@acme.test", role="company_admin", company_id=company.id)
        factory.subscription_event(
            "tx_old", "admin@acme.test", end_date=now - timedelta(days=1), company_id=company.id
        )

        result = entitlements.current_entitlement(_record(store, "admin@acme.test"))

        assert not result.is_active
        assert result.source == EntitlementSource.NONE

    def test_other_company_history_is_ignored(self, entitlements, factory, now):
        company = factory.company(subscription_status="inactive")
        other = factory.company()
        factory.subscription_event("tx_other", "x@other.test", end_date=now + timedelta(days=10), company_id=other.id)

        assert entitlements.company_entitlement(company.id) is None

    def test_lapsed_company_mirror_falls_through(self, entitlements, factory, store, now):
        company = factory.company(
            subscription_status="active",
            subscription_plan="company_basic",
            subscription_end_date=now - timedelta(days=1),
        )
        factory.company_user("nurse@acme.test", company_id=company.id)

        result = entitlements.current_entitlement(_record(store, "nurse@acme.test"))

        assert result.source != EntitlementSource.COMPANY
        assert not result.is_active


class TestPrincipalEntitlement:
    """Principals without an active company use their own mirror."""

    def test_individual_mirror(self, entitlements, factory, store, now):
        end = now + timedelta(days=3)
        factory.user("solo@pharmacare.test", subscription_status="active",
                     subscription_plan="individual_monthly", subscription_end_date=end)

        result = entitlements.current_entitlement(_record(store, "solo@pharmacare.test"))

        assert result.is_active
        assert result.end_date == end
        assert result.source == EntitlementSource.PRINCIPAL

    def test_lapsed_individual_mirror_reports_expired(self, entitlements, factory, store, now):
        factory.user("solo@pharmacare.test", subscription_status="active",
                     subscription_plan="individual_monthly", subscription_end_date=now - timedelta(seconds=1))

        result = entitlements.current_entitlement(_record(store, "solo@pharmacare.test"))

        assert result.status == "expired"
        assert result.plan_id == "individual_monthly"

    def test_never_subscribed(self, entitlements, factory, store):
        factory.user("new@pharmacare.test")

        result = entitlements.current_entitlement(_record(store, "new@pharmacare.test"))

        assert result.status == "inactive"
        assert result.source == EntitlementSource.NONE
        assert result.to_dict()["subscription_end_date"] is None

    def test_effective_mirror_status_handles_naive_datetimes(self, now):
        naive_past = (now - timedelta(days=1)).replace(tzinfo=None)

        assert effective_mirror_status("active", naive_past, now) == "expired"
        assert effective_mirror_status("active", None, now) == "active"
        assert effective_mirror_status(None, None, now) == "inactive"


class TestExpireLapsedMirrors:
    """Batch expiry touches mirrors in both stores and companies, never history."""

    def test_expires_only_lapsed_active_mirrors(self, entitlements, factory, now):
        past = now - timedelta(days=1)
        future = now + timedelta(days=1)
        company = factory.company(subscription_status="active", subscription_end_date=past)
        lapsed_user = factory.user("lapsed@pharmacare.test", subscription_status="active", subscription_end_date=past)
        live_user = factory.user("live@pharmacare.test", subscription_status="active", subscription_end_date=future)
        lapsed_member = factory.company_user("m@acme.test", company_id=company.id,
                                             subscription_status="active", subscription_end_date=past)
        factory.subscription_event("tx_1", "lapsed@pharmacare.test", end_date=past)

        expired = entitlements.expire_lapsed_mirrors()

        assert expired == 3
        assert factory.get(Company, id=company.id).subscription_status == "expired"
        assert factory.get(User, id=lapsed_user.id).subscription_status == "expired"
        assert factory.get(User, id=live_user.id).subscription_status == "active"
        assert factory.get(CompanyUser, id=lapsed_member.id).subscription_status == "expired"
        assert factory.get(SubscriptionEvent, tx_ref="tx_1").status == "active"

    def test_second_run_is_noop(self, entitlements, factory, now):
        factory.user("lapsed@pharmacare.test", subscription_status="active",
                     subscription_end_date=now - timedelta(days=1))

        assert entitlements.expire_lapsed_mirrors() == 1
        assert entitlements.expire_lapsed_mirrors() == 0


class TestPlanCatalog:
    """Fixed plan terms."""

    @pytest.mark.parametrize("plan_id,days", [
        ("individual_monthly", 30),
        ("company_basic", 30),
        ("individual_yearly", 365),
        ("company_pro", 365),
        ("unknown_plan", 30),
        (None, 30),
    ])
    def test_end_date(self, now, plan_id, days):
        assert calculate_end_date(plan_id, now) == now + timedelta(days=days)

    def test_company_plans(self):
        assert is_company_plan("company_basic")
        assert is_company_plan("company_pro")
        assert not is_company_plan("individual_monthly")
        assert not is_company_plan("nope")

    def test_prices(self):
        assert float(get_plan("individual_monthly").price) == 300
        assert float(get_plan("company_pro").price) == 25000
        assert get_plan("company_basic").user_limit == 5
