"""
Entitlement read path.

current_entitlement() is the only place that decides whether a principal
is entitled right now:

1. If the principal belongs to a company and the company mirror is
   active and unexpired, the company entitlement wins.
2. If the company mirror is not active, the subscription history is
   checked for an active company event ending in the future. History is
   append-only and authoritative over a drifted mirror. The fix is not
   persisted.
3. Otherwise the principal's own mirror is reported.

An active mirror whose end date has passed is reported as expired.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Callable

from sqlalchemy import update
from sqlalchemy.orm import Session

from pharmacare.database.store import StoreCapabilities
from pharmacare.models.base import utc_now, ensure_utc
from pharmacare.models.company import Company
from pharmacare.models.subscription_event import SubscriptionEvent, SubscriptionEventStatus
from pharmacare.repositories.principal_directory import PrincipalRecord, STORE_MODELS

logger = logging.getLogger(__name__)


class EntitlementStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class EntitlementSource:
    COMPANY = "company"
    COMPANY_HISTORY = "company_history"
    PRINCIPAL = "principal"
    NONE = "none"


@dataclass(frozen=True)
class Entitlement:
    """Resolved entitlement for a principal."""
    status: str
    plan_id: Optional[str] = None
    end_date: Optional[datetime] = None
    source: str = EntitlementSource.NONE

    @property
    def is_active(self) -> bool:
        return self.status == EntitlementStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "subscription_status": self.status,
            "subscription_plan": self.plan_id,
            "subscription_end_date": self.end_date.isoformat() if self.end_date else None,
            "subscription_source": self.source,
        }


def effective_mirror_status(status: Optional[str], end_date: Optional[datetime], now: datetime) -> str:
    """Mirror status with expiry applied."""
    status = status or EntitlementStatus.INACTIVE
    end_date = ensure_utc(end_date)
    if status == EntitlementStatus.ACTIVE and end_date is not None and end_date <= now:
        return EntitlementStatus.EXPIRED
    return status


class EntitlementService:
    """Reads and maintains entitlement state."""

    def __init__(self, store: StoreCapabilities, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def current_entitlement(
        self,
        principal: PrincipalRecord,
        company_id: Optional[str] = None,
        db_session: Optional[Session] = None,
    ) -> Entitlement:
        """
        Resolve the principal's current entitlement.

        Args:
            principal: Principal snapshot (its mirror fields are used)
            company_id: Company id resolved by the caller, defaults to
                the principal's own company_id
            db_session: Reuse an open session instead of opening one
        """
        company_id = company_id or principal.company_id

        if db_session is not None:
            company_entitlement = self._company_entitlement(db_session, company_id)
        else:
            with self.store.standard() as session:
                company_entitlement = self._company_entitlement(session, company_id)

        if company_entitlement is not None:
            return company_entitlement

        now = self.clock()
        status = effective_mirror_status(
            principal.subscription_status, principal.subscription_end_date, now
        )
        if status == EntitlementStatus.INACTIVE and not principal.subscription_plan:
            return Entitlement(status=status, source=EntitlementSource.NONE)

        return Entitlement(
            status=status,
            plan_id=principal.subscription_plan,
            end_date=ensure_utc(principal.subscription_end_date),
            source=EntitlementSource.PRINCIPAL,
        )

    def company_entitlement(self, company_id: str) -> Optional[Entitlement]:
        """Active company entitlement (mirror or history), or None."""
        with self.store.standard() as session:
            return self._company_entitlement(session, company_id)

    def _company_entitlement(self, session: Session, company_id: Optional[str]) -> Optional[Entitlement]:
        if not company_id:
            return None

        now = self.clock()
        company = session.query(Company).filter(Company.id == company_id).first()
        if company is not None:
            status = effective_mirror_status(
                company.subscription_status, company.subscription_end_date, now
            )
            if status == EntitlementStatus.ACTIVE:
                return Entitlement(
                    status=status,
                    plan_id=company.subscription_plan,
                    end_date=ensure_utc(company.subscription_end_date),
                    source=EntitlementSource.COMPANY,
                )

        event = self.latest_active_company_event(session, company_id, now)
        if event is None:
            return None

        logger.info("Company entitlement recovered from history", extra={
            "company_id": company_id,
            "tx_ref": event.tx_ref,
        })
        return Entitlement(
            status=EntitlementStatus.ACTIVE,
            plan_id=event.plan_id,
            end_date=ensure_utc(event.end_date),
            source=EntitlementSource.COMPANY_HISTORY,
        )

    @staticmethod
    def latest_active_company_event(
        session: Session, company_id: str, now: datetime
    ) -> Optional[SubscriptionEvent]:
        return (
            session.query(SubscriptionEvent)
            .filter(
                SubscriptionEvent.company_id == company_id,
                SubscriptionEvent.status == SubscriptionEventStatus.ACTIVE,
                SubscriptionEvent.end_date > now,
            )
            .order_by(SubscriptionEvent.end_date.desc())
            .first()
        )

    def expire_lapsed_mirrors(self, now: Optional[datetime] = None) -> int:
        """
        Mark active mirrors whose end date has passed as expired.

        Touches principals in both stores and companies. History is
        never modified.

        Returns:
            Number of mirror rows expired
        """
        now = now or self.clock()
        expired = 0
        with self.store.elevated() as session:
            for model in (*STORE_MODELS.values(), Company):
                result = session.execute(
                    update(model)
                    .where(
                        model.subscription_status == EntitlementStatus.ACTIVE,
                        model.subscription_end_date.is_not(None),
                        model.subscription_end_date <= now,
                    )
                    .values(subscription_status=EntitlementStatus.EXPIRED)
                    .execution_options(synchronize_session=False)
                )
                expired += result.rowcount or 0
            session.commit()

        logger.info("Expired lapsed entitlement mirrors", extra={"expired": expired})
        return expired
