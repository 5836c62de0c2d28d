"""
Fixed subscription plan catalogue.

Plans are not stored in the database. Terms are fixed day counts from the
moment the payment is confirmed.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

DEFAULT_TERM_DAYS = 30


@dataclass(frozen=True)
class Plan:
    """A purchasable plan."""
    id: str
    name: str
    price: Decimal
    interval: str
    term_days: int
    user_limit: int
    company: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": float(self.price),
            "interval": self.interval,
            "user_limit": self.user_limit,
            "company": self.company,
        }


PLANS = {
    plan.id: plan
    for plan in (
        Plan("individual_monthly", "Individual Monthly", Decimal("300"), "month", 30, 1),
        Plan("individual_yearly", "Individual Yearly", Decimal("3000"), "year", 365, 1),
        Plan("company_basic", "Company Monthly", Decimal("3000"), "month", 30, 5, company=True),
        Plan("company_pro", "Company Yearly", Decimal("25000"), "year", 365, 20, company=True),
    )
}


def get_plan(plan_id: Optional[str]) -> Optional[Plan]:
    return PLANS.get(plan_id or "")


def is_company_plan(plan_id: Optional[str]) -> bool:
    plan = get_plan(plan_id)
    return plan is not None and plan.company


def calculate_end_date(plan_id: Optional[str], now: datetime) -> datetime:
    """End of the entitlement term for a plan confirmed at now. Unknown plans get 30 days."""
    plan = get_plan(plan_id)
    term_days = plan.term_days if plan else DEFAULT_TERM_DAYS
    return now + timedelta(days=term_days)
