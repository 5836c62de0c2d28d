"""
Database models for principals, companies, payments and entitlement history.
"""

from pharmacare.models.base import TimestampMixin, EntitlementMirrorMixin
from pharmacare.models.company import Company
from pharmacare.models.principal import User, CompanyUser, Role, AccountKind
from pharmacare.models.payment import PaymentRecord, PaymentStatus
from pharmacare.models.subscription_event import SubscriptionEvent, SubscriptionEventStatus

__all__ = [
    "TimestampMixin",
    "EntitlementMirrorMixin",
    "Company",
    "User",
    "CompanyUser",
    "Role",
    "AccountKind",
    "PaymentRecord",
    "PaymentStatus",
    "SubscriptionEvent",
    "SubscriptionEventStatus",
]
