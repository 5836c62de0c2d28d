"""
Base mixins for database models.

Provides common functionality:
- TimestampMixin: created_at, updated_at timestamps
- EntitlementMirrorMixin: denormalized subscription fields cached on a row
- generate_uuid: UUID generation for primary keys
- utc_now / ensure_utc: timezone helpers shared by services
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, String, DateTime, func

from pharmacare.db_base import Base


def generate_uuid() -> str:
    """Generate a UUID4 string for use as a primary key default."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes read back from the store.

    SQLite drops tzinfo on round-trip; PostgreSQL keeps it.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Timestamp when record was last updated"
    )


class EntitlementMirrorMixin:
    """
    Mirror of the latest entitlement grant.

    These columns are a cache. The append-only subscription history is
    authoritative when they drift.
    """

    subscription_status = Column(
        String(20),
        nullable=False,
        default="inactive",
        server_default="inactive",
        comment="Mirrored entitlement status (active, inactive, expired)"
    )
    subscription_plan = Column(
        String(50),
        nullable=True,
        comment="Mirrored plan id"
    )
    subscription_end_date = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Mirrored entitlement end date"
    )

    def mirror_entitlement(self, status: str, plan_id: Optional[str], end_date: Optional[datetime]) -> None:
        """Overwrite the mirrored entitlement fields."""
        self.subscription_status = status
        self.subscription_plan = plan_id
        self.subscription_end_date = end_date
