"""
SubscriptionEvent model for the entitlement history.

CRITICAL: This table is APPEND-ONLY. Never update or delete rows.
It is the source of truth when the mirrored entitlement on a principal
or company drifts. tx_ref is unique and doubles as the idempotency token
for entitlement propagation.
"""

from sqlalchemy import Column, String, Numeric, DateTime, Index, UniqueConstraint, func

from pharmacare.models.base import Base, generate_uuid, ensure_utc


class SubscriptionEventStatus:
    """Subscription event status values."""
    ACTIVE = "active"


class SubscriptionEvent(Base):
    """Immutable record of an entitlement grant."""

    __tablename__ = "subscriptions"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    principal_id = Column(
        String(36),
        nullable=True,
        index=True,
        comment="Paying principal (null if it could not be resolved)"
    )
    principal_email = Column(String(255), nullable=False)
    company_id = Column(
        String(36),
        nullable=True,
        index=True,
        comment="Set when the grant was company-wide"
    )
    plan_id = Column(String(50), nullable=False)
    plan_name = Column(String(100), nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=True)
    status = Column(
        String(20),
        nullable=False,
        default=SubscriptionEventStatus.ACTIVE
    )
    payment_method = Column(String(20), nullable=False, default="chapa")
    tx_ref = Column(
        String(100),
        nullable=False,
        comment="Payment correlation id; one event per paid payment"
    )
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("tx_ref", name="uq_subscriptions_tx_ref"),
        Index("ix_subscriptions_company_status_end", "company_id", "status", "end_date"),
    )

    def __repr__(self) -> str:
        return f"<SubscriptionEvent(tx_ref={self.tx_ref}, plan_id={self.plan_id}, end_date={self.end_date})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "principal_id": self.principal_id,
            "company_id": self.company_id,
            "plan_id": self.plan_id,
            "plan_name": self.plan_name,
            "amount": float(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "status": self.status,
            "tx_ref": self.tx_ref,
            "start_date": ensure_utc(self.start_date).isoformat(),
            "end_date": ensure_utc(self.end_date).isoformat(),
        }
