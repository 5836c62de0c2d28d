"""
PaymentRecord model.

A payment moves pending -> paid or pending -> failed exactly once.
paid and failed are terminal.
"""

from sqlalchemy import Column, String, Numeric, DateTime, Text, JSON, Index

from pharmacare.models.base import Base, TimestampMixin, generate_uuid, ensure_utc


class PaymentStatus:
    """Payment status values."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

    TERMINAL = frozenset({PAID, FAILED})


class PaymentRecord(Base, TimestampMixin):
    """Checkout attempt correlated with the gateway by tx_ref."""

    __tablename__ = "payments"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    tx_ref = Column(
        String(100),
        nullable=False,
        unique=True,
        index=True,
        comment="Externally visible correlation id"
    )
    principal_id = Column(String(36), nullable=True, index=True)
    principal_email = Column(String(255), nullable=False, index=True)
    principal_name = Column(String(255), nullable=True)
    principal_phone = Column(String(50), nullable=True)
    account_type = Column(
        String(20),
        nullable=False,
        default="individual",
        comment="Account kind declared at checkout"
    )
    plan_id = Column(String(50), nullable=False)
    plan_name = Column(String(100), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="ETB")
    status = Column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True
    )
    payment_method = Column(String(20), nullable=False, default="chapa")
    payment_url = Column(Text, nullable=True)
    transaction_id = Column(String(100), nullable=True)
    gateway_response = Column(JSON, nullable=True, comment="Opaque gateway payload")
    paid_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_payments_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<PaymentRecord(tx_ref={self.tx_ref}, status={self.status})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in PaymentStatus.TERMINAL

    def to_dict(self) -> dict:
        return {
            "tx_ref": self.tx_ref,
            "principal_email": self.principal_email,
            "plan_id": self.plan_id,
            "plan_name": self.plan_name,
            "amount": float(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "status": self.status,
            "payment_url": self.payment_url,
            "paid_at": ensure_utc(self.paid_at).isoformat() if self.paid_at else None,
            "created_at": ensure_utc(self.created_at).isoformat() if self.created_at else None,
        }
