"""
Company model.

A company groups principals from both stores through company_id and carries
a mirror of the company-wide entitlement.
"""

from sqlalchemy import Column, String, Integer

from pharmacare.models.base import (
    Base,
    TimestampMixin,
    EntitlementMirrorMixin,
    generate_uuid,
)


class Company(Base, TimestampMixin, EntitlementMirrorMixin):
    """Tenant company."""

    __tablename__ = "companies"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    company_name = Column(String(255), nullable=False, unique=True)
    email = Column(String(255), nullable=True)
    admin_email = Column(String(255), nullable=True)
    admin_principal_id = Column(
        String(36),
        nullable=True,
        comment="Set once the company admin principal exists"
    )
    company_type = Column(String(50), nullable=True, default="pharmacy")
    country = Column(String(100), nullable=True)
    region = Column(String(100), nullable=True)
    tin_number = Column(String(50), nullable=True)
    user_capacity = Column(Integer, nullable=False, default=5)

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name={self.company_name}, status={self.subscription_status})>"
