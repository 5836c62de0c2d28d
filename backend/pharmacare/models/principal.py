"""
Principal models.

Principals live in two tables that evolved independently:
- users: the primary store (individuals, company admins, platform admins)
- company_users: company-scoped principals created by a company admin

CRITICAL: The same email may exist in both tables while records are being
synced. Readers must go through the identity directory, which applies the
primary-first tie-break, rather than querying one table directly.
"""

from enum import Enum

from sqlalchemy import Column, String, Boolean, ForeignKey, Index

from pharmacare.models.base import (
    Base,
    TimestampMixin,
    EntitlementMirrorMixin,
    generate_uuid,
)


class Role(str, Enum):
    """Principal roles. Anything not listed here is treated as a regular role."""
    ADMIN = "admin"
    COMPANY_ADMIN = "company_admin"
    COMPANY_USER = "company_user"
    PHARMACIST = "pharmacist"
    NURSE = "nurse"
    DOCTOR = "doctor"


class AccountKind(str, Enum):
    """How the principal's account is held."""
    INDIVIDUAL = "individual"
    COMPANY = "company"
    COMPANY_USER = "company_user"


class PrincipalColumnsMixin(TimestampMixin, EntitlementMirrorMixin):
    """Columns shared by both principal tables."""

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    email = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Lowercased login email, unique within its table"
    )
    password_hash = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    license_number = Column(String(100), nullable=True)
    role = Column(
        String(50),
        nullable=False,
        default=Role.PHARMACIST.value,
        comment="admin, company_admin, company_user or a regular clinical role"
    )
    approved = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="Login gate for non-admin principals"
    )


class User(Base, PrincipalColumnsMixin):
    """Primary-store principal."""

    __tablename__ = "users"

    account_type = Column(
        String(20),
        nullable=False,
        default=AccountKind.INDIVIDUAL.value,
    )
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    institution = Column(String(255), nullable=True)
    country = Column(String(100), nullable=True)
    region = Column(String(100), nullable=True)
    tin_number = Column(String(50), nullable=True)

    __table_args__ = (
        Index("ix_users_company_role", "company_id", "role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class CompanyUser(Base, PrincipalColumnsMixin):
    """Company-scoped principal, always attached to a company."""

    __tablename__ = "company_users"

    account_type = Column(
        String(20),
        nullable=False,
        default=AccountKind.COMPANY_USER.value,
    )
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    created_by = Column(
        String(36),
        nullable=True,
        comment="Company admin principal that created this record"
    )

    def __repr__(self) -> str:
        return f"<CompanyUser(id={self.id}, email={self.email}, company_id={self.company_id})>"
