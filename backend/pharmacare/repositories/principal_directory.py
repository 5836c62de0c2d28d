"""
Identity directory over both principal stores.

Principals live in either the primary store (users) or the company-scoped
store (company_users). This module treats them as one sum type,
PrincipalRecord, tagged with the store it came from, so callers never
duplicate lookup code per table.

CRITICAL: Email lookups are primary-first. When the same email exists in
both stores, the primary record shadows the company-scoped one.

Primary mirror rows (account_type company_user in users, same id as a
company_users row) are not identities of their own. Lookups collapse them
onto the company-scoped record and listings skip them.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Iterable

from sqlalchemy import update
from sqlalchemy.orm import Session

from pharmacare.models.base import ensure_utc
from pharmacare.models.principal import User, CompanyUser, AccountKind

logger = logging.getLogger(__name__)


class PrincipalStore(str, Enum):
    """Which table a principal record was read from."""
    PRIMARY = "primary"
    COMPANY_SCOPED = "company_scoped"


STORE_MODELS = {
    PrincipalStore.PRIMARY: User,
    PrincipalStore.COMPANY_SCOPED: CompanyUser,
}

# Email lookups visit stores in this order
LOOKUP_ORDER = (PrincipalStore.PRIMARY, PrincipalStore.COMPANY_SCOPED)


def normalize_email(email: Optional[str]) -> str:
    """Trim and lowercase an email address."""
    return (email or "").strip().lower()


@dataclass(frozen=True)
class PrincipalRecord:
    """Detached snapshot of a principal from either store."""

    store: PrincipalStore
    id: str
    email: str
    password_hash: Optional[str]
    role: str
    account_kind: str
    approved: bool
    company_id: Optional[str]
    full_name: Optional[str] = None
    phone: Optional[str] = None
    subscription_status: str = "inactive"
    subscription_plan: Optional[str] = None
    subscription_end_date: Optional[datetime] = None

    @classmethod
    def from_row(cls, store: PrincipalStore, row) -> "PrincipalRecord":
        return cls(
            store=store,
            id=row.id,
            email=row.email,
            password_hash=row.password_hash,
            role=row.role,
            account_kind=row.account_type or AccountKind.INDIVIDUAL.value,
            approved=bool(row.approved),
            company_id=row.company_id,
            full_name=row.full_name,
            phone=row.phone,
            subscription_status=row.subscription_status or "inactive",
            subscription_plan=row.subscription_plan,
            subscription_end_date=ensure_utc(row.subscription_end_date),
        )

    @property
    def is_company_scoped(self) -> bool:
        return self.store == PrincipalStore.COMPANY_SCOPED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role,
            "account_type": self.account_kind,
            "approved": self.approved,
            "company_id": self.company_id,
            "store": self.store.value,
        }


class PrincipalDirectory:
    """
    Lookups and bulk writes across both principal stores.

    The directory does not commit; the caller owns the session and its
    transaction.
    """

    def __init__(self, db_session: Session):
        self.db_session = db_session

    def _get(self, store: PrincipalStore, **filters):
        model = STORE_MODELS[store]
        return self.db_session.query(model).filter_by(**filters).first()

    def _record(self, store: PrincipalStore, row) -> PrincipalRecord:
        """Build a record, resolving a primary mirror row to its company-scoped source."""
        if store == PrincipalStore.PRIMARY and row.account_type == AccountKind.COMPANY_USER.value:
            source = self._get(PrincipalStore.COMPANY_SCOPED, id=row.id)
            if source is not None:
                return PrincipalRecord.from_row(PrincipalStore.COMPANY_SCOPED, source)
        return PrincipalRecord.from_row(store, row)

    def find_by_email(
        self,
        email: str,
        stores: Iterable[PrincipalStore] = LOOKUP_ORDER,
    ) -> Optional[PrincipalRecord]:
        """Find a principal by email, first matching store wins."""
        normalized = normalize_email(email)
        if not normalized:
            return None
        for store in stores:
            row = self._get(store, email=normalized)
            if row is not None:
                return self._record(store, row)
        return None

    def find_by_id(
        self,
        principal_id: str,
        stores: Iterable[PrincipalStore] = LOOKUP_ORDER,
    ) -> Optional[PrincipalRecord]:
        for store in stores:
            row = self._get(store, id=principal_id)
            if row is not None:
                return self._record(store, row)
        return None

    def email_exists(self, email: str) -> bool:
        """True if the email is taken in either store."""
        return self.find_by_email(email) is not None

    def company_id_for(self, principal_id: str, stores: Iterable[PrincipalStore]) -> Optional[str]:
        """Return the first non-null company_id for the principal across stores."""
        for store in stores:
            model = STORE_MODELS[store]
            company_id = (
                self.db_session.query(model.company_id)
                .filter(model.id == principal_id)
                .scalar()
            )
            if company_id:
                return company_id
        return None

    def company_id_by_email(self, email: str) -> Optional[str]:
        """Company id of the company-scoped record holding this email, if any."""
        normalized = normalize_email(email)
        return (
            self.db_session.query(CompanyUser.company_id)
            .filter(CompanyUser.email == normalized)
            .scalar()
        )

    def ids_in_company(self, company_id: str) -> set[str]:
        """Union of principal ids from both stores sharing company_id."""
        ids: set[str] = set()
        for model in STORE_MODELS.values():
            rows = self.db_session.query(model.id).filter(model.company_id == company_id).all()
            ids.update(row[0] for row in rows)
        return ids

    def list_company_members(self, company_id: str) -> list[PrincipalRecord]:
        """Members of both stores, one record per id, ordered by email."""
        members: dict[str, PrincipalRecord] = {}
        # Company-scoped first so primary mirror rows are skipped
        for store in (PrincipalStore.COMPANY_SCOPED, PrincipalStore.PRIMARY):
            model = STORE_MODELS[store]
            rows = self.db_session.query(model).filter(model.company_id == company_id).all()
            for row in rows:
                members.setdefault(row.id, PrincipalRecord.from_row(store, row))
        return sorted(members.values(), key=lambda record: record.email)

    def mirror_principal_entitlement(
        self,
        principal_id: str,
        status: str,
        plan_id: Optional[str],
        end_date: Optional[datetime],
    ) -> int:
        """
        Write an entitlement onto every row carrying principal_id, so a
        company-scoped principal and its primary mirror row stay in step.

        Returns:
            Number of rows touched
        """
        touched = 0
        for model in STORE_MODELS.values():
            result = self.db_session.execute(
                update(model)
                .where(model.id == principal_id)
                .values(
                    subscription_status=status,
                    subscription_plan=plan_id,
                    subscription_end_date=end_date,
                )
                .execution_options(synchronize_session=False)
            )
            touched += result.rowcount or 0
        return touched

    def cascade_entitlement(
        self,
        company_id: str,
        status: str,
        plan_id: Optional[str],
        end_date: Optional[datetime],
    ) -> int:
        """
        Write the same entitlement onto every principal in both stores
        sharing company_id. Idempotent.

        Returns:
            Number of rows touched
        """
        touched = 0
        for model in STORE_MODELS.values():
            result = self.db_session.execute(
                update(model)
                .where(model.company_id == company_id)
                .values(
                    subscription_status=status,
                    subscription_plan=plan_id,
                    subscription_end_date=end_date,
                )
                .execution_options(synchronize_session=False)
            )
            touched += result.rowcount or 0
        return touched

    def ensure_primary_mirror(self, record: PrincipalRecord) -> bool:
        """
        Create a minimal primary-store row with the same id for a
        company-scoped principal, so ownership foreign keys resolve.

        Returns:
            True if a row was created
        """
        if not record.is_company_scoped:
            return False
        if self._get(PrincipalStore.PRIMARY, id=record.id) is not None:
            return False
        if self._get(PrincipalStore.PRIMARY, email=record.email) is not None:
            # Email already owned by a different primary principal
            logger.warning("Primary mirror skipped, email collision", extra={
                "principal_id": record.id,
            })
            return False

        self.db_session.add(User(
            id=record.id,
            email=record.email,
            password_hash=record.password_hash,
            full_name=record.full_name,
            phone=record.phone,
            role=record.role,
            account_type=AccountKind.COMPANY_USER.value,
            approved=record.approved,
            company_id=record.company_id,
            subscription_status=record.subscription_status,
            subscription_plan=record.subscription_plan,
            subscription_end_date=record.subscription_end_date,
        ))
        return True
