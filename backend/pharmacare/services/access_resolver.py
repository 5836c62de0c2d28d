"""
Access resolution for owner-scoped records.

Given a principal's identity, role, declared company and account kind,
decides which principals' records it may read or write.

Resolution order (first match wins):
1. admin -> AccessScope.all() (callers omit the ownership filter)
2. company member with no declared company -> look the company up
3. company known -> union of both stores' members, plus self
4. otherwise -> {self}

SECURITY: resolution never raises. Any lookup failure degrades to {self}.
It may fail narrow, never open.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Iterable

from pharmacare.database.store import StoreCapabilities
from pharmacare.models.principal import Role, AccountKind
from pharmacare.repositories.principal_directory import PrincipalDirectory, PrincipalStore

logger = logging.getLogger(__name__)


class AccessDeniedError(Exception):
    """Raised when a target owner is outside the caller's accessible set."""

    def __init__(self, owner_id: Optional[str] = None):
        self.owner_id = owner_id
        super().__init__("Access denied for this resource")


@dataclass(frozen=True)
class AccessScope:
    """
    Tagged result of access resolution: either every principal, or a
    finite set of principal ids.
    """

    unrestricted: bool
    principal_ids: frozenset = field(default_factory=frozenset)

    @classmethod
    def all(cls) -> "AccessScope":
        return cls(unrestricted=True)

    @classmethod
    def of(cls, principal_ids: Iterable[str]) -> "AccessScope":
        return cls(unrestricted=False, principal_ids=frozenset(principal_ids))

    def permits(self, owner_id: Optional[str]) -> bool:
        if self.unrestricted:
            return True
        return owner_id is not None and owner_id in self.principal_ids

    def require(self, owner_id: Optional[str]) -> None:
        """
        Raises:
            AccessDeniedError: If owner_id is outside the scope
        """
        if not self.permits(owner_id):
            raise AccessDeniedError(owner_id)

    def apply(self, query, owner_column):
        """Scope a query by owner column. Unrestricted scopes add no filter."""
        if self.unrestricted:
            return query
        return query.filter(owner_column.in_(self.principal_ids))

    def to_dict(self) -> dict:
        if self.unrestricted:
            return {"scope": "all", "principal_ids": None}
        return {"scope": "ids", "principal_ids": sorted(self.principal_ids)}


def _is_company_member(role: Optional[str], account_kind: Optional[str]) -> bool:
    return account_kind == AccountKind.COMPANY_USER.value or role == Role.COMPANY_USER.value


class AccessResolver:
    """Computes the AccessibleSet for a principal."""

    def __init__(self, store: StoreCapabilities):
        self.store = store

    def resolve_accessible_ids(
        self,
        principal_id: str,
        role: Optional[str],
        declared_company_id: Optional[str] = None,
        account_kind: Optional[str] = None,
    ) -> AccessScope:
        """
        Resolve the principals whose records the caller may see.

        Args:
            principal_id: Requesting principal id
            role: Role from the session claims
            declared_company_id: Company id from the session claims, if any
            account_kind: Account kind from the session claims

        Returns:
            AccessScope.all() for admins, otherwise a finite scope that
            always contains principal_id
        """
        if role == Role.ADMIN.value:
            return AccessScope.all()

        own_scope = AccessScope.of({principal_id})

        try:
            with self.store.standard() as session:
                directory = PrincipalDirectory(session)

                company_id = declared_company_id
                if not company_id:
                    # Company members are usually in the company-scoped store
                    if _is_company_member(role, account_kind):
                        stores = (PrincipalStore.COMPANY_SCOPED, PrincipalStore.PRIMARY)
                    else:
                        stores = (PrincipalStore.PRIMARY, PrincipalStore.COMPANY_SCOPED)
                    company_id = directory.company_id_for(principal_id, stores)

                if not company_id:
                    return own_scope

                member_ids = directory.ids_in_company(company_id)
        except Exception:
            logger.error("Access resolution failed, falling back to own records", extra={
                "principal_id": principal_id,
                "role": role,
            }, exc_info=True)
            return own_scope

        member_ids.add(principal_id)
        logger.debug("Resolved company access scope", extra={
            "principal_id": principal_id,
            "company_id": company_id,
            "member_count": len(member_ids),
        })
        return AccessScope.of(member_ids)
