"""
Login and session issuance.

Login resolution:
1. Normalize email; look up the primary store, then the company-scoped
   store. Primary shadows company-scoped on an email collision.
2. Verify the password hash.
3. Reject unapproved non-admin principals.
4. Resolve company_id from the record, else from a company-scoped record
   with the same email.
5. Effective account kind is company_user if the record came from the
   company-scoped store or a company was resolved.
6. Entitlement comes from EntitlementService (company first, with the
   history fallback).
7. Company-scoped principals get a best-effort primary-store mirror row.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from pharmacare.auth.errors import (
    AuthError,
    MissingCredentialsError,
    InvalidCredentialsError,
    PendingApprovalError,
)
from pharmacare.auth.passwords import verify_password
from pharmacare.auth.session_token import SessionClaims, SessionTokenCodec
from pharmacare.database.store import StoreCapabilities
from pharmacare.models.company import Company
from pharmacare.models.principal import AccountKind, Role
from pharmacare.repositories.principal_directory import (
    PrincipalDirectory,
    PrincipalRecord,
    normalize_email,
)
from pharmacare.services.entitlement_service import EntitlementService, Entitlement

logger = logging.getLogger(__name__)

REGULAR_USER = "regular_user"
COMPANY_USER = "company_user"


@dataclass
class ResolvedPrincipal:
    """A principal with tenant, account kind and entitlement resolved."""
    record: PrincipalRecord
    company_id: Optional[str]
    account_kind: str
    entitlement: Entitlement
    company: Optional[dict] = None

    @property
    def user_type(self) -> str:
        return COMPANY_USER if self.record.is_company_scoped else REGULAR_USER

    def to_profile(self) -> dict:
        profile = self.record.to_dict()
        profile.pop("store", None)
        profile.update({
            "account_type": self.account_kind,
            "company_id": self.company_id,
            "company": self.company,
            "user_type": self.user_type,
        })
        profile.update(self.entitlement.to_dict())
        return profile


@dataclass
class LoginResult:
    token: str
    principal: ResolvedPrincipal


class SessionIssuer:
    """Authenticates principals and mints session tokens."""

    def __init__(
        self,
        store: StoreCapabilities,
        codec: SessionTokenCodec,
        entitlements: EntitlementService,
        verbose_errors: bool = False,
    ):
        self.store = store
        self.codec = codec
        self.entitlements = entitlements
        self.verbose_errors = verbose_errors

    def error_message(self, error: AuthError) -> str:
        """Client-facing text for a login failure, with detail only when verbose."""
        return error.public_message(self.verbose_errors)

    def login(self, email: Optional[str], password: Optional[str]) -> LoginResult:
        """
        Authenticate and issue a session token.

        Raises:
            MissingCredentialsError: If email or password is empty
            InvalidCredentialsError: Unknown email or wrong password
            PendingApprovalError: Non-admin principal not approved
            StoreError: Underlying store failure
        """
        clean_email = normalize_email(email)
        clean_password = (password or "").strip()
        if not clean_email or not clean_password:
            raise MissingCredentialsError()

        with self.store.standard() as session:
            record = PrincipalDirectory(session).find_by_email(clean_email)

        if record is None:
            logger.info("Login rejected: unknown email")
            raise InvalidCredentialsError(detail="no principal with this email")

        if not verify_password(clean_password, record.password_hash):
            logger.info("Login rejected: bad password", extra={"principal_id": record.id})
            raise InvalidCredentialsError(detail="password mismatch")

        if record.role != Role.ADMIN.value and not record.approved:
            logger.info("Login rejected: pending approval", extra={"principal_id": record.id})
            raise PendingApprovalError()

        resolved = self.resolve(record)

        if record.is_company_scoped:
            self._sync_primary_mirror(record)

        token = self.codec.encode(
            user_id=record.id,
            email=record.email,
            role=record.role,
            account_kind=resolved.account_kind,
            company_id=resolved.company_id,
            user_type=resolved.user_type,
        )

        logger.info("Login successful", extra={
            "principal_id": record.id,
            "store": record.store.value,
            "company_id": resolved.company_id,
            "account_kind": resolved.account_kind,
            "subscription_status": resolved.entitlement.status,
        })
        return LoginResult(token=token, principal=resolved)

    def resolve(self, record: PrincipalRecord) -> ResolvedPrincipal:
        """Resolve tenant, account kind and entitlement for a principal."""
        with self.store.standard() as session:
            company_id = record.company_id
            if not company_id:
                company_id = PrincipalDirectory(session).company_id_by_email(record.email)

            company = None
            if company_id:
                row = session.query(Company).filter(Company.id == company_id).first()
                if row is not None:
                    company = {"id": row.id, "company_name": row.company_name}

            entitlement = self.entitlements.current_entitlement(
                record, company_id=company_id, db_session=session
            )

        if record.is_company_scoped or company_id:
            account_kind = AccountKind.COMPANY_USER.value
        else:
            account_kind = record.account_kind or AccountKind.INDIVIDUAL.value

        return ResolvedPrincipal(
            record=record,
            company_id=company_id,
            account_kind=account_kind,
            entitlement=entitlement,
            company=company,
        )

    def profile(self, claims: SessionClaims) -> Optional[ResolvedPrincipal]:
        """
        Fresh profile for a decoded session. Returns None if the principal
        no longer exists.
        """
        with self.store.standard() as session:
            directory = PrincipalDirectory(session)
            record = directory.find_by_id(claims.user_id)
        if record is None:
            return None
        return self.resolve(record)

    def decode(self, token: str) -> SessionClaims:
        return self.codec.decode(token)

    def _sync_primary_mirror(self, record: PrincipalRecord) -> None:
        try:
            with self.store.elevated() as session:
                if PrincipalDirectory(session).ensure_primary_mirror(record):
                    session.commit()
                    logger.info("Primary mirror row created", extra={"principal_id": record.id})
        except Exception:
            logger.warning("Primary mirror sync failed", extra={
                "principal_id": record.id,
            }, exc_info=True)
