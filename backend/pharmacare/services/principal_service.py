"""
Principal lifecycle: registration, company membership, approval and
password changes.

Emails are unique across both principal stores for new principals.
Existing collisions are tolerated and resolved at read time by the
identity directory (primary first).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError

from pharmacare.auth.passwords import hash_password, verify_password
from pharmacare.database.store import StoreCapabilities
from pharmacare.models.company import Company
from pharmacare.models.principal import User, CompanyUser, Role, AccountKind
from pharmacare.repositories.principal_directory import (
    PrincipalDirectory,
    PrincipalRecord,
    PrincipalStore,
    STORE_MODELS,
    normalize_email,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class PrincipalServiceError(Exception):
    """Base exception for principal lifecycle operations."""
    pass


class RegistrationError(PrincipalServiceError):
    """Registration input rejected."""
    pass


class EmailTakenError(RegistrationError):
    """Email already registered in either store."""

    def __init__(self, email: str):
        self.email = email
        super().__init__("Email already registered")


class CompanyExistsError(RegistrationError):
    """Company name already registered."""
    pass


class PrincipalNotFoundError(PrincipalServiceError):
    """Target principal does not exist (or is outside the caller's company)."""
    pass


class PasswordChangeError(PrincipalServiceError):
    """Current password wrong or new password too short."""
    pass


@dataclass
class CompanyRegistration:
    company_id: str
    admin_principal_id: str


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class PrincipalService:
    """Creates and maintains principals in both stores."""

    def __init__(self, store: StoreCapabilities, bcrypt_rounds: int = 12):
        self.store = store
        self.bcrypt_rounds = bcrypt_rounds

    def _validate_credentials(self, email: Optional[str], password: Optional[str]) -> str:
        clean_email = normalize_email(email)
        if not clean_email or "@" not in clean_email:
            raise RegistrationError("Invalid email")
        if not password or len(password.strip()) < MIN_PASSWORD_LENGTH:
            raise RegistrationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return clean_email

    def register_individual(
        self,
        email: str,
        password: str,
        full_name: str,
        phone: Optional[str] = None,
        role: str = Role.PHARMACIST.value,
        license_number: Optional[str] = None,
        institution: Optional[str] = None,
        country: Optional[str] = None,
        region: Optional[str] = None,
        tin_number: Optional[str] = None,
    ) -> PrincipalRecord:
        """
        Register an individual in the primary store (unapproved).

        Raises:
            RegistrationError: Invalid input or privileged role requested
            EmailTakenError: Email exists in either store
        """
        clean_email = self._validate_credentials(email, password)
        if role in (Role.ADMIN.value, Role.COMPANY_ADMIN.value, Role.COMPANY_USER.value):
            raise RegistrationError(f"Role not allowed for self-registration: {role}")

        with self.store.standard() as session:
            directory = PrincipalDirectory(session)
            if directory.email_exists(clean_email):
                raise EmailTakenError(clean_email)

            user = User(
                email=clean_email,
                password_hash=hash_password(password.strip(), self.bcrypt_rounds),
                full_name=_clean(full_name),
                phone=_clean(phone),
                role=role or Role.PHARMACIST.value,
                account_type=AccountKind.INDIVIDUAL.value,
                approved=False,
                license_number=_clean(license_number),
                institution=_clean(institution),
                country=_clean(country),
                region=_clean(region),
                tin_number=_clean(tin_number),
                subscription_status="inactive",
            )
            session.add(user)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise EmailTakenError(clean_email)

            logger.info("Individual registered", extra={"principal_id": user.id})
            return PrincipalRecord.from_row(PrincipalStore.PRIMARY, user)

    def register_company(
        self,
        company_name: str,
        company_email: str,
        admin_email: str,
        admin_password: str,
        admin_full_name: str,
        admin_phone: Optional[str] = None,
        admin_license_number: Optional[str] = None,
        company_type: str = "pharmacy",
        country: Optional[str] = None,
        region: Optional[str] = None,
        tin_number: Optional[str] = None,
        user_capacity: int = 5,
    ) -> CompanyRegistration:
        """
        Register a company and its admin principal (unapproved).

        The company row is removed again if the admin cannot be created.

        Raises:
            RegistrationError: Invalid input
            CompanyExistsError: Company name taken
            EmailTakenError: Admin email exists in either store
        """
        name = _clean(company_name)
        if not name:
            raise RegistrationError("Company name is required")
        clean_admin_email = self._validate_credentials(admin_email, admin_password)
        password_hash = hash_password(admin_password.strip(), self.bcrypt_rounds)

        with self.store.standard() as session:
            directory = PrincipalDirectory(session)
            if session.query(Company.id).filter(Company.company_name.ilike(name)).first():
                raise CompanyExistsError("Company exists with this name")
            if directory.email_exists(clean_admin_email):
                raise EmailTakenError(clean_admin_email)

            company = Company(
                company_name=name,
                email=normalize_email(company_email) or None,
                admin_email=clean_admin_email,
                company_type=company_type,
                country=_clean(country),
                region=_clean(region),
                tin_number=_clean(tin_number),
                user_capacity=user_capacity or 5,
                subscription_status="inactive",
            )
            session.add(company)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise CompanyExistsError("Company exists with this name")

            admin = User(
                email=clean_admin_email,
                password_hash=password_hash,
                full_name=_clean(admin_full_name),
                phone=_clean(admin_phone),
                license_number=_clean(admin_license_number),
                company_id=company.id,
                institution=name,
                country=company.country,
                region=company.region,
                tin_number=company.tin_number,
                role=Role.COMPANY_ADMIN.value,
                account_type=AccountKind.COMPANY.value,
                approved=False,
                subscription_status="inactive",
            )
            session.add(admin)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                session.execute(delete(Company).where(Company.id == company.id))
                session.commit()
                logger.warning("Company admin insert failed, company removed", extra={
                    "company_id": company.id,
                })
                raise EmailTakenError(clean_admin_email)

            company.admin_principal_id = admin.id
            session.commit()

            logger.info("Company registered", extra={
                "company_id": company.id,
                "admin_principal_id": admin.id,
            })
            return CompanyRegistration(company_id=company.id, admin_principal_id=admin.id)

    def add_company_user(
        self,
        admin_principal_id: str,
        email: str,
        password: str,
        full_name: str,
        phone: Optional[str] = None,
        role: str = Role.COMPANY_USER.value,
        license_number: Optional[str] = None,
    ) -> PrincipalRecord:
        """
        Create an auto-approved company-scoped principal in the admin's
        company. The new principal inherits the company entitlement mirror.

        Raises:
            PrincipalNotFoundError: Admin has no company
            EmailTakenError: Email exists in either store
        """
        clean_email = self._validate_credentials(email, password)
        if role in (Role.ADMIN.value, Role.COMPANY_ADMIN.value):
            raise RegistrationError(f"Role not allowed for company users: {role}")

        with self.store.standard() as session:
            directory = PrincipalDirectory(session)
            company_id = directory.company_id_for(
                admin_principal_id, (PrincipalStore.PRIMARY, PrincipalStore.COMPANY_SCOPED)
            )
            company = session.query(Company).filter(Company.id == company_id).first() if company_id else None
            if company is None:
                raise PrincipalNotFoundError("Company not found")
            if directory.email_exists(clean_email):
                raise EmailTakenError(clean_email)

            member = CompanyUser(
                company_id=company.id,
                email=clean_email,
                password_hash=hash_password(password.strip(), self.bcrypt_rounds),
                full_name=_clean(full_name),
                phone=_clean(phone),
                license_number=_clean(license_number),
                role=role or Role.COMPANY_USER.value,
                account_type=AccountKind.COMPANY_USER.value,
                approved=True,
                created_by=admin_principal_id,
            )
            member.mirror_entitlement(
                company.subscription_status or "inactive",
                company.subscription_plan,
                company.subscription_end_date,
            )
            session.add(member)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise EmailTakenError(clean_email)

            logger.info("Company user created", extra={
                "company_id": company.id,
                "principal_id": member.id,
                "subscription_status": member.subscription_status,
            })
            return PrincipalRecord.from_row(PrincipalStore.COMPANY_SCOPED, member)

    def list_company_users(self, admin_principal_id: str) -> list[PrincipalRecord]:
        with self.store.standard() as session:
            directory = PrincipalDirectory(session)
            company_id = directory.company_id_for(
                admin_principal_id, (PrincipalStore.PRIMARY, PrincipalStore.COMPANY_SCOPED)
            )
            if not company_id:
                raise PrincipalNotFoundError("Company not found")
            return directory.list_company_members(company_id)

    def remove_company_user(self, admin_principal_id: str, principal_id: str) -> None:
        """
        Hard-delete a company-scoped principal from the admin's company,
        together with its primary mirror row if one exists.

        Raises:
            PrincipalNotFoundError: No such member in the admin's company
        """
        with self.store.standard() as session:
            directory = PrincipalDirectory(session)
            company_id = directory.company_id_for(
                admin_principal_id, (PrincipalStore.PRIMARY, PrincipalStore.COMPANY_SCOPED)
            )
            member = (
                session.query(CompanyUser)
                .filter(CompanyUser.id == principal_id, CompanyUser.company_id == company_id)
                .first()
            ) if company_id else None
            if member is None:
                raise PrincipalNotFoundError("User not found in your company")

            session.delete(member)
            session.execute(
                delete(User).where(
                    User.id == principal_id,
                    User.account_type == AccountKind.COMPANY_USER.value,
                )
            )
            session.commit()

        logger.info("Company user removed", extra={
            "company_id": company_id,
            "principal_id": principal_id,
        })

    def approve_principal(self, principal_id: str) -> PrincipalRecord:
        """
        Approve a principal in whichever store holds it.

        Raises:
            PrincipalNotFoundError: Unknown principal
        """
        with self.store.elevated() as session:
            touched = 0
            for model in STORE_MODELS.values():
                result = session.execute(
                    update(model)
                    .where(model.id == principal_id)
                    .values(approved=True)
                    .execution_options(synchronize_session=False)
                )
                touched += result.rowcount or 0
            if not touched:
                raise PrincipalNotFoundError("User not found")
            session.commit()
            record = PrincipalDirectory(session).find_by_id(principal_id)

        logger.info("Principal approved", extra={"principal_id": principal_id})
        return record

    def reject_principal(self, principal_id: str) -> None:
        """
        Hard-delete a principal (admin rejection) from both stores.

        Raises:
            PrincipalNotFoundError: Unknown principal
        """
        with self.store.elevated() as session:
            removed = 0
            for model in STORE_MODELS.values():
                result = session.execute(delete(model).where(model.id == principal_id))
                removed += result.rowcount or 0
            if not removed:
                raise PrincipalNotFoundError("User not found")
            session.commit()

        logger.info("Principal rejected", extra={"principal_id": principal_id})

    def change_password(self, principal_id: str, current_password: str, new_password: str) -> None:
        """
        Change a principal's password. Every row carrying the principal id
        (including a primary mirror row) gets the new hash.

        Raises:
            PrincipalNotFoundError: Unknown principal
            PasswordChangeError: Wrong current password or short new password
        """
        if not new_password or len(new_password) < MIN_PASSWORD_LENGTH:
            raise PasswordChangeError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        with self.store.standard() as session:
            record = PrincipalDirectory(session).find_by_id(principal_id)
            if record is None:
                raise PrincipalNotFoundError("User not found")
            if not verify_password((current_password or "").strip(), record.password_hash):
                raise PasswordChangeError("Incorrect password")

            new_hash = hash_password(new_password.strip(), self.bcrypt_rounds)
            for model in STORE_MODELS.values():
                session.execute(
                    update(model)
                    .where(model.id == principal_id)
                    .values(password_hash=new_hash)
                    .execution_options(synchronize_session=False)
                )
            session.commit()

        logger.info("Password changed", extra={"principal_id": principal_id})
