"""
Authentication routes: login, profile, registration and password change.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from pharmacare.api.dependencies.auth import get_current_claims
from pharmacare.api.dependencies.services import (
    get_settings,
    get_session_issuer,
    get_principal_service,
)
from pharmacare.auth.errors import AuthError
from pharmacare.auth.session_token import SessionClaims
from pharmacare.config.settings import AppSettings
from pharmacare.services.principal_service import (
    PrincipalService,
    RegistrationError,
    EmailTakenError,
    CompanyExistsError,
    PrincipalNotFoundError,
    PasswordChangeError,
)
from pharmacare.services.session_issuer import SessionIssuer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool = True
    token: str
    user: dict
    user_type: str
    token_expires_in: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    full_name: str
    phone: Optional[str] = None
    role: str = "pharmacist"
    license_number: Optional[str] = None
    institution: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    tin_number: Optional[str] = None


class RegisterCompanyRequest(BaseModel):
    company_name: str
    company_email: str
    admin_email: str
    admin_password: str
    admin_full_name: str
    admin_phone: Optional[str] = None
    admin_license_number: Optional[str] = None
    company_type: str = "pharmacy"
    country: Optional[str] = None
    region: Optional[str] = None
    tin_number: Optional[str] = None
    user_capacity: int = Field(5, ge=1)


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    user_id: str
    company_id: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class MessageResponse(BaseModel):
    success: bool = True
    message: str


def _registration_http_error(e: RegistrationError) -> HTTPException:
    if isinstance(e, (EmailTakenError, CompanyExistsError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    issuer: SessionIssuer = Depends(get_session_issuer),
    settings: AppSettings = Depends(get_settings),
):
    """Authenticate with email and password and receive a session token."""
    try:
        result = issuer.login(body.email, body.password)
    except AuthError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=issuer.error_message(e),
        )

    return LoginResponse(
        token=result.token,
        user=result.principal.to_profile(),
        user_type=result.principal.user_type,
        token_expires_in=f"{settings.jwt_lifetime_hours} hours",
    )


@router.get("/me")
async def me(
    claims: SessionClaims = Depends(get_current_claims),
    issuer: SessionIssuer = Depends(get_session_issuer),
):
    """Current profile with entitlement read fresh."""
    resolved = issuer.profile(claims)
    if resolved is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return {"success": True, "user": resolved.to_profile()}


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    principals: PrincipalService = Depends(get_principal_service),
):
    try:
        record = principals.register_individual(**body.model_dump())
    except RegistrationError as e:
        raise _registration_http_error(e)

    return RegisterResponse(
        message="Registration successful! Please wait for admin approval.",
        user_id=record.id,
    )


@router.post("/register-company", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register_company(
    body: RegisterCompanyRequest,
    principals: PrincipalService = Depends(get_principal_service),
):
    try:
        registration = principals.register_company(**body.model_dump())
    except RegistrationError as e:
        raise _registration_http_error(e)

    return RegisterResponse(
        message="Company registration successful!",
        user_id=registration.admin_principal_id,
        company_id=registration.company_id,
    )


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    claims: SessionClaims = Depends(get_current_claims),
    principals: PrincipalService = Depends(get_principal_service),
):
    try:
        principals.change_password(claims.user_id, body.current_password, body.new_password)
    except PrincipalNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PasswordChangeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return MessageResponse(message="Password changed")
