"""
Company member management. Company admins only.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from pharmacare.api.dependencies.auth import require_roles
from pharmacare.api.dependencies.services import get_principal_service
from pharmacare.auth.session_token import SessionClaims
from pharmacare.models.principal import Role
from pharmacare.services.principal_service import (
    PrincipalService,
    RegistrationError,
    EmailTakenError,
    PrincipalNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/company", tags=["company"])

require_company_admin = require_roles(Role.COMPANY_ADMIN.value)


class AddCompanyUserRequest(BaseModel):
    email: str
    password: str
    full_name: str
    phone: Optional[str] = None
    role: str = Role.COMPANY_USER.value
    license_number: Optional[str] = None


@router.get("/users")
async def list_company_users(
    claims: SessionClaims = Depends(require_company_admin),
    principals: PrincipalService = Depends(get_principal_service),
):
    try:
        members = principals.list_company_users(claims.user_id)
    except PrincipalNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {"success": True, "users": [m.to_dict() for m in members]}


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def add_company_user(
    body: AddCompanyUserRequest,
    claims: SessionClaims = Depends(require_company_admin),
    principals: PrincipalService = Depends(get_principal_service),
):
    try:
        member = principals.add_company_user(claims.user_id, **body.model_dump())
    except PrincipalNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except EmailTakenError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except RegistrationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {
        "success": True,
        "message": "User created",
        "user": {**member.to_dict(), "subscription_status": member.subscription_status},
    }


@router.delete("/users/{principal_id}")
async def remove_company_user(
    principal_id: str,
    claims: SessionClaims = Depends(require_company_admin),
    principals: PrincipalService = Depends(get_principal_service),
):
    try:
        principals.remove_company_user(claims.user_id, principal_id)
    except PrincipalNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {"success": True, "message": "User removed"}
