"""
Platform admin routes for principal approval.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from pharmacare.api.dependencies.auth import require_roles
from pharmacare.api.dependencies.services import get_principal_service
from pharmacare.auth.session_token import SessionClaims
from pharmacare.models.principal import Role
from pharmacare.services.principal_service import PrincipalService, PrincipalNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

require_admin = require_roles(Role.ADMIN.value)


@router.post("/principals/{principal_id}/approve")
async def approve_principal(
    principal_id: str,
    claims: SessionClaims = Depends(require_admin),
    principals: PrincipalService = Depends(get_principal_service),
):
    try:
        record = principals.approve_principal(principal_id)
    except PrincipalNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    logger.info("Principal approved by admin", extra={
        "admin_id": claims.user_id,
        "principal_id": principal_id,
    })
    return {"success": True, "user": record.to_dict()}


@router.delete("/principals/{principal_id}")
async def reject_principal(
    principal_id: str,
    claims: SessionClaims = Depends(require_admin),
    principals: PrincipalService = Depends(get_principal_service),
):
    try:
        principals.reject_principal(principal_id)
    except PrincipalNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    logger.info("Principal rejected by admin", extra={
        "admin_id": claims.user_id,
        "principal_id": principal_id,
    })
    return {"success": True, "message": "User rejected"}
