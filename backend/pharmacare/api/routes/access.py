"""
Access scope introspection for the calling principal.
"""

from fastapi import APIRouter, Depends

from pharmacare.api.dependencies.access import get_access_scope
from pharmacare.services.access_resolver import AccessScope

router = APIRouter(prefix="/api/access", tags=["access"])


@router.get("/scope")
async def access_scope(scope: AccessScope = Depends(get_access_scope)):
    return {"success": True, **scope.to_dict()}
