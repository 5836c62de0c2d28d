"""
Access scope dependency for owner-scoped handlers.

Usage:
    @router.get("/patients")
    async def list_patients(scope: AccessScope = Depends(get_access_scope), ...):
        query = scope.apply(session.query(Patient), Patient.owner_id)
"""

from fastapi import Depends

from pharmacare.api.dependencies.auth import get_current_claims
from pharmacare.api.dependencies.services import get_access_resolver
from pharmacare.auth.session_token import SessionClaims
from pharmacare.services.access_resolver import AccessResolver, AccessScope


def get_access_scope(
    claims: SessionClaims = Depends(get_current_claims),
    resolver: AccessResolver = Depends(get_access_resolver),
) -> AccessScope:
    return resolver.resolve_accessible_ids(
        principal_id=claims.user_id,
        role=claims.role,
        declared_company_id=claims.company_id,
        account_kind=claims.account_kind,
    )
