"""
Bearer-token authentication dependencies.

get_current_claims decodes the session credential; require_roles builds a
dependency that additionally checks the caller's role.
"""

import logging
from typing import Callable, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pharmacare.api.dependencies.services import get_settings
from pharmacare.auth.errors import AuthError
from pharmacare.auth.session_token import SessionClaims, SessionTokenCodec
from pharmacare.config.settings import AppSettings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: AppSettings = Depends(get_settings),
) -> SessionClaims:
    """
    Decode the bearer session token.

    Raises 401 if the token is missing, expired or invalid.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return SessionTokenCodec(settings).decode(credentials.credentials)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.public_message(settings.verbose_auth_errors),
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_roles(*roles: str) -> Callable:
    """
    Factory for a dependency that admits only the given roles.

    Returns:
        A FastAPI dependency returning the caller's SessionClaims
    """
    allowed = frozenset(roles)

    def check_role(claims: SessionClaims = Depends(get_current_claims)) -> SessionClaims:
        if claims.role not in allowed:
            logger.warning("Role check failed", extra={
                "principal_id": claims.user_id,
                "role": claims.role,
                "required": sorted(allowed),
            })
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return claims

    return check_role
