"""
Authentication: password hashing, session tokens and auth errors.
"""

from pharmacare.auth.errors import (
    AuthError,
    MissingCredentialsError,
    InvalidCredentialsError,
    PendingApprovalError,
    TokenExpiredError,
    TokenInvalidError,
)
from pharmacare.auth.session_token import SessionClaims, SessionTokenCodec

__all__ = [
    "AuthError",
    "MissingCredentialsError",
    "InvalidCredentialsError",
    "PendingApprovalError",
    "TokenExpiredError",
    "TokenInvalidError",
    "SessionClaims",
    "SessionTokenCodec",
]
