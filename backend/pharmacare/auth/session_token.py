"""
Signed session credential.

The credential is an HS256 JWT carrying resolved identity claims. It does
not carry entitlement, which is always read fresh.

Claims:
- userId, email, role, accountKind, companyId, userType
- iat, exp (24 h by default), iss
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

import jwt
from pydantic import BaseModel, ConfigDict, Field

from pharmacare.auth.errors import TokenExpiredError, TokenInvalidError
from pharmacare.config.settings import AppSettings
from pharmacare.models.base import utc_now

logger = logging.getLogger(__name__)


class SessionClaims(BaseModel):
    """Decoded session claims."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    email: str
    role: str
    account_kind: str = Field("individual", alias="accountKind")
    company_id: Optional[str] = Field(None, alias="companyId")
    user_type: Optional[str] = Field(None, alias="userType")
    issued_at: Optional[int] = Field(None, alias="iat")
    expires_at: Optional[int] = Field(None, alias="exp")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class SessionTokenCodec:
    """Encodes and decodes session tokens with PyJWT."""

    def __init__(self, settings: AppSettings):
        self.secret = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.issuer = settings.jwt_issuer
        self.lifetime = timedelta(hours=settings.jwt_lifetime_hours)

    def encode(
        self,
        user_id: str,
        email: str,
        role: str,
        account_kind: str,
        company_id: Optional[str],
        user_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        now = now or utc_now()
        payload = {
            "userId": user_id,
            "email": email,
            "role": role,
            "accountKind": account_kind,
            "companyId": company_id,
            "userType": user_type,
            "iat": int(now.timestamp()),
            "exp": int((now + self.lifetime).timestamp()),
            "iss": self.issuer,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> SessionClaims:
        """
        Verify and decode a session token.

        Raises:
            TokenExpiredError: If exp has passed
            TokenInvalidError: On bad signature, issuer or shape
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "iss"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError()
        except jwt.InvalidTokenError as e:
            logger.info("Rejected session token", extra={"error": str(e)})
            raise TokenInvalidError(str(e))

        try:
            return SessionClaims.model_validate(payload)
        except ValueError as e:
            raise TokenInvalidError(str(e))
