"""
Authentication errors.

Messages are generic by default so that callers cannot tell a wrong
email from a wrong password. Verbose detail is only attached when the
deployment enables it.
"""

from typing import Optional

GENERIC_CREDENTIALS_MESSAGE = "Invalid email or password"


class AuthError(Exception):
    """Base exception for authentication failures."""

    status_code = 401

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def public_message(self, verbose: bool = False) -> str:
        if verbose and self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class MissingCredentialsError(AuthError):
    """Email or password not supplied."""

    status_code = 400

    def __init__(self):
        super().__init__("Email and password are required")


class InvalidCredentialsError(AuthError):
    """Unknown email or wrong password."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(GENERIC_CREDENTIALS_MESSAGE, detail)


class PendingApprovalError(AuthError):
    """Non-admin principal not yet approved."""

    status_code = 403

    def __init__(self):
        super().__init__(
            "Your account is pending approval. Please wait for approval before logging in."
        )


class TokenExpiredError(AuthError):
    """Session token has expired."""

    def __init__(self):
        super().__init__("Session has expired")


class TokenInvalidError(AuthError):
    """Session token is malformed or has a bad signature."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__("Invalid session token", detail)
