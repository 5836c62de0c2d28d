"""
Exceptions raised by the Chapa client.
"""

from typing import Optional


class GatewayError(Exception):
    """Payment gateway unreachable or returned an error."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class GatewayTimeoutError(GatewayError):
    """Payment gateway did not answer within the configured timeout."""
    pass
