"""
Structured error type for the OAuth session client.

Every failure raised by the protocol client and the session authentication
layer is an OAuthClientError carrying a machine-readable code, so callers can
branch on ``error.code`` without parsing message text or knowing about HTTP.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Closed set of error codes surfaced by the client."""
    # Construction-time configuration failures
    MISSING_CLIENT_ID = "missing_client_id"
    MISSING_CLIENT_SECRET = "missing_client_secret"
    MISSING_REDIRECT_URI = "missing_redirect_uri"
    INVALID_CONFIG = "invalid_config"

    # Callback validation
    INVALID_STATE = "invalid_state"
    MISSING_AUTHORIZATION_CODE = "missing_authorization_code"
    MISSING_CODE_VERIFIER = "missing_code_verifier"
    AUTHORIZATION_DENIED = "authorization_denied"

    # Remote rejections
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"
    USERINFO_FAILED = "userinfo_failed"
    TOKEN_INACTIVE = "token_inactive"

    # Transport
    NETWORK_ERROR = "network_error"

    # Framework integration
    SESSION_UNAVAILABLE = "session_unavailable"


class OAuthClientError(Exception):
    """
    Error raised on any OAuth client failure path.

    Args:
        code: ErrorCode identifying the failure
        message: Human-readable description (never shown to end users)
        details: Optional structured context, e.g. the remote ``error`` field

    Example:
        try:
            await client.refresh_token(refresh_token)
        except OAuthClientError as e:
            if e.code == ErrorCode.TOKEN_REFRESH_FAILED:
                ...
    """

    def __init__(self, code: ErrorCode, message: str,
                 details: Optional[Dict[str, Any]] = None):
        self.code = ErrorCode(code)
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"OAuthClientError(code={self.code.value!r}, message={self.message!r})"

    def to_dict(self) -> Dict[str, Any]:
        """
        Return a payload safe to hand to a browser or API consumer.

        Only the code is included; messages and details may describe
        internals and stay server-side.
        """
        return {"error": "oauth_error", "error_code": self.code.value}
