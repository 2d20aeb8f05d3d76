"""
OAuth 2.0 Authorization Code + PKCE client for confidential web applications.

Provides the protocol client, the session authentication state machine and
FastAPI integration (dependencies and login/callback/logout handlers).
"""

from .client.protocol import OAuthClient
from .session.dependencies import RequireSession, RequireToken, get_current_user
from .session.routes import callback_handler, login_handler, logout_handler
from .session.state_machine import (
    AuthAction,
    AuthConfig,
    AuthDecision,
    SessionAuthenticator,
    SessionBag,
    SessionKeys,
)
from .shared.errors import ErrorCode, OAuthClientError
from .shared.oauth_models import (
    AuthorizationUrl,
    ClientConfig,
    IntrospectionResult,
    TokenResponse,
    UserProfile,
)

__version__ = "1.0.0"

__all__ = [
    "OAuthClient",
    "ClientConfig",
    "AuthorizationUrl",
    "TokenResponse",
    "IntrospectionResult",
    "UserProfile",
    "ErrorCode",
    "OAuthClientError",
    "AuthConfig",
    "AuthAction",
    "AuthDecision",
    "SessionAuthenticator",
    "SessionBag",
    "SessionKeys",
    "RequireToken",
    "RequireSession",
    "get_current_user",
    "login_handler",
    "callback_handler",
    "logout_handler",
]
