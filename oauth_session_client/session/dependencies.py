"""
FastAPI dependencies protecting routes with the session state machine.

Usage:

    require_token = RequireToken(client, AuthConfig(login_url="/login"))

    @app.get("/profile")
    async def profile(user: UserProfile = Depends(require_token)):
        ...

RequireToken validates the access token on every request (refreshing it
when possible); RequireSession only checks that a user is stored in the
session.
"""

from typing import Any, MutableMapping, Optional

from fastapi import HTTPException, Request

from ..client.protocol import OAuthClient
from ..shared.logging_utils import NullOAuthLogger, OAuthLogger
from ..shared.oauth_models import UserProfile
from .state_machine import AuthAction, AuthConfig, AuthDecision, SessionAuthenticator


def get_session(request: Request) -> Optional[MutableMapping[str, Any]]:
    """Return the request session, or None when SessionMiddleware is missing."""
    if "session" not in request.scope:
        return None
    return request.session


def get_current_user(request: Request) -> Optional[UserProfile]:
    """Profile attached to the request by RequireToken/RequireSession, if any."""
    return getattr(request.state, "oauth_user", None)


def get_current_access_token(request: Request) -> Optional[str]:
    return getattr(request.state, "oauth_access_token", None)


def apply_decision(request: Request, decision: AuthDecision, config: AuthConfig) -> UserProfile:
    """
    Turn an AuthDecision into request state or an HTTPException.

    Raises:
        HTTPException: 303 to the login URL (or 401 JSON for API routes),
            500 on authentication or session configuration errors
    """
    if decision.action == AuthAction.PROCEED:
        if config.attach_user:
            request.state.oauth_user = decision.user
            if decision.access_token:
                request.state.oauth_access_token = decision.access_token
        return decision.user

    if decision.action == AuthAction.REDIRECT_LOGIN:
        if config.json_errors:
            raise HTTPException(
                status_code=401,
                detail={"error": "unauthorized"},
                headers={"WWW-Authenticate": "Bearer"}
            )
        raise HTTPException(
            status_code=303,
            detail="Authentication required",
            headers={"Location": decision.redirect_url or config.login_url}
        )

    if decision.action == AuthAction.CONFIG_ERROR:
        raise HTTPException(status_code=500, detail="Session configuration error")

    if config.json_errors:
        raise HTTPException(status_code=500, detail={"error": "authentication_error"})
    raise HTTPException(status_code=500, detail="Authentication error")


class RequireToken:
    """
    Dependency that validates the session's access token on every request.

    Args:
        client: Protocol client
        config: Session key names and behavior flags
        logger: Optional OAuthLogger
    """

    def __init__(self,
                 client: OAuthClient,
                 config: Optional[AuthConfig] = None,
                 logger: Optional[OAuthLogger] = None):
        self.config = config or AuthConfig()
        self.logger = logger or NullOAuthLogger("session")
        self.authenticator = SessionAuthenticator(client, self.config, self.logger)

    async def __call__(self, request: Request) -> UserProfile:
        try:
            decision = await self.authenticator.authenticate(get_session(request))
        except Exception as e:
            self.logger.log_error("authentication_error", "Unexpected error during token validation",
                                  {"exception": type(e).__name__})
            raise HTTPException(status_code=500, detail="Authentication error") from e

        return apply_decision(request, decision, self.config)


class RequireSession:
    """
    Dependency that only requires a user profile in the session.

    Faster than RequireToken since no network call is made, at the cost of
    trusting the stored profile until the session is cleared.
    """

    def __init__(self, config: Optional[AuthConfig] = None,
                 logger: Optional[OAuthLogger] = None):
        self.config = config or AuthConfig()
        self.logger = logger or NullOAuthLogger("session")
        # No client needed in session-only mode
        self.authenticator = SessionAuthenticator(None, self.config, self.logger)

    async def __call__(self, request: Request) -> UserProfile:
        decision = self.authenticator.check_session(get_session(request))
        return apply_decision(request, decision, self.config)
