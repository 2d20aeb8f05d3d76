"""
Session authentication state machine.

Decides, for one request, whether the session's tokens let the request
through, must be refreshed, or force a new login. The logic is independent
of the web framework: it reads and writes a plain mutable mapping (the
session) and returns an AuthDecision that the framework glue turns into a
response.

Token-validated mode::

    START -> no access token -> REDIRECT_LOGIN
          -> VALIDATING -> ok -> ATTACH
                        -> failed, refresh not possible -> CLEAR_SESSION -> REDIRECT_LOGIN
                        -> failed, refresh token present -> REFRESHING
    REFRESHING -> ok, user info ok     -> ATTACH
               -> ok, user info failed -> SERVER_ERROR (session kept)
               -> failed               -> CLEAR_SESSION -> REDIRECT_LOGIN
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, MutableMapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..client.protocol import OAuthClient
from ..shared.errors import ErrorCode, OAuthClientError
from ..shared.logging_utils import NullOAuthLogger, OAuthLogger
from ..shared.oauth_models import TokenResponse, UserProfile


class SessionKeys(BaseModel):
    """Session key names, resolved once at configuration time."""
    access_token: str = "accessToken"
    refresh_token: str = "refreshToken"
    user: str = "user"
    state: str = "oauthState"
    code_verifier: str = "codeVerifier"

    model_config = ConfigDict(frozen=True)


class AuthConfig(BaseModel):
    """
    Options for the session authentication layer.

    Attributes:
        access_token_property: Session key for the access token
        refresh_token_property: Session key for the refresh token
        user_property: Session key for the user profile
        state_property: Session key for the pending OAuth state
        code_verifier_property: Session key for the pending PKCE verifier
        auto_refresh: Try the refresh token when validation fails
        login_url: Where unauthenticated requests are sent
        attach_user: Expose the profile and access token on the request
        json_errors: Answer with a JSON 401 instead of a redirect (API routes)
    """
    access_token_property: str = Field(default="accessToken", min_length=1)
    refresh_token_property: str = Field(default="refreshToken", min_length=1)
    user_property: str = Field(default="user", min_length=1)
    state_property: str = Field(default="oauthState", min_length=1)
    code_verifier_property: str = Field(default="codeVerifier", min_length=1)
    auto_refresh: bool = True
    login_url: str = "/login"
    attach_user: bool = True
    json_errors: bool = False

    model_config = ConfigDict(frozen=True)

    def session_keys(self) -> SessionKeys:
        return SessionKeys(
            access_token=self.access_token_property,
            refresh_token=self.refresh_token_property,
            user=self.user_property,
            state=self.state_property,
            code_verifier=self.code_verifier_property,
        )


class SessionBag:
    """
    Typed view over a session mapping.

    Only the five fields named by SessionKeys are ever touched. Clearing a
    field removes its key, so a cleared session serializes without it.
    """

    def __init__(self, session: MutableMapping[str, Any], keys: Optional[SessionKeys] = None):
        self._session = session
        self.keys = keys or SessionKeys()

    def _get(self, key: str) -> Optional[Any]:
        value = self._session.get(key)
        return value if value else None

    def _set(self, key: str, value: Optional[Any]) -> None:
        if value is None:
            self._session.pop(key, None)
        else:
            self._session[key] = value

    @property
    def access_token(self) -> Optional[str]:
        return self._get(self.keys.access_token)

    @access_token.setter
    def access_token(self, value: Optional[str]) -> None:
        self._set(self.keys.access_token, value)

    @property
    def refresh_token(self) -> Optional[str]:
        return self._get(self.keys.refresh_token)

    @refresh_token.setter
    def refresh_token(self, value: Optional[str]) -> None:
        self._set(self.keys.refresh_token, value)

    @property
    def user(self) -> Optional[UserProfile]:
        raw = self._get(self.keys.user)
        if raw is None:
            return None
        if isinstance(raw, UserProfile):
            return raw
        try:
            return UserProfile.model_validate(raw)
        except ValidationError:
            return None

    @user.setter
    def user(self, value: Optional[UserProfile]) -> None:
        # Stored as a plain dict so cookie-backed sessions can serialize it
        self._set(self.keys.user, value.model_dump() if value is not None else None)

    @property
    def oauth_state(self) -> Optional[str]:
        return self._get(self.keys.state)

    @property
    def code_verifier(self) -> Optional[str]:
        return self._get(self.keys.code_verifier)

    def begin_login_attempt(self, state: str, code_verifier: str) -> None:
        """Store the one-time values that must survive the redirect round trip."""
        self._set(self.keys.state, state)
        self._set(self.keys.code_verifier, code_verifier)

    def clear_login_attempt(self) -> None:
        self._set(self.keys.state, None)
        self._set(self.keys.code_verifier, None)

    def store_tokens(self, tokens: TokenResponse) -> None:
        """Overwrite the access token, and the refresh token if a new one was issued."""
        self.access_token = tokens.access_token
        if tokens.refresh_token:
            self.refresh_token = tokens.refresh_token

    def clear_tokens(self) -> None:
        """Drop access token, refresh token and user."""
        self.access_token = None
        self.refresh_token = None
        self._set(self.keys.user, None)


class AuthState(str, Enum):
    """States visited while authenticating one request."""
    START = "start"
    VALIDATING = "validating"
    REFRESHING = "refreshing"
    CLEAR_SESSION = "clear_session"
    ATTACH = "attach"
    REDIRECT_LOGIN = "redirect_login"
    SERVER_ERROR = "server_error"
    CONFIG_ERROR = "config_error"


class AuthAction(str, Enum):
    """What the framework should do with the request."""
    PROCEED = "proceed"
    REDIRECT_LOGIN = "redirect_login"
    SERVER_ERROR = "server_error"
    CONFIG_ERROR = "config_error"


@dataclass
class AuthDecision:
    """Outcome of authenticating one request."""
    action: AuthAction
    user: Optional[UserProfile] = None
    access_token: Optional[str] = None
    redirect_url: Optional[str] = None
    error: Optional[OAuthClientError] = None
    path: List[AuthState] = field(default_factory=list)

    @property
    def authenticated(self) -> bool:
        return self.action == AuthAction.PROCEED


def state_after_validation_failure(auto_refresh: bool, has_refresh_token: bool) -> AuthState:
    """Next state once validating the access token has failed."""
    if auto_refresh and has_refresh_token:
        return AuthState.REFRESHING
    return AuthState.CLEAR_SESSION


class SessionAuthenticator:
    """
    Runs the session authentication state machine.

    Network calls are strictly sequential: validate, then (only on failure)
    refresh, then user info. Concurrent requests sharing a session may each
    refresh; no de-duplication is attempted.

    Args:
        client: Protocol client used for validation, refresh and user info
        config: Session key names and behavior flags
        logger: Optional OAuthLogger; defaults to a silent logger
    """

    def __init__(self,
                 client: Optional[OAuthClient],
                 config: Optional[AuthConfig] = None,
                 logger: Optional[OAuthLogger] = None):
        self.client = client
        self.config = config or AuthConfig()
        self.keys = self.config.session_keys()
        self.logger = logger or NullOAuthLogger("session")

    def _config_error(self) -> AuthDecision:
        self.logger.log_error(
            ErrorCode.SESSION_UNAVAILABLE.value,
            "Session not found. Make sure SessionMiddleware is installed."
        )
        return AuthDecision(
            action=AuthAction.CONFIG_ERROR,
            error=OAuthClientError(ErrorCode.SESSION_UNAVAILABLE, "Session store unavailable"),
            path=[AuthState.CONFIG_ERROR],
        )

    def _redirect(self, path: List[AuthState],
                  error: Optional[OAuthClientError] = None) -> AuthDecision:
        path.append(AuthState.REDIRECT_LOGIN)
        return AuthDecision(
            action=AuthAction.REDIRECT_LOGIN,
            redirect_url=self.config.login_url,
            error=error,
            path=path,
        )

    def _attach(self, bag: SessionBag, user: UserProfile,
                access_token: str, path: List[AuthState]) -> AuthDecision:
        bag.user = user
        path.append(AuthState.ATTACH)
        return AuthDecision(
            action=AuthAction.PROCEED,
            user=user,
            access_token=access_token,
            path=path,
        )

    def check_session(self, session: Optional[MutableMapping[str, Any]]) -> AuthDecision:
        """
        Session-only mode: let the request through if a user is stored.

        No network call is made, so the stored profile may be stale.
        """
        if session is None:
            return self._config_error()

        path = [AuthState.START]
        user = SessionBag(session, self.keys).user
        if user is None:
            return self._redirect(path)

        path.append(AuthState.ATTACH)
        return AuthDecision(action=AuthAction.PROCEED, user=user, path=path)

    async def authenticate(self, session: Optional[MutableMapping[str, Any]]) -> AuthDecision:
        """
        Token-validated mode: validate the stored access token on every request.

        Args:
            session: The request's session mapping, or None if the framework
                has no session support configured

        Returns:
            AuthDecision: action plus the user and token to attach
        """
        if session is None:
            return self._config_error()

        bag = SessionBag(session, self.keys)
        path = [AuthState.START]

        access_token = bag.access_token
        if not access_token:
            return self._redirect(path)

        path.append(AuthState.VALIDATING)
        try:
            user = await self.client.validate_token_and_get_user(access_token)
        except OAuthClientError as e:
            return await self._recover(bag, e, path)

        return self._attach(bag, user, access_token, path)

    async def _recover(self, bag: SessionBag, error: OAuthClientError,
                       path: List[AuthState]) -> AuthDecision:
        refresh_token = bag.refresh_token
        next_state = state_after_validation_failure(self.config.auto_refresh,
                                                    refresh_token is not None)

        if next_state == AuthState.CLEAR_SESSION:
            self.logger.log_warning("Token validation failed", {"error_code": error.code.value})
            bag.clear_tokens()
            path.append(AuthState.CLEAR_SESSION)
            return self._redirect(path, error)

        path.append(AuthState.REFRESHING)
        try:
            tokens = await self.client.refresh_token(refresh_token)
        except OAuthClientError as e:
            self.logger.log_warning("Token refresh failed", {"error_code": e.code.value})
            bag.clear_tokens()
            path.append(AuthState.CLEAR_SESSION)
            return self._redirect(path, e)

        bag.store_tokens(tokens)

        try:
            user = await self.client.get_user_info(tokens.access_token)
        except OAuthClientError as e:
            # The new token may still be good; keep the session as is
            self.logger.log_error(
                e.code.value,
                "User info fetch failed after token refresh"
            )
            path.append(AuthState.SERVER_ERROR)
            return AuthDecision(action=AuthAction.SERVER_ERROR, error=e, path=path)

        return self._attach(bag, user, tokens.access_token, path)
