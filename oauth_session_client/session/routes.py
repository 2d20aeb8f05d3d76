"""
Route handlers for login, OAuth callback and logout.

Each factory returns an async FastAPI endpoint bound to an OAuthClient:

    app.add_api_route("/login", login_handler(client), methods=["GET"])
    app.add_api_route("/callback", callback_handler(client), methods=["GET"])
    app.add_api_route("/logout", logout_handler(client), methods=["GET"])

Handlers never let an OAuthClientError escape: failures become redirects
carrying only an ``error_code`` query parameter.
"""

from pathlib import Path
from typing import Mapping, Optional

from fastapi import Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..client.protocol import OAuthClient
from ..shared.errors import ErrorCode, OAuthClientError
from ..shared.logging_utils import ComponentType, NullOAuthLogger, OAuthLogger
from ..shared.security import SecurityHeaders, merge_query_params
from .dependencies import get_session
from .state_machine import SessionBag, SessionKeys


templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates")),
    autoescape=select_autoescape(["html"]),
)


def _session_error(logger: OAuthLogger) -> Response:
    logger.log_error(
        ErrorCode.SESSION_UNAVAILABLE.value,
        "Session not found. Make sure SessionMiddleware is installed."
    )
    return PlainTextResponse("Session configuration error", status_code=500)


def render_front_channel_logout(logout_url: str, client_id: str, redirect_url: str) -> str:
    """
    Render the page that posts to the service's logout endpoint from the browser.

    The request is sent with credentials so the service's own session
    cookies are included, then the browser is sent to ``redirect_url``.
    """
    template = templates.get_template("front_channel_logout.html")
    return template.render(
        logout_url=logout_url,
        client_id=client_id,
        redirect_url=redirect_url,
    )


def login_handler(client: OAuthClient,
                  scope: Optional[str] = None,
                  additional_params: Optional[Mapping[str, str]] = None,
                  keys: Optional[SessionKeys] = None,
                  logger: Optional[OAuthLogger] = None):
    """
    Build the login-initiate endpoint.

    Generates state and a PKCE pair, stores both in the session and
    redirects the browser to the authorization URL.
    """
    keys = keys or SessionKeys()
    logger = logger or NullOAuthLogger("session")

    async def login(request: Request) -> Response:
        session = get_session(request)
        if session is None:
            return _session_error(logger)

        state = client.generate_state()
        authorization = client.get_authorization_url(
            state=state,
            additional_params=additional_params,
            scope=scope,
        )
        SessionBag(session, keys).begin_login_attempt(state, authorization.code_verifier)

        logger.log_oauth_message(
            ComponentType.CLIENT.value, ComponentType.USER_BROWSER.value,
            "REDIRECT",
            {
                "destination": "authorization endpoint",
                "state": state,
                "code_challenge": authorization.code_challenge,
            }
        )
        return RedirectResponse(authorization.url, status_code=302)

    return login


def callback_handler(client: OAuthClient,
                     success_redirect: str = "/",
                     error_redirect: str = "/login",
                     keys: Optional[SessionKeys] = None,
                     logger: Optional[OAuthLogger] = None):
    """
    Build the OAuth callback endpoint.

    On success the tokens and user profile are stored and the browser is
    sent to ``success_redirect``. On failure it is sent to
    ``error_redirect`` with ``error_code=<code>`` appended. The pending
    state and verifier are cleared either way.
    """
    keys = keys or SessionKeys()
    logger = logger or NullOAuthLogger("session")

    async def callback(request: Request) -> Response:
        session = get_session(request)
        if session is None:
            return _session_error(logger)

        bag = SessionBag(session, keys)
        expected_state = bag.oauth_state
        code_verifier = bag.code_verifier
        bag.clear_login_attempt()

        try:
            tokens = await client.handle_callback(
                dict(request.query_params), expected_state, code_verifier
            )
            user = await client.get_user_info(tokens.access_token)
        except OAuthClientError as e:
            logger.log_warning("OAuth callback failed", {"error_code": e.code.value})
            return RedirectResponse(
                merge_query_params(error_redirect, {"error_code": e.code.value}),
                status_code=302
            )
        except Exception as e:
            logger.log_error("callback_error", "Unexpected error during OAuth callback",
                             {"exception": type(e).__name__})
            return RedirectResponse(
                merge_query_params(error_redirect, {"error": "auth_failed"}),
                status_code=302
            )

        bag.store_tokens(tokens)
        bag.user = user

        logger.log_info("Login completed", {"username": user.username})
        return RedirectResponse(success_redirect, status_code=302)

    return callback


def logout_handler(client: OAuthClient,
                   redirect_url: str = "/",
                   front_channel: bool = True,
                   revoke_tokens: bool = False,
                   keys: Optional[SessionKeys] = None,
                   logger: Optional[OAuthLogger] = None):
    """
    Build the logout endpoint.

    The local session is cleared first, so the user is logged out locally
    even if the service cannot be reached.

    Args:
        client: Protocol client
        redirect_url: Where the browser ends up in every case
        front_channel: Let the browser call the service's logout endpoint so
            its session cookies are sent; otherwise call it server-to-server
        revoke_tokens: Back-channel only; also revoke the stored refresh and
            access tokens before notifying the service
        keys: Session key names
        logger: Optional OAuthLogger
    """
    keys = keys or SessionKeys()
    logger = logger or NullOAuthLogger("session")

    async def logout(request: Request) -> Response:
        session = get_session(request)
        if session is None:
            logger.log_warning("Logout without session support; redirecting")
            return RedirectResponse(redirect_url, status_code=302)

        bag = SessionBag(session, keys)
        access_token = bag.access_token
        refresh_token = bag.refresh_token
        bag.clear_tokens()

        if front_channel:
            html = render_front_channel_logout(
                client.logout_url, client.config.client_id, redirect_url
            )
            return HTMLResponse(html, headers=SecurityHeaders.get_oauth_security_headers())

        if revoke_tokens:
            for token, hint in ((refresh_token, "refresh_token"), (access_token, "access_token")):
                if not token:
                    continue
                try:
                    await client.revoke_token(token, hint)
                except OAuthClientError as e:
                    logger.log_warning("Token revocation failed", {"error_code": e.code.value})

        try:
            await client.logout()
        except OAuthClientError as e:
            logger.log_warning("Service logout (back-channel) failed", {"error_code": e.code.value})

        return RedirectResponse(redirect_url, status_code=302)

    return logout
