"""
OAuth Session Client Demo Application

This FastAPI application wires the OAuth client into a small web app:
login, callback and logout routes, a session-only protected page, a
token-validated page, and JSON API routes.

Run with:
    OAUTH_CLIENT_ID=... OAUTH_CLIENT_SECRET=... \
    OAUTH_REDIRECT_URI=http://localhost:8080/callback \
    python -m oauth_session_client.demo.main
"""

import os
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware

from ..client.protocol import OAuthClient
from ..session.dependencies import RequireSession, RequireToken, get_current_access_token
from ..session.routes import callback_handler, login_handler, logout_handler
from ..session.state_machine import AuthConfig, SessionBag
from ..shared.errors import OAuthClientError
from ..shared.logging_utils import OAuthLogger, create_logger
from ..shared.oauth_models import ClientConfig, UserProfile


templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def create_app(config: Optional[ClientConfig] = None,
               session_secret: Optional[str] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None,
               logger: Optional[OAuthLogger] = None,
               front_channel_logout: Optional[bool] = None) -> FastAPI:
    """
    Build the demo application.

    Args:
        config: Client configuration; read from OAUTH_* variables if omitted
        session_secret: Cookie signing key; SESSION_SECRET or a random key
        transport: Optional httpx transport for the protocol client
        logger: Logger shared by client and session layer
        front_channel_logout: Browser-side logout; OAUTH_FRONT_CHANNEL_LOGOUT
            ("true"/"false", default true) if omitted

    Returns:
        FastAPI: Configured application
    """
    config = config or ClientConfig.from_env()
    logger = logger or create_logger("CLIENT")
    if front_channel_logout is None:
        front_channel_logout = os.getenv("OAUTH_FRONT_CHANNEL_LOGOUT", "true").lower() != "false"

    client = OAuthClient(config, logger=logger, transport=transport)

    app = FastAPI(
        title="OAuth Session Client Demo",
        description="Authorization code flow with PKCE, token refresh and session-backed authentication",
        version="1.0.0"
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret or os.getenv("SESSION_SECRET", secrets.token_urlsafe(32))
    )
    app.state.oauth_client = client

    require_session = RequireSession(AuthConfig(login_url="/login"), logger=logger)
    require_token = RequireToken(client, AuthConfig(login_url="/login", auto_refresh=True), logger=logger)
    require_token_api = RequireToken(
        client,
        AuthConfig(login_url="/login", auto_refresh=True, json_errors=True),
        logger=logger
    )

    app.add_api_route("/login", login_handler(client, logger=logger), methods=["GET"])
    app.add_api_route(
        "/callback",
        callback_handler(client, success_redirect="/", error_redirect="/?error=auth_failed", logger=logger),
        methods=["GET"]
    )
    app.add_api_route(
        "/logout",
        logout_handler(client, redirect_url="/", front_channel=front_channel_logout, logger=logger),
        methods=["GET"]
    )

    @app.get("/", response_class=HTMLResponse)
    async def home(request: Request):
        """Landing page showing login state."""
        user = SessionBag(request.session).user
        return templates.TemplateResponse(request, "index.html", {
            "user": user,
            "error_code": request.query_params.get("error_code"),
        })

    @app.get("/dashboard", response_class=HTMLResponse)
    async def dashboard(request: Request, user: UserProfile = Depends(require_session)):
        """Session-only protected page (no token validation)."""
        return templates.TemplateResponse(request, "dashboard.html", {
            "user": user,
            "validated": False,
        })

    @app.get("/profile", response_class=HTMLResponse)
    async def profile(request: Request, user: UserProfile = Depends(require_token)):
        """Protected page validating the access token on every request."""
        return templates.TemplateResponse(request, "dashboard.html", {
            "user": user,
            "validated": True,
        })

    @app.get("/api/user")
    async def api_user(user: UserProfile = Depends(require_token_api)):
        return {
            "success": True,
            "user": user.model_dump(),
            "token_validated": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/token/info")
    async def api_token_info(request: Request, user: UserProfile = Depends(require_token_api)):
        """Introspect the validated access token."""
        try:
            info = await client.introspect_token(get_current_access_token(request), "access_token")
        except OAuthClientError as e:
            return JSONResponse(status_code=502, content={"success": False, **e.to_dict()})
        return {
            "success": True,
            "token_info": info.model_dump(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/status")
    async def api_status(request: Request):
        return {
            "status": "ok",
            "authenticated": SessionBag(request.session).user is not None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "oauth-session-client"}

    return app


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    create_logger("CLIENT").log_startup(port, {
        "client_id_configured": bool(os.getenv("OAUTH_CLIENT_ID")),
        "client_secret_configured": bool(os.getenv("OAUTH_CLIENT_SECRET")),
        "session_secret_configured": bool(os.getenv("SESSION_SECRET")),
    })
    uvicorn.run(create_app(), host="0.0.0.0", port=port)
