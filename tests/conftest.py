"""
Pytest configuration and shared fixtures for the OAuth session client tests.

This module provides a fake authorization service served through
``httpx.MockTransport``, client configuration fixtures and a FastAPI test
application wired to the fake service.
"""

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from oauth_session_client.client.protocol import OAuthClient
from oauth_session_client.demo.main import create_app
from oauth_session_client.shared.crypto_utils import PKCEGenerator
from oauth_session_client.shared.logging_utils import create_logger
from oauth_session_client.shared.oauth_models import ClientConfig


BASE_URL = "https://auth.example.com/api/auth"
CLIENT_ID = "demo-client"
CLIENT_SECRET = "demo-secret"
REDIRECT_URI = "http://testserver/callback"

VALID_ACCESS_TOKEN = "valid-access-token-12345"
EXPIRED_ACCESS_TOKEN = "expired-access-token-12345"
VALID_REFRESH_TOKEN = "valid-refresh-token-12345"

DEMO_USER = {
    "id": "user-123",
    "username": "alice",
    "email": "alice@example.com",
    "roles": ["user"],
}


class FakeAuthService:
    """
    In-memory authorization service answering the client's endpoints.

    Tokens listed in ``active_tokens`` introspect as active and unlock
    user info. Refresh tokens in ``refresh_tokens`` map to the access
    token the refresh will issue.
    """

    def __init__(self):
        self.active_tokens = {VALID_ACCESS_TOKEN}
        self.refresh_tokens: Dict[str, str] = {VALID_REFRESH_TOKEN: "refreshed-access-token-67890"}
        self.rotated_refresh_token: Optional[str] = "rotated-refresh-token-67890"
        self.codes: Dict[str, str] = {}
        self.user = dict(DEMO_USER)
        self.requests: List[httpx.Request] = []
        self.revoked: List[str] = []
        self.logged_out = False
        self.fail_userinfo = False
        self.fail_revoke = False
        self.fail_logout = False

    def issue_code(self, code_challenge: str, code: str = "auth-code-12345") -> str:
        self.codes[code] = code_challenge
        return code

    def issue_code_for_url(self, authorization_url: str, code: str = "auth-code-12345") -> str:
        challenge = parse_qs(urlparse(authorization_url).query)["code_challenge"][0]
        return self.issue_code(challenge, code)

    def paths(self) -> List[str]:
        return [request.url.path.rsplit("/", 1)[-1] for request in self.requests]

    @staticmethod
    def _json(status_code: int, body: Any) -> httpx.Response:
        return httpx.Response(status_code, json=body)

    def _check_client(self, body: Dict[str, Any]) -> Optional[httpx.Response]:
        if body.get("client_id") != CLIENT_ID or body.get("client_secret") != CLIENT_SECRET:
            return self._json(401, {"error": "invalid_client"})
        return None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        endpoint = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content) if request.content else {}

        if endpoint == "token":
            return self._token(body)
        if endpoint == "introspect":
            rejected = self._check_client(body)
            if rejected:
                return rejected
            return self._json(200, {"active": body.get("token") in self.active_tokens,
                                    "scope": "read", "client_id": CLIENT_ID})
        if endpoint == "userinfo":
            token = request.headers.get("authorization", "").removeprefix("Bearer ")
            if self.fail_userinfo or token not in self.active_tokens:
                return self._json(401, {"error": "invalid_token"})
            return self._json(200, self.user)
        if endpoint == "revoke":
            if self.fail_revoke:
                return self._json(503, {"error": "temporarily_unavailable"})
            self.revoked.append(body.get("token"))
            self.active_tokens.discard(body.get("token"))
            return httpx.Response(200)
        if endpoint == "logout":
            if self.fail_logout:
                return self._json(503, {"error": "temporarily_unavailable"})
            self.logged_out = True
            return httpx.Response(200)
        return self._json(404, {"error": "not_found"})

    def _token(self, body: Dict[str, Any]) -> httpx.Response:
        rejected = self._check_client(body)
        if rejected:
            return rejected

        if body.get("grant_type") == "authorization_code":
            challenge = self.codes.pop(body.get("code"), None)
            verifier = body.get("code_verifier")
            if challenge is None or not PKCEGenerator.verify_challenge(verifier, challenge):
                return self._json(400, {"error": "invalid_grant",
                                        "error_description": "Invalid authorization code"})
            self.active_tokens.add(VALID_ACCESS_TOKEN)
            return self._json(200, {
                "access_token": VALID_ACCESS_TOKEN,
                "token_type": "Bearer",
                "expires_in": 3600,
                "scope": "read",
                "refresh_token": VALID_REFRESH_TOKEN,
            })

        if body.get("grant_type") == "refresh_token":
            new_token = self.refresh_tokens.get(body.get("refresh_token"))
            if new_token is None:
                return self._json(400, {"error": "invalid_grant"})
            self.active_tokens.add(new_token)
            response = {
                "access_token": new_token,
                "token_type": "Bearer",
                "expires_in": 3600,
                "scope": "read",
            }
            if self.rotated_refresh_token:
                response["refresh_token"] = self.rotated_refresh_token
            return self._json(200, response)

        return self._json(400, {"error": "unsupported_grant_type"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def failing_transport(exc_type=httpx.ConnectError) -> httpx.MockTransport:
    """Transport whose every request fails at the network level."""
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_type("simulated transport failure", request=request)
    return httpx.MockTransport(handler)


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uri=REDIRECT_URI,
        base_url=BASE_URL,
    )


@pytest.fixture
def auth_service() -> FakeAuthService:
    return FakeAuthService()


@pytest.fixture
def oauth_client(client_config, auth_service) -> OAuthClient:
    return OAuthClient(client_config, transport=auth_service.transport())


def build_test_app(client_config: ClientConfig, auth_service: FakeAuthService,
                   front_channel_logout: bool = False):
    """Demo app plus a route that seeds the session for scenario tests."""
    app = create_app(
        config=client_config,
        session_secret="test-session-secret",
        transport=auth_service.transport(),
        logger=create_logger("TEST", enabled=False),
        front_channel_logout=front_channel_logout,
    )

    @app.post("/_test/session")
    async def seed_session(request: Request):
        request.session.update(await request.json())
        return {"ok": True}

    @app.get("/_test/session")
    async def read_session(request: Request):
        return dict(request.session)

    return app


@pytest.fixture
def app(client_config, auth_service):
    return build_test_app(client_config, auth_service)


@pytest.fixture
def test_client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture(autouse=True)
def disable_logging():
    """Disable logging during tests to reduce noise."""
    logging.disable(logging.CRITICAL)
    yield
    logging.disable(logging.NOTSET)


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "security: marks tests as security-focused tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        if "routes" in item.nodeid or "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)
        elif "security" in item.nodeid or "error" in item.nodeid:
            item.add_marker(pytest.mark.security)
        else:
            item.add_marker(pytest.mark.unit)
