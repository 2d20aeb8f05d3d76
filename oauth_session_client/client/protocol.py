"""
OAuth 2.0 protocol client for confidential web applications.

OAuthClient implements the authorization code flow with PKCE against a
remote authorization service: authorization URL construction, code
exchange, refresh, introspection, revocation, user info and logout. Each
operation is an independent round trip; the only state held is the frozen
ClientConfig, so one instance can serve many concurrent requests.
"""

from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from ..shared.crypto_utils import PKCEGenerator, constant_time_compare
from ..shared.errors import ErrorCode, OAuthClientError
from ..shared.logging_utils import NullOAuthLogger, OAuthLogger
from ..shared.oauth_models import (
    AuthorizationUrl,
    CallbackParams,
    ClientConfig,
    IntrospectionResult,
    TokenResponse,
    UserProfile,
)
from ..shared.security import InputValidator


# Authorization request parameters a caller may not override
RESERVED_AUTHORIZE_PARAMS = frozenset({
    "response_type", "client_id", "redirect_uri",
    "state", "code_challenge", "code_challenge_method",
})


class OAuthClient:
    """
    Stateless OAuth 2.0 + PKCE client.

    Every method that talks to the network converts transport failures,
    non-2xx responses and malformed bodies into OAuthClientError, so callers
    only ever switch on ``error.code``.

    Args:
        config: Client credentials and service location
        logger: Optional OAuthLogger; defaults to a silent logger
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``
    """

    def __init__(self,
                 config: ClientConfig,
                 logger: Optional[OAuthLogger] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._config = config
        self._logger = logger or NullOAuthLogger("client")
        self._transport = transport

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def base_url(self) -> str:
        return self._config.base_url

    @property
    def logout_url(self) -> str:
        return f"{self._config.base_url}/logout"

    def _endpoint(self, name: str) -> str:
        return f"{self._config.base_url}/{name}"

    def _client_credentials(self) -> Dict[str, str]:
        return {
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
        }

    # ------------------------------------------------------------------
    # Authorization request
    # ------------------------------------------------------------------

    def generate_state(self) -> str:
        """Generate a fresh CSRF state value."""
        return PKCEGenerator.generate_state()

    def get_authorization_url(self,
                              state: Optional[str] = None,
                              additional_params: Optional[Mapping[str, str]] = None,
                              scope: Optional[str] = None) -> AuthorizationUrl:
        """
        Build the authorization endpoint URL for a new login attempt.

        A fresh code verifier and S256 challenge are generated on every call;
        the state is generated too unless one is supplied.

        Args:
            state: Optional pre-generated state value
            additional_params: Extra query parameters (e.g. ``prompt``)
            scope: Requested scope; falls back to the configured default

        Returns:
            AuthorizationUrl: url plus the state and verifier to keep in session
        """
        state = state or PKCEGenerator.generate_state()
        verifier, challenge = PKCEGenerator.generate_pkce_pair()

        params: Dict[str, str] = {
            "response_type": "code",
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "state": state,
            "code_challenge": challenge,
            "code_challenge_method": "S256",
        }
        scope = scope or self._config.scope
        if scope:
            params["scope"] = scope

        for key, value in (additional_params or {}).items():
            if key in RESERVED_AUTHORIZE_PARAMS:
                self._logger.log_warning(
                    "Ignoring reserved authorization parameter",
                    {"parameter": key}
                )
                continue
            params[key] = value

        url = f"{self._endpoint('authorize')}?{urlencode(params)}"

        self._logger.log_pkce_operation("generation", {
            "code_challenge": challenge,
            "code_challenge_method": "S256",
            "state": state,
        })

        return AuthorizationUrl(
            url=url,
            state=state,
            code_verifier=verifier,
            code_challenge=challenge,
        )

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------

    async def _send(self,
                    method: str,
                    url: str,
                    json: Optional[Dict[str, Any]] = None,
                    headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        self._logger.log_http_request(method, url, json)
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout,
                                         transport=self._transport) as client:
                return await client.request(method, url, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise OAuthClientError(
                ErrorCode.NETWORK_ERROR,
                f"Request to {url} timed out",
                {"url": url}
            ) from e
        except httpx.HTTPError as e:
            raise OAuthClientError(
                ErrorCode.NETWORK_ERROR,
                f"Failed to connect to authorization service: {e}",
                {"url": url}
            ) from e

    @staticmethod
    def _error_details(response: httpx.Response) -> Dict[str, Any]:
        """Pull RFC 6749 ``error``/``error_description`` out of an error body."""
        details: Dict[str, Any] = {"status_code": response.status_code}
        try:
            body = response.json()
        except ValueError:
            return details
        if isinstance(body, dict):
            for key in ("error", "error_description"):
                if key in body:
                    details[key] = body[key]
        return details

    def _raise_for_status(self, response: httpx.Response,
                          code: ErrorCode, action: str) -> None:
        if response.is_success:
            return
        details = self._error_details(response)
        self._logger.log_token_operation(action, details, success=False)
        raise OAuthClientError(
            code,
            f"{action.capitalize()} failed with status {response.status_code}",
            details
        )

    @staticmethod
    def _json_body(response: httpx.Response, code: ErrorCode, action: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise OAuthClientError(
                code,
                f"{action.capitalize()} returned a malformed response",
                {"status_code": response.status_code}
            ) from e

    def _parse_tokens(self, response: httpx.Response,
                      code: ErrorCode, action: str) -> TokenResponse:
        self._raise_for_status(response, code, action)
        body = self._json_body(response, code, action)
        try:
            tokens = TokenResponse.model_validate(body)
        except ValidationError as e:
            raise OAuthClientError(
                code,
                f"{action.capitalize()} returned an invalid token response",
                {"status_code": response.status_code}
            ) from e

        self._logger.log_token_operation(action, {
            "access_token": tokens.access_token,
            "token_type": tokens.token_type,
            "expires_in": tokens.expires_in,
            "scope": tokens.scope,
            "refresh_token_issued": tokens.refresh_token is not None,
        })
        return tokens

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    async def exchange_code_for_tokens(self, code: str,
                                       code_verifier: Optional[str] = None) -> TokenResponse:
        """
        Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback
            code_verifier: PKCE verifier generated for this login attempt

        Returns:
            TokenResponse: Access token and, if issued, a refresh token

        Raises:
            OAuthClientError: missing_authorization_code, token_exchange_failed
                or network_error
        """
        if not code:
            raise OAuthClientError(
                ErrorCode.MISSING_AUTHORIZATION_CODE,
                "Authorization code is required"
            )

        payload: Dict[str, Any] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._config.redirect_uri,
            **self._client_credentials(),
        }
        if code_verifier:
            payload["code_verifier"] = code_verifier

        response = await self._send("POST", self._endpoint("token"), json=payload)
        return self._parse_tokens(response, ErrorCode.TOKEN_EXCHANGE_FAILED, "exchange")

    @staticmethod
    def _parse_callback_params(params: Mapping[str, Any]) -> CallbackParams:
        """Accept plain query mappings as well as ``parse_qs`` style lists."""
        flat = {}
        for key, value in dict(params).items():
            if isinstance(value, (list, tuple)):
                value = value[0] if value else None
            flat[key] = value
        try:
            return CallbackParams.model_validate(flat)
        except ValidationError as e:
            raise OAuthClientError(
                ErrorCode.MISSING_AUTHORIZATION_CODE,
                "Callback parameters are malformed",
                {"fields": sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})}
            ) from e

    async def handle_callback(self,
                              params: Union[Mapping[str, Any], CallbackParams],
                              expected_state: Optional[str],
                              code_verifier: Optional[str]) -> TokenResponse:
        """
        Validate the redirect back from the authorization service and
        exchange its code.

        Order of checks: remote ``error`` parameter, missing ``code``,
        state mismatch (an absent value on either side is a mismatch),
        missing verifier. Only then is the code exchanged.

        Args:
            params: Callback query parameters
            expected_state: State stored in the session at login time
            code_verifier: Verifier stored in the session at login time

        Returns:
            TokenResponse: Result of the code exchange, unchanged
        """
        if not isinstance(params, CallbackParams):
            params = self._parse_callback_params(params)

        if params.error:
            # Remote-controlled text; keep it short and printable
            details = {"error": InputValidator.sanitize_string(params.error, 100)}
            if params.error_description:
                details["error_description"] = InputValidator.sanitize_string(params.error_description, 500)
            self._logger.log_warning("Authorization service returned an error", details)
            raise OAuthClientError(
                ErrorCode.AUTHORIZATION_DENIED,
                f"Authorization failed: {details['error']}",
                details
            )

        if not params.code:
            raise OAuthClientError(
                ErrorCode.MISSING_AUTHORIZATION_CODE,
                "Callback did not include an authorization code"
            )

        if not constant_time_compare(expected_state, params.state):
            self._logger.log_warning("State validation failed", {
                "received_state": params.state,
                "expected_state_present": bool(expected_state),
            })
            raise OAuthClientError(
                ErrorCode.INVALID_STATE,
                "State parameter validation failed"
            )

        if not code_verifier:
            raise OAuthClientError(
                ErrorCode.MISSING_CODE_VERIFIER,
                "No PKCE code verifier available for this login attempt"
            )

        return await self.exchange_code_for_tokens(params.code, code_verifier)

    async def refresh_token(self, refresh_token: str) -> TokenResponse:
        """
        Obtain a new access token using a refresh token.

        The response may carry a rotated refresh token; callers should
        replace the stored one when it does.

        Raises:
            OAuthClientError: token_refresh_failed or network_error
        """
        if not refresh_token:
            raise OAuthClientError(
                ErrorCode.TOKEN_REFRESH_FAILED,
                "Refresh token is required"
            )

        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            **self._client_credentials(),
        }
        response = await self._send("POST", self._endpoint("token"), json=payload)
        return self._parse_tokens(response, ErrorCode.TOKEN_REFRESH_FAILED, "refresh")

    # ------------------------------------------------------------------
    # User info and introspection
    # ------------------------------------------------------------------

    async def get_user_info(self, access_token: str) -> UserProfile:
        """
        Fetch the profile of the user the access token belongs to.

        Raises:
            OAuthClientError: userinfo_failed or network_error
        """
        response = await self._send(
            "GET",
            self._endpoint("userinfo"),
            headers={"Authorization": f"Bearer {access_token}"}
        )
        if not response.is_success:
            details = self._error_details(response)
            self._logger.log_warning("User info request rejected", details)
            raise OAuthClientError(
                ErrorCode.USERINFO_FAILED,
                f"User info request failed with status {response.status_code}",
                details
            )

        body = self._json_body(response, ErrorCode.USERINFO_FAILED, "user info")
        try:
            return UserProfile.model_validate(body)
        except ValidationError as e:
            raise OAuthClientError(
                ErrorCode.USERINFO_FAILED,
                "User info response is missing required fields",
                {"status_code": response.status_code}
            ) from e

    async def introspect_token(self, token: str,
                               token_type_hint: str = "access_token") -> IntrospectionResult:
        """
        Ask the authorization service whether a token is active (RFC 7662).

        ``active: false`` is returned as a result; only transport problems
        and unusable responses raise.

        Raises:
            OAuthClientError: network_error
        """
        payload = {
            "token": token,
            "token_type_hint": token_type_hint,
            **self._client_credentials(),
        }
        response = await self._send("POST", self._endpoint("introspect"), json=payload)
        if not response.is_success:
            raise OAuthClientError(
                ErrorCode.NETWORK_ERROR,
                f"Introspection failed with status {response.status_code}",
                self._error_details(response)
            )

        body = self._json_body(response, ErrorCode.NETWORK_ERROR, "introspection")
        try:
            result = IntrospectionResult.model_validate(body)
        except ValidationError as e:
            raise OAuthClientError(
                ErrorCode.NETWORK_ERROR,
                "Introspection returned an invalid response",
                {"status_code": response.status_code}
            ) from e

        self._logger.log_token_operation("validation", {
            "token": token,
            "active": result.active,
            "exp": result.exp,
        })
        return result

    async def validate_token_and_get_user(self, access_token: str) -> UserProfile:
        """
        Introspect the access token and, if active, fetch the user profile.

        Raises:
            OAuthClientError: token_inactive, userinfo_failed or network_error
        """
        result = await self.introspect_token(access_token, "access_token")
        if not result.active:
            raise OAuthClientError(
                ErrorCode.TOKEN_INACTIVE,
                "Access token is not active"
            )
        return await self.get_user_info(access_token)

    # ------------------------------------------------------------------
    # Revocation and logout
    # ------------------------------------------------------------------

    async def revoke_token(self, token: str,
                           token_type_hint: Optional[str] = None) -> None:
        """
        Revoke an access or refresh token (RFC 7009).

        Callers logging a user out should treat failures as non-fatal.

        Raises:
            OAuthClientError: network_error
        """
        payload: Dict[str, Any] = {"token": token, **self._client_credentials()}
        if token_type_hint:
            payload["token_type_hint"] = token_type_hint

        response = await self._send("POST", self._endpoint("revoke"), json=payload)
        if not response.is_success:
            raise OAuthClientError(
                ErrorCode.NETWORK_ERROR,
                f"Revocation failed with status {response.status_code}",
                self._error_details(response)
            )
        self._logger.log_token_operation("revocation", {"token": token})

    async def logout(self) -> None:
        """
        Notify the authorization service that this client's session ended.

        The service revokes every token issued to the client for the user.

        Raises:
            OAuthClientError: network_error
        """
        response = await self._send(
            "POST",
            self.logout_url,
            json={"client_id": self._config.client_id}
        )
        if not response.is_success:
            raise OAuthClientError(
                ErrorCode.NETWORK_ERROR,
                f"Logout failed with status {response.status_code}",
                self._error_details(response)
            )
        self._logger.log_info("Service logout completed", {"client_id": self._config.client_id})
