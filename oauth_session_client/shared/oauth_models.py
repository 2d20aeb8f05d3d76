"""
OAuth 2.0 Pydantic models for the session client.

This module defines the client configuration and the request/response shapes
exchanged with the authorization service: token responses, RFC 7662
introspection results, user profiles and callback parameters.
"""

import os
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ErrorCode, OAuthClientError
from .security import InputValidator


DEFAULT_BASE_URL = "https://auth.blitzware.xyz/api/auth"
DEFAULT_TIMEOUT = 10.0


class ClientConfig(BaseModel):
    """
    Confidential client configuration.

    Immutable once constructed. Missing required values raise
    OAuthClientError at construction time rather than on the first request.

    Example:
        config = ClientConfig(
            client_id="my-app",
            client_secret="s3cret",
            redirect_uri="http://localhost:8080/callback",
        )
    """
    client_id: str = Field(..., min_length=1, description="OAuth client identifier")
    client_secret: str = Field(..., min_length=1, repr=False, description="OAuth client secret")
    redirect_uri: str = Field(..., description="Absolute callback URL registered with the service")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="Authorization service base URL")
    scope: Optional[str] = Field(default=None, description="Default scope for authorization requests")
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0, description="Per-request timeout in seconds")

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise self._invalid_config(e) from e

    @classmethod
    def model_validate(cls, obj: Any, **kwargs: Any) -> "ClientConfig":
        try:
            return super().model_validate(obj, **kwargs)
        except ValidationError as e:
            raise cls._invalid_config(e) from e

    @staticmethod
    def _invalid_config(error: ValidationError) -> OAuthClientError:
        # Field names only; input values may include the secret
        fields = sorted({str(err["loc"][0]) for err in error.errors() if err["loc"]})
        return OAuthClientError(
            ErrorCode.INVALID_CONFIG,
            f"Invalid client configuration: {', '.join(fields) or 'unknown field'}",
            {"fields": fields}
        )

    @model_validator(mode="before")
    @classmethod
    def check_required(cls, data: Any) -> Any:
        """Fail fast with a specific code for each missing required value."""
        if not isinstance(data, Mapping):
            return data
        if not data.get("client_id"):
            raise OAuthClientError(ErrorCode.MISSING_CLIENT_ID, "client_id is required")
        if not data.get("client_secret"):
            raise OAuthClientError(ErrorCode.MISSING_CLIENT_SECRET, "client_secret is required")
        if not data.get("redirect_uri"):
            raise OAuthClientError(ErrorCode.MISSING_REDIRECT_URI, "redirect_uri is required")
        if not InputValidator.validate_absolute_url(data["redirect_uri"]):
            raise OAuthClientError(
                ErrorCode.MISSING_REDIRECT_URI,
                "redirect_uri must be an absolute http(s) URL",
            )
        if "base_url" in data and data["base_url"] is None:
            data = {k: v for k, v in data.items() if k != "base_url"}
        return data

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an absolute URL and drop any trailing slash."""
        if not InputValidator.validate_absolute_url(v):
            raise ValueError("base_url must be an absolute http(s) URL")
        return v.rstrip('/')

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """
        Build a configuration from ``OAUTH_*`` environment variables.

        Reads OAUTH_CLIENT_ID, OAUTH_CLIENT_SECRET, OAUTH_REDIRECT_URI and,
        optionally, OAUTH_BASE_URL, OAUTH_SCOPE and OAUTH_TIMEOUT.
        """
        env = os.environ if environ is None else environ
        data: Dict[str, Any] = {
            "client_id": env.get("OAUTH_CLIENT_ID"),
            "client_secret": env.get("OAUTH_CLIENT_SECRET"),
            "redirect_uri": env.get("OAUTH_REDIRECT_URI"),
            "base_url": env.get("OAUTH_BASE_URL") or None,
            "scope": env.get("OAUTH_SCOPE") or None,
        }
        if env.get("OAUTH_TIMEOUT"):
            data["timeout"] = env["OAUTH_TIMEOUT"]
        return cls(**data)


class TokenResponse(BaseModel):
    """
    OAuth 2.0 token endpoint response.

    Access tokens are opaque; expiry is enforced by the service.
    """
    access_token: str = Field(..., min_length=1, description="OAuth access token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int = Field(default=3600, ge=0, description="Token lifetime in seconds")
    scope: str = Field(default="", description="Granted scope, space delimited")
    refresh_token: Optional[str] = Field(default=None, description="Refresh token (optional)")

    model_config = ConfigDict(extra="ignore")


class IntrospectionResult(BaseModel):
    """
    RFC 7662 token introspection response.

    ``active`` is the authoritative validity signal; ``active: false`` is a
    valid result, not an error.
    """
    active: bool
    exp: Optional[int] = None
    iat: Optional[int] = None
    scope: Optional[str] = None
    client_id: Optional[str] = None
    username: Optional[str] = None
    sub: Optional[str] = None
    token_type: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class UserProfile(BaseModel):
    """
    User information returned by the authorization service.
    """
    id: str = Field(..., description="Subject identifier")
    username: str = Field(..., description="Username")
    email: Optional[str] = Field(default=None, description="Email address")
    roles: List[str] = Field(default_factory=list, description="Granted roles")

    model_config = ConfigDict(extra="allow", frozen=True)

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v: Union[str, int]) -> str:
        """Services may return numeric ids."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator('roles', mode='before')
    @classmethod
    def coerce_roles(cls, v: Any) -> Any:
        if v is None:
            return []
        return v

    def has_role(self, role: str) -> bool:
        return role in self.roles


class CallbackParams(BaseModel):
    """
    Query parameters received on the redirect URI.
    """
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class AuthorizationUrl(BaseModel):
    """
    Result of building an authorization request.

    ``state`` and ``code_verifier`` must be kept in the session until the
    callback; ``code_challenge`` is only sent to the service.
    """
    url: str
    state: str
    code_verifier: str = Field(..., repr=False)
    code_challenge: str

    model_config = ConfigDict(frozen=True)
