"""Type definitions for client registrations, tokens and grants."""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_REDIRECT_URI_TEMPLATE = "{baseUrl}/{action}/oauth2/code/{registrationId}"


class GrantType(StrEnum):
    """OAuth 2.0 grant types a registration may use."""

    AUTHORIZATION_CODE = "authorization_code"
    CLIENT_CREDENTIALS = "client_credentials"
    PASSWORD = "password"
    REFRESH_TOKEN = "refresh_token"


class ClientAuthMethod(StrEnum):
    """How the client authenticates to the token endpoint."""

    CLIENT_SECRET_BASIC = "client_secret_basic"
    CLIENT_SECRET_POST = "client_secret_post"
    NONE = "none"


class ClientRegistration(BaseModel):
    """A provider registration: endpoints, credentials and scopes."""

    model_config = ConfigDict(frozen=True)

    registration_id: str
    client_id: str
    client_secret: str = ""
    client_authentication_method: ClientAuthMethod = (
        ClientAuthMethod.CLIENT_SECRET_BASIC
    )
    grant_type: GrantType = GrantType.AUTHORIZATION_CODE
    authorization_uri: str = ""
    token_uri: str
    redirect_uri_template: str = DEFAULT_REDIRECT_URI_TEMPLATE
    scopes: frozenset[str] = frozenset()
    jwk_set_uri: str | None = None
    introspection_uri: str | None = None
    issuer_uri: str | None = None
    client_name: str | None = None

    @property
    def is_openid(self) -> bool:
        return "openid" in self.scopes


class AuthorizationRequest(BaseModel):
    """An authorization-code request awaiting its callback."""

    model_config = ConfigDict(frozen=True)

    state: str
    registration_id: str
    principal_name: str
    redirect_uri: str
    scopes: frozenset[str] = frozenset()
    nonce: str | None = None
    code_verifier: str | None = None
    created_at: datetime


class AccessToken(BaseModel):
    """Issued access token."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(repr=False)
    token_type: str = "Bearer"
    issued_at: datetime
    expires_at: datetime | None = None
    scopes: frozenset[str] = frozenset()


class RefreshToken(BaseModel):
    """Issued refresh token."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(repr=False)
    issued_at: datetime


class AuthorizedClient(BaseModel):
    """Tokens currently usable for a principal at a provider."""

    model_config = ConfigDict(frozen=True)

    registration_id: str
    principal_name: str
    access_token: AccessToken
    refresh_token: RefreshToken | None = None
    id_token: str | None = Field(default=None, repr=False)


class TokenResponse(BaseModel):
    """OAuth token endpoint response."""

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(min_length=1)
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None


class AuthorizationCodeGrant(BaseModel):
    """Exchange an authorization code returned on the callback."""

    model_config = ConfigDict(frozen=True)

    grant_type: Literal[GrantType.AUTHORIZATION_CODE] = GrantType.AUTHORIZATION_CODE
    registration: ClientRegistration
    code: str
    redirect_uri: str
    code_verifier: str | None = None


class RefreshTokenGrant(BaseModel):
    """Trade a refresh token for a new access token."""

    model_config = ConfigDict(frozen=True)

    grant_type: Literal[GrantType.REFRESH_TOKEN] = GrantType.REFRESH_TOKEN
    registration: ClientRegistration
    refresh_token: str
    scopes: frozenset[str] = frozenset()


class ClientCredentialsGrant(BaseModel):
    """Obtain a token on behalf of the client itself."""

    model_config = ConfigDict(frozen=True)

    grant_type: Literal[GrantType.CLIENT_CREDENTIALS] = GrantType.CLIENT_CREDENTIALS
    registration: ClientRegistration
    scopes: frozenset[str] = frozenset()


class PasswordGrant(BaseModel):
    """Resource-owner password credentials grant."""

    model_config = ConfigDict(frozen=True)

    grant_type: Literal[GrantType.PASSWORD] = GrantType.PASSWORD
    registration: ClientRegistration
    username: str
    password: str = Field(repr=False)
    scopes: frozenset[str] = frozenset()


GrantRequest = Annotated[
    AuthorizationCodeGrant | RefreshTokenGrant | ClientCredentialsGrant | PasswordGrant,
    Field(discriminator="grant_type"),
]


class AuthorizeContext(BaseModel):
    """Per-call inputs for ``AuthorizationOrchestrator.authorize``."""

    base_url: str = ""
    scopes: frozenset[str] | None = None
    username: str | None = None
    password: str | None = Field(default=None, repr=False)
    timeout: float | None = None


class AuthorizationRedirect(BaseModel):
    """Instruction to send the user agent to the authorization endpoint."""

    model_config = ConfigDict(frozen=True)

    url: str
    state: str
    registration_id: str


class CallbackParams(BaseModel):
    """Query parameters of an authorization callback."""

    redirect_uri: str
    state: str | None = None
    code: str | None = None
    error: str | None = None
    error_description: str | None = None
