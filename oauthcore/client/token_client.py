"""Grant-specific exchanges against an OAuth 2.0 token endpoint."""

import logging
from base64 import b64encode
from urllib.parse import quote_plus

import httpx
from pydantic import ValidationError

from oauthcore.client.types import (
    AuthorizationCodeGrant,
    ClientAuthMethod,
    ClientCredentialsGrant,
    ClientRegistration,
    GrantRequest,
    PasswordGrant,
    RefreshTokenGrant,
    TokenResponse,
)
from oauthcore.core.errors import (
    ConfigurationError,
    ExchangeFailureKind,
    TokenExchangeError,
)
from oauthcore.core.settings import TOKEN_ENDPOINT_TIMEOUT_DEFAULT

logger = logging.getLogger(__name__)

HTTP_SERVER_ERROR = 500
HTTP_CLIENT_ERROR = 400
INVALID_TOKEN_RESPONSE = "invalid_token_response"

_HEADERS = {
    "Accept": "application/json;charset=UTF-8",
    "Content-Type": "application/x-www-form-urlencoded;charset=UTF-8",
}


def _scope_param(scopes: frozenset[str]) -> str | None:
    if not scopes:
        return None
    return " ".join(sorted(scopes))


def _grant_form(grant: GrantRequest) -> dict[str, str | None]:
    """Grant-specific form fields, dispatched on ``grant_type``."""
    if isinstance(grant, AuthorizationCodeGrant):
        return {
            "grant_type": grant.grant_type.value,
            "code": grant.code,
            "redirect_uri": grant.redirect_uri,
            "code_verifier": grant.code_verifier,
        }
    if isinstance(grant, RefreshTokenGrant):
        return {
            "grant_type": grant.grant_type.value,
            "refresh_token": grant.refresh_token,
            "scope": _scope_param(grant.scopes),
        }
    if isinstance(grant, ClientCredentialsGrant):
        return {
            "grant_type": grant.grant_type.value,
            "scope": _scope_param(grant.scopes),
        }
    if isinstance(grant, PasswordGrant):
        return {
            "grant_type": grant.grant_type.value,
            "username": grant.username,
            "password": grant.password,
            "scope": _scope_param(grant.scopes),
        }
    msg = f"unsupported grant {type(grant).__name__}"
    raise ConfigurationError(msg)


def basic_credentials(client_id: str, client_secret: str) -> str:
    """HTTP Basic value with form-urlencoded id and secret (RFC 6749 2.3.1)."""
    raw = f"{quote_plus(client_id)}:{quote_plus(client_secret)}"
    return "Basic " + b64encode(raw.encode("utf-8")).decode("ascii")


def _apply_client_auth(
    registration: ClientRegistration,
    form: dict[str, str | None],
    headers: dict[str, str],
) -> None:
    method = registration.client_authentication_method
    if method is ClientAuthMethod.CLIENT_SECRET_BASIC:
        headers["Authorization"] = basic_credentials(
            registration.client_id, registration.client_secret
        )
    elif method is ClientAuthMethod.CLIENT_SECRET_POST:
        form["client_id"] = registration.client_id
        form["client_secret"] = registration.client_secret
    else:
        form["client_id"] = registration.client_id


class TokenEndpointClient:
    """Performs token requests. Stateless apart from the HTTP client."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout: float = TOKEN_ENDPOINT_TIMEOUT_DEFAULT,
    ) -> None:
        self._http = http_client
        self._timeout = timeout

    async def exchange(
        self, grant: GrantRequest, *, timeout: float | None = None
    ) -> TokenResponse:
        """POST the grant to the registration's token endpoint.

        Raises:
            TokenExchangeError: ``protocol`` for 4xx responses and malformed
                bodies, ``transport`` for network failures, timeouts and 5xx.
        """
        registration = grant.registration
        form = _grant_form(grant)
        headers = dict(_HEADERS)
        _apply_client_auth(registration, form, headers)
        body = {k: v for k, v in form.items() if v is not None}

        try:
            response = await self._http.post(
                registration.token_uri,
                data=body,
                headers=headers,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException as exc:
            logger.warning(
                "Token request for %s timed out", registration.registration_id
            )
            raise TokenExchangeError(
                ExchangeFailureKind.TRANSPORT, "timeout", str(exc)
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Token request for %s failed: %s",
                registration.registration_id,
                exc,
            )
            raise TokenExchangeError(
                ExchangeFailureKind.TRANSPORT, "transport_error", str(exc)
            ) from exc

        return self._parse_response(registration, response)

    def _parse_response(
        self, registration: ClientRegistration, response: httpx.Response
    ) -> TokenResponse:
        status = response.status_code
        if status >= HTTP_SERVER_ERROR:
            code, description = _error_fields(response, "server_error")
            logger.warning(
                "Token endpoint for %s returned %s",
                registration.registration_id,
                status,
            )
            raise TokenExchangeError(
                ExchangeFailureKind.TRANSPORT, code, description, status
            )
        if status >= HTTP_CLIENT_ERROR:
            code, description = _error_fields(response, "invalid_request")
            logger.info(
                "Token endpoint for %s rejected request: %s",
                registration.registration_id,
                code,
            )
            raise TokenExchangeError(
                ExchangeFailureKind.PROTOCOL, code, description, status
            )

        try:
            payload = response.json()
            token = TokenResponse.model_validate(payload)
        except (ValueError, ValidationError) as exc:
            raise TokenExchangeError(
                ExchangeFailureKind.PROTOCOL,
                INVALID_TOKEN_RESPONSE,
                "malformed token response body",
                status,
            ) from exc
        if token.token_type.lower() != "bearer":
            raise TokenExchangeError(
                ExchangeFailureKind.PROTOCOL,
                INVALID_TOKEN_RESPONSE,
                f"unsupported token_type {token.token_type!r}",
                status,
            )
        return token


def _error_fields(response: httpx.Response, default: str) -> tuple[str, str | None]:
    """Extract ``error``/``error_description`` from an error body."""
    try:
        payload = response.json()
    except ValueError:
        return default, None
    if not isinstance(payload, dict):
        return default, None
    error = payload.get("error")
    description = payload.get("error_description")
    return (
        error if isinstance(error, str) and error else default,
        description if isinstance(description, str) else None,
    )
