"""Bearer token extraction and delegation to the configured validator."""

import logging
import re

import httpx

from oauthcore.core.errors import (
    AuthenticationFailure,
    ConfigurationError,
    IntrospectionUnavailable,
    InvalidToken,
    InvalidTokenReason,
    KeySetUnavailable,
)
from oauthcore.core.settings import ResourceServerSettings
from oauthcore.resource.introspector import OpaqueTokenIntrospector
from oauthcore.resource.jwks import KeySetCache
from oauthcore.resource.jwt_validator import JwtValidator
from oauthcore.resource.types import Principal, TokenValidator

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_SERVICE_UNAVAILABLE = 503

# RFC 6750 section 2.1 b64token
_BEARER = re.compile(r"^Bearer (?P<token>[A-Za-z0-9\-._~+/]+=*)$", re.IGNORECASE)

_INVALID_TOKEN_DESCRIPTIONS = {
    InvalidTokenReason.MALFORMED: "token is malformed",
    InvalidTokenReason.BAD_SIGNATURE: "token signature is invalid",
    InvalidTokenReason.UNKNOWN_KEY: "token signing key is unknown",
    InvalidTokenReason.EXPIRED: "token has expired",
    InvalidTokenReason.NOT_YET_VALID: "token is not yet valid",
    InvalidTokenReason.BAD_ISSUER: "token issuer is not accepted",
    InvalidTokenReason.BAD_AUDIENCE: "token audience is not accepted",
    InvalidTokenReason.MALFORMED_SCOPE: "token scope is malformed",
    InvalidTokenReason.INACTIVE: "token is not active",
}


def extract_bearer(header_value: str | None) -> str:
    """Return the token from an ``Authorization`` header value.

    Raises:
        AuthenticationFailure: header missing or not ``Bearer <token>``.
    """
    if not header_value:
        raise AuthenticationFailure(
            "invalid_request", "missing", HTTP_UNAUTHORIZED, "Bearer token required"
        )
    match = _BEARER.match(header_value)
    if match is None:
        raise AuthenticationFailure(
            "invalid_request",
            "malformed-header",
            HTTP_BAD_REQUEST,
            "Bearer token is malformed",
        )
    return match.group("token")


class BearerTokenAuthenticator:
    """Authenticates ``Authorization`` headers with exactly one validator."""

    def __init__(self, validator: TokenValidator) -> None:
        self._validator = validator

    @property
    def validator(self) -> TokenValidator:
        return self._validator

    async def authenticate(self, header_value: str | None) -> Principal:
        """Return the Principal or raise a normalized AuthenticationFailure."""
        token = extract_bearer(header_value)
        try:
            return await self._validator.validate(token)
        except InvalidToken as exc:
            logger.info("Bearer token rejected: %s (%s)", exc.reason.value, exc)
            raise AuthenticationFailure(
                "invalid_token",
                exc.reason.value,
                HTTP_UNAUTHORIZED,
                _INVALID_TOKEN_DESCRIPTIONS[exc.reason],
            ) from exc
        except (KeySetUnavailable, IntrospectionUnavailable) as exc:
            logger.error("Token validation dependency unavailable: %s", exc)
            raise AuthenticationFailure(
                "temporarily_unavailable",
                "validator-unavailable",
                HTTP_SERVICE_UNAVAILABLE,
                "token validation is temporarily unavailable",
            ) from exc


def build_validator(
    settings: ResourceServerSettings,
    http_client: httpx.AsyncClient,
) -> tuple[TokenValidator, KeySetCache | None]:
    """Create the single validator the settings select.

    Returns the validator and, for JWT mode, the key-set cache whose
    lifecycle the caller owns.
    """
    if settings.jwk_set_uri and settings.introspection_uri:
        raise ConfigurationError(
            "configure either a JWK set URI or an introspection URI, not both"
        )
    if settings.mode == "jwt":
        if not settings.jwk_set_uri:
            raise ConfigurationError("JWT mode requires OAUTH_RS_JWK_SET_URI")
        key_set = KeySetCache(
            settings.jwk_set_uri,
            http_client,
            ttl_seconds=settings.jwk_set_ttl,
            negative_ttl_seconds=settings.jwk_negative_ttl,
            fetch_timeout=settings.fetch_timeout,
        )
        validator = JwtValidator(
            key_set,
            issuer=settings.issuer or None,
            audience=settings.audience or None,
            algorithms=settings.get_algorithm_list(),
            clock_skew=settings.clock_skew,
            authority_prefix=settings.authority_prefix,
            authorities_claim_name=settings.authorities_claim_name,
            principal_claim_name=settings.principal_claim_name,
        )
        return validator, key_set
    if settings.mode == "opaque":
        if not settings.introspection_uri:
            raise ConfigurationError("opaque mode requires OAUTH_RS_INTROSPECTION_URI")
        introspector = OpaqueTokenIntrospector(
            settings.introspection_uri,
            settings.client_id,
            settings.client_secret,
            http_client,
            timeout=settings.fetch_timeout,
            authority_prefix=settings.authority_prefix,
        )
        return introspector, None
    raise ConfigurationError(f"resource server mode {settings.mode!r} has no validator")
