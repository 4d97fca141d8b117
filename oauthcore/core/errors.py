"""Error taxonomy shared by the client and resource-server sides."""

import re
from enum import StrEnum

# RFC 6750 section 3: error_description is %x20-21 / %x23-5B / %x5D-7E
_NOT_DESCRIPTION_CHAR = re.compile(r"[^\x20-\x21\x23-\x5B\x5D-\x7E]")


class OAuthCoreError(Exception):
    """Base class for all oauthcore errors."""


class ConfigurationError(OAuthCoreError):
    """Missing or inconsistent registration or settings. Fatal at startup."""


class DuplicateStateError(OAuthCoreError):
    """A pending authorization request already uses this state value."""


class RequestInvalidReason(StrEnum):
    """Why a callback could not be matched to a pending request."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    REDIRECT_MISMATCH = "redirect_mismatch"
    PRINCIPAL_MISMATCH = "principal_mismatch"
    MISSING_CODE = "missing_code"
    INVALID_ID_TOKEN = "invalid_id_token"


class AuthorizationRequestInvalid(OAuthCoreError):
    """The callback does not match a live pending request; restart login."""

    def __init__(self, reason: RequestInvalidReason, detail: str = "") -> None:
        super().__init__(detail or reason.value)
        self.reason = reason


class AuthorizationResponseError(OAuthCoreError):
    """The authorization server redirected back with an error code."""

    def __init__(self, error: str, description: str | None = None) -> None:
        super().__init__(f"{error}: {description}" if description else error)
        self.error = error
        self.description = description


class ExchangeFailureKind(StrEnum):
    """Retryability class of a failed token exchange."""

    PROTOCOL = "protocol"
    TRANSPORT = "transport"


class TokenExchangeError(OAuthCoreError):
    """Token endpoint exchange failed.

    ``PROTOCOL`` failures (``invalid_grant``, malformed responses) are
    terminal for the attempt. ``TRANSPORT`` failures (network errors,
    timeouts, 5xx) may be retried by the caller.
    """

    def __init__(
        self,
        kind: ExchangeFailureKind,
        code: str,
        description: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"{code}: {description}" if description else code)
        self.kind = kind
        self.code = code
        self.description = description
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind is ExchangeFailureKind.TRANSPORT


class ReauthorizationRequired(OAuthCoreError):
    """Stored authorization is unusable; the caller must start over."""

    def __init__(
        self, principal_name: str, registration_id: str, detail: str = ""
    ) -> None:
        super().__init__(
            detail or f"reauthorization required for {registration_id!r}"
        )
        self.principal_name = principal_name
        self.registration_id = registration_id


class InvalidTokenReason(StrEnum):
    """Why a bearer token was rejected."""

    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad-signature"
    UNKNOWN_KEY = "unknown-key"
    EXPIRED = "expired"
    NOT_YET_VALID = "not-yet-valid"
    BAD_ISSUER = "bad-issuer"
    BAD_AUDIENCE = "bad-audience"
    MALFORMED_SCOPE = "malformed-scope"
    INACTIVE = "inactive"


class InvalidToken(OAuthCoreError):
    """The presented token is not acceptable. Terminal for the request."""

    def __init__(self, reason: InvalidTokenReason, detail: str = "") -> None:
        super().__init__(detail or reason.value)
        self.reason = reason


class IntrospectionUnavailable(OAuthCoreError):
    """The introspection endpoint could not deliver a verdict."""


class KeySetUnavailable(OAuthCoreError):
    """The JWK set could not be fetched or parsed."""


class AuthenticationFailure(OAuthCoreError):
    """Uniform bearer authentication failure (RFC 6750 error codes)."""

    def __init__(
        self,
        error: str,
        reason: str,
        status_code: int,
        description: str = "",
    ) -> None:
        super().__init__(description or reason)
        self.error = error
        self.reason = reason
        self.status_code = status_code
        self.description = description or reason

    @property
    def www_authenticate(self) -> str:
        """Value for the ``WWW-Authenticate`` response header."""
        if self.error == "invalid_request" and self.reason == "missing":
            return "Bearer"
        description = _NOT_DESCRIPTION_CHAR.sub("", self.description)
        return f'Bearer error="{self.error}", error_description="{description}"'
