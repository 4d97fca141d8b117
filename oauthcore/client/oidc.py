"""OpenID Connect id_token verification on the authorization-code callback."""

import logging
import secrets
from typing import Any

import httpx

from oauthcore.client.types import ClientRegistration
from oauthcore.core.errors import (
    AuthorizationRequestInvalid,
    InvalidToken,
    RequestInvalidReason,
)
from oauthcore.core.settings import CLOCK_SKEW_DEFAULT
from oauthcore.resource.jwks import KeySetCache
from oauthcore.resource.jwt_validator import DEFAULT_ALGORITHMS, JwtValidator

logger = logging.getLogger(__name__)


class IdTokenVerifier:
    """Checks id_token signature, ``iss``, ``aud``, ``exp`` and ``nonce``.

    Keeps one key-set cache per ``jwk_set_uri``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        clock_skew: int = CLOCK_SKEW_DEFAULT,
        algorithms: tuple[str, ...] = DEFAULT_ALGORITHMS,
    ) -> None:
        self._http = http_client
        self._clock_skew = clock_skew
        self._algorithms = algorithms
        self._key_sets: dict[str, KeySetCache] = {}

    def _key_set(self, jwk_set_uri: str) -> KeySetCache:
        key_set = self._key_sets.get(jwk_set_uri)
        if key_set is None:
            key_set = KeySetCache(jwk_set_uri, self._http)
            self._key_sets[jwk_set_uri] = key_set
        return key_set

    async def verify(
        self,
        registration: ClientRegistration,
        id_token: str,
        nonce: str | None,
    ) -> dict[str, Any]:
        """Return the verified claims.

        Raises:
            AuthorizationRequestInvalid: ``invalid_id_token`` on any failure.
        """
        if not registration.jwk_set_uri:
            return {}
        validator = JwtValidator(
            self._key_set(registration.jwk_set_uri),
            issuer=registration.issuer_uri,
            audience=registration.client_id,
            algorithms=self._algorithms,
            clock_skew=self._clock_skew,
        )
        try:
            principal = await validator.validate(id_token)
        except InvalidToken as exc:
            logger.warning(
                "id_token from %s rejected: %s",
                registration.registration_id,
                exc.reason.value,
            )
            raise AuthorizationRequestInvalid(
                RequestInvalidReason.INVALID_ID_TOKEN, exc.reason.value
            ) from exc

        claims = principal.attributes
        if nonce is not None:
            presented = claims.get("nonce")
            if not isinstance(presented, str) or not secrets.compare_digest(
                presented, nonce
            ):
                raise AuthorizationRequestInvalid(
                    RequestInvalidReason.INVALID_ID_TOKEN, "nonce mismatch"
                )
        return claims

    async def aclose(self) -> None:
        for key_set in self._key_sets.values():
            await key_set.aclose()
