"""Local verification of JWT bearer tokens against a cached key set."""

import logging
from typing import Any

import jwt
from jwt.types import Options

from oauthcore.core.errors import InvalidToken, InvalidTokenReason
from oauthcore.core.settings import CLOCK_SKEW_DEFAULT
from oauthcore.resource.jwks import KeySetCache
from oauthcore.resource.scopes import DEFAULT_AUTHORITY_PREFIX, authorities_from_claims
from oauthcore.resource.types import Principal

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHMS = ("RS256",)


class JwtValidator:
    """Validates signature, ``exp``, ``nbf``, ``iss`` and optionally ``aud``."""

    def __init__(
        self,
        key_set: KeySetCache,
        *,
        issuer: str | None = None,
        audience: str | None = None,
        algorithms: list[str] | tuple[str, ...] = DEFAULT_ALGORITHMS,
        clock_skew: int = CLOCK_SKEW_DEFAULT,
        authority_prefix: str = DEFAULT_AUTHORITY_PREFIX,
        authorities_claim_name: str = "",
        principal_claim_name: str = "sub",
    ) -> None:
        self._key_set = key_set
        self._issuer = issuer or None
        self._audience = audience or None
        self._algorithms = list(algorithms)
        self._clock_skew = clock_skew
        self._authority_prefix = authority_prefix
        self._authorities_claim = authorities_claim_name
        self._principal_claim = principal_claim_name

    async def validate(self, token: str) -> Principal:
        """Return the Principal for a valid token.

        Raises:
            InvalidToken: with the first failed check as ``reason``.
            KeySetUnavailable: the key set cannot be obtained.
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise InvalidToken(
                InvalidTokenReason.MALFORMED, "undecodable header"
            ) from exc

        alg = header.get("alg")
        if alg not in self._algorithms:
            raise InvalidToken(
                InvalidTokenReason.BAD_SIGNATURE, f"algorithm {alg!r} not accepted"
            )
        kid = header.get("kid")
        if kid is not None and not isinstance(kid, str):
            raise InvalidToken(InvalidTokenReason.MALFORMED, "kid is not a string")

        signing_key = await self._key_set.get_signing_key(kid)
        claims = self._decode(token, signing_key.key, alg)

        name = claims.get(self._principal_claim)
        if not isinstance(name, str) or not name:
            raise InvalidToken(
                InvalidTokenReason.MALFORMED, f"missing {self._principal_claim} claim"
            )
        authorities = authorities_from_claims(
            claims, self._authority_prefix, self._authorities_claim
        )
        return Principal(
            name=name,
            authorities=authorities,
            attributes=claims,
            token_value=token,
        )

    def _decode(self, token: str, key: Any, alg: str) -> dict[str, Any]:
        opts: Options = {"require": ["exp"]}
        if self._issuer is not None:
            opts["require"] = ["exp", "iss"]
        if self._audience is None:
            opts["verify_aud"] = False
        try:
            return jwt.decode(
                token,
                key,
                algorithms=[alg],
                issuer=self._issuer,
                audience=self._audience,
                leeway=self._clock_skew,
                options=opts,
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidToken(InvalidTokenReason.EXPIRED) from exc
        except jwt.ImmatureSignatureError as exc:
            raise InvalidToken(InvalidTokenReason.NOT_YET_VALID) from exc
        except jwt.InvalidIssuerError as exc:
            raise InvalidToken(InvalidTokenReason.BAD_ISSUER) from exc
        except jwt.InvalidAudienceError as exc:
            raise InvalidToken(InvalidTokenReason.BAD_AUDIENCE) from exc
        except jwt.MissingRequiredClaimError as exc:
            reason = {
                "iss": InvalidTokenReason.BAD_ISSUER,
                "aud": InvalidTokenReason.BAD_AUDIENCE,
            }.get(exc.claim, InvalidTokenReason.MALFORMED)
            raise InvalidToken(reason, str(exc)) from exc
        except jwt.InvalidSignatureError as exc:
            logger.info("Rejected JWT with bad signature")
            raise InvalidToken(InvalidTokenReason.BAD_SIGNATURE) from exc
        except (jwt.InvalidKeyError, TypeError) as exc:
            # key type does not fit the header algorithm
            raise InvalidToken(InvalidTokenReason.BAD_SIGNATURE, str(exc)) from exc
        except jwt.PyJWTError as exc:
            raise InvalidToken(InvalidTokenReason.MALFORMED, str(exc)) from exc
