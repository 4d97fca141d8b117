"""Mapping of scope claims to authority strings."""

from collections.abc import Mapping
from typing import Any

from oauthcore.core.errors import InvalidToken, InvalidTokenReason

DEFAULT_AUTHORITY_PREFIX = "SCOPE_"
WELL_KNOWN_SCOPE_CLAIMS = ("scope", "scp")


def _is_clean_scope(token: str) -> bool:
    return bool(token) and not any(ch.isspace() for ch in token)


def parse_scopes(value: object) -> list[str]:
    """Parse a scope claim.

    Strings must be single-space delimited with no leading, trailing or
    repeated separators; any other whitespace is malformed. Lists must hold
    non-blank strings without whitespace.
    """
    if value is None:
        return []
    if isinstance(value, str):
        if value == "":
            return []
        parts = value.split(" ")
    elif isinstance(value, list):
        parts = value
    else:
        raise InvalidToken(InvalidTokenReason.MALFORMED_SCOPE, "scope claim type")

    scopes = []
    for part in parts:
        if not isinstance(part, str) or not _is_clean_scope(part):
            raise InvalidToken(InvalidTokenReason.MALFORMED_SCOPE)
        scopes.append(part)
    return scopes


def scopes_to_authorities(
    scopes: list[str], prefix: str = DEFAULT_AUTHORITY_PREFIX
) -> frozenset[str]:
    return frozenset(f"{prefix}{scope}" for scope in scopes)


def authorities_from_claims(
    claims: Mapping[str, Any],
    prefix: str = DEFAULT_AUTHORITY_PREFIX,
    claim_name: str = "",
) -> frozenset[str]:
    """Authorities from ``claim_name``, or the first of ``scope``/``scp``."""
    names = (claim_name,) if claim_name else WELL_KNOWN_SCOPE_CLAIMS
    for name in names:
        if name in claims:
            return scopes_to_authorities(parse_scopes(claims[name]), prefix)
    return frozenset()
