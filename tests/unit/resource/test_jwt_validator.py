"""Tests for local JWT bearer token validation."""

import time

import httpx
import jwt
import pytest

from oauthcore.core.errors import InvalidToken, InvalidTokenReason, KeySetUnavailable
from oauthcore.resource.jwks import KeySetCache
from oauthcore.resource.jwt_validator import JwtValidator

ISSUER = "https://idp.example.com"
JWKS_URI = "https://idp.example.com/.well-known/jwks.json"


@pytest.fixture
def key_set(http_client, mock_http, jwks_document) -> KeySetCache:
    mock_http.get(JWKS_URI).mock(return_value=httpx.Response(200, json=jwks_document))
    return KeySetCache(JWKS_URI, http_client)


@pytest.fixture
def validator(key_set) -> JwtValidator:
    return JwtValidator(key_set, issuer=ISSUER, clock_skew=60)


async def _reason(validator: JwtValidator, token: str) -> InvalidTokenReason:
    with pytest.raises(InvalidToken) as exc_info:
        await validator.validate(token)
    return exc_info.value.reason


class TestJwtValidator:
    """Tests for signature, time, issuer and audience checks."""

    async def test_valid_token_yields_principal(self, validator, signer):
        token = signer.token()

        principal = await validator.validate(token)

        assert principal.name == "user-1"
        assert principal.authorities == frozenset({"SCOPE_read", "SCOPE_write"})
        assert principal.attributes["iss"] == ISSUER
        assert principal.token_value == token

    async def test_tampered_payload_is_bad_signature(self, validator, signer):
        original = signer.token()
        forged = signer.token(sub="admin")
        header, _, signature = original.split(".")
        spliced = ".".join([header, forged.split(".")[1], signature])

        assert await _reason(validator, spliced) is InvalidTokenReason.BAD_SIGNATURE

    async def test_foreign_key_with_same_kid(self, validator, make_signer):
        impostor = make_signer("key-1")
        reason = await _reason(validator, impostor.token())
        assert reason is InvalidTokenReason.BAD_SIGNATURE

    async def test_disallowed_algorithm(self, validator):
        now = int(time.time())
        token = jwt.encode(
            {"sub": "user-1", "iss": ISSUER, "exp": now + 300},
            "s" * 64,
            algorithm="HS256",
            headers={"kid": "key-1"},
        )
        assert await _reason(validator, token) is InvalidTokenReason.BAD_SIGNATURE

    async def test_unknown_kid(self, validator, make_signer):
        stranger = make_signer("key-9")
        reason = await _reason(validator, stranger.token())
        assert reason is InvalidTokenReason.UNKNOWN_KEY

    async def test_expired(self, validator, signer):
        now = int(time.time())
        token = signer.token(iat=now - 7200, exp=now - 3600)
        assert await _reason(validator, token) is InvalidTokenReason.EXPIRED

    async def test_expiry_within_clock_skew_accepted(self, validator, signer):
        token = signer.token(exp=int(time.time()) - 30)
        principal = await validator.validate(token)
        assert principal.name == "user-1"

    async def test_not_yet_valid(self, validator, signer):
        token = signer.token(nbf=int(time.time()) + 3600)
        assert await _reason(validator, token) is InvalidTokenReason.NOT_YET_VALID

    async def test_missing_exp_is_malformed(self, validator, signer):
        token = signer.token(exp=None)
        assert await _reason(validator, token) is InvalidTokenReason.MALFORMED

    async def test_wrong_issuer(self, validator, signer):
        token = signer.token(iss="https://evil.example.com")
        assert await _reason(validator, token) is InvalidTokenReason.BAD_ISSUER

    async def test_missing_issuer(self, validator, signer):
        token = signer.token(iss=None)
        assert await _reason(validator, token) is InvalidTokenReason.BAD_ISSUER

    async def test_audience_ignored_unless_configured(self, validator, signer):
        principal = await validator.validate(signer.token(aud="anything"))
        assert principal.name == "user-1"

    async def test_audience_enforced_when_configured(self, key_set, signer):
        validator = JwtValidator(key_set, issuer=ISSUER, audience="api")

        assert (await validator.validate(signer.token(aud="api"))).name == "user-1"
        reason = await _reason(validator, signer.token(aud="other"))
        assert reason is InvalidTokenReason.BAD_AUDIENCE
        reason = await _reason(validator, signer.token(aud=None))
        assert reason is InvalidTokenReason.BAD_AUDIENCE

    async def test_missing_subject_is_malformed(self, validator, signer):
        token = signer.token(sub=None)
        assert await _reason(validator, token) is InvalidTokenReason.MALFORMED

    async def test_custom_principal_claim(self, key_set, signer):
        validator = JwtValidator(
            key_set, issuer=ISSUER, principal_claim_name="preferred_username"
        )
        principal = await validator.validate(
            signer.token(preferred_username="alice")
        )
        assert principal.name == "alice"

    async def test_malformed_scope_claim(self, validator, signer):
        token = signer.token(scope="read  write")
        assert await _reason(validator, token) is InvalidTokenReason.MALFORMED_SCOPE

    @pytest.mark.parametrize("token", ["not-a-jwt", "a.b.c", ""])
    async def test_garbage_is_malformed(self, validator, token):
        assert await _reason(validator, token) is InvalidTokenReason.MALFORMED

    async def test_token_without_kid_single_key(self, validator, signer):
        principal = await validator.validate(signer.token(include_kid=False))
        assert principal.name == "user-1"

    async def test_key_set_outage_propagates(self, http_client, mock_http, signer):
        mock_http.get(JWKS_URI).mock(return_value=httpx.Response(503))
        validator = JwtValidator(KeySetCache(JWKS_URI, http_client), issuer=ISSUER)

        with pytest.raises(KeySetUnavailable):
            await validator.validate(signer.token())
