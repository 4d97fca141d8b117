"""Tests for id_token verification during the code exchange."""

from datetime import UTC, datetime, timedelta

import httpx
import pytest

from oauthcore.client.authorized_store import InMemoryAuthorizedClientStore
from oauthcore.client.oidc import IdTokenVerifier
from oauthcore.client.orchestrator import AuthorizationOrchestrator
from oauthcore.client.pending_store import PendingRequestStore
from oauthcore.client.registry import ClientRegistry
from oauthcore.client.token_client import TokenEndpointClient
from oauthcore.client.types import AuthorizationRequest, ClientRegistration
from oauthcore.core.errors import AuthorizationRequestInvalid, RequestInvalidReason

ISSUER = "https://idp.example.com"
JWKS_URI = "https://idp.example.com/.well-known/jwks.json"
TOKEN_URI = "https://idp/token"
REDIRECT_URI = "https://app.example.com/login/oauth2/code/oidc"


@pytest.fixture
def registration() -> ClientRegistration:
    return ClientRegistration(
        registration_id="oidc",
        client_id="client-1",
        client_secret="secret-1",
        authorization_uri="https://idp/authorize",
        token_uri=TOKEN_URI,
        scopes=frozenset({"openid", "profile"}),
        jwk_set_uri=JWKS_URI,
        issuer_uri=ISSUER,
    )


@pytest.fixture
def verifier(http_client, mock_http, jwks_document) -> IdTokenVerifier:
    mock_http.get(JWKS_URI).mock(return_value=httpx.Response(200, json=jwks_document))
    return IdTokenVerifier(http_client, clock_skew=60)


def _id_token(signer, **overrides) -> str:
    claims = {"aud": "client-1", "nonce": "n-1", "scope": None}
    claims.update(overrides)
    return signer.token(**claims)


class TestIdTokenVerifier:
    """Tests for signature, audience and nonce checks."""

    async def test_valid_id_token_returns_claims(self, verifier, registration, signer):
        claims = await verifier.verify(registration, _id_token(signer), "n-1")
        assert claims["sub"] == "user-1"
        assert claims["nonce"] == "n-1"

    async def test_nonce_mismatch_rejected(self, verifier, registration, signer):
        with pytest.raises(AuthorizationRequestInvalid) as exc_info:
            await verifier.verify(registration, _id_token(signer), "other-nonce")
        assert exc_info.value.reason is RequestInvalidReason.INVALID_ID_TOKEN

    async def test_missing_nonce_claim_rejected(self, verifier, registration, signer):
        token = _id_token(signer, nonce=None)
        with pytest.raises(AuthorizationRequestInvalid):
            await verifier.verify(registration, token, "n-1")

    async def test_wrong_audience_rejected(self, verifier, registration, signer):
        token = _id_token(signer, aud="someone-else")
        with pytest.raises(AuthorizationRequestInvalid) as exc_info:
            await verifier.verify(registration, token, "n-1")
        assert str(exc_info.value) == "bad-audience"

    async def test_wrong_issuer_rejected(self, verifier, registration, signer):
        token = _id_token(signer, iss="https://evil.example.com")
        with pytest.raises(AuthorizationRequestInvalid) as exc_info:
            await verifier.verify(registration, token, "n-1")
        assert str(exc_info.value) == "bad-issuer"

    async def test_foreign_key_rejected(
        self, verifier, registration, make_signer
    ):
        impostor = make_signer("key-1")
        with pytest.raises(AuthorizationRequestInvalid) as exc_info:
            await verifier.verify(registration, _id_token(impostor), "n-1")
        assert str(exc_info.value) == "bad-signature"

    async def test_registration_without_jwks_skips_checks(self, http_client):
        registration = ClientRegistration(
            registration_id="plain", client_id="c", token_uri=TOKEN_URI
        )
        verifier = IdTokenVerifier(http_client)
        assert await verifier.verify(registration, "not-a-jwt", None) == {}


class TestCallbackIdTokenVerification:
    """Tests for id_token handling in complete_authorization."""

    @pytest.fixture
    def pending(self) -> PendingRequestStore:
        return PendingRequestStore()

    @pytest.fixture
    def store(self) -> InMemoryAuthorizedClientStore:
        return InMemoryAuthorizedClientStore()

    @pytest.fixture
    def orchestrator(self, registration, verifier, http_client, pending, store):
        return AuthorizationOrchestrator(
            ClientRegistry([registration]),
            TokenEndpointClient(http_client),
            store,
            pending,
            id_token_verifier=verifier,
        )

    def _save_request(self, pending: PendingRequestStore) -> None:
        pending.save(
            AuthorizationRequest(
                state="S1",
                registration_id="oidc",
                principal_name="user1",
                redirect_uri=REDIRECT_URI,
                scopes=frozenset({"openid", "profile"}),
                nonce="n-1",
                code_verifier="verifier-1",
                created_at=datetime.now(UTC) - timedelta(seconds=5),
            )
        )

    async def test_verified_id_token_kept(
        self, orchestrator, pending, store, mock_http, signer
    ):
        self._save_request(pending)
        id_token = _id_token(signer)
        mock_http.post(TOKEN_URI).mock(
            return_value=httpx.Response(
                200, json={"access_token": "T1", "id_token": id_token}
            )
        )

        client = await orchestrator.complete_authorization(
            "user1", f"{REDIRECT_URI}?code=abc&state=S1"
        )

        assert client.id_token == id_token
        assert await store.get("user1", "oidc") == client

    async def test_bad_nonce_stores_nothing(
        self, orchestrator, pending, store, mock_http, signer
    ):
        self._save_request(pending)
        mock_http.post(TOKEN_URI).mock(
            return_value=httpx.Response(
                200,
                json={"access_token": "T1", "id_token": _id_token(signer, nonce="x")},
            )
        )

        with pytest.raises(AuthorizationRequestInvalid) as exc_info:
            await orchestrator.complete_authorization(
                "user1", f"{REDIRECT_URI}?code=abc&state=S1"
            )
        assert exc_info.value.reason is RequestInvalidReason.INVALID_ID_TOKEN
        assert await store.get("user1", "oidc") is None

    async def test_missing_id_token_rejected(self, orchestrator, pending, mock_http):
        self._save_request(pending)
        mock_http.post(TOKEN_URI).mock(
            return_value=httpx.Response(200, json={"access_token": "T1"})
        )

        with pytest.raises(AuthorizationRequestInvalid) as exc_info:
            await orchestrator.complete_authorization(
                "user1", f"{REDIRECT_URI}?code=abc&state=S1"
            )
        assert exc_info.value.reason is RequestInvalidReason.INVALID_ID_TOKEN
