"""Shared test fixtures for oauthcore."""

import json
from collections.abc import AsyncIterator, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
import jwt
import pytest
import respx
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from oauthcore.client.types import ClientRegistration
from oauthcore.crypto.keys import TokenCipher
from oauthcore.db.base import BaseEntity
from oauthcore.db.repo_client import SqlAuthorizedClientStore

ISSUER = "https://idp.example.com"
JWKS_URI = "https://idp.example.com/.well-known/jwks.json"
AUTHORIZATION_URI = "https://idp/authorize"
TOKEN_URI = "https://idp/token"
INTROSPECTION_URI = "https://idp/introspect"
START = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class RsaSigner:
    """Issues RS256 test tokens from a freshly generated key."""

    def __init__(self, kid: str) -> None:
        self.kid = kid
        self.private_key = rsa.generate_private_key(
            public_exponent=65537, key_size=2048
        )

    @property
    def jwk(self) -> dict[str, Any]:
        data = json.loads(RSAAlgorithm.to_jwk(self.private_key.public_key()))
        data.update(kid=self.kid, alg="RS256", use="sig")
        return data

    def sign(self, claims: dict[str, Any], *, include_kid: bool = True) -> str:
        headers = {"kid": self.kid} if include_kid else None
        return jwt.encode(claims, self.private_key, algorithm="RS256", headers=headers)

    def token(self, *, include_kid: bool = True, **overrides: Any) -> str:
        """Sign default access-token claims, with ``None`` removing a claim."""
        now = int(datetime.now(UTC).timestamp())
        claims: dict[str, Any] = {
            "sub": "user-1",
            "iss": ISSUER,
            "aud": "api",
            "iat": now,
            "exp": now + 300,
            "scope": "read write",
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        return self.sign(claims, include_kid=include_kid)


class FakeClock:
    """Settable wall clock."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    """Settable monotonic clock in seconds."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def signer() -> RsaSigner:
    """Signing key published under kid ``key-1``."""
    return RsaSigner("key-1")


@pytest.fixture
def jwks_document(signer: RsaSigner) -> dict[str, Any]:
    return {"keys": [signer.jwk]}


@pytest.fixture
def make_signer():
    """Factory for additional signing keys."""
    return RsaSigner


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def mock_http() -> Iterator[respx.MockRouter]:
    """Intercept outbound httpx traffic."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def google() -> ClientRegistration:
    """Authorization-code registration with a confidential client."""
    return ClientRegistration(
        registration_id="google",
        client_id="client-1",
        client_secret="secret-1",
        authorization_uri=AUTHORIZATION_URI,
        token_uri=TOKEN_URI,
        scopes=frozenset({"profile", "email"}),
    )


@pytest.fixture
def fernet_key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
async def session_factory(
    tmp_path: Path,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """File-backed SQLite database with the oauthcore schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'oauth.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(BaseEntity.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def sql_store(
    session_factory: async_sessionmaker[AsyncSession], fernet_key: str
) -> SqlAuthorizedClientStore:
    return SqlAuthorizedClientStore(session_factory, TokenCipher(fernet_key))
