"""Tests for the SQL authorized client store."""

from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select

from oauthcore.client.types import AccessToken, AuthorizedClient, RefreshToken
from oauthcore.db.models_client import AuthorizedClientEntity

ISSUED = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _client(
    access: str = "T1",
    refresh: str | None = "R1",
    principal: str = "user1",
    registration: str = "google",
) -> AuthorizedClient:
    return AuthorizedClient(
        registration_id=registration,
        principal_name=principal,
        access_token=AccessToken(
            value=access,
            issued_at=ISSUED,
            expires_at=ISSUED + timedelta(hours=1),
            scopes=frozenset({"profile", "email"}),
        ),
        refresh_token=(
            RefreshToken(value=refresh, issued_at=ISSUED) if refresh else None
        ),
        id_token="header.payload.sig",
    )


class TestSqlAuthorizedClientStore:
    """Tests for get/put/remove against SQLite."""

    async def test_put_then_get_roundtrip(self, sql_store) -> None:
        client = _client()
        await sql_store.put(client)

        loaded = await sql_store.get("user1", "google")

        assert loaded == client
        assert loaded.access_token.expires_at.tzinfo is not None

    async def test_get_missing_returns_none(self, sql_store) -> None:
        assert await sql_store.get("user1", "google") is None

    async def test_put_replaces_existing_row(self, sql_store, session_factory) -> None:
        await sql_store.put(_client(access="T1", refresh="R1"))
        await sql_store.put(_client(access="T2", refresh=None))

        loaded = await sql_store.get("user1", "google")
        assert loaded.access_token.value == "T2"
        assert loaded.refresh_token is None

        async with session_factory() as session:
            count = await session.scalar(
                select(func.count()).select_from(AuthorizedClientEntity)
            )
        assert count == 1

    async def test_keys_are_independent(self, sql_store) -> None:
        await sql_store.put(_client(access="A", principal="user1"))
        await sql_store.put(_client(access="B", principal="user2"))
        await sql_store.put(_client(access="C", registration="github"))

        assert (await sql_store.get("user1", "google")).access_token.value == "A"
        assert (await sql_store.get("user2", "google")).access_token.value == "B"
        assert (await sql_store.get("user1", "github")).access_token.value == "C"

    async def test_remove(self, sql_store) -> None:
        await sql_store.put(_client())
        await sql_store.remove("user1", "google")
        assert await sql_store.get("user1", "google") is None

    async def test_remove_missing_is_noop(self, sql_store) -> None:
        await sql_store.remove("nobody", "google")

    async def test_tokens_encrypted_at_rest(self, sql_store, session_factory) -> None:
        await sql_store.put(_client(access="T1", refresh="R1"))

        async with session_factory() as session:
            entity = await session.scalar(select(AuthorizedClientEntity))

        assert entity.access_token_value != "T1"
        assert entity.refresh_token_value != "R1"
        assert entity.id_token_value != "header.payload.sig"
        assert entity.access_token_scopes == ["email", "profile"]
