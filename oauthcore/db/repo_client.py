"""SQL-backed AuthorizedClientStore with tokens encrypted at rest."""

import uuid_utils
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from oauthcore.client.types import AccessToken, AuthorizedClient, RefreshToken
from oauthcore.core.clock import as_utc
from oauthcore.crypto.keys import TokenCipher
from oauthcore.db.models_client import AuthorizedClientEntity


def _select_key(principal_name: str, registration_id: str):
    return select(AuthorizedClientEntity).where(
        AuthorizedClientEntity.principal_name == principal_name,
        AuthorizedClientEntity.registration_id == registration_id,
    )


class SqlAuthorizedClientStore:
    """Stores one row per (principal_name, registration_id)."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: TokenCipher,
    ) -> None:
        self._sessions = session_factory
        self._cipher = cipher

    async def get(
        self, principal_name: str, registration_id: str
    ) -> AuthorizedClient | None:
        async with self._sessions() as session:
            result = await session.execute(_select_key(principal_name, registration_id))
            entity = result.scalar_one_or_none()
            if entity is None:
                return None
            return self._to_model(entity)

    async def put(self, client: AuthorizedClient) -> None:
        """Insert or replace the row for the client's key."""
        try:
            await self._upsert(client)
        except IntegrityError:
            # A concurrent writer inserted the row first; overwrite it.
            await self._upsert(client)

    async def remove(self, principal_name: str, registration_id: str) -> None:
        async with self._sessions() as session, session.begin():
            await session.execute(
                delete(AuthorizedClientEntity).where(
                    AuthorizedClientEntity.principal_name == principal_name,
                    AuthorizedClientEntity.registration_id == registration_id,
                )
            )

    async def _upsert(self, client: AuthorizedClient) -> None:
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                _select_key(client.principal_name, client.registration_id)
            )
            entity = result.scalar_one_or_none()
            if entity is None:
                entity = AuthorizedClientEntity(
                    id=str(uuid_utils.uuid7()),
                    principal_name=client.principal_name,
                    registration_id=client.registration_id,
                )
                session.add(entity)
            self._apply(entity, client)

    def _apply(self, entity: AuthorizedClientEntity, client: AuthorizedClient) -> None:
        access = client.access_token
        entity.access_token_value = self._cipher.encrypt(access.value)
        entity.access_token_type = access.token_type
        entity.access_token_scopes = sorted(access.scopes)
        entity.access_token_issued_at = access.issued_at
        entity.access_token_expires_at = access.expires_at

        refresh = client.refresh_token
        if refresh is None:
            entity.refresh_token_value = None
            entity.refresh_token_issued_at = None
        else:
            entity.refresh_token_value = self._cipher.encrypt(refresh.value)
            entity.refresh_token_issued_at = refresh.issued_at

        entity.id_token_value = (
            self._cipher.encrypt(client.id_token) if client.id_token else None
        )

    def _to_model(self, entity: AuthorizedClientEntity) -> AuthorizedClient:
        expires_at = entity.access_token_expires_at
        access = AccessToken(
            value=self._cipher.decrypt(entity.access_token_value),
            token_type=entity.access_token_type,
            issued_at=as_utc(entity.access_token_issued_at),
            expires_at=as_utc(expires_at) if expires_at is not None else None,
            scopes=frozenset(entity.access_token_scopes or []),
        )
        refresh = None
        if entity.refresh_token_value is not None:
            refresh = RefreshToken(
                value=self._cipher.decrypt(entity.refresh_token_value),
                issued_at=as_utc(
                    entity.refresh_token_issued_at or entity.access_token_issued_at
                ),
            )
        id_token = (
            self._cipher.decrypt(entity.id_token_value)
            if entity.id_token_value
            else None
        )
        return AuthorizedClient(
            registration_id=entity.registration_id,
            principal_name=entity.principal_name,
            access_token=access,
            refresh_token=refresh,
            id_token=id_token,
        )
