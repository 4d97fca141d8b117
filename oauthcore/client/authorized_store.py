"""Persistence of authorized clients keyed by (principal, registration)."""

from typing import Protocol

from oauthcore.client.types import AuthorizedClient


class AuthorizedClientStore(Protocol):
    """Storage interface for authorized clients.

    Returned objects are frozen models; callers replace rather than mutate.
    """

    async def get(
        self, principal_name: str, registration_id: str
    ) -> AuthorizedClient | None: ...

    async def put(self, client: AuthorizedClient) -> None: ...

    async def remove(self, principal_name: str, registration_id: str) -> None: ...


class InMemoryAuthorizedClientStore:
    """Process-local store. Each operation completes without suspending."""

    def __init__(self) -> None:
        self._clients: dict[tuple[str, str], AuthorizedClient] = {}

    async def get(
        self, principal_name: str, registration_id: str
    ) -> AuthorizedClient | None:
        return self._clients.get((principal_name, registration_id))

    async def put(self, client: AuthorizedClient) -> None:
        self._clients[(client.principal_name, client.registration_id)] = client

    async def remove(self, principal_name: str, registration_id: str) -> None:
        self._clients.pop((principal_name, registration_id), None)

    def __len__(self) -> int:
        return len(self._clients)
