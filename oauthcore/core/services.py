"""Construction and teardown of the long-lived oauthcore components."""

import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from oauthcore.client.authorized_store import (
    AuthorizedClientStore,
    InMemoryAuthorizedClientStore,
)
from oauthcore.client.oidc import IdTokenVerifier
from oauthcore.client.orchestrator import AuthorizationOrchestrator
from oauthcore.client.pending_store import PendingRequestStore
from oauthcore.client.registry import ClientRegistry, load_registrations
from oauthcore.client.token_client import TokenEndpointClient
from oauthcore.core.settings import (
    ClientSettings,
    DatabaseSettings,
    ResourceServerSettings,
)
from oauthcore.crypto.keys import TokenCipher
from oauthcore.db.engine import create_engine, create_schema, create_session_factory
from oauthcore.db.repo_client import SqlAuthorizedClientStore
from oauthcore.resource.authenticator import BearerTokenAuthenticator, build_validator
from oauthcore.resource.jwks import KeySetCache

logger = logging.getLogger(__name__)


@dataclass
class OAuthServices:
    """Everything the HTTP layer needs, owned by the application lifespan."""

    orchestrator: AuthorizationOrchestrator | None = None
    authenticator: BearerTokenAuthenticator | None = None
    http_client: httpx.AsyncClient | None = None
    key_set: KeySetCache | None = None
    id_token_verifier: IdTokenVerifier | None = None
    engine: AsyncEngine | None = None

    async def aclose(self) -> None:
        if self.key_set is not None:
            await self.key_set.aclose()
        if self.id_token_verifier is not None:
            await self.id_token_verifier.aclose()
        if self.http_client is not None:
            await self.http_client.aclose()
        if self.engine is not None:
            await self.engine.dispose()


async def _build_store(
    client_settings: ClientSettings, db_settings: DatabaseSettings
) -> tuple[AuthorizedClientStore, AsyncEngine | None]:
    if client_settings.store == "memory":
        return InMemoryAuthorizedClientStore(), None
    cipher = TokenCipher(client_settings.token_encryption_key)
    engine = create_engine(db_settings)
    await create_schema(engine)
    return SqlAuthorizedClientStore(create_session_factory(engine), cipher), engine


async def _wire(
    services: OAuthServices,
    http_client: httpx.AsyncClient,
    client_settings: ClientSettings,
    rs_settings: ResourceServerSettings,
    db_settings: DatabaseSettings,
) -> None:
    if client_settings.registrations_file:
        registry = load_registrations(client_settings.registrations_file)
    else:
        registry = ClientRegistry([])
    if len(registry):
        store, services.engine = await _build_store(client_settings, db_settings)
        services.id_token_verifier = IdTokenVerifier(
            http_client, clock_skew=client_settings.clock_skew
        )
        services.orchestrator = AuthorizationOrchestrator(
            registry,
            TokenEndpointClient(http_client, client_settings.token_endpoint_timeout),
            store,
            PendingRequestStore(client_settings.pending_request_ttl),
            id_token_verifier=services.id_token_verifier,
            clock_skew=client_settings.clock_skew,
        )
        logger.info("Loaded %d client registrations", len(registry))

    if rs_settings.mode != "none":
        validator, services.key_set = build_validator(rs_settings, http_client)
        services.authenticator = BearerTokenAuthenticator(validator)
        if services.key_set is not None and rs_settings.jwk_refresh_interval > 0:
            services.key_set.start(rs_settings.jwk_refresh_interval)
        logger.info("Bearer token validation mode: %s", rs_settings.mode)


async def build_services(
    client_settings: ClientSettings | None = None,
    rs_settings: ResourceServerSettings | None = None,
    db_settings: DatabaseSettings | None = None,
) -> OAuthServices:
    """Build components from settings; either side may be disabled.

    Anything already opened is closed again if construction fails.
    """
    http_client = httpx.AsyncClient()
    services = OAuthServices(http_client=http_client)
    try:
        await _wire(
            services,
            http_client,
            client_settings or ClientSettings(),
            rs_settings or ResourceServerSettings(),
            db_settings or DatabaseSettings(),
        )
    except Exception:
        await services.aclose()
        raise
    return services
