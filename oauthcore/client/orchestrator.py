"""Authorization state machine for (principal, registration) pairs.

Unauthorized -> AwaitingCallback -> Authorized -> Refreshing -> Authorized,
or -> RevokedOrFailed when the provider refuses the refresh token.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta

from oauthcore.client.authorization_request import (
    build_authorization_uri,
    expand_redirect_uri,
    new_authorization_request,
    parse_callback,
)
from oauthcore.client.authorized_store import AuthorizedClientStore
from oauthcore.client.oidc import IdTokenVerifier
from oauthcore.client.pending_store import PendingRequestStore
from oauthcore.client.registry import ClientRegistry
from oauthcore.client.token_client import TokenEndpointClient
from oauthcore.client.types import (
    AccessToken,
    AuthorizationCodeGrant,
    AuthorizationRedirect,
    AuthorizeContext,
    AuthorizedClient,
    ClientCredentialsGrant,
    ClientRegistration,
    GrantType,
    PasswordGrant,
    RefreshToken,
    RefreshTokenGrant,
    TokenResponse,
)
from oauthcore.core.clock import Clock, utc_now
from oauthcore.core.errors import (
    AuthorizationRequestInvalid,
    AuthorizationResponseError,
    ConfigurationError,
    DuplicateStateError,
    ExchangeFailureKind,
    ReauthorizationRequired,
    RequestInvalidReason,
    TokenExchangeError,
)
from oauthcore.core.settings import CLOCK_SKEW_DEFAULT

logger = logging.getLogger(__name__)

STATE_ATTEMPTS = 3
REVOCATION_ERRORS = frozenset({"invalid_grant", "invalid_token"})

ClientKey = tuple[str, str]


class AuthorizationOrchestrator:
    """Decides between reuse, refresh, direct exchange and redirect."""

    def __init__(
        self,
        registry: ClientRegistry,
        token_client: TokenEndpointClient,
        authorized_clients: AuthorizedClientStore,
        pending_requests: PendingRequestStore,
        *,
        id_token_verifier: IdTokenVerifier | None = None,
        clock_skew: int = CLOCK_SKEW_DEFAULT,
        clock: Clock = utc_now,
    ) -> None:
        self._registry = registry
        self._token_client = token_client
        self._store = authorized_clients
        self._pending = pending_requests
        self._id_tokens = id_token_verifier
        self._clock_skew = timedelta(seconds=clock_skew)
        self._clock = clock
        self._in_flight: dict[ClientKey, asyncio.Task[AuthorizedClient]] = {}

    def _is_usable(self, client: AuthorizedClient) -> bool:
        expires_at = client.access_token.expires_at
        if expires_at is None:
            return True
        return expires_at > self._clock() + self._clock_skew

    async def authorize(
        self,
        principal_name: str,
        registration_id: str,
        context: AuthorizeContext | None = None,
    ) -> AuthorizedClient | AuthorizationRedirect:
        """Return a usable authorized client or a redirect to start login.

        Raises:
            ConfigurationError: unknown registration.
            ReauthorizationRequired: refresh refused, or missing credentials.
            TokenExchangeError: the token endpoint call failed.
        """
        context = context or AuthorizeContext()
        registration = self._registry.require(registration_id)
        key = (principal_name, registration_id)

        current = await self._store.get(principal_name, registration_id)
        if current is not None and self._is_usable(current):
            return current

        task = self._in_flight.get(key)
        if task is not None:
            logger.debug("Joining in-flight token request for %s", registration_id)
            return await asyncio.shield(task)

        if current is not None and current.refresh_token is not None:
            expired = current
            return await self._single_flight(
                key, lambda: self._refresh(registration, expired, context)
            )

        grant_type = registration.grant_type
        if grant_type is GrantType.AUTHORIZATION_CODE:
            return self._start_authorization(registration, principal_name, context)
        if grant_type is GrantType.CLIENT_CREDENTIALS:
            return await self._single_flight(
                key,
                lambda: self._exchange_direct(
                    registration,
                    principal_name,
                    ClientCredentialsGrant(
                        registration=registration,
                        scopes=_requested_scopes(registration, context),
                    ),
                    context,
                ),
            )
        if grant_type is GrantType.PASSWORD:
            if not context.username or context.password is None:
                raise ReauthorizationRequired(
                    principal_name,
                    registration_id,
                    "password grant needs username and password",
                )
            return await self._single_flight(
                key,
                lambda: self._exchange_direct(
                    registration,
                    principal_name,
                    PasswordGrant(
                        registration=registration,
                        username=context.username or "",
                        password=context.password or "",
                        scopes=_requested_scopes(registration, context),
                    ),
                    context,
                ),
            )
        raise ReauthorizationRequired(
            principal_name,
            registration_id,
            "refresh-token registrations need an existing authorized client",
        )

    async def complete_authorization(
        self,
        principal_name: str,
        callback_uri: str,
        *,
        timeout: float | None = None,
    ) -> AuthorizedClient:
        """Handle the redirect back from the authorization endpoint.

        Raises:
            AuthorizationRequestInvalid: unknown, expired, replayed or
                mismatched state; never retried.
            AuthorizationResponseError: the provider returned ``error``.
            TokenExchangeError: the code exchange failed.
        """
        params = parse_callback(callback_uri)
        if not params.state:
            raise AuthorizationRequestInvalid(
                RequestInvalidReason.NOT_FOUND, "callback has no state"
            )
        request = self._pending.consume(params.state, params.redirect_uri)
        if request.principal_name != principal_name:
            logger.warning(
                "Callback for %s presented by a different principal",
                request.registration_id,
            )
            raise AuthorizationRequestInvalid(RequestInvalidReason.PRINCIPAL_MISMATCH)
        if params.error:
            raise AuthorizationResponseError(params.error, params.error_description)
        if not params.code:
            raise AuthorizationRequestInvalid(RequestInvalidReason.MISSING_CODE)

        registration = self._registry.require(request.registration_id)
        grant = AuthorizationCodeGrant(
            registration=registration,
            code=params.code,
            redirect_uri=request.redirect_uri,
            code_verifier=request.code_verifier,
        )
        response = await self._token_client.exchange(grant, timeout=timeout)

        if self._id_tokens is not None and registration.jwk_set_uri:
            if response.id_token:
                await self._id_tokens.verify(
                    registration, response.id_token, request.nonce
                )
            elif request.nonce is not None:
                raise AuthorizationRequestInvalid(
                    RequestInvalidReason.INVALID_ID_TOKEN, "id_token missing"
                )

        client = self._to_authorized_client(
            registration, principal_name, response, request.scopes
        )
        await self._store.put(client)
        logger.info(
            "Authorized %s for principal via authorization_code",
            registration.registration_id,
        )
        return client

    async def remove_authorized_client(
        self, principal_name: str, registration_id: str
    ) -> None:
        await self._store.remove(principal_name, registration_id)

    def _start_authorization(
        self,
        registration: ClientRegistration,
        principal_name: str,
        context: AuthorizeContext,
    ) -> AuthorizationRedirect:
        if not registration.authorization_uri:
            msg = (
                f"registration {registration.registration_id!r} "
                "has no authorization_uri"
            )
            raise ConfigurationError(msg)
        redirect_uri = expand_redirect_uri(
            registration.redirect_uri_template,
            registration.registration_id,
            context.base_url,
        )
        for _ in range(STATE_ATTEMPTS):
            request = new_authorization_request(
                registration,
                principal_name=principal_name,
                redirect_uri=redirect_uri,
                created_at=self._clock(),
                scopes=context.scopes,
            )
            try:
                self._pending.save(request)
            except DuplicateStateError:
                continue
            logger.debug(
                "Issued authorization redirect for %s",
                registration.registration_id,
            )
            return AuthorizationRedirect(
                url=build_authorization_uri(registration, request),
                state=request.state,
                registration_id=registration.registration_id,
            )
        raise DuplicateStateError("could not allocate a unique state value")

    async def _single_flight(
        self,
        key: ClientKey,
        factory: Callable[[], Awaitable[AuthorizedClient]],
    ) -> AuthorizedClient:
        """Run ``factory`` unless a token call for ``key`` is already running."""
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._in_flight[key] = task

            def _cleanup(done: asyncio.Task[AuthorizedClient]) -> None:
                if self._in_flight.get(key) is done:
                    del self._in_flight[key]
                if not done.cancelled():
                    done.exception()

            task.add_done_callback(_cleanup)
        return await asyncio.shield(task)

    async def _refresh(
        self,
        registration: ClientRegistration,
        expired: AuthorizedClient,
        context: AuthorizeContext,
    ) -> AuthorizedClient:
        principal_name = expired.principal_name
        latest = await self._store.get(principal_name, registration.registration_id)
        if (
            latest is not None
            and latest.access_token != expired.access_token
            and self._is_usable(latest)
        ):
            return latest

        assert expired.refresh_token is not None
        grant = RefreshTokenGrant(
            registration=registration,
            refresh_token=expired.refresh_token.value,
            scopes=context.scopes or frozenset(),
        )
        try:
            response = await self._token_client.exchange(grant, timeout=context.timeout)
        except TokenExchangeError as exc:
            revoked = (
                exc.kind is ExchangeFailureKind.PROTOCOL
                and exc.code in REVOCATION_ERRORS
            )
            if revoked:
                logger.info(
                    "Refresh for %s refused (%s); removing authorized client",
                    registration.registration_id,
                    exc.code,
                )
                await self._store.remove(principal_name, registration.registration_id)
                raise ReauthorizationRequired(
                    principal_name, registration.registration_id, str(exc)
                ) from exc
            raise

        client = self._to_authorized_client(
            registration,
            principal_name,
            response,
            expired.access_token.scopes,
            previous=expired,
        )
        await self._store.put(client)
        logger.info("Refreshed access token for %s", registration.registration_id)
        return client

    async def _exchange_direct(
        self,
        registration: ClientRegistration,
        principal_name: str,
        grant: ClientCredentialsGrant | PasswordGrant,
        context: AuthorizeContext,
    ) -> AuthorizedClient:
        response = await self._token_client.exchange(grant, timeout=context.timeout)
        client = self._to_authorized_client(
            registration, principal_name, response, grant.scopes
        )
        await self._store.put(client)
        logger.info(
            "Authorized %s via %s", registration.registration_id, grant.grant_type.value
        )
        return client

    def _to_authorized_client(
        self,
        registration: ClientRegistration,
        principal_name: str,
        response: TokenResponse,
        requested_scopes: frozenset[str],
        previous: AuthorizedClient | None = None,
    ) -> AuthorizedClient:
        now = self._clock()
        expires_at = None
        if response.expires_in is not None:
            expires_at = now + timedelta(seconds=response.expires_in)
        scopes = requested_scopes
        if response.scope:
            scopes = frozenset(response.scope.split())

        refresh_token = None
        if response.refresh_token:
            refresh_token = RefreshToken(value=response.refresh_token, issued_at=now)
        elif previous is not None:
            refresh_token = previous.refresh_token

        id_token = response.id_token
        if id_token is None and previous is not None:
            id_token = previous.id_token

        return AuthorizedClient(
            registration_id=registration.registration_id,
            principal_name=principal_name,
            access_token=AccessToken(
                value=response.access_token,
                token_type=response.token_type,
                issued_at=now,
                expires_at=expires_at,
                scopes=scopes,
            ),
            refresh_token=refresh_token,
            id_token=id_token,
        )


def _requested_scopes(
    registration: ClientRegistration, context: AuthorizeContext
) -> frozenset[str]:
    return registration.scopes if context.scopes is None else context.scopes
