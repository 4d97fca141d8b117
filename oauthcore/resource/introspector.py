"""Remote opaque-token introspection (RFC 7662)."""

import logging

import httpx
from pydantic import ValidationError

from oauthcore.client.token_client import basic_credentials
from oauthcore.core.errors import (
    IntrospectionUnavailable,
    InvalidToken,
    InvalidTokenReason,
)
from oauthcore.core.settings import FETCH_TIMEOUT_DEFAULT
from oauthcore.resource.scopes import (
    DEFAULT_AUTHORITY_PREFIX,
    parse_scopes,
    scopes_to_authorities,
)
from oauthcore.resource.types import IntrospectionResponse, Principal

logger = logging.getLogger(__name__)

INTROSPECTION_ATTEMPTS = 2
HTTP_OK = 200


class OpaqueTokenIntrospector:
    """Asks the issuing authority whether a token is active."""

    def __init__(
        self,
        introspection_uri: str,
        client_id: str,
        client_secret: str,
        http_client: httpx.AsyncClient,
        *,
        timeout: float = FETCH_TIMEOUT_DEFAULT,
        authority_prefix: str = DEFAULT_AUTHORITY_PREFIX,
    ) -> None:
        self._uri = introspection_uri
        self._authorization = basic_credentials(client_id, client_secret)
        self._http = http_client
        self._timeout = timeout
        self._authority_prefix = authority_prefix

    async def validate(self, token: str) -> Principal:
        return await self.introspect(token)

    async def introspect(self, token: str) -> Principal:
        """Return the Principal for an active token.

        Raises:
            InvalidToken: ``inactive`` unless the response says ``active: true``.
            IntrospectionUnavailable: no usable verdict could be obtained.
        """
        result = await self._call(token)
        if result.active is not True:
            raise InvalidToken(InvalidTokenReason.INACTIVE)

        authorities = scopes_to_authorities(
            parse_scopes(result.scope), self._authority_prefix
        )
        attributes = result.model_dump(exclude_none=True)
        name = result.sub or result.username or result.client_id
        if not name:
            raise InvalidToken(InvalidTokenReason.MALFORMED, "no principal name")
        return Principal(
            name=name,
            authorities=authorities,
            attributes=attributes,
            token_value=token,
        )

    async def _call(self, token: str) -> IntrospectionResponse:
        response = None
        for attempt in range(1, INTROSPECTION_ATTEMPTS + 1):
            try:
                response = await self._http.post(
                    self._uri,
                    data={"token": token, "token_type_hint": "access_token"},
                    headers={
                        "Authorization": self._authorization,
                        "Accept": "application/json",
                    },
                    timeout=self._timeout,
                )
                break
            except httpx.HTTPError as exc:
                logger.warning(
                    "Introspection attempt %d/%d failed: %s",
                    attempt,
                    INTROSPECTION_ATTEMPTS,
                    exc,
                )
                if attempt == INTROSPECTION_ATTEMPTS:
                    raise IntrospectionUnavailable(
                        f"introspection endpoint unreachable: {exc}"
                    ) from exc

        assert response is not None
        if response.status_code != HTTP_OK:
            logger.warning(
                "Introspection endpoint returned %s", response.status_code
            )
            raise IntrospectionUnavailable(
                f"introspection endpoint returned {response.status_code}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            msg = "introspection response is not JSON"
            raise IntrospectionUnavailable(msg) from exc
        if not isinstance(payload, dict):
            raise IntrospectionUnavailable("introspection response is not an object")
        if payload.get("active") is not True:
            return IntrospectionResponse(active=False)
        try:
            return IntrospectionResponse.model_validate(payload)
        except ValidationError as exc:
            raise IntrospectionUnavailable(
                "introspection response has malformed members"
            ) from exc
