"""Cached JSON Web Key Set fetched from a provider's ``jwks_uri``."""

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable

import httpx
import jwt
from jwt import PyJWK, PyJWKSet

from oauthcore.core.errors import InvalidToken, InvalidTokenReason, KeySetUnavailable
from oauthcore.core.settings import (
    FETCH_TIMEOUT_DEFAULT,
    JWK_NEGATIVE_TTL_DEFAULT,
    JWK_SET_TTL_DEFAULT,
)

logger = logging.getLogger(__name__)

FETCH_ATTEMPTS = 2
HTTP_OK = 200


class KeySetCache:
    """Signing keys by ``kid`` with TTL, refetch-on-miss and negative caching.

    Owned by whoever builds it (usually the application lifespan) and closed
    with ``aclose``. A lookup for an unknown ``kid`` refetches at most once
    per ``negative_ttl_seconds``; inside that window unknown ids are
    rejected without touching the network. A failed fetch is not retried
    for the same window: callers get the stale set, or KeySetUnavailable
    when nothing is cached.
    """

    def __init__(
        self,
        jwk_set_uri: str,
        http_client: httpx.AsyncClient,
        *,
        ttl_seconds: int = JWK_SET_TTL_DEFAULT,
        negative_ttl_seconds: int = JWK_NEGATIVE_TTL_DEFAULT,
        fetch_timeout: float = FETCH_TIMEOUT_DEFAULT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.jwk_set_uri = jwk_set_uri
        self._http = http_client
        self._ttl = ttl_seconds
        self._negative_ttl = negative_ttl_seconds
        self._timeout = fetch_timeout
        self._clock = clock
        self._keys: dict[str | None, PyJWK] = {}
        self._fetched_at: float | None = None
        self._failed_at: float | None = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def fetch_count(self) -> int:
        """Number of successful fetches so far."""
        return self._generation

    def _age(self) -> float | None:
        if self._fetched_at is None:
            return None
        return self._clock() - self._fetched_at

    def _recently_failed(self) -> bool:
        if self._failed_at is None:
            return False
        return self._clock() - self._failed_at < self._negative_ttl

    def _lookup(self, kid: str | None) -> PyJWK | None:
        if kid is None and len(self._keys) == 1:
            return next(iter(self._keys.values()))
        return self._keys.get(kid)

    async def get_signing_key(self, kid: str | None) -> PyJWK:
        """Return the verification key for ``kid``.

        Raises:
            InvalidToken: ``unknown-key`` if the set does not contain it.
            KeySetUnavailable: the set cannot be fetched and none is cached.
        """
        age = self._age()
        if age is None or age >= self._ttl:
            await self._refresh_or_keep_stale()
        else:
            key = self._lookup(kid)
            if key is not None:
                return key
            if age >= self._negative_ttl:
                logger.info("Unknown kid %r, refetching %s", kid, self.jwk_set_uri)
                await self._refresh_or_keep_stale()

        key = self._lookup(kid)
        if key is None:
            raise InvalidToken(
                InvalidTokenReason.UNKNOWN_KEY, f"no key for kid {kid!r}"
            )
        return key

    async def _refresh_or_keep_stale(self) -> None:
        if self._keys and self._recently_failed():
            return
        try:
            await self.refresh()
        except KeySetUnavailable:
            if not self._keys:
                raise
            logger.warning("Serving stale key set for %s", self.jwk_set_uri)

    async def refresh(self) -> None:
        """Fetch the key set. Concurrent callers share a single attempt.

        Raises:
            KeySetUnavailable: the fetch failed, now or within the last
                ``negative_ttl_seconds``.
        """
        generation = self._generation
        async with self._lock:
            if self._generation != generation:
                return
            if self._recently_failed():
                msg = f"key set fetch from {self.jwk_set_uri} failed recently"
                raise KeySetUnavailable(msg)
            try:
                keys = await self._fetch()
            except KeySetUnavailable:
                self._failed_at = self._clock()
                raise
            self._keys = keys
            self._fetched_at = self._clock()
            self._failed_at = None
            self._generation += 1
            logger.debug("Loaded %d keys from %s", len(keys), self.jwk_set_uri)

    async def _fetch(self) -> dict[str | None, PyJWK]:
        response = None
        for attempt in range(1, FETCH_ATTEMPTS + 1):
            try:
                response = await self._http.get(
                    self.jwk_set_uri,
                    headers={"Accept": "application/json"},
                    timeout=self._timeout,
                )
                break
            except httpx.HTTPError as exc:
                logger.warning(
                    "Key set fetch %d/%d from %s failed: %s",
                    attempt,
                    FETCH_ATTEMPTS,
                    self.jwk_set_uri,
                    exc,
                )
                if attempt == FETCH_ATTEMPTS:
                    msg = f"key set unreachable at {self.jwk_set_uri}"
                    raise KeySetUnavailable(msg) from exc

        assert response is not None
        if response.status_code != HTTP_OK:
            msg = f"key set endpoint returned {response.status_code}"
            raise KeySetUnavailable(msg)
        try:
            document = response.json()
        except ValueError as exc:
            raise KeySetUnavailable("key set response is not JSON") from exc
        if not isinstance(document, dict):
            raise KeySetUnavailable("key set response is not a JSON object")
        try:
            key_set = PyJWKSet.from_dict(document)
        except jwt.PyJWTError as exc:
            raise KeySetUnavailable(f"unusable key set: {exc}") from exc

        return {
            key.key_id: key
            for key in key_set.keys
            if key.public_key_use in (None, "sig")
        }

    def start(self, interval_seconds: float) -> None:
        """Refresh in the background every ``interval_seconds``."""
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(
                self._refresh_loop(interval_seconds)
            )

    async def _refresh_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.refresh()
            except KeySetUnavailable as exc:
                logger.warning("Scheduled key set refresh failed: %s", exc)

    async def aclose(self) -> None:
        """Stop the background refresh task."""
        task, self._refresh_task = self._refresh_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
