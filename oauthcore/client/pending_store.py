"""In-flight authorization requests keyed by state, consumed exactly once."""

import logging
import threading
from datetime import timedelta

from oauthcore.client.types import AuthorizationRequest
from oauthcore.core.clock import Clock, utc_now
from oauthcore.core.errors import (
    AuthorizationRequestInvalid,
    DuplicateStateError,
    RequestInvalidReason,
)
from oauthcore.core.settings import PENDING_REQUEST_TTL_DEFAULT

logger = logging.getLogger(__name__)


class PendingRequestStore:
    """Holds authorization requests between the redirect and the callback."""

    def __init__(
        self,
        ttl_seconds: int = PENDING_REQUEST_TTL_DEFAULT,
        clock: Clock = utc_now,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._requests: dict[str, AuthorizationRequest] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def _is_expired(self, request: AuthorizationRequest) -> bool:
        return self._clock() - request.created_at > self._ttl

    def save(self, request: AuthorizationRequest) -> None:
        """Store a request. Raises DuplicateStateError on a state collision."""
        with self._lock:
            self._purge_expired()
            if request.state in self._requests:
                raise DuplicateStateError("state value already pending")
            self._requests[request.state] = request

    def consume(self, state: str, redirect_uri: str) -> AuthorizationRequest:
        """Remove and return the request for ``state``.

        The entry is removed whatever the outcome, so a state value can never
        be presented twice.
        """
        with self._lock:
            request = self._requests.pop(state, None)
        if request is None:
            raise AuthorizationRequestInvalid(RequestInvalidReason.NOT_FOUND)
        if self._is_expired(request):
            logger.info(
                "Rejected expired authorization request for %s",
                request.registration_id,
            )
            raise AuthorizationRequestInvalid(RequestInvalidReason.EXPIRED)
        if request.redirect_uri != redirect_uri:
            logger.warning(
                "Redirect URI mismatch on callback for %s",
                request.registration_id,
            )
            raise AuthorizationRequestInvalid(RequestInvalidReason.REDIRECT_MISMATCH)
        return request

    def _purge_expired(self) -> None:
        expired = [s for s, r in self._requests.items() if self._is_expired(r)]
        for state in expired:
            del self._requests[state]
