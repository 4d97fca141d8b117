"""Tests for the pending authorization request store."""

from datetime import timedelta

import pytest

from oauthcore.client.pending_store import PendingRequestStore
from oauthcore.client.types import AuthorizationRequest
from oauthcore.core.errors import (
    AuthorizationRequestInvalid,
    DuplicateStateError,
    RequestInvalidReason,
)

REDIRECT_URI = "https://app.example.com/login/oauth2/code/google"


@pytest.fixture
def store(clock) -> PendingRequestStore:
    return PendingRequestStore(ttl_seconds=600, clock=clock)


def _request(clock, state: str = "S1", age_seconds: int = 0) -> AuthorizationRequest:
    return AuthorizationRequest(
        state=state,
        registration_id="google",
        principal_name="user1",
        redirect_uri=REDIRECT_URI,
        created_at=clock.now - timedelta(seconds=age_seconds),
    )


class TestPendingRequestStore:
    """Tests for save/consume semantics."""

    def test_consume_returns_saved_request(self, store, clock) -> None:
        saved = _request(clock)
        store.save(saved)

        assert store.consume("S1", REDIRECT_URI) == saved
        assert len(store) == 0

    def test_consume_is_single_use(self, store, clock) -> None:
        store.save(_request(clock))
        store.consume("S1", REDIRECT_URI)

        with pytest.raises(AuthorizationRequestInvalid) as exc_info:
            store.consume("S1", REDIRECT_URI)
        assert exc_info.value.reason is RequestInvalidReason.NOT_FOUND

    def test_unknown_state_not_found(self, store) -> None:
        with pytest.raises(AuthorizationRequestInvalid) as exc_info:
            store.consume("never-issued", REDIRECT_URI)
        assert exc_info.value.reason is RequestInvalidReason.NOT_FOUND

    def test_expired_request_rejected_and_removed(self, store, clock) -> None:
        store.save(_request(clock))
        clock.advance(601)

        with pytest.raises(AuthorizationRequestInvalid) as exc_info:
            store.consume("S1", REDIRECT_URI)
        assert exc_info.value.reason is RequestInvalidReason.EXPIRED
        assert len(store) == 0

    def test_request_within_ttl_accepted(self, store, clock) -> None:
        store.save(_request(clock))
        clock.advance(120)
        assert store.consume("S1", REDIRECT_URI).state == "S1"

    def test_redirect_mismatch_consumes_entry(self, store, clock) -> None:
        store.save(_request(clock))

        with pytest.raises(AuthorizationRequestInvalid) as exc_info:
            store.consume("S1", "https://evil.example.com/callback")
        assert exc_info.value.reason is RequestInvalidReason.REDIRECT_MISMATCH

        with pytest.raises(AuthorizationRequestInvalid) as exc_info:
            store.consume("S1", REDIRECT_URI)
        assert exc_info.value.reason is RequestInvalidReason.NOT_FOUND

    def test_duplicate_state_rejected(self, store, clock) -> None:
        store.save(_request(clock))
        with pytest.raises(DuplicateStateError):
            store.save(_request(clock))

    def test_save_purges_expired_entries(self, store, clock) -> None:
        store.save(_request(clock, state="old", age_seconds=700))
        store.save(_request(clock, state="fresh"))
        assert len(store) == 1
