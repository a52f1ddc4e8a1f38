"""
Tests for the session mirror (petgo/auth/mirror.py).

The auth backend is replaced by a small fake whose listener callbacks and
session fetch can be driven step by step.
"""

import asyncio
from typing import Optional
from unittest.mock import Mock

import pytest

from petgo.auth.client import AuthApiError, AuthChangeEvent, AuthSession, AuthUser, MemoryStore
from petgo.auth.mirror import (
    FORCE_PASSWORD_RESET_KEY,
    PENDING_OAUTH_CODE_KEY,
    PENDING_OAUTH_REDIRECT_KEY,
    SessionMirror,
    SessionState,
    is_already_signed_out,
    known_storage_keys,
)


PROJECT_REF = "abcdefgh"
TOKEN_KEY = "sb-abcdefgh-auth-token"


def make_session(user_id: str = "user-1") -> AuthSession:
    return AuthSession(
        access_token=f"access-{user_id}",
        refresh_token=f"refresh-{user_id}",
        expires_at=None,
        user=AuthUser(id=user_id, email=f"{user_id}@example.com"),
    )


class FakeAuth:
    """Auth backend double"""

    def __init__(self, session: Optional[AuthSession] = None, sign_out_error: Optional[Exception] = None):
        self.session = session
        self.sign_out_error = sign_out_error
        self.get_session_error: Optional[Exception] = None
        self.subscribe_error: Optional[Exception] = None
        self.release = None
        self.callbacks = []
        self.subscription = Mock()
        self.sign_out_calls = 0

    def on_auth_state_change(self, callback):
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.callbacks.append(callback)
        return self.subscription

    def emit(self, event, session):
        for callback in self.callbacks:
            callback(event, session)

    async def get_session(self):
        if self.release is not None:
            await self.release.wait()
        if self.get_session_error is not None:
            raise self.get_session_error
        return self.session

    async def sign_out(self):
        self.sign_out_calls += 1
        if self.sign_out_error is not None:
            raise self.sign_out_error


@pytest.fixture
def store():
    return MemoryStore({
        TOKEN_KEY: '{"access_token": "stale"}',
        PENDING_OAUTH_CODE_KEY: "code",
        PENDING_OAUTH_REDIRECT_KEY: "https://petgo.app/callback",
        FORCE_PASSWORD_RESET_KEY: "true",
        "theme": "dark",
    })


def make_mirror(auth, store, settle_delay=0.01):
    return SessionMirror(auth, store, known_storage_keys(PROJECT_REF), settle_delay=settle_delay)


# ============================================================================
# Initialization
# ============================================================================

def test_known_storage_keys():
    assert known_storage_keys(PROJECT_REF) == [
        TOKEN_KEY,
        "kakao_auth_code",
        "kakao_redirect_uri",
        "force_password_reset",
    ]


def test_new_mirror_is_loading(store):
    mirror = make_mirror(FakeAuth(), store)

    assert mirror.state == SessionState.UNINITIALIZED
    assert mirror.loading is True
    assert mirror.user is None


@pytest.mark.asyncio
async def test_initialize_with_existing_session(store):
    session = make_session()
    mirror = make_mirror(FakeAuth(session=session), store)

    await mirror.initialize()

    assert mirror.state == SessionState.READY
    assert mirror.loading is False
    assert mirror.session is session
    assert mirror.user.id == "user-1"


@pytest.mark.asyncio
async def test_initialize_without_session(store):
    mirror = make_mirror(FakeAuth(), store)

    await mirror.initialize()

    assert mirror.state == SessionState.READY
    assert mirror.user is None


@pytest.mark.asyncio
async def test_initialize_survives_session_fetch_failure(store):
    auth = FakeAuth(session=make_session())
    auth.get_session_error = AuthApiError(None, "network down")
    mirror = make_mirror(auth, store)

    await mirror.initialize()

    assert mirror.state == SessionState.READY
    assert mirror.user is None


@pytest.mark.asyncio
async def test_initialize_survives_subscription_failure(store):
    auth = FakeAuth(session=make_session())
    auth.subscribe_error = RuntimeError("listener failed")
    mirror = make_mirror(auth, store)

    await mirror.initialize()

    assert mirror.state == SessionState.READY
    assert mirror.user is None


@pytest.mark.asyncio
async def test_first_event_settles_before_slow_fetch(store):
    auth = FakeAuth(session=None)
    auth.release = asyncio.Event()
    mirror = make_mirror(auth, store, settle_delay=0.01)

    init = asyncio.create_task(mirror.initialize())
    await asyncio.sleep(0)
    assert mirror.state == SessionState.LOADING

    auth.emit(AuthChangeEvent.INITIAL_SESSION, make_session("user-2"))
    await asyncio.sleep(0.05)

    assert mirror.state == SessionState.READY
    assert mirror.user.id == "user-2"

    # the one-shot fetch lands last and wins
    auth.release.set()
    await init
    assert mirror.user is None
    mirror.close()


@pytest.mark.asyncio
async def test_listener_tracks_later_changes(store):
    auth = FakeAuth()
    mirror = make_mirror(auth, store)
    await mirror.initialize()

    auth.emit(AuthChangeEvent.SIGNED_IN, make_session("user-3"))
    assert mirror.user.id == "user-3"

    auth.emit(AuthChangeEvent.SIGNED_OUT, None)
    assert mirror.user is None
    assert mirror.session is None
    mirror.close()


@pytest.mark.asyncio
async def test_close_unsubscribes(store):
    auth = FakeAuth()
    mirror = make_mirror(auth, store)
    await mirror.initialize()

    mirror.close()

    auth.subscription.unsubscribe.assert_called_once()


# ============================================================================
# Sign out
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    None,
    AuthApiError(404, "User not found"),
    AuthApiError(403, "Forbidden"),
    AuthApiError(400, "Session not found"),
    AuthApiError(None, "Failed to fetch"),
    AuthApiError(500, "Internal server error"),
    RuntimeError("unexpected"),
])
async def test_sign_out_always_clears_local_state(store, error):
    auth = FakeAuth(session=make_session(), sign_out_error=error)
    mirror = make_mirror(auth, store)
    await mirror.initialize()
    assert mirror.user is not None

    await mirror.sign_out()

    assert mirror.user is None
    assert mirror.session is None
    assert auth.sign_out_calls == 1
    for key in known_storage_keys(PROJECT_REF):
        assert store.get_item(key) is None
    assert store.get_item("theme") == "dark"
    mirror.close()


@pytest.mark.asyncio
async def test_sign_out_clears_before_backend_call(store):
    observed = {}

    class RecordingAuth(FakeAuth):
        async def sign_out(self):
            observed["token"] = store.get_item(TOKEN_KEY)
            observed["user"] = mirror.user

    auth = RecordingAuth(session=make_session())
    mirror = make_mirror(auth, store)
    await mirror.initialize()

    await mirror.sign_out()

    assert observed == {"token": None, "user": None}
    mirror.close()


@pytest.mark.parametrize("error,expected", [
    (AuthApiError(403, "Forbidden"), True),
    (AuthApiError(404, "Not found"), True),
    (AuthApiError(400, "Session Not Found"), True),
    (AuthApiError(401, "JWT expired"), False),
    (AuthApiError(None, "Failed to fetch"), False),
    (AuthApiError(500, "boom"), False),
])
def test_is_already_signed_out(error, expected):
    assert is_already_signed_out(error) is expected


@pytest.mark.asyncio
async def test_sign_out_continues_past_store_failure(store):

    class FailingStore(MemoryStore):
        def remove_item(self, key):
            if key == PENDING_OAUTH_CODE_KEY:
                raise OSError("disk full")
            super().remove_item(key)

    failing = FailingStore(dict(store.items))
    auth = FakeAuth(session=make_session())
    mirror = make_mirror(auth, failing)
    await mirror.initialize()

    await mirror.sign_out()

    assert mirror.user is None
    assert auth.sign_out_calls == 1
    assert failing.get_item(TOKEN_KEY) is None
    assert failing.get_item(PENDING_OAUTH_REDIRECT_KEY) is None
    assert failing.get_item(FORCE_PASSWORD_RESET_KEY) is None
    mirror.close()
