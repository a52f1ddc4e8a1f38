"""
Tests for the hosted auth client (petgo/auth/client.py).
"""

import asyncio
import json
import time
from unittest.mock import AsyncMock

import httpx
import pytest

from petgo.auth.client import (
    AuthApiError,
    AuthChangeEvent,
    HostedAuthClient,
    JsonFileStore,
    MemoryStore,
)
from petgo.auth.mirror import SessionMirror, known_storage_keys
from petgo.errors import ConfigurationMissing


BASE_URL = "https://abcdefgh.supabase.co"
TOKEN_KEY = "sb-abcdefgh-auth-token"


def token_response(user_id="user-1", access_token="access-1", expires_in=3600):
    return {
        "access_token": access_token,
        "refresh_token": f"refresh-{access_token}",
        "expires_in": expires_in,
        "token_type": "bearer",
        "user": {"id": user_id, "email": f"{user_id}@example.com"},
    }


def stored_session(expires_at=None):
    return json.dumps({
        "access_token": "stored-access",
        "refresh_token": "stored-refresh",
        "expires_at": expires_at if expires_at is not None else int(time.time()) + 3600,
        "token_type": "bearer",
        "user": {"id": "user-1", "email": "user-1@example.com"},
    })


@pytest.fixture
def http():
    return AsyncMock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def auth(http, store):
    return HostedAuthClient(http, BASE_URL, "anon-key", store, TOKEN_KEY)


def subscribe(auth):
    """Collect (event, session) pairs; must run inside the event loop"""
    received = []
    auth.on_auth_state_change(lambda event, session: received.append((event, session)))
    return received


async def settle():
    for _ in range(3):
        await asyncio.sleep(0)


# ============================================================================
# Construction
# ============================================================================

def test_from_settings_uses_project_storage_key(mock_settings, http, store):
    client = HostedAuthClient.from_settings(http, mock_settings, store)

    assert client.storage_key == TOKEN_KEY
    assert client.base_url == BASE_URL


def test_from_settings_requires_anon_key(mock_settings, http, store):
    settings = mock_settings.model_copy(update={"SUPABASE_ANON_KEY": None})

    with pytest.raises(ConfigurationMissing):
        HostedAuthClient.from_settings(http, settings, store)


# ============================================================================
# Sessions
# ============================================================================

@pytest.mark.asyncio
async def test_initial_session_is_empty(auth):
    events = subscribe(auth)
    await settle()

    assert events == [(AuthChangeEvent.INITIAL_SESSION, None)]


@pytest.mark.asyncio
async def test_initial_session_from_store(auth, store):
    store.set_item(TOKEN_KEY, stored_session())
    received = []

    auth.on_auth_state_change(lambda event, session: received.append((event, session)))
    await settle()

    event, session = received[0]
    assert event == AuthChangeEvent.INITIAL_SESSION
    assert session.access_token == "stored-access"
    assert session.user.id == "user-1"


@pytest.mark.asyncio
async def test_sign_in_persists_and_notifies(auth, http, store):
    events = subscribe(auth)
    await settle()
    http.request.return_value = httpx.Response(200, json=token_response())

    session = await auth.sign_in_with_password("user-1@example.com", "pw")

    assert session.user.id == "user-1"
    assert session.expires_at > time.time()
    assert json.loads(store.get_item(TOKEN_KEY))["access_token"] == "access-1"
    assert events[-1] == (AuthChangeEvent.SIGNED_IN, session)

    call = http.request.call_args
    assert call.args == ("POST", f"{BASE_URL}/auth/v1/token")
    assert call.kwargs["params"] == {"grant_type": "password"}
    assert call.kwargs["headers"] == {"apikey": "anon-key"}


@pytest.mark.asyncio
async def test_sign_in_rejected(auth, http, store):
    http.request.return_value = httpx.Response(400, json={"error_description": "Invalid login credentials"})

    with pytest.raises(AuthApiError) as exc_info:
        await auth.sign_in_with_password("user-1@example.com", "wrong")

    assert exc_info.value.status == 400
    assert exc_info.value.message == "Invalid login credentials"
    assert store.get_item(TOKEN_KEY) is None


@pytest.mark.asyncio
async def test_expired_session_is_refreshed(auth, http, store):
    events = subscribe(auth)
    store.set_item(TOKEN_KEY, stored_session(expires_at=int(time.time()) - 60))
    http.request.return_value = httpx.Response(200, json=token_response(access_token="access-2"))

    await settle()

    call = http.request.call_args
    assert call.kwargs["params"] == {"grant_type": "refresh_token"}
    assert call.kwargs["json"] == {"refresh_token": "stored-refresh"}
    kinds = [event for event, _ in events]
    assert kinds == [AuthChangeEvent.TOKEN_REFRESHED, AuthChangeEvent.INITIAL_SESSION]
    assert events[-1][1].access_token == "access-2"
    assert json.loads(store.get_item(TOKEN_KEY))["access_token"] == "access-2"


@pytest.mark.asyncio
async def test_rejected_refresh_clears_session(auth, http, store):
    store.set_item(TOKEN_KEY, stored_session(expires_at=int(time.time()) - 60))
    http.request.return_value = httpx.Response(400, json={"msg": "Invalid Refresh Token"})

    with pytest.raises(AuthApiError):
        await auth.get_session()

    assert store.get_item(TOKEN_KEY) is None


@pytest.mark.asyncio
async def test_unreadable_stored_session_is_discarded(auth, store):
    store.set_item(TOKEN_KEY, "{not json")

    assert await auth.get_session() is None
    assert store.get_item(TOKEN_KEY) is None


@pytest.mark.asyncio
async def test_get_user_uses_access_token(auth, http, store):
    store.set_item(TOKEN_KEY, stored_session())
    http.request.return_value = httpx.Response(200, json={"id": "user-1", "email": "user-1@example.com"})

    user = await auth.get_user()

    assert user.id == "user-1"
    assert http.request.call_args.kwargs["headers"]["Authorization"] == "Bearer stored-access"


# ============================================================================
# Sign out
# ============================================================================

@pytest.mark.asyncio
async def test_sign_out(auth, http, store):
    events = subscribe(auth)
    store.set_item(TOKEN_KEY, stored_session())
    await settle()
    http.request.return_value = httpx.Response(204)

    await auth.sign_out()

    call = http.request.call_args
    assert call.args == ("POST", f"{BASE_URL}/auth/v1/logout")
    assert call.kwargs["params"] == {"scope": "global"}
    assert store.get_item(TOKEN_KEY) is None
    assert events[-1] == (AuthChangeEvent.SIGNED_OUT, None)


@pytest.mark.asyncio
async def test_sign_out_failure_still_clears(auth, http, store):
    events = subscribe(auth)
    store.set_item(TOKEN_KEY, stored_session())
    await settle()
    http.request.return_value = httpx.Response(404, json={"msg": "Session not found"})

    with pytest.raises(AuthApiError) as exc_info:
        await auth.sign_out()

    assert exc_info.value.status == 404
    assert store.get_item(TOKEN_KEY) is None
    assert events[-1] == (AuthChangeEvent.SIGNED_OUT, None)


@pytest.mark.asyncio
async def test_sign_out_network_failure(auth, http, store):
    store.set_item(TOKEN_KEY, stored_session())
    http.request.side_effect = httpx.ConnectError("Failed to fetch")

    with pytest.raises(AuthApiError) as exc_info:
        await auth.sign_out()

    assert exc_info.value.status is None
    assert store.get_item(TOKEN_KEY) is None


@pytest.mark.asyncio
async def test_unsubscribed_callback_is_not_called(auth, http, store):
    received = []
    subscription = auth.on_auth_state_change(lambda event, session: received.append(event))
    subscription.unsubscribe()
    http.request.return_value = httpx.Response(204)

    await settle()
    await auth.sign_out()

    assert received == []


@pytest.mark.asyncio
async def test_mirror_over_client_signs_out_on_missing_session(auth, http, store):
    store.set_item(TOKEN_KEY, stored_session())
    store.set_item("kakao_auth_code", "pending")
    mirror = SessionMirror(auth, store, known_storage_keys("abcdefgh"), settle_delay=0.01)

    await mirror.initialize()
    assert mirror.user.id == "user-1"

    http.request.return_value = httpx.Response(404, json={"msg": "Session not found"})
    await mirror.sign_out()

    assert mirror.user is None
    assert store.items == {}
    mirror.close()
    await auth.close()


# ============================================================================
# Stores
# ============================================================================

def test_json_file_store(tmp_path):
    path = tmp_path / "state" / "auth.json"
    store = JsonFileStore(path)

    assert store.get_item("missing") is None

    store.set_item(TOKEN_KEY, "value")
    store.set_item("theme", "dark")
    assert JsonFileStore(path).get_item(TOKEN_KEY) == "value"

    store.remove_item(TOKEN_KEY)
    store.remove_item("never-set")
    assert json.loads(path.read_text(encoding="utf-8")) == {"theme": "dark"}


# ============================================================================
# Concurrent refresh
# ============================================================================

def single_use_refresh(refreshes):
    """Backend double that accepts each refresh token once and answers slowly"""

    async def respond(method, url, **kwargs):
        await asyncio.sleep(0.01)
        refreshes.append(kwargs["json"]["refresh_token"])
        if len(refreshes) == 1:
            return httpx.Response(200, json=token_response(access_token="access-2"))
        return httpx.Response(400, json={"msg": "Invalid Refresh Token: Already Used"})

    return respond


@pytest.mark.asyncio
async def test_concurrent_get_session_refreshes_once(auth, http, store):
    store.set_item(TOKEN_KEY, stored_session(expires_at=int(time.time()) - 60))
    refreshes = []
    http.request.side_effect = single_use_refresh(refreshes)

    first, second = await asyncio.gather(auth.get_session(), auth.get_session())

    assert refreshes == ["stored-refresh"]
    assert first.access_token == "access-2"
    assert second.access_token == "access-2"


@pytest.mark.asyncio
async def test_mirror_startup_with_expired_session_refreshes_once(auth, http, store):
    store.set_item(TOKEN_KEY, stored_session(expires_at=int(time.time()) - 60))
    refreshes = []
    http.request.side_effect = single_use_refresh(refreshes)
    mirror = SessionMirror(auth, store, known_storage_keys("abcdefgh"), settle_delay=0.01)

    await mirror.initialize()
    await asyncio.sleep(0.05)

    assert refreshes == ["stored-refresh"]
    assert mirror.user.id == "user-1"
    assert mirror.session.access_token == "access-2"
    assert json.loads(store.get_item(TOKEN_KEY))["access_token"] == "access-2"
    mirror.close()
    await auth.close()


# ============================================================================
# Unreadable store
# ============================================================================

def test_json_file_store_with_corrupt_file(tmp_path):
    path = tmp_path / "auth.json"
    path.write_text("{truncated", encoding="utf-8")
    store = JsonFileStore(path)

    assert store.get_item(TOKEN_KEY) is None
    store.remove_item(TOKEN_KEY)

    store.set_item("theme", "dark")
    assert json.loads(path.read_text(encoding="utf-8")) == {"theme": "dark"}


@pytest.mark.asyncio
async def test_mirror_sign_out_over_corrupt_file_store(tmp_path, http):
    path = tmp_path / "auth.json"
    path.write_text("{truncated", encoding="utf-8")
    store = JsonFileStore(path)
    auth = HostedAuthClient(http, BASE_URL, "anon-key", store, TOKEN_KEY)
    mirror = SessionMirror(auth, store, known_storage_keys("abcdefgh"), settle_delay=0.01)

    await mirror.sign_out()

    assert mirror.user is None
    for key in known_storage_keys("abcdefgh"):
        assert store.get_item(key) is None
    mirror.close()
    await auth.close()
