"""
Hosted Auth Client
==================

Client-side access to the hosted auth backend's GoTrue REST surface with the
public anon key. It keeps the current session, persists it into a
``LocalStore`` under the project's auth-token key, and notifies subscribers
of auth-state changes:

    INITIAL_SESSION   delivered once to each new subscriber
    SIGNED_IN         after a password sign-in
    TOKEN_REFRESHED   after a refresh-token exchange
    SIGNED_OUT        after sign-out (local state is cleared either way)

Backend failures are raised as ``AuthApiError(status, message)``; a network
failure has ``status=None``.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Set

import httpx

from ..config import Settings, require_secret

logger = logging.getLogger(__name__)

# Refresh sessions this many seconds before they expire
EXPIRY_MARGIN_SECONDS = 10


# =============================================================================
# Types
# =============================================================================

class AuthApiError(Exception):
    """Error reported by the hosted auth backend (or a network failure)."""

    def __init__(self, status: Optional[int], message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class AuthChangeEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthUser":
        return cls(id=data["id"], email=data.get("email"), raw=dict(data))


@dataclass
class AuthSession:
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[int]
    user: AuthUser
    token_type: str = "bearer"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthSession":
        """Build from a GoTrue token response or a persisted session."""
        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in") is not None:
            expires_at = int(time.time()) + int(data["expires_in"])
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at,
            user=AuthUser.from_dict(data["user"]),
            token_type=data.get("token_type", "bearer"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "token_type": self.token_type,
            "user": self.user.raw or {"id": self.user.id, "email": self.user.email},
        }

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return self.expires_at <= now + EXPIRY_MARGIN_SECONDS


AuthCallback = Callable[[AuthChangeEvent, Optional[AuthSession]], None]


class Subscription:
    """Handle returned by ``on_auth_state_change``."""

    def __init__(self, client: "HostedAuthClient", callback: AuthCallback):
        self._client = client
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._client._subscribers.discard(self)


# =============================================================================
# Local Storage
# =============================================================================

class LocalStore(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStore:
    """In-process store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class JsonFileStore:
    """
    Store backed by a JSON object in a file.

    The file is read on every access and rewritten on every change, so
    several processes sharing the path see each other's writes.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        try:
            items = json.loads(text)
        except ValueError:
            logger.warning("Discarding unreadable local store", extra={"path": str(self.path)})
            return {}
        return items if isinstance(items, dict) else {}

    def _save(self, items: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(items, ensure_ascii=False), encoding="utf-8")

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._save(items)


def auth_token_storage_key(project_ref: str) -> str:
    return f"sb-{project_ref}-auth-token"


# =============================================================================
# Client
# =============================================================================

def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return response.text


class HostedAuthClient:
    """
    Session-keeping client for the hosted auth backend.

    Attributes:
        http: Async HTTP client (owned by the caller)
        base_url: Backend project URL without trailing slash
        anon_key: Public anon key
        store: Local store mirroring the current session
        storage_key: Store key holding the serialized session
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        anon_key: str,
        store: LocalStore,
        storage_key: str,
    ):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.store = store
        self.storage_key = storage_key
        self._session: Optional[AuthSession] = None
        self._subscribers: Set[Subscription] = set()
        self._tasks: Set[asyncio.Task] = set()
        # one refresh-token exchange at a time; refresh tokens are single use
        self._refresh_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings, store: LocalStore) -> "HostedAuthClient":
        """
        Raises:
            ConfigurationMissing: If the backend URL or anon key is unset
        """
        base_url = require_secret(settings, "SUPABASE_URL")
        anon_key = require_secret(settings, "SUPABASE_ANON_KEY")
        return cls(http, base_url, anon_key, store, auth_token_storage_key(settings.supabase_project_ref))

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        """
        Register ``callback`` for auth-state changes.

        The subscriber receives ``INITIAL_SESSION`` once the stored session
        has been loaded; must be called from a running event loop.
        """
        subscription = Subscription(self, callback)
        self._subscribers.add(subscription)
        task = asyncio.get_running_loop().create_task(self._emit_initial_session(subscription))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return subscription

    async def _emit_initial_session(self, subscription: Subscription) -> None:
        try:
            session = await self.get_session()
        except AuthApiError as e:
            logger.warning(f"Could not load initial session: {e.message}", extra={"auth_status": e.status})
            session = None
        if subscription.active:
            subscription.callback(AuthChangeEvent.INITIAL_SESSION, session)

    def _emit(self, event: AuthChangeEvent, session: Optional[AuthSession]) -> None:
        logger.debug("Auth state change", extra={"event": event.value})
        for subscription in list(self._subscribers):
            if subscription.active:
                subscription.callback(event, session)

    # =========================================================================
    # Session Persistence
    # =========================================================================

    def _save_session(self, session: AuthSession) -> None:
        self._session = session
        self.store.set_item(self.storage_key, json.dumps(session.to_dict(), ensure_ascii=False))

    def _clear_session(self) -> None:
        self._session = None
        self.store.remove_item(self.storage_key)

    def _load_session(self) -> Optional[AuthSession]:
        raw = self.store.get_item(self.storage_key)
        if not raw:
            return None
        try:
            return AuthSession.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable stored session")
            self.store.remove_item(self.storage_key)
            return None

    # =========================================================================
    # Backend Calls
    # =========================================================================

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"apikey": self.anon_key}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.http.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.TransportError as e:
            raise AuthApiError(None, str(e) or type(e).__name__) from e
        if not response.is_success:
            raise AuthApiError(response.status_code, _error_message(response))
        return response

    async def _token_grant(self, grant_type: str, payload: Dict[str, Any]) -> AuthSession:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": grant_type},
            json=payload,
            headers=self._headers(),
        )
        return AuthSession.from_dict(response.json())

    async def get_session(self) -> Optional[AuthSession]:
        """
        Current session, loaded from the store when needed.

        An expired session with a refresh token is refreshed first. Concurrent
        callers wait for that refresh and share its result.

        Raises:
            AuthApiError: If the refresh fails
        """
        async with self._refresh_lock:
            session = self._session or self._load_session()
            if session is None:
                return None
            self._session = session
            if session.is_expired() and session.refresh_token:
                return await self._refresh()
            return session

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        session = await self._token_grant("password", {"email": email, "password": password})
        self._save_session(session)
        logger.info("Signed in", extra={"user_id": session.user.id})
        self._emit(AuthChangeEvent.SIGNED_IN, session)
        return session

    async def refresh_session(self) -> AuthSession:
        """
        Exchange the refresh token for a new session.

        Raises:
            AuthApiError: If there is no refresh token or the backend rejects it
        """
        async with self._refresh_lock:
            return await self._refresh()

    async def _refresh(self) -> AuthSession:
        current = self._session or self._load_session()
        if current is None or not current.refresh_token:
            raise AuthApiError(None, "Auth session missing")
        try:
            session = await self._token_grant("refresh_token", {"refresh_token": current.refresh_token})
        except AuthApiError as e:
            if e.status is not None and 400 <= e.status < 500:
                self._clear_session()
            raise
        self._save_session(session)
        self._emit(AuthChangeEvent.TOKEN_REFRESHED, session)
        return session

    async def get_user(self) -> Optional[AuthUser]:
        session = await self.get_session()
        if session is None:
            return None
        response = await self._request("GET", "/auth/v1/user", headers=self._headers(session.access_token))
        return AuthUser.from_dict(response.json())

    async def sign_out(self) -> None:
        """
        Revoke the session at the backend and clear it locally.

        Local state is cleared and ``SIGNED_OUT`` emitted whether or not the
        backend call succeeds; a backend failure is re-raised afterwards.

        Raises:
            AuthApiError: If the backend call fails
        """
        session = self._session or self._load_session()
        try:
            if session is not None:
                await self._request(
                    "POST",
                    "/auth/v1/logout",
                    params={"scope": "global"},
                    headers=self._headers(session.access_token),
                )
        finally:
            self._clear_session()
            self._emit(AuthChangeEvent.SIGNED_OUT, None)

    async def close(self) -> None:
        """Cancel pending initial-session deliveries."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


__all__ = [
    "AuthApiError",
    "AuthChangeEvent",
    "AuthUser",
    "AuthSession",
    "AuthCallback",
    "Subscription",
    "LocalStore",
    "MemoryStore",
    "JsonFileStore",
    "auth_token_storage_key",
    "HostedAuthClient",
]
