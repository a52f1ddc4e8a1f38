"""
Session Mirror
==============

Keeps local ``user``/``session`` state in step with the hosted auth backend
so client code can read it synchronously.

States::

    UNINITIALIZED --initialize()--> LOADING --> READY

``initialize()`` registers the auth-state listener first and then asks for
the current session once. Both paths write ``user``/``session``; whichever
lands last wins. The one-shot fetch marks the mirror READY when it
completes; the listener's first callback also schedules READY after a short
settle delay. Initialization errors never propagate: they are logged and
the mirror settles into READY with no user.

``sign_out()`` clears local state and the known storage keys before calling
the backend, so no branch leaves stale credentials behind.
"""

import asyncio
import logging
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from .client import (
    AuthApiError,
    AuthCallback,
    AuthChangeEvent,
    AuthSession,
    AuthUser,
    LocalStore,
    Subscription,
    auth_token_storage_key,
)

logger = logging.getLogger(__name__)

SETTLE_DELAY_SECONDS = 0.1

PENDING_OAUTH_CODE_KEY = "kakao_auth_code"
PENDING_OAUTH_REDIRECT_KEY = "kakao_redirect_uri"
FORCE_PASSWORD_RESET_KEY = "force_password_reset"


def known_storage_keys(project_ref: str) -> List[str]:
    """Local storage keys holding auth state, cleared together on sign-out."""
    return [
        auth_token_storage_key(project_ref),
        PENDING_OAUTH_CODE_KEY,
        PENDING_OAUTH_REDIRECT_KEY,
        FORCE_PASSWORD_RESET_KEY,
    ]


def is_already_signed_out(error: AuthApiError) -> bool:
    """Backend answers meaning the session is already gone."""
    if error.status in (403, 404):
        return True
    return "session not found" in (error.message or "").lower()


class AuthBackend(Protocol):
    def on_auth_state_change(self, callback: AuthCallback) -> Subscription: ...

    async def get_session(self) -> Optional[AuthSession]: ...

    async def sign_out(self) -> None: ...


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class SessionMirror:
    """
    Local view of the hosted auth session.

    Args:
        auth: Auth backend (normally a ``HostedAuthClient``)
        store: Local store holding the cached auth keys
        storage_keys: Keys removed on sign-out
        settle_delay: Delay between the first listener callback and READY
    """

    def __init__(
        self,
        auth: AuthBackend,
        store: LocalStore,
        storage_keys: Sequence[str],
        settle_delay: float = SETTLE_DELAY_SECONDS,
    ):
        self.auth = auth
        self.store = store
        self.storage_keys = list(storage_keys)
        self.settle_delay = settle_delay

        self.state = SessionState.UNINITIALIZED
        self.user: Optional[AuthUser] = None
        self.session: Optional[AuthSession] = None

        self._subscription: Optional[Subscription] = None
        self._settle_handle: Optional[asyncio.TimerHandle] = None
        self._seen_first_event = False

    @property
    def loading(self) -> bool:
        return self.state != SessionState.READY

    def _apply(self, session: Optional[AuthSession]) -> None:
        self.session = session
        self.user = session.user if session is not None else None

    def _mark_ready(self) -> None:
        self.state = SessionState.READY

    def _on_auth_change(self, event: AuthChangeEvent, session: Optional[AuthSession]) -> None:
        logger.debug(
            "Auth state changed",
            extra={"event": event.value, "user_id": session.user.id if session else None},
        )
        self._apply(session)
        if not self._seen_first_event:
            self._seen_first_event = True
            self._settle_handle = asyncio.get_running_loop().call_later(self.settle_delay, self._mark_ready)

    async def initialize(self) -> None:
        """Subscribe, fetch the current session once, then settle into READY."""
        self.state = SessionState.LOADING
        try:
            self._subscription = self.auth.on_auth_state_change(self._on_auth_change)
            try:
                session = await self.auth.get_session()
            except Exception as e:
                logger.warning(f"Failed to get session: {e}")
                session = None
            self._apply(session)
            self._mark_ready()
        except Exception as e:
            logger.error(f"Auth initialization error: {e}", exc_info=True)
            self._apply(None)
            self._mark_ready()

    async def sign_out(self) -> None:
        """
        Clear local state, then sign out at the backend.

        "Already signed out" answers count as success; any other failure is
        logged and local state stays cleared.
        """
        self._apply(None)
        for key in self.storage_keys:
            try:
                self.store.remove_item(key)
            except Exception as e:
                logger.error(f"Failed to remove stored key {key}: {e}", exc_info=True)

        try:
            await self.auth.sign_out()
        except AuthApiError as e:
            if is_already_signed_out(e):
                logger.info("Session already ended at the backend", extra={"auth_status": e.status})
            else:
                logger.error(f"Sign out error: {e.message}", extra={"auth_status": e.status})
        except Exception as e:
            logger.error(f"Sign out error: {e}", exc_info=True)
        finally:
            self._apply(None)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None


__all__ = [
    "SETTLE_DELAY_SECONDS",
    "PENDING_OAUTH_CODE_KEY",
    "PENDING_OAUTH_REDIRECT_KEY",
    "FORCE_PASSWORD_RESET_KEY",
    "known_storage_keys",
    "is_already_signed_out",
    "AuthBackend",
    "SessionState",
    "SessionMirror",
]
