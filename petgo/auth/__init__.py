"""
Authentication Package

This package handles everything that touches user identity:

Server side (FastAPI routes under /functions/v1):
- kakao-auth: Kakao authorization code exchange and profile lookup
- send-password-reset: Password reset mail through Resend
- admin-users: Admin-only user directory from the hosted auth backend

Client side:
- HostedAuthClient: Session-keeping client for the hosted auth backend
- SessionMirror: Local user/session state following auth-state changes

Modules:
- routes: Auth-related functions
- backend: Service-role calls for identity, roles and the user directory
- session: Bearer token extraction and local access token verification
- client: Hosted auth client, session types and local stores
- mirror: Session mirror
"""

from .client import HostedAuthClient, JsonFileStore, MemoryStore
from .mirror import SessionMirror, SessionState, known_storage_keys
from .routes import auth_router

__all__ = [
    "auth_router",
    "HostedAuthClient",
    "MemoryStore",
    "JsonFileStore",
    "SessionMirror",
    "SessionState",
    "known_storage_keys",
]
