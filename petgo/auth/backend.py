"""
Hosted Auth Admin Client
========================

Server-side calls to the hosted auth backend with the service role key:

- GoTrue (``/auth/v1``): caller identity and the user directory
- PostgREST (``/rest/v1``): ``profiles`` and ``user_roles`` tables

Every call goes through ``UpstreamClient`` so failures map to the usual
proxy error taxonomy.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..config import Settings, require_secret
from ..errors import Unauthorized, UpstreamHTTPError
from ..models import UNREGISTERED_PET_NAME, AdminUserRecord
from ..proxy.upstream import UpstreamClient

logger = logging.getLogger(__name__)

SERVICE = "AuthBackend"

USERS_PAGE_SIZE = 1000

ADMIN_ROLE = "admin"
DEFAULT_ROLE = "user"


class AuthAdminClient:
    """
    Admin view of the hosted auth backend.

    Attributes:
        upstream: Shared upstream caller
        base_url: Backend project URL without trailing slash
        service_key: Service role key
    """

    def __init__(self, upstream: UpstreamClient, base_url: str, service_key: str):
        self.upstream = upstream
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key

    @classmethod
    def from_settings(cls, upstream: UpstreamClient, settings: Settings) -> "AuthAdminClient":
        """
        Raises:
            ConfigurationMissing: If the backend URL or service role key is unset
        """
        base_url = require_secret(settings, "SUPABASE_URL")
        service_key = require_secret(settings, "SUPABASE_SERVICE_ROLE_KEY")
        return cls(upstream, base_url, service_key)

    def _headers(self, bearer: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {bearer or self.service_key}",
        }

    # =========================================================================
    # Identity
    # =========================================================================

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        """
        Resolve the user owning ``access_token``.

        Raises:
            Unauthorized: If the backend rejects the token (any 4xx)
        """
        try:
            user = await self.upstream.fetch_json(
                SERVICE,
                "GET",
                f"{self.base_url}/auth/v1/user",
                headers=self._headers(access_token),
            )
        except UpstreamHTTPError as e:
            if 400 <= e.upstream_status < 500:
                logger.warning(
                    "Backend rejected access token",
                    extra={"upstream_status": e.upstream_status},
                )
                raise Unauthorized("Unauthorized")
            raise

        if not isinstance(user, dict) or not user.get("id"):
            raise Unauthorized("Unauthorized")
        return user

    async def is_admin(self, user_id: str) -> bool:
        """True when ``user_roles`` holds an admin row for ``user_id``."""
        try:
            rows = await self.upstream.fetch_json(
                SERVICE,
                "GET",
                f"{self.base_url}/rest/v1/user_roles",
                params={
                    "select": "role",
                    "user_id": f"eq.{user_id}",
                    "role": f"eq.{ADMIN_ROLE}",
                },
                headers=self._headers(),
            )
        except UpstreamHTTPError as e:
            logger.warning(
                "Role lookup failed",
                extra={"user_id": user_id, "upstream_status": e.upstream_status},
            )
            return False
        return isinstance(rows, list) and len(rows) > 0

    # =========================================================================
    # Directory
    # =========================================================================

    async def list_users(self) -> List[Dict[str, Any]]:
        """All auth users, fetched page by page."""
        users: List[Dict[str, Any]] = []
        page = 1
        while True:
            data = await self.upstream.fetch_json(
                SERVICE,
                "GET",
                f"{self.base_url}/auth/v1/admin/users",
                params={"page": page, "per_page": USERS_PAGE_SIZE},
                headers=self._headers(),
            )
            batch = data.get("users", []) if isinstance(data, dict) else []
            users.extend(batch)
            if len(batch) < USERS_PAGE_SIZE:
                break
            page += 1
        return users

    async def list_profiles(self) -> List[Dict[str, Any]]:
        rows = await self.upstream.fetch_json(
            SERVICE,
            "GET",
            f"{self.base_url}/rest/v1/profiles",
            params={"select": "*"},
            headers=self._headers(),
        )
        return rows if isinstance(rows, list) else []

    async def list_roles(self) -> List[Dict[str, Any]]:
        rows = await self.upstream.fetch_json(
            SERVICE,
            "GET",
            f"{self.base_url}/rest/v1/user_roles",
            params={"select": "user_id,role"},
            headers=self._headers(),
        )
        return rows if isinstance(rows, list) else []


# =============================================================================
# Merging
# =============================================================================

def _sort_key(value: Optional[str]) -> datetime:
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def merge_user_records(
    users: List[Dict[str, Any]],
    profiles: List[Dict[str, Any]],
    roles: List[Dict[str, Any]],
) -> List[AdminUserRecord]:
    """
    Join auth users with their profile and role, newest first.

    Users without a profile get the placeholder pet name; users without a
    role row get ``user``. Timestamps prefer the profile row.
    """
    profiles_by_user: Dict[str, Dict[str, Any]] = {}
    for profile in profiles:
        profiles_by_user.setdefault(profile.get("user_id"), profile)

    roles_by_user: Dict[str, str] = {}
    for row in roles:
        roles_by_user.setdefault(row.get("user_id"), row.get("role"))

    records = []
    for user in users:
        profile = profiles_by_user.get(user.get("id"), {})
        records.append(
            AdminUserRecord(
                id=profile.get("id"),
                user_id=user["id"],
                pet_name=profile.get("pet_name") or UNREGISTERED_PET_NAME,
                pet_age=profile.get("pet_age"),
                pet_gender=profile.get("pet_gender"),
                pet_breed=profile.get("pet_breed"),
                pet_image_url=profile.get("pet_image_url"),
                email=user.get("email"),
                created_at=profile.get("created_at") or user.get("created_at"),
                updated_at=profile.get("updated_at") or user.get("updated_at"),
                role=roles_by_user.get(user["id"]) or DEFAULT_ROLE,
            )
        )

    records.sort(key=lambda record: _sort_key(record.created_at), reverse=True)
    return records
