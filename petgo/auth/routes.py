"""
Authentication routes for Kakao login, password reset mail and the admin
user directory.

These functions sit next to the proxy functions under /functions/v1 and
share their request model (query string first, JSON body second) and error
rendering.
"""

import html
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from ..config import Settings, get_settings, require_secret
from ..errors import Forbidden, InvalidParameter, UnexpectedResponseFormat, truncate
from ..models import (
    AdminUsersResponse,
    KakaoAuthResponse,
    KakaoUserInfo,
    PasswordResetRequest,
)
from ..proxy.params import Param, ParamSpec, resolve_request
from ..proxy.upstream import UpstreamClient, get_upstream_client
from .backend import AuthAdminClient, merge_user_records
from .session import extract_token_from_header, verify_access_token

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(tags=["authentication"])


# =============================================================================
# Parameter Specs
# =============================================================================

KAKAO_AUTH_PARAMS = ParamSpec(
    params=[
        Param(name="code", required=True),
        Param(name="redirectUri"),
    ],
    missing_message="Authorization code가 제공되지 않았습니다",
)

PASSWORD_RESET_PARAMS = ParamSpec(
    params=[
        Param(name="email", required=True),
        Param(name="resetUrl", required=True),
    ],
)

PASSWORD_RESET_SUBJECT = "비밀번호 재설정 요청"


def render_reset_email(reset_url: str) -> str:
    """Minimal HTML body carrying the reset link."""
    link = html.escape(reset_url, quote=True)
    return (
        "<div>"
        "<h2>비밀번호 재설정</h2>"
        "<p>비밀번호 재설정을 요청하셨습니다. 아래 링크에서 새로운 비밀번호를 설정해주세요.</p>"
        f'<p><a href="{link}">비밀번호 재설정하기</a></p>'
        "<p>요청하지 않으셨다면 이 이메일을 무시해주세요.</p>"
        "</div>"
    )


# =============================================================================
# Kakao Login Endpoint
# =============================================================================

@auth_router.post("/kakao-auth", response_model=KakaoAuthResponse)
async def kakao_auth(
    request: Request,
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    """
    Complete Kakao login for an authorization code.

    This endpoint:
    1. Exchanges the code for tokens at the Kakao authorization server
    2. Fetches the user profile with the new access token
    3. Returns the profile fields the client needs to create its session

    Returns:
        KakaoAuthResponse with the extracted user info and tokens
    """
    values = await resolve_request(request, KAKAO_AUTH_PARAMS)
    client_id = require_secret(settings, "KAKAO_REST_API_KEY")

    logger.info("Exchanging Kakao authorization code")
    token_data = await upstream.fetch_json(
        "KakaoAuth",
        "POST",
        f"{settings.KAKAO_AUTH_BASE_URL}/oauth/token",
        data={
            "grant_type": "authorization_code",
            "client_id": client_id,
            "redirect_uri": values["redirectUri"] or "",
            "code": values["code"],
        },
    )

    access_token = token_data.get("access_token") if isinstance(token_data, dict) else None
    if not access_token:
        raise UnexpectedResponseFormat("KakaoAuth", truncate(str(token_data)))

    logger.info("Fetching Kakao user profile")
    user_data = await upstream.fetch_json(
        "KakaoUser",
        "GET",
        f"{settings.KAKAO_USER_API_BASE_URL}/v2/user/me",
        headers={"Authorization": f"Bearer {access_token}"},
    )

    user_info = KakaoUserInfo.from_kakao(token_data, user_data if isinstance(user_data, dict) else {})
    logger.info(
        "Kakao login completed",
        extra={"kakao_id": user_info.kakaoId, "has_email": user_info.hasEmail},
    )
    return KakaoAuthResponse(userInfo=user_info)


# =============================================================================
# Password Reset Endpoint
# =============================================================================

@auth_router.post("/send-password-reset")
async def send_password_reset(
    request: Request,
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    """
    Send the password reset link by email.

    Returns:
        ``{"success": true, "id": <delivery id>}``
    """
    values = await resolve_request(request, PASSWORD_RESET_PARAMS)
    try:
        reset = PasswordResetRequest(email=values["email"], resetUrl=values["resetUrl"])
    except ValidationError as e:
        fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise InvalidParameter(
            f"Invalid parameters: {', '.join(fields)}",
            extra={"invalid": fields},
        )

    api_key = require_secret(settings, "RESEND_API_KEY")

    logger.info("Sending password reset email")
    result = await upstream.fetch_json(
        "Resend",
        "POST",
        f"{settings.RESEND_BASE_URL}/emails",
        headers={"Authorization": f"Bearer {api_key}"},
        json={
            "from": settings.RESEND_FROM_ADDRESS,
            "to": [reset.email],
            "subject": PASSWORD_RESET_SUBJECT,
            "html": render_reset_email(reset.resetUrl),
        },
    )

    email_id = result.get("id") if isinstance(result, dict) else None
    logger.info("Password reset email accepted", extra={"email_id": email_id})
    return {"success": True, "id": email_id}


# =============================================================================
# Admin Endpoint
# =============================================================================

@auth_router.api_route("/admin-users", methods=["GET", "POST"], response_model=AdminUsersResponse)
async def admin_users(
    request: Request,
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    """
    List every user with profile and role, newest first. Admins only.

    Flow:
    1. Extract the bearer token (and verify it locally when a secret is set)
    2. Resolve the caller through the backend
    3. Require an admin row in ``user_roles``
    4. Merge users, profiles and roles

    Raises:
        Unauthorized: Missing or rejected token
        Forbidden: Caller is not an admin
    """
    token = extract_token_from_header(request.headers.get("Authorization"))
    verify_access_token(token, settings)

    client = AuthAdminClient.from_settings(upstream, settings)
    user = await client.get_user(token)

    if not await client.is_admin(user["id"]):
        logger.warning("Admin access denied", extra={"user_id": user["id"]})
        raise Forbidden("Admin access required")

    users = await client.list_users()
    profiles = await client.list_profiles()
    roles = await client.list_roles()

    records = merge_user_records(users, profiles, roles)
    logger.info("Admin user listing built", extra={"count": len(records)})
    return AdminUsersResponse(users=records)
