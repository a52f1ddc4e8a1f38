"""
Data Models Module

This module defines Pydantic models for the response shapes the gateway
produces itself. Upstream payloads (place search, forecasts, tourism lists)
are passed through untouched and have no model here.

Models are organized by functional area:
- Health model
- Kakao login models
- Admin user listing models
- Password reset models
- Animal hospital listing models
- Diagnostics models
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_timestamp() -> str:
    """Server timestamp in ISO-8601 with a ``Z`` suffix, as browsers print it."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ============================================================================
# Health Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: str = Field(default_factory=utc_timestamp)


# ============================================================================
# Kakao Login Models
# ============================================================================

class KakaoUserInfo(BaseModel):
    """Profile fields extracted from the Kakao user endpoint."""
    kakaoId: Optional[int] = None
    email: Optional[str] = None
    nickname: Optional[str] = None
    profileImage: Optional[str] = None
    thumbnailImage: Optional[str] = None
    gender: Optional[str] = None
    birthday: Optional[str] = None
    birthyear: Optional[str] = None
    hasEmail: bool = False
    emailValid: bool = False
    emailVerified: bool = False
    accessToken: str
    refreshToken: Optional[str] = None
    expiresIn: Optional[int] = None

    @classmethod
    def from_kakao(cls, token_data: Dict[str, Any], user_data: Dict[str, Any]) -> "KakaoUserInfo":
        """
        Build from the token exchange response and the ``/v2/user/me`` payload.

        Args:
            token_data: JSON from ``/oauth/token``
            user_data: JSON from ``/v2/user/me``
        """
        account = user_data.get("kakao_account") or {}
        profile = account.get("profile") or {}
        return cls(
            kakaoId=user_data.get("id"),
            email=account.get("email"),
            nickname=profile.get("nickname"),
            profileImage=profile.get("profile_image_url"),
            thumbnailImage=profile.get("thumbnail_image_url"),
            gender=account.get("gender"),
            birthday=account.get("birthday"),
            birthyear=account.get("birthyear"),
            hasEmail=bool(account.get("has_email", False)),
            emailValid=bool(account.get("is_email_valid", False)),
            emailVerified=bool(account.get("is_email_verified", False)),
            accessToken=token_data["access_token"],
            refreshToken=token_data.get("refresh_token"),
            expiresIn=token_data.get("expires_in"),
        )


class KakaoAuthResponse(BaseModel):
    success: bool = True
    userInfo: KakaoUserInfo
    timestamp: str = Field(default_factory=utc_timestamp)


# ============================================================================
# Admin Models
# ============================================================================

UNREGISTERED_PET_NAME = "프로필 미등록"


class AdminUserRecord(BaseModel):
    """One row of the admin user listing (auth user + profile + role)."""
    id: Optional[str] = Field(None, description="Profile row id, null when no profile exists")
    user_id: str
    pet_name: str = UNREGISTERED_PET_NAME
    pet_age: Optional[Any] = None
    pet_gender: Optional[str] = None
    pet_breed: Optional[str] = None
    pet_image_url: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    role: str = "user"


class AdminUsersResponse(BaseModel):
    users: List[AdminUserRecord]


# ============================================================================
# Password Reset Models
# ============================================================================

class PasswordResetRequest(BaseModel):
    """Validated password reset request."""
    email: EmailStr = Field(..., description="Recipient address")
    resetUrl: str = Field(..., min_length=1, description="Link embedded in the mail")


# ============================================================================
# Animal Hospital Models
# ============================================================================

class HospitalRecord(BaseModel):
    animal_hospital: str
    road_address: str
    tel: str
    gugun: str
    lat: float
    lon: float
    approval_date: str
    business_status: str


class HospitalListResponse(BaseModel):
    success: bool = True
    hospitals: List[HospitalRecord]
    totalCount: int
    filters: Dict[str, str]
    note: str


# ============================================================================
# Diagnostics Models
# ============================================================================

class ApiKeyStatus(BaseModel):
    hasApiKey: bool
    keyLength: int
    keyStart: str
    timestamp: str = Field(default_factory=utc_timestamp)


class ApiProbeResult(BaseModel):
    """Outcome of one tourism API probe."""
    name: str
    url: Optional[str] = None
    status: Any = Field(..., description="Upstream HTTP status, or 'ERROR' when unreachable")
    success: bool
    error: Optional[str] = None
    preview: Optional[str] = None
    keyStatus: Optional[str] = None
