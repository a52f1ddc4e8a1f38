"""
Configuration module for the petgo edge gateway.

This module uses Pydantic Settings to load third-party API secrets, upstream
base URLs and runtime options from environment variables.

Secrets are all optional at load time: each proxy function checks for the
secret it needs when it is invoked (see ``require_secret``), so a missing
weather key only breaks the weather function.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationMissing


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Groups:
        - Kakao (place search, OAuth, Maps SDK)
        - Public data portal (KMA beach forecast, KTO tourism)
        - Resend (transactional email)
        - Hosted auth backend (Supabase GoTrue + PostgREST)
        - Server runtime
    """

    # =========================================================================
    # Kakao
    # =========================================================================

    KAKAO_REST_API_KEY: Optional[str] = Field(
        None,
        description="Kakao REST API key (Local search + OAuth client id)",
    )

    KAKAO_JS_KEY: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("KAKAO_JS_KEY", "KAKAO_JS_API_KEY"),
        description="Kakao JavaScript app key used to fetch the Maps SDK",
    )

    KAKAO_API_BASE_URL: str = Field(default="https://dapi.kakao.com")
    KAKAO_AUTH_BASE_URL: str = Field(default="https://kauth.kakao.com")
    KAKAO_USER_API_BASE_URL: str = Field(default="https://kapi.kakao.com")

    # =========================================================================
    # Public data portal (apis.data.go.kr)
    # =========================================================================

    KMA_API_KEY: Optional[str] = Field(
        None,
        description="Service key for the KMA beach forecast API",
    )

    KOREA_TOUR_API_KEY: Optional[str] = Field(
        None,
        description="Service key for KTO KorService2 and KorPetTourService",
    )

    KTO_TOUR_SERVICE_KEY: Optional[str] = Field(
        None,
        description="Service key for KTO KorService1",
    )

    KMA_BASE_URL: str = Field(default="http://apis.data.go.kr/1360000")
    KTO_BASE_URL: str = Field(default="https://apis.data.go.kr/B551011")

    # =========================================================================
    # Resend
    # =========================================================================

    RESEND_API_KEY: Optional[str] = Field(None, description="Resend API key")

    RESEND_FROM_ADDRESS: str = Field(
        default="멍멍! 일단 출발해! <onboarding@resend.dev>",
        description="Sender used for password reset mail",
    )

    RESEND_BASE_URL: str = Field(default="https://api.resend.com")

    # =========================================================================
    # Hosted auth backend
    # =========================================================================

    SUPABASE_URL: Optional[str] = Field(
        None,
        description="Project URL of the hosted auth backend (e.g. https://abc.supabase.co)",
    )

    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = Field(
        None,
        description="Service role key (server side only)",
    )

    SUPABASE_ANON_KEY: Optional[str] = Field(
        None,
        description="Public anon key (client side session mirror)",
    )

    SUPABASE_JWT_SECRET: Optional[str] = Field(
        None,
        description="JWT secret for verifying access tokens locally (optional)",
    )

    SUPABASE_JWT_AUDIENCE: str = Field(default="authenticated")

    # =========================================================================
    # Server
    # =========================================================================

    PETGO_HOST: str = Field(default="0.0.0.0")

    PETGO_PORT: int = Field(default=8080, ge=1, le=65535)

    LOG_LEVEL: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def supabase_url_str(self) -> Optional[str]:
        """Hosted auth backend URL without trailing slash."""
        if not self.SUPABASE_URL:
            return None
        return self.SUPABASE_URL.rstrip("/")

    @property
    def supabase_project_ref(self) -> Optional[str]:
        """
        Project reference (first host label of SUPABASE_URL).

        Returns:
            e.g. ``"abc"`` for ``https://abc.supabase.co``, or None.
        """
        url = self.supabase_url_str
        if not url:
            return None
        host = url.split("://", 1)[-1].split("/", 1)[0]
        return host.split(".", 1)[0]

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.upper()
        if level not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return level

    @field_validator(
        "KAKAO_API_BASE_URL",
        "KAKAO_AUTH_BASE_URL",
        "KAKAO_USER_API_BASE_URL",
        "KMA_BASE_URL",
        "KTO_BASE_URL",
        "RESEND_BASE_URL",
    )
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Used as a FastAPI dependency, so tests can swap it through
    ``app.dependency_overrides[get_settings]``.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

SECRET_NAMES: List[str] = [
    "KAKAO_REST_API_KEY",
    "KAKAO_JS_KEY",
    "KMA_API_KEY",
    "KOREA_TOUR_API_KEY",
    "KTO_TOUR_SERVICE_KEY",
    "RESEND_API_KEY",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_ANON_KEY",
]


def require_secret(settings: Settings, name: str) -> str:
    """
    Return a configured secret or fail the current invocation.

    Args:
        settings: Application settings
        name: Attribute name of the secret

    Returns:
        The secret value with surrounding whitespace removed

    Raises:
        ConfigurationMissing: If the secret is unset or blank
    """
    value = getattr(settings, name, None)
    if not value or not str(value).strip():
        raise ConfigurationMissing(name)
    return str(value).strip()


def validate_configuration(settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Report which secrets are configured.

    Missing secrets are warnings rather than errors: the gateway still starts
    and only the affected functions fail.

    Returns:
        Dictionary with ``valid``, ``errors``, ``warnings`` and ``configured``.
    """
    settings = settings or get_settings()
    errors: List[str] = []
    warnings: List[str] = []

    configured = {name: bool(getattr(settings, name, None)) for name in SECRET_NAMES}
    for name, present in configured.items():
        if not present:
            warnings.append(f"{name} is not set")

    if settings.SUPABASE_SERVICE_ROLE_KEY and not settings.SUPABASE_URL:
        errors.append("SUPABASE_SERVICE_ROLE_KEY is set but SUPABASE_URL is missing")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "configured": configured,
    }


if __name__ == "__main__":
    """
    Validate your .env configuration:
        python -m petgo.config
    """
    print("=" * 80)
    print("PETGO CONFIGURATION")
    print("=" * 80)

    config = get_settings()
    status = validate_configuration(config)

    print("\nSecrets:")
    for name, present in status["configured"].items():
        print(f"  {name:<28} {'set' if present else 'missing'}")

    print("\nServer:")
    print(f"  Host:      {config.PETGO_HOST}")
    print(f"  Port:      {config.PETGO_PORT}")
    print(f"  Log level: {config.LOG_LEVEL}")

    if status["errors"]:
        print("\n✗ Configuration errors found:")
        for error in status["errors"]:
            print(f"  - {error}")
    else:
        print("\n✓ No blocking configuration errors")
