"""
Shared fixtures for the gateway tests.

The application is built without running its lifespan; the upstream HTTP
client is replaced by an ``AsyncMock`` so each test scripts the third-party
responses it needs through ``mock_http.request``.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from petgo.config import Settings, get_settings
from petgo.main import create_application
from petgo.proxy.upstream import UpstreamClient


@pytest.fixture
def mock_settings():
    """Settings with every secret configured"""
    return Settings(
        _env_file=None,
        KAKAO_REST_API_KEY="test-kakao-rest-key",
        KAKAO_JS_KEY="test-kakao-js-key",
        KMA_API_KEY="kma%2Bkey%3D%3D",
        KOREA_TOUR_API_KEY="  kto-pet-key  ",
        KTO_TOUR_SERVICE_KEY="kto-service-key-1234567890",
        RESEND_API_KEY="re_test_key",
        SUPABASE_URL="https://abcdefgh.supabase.co",
        SUPABASE_SERVICE_ROLE_KEY="service-role-key",
        SUPABASE_ANON_KEY="anon-key",
        SUPABASE_JWT_SECRET=None,
    )


@pytest.fixture
def mock_http():
    """Mock httpx AsyncClient for upstream calls"""
    return AsyncMock()


@pytest.fixture
def app(mock_settings, mock_http):
    """Create test FastAPI application"""
    app = create_application()
    app.state.upstream = UpstreamClient(mock_http)
    app.dependency_overrides[get_settings] = lambda: mock_settings
    return app


@pytest.fixture
def client(app):
    """Create test client"""
    return TestClient(app)
