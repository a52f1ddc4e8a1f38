"""
Tests for petgo/proxy/upstream.py (outbound calls and failure mapping).
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from petgo.errors import UpstreamHTTPError, UpstreamUnreachable
from petgo.proxy.upstream import UpstreamClient, decode_service_key, redact_url


@pytest.fixture
def http():
    return AsyncMock()


@pytest.fixture
def upstream(http):
    return UpstreamClient(http)


def test_redact_url_hides_credentials():
    url = "https://apis.data.go.kr/x?serviceKey=secret&pageNo=1"

    redacted = redact_url(url)

    assert "secret" not in redacted
    assert "serviceKey=***" in redacted
    assert "pageNo=1" in redacted


def test_redact_url_without_query():
    assert redact_url("https://dapi.kakao.com/v2/local") == "https://dapi.kakao.com/v2/local"


def test_decode_service_key_decodes_once_and_strips():
    assert decode_service_key("  abc%2Bdef%3D%3D \n") == "abc+def=="
    assert decode_service_key("abc+def==") == "abc+def=="


@pytest.mark.asyncio
async def test_fetch_drops_unset_params(upstream, http):
    http.request.return_value = httpx.Response(200, json={"ok": True})

    await upstream.fetch("Kakao", "GET", "https://example.test/a", params={"query": "q", "x": None})

    kwargs = http.request.call_args.kwargs
    assert kwargs["params"] == {"query": "q"}


@pytest.mark.asyncio
async def test_transport_error_is_unreachable(upstream, http):
    http.request.side_effect = httpx.ConnectError("connection refused")

    with pytest.raises(UpstreamUnreachable) as exc_info:
        await upstream.fetch("KMA", "GET", "http://example.test")

    assert exc_info.value.status_code == 500
    assert "connection refused" in exc_info.value.message


@pytest.mark.asyncio
async def test_timeout_is_unreachable(upstream, http):
    http.request.side_effect = httpx.ReadTimeout("timed out")

    with pytest.raises(UpstreamUnreachable):
        await upstream.fetch("KMA", "GET", "http://example.test")


@pytest.mark.asyncio
async def test_non_2xx_is_http_error_with_preview(upstream, http):
    http.request.return_value = httpx.Response(502, text="e" * 1000)

    with pytest.raises(UpstreamHTTPError) as exc_info:
        await upstream.fetch("KTO", "GET", "http://example.test")

    error = exc_info.value
    assert error.upstream_status == 502
    assert len(error.body_preview) == 200
    assert error.to_dict()["upstreamStatus"] == 502


@pytest.mark.asyncio
async def test_fetch_json_merges_metadata(upstream, http):
    http.request.return_value = httpx.Response(200, json={"response": {}})

    result = await upstream.fetch_json("KTO", "GET", "http://example.test", metadata={"request_info": {"a": 1}})

    assert result == {"response": {}, "request_info": {"a": 1}}
