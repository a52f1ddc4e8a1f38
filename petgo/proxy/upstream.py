"""
Upstream Caller
===============

Thin wrapper over a shared ``httpx.AsyncClient`` that every proxy function
uses to reach its third-party API.

Failure mapping:
    httpx.TransportError (DNS, connect, timeouts, ...) -> UpstreamUnreachable
    non-2xx status                                   -> UpstreamHTTPError

Credentials are injected by the caller (query ``serviceKey`` or an
Authorization header). Logged URLs have credential query values redacted.
"""

import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

import httpx
from fastapi import HTTPException, Request, status

from ..errors import UpstreamHTTPError, UpstreamUnreachable, truncate
from .envelope import normalize

logger = logging.getLogger(__name__)

# Query parameters whose values never reach the logs
SECRET_QUERY_PARAMS = {"serviceKey", "appkey", "client_secret", "code"}

REDACTED = "***"


def redact_url(url: str) -> str:
    """Replace credential query values in ``url`` with ``***``."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = [
        (key, REDACTED if key in SECRET_QUERY_PARAMS else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(pairs, safe="*")))


def decode_service_key(raw: str) -> str:
    """
    Normalize a data.go.kr service key.

    The portal hands out both an "encoded" and a "decoded" key. Decoding once
    here lets httpx encode it exactly once on the wire.
    """
    key = raw.strip()
    try:
        return unquote(key)
    except (TypeError, ValueError):
        return key


class UpstreamClient:
    """
    Issues outbound calls and maps failures to the proxy error taxonomy.

    Attributes:
        http: Shared async HTTP client (owned by the application lifespan)
    """

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def fetch(
        self,
        service: str,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        data: Optional[Mapping[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> httpx.Response:
        """
        Issue one request and return the successful response.

        Args:
            service: Upstream name used in logs and errors (e.g. "KMA")
            method: HTTP method
            url: Absolute URL without the query string
            params: Query parameters (may include the credential)
            headers: Request headers (may include the credential)
            data: Form body
            json: JSON body

        Returns:
            httpx.Response with a 2xx status

        Raises:
            UpstreamUnreachable: Network failure
            UpstreamHTTPError: Non-2xx status
        """
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        safe_params = {
            k: (REDACTED if k in SECRET_QUERY_PARAMS else v) for k, v in clean_params.items()
        }
        logger.info(
            f"Calling {service}",
            extra={"service": service, "method": method, "url": redact_url(url), "params": safe_params},
        )

        try:
            response = await self.http.request(
                method,
                url,
                params=clean_params or None,
                headers=headers,
                data=data,
                json=json,
            )
        except httpx.TransportError as e:
            logger.error(
                f"{service} unreachable: {e}",
                extra={"service": service, "url": redact_url(url)},
            )
            raise UpstreamUnreachable(service, str(e) or type(e).__name__) from e

        body = response.text
        logger.info(
            f"{service} responded {response.status_code}",
            extra={
                "service": service,
                "status_code": response.status_code,
                "length": len(body),
                "preview": truncate(body),
            },
        )

        if not response.is_success:
            logger.error(
                f"{service} error: {response.status_code}",
                extra={"service": service, "details": truncate(body)},
            )
            raise UpstreamHTTPError(service, response.status_code, body)

        return response

    async def fetch_text(self, service: str, method: str, url: str, **kwargs: Any) -> str:
        response = await self.fetch(service, method, url, **kwargs)
        return response.text

    async def fetch_json(
        self,
        service: str,
        method: str,
        url: str,
        *,
        metadata: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> Any:
        """Fetch and normalize (JSON, XML error envelope, or unrecognized)."""
        text = await self.fetch_text(service, method, url, **kwargs)
        return normalize(text, service, metadata)


# ============================================================================
# Dependencies
# ============================================================================

def get_upstream_client(request: Request) -> UpstreamClient:
    """
    Dependency returning the upstream client from app state.

    Raises:
        HTTPException: 503 if the application lifespan has not created it
    """
    client = getattr(request.app.state, "upstream", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Upstream client not initialized",
        )
    return client
