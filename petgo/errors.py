"""
Error Taxonomy
==============

Every failure a proxy function can report is a ``ProxyError`` subclass.
The application boundary (see ``petgo.main``) renders them into the stable
JSON error shape::

    {"error": "<message>", "kind": "<Kind>", "timestamp": "<iso8601>", ...extra}

Kinds and status codes:
    MissingParameter          400
    InvalidParameter          400
    Unauthorized              401
    Forbidden                 403
    ConfigurationMissing      500
    UpstreamUnreachable       500
    UpstreamHTTPError         500
    UpstreamProtocolError     500
    UnexpectedResponseFormat  500
"""

from typing import Any, Dict, List, Optional


# Upstream bodies quoted in error details are cut to this many characters
PREVIEW_LENGTH = 200


def truncate(text: Optional[str], limit: int = PREVIEW_LENGTH) -> str:
    """Return at most ``limit`` characters of ``text`` (empty string for None)."""
    if not text:
        return ""
    return text[:limit]


class ProxyError(Exception):
    """
    Base class for errors surfaced to the caller as JSON.

    Attributes:
        status_code: HTTP status returned to the client
        kind: Stable machine-readable error kind
        extra: Additional top-level fields merged into the error body
    """

    status_code: int = 500
    kind: str = "ProxyError"

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = dict(extra or {})

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "kind": self.kind}
        body.update(self.extra)
        return body


# =============================================================================
# Request-side errors
# =============================================================================

class MissingParameter(ProxyError):
    """A required parameter was found in neither the query nor the body."""

    status_code = 400
    kind = "MissingParameter"

    def __init__(
        self,
        missing: List[str],
        message: Optional[str] = None,
        available: Optional[List[str]] = None,
        available_key: str = "available",
    ):
        self.missing = list(missing)
        self.available = list(available) if available is not None else None
        extra: Dict[str, Any] = {"missing": self.missing}
        if self.available is not None:
            extra[available_key] = self.available
        super().__init__(
            message or f"Missing required parameters: {', '.join(self.missing)}",
            extra=extra,
        )


class InvalidParameter(ProxyError):
    status_code = 400
    kind = "InvalidParameter"


class Unauthorized(ProxyError):
    status_code = 401
    kind = "Unauthorized"


class Forbidden(ProxyError):
    status_code = 403
    kind = "Forbidden"


# =============================================================================
# Server-side errors
# =============================================================================

class ConfigurationMissing(ProxyError):
    """A secret required by this invocation is not configured."""

    kind = "ConfigurationMissing"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} is not configured")


class UpstreamError(ProxyError):
    """Base class for failures talking to a third-party API."""

    kind = "UpstreamError"

    def __init__(self, service: str, message: str, extra: Optional[Dict[str, Any]] = None):
        self.service = service
        payload = {"service": service}
        payload.update(extra or {})
        super().__init__(message, extra=payload)


class UpstreamUnreachable(UpstreamError):
    kind = "UpstreamUnreachable"

    def __init__(self, service: str, reason: str):
        super().__init__(service, f"{service} is unreachable: {reason}")


class UpstreamHTTPError(UpstreamError):
    """The upstream answered with a non-2xx status."""

    kind = "UpstreamHTTPError"

    def __init__(self, service: str, status: int, body: str):
        self.upstream_status = status
        self.body_preview = truncate(body)
        super().__init__(
            service,
            f"{service} failed with status: {status}",
            extra={"upstreamStatus": status, "details": self.body_preview},
        )


class UpstreamProtocolError(UpstreamError):
    """The upstream returned its XML error envelope instead of data."""

    kind = "UpstreamProtocolError"

    def __init__(self, service: str, upstream_message: str):
        self.upstream_message = upstream_message
        super().__init__(service, upstream_message)


class UnexpectedResponseFormat(UpstreamError):
    kind = "UnexpectedResponseFormat"

    def __init__(self, service: str, preview: str):
        self.preview = preview
        super().__init__(
            service,
            f"{service} returned an unrecognized response",
            extra={"raw": preview},
        )


__all__ = [
    "PREVIEW_LENGTH",
    "truncate",
    "ProxyError",
    "MissingParameter",
    "InvalidParameter",
    "Unauthorized",
    "Forbidden",
    "ConfigurationMissing",
    "UpstreamError",
    "UpstreamUnreachable",
    "UpstreamHTTPError",
    "UpstreamProtocolError",
    "UnexpectedResponseFormat",
]
