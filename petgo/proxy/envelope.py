"""
Upstream Response Normalization
===============================

Government-operated APIs on apis.data.go.kr answer errors with an XML
envelope even when JSON was requested::

    <OpenAPI_ServiceResponse>
        <cmmMsgHeader>
            <errMsg>SERVICE ERROR</errMsg>
            <returnAuthMsg>SERVICE_KEY_IS_NOT_REGISTERED_ERROR</returnAuthMsg>
            ...

``parse_envelope`` classifies a raw body into one of three tagged results
and ``normalize`` turns that into either a JSON payload (with request
metadata merged in) or a typed ``ProxyError``.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from ..errors import (
    PREVIEW_LENGTH,
    UnexpectedResponseFormat,
    UpstreamProtocolError,
    truncate,
)

ERROR_ENVELOPE_MARKER = "<errMsg>"

_ERR_MSG_PATTERN = re.compile(r"<errMsg>(.*?)</errMsg>", re.DOTALL)


@dataclass(frozen=True)
class Ok:
    value: Any


@dataclass(frozen=True)
class ErrEnvelope:
    message: str


@dataclass(frozen=True)
class Unrecognized:
    preview: str


EnvelopeResult = Union[Ok, ErrEnvelope, Unrecognized]


def parse_envelope(text: str) -> EnvelopeResult:
    """
    Classify an upstream body.

    Args:
        text: Raw response body

    Returns:
        ``Ok(value)`` for JSON, ``ErrEnvelope(message)`` when the body carries
        an ``<errMsg>`` element, ``Unrecognized(preview)`` otherwise.
    """
    try:
        return Ok(json.loads(text))
    except (ValueError, TypeError):
        pass

    if text and ERROR_ENVELOPE_MARKER in text:
        match = _ERR_MSG_PATTERN.search(text)
        if match:
            return ErrEnvelope(match.group(1))

    return Unrecognized(truncate(text, PREVIEW_LENGTH))


def merge_metadata(payload: Any, metadata: Optional[Mapping[str, Any]]) -> Any:
    """
    Add metadata fields to a JSON payload without overwriting existing keys.

    Non-object payloads are wrapped as ``{"data": payload, **metadata}``.
    """
    if not metadata:
        return payload
    if isinstance(payload, dict):
        merged = dict(payload)
        for key, value in metadata.items():
            merged.setdefault(key, value)
        return merged
    wrapped = {"data": payload}
    for key, value in metadata.items():
        wrapped.setdefault(key, value)
    return wrapped


def normalize(
    text: str,
    service: str,
    metadata: Optional[Mapping[str, Any]] = None,
) -> Any:
    """
    Parse an upstream body and merge caller metadata.

    Raises:
        UpstreamProtocolError: The body is the XML error envelope
        UnexpectedResponseFormat: The body is neither JSON nor the envelope
    """
    result = parse_envelope(text)
    if isinstance(result, ErrEnvelope):
        raise UpstreamProtocolError(service, result.message)
    if isinstance(result, Unrecognized):
        raise UnexpectedResponseFormat(service, result.preview)
    return merge_metadata(result.value, metadata)


__all__ = [
    "ERROR_ENVELOPE_MARKER",
    "Ok",
    "ErrEnvelope",
    "Unrecognized",
    "EnvelopeResult",
    "parse_envelope",
    "merge_metadata",
    "normalize",
]
