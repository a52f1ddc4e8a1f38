"""
Tests for petgo/proxy/envelope.py (upstream body normalization).
"""

import pytest

from petgo.errors import UnexpectedResponseFormat, UpstreamProtocolError
from petgo.proxy.envelope import (
    ErrEnvelope,
    Ok,
    Unrecognized,
    merge_metadata,
    normalize,
    parse_envelope,
)


SERVICE_KEY_ERROR = """<OpenAPI_ServiceResponse>
    <cmmMsgHeader>
        <errMsg>SERVICE ERROR</errMsg>
        <returnAuthMsg>SERVICE_KEY_IS_NOT_REGISTERED_ERROR</returnAuthMsg>
        <returnReasonCode>30</returnReasonCode>
    </cmmMsgHeader>
</OpenAPI_ServiceResponse>"""


def test_json_body_is_ok():
    assert parse_envelope('{"response": {"body": {}}}') == Ok({"response": {"body": {}}})


def test_error_envelope_message_is_extracted_exactly():
    assert parse_envelope(SERVICE_KEY_ERROR) == ErrEnvelope("SERVICE ERROR")


def test_error_envelope_message_keeps_inner_whitespace():
    result = parse_envelope("<r><errMsg> LIMITED NUMBER OF SERVICE REQUESTS EXCEEDS </errMsg></r>")

    assert result == ErrEnvelope(" LIMITED NUMBER OF SERVICE REQUESTS EXCEEDS ")


def test_unrecognized_body_is_previewed():
    text = "<html>" + "x" * 500
    result = parse_envelope(text)

    assert isinstance(result, Unrecognized)
    assert result.preview == text[:200]


def test_empty_body_is_unrecognized():
    assert parse_envelope("") == Unrecognized("")


def test_metadata_never_overwrites_existing_keys():
    payload = {"response": {"header": {}}, "request_info": "upstream"}

    merged = merge_metadata(payload, {"request_info": "ours", "extra": 1})

    assert merged["request_info"] == "upstream"
    assert merged["extra"] == 1
    assert merged["response"] == payload["response"]


def test_metadata_keeps_payload_untouched():
    payload = {"a": 1}

    merge_metadata(payload, {"b": 2})

    assert payload == {"a": 1}


def test_non_object_payload_is_wrapped_only_with_metadata():
    assert merge_metadata([1, 2], None) == [1, 2]
    assert merge_metadata([1, 2], {"request_info": {}}) == {"data": [1, 2], "request_info": {}}


def test_normalize_raises_protocol_error():
    with pytest.raises(UpstreamProtocolError) as exc_info:
        normalize(SERVICE_KEY_ERROR, "KTO")

    error = exc_info.value
    assert error.message == "SERVICE ERROR"
    assert error.status_code == 500
    assert error.to_dict()["service"] == "KTO"


def test_normalize_raises_unexpected_format():
    with pytest.raises(UnexpectedResponseFormat) as exc_info:
        normalize("not json", "KMA")

    assert exc_info.value.to_dict()["raw"] == "not json"


def test_normalize_merges_metadata():
    result = normalize('{"items": []}', "KTO", {"request_info": {"pageNo": 1}})

    assert result == {"items": [], "request_info": {"pageNo": 1}}
