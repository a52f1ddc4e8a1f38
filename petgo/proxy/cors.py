"""
CORS Responder
==============

Browser clients call the proxy functions cross-origin with the hosted
client's default headers (``authorization``, ``x-client-info``, ``apikey``).
Preflight requests are answered here for every path, before routing, with an
empty 200; all other responses get the same headers appended.
"""

from typing import Dict

from fastapi import Response

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


def preflight_response() -> Response:
    """Empty 200 carrying the CORS headers."""
    return Response(status_code=200, headers=CORS_HEADERS)


def apply_cors_headers(response: Response) -> Response:
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response
