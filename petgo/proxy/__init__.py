"""
Proxy Package
=============

This package implements the stateless proxy functions that call third-party
APIs (Kakao, KMA, KTO) on behalf of the browser client with server-held
secrets.

Main Components:
----------------
- routes.py: FastAPI router with the proxy functions
- params.py: Query/body parameter resolution
- upstream.py: Shared upstream caller and failure mapping
- envelope.py: Upstream body normalization (JSON / XML error envelope)
- cors.py: Preflight responder and CORS headers
- tourism.py, forecast.py, fixtures.py: Function-specific logic and data

Usage:
------
    from petgo.proxy import proxy_router
    app.include_router(proxy_router, prefix="/functions/v1")
"""

from .routes import proxy_router

__all__ = ["proxy_router"]
