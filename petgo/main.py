"""
FastAPI Edge Gateway Application Factory
========================================

This is the main entry point for the gateway that sits between the browser
client and the third-party APIs it may not call with secrets of its own.

Architecture:
    Browser → Gateway (this service) → Kakao / KMA / KTO / Resend / hosted auth backend

Routers:
    - /functions/v1/*   : Proxy and auth functions (one path per function)
    - /health           : Health check endpoint

Request Boundary:
    - OPTIONS on any path is answered before routing (empty 200 + CORS headers)
    - ProxyError subclasses render as {"error", "kind", "timestamp", ...extra}
    - Any other exception renders as a 500 with the exception message
    - Every response carries the CORS headers

Environment Variables:
    See petgo/config.py (all secrets optional; missing ones fail only the
    functions that need them).

Running the Service:
    Development:
        uvicorn petgo.main:app --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn petgo.main:app --host 0.0.0.0 --port 8080 --workers 4

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn petgo.main:app --reload
"""

import logging
import sys
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Any, Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .auth import auth_router
from .config import get_settings, validate_configuration
from .errors import ProxyError
from .models import HealthResponse, utc_timestamp
from .proxy import proxy_router
from .proxy.cors import apply_cors_headers, preflight_response
from .proxy.upstream import UpstreamClient

FUNCTIONS_PREFIX = "/functions/v1"

SERVICE_NAME = "petgo-gateway"


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Report unset secrets
        - Create the shared upstream HTTP client

    Shutdown tasks:
        - Close the upstream HTTP client
    """
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("petgo.main")

    status = validate_configuration(settings)
    for warning in status["warnings"]:
        logger.warning(warning)
    for error in status["errors"]:
        logger.error(error)

    http = httpx.AsyncClient(follow_redirects=True)
    app.state.upstream = UpstreamClient(http)

    logger.info(
        "Gateway started",
        extra={"service": SERVICE_NAME, "version": __version__, "log_level": settings.LOG_LEVEL},
    )

    yield

    logger.info("Shutting down gateway")
    await http.aclose()
    app.state.upstream = None
    logger.info("Gateway shutdown complete")


def _error_response(
    status_code: int,
    body: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body = dict(body)
    body["timestamp"] = utc_timestamp()
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def http_error_kind(status_code: int) -> str:
    """Stable kind for framework HTTP errors, e.g. 405 -> ``MethodNotAllowed``."""
    try:
        return "".join(HTTPStatus(status_code).phrase.split())
    except ValueError:
        return "HTTPError"


# Create FastAPI application
def create_application() -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - Preflight/CORS and error boundary middleware
        - ProxyError exception handler
        - Function routers

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title="petgo Edge Gateway",
        description="Secret-injecting proxy functions for the pet travel client",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    @app.middleware("http")
    async def cors_and_error_boundary(request: Request, call_next):
        """Answer preflights, render unhandled exceptions, add CORS headers."""
        if request.method == "OPTIONS":
            return preflight_response()

        try:
            response = await call_next(request)
        except Exception as exc:
            logging.getLogger("petgo.main").error(
                f"Unhandled exception: {exc}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "exception_type": type(exc).__name__,
                },
                exc_info=True,
            )
            response = _error_response(500, {"error": str(exc), "kind": "InternalError"})

        return apply_cors_headers(response)

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        """
        Render a ProxyError as the standard error body.

        Args:
            request: FastAPI request object
            exc: Error raised by a function

        Returns:
            JSONResponse with the error's status code
        """
        log = logging.getLogger("petgo.main")
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        log.log(
            level,
            f"{exc.kind}: {exc.message}",
            extra={"path": request.url.path, "method": request.method, "status_code": exc.status_code},
        )
        return _error_response(exc.status_code, exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """
        Render framework HTTP errors (unknown route, wrong method, missing
        app state) in the standard error body.
        """
        logging.getLogger("petgo.main").warning(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={"path": request.url.path, "method": request.method, "status_code": exc.status_code},
        )
        return _error_response(
            exc.status_code,
            {"error": str(exc.detail), "kind": http_error_kind(exc.status_code)},
            headers=getattr(exc, "headers", None),
        )

    # Function routers
    app.include_router(proxy_router, prefix=FUNCTIONS_PREFIX, tags=["Proxy Functions"])
    app.include_router(auth_router, prefix=FUNCTIONS_PREFIX)

    # Health check endpoint
    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Service status and basic metadata."""
        return HealthResponse(status="ok", service=SERVICE_NAME, version=__version__)

    # Root endpoint
    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        """
        Root endpoint with service information.

        Returns:
            dict: Service metadata and available endpoints
        """
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "description": "Secret-injecting proxy functions for the pet travel client",
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "functions": FUNCTIONS_PREFIX,
            },
        }

    return app


# Create app instance for uvicorn
app = create_application()


if __name__ == "__main__":
    """
    Direct execution entry point.

    This allows running the service directly with: python -m petgo.main
    However, using uvicorn command is recommended for production.
    """
    settings = get_settings()

    uvicorn.run(
        "petgo.main:app",
        host=settings.PETGO_HOST,
        port=settings.PETGO_PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
