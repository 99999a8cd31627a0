"""Blogen - Shopify blog content backend."""

import logging
import tomllib
from contextlib import asynccontextmanager
from typing import Optional

import httpx

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from blogen.api import api_router
from blogen.config import PROJECT_ROOT_DIR, Settings, get_settings
from blogen.db import build_engine, build_session_factory, init_db
from blogen.services.session import SessionManager
from blogen.utils.encryption import EncryptionService
from blogen.utils.security import sanitize_log_message

logger = logging.getLogger(__name__)


def get_version() -> str:
    """Read version from pyproject.toml (single source of truth)."""
    pyproject_path = PROJECT_ROOT_DIR / "pyproject.toml"
    try:
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        return data["project"]["version"]
    except (FileNotFoundError, KeyError, tomllib.TOMLDecodeError) as e:
        logger.warning("Could not read version from pyproject.toml: %s", e)
        return "0.0.0-dev"


class EndpointFilter(logging.Filter):
    """Filter to exclude specific endpoints from Granian access logs."""

    def __init__(self, excluded_paths: list[str]) -> None:
        super().__init__()
        self.excluded_paths = excluded_paths

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        return not any(path in message for path in self.excluded_paths)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("granian.access").addFilter(EndpointFilter(["/health"]))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("Starting Blogen...")

    await init_db(app.state.engine)
    logger.info("Database initialized")

    yield

    logger.info("Shutting down Blogen...")
    await app.state.engine.dispose()


def create_app(
    settings: Optional[Settings] = None,
    shopify_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Objects derived from configuration are built here from ``settings`` and
    kept on ``app.state``; request handlers never read process-wide settings.

    Args:
        settings: Configuration to use; defaults to the process settings
        shopify_transport: httpx transport for calls to Shopify (tests use httpx.MockTransport)
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Blogen",
        description="Shopify blog content backend",
        version=get_version(),
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_manager = SessionManager(settings.session_secret)
    app.state.encryption = EncryptionService(settings.blogen_encryption_key)
    app.state.engine = build_engine(settings.database_url)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.shopify_transport = shopify_transport

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        """Add security headers to all responses.

        Headers added:
        - X-Content-Type-Options: nosniff (prevents MIME sniffing)
        - X-Frame-Options: DENY (prevents clickjacking)
        - Referrer-Policy: keeps OAuth query strings out of Referer headers
        - Strict-Transport-Security: HSTS (production only)
        - Content-Security-Policy: restricts resource loading
        """
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        csp_directives = [
            "default-src 'self'",
            "img-src 'self' data: https:",
            "connect-src 'self'",
            "frame-ancestors 'none'",
        ]
        response.headers["Content-Security-Policy"] = "; ".join(csp_directives)

        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Answer every HTTP error as ``{"error": message}``."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info(
            "Rejected invalid request to %s: %s",
            request.url.path,
            sanitize_log_message(str(exc.errors())),
        )
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Generic exception handler to prevent stack trace exposure.

        In debug mode (BLOGEN_DEBUG=true) the exception type and message are
        returned. All errors are logged internally with full details.
        """
        logger.error(
            "Unhandled exception: %s: %s",
            type(exc).__name__,
            sanitize_log_message(str(exc)),
            exc_info=True,
            extra={
                "path": request.url.path,
                "method": request.method,
                "client": request.client.host if request.client else "unknown",
            },
        )

        if settings.blogen_debug:
            return JSONResponse(
                status_code=500,
                content={"error": str(exc), "type": type(exc).__name__, "debug": True},
            )

        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "blogen"}

    @app.get("/")
    async def root():
        return {
            "message": "Blogen API",
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(api_router)

    return app


app = create_app()


if __name__ == "__main__":
    import subprocess
    import sys

    # Use same server as production (Granian) for consistency
    cmd = [
        "granian",
        "--interface",
        "asgi",
        "--host",
        "0.0.0.0",
        "--port",
        "8000",
        "--reload",
        "blogen.main:app",
    ]

    sys.exit(subprocess.run(cmd).returncode)
