"""
Sentinel - Compliance Case Management

FastAPI application entry point with security hardening.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from sentinel import __version__
from sentinel.cases.sorting import configure_collation
from sentinel.config import Settings, settings as default_settings
from sentinel.db.session import build_engine, build_sessionmaker, create_schema
from sentinel.errors import ConflictError, NotFoundError
from sentinel.realtime.feed import ChangeFeed
from sentinel.security.auth import AuthenticationError, AuthorizationError
from sentinel.storage.blobs import BlobExistsError, BlobNotFoundError, BlobStore, BlobStoreError
from sentinel.team.preferences import PreferencesStore

logger = logging.getLogger(__name__)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Limit request body size to prevent DoS attacks."""

    MAX_BODY_SIZE = 1024 * 1024  # 1MB

    UPLOAD_PATHS = ("/files", "/avatar")
    AUTH_PREFIX = "/api/v1/auth"
    AUTH_MAX_BODY_SIZE = 4 * 1024

    def __init__(self, app, max_upload_bytes: int):
        super().__init__(app)
        self.max_upload_bytes = max_upload_bytes

    def limit_for(self, path: str) -> int:
        if path.startswith(self.AUTH_PREFIX):
            return self.AUTH_MAX_BODY_SIZE
        if path.endswith(self.UPLOAD_PATHS):
            # Multipart framing on top of the file itself
            return self.max_upload_bytes + 64 * 1024
        return self.MAX_BODY_SIZE

    async def dispatch(self, request: Request, call_next) -> Response:
        max_size = self.limit_for(request.url.path)

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > max_size:
                    return JSONResponse(
                        status_code=413,
                        content={
                            "detail": f"Request body exceeds maximum size of {max_size // 1024}KB",
                            "max_size_bytes": max_size,
                        },
                    )
            except ValueError:
                pass

        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    def __init__(self, app, hsts: bool = False):
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "img-src 'self' data:; "
            "frame-ancestors 'none'; "
            "form-action 'self';"
        )
        response.headers["Permissions-Policy"] = (
            "camera=(), geolocation=(), microphone=(), payment=(), usb=()"
        )

        # HSTS (only in production with HTTPS)
        if self.hsts:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        if "server" in response.headers:
            del response.headers["server"]

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log requests for auditing."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()

        request_id = request.headers.get("X-Request-ID", f"req_{int(time.time() * 1000)}")

        logger.info(
            f"Request: {request.method} {request.url.path} "
            f"[{request_id}] from {request.client.host if request.client else 'unknown'}"
        )

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time)

        logger.info(
            f"Response: {request.method} {request.url.path} "
            f"[{request_id}] status={response.status_code} time={process_time:.3f}s"
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    config: Settings = app.state.settings
    logger.info("Starting Sentinel...")

    engine = build_engine(config.database_url, echo=config.debug)
    if config.create_schema:
        await create_schema(engine)

    collation = configure_collation(config.collation_locale)
    logger.info(f"Sorting text with collation {collation}")

    blobs = BlobStore(config.storage_root, config.public_base_url)
    blobs.ensure_buckets()

    app.state.engine = engine
    app.state.db_session = build_sessionmaker(engine)
    app.state.blobs = blobs
    app.state.feed = ChangeFeed()
    app.state.preferences = PreferencesStore(config.preferences_path)

    logger.info("Sentinel started successfully")

    yield

    logger.info("Shutting down Sentinel...")
    app.state.feed.close()
    await engine.dispose()
    logger.info("Sentinel shutdown complete")


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI, config: Settings) -> None:
    """Map domain errors to HTTP responses with a single detail message."""

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={
                "detail": "Too many requests. Please try again later.",
                "retry_after": exc.detail,
            },
            headers={"Retry-After": str(exc.detail)},
        )

    @app.exception_handler(AuthenticationError)
    async def authentication_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": str(exc)},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(AuthorizationError)
    async def authorization_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
        logger.warning(f"Forbidden {request.method} {request.url.path}: {exc}")
        return _error(status.HTTP_403_FORBIDDEN, exc)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(BlobNotFoundError)
    async def blob_not_found_handler(request: Request, exc: BlobNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(BlobExistsError)
    async def blob_exists_handler(request: Request, exc: BlobExistsError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(BlobStoreError)
    async def blob_store_handler(request: Request, exc: BlobStoreError) -> JSONResponse:
        logger.error(f"Blob store failure on {request.url.path}: {exc}")
        return _error(status.HTTP_502_BAD_GATEWAY, exc)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions securely."""
        logger.exception(f"Unhandled exception: {exc}")

        # Never expose internal error details in production
        if config.is_production:
            return JSONResponse(
                status_code=500,
                content={"detail": "An unexpected error occurred. Please contact support."},
            )

        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "type": type(exc).__name__},
        )


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """
    Build the Sentinel application.

    Args:
        config: Settings to run with; defaults to the environment-loaded settings
    """
    config = config or default_settings

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title="Sentinel",
        description="Compliance case management for CTR and Form 8300 filings",
        version=__version__,
        lifespan=lifespan,
        # Disable docs in production
        docs_url="/docs" if not config.is_production else None,
        redoc_url="/redoc" if not config.is_production else None,
        openapi_url="/openapi.json" if not config.is_production else None,
    )
    app.state.settings = config

    # Rate limiting
    app.state.limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[f"{config.rate_limit_requests}/{config.rate_limit_window_seconds}seconds"],
    )
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(RequestSizeLimitMiddleware, max_upload_bytes=config.max_upload_bytes)
    app.add_middleware(SecurityHeadersMiddleware, hsts=config.is_production)
    app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=config.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Process-Time", "Content-Disposition"],
        max_age=600,
    )

    register_exception_handlers(app, config)

    @app.get("/health")
    async def health_check(request: Request) -> dict[str, Any]:
        """
        Health check endpoint.

        Returns the status of the case store and blob store.
        """
        health_status: dict[str, Any] = {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "services": {},
        }

        try:
            async with request.app.state.db_session() as session:
                await session.execute(text("SELECT 1"))
            health_status["services"]["database"] = {"status": "healthy"}
        except Exception as e:
            logger.error(f"Health check: database unavailable: {e}")
            health_status["services"]["database"] = {"status": "unhealthy", "error": str(e)}
            health_status["status"] = "degraded"

        storage_ok = request.app.state.blobs.root.is_dir()
        health_status["services"]["storage"] = {
            "status": "healthy" if storage_ok else "unhealthy"
        }
        if not storage_ok:
            health_status["status"] = "degraded"

        return health_status

    from sentinel.api.routes import (
        archive_router,
        auth_router,
        cases_router,
        dashboard_router,
        files_router,
        patrons_router,
        realtime_router,
        reports_router,
        settings_router,
        storage_router,
        team_router,
    )

    app.include_router(auth_router, prefix="/api/v1", tags=["authentication"])
    app.include_router(cases_router, prefix="/api/v1/cases", tags=["cases"])
    app.include_router(files_router, prefix="/api/v1", tags=["files"])
    app.include_router(archive_router, prefix="/api/v1/archive", tags=["archive"])
    app.include_router(patrons_router, prefix="/api/v1/patrons", tags=["patrons"])
    app.include_router(reports_router, prefix="/api/v1/reports", tags=["reports"])
    app.include_router(dashboard_router, prefix="/api/v1/dashboard", tags=["dashboard"])
    app.include_router(team_router, prefix="/api/v1/team", tags=["team"])
    app.include_router(settings_router, prefix="/api/v1/settings", tags=["settings"])
    app.include_router(realtime_router, prefix="/api/v1/realtime", tags=["realtime"])
    app.include_router(storage_router, prefix="/storage", tags=["storage"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
