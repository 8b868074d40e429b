"""Main FastAPI application."""
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from notifyhub.api.admin import router as admin_router
from notifyhub.api.internal import router as internal_router
from notifyhub.api.notifications import router as notifications_router
from notifyhub.container import ServiceContainer
from notifyhub.domain.common.errors import (
    NotFoundError as DomainNotFoundError,
    ValidationError as DomainValidationError,
)
from notifyhub.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all requests and responses."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        logger.info(f"[REQUEST] {request.method} {request.url.path}")
        logger.debug(f"   Query params: {dict(request.query_params)}")

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(f"[RESPONSE] {request.method} {request.url.path} - {response.status_code} ({process_time:.3f}s)")
        return response


def create_app(settings: Optional[Settings] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the API. Tests pass a container wired to in-memory backends."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        app_container = container or ServiceContainer(settings)
        # Unlike the worker, the API starts degraded when a backend is down so /health stays reachable.
        try:
            await app_container.start()
        except Exception as e:
            logger.warning("Could not connect to backing services during startup: %s", e)
        app.state.container = app_container
        yield
        await app_container.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors with logging."""
        errors = exc.errors()
        logger.error(f"[VALIDATION ERROR] {request.method} {request.url.path}: {len(errors)} error(s)")
        for i, error in enumerate(errors, 1):
            logger.error(f"   Error {i}: {error}")
        return JSONResponse(status_code=422, content={"detail": jsonable_errors(errors)})

    @app.exception_handler(DomainNotFoundError)
    async def domain_not_found_handler(request: Request, exc: DomainNotFoundError):
        """Return 404 when a resource is not found."""
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(DomainValidationError)
    async def domain_validation_handler(request: Request, exc: DomainValidationError):
        """Return 422 for domain validation errors."""
        return JSONResponse(status_code=422, content={"detail": exc.message})

    @app.get("/health")
    @app.get(f"{settings.api_v1_prefix}/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "version": settings.app_version}

    app.include_router(notifications_router, prefix=settings.api_v1_prefix)
    app.include_router(admin_router, prefix=settings.api_v1_prefix)
    app.include_router(internal_router, prefix=settings.api_v1_prefix)
    return app


def jsonable_errors(errors: list) -> list:
    # Pydantic puts the raised exception object in ctx; it is not JSON serializable.
    cleaned = []
    for error in errors:
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        cleaned.append(error)
    return cleaned


configure_logging(get_settings())
app = create_app()
