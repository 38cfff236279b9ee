"""FastAPI application entry point.

restcrud - generic REST CRUD controllers over async SQLAlchemy.
"""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
from http import HTTPStatus
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from restcrud.routes import api_router
from restcrud.schemas import ErrorDetail, ErrorResponse
from restcrud.services.exceptions import (
    EntityError,
    EntityValidationError,
    HandleUploadsError,
    ServiceError,
    UniqueError,
    VerificationError,
)
from restcrud.settings import get_settings
from restcrud.stores.postgres import init_db, close_db, ping_db
from restcrud.stores.redis import init_redis, close_redis

logger = logging.getLogger("uvicorn.error")

SERVICE_ERROR_CODES: dict[type[ServiceError], str] = {
    UniqueError: "UNIQUE_VIOLATION",
    EntityValidationError: "VALIDATION_FAILED",
    VerificationError: "VERIFICATION_FAILED",
    HandleUploadsError: "UPLOAD_FAILED",
    EntityError: "ENTITY_ERROR",
}


def _error_response(status_code: int, code: str, message: str, detail: dict[str, Any] | None = None) -> JSONResponse:
    payload = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def _status_code_name(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).name
    except ValueError:
        return "HTTP_ERROR"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Initialize database (skip in tests if no DB available)
    try:
        await init_db()
        await ping_db()
        logger.info("Postgres connected")
    except Exception:
        logger.exception("Postgres init failed")

    # Initialize Redis (only needed for autocomplete caching)
    try:
        await init_redis()
    except Exception:
        logger.exception("Redis init failed")

    yield

    # Shutdown
    await close_redis()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Generic REST CRUD API",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Render HTTP errors in the structured error format."""
        detail = exc.detail
        if isinstance(detail, dict) and "error" in detail:
            return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(detail), headers=exc.headers)

        code = _status_code_name(exc.status_code)
        if isinstance(detail, dict):
            message = str(detail.get("message", ""))
            extra = {k: v for k, v in detail.items() if k != "message"} or None
        else:
            message = str(detail) if detail else HTTPStatus(exc.status_code).phrase
            extra = None
        response = _error_response(exc.status_code, code, message, extra)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(422, "REQUEST_VALIDATION_ERROR", "Invalid request", {"errors": exc.errors()})

    @app.exception_handler(ServiceError)
    async def service_exception_handler(request: Request, exc: ServiceError) -> JSONResponse:
        """Service errors escaping a controller (e.g. bad grid filters) are client errors."""
        code = SERVICE_ERROR_CODES.get(type(exc), "SERVICE_ERROR")
        detail = {"errors": exc.errors} if isinstance(exc, EntityValidationError) and exc.errors else None
        return _error_response(400, code, str(exc), detail)

    # Exception handler for structured error format
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler returning structured error format."""
        return _error_response(
            500,
            "INTERNAL_ERROR",
            str(exc) if settings.debug else "Internal server error",
        )

    # Health check endpoint
    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, bool]:
        """Health check endpoint."""
        return {"ok": True}

    # Include API routes
    app.include_router(api_router)

    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "restcrud.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
