"""Membership staging backend - Main FastAPI Application

Staged transaction orchestrator for checkout carts and membership
registrations.

This module creates and configures the main FastAPI application, including:
- The draft staging router
- Middleware (operation ID correlation, CORS)
- Exception handlers mapping the staging error taxonomy to HTTP
- Health and observability endpoints
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from redis.exceptions import RedisError

from config import get_settings
from observability.logging_config import configure_logging
from observability.middleware import OperationIDMiddleware, OPERATION_ID_HEADER
from observability.request_id import get_operation_id
from observability.router import router as observability_router
from staging.dependencies import get_repository
from staging.errors import StagingError
from staging.router import router as drafts_router
from staging.status import StateTransitionError

settings = get_settings()

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Staging API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Durable backend: {settings.DURABLE_BACKEND}")

    yield

    logger.info("Staging API shutting down...")
    # Only close a repository that was actually built
    if get_repository.cache_info().currsize:
        get_repository().close()


app = FastAPI(
    title="Membership Staging API",
    description="Staged drafts for checkout and membership registration, committed with compensation",
    version="0.1.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
    openapi_url="/openapi.json" if settings.ENVIRONMENT != "production" else None,
    lifespan=lifespan,
)


# =============================================================================
# MIDDLEWARE CONFIGURATION
# =============================================================================

app.add_middleware(OperationIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8080"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[OPERATION_ID_HEADER],
)


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

@app.exception_handler(StagingError)
async def staging_exception_handler(
    request: Request,
    exc: StagingError
) -> JSONResponse:
    """Render staging and commit errors as {error, message, field, session_id, operation_id}."""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}",
        extra={"session_id": exc.session_id or ""}
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(StateTransitionError)
async def state_transition_exception_handler(
    request: Request,
    exc: StateTransitionError
) -> JSONResponse:
    logger.error(f"Illegal state transition on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "error": "invalid_state_transition",
            "message": str(exc),
            "field": None,
            "session_id": request.path_params.get("session_id"),
            "operation_id": get_operation_id(),
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with field-level details."""
    logger.warning(f"Validation error on {request.method} {request.url.path}")
    errors = exc.errors()
    first_field = ".".join(str(p) for p in errors[0]["loc"][1:]) if errors else None
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "field": first_field,
            "session_id": request.path_params.get("session_id"),
            "operation_id": get_operation_id(),
            "details": [
                {"field": ".".join(str(p) for p in e["loc"][1:]), "message": e["msg"]}
                for e in errors
            ],
        },
    )


@app.exception_handler(RedisError)
async def session_store_exception_handler(
    request: Request,
    exc: RedisError
) -> JSONResponse:
    """Draft store unreachable: nothing can be staged or committed."""
    logger.error(
        f"Session store error on {request.method} {request.url.path}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": "session_store_unavailable",
            "message": "Draft storage is temporarily unavailable. Please try again later.",
            "field": None,
            "session_id": request.path_params.get("session_id"),
            "operation_id": get_operation_id(),
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(
    request: Request,
    exc: SQLAlchemyError
) -> JSONResponse:
    """Log the full database error but return a generic message."""
    logger.error(
        f"Database error on {request.method} {request.url.path}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "database_error",
            "message": "A database error occurred. Please try again later.",
            "operation_id": get_operation_id(),
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Catch-all: full details are logged but not exposed to the client."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred. Please try again later.",
            "operation_id": get_operation_id(),
        },
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(observability_router)
app.include_router(drafts_router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root() -> dict[str, Any]:
    """Root endpoint - API information."""
    return {
        "name": "Membership Staging API",
        "version": "0.1.0",
        "status": "running",
        "docs": "/docs" if settings.ENVIRONMENT != "production" else None,
    }


def create_app() -> FastAPI:
    """Return the configured application (used by tests and ASGI servers)."""
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
