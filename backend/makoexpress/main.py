"""
FastAPI application entry point with health endpoints and service routing.

This module provides the main FastAPI application instance with CORS
configuration, request correlation, rate limiting, health check endpoints
and global exception handling. Shutdown closes the database engine and the
MakoPay HTTP client.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from makoexpress.api.limiter import limiter
from makoexpress.api.v1 import api_router
from makoexpress.core.config import get_settings
from makoexpress.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from makoexpress.database.connection import check_database_health, close_database_connections
from makoexpress.services.commission.calculator import InvalidAmountError
from makoexpress.services.payments.makopay_client import close_makopay_client

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Log the deployment shape on startup; release the DB pool and MakoPay client on shutdown."""
    settings = get_settings()
    logger.info(
        "Application starting",
        environment=settings.environment,
        version=settings.app_version,
        makopay_configured=settings.makopay_configured,
    )
    if not settings.makopay_configured:
        logger.warning("MakoPay credentials missing; payments and payouts will fail")

    yield

    with log_performance(logger, "application_shutdown"):
        await close_makopay_client()
        await close_database_connections()


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Delivery marketplace backend API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Bind a correlation id to the request, echo it back and time the call."""
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    request.state.request_id = request_id
    try:
        with log_performance(logger, "http_request", method=request.method, path=request.url.path):
            response = await call_next(request)
    finally:
        clear_context()

    response.headers["X-Request-ID"] = request_id
    return response


def error_response(request: Request, status_code: int, error: str, message: str, **extra) -> JSONResponse:
    """Uniform error body; the request id survives the context being cleared."""
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, **extra, "request_id": request_id},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    logger.warning("Request validation failed", path=request.url.path, errors=errors)
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation Error",
        "Request validation failed",
        details=errors,
    )


@app.exception_handler(InvalidAmountError)
async def invalid_amount_handler(request: Request, exc: InvalidAmountError) -> JSONResponse:
    logger.error("Invalid amount rejected", path=request.url.path, error=str(exc), context=exc.context)
    return error_response(request, status.HTTP_400_BAD_REQUEST, "Invalid Amount", str(exc))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure with its traceback; the client only sees a generic 500."""
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Server Error",
        "An unexpected error occurred",
    )


@app.get("/health", tags=["Health"], summary="Process health")
async def health_check() -> dict[str, str]:
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get("/live", tags=["Health"], summary="Liveness probe")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive", "service": settings.app_name, "version": settings.app_version}


@app.get("/ready", tags=["Health"], summary="Readiness probe")
async def readiness_check():
    """
    Ready once the database answers.

    Also reports whether MakoPay credentials are present; a missing gateway
    does not make the API unready since orders can still be placed and
    tracked. Responds 503 while the database is unreachable.
    """
    database_ready = await check_database_health(max_retries=1)
    body = {
        "status": "ready" if database_ready else "not_ready",
        "database": "healthy" if database_ready else "unhealthy",
        "payment_gateway": "configured" if settings.makopay_configured else "not_configured",
    }
    if not database_ready:
        logger.warning("Readiness check failed", database="unhealthy")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body


app.include_router(api_router, prefix=settings.api_v1_prefix)
