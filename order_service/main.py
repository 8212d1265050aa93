"""
FastAPI application entry point with health endpoints and order routing.

This module provides the FastAPI application with CORS configuration,
request correlation logging, exception handlers and health endpoints. The
lifespan connects the message broker, runs the payment-completion consumer
in the background and releases broker and database resources on shutdown.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from order_service.api.v1.orders import router as orders_router
from order_service.core.config import get_settings
from order_service.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from order_service.database.connection import (
    check_database_health,
    close_database_connections,
    get_session_factory,
)
from order_service.messaging.broker import close_message_broker, get_message_broker
from order_service.messaging.consumers import consume_payment_events
from order_service.services.catalog.client import BrokerProductCatalogClient
from order_service.services.orders.repository import OrderRepository
from order_service.services.orders.service import OrderService

configure_logging()
logger = get_logger(__name__)


async def run_payment_consumer() -> None:
    """
    Background task recording payment completions.

    Restarts the subscription after transport failures.
    """
    while True:
        try:
            broker = await get_message_broker()
            order_service = OrderService(
                OrderRepository(get_session_factory()),
                BrokerProductCatalogClient(broker),
            )
            await consume_payment_events(broker, order_service)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Payment event consumer failed",
                error=str(e),
                error_type=type(e).__name__,
            )
        await asyncio.sleep(5)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan context manager for startup and shutdown events.

    Args:
        app: FastAPI application instance

    Yields:
        None during application runtime
    """
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
    )

    with log_performance(logger, "application_startup"):
        await get_message_broker()
        get_session_factory()

    consumer_task = asyncio.create_task(run_payment_consumer())
    logger.info("Payment event consumer task started")

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        consumer_task.cancel()
        try:
            await consumer_task
        except asyncio.CancelledError:
            pass
        await close_message_broker()
        await close_database_connections()
        logger.info("Resources cleaned up successfully")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Order lifecycle service",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Middleware for request logging and correlation ID management.

    Sets request ID for correlation, logs request details, and measures
    response time. Clears context after request processing.

    Returns:
        HTTP response with X-Request-ID header
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))

    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
    )

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )

        return response
    except Exception as e:
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        clear_context()


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Reject malformed requests with 400 and the validation details."""
    errors = exc.errors()
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=errors,
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Validation Error",
            "message": "Request validation failed",
            "details": [
                {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
                for error in errors
            ],
            "request_id": get_request_id(),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.__class__.__name__,
            "message": exc.detail,
            "request_id": get_request_id(),
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions with structured error response.

    Logs error with full context and returns generic error message
    to avoid exposing internal details.
    """
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred",
            "request_id": get_request_id(),
        },
    )


@app.get(
    "/health",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Health check endpoint",
)
async def health_check() -> dict[str, str]:
    """Liveness probe; always 200 while the process is running."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get(
    "/ready",
    tags=["Health"],
    summary="Readiness check endpoint",
)
async def readiness_check() -> JSONResponse:
    """
    Readiness check endpoint for orchestration.

    Verifies database and message broker connectivity. Returns 503 when
    either dependency is unavailable.
    """
    database_ready = await check_database_health()

    broker_ready = True
    try:
        broker = await get_message_broker()
        await broker.ping()
    except Exception as e:
        logger.warning(
            "Message broker connectivity check failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        broker_ready = False

    ready = database_ready and broker_ready

    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "not_ready",
            "database": "healthy" if database_ready else "unhealthy",
            "message_broker": "healthy" if broker_ready else "unhealthy",
        },
    )


app.include_router(orders_router, prefix=settings.api_v1_prefix)
