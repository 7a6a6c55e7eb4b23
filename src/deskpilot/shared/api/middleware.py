"""
Shared API Middleware
======================

Common middleware and exception handlers for the FastAPI application.
"""

import time
import uuid
from typing import Callable
from datetime import datetime, timezone

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from deskpilot.config import settings
from deskpilot.core import (
    ApplicationException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    InvalidActionTransitionException,
    ConsentRequiredException,
    ModelRateLimitedException,
    ModelPaymentRequiredException,
    ExternalServiceException,
)
from deskpilot.shared.infrastructure.grafana import get_grafana_exporter
from deskpilot.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Most specific first; the first isinstance match wins.
_STATUS_BY_EXCEPTION = [
    (ValidationException, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ResourceNotFoundException, status.HTTP_404_NOT_FOUND),
    (ConfigurationException, status.HTTP_403_FORBIDDEN),
    (InvalidActionTransitionException, status.HTTP_409_CONFLICT),
    (ModelRateLimitedException, status.HTTP_429_TOO_MANY_REQUESTS),
    (ModelPaymentRequiredException, status.HTTP_402_PAYMENT_REQUIRED),
    (ExternalServiceException, status.HTTP_502_BAD_GATEWAY),
]


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Adds an ``X-Correlation-ID`` to every request and response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records response time as a header and exports it to Grafana."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        response = await call_next(request)
        response_time = time.perf_counter() - start_time

        response.headers["X-Response-Time"] = f"{response_time:.3f}s"

        exporter = get_grafana_exporter()
        if exporter and exporter.is_enabled():
            await exporter.export_request_latency(
                endpoint=request.url.path,
                status_code=response.status_code,
                latency_ms=int(response_time * 1000),
                method=request.method
            )
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs request start, completion and failure."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        logger.info(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Map application exceptions onto HTTP responses.

    A suspended AI request (consent required) is not an error: it answers
    202 with the id of the stored request the operator must decide on.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    if isinstance(exc, ConsentRequiredException):
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={
                "consent_required": True,
                "pending_request_id": exc.pending_request_id,
                "ticket_id": exc.ticket_id,
                "pii_types": exc.pii_types,
                "sensitivity_level": exc.sensitivity_level,
                "correlation_id": correlation_id,
            }
        )

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for exception_type, mapped_status in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exception_type):
            status_code = mapped_status
            break

    log = logger.warning if status_code < 500 else logger.error
    log(
        "Application error",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": status_code,
        }
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": exc.details,
            "correlation_id": correlation_id,
        }
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler returning a consistent 500 body."""
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "InternalServerError",
            "message": "Internal server error",
            "details": {"debug_info": str(exc)} if settings.environment == "development" else {},
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )
