"""
Structured Logging
==================

JSON-structured logging with correlation ID tracking.

Provides:
- Structured JSON logs (parseable by log aggregators)
- Correlation ID for request tracing
- Redaction of secrets and customer identity fields
- Latency timing for model calls and pipeline stages

Usage:
    from deskpilot.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Pipeline finished", extra={"ticket_id": ticket_id})
"""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any
from contextlib import contextmanager

from pythonjsonlogger import jsonlogger

from deskpilot.config import settings

REDACTED = "***REDACTED***"

# Keys whose values never reach the log stream verbatim.
_SECRET_MARKERS = ("password", "api_key", "secret", "authorization")
_CUSTOMER_FIELDS = {"customer_email", "customer_phone", "customer_name", "sender_email"}


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding service context to every record.

    Adds:
    - timestamp in ISO format (UTC)
    - service name and environment
    - correlation_id when available
    """

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        log_record["service"] = settings.app_name
        log_record["environment"] = settings.environment

        if hasattr(record, "correlation_id"):
            log_record["correlation_id"] = record.correlation_id

        for key, value in list(log_record.items()):
            if not isinstance(value, str):
                continue
            lowered = key.lower()
            if lowered in _CUSTOMER_FIELDS or any(marker in lowered for marker in _SECRET_MARKERS):
                log_record[key] = REDACTED
            elif "token" in lowered and not lowered.endswith("tokens"):
                log_record[key] = REDACTED


def setup_logging(level: str | None = None) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR). Defaults to
            ``settings.log_level``.
    """
    level_value = getattr(logging, (level or settings.log_level).upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level_value)
    handler.setFormatter(CustomJsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    ))
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)
    """
    return logging.getLogger(name)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any):
    """
    Measure and log how long the wrapped block takes.

    Usage:
        with log_latency(logger, "agent_stage", stage="triage"):
            result = await client.complete(...)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                **extra_context,
            },
        )
