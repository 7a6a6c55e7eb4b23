"""
deskpilot - Main Application
============================

AI core of a customer-support ticketing service.

Modules:
- Privacy: PII classification, anonymization and the consent gate
- Agents: triage/resolution/quality pipeline, auto-execution, human feedback
- Assistant: consent-gated assistive features for the ticket view
- Tickets: storage of the ticket aggregate (supporting context)

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and business rules
- Infrastructure: Database, model clients, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

# Configuration and Core
from deskpilot.config import settings
from deskpilot.core import ApplicationException

# Infrastructure
from deskpilot.infrastructure.database import (
    init_database,
    close_database,
    create_tables,
    get_engine,
    get_session_context,
)

# Agents Module - Scheduling
from deskpilot.agents.infrastructure import PipelineScheduler
from deskpilot.agents.interfaces import build_pipeline_service
from deskpilot.tickets.infrastructure import SQLAlchemyTicketRepository

# Module Routers
from deskpilot.privacy.interfaces import privacy_router
from deskpilot.agents.interfaces import agents_router
from deskpilot.assistant.interfaces import assistant_router

# Logging and Middleware
from deskpilot.shared.infrastructure.logging import setup_logging, get_logger
from deskpilot.shared.infrastructure.grafana import init_grafana_exporter, get_grafana_exporter
from deskpilot.shared.api.middleware import (
    CorrelationIDMiddleware,
    MetricsMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)

logger = get_logger(__name__)

API_PREFIX = "/api/v1"

# Global service instances
pipeline_scheduler = None


async def pipeline_batch_job() -> None:
    """
    Background pipeline run over tickets waiting for analysis.

    Each ticket gets its own session so that one failure rolls back only
    that ticket's work.
    """
    async with get_session_context() as session:
        tickets = await SQLAlchemyTicketRepository(session).list_pending_analysis(
            settings.pipeline_schedule_batch_size
        )

    processed = skipped = failed = 0
    for ticket in tickets:
        try:
            async with get_session_context() as session:
                result = await build_pipeline_service(session).run_scheduled(ticket)
        except ApplicationException as e:
            failed += 1
            logger.error(
                "Scheduled pipeline run failed",
                extra={"ticket_id": ticket.id, "error_type": type(e).__name__, "error": e.message}
            )
            continue
        except SQLAlchemyError as e:
            failed += 1
            logger.error(
                "Scheduled pipeline run failed",
                extra={"ticket_id": ticket.id, "error_type": type(e).__name__, "error": str(e)}
            )
            continue

        if result is None:
            skipped += 1
        else:
            processed += 1

    logger.info(
        "Scheduled pipeline batch finished",
        extra={"tickets": len(tickets), "processed": processed, "skipped": skipped, "failed": failed}
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Initialize Grafana OTLP exporter
    4. Start the pipeline scheduler (when an interval is configured)

    SHUTDOWN:
    1. Stop the pipeline scheduler
    2. Close database connections
    """
    global pipeline_scheduler

    # === STARTUP ===
    setup_logging()
    logger.info("Starting deskpilot", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Development convenience - production schemas are migrated separately.
    # The service still starts without a database; database routes fail.
    logger.info("Creating database tables")
    try:
        await create_tables()
    except Exception as e:
        logger.warning(
            "Database not available - running in degraded mode",
            extra={"error": str(e)}
        )

    logger.info("Initializing Grafana OTLP exporter")
    if settings.grafana_host and settings.grafana_api_key and settings.grafana_instance_id:
        init_grafana_exporter(
            host=settings.grafana_host,
            api_key=settings.grafana_api_key,
            instance_id=settings.grafana_instance_id
        )
        logger.info("Grafana OTLP exporter initialized")
    else:
        logger.info("Grafana OTLP exporter not configured - metrics will not be exported")

    if settings.pipeline_schedule_interval_minutes > 0:
        pipeline_scheduler = PipelineScheduler(settings.pipeline_schedule_interval_minutes)
        await pipeline_scheduler.start(pipeline_batch_job)
    else:
        logger.info("Scheduled pipeline runs disabled")

    logger.info("deskpilot started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down deskpilot")

    if pipeline_scheduler:
        await pipeline_scheduler.stop()
        pipeline_scheduler = None

    await close_database()

    logger.info("deskpilot shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="deskpilot API",
    description="""
    ## AI Core for Customer Support Ticketing

    ---

    ### 🔒 Privacy Module

    - `POST /api/v1/privacy/tickets/{id}/classify` - Scan a ticket for PII
    - `GET /api/v1/privacy/tickets/{id}/classification` - Stored classification and consent
    - `POST /api/v1/privacy/organizations/{id}/scan` - Classify every ticket of an organization
    - `POST /api/v1/privacy/consent/{pending_request_id}` - Decide on a suspended AI request

    ---

    ### 🤖 Agents Module

    - `POST /api/v1/agents/tickets/{id}/run` - Triage -> Resolution -> Quality
    - `GET /api/v1/agents/tickets/{id}/actions` - Proposed actions, newest first
    - `POST /api/v1/agents/actions/{id}/feedback` - Approve (and execute) or reject
    - `POST /api/v1/agents/actions/{id}/execute` - Retry an approved action

    ---

    ### 💬 Assistant Module

    - `POST /api/v1/assistant/tickets/{id}/suggestions|sentiment|priority|translate|summary|knowledge`

    ---

    ### Consent

    Any AI route touching a ticket with unconsented PII answers **202** with a
    `pending_request_id` instead of running. Submit `anonymize`, `proceed` or
    `cancel` to the consent route to resume or drop it.

    The calling user is passed as `X-User-Id`, `X-User-Name` and `X-User-Email` headers.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(privacy_router, prefix=API_PREFIX)
app.include_router(agents_router, prefix=API_PREFIX)
app.include_router(assistant_router, prefix=API_PREFIX)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "database": "connected",
                        "pipeline_scheduler": "stopped",
                        "model_client": "mock",
                        "metrics_exporter": "not_configured"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns service health status including:
    - Database connectivity
    - Scheduler state
    - Model client mode
    - Metrics exporter state
    """
    exporter = get_grafana_exporter()
    checks = {
        "database": "connected",
        "pipeline_scheduler": "running" if pipeline_scheduler and pipeline_scheduler.is_running else "stopped",
        "model_client": "mock" if settings.mock_llm else (
            "configured" if settings.ai_gateway_api_key else "organization_credentials_only"
        ),
        "metrics_exporter": "enabled" if exporter and exporter.is_enabled() else "not_configured",
    }

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = f"error: {str(e)}"

    return {
        "status": "healthy" if checks["database"] == "connected" else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "deskpilot",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "privacy": {"prefix": f"{API_PREFIX}/privacy"},
            "agents": {"prefix": f"{API_PREFIX}/agents"},
            "assistant": {"prefix": f"{API_PREFIX}/assistant"},
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "deskpilot.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
