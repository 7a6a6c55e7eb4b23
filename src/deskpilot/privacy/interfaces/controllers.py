"""
Privacy Controllers (API Routes)
================================

FastAPI routes for PII classification and consent decisions.

Controllers are thin - they delegate to application services.
"""

from typing import Dict, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from deskpilot.infrastructure.database import get_session
from deskpilot.infrastructure.llm import ModelClientFactory
from deskpilot.privacy.application import (
    PIIDetectionService,
    ConsentGate,
    ConsentHandler,
    ClassifyTicketRequest,
    ConsentDecisionRequest,
    DetectionResponse,
    ClassificationResponse,
    ScanResponse,
    ConsentDecisionResponse,
)
from deskpilot.privacy.infrastructure import (
    SQLAlchemyClassificationRepository,
    SQLAlchemyPendingRequestRepository,
)
from deskpilot.shared.api.dependencies import get_actor, get_model_client_factory
from deskpilot.shared.infrastructure.logging import get_logger
from deskpilot.tickets.application import AuditLogger, load_ticket
from deskpilot.tickets.domain import Actor
from deskpilot.tickets.infrastructure import (
    SQLAlchemyTicketRepository,
    SQLAlchemyMessageRepository,
    SQLAlchemyActivityRepository,
    SQLAlchemyOrganizationSettingsRepository,
    SQLAlchemyAuditLogRepository,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/privacy", tags=["Privacy"])


# ========== Example payloads for Swagger ==========

DETECTION_RESPONSE_EXAMPLE = {
    "ticket_id": "123e4567-e89b-12d3-a456-426614174000",
    "contains_pii": True,
    "pii_types": ["email", "financial"],
    "sensitivity_level": "high",
    "gdpr_relevant": True,
    "detected_patterns": {"email": 1, "financial": 2}
}

CONSENT_REQUIRED_EXAMPLE = {
    "consent_required": True,
    "pending_request_id": "9b2f6d0e-3c1a-4e7b-8f5d-2a6c9e1b7d40",
    "ticket_id": "123e4567-e89b-12d3-a456-426614174000",
    "pii_types": ["credit_card", "email"],
    "sensitivity_level": "critical",
    "correlation_id": "c0ffee00-0000-4000-8000-000000000000"
}


# ========== Builders ==========

def build_detection_service(session: AsyncSession) -> PIIDetectionService:
    """Wire a PIIDetectionService onto a session."""
    return PIIDetectionService(
        SQLAlchemyClassificationRepository(session),
        SQLAlchemyTicketRepository(session),
        SQLAlchemyMessageRepository(session),
        SQLAlchemyOrganizationSettingsRepository(session),
    )


def build_consent_gate(session: AsyncSession) -> ConsentGate:
    """Wire a ConsentGate onto a session."""
    return ConsentGate(
        SQLAlchemyClassificationRepository(session),
        SQLAlchemyPendingRequestRepository(session),
        SQLAlchemyTicketRepository(session),
        SQLAlchemyActivityRepository(session),
        build_detection_service(session),
        AuditLogger(SQLAlchemyAuditLogRepository(session)),
    )


# ========== Dependencies ==========

async def get_detection_service(
    session: AsyncSession = Depends(get_session)
) -> PIIDetectionService:
    """Get PII detection service instance."""
    return build_detection_service(session)


async def get_consent_gate(
    session: AsyncSession = Depends(get_session)
) -> ConsentGate:
    """Get consent gate instance."""
    return build_consent_gate(session)


async def get_consent_handlers(
    session: AsyncSession = Depends(get_session),
    factory: ModelClientFactory = Depends(get_model_client_factory)
) -> Dict[str, ConsentHandler]:
    """Replay handlers of every gated feature, keyed by feature name."""
    from deskpilot.agents.interfaces.controllers import build_consent_handlers as agent_handlers
    from deskpilot.assistant.interfaces.controllers import build_consent_handlers as assistant_handlers

    handlers: Dict[str, ConsentHandler] = {}
    handlers.update(agent_handlers(session, factory))
    handlers.update(assistant_handlers(session, factory))
    return handlers


# ========== Route Handlers ==========

@router.post(
    "/tickets/{ticket_id}/classify",
    response_model=DetectionResponse,
    summary="Classify a ticket for PII",
    description="""
    Scan a ticket for personal data and store the result as the ticket's
    classification.

    Without a body the ticket's title, description, customer contact fields
    and full conversation are scanned. Passing `text` scans that text instead.

    Recorded consent on the ticket is kept across re-classification.
    """,
    responses={
        200: {
            "description": "Ticket classified",
            "content": {"application/json": {"example": DETECTION_RESPONSE_EXAMPLE}}
        },
        404: {"description": "Ticket not found"}
    }
)
async def classify_ticket(
    ticket_id: str,
    request: Request,
    payload: Optional[ClassifyTicketRequest] = None,
    session: AsyncSession = Depends(get_session),
    service: PIIDetectionService = Depends(get_detection_service)
):
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    ticket = await load_ticket(SQLAlchemyTicketRepository(session), ticket_id)

    if payload is not None and payload.text is not None:
        result = await service.classify_and_store(ticket.id, payload.text, ticket.organization_id)
    else:
        result = await service.classify_ticket(ticket)

    logger.info(
        "Classification requested",
        extra={
            "correlation_id": correlation_id,
            "ticket_id": ticket.id,
            "contains_pii": result.contains_pii,
        }
    )
    return DetectionResponse.from_result(ticket.id, result)


@router.get(
    "/tickets/{ticket_id}/classification",
    response_model=ClassificationResponse,
    summary="Get a ticket's stored classification",
    responses={404: {"description": "Ticket was never classified"}}
)
async def get_classification(
    ticket_id: str,
    service: PIIDetectionService = Depends(get_detection_service)
):
    classification = await service.get_classification(ticket_id)
    return ClassificationResponse.from_entity(classification)


@router.post(
    "/organizations/{organization_id}/scan",
    response_model=ScanResponse,
    summary="Classify every ticket of an organization"
)
async def scan_organization(
    organization_id: str,
    request: Request,
    service: PIIDetectionService = Depends(get_detection_service)
):
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    logger.info(
        "Organization scan requested",
        extra={"correlation_id": correlation_id, "organization_id": organization_id}
    )

    summary = await service.scan_organization(organization_id)
    return ScanResponse(
        organization_id=summary.organization_id,
        tickets_scanned=summary.tickets_scanned,
        tickets_with_pii=summary.tickets_with_pii,
        by_sensitivity=summary.by_sensitivity,
    )


@router.post(
    "/consent/{pending_request_id}",
    response_model=ConsentDecisionResponse,
    summary="Decide on a suspended AI request",
    description="""
    Any AI feature touching a ticket with unconsented PII answers **202** with
    a `pending_request_id`:

    ```json
    {
        "consent_required": true,
        "pending_request_id": "9b2f6d0e-...",
        "pii_types": ["credit_card", "email"],
        "sensitivity_level": "critical"
    }
    ```

    Submit the operator's choice here:
    - `anonymize` - record consent, mask PII, run the request
    - `proceed` - record consent, send raw data, run the request
    - `cancel` - drop the request; nothing is recorded on the ticket

    Consent is per ticket: later requests on the same ticket go straight through.
    """,
    responses={
        200: {"description": "Request resumed or cancelled"},
        202: {
            "description": "Consent required (returned by gated features)",
            "content": {"application/json": {"example": CONSENT_REQUIRED_EXAMPLE}}
        },
        404: {"description": "Unknown pending request"},
        422: {"description": "Request already decided"}
    }
)
async def submit_consent_decision(
    pending_request_id: str,
    payload: ConsentDecisionRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
    gate: ConsentGate = Depends(get_consent_gate),
    handlers: Dict[str, ConsentHandler] = Depends(get_consent_handlers)
):
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    logger.info(
        "Consent decision submitted",
        extra={
            "correlation_id": correlation_id,
            "pending_request_id": pending_request_id,
            "choice": payload.choice,
            "user_id": actor.user_id,
        }
    )

    outcome = await gate.submit_decision(pending_request_id, payload.choice, actor, handlers)
    return ConsentDecisionResponse(
        pending_request_id=outcome.request.id,
        ticket_id=outcome.request.ticket_id,
        feature=outcome.request.feature,
        status=outcome.request.status,
        result=outcome.result,
    )


privacy_router = router
