"""
Agents Controllers (API Routes)
===============================

FastAPI routes for the agent pipeline and human review of agent actions.

Controllers delegate to application services.
"""

import time
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from deskpilot.agents.application import (
    ActionExecutor,
    AgentPipelineService,
    LearningFeedbackService,
    FeedbackRequest,
    PipelineResponse,
    AgentActionResponse,
    FeedbackResponse,
)
from deskpilot.agents.infrastructure import (
    SQLAlchemyAgentActionRepository,
    SQLAlchemyLearningFeedbackRepository,
)
from deskpilot.config import AIFeature
from deskpilot.infrastructure.database import get_session
from deskpilot.infrastructure.llm import ModelClientFactory
from deskpilot.privacy.application import ConsentHandler
from deskpilot.privacy.domain import PendingAIRequest
from deskpilot.privacy.interfaces import build_consent_gate
from deskpilot.shared.api.dependencies import get_actor, get_model_client_factory
from deskpilot.shared.infrastructure.logging import get_logger
from deskpilot.tickets.application import AuditLogger, ModelClientResolver
from deskpilot.tickets.domain import Actor
from deskpilot.tickets.infrastructure import (
    SQLAlchemyTicketRepository,
    SQLAlchemyMessageRepository,
    SQLAlchemyActivityRepository,
    SQLAlchemyOrganizationSettingsRepository,
    SQLAlchemyAuditLogRepository,
    SQLAlchemyUnitOfWork,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/agents", tags=["AI Agents"])


# ========== Example payloads for Swagger ==========

PIPELINE_RESPONSE_EXAMPLE = {
    "ticket_id": "123e4567-e89b-12d3-a456-426614174000",
    "ai_status": "resolved",
    "final_confidence": 90,
    "triage_result": {
        "agent_type": "triage",
        "action_type": "priority_change",
        "action_data": {"new_priority": "high", "reason": "Billing outage"},
        "confidence_score": 80,
        "reasoning": "Customer cannot pay invoices.",
        "action_id": "5a1c..."
    },
    "resolution_result": {
        "agent_type": "resolution",
        "action_type": "auto_response",
        "action_data": {"response": "We have reset your billing profile.", "reason": "Known fix"},
        "confidence_score": 90,
        "reasoning": "Matches an approved resolution.",
        "action_id": "7e4b..."
    },
    "quality_result": {
        "agent_type": "quality",
        "action_type": "auto_response",
        "action_data": {"response": "We have reset your billing profile.", "reason": "Approved"},
        "confidence_score": 90,
        "reasoning": "Accurate and polite.",
        "action_id": "9f0d..."
    },
    "auto_executed": True,
    "auto_execution_reason": "eligible",
    "anonymized": False,
    "errors": [],
    "processing_time_ms": 4200
}


# ========== Builders ==========

def build_executor(session: AsyncSession) -> ActionExecutor:
    """Wire an ActionExecutor onto a session."""
    return ActionExecutor(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyMessageRepository(session),
        SQLAlchemyActivityRepository(session),
        SQLAlchemyAgentActionRepository(session),
        AuditLogger(SQLAlchemyAuditLogRepository(session)),
        SQLAlchemyUnitOfWork(session),
    )


def build_pipeline_service(
    session: AsyncSession,
    factory: Optional[ModelClientFactory] = None
) -> AgentPipelineService:
    """Wire an AgentPipelineService onto a session."""
    settings_repo = SQLAlchemyOrganizationSettingsRepository(session)
    return AgentPipelineService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyMessageRepository(session),
        SQLAlchemyAgentActionRepository(session),
        SQLAlchemyLearningFeedbackRepository(session),
        settings_repo,
        build_consent_gate(session),
        build_executor(session),
        ModelClientResolver(settings_repo, factory),
    )


def build_feedback_service(session: AsyncSession) -> LearningFeedbackService:
    """Wire a LearningFeedbackService onto a session."""
    return LearningFeedbackService(
        SQLAlchemyAgentActionRepository(session),
        SQLAlchemyLearningFeedbackRepository(session),
        SQLAlchemyTicketRepository(session),
        build_executor(session),
        AuditLogger(SQLAlchemyAuditLogRepository(session)),
    )


def build_consent_handlers(
    session: AsyncSession,
    factory: Optional[ModelClientFactory] = None
) -> Dict[str, ConsentHandler]:
    """Handlers replaying a suspended pipeline run once consent is given."""
    service = build_pipeline_service(session, factory)

    async def replay_pipeline(pending: PendingAIRequest, actor: Actor) -> dict:
        result = await service.run(pending.ticket_id, actor)
        return PipelineResponse.from_result(result).model_dump(mode="json")

    return {AIFeature.AGENT_PIPELINE: replay_pipeline}


# ========== Dependencies ==========

async def get_pipeline_service(
    session: AsyncSession = Depends(get_session),
    factory: ModelClientFactory = Depends(get_model_client_factory)
) -> AgentPipelineService:
    """Get agent pipeline service instance."""
    return build_pipeline_service(session, factory)


async def get_feedback_service(
    session: AsyncSession = Depends(get_session)
) -> LearningFeedbackService:
    """Get learning feedback service instance."""
    return build_feedback_service(session)


# ========== Route Handlers ==========

@router.post(
    "/tickets/{ticket_id}/run",
    response_model=PipelineResponse,
    summary="Run the agent pipeline on a ticket",
    description="""
    Run the triage, resolution and quality agents on a ticket.

    - **Resolution** runs only when triage confidence is above 50
    - **Quality** runs only when resolution confidence is above 60
    - The last stage that ran sets the ticket's `ai_status` and `ai_confidence`

    When the organization enabled auto-execution and the final confidence
    reaches its threshold, the resolution action is applied to the ticket
    (at most 5 executions per ticket per hour).

    Tickets containing unconsented PII answer **202** with a
    `pending_request_id`; see `POST /privacy/consent/{pending_request_id}`.
    """,
    responses={
        200: {
            "description": "Pipeline completed",
            "content": {"application/json": {"example": PIPELINE_RESPONSE_EXAMPLE}}
        },
        202: {"description": "Consent required before the ticket can be analyzed"},
        402: {"description": "AI credits exhausted"},
        403: {"description": "AI or agents disabled for the organization"},
        404: {"description": "Ticket not found"},
        429: {"description": "Model provider rate limit"}
    }
)
async def run_pipeline(
    ticket_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    service: AgentPipelineService = Depends(get_pipeline_service)
):
    start_time = time.perf_counter()
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.info(
        "Running agent pipeline",
        extra={"correlation_id": correlation_id, "ticket_id": ticket_id}
    )

    result = await service.run(ticket_id, actor)

    total_time = int((time.perf_counter() - start_time) * 1000)
    logger.info(
        "Agent pipeline request completed",
        extra={
            "correlation_id": correlation_id,
            "ticket_id": ticket_id,
            "ai_status": result.ai_status,
            "latency_ms": total_time,
        }
    )
    return PipelineResponse.from_result(result, processing_time_ms=total_time)


@router.get(
    "/tickets/{ticket_id}/actions",
    response_model=List[AgentActionResponse],
    summary="List actions proposed for a ticket",
    description="Agent actions of a ticket, newest first, with their review status."
)
async def list_actions(
    ticket_id: str,
    service: LearningFeedbackService = Depends(get_feedback_service)
):
    actions = await service.list_actions(ticket_id)
    return [AgentActionResponse.from_entity(action) for action in actions]


@router.post(
    "/actions/{action_id}/feedback",
    response_model=FeedbackResponse,
    summary="Approve or reject an agent action",
    description="""
    Record a human review of an agent action.

    - **approval** moves the action to `approved` and executes it right away
    - **rejection** moves it to `rejected`; notes explain what was wrong

    Approvals and annotated rejections are replayed to later agent runs of
    the organization as examples. If executing an approved action fails the
    action stays `approved` and `execution_error` is set.
    """,
    responses={
        404: {"description": "Action not found"},
        409: {"description": "Action already executed"}
    }
)
async def submit_feedback(
    action_id: str,
    payload: FeedbackRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
    service: LearningFeedbackService = Depends(get_feedback_service)
):
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    logger.info(
        "Feedback submitted",
        extra={
            "correlation_id": correlation_id,
            "action_id": action_id,
            "feedback_type": payload.feedback_type,
            "user_id": actor.user_id,
        }
    )

    outcome = await service.record_feedback(action_id, actor, payload.feedback_type, payload.notes)
    return FeedbackResponse.from_outcome(
        outcome.feedback, outcome.action, outcome.executed, outcome.execution_error
    )


@router.post(
    "/actions/{action_id}/execute",
    response_model=AgentActionResponse,
    summary="Execute an approved action",
    description="Retry execution of an action that was approved but could not be applied.",
    responses={
        404: {"description": "Action not found"},
        409: {"description": "Action is not approved"}
    }
)
async def execute_action(
    action_id: str,
    actor: Actor = Depends(get_actor),
    service: LearningFeedbackService = Depends(get_feedback_service)
):
    action = await service.execute_approved_action(action_id, actor)
    return AgentActionResponse.from_entity(action)


agents_router = router
