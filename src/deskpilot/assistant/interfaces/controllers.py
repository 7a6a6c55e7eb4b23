"""
Assistant Controllers (API Routes)
==================================

FastAPI routes for the assistive AI features.

Each route answers 202 with a ``pending_request_id`` when the ticket holds
PII nobody has consented to yet.
"""

from typing import Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from deskpilot.assistant.application import (
    AssistantService,
    TranslateRequest,
    SuggestionsResponse,
    SentimentResponse,
    PriorityResponse,
    TranslationResponse,
    SummaryResponse,
    KnowledgeResponse,
)
from deskpilot.config import AIFeature
from deskpilot.infrastructure.database import get_session
from deskpilot.infrastructure.llm import ModelClientFactory
from deskpilot.privacy.application import ConsentHandler
from deskpilot.privacy.domain import PendingAIRequest
from deskpilot.privacy.interfaces import build_consent_gate
from deskpilot.shared.api.dependencies import get_actor, get_model_client_factory
from deskpilot.shared.infrastructure.logging import get_logger
from deskpilot.tickets.application import ModelClientResolver
from deskpilot.tickets.domain import Actor
from deskpilot.tickets.infrastructure import (
    SQLAlchemyTicketRepository,
    SQLAlchemyMessageRepository,
    SQLAlchemyOrganizationSettingsRepository,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/assistant", tags=["AI Assistant"])

GATED_RESPONSES = {
    202: {"description": "Consent required before the ticket can be sent to the model"},
    402: {"description": "AI credits exhausted"},
    403: {"description": "AI or this feature disabled for the organization"},
    404: {"description": "Ticket not found"},
    429: {"description": "Model provider rate limit"},
}

RESPONSE_MODELS = {
    AIFeature.SUGGEST_RESPONSES: SuggestionsResponse,
    AIFeature.ANALYZE_SENTIMENT: SentimentResponse,
    AIFeature.SUGGEST_PRIORITY: PriorityResponse,
    AIFeature.TRANSLATE: TranslationResponse,
    AIFeature.SUMMARIZE: SummaryResponse,
    AIFeature.SUGGEST_KNOWLEDGE: KnowledgeResponse,
}


# ========== Builders ==========

def build_assistant_service(
    session: AsyncSession,
    factory: Optional[ModelClientFactory] = None
) -> AssistantService:
    """Wire an AssistantService onto a session."""
    settings_repo = SQLAlchemyOrganizationSettingsRepository(session)
    return AssistantService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyMessageRepository(session),
        settings_repo,
        build_consent_gate(session),
        ModelClientResolver(settings_repo, factory),
    )


def build_consent_handlers(
    session: AsyncSession,
    factory: Optional[ModelClientFactory] = None
) -> Dict[str, ConsentHandler]:
    """Handlers replaying suspended assistant requests once consent is given."""
    service = build_assistant_service(session, factory)

    def make_handler(feature: str) -> ConsentHandler:
        response_model = RESPONSE_MODELS[feature]

        async def replay(pending: PendingAIRequest, actor: Actor) -> dict:
            result = await service.dispatch(feature, pending.ticket_id, pending.parameters, actor)
            return response_model.from_result(pending.ticket_id, result).model_dump(mode="json")

        return replay

    return {feature: make_handler(feature) for feature in RESPONSE_MODELS}


# ========== Dependencies ==========

async def get_assistant_service(
    session: AsyncSession = Depends(get_session),
    factory: ModelClientFactory = Depends(get_model_client_factory)
) -> AssistantService:
    """Get assistant service instance."""
    return build_assistant_service(session, factory)


# ========== Route Handlers ==========

@router.post(
    "/tickets/{ticket_id}/suggestions",
    response_model=SuggestionsResponse,
    summary="Suggest replies",
    description="Three reply suggestions differing in tone. Falls back to one generic reply "
                "when the model answer cannot be parsed.",
    responses=GATED_RESPONSES
)
async def suggest_responses(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: AssistantService = Depends(get_assistant_service)
):
    result = await service.suggest_responses(ticket_id, actor)
    return SuggestionsResponse.from_result(ticket_id, result)


@router.post(
    "/tickets/{ticket_id}/sentiment",
    response_model=SentimentResponse,
    summary="Analyze sentiment",
    description="Sentiment (positive, neutral, negative, urgent) and urgency 1-10. "
                "The sentiment is stored on the ticket.",
    responses=GATED_RESPONSES
)
async def analyze_sentiment(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: AssistantService = Depends(get_assistant_service)
):
    result = await service.analyze_sentiment(ticket_id, actor)
    return SentimentResponse.from_result(ticket_id, result)


@router.post(
    "/tickets/{ticket_id}/priority",
    response_model=PriorityResponse,
    summary="Suggest priority",
    description="One of low, medium, high, urgent; null when the model answers anything else.",
    responses=GATED_RESPONSES
)
async def suggest_priority(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: AssistantService = Depends(get_assistant_service)
):
    result = await service.suggest_priority(ticket_id, actor)
    return PriorityResponse.from_result(ticket_id, result)


@router.post(
    "/tickets/{ticket_id}/translate",
    response_model=TranslationResponse,
    summary="Translate the conversation",
    description="Translations keyed by message id. A message that cannot be translated keeps "
                "its original text. Tickets without messages get title and description translated.",
    responses=GATED_RESPONSES
)
async def translate(
    ticket_id: str,
    payload: Optional[TranslateRequest] = None,
    actor: Actor = Depends(get_actor),
    service: AssistantService = Depends(get_assistant_service)
):
    target_language = payload.target_language if payload else TranslateRequest().target_language
    result = await service.translate(ticket_id, target_language, actor)
    return TranslationResponse.from_result(ticket_id, result)


@router.post(
    "/tickets/{ticket_id}/summary",
    response_model=SummaryResponse,
    summary="Summarize the ticket",
    responses=GATED_RESPONSES
)
async def summarize(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: AssistantService = Depends(get_assistant_service)
):
    result = await service.summarize(ticket_id, actor)
    return SummaryResponse.from_result(ticket_id, result)


@router.post(
    "/tickets/{ticket_id}/knowledge",
    response_model=KnowledgeResponse,
    summary="Suggest help articles",
    description="Three to five help-article titles relevant to the ticket.",
    responses=GATED_RESPONSES
)
async def suggest_knowledge(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: AssistantService = Depends(get_assistant_service)
):
    result = await service.suggest_knowledge(ticket_id, actor)
    return KnowledgeResponse.from_result(ticket_id, result)


assistant_router = router
