"""
Assistant Application Layer
===========================

Contains:
- Services: consent-gated assistive features
- DTOs: Data transfer objects for API serialization
"""

from deskpilot.assistant.application.dto import (
    TranslateRequest,
    SuggestionsResponse,
    SentimentResponse,
    PriorityResponse,
    TranslationResponse,
    SummaryResponse,
    KnowledgeResponse,
)
from deskpilot.assistant.application.services import (
    AssistantService,
    FEATURE_FLAGS,
)

__all__ = [
    # DTOs
    "TranslateRequest",
    "SuggestionsResponse",
    "SentimentResponse",
    "PriorityResponse",
    "TranslationResponse",
    "SummaryResponse",
    "KnowledgeResponse",
    # Services
    "AssistantService",
    "FEATURE_FLAGS",
]
