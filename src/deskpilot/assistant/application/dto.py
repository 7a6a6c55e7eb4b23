"""
Assistant Application DTOs
==========================

Pydantic request/response models for the assistant API.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from deskpilot.assistant.domain import (
    KnowledgeSuggestions,
    PrioritySuggestion,
    ResponseSuggestions,
    SentimentAnalysis,
    TicketSummary,
    Translation,
)


# ========== Request DTOs ==========

class TranslateRequest(BaseModel):
    """Request model for translation."""
    target_language: str = Field(
        default="en",
        min_length=2,
        max_length=50,
        description="Target language name or code, e.g. 'de' or 'Spanish'"
    )


# ========== Response DTOs ==========

class SuggestionsResponse(BaseModel):
    ticket_id: str
    suggestions: List[str]
    fallback: bool = Field(False, description="True when the model answer could not be used")

    @classmethod
    def from_result(cls, ticket_id: str, result: ResponseSuggestions) -> "SuggestionsResponse":
        return cls(ticket_id=ticket_id, suggestions=result.suggestions, fallback=result.fallback)


class SentimentResponse(BaseModel):
    ticket_id: str
    sentiment: Literal["positive", "neutral", "negative", "urgent"]
    urgency_score: int = Field(..., ge=1, le=10)

    @classmethod
    def from_result(cls, ticket_id: str, result: SentimentAnalysis) -> "SentimentResponse":
        return cls(ticket_id=ticket_id, sentiment=result.sentiment, urgency_score=result.urgency_score)


class PriorityResponse(BaseModel):
    ticket_id: str
    suggested_priority: Optional[Literal["low", "medium", "high", "urgent"]] = None

    @classmethod
    def from_result(cls, ticket_id: str, result: PrioritySuggestion) -> "PriorityResponse":
        return cls(ticket_id=ticket_id, suggested_priority=result.suggested_priority)


class TranslationResponse(BaseModel):
    ticket_id: str
    target_language: str
    message_translations: Dict[str, str] = Field(default_factory=dict)
    translated_text: Optional[str] = None

    @classmethod
    def from_result(cls, ticket_id: str, result: Translation) -> "TranslationResponse":
        return cls(
            ticket_id=ticket_id,
            target_language=result.target_language,
            message_translations=result.message_translations,
            translated_text=result.translated_text,
        )


class SummaryResponse(BaseModel):
    ticket_id: str
    summary: str

    @classmethod
    def from_result(cls, ticket_id: str, result: TicketSummary) -> "SummaryResponse":
        return cls(ticket_id=ticket_id, summary=result.summary)


class KnowledgeResponse(BaseModel):
    ticket_id: str
    articles: List[str]

    @classmethod
    def from_result(cls, ticket_id: str, result: KnowledgeSuggestions) -> "KnowledgeResponse":
        return cls(ticket_id=ticket_id, articles=result.articles)
