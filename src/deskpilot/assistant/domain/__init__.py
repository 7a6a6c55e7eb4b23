"""
Assistant Domain Layer
======================

Result types and prompt templates of the assistive AI features.
"""

from deskpilot.assistant.domain.entities import (
    SENTIMENTS,
    ResponseSuggestions,
    SentimentAnalysis,
    PrioritySuggestion,
    Translation,
    TicketSummary,
    KnowledgeSuggestions,
    as_string_list,
    normalize_priority,
    normalize_sentiment,
)
from deskpilot.assistant.domain import prompts

__all__ = [
    "SENTIMENTS",
    "ResponseSuggestions",
    "SentimentAnalysis",
    "PrioritySuggestion",
    "Translation",
    "TicketSummary",
    "KnowledgeSuggestions",
    "as_string_list",
    "normalize_priority",
    "normalize_sentiment",
    "prompts",
]
