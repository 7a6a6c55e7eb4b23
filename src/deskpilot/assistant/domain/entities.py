"""
Assistant Domain Entities
=========================

Results of the assistive features and the rules that normalize raw model
answers into them.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from deskpilot.config import VALID_PRIORITIES

SENTIMENTS = ["positive", "neutral", "negative", "urgent"]


@dataclass
class ResponseSuggestions:
    suggestions: List[str]
    fallback: bool = False


@dataclass
class SentimentAnalysis:
    sentiment: str
    urgency_score: int


@dataclass
class PrioritySuggestion:
    suggested_priority: Optional[str]


@dataclass
class Translation:
    """Either per-message translations or one translated ticket text."""
    target_language: str
    message_translations: Dict[str, str] = field(default_factory=dict)
    translated_text: Optional[str] = None


@dataclass
class TicketSummary:
    summary: str


@dataclass
class KnowledgeSuggestions:
    articles: List[str]


def as_string_list(value: Any) -> List[str]:
    """Wrap a single value in a list and drop empty entries."""
    items = value if isinstance(value, list) else [value]
    return [str(item).strip() for item in items if item is not None and str(item).strip()]


def normalize_priority(answer: Optional[str]) -> Optional[str]:
    """
    Map a free-text model answer onto the priority vocabulary.

    The answer is lower-cased and stripped of surrounding punctuation;
    anything outside the vocabulary becomes ``None``.
    """
    if not answer:
        return None
    candidate = answer.strip().strip(".!\"'`*").strip().lower()
    return candidate if candidate in VALID_PRIORITIES else None


def normalize_sentiment(raw: Any) -> Optional[SentimentAnalysis]:
    """
    Validate a parsed sentiment answer.

    Returns ``None`` when the sentiment is unknown or the urgency score is
    not a number; the score is clamped to 1-10.
    """
    if not isinstance(raw, dict):
        return None
    sentiment = str(raw.get("sentiment", "")).strip().lower()
    if sentiment not in SENTIMENTS:
        return None
    try:
        urgency = round(float(raw.get("urgency_score")))
    except (TypeError, ValueError):
        return None
    return SentimentAnalysis(sentiment=sentiment, urgency_score=max(1, min(10, urgency)))
