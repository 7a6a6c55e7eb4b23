"""
Anonymizer
==========

Deterministic redaction of ticket text for a given set of PII categories.

Pure functions, no I/O: the same input always yields the same output, and
re-applying a redaction is a no-op (existing placeholders are never
re-scanned).

Redaction granularity:
- pattern categories replace each match with a placeholder token
- keyword categories replace the whole sentence containing the keyword,
  from the previous sentence end (or placeholder) through the next ``.``,
  ``!`` or ``?`` (or the end of the text)
"""

import re
from dataclasses import replace
from typing import Dict, Iterable, List

from deskpilot.config import PIICategory
from deskpilot.privacy.domain.pii import (
    REDACTED_PLACEHOLDER,
    SENSITIVE_KEYWORDS,
    keyword_pattern,
    mask_patterns,
)
from deskpilot.tickets.domain import Ticket, TicketMessage


PII_REPLACEMENTS: Dict[str, str] = {
    PIICategory.EMAIL: "[EMAIL REDACTED]",
    PIICategory.PHONE: "[PHONE REDACTED]",
    PIICategory.SSN: "[SSN REDACTED]",
    PIICategory.CREDIT_CARD: "[CREDIT CARD REDACTED]",
    PIICategory.NAME: "[NAME REDACTED]",
    PIICategory.IP_ADDRESS: "[IP ADDRESS REDACTED]",
    PIICategory.POSTAL_CODE: "[ZIP CODE REDACTED]",
    PIICategory.MEDICAL: "[MEDICAL INFO REDACTED]",
    PIICategory.FINANCIAL: "[FINANCIAL INFO REDACTED]",
    PIICategory.PERSONAL: "[PERSONAL INFO REDACTED]",
    PIICategory.AUTH: "[CREDENTIALS REDACTED]",
}

_SENTENCE_PLACEHOLDERS = frozenset(PII_REPLACEMENTS[category] for category in SENSITIVE_KEYWORDS)

# While keyword sentences are rewritten, placeholders are swapped for
# sentinels: \x00 marks a token-level placeholder (part of its sentence),
# \x01 a sentence-level one (a sentence boundary).
_TOKEN, _SENTENCE = "\x00", "\x01"
_SENTINEL = re.compile(r"([\x00\x01])(\d+)\1")

# Keyword categories in the order they are applied.
_SENTENCE_REDACTIONS = [
    (
        category,
        re.compile(
            r"(?P<lead>\s*)[^.!?\x01]*?" + keyword_pattern(keywords)
            + r"[^.!?\x01]*(?:[.!?]|(?=\x01)|\Z)",
            re.IGNORECASE,
        ),
    )
    for category, keywords in SENSITIVE_KEYWORDS.items()
]


def _redacted_categories(pii_types: Iterable[str]) -> set:
    categories = set(pii_types)
    # Card numbers tend to travel with financial wording even when the
    # pattern pass alone did not flag them.
    if PIICategory.FINANCIAL in categories:
        categories.add(PIICategory.CREDIT_CARD)
    return categories


def anonymize_text(text: str, pii_types: Iterable[str]) -> str:
    """
    Redact ``text`` for the given PII categories.

    Args:
        text: Free text (ticket title, description, message body)
        pii_types: Categories detected for the ticket

    Returns:
        The redacted text; ``text`` unchanged when no category applies
    """
    if not text:
        return text

    categories = _redacted_categories(pii_types)
    if not categories:
        return text

    text, _ = mask_patterns(text, categories, lambda category: PII_REPLACEMENTS[category])

    keyword_categories = [item for item in _SENTENCE_REDACTIONS if item[0] in categories]
    if not keyword_categories:
        return text

    # Placeholders are never re-scanned for keywords. A redacted token stays
    # inside its sentence (and is swallowed with it); a redacted sentence
    # ends the sentence before it.
    tokens: List[str] = []

    def protect(placeholder: str) -> str:
        tokens.append(placeholder)
        marker = _SENTENCE if placeholder in _SENTENCE_PLACEHOLDERS else _TOKEN
        return f"{marker}{len(tokens) - 1}{marker}"

    text = REDACTED_PLACEHOLDER.sub(lambda match: protect(match.group(0)), text)
    for category, regex in keyword_categories:
        placeholder = PII_REPLACEMENTS[category]
        text = regex.sub(lambda match: match.group("lead") + protect(placeholder), text)

    return _SENTINEL.sub(lambda match: tokens[int(match.group(2))], text)


def anonymize_ticket(ticket: Ticket, pii_types: Iterable[str]) -> Ticket:
    """
    Redacted copy of a ticket.

    Title and description go through ``anonymize_text``; customer email,
    phone and name are replaced wholesale when their category is present.
    """
    categories = set(pii_types)
    changes = {
        "title": anonymize_text(ticket.title, categories),
        "description": anonymize_text(ticket.description, categories) if ticket.description else ticket.description,
    }
    if PIICategory.EMAIL in categories and ticket.customer_email:
        changes["customer_email"] = PII_REPLACEMENTS[PIICategory.EMAIL]
    if PIICategory.PHONE in categories and ticket.customer_phone:
        changes["customer_phone"] = PII_REPLACEMENTS[PIICategory.PHONE]
    if PIICategory.NAME in categories and ticket.customer_name:
        changes["customer_name"] = PII_REPLACEMENTS[PIICategory.NAME]
    return replace(ticket, **changes)


def anonymize_messages(messages: Iterable[TicketMessage], pii_types: Iterable[str]) -> List[TicketMessage]:
    """Redacted copies of ticket messages (content, sender email and name)."""
    categories = set(pii_types)
    redacted = []
    for message in messages:
        changes = {"content": anonymize_text(message.content, categories)}
        if PIICategory.EMAIL in categories and message.sender_email:
            changes["sender_email"] = PII_REPLACEMENTS[PIICategory.EMAIL]
        if PIICategory.NAME in categories and message.sender_name:
            changes["sender_name"] = PII_REPLACEMENTS[PIICategory.NAME]
        redacted.append(replace(message, **changes))
    return redacted
