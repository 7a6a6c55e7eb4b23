"""
Tickets Domain Entities
=======================

The ticket aggregate as the AI core sees it.

Tickets are created and edited by the surrounding help-desk application;
this service reads them, anonymizes copies of them, and mutates them only
through the Action Executor.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List

from deskpilot.config import (
    settings, TicketStatus, TicketPriority, AIStatus, AIProvider
)


@dataclass
class Ticket:
    """
    Support ticket (aggregate root).

    Messages, agent actions, classifications and feedback all hang off a
    ticket id.
    """
    id: str
    organization_id: str
    title: str
    description: Optional[str] = None
    status: str = TicketStatus.OPEN
    priority: str = TicketPriority.MEDIUM
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    sentiment: Optional[str] = None
    ai_status: str = AIStatus.PENDING_ANALYSIS
    ai_confidence: Optional[int] = None
    ai_last_action_at: Optional[datetime] = None
    auto_resolution_attempted: bool = False
    resolved_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        """Check if ticket has been resolved or closed."""
        return self.status in (TicketStatus.RESOLVED, TicketStatus.CLOSED)


@dataclass
class TicketMessage:
    """A message on a ticket's conversation. Append-only."""
    id: str
    ticket_id: str
    content: str
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    is_internal: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TicketActivity:
    """Entry in a ticket's activity trail."""
    ticket_id: str
    activity_type: str
    content: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_by: Optional[str] = None
    created_by_name: Optional[str] = None
    created_by_email: Optional[str] = None
    id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class Actor:
    """The human (or system) on whose behalf an operation runs."""
    user_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class OrganizationAISettings:
    """
    Per-organization AI configuration.

    Managed by the surrounding application; read-only here. Defaults mirror
    an organization that has never opened its AI settings page.
    """
    organization_id: str
    ai_enabled: bool = False
    ai_provider: str = AIProvider.INTEGRATED
    ai_custom_endpoint: Optional[str] = None
    ai_custom_model: Optional[str] = None

    # Feature flags
    ai_auto_suggest_responses: bool = True
    ai_sentiment_analysis: bool = True
    ai_priority_suggestions: bool = True
    ai_translation_enabled: bool = False
    ai_knowledge_base_enabled: bool = False
    ai_summarization_enabled: bool = False
    ai_agents_enabled: bool = False

    # Privacy
    ai_pii_detection_enabled: bool = True
    ai_require_consent_for_pii: bool = True
    ai_auto_anonymize: bool = False

    # Auto-execution
    ai_auto_execution_enabled: bool = False
    ai_auto_execution_threshold: Optional[int] = None

    @property
    def auto_execution_threshold(self) -> int:
        """Configured threshold, falling back to the deployment default."""
        if self.ai_auto_execution_threshold is None:
            return settings.default_auto_execution_threshold
        return self.ai_auto_execution_threshold


def build_ticket_text(ticket: Ticket, messages: Optional[List[TicketMessage]] = None) -> str:
    """
    Concatenate everything a model could be shown about a ticket.

    Used as the input of PII classification so that detection covers the
    same fields the agents and assistant features send out, customer
    contact details included.
    """
    parts = [
        ticket.title or "",
        ticket.description or "",
        ticket.customer_email or "",
        ticket.customer_phone or "",
    ]
    parts.extend(message.content for message in messages or [] if message.content)
    return "\n".join(part for part in parts if part)
