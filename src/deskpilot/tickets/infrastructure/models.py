"""
Tickets Infrastructure Models
=============================

SQLAlchemy ORM models for tickets, their conversation and activity trail,
organization AI settings, and the audit log.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, Integer, Boolean, Text, Uuid, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from deskpilot.infrastructure.database import Base
from deskpilot.config import TicketStatus, TicketPriority, AIStatus, AIProvider, AuditSeverity


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketModel(Base):
    """Database model for the Ticket aggregate."""
    __tablename__ = "tickets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)

    # Content
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketStatus.OPEN)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketPriority.MEDIUM)
    sentiment: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Customer identity
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Agent pipeline outcome
    ai_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=AIStatus.PENDING_ANALYSIS, index=True
    )
    ai_confidence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ai_last_action_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    auto_resolution_attempted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class TicketMessageModel(Base):
    """Database model for ticket conversation messages."""
    __tablename__ = "ticket_messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    sender_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sender_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class TicketActivityModel(Base):
    """Database model for the ticket activity trail."""
    __tablename__ = "ticket_activities"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    created_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class OrganizationSettingsModel(Base):
    """Per-organization AI settings (one row per organization)."""
    __tablename__ = "organization_ai_settings"

    organization_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)

    ai_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_provider: Mapped[str] = mapped_column(String(20), nullable=False, default=AIProvider.INTEGRATED)
    ai_custom_endpoint: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    ai_custom_model: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    ai_auto_suggest_responses: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ai_sentiment_analysis: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ai_priority_suggestions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ai_translation_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_knowledge_base_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_summarization_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_agents_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    ai_pii_detection_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ai_require_consent_for_pii: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ai_auto_anonymize: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    ai_auto_execution_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_auto_execution_threshold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class OrganizationAICredentialModel(Base):
    """Provider API key stored for an organization."""
    __tablename__ = "organization_ai_credentials"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    api_key: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class AuditLogModel(Base):
    """Security/compliance audit trail."""
    __tablename__ = "audit_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    user_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default=AuditSeverity.INFO)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
