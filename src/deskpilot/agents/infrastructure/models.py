"""
Agents Infrastructure Models
============================

SQLAlchemy ORM models for agent actions and learning feedback.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, Integer, Text, Uuid, ForeignKey, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from deskpilot.infrastructure.database import Base
from deskpilot.config import ActionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentActionModel(Base):
    """Action proposed by a pipeline stage."""
    __tablename__ = "ai_ticket_actions"
    __table_args__ = (
        # Sliding-window rate limit lookups
        Index("ix_ai_ticket_actions_ticket_status_executed", "ticket_id", "status", "executed_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    agent_type: Mapped[str] = mapped_column(String(20), nullable=False)
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    action_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ActionStatus.PENDING)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class LearningFeedbackModel(Base):
    """Human review of an agent action."""
    __tablename__ = "ai_learning_feedback"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    # No cascade: feedback outlives its action for audit purposes
    action_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    user_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    feedback_type: Mapped[str] = mapped_column(String(20), nullable=False)
    original_action: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    feedback_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )
