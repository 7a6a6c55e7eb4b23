"""
Privacy Infrastructure Models
=============================

SQLAlchemy ORM models for ticket classifications and suspended AI requests.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, Boolean, Uuid, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from deskpilot.infrastructure.database import Base
from deskpilot.config import SensitivityLevel, PendingRequestStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketDataClassificationModel(Base):
    """One classification row per ticket (upserted on every scan)."""
    __tablename__ = "ticket_data_classification"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # Detection
    contains_pii: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pii_types: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    sensitivity_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SensitivityLevel.LOW
    )
    gdpr_relevant: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Consent
    ai_usage_consent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consent_given_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    consent_given_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    data_anonymized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    last_analyzed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class PendingAIRequestModel(Base):
    """AI request waiting for a consent decision."""
    __tablename__ = "pending_ai_requests"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    feature: Mapped[str] = mapped_column(String(50), nullable=False)
    parameters: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    requested_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PendingRequestStatus.PENDING, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
