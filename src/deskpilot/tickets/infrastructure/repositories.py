"""
Tickets Infrastructure Repositories
===================================

SQLAlchemy implementations of the ticket repositories.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from deskpilot.config import AIStatus
from deskpilot.core import RepositoryException
from deskpilot.tickets.application import (
    ITicketRepository,
    IMessageRepository,
    IActivityRepository,
    IOrganizationSettingsRepository,
    IAuditLogRepository,
    IUnitOfWork,
)
from deskpilot.tickets.domain import (
    Ticket, TicketMessage, TicketActivity, OrganizationAISettings
)
from deskpilot.tickets.infrastructure.models import (
    TicketModel,
    TicketMessageModel,
    TicketActivityModel,
    OrganizationSettingsModel,
    OrganizationAICredentialModel,
    AuditLogModel,
)


def parse_uuid(value: Optional[str]) -> Optional[UUID]:
    """Parse a string id, returning None for anything that is not a UUID."""
    if value is None:
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def require_uuid(value: str, resource: str) -> UUID:
    """Parse a string id for a write, raising RepositoryException when invalid."""
    parsed = parse_uuid(value)
    if parsed is None:
        raise RepositoryException(f"Invalid {resource} ID: {value}")
    return parsed


def _ticket_to_entity(model: TicketModel) -> Ticket:
    return Ticket(
        id=str(model.id),
        organization_id=str(model.organization_id),
        title=model.title,
        description=model.description,
        status=model.status,
        priority=model.priority,
        customer_name=model.customer_name,
        customer_email=model.customer_email,
        customer_phone=model.customer_phone,
        sentiment=model.sentiment,
        ai_status=model.ai_status,
        ai_confidence=model.ai_confidence,
        ai_last_action_at=model.ai_last_action_at,
        auto_resolution_attempted=model.auto_resolution_attempted,
        resolved_at=model.resolved_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _message_to_entity(model: TicketMessageModel) -> TicketMessage:
    return TicketMessage(
        id=str(model.id),
        ticket_id=str(model.ticket_id),
        content=model.content,
        sender_name=model.sender_name,
        sender_email=model.sender_email,
        is_internal=model.is_internal,
        created_at=model.created_at,
    )


def _activity_to_entity(model: TicketActivityModel) -> TicketActivity:
    return TicketActivity(
        id=str(model.id),
        ticket_id=str(model.ticket_id),
        activity_type=model.activity_type,
        content=model.content,
        old_value=model.old_value,
        new_value=model.new_value,
        created_by=str(model.created_by) if model.created_by else None,
        created_by_name=model.created_by_name,
        created_by_email=model.created_by_email,
        created_at=model.created_at,
    )


class SQLAlchemyUnitOfWork(IUnitOfWork):
    """Savepoints on the request session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        async with self._session.begin_nested():
            yield


class SQLAlchemyTicketRepository(ITicketRepository):
    """SQLAlchemy implementation for tickets."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        ticket_uuid = parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None

        model = await self._session.get(TicketModel, ticket_uuid, populate_existing=True)
        return _ticket_to_entity(model) if model else None

    async def list_by_organization(self, organization_id: str) -> List[Ticket]:
        org_uuid = parse_uuid(organization_id)
        if org_uuid is None:
            return []

        stmt = (
            select(TicketModel)
            .where(TicketModel.organization_id == org_uuid)
            .order_by(TicketModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [_ticket_to_entity(model) for model in result.scalars().all()]

    async def list_pending_analysis(self, limit: int) -> List[Ticket]:
        stmt = (
            select(TicketModel)
            .where(TicketModel.ai_status == AIStatus.PENDING_ANALYSIS)
            .order_by(TicketModel.created_at.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [_ticket_to_entity(model) for model in result.scalars().all()]

    async def update_ai_analysis(
        self,
        ticket_id: str,
        ai_status: str,
        ai_confidence: int,
        analyzed_at: datetime
    ) -> None:
        await self._update(
            ticket_id,
            ai_status=ai_status,
            ai_confidence=ai_confidence,
            ai_last_action_at=analyzed_at,
            auto_resolution_attempted=True,
        )

    async def update_status(
        self,
        ticket_id: str,
        status: str,
        resolved_at: Optional[datetime] = None
    ) -> None:
        values = {"status": status}
        if resolved_at is not None:
            values["resolved_at"] = resolved_at
        await self._update(ticket_id, **values)

    async def update_priority(self, ticket_id: str, priority: str) -> None:
        await self._update(ticket_id, priority=priority)

    async def update_sentiment(self, ticket_id: str, sentiment: str) -> None:
        await self._update(ticket_id, sentiment=sentiment)

    async def _update(self, ticket_id: str, **values) -> None:
        ticket_uuid = require_uuid(ticket_id, "ticket")
        values["updated_at"] = datetime.now(timezone.utc)
        try:
            await self._session.execute(
                update(TicketModel).where(TicketModel.id == ticket_uuid).values(**values)
            )
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update ticket {ticket_id}: {e}")


class SQLAlchemyMessageRepository(IMessageRepository):
    """SQLAlchemy implementation for ticket messages."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_for_ticket(self, ticket_id: str) -> List[TicketMessage]:
        ticket_uuid = parse_uuid(ticket_id)
        if ticket_uuid is None:
            return []

        stmt = (
            select(TicketMessageModel)
            .where(TicketMessageModel.ticket_id == ticket_uuid)
            .order_by(TicketMessageModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [_message_to_entity(model) for model in result.scalars().all()]

    async def create(
        self,
        ticket_id: str,
        content: str,
        sender_name: str,
        sender_email: str,
        is_internal: bool = False
    ) -> TicketMessage:
        model = TicketMessageModel(
            id=uuid4(),
            ticket_id=require_uuid(ticket_id, "ticket"),
            content=content,
            sender_name=sender_name,
            sender_email=sender_email,
            is_internal=is_internal,
            created_at=datetime.now(timezone.utc),
        )
        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to insert message on ticket {ticket_id}: {e}")
        return _message_to_entity(model)


class SQLAlchemyActivityRepository(IActivityRepository):
    """SQLAlchemy implementation for the activity trail."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, activity: TicketActivity) -> TicketActivity:
        model = TicketActivityModel(
            id=uuid4(),
            ticket_id=require_uuid(activity.ticket_id, "ticket"),
            activity_type=activity.activity_type,
            content=activity.content,
            old_value=activity.old_value,
            new_value=activity.new_value,
            created_by=parse_uuid(activity.created_by),
            created_by_name=activity.created_by_name,
            created_by_email=activity.created_by_email,
            created_at=activity.created_at,
        )
        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to write activity on ticket {activity.ticket_id}: {e}")
        return _activity_to_entity(model)

    async def list_for_ticket(self, ticket_id: str) -> List[TicketActivity]:
        ticket_uuid = parse_uuid(ticket_id)
        if ticket_uuid is None:
            return []

        stmt = (
            select(TicketActivityModel)
            .where(TicketActivityModel.ticket_id == ticket_uuid)
            .order_by(TicketActivityModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [_activity_to_entity(model) for model in result.scalars().all()]


class SQLAlchemyOrganizationSettingsRepository(IOrganizationSettingsRepository):
    """SQLAlchemy implementation for organization AI settings."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, organization_id: str) -> OrganizationAISettings:
        org_uuid = parse_uuid(organization_id)
        model = await self._session.get(OrganizationSettingsModel, org_uuid) if org_uuid else None
        if model is None:
            return OrganizationAISettings(organization_id=organization_id)

        return OrganizationAISettings(
            organization_id=str(model.organization_id),
            ai_enabled=model.ai_enabled,
            ai_provider=model.ai_provider,
            ai_custom_endpoint=model.ai_custom_endpoint,
            ai_custom_model=model.ai_custom_model,
            ai_auto_suggest_responses=model.ai_auto_suggest_responses,
            ai_sentiment_analysis=model.ai_sentiment_analysis,
            ai_priority_suggestions=model.ai_priority_suggestions,
            ai_translation_enabled=model.ai_translation_enabled,
            ai_knowledge_base_enabled=model.ai_knowledge_base_enabled,
            ai_summarization_enabled=model.ai_summarization_enabled,
            ai_agents_enabled=model.ai_agents_enabled,
            ai_pii_detection_enabled=model.ai_pii_detection_enabled,
            ai_require_consent_for_pii=model.ai_require_consent_for_pii,
            ai_auto_anonymize=model.ai_auto_anonymize,
            ai_auto_execution_enabled=model.ai_auto_execution_enabled,
            ai_auto_execution_threshold=model.ai_auto_execution_threshold,
        )

    async def get_api_key(self, organization_id: str, provider: str) -> Optional[str]:
        org_uuid = parse_uuid(organization_id)
        if org_uuid is None:
            return None

        stmt = (
            select(OrganizationAICredentialModel.api_key)
            .where(
                OrganizationAICredentialModel.organization_id == org_uuid,
                OrganizationAICredentialModel.provider == provider,
            )
            .order_by(OrganizationAICredentialModel.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class SQLAlchemyAuditLogRepository(IAuditLogRepository):
    """SQLAlchemy implementation of the audit log sink."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(
        self,
        organization_id: str,
        user_id: Optional[str],
        action: str,
        resource_type: str,
        resource_id: Optional[str],
        details: dict,
        severity: str
    ) -> None:
        model = AuditLogModel(
            id=uuid4(),
            organization_id=require_uuid(organization_id, "organization"),
            user_id=parse_uuid(user_id),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            severity=severity,
            created_at=datetime.now(timezone.utc),
        )
        # Savepoint: a failed insert leaves the enclosing transaction usable
        try:
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to write audit event {action}: {e}")
