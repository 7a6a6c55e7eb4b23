"""
Privacy Infrastructure Repositories
===================================

SQLAlchemy implementations of the classification and pending-request
repositories.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from deskpilot.core import (
    ClassificationStorageException,
    RepositoryException,
    ResourceNotFoundException,
)
from deskpilot.privacy.application.services import (
    IClassificationRepository,
    IPendingRequestRepository,
)
from deskpilot.privacy.domain import PIIClassification, PIIDetectionResult, PendingAIRequest
from deskpilot.privacy.infrastructure.models import (
    TicketDataClassificationModel,
    PendingAIRequestModel,
)
from deskpilot.tickets.infrastructure import parse_uuid, require_uuid


def _classification_to_entity(model: TicketDataClassificationModel) -> PIIClassification:
    return PIIClassification(
        id=str(model.id),
        ticket_id=str(model.ticket_id),
        contains_pii=model.contains_pii,
        pii_types=list(model.pii_types or []),
        sensitivity_level=model.sensitivity_level,
        gdpr_relevant=model.gdpr_relevant,
        ai_usage_consent=model.ai_usage_consent,
        consent_given_at=model.consent_given_at,
        consent_given_by=str(model.consent_given_by) if model.consent_given_by else None,
        data_anonymized=model.data_anonymized,
        last_analyzed_at=model.last_analyzed_at,
    )


def _pending_to_entity(model: PendingAIRequestModel) -> PendingAIRequest:
    return PendingAIRequest(
        id=str(model.id),
        ticket_id=str(model.ticket_id),
        organization_id=str(model.organization_id),
        feature=model.feature,
        parameters=dict(model.parameters or {}),
        requested_by=str(model.requested_by) if model.requested_by else None,
        status=model.status,
        created_at=model.created_at,
        resolved_at=model.resolved_at,
    )


class SQLAlchemyClassificationRepository(IClassificationRepository):
    """SQLAlchemy implementation for ticket classifications."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, ticket_id: str) -> Optional[TicketDataClassificationModel]:
        ticket_uuid = parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None

        stmt = select(TicketDataClassificationModel).where(
            TicketDataClassificationModel.ticket_id == ticket_uuid
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_ticket(self, ticket_id: str) -> Optional[PIIClassification]:
        model = await self._get_model(ticket_id)
        return _classification_to_entity(model) if model else None

    async def upsert(
        self,
        ticket_id: str,
        result: PIIDetectionResult,
        analyzed_at: datetime
    ) -> PIIClassification:
        try:
            model = await self._get_model(ticket_id)
            async with self._session.begin_nested():
                if model is None:
                    model = TicketDataClassificationModel(
                        id=uuid4(),
                        ticket_id=require_uuid(ticket_id, "ticket"),
                        ai_usage_consent=False,
                        data_anonymized=False,
                    )
                    self._session.add(model)

                model.contains_pii = result.contains_pii
                model.pii_types = result.sorted_types()
                model.sensitivity_level = result.sensitivity_level
                model.gdpr_relevant = result.gdpr_relevant
                model.last_analyzed_at = analyzed_at

                await self._session.flush()
        except (SQLAlchemyError, RepositoryException) as e:
            raise ClassificationStorageException(
                f"Failed to store classification for ticket {ticket_id}: {e}",
                {"ticket_id": ticket_id}
            )

        return _classification_to_entity(model)

    async def record_consent(
        self,
        ticket_id: str,
        anonymize: bool,
        given_by: Optional[str],
        given_at: datetime
    ) -> PIIClassification:
        model = await self._get_model(ticket_id)
        if model is None:
            raise ResourceNotFoundException("Classification", ticket_id)

        model.ai_usage_consent = True
        model.data_anonymized = anonymize
        model.consent_given_by = parse_uuid(given_by)
        model.consent_given_at = given_at
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise ClassificationStorageException(
                f"Failed to record consent for ticket {ticket_id}: {e}",
                {"ticket_id": ticket_id}
            )
        return _classification_to_entity(model)


class SQLAlchemyPendingRequestRepository(IPendingRequestRepository):
    """SQLAlchemy implementation for suspended AI requests."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, request: PendingAIRequest) -> PendingAIRequest:
        model = PendingAIRequestModel(
            id=require_uuid(request.id, "pending request"),
            ticket_id=require_uuid(request.ticket_id, "ticket"),
            organization_id=require_uuid(request.organization_id, "organization"),
            feature=request.feature,
            parameters=request.parameters,
            requested_by=parse_uuid(request.requested_by),
            status=request.status,
            created_at=request.created_at,
        )
        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to store pending AI request: {e}")
        return _pending_to_entity(model)

    async def get_by_id(self, request_id: str) -> Optional[PendingAIRequest]:
        request_uuid = parse_uuid(request_id)
        if request_uuid is None:
            return None

        model = await self._session.get(PendingAIRequestModel, request_uuid, populate_existing=True)
        return _pending_to_entity(model) if model else None

    async def update_status(self, request_id: str, status: str, resolved_at: datetime) -> None:
        try:
            await self._session.execute(
                update(PendingAIRequestModel)
                .where(PendingAIRequestModel.id == require_uuid(request_id, "pending request"))
                .values(status=status, resolved_at=resolved_at)
            )
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update pending AI request {request_id}: {e}")
