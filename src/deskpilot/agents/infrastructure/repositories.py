"""
Agents Infrastructure Repositories
==================================

SQLAlchemy implementations of the agent action and learning feedback
repositories.
"""

from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from deskpilot.agents.application.services import (
    IAgentActionRepository,
    ILearningFeedbackRepository,
)
from deskpilot.agents.domain import AgentAction, LearningFeedback
from deskpilot.agents.infrastructure.models import AgentActionModel, LearningFeedbackModel
from deskpilot.config import ActionStatus, FeedbackType
from deskpilot.core import RepositoryException
from deskpilot.tickets.infrastructure import TicketModel, parse_uuid, require_uuid


def _action_to_entity(model: AgentActionModel) -> AgentAction:
    return AgentAction(
        id=str(model.id),
        ticket_id=str(model.ticket_id),
        agent_type=model.agent_type,
        action_type=model.action_type,
        action_data=dict(model.action_data or {}),
        confidence_score=model.confidence_score,
        reasoning=model.reasoning,
        status=model.status,
        created_at=model.created_at,
        executed_at=model.executed_at,
    )


def _feedback_to_entity(model: LearningFeedbackModel) -> LearningFeedback:
    return LearningFeedback(
        id=str(model.id),
        action_id=str(model.action_id),
        user_id=str(model.user_id) if model.user_id else None,
        feedback_type=model.feedback_type,
        original_action=dict(model.original_action or {}),
        feedback_notes=model.feedback_notes,
        created_at=model.created_at,
    )


class SQLAlchemyAgentActionRepository(IAgentActionRepository):
    """SQLAlchemy implementation for agent actions."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, action: AgentAction) -> AgentAction:
        model = AgentActionModel(
            id=uuid4(),
            ticket_id=require_uuid(action.ticket_id, "ticket"),
            agent_type=action.agent_type,
            action_type=action.action_type,
            action_data=action.action_data,
            confidence_score=action.confidence_score,
            reasoning=action.reasoning,
            status=action.status,
            created_at=action.created_at,
            executed_at=action.executed_at,
        )
        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to store {action.agent_type} action: {e}")
        return _action_to_entity(model)

    async def get_by_id(self, action_id: str) -> Optional[AgentAction]:
        action_uuid = parse_uuid(action_id)
        if action_uuid is None:
            return None

        model = await self._session.get(AgentActionModel, action_uuid, populate_existing=True)
        return _action_to_entity(model) if model else None

    async def list_for_ticket(self, ticket_id: str) -> List[AgentAction]:
        ticket_uuid = parse_uuid(ticket_id)
        if ticket_uuid is None:
            return []

        stmt = (
            select(AgentActionModel)
            .where(AgentActionModel.ticket_id == ticket_uuid)
            .order_by(AgentActionModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [_action_to_entity(model) for model in result.scalars().all()]

    async def update_status(
        self,
        action_id: str,
        status: str,
        executed_at: Optional[datetime] = None
    ) -> None:
        values = {"status": status}
        if executed_at is not None:
            values["executed_at"] = executed_at
        try:
            await self._session.execute(
                update(AgentActionModel)
                .where(AgentActionModel.id == require_uuid(action_id, "action"))
                .values(**values)
            )
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update action {action_id}: {e}")

    async def count_executed_since(self, ticket_id: str, since: datetime) -> int:
        ticket_uuid = parse_uuid(ticket_id)
        if ticket_uuid is None:
            return 0

        stmt = select(func.count(AgentActionModel.id)).where(
            AgentActionModel.ticket_id == ticket_uuid,
            AgentActionModel.status == ActionStatus.EXECUTED,
            AgentActionModel.executed_at >= since,
        )
        result = await self._session.execute(stmt)
        return result.scalar() or 0


class SQLAlchemyLearningFeedbackRepository(ILearningFeedbackRepository):
    """SQLAlchemy implementation for learning feedback."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, feedback: LearningFeedback) -> LearningFeedback:
        model = LearningFeedbackModel(
            id=uuid4(),
            action_id=require_uuid(feedback.action_id, "action"),
            user_id=parse_uuid(feedback.user_id),
            feedback_type=feedback.feedback_type,
            original_action=feedback.original_action,
            feedback_notes=feedback.feedback_notes,
            created_at=feedback.created_at,
        )
        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to store feedback for action {feedback.action_id}: {e}")
        return _feedback_to_entity(model)

    async def list_learning_context(self, organization_id: str, limit: int) -> List[LearningFeedback]:
        org_uuid = parse_uuid(organization_id)
        if org_uuid is None or limit <= 0:
            return []

        stmt = (
            select(LearningFeedbackModel)
            .join(AgentActionModel, AgentActionModel.id == LearningFeedbackModel.action_id)
            .join(TicketModel, TicketModel.id == AgentActionModel.ticket_id)
            .where(
                TicketModel.organization_id == org_uuid,
                or_(
                    LearningFeedbackModel.feedback_type == FeedbackType.APPROVAL,
                    and_(
                        LearningFeedbackModel.feedback_type == FeedbackType.REJECTION,
                        LearningFeedbackModel.feedback_notes.is_not(None),
                    ),
                ),
            )
            .order_by(LearningFeedbackModel.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [_feedback_to_entity(model) for model in result.scalars().all()]
