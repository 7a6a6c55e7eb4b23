"""
Tickets Application Services
============================

Repository interfaces for the ticket aggregate, the audit log sink, and
resolution of an organization's model client.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncContextManager, Optional, List

from deskpilot.config import AIProvider, AuditSeverity
from deskpilot.core import RepositoryException, ResourceNotFoundException
from deskpilot.infrastructure.llm import IModelClient, ModelClientFactory
from deskpilot.shared.infrastructure.logging import get_logger
from deskpilot.tickets.domain import (
    Ticket, TicketMessage, TicketActivity, OrganizationAISettings
)

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID."""

    @abstractmethod
    async def list_by_organization(self, organization_id: str) -> List[Ticket]:
        """All tickets of an organization, oldest first."""

    @abstractmethod
    async def list_pending_analysis(self, limit: int) -> List[Ticket]:
        """Tickets whose ai_status is still pending_analysis, oldest first."""

    @abstractmethod
    async def update_ai_analysis(
        self,
        ticket_id: str,
        ai_status: str,
        ai_confidence: int,
        analyzed_at: datetime
    ) -> None:
        """Record the outcome of a pipeline run."""

    @abstractmethod
    async def update_status(
        self,
        ticket_id: str,
        status: str,
        resolved_at: Optional[datetime] = None
    ) -> None:
        """Change ticket status, optionally stamping resolved_at."""

    @abstractmethod
    async def update_priority(self, ticket_id: str, priority: str) -> None:
        """Change ticket priority."""

    @abstractmethod
    async def update_sentiment(self, ticket_id: str, sentiment: str) -> None:
        """Store the latest sentiment analysis."""


class IMessageRepository(ABC):
    """Interface for ticket conversation messages."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[TicketMessage]:
        """Messages ordered by created_at ascending."""

    @abstractmethod
    async def create(
        self,
        ticket_id: str,
        content: str,
        sender_name: str,
        sender_email: str,
        is_internal: bool = False
    ) -> TicketMessage:
        """Append a message."""


class IActivityRepository(ABC):
    """Interface for the ticket activity trail."""

    @abstractmethod
    async def create(self, activity: TicketActivity) -> TicketActivity:
        """Append an activity entry."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[TicketActivity]:
        """Activity entries ordered by created_at ascending."""


class IOrganizationSettingsRepository(ABC):
    """Interface for organization AI settings and credentials."""

    @abstractmethod
    async def get(self, organization_id: str) -> OrganizationAISettings:
        """Settings for an organization (defaults when none are stored)."""

    @abstractmethod
    async def get_api_key(self, organization_id: str, provider: str) -> Optional[str]:
        """Most recently stored API key for a provider."""


class IAuditLogRepository(ABC):
    """Interface for the audit log sink."""

    @abstractmethod
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
        """Write one audit record."""


class IUnitOfWork(ABC):
    """Transaction control shared by the repositories of one session."""

    @abstractmethod
    def savepoint(self) -> AsyncContextManager[None]:
        """
        Scope a group of writes.

        If the block raises, its writes are rolled back and the exception
        propagates; earlier writes of the transaction are kept and the
        transaction stays usable.
        """


# ========== Application Services ==========

async def load_ticket(ticket_repo: ITicketRepository, ticket_id: str) -> Ticket:
    """Fetch a ticket or raise ResourceNotFoundException."""
    ticket = await ticket_repo.get_by_id(ticket_id)
    if ticket is None:
        raise ResourceNotFoundException("Ticket", ticket_id)
    return ticket


class AuditLogger:
    """
    Writes security/compliance events to the audit log.

    Audit writes are best-effort: a failing sink is logged and never aborts
    the operation being audited.
    """

    def __init__(self, audit_repo: IAuditLogRepository):
        self._repo = audit_repo

    async def log_event(
        self,
        organization_id: str,
        action: str,
        resource_type: str,
        details: Optional[dict] = None,
        user_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        severity: str = AuditSeverity.INFO
    ) -> None:
        """
        Record an audit event.

        Args:
            organization_id: Owning organization
            action: Event name (e.g. ``ai_auto_execution``)
            resource_type: Kind of resource acted on (``ticket``, ``ai_action``)
            details: Free-form event payload
            user_id: Acting user, ``None`` for system actions
            resource_id: Identifier of the resource
            severity: One of AuditSeverity
        """
        try:
            await self._repo.create(
                organization_id=organization_id,
                user_id=user_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                details=details or {},
                severity=severity,
            )
        except RepositoryException as e:
            logger.error(
                "Failed to write audit event",
                extra={"audit_action": action, "resource_id": resource_id, "error": e.message}
            )


class ModelClientResolver:
    """Builds the model client an organization has configured."""

    def __init__(
        self,
        settings_repo: IOrganizationSettingsRepository,
        factory: Optional[ModelClientFactory] = None
    ):
        self._settings_repo = settings_repo
        self._factory = factory or ModelClientFactory()

    async def resolve(self, org_settings: OrganizationAISettings) -> IModelClient:
        """
        Raises:
            ConfigurationException: If the provider lacks credentials
        """
        provider = org_settings.ai_provider or AIProvider.INTEGRATED
        api_key = None
        if provider != AIProvider.INTEGRATED:
            api_key = await self._settings_repo.get_api_key(org_settings.organization_id, provider)

        return self._factory.create(
            provider=provider,
            api_key=api_key,
            custom_endpoint=org_settings.ai_custom_endpoint,
            custom_model=org_settings.ai_custom_model,
        )
