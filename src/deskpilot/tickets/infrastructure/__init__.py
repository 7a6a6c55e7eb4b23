"""
Tickets Infrastructure Layer
============================

SQLAlchemy models and repositories for tickets, messages, activities,
organization AI settings and the audit log.
"""

from deskpilot.tickets.infrastructure.models import (
    TicketModel,
    TicketMessageModel,
    TicketActivityModel,
    OrganizationSettingsModel,
    OrganizationAICredentialModel,
    AuditLogModel,
)
from deskpilot.tickets.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyMessageRepository,
    SQLAlchemyActivityRepository,
    SQLAlchemyOrganizationSettingsRepository,
    SQLAlchemyAuditLogRepository,
    SQLAlchemyUnitOfWork,
    parse_uuid,
    require_uuid,
)

__all__ = [
    "TicketModel",
    "TicketMessageModel",
    "TicketActivityModel",
    "OrganizationSettingsModel",
    "OrganizationAICredentialModel",
    "AuditLogModel",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyMessageRepository",
    "SQLAlchemyActivityRepository",
    "SQLAlchemyOrganizationSettingsRepository",
    "SQLAlchemyAuditLogRepository",
    "SQLAlchemyUnitOfWork",
    "parse_uuid",
    "require_uuid",
]
