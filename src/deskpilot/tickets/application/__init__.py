"""
Tickets Application Layer
=========================

Repository interfaces, audit logging and model client resolution.
"""

from deskpilot.tickets.application.services import (
    ITicketRepository,
    IMessageRepository,
    IActivityRepository,
    IOrganizationSettingsRepository,
    IAuditLogRepository,
    IUnitOfWork,
    AuditLogger,
    ModelClientResolver,
    load_ticket,
)

__all__ = [
    "ITicketRepository",
    "IMessageRepository",
    "IActivityRepository",
    "IOrganizationSettingsRepository",
    "IAuditLogRepository",
    "IUnitOfWork",
    "AuditLogger",
    "ModelClientResolver",
    "load_ticket",
]
