"""
Tickets Domain Layer
====================

Entities for the ticket aggregate (Ticket, TicketMessage, TicketActivity)
and the organization's AI settings.
"""

from deskpilot.tickets.domain.entities import (
    Ticket,
    TicketMessage,
    TicketActivity,
    Actor,
    OrganizationAISettings,
    build_ticket_text,
)

__all__ = [
    "Ticket",
    "TicketMessage",
    "TicketActivity",
    "Actor",
    "OrganizationAISettings",
    "build_ticket_text",
]
