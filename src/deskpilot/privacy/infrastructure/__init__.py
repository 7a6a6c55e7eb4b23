"""
Privacy Infrastructure Layer
============================

SQLAlchemy models and repositories for classifications and suspended AI
requests.
"""

from deskpilot.privacy.infrastructure.models import (
    TicketDataClassificationModel,
    PendingAIRequestModel,
)
from deskpilot.privacy.infrastructure.repositories import (
    SQLAlchemyClassificationRepository,
    SQLAlchemyPendingRequestRepository,
)

__all__ = [
    "TicketDataClassificationModel",
    "PendingAIRequestModel",
    "SQLAlchemyClassificationRepository",
    "SQLAlchemyPendingRequestRepository",
]
