"""
Privacy Application Layer
=========================

Contains:
- Services: PII classification, consent gate
- DTOs: Data transfer objects for API serialization
"""

from deskpilot.privacy.application.dto import (
    ClassifyTicketRequest,
    ConsentDecisionRequest,
    DetectionResponse,
    ClassificationResponse,
    ScanResponse,
    ConsentDecisionResponse,
)
from deskpilot.privacy.application.services import (
    IClassificationRepository,
    IPendingRequestRepository,
    PIIDetectionService,
    ConsentGate,
    ConsentHandler,
    ConsentOutcome,
    ScanSummary,
    prepare_ticket_data,
)

__all__ = [
    # DTOs
    "ClassifyTicketRequest",
    "ConsentDecisionRequest",
    "DetectionResponse",
    "ClassificationResponse",
    "ScanResponse",
    "ConsentDecisionResponse",
    # Services
    "PIIDetectionService",
    "ConsentGate",
    "ConsentHandler",
    "ConsentOutcome",
    "ScanSummary",
    "prepare_ticket_data",
    # Repository Interfaces
    "IClassificationRepository",
    "IPendingRequestRepository",
]
