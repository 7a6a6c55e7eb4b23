"""
Privacy Application DTOs
========================

Pydantic request/response models for the privacy API.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from deskpilot.privacy.domain import PIIClassification, PIIDetectionResult


SensitivityLevelStr = Literal["low", "medium", "high", "critical"]
ConsentChoiceStr = Literal["anonymize", "proceed", "cancel"]


# ========== Request DTOs ==========

class ClassifyTicketRequest(BaseModel):
    """Request model for ticket classification."""
    text: Optional[str] = Field(
        None,
        description="Text to scan; defaults to the ticket's fields and conversation"
    )


class ConsentDecisionRequest(BaseModel):
    """Operator decision on a suspended AI request."""
    choice: ConsentChoiceStr = Field(..., description="anonymize, proceed or cancel")


# ========== Response DTOs ==========

class DetectionResponse(BaseModel):
    """Response model for a classification run."""
    ticket_id: str
    contains_pii: bool
    pii_types: List[str]
    sensitivity_level: SensitivityLevelStr
    gdpr_relevant: bool
    detected_patterns: Dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, ticket_id: str, result: PIIDetectionResult) -> "DetectionResponse":
        return cls(
            ticket_id=ticket_id,
            contains_pii=result.contains_pii,
            pii_types=result.sorted_types(),
            sensitivity_level=result.sensitivity_level,
            gdpr_relevant=result.gdpr_relevant,
            detected_patterns=dict(result.match_counts),
        )


class ClassificationResponse(BaseModel):
    """Stored classification of a ticket, consent included."""
    ticket_id: str
    contains_pii: bool
    pii_types: List[str]
    sensitivity_level: SensitivityLevelStr
    gdpr_relevant: bool
    ai_usage_consent: bool
    consent_given_at: Optional[datetime] = None
    consent_given_by: Optional[str] = None
    data_anonymized: bool
    last_analyzed_at: datetime

    @classmethod
    def from_entity(cls, classification: PIIClassification) -> "ClassificationResponse":
        return cls(
            ticket_id=classification.ticket_id,
            contains_pii=classification.contains_pii,
            pii_types=list(classification.pii_types),
            sensitivity_level=classification.sensitivity_level,
            gdpr_relevant=classification.gdpr_relevant,
            ai_usage_consent=classification.ai_usage_consent,
            consent_given_at=classification.consent_given_at,
            consent_given_by=classification.consent_given_by,
            data_anonymized=classification.data_anonymized,
            last_analyzed_at=classification.last_analyzed_at,
        )


class ScanResponse(BaseModel):
    """Outcome of an organization-wide scan."""
    organization_id: str
    tickets_scanned: int
    tickets_with_pii: int
    by_sensitivity: Dict[str, int]


class ConsentDecisionResponse(BaseModel):
    """Closed consent request and, when resumed, the feature's result."""
    pending_request_id: str
    ticket_id: str
    feature: str
    status: str
    result: Optional[Any] = None
