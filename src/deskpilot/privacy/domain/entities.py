"""
Privacy Domain Entities
=======================

Stored classification of a ticket, the consent decision attached to it,
and AI requests suspended while that decision is outstanding.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List

from deskpilot.config import SensitivityLevel, PendingRequestStatus


@dataclass
class PIIClassification:
    """
    One row per ticket: what was detected, and what the operator decided.

    Consent and its anonymization choice are sticky: once recorded they
    apply to every later AI request on the ticket.
    """
    ticket_id: str
    contains_pii: bool = False
    pii_types: List[str] = field(default_factory=list)
    sensitivity_level: str = SensitivityLevel.LOW
    gdpr_relevant: bool = False
    ai_usage_consent: bool = False
    consent_given_at: Optional[datetime] = None
    consent_given_by: Optional[str] = None
    data_anonymized: bool = False
    last_analyzed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[str] = None


@dataclass
class PendingAIRequest:
    """
    An AI request parked until an operator decides on consent.

    ``feature`` and ``parameters`` are enough to replay the request: they are
    the continuation of the call that hit the consent gate.
    """
    id: str
    ticket_id: str
    organization_id: str
    feature: str
    parameters: dict = field(default_factory=dict)
    requested_by: Optional[str] = None
    status: str = PendingRequestStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == PendingRequestStatus.PENDING


@dataclass(frozen=True)
class GateDecision:
    """
    Consent gate outcome for one AI request.

    ``proceed`` False means the request must be suspended; ``anonymize``
    says whether the ticket data must be redacted before it leaves.
    """
    proceed: bool
    anonymize: bool = False
    pii_types: tuple = ()
    sensitivity_level: str = SensitivityLevel.LOW

    @classmethod
    def suspend(cls, classification: PIIClassification) -> "GateDecision":
        return cls(
            proceed=False,
            pii_types=tuple(classification.pii_types),
            sensitivity_level=classification.sensitivity_level,
        )


def evaluate_consent(
    classification: Optional[PIIClassification],
    require_consent: bool,
    auto_anonymize: bool
) -> GateDecision:
    """
    Decide whether an AI request may proceed and with which data.

    - no PII, or consent not required: proceed
    - consent already recorded: proceed with the recorded anonymization choice
    - otherwise: suspend until an operator decides

    The organization's auto-anonymize flag forces redaction whenever PII
    types are known, whatever the recorded choice.
    """
    if classification is None or not classification.contains_pii:
        return GateDecision(proceed=True, anonymize=False)

    forced = auto_anonymize and bool(classification.pii_types)
    pii_types = tuple(classification.pii_types)

    if not require_consent:
        return GateDecision(
            proceed=True,
            anonymize=forced,
            pii_types=pii_types,
            sensitivity_level=classification.sensitivity_level,
        )

    if classification.ai_usage_consent:
        return GateDecision(
            proceed=True,
            anonymize=classification.data_anonymized or forced,
            pii_types=pii_types,
            sensitivity_level=classification.sensitivity_level,
        )

    return GateDecision.suspend(classification)
