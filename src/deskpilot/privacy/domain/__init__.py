"""
Privacy Domain Layer
====================

PII detection rules, text anonymization and the consent decision.

Everything here is pure: no database, no network.
"""

from deskpilot.privacy.domain.pii import (
    PII_PATTERNS,
    SENSITIVE_KEYWORDS,
    GDPR_SPECIAL_CATEGORIES,
    CRITICAL_CATEGORIES,
    PIIDetectionResult,
    PIIDetector,
    pii_detector,
    classify,
    calculate_sensitivity_level,
    is_gdpr_relevant,
)
from deskpilot.privacy.domain.anonymizer import (
    PII_REPLACEMENTS,
    anonymize_text,
    anonymize_ticket,
    anonymize_messages,
)
from deskpilot.privacy.domain.entities import (
    PIIClassification,
    PendingAIRequest,
    GateDecision,
    evaluate_consent,
)

__all__ = [
    # Detection
    "PII_PATTERNS",
    "SENSITIVE_KEYWORDS",
    "GDPR_SPECIAL_CATEGORIES",
    "CRITICAL_CATEGORIES",
    "PIIDetectionResult",
    "PIIDetector",
    "pii_detector",
    "classify",
    "calculate_sensitivity_level",
    "is_gdpr_relevant",
    # Anonymization
    "PII_REPLACEMENTS",
    "anonymize_text",
    "anonymize_ticket",
    "anonymize_messages",
    # Entities
    "PIIClassification",
    "PendingAIRequest",
    "GateDecision",
    "evaluate_consent",
]
