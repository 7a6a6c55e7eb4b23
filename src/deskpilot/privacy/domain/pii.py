"""
PII Detection
=============

Pattern- and keyword-based detection of personal and sensitive data.

Two detection mechanisms:

* Patterns (regex) for structured identifiers: email, credit_card, ssn,
  phone, ip_address, postal_code. Patterns run in that fixed order and each
  match is masked before the next pattern runs, so an identifier is counted
  once, under its most specific category (the digits of a card number are
  not also a postal code; the local part of ``pin@example.com`` is not an
  auth keyword).
* Keywords for sensitive topics: medical, financial, personal, auth. A
  category is present when any of its keywords occurs as a whole word,
  case-insensitively, in the masked text.


Placeholders left by the anonymizer (``[EMAIL REDACTED]``) are masked before
either pass, so classifying anonymized text finds nothing new.

Sensitivity is a pure function of the detected categories (see
``calculate_sensitivity_level``).
"""

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Pattern, Tuple

from deskpilot.config import PIICategory, SensitivityLevel


# Ordered: earlier categories win overlapping spans.
PII_PATTERNS: List[Tuple[str, Pattern]] = [
    (PIICategory.EMAIL, re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")),
    (PIICategory.CREDIT_CARD, re.compile(r"\b(?:\d{4}[\s-]?){3}\d{4}\b")),
    (PIICategory.SSN, re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    (PIICategory.PHONE, re.compile(
        r"(?<![\w+(])(?:\+\d{1,3}[\s.-]?)?(?:\(\d{3}\)|\d{3})[\s.-]?\d{3}[\s.-]?\d{4}\b"
    )),
    (PIICategory.IP_ADDRESS, re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")),
    (PIICategory.POSTAL_CODE, re.compile(r"\b\d{5}(?:-\d{4})?\b")),
]

SENSITIVE_KEYWORDS: Dict[str, List[str]] = {
    PIICategory.MEDICAL: [
        "diagnosis", "prescription", "medication", "symptom", "treatment",
        "patient", "doctor", "hospital", "medical history",
    ],
    PIICategory.FINANCIAL: [
        "bank account", "routing number", "credit card", "debit card",
        "payment", "invoice", "balance", "transaction",
    ],
    PIICategory.PERSONAL: [
        "date of birth", "dob", "birthdate", "passport", "driver license",
        "driver's license", "social security",
    ],
    PIICategory.AUTH: [
        "password", "pin", "passcode", "secret", "api key", "token", "credentials",
    ],
}

# Placeholders written by the anonymizer; never evidence of PII themselves.
REDACTED_PLACEHOLDER: Pattern = re.compile(r"\[[A-Z ]+ REDACTED\]")

PATTERN_CATEGORIES: FrozenSet[str] = frozenset(category for category, _ in PII_PATTERNS)
KEYWORD_CATEGORIES: FrozenSet[str] = frozenset(SENSITIVE_KEYWORDS)

# GDPR Art. 9 special categories
GDPR_SPECIAL_CATEGORIES: FrozenSet[str] = frozenset({PIICategory.MEDICAL, PIICategory.FINANCIAL})
CRITICAL_CATEGORIES: FrozenSet[str] = frozenset({
    PIICategory.CREDIT_CARD, PIICategory.SSN, PIICategory.MEDICAL, PIICategory.AUTH,
})


def keyword_pattern(keywords: Iterable[str]) -> str:
    """Alternation matching any keyword as a whole word."""
    return r"\b(?:" + "|".join(re.escape(keyword) for keyword in keywords) + r")\b"


_KEYWORD_REGEXES: Dict[str, Pattern] = {
    category: re.compile(keyword_pattern(keywords), re.IGNORECASE)
    for category, keywords in SENSITIVE_KEYWORDS.items()
}


@dataclass(frozen=True)
class PIIDetectionResult:
    """Outcome of classifying one text."""
    pii_types: FrozenSet[str] = field(default_factory=frozenset)
    sensitivity_level: str = SensitivityLevel.LOW
    gdpr_relevant: bool = False
    match_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def contains_pii(self) -> bool:
        return bool(self.pii_types)

    def sorted_types(self) -> List[str]:
        """pii_types as a stable, sorted list (for storage and JSON)."""
        return sorted(self.pii_types)


def is_gdpr_relevant(pii_types: Iterable[str]) -> bool:
    """True iff any GDPR special category is present."""
    return not GDPR_SPECIAL_CATEGORIES.isdisjoint(pii_types)


def calculate_sensitivity_level(pii_types: Iterable[str], gdpr_relevant: bool) -> str:
    """
    Derive sensitivity from the detected categories.

    Precedence:
        no PII -> low; any critical category or GDPR relevance -> critical;
        three or more categories -> high; two -> medium; otherwise low.
    """
    types = frozenset(pii_types)
    if not types:
        return SensitivityLevel.LOW
    if gdpr_relevant or not CRITICAL_CATEGORIES.isdisjoint(types):
        return SensitivityLevel.CRITICAL
    if len(types) >= 3:
        return SensitivityLevel.HIGH
    if len(types) >= 2:
        return SensitivityLevel.MEDIUM
    return SensitivityLevel.LOW


def mask_patterns(text: str, categories: Iterable[str], replacement) -> Tuple[str, Dict[str, int]]:
    """
    Replace matches of the given pattern categories, in detection order.

    Args:
        text: Input text
        categories: Pattern categories to apply
        replacement: Replacement string, or callable ``category -> str``

    Returns:
        The rewritten text and the number of matches per category
    """
    wanted = set(categories)
    counts: Dict[str, int] = {}
    for category, pattern in PII_PATTERNS:
        if category not in wanted:
            continue
        token = replacement(category) if callable(replacement) else replacement
        text, count = pattern.subn(lambda _match: token, text)
        if count:
            counts[category] = count
    return text, counts


class PIIDetector:
    """
    Classifies free text into PII categories and a sensitivity level.

    Stateless; a single module-level instance is shared.
    """

    def classify(self, text: str) -> PIIDetectionResult:
        """
        Detect PII categories in ``text``.

        Returns:
            PIIDetectionResult with categories, sensitivity and GDPR relevance
        """
        if not text:
            return PIIDetectionResult()

        masked = REDACTED_PLACEHOLDER.sub(" ", text)
        masked, counts = mask_patterns(masked, PATTERN_CATEGORIES, " ")

        for category, regex in _KEYWORD_REGEXES.items():
            hits = len(regex.findall(masked))
            if hits:
                counts[category] = hits

        pii_types = frozenset(counts)
        gdpr_relevant = is_gdpr_relevant(pii_types)
        return PIIDetectionResult(
            pii_types=pii_types,
            sensitivity_level=calculate_sensitivity_level(pii_types, gdpr_relevant),
            gdpr_relevant=gdpr_relevant,
            match_counts=counts,
        )


pii_detector = PIIDetector()


def classify(text: str) -> PIIDetectionResult:
    """Module-level shortcut for ``pii_detector.classify``."""
    return pii_detector.classify(text)
