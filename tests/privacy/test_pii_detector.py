"""Unit tests for PII detection and sensitivity rules."""

import pytest

from deskpilot.config import PIICategory, SensitivityLevel
from deskpilot.privacy.domain import (
    PIIDetector,
    anonymize_text,
    calculate_sensitivity_level,
    classify,
    is_gdpr_relevant,
)


class TestPatternDetection:
    """Tests for regex-detected identifiers."""

    def test_email(self):
        """An email address is detected on its own."""
        result = classify("Contact me at jane.doe@example.com please")

        assert result.pii_types == {PIICategory.EMAIL}
        assert result.contains_pii is True
        assert result.match_counts[PIICategory.EMAIL] == 1

    def test_credit_card_is_not_also_a_postal_code(self):
        """Card digits are counted once, under credit_card."""
        result = classify("My card is 4111 1111 1111 1111")

        assert result.pii_types == {PIICategory.CREDIT_CARD}

    def test_ssn(self):
        result = classify("SSN 123-45-6789")

        assert result.pii_types == {PIICategory.SSN}

    def test_phone_number(self):
        result = classify("Call me back at 555-123-4567 tomorrow")

        assert result.pii_types == {PIICategory.PHONE}

    def test_ip_address(self):
        result = classify("Requests come from 192.168.1.10")

        assert result.pii_types == {PIICategory.IP_ADDRESS}

    def test_postal_code(self):
        result = classify("Ship it to ZIP 90210")

        assert result.pii_types == {PIICategory.POSTAL_CODE}

    def test_email_local_part_is_not_a_keyword(self):
        """The ``pin`` in pin@example.com does not count as an auth keyword."""
        result = classify("Write to pin@example.com")

        assert result.pii_types == {PIICategory.EMAIL}

    def test_counts_every_match(self):
        result = classify("a@example.com and b@example.org")

        assert result.match_counts[PIICategory.EMAIL] == 2


class TestKeywordDetection:
    """Tests for sensitive-topic keywords."""

    def test_medical_keyword(self):
        result = classify("I need a new prescription for my condition")

        assert result.pii_types == {PIICategory.MEDICAL}

    def test_keywords_are_case_insensitive(self):
        result = classify("PASSWORD reset does not work")

        assert result.pii_types == {PIICategory.AUTH}

    def test_keywords_match_whole_words_only(self):
        """``spinning`` does not contain the keyword ``pin``."""
        result = classify("The page keeps spinning")

        assert result.contains_pii is False

    def test_multi_word_keyword(self):
        result = classify("Here is my date of birth")

        assert result.pii_types == {PIICategory.PERSONAL}

    @pytest.mark.parametrize("text", [
        "[CREDENTIALS REDACTED] Please reset it.",
        "Refund to [CREDIT CARD REDACTED] today.",
        "[EMAIL REDACTED] wrote in. [MEDICAL INFO REDACTED]",
    ])
    def test_redaction_placeholders_are_not_pii(self, text):
        assert classify(text).contains_pii is False

    def test_anonymized_text_classifies_clean(self):
        text = "Write to jane@example.com. My password is hunter2. Card 4111 1111 1111 1111 was charged twice."
        detected = classify(text)

        redacted = anonymize_text(text, detected.pii_types)

        assert detected.pii_types == {PIICategory.EMAIL, PIICategory.AUTH, PIICategory.CREDIT_CARD}
        assert classify(redacted).contains_pii is False


class TestSensitivity:
    """Tests for sensitivity level derivation."""

    def test_no_text_is_low(self):
        result = PIIDetector().classify("")

        assert result.contains_pii is False
        assert result.sensitivity_level == SensitivityLevel.LOW
        assert result.gdpr_relevant is False

    def test_single_category_is_low(self):
        assert classify("jane@example.com").sensitivity_level == SensitivityLevel.LOW

    def test_two_categories_are_medium(self):
        result = classify("jane@example.com or 555-123-4567")

        assert result.pii_types == {PIICategory.EMAIL, PIICategory.PHONE}
        assert result.sensitivity_level == SensitivityLevel.MEDIUM

    def test_three_categories_are_high(self):
        result = classify("jane@example.com, 555-123-4567, from 10.0.0.1")

        assert len(result.pii_types) == 3
        assert result.sensitivity_level == SensitivityLevel.HIGH

    def test_critical_category_wins(self):
        assert classify("4111-1111-1111-1111").sensitivity_level == SensitivityLevel.CRITICAL

    def test_gdpr_category_is_critical(self):
        result = classify("Please check my last invoice")

        assert result.pii_types == {PIICategory.FINANCIAL}
        assert result.gdpr_relevant is True
        assert result.sensitivity_level == SensitivityLevel.CRITICAL

    @pytest.mark.parametrize("pii_types,gdpr,expected", [
        ([], False, SensitivityLevel.LOW),
        ([PIICategory.EMAIL], False, SensitivityLevel.LOW),
        ([PIICategory.EMAIL, PIICategory.PHONE], False, SensitivityLevel.MEDIUM),
        ([PIICategory.EMAIL, PIICategory.PHONE, PIICategory.POSTAL_CODE], False, SensitivityLevel.HIGH),
        ([PIICategory.AUTH], False, SensitivityLevel.CRITICAL),
        ([PIICategory.EMAIL], True, SensitivityLevel.CRITICAL),
    ])
    def test_calculate_sensitivity_level(self, pii_types, gdpr, expected):
        assert calculate_sensitivity_level(pii_types, gdpr) == expected

    def test_gdpr_relevance(self):
        assert is_gdpr_relevant([PIICategory.MEDICAL]) is True
        assert is_gdpr_relevant([PIICategory.EMAIL, PIICategory.AUTH]) is False

    def test_sorted_types_are_stable(self):
        result = classify("jane@example.com or 555-123-4567")

        assert result.sorted_types() == [PIICategory.EMAIL, PIICategory.PHONE]
