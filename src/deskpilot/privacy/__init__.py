"""
Privacy Module
==============

Bounded context for personal data in tickets.

Responsibilities:
- Rule-based PII classification of ticket content
- Anonymization of ticket copies sent to a model
- Consent gate in front of every AI feature, with suspended requests
  resumed once an operator decides
"""

__version__ = "1.0.0"
