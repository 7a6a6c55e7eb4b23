"""
deskpilot
=========

AI core of a customer-support ticketing service: PII classification and
anonymization, a consent gate, the triage/resolution/quality agent
pipeline with confidence-gated auto-execution, and human feedback capture.
"""

__version__ = "1.0.0"
