"""
Privacy Interfaces Layer
========================

Interface adapters (controllers) for PII classification and consent.

Contains:
- Controllers: FastAPI route handlers
- Builders: session-scoped wiring of the privacy services
"""

from deskpilot.privacy.interfaces.controllers import (
    privacy_router,
    build_detection_service,
    build_consent_gate,
)

__all__ = ["privacy_router", "build_detection_service", "build_consent_gate"]
