"""
Assistant Interfaces Layer
==========================

Interface adapters (controllers) for the assistive AI features.
"""

from deskpilot.assistant.interfaces.controllers import (
    assistant_router,
    build_assistant_service,
    build_consent_handlers,
)

__all__ = ["assistant_router", "build_assistant_service", "build_consent_handlers"]
