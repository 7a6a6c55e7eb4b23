"""
Agents Interfaces Layer
=======================

Interface adapters (controllers) for the agent pipeline.

Contains:
- Controllers: FastAPI route handlers
- Builders: session-scoped wiring of the agent services
"""

from deskpilot.agents.interfaces.controllers import (
    agents_router,
    build_pipeline_service,
    build_feedback_service,
    build_consent_handlers,
)

__all__ = [
    "agents_router",
    "build_pipeline_service",
    "build_feedback_service",
    "build_consent_handlers",
]
