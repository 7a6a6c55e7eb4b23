"""
Agents Infrastructure Layer
===========================

SQLAlchemy models and repositories for agent actions and learning feedback,
and the APScheduler wrapper for scheduled pipeline runs.
"""

from deskpilot.agents.infrastructure.models import AgentActionModel, LearningFeedbackModel
from deskpilot.agents.infrastructure.repositories import (
    SQLAlchemyAgentActionRepository,
    SQLAlchemyLearningFeedbackRepository,
)
from deskpilot.agents.infrastructure.external import PipelineScheduler

__all__ = [
    "AgentActionModel",
    "LearningFeedbackModel",
    "SQLAlchemyAgentActionRepository",
    "SQLAlchemyLearningFeedbackRepository",
    "PipelineScheduler",
]
