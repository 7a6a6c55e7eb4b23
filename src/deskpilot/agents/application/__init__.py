"""
Agents Application Layer
========================

Contains:
- Services: agent pipeline, action executor, learning feedback
- DTOs: Data transfer objects for API serialization
"""

from deskpilot.agents.application.dto import (
    FeedbackRequest,
    AgentResultInfo,
    PipelineResponse,
    AgentActionResponse,
    FeedbackResponse,
)
from deskpilot.agents.application.services import (
    AI_AGENT,
    IAgentActionRepository,
    ILearningFeedbackRepository,
    ActionExecutor,
    AgentPipelineService,
    FeedbackOutcome,
    LearningFeedbackService,
)

__all__ = [
    # DTOs
    "FeedbackRequest",
    "AgentResultInfo",
    "PipelineResponse",
    "AgentActionResponse",
    "FeedbackResponse",
    # Services
    "AI_AGENT",
    "ActionExecutor",
    "AgentPipelineService",
    "FeedbackOutcome",
    "LearningFeedbackService",
    # Repository Interfaces
    "IAgentActionRepository",
    "ILearningFeedbackRepository",
]
