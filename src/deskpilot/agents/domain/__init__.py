"""
Agents Domain Layer
===================

Action payloads, agent actions, learning feedback, prompts and the
pipeline's numeric rules.
"""

from deskpilot.agents.domain.actions import (
    ActionPayload,
    SendMessage,
    ChangeStatus,
    ChangePriority,
    Escalate,
    FollowUp,
    RefundRequest,
    MalformedPayload,
    parse_action_payload,
)
from deskpilot.agents.domain.entities import (
    ALLOWED_TRANSITIONS,
    AgentAction,
    AgentOutput,
    AgentResult,
    AutoExecutionDecision,
    LearningFeedback,
    PipelineResult,
    decide_auto_execution,
    derive_ai_status,
    normalize_confidence,
    parse_agent_output,
)
from deskpilot.agents.domain.prompts import AgentPromptBuilder, SUGGEST_ACTION_TOOL

__all__ = [
    # Payloads
    "ActionPayload",
    "SendMessage",
    "ChangeStatus",
    "ChangePriority",
    "Escalate",
    "FollowUp",
    "RefundRequest",
    "MalformedPayload",
    "parse_action_payload",
    # Entities
    "ALLOWED_TRANSITIONS",
    "AgentAction",
    "AgentOutput",
    "AgentResult",
    "AutoExecutionDecision",
    "LearningFeedback",
    "PipelineResult",
    "decide_auto_execution",
    "derive_ai_status",
    "normalize_confidence",
    "parse_agent_output",
    # Prompts
    "AgentPromptBuilder",
    "SUGGEST_ACTION_TOOL",
]
