"""
Agents Domain Entities
======================

Agent actions, learning feedback and the numeric rules of the pipeline:
confidence normalization, AI status derivation and the auto-execution
decision.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from deskpilot.config import (
    ActionStatus,
    AIStatus,
    VALID_ACTION_TYPES,
)
from deskpilot.core import InvalidActionTransitionException, ModelMalformedOutputException


# pending -> approved | rejected | executed; approved -> executed;
# rejected may still be approved later. executed is terminal.
ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    ActionStatus.PENDING: frozenset({ActionStatus.APPROVED, ActionStatus.REJECTED, ActionStatus.EXECUTED}),
    ActionStatus.APPROVED: frozenset({ActionStatus.EXECUTED}),
    ActionStatus.REJECTED: frozenset({ActionStatus.APPROVED}),
    ActionStatus.EXECUTED: frozenset(),
}


def normalize_confidence(raw: float) -> int:
    """
    Bring a model confidence onto the 0-100 scale.

    Values above 1 are taken as percentages, anything else as a fraction.
    ``1.0`` therefore maps to 100, never to 1.
    """
    value = raw if raw > 1 else raw * 100
    return int(round(min(100.0, max(0.0, value))))


def derive_ai_status(final_confidence: int, threshold: int, in_progress_min: int = 60) -> str:
    """
    Map the pipeline's final confidence onto the ticket's ai_status.

    The threshold test comes first, so a threshold below ``in_progress_min``
    still yields ``resolved`` for scores at or above it.
    """
    if final_confidence >= threshold:
        return AIStatus.RESOLVED
    if final_confidence >= in_progress_min:
        return AIStatus.IN_PROGRESS
    return AIStatus.HUMAN_REQUIRED


class AgentOutput(BaseModel):
    """Arguments of the ``suggest_action`` tool call, validated."""
    model_config = ConfigDict(extra="ignore")

    action_type: str
    action_data: Dict[str, Any]
    confidence_score: float
    reasoning: str

    @field_validator("action_type")
    @classmethod
    def validate_action_type(cls, v: str) -> str:
        if v not in VALID_ACTION_TYPES:
            raise ValueError(f"action_type must be one of {VALID_ACTION_TYPES}")
        return v

    @property
    def confidence(self) -> int:
        return normalize_confidence(self.confidence_score)


def parse_agent_output(arguments: Optional[dict]) -> AgentOutput:
    """
    Raises:
        ModelMalformedOutputException: If required fields are missing or invalid
    """
    if not isinstance(arguments, dict):
        raise ModelMalformedOutputException("Agent returned no tool arguments")
    try:
        return AgentOutput.model_validate(arguments)
    except ValidationError as e:
        raise ModelMalformedOutputException(f"Agent output does not match the action schema: {e}")


@dataclass
class AgentAction:
    """
    An action proposed by one pipeline stage.

    Appended once per stage per run and never edited except for its review
    status (and executed_at).
    """
    ticket_id: str
    agent_type: str
    action_type: str
    action_data: dict
    confidence_score: int
    reasoning: str
    status: str = ActionStatus.PENDING
    id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    executed_at: Optional[datetime] = None

    def can_transition_to(self, target: str) -> bool:
        return target in ALLOWED_TRANSITIONS.get(self.status, frozenset())

    def ensure_transition(self, target: str) -> None:
        """
        Raises:
            InvalidActionTransitionException: If ``target`` is not reachable
        """
        if not self.can_transition_to(target):
            raise InvalidActionTransitionException(self.id or "", self.status, target)


@dataclass
class LearningFeedback:
    """A human review of an agent action. Immutable once stored."""
    action_id: str
    feedback_type: str
    original_action: dict
    user_id: Optional[str] = None
    feedback_notes: Optional[str] = None
    id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_example(self) -> dict:
        """Shape replayed to agents as an in-context example."""
        example = {"feedback_type": self.feedback_type, "original_action": self.original_action}
        if self.feedback_notes:
            example["feedback_notes"] = self.feedback_notes
        return example


@dataclass
class AgentResult:
    """Outcome of one pipeline stage."""
    agent_type: str
    action_type: str
    action_data: dict
    confidence_score: int
    reasoning: str
    action_id: Optional[str] = None


@dataclass(frozen=True)
class AutoExecutionDecision:
    execute: bool
    reason: str


def decide_auto_execution(
    enabled: bool,
    final_confidence: int,
    threshold: int,
    has_resolution_action: bool,
    recent_executions: int,
    rate_limit: int
) -> AutoExecutionDecision:
    """
    Decide whether the resolution action may be applied without review.

    All conditions must hold; ``reason`` names the first one that failed.
    ``recent_executions`` is the number of actions executed on the ticket
    inside the trailing window.
    """
    if not enabled:
        return AutoExecutionDecision(False, "disabled")
    if final_confidence < threshold:
        return AutoExecutionDecision(False, "below_threshold")
    if not has_resolution_action:
        return AutoExecutionDecision(False, "no_resolution_action")
    if recent_executions >= rate_limit:
        return AutoExecutionDecision(False, "rate_limited")
    return AutoExecutionDecision(True, "eligible")


@dataclass
class PipelineResult:
    """Everything one pipeline run decided."""
    ticket_id: str
    ai_status: str
    final_confidence: int
    triage_result: Optional[AgentResult] = None
    resolution_result: Optional[AgentResult] = None
    quality_result: Optional[AgentResult] = None
    auto_executed: bool = False
    auto_execution_reason: str = ""
    anonymized: bool = False
    errors: List[str] = field(default_factory=list)
