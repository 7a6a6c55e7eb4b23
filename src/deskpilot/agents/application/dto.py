"""
Agents Application DTOs
=======================

Pydantic request/response models for the agents API.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from deskpilot.agents.domain import AgentAction, AgentResult, LearningFeedback, PipelineResult


FeedbackTypeStr = Literal["approval", "rejection"]


# ========== Request DTOs ==========

class FeedbackRequest(BaseModel):
    """Human review of an agent action."""
    feedback_type: FeedbackTypeStr = Field(..., description="approval or rejection")
    notes: Optional[str] = Field(
        None,
        max_length=5000,
        description="Why; rejections without notes are not replayed to agents"
    )


# ========== Response DTOs ==========

class AgentResultInfo(BaseModel):
    """Outcome of one pipeline stage."""
    agent_type: str
    action_type: str
    action_data: Dict[str, Any]
    confidence_score: int = Field(..., ge=0, le=100)
    reasoning: str
    action_id: Optional[str] = None

    @classmethod
    def from_result(cls, result: Optional[AgentResult]) -> Optional["AgentResultInfo"]:
        if result is None:
            return None
        return cls(
            agent_type=result.agent_type,
            action_type=result.action_type,
            action_data=result.action_data,
            confidence_score=result.confidence_score,
            reasoning=result.reasoning,
            action_id=result.action_id,
        )


class PipelineResponse(BaseModel):
    """Response model for a pipeline run."""
    ticket_id: str
    ai_status: str
    final_confidence: int = Field(..., ge=0, le=100)
    triage_result: Optional[AgentResultInfo] = None
    resolution_result: Optional[AgentResultInfo] = None
    quality_result: Optional[AgentResultInfo] = None
    auto_executed: bool = False
    auto_execution_reason: str = ""
    anonymized: bool = False
    errors: List[str] = Field(default_factory=list)
    processing_time_ms: int = 0

    @classmethod
    def from_result(cls, result: PipelineResult, processing_time_ms: int = 0) -> "PipelineResponse":
        return cls(
            ticket_id=result.ticket_id,
            ai_status=result.ai_status,
            final_confidence=result.final_confidence,
            triage_result=AgentResultInfo.from_result(result.triage_result),
            resolution_result=AgentResultInfo.from_result(result.resolution_result),
            quality_result=AgentResultInfo.from_result(result.quality_result),
            auto_executed=result.auto_executed,
            auto_execution_reason=result.auto_execution_reason,
            anonymized=result.anonymized,
            errors=list(result.errors),
            processing_time_ms=processing_time_ms,
        )


class AgentActionResponse(BaseModel):
    """Stored agent action."""
    id: str
    ticket_id: str
    agent_type: str
    action_type: str
    action_data: Dict[str, Any]
    confidence_score: int
    reasoning: str
    status: str
    created_at: datetime
    executed_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, action: AgentAction) -> "AgentActionResponse":
        return cls(
            id=action.id,
            ticket_id=action.ticket_id,
            agent_type=action.agent_type,
            action_type=action.action_type,
            action_data=action.action_data,
            confidence_score=action.confidence_score,
            reasoning=action.reasoning,
            status=action.status,
            created_at=action.created_at,
            executed_at=action.executed_at,
        )


class FeedbackResponse(BaseModel):
    """Result of recording feedback."""
    feedback_id: str
    action: AgentActionResponse
    executed: bool
    execution_error: Optional[str] = None

    @classmethod
    def from_outcome(
        cls,
        feedback: LearningFeedback,
        action: AgentAction,
        executed: bool,
        execution_error: Optional[str]
    ) -> "FeedbackResponse":
        return cls(
            feedback_id=feedback.id,
            action=AgentActionResponse.from_entity(action),
            executed=executed,
            execution_error=execution_error,
        )
