"""Unit tests for agent domain rules: confidence, status, auto-execution, payloads."""

import pytest

from deskpilot.agents.domain import (
    AgentAction,
    ChangePriority,
    ChangeStatus,
    Escalate,
    FollowUp,
    LearningFeedback,
    MalformedPayload,
    RefundRequest,
    SendMessage,
    decide_auto_execution,
    derive_ai_status,
    normalize_confidence,
    parse_action_payload,
    parse_agent_output,
)
from deskpilot.config import ActionStatus, AIStatus
from deskpilot.core import InvalidActionTransitionException, ModelMalformedOutputException


class TestNormalizeConfidence:
    """Tests for mapping model confidence onto 0-100."""

    @pytest.mark.parametrize("raw,expected", [
        (0.85, 85),
        (85, 85),
        (72.6, 73),
        (1.0, 100),
        (0, 0),
        (150, 100),
        (-3, 0),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_confidence(raw) == expected


class TestDeriveAIStatus:
    """Tests for ai_status derivation."""

    def test_at_threshold_is_resolved(self):
        assert derive_ai_status(85, 85) == AIStatus.RESOLVED

    def test_between_sixty_and_threshold_is_in_progress(self):
        assert derive_ai_status(84, 85) == AIStatus.IN_PROGRESS
        assert derive_ai_status(60, 85) == AIStatus.IN_PROGRESS

    def test_below_sixty_needs_a_human(self):
        assert derive_ai_status(59, 85) == AIStatus.HUMAN_REQUIRED

    def test_low_threshold_checked_first(self):
        """A threshold below 60 still resolves scores that reach it."""
        assert derive_ai_status(55, 50) == AIStatus.RESOLVED


class TestDecideAutoExecution:
    """Tests for the auto-execution gate."""

    def _decide(self, **overrides):
        values = {
            "enabled": True,
            "final_confidence": 90,
            "threshold": 85,
            "has_resolution_action": True,
            "recent_executions": 0,
            "rate_limit": 5,
        }
        values.update(overrides)
        return decide_auto_execution(**values)

    def test_eligible(self):
        decision = self._decide()

        assert decision.execute is True
        assert decision.reason == "eligible"

    @pytest.mark.parametrize("overrides,reason", [
        ({"enabled": False}, "disabled"),
        ({"final_confidence": 84}, "below_threshold"),
        ({"has_resolution_action": False}, "no_resolution_action"),
        ({"recent_executions": 5}, "rate_limited"),
    ])
    def test_blocked(self, overrides, reason):
        decision = self._decide(**overrides)

        assert decision.execute is False
        assert decision.reason == reason

    def test_below_rate_limit(self):
        assert self._decide(recent_executions=4).execute is True


class TestActionTransitions:
    """Tests for the review lifecycle of an action."""

    def _action(self, status: str) -> AgentAction:
        return AgentAction(
            ticket_id="t-1",
            agent_type="resolution",
            action_type="auto_response",
            action_data={"response": "Hi"},
            confidence_score=90,
            reasoning="",
            status=status,
            id="a-1",
        )

    @pytest.mark.parametrize("current,target", [
        (ActionStatus.PENDING, ActionStatus.APPROVED),
        (ActionStatus.PENDING, ActionStatus.REJECTED),
        (ActionStatus.PENDING, ActionStatus.EXECUTED),
        (ActionStatus.APPROVED, ActionStatus.EXECUTED),
        (ActionStatus.REJECTED, ActionStatus.APPROVED),
    ])
    def test_allowed(self, current, target):
        assert self._action(current).can_transition_to(target) is True

    @pytest.mark.parametrize("current,target", [
        (ActionStatus.EXECUTED, ActionStatus.APPROVED),
        (ActionStatus.EXECUTED, ActionStatus.REJECTED),
        (ActionStatus.APPROVED, ActionStatus.REJECTED),
        (ActionStatus.REJECTED, ActionStatus.EXECUTED),
    ])
    def test_forbidden(self, current, target):
        with pytest.raises(InvalidActionTransitionException):
            self._action(current).ensure_transition(target)


class TestParseAgentOutput:
    """Tests for validating tool-call arguments."""

    def test_valid_output(self):
        output = parse_agent_output({
            "action_type": "priority_change",
            "action_data": {"new_priority": "high"},
            "confidence_score": 0.9,
            "reasoning": "Customer is blocked",
        })

        assert output.action_type == "priority_change"
        assert output.confidence == 90

    def test_missing_arguments(self):
        with pytest.raises(ModelMalformedOutputException):
            parse_agent_output(None)

    def test_unknown_action_type(self):
        with pytest.raises(ModelMalformedOutputException):
            parse_agent_output({
                "action_type": "delete_ticket",
                "action_data": {},
                "confidence_score": 90,
                "reasoning": "",
            })

    def test_missing_field(self):
        with pytest.raises(ModelMalformedOutputException):
            parse_agent_output({"action_type": "refund_request", "action_data": {}, "reasoning": ""})


class TestParseActionPayload:
    """Tests for interpreting action_data per action type."""

    def test_auto_response(self):
        payload = parse_action_payload("auto_response", {"response": "Try again now", "reason": "fixed"})

        assert payload == SendMessage(action_type="auto_response", message="Try again now", reason="fixed")

    def test_customer_update_falls_back_to_response(self):
        payload = parse_action_payload("customer_update", {"response": "Still on it"})

        assert isinstance(payload, SendMessage)
        assert payload.message == "Still on it"

    def test_message_required(self):
        assert isinstance(parse_action_payload("auto_response", {"reason": "x"}), MalformedPayload)

    def test_status_change(self):
        assert parse_action_payload("status_change", {"new_status": "resolved"}) == ChangeStatus("resolved")

    def test_invalid_status(self):
        assert isinstance(parse_action_payload("status_change", {"new_status": "done"}), MalformedPayload)

    def test_priority_change(self):
        assert parse_action_payload("priority_change", {"new_priority": "urgent"}) == ChangePriority("urgent")

    def test_escalation_requires_target(self):
        assert parse_action_payload("escalation", {"escalate_to": "billing"}) == Escalate("billing")
        assert isinstance(parse_action_payload("escalation", {}), MalformedPayload)

    def test_follow_up_fields_are_optional(self):
        assert parse_action_payload("follow_up", {}) == FollowUp()

    def test_refund_request(self):
        assert parse_action_payload("refund_request", {"reason": "double charge"}) == RefundRequest("double charge")

    def test_non_object_data(self):
        assert isinstance(parse_action_payload("auto_response", "hello"), MalformedPayload)


class TestLearningFeedback:
    """Tests for the example shape replayed to agents."""

    def test_notes_included_when_present(self):
        feedback = LearningFeedback(
            action_id="a-1",
            feedback_type="rejection",
            original_action={"new_priority": "low"},
            feedback_notes="This customer is on an enterprise plan",
        )

        assert feedback.as_example() == {
            "feedback_type": "rejection",
            "original_action": {"new_priority": "low"},
            "feedback_notes": "This customer is on an enterprise plan",
        }

    def test_notes_omitted_when_absent(self):
        feedback = LearningFeedback(action_id="a-1", feedback_type="approval", original_action={})

        assert "feedback_notes" not in feedback.as_example()
