"""Tests for the agent pipeline, auto-execution and scheduled runs."""

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from deskpilot.agents.domain import AgentAction
from deskpilot.agents.infrastructure import (
    AgentActionModel,
    LearningFeedbackModel,
    SQLAlchemyAgentActionRepository,
)
from deskpilot.config import ActionStatus, AgentType, AIFeature, AIStatus
from deskpilot.core import (
    ConfigurationException,
    ConsentRequiredException,
    ModelRateLimitedException,
    ResourceNotFoundException,
)
from deskpilot.tickets.infrastructure import (
    AuditLogModel,
    SQLAlchemyActivityRepository,
    SQLAlchemyMessageRepository,
    SQLAlchemyTicketRepository,
)
from tests.conftest import agent_output

CARD_DESCRIPTION = "Please refund the charge on card 4111 1111 1111 1111."


class TestPipelineStages:
    """Tests for stage thresholds and the resulting ticket status."""

    async def test_low_triage_confidence_stops_pipeline(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client
    ):
        """Triage at or below 50 runs neither resolution nor quality."""
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [agent_output("escalation", 50, {"escalate_to": "tier2"})]

        result = await pipeline_service.run(ticket_id)

        assert model_client.operations() == ["agent_triage"]
        assert result.triage_result.confidence_score == 50
        assert result.resolution_result is None
        assert result.final_confidence == 50
        assert result.ai_status == AIStatus.HUMAN_REQUIRED

        ticket = await SQLAlchemyTicketRepository(db_session).get_by_id(ticket_id)
        assert ticket.ai_status == AIStatus.HUMAN_REQUIRED
        assert ticket.ai_confidence == 50
        assert ticket.auto_resolution_attempted is True

    async def test_triage_above_fifty_runs_resolution(
        self, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [
            agent_output("escalation", 51, {"escalate_to": "tier2"}),
            agent_output(confidence=55),
        ]

        result = await pipeline_service.run(ticket_id)

        assert model_client.operations() == ["agent_triage", "agent_resolution"]
        assert result.resolution_result.confidence_score == 55
        assert result.quality_result is None
        assert result.final_confidence == 55
        assert result.ai_status == AIStatus.HUMAN_REQUIRED

    async def test_all_three_stages(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [
            agent_output("priority_change", 90, {"new_priority": "high"}),
            agent_output("auto_response", 0.7),
            agent_output("auto_response", 88),
        ]

        result = await pipeline_service.run(ticket_id)

        assert model_client.operations() == ["agent_triage", "agent_resolution", "agent_quality"]
        assert result.resolution_result.confidence_score == 70
        assert result.final_confidence == 88
        assert result.ai_status == AIStatus.RESOLVED
        assert result.auto_executed is False
        assert result.auto_execution_reason == "disabled"

        actions = await SQLAlchemyAgentActionRepository(db_session).list_for_ticket(ticket_id)
        assert sorted(action.agent_type for action in actions) == sorted(
            [AgentType.TRIAGE, AgentType.RESOLUTION, AgentType.QUALITY]
        )
        assert {action.status for action in actions} == {ActionStatus.PENDING}

    async def test_resolution_at_sixty_skips_quality(
        self, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [agent_output(confidence=80), agent_output(confidence=60)]

        result = await pipeline_service.run(ticket_id)

        assert result.quality_result is None
        assert result.final_confidence == 60
        assert result.ai_status == AIStatus.IN_PROGRESS

    async def test_resolution_prompt_carries_triage_reasoning_and_conversation(
        self, make_organization, make_ticket, add_message, pipeline_service, model_client
    ):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        await add_message(ticket_id, "Still broken this morning", sender_name="Sam")
        model_client.agent_outputs = [
            agent_output(confidence=80, reasoning="Login outage for one user"),
            agent_output(confidence=40),
        ]

        await pipeline_service.run(ticket_id)

        resolution_prompt = model_client.calls[1]["user_prompt"]
        assert "Login outage for one user" in resolution_prompt
        assert "Sam: Still broken this morning" in resolution_prompt

    async def test_malformed_triage_skips_everything(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [None]

        result = await pipeline_service.run(ticket_id)

        assert result.triage_result is None
        assert result.final_confidence == 0
        assert result.ai_status == AIStatus.HUMAN_REQUIRED
        assert len(result.errors) == 1
        assert result.errors[0].startswith("triage:")
        assert await SQLAlchemyAgentActionRepository(db_session).list_for_ticket(ticket_id) == []

    async def test_malformed_resolution_keeps_triage_confidence(
        self, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [
            agent_output(confidence=75),
            {"action_type": "close_forever", "action_data": {}, "confidence_score": 99, "reasoning": ""},
        ]

        result = await pipeline_service.run(ticket_id)

        assert model_client.operations() == ["agent_triage", "agent_resolution"]
        assert result.resolution_result is None
        assert result.final_confidence == 75
        assert result.ai_status == AIStatus.IN_PROGRESS
        assert result.errors[0].startswith("resolution:")

    async def test_rate_limit_from_provider_propagates(
        self, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [ModelRateLimitedException()]

        with pytest.raises(ModelRateLimitedException):
            await pipeline_service.run(ticket_id)


class TestPipelineGuards:
    """Tests for configuration and consent checks before any model call."""

    async def test_unknown_ticket(self, pipeline_service):
        with pytest.raises(ResourceNotFoundException):
            await pipeline_service.run(str(uuid4()))

    async def test_agents_disabled(self, make_organization, make_ticket, pipeline_service, model_client):
        org_id = await make_organization(ai_agents_enabled=False)
        ticket_id = await make_ticket(org_id)

        with pytest.raises(ConfigurationException):
            await pipeline_service.run(ticket_id)
        assert model_client.calls == []

    async def test_ai_disabled(self, make_organization, make_ticket, pipeline_service):
        org_id = await make_organization(ai_enabled=False)
        ticket_id = await make_ticket(org_id)

        with pytest.raises(ConfigurationException):
            await pipeline_service.run(ticket_id)

    async def test_unconsented_pii_suspends_run(
        self, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id, description=CARD_DESCRIPTION)

        with pytest.raises(ConsentRequiredException) as exc_info:
            await pipeline_service.run(ticket_id)

        assert exc_info.value.ticket_id == ticket_id
        assert model_client.calls == []

    async def test_consent_replay_runs_on_anonymized_ticket(
        self, make_organization, make_ticket, pipeline_service, consent_gate,
        consent_handlers, model_client, actor
    ):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id, description=CARD_DESCRIPTION)
        with pytest.raises(ConsentRequiredException) as exc_info:
            await pipeline_service.run(ticket_id, actor)
        model_client.agent_outputs = [agent_output(confidence=30)]

        outcome = await consent_gate.submit_decision(
            exc_info.value.pending_request_id, "anonymize", actor, consent_handlers
        )

        assert outcome.request.feature == AIFeature.AGENT_PIPELINE
        assert outcome.result["ticket_id"] == ticket_id
        assert outcome.result["anonymized"] is True
        triage_prompt = model_client.calls[0]["user_prompt"]
        assert "[CREDIT CARD REDACTED]" in triage_prompt
        assert "4111" not in triage_prompt


class TestAutoExecution:
    """Tests for applying the resolution action without review."""

    def _confident_run(self, response: str = "Your account is unlocked now."):
        return [
            agent_output("priority_change", 90, {"new_priority": "high"}),
            agent_output("auto_response", 92, {"response": response}, reasoning="Known fix"),
            agent_output("auto_response", 95, {"response": response}),
        ]

    async def test_confident_resolution_is_executed(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization(ai_auto_execution_enabled=True, ai_auto_execution_threshold=80)
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = self._confident_run()

        result = await pipeline_service.run(ticket_id)

        assert result.auto_executed is True
        assert result.auto_execution_reason == "eligible"

        action = await SQLAlchemyAgentActionRepository(db_session).get_by_id(
            result.resolution_result.action_id
        )
        assert action.status == ActionStatus.EXECUTED
        assert action.executed_at is not None

        messages = await SQLAlchemyMessageRepository(db_session).list_for_ticket(ticket_id)
        assert [message.content for message in messages] == ["Your account is unlocked now."]
        assert messages[0].sender_name == "AI Agent"
        assert messages[0].sender_email == "ai-agent@system.com"

        activities = await SQLAlchemyActivityRepository(db_session).list_for_ticket(ticket_id)
        assert [activity.activity_type for activity in activities] == ["ai_auto_execution"]
        assert activities[0].content.startswith("AI automatically sent response")

        audit = (await db_session.execute(
            select(AuditLogModel).where(AuditLogModel.action == "ai_auto_execution")
        )).scalars().all()
        assert len(audit) == 1
        assert audit[0].details["threshold_used"] == 80
        assert audit[0].details["confidence_score"] == 95
        assert audit[0].resource_id == ticket_id

    async def test_status_change_end_to_end(
        self, db_session, make_organization, make_ticket, detection_service, pipeline_service, model_client
    ):
        org_id = await make_organization(
            ai_auto_execution_enabled=True,
            ai_auto_execution_threshold=80,
            ai_require_consent_for_pii=False,
        )
        ticket_id = await make_ticket(
            org_id, title="Can't log in", description="forgot password, email is jane@x.com"
        )
        model_client.agent_outputs = [
            agent_output("follow_up", 75, {}),
            agent_output("status_change", 82, {"new_status": "in_progress"}),
            agent_output("status_change", 84, {"new_status": "in_progress"}),
        ]

        result = await pipeline_service.run(ticket_id)

        classification = await detection_service.get_classification(ticket_id)
        assert "email" in classification.pii_types
        assert 0 <= result.triage_result.confidence_score <= 100
        assert result.auto_executed is True

        ticket = await SQLAlchemyTicketRepository(db_session).get_by_id(ticket_id)
        assert ticket.status == "in_progress"

        actions = (await db_session.execute(
            select(AgentActionModel).where(AgentActionModel.ticket_id == UUID(ticket_id))
        )).scalars().all()
        assert [action.status for action in actions].count(ActionStatus.EXECUTED) == 1
        activities = await SQLAlchemyActivityRepository(db_session).list_for_ticket(ticket_id)
        assert len(activities) == 1

    async def test_below_threshold(self, make_organization, make_ticket, pipeline_service, model_client):
        org_id = await make_organization(ai_auto_execution_enabled=True)
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [
            agent_output(confidence=90), agent_output(confidence=80), agent_output(confidence=84),
        ]

        result = await pipeline_service.run(ticket_id)

        assert result.auto_executed is False
        assert result.auto_execution_reason == "below_threshold"

    async def test_no_resolution_action(self, make_organization, make_ticket, pipeline_service, model_client):
        """A confident triage alone never auto-executes."""
        org_id = await make_organization(ai_auto_execution_enabled=True, ai_auto_execution_threshold=40)
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [agent_output(confidence=45)]

        result = await pipeline_service.run(ticket_id)

        assert result.ai_status == AIStatus.RESOLVED
        assert result.auto_execution_reason == "no_resolution_action"

    async def test_rate_limit_per_ticket(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client
    ):
        """At most five executions per ticket within the hour."""
        org_id = await make_organization(ai_auto_execution_enabled=True, ai_auto_execution_threshold=80)
        ticket_id = await make_ticket(org_id)
        other_ticket_id = await make_ticket(org_id)

        results = []
        for _ in range(6):
            model_client.agent_outputs = self._confident_run()
            results.append(await pipeline_service.run(ticket_id))

        assert [result.auto_executed for result in results] == [True] * 5 + [False]
        assert results[-1].auto_execution_reason == "rate_limited"

        model_client.agent_outputs = self._confident_run()
        other = await pipeline_service.run(other_ticket_id)
        assert other.auto_executed is True

        executed = (await db_session.execute(
            select(AgentActionModel).where(
                AgentActionModel.ticket_id == UUID(ticket_id),
                AgentActionModel.status == ActionStatus.EXECUTED,
            )
        )).scalars().all()
        assert len(executed) == 5

    @pytest.mark.parametrize(
        "minutes_ago, expected_reason",
        [(61, "eligible"), (59, "rate_limited")],
    )
    async def test_rate_limit_window_slides(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client,
        minutes_ago, expected_reason
    ):
        """Executions older than an hour no longer count against the ticket."""
        org_id = await make_organization(ai_auto_execution_enabled=True, ai_auto_execution_threshold=80)
        ticket_id = await make_ticket(org_id)
        executed_at = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
        action_repo = SQLAlchemyAgentActionRepository(db_session)
        for _ in range(5):
            await action_repo.create(AgentAction(
                ticket_id=ticket_id,
                agent_type=AgentType.RESOLUTION,
                action_type="auto_response",
                action_data={"response": "Your account is unlocked now."},
                confidence_score=92,
                reasoning="Known fix",
                status=ActionStatus.EXECUTED,
                created_at=executed_at,
                executed_at=executed_at,
            ))
        model_client.agent_outputs = self._confident_run()

        result = await pipeline_service.run(ticket_id)

        assert result.auto_execution_reason == expected_reason
        assert result.auto_executed is (expected_reason == "eligible")

    async def test_execution_failure_keeps_pipeline_results(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client, storage_outage
    ):
        org_id = await make_organization(ai_auto_execution_enabled=True, ai_auto_execution_threshold=80)
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = self._confident_run()
        await storage_outage.start("ticket_messages")

        result = await pipeline_service.run(ticket_id)

        assert result.auto_executed is False
        assert result.auto_execution_reason == "execution_failed"
        assert result.ai_status == AIStatus.RESOLVED

        await db_session.commit()
        actions = await SQLAlchemyAgentActionRepository(db_session).list_for_ticket(ticket_id)
        assert len(actions) == 3
        assert {action.status for action in actions} == {ActionStatus.PENDING}
        ticket = await SQLAlchemyTicketRepository(db_session).get_by_id(ticket_id)
        assert ticket.ai_status == AIStatus.RESOLVED
        assert ticket.ai_confidence == 95
        assert await SQLAlchemyActivityRepository(db_session).list_for_ticket(ticket_id) == []

    async def test_malformed_payload_executes_as_no_op(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization(ai_auto_execution_enabled=True, ai_auto_execution_threshold=80)
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [
            agent_output(confidence=90),
            agent_output("status_change", 92, {"new_status": "finished"}),
            agent_output("status_change", 95, {"new_status": "finished"}),
        ]

        result = await pipeline_service.run(ticket_id)

        assert result.auto_executed is True
        ticket = await SQLAlchemyTicketRepository(db_session).get_by_id(ticket_id)
        assert ticket.status == "open"
        assert await SQLAlchemyActivityRepository(db_session).list_for_ticket(ticket_id) == []


class TestLearningContext:
    """Tests for replaying human feedback into agent prompts."""

    async def _feedback(self, db_session, ticket_id, feedback_type, notes=None, marker="x"):
        action_id = uuid4()
        db_session.add(AgentActionModel(
            id=action_id,
            ticket_id=UUID(ticket_id),
            agent_type=AgentType.RESOLUTION,
            action_type="auto_response",
            action_data={"response": marker},
            confidence_score=70,
            reasoning="",
        ))
        db_session.add(LearningFeedbackModel(
            action_id=action_id,
            feedback_type=feedback_type,
            original_action={"response": marker},
            feedback_notes=notes,
        ))
        await db_session.flush()

    async def test_examples_scoped_to_organization(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization()
        other_org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        reviewed_ticket_id = await make_ticket(org_id)
        foreign_ticket_id = await make_ticket(other_org_id)

        await self._feedback(db_session, reviewed_ticket_id, "approval", marker="approved-reply")
        await self._feedback(
            db_session, reviewed_ticket_id, "rejection", notes="Too casual", marker="rejected-with-notes"
        )
        await self._feedback(db_session, reviewed_ticket_id, "rejection", marker="rejected-silently")
        await self._feedback(db_session, foreign_ticket_id, "approval", marker="other-org-reply")
        model_client.agent_outputs = [agent_output(confidence=20)]

        await pipeline_service.run(ticket_id)

        system_prompt = model_client.calls[0]["system_prompt"]
        assert "Learning from previous feedback" in system_prompt
        assert "approved-reply" in system_prompt
        assert "rejected-with-notes" in system_prompt
        assert "Too casual" in system_prompt
        assert "rejected-silently" not in system_prompt
        assert "other-org-reply" not in system_prompt

    async def test_no_feedback_no_examples(self, make_organization, make_ticket, pipeline_service, model_client):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [agent_output(confidence=20)]

        await pipeline_service.run(ticket_id)

        assert "Learning from previous feedback" not in model_client.calls[0]["system_prompt"]


class TestScheduledRun:
    """Tests for runs started by the scheduler."""

    async def test_skips_when_agents_disabled(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization(ai_agents_enabled=False)
        ticket_id = await make_ticket(org_id)
        ticket = await SQLAlchemyTicketRepository(db_session).get_by_id(ticket_id)

        assert await pipeline_service.run_scheduled(ticket) is None
        assert model_client.calls == []

    async def test_skips_ticket_waiting_for_consent(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client
    ):
        """No pending request is created; nobody is there to answer it."""
        from deskpilot.privacy.infrastructure import PendingAIRequestModel

        org_id = await make_organization()
        ticket_id = await make_ticket(org_id, description=CARD_DESCRIPTION)
        ticket = await SQLAlchemyTicketRepository(db_session).get_by_id(ticket_id)

        assert await pipeline_service.run_scheduled(ticket) is None
        assert model_client.calls == []
        pending = (await db_session.execute(select(PendingAIRequestModel))).scalars().all()
        assert pending == []

    async def test_runs_ticket_without_pii(
        self, db_session, make_organization, make_ticket, pipeline_service, model_client
    ):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        ticket = await SQLAlchemyTicketRepository(db_session).get_by_id(ticket_id)
        model_client.agent_outputs = [agent_output(confidence=30)]

        result = await pipeline_service.run_scheduled(ticket)

        assert result.ai_status == AIStatus.HUMAN_REQUIRED
        pending = await SQLAlchemyTicketRepository(db_session).list_pending_analysis(10)
        assert ticket_id not in [item.id for item in pending]
