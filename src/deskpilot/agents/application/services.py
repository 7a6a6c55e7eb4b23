"""
Agents Application Services
===========================

Orchestration of the agent pipeline, auto-execution, the action executor
and human feedback.

Flow of one pipeline run:

    consent gate -> triage -> resolution (triage > 50) -> quality (resolution > 60)
        -> ticket ai_status / ai_confidence
        -> auto-execution gate -> ActionExecutor

Each stage persists its AgentAction as ``pending``. A stage whose output is
malformed is skipped together with every stage after it; the run still
completes with the confidence of the last stage that succeeded.
"""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from deskpilot.agents.domain import (
    AgentAction,
    AgentPromptBuilder,
    AgentResult,
    ChangePriority,
    ChangeStatus,
    Escalate,
    FollowUp,
    LearningFeedback,
    MalformedPayload,
    PipelineResult,
    RefundRequest,
    SendMessage,
    SUGGEST_ACTION_TOOL,
    decide_auto_execution,
    derive_ai_status,
    parse_action_payload,
    parse_agent_output,
)
from deskpilot.config import (
    settings,
    ActionStatus,
    ActionType,
    AgentType,
    AIFeature,
    AuditSeverity,
    FeedbackType,
    TicketStatus,
    VALID_FEEDBACK_TYPES,
)
from deskpilot.core import (
    ActionExecutionException,
    ConfigurationException,
    InvalidActionTransitionException,
    ModelMalformedOutputException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from deskpilot.infrastructure.llm import IModelClient, ToolDefinition
from deskpilot.privacy.application import ConsentGate, prepare_ticket_data
from deskpilot.privacy.domain import GateDecision
from deskpilot.shared.infrastructure.grafana import get_grafana_exporter
from deskpilot.shared.infrastructure.logging import get_logger, log_latency
from deskpilot.tickets.application import (
    ITicketRepository,
    IMessageRepository,
    IActivityRepository,
    IOrganizationSettingsRepository,
    IUnitOfWork,
    AuditLogger,
    ModelClientResolver,
    load_ticket,
)
from deskpilot.tickets.domain import (
    Actor,
    OrganizationAISettings,
    Ticket,
    TicketActivity,
)

logger = get_logger(__name__)

AI_AGENT = Actor(user_id=None, name="AI Agent", email="ai-agent@system.com")


# ========== Repository Interfaces ==========

class IAgentActionRepository(ABC):
    """Interface for agent action storage."""

    @abstractmethod
    async def create(self, action: AgentAction) -> AgentAction:
        """Append an action."""

    @abstractmethod
    async def get_by_id(self, action_id: str) -> Optional[AgentAction]:
        """Get action by ID."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[AgentAction]:
        """Actions of a ticket, newest first."""

    @abstractmethod
    async def update_status(
        self,
        action_id: str,
        status: str,
        executed_at: Optional[datetime] = None
    ) -> None:
        """Move an action to a new review status."""

    @abstractmethod
    async def count_executed_since(self, ticket_id: str, since: datetime) -> int:
        """Number of actions of the ticket executed at or after ``since``."""


class ILearningFeedbackRepository(ABC):
    """Interface for learning feedback storage."""

    @abstractmethod
    async def create(self, feedback: LearningFeedback) -> LearningFeedback:
        """Store a feedback record."""

    @abstractmethod
    async def list_learning_context(self, organization_id: str, limit: int) -> List[LearningFeedback]:
        """
        Most recent feedback usable as agent examples, newest first.

        Approvals, and rejections that carry notes; scoped to tickets of the
        organization.
        """


# ========== Action Executor ==========

class ActionExecutor:
    """
    Applies an agent action to its ticket.

    Every execution writes one activity entry (tagged ``ai_auto_execution``
    or ``ai_approved_execution``) and moves the action to ``executed``. A
    payload that does not fit its action type changes nothing but the
    action's status.

    The ticket writes and the status change are applied in one savepoint:
    a failure undoes all of them and leaves the action as it was.
    """

    def __init__(
        self,
        ticket_repo: ITicketRepository,
        message_repo: IMessageRepository,
        activity_repo: IActivityRepository,
        action_repo: IAgentActionRepository,
        audit_logger: AuditLogger,
        unit_of_work: IUnitOfWork
    ):
        self._ticket_repo = ticket_repo
        self._message_repo = message_repo
        self._activity_repo = activity_repo
        self._action_repo = action_repo
        self._audit = audit_logger
        self._uow = unit_of_work

    async def execute(
        self,
        action: AgentAction,
        ticket: Ticket,
        auto: bool = False,
        actor: Optional[Actor] = None,
        audit_details: Optional[dict] = None
    ) -> AgentAction:
        """
        Args:
            action: Action to apply (pending, or approved by a human)
            ticket: The action's ticket, as stored
            auto: True when the auto-execution gate triggered the call
            actor: Approving user; ignored for auto-execution
            audit_details: Extra fields for the auto-execution audit event

        Raises:
            InvalidActionTransitionException: If the action cannot be executed
            ActionExecutionException: If applying the action failed
        """
        action.ensure_transition(ActionStatus.EXECUTED)
        performer = AI_AGENT if auto or actor is None else actor
        payload = parse_action_payload(action.action_type, action.action_data)
        now = datetime.now(timezone.utc)

        try:
            async with self._uow.savepoint():
                if isinstance(payload, MalformedPayload):
                    logger.warning(
                        "Action data does not match action type, nothing applied",
                        extra={
                            "action_id": action.id,
                            "ticket_id": ticket.id,
                            "action_type": action.action_type,
                            "problem": payload.problem,
                        }
                    )
                else:
                    await self._apply(payload, action, ticket, auto, performer, now)

                await self._action_repo.update_status(action.id, ActionStatus.EXECUTED, now)
        except RepositoryException as e:
            logger.error(
                "Action execution failed",
                extra={"action_id": action.id, "ticket_id": ticket.id, "error": e.message}
            )
            raise ActionExecutionException(action.id, e.message)

        action.status = ActionStatus.EXECUTED
        action.executed_at = now

        if auto:
            await self._audit.log_event(
                organization_id=ticket.organization_id,
                action="ai_auto_execution",
                resource_type="ticket",
                resource_id=ticket.id,
                details={
                    "action_id": action.id,
                    "action_type": action.action_type,
                    "reasoning": action.reasoning,
                    **(audit_details or {}),
                },
                severity=AuditSeverity.INFO,
            )

        logger.info(
            "Action executed",
            extra={
                "action_id": action.id,
                "ticket_id": ticket.id,
                "action_type": action.action_type,
                "auto": auto,
            }
        )
        return action

    async def _apply(
        self,
        payload,
        action: AgentAction,
        ticket: Ticket,
        auto: bool,
        performer: Actor,
        now: datetime
    ) -> None:
        old_value = new_value = None

        if isinstance(payload, SendMessage):
            await self._message_repo.create(
                ticket_id=ticket.id,
                content=payload.message,
                sender_name=AI_AGENT.name,
                sender_email=AI_AGENT.email,
                is_internal=False,
            )
            summary = (
                "sent response" if payload.action_type == ActionType.AUTO_RESPONSE
                else "sent customer update"
            )
        elif isinstance(payload, ChangeStatus):
            resolved_at = now if payload.new_status == TicketStatus.RESOLVED else None
            await self._ticket_repo.update_status(ticket.id, payload.new_status, resolved_at)
            old_value, new_value = ticket.status, payload.new_status
            summary = "changed status"
        elif isinstance(payload, ChangePriority):
            await self._ticket_repo.update_priority(ticket.id, payload.new_priority)
            old_value, new_value = ticket.priority, payload.new_priority
            summary = "changed priority"
        elif isinstance(payload, Escalate):
            new_value = payload.escalate_to
            summary = f"logged escalation to {payload.escalate_to}"
        elif isinstance(payload, FollowUp):
            summary = "logged follow_up"
            if payload.follow_up_action:
                summary += f" '{payload.follow_up_action}'"
            if payload.timeline:
                summary += f" ({payload.timeline})"
        elif isinstance(payload, RefundRequest):
            summary = "logged refund_request"
        else:
            raise TypeError(f"Unhandled action payload: {type(payload).__name__}")

        prefix = "AI automatically" if auto else "AI (approved)"
        detail = action.reasoning or payload.reason
        await self._activity_repo.create(
            TicketActivity(
                ticket_id=ticket.id,
                activity_type="ai_auto_execution" if auto else "ai_approved_execution",
                content=f"{prefix} {summary}: {detail}" if detail else f"{prefix} {summary}",
                old_value=old_value,
                new_value=new_value,
                created_by=performer.user_id,
                created_by_name=performer.name,
                created_by_email=performer.email,
                created_at=now,
            )
        )


# ========== Agent Pipeline ==========

class AgentPipelineService:
    """
    Runs triage, resolution and quality agents over a ticket.

    The model client is resolved per organization; every stage is one
    forced ``suggest_action`` tool call with no retry.
    """

    def __init__(
        self,
        ticket_repo: ITicketRepository,
        message_repo: IMessageRepository,
        action_repo: IAgentActionRepository,
        feedback_repo: ILearningFeedbackRepository,
        settings_repo: IOrganizationSettingsRepository,
        consent_gate: ConsentGate,
        executor: ActionExecutor,
        client_resolver: ModelClientResolver
    ):
        self._ticket_repo = ticket_repo
        self._message_repo = message_repo
        self._action_repo = action_repo
        self._feedback_repo = feedback_repo
        self._settings_repo = settings_repo
        self._consent_gate = consent_gate
        self._executor = executor
        self._client_resolver = client_resolver
        self._tool = ToolDefinition(**SUGGEST_ACTION_TOOL)

    async def run(self, ticket_id: str, actor: Optional[Actor] = None) -> PipelineResult:
        """
        Run the pipeline on demand, through the consent gate.

        Raises:
            ResourceNotFoundException: Unknown ticket
            ConfigurationException: AI or agents disabled, or no credentials
            ConsentRequiredException: The run was stored until consent is given
            ModelRateLimitedException / ModelPaymentRequiredException
        """
        ticket = await load_ticket(self._ticket_repo, ticket_id)
        org_settings = await self._settings_repo.get(ticket.organization_id)
        self._ensure_enabled(org_settings)

        decision = await self._consent_gate.require(
            ticket, org_settings, AIFeature.AGENT_PIPELINE, actor=actor
        )
        return await self.analyze(ticket, org_settings, decision)

    async def run_scheduled(self, ticket: Ticket) -> Optional[PipelineResult]:
        """
        Run the pipeline from the scheduler.

        Nobody is around to answer a consent prompt, so tickets still
        waiting for consent (and organizations without agents) are skipped.
        """
        org_settings = await self._settings_repo.get(ticket.organization_id)
        if not (org_settings.ai_enabled and org_settings.ai_agents_enabled):
            logger.debug("Agents disabled, skipping scheduled run", extra={"ticket_id": ticket.id})
            return None

        decision = await self._consent_gate.evaluate(ticket, org_settings)
        if not decision.proceed:
            logger.info(
                "Consent pending, skipping scheduled run",
                extra={"ticket_id": ticket.id, "pii_types": list(decision.pii_types)}
            )
            return None

        return await self.analyze(ticket, org_settings, decision)

    async def analyze(
        self,
        ticket: Ticket,
        org_settings: OrganizationAISettings,
        decision: GateDecision
    ) -> PipelineResult:
        """Run the three stages on data already cleared by the consent gate."""
        client = await self._client_resolver.resolve(org_settings)
        messages = await self._message_repo.list_for_ticket(ticket.id)
        prompt_ticket, prompt_messages = prepare_ticket_data(decision, ticket, messages)

        feedback = await self._feedback_repo.list_learning_context(
            ticket.organization_id, settings.learning_context_limit
        )
        examples = [item.as_example() for item in feedback]

        logger.info(
            "Starting agent pipeline",
            extra={
                "ticket_id": ticket.id,
                "anonymized": decision.anonymize,
                "learning_examples": len(examples),
            }
        )

        errors: List[str] = []
        builder = AgentPromptBuilder

        triage = await self._run_stage(
            client, ticket.id, AgentType.TRIAGE,
            builder.triage_system_prompt(examples),
            builder.triage_prompt(prompt_ticket),
            errors,
        )

        resolution = None
        if triage and triage.confidence_score > settings.resolution_min_triage_confidence:
            resolution = await self._run_stage(
                client, ticket.id, AgentType.RESOLUTION,
                builder.resolution_system_prompt(examples),
                builder.resolution_prompt(prompt_ticket, triage.reasoning, prompt_messages),
                errors,
            )

        quality = None
        if resolution and resolution.confidence_score > settings.quality_min_resolution_confidence:
            quality = await self._run_stage(
                client, ticket.id, AgentType.QUALITY,
                builder.quality_system_prompt(examples),
                builder.quality_prompt(
                    prompt_ticket,
                    resolution.action_type,
                    resolution.action_data,
                    resolution.confidence_score,
                    resolution.reasoning,
                ),
                errors,
            )

        final_stage = quality or resolution or triage
        final_confidence = final_stage.confidence_score if final_stage else 0
        threshold = org_settings.auto_execution_threshold
        ai_status = derive_ai_status(final_confidence, threshold, settings.in_progress_min_confidence)

        now = datetime.now(timezone.utc)
        await self._ticket_repo.update_ai_analysis(ticket.id, ai_status, final_confidence, now)

        result = PipelineResult(
            ticket_id=ticket.id,
            ai_status=ai_status,
            final_confidence=final_confidence,
            triage_result=triage,
            resolution_result=resolution,
            quality_result=quality,
            anonymized=decision.anonymize,
            errors=errors,
        )

        await self._auto_execute(ticket, org_settings, result, now)

        logger.info(
            "Agent pipeline completed",
            extra={
                "ticket_id": ticket.id,
                "ai_status": ai_status,
                "final_confidence": final_confidence,
                "auto_executed": result.auto_executed,
                "auto_execution_reason": result.auto_execution_reason,
            }
        )

        exporter = get_grafana_exporter()
        if exporter and exporter.is_enabled():
            await exporter.export_pipeline_metrics(
                organization_id=ticket.organization_id,
                final_confidence=final_confidence,
                ai_status=ai_status,
                auto_executed=result.auto_executed,
            )
        return result

    async def _run_stage(
        self,
        client: IModelClient,
        ticket_id: str,
        agent_type: str,
        system_prompt: str,
        user_prompt: str,
        errors: List[str]
    ) -> Optional[AgentResult]:
        try:
            with log_latency(logger, "agent_stage", ticket_id=ticket_id, agent_type=agent_type):
                completion = await client.complete(
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    tools=[self._tool],
                    operation=f"agent_{agent_type}",
                )
            output = parse_agent_output(completion.tool_arguments)
        except ModelMalformedOutputException as e:
            logger.warning(
                "Agent stage produced malformed output, skipping remaining stages",
                extra={"ticket_id": ticket_id, "agent_type": agent_type, "error": e.message}
            )
            errors.append(f"{agent_type}: {e.message}")
            return None

        action = await self._action_repo.create(
            AgentAction(
                ticket_id=ticket_id,
                agent_type=agent_type,
                action_type=output.action_type,
                action_data=output.action_data,
                confidence_score=output.confidence,
                reasoning=output.reasoning,
            )
        )
        return AgentResult(
            agent_type=agent_type,
            action_type=action.action_type,
            action_data=action.action_data,
            confidence_score=action.confidence_score,
            reasoning=action.reasoning,
            action_id=action.id,
        )

    async def _auto_execute(
        self,
        ticket: Ticket,
        org_settings: OrganizationAISettings,
        result: PipelineResult,
        now: datetime
    ) -> None:
        threshold = org_settings.auto_execution_threshold
        since = now - timedelta(minutes=settings.auto_execution_window_minutes)
        recent = await self._action_repo.count_executed_since(ticket.id, since)

        resolution = result.resolution_result
        decision = decide_auto_execution(
            enabled=org_settings.ai_auto_execution_enabled,
            final_confidence=result.final_confidence,
            threshold=threshold,
            has_resolution_action=resolution is not None and resolution.action_id is not None,
            recent_executions=recent,
            rate_limit=settings.auto_execution_rate_limit,
        )
        result.auto_execution_reason = decision.reason

        if not decision.execute:
            logger.info(
                "Auto-execution skipped",
                extra={
                    "ticket_id": ticket.id,
                    "reason": decision.reason,
                    "final_confidence": result.final_confidence,
                    "threshold": threshold,
                    "recent_executions": recent,
                }
            )
            return

        action = await self._action_repo.get_by_id(resolution.action_id)
        try:
            await self._executor.execute(
                action,
                ticket,
                auto=True,
                audit_details={
                    "confidence_score": result.final_confidence,
                    "threshold_used": threshold,
                },
            )
        except ActionExecutionException as e:
            # The action stays pending for human review
            logger.error(
                "Auto-execution failed",
                extra={"ticket_id": ticket.id, "action_id": action.id, "error": e.message}
            )
            result.auto_execution_reason = "execution_failed"
            return

        result.auto_executed = True

    @staticmethod
    def _ensure_enabled(org_settings: OrganizationAISettings) -> None:
        if not org_settings.ai_enabled:
            raise ConfigurationException("AI features are disabled for this organization")
        if not org_settings.ai_agents_enabled:
            raise ConfigurationException("AI agents are disabled for this organization")


# ========== Learning Feedback ==========

@dataclass
class FeedbackOutcome:
    """Result of recording a human review."""
    action: AgentAction
    feedback: LearningFeedback
    executed: bool = False
    execution_error: Optional[str] = None


class LearningFeedbackService:
    """
    Records human approvals and rejections of agent actions.

    Approving an action also executes it. A failed execution leaves the
    action ``approved`` so it can be retried through
    ``execute_approved_action``.
    """

    def __init__(
        self,
        action_repo: IAgentActionRepository,
        feedback_repo: ILearningFeedbackRepository,
        ticket_repo: ITicketRepository,
        executor: ActionExecutor,
        audit_logger: AuditLogger
    ):
        self._action_repo = action_repo
        self._feedback_repo = feedback_repo
        self._ticket_repo = ticket_repo
        self._executor = executor
        self._audit = audit_logger

    async def _load_action(self, action_id: str) -> AgentAction:
        action = await self._action_repo.get_by_id(action_id)
        if action is None:
            raise ResourceNotFoundException("AgentAction", action_id)
        return action

    async def record_feedback(
        self,
        action_id: str,
        actor: Actor,
        feedback_type: str,
        notes: Optional[str] = None
    ) -> FeedbackOutcome:
        """
        Approve or reject an action.

        Args:
            action_id: Action under review
            actor: Reviewing user
            feedback_type: ``approval`` or ``rejection``
            notes: Optional explanation; blank notes are stored as null

        Raises:
            ValidationException: Unknown feedback type
            ResourceNotFoundException: Unknown action or ticket
            InvalidActionTransitionException: The action cannot take this review
        """
        if feedback_type not in VALID_FEEDBACK_TYPES:
            raise ValidationException(
                f"Invalid feedback type: {feedback_type}",
                {"allowed": VALID_FEEDBACK_TYPES}
            )

        action = await self._load_action(action_id)
        target = ActionStatus.APPROVED if feedback_type == FeedbackType.APPROVAL else ActionStatus.REJECTED
        action.ensure_transition(target)
        ticket = await load_ticket(self._ticket_repo, action.ticket_id)

        feedback = await self._feedback_repo.create(
            LearningFeedback(
                action_id=action.id,
                user_id=actor.user_id,
                feedback_type=feedback_type,
                original_action=copy.deepcopy(action.action_data),
                feedback_notes=(notes or "").strip() or None,
            )
        )
        await self._action_repo.update_status(action.id, target)
        action.status = target

        await self._audit.log_event(
            organization_id=ticket.organization_id,
            action="ai_action_approved" if target == ActionStatus.APPROVED else "ai_action_rejected",
            resource_type="ai_action",
            resource_id=action.id,
            user_id=actor.user_id,
            details={
                "ticket_id": ticket.id,
                "action_type": action.action_type,
                "agent_type": action.agent_type,
                "has_notes": feedback.feedback_notes is not None,
            },
        )

        outcome = FeedbackOutcome(action=action, feedback=feedback)
        if target == ActionStatus.APPROVED:
            try:
                outcome.action = await self._executor.execute(action, ticket, auto=False, actor=actor)
                outcome.executed = True
            except ActionExecutionException as e:
                logger.error(
                    "Approved action could not be executed",
                    extra={"action_id": action.id, "ticket_id": ticket.id, "error": e.message}
                )
                outcome.execution_error = e.message

        logger.info(
            "Feedback recorded",
            extra={
                "action_id": action.id,
                "ticket_id": ticket.id,
                "feedback_type": feedback_type,
                "executed": outcome.executed,
            }
        )
        return outcome

    async def execute_approved_action(self, action_id: str, actor: Optional[Actor] = None) -> AgentAction:
        """
        Execute an action a human already approved.

        Raises:
            InvalidActionTransitionException: The action is not ``approved``
            ActionExecutionException: Applying the action failed
        """
        action = await self._load_action(action_id)
        if action.status != ActionStatus.APPROVED:
            raise InvalidActionTransitionException(action.id, action.status, ActionStatus.EXECUTED)

        ticket = await load_ticket(self._ticket_repo, action.ticket_id)
        return await self._executor.execute(action, ticket, auto=False, actor=actor)

    async def list_actions(self, ticket_id: str) -> List[AgentAction]:
        """Actions proposed for a ticket, newest first."""
        await load_ticket(self._ticket_repo, ticket_id)
        return await self._action_repo.list_for_ticket(ticket_id)
