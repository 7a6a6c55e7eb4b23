"""
Privacy Application Services
============================

PII classification of tickets and the consent gate in front of every AI
feature.

The gate is the one place an AI request can be suspended: when PII is
present and nobody has decided yet, the request is stored as a
PendingAIRequest and ``ConsentRequiredException`` is raised. Submitting a
decision records consent on the ticket's classification and replays the
stored request through the handler registered for its feature.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from deskpilot.config import ConsentChoice, PendingRequestStatus, VALID_CONSENT_CHOICES
from deskpilot.core import (
    ConsentRequiredException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from deskpilot.privacy.domain import (
    PIIClassification,
    PIIDetectionResult,
    PendingAIRequest,
    GateDecision,
    anonymize_messages,
    anonymize_ticket,
    evaluate_consent,
    pii_detector,
)
from deskpilot.shared.infrastructure.logging import get_logger
from deskpilot.tickets.application import (
    ITicketRepository,
    IMessageRepository,
    IActivityRepository,
    IOrganizationSettingsRepository,
    AuditLogger,
    load_ticket,
)
from deskpilot.tickets.domain import (
    Actor,
    OrganizationAISettings,
    Ticket,
    TicketActivity,
    TicketMessage,
    build_ticket_text,
)

logger = get_logger(__name__)

ConsentHandler = Callable[[PendingAIRequest, Actor], Awaitable[Any]]


# ========== Repository Interfaces ==========

class IClassificationRepository(ABC):
    """Interface for ticket classification storage."""

    @abstractmethod
    async def get_by_ticket(self, ticket_id: str) -> Optional[PIIClassification]:
        """Classification of a ticket, if it was ever scanned."""

    @abstractmethod
    async def upsert(
        self,
        ticket_id: str,
        result: PIIDetectionResult,
        analyzed_at: datetime
    ) -> PIIClassification:
        """
        Insert or overwrite the detection fields of a ticket's classification.

        Consent fields of an existing row are left untouched.

        Raises:
            ClassificationStorageException: If the write fails
        """

    @abstractmethod
    async def record_consent(
        self,
        ticket_id: str,
        anonymize: bool,
        given_by: Optional[str],
        given_at: datetime
    ) -> PIIClassification:
        """Set ai_usage_consent and the anonymization choice."""


class IPendingRequestRepository(ABC):
    """Interface for suspended AI requests."""

    @abstractmethod
    async def create(self, request: PendingAIRequest) -> PendingAIRequest:
        """Store a suspended request."""

    @abstractmethod
    async def get_by_id(self, request_id: str) -> Optional[PendingAIRequest]:
        """Get a suspended request by ID."""

    @abstractmethod
    async def update_status(self, request_id: str, status: str, resolved_at: datetime) -> None:
        """Close a suspended request."""


# ========== Results ==========

@dataclass
class ScanSummary:
    """Outcome of an organization-wide PII scan."""
    organization_id: str
    tickets_scanned: int
    tickets_with_pii: int
    by_sensitivity: Dict[str, int]


@dataclass
class ConsentOutcome:
    """Result of submitting a consent decision."""
    request: PendingAIRequest
    result: Any = None


def prepare_ticket_data(
    decision: GateDecision,
    ticket: Ticket,
    messages: List[TicketMessage]
) -> Tuple[Ticket, List[TicketMessage]]:
    """The ticket and conversation as they may be sent to the model."""
    if not decision.anonymize:
        return ticket, messages
    return (
        anonymize_ticket(ticket, decision.pii_types),
        anonymize_messages(messages, decision.pii_types),
    )


# ========== Application Services ==========

class PIIDetectionService:
    """
    Classifies ticket content and keeps one classification row per ticket.

    Detection is pure and always succeeds; storing its result is best
    effort (a storage failure is logged and the result still returned).
    """

    def __init__(
        self,
        classification_repo: IClassificationRepository,
        ticket_repo: ITicketRepository,
        message_repo: IMessageRepository,
        settings_repo: IOrganizationSettingsRepository
    ):
        self._classification_repo = classification_repo
        self._ticket_repo = ticket_repo
        self._message_repo = message_repo
        self._settings_repo = settings_repo

    async def classify_and_store(
        self,
        ticket_id: str,
        text: str,
        organization_id: str
    ) -> PIIDetectionResult:
        """
        Classify ``text`` and upsert the ticket's classification.

        Args:
            ticket_id: Ticket the text belongs to
            text: Text to scan
            organization_id: Owning organization

        Returns:
            Detection result; empty when the organization disabled detection
        """
        org_settings = await self._settings_repo.get(organization_id)
        if not org_settings.ai_pii_detection_enabled:
            logger.info(
                "PII detection disabled for organization",
                extra={"ticket_id": ticket_id, "organization_id": organization_id}
            )
            return PIIDetectionResult()

        result = pii_detector.classify(text)

        try:
            await self._classification_repo.upsert(ticket_id, result, datetime.now(timezone.utc))
        except RepositoryException as e:
            logger.error(
                "Failed to store classification",
                extra={"ticket_id": ticket_id, "error": e.message}
            )

        logger.info(
            "Ticket classified",
            extra={
                "ticket_id": ticket_id,
                "contains_pii": result.contains_pii,
                "pii_types": result.sorted_types(),
                "sensitivity_level": result.sensitivity_level,
            }
        )
        return result

    async def classify_ticket(self, ticket: Ticket) -> PIIDetectionResult:
        """Classify a ticket from its stored fields and conversation."""
        messages = await self._message_repo.list_for_ticket(ticket.id)
        return await self.classify_and_store(
            ticket.id, build_ticket_text(ticket, messages), ticket.organization_id
        )

    async def scan_organization(self, organization_id: str) -> ScanSummary:
        """Re-classify every ticket of an organization."""
        tickets = await self._ticket_repo.list_by_organization(organization_id)

        with_pii = 0
        by_sensitivity: Dict[str, int] = {}
        for ticket in tickets:
            result = await self.classify_ticket(ticket)
            if result.contains_pii:
                with_pii += 1
                level = result.sensitivity_level
                by_sensitivity[level] = by_sensitivity.get(level, 0) + 1

        logger.info(
            "Organization scan completed",
            extra={
                "organization_id": organization_id,
                "tickets_scanned": len(tickets),
                "tickets_with_pii": with_pii,
            }
        )
        return ScanSummary(
            organization_id=organization_id,
            tickets_scanned=len(tickets),
            tickets_with_pii=with_pii,
            by_sensitivity=by_sensitivity,
        )

    async def get_classification(self, ticket_id: str) -> PIIClassification:
        """
        Raises:
            ResourceNotFoundException: If the ticket was never classified
        """
        classification = await self._classification_repo.get_by_ticket(ticket_id)
        if classification is None:
            raise ResourceNotFoundException("Classification", ticket_id)
        return classification


class ConsentGate:
    """
    Decides, per AI request, whether ticket data may go to the model and in
    which form.

    Consent is asked once per ticket; the recorded choice (and the
    organization's auto-anonymize flag) applies to every later request.
    """

    def __init__(
        self,
        classification_repo: IClassificationRepository,
        pending_repo: IPendingRequestRepository,
        ticket_repo: ITicketRepository,
        activity_repo: IActivityRepository,
        detection_service: PIIDetectionService,
        audit_logger: AuditLogger
    ):
        self._classification_repo = classification_repo
        self._pending_repo = pending_repo
        self._ticket_repo = ticket_repo
        self._activity_repo = activity_repo
        self._detection_service = detection_service
        self._audit = audit_logger

    async def evaluate(
        self,
        ticket: Ticket,
        org_settings: OrganizationAISettings
    ) -> GateDecision:
        """Gate decision for a ticket, classifying it first if it never was."""
        classification = await self._classification_repo.get_by_ticket(ticket.id)
        if classification is None and org_settings.ai_pii_detection_enabled:
            await self._detection_service.classify_ticket(ticket)
            classification = await self._classification_repo.get_by_ticket(ticket.id)

        return evaluate_consent(
            classification,
            require_consent=org_settings.ai_require_consent_for_pii,
            auto_anonymize=org_settings.ai_auto_anonymize,
        )

    async def require(
        self,
        ticket: Ticket,
        org_settings: OrganizationAISettings,
        feature: str,
        parameters: Optional[dict] = None,
        actor: Optional[Actor] = None
    ) -> GateDecision:
        """
        Let an AI request through or suspend it.

        Returns:
            The decision, when the request may proceed

        Raises:
            ConsentRequiredException: After storing the request for later
        """
        decision = await self.evaluate(ticket, org_settings)
        if decision.proceed:
            return decision

        pending = await self._pending_repo.create(
            PendingAIRequest(
                id=str(uuid4()),
                ticket_id=ticket.id,
                organization_id=ticket.organization_id,
                feature=feature,
                parameters=parameters or {},
                requested_by=actor.user_id if actor else None,
            )
        )

        logger.info(
            "AI request suspended pending consent",
            extra={
                "ticket_id": ticket.id,
                "pending_request_id": pending.id,
                "feature": feature,
                "pii_types": list(decision.pii_types),
            }
        )
        raise ConsentRequiredException(
            pending_request_id=pending.id,
            ticket_id=ticket.id,
            pii_types=list(decision.pii_types),
            sensitivity_level=decision.sensitivity_level,
        )

    async def submit_decision(
        self,
        request_id: str,
        choice: str,
        actor: Actor,
        handlers: Dict[str, ConsentHandler]
    ) -> ConsentOutcome:
        """
        Record an operator's decision and resume (or drop) the stored request.

        Args:
            request_id: PendingAIRequest to decide on
            choice: ``anonymize``, ``proceed`` or ``cancel``
            actor: Operator making the decision
            handlers: Feature name -> coroutine replaying that feature

        Returns:
            The closed request and, unless cancelled, the feature's result

        Raises:
            ValidationException: Unknown choice, or request already decided
            ResourceNotFoundException: Unknown request or ticket
        """
        if choice not in VALID_CONSENT_CHOICES:
            raise ValidationException(
                f"Invalid consent choice: {choice}",
                {"allowed": VALID_CONSENT_CHOICES}
            )

        pending = await self._pending_repo.get_by_id(request_id)
        if pending is None:
            raise ResourceNotFoundException("PendingAIRequest", request_id)
        if not pending.is_pending:
            raise ValidationException(
                f"AI request {request_id} was already {pending.status}",
                {"pending_request_id": request_id, "status": pending.status}
            )

        now = datetime.now(timezone.utc)

        if choice == ConsentChoice.CANCEL:
            await self._pending_repo.update_status(request_id, PendingRequestStatus.CANCELLED, now)
            pending.status = PendingRequestStatus.CANCELLED
            pending.resolved_at = now
            logger.info(
                "AI request cancelled by operator",
                extra={"pending_request_id": request_id, "ticket_id": pending.ticket_id}
            )
            return ConsentOutcome(request=pending)

        handler = handlers.get(pending.feature)
        if handler is None:
            raise ValidationException(
                f"No handler registered for feature: {pending.feature}",
                {"feature": pending.feature}
            )

        ticket = await load_ticket(self._ticket_repo, pending.ticket_id)
        anonymize = choice == ConsentChoice.ANONYMIZE
        await self._record_consent(ticket, anonymize, actor, now, pending)

        result = await handler(pending, actor)

        await self._pending_repo.update_status(request_id, PendingRequestStatus.RESUMED, now)
        pending.status = PendingRequestStatus.RESUMED
        pending.resolved_at = now
        return ConsentOutcome(request=pending, result=result)

    async def _record_consent(
        self,
        ticket: Ticket,
        anonymize: bool,
        actor: Actor,
        now: datetime,
        pending: PendingAIRequest
    ) -> None:
        await self._classification_repo.record_consent(ticket.id, anonymize, actor.user_id, now)

        await self._activity_repo.create(
            TicketActivity(
                ticket_id=ticket.id,
                activity_type="ai_consent",
                content=(
                    "User consented to AI usage with data anonymization"
                    if anonymize else
                    "User consented to AI usage without anonymization"
                ),
                new_value="anonymized" if anonymize else "raw",
                created_by=actor.user_id,
                created_by_name=actor.name,
                created_by_email=actor.email,
                created_at=now,
            )
        )

        await self._audit.log_event(
            organization_id=ticket.organization_id,
            action="ai_consent_recorded",
            resource_type="ticket",
            resource_id=ticket.id,
            user_id=actor.user_id,
            details={
                "anonymize": anonymize,
                "feature": pending.feature,
                "pending_request_id": pending.id,
            },
        )

        logger.info(
            "AI consent recorded",
            extra={"ticket_id": ticket.id, "anonymize": anonymize, "feature": pending.feature}
        )
