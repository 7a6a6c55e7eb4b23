"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

Every error the AI core can surface is one of these types. The HTTP layer
maps them onto status codes in one place (see ``shared.api.middleware``),
so services raise them freely without knowing about FastAPI.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ClassificationStorageException(RepositoryException):
    """A PII classification could not be persisted."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """
    AI disabled for the organization, a feature flag switched off, or
    provider credentials missing. Never retried.
    """


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Exception for model API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class ModelRateLimitedException(LLMException):
    """The provider answered HTTP 429."""

    def __init__(self, details: Optional[dict] = None):
        super().__init__("Rate limit exceeded. Please try again later.", details)


class ModelPaymentRequiredException(LLMException):
    """The provider answered HTTP 402 (credits exhausted)."""

    def __init__(self, details: Optional[dict] = None):
        super().__init__("AI credits exhausted. Please add funds to your workspace.", details)


class ModelMalformedOutputException(LLMException):
    """The model answered, but not with the JSON/tool shape that was asked for."""


class ActionExecutionException(ApplicationException):
    """Applying an agent action to its ticket failed."""

    def __init__(self, action_id: str, message: str, details: Optional[dict] = None):
        self.action_id = action_id
        super().__init__(
            f"Execution of action {action_id} failed: {message}",
            details or {"action_id": action_id}
        )


class InvalidActionTransitionException(DomainException):
    """An agent action was asked to move to a status it cannot reach."""

    def __init__(self, action_id: str, current_status: str, target_status: str):
        self.action_id = action_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Action {action_id} cannot move from '{current_status}' to '{target_status}'",
            {"action_id": action_id, "current_status": current_status, "target_status": target_status}
        )


class ConsentRequiredException(DomainException):
    """
    An AI request touched PII-bearing ticket data without recorded consent.

    The request has been stored and will run once an operator submits a
    decision for ``pending_request_id``.
    """

    def __init__(
        self,
        pending_request_id: str,
        ticket_id: str,
        pii_types: list,
        sensitivity_level: str
    ):
        self.pending_request_id = pending_request_id
        self.ticket_id = ticket_id
        self.pii_types = pii_types
        self.sensitivity_level = sensitivity_level
        super().__init__(
            f"Consent required before sending ticket {ticket_id} to the model",
            {
                "pending_request_id": pending_request_id,
                "ticket_id": ticket_id,
                "pii_types": pii_types,
                "sensitivity_level": sensitivity_level,
            }
        )
