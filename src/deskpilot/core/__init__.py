"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from deskpilot.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ClassificationStorageException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    LLMException,
    ModelRateLimitedException,
    ModelPaymentRequiredException,
    ModelMalformedOutputException,
    ActionExecutionException,
    InvalidActionTransitionException,
    ConsentRequiredException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ClassificationStorageException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "LLMException",
    "ModelRateLimitedException",
    "ModelPaymentRequiredException",
    "ModelMalformedOutputException",
    "ActionExecutionException",
    "InvalidActionTransitionException",
    "ConsentRequiredException",
]
