"""
Shared API Dependencies
=======================

FastAPI dependencies used by every bounded context's controllers.

Authentication happens upstream; the calling user arrives as plain
``X-User-*`` headers set by the gateway.
"""

from typing import Optional

from fastapi import Header

from deskpilot.infrastructure.llm import ModelClientFactory
from deskpilot.tickets.domain import Actor


def get_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None)
) -> Actor:
    """User on whose behalf the request runs."""
    return Actor(user_id=x_user_id, name=x_user_name, email=x_user_email)


def get_model_client_factory() -> ModelClientFactory:
    """Factory used to build per-organization model clients."""
    return ModelClientFactory()
