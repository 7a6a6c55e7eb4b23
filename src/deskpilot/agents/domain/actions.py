"""
Agent Action Payloads
=====================

Typed view of ``action_data``.

Agents return ``action_data`` as a free-form JSON object whose meaning
depends on ``action_type``. ``parse_action_payload`` turns it into exactly
one payload class below; a payload that does not carry the fields its type
needs becomes ``MalformedPayload``, which executes as a no-op.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

from deskpilot.config import ActionType, VALID_PRIORITIES, VALID_STATUSES


@dataclass(frozen=True)
class SendMessage:
    """auto_response / customer_update: post a message to the customer."""
    action_type: str
    message: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class ChangeStatus:
    new_status: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class ChangePriority:
    new_priority: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class Escalate:
    escalate_to: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class FollowUp:
    follow_up_action: str = ""
    timeline: str = ""
    reason: Optional[str] = None


@dataclass(frozen=True)
class RefundRequest:
    reason: Optional[str] = None


@dataclass(frozen=True)
class MalformedPayload:
    """An action whose data does not fit its type."""
    action_type: str
    problem: str


ActionPayload = Union[
    SendMessage, ChangeStatus, ChangePriority, Escalate, FollowUp, RefundRequest, MalformedPayload
]


def _text(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


def parse_action_payload(action_type: str, action_data: Any) -> ActionPayload:
    """
    Interpret ``action_data`` for ``action_type``.

    Args:
        action_type: One of ``VALID_ACTION_TYPES``
        action_data: Payload as stored on the action

    Returns:
        The matching payload, or MalformedPayload describing what is missing
    """
    if not isinstance(action_data, dict):
        return MalformedPayload(action_type, "action_data is not an object")

    reason = _text(action_data, "reason")

    if action_type in (ActionType.AUTO_RESPONSE, ActionType.CUSTOMER_UPDATE):
        primary, fallback = (
            ("response", "update_message")
            if action_type == ActionType.AUTO_RESPONSE
            else ("update_message", "response")
        )
        message = _text(action_data, primary) or _text(action_data, fallback)
        if message is None:
            return MalformedPayload(action_type, f"missing {primary}")
        return SendMessage(action_type=action_type, message=message, reason=reason)

    if action_type == ActionType.STATUS_CHANGE:
        new_status = action_data.get("new_status")
        if new_status not in VALID_STATUSES:
            return MalformedPayload(action_type, f"invalid new_status: {new_status!r}")
        return ChangeStatus(new_status=new_status, reason=reason)

    if action_type == ActionType.PRIORITY_CHANGE:
        new_priority = action_data.get("new_priority")
        if new_priority not in VALID_PRIORITIES:
            return MalformedPayload(action_type, f"invalid new_priority: {new_priority!r}")
        return ChangePriority(new_priority=new_priority, reason=reason)

    if action_type == ActionType.ESCALATION:
        escalate_to = _text(action_data, "escalate_to")
        if escalate_to is None:
            return MalformedPayload(action_type, "missing escalate_to")
        return Escalate(escalate_to=escalate_to, reason=reason)

    if action_type == ActionType.FOLLOW_UP:
        return FollowUp(
            follow_up_action=_text(action_data, "follow_up_action") or "",
            timeline=_text(action_data, "timeline") or "",
            reason=reason,
        )

    if action_type == ActionType.REFUND_REQUEST:
        return RefundRequest(reason=reason)

    return MalformedPayload(action_type, "unknown action_type")
