"""
Agent Prompts
=============

System prompts, user prompts and the ``suggest_action`` tool schema for the
three pipeline stages.
"""

import json
from typing import List, Sequence

from deskpilot.config import VALID_ACTION_TYPES
from deskpilot.tickets.domain import Ticket, TicketMessage


SUGGEST_ACTION_TOOL = {
    "name": "suggest_action",
    "description": "Suggest an action for the ticket",
    "parameters": {
        "type": "object",
        "properties": {
            "action_type": {
                "type": "string",
                "enum": list(VALID_ACTION_TYPES),
                "description": "The type of action to take",
            },
            "action_data": {
                "type": "object",
                "description": "Specific action details. MUST include relevant fields based on action_type",
                "properties": {
                    "response": {"type": "string", "description": "For auto_response: the full customer response text"},
                    "new_priority": {"type": "string", "description": "For priority_change: low, medium, high, or urgent"},
                    "new_status": {"type": "string", "description": "For status_change: open, in_progress, resolved, or closed"},
                    "reason": {"type": "string", "description": "Explanation for the action"},
                    "escalate_to": {"type": "string", "description": "For escalation: who to escalate to"},
                    "follow_up_action": {"type": "string", "description": "For follow_up: what action to take"},
                    "timeline": {"type": "string", "description": "For follow_up: when to follow up"},
                    "update_message": {"type": "string", "description": "For customer_update: message to send"},
                },
            },
            "confidence_score": {
                "type": "number",
                "minimum": 0,
                "maximum": 100,
                "description": "Confidence percentage (0-100, e.g., 85 means 85% confident)",
            },
            "reasoning": {
                "type": "string",
                "description": "Detailed explanation of why this action is recommended",
            },
        },
        "required": ["action_type", "action_data", "confidence_score", "reasoning"],
        "additionalProperties": False,
    },
}


class AgentPromptBuilder:
    """
    Builds prompts for the triage, resolution and quality agents.

    Learning examples are appended to every system prompt so each stage sees
    how humans reviewed earlier suggestions.
    """

    TRIAGE_SYSTEM_PROMPT = """You are a Triage Agent responsible for initial ticket analysis.
Your job is to:
1. Assess ticket urgency and priority
2. Categorize the issue type
3. Determine if immediate escalation is needed
4. Suggest initial priority level

IMPORTANT:
- confidence_score must be 0-100 (e.g., 85 for 85% confidence)
- action_data must contain specific details about what should change
- For priority_change, include: {"new_priority": "high", "reason": "explanation"}
- For status_change, include: {"new_status": "open", "reason": "explanation"}
- For escalation, include: {"escalate_to": "team", "reason": "explanation"}

Be decisive but cautious. Only suggest high-priority or escalation if truly critical."""

    RESOLUTION_SYSTEM_PROMPT = """You are a Resolution Agent responsible for solving tickets autonomously.
Your job is to:
1. Craft appropriate responses to customer issues
2. Suggest status updates
3. Determine if the issue can be auto-resolved
4. Recommend follow-up actions

IMPORTANT:
- confidence_score must be 0-100 (e.g., 85 for 85% confidence)
- action_data must contain specific resolution details
- For auto_response, include: {"response": "full response text to customer"}
- For status_change, include: {"new_status": "resolved", "reason": "explanation"}
- For follow_up, include: {"follow_up_action": "what to do", "timeline": "when"}

Only suggest auto-resolution if you're highly confident (>80%)."""

    QUALITY_SYSTEM_PROMPT = """You are a Quality Agent responsible for validating resolution suggestions.
Your job is to:
1. Review the suggested resolution for accuracy
2. Check for potential issues or risks
3. Validate the confidence score
4. Approve or escalate based on quality assessment

IMPORTANT:
- confidence_score must be 0-100 (e.g., 85 for 85% confidence)
- action_data should confirm or modify the resolution suggestion
- If approving, use same action_data as resolution
- If escalating, include: {"escalate_to": "team", "reason": "why a human is required"}

You're the final check before auto-resolution. Be thorough."""

    @staticmethod
    def learning_context(examples: Sequence[dict]) -> str:
        if not examples:
            return ""
        return "\n\nLearning from previous feedback:\n" + json.dumps(list(examples), default=str)

    @classmethod
    def triage_system_prompt(cls, examples: Sequence[dict]) -> str:
        return cls.TRIAGE_SYSTEM_PROMPT + cls.learning_context(examples)

    @classmethod
    def resolution_system_prompt(cls, examples: Sequence[dict]) -> str:
        return cls.RESOLUTION_SYSTEM_PROMPT + cls.learning_context(examples)

    @classmethod
    def quality_system_prompt(cls, examples: Sequence[dict]) -> str:
        return cls.QUALITY_SYSTEM_PROMPT + cls.learning_context(examples)

    @staticmethod
    def triage_prompt(ticket: Ticket) -> str:
        return f"""Analyze this ticket:
Title: {ticket.title}
Description: {ticket.description or ""}
Current Priority: {ticket.priority}
Status: {ticket.status}

Example response for priority_change:
{{
  "action_type": "priority_change",
  "action_data": {{
    "new_priority": "urgent",
    "reason": "Customer locked out, needs immediate access"
  }},
  "confidence_score": 85,
  "reasoning": "Clear urgent issue requiring immediate attention"
}}

Provide your triage assessment with confidence score (0-100) and detailed action_data."""

    @staticmethod
    def conversation(messages: List[TicketMessage]) -> str:
        return "\n".join(
            f"{message.sender_name or 'Unknown'}: {message.content}" for message in messages
        )

    @classmethod
    def resolution_prompt(
        cls,
        ticket: Ticket,
        triage_reasoning: str,
        messages: List[TicketMessage]
    ) -> str:
        history = cls.conversation(messages) or "No messages yet"
        return f"""Ticket Information:
Title: {ticket.title}
Description: {ticket.description or ""}
Priority: {ticket.priority}
Triage Assessment: {triage_reasoning}

Conversation History:
{history}

Example response for status_change:
{{
  "action_type": "status_change",
  "action_data": {{
    "new_status": "in_progress",
    "reason": "Investigation underway"
  }},
  "confidence_score": 90,
  "reasoning": "Active resolution in progress"
}}

Suggest the best resolution action with confidence score (0-100) and detailed action_data."""

    @staticmethod
    def quality_prompt(
        ticket: Ticket,
        action_type: str,
        action_data: dict,
        confidence: int,
        reasoning: str
    ) -> str:
        return f"""Review this resolution suggestion:
Ticket: {ticket.title}
Suggested Action: {action_type}
Action Data: {json.dumps(action_data, default=str)}
Resolution Confidence: {confidence}%
Reasoning: {reasoning}

Provide your quality assessment and final confidence score (0-100)."""
