"""
Assistant Prompts
=================

Prompt templates for the agent-facing assistive features.
"""

from typing import List

from deskpilot.tickets.domain import Ticket, TicketMessage


SUGGESTIONS_SYSTEM_PROMPT = "You are a helpful customer support assistant. Always respond with valid JSON arrays."
SENTIMENT_SYSTEM_PROMPT = "You are a sentiment analysis assistant. Always respond with valid JSON."
KNOWLEDGE_SYSTEM_PROMPT = "You are a knowledge base assistant. Always respond with valid JSON arrays."
PLAIN_SYSTEM_PROMPT = "You are a helpful customer support assistant."

FALLBACK_SUGGESTION = (
    "I understand your concern. Let me look into this and get back to you with more information."
)


def _conversation(messages: List[TicketMessage], separator: str = "\n\n") -> str:
    return separator.join(f"{m.sender_name or 'Unknown'}: {m.content}" for m in messages)


def suggest_responses_prompt(ticket: Ticket, messages: List[TicketMessage]) -> str:
    return f"""You are a customer support assistant. Based on this ticket and conversation history, suggest 3 professional, helpful, and concise responses that an agent could use. Each response should be different in tone and approach.

Ticket: {ticket.title}
Description: {ticket.description or 'No description provided'}
Priority: {ticket.priority}
Status: {ticket.status}

Conversation history:
{_conversation(messages)}

Provide 3 distinct response suggestions. Keep each response under 100 words. Format your response as a JSON array of strings."""


def sentiment_prompt(ticket: Ticket) -> str:
    return f"""Analyze the sentiment and urgency of this customer support ticket. Respond with a JSON object containing: sentiment (positive/neutral/negative/urgent) and urgency_score (1-10).

Ticket: {ticket.title}
Description: {ticket.description or 'No description provided'}"""


def priority_prompt(ticket: Ticket) -> str:
    return f"""Based on this ticket, suggest an appropriate priority level (low/medium/high/urgent). Respond with just the priority level.

Ticket: {ticket.title}
Description: {ticket.description or 'No description provided'}"""


def translate_message_prompt(content: str, target_language: str) -> str:
    return f"""Translate the following message to {target_language}. Maintain the original meaning and tone. Only provide the translation, no additional text.

Message: {content}"""


def translate_ticket_prompt(ticket: Ticket, target_language: str) -> str:
    return f"""Translate the following ticket to {target_language}. Maintain the original meaning and tone. Only provide the translation, no additional text or explanations.

Ticket: {ticket.title}
Description: {ticket.description or 'No description'}"""


def summary_prompt(ticket: Ticket, messages: List[TicketMessage]) -> str:
    return f"""Provide a concise summary of this support ticket conversation. Include key issues, actions taken, and current status.

Ticket: {ticket.title}
Description: {ticket.description or 'No description'}
Status: {ticket.status}
Priority: {ticket.priority}

Conversation:
{_conversation(messages)}

Provide a clear, professional summary in 2-3 sentences."""


def knowledge_prompt(ticket: Ticket) -> str:
    return f"""Based on this support ticket, suggest 3-5 relevant help article titles that would be useful for resolving this issue.

Ticket: {ticket.title}
Description: {ticket.description or 'No description'}

Provide article titles as a JSON array of strings."""
