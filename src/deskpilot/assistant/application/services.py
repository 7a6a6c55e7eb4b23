"""
Assistant Application Services
==============================

Assistive AI features an agent triggers from the ticket view: reply
suggestions, sentiment, priority, translation, summary and help-article
suggestions.

Every feature is gated by ``ai_enabled``, its own organization flag and
the consent gate, and sees the ticket anonymized when the gate says so.
"""

from typing import Any, Dict, List, Optional, Tuple

from deskpilot.assistant.domain import (
    KnowledgeSuggestions,
    PrioritySuggestion,
    ResponseSuggestions,
    SentimentAnalysis,
    TicketSummary,
    Translation,
    as_string_list,
    normalize_priority,
    normalize_sentiment,
    prompts,
)
from deskpilot.config import AIFeature
from deskpilot.core import (
    ConfigurationException,
    LLMException,
    ModelMalformedOutputException,
    ModelPaymentRequiredException,
    ModelRateLimitedException,
    ValidationException,
)
from deskpilot.infrastructure.llm import IModelClient, parse_json_content
from deskpilot.privacy.application import ConsentGate, prepare_ticket_data
from deskpilot.shared.infrastructure.logging import get_logger, log_latency
from deskpilot.tickets.application import (
    ITicketRepository,
    IMessageRepository,
    IOrganizationSettingsRepository,
    ModelClientResolver,
    load_ticket,
)
from deskpilot.tickets.domain import Actor, Ticket, TicketMessage

logger = get_logger(__name__)

DEFAULT_TARGET_LANGUAGE = "en"

# Feature -> (organization flag, message when the flag is off)
FEATURE_FLAGS = {
    AIFeature.SUGGEST_RESPONSES: ("ai_auto_suggest_responses", "Response suggestions are disabled"),
    AIFeature.ANALYZE_SENTIMENT: ("ai_sentiment_analysis", "Sentiment analysis is disabled"),
    AIFeature.SUGGEST_PRIORITY: ("ai_priority_suggestions", "Priority suggestions are disabled"),
    AIFeature.TRANSLATE: ("ai_translation_enabled", "Translation is disabled"),
    AIFeature.SUMMARIZE: ("ai_summarization_enabled", "Summarization is disabled"),
    AIFeature.SUGGEST_KNOWLEDGE: ("ai_knowledge_base_enabled", "Knowledge base suggestions are disabled"),
}

MAX_SUGGESTIONS = 3
MAX_ARTICLES = 5


class AssistantService:
    """Runs the assistive features on one ticket."""

    def __init__(
        self,
        ticket_repo: ITicketRepository,
        message_repo: IMessageRepository,
        settings_repo: IOrganizationSettingsRepository,
        consent_gate: ConsentGate,
        client_resolver: ModelClientResolver
    ):
        self._ticket_repo = ticket_repo
        self._message_repo = message_repo
        self._settings_repo = settings_repo
        self._consent_gate = consent_gate
        self._client_resolver = client_resolver

    async def _prepare(
        self,
        ticket_id: str,
        feature: str,
        actor: Optional[Actor],
        parameters: Optional[dict] = None
    ) -> Tuple[Ticket, List[TicketMessage], IModelClient]:
        """
        Load the ticket and pass it through the feature flag and consent gate.

        Returns:
            The ticket and messages as they may be shown to the model, and
            the organization's model client

        Raises:
            ConfigurationException: AI or the feature disabled
            ConsentRequiredException: The request was stored until consent is given
        """
        ticket = await load_ticket(self._ticket_repo, ticket_id)
        org_settings = await self._settings_repo.get(ticket.organization_id)

        if not org_settings.ai_enabled:
            raise ConfigurationException("AI features are disabled for this organization")
        flag, disabled_message = FEATURE_FLAGS[feature]
        if not getattr(org_settings, flag):
            raise ConfigurationException(disabled_message, {"feature": feature})

        decision = await self._consent_gate.require(
            ticket, org_settings, feature, parameters=parameters, actor=actor
        )
        client = await self._client_resolver.resolve(org_settings)
        messages = await self._message_repo.list_for_ticket(ticket.id)
        prompt_ticket, prompt_messages = prepare_ticket_data(decision, ticket, messages)
        return prompt_ticket, prompt_messages, client

    async def _ask(
        self,
        client: IModelClient,
        system_prompt: str,
        user_prompt: str,
        operation: str,
        ticket_id: str,
        temperature: Optional[float] = None
    ) -> str:
        with log_latency(logger, "assistant_feature", ticket_id=ticket_id, feature=operation):
            completion = await client.complete(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                temperature=temperature,
                operation=operation,
            )
        return completion.content or ""

    async def suggest_responses(self, ticket_id: str, actor: Optional[Actor] = None) -> ResponseSuggestions:
        """Three reply suggestions; one generic reply when the answer is unusable."""
        ticket, messages, client = await self._prepare(ticket_id, AIFeature.SUGGEST_RESPONSES, actor)
        content = await self._ask(
            client,
            prompts.SUGGESTIONS_SYSTEM_PROMPT,
            prompts.suggest_responses_prompt(ticket, messages),
            AIFeature.SUGGEST_RESPONSES,
            ticket_id,
            temperature=0.7,
        )

        try:
            suggestions = as_string_list(parse_json_content(content))
        except ModelMalformedOutputException as e:
            logger.warning(
                "Could not parse response suggestions, using fallback",
                extra={"ticket_id": ticket_id, "error": e.message}
            )
            suggestions = []

        if not suggestions:
            return ResponseSuggestions(suggestions=[prompts.FALLBACK_SUGGESTION], fallback=True)
        return ResponseSuggestions(suggestions=suggestions[:MAX_SUGGESTIONS])

    async def analyze_sentiment(self, ticket_id: str, actor: Optional[Actor] = None) -> SentimentAnalysis:
        """
        Sentiment and urgency of a ticket; the sentiment is stored on the ticket.

        Raises:
            ModelMalformedOutputException: If the answer is not a valid assessment
        """
        ticket, _, client = await self._prepare(ticket_id, AIFeature.ANALYZE_SENTIMENT, actor)
        content = await self._ask(
            client,
            prompts.SENTIMENT_SYSTEM_PROMPT,
            prompts.sentiment_prompt(ticket),
            AIFeature.ANALYZE_SENTIMENT,
            ticket_id,
        )

        analysis = normalize_sentiment(parse_json_content(content))
        if analysis is None:
            raise ModelMalformedOutputException(
                "Model returned an invalid sentiment assessment",
                {"ticket_id": ticket_id}
            )

        await self._ticket_repo.update_sentiment(ticket_id, analysis.sentiment)
        logger.info(
            "Sentiment analyzed",
            extra={
                "ticket_id": ticket_id,
                "sentiment": analysis.sentiment,
                "urgency_score": analysis.urgency_score,
            }
        )
        return analysis

    async def suggest_priority(self, ticket_id: str, actor: Optional[Actor] = None) -> PrioritySuggestion:
        """Suggested priority, or ``None`` when the model answers off-vocabulary."""
        ticket, _, client = await self._prepare(ticket_id, AIFeature.SUGGEST_PRIORITY, actor)
        content = await self._ask(
            client,
            prompts.PLAIN_SYSTEM_PROMPT,
            prompts.priority_prompt(ticket),
            AIFeature.SUGGEST_PRIORITY,
            ticket_id,
        )

        priority = normalize_priority(content)
        if priority is None:
            logger.info(
                "Priority suggestion outside vocabulary",
                extra={"ticket_id": ticket_id, "answer": content[:50]}
            )
        return PrioritySuggestion(suggested_priority=priority)

    async def translate(
        self,
        ticket_id: str,
        target_language: str = DEFAULT_TARGET_LANGUAGE,
        actor: Optional[Actor] = None
    ) -> Translation:
        """
        Translate a ticket's conversation, message by message.

        A message whose translation fails keeps its original text, except
        for rate-limit and payment errors, which abort the whole request.
        A ticket without messages has its title and description translated.
        """
        target_language = (target_language or DEFAULT_TARGET_LANGUAGE).strip() or DEFAULT_TARGET_LANGUAGE
        ticket, messages, client = await self._prepare(
            ticket_id, AIFeature.TRANSLATE, actor, {"target_language": target_language}
        )

        if not messages:
            content = await self._ask(
                client,
                prompts.PLAIN_SYSTEM_PROMPT,
                prompts.translate_ticket_prompt(ticket, target_language),
                AIFeature.TRANSLATE,
                ticket_id,
            )
            return Translation(target_language=target_language, translated_text=content.strip())

        translations: Dict[str, str] = {}
        for message in messages:
            try:
                content = await self._ask(
                    client,
                    prompts.PLAIN_SYSTEM_PROMPT,
                    prompts.translate_message_prompt(message.content, target_language),
                    AIFeature.TRANSLATE,
                    ticket_id,
                )
            except (ModelRateLimitedException, ModelPaymentRequiredException):
                raise
            except LLMException as e:
                logger.warning(
                    "Message translation failed, keeping original",
                    extra={"ticket_id": ticket_id, "message_id": message.id, "error": e.message}
                )
                content = ""
            translations[message.id] = content.strip() or message.content

        return Translation(target_language=target_language, message_translations=translations)

    async def summarize(self, ticket_id: str, actor: Optional[Actor] = None) -> TicketSummary:
        """Two or three sentence summary of the ticket and its conversation."""
        ticket, messages, client = await self._prepare(ticket_id, AIFeature.SUMMARIZE, actor)
        content = await self._ask(
            client,
            prompts.PLAIN_SYSTEM_PROMPT,
            prompts.summary_prompt(ticket, messages),
            AIFeature.SUMMARIZE,
            ticket_id,
        )
        if not content.strip():
            raise ModelMalformedOutputException("Model returned no summary", {"ticket_id": ticket_id})
        return TicketSummary(summary=content.strip())

    async def suggest_knowledge(self, ticket_id: str, actor: Optional[Actor] = None) -> KnowledgeSuggestions:
        """
        Help-article titles relevant to the ticket.

        Raises:
            ModelMalformedOutputException: If the answer is not a JSON list
        """
        ticket, _, client = await self._prepare(ticket_id, AIFeature.SUGGEST_KNOWLEDGE, actor)
        content = await self._ask(
            client,
            prompts.KNOWLEDGE_SYSTEM_PROMPT,
            prompts.knowledge_prompt(ticket),
            AIFeature.SUGGEST_KNOWLEDGE,
            ticket_id,
        )
        articles = as_string_list(parse_json_content(content))
        return KnowledgeSuggestions(articles=articles[:MAX_ARTICLES])

    async def dispatch(
        self,
        feature: str,
        ticket_id: str,
        parameters: Optional[dict] = None,
        actor: Optional[Actor] = None
    ) -> Any:
        """
        Run a feature by name; used to replay requests suspended for consent.

        Raises:
            ValidationException: Unknown feature
        """
        parameters = parameters or {}
        if feature == AIFeature.SUGGEST_RESPONSES:
            return await self.suggest_responses(ticket_id, actor)
        if feature == AIFeature.ANALYZE_SENTIMENT:
            return await self.analyze_sentiment(ticket_id, actor)
        if feature == AIFeature.SUGGEST_PRIORITY:
            return await self.suggest_priority(ticket_id, actor)
        if feature == AIFeature.TRANSLATE:
            return await self.translate(
                ticket_id, parameters.get("target_language", DEFAULT_TARGET_LANGUAGE), actor
            )
        if feature == AIFeature.SUMMARIZE:
            return await self.summarize(ticket_id, actor)
        if feature == AIFeature.SUGGEST_KNOWLEDGE:
            return await self.suggest_knowledge(ticket_id, actor)
        raise ValidationException(f"Unknown assistant feature: {feature}", {"feature": feature})
