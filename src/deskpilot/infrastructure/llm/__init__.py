"""
LLM Client Infrastructure
==========================

One ``complete()`` capability over every supported model provider.

Providers:
- integrated: OpenAI-compatible AI gateway configured for the deployment
- openai: OpenAI Chat Completions with the organization's own key
- anthropic: Anthropic Messages API (separate ``system`` field, ``max_tokens``)
- custom: any OpenAI-compatible endpoint/model pair

Each provider is one ``IModelClient`` implementation chosen once, when the
client is created, so callers never branch on provider. Model calls are a
single request-response: SDK retries are disabled and HTTP 429 / 402 surface
as ``ModelRateLimitedException`` / ``ModelPaymentRequiredException``.
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from deskpilot.config import settings, AIProvider
from deskpilot.core import (
    ConfigurationException,
    LLMException,
    ModelMalformedOutputException,
    ModelPaymentRequiredException,
    ModelRateLimitedException,
)
from deskpilot.shared.infrastructure.grafana import get_grafana_exporter
from deskpilot.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ToolDefinition:
    """A function the model is forced to call; ``parameters`` is a JSON schema."""
    name: str
    description: str
    parameters: dict = field(default_factory=dict)


class CompletionResult:
    """Result of a single model call."""

    def __init__(
        self,
        content: str,
        model: str,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        latency_ms: int = 0,
        tool_arguments: Optional[dict] = None
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms
        self.tool_arguments = tool_arguments


def parse_json_content(content: Optional[str]) -> Any:
    """
    Parse a JSON answer that may be wrapped in Markdown code fences.

    Raises:
        ModelMalformedOutputException: If the content is empty or not JSON
    """
    if not content:
        raise ModelMalformedOutputException("Model returned no content")

    text = content.strip()
    if "```json" in text:
        text = text.split("```json", 1)[1].split("```", 1)[0]
    elif text.startswith("```"):
        text = text.split("```", 2)[1]

    try:
        return json.loads(text.strip())
    except json.JSONDecodeError as e:
        raise ModelMalformedOutputException(f"Model returned invalid JSON: {e}")


class IModelClient(ABC):
    """Interface every model provider implements."""

    provider: str = "unknown"

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: Optional[List[ToolDefinition]] = None,
        temperature: Optional[float] = None,
        operation: str = "complete"
    ) -> CompletionResult:
        """
        Run one chat completion.

        When ``tools`` is given the model is forced to call the first tool and
        its parsed arguments are returned as ``CompletionResult.tool_arguments``.
        """


async def _export_metrics(provider: str, result: CompletionResult, operation: str) -> None:
    exporter = get_grafana_exporter()
    if exporter and exporter.is_enabled():
        await exporter.export_llm_metrics(
            provider=provider,
            model=result.model,
            prompt_tokens=result.prompt_tokens,
            completion_tokens=result.completion_tokens,
            latency_ms=result.latency_ms,
            operation=operation
        )


class OpenAICompatibleModelClient(IModelClient):
    """
    Chat Completions client for the integrated gateway, OpenAI and custom endpoints.

    All three speak the OpenAI wire format and differ only in base URL, key
    and model.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        provider: str = AIProvider.OPENAI,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        if not api_key:
            raise ConfigurationException(f"API key not configured for provider '{provider}'")

        self.provider = provider
        self._model = model
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
            timeout=settings.llm_timeout_seconds,
            http_client=http_client,
        )

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: Optional[List[ToolDefinition]] = None,
        temperature: Optional[float] = None,
        operation: str = "complete"
    ) -> CompletionResult:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        request: dict = {
            "model": self._model,
            "messages": messages,
            "temperature": settings.llm_temperature if temperature is None else temperature,
        }
        if tools:
            request["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    },
                }
                for tool in tools
            ]
            request["tool_choice"] = {"type": "function", "function": {"name": tools[0].name}}

        start_time = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(**request)
        except openai.RateLimitError:
            raise ModelRateLimitedException({"provider": self.provider})
        except openai.APIStatusError as e:
            if e.status_code == 402:
                raise ModelPaymentRequiredException({"provider": self.provider})
            raise LLMException(
                f"{self.provider} returned HTTP {e.status_code}",
                {"provider": self.provider, "status_code": e.status_code}
            )
        except openai.APIError as e:
            raise LLMException(f"{self.provider} request failed: {e}", {"provider": self.provider})

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        if not response.choices:
            raise ModelMalformedOutputException("Model returned no choices")
        message = response.choices[0].message

        tool_arguments = None
        if tools:
            if not message.tool_calls:
                raise ModelMalformedOutputException("No tool call returned from model")
            try:
                tool_arguments = json.loads(message.tool_calls[0].function.arguments)
            except json.JSONDecodeError as e:
                raise ModelMalformedOutputException(f"Tool call arguments are not JSON: {e}")

        usage = response.usage
        result = CompletionResult(
            content=message.content or "",
            model=response.model or self._model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            latency_ms=latency_ms,
            tool_arguments=tool_arguments,
        )
        await _export_metrics(self.provider, result, operation)
        return result


class AnthropicModelClient(IModelClient):
    """
    Anthropic Messages API client over httpx.

    Differs from the OpenAI format in three ways: the system prompt is a
    top-level field, ``max_tokens`` is mandatory, and the answer is a list
    of typed content blocks.
    """

    provider = AIProvider.ANTHROPIC

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not api_key:
            raise ConfigurationException("API key not configured for provider 'anthropic'")

        self._api_key = api_key
        self._model = model or settings.anthropic_default_model
        self._transport = transport

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: Optional[List[ToolDefinition]] = None,
        temperature: Optional[float] = None,
        operation: str = "complete"
    ) -> CompletionResult:
        payload: dict = {
            "model": self._model,
            "max_tokens": settings.anthropic_max_tokens,
            "messages": [{"role": "user", "content": user_prompt}],
            "temperature": settings.llm_temperature if temperature is None else temperature,
        }
        if system_prompt:
            payload["system"] = system_prompt
        if tools:
            payload["tools"] = [
                {"name": tool.name, "description": tool.description, "input_schema": tool.parameters}
                for tool in tools
            ]
            payload["tool_choice"] = {"type": "tool", "name": tools[0].name}

        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": settings.anthropic_version,
            "content-type": "application/json",
        }

        start_time = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=settings.llm_timeout_seconds,
                transport=self._transport
            ) as client:
                response = await client.post(settings.anthropic_api_url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise LLMException(f"anthropic request failed: {e}", {"provider": self.provider})

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        if response.status_code == 429:
            raise ModelRateLimitedException({"provider": self.provider})
        if response.status_code == 402:
            raise ModelPaymentRequiredException({"provider": self.provider})
        if response.status_code >= 400:
            logger.error(
                "Anthropic API error",
                extra={"status_code": response.status_code, "response": response.text[:500]}
            )
            raise LLMException(
                f"anthropic returned HTTP {response.status_code}",
                {"provider": self.provider, "status_code": response.status_code}
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ModelMalformedOutputException(f"Anthropic response is not JSON: {e}")

        blocks = data.get("content") or []
        text = "".join(block.get("text", "") for block in blocks if block.get("type") == "text")
        tool_arguments = None
        if tools:
            tool_block = next((block for block in blocks if block.get("type") == "tool_use"), None)
            if tool_block is None or not isinstance(tool_block.get("input"), dict):
                raise ModelMalformedOutputException("No tool call returned from model")
            tool_arguments = tool_block["input"]

        usage = data.get("usage") or {}
        result = CompletionResult(
            content=text,
            model=data.get("model", self._model),
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            latency_ms=latency_ms,
            tool_arguments=tool_arguments,
        )
        await _export_metrics(self.provider, result, operation)
        return result


class MockModelClient(IModelClient):
    """
    Deterministic client for local development without API keys.

    Answers in the shape each feature expects, keyed by ``operation``.
    """

    provider = "mock"

    CANNED_CONTENT = {
        "suggest_responses": json.dumps([
            "Thanks for reaching out. We're looking into this now.",
            "I'm sorry for the trouble. Could you share a few more details?",
            "We've identified the issue and will update you shortly.",
        ]),
        "analyze_sentiment": json.dumps({"sentiment": "neutral", "urgency_score": 5}),
        "suggest_priority": "medium",
        "suggest_knowledge": json.dumps(["Getting started", "Troubleshooting common issues"]),
        "summarize": "The customer reported an issue. It is being investigated.",
    }

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: Optional[List[ToolDefinition]] = None,
        temperature: Optional[float] = None,
        operation: str = "complete"
    ) -> CompletionResult:
        tool_arguments = None
        if tools:
            tool_arguments = {
                "action_type": "escalation",
                "action_data": {"escalate_to": "support_team", "reason": "Mock assessment"},
                "confidence_score": 40,
                "reasoning": "Mock: no model configured, deferring to a human agent.",
            }
        content = self.CANNED_CONTENT.get(operation, "This is a mock model response.")
        return CompletionResult(
            content=content,
            model="mock-model",
            prompt_tokens=len(user_prompt.split()),
            completion_tokens=len(content.split()),
            latency_ms=1,
            tool_arguments=tool_arguments,
        )


class ModelClientFactory:
    """
    Builds the ``IModelClient`` for a provider selection.

    The organization's provider choice is resolved here once; callers only
    ever see the resulting client.
    """

    def create(
        self,
        provider: Optional[str],
        api_key: Optional[str] = None,
        custom_endpoint: Optional[str] = None,
        custom_model: Optional[str] = None
    ) -> IModelClient:
        """
        Args:
            provider: One of ``VALID_PROVIDERS``; ``None`` means integrated
            api_key: Organization credential (openai, anthropic, custom)
            custom_endpoint: Base URL or full chat-completions URL (custom)
            custom_model: Model identifier (custom)

        Raises:
            ConfigurationException: If the selection is incomplete
        """
        if settings.mock_llm:
            return MockModelClient()

        provider = provider or AIProvider.INTEGRATED

        if provider == AIProvider.INTEGRATED:
            if not settings.ai_gateway_api_key:
                raise ConfigurationException("AI service not configured")
            return OpenAICompatibleModelClient(
                api_key=settings.ai_gateway_api_key,
                model=settings.ai_gateway_model,
                base_url=settings.ai_gateway_url,
                provider=AIProvider.INTEGRATED,
            )

        if not api_key:
            raise ConfigurationException("AI credentials not configured")

        if provider == AIProvider.OPENAI:
            return OpenAICompatibleModelClient(
                api_key=api_key,
                model=settings.openai_default_model,
                base_url=settings.openai_api_url,
                provider=AIProvider.OPENAI,
            )
        if provider == AIProvider.ANTHROPIC:
            return AnthropicModelClient(api_key=api_key)
        if provider == AIProvider.CUSTOM:
            if not custom_endpoint or not custom_model:
                raise ConfigurationException("Custom AI provider requires an endpoint and a model")
            base_url = custom_endpoint.rstrip("/")
            if base_url.endswith("/chat/completions"):
                base_url = base_url[: -len("/chat/completions")]
            return OpenAICompatibleModelClient(
                api_key=api_key,
                model=custom_model,
                base_url=base_url,
                provider=AIProvider.CUSTOM,
            )

        raise ConfigurationException(f"Unknown AI provider '{provider}'")


__all__ = [
    "ToolDefinition",
    "CompletionResult",
    "IModelClient",
    "OpenAICompatibleModelClient",
    "AnthropicModelClient",
    "MockModelClient",
    "ModelClientFactory",
    "parse_json_content",
]
