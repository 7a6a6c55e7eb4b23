"""
Configuration Module
====================

Application settings and domain vocabularies.

Settings are loaded from the environment (and an optional ``.env`` file)
through pydantic-settings. Domain vocabularies are plain string constants
so they can be stored directly in database columns.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Organization-level AI flags live in the database; everything here is
    deployment-wide.
    """

    # ========== Application ==========
    app_name: str = Field(default="deskpilot", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/deskpilot",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Integrated AI Gateway ==========
    ai_gateway_url: str = Field(
        default="https://ai.gateway.lovable.dev/v1",
        description="OpenAI-compatible base URL of the integrated AI gateway"
    )
    ai_gateway_api_key: Optional[str] = Field(
        default=None,
        description="API key for the integrated AI gateway"
    )
    ai_gateway_model: str = Field(
        default="google/gemini-2.5-flash",
        description="Model served by the integrated gateway"
    )

    # ========== Direct Providers ==========
    openai_api_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI API base URL"
    )
    openai_default_model: str = Field(default="gpt-4o-mini", description="Default OpenAI model")
    anthropic_api_url: str = Field(
        default="https://api.anthropic.com/v1/messages",
        description="Anthropic Messages API endpoint"
    )
    anthropic_default_model: str = Field(
        default="claude-3-5-sonnet-20241022",
        description="Default Anthropic model"
    )
    anthropic_version: str = Field(default="2023-06-01", description="anthropic-version header")
    anthropic_max_tokens: int = Field(default=4096, description="max_tokens for Anthropic requests", ge=1)

    # ========== LLM Settings ==========
    llm_temperature: float = Field(
        default=0.3,
        description="Default sampling temperature",
        ge=0.0,
        le=2.0
    )
    llm_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for a single model call",
        ge=1.0
    )
    mock_llm: bool = Field(
        default=False,
        description="Use the deterministic mock model client (no API calls)"
    )

    # ========== Agent Pipeline ==========
    default_auto_execution_threshold: int = Field(
        default=85,
        description="Auto-execution threshold used when an organization has none configured",
        ge=0,
        le=100
    )
    resolution_min_triage_confidence: int = Field(
        default=50,
        description="Resolution runs only when triage confidence is strictly above this"
    )
    quality_min_resolution_confidence: int = Field(
        default=60,
        description="Quality runs only when resolution confidence is strictly above this"
    )
    in_progress_min_confidence: int = Field(
        default=60,
        description="Lowest final confidence that still maps to ai_status in_progress"
    )
    auto_execution_rate_limit: int = Field(
        default=5,
        description="Max executed actions per ticket within the trailing window",
        ge=1
    )
    auto_execution_window_minutes: int = Field(
        default=60,
        description="Length of the trailing rate-limit window",
        ge=1
    )
    learning_context_limit: int = Field(
        default=5,
        description="Number of feedback records replayed into agent prompts",
        ge=0
    )
    pipeline_schedule_interval_minutes: int = Field(
        default=0,
        description="Minutes between scheduled pipeline runs (0 disables the scheduler)",
        ge=0
    )
    pipeline_schedule_batch_size: int = Field(
        default=20,
        description="Tickets processed per scheduled run",
        ge=1
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str):
    """Ticket priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class AIStatus(str):
    """Outcome of the most recent agent pipeline run on a ticket."""
    PENDING_ANALYSIS = "pending_analysis"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    HUMAN_REQUIRED = "human_required"


class AgentType(str):
    """Pipeline stages."""
    TRIAGE = "triage"
    RESOLUTION = "resolution"
    QUALITY = "quality"


class ActionType(str):
    """Actions an agent may propose."""
    AUTO_RESPONSE = "auto_response"
    STATUS_CHANGE = "status_change"
    PRIORITY_CHANGE = "priority_change"
    ESCALATION = "escalation"
    CUSTOMER_UPDATE = "customer_update"
    FOLLOW_UP = "follow_up"
    REFUND_REQUEST = "refund_request"


class ActionStatus(str):
    """Review state of an agent action."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"


class FeedbackType(str):
    """Human review outcome."""
    APPROVAL = "approval"
    REJECTION = "rejection"


class SensitivityLevel(str):
    """Classification sensitivity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PIICategory(str):
    """PII category tags."""
    EMAIL = "email"
    PHONE = "phone"
    CREDIT_CARD = "credit_card"
    SSN = "ssn"
    IP_ADDRESS = "ip_address"
    POSTAL_CODE = "postal_code"
    NAME = "name"
    MEDICAL = "medical"
    FINANCIAL = "financial"
    PERSONAL = "personal"
    AUTH = "auth"


class ConsentChoice(str):
    """Operator decision on a consent prompt."""
    ANONYMIZE = "anonymize"
    PROCEED = "proceed"
    CANCEL = "cancel"


class PendingRequestStatus(str):
    """Lifecycle of a suspended AI request."""
    PENDING = "pending"
    RESUMED = "resumed"
    CANCELLED = "cancelled"


class AuditSeverity(str):
    """Audit log severities."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AIProvider(str):
    """Model providers an organization may select."""
    INTEGRATED = "integrated"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    CUSTOM = "custom"


class AIFeature(str):
    """AI features routed through the consent gate."""
    AGENT_PIPELINE = "agent_pipeline"
    SUGGEST_RESPONSES = "suggest_responses"
    ANALYZE_SENTIMENT = "analyze_sentiment"
    SUGGEST_PRIORITY = "suggest_priority"
    TRANSLATE = "translate"
    SUMMARIZE = "summarize"
    SUGGEST_KNOWLEDGE = "suggest_knowledge"


# ========== Lists for validation ==========

VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS,
    TicketStatus.RESOLVED, TicketStatus.CLOSED
]
VALID_PRIORITIES = [
    TicketPriority.LOW, TicketPriority.MEDIUM,
    TicketPriority.HIGH, TicketPriority.URGENT
]
VALID_AI_STATUSES = [
    AIStatus.PENDING_ANALYSIS, AIStatus.IN_PROGRESS,
    AIStatus.RESOLVED, AIStatus.HUMAN_REQUIRED
]
VALID_AGENT_TYPES = [AgentType.TRIAGE, AgentType.RESOLUTION, AgentType.QUALITY]
VALID_ACTION_TYPES = [
    ActionType.AUTO_RESPONSE, ActionType.STATUS_CHANGE, ActionType.PRIORITY_CHANGE,
    ActionType.ESCALATION, ActionType.CUSTOMER_UPDATE, ActionType.FOLLOW_UP,
    ActionType.REFUND_REQUEST
]
VALID_ACTION_STATUSES = [
    ActionStatus.PENDING, ActionStatus.APPROVED,
    ActionStatus.REJECTED, ActionStatus.EXECUTED
]
VALID_FEEDBACK_TYPES = [FeedbackType.APPROVAL, FeedbackType.REJECTION]
VALID_SENSITIVITY_LEVELS = [
    SensitivityLevel.LOW, SensitivityLevel.MEDIUM,
    SensitivityLevel.HIGH, SensitivityLevel.CRITICAL
]
VALID_CONSENT_CHOICES = [ConsentChoice.ANONYMIZE, ConsentChoice.PROCEED, ConsentChoice.CANCEL]
VALID_PROVIDERS = [AIProvider.INTEGRATED, AIProvider.OPENAI, AIProvider.ANTHROPIC, AIProvider.CUSTOM]
VALID_FEATURES = [
    AIFeature.AGENT_PIPELINE, AIFeature.SUGGEST_RESPONSES, AIFeature.ANALYZE_SENTIMENT,
    AIFeature.SUGGEST_PRIORITY, AIFeature.TRANSLATE, AIFeature.SUMMARIZE,
    AIFeature.SUGGEST_KNOWLEDGE
]
