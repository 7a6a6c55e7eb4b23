"""Pytest configuration and shared fixtures for testing."""

from typing import Any, AsyncGenerator, Dict, List, Optional
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from deskpilot.infrastructure.database import Base, enable_sqlite_savepoints
from deskpilot.infrastructure.llm import (
    CompletionResult,
    IModelClient,
    ModelClientFactory,
    ToolDefinition,
)
from deskpilot.tickets.domain import Actor
from deskpilot.tickets.infrastructure.models import (
    OrganizationSettingsModel,
    TicketMessageModel,
    TicketModel,
)

# Register the remaining tables on Base.metadata
import deskpilot.privacy.infrastructure.models  # noqa: F401
import deskpilot.agents.infrastructure.models  # noqa: F401

# Constants
TEST_USER_ID = "550e8400-e29b-41d4-a716-446655440000"


# --- Model client stubs ---


class StubModelClient(IModelClient):
    """
    Scripted model client.

    ``agent_outputs`` is consumed in order by tool calls; each entry is the
    tool arguments dict to return, ``None`` for a call without a tool call,
    or an exception to raise. ``answers`` maps an operation name to the
    content to return: a string, an exception, or a list consumed in order.
    """

    provider = "stub"

    def __init__(self):
        self.agent_outputs: List[Any] = []
        self.answers: Dict[str, Any] = {}
        self.calls: List[dict] = []

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: Optional[List[ToolDefinition]] = None,
        temperature: Optional[float] = None,
        operation: str = "complete"
    ) -> CompletionResult:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "tools": tools,
            "temperature": temperature,
            "operation": operation,
        })

        if tools:
            output = self.agent_outputs.pop(0) if self.agent_outputs else None
            if isinstance(output, Exception):
                raise output
            return CompletionResult(content="", model="stub-model", tool_arguments=output)

        answer = self.answers.get(operation, "")
        if isinstance(answer, list):
            answer = answer.pop(0) if answer else ""
        if isinstance(answer, Exception):
            raise answer
        return CompletionResult(content=answer, model="stub-model")

    def operations(self) -> List[str]:
        return [call["operation"] for call in self.calls]


class StubModelClientFactory(ModelClientFactory):
    """Factory handing out one StubModelClient whatever the provider."""

    def __init__(self, client: StubModelClient):
        self.client = client
        self.requests: List[dict] = []

    def create(
        self,
        provider: Optional[str],
        api_key: Optional[str] = None,
        custom_endpoint: Optional[str] = None,
        custom_model: Optional[str] = None
    ) -> IModelClient:
        self.requests.append({"provider": provider, "api_key": api_key})
        return self.client


def agent_output(
    action_type: str = "auto_response",
    confidence: float = 90,
    action_data: Optional[dict] = None,
    reasoning: str = "Looks straightforward"
) -> dict:
    """Arguments of a ``suggest_action`` tool call."""
    return {
        "action_type": action_type,
        "action_data": action_data if action_data is not None else {"response": "We have fixed your account."},
        "confidence_score": confidence,
        "reasoning": reasoning,
    }


# --- Database Fixtures ---


@pytest.fixture
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session
        await session.rollback()


class StorageOutage:
    """Makes inserts into a table fail inside the database."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def start(self, table: str) -> None:
        await self._session.execute(text(
            f"CREATE TRIGGER fail_{table}_insert BEFORE INSERT ON {table} "
            "BEGIN SELECT RAISE(ABORT, 'storage down'); END"
        ))

    async def end(self, table: str) -> None:
        await self._session.execute(text(f"DROP TRIGGER fail_{table}_insert"))


@pytest.fixture
def storage_outage(db_session: AsyncSession) -> StorageOutage:
    return StorageOutage(db_session)


# --- Seed Fixtures ---


@pytest.fixture
def make_organization(db_session: AsyncSession):
    """
    Store AI settings for a new organization and return its id.

    AI and agents are switched on; every other flag keeps its column default
    unless overridden.
    """
    async def _make(**overrides) -> str:
        values = {"ai_enabled": True, "ai_agents_enabled": True}
        values.update(overrides)
        organization_id = uuid4()
        db_session.add(OrganizationSettingsModel(organization_id=organization_id, **values))
        await db_session.flush()
        return str(organization_id)

    return _make


@pytest.fixture
def make_ticket(db_session: AsyncSession):
    """Store a ticket and return its id."""
    async def _make(
        organization_id: str,
        title: str = "Cannot log in",
        description: Optional[str] = "The login page keeps spinning after I submit the form.",
        **fields
    ) -> str:
        ticket_id = uuid4()
        db_session.add(TicketModel(
            id=ticket_id,
            organization_id=UUID(organization_id),
            title=title,
            description=description,
            **fields
        ))
        await db_session.flush()
        return str(ticket_id)

    return _make


@pytest.fixture
def add_message(db_session: AsyncSession):
    """Append a conversation message to a ticket and return its id."""
    async def _add(
        ticket_id: str,
        content: str,
        sender_name: Optional[str] = "Customer",
        sender_email: Optional[str] = None
    ) -> str:
        message_id = uuid4()
        db_session.add(TicketMessageModel(
            id=message_id,
            ticket_id=UUID(ticket_id),
            content=content,
            sender_name=sender_name,
            sender_email=sender_email,
        ))
        await db_session.flush()
        return str(message_id)

    return _add


# --- Service Fixtures ---


@pytest.fixture
def model_client() -> StubModelClient:
    return StubModelClient()


@pytest.fixture
def model_client_factory(model_client: StubModelClient) -> StubModelClientFactory:
    return StubModelClientFactory(model_client)


@pytest.fixture
def actor() -> Actor:
    return Actor(user_id=TEST_USER_ID, name="Dana Agent", email="dana@support.example")


@pytest.fixture
def detection_service(db_session):
    from deskpilot.privacy.interfaces import build_detection_service
    return build_detection_service(db_session)


@pytest.fixture
def consent_gate(db_session):
    from deskpilot.privacy.interfaces import build_consent_gate
    return build_consent_gate(db_session)


@pytest.fixture
def pipeline_service(db_session, model_client_factory):
    from deskpilot.agents.interfaces import build_pipeline_service
    return build_pipeline_service(db_session, model_client_factory)


@pytest.fixture
def feedback_service(db_session):
    from deskpilot.agents.interfaces import build_feedback_service
    return build_feedback_service(db_session)


@pytest.fixture
def assistant_service(db_session, model_client_factory):
    from deskpilot.assistant.interfaces import build_assistant_service
    return build_assistant_service(db_session, model_client_factory)


@pytest.fixture
def consent_handlers(db_session, model_client_factory):
    """Replay handlers of every gated feature, as the consent route wires them."""
    from deskpilot.agents.interfaces import build_consent_handlers as agent_handlers
    from deskpilot.assistant.interfaces import build_consent_handlers as assistant_handlers

    handlers = {}
    handlers.update(agent_handlers(db_session, model_client_factory))
    handlers.update(assistant_handlers(db_session, model_client_factory))
    return handlers
