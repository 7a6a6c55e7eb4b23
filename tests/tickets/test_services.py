"""Tests for audit logging, settings lookup and model client resolution."""

from uuid import UUID, uuid4

from sqlalchemy import select

from deskpilot.config import AIProvider, AuditSeverity
from deskpilot.core import RepositoryException
from deskpilot.tickets.application import AuditLogger, IAuditLogRepository, ModelClientResolver
from deskpilot.tickets.infrastructure import (
    AuditLogModel,
    SQLAlchemyAuditLogRepository,
    SQLAlchemyOrganizationSettingsRepository,
)
from deskpilot.tickets.infrastructure.models import OrganizationAICredentialModel


class BrokenAuditRepository(IAuditLogRepository):
    async def create(self, **kwargs) -> None:
        raise RepositoryException("audit sink down")


class TestAuditLogger:
    """Tests for best-effort audit writes."""

    async def test_event_is_written(self, db_session):
        organization_id = str(uuid4())
        audit = AuditLogger(SQLAlchemyAuditLogRepository(db_session))

        await audit.log_event(
            organization_id,
            "ai_auto_execution",
            "ai_action",
            details={"confidence_score": 91},
            resource_id="a-1",
            severity=AuditSeverity.WARNING,
        )

        row = (await db_session.execute(select(AuditLogModel))).scalar_one()
        assert row.action == "ai_auto_execution"
        assert row.details == {"confidence_score": 91}
        assert row.severity == AuditSeverity.WARNING
        assert row.user_id is None

    async def test_failed_insert_leaves_session_usable(self, db_session, storage_outage):
        await storage_outage.start("audit_logs")
        audit = AuditLogger(SQLAlchemyAuditLogRepository(db_session))

        await audit.log_event(str(uuid4()), "ai_consent_recorded", "ticket")

        await db_session.commit()
        assert (await db_session.execute(select(AuditLogModel))).scalars().all() == []

    async def test_failing_sink_is_swallowed(self):
        audit = AuditLogger(BrokenAuditRepository())

        await audit.log_event(str(uuid4()), "ai_consent_recorded", "ticket")


class TestOrganizationSettings:
    """Tests for reading organization settings."""

    async def test_unknown_organization_gets_defaults(self, db_session):
        organization_id = str(uuid4())

        org_settings = await SQLAlchemyOrganizationSettingsRepository(db_session).get(organization_id)

        assert org_settings.organization_id == organization_id
        assert org_settings.ai_enabled is False
        assert org_settings.ai_require_consent_for_pii is True
        assert org_settings.ai_auto_execution_threshold is None

    async def test_latest_key_wins(self, db_session, make_organization):
        org_id = await make_organization()
        repo = SQLAlchemyOrganizationSettingsRepository(db_session)
        db_session.add(OrganizationAICredentialModel(
            organization_id=UUID(org_id), provider=AIProvider.OPENAI, api_key="sk-old"
        ))
        await db_session.flush()
        db_session.add(OrganizationAICredentialModel(
            organization_id=UUID(org_id), provider=AIProvider.OPENAI, api_key="sk-new"
        ))
        await db_session.flush()

        assert await repo.get_api_key(org_id, AIProvider.OPENAI) == "sk-new"
        assert await repo.get_api_key(org_id, AIProvider.ANTHROPIC) is None


class TestModelClientResolver:
    """Tests for handing the organization's selection to the factory."""

    async def test_integrated_gets_no_organization_key(
        self, db_session, make_organization, model_client_factory, model_client
    ):
        org_id = await make_organization()
        repo = SQLAlchemyOrganizationSettingsRepository(db_session)
        resolver = ModelClientResolver(repo, model_client_factory)

        client = await resolver.resolve(await repo.get(org_id))

        assert client is model_client
        assert model_client_factory.requests == [{"provider": AIProvider.INTEGRATED, "api_key": None}]

    async def test_own_provider_gets_stored_key(self, db_session, make_organization, model_client_factory):
        org_id = await make_organization(ai_provider=AIProvider.ANTHROPIC)
        db_session.add(OrganizationAICredentialModel(
            organization_id=UUID(org_id), provider=AIProvider.ANTHROPIC, api_key="sk-ant"
        ))
        await db_session.flush()
        repo = SQLAlchemyOrganizationSettingsRepository(db_session)

        await ModelClientResolver(repo, model_client_factory).resolve(await repo.get(org_id))

        assert model_client_factory.requests == [{"provider": AIProvider.ANTHROPIC, "api_key": "sk-ant"}]
