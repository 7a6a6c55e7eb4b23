"""HTTP tests for the API routes, the consent round-trip and the batch job."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from deskpilot import main
from deskpilot.config import AIStatus, settings
from deskpilot.infrastructure.database import (
    close_database,
    create_tables,
    get_session,
    get_session_context,
    init_database,
)
from deskpilot.shared.api.dependencies import get_model_client_factory
from deskpilot.tickets.infrastructure.models import OrganizationSettingsModel, TicketModel
from tests.conftest import TEST_USER_ID, agent_output

CARD_DESCRIPTION = "Please refund the charge on card 4111 1111 1111 1111."

USER_HEADERS = {
    "X-User-Id": TEST_USER_ID,
    "X-User-Name": "Dana Agent",
    "X-User-Email": "dana@support.example",
}


@pytest.fixture
async def client(db_session, model_client_factory):
    """API client sharing the test session and the scripted model client."""
    async def override_session():
        yield db_session

    main.app.dependency_overrides[get_session] = override_session
    main.app.dependency_overrides[get_model_client_factory] = lambda: model_client_factory

    async with AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test") as ac:
        yield ac

    main.app.dependency_overrides.clear()


class TestHealth:
    """Tests for the health endpoint."""

    async def test_health_reports_checks(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == settings.app_version
        assert set(data["checks"]) == {"database", "pipeline_scheduler", "model_client", "metrics_exporter"}

    async def test_correlation_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Correlation-ID": "abc-123"})

        assert response.headers["X-Correlation-ID"] == "abc-123"


class TestPipelineRoutes:
    """Tests for the agent routes."""

    async def test_run_pipeline(self, client, make_organization, make_ticket, model_client):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [agent_output("escalation", 40, {"escalate_to": "tier2"})]

        response = await client.post(f"/api/v1/agents/tickets/{ticket_id}/run", headers=USER_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["ai_status"] == AIStatus.HUMAN_REQUIRED
        assert data["final_confidence"] == 40
        assert data["resolution_result"] is None

        actions = await client.get(f"/api/v1/agents/tickets/{ticket_id}/actions")
        assert [action["action_type"] for action in actions.json()] == ["escalation"]

    async def test_unknown_ticket_is_404(self, client):
        response = await client.post(f"/api/v1/agents/tickets/{uuid4()}/run")

        assert response.status_code == 404
        assert response.json()["error"] == "ResourceNotFoundException"

    async def test_disabled_ai_is_403(self, client, make_organization, make_ticket):
        org_id = await make_organization(ai_enabled=False)
        ticket_id = await make_ticket(org_id)

        response = await client.post(f"/api/v1/agents/tickets/{ticket_id}/run")

        assert response.status_code == 403

    async def test_feedback_round_trip(self, client, make_organization, make_ticket, model_client):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)
        model_client.agent_outputs = [
            agent_output("follow_up", 70, {"follow_up_in_hours": 24}),
            agent_output("priority_change", 55, {"new_priority": "high"}),
        ]
        await client.post(f"/api/v1/agents/tickets/{ticket_id}/run", headers=USER_HEADERS)
        actions = (await client.get(f"/api/v1/agents/tickets/{ticket_id}/actions")).json()
        priority_action = next(a for a in actions if a["action_type"] == "priority_change")

        response = await client.post(
            f"/api/v1/agents/actions/{priority_action['id']}/feedback",
            json={"feedback_type": "approval"},
            headers=USER_HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["executed"] is True
        assert response.json()["action"]["status"] == "executed"

        again = await client.post(
            f"/api/v1/agents/actions/{priority_action['id']}/feedback",
            json={"feedback_type": "rejection", "notes": "Changed my mind"},
            headers=USER_HEADERS,
        )
        assert again.status_code == 409

    async def test_invalid_feedback_type_is_422(self, client):
        response = await client.post(
            f"/api/v1/agents/actions/{uuid4()}/feedback", json={"feedback_type": "maybe"}
        )

        assert response.status_code == 422


class TestConsentRoundTrip:
    """Tests for the 202 consent flow over HTTP."""

    async def test_pipeline_waits_for_consent(self, client, make_organization, make_ticket, model_client):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id, description=CARD_DESCRIPTION)

        response = await client.post(f"/api/v1/agents/tickets/{ticket_id}/run", headers=USER_HEADERS)

        assert response.status_code == 202
        body = response.json()
        assert body["consent_required"] is True
        assert body["ticket_id"] == ticket_id
        assert "credit_card" in body["pii_types"]
        assert body["sensitivity_level"] == "critical"
        assert model_client.calls == []

        model_client.agent_outputs = [agent_output("escalation", 30, {"escalate_to": "billing"})]
        decision = await client.post(
            f"/api/v1/privacy/consent/{body['pending_request_id']}",
            json={"choice": "anonymize"},
            headers=USER_HEADERS,
        )

        assert decision.status_code == 200
        data = decision.json()
        assert data["status"] == "resumed"
        assert data["feature"] == "agent_pipeline"
        assert data["result"]["ticket_id"] == ticket_id
        assert data["result"]["anonymized"] is True
        assert "4111" not in model_client.calls[0]["user_prompt"]

        classification = await client.get(f"/api/v1/privacy/tickets/{ticket_id}/classification")
        assert classification.json()["ai_usage_consent"] is True
        assert classification.json()["consent_given_by"] == TEST_USER_ID

    async def test_assistant_feature_waits_for_consent(self, client, make_organization, make_ticket, model_client):
        org_id = await make_organization(ai_summarization_enabled=True)
        ticket_id = await make_ticket(org_id, description=CARD_DESCRIPTION)
        model_client.answers["summarize"] = "Refund requested for a card charge."

        response = await client.post(f"/api/v1/assistant/tickets/{ticket_id}/summary", headers=USER_HEADERS)
        assert response.status_code == 202

        decision = await client.post(
            f"/api/v1/privacy/consent/{response.json()['pending_request_id']}",
            json={"choice": "proceed"},
            headers=USER_HEADERS,
        )

        assert decision.json()["result"] == {
            "ticket_id": ticket_id,
            "summary": "Refund requested for a card charge.",
        }

        # Consent is recorded, so the next request runs directly
        again = await client.post(f"/api/v1/assistant/tickets/{ticket_id}/summary", headers=USER_HEADERS)
        assert again.status_code == 200

    async def test_cancel(self, client, make_organization, make_ticket):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id, description=CARD_DESCRIPTION)
        response = await client.post(f"/api/v1/agents/tickets/{ticket_id}/run")

        decision = await client.post(
            f"/api/v1/privacy/consent/{response.json()['pending_request_id']}", json={"choice": "cancel"}
        )

        assert decision.status_code == 200
        assert decision.json()["status"] == "cancelled"
        assert decision.json()["result"] is None

    async def test_unknown_pending_request(self, client):
        response = await client.post(f"/api/v1/privacy/consent/{uuid4()}", json={"choice": "proceed"})

        assert response.status_code == 404


class TestPrivacyRoutes:
    """Tests for classification routes."""

    async def test_classify_with_text_override(self, client, make_organization, make_ticket):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)

        response = await client.post(
            f"/api/v1/privacy/tickets/{ticket_id}/classify",
            json={"text": "My SSN is 123-45-6789"},
        )

        assert response.status_code == 200
        assert response.json()["pii_types"] == ["ssn"]
        assert response.json()["sensitivity_level"] == "critical"

    async def test_classification_before_classify_is_404(self, client, make_organization, make_ticket):
        org_id = await make_organization()
        ticket_id = await make_ticket(org_id)

        response = await client.get(f"/api/v1/privacy/tickets/{ticket_id}/classification")

        assert response.status_code == 404


class TestPipelineBatchJob:
    """Tests for the scheduled pipeline job."""

    @pytest.fixture
    async def database(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "mock_llm", True)
        init_database(f"sqlite+aiosqlite:///{tmp_path / 'batch.db'}")
        await create_tables()
        yield
        await close_database()

    async def test_batch_skips_consent_and_disabled_organizations(self, database):
        enabled_org, disabled_org = uuid4(), uuid4()
        plain, with_card, disabled = uuid4(), uuid4(), uuid4()

        async with get_session_context() as session:
            session.add_all([
                OrganizationSettingsModel(organization_id=enabled_org, ai_enabled=True, ai_agents_enabled=True),
                OrganizationSettingsModel(organization_id=disabled_org, ai_enabled=True),
                TicketModel(id=plain, organization_id=enabled_org, title="Cannot log in"),
                TicketModel(
                    id=with_card, organization_id=enabled_org, title="Refund", description=CARD_DESCRIPTION
                ),
                TicketModel(id=disabled, organization_id=disabled_org, title="Cannot log in"),
            ])

        await main.pipeline_batch_job()

        async with get_session_context() as session:
            rows = (await session.execute(select(TicketModel))).scalars().all()
            statuses = {row.id: row.ai_status for row in rows}

        # The offline client always defers to a human
        assert statuses[plain] == AIStatus.HUMAN_REQUIRED
        assert statuses[with_card] == AIStatus.PENDING_ANALYSIS
        assert statuses[disabled] == AIStatus.PENDING_ANALYSIS

    async def test_storage_failure_on_one_ticket_does_not_stop_batch(self, database, monkeypatch):
        org_id, broken, healthy = uuid4(), uuid4(), uuid4()
        now = datetime.now(timezone.utc)

        async with get_session_context() as session:
            session.add_all([
                OrganizationSettingsModel(organization_id=org_id, ai_enabled=True, ai_agents_enabled=True),
                TicketModel(id=broken, organization_id=org_id, title="Cannot log in", created_at=now - timedelta(hours=1)),
                TicketModel(id=healthy, organization_id=org_id, title="Cannot log in", created_at=now),
            ])

        build_pipeline_service = main.build_pipeline_service

        def build_with_locked_ticket(session):
            service = build_pipeline_service(session)
            run_scheduled = service.run_scheduled

            async def run(ticket):
                if ticket.id == str(broken):
                    raise OperationalError("UPDATE tickets", {}, Exception("database is locked"))
                return await run_scheduled(ticket)

            service.run_scheduled = run
            return service

        monkeypatch.setattr(main, "build_pipeline_service", build_with_locked_ticket)

        await main.pipeline_batch_job()

        async with get_session_context() as session:
            rows = (await session.execute(select(TicketModel))).scalars().all()
            statuses = {row.id: row.ai_status for row in rows}

        assert statuses[broken] == AIStatus.PENDING_ANALYSIS
        assert statuses[healthy] == AIStatus.HUMAN_REQUIRED
