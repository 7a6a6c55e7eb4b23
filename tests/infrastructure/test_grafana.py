"""Tests for the OTLP metrics exporter."""

import base64
import json

import httpx

from deskpilot.config import settings
from deskpilot.shared.infrastructure.grafana import GrafanaOTLPExporter


def _exporter(handler, host: str = "https://otlp.grafana.example") -> GrafanaOTLPExporter:
    return GrafanaOTLPExporter(
        host=host,
        api_key="glc_key",
        instance_id="12345",
        transport=httpx.MockTransport(handler),
    )


class TestGrafanaOTLPExporter:
    """Tests for metric pushes."""

    async def test_llm_metrics_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200)

        exported = await _exporter(handler).export_llm_metrics(
            provider="anthropic",
            model="claude-test",
            prompt_tokens=100,
            completion_tokens=20,
            latency_ms=350,
            operation="triage",
        )

        assert exported is True
        assert seen["url"] == "https://otlp.grafana.example/otlp/v1/metrics"
        assert seen["auth"] == "Basic " + base64.b64encode(b"12345:glc_key").decode()

        metrics = seen["body"]["resourceMetrics"][0]["scopeMetrics"][0]["metrics"]
        values = {metric["name"]: metric["gauge"]["dataPoints"][0]["asInt"] for metric in metrics}
        assert values == {
            "llm_tokens_total": 120,
            "llm_prompt_tokens": 100,
            "llm_completion_tokens": 20,
            "llm_latency_ms": 350,
        }

    async def test_full_endpoint_is_kept(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(202)

        exporter = _exporter(handler, host="https://otlp.grafana.example/otlp/v1/metrics")

        assert await exporter.export_request_latency("/health", 200, 3, method="GET") is True
        assert seen["url"] == "https://otlp.grafana.example/otlp/v1/metrics"

    async def test_rejected_push_reports_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="unauthorized")

        exported = await _exporter(handler).export_pipeline_metrics("org-1", 88, "resolved", True)

        assert exported is False

    async def test_network_error_reports_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable")

        assert await _exporter(handler).export_request_latency("/health", 200, 3) is False

    async def test_unconfigured_exporter_is_disabled(self, monkeypatch):
        monkeypatch.setattr(settings, "grafana_host", None)
        monkeypatch.setattr(settings, "grafana_api_key", None)
        monkeypatch.setattr(settings, "grafana_instance_id", None)

        exporter = GrafanaOTLPExporter()

        assert exporter.is_enabled() is False
        assert await exporter.export_request_latency("/health", 200, 3) is False
