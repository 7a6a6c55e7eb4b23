"""
Grafana OTLP Metrics Exporter
==============================

Pushes AI usage metrics to Grafana Cloud via OTLP/HTTP.

Metrics exported:
- llm_tokens_total / llm_latency_ms: per model call, tagged with provider and operation
- agent_pipeline_confidence: final confidence of each pipeline run
- agent_auto_executions: 1 when a run auto-executed its action, 0 otherwise
- http_request_latency_ms: per request, from MetricsMiddleware

Export failures are logged and reported as ``False``; they never break the
request or pipeline that produced the metric.
"""

import base64
import time
from typing import Optional, Dict, List

import httpx

from deskpilot.config import settings
from deskpilot.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _attributes(values: Dict[str, object]) -> List[dict]:
    return [{"key": key, "value": {"stringValue": str(value)}} for key, value in values.items()]


def _gauge(name: str, unit: str, description: str, value: int, attributes: List[dict]) -> dict:
    return {
        "name": name,
        "unit": unit,
        "description": description,
        "gauge": {
            "dataPoints": [{
                "asInt": int(value),
                "timeUnixNano": time.time_ns(),
                "attributes": attributes,
            }]
        },
    }


class GrafanaOTLPExporter:
    """
    Export metrics to Grafana Cloud via the OTLP HTTP endpoint.

    Uses gauges rather than sums for simpler dashboarding.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._transport = transport
        self._enabled = bool(self._host and self._api_key and self._instance_id)

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            if "/otlp/v1/metrics" in self._host:
                self._url = self._host
            else:
                self._url = f"{self._host.rstrip('/')}/otlp/v1/metrics"
            logger.info("Grafana OTLP exporter initialized", extra={"host": self._host})
        else:
            logger.info(
                "Grafana OTLP exporter not configured - metrics will not be exported",
                extra={
                    "host_configured": bool(self._host),
                    "api_key_configured": bool(self._api_key),
                    "instance_id_configured": bool(self._instance_id),
                }
            )

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    async def export_llm_metrics(
        self,
        provider: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int,
        operation: str = "complete"
    ) -> bool:
        """
        Export usage of a single model call.

        Args:
            provider: Provider name (integrated, openai, anthropic, custom)
            model: Model identifier
            prompt_tokens: Prompt tokens reported by the provider
            completion_tokens: Completion tokens reported by the provider
            latency_ms: Request latency in milliseconds
            operation: Calling feature (agent stage or assistant feature)

        Returns:
            True if export succeeded, False otherwise
        """
        attrs = _attributes({"provider": provider, "model": model, "operation": operation})
        return await self._push([
            _gauge("llm_tokens_total", "1", "Total tokens used in model requests",
                   prompt_tokens + completion_tokens, attrs),
            _gauge("llm_prompt_tokens", "1", "Prompt tokens in model requests", prompt_tokens, attrs),
            _gauge("llm_completion_tokens", "1", "Completion tokens generated", completion_tokens, attrs),
            _gauge("llm_latency_ms", "ms", "Model request latency", latency_ms, attrs),
        ])

    async def export_pipeline_metrics(
        self,
        organization_id: str,
        final_confidence: int,
        ai_status: str,
        auto_executed: bool
    ) -> bool:
        """Export the outcome of one agent pipeline run."""
        attrs = _attributes({"organization_id": organization_id, "ai_status": ai_status})
        return await self._push([
            _gauge("agent_pipeline_confidence", "1", "Final confidence of a pipeline run",
                   final_confidence, attrs),
            _gauge("agent_auto_executions", "1", "Whether the run auto-executed its action",
                   1 if auto_executed else 0, attrs),
        ])

    async def export_request_latency(
        self,
        endpoint: str,
        status_code: int,
        latency_ms: int,
        method: str = "POST"
    ) -> bool:
        """Export HTTP request latency."""
        attrs = _attributes({"endpoint": endpoint, "method": method, "status_code": status_code})
        return await self._push([
            _gauge("http_request_latency_ms", "ms", "HTTP request latency", latency_ms, attrs),
        ])

    async def _push(self, metrics: List[dict]) -> bool:
        if not self._enabled:
            return False

        payload = {
            "resourceMetrics": [{
                "resource": {"attributes": _attributes({
                    "service.name": settings.app_name,
                    "service.version": settings.app_version,
                    "deployment.environment": settings.environment,
                })},
                "scopeMetrics": [{"metrics": metrics}],
            }]
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id),
        }

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error("Error exporting metrics to Grafana", extra={"error": str(e)})
            return False

        if response.status_code in (200, 202):
            logger.debug("Metrics exported to Grafana", extra={"metrics_count": len(metrics)})
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={"status_code": response.status_code, "response": response.text[:500]}
        )
        return False


# Global exporter instance
_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> Optional[GrafanaOTLPExporter]:
    """Get the global Grafana exporter instance, if one was initialized."""
    return _grafana_exporter


def init_grafana_exporter(
    host: Optional[str] = None,
    api_key: Optional[str] = None,
    instance_id: Optional[str] = None
) -> GrafanaOTLPExporter:
    """Initialize the global Grafana exporter."""
    global _grafana_exporter
    _grafana_exporter = GrafanaOTLPExporter(host=host, api_key=api_key, instance_id=instance_id)
    return _grafana_exporter
