"""
Shared Infrastructure
=====================

Low-level technical concerns shared by every module:
- Logging setup (JSON, correlation IDs)
- Metrics export (Grafana OTLP)
"""
