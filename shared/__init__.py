"""
Shared utilities for the Users Service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request and trace correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and the response envelope
- base_service: FastAPI application scaffolding

Do not import from service packages into shared/.
"""
