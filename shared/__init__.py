"""
Shared utilities for the profile gateway.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry with fixed or increasing backoff
- middleware: Security headers
- base_service: FastAPI app scaffolding shared by services

Do not import from service packages into shared/.
"""
