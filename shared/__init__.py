"""
Shared utilities for the Ledger Access Layer.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorators for store reads
- base_service: FastAPI service skeleton with health and metrics routes

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service packages into shared/.
"""
