"""
Shared utilities for the backing services layer.

This package aggregates common building blocks used by the cache and
concurrency components:

- config: Configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Do not import from service_* packages into shared/.
"""
