"""
Utility modules for mediadrop.

This package provides shared utilities used by the uploader, server and CLI:
- logging: Structured logging with entry/exit decorators
- config: Environment configuration loading and validation
- config_loader: YAML upload manifests
- retry: Backoff, retry predicates and circuit breaker
- metrics: Prometheus instrumentation
"""

from mediadrop.utils.logging import get_logger, log_function_call

__all__ = ["get_logger", "log_function_call"]
