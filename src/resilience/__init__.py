"""Resilience helpers: retry with backoff and circuit breaking."""

from .circuit_breaker import CircuitBreaker, CircuitOpenError
from .retry import (
    RetryError,
    RetryPolicy,
    is_retryable_database_error,
    retry_database_operation,
    retry_with_backoff,
)

__all__ = [
    "CircuitBreaker",
    "CircuitOpenError",
    "RetryError",
    "RetryPolicy",
    "is_retryable_database_error",
    "retry_database_operation",
    "retry_with_backoff",
]
