"""Retry and circuit breaker helpers for OpenAI-compatible providers.

Private module - import from _retry package.
"""

from __future__ import annotations

import logging

import circuitbreaker
import tenacity

from folder_index.clients._retry.httpx_errors import is_retryable_httpx_error

__all__ = [
    'log_provider_retry',
    'provider_breaker',
]

logger = logging.getLogger(__name__)

# Circuit breaker - opens after consecutive failures, hard fails until recovery
PROVIDER_FAILURE_THRESHOLD = 10
PROVIDER_RECOVERY_TIMEOUT = 60


def log_provider_retry(retry_state: tenacity.RetryCallState) -> None:
    """Log a retry attempt before tenacity sleeps."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return
    name = retry_state.fn.__qualname__ if retry_state.fn is not None else 'request'
    logger.warning(f'[RETRY] {name} attempt {retry_state.attempt_number} failed: {type(exc).__name__}: {exc}')


def _provider_circuit_filter(thrown_type: type, thrown_value: BaseException) -> bool:
    """Only count retryable errors toward circuit breaker."""
    return is_retryable_httpx_error(thrown_value)


provider_breaker = circuitbreaker.CircuitBreaker(
    failure_threshold=PROVIDER_FAILURE_THRESHOLD,
    recovery_timeout=PROVIDER_RECOVERY_TIMEOUT,
    expected_exception=_provider_circuit_filter,
    name='model-provider',
)
