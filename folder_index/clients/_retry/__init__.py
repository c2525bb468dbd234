"""Retry helpers for transient network errors across model clients.

Private submodule - not exported by the package.

Retry Policy
------------
- **RETRY** = timeouts, network errors, invalid HTTP from the server, 429 and 5xx
- **PROPAGATE** = bugs, config errors, other 4xx (fail-fast)
"""

from __future__ import annotations

from folder_index.clients._retry.httpx_errors import RETRYABLE_STATUS_CODES, is_retryable_httpx_error
from folder_index.clients._retry.provider import log_provider_retry, provider_breaker

__all__ = [
    'RETRYABLE_STATUS_CODES',
    'is_retryable_httpx_error',
    'log_provider_retry',
    'provider_breaker',
]
