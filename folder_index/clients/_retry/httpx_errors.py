"""Shared httpx error detection for retry logic.

Private module - import from _retry package.
"""

from __future__ import annotations

import httpx

__all__ = [
    'RETRYABLE_STATUS_CODES',
    'is_retryable_httpx_error',
]

# 429: rate limited; 5xx: transient provider failures
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def is_retryable_httpx_error(exc: BaseException) -> bool:
    """Check if exception is a retryable transient httpx error.

    Retries:
    - httpx.TimeoutException (all subclasses: Connect/Read/Write/PoolTimeout)
    - httpx.NetworkError (all subclasses: Connect/Read/Write/CloseError)
    - httpx.RemoteProtocolError (server sent invalid HTTP)
    - httpx.HTTPStatusError with a status in RETRYABLE_STATUS_CODES

    Propagates (don't retry):
    - httpx.LocalProtocolError (our bug)
    - httpx.ProxyError, UnsupportedProtocol (config errors)
    - 4xx other than 429 (bad request, auth, unknown model)
    """
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES

    return False
