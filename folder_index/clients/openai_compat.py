"""OpenAI-compatible chat and embedding clients.

Thin wrappers around the `/embeddings` and `/chat/completions` endpoints
implemented by OpenAI, OpenRouter, Ollama, LM Studio, vLLM and others.
Handles API calls only - no business logic.

Uses native async httpx; concurrency controlled via semaphore.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import httpx
import tenacity

from folder_index.clients import _retry
from folder_index.schemas.embeddings import ChatResponse

__all__ = [
    'OpenAICompatibleChatClient',
    'OpenAICompatibleEmbeddingClient',
]

_retry_transient = tenacity.retry(
    retry=tenacity.retry_if_exception(_retry.is_retryable_httpx_error),
    stop=tenacity.stop_after_attempt(3),
    wait=tenacity.wait_exponential(multiplier=0.5, max=5),
    before_sleep=_retry.log_provider_retry,
    reraise=True,
)


class _OpenAICompatibleClient:
    """Shared HTTP plumbing."""

    DEFAULT_MAX_CONCURRENT = 8
    DEFAULT_TIMEOUT_MS = 60_000
    DEFAULT_MAX_CONNECTIONS = 20
    DEFAULT_KEEPALIVE_EXPIRY = 30  # Seconds before idle close

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        api_key: str | None = None,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize client.

        Args:
            base_url: API root, e.g. 'https://api.openai.com/v1' or 'http://localhost:11434/v1'.
            model: Model identifier sent with every request.
            api_key: Bearer token. Local providers usually need none.
            max_concurrent: Max concurrent API requests (semaphore limit).
            timeout_ms: Request timeout in milliseconds.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        self._model = model
        headers = {'Content-Type': 'application/json'}
        if api_key:
            headers['Authorization'] = f'Bearer {api_key}'
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip('/'),
            headers=headers,
            timeout=timeout_ms / 1000,  # Convert to seconds for httpx
            limits=httpx.Limits(
                max_connections=self.DEFAULT_MAX_CONNECTIONS,
                keepalive_expiry=self.DEFAULT_KEEPALIVE_EXPIRY,
            ),
            transport=transport,
        )
        self._semaphore = asyncio.Semaphore(max_concurrent)

    @property
    def model(self) -> str:
        return self._model

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        await self._client.aclose()


class OpenAICompatibleEmbeddingClient(_OpenAICompatibleClient):
    """EmbeddingClient for any `/embeddings` endpoint."""

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        dimensions: int | None = None,
        api_key: str | None = None,
        max_concurrent: int = _OpenAICompatibleClient.DEFAULT_MAX_CONCURRENT,
        timeout_ms: int = _OpenAICompatibleClient.DEFAULT_TIMEOUT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url,
            model,
            api_key=api_key,
            max_concurrent=max_concurrent,
            timeout_ms=timeout_ms,
            transport=transport,
        )
        self._dimensions = dimensions

    @_retry.provider_breaker
    @_retry_transient
    async def embed_documents(self, texts: Sequence[str]) -> Sequence[Sequence[float]]:
        """Embed texts, returning vectors in input order.

        Raises:
            httpx.HTTPStatusError: On non-retryable API errors.
            ValueError: If the provider returns a different number of vectors.
        """
        body: dict[str, object] = {'model': self._model, 'input': list(texts), 'encoding_format': 'float'}
        if self._dimensions is not None:
            body['dimensions'] = self._dimensions

        async with self._semaphore:
            response = await self._client.post('/embeddings', json=body)
            response.raise_for_status()
            data = response.json()

        # Sort by index to ensure order matches input
        embeddings = sorted(data['data'], key=lambda x: x['index'])
        if len(embeddings) != len(texts):
            raise ValueError(f'Embedding count mismatch: sent {len(texts)}, received {len(embeddings)}')
        return [e['embedding'] for e in embeddings]


class OpenAICompatibleChatClient(_OpenAICompatibleClient):
    """ChatClient for any `/chat/completions` endpoint."""

    @_retry.provider_breaker
    @_retry_transient
    async def invoke(self, system_prompt: str, user_prompt: str) -> ChatResponse:
        """Run one non-streaming completion.

        Raises:
            httpx.HTTPStatusError: On non-retryable API errors.
        """
        body = {
            'model': self._model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': user_prompt},
            ],
            'stream': False,
        }
        async with self._semaphore:
            response = await self._client.post('/chat/completions', json=body)
            response.raise_for_status()
            data = response.json()

        message = data['choices'][0]['message']
        usage = data.get('usage') or {}
        return ChatResponse(text=message.get('content') or '', output_tokens=usage.get('completion_tokens'))
