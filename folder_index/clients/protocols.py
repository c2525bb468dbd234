"""Protocol definitions for model clients.

The embedding job depends only on these interfaces; any client with
compatible methods can be injected.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from folder_index.schemas.embeddings import ChatResponse

__all__ = [
    'ChatClient',
    'EmbeddingClient',
]


class EmbeddingClient(Protocol):
    """Protocol for embedding clients."""

    async def embed_documents(self, texts: Sequence[str]) -> Sequence[Sequence[float]]:
        """Embed texts into vectors.

        Returns:
            One vector per input text, in input order, all of the same dimension.
        """
        ...

    async def close(self) -> None:
        """Release resources. No-op for clients without external connections."""
        ...


class ChatClient(Protocol):
    """Protocol for chat completion clients used for summarization."""

    async def invoke(self, system_prompt: str, user_prompt: str) -> ChatResponse:
        """Run one completion.

        Returns:
            Completion text and the provider-reported output token count, if any.
        """
        ...

    async def close(self) -> None:
        """Release resources."""
        ...
