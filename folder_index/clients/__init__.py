"""Model provider clients."""

from __future__ import annotations

import os
from pathlib import Path

from folder_index.clients.openai_compat import OpenAICompatibleChatClient, OpenAICompatibleEmbeddingClient
from folder_index.clients.protocols import ChatClient, EmbeddingClient
from folder_index.schemas.config import ModelEntry, ProviderConfig

__all__ = [
    'ChatClient',
    'EmbeddingClient',
    'OpenAICompatibleChatClient',
    'OpenAICompatibleEmbeddingClient',
    'create_chat_client',
    'create_embedding_client',
    'load_api_key',
]


def create_embedding_client(provider: ProviderConfig, model: ModelEntry) -> EmbeddingClient:
    """Create an embedding client for a configured provider model."""
    return OpenAICompatibleEmbeddingClient(
        provider.base_url,
        model.key,
        dimensions=model.dimensions,
        api_key=load_api_key(provider),
    )


def create_chat_client(provider: ProviderConfig, model: ModelEntry) -> ChatClient:
    """Create a chat client for a configured provider model."""
    return OpenAICompatibleChatClient(provider.base_url, model.key, api_key=load_api_key(provider))


def load_api_key(provider: ProviderConfig) -> str | None:
    """Resolve a provider's API key from its env var, then its key file.

    Raises:
        ValueError: If a key source is configured but yields nothing.
    """
    if provider.api_key_env is not None:
        key = os.environ.get(provider.api_key_env)
        if key:
            return key
        if provider.api_key_path is None:
            raise ValueError(f'Environment variable {provider.api_key_env} is not set for provider {provider.name}')
    if provider.api_key_path is not None:
        path = Path(provider.api_key_path).expanduser()
        if not path.exists():
            raise ValueError(f'API key file not found for provider {provider.name}: {path}')
        return path.read_text().strip()
    return None
