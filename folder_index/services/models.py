"""Model preference resolution.

Picks the provider and model used for embedding and summarization from the
configured providers and the user's preferences, falling back to the first
available option, and turns them into cached clients.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

from folder_index.clients import ChatClient, EmbeddingClient, create_chat_client, create_embedding_client
from folder_index.exceptions import ModelConfigurationError
from folder_index.schemas.config import IndexerConfig, ModelEntry, ModelPreference, ProviderConfig

__all__ = [
    'ModelKind',
    'ModelResolver',
    'ProviderModelResolver',
    'ResolvedModel',
    'resolve_model_preference',
]

logger = logging.getLogger(__name__)

type ModelKind = Literal['chat', 'embedding']


@dataclass(frozen=True, slots=True)
class ResolvedModel:
    provider: ProviderConfig
    model: ModelEntry


def resolve_model_preference(
    providers: Sequence[ProviderConfig],
    preference: ModelPreference | None,
    kind: ModelKind,
) -> ResolvedModel:
    """Choose a provider and model of the given kind.

    The preferred provider is used if it offers models of this kind, otherwise
    the first provider that does. Within it, the preferred model key is used
    if present, otherwise its first model.

    Raises:
        ModelConfigurationError: If no provider offers models of this kind.
    """
    candidates = [p for p in providers if _models_of(p, kind)]
    if not candidates:
        raise ModelConfigurationError(f'No {kind} model providers found, please configure them in the indexer config.')

    provider = candidates[0]
    if preference is not None:
        provider = next((p for p in candidates if p.id == preference.provider_id), provider)

    models = _models_of(provider, kind)
    model = models[0]
    if preference is not None and preference.provider_id == provider.id:
        model = next((m for m in models if m.key == preference.model_key), model)

    return ResolvedModel(provider=provider, model=model)


def _models_of(provider: ProviderConfig, kind: ModelKind) -> Sequence[ModelEntry]:
    return provider.embedding_models if kind == 'embedding' else provider.chat_models


class ModelResolver(Protocol):
    """Supplies the model clients an embedding job needs."""

    def summaries_enabled(self) -> bool: ...

    async def resolve_embedding_client(self) -> EmbeddingClient: ...

    async def resolve_chat_client(self) -> ChatClient: ...

    async def close(self) -> None: ...


class ProviderModelResolver:
    """ModelResolver backed by IndexerConfig providers.

    Clients are created lazily and cached per (provider, model) until close().
    """

    def __init__(
        self,
        config: IndexerConfig,
        *,
        embedding_factory: Callable[[ProviderConfig, ModelEntry], EmbeddingClient] = create_embedding_client,
        chat_factory: Callable[[ProviderConfig, ModelEntry], ChatClient] = create_chat_client,
    ) -> None:
        self._config = config
        self._embedding_factory = embedding_factory
        self._chat_factory = chat_factory
        self._embedding_clients: dict[tuple[str, str], EmbeddingClient] = {}
        self._chat_clients: dict[tuple[str, str], ChatClient] = {}

    def summaries_enabled(self) -> bool:
        return self._config.embed_summaries

    async def resolve_embedding_client(self) -> EmbeddingClient:
        resolved = resolve_model_preference(self._config.providers, self._config.default_embedding_model, 'embedding')
        key = (resolved.provider.id, resolved.model.key)
        if key not in self._embedding_clients:
            self._embedding_clients[key] = _create(self._embedding_factory, resolved)
            logger.info(f'[models] Embedding model: {resolved.provider.name}/{resolved.model.key}')
        return self._embedding_clients[key]

    async def resolve_chat_client(self) -> ChatClient:
        resolved = resolve_model_preference(self._config.providers, self._config.default_chat_model, 'chat')
        key = (resolved.provider.id, resolved.model.key)
        if key not in self._chat_clients:
            self._chat_clients[key] = _create(self._chat_factory, resolved)
            logger.info(f'[models] Chat model: {resolved.provider.name}/{resolved.model.key}')
        return self._chat_clients[key]

    async def close(self) -> None:
        clients: list[EmbeddingClient | ChatClient] = [*self._embedding_clients.values(), *self._chat_clients.values()]
        self._embedding_clients.clear()
        self._chat_clients.clear()
        for client in clients:
            await client.close()


def _create[C](factory: Callable[[ProviderConfig, ModelEntry], C], resolved: ResolvedModel) -> C:
    try:
        return factory(resolved.provider, resolved.model)
    except ValueError as e:
        raise ModelConfigurationError(str(e)) from e
