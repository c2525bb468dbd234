"""Tests for model preference resolution and client caching."""

from __future__ import annotations

import pytest

from folder_index.exceptions import ModelConfigurationError
from folder_index.schemas.config import IndexerConfig, ModelEntry, ModelPreference, ProviderConfig
from folder_index.services.models import ProviderModelResolver, resolve_model_preference
from tests.folder_index.fakes import FakeChatClient, FakeEmbeddingClient

LOCAL = ProviderConfig(
    id='local',
    name='Local',
    base_url='http://localhost:11434/v1',
    chat_models=[ModelEntry(key='llama')],
    embedding_models=[ModelEntry(key='nomic'), ModelEntry(key='mxbai')],
)
REMOTE = ProviderConfig(
    id='remote',
    name='Remote',
    base_url='https://api.example.com/v1',
    api_key_env='REMOTE_API_KEY',
    embedding_models=[ModelEntry(key='text-embedding-3-small', dimensions=512)],
)


class TestResolveModelPreference:
    """Preference first, then the first provider and model that fit."""

    def test_no_providers(self) -> None:
        with pytest.raises(ModelConfigurationError, match='No embedding model providers found'):
            resolve_model_preference([], None, 'embedding')

    def test_no_provider_offers_kind(self) -> None:
        with pytest.raises(ModelConfigurationError, match='No chat model providers found'):
            resolve_model_preference([REMOTE], None, 'chat')

    def test_defaults_to_first_model_of_first_provider(self) -> None:
        resolved = resolve_model_preference([LOCAL, REMOTE], None, 'embedding')
        assert (resolved.provider.id, resolved.model.key) == ('local', 'nomic')

    def test_preferred_provider_and_model(self) -> None:
        preference = ModelPreference(provider_id='local', model_key='mxbai')
        resolved = resolve_model_preference([REMOTE, LOCAL], preference, 'embedding')
        assert (resolved.provider.id, resolved.model.key) == ('local', 'mxbai')

    def test_unknown_model_key_falls_back_to_first(self) -> None:
        preference = ModelPreference(provider_id='local', model_key='gone')
        resolved = resolve_model_preference([LOCAL], preference, 'embedding')
        assert resolved.model.key == 'nomic'

    def test_preferred_provider_without_kind_falls_back(self) -> None:
        preference = ModelPreference(provider_id='remote', model_key='text-embedding-3-small')
        resolved = resolve_model_preference([REMOTE, LOCAL], preference, 'chat')
        assert (resolved.provider.id, resolved.model.key) == ('local', 'llama')


class TestProviderModelResolver:
    """Lazy, cached client creation from config."""

    async def test_clients_are_cached_and_closed(self) -> None:
        created: list[str] = []
        embedding = FakeEmbeddingClient()

        def embedding_factory(provider: ProviderConfig, model: ModelEntry) -> FakeEmbeddingClient:
            created.append(f'{provider.id}/{model.key}')
            return embedding

        resolver = ProviderModelResolver(
            IndexerConfig(providers=[LOCAL]),
            embedding_factory=embedding_factory,
            chat_factory=lambda provider, model: FakeChatClient(),
        )
        first = await resolver.resolve_embedding_client()
        second = await resolver.resolve_embedding_client()
        assert first is second
        assert created == ['local/nomic']

        await resolver.close()
        assert embedding.closed

    async def test_factory_value_error_becomes_configuration_error(self) -> None:
        def embedding_factory(provider: ProviderConfig, model: ModelEntry) -> FakeEmbeddingClient:
            raise ValueError('Environment variable REMOTE_API_KEY is not set for provider Remote')

        resolver = ProviderModelResolver(IndexerConfig(providers=[REMOTE]), embedding_factory=embedding_factory)
        with pytest.raises(ModelConfigurationError, match='REMOTE_API_KEY'):
            await resolver.resolve_embedding_client()

    def test_summaries_follow_config(self) -> None:
        assert ProviderModelResolver(IndexerConfig(embed_summaries=True)).summaries_enabled() is True
        assert ProviderModelResolver(IndexerConfig()).summaries_enabled() is False

    async def test_missing_chat_model(self) -> None:
        resolver = ProviderModelResolver(IndexerConfig(providers=[REMOTE]))
        with pytest.raises(ModelConfigurationError, match='No chat model providers found'):
            await resolver.resolve_chat_client()
