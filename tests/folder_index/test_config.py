"""Tests for indexer config loading and saving."""

from __future__ import annotations

import json
from pathlib import Path

import pydantic
import pytest

from folder_index.clients import load_api_key
from folder_index.schemas.config import IndexerConfig, ModelEntry, ProviderConfig, load_config, save_config


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / 'absent.json')
        assert config == IndexerConfig()
        assert config.reindex_on_change is False
        assert 'node_modules' in config.ignored_directory_names

    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / 'nested' / 'config.json'
        config = IndexerConfig(
            poll_interval_seconds=2.5,
            embed_summaries=True,
            providers=[
                ProviderConfig(
                    id='local',
                    name='Local',
                    base_url='http://localhost:11434/v1',
                    embedding_models=[ModelEntry(key='nomic', dimensions=768)],
                )
            ],
        )
        save_config(config, path, tmp_path / 'config.lock')

        assert not path.with_suffix('.tmp').exists()
        loaded = load_config(path)
        assert loaded.poll_interval_seconds == 2.5
        assert loaded.embed_summaries is True
        assert loaded.providers[0].embedding_models[0].dimensions == 768

    def test_invalid_file_raises_value_error(self, tmp_path: Path) -> None:
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'poll_interval_seconds': 'soon'}))
        with pytest.raises(ValueError, match='Invalid config file'):
            load_config(path)

    def test_unknown_keys_are_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'poll_interval': 5}))
        with pytest.raises(ValueError, match='Invalid config file'):
            load_config(path)


def test_overlap_must_be_smaller_than_chunk() -> None:
    with pytest.raises(pydantic.ValidationError, match='text_chunk_overlap_tokens'):
        IndexerConfig(text_chunk_max_tokens=100, text_chunk_overlap_tokens=100)


class TestLoadApiKey:
    """Environment variable first, then key file."""

    def _provider(self, **kwargs: str) -> ProviderConfig:
        return ProviderConfig(id='p', name='P', base_url='http://p', **kwargs)

    def test_no_key_configured(self) -> None:
        assert load_api_key(self._provider()) is None

    def test_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv('P_KEY', 'secret')
        assert load_api_key(self._provider(api_key_env='P_KEY')) == 'secret'

    def test_missing_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv('P_KEY', raising=False)
        with pytest.raises(ValueError, match='P_KEY is not set'):
            load_api_key(self._provider(api_key_env='P_KEY'))

    def test_env_var_falls_back_to_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.delenv('P_KEY', raising=False)
        key_file = tmp_path / 'key'
        key_file.write_text('from-file\n')
        assert load_api_key(self._provider(api_key_env='P_KEY', api_key_path=str(key_file))) == 'from-file'

    def test_missing_key_file(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match='API key file not found'):
            load_api_key(self._provider(api_key_path=str(tmp_path / 'missing')))
