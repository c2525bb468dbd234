"""Indexer configuration schema.

Holds the pipeline tunables (poll interval, ignore rules, chunking and batch
sizes) and the model providers used for summarization and embedding.
Persisted as JSON at paths.CONFIG_PATH.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path

import filelock
import pydantic
from pydantic import Field

from folder_index.paths import CONFIG_LOCK_PATH, CONFIG_PATH
from folder_index.schemas.base import StrictModel

__all__ = [
    'DEFAULT_IGNORED_DIRECTORY_NAMES',
    'DEFAULT_IGNORED_FILE_NAMES',
    'IndexerConfig',
    'ModelEntry',
    'ModelPreference',
    'ProviderConfig',
    'load_config',
    'save_config',
]

logger = logging.getLogger(__name__)

# Build output, VCS metadata and caches never carry indexable content
DEFAULT_IGNORED_DIRECTORY_NAMES = (
    'node_modules',
    '.git',
    '.next',
    'dist',
    'build',
    'coverage',
    '__pycache__',
    '.turbo',
    '.vercel',
    '.cache',
)
DEFAULT_IGNORED_FILE_NAMES = ('.DS_Store', 'Thumbs.db')


class ModelEntry(StrictModel):
    """A single model offered by a provider."""

    key: str
    name: str | None = None
    dimensions: int | None = None  # Embedding models only; None = native size


class ProviderConfig(StrictModel):
    """An OpenAI-compatible model provider.

    The API key is read from the environment variable named by api_key_env,
    or from the file at api_key_path. Local providers (e.g. Ollama) need neither.
    """

    id: str
    name: str
    base_url: str
    api_key_env: str | None = None
    api_key_path: str | None = None
    chat_models: Sequence[ModelEntry] = ()
    embedding_models: Sequence[ModelEntry] = ()


class ModelPreference(StrictModel):
    """User's preferred provider/model pair."""

    provider_id: str
    model_key: str


class IndexerConfig(StrictModel):
    """Pipeline configuration.

    Defaults are tuned for source trees of a few thousand files.
    """

    # Change detection
    poll_interval_seconds: float = Field(default=10.0, gt=0)
    ignored_directory_names: Sequence[str] = DEFAULT_IGNORED_DIRECTORY_NAMES
    ignored_file_names: Sequence[str] = DEFAULT_IGNORED_FILE_NAMES
    reindex_on_change: bool = False

    # Text chunking (tokens estimated at 4 chars/token)
    text_chunk_max_tokens: int = Field(default=1000, gt=0)
    text_chunk_overlap_tokens: int = Field(default=100, ge=0)

    # Embedding job
    embed_summaries: bool = False
    embedding_batch_size: int = Field(default=64, gt=0)
    summarization_batch_size: int = Field(default=8, gt=0)
    persist_chunk_size: int = Field(default=50, gt=0)

    # Models
    providers: Sequence[ProviderConfig] = ()
    default_embedding_model: ModelPreference | None = None
    default_chat_model: ModelPreference | None = None

    @pydantic.model_validator(mode='after')
    def _check_overlap(self) -> IndexerConfig:
        if self.text_chunk_overlap_tokens >= self.text_chunk_max_tokens:
            raise ValueError('text_chunk_overlap_tokens must be smaller than text_chunk_max_tokens')
        return self


def load_config(path: Path = CONFIG_PATH) -> IndexerConfig:
    """Load config from file, falling back to defaults when it does not exist.

    Raises:
        ValueError: If config file exists but is invalid.
    """
    if not path.exists():
        logger.debug(f'No config at {path}, using defaults')
        return IndexerConfig()

    try:
        return IndexerConfig.model_validate_json(path.read_text())
    except pydantic.ValidationError as e:
        raise ValueError(f'Invalid config file at {path}: {e}') from e


def save_config(config: IndexerConfig, path: Path = CONFIG_PATH, lock_path: Path = CONFIG_LOCK_PATH) -> None:
    """Save config atomically, creating parent directories if needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with filelock.FileLock(lock_path):
        temp_path = path.with_suffix('.tmp')
        temp_path.write_text(json.dumps(config.model_dump(mode='json'), indent=2) + '\n')
        temp_path.rename(path)
    logger.info(f'Saved indexer config: providers={len(config.providers)}, embed_summaries={config.embed_summaries}')
