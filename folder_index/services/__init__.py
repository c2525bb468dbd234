"""Domain services for folder indexing."""

from __future__ import annotations

from folder_index.services.change_detector import ChangeDetector
from folder_index.services.chunking import TextChunker
from folder_index.services.documents import DocumentCollector
from folder_index.services.embedding_job import EmbeddingJob, EmbeddingJobRunner, JobSettings
from folder_index.services.folder_events import FolderEvents
from folder_index.services.indexer import FolderIndexService
from folder_index.services.models import ModelResolver, ProviderModelResolver, resolve_model_preference
from folder_index.services.parsing import ParserCapability, TreeSitterParser
from folder_index.services.progress import ProgressBus
from folder_index.services.snapshots import SnapshotManager

__all__ = [
    'ChangeDetector',
    'DocumentCollector',
    'EmbeddingJob',
    'EmbeddingJobRunner',
    'FolderEvents',
    'FolderIndexService',
    'JobSettings',
    'ModelResolver',
    'ParserCapability',
    'ProgressBus',
    'ProviderModelResolver',
    'SnapshotManager',
    'TextChunker',
    'TreeSitterParser',
    'resolve_model_preference',
]
