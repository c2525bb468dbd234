"""Pydantic schemas for folder indexing."""

from __future__ import annotations

from folder_index.schemas.base import JsonDatetime, StrictModel
from folder_index.schemas.config import (
    IndexerConfig,
    ModelEntry,
    ModelPreference,
    ProviderConfig,
    load_config,
    save_config,
)
from folder_index.schemas.documents import ChunkDocument, Document, DocumentType, NodeDocument
from folder_index.schemas.embeddings import INITIAL_STAGE, ChatResponse, EmbeddingRow, StoredEmbedding
from folder_index.schemas.folders import FolderRegistration
from folder_index.schemas.hash_tree import FlatNode, FolderChange, HashTree, PersistedFolderHash, TreeDiff
from folder_index.schemas.progress import TaskPhase, TaskProgressState
from folder_index.schemas.snapshots import (
    AstNodeRecord,
    ChunkedFile,
    FocusNode,
    ParsedFile,
    Position,
    SnapshotResult,
    SupportedLanguage,
    TextChunk,
    TextFormat,
)

__all__ = [
    'INITIAL_STAGE',
    'AstNodeRecord',
    'ChatResponse',
    'ChunkDocument',
    'ChunkedFile',
    'Document',
    'DocumentType',
    'EmbeddingRow',
    'FlatNode',
    'FocusNode',
    'FolderChange',
    'FolderRegistration',
    'HashTree',
    'IndexerConfig',
    'JsonDatetime',
    'ModelEntry',
    'ModelPreference',
    'NodeDocument',
    'ParsedFile',
    'PersistedFolderHash',
    'Position',
    'ProviderConfig',
    'SnapshotResult',
    'StoredEmbedding',
    'StrictModel',
    'SupportedLanguage',
    'TaskPhase',
    'TaskProgressState',
    'TextChunk',
    'TextFormat',
    'TreeDiff',
    'load_config',
    'save_config',
]
