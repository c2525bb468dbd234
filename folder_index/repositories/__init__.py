"""SQLite repositories for folder indexing state."""

from __future__ import annotations

from folder_index.repositories.database import Database
from folder_index.repositories.embeddings import EmbeddingRepository
from folder_index.repositories.folders import FolderRepository
from folder_index.repositories.hash_tree import HashTreeRepository
from folder_index.repositories.snapshots import SnapshotRepository

__all__ = [
    'Database',
    'EmbeddingRepository',
    'FolderRepository',
    'HashTreeRepository',
    'SnapshotRepository',
]
