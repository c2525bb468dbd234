"""Centralized file paths for folder indexing.

All persistent file locations in one place for consistency.
The CLI and the service share these paths.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    'CONFIG_LOCK_PATH',
    'CONFIG_PATH',
    'DATABASE_PATH',
    'FOLDER_INDEX_DIR',
    'WORKSPACE_DIR',
]

# Base directories
WORKSPACE_DIR = Path.home() / '.folder-index'
FOLDER_INDEX_DIR = WORKSPACE_DIR / 'data'

# SQLite store (registrations, hash trees, snapshots, embeddings)
DATABASE_PATH = FOLDER_INDEX_DIR / 'index.sqlite3'

# Provider and pipeline configuration
CONFIG_PATH = WORKSPACE_DIR / 'config.json'
CONFIG_LOCK_PATH = WORKSPACE_DIR / 'config.lock'
