"""Folder registration persistence."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from folder_index.repositories.database import Database
from folder_index.schemas.folders import FolderRegistration

__all__ = [
    'FolderRepository',
]

logger = logging.getLogger(__name__)

# Every table holding per-folder rows; deregistration clears all of them
_FOLDER_TABLES = (
    ('embeddings', 'folder_name'),
    ('text_chunk_snapshots', 'folder_name'),
    ('text_file_snapshots', 'folder_name'),
    ('ast_file_snapshots', 'folder_name'),  # ast_nodes cascade via FK
    ('hash_tree_nodes', 'folder_name'),
    ('hash_tree_folders', 'folder_name'),
    ('folders', 'name'),
)


class FolderRepository:
    """Registered folders, keyed by unique name."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def add(self, name: str, root_path: Path) -> FolderRegistration:
        """Insert a registration. Raises ValueError if the name exists."""
        folder = FolderRegistration(name=name, root_path=root_path, created_at=datetime.now(UTC))
        async with self._db.transaction() as conn:
            async with conn.execute('SELECT 1 FROM folders WHERE name = ?', (name,)) as cursor:
                if await cursor.fetchone() is not None:
                    raise ValueError(f"Folder '{name}' already exists")
            await conn.execute(
                'INSERT INTO folders (name, root_path, created_at) VALUES (?, ?, ?)',
                (name, str(root_path), folder.created_at.isoformat()),
            )
        return folder

    async def get(self, name: str) -> FolderRegistration | None:
        row = await self._db.fetch_one('SELECT * FROM folders WHERE name = ?', (name,))
        return _to_folder(row) if row is not None else None

    async def list_folders(self) -> Sequence[FolderRegistration]:
        rows = await self._db.fetch_all('SELECT * FROM folders ORDER BY name')
        return [_to_folder(row) for row in rows]

    async def update_root(self, name: str, root_path: Path) -> FolderRegistration | None:
        """Re-point a registration. Returns None if not found."""
        updated = await self._db.execute('UPDATE folders SET root_path = ? WHERE name = ?', (str(root_path), name))
        if not updated:
            return None
        return await self.get(name)

    async def delete(self, name: str) -> bool:
        """Delete a registration and every row derived from it, atomically.

        Returns True if the registration existed.
        """
        deleted = 0
        async with self._db.transaction() as conn:
            for table, column in _FOLDER_TABLES:
                cursor = await conn.execute(f'DELETE FROM {table} WHERE {column} = ?', (name,))
                if table == 'folders':
                    deleted = cursor.rowcount
        logger.info(f'[folders] Deleted {name!r} and all derived rows')
        return deleted > 0


def _to_folder(row: aiosqlite.Row) -> FolderRegistration:
    return FolderRegistration(
        name=row['name'],
        root_path=Path(row['root_path']),
        created_at=datetime.fromisoformat(row['created_at']),
    )
