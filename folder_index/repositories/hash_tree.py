"""Hash tree persistence.

A folder's tree is stored as one root-hash row plus one row per node.
Persisting replaces the node set wholesale inside a single transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime

import more_itertools

from folder_index.repositories.database import Database
from folder_index.schemas.hash_tree import FlatNode, HashTree, PersistedFolderHash

__all__ = [
    'NODE_INSERT_CHUNK_SIZE',
    'HashTreeRepository',
]

logger = logging.getLogger(__name__)

# Rows per executemany call when replacing a tree
NODE_INSERT_CHUNK_SIZE = 200


class HashTreeRepository:
    """Last persisted hash tree per folder."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def persist(self, folder_name: str, tree: HashTree) -> None:
        """Upsert the root-hash row and replace all node rows atomically."""
        now = datetime.now(UTC).isoformat()
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO hash_tree_folders (folder_name, root_path, root_hash, updated_at, last_checked_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (folder_name) DO UPDATE SET
                    root_path = excluded.root_path,
                    root_hash = excluded.root_hash,
                    updated_at = excluded.updated_at,
                    last_checked_at = excluded.last_checked_at
                """,
                (folder_name, tree.root_path, tree.root_hash, now, now),
            )
            await conn.execute('DELETE FROM hash_tree_nodes WHERE folder_name = ?', (folder_name,))
            for chunk in more_itertools.chunked(tree.nodes.values(), NODE_INSERT_CHUNK_SIZE):
                await conn.executemany(
                    """
                    INSERT INTO hash_tree_nodes (folder_name, node_path, parent_path, node_type, hash, size)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [(folder_name, n.path, n.parent_path, n.node_type, n.hash, n.size) for n in chunk],
                )
        logger.debug(f'[hash-tree] Persisted {folder_name}: {len(tree.nodes)} nodes, root={tree.root_hash[:12]}')

    async def get_folder_hash(self, folder_name: str) -> PersistedFolderHash | None:
        row = await self._db.fetch_one('SELECT * FROM hash_tree_folders WHERE folder_name = ?', (folder_name,))
        if row is None:
            return None
        return PersistedFolderHash(
            folder_name=row['folder_name'],
            root_path=row['root_path'],
            root_hash=row['root_hash'],
            updated_at=datetime.fromisoformat(row['updated_at']),
            last_checked_at=datetime.fromisoformat(row['last_checked_at']),
        )

    async def load_tree(self, folder_name: str) -> HashTree | None:
        """Load the last persisted tree, or None if the folder was never indexed."""
        folder = await self.get_folder_hash(folder_name)
        if folder is None:
            return None
        rows = await self._db.fetch_all(
            'SELECT node_path, node_type, hash, size FROM hash_tree_nodes WHERE folder_name = ?',
            (folder_name,),
        )
        nodes = {
            row['node_path']: FlatNode(
                path=row['node_path'],
                hash=row['hash'],
                node_type=row['node_type'],
                size=row['size'],
            )
            for row in rows
        }
        return HashTree(root_path=folder.root_path, root_hash=folder.root_hash, nodes=nodes)

    async def load_file_hashes(self, folder_name: str) -> Mapping[str, str] | None:
        """Relative path -> content hash for files of the persisted tree, or None if never indexed."""
        if await self.get_folder_hash(folder_name) is None:
            return None
        rows = await self._db.fetch_all(
            "SELECT node_path, hash FROM hash_tree_nodes WHERE folder_name = ? AND node_type = 'file'",
            (folder_name,),
        )
        return {row['node_path']: row['hash'] for row in rows}

    async def touch_checked(self, folder_name: str) -> None:
        """Record a poll that found no changes."""
        await self._db.execute(
            'UPDATE hash_tree_folders SET last_checked_at = ? WHERE folder_name = ?',
            (datetime.now(UTC).isoformat(), folder_name),
        )
