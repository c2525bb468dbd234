"""SQLite connection and schema.

One aiosqlite connection per service, guarded by an asyncio.Lock so that
transactions never interleave on the shared connection and readers never
observe a half-applied replace.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

__all__ = [
    'SCHEMA_SQL',
    'Database',
    'SqlParams',
]

logger = logging.getLogger(__name__)

type SqlParams = Sequence[object]

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS folders (
    name TEXT PRIMARY KEY,
    root_path TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS hash_tree_folders (
    folder_name TEXT PRIMARY KEY,
    root_path TEXT NOT NULL,
    root_hash TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_checked_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS hash_tree_nodes (
    folder_name TEXT NOT NULL,
    node_path TEXT NOT NULL,
    parent_path TEXT,
    node_type TEXT NOT NULL,
    hash TEXT NOT NULL,
    size INTEGER,
    PRIMARY KEY (folder_name, node_path)
);

CREATE TABLE IF NOT EXISTS ast_file_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    folder_name TEXT NOT NULL,
    relative_path TEXT NOT NULL,
    file_path TEXT NOT NULL,
    language TEXT NOT NULL,
    content_hash TEXT NOT NULL,
    tree_json TEXT NOT NULL,
    node_count INTEGER NOT NULL,
    has_error INTEGER NOT NULL,
    error_count INTEGER NOT NULL,
    parsed_at TEXT NOT NULL,
    UNIQUE (folder_name, relative_path)
);

CREATE TABLE IF NOT EXISTS ast_nodes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_id INTEGER NOT NULL REFERENCES ast_file_snapshots(id) ON DELETE CASCADE,
    node_path TEXT NOT NULL,
    depth INTEGER NOT NULL,
    node_type TEXT NOT NULL,
    symbol_name TEXT,
    start_byte INTEGER NOT NULL,
    end_byte INTEGER NOT NULL,
    start_row INTEGER NOT NULL,
    start_column INTEGER NOT NULL,
    end_row INTEGER NOT NULL,
    end_column INTEGER NOT NULL,
    snippet TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_ast_nodes_file ON ast_nodes(file_id);

CREATE TABLE IF NOT EXISTS text_chunk_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    folder_name TEXT NOT NULL,
    relative_path TEXT NOT NULL,
    file_path TEXT NOT NULL,
    format TEXT NOT NULL,
    content_hash TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    start_offset INTEGER NOT NULL,
    end_offset INTEGER NOT NULL,
    start_row INTEGER NOT NULL,
    start_column INTEGER NOT NULL,
    end_row INTEGER NOT NULL,
    end_column INTEGER NOT NULL,
    content TEXT NOT NULL,
    token_count INTEGER NOT NULL,
    truncated INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (folder_name, relative_path, chunk_index)
);

-- One row per processed text file, including files that yielded no chunks
CREATE TABLE IF NOT EXISTS text_file_snapshots (
    folder_name TEXT NOT NULL,
    relative_path TEXT NOT NULL,
    content_hash TEXT NOT NULL,
    chunk_count INTEGER NOT NULL,
    PRIMARY KEY (folder_name, relative_path)
);

CREATE TABLE IF NOT EXISTS embeddings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    folder_name TEXT NOT NULL,
    stage TEXT NOT NULL,
    document_type TEXT NOT NULL,
    file_path TEXT NOT NULL,
    relative_path TEXT NOT NULL,
    ast_file_id INTEGER,
    ast_node_id INTEGER,
    text_chunk_id INTEGER,
    content TEXT NOT NULL,
    embedding BLOB NOT NULL,
    dim INTEGER NOT NULL,
    metadata TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_embeddings_folder_stage ON embeddings(folder_name, stage);
"""


class Database:
    """Shared aiosqlite connection with serialized access.

    Usage:
        db = await Database.open(path)
        async with db.transaction() as conn:
            await conn.execute(...)
        rows = await db.fetch_all('SELECT ...', (...))
        await db.close()

    The lock is not reentrant: never call fetch_*/execute inside transaction();
    use the yielded connection instead.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = path
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, path: Path | str) -> Database:
        """Open the database, creating parent directories and the schema."""
        db = cls(path)
        await db.connect()
        return db

    async def connect(self) -> None:
        if isinstance(self._path, Path):
            self._path.parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None: transactions are managed explicitly with BEGIN/COMMIT
        self._conn = await aiosqlite.connect(self._path, isolation_level=None)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.executescript(SCHEMA_SQL)
        logger.info(f'[db] Opened {self._path}')

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run statements atomically; rolls back on any exception, including cancellation."""
        async with self._lock:
            conn = self._connection()
            await conn.execute('BEGIN')
            try:
                yield conn
            except BaseException:
                await conn.execute('ROLLBACK')
                raise
            await conn.execute('COMMIT')

    async def fetch_all(self, sql: str, params: SqlParams = ()) -> Sequence[aiosqlite.Row]:
        async with self._lock:
            async with self._connection().execute(sql, params) as cursor:
                return list(await cursor.fetchall())

    async def fetch_one(self, sql: str, params: SqlParams = ()) -> aiosqlite.Row | None:
        async with self._lock:
            async with self._connection().execute(sql, params) as cursor:
                return await cursor.fetchone()

    async def execute(self, sql: str, params: SqlParams = ()) -> int:
        """Run a single autocommitted statement and return its rowcount."""
        async with self._lock:
            async with self._connection().execute(sql, params) as cursor:
                return cursor.rowcount

    async def execute_many(self, sql: str, rows: Iterable[SqlParams]) -> None:
        async with self.transaction() as conn:
            await conn.executemany(sql, rows)

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError('Database is not connected')
        return self._conn
