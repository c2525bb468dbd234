"""Embedding row persistence.

Rows are tagged with a stage. A running job writes under its own pending
stage; promote() swaps the folder's 'initial' set for the pending one in a
single transaction, so the served set is always replaced as a whole.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import UTC, datetime

import more_itertools

from folder_index.repositories.database import Database
from folder_index.schemas.embeddings import INITIAL_STAGE, PENDING_STAGE_PREFIX, EmbeddingRow, StoredEmbedding

__all__ = [
    'EmbeddingRepository',
]

logger = logging.getLogger(__name__)

_INSERT_SQL = """
INSERT INTO embeddings (
    folder_name, stage, document_type, file_path, relative_path, ast_file_id,
    ast_node_id, text_chunk_id, content, embedding, dim, metadata, created_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


class EmbeddingRepository:
    """Persisted embedding vectors per folder and stage."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def insert(self, rows: Sequence[EmbeddingRow], *, stage: str, chunk_size: int) -> None:
        """Insert rows in sub-transactions of chunk_size rows each."""
        created_at = datetime.now(UTC).isoformat()
        for chunk in more_itertools.chunked(rows, chunk_size):
            await self._db.execute_many(
                _INSERT_SQL,
                [
                    (
                        row.folder_name,
                        stage,
                        row.document_type,
                        row.file_path,
                        row.relative_path,
                        row.ast_file_id,
                        row.ast_node_id,
                        row.text_chunk_id,
                        row.content,
                        row.vector,
                        row.dim,
                        json.dumps(dict(row.metadata)),
                        created_at,
                    )
                    for row in chunk
                ],
            )

    async def promote(self, folder_name: str, stage: str) -> int:
        """Replace the folder's initial rows with the rows of stage. Returns rows promoted."""
        async with self._db.transaction() as conn:
            deleted = await conn.execute(
                'DELETE FROM embeddings WHERE folder_name = ? AND stage = ?', (folder_name, INITIAL_STAGE)
            )
            promoted = await conn.execute(
                'UPDATE embeddings SET stage = ? WHERE folder_name = ? AND stage = ?',
                (INITIAL_STAGE, folder_name, stage),
            )
        logger.info(f'[embed] {folder_name}: replaced {deleted.rowcount} initial rows with {promoted.rowcount}')
        return promoted.rowcount

    async def delete_stage(self, folder_name: str, stage: str) -> int:
        return await self._db.execute(
            'DELETE FROM embeddings WHERE folder_name = ? AND stage = ?', (folder_name, stage)
        )

    async def delete_pending(self, folder_name: str) -> int:
        """Drop rows left behind by jobs that never finished."""
        return await self._db.execute(
            'DELETE FROM embeddings WHERE folder_name = ? AND stage LIKE ?',
            (folder_name, f'{PENDING_STAGE_PREFIX}%'),
        )

    async def count(self, folder_name: str, stage: str = INITIAL_STAGE) -> int:
        row = await self._db.fetch_one(
            'SELECT COUNT(*) AS n FROM embeddings WHERE folder_name = ? AND stage = ?', (folder_name, stage)
        )
        return row['n'] if row is not None else 0

    async def has_initial(self, folder_name: str) -> bool:
        row = await self._db.fetch_one(
            'SELECT 1 FROM embeddings WHERE folder_name = ? AND stage = ? LIMIT 1', (folder_name, INITIAL_STAGE)
        )
        return row is not None

    async def list_embeddings(self, folder_name: str, stage: str = INITIAL_STAGE) -> Sequence[StoredEmbedding]:
        rows = await self._db.fetch_all(
            'SELECT * FROM embeddings WHERE folder_name = ? AND stage = ? ORDER BY id', (folder_name, stage)
        )
        return [
            StoredEmbedding(
                id=row['id'],
                stage=row['stage'],
                created_at=datetime.fromisoformat(row['created_at']),
                row=EmbeddingRow(
                    folder_name=row['folder_name'],
                    file_path=row['file_path'],
                    relative_path=row['relative_path'],
                    document_type=row['document_type'],
                    ast_file_id=row['ast_file_id'],
                    ast_node_id=row['ast_node_id'],
                    text_chunk_id=row['text_chunk_id'],
                    content=row['content'],
                    vector=row['embedding'],
                    dim=row['dim'],
                    metadata=json.loads(row['metadata']),
                ),
            )
            for row in rows
        ]
