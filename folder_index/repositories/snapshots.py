"""AST and text chunk snapshot persistence.

Both snapshot kinds are keyed by (folder, relative path) and carry the
SHA-256 of the bytes they were built from, so callers can detect stale files
by comparing against the folder's current hash tree.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Collection, Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import more_itertools

from folder_index.repositories.database import Database
from folder_index.schemas.snapshots import (
    AstNodeRecord,
    ChunkedFile,
    ParsedFile,
    ParseDiagnostics,
    Position,
    StoredAstFile,
    StoredAstNode,
    StoredTextChunk,
    TextChunk,
)

__all__ = [
    'SnapshotRepository',
]

logger = logging.getLogger(__name__)

# SQLite caps bound variables per statement; stay well below it
_DELETE_PATHS_CHUNK_SIZE = 500

_INSERT_AST_FILE_SQL = """
INSERT INTO ast_file_snapshots (
    folder_name, relative_path, file_path, language, content_hash, tree_json,
    node_count, has_error, error_count, parsed_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_INSERT_AST_NODE_SQL = """
INSERT INTO ast_nodes (
    file_id, node_path, depth, node_type, symbol_name, start_byte, end_byte,
    start_row, start_column, end_row, end_column, snippet
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_INSERT_TEXT_CHUNK_SQL = """
INSERT INTO text_chunk_snapshots (
    folder_name, relative_path, file_path, format, content_hash, chunk_index,
    start_offset, end_offset, start_row, start_column, end_row, end_column,
    content, token_count, truncated, created_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_INSERT_TEXT_FILE_SQL = """
INSERT INTO text_file_snapshots (folder_name, relative_path, content_hash, chunk_count)
VALUES (?, ?, ?, ?)
"""


class SnapshotRepository:
    """Per-file AST snapshots (with flattened nodes) and text chunk snapshots."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # -- AST snapshots --

    async def ast_file_hashes(self, folder_name: str) -> Mapping[str, str]:
        """Relative path -> content hash of every AST file snapshot."""
        rows = await self._db.fetch_all(
            'SELECT relative_path, content_hash FROM ast_file_snapshots WHERE folder_name = ?',
            (folder_name,),
        )
        return {row['relative_path']: row['content_hash'] for row in rows}

    async def replace_ast_snapshots(
        self,
        folder_name: str,
        root_path: Path,
        parsed_files: Sequence[ParsedFile],
        *,
        replace_paths: Collection[str] | None = None,
    ) -> int:
        """Replace AST snapshots in one transaction and return the number of nodes inserted.

        Args:
            folder_name: Owning folder.
            root_path: Folder root, used to store absolute file paths.
            parsed_files: New snapshots to insert.
            replace_paths: Relative paths whose old snapshots are deleted first.
                None deletes every snapshot of the folder (full rebuild).
        """
        parsed_at = datetime.now(UTC).isoformat()
        node_count = 0
        async with self._db.transaction() as conn:
            await _delete_by_paths(conn, 'ast_file_snapshots', folder_name, replace_paths)
            for parsed in parsed_files:
                records = parsed.flatten()
                cursor = await conn.execute(
                    _INSERT_AST_FILE_SQL,
                    (
                        folder_name,
                        parsed.relative_path,
                        str(root_path / parsed.relative_path),
                        parsed.language,
                        parsed.content_hash,
                        json.dumps([node.model_dump(mode='json') for node in parsed.focus_nodes]),
                        len(records),
                        int(parsed.diagnostics.has_error),
                        parsed.diagnostics.error_count,
                        parsed_at,
                    ),
                )
                file_id = cursor.lastrowid
                await conn.executemany(_INSERT_AST_NODE_SQL, [_ast_node_params(file_id, r) for r in records])
                node_count += len(records)
        return node_count

    async def list_ast_files(self, folder_name: str) -> Sequence[StoredAstFile]:
        rows = await self._db.fetch_all(
            'SELECT * FROM ast_file_snapshots WHERE folder_name = ? ORDER BY relative_path',
            (folder_name,),
        )
        return [
            StoredAstFile(
                id=row['id'],
                folder_name=row['folder_name'],
                relative_path=row['relative_path'],
                file_path=row['file_path'],
                language=row['language'],
                content_hash=row['content_hash'],
                node_count=row['node_count'],
                diagnostics=ParseDiagnostics(has_error=bool(row['has_error']), error_count=row['error_count']),
                parsed_at=datetime.fromisoformat(row['parsed_at']),
            )
            for row in rows
        ]

    async def list_ast_nodes(self, folder_name: str, *, max_depth: int | None = None) -> Sequence[StoredAstNode]:
        """AST nodes of a folder ordered by file, then node order within the file."""
        sql = """
            SELECT n.*, f.relative_path, f.file_path, f.language
            FROM ast_nodes n JOIN ast_file_snapshots f ON f.id = n.file_id
            WHERE f.folder_name = ?
        """
        params: list[object] = [folder_name]
        if max_depth is not None:
            sql += ' AND n.depth <= ?'
            params.append(max_depth)
        sql += ' ORDER BY f.relative_path, n.id'
        rows = await self._db.fetch_all(sql, params)
        return [
            StoredAstNode(
                id=row['id'],
                file_id=row['file_id'],
                relative_path=row['relative_path'],
                file_path=row['file_path'],
                language=row['language'],
                node=AstNodeRecord(
                    node_path=row['node_path'],
                    depth=row['depth'],
                    node_type=row['node_type'],
                    symbol_name=row['symbol_name'],
                    start_byte=row['start_byte'],
                    end_byte=row['end_byte'],
                    start=Position(row=row['start_row'], column=row['start_column']),
                    end=Position(row=row['end_row'], column=row['end_column']),
                    snippet=row['snippet'],
                ),
            )
            for row in rows
        ]

    # -- Text chunk snapshots --

    async def text_chunk_hashes(self, folder_name: str) -> Mapping[str, str]:
        """Relative path -> content hash of every processed text file, chunked or not."""
        rows = await self._db.fetch_all(
            'SELECT relative_path, content_hash FROM text_file_snapshots WHERE folder_name = ?',
            (folder_name,),
        )
        return {row['relative_path']: row['content_hash'] for row in rows}

    async def count_chunked_files(self, folder_name: str) -> int:
        row = await self._db.fetch_one(
            'SELECT COUNT(*) AS n FROM text_file_snapshots WHERE folder_name = ? AND chunk_count > 0',
            (folder_name,),
        )
        return row['n'] if row is not None else 0

    async def replace_text_chunks(
        self,
        folder_name: str,
        root_path: Path,
        chunked_files: Sequence[ChunkedFile],
        *,
        unchunked_hashes: Mapping[str, str] | None = None,
        replace_paths: Collection[str] | None = None,
    ) -> int:
        """Replace text chunk snapshots in one transaction and return the number of chunks inserted.

        Args:
            folder_name: Owning folder.
            root_path: Folder root, used to store absolute file paths.
            chunked_files: New snapshots to insert; files with no chunks still get a file row.
            unchunked_hashes: Relative path -> content hash of files that were read but
                could not be chunked (e.g. not UTF-8). Recorded so they are not retried
                until their content changes.
            replace_paths: Same meaning as in replace_ast_snapshots.
        """
        file_rows = [
            (folder_name, chunked.relative_path, chunked.content_hash, len(chunked.chunks))
            for chunked in chunked_files
        ]
        file_rows += [(folder_name, rel, content_hash, 0) for rel, content_hash in (unchunked_hashes or {}).items()]
        created_at = datetime.now(UTC).isoformat()
        rows = [
            (
                folder_name,
                chunked.relative_path,
                str(root_path / chunked.relative_path),
                chunked.format,
                chunked.content_hash,
                chunk.chunk_index,
                chunk.start_offset,
                chunk.end_offset,
                chunk.start.row,
                chunk.start.column,
                chunk.end.row,
                chunk.end.column,
                chunk.content,
                chunk.token_count,
                int(chunk.truncated),
                created_at,
            )
            for chunked in chunked_files
            for chunk in chunked.chunks
        ]
        async with self._db.transaction() as conn:
            await _delete_by_paths(conn, 'text_chunk_snapshots', folder_name, replace_paths)
            await _delete_by_paths(conn, 'text_file_snapshots', folder_name, replace_paths)
            await conn.executemany(_INSERT_TEXT_CHUNK_SQL, rows)
            await conn.executemany(_INSERT_TEXT_FILE_SQL, file_rows)
        return len(rows)

    async def list_text_chunks(self, folder_name: str) -> Sequence[StoredTextChunk]:
        rows = await self._db.fetch_all(
            'SELECT * FROM text_chunk_snapshots WHERE folder_name = ? ORDER BY relative_path, chunk_index',
            (folder_name,),
        )
        return [
            StoredTextChunk(
                id=row['id'],
                folder_name=row['folder_name'],
                relative_path=row['relative_path'],
                file_path=row['file_path'],
                format=row['format'],
                content_hash=row['content_hash'],
                chunk=TextChunk(
                    chunk_index=row['chunk_index'],
                    start_offset=row['start_offset'],
                    end_offset=row['end_offset'],
                    start=Position(row=row['start_row'], column=row['start_column']),
                    end=Position(row=row['end_row'], column=row['end_column']),
                    content=row['content'],
                    token_count=row['token_count'],
                    truncated=bool(row['truncated']),
                ),
            )
            for row in rows
        ]

    async def count_text_chunks(self, folder_name: str) -> int:
        row = await self._db.fetch_one(
            'SELECT COUNT(*) AS n FROM text_chunk_snapshots WHERE folder_name = ?', (folder_name,)
        )
        return row['n'] if row is not None else 0

    async def clear(self, folder_name: str) -> None:
        """Drop both snapshot kinds for a folder (e.g. after its root moved)."""
        async with self._db.transaction() as conn:
            await conn.execute('DELETE FROM ast_file_snapshots WHERE folder_name = ?', (folder_name,))
            await conn.execute('DELETE FROM text_chunk_snapshots WHERE folder_name = ?', (folder_name,))
            await conn.execute('DELETE FROM text_file_snapshots WHERE folder_name = ?', (folder_name,))
        logger.info(f'[snapshots] Cleared snapshots for {folder_name}')


async def _delete_by_paths(
    conn: aiosqlite.Connection,
    table: str,
    folder_name: str,
    paths: Collection[str] | None,
) -> None:
    if paths is None:
        await conn.execute(f'DELETE FROM {table} WHERE folder_name = ?', (folder_name,))
        return
    for chunk in more_itertools.chunked(paths, _DELETE_PATHS_CHUNK_SIZE):
        placeholders = ', '.join('?' * len(chunk))
        await conn.execute(
            f'DELETE FROM {table} WHERE folder_name = ? AND relative_path IN ({placeholders})',
            (folder_name, *chunk),
        )


def _ast_node_params(file_id: int | None, record: AstNodeRecord) -> tuple[object, ...]:
    return (
        file_id,
        record.node_path,
        record.depth,
        record.node_type,
        record.symbol_name,
        record.start_byte,
        record.end_byte,
        record.start.row,
        record.start.column,
        record.end.row,
        record.end.column,
        record.snippet,
    )
