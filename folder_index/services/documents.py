"""Document collection: snapshots -> uniform embeddable units.

Each top-level focus node of a source file becomes a NodeDocument; each
text chunk becomes a ChunkDocument. The formatted content carries enough
provenance (path, span, symbol) for the embedding to be useful on its own.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from folder_index.repositories.snapshots import SnapshotRepository
from folder_index.schemas.documents import ChunkDocument, Document, NodeDocument
from folder_index.schemas.folders import FolderRegistration
from folder_index.schemas.snapshots import StoredAstNode, StoredTextChunk
from folder_index.services.snapshots import SnapshotManager

__all__ = [
    'LABEL_MAX_CHARS',
    'NODE_SNIPPET_MAX_CHARS',
    'DocumentCollector',
    'chunk_label',
    'format_chunk_document',
    'format_node_document',
]

logger = logging.getLogger(__name__)

# Only declarations directly under the file root are embedded
TOP_LEVEL_DEPTH = 1

NODE_SNIPPET_MAX_CHARS = 1200
LABEL_MAX_CHARS = 50

_WHITESPACE = re.compile(r'\s+')


class DocumentCollector:
    """Turns a folder's snapshots into documents, building snapshots on demand."""

    def __init__(self, repository: SnapshotRepository, snapshots: SnapshotManager) -> None:
        self._repository = repository
        self._snapshots = snapshots

    async def collect(self, folder: FolderRegistration) -> Sequence[Document]:
        """All documents of a folder: node documents first, then chunk documents."""
        nodes = await self.collect_node_documents(folder)
        chunks = await self.collect_chunk_documents(folder)
        logger.info(f'[documents] {folder.name}: {len(nodes)} node documents, {len(chunks)} chunk documents')
        return [*nodes, *chunks]

    async def collect_node_documents(self, folder: FolderRegistration) -> Sequence[NodeDocument]:
        nodes = await self._repository.list_ast_nodes(folder.name, max_depth=TOP_LEVEL_DEPTH)
        if not nodes:
            await self._snapshots.ensure_ast_snapshots(folder)
            nodes = await self._repository.list_ast_nodes(folder.name, max_depth=TOP_LEVEL_DEPTH)
        return [_node_document(folder.name, node) for node in nodes]

    async def collect_chunk_documents(self, folder: FolderRegistration) -> Sequence[ChunkDocument]:
        chunks = await self._repository.list_text_chunks(folder.name)
        if not chunks:
            await self._snapshots.ensure_text_chunk_snapshots(folder)
            chunks = await self._repository.list_text_chunks(folder.name)
        return [_chunk_document(folder.name, chunk) for chunk in chunks]


def chunk_label(content: str) -> str:
    """First LABEL_MAX_CHARS characters with whitespace collapsed."""
    collapsed = _WHITESPACE.sub(' ', content).strip()
    if len(collapsed) <= LABEL_MAX_CHARS:
        return collapsed
    return collapsed[:LABEL_MAX_CHARS] + '...'


def format_node_document(stored: StoredAstNode) -> str:
    node = stored.node
    snippet = node.snippet
    if len(snippet) > NODE_SNIPPET_MAX_CHARS:
        snippet = snippet[:NODE_SNIPPET_MAX_CHARS] + '...'
    return '\n'.join([
        f'Path: {stored.relative_path}',
        f'Language: {stored.language}',
        f'Node: {node.node_path}',
        f'Type: {node.node_type}',
        f'Symbol: {node.symbol_name or "(anonymous)"}',
        f'Span: {node.start}-{node.end}',
        'Snippet:',
        snippet,
    ])


def format_chunk_document(stored: StoredTextChunk, label: str) -> str:
    chunk = stored.chunk
    return '\n'.join([
        f'Path: {stored.relative_path}',
        f'Format: {stored.format}',
        f'Chunk: {chunk.chunk_index}',
        f'Label: {label}',
        f'Span: {chunk.start}-{chunk.end}',
        'Content:',
        chunk.content,
    ])


def _node_document(folder_name: str, stored: StoredAstNode) -> NodeDocument:
    node = stored.node
    return NodeDocument(
        document_id=f'ast:{stored.file_id}:{node.node_path}',
        folder_name=folder_name,
        file_path=stored.file_path,
        relative_path=stored.relative_path,
        ast_file_id=stored.file_id,
        ast_node_id=stored.id,
        language=stored.language,
        node_path=node.node_path,
        node_type=node.node_type,
        symbol_name=node.symbol_name,
        start=node.start,
        end=node.end,
        snippet=node.snippet,
        content=format_node_document(stored),
    )


def _chunk_document(folder_name: str, stored: StoredTextChunk) -> ChunkDocument:
    label = chunk_label(stored.chunk.content)
    return ChunkDocument(
        document_id=f'chunk:{stored.id}',
        folder_name=folder_name,
        file_path=stored.file_path,
        relative_path=stored.relative_path,
        text_chunk_id=stored.id,
        format=stored.format,
        chunk_index=stored.chunk.chunk_index,
        label=label,
        start=stored.chunk.start,
        end=stored.chunk.end,
        original_content=stored.chunk.content,
        content=format_chunk_document(stored, label),
    )
