"""Embeddable document units collected from snapshots."""

from __future__ import annotations

from typing import Literal

from folder_index.schemas.base import StrictModel
from folder_index.schemas.snapshots import Position, SupportedLanguage, TextFormat

__all__ = [
    'ChunkDocument',
    'Document',
    'DocumentType',
    'NodeDocument',
]

type DocumentType = Literal['ast-node', 'text-chunk']


class NodeDocument(StrictModel):
    """A top-level focus node of a source file.

    content is the formatted text sent to summarization or embedding.
    """

    kind: Literal['ast-node'] = 'ast-node'
    document_id: str
    folder_name: str
    file_path: str
    relative_path: str
    ast_file_id: int
    ast_node_id: int
    language: SupportedLanguage
    node_path: str
    node_type: str
    symbol_name: str | None
    start: Position
    end: Position
    snippet: str
    content: str


class ChunkDocument(StrictModel):
    """A chunk of a non-code text file."""

    kind: Literal['text-chunk'] = 'text-chunk'
    document_id: str
    folder_name: str
    file_path: str
    relative_path: str
    text_chunk_id: int
    format: TextFormat
    chunk_index: int
    label: str
    start: Position
    end: Position
    original_content: str
    content: str


type Document = NodeDocument | ChunkDocument
