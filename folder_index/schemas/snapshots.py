"""Snapshot schemas: parsed source files and chunked text files.

Source files are reduced to their focus nodes (declarations worth
embedding) and stored as AST snapshots. Non-code text files are split into
token-bounded chunks and stored as text chunk snapshots.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from folder_index.schemas.base import JsonDatetime, StrictModel

__all__ = [
    'AstNodeRecord',
    'ChunkedFile',
    'FocusNode',
    'ParseDiagnostics',
    'ParsedFile',
    'Position',
    'SnapshotResult',
    'StoredAstFile',
    'StoredAstNode',
    'StoredTextChunk',
    'SupportedLanguage',
    'TextChunk',
    'TextFormat',
]

type SupportedLanguage = Literal['javascript', 'typescript', 'tsx', 'python', 'rust', 'css', 'html']
type TextFormat = Literal['markdown', 'text', 'json', 'yaml', 'toml', 'xml', 'csv', 'ini', 'env', 'log']


class Position(StrictModel):
    """Zero-based (row, column) location. Columns count bytes for AST nodes, chars for text chunks."""

    row: int
    column: int

    def __str__(self) -> str:
        return f'({self.row},{self.column})'


class FocusNode(StrictModel):
    """A syntactically significant node kept from the full syntax tree.

    Children are the nearest focus descendants; uninteresting nodes in
    between are dropped.
    """

    type: str
    symbol_name: str | None
    start_byte: int
    end_byte: int
    start: Position
    end: Position
    snippet: str
    children: Sequence[FocusNode] = ()


class ParseDiagnostics(StrictModel):
    has_error: bool
    error_count: int


class ParsedFile(StrictModel):
    """Result of parsing one source file."""

    relative_path: str
    language: SupportedLanguage
    content_hash: str
    size: int
    focus_nodes: Sequence[FocusNode]
    diagnostics: ParseDiagnostics

    def flatten(self) -> Sequence[AstNodeRecord]:
        """Depth-first list of focus nodes with dotted index paths."""
        records: list[AstNodeRecord] = []

        def visit(nodes: Sequence[FocusNode], prefix: str, depth: int) -> None:
            for index, node in enumerate(nodes):
                node_path = f'{prefix}.{index}' if prefix else str(index)
                records.append(
                    AstNodeRecord(
                        node_path=node_path,
                        depth=depth,
                        node_type=node.type,
                        symbol_name=node.symbol_name,
                        start_byte=node.start_byte,
                        end_byte=node.end_byte,
                        start=node.start,
                        end=node.end,
                        snippet=node.snippet,
                    )
                )
                visit(node.children, node_path, depth + 1)

        visit(self.focus_nodes, '', 1)
        return records


class AstNodeRecord(StrictModel):
    """Flattened, addressable focus node.

    node_path is the dotted index path from the file root ('0', '0.1', ...);
    depth 1 means top-level.
    """

    node_path: str
    depth: int
    node_type: str
    symbol_name: str | None
    start_byte: int
    end_byte: int
    start: Position
    end: Position
    snippet: str


class StoredAstFile(StrictModel):
    id: int
    folder_name: str
    relative_path: str
    file_path: str
    language: SupportedLanguage
    content_hash: str
    node_count: int
    diagnostics: ParseDiagnostics
    parsed_at: JsonDatetime


class StoredAstNode(StrictModel):
    """AST node row joined with its file snapshot."""

    id: int
    file_id: int
    relative_path: str
    file_path: str
    language: SupportedLanguage
    node: AstNodeRecord


class TextChunk(StrictModel):
    """One token-bounded slice of a text file.

    Offsets are character offsets into the decoded file; end_offset is exclusive.
    """

    chunk_index: int
    start_offset: int
    end_offset: int
    start: Position
    end: Position
    content: str
    token_count: int
    truncated: bool


class ChunkedFile(StrictModel):
    relative_path: str
    format: TextFormat
    content_hash: str
    chunks: Sequence[TextChunk]


class StoredTextChunk(StrictModel):
    """Text chunk row with its file linkage."""

    id: int
    folder_name: str
    relative_path: str
    file_path: str
    format: TextFormat
    content_hash: str
    chunk: TextChunk


class SnapshotResult(StrictModel):
    """Outcome of an ensure-snapshots call.

    created is False when the existing snapshots were fresh and reused as-is.
    parsed_files counts files (re)parsed or (re)chunked by this call.
    """

    created: bool
    file_count: int
    item_count: int
    parsed_files: int
