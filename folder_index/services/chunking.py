"""Text chunking for non-code files.

Splits markdown, plain text, config and data files into token-bounded
chunks with character offsets and (row, column) positions, using the
recursive character splitter: paragraph, then line, then sentence, then
word boundaries.
"""

from __future__ import annotations

import bisect
import math
from collections.abc import Mapping, Sequence
from pathlib import Path

from langchain_text_splitters import RecursiveCharacterTextSplitter

from folder_index.schemas.snapshots import ChunkedFile, Position, TextChunk, TextFormat
from folder_index.services.hash_tree import hash_bytes

__all__ = [
    'CHARS_PER_TOKEN',
    'FORMAT_BY_EXTENSION',
    'KNOWN_TEXT_FILE_NAMES',
    'TextChunker',
    'detect_text_format',
    'estimate_tokens',
]

# Token estimate used throughout the pipeline
CHARS_PER_TOKEN = 4

FORMAT_BY_EXTENSION: Mapping[str, TextFormat] = {
    '.md': 'markdown',
    '.mdx': 'markdown',
    '.markdown': 'markdown',
    '.txt': 'text',
    '.text': 'text',
    '.rst': 'text',
    '.json': 'json',
    '.jsonc': 'json',
    '.json5': 'json',
    '.yaml': 'yaml',
    '.yml': 'yaml',
    '.toml': 'toml',
    '.xml': 'xml',
    '.xhtml': 'xml',
    '.svg': 'xml',
    '.csv': 'csv',
    '.tsv': 'csv',
    '.ini': 'ini',
    '.cfg': 'ini',
    '.conf': 'ini',
    '.env': 'env',
    '.log': 'log',
}

# Extensionless (or dotfile) names that are known to be text
KNOWN_TEXT_FILE_NAMES: Mapping[str, TextFormat] = {
    'readme': 'markdown',
    'changelog': 'markdown',
    'contributing': 'markdown',
    'license': 'text',
    'licence': 'text',
    'authors': 'text',
    'notice': 'text',
    'makefile': 'text',
    'dockerfile': 'text',
    'procfile': 'text',
    '.gitignore': 'text',
    '.dockerignore': 'text',
    '.gitattributes': 'text',
    '.editorconfig': 'ini',
    '.npmrc': 'ini',
    '.env': 'env',
}

_SEPARATORS = ['\n\n', '\n', '. ', '! ', '? ', ' ', '']


def detect_text_format(path: Path) -> TextFormat | None:
    name = path.name.lower()
    if name in KNOWN_TEXT_FILE_NAMES:
        return KNOWN_TEXT_FILE_NAMES[name]
    if name.startswith('.env.'):
        return 'env'
    return FORMAT_BY_EXTENSION.get(path.suffix.lower())


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class TextChunker:
    """Token-bounded splitter with positional bookkeeping."""

    def __init__(self, max_tokens: int = 1000, overlap_tokens: int = 100) -> None:
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=max_tokens * CHARS_PER_TOKEN,
            chunk_overlap=overlap_tokens * CHARS_PER_TOKEN,
            separators=_SEPARATORS,
            keep_separator='end',
        )

    def chunk_text(self, content: str) -> Sequence[TextChunk]:
        """Split content into chunks. Blank content yields no chunks."""
        if not content.strip():
            return []

        lines = _LineIndex(content)
        chunks: list[TextChunk] = []
        cursor = 0
        for piece in self._splitter.split_text(content):
            start = content.find(piece, cursor)
            if start < 0:
                start = content.find(piece)
            end = start + len(piece)
            chunks.append(
                TextChunk(
                    chunk_index=len(chunks),
                    start_offset=start,
                    end_offset=end,
                    start=lines.position(start),
                    end=lines.position(end),
                    content=piece,
                    token_count=estimate_tokens(piece),
                    truncated=end < len(content),
                )
            )
            cursor = start + 1
        return chunks

    def chunk_file(self, relative_path: str, data: bytes, text_format: TextFormat) -> ChunkedFile:
        """Chunk raw file bytes. Raises UnicodeDecodeError for non-UTF-8 content."""
        content = data.decode('utf-8')
        return ChunkedFile(
            relative_path=relative_path,
            format=text_format,
            content_hash=hash_bytes(data),
            chunks=self.chunk_text(content),
        )


class _LineIndex:
    """Offset -> (row, column) lookup over precomputed line starts."""

    def __init__(self, content: str) -> None:
        self._line_starts = [0]
        self._line_starts.extend(i + 1 for i, ch in enumerate(content) if ch == '\n')

    def position(self, offset: int) -> Position:
        row = bisect.bisect_right(self._line_starts, offset) - 1
        return Position(row=row, column=offset - self._line_starts[row])
