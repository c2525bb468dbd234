"""Tests for text format detection and token-bounded chunking."""

from __future__ import annotations

from pathlib import Path

import pytest

from folder_index.services.chunking import CHARS_PER_TOKEN, TextChunker, detect_text_format, estimate_tokens


class TestDetectTextFormat:
    """Extension and well-known file name mapping."""

    @pytest.mark.parametrize(
        ('name', 'expected'),
        [
            ('README.md', 'markdown'),
            ('notes.TXT', 'text'),
            ('package.json', 'json'),
            ('config.yml', 'yaml'),
            ('pyproject.toml', 'toml'),
            ('Makefile', 'text'),
            ('README', 'markdown'),
            ('.env.local', 'env'),
            ('setup.cfg', 'ini'),
        ],
    )
    def test_known_formats(self, name: str, expected: str) -> None:
        assert detect_text_format(Path(name)) == expected

    @pytest.mark.parametrize('name', ['main.py', 'image.png', 'archive.tar.gz', 'binary'])
    def test_unknown_formats(self, name: str) -> None:
        assert detect_text_format(Path(name)) is None


def test_estimate_tokens_rounds_up() -> None:
    assert estimate_tokens('') == 0
    assert estimate_tokens('abc') == 1
    assert estimate_tokens('a' * (CHARS_PER_TOKEN * 3 + 1)) == 4


class TestTextChunker:
    """Offsets, positions and size bounds of produced chunks."""

    def test_blank_content_yields_no_chunks(self) -> None:
        assert TextChunker(10, 2).chunk_text('  \n\n\t ') == []

    def test_short_content_is_one_chunk(self) -> None:
        [chunk] = TextChunker(100, 10).chunk_text('hello world')
        assert chunk.chunk_index == 0
        assert (chunk.start_offset, chunk.end_offset) == (0, 11)
        assert str(chunk.start) == '(0,0)'
        assert str(chunk.end) == '(0,11)'
        assert chunk.token_count == 3
        assert chunk.truncated is False

    def test_chunks_respect_size_and_map_back_to_source(self) -> None:
        paragraphs = [f'Paragraph {i} says something about topic {i}.' for i in range(20)]
        content = '\n\n'.join(paragraphs)
        chunks = TextChunker(max_tokens=25, overlap_tokens=5).chunk_text(content)

        assert len(chunks) > 1
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        for chunk in chunks:
            assert len(chunk.content) <= 25 * CHARS_PER_TOKEN
            assert content[chunk.start_offset : chunk.end_offset] == chunk.content
        assert all(c.truncated for c in chunks[:-1])
        assert chunks[-1].truncated is False
        assert chunks[-1].end_offset == len(content)

    def test_offsets_are_monotonic(self) -> None:
        content = ' '.join(f'word{i}' for i in range(400))
        chunks = TextChunker(max_tokens=30, overlap_tokens=5).chunk_text(content)
        starts = [c.start_offset for c in chunks]
        assert starts == sorted(starts)
        assert len(set(starts)) == len(starts)

    def test_positions_track_lines(self) -> None:
        content = 'first line\nsecond line\n\nthird paragraph here'
        [chunk] = TextChunker(100, 0).chunk_text(content)
        assert str(chunk.start) == '(0,0)'
        assert str(chunk.end) == '(3,20)'

    def test_chunk_file_hashes_bytes(self) -> None:
        chunked = TextChunker(100, 10).chunk_file('docs/a.md', b'# Title\n\nBody', 'markdown')
        assert chunked.relative_path == 'docs/a.md'
        assert chunked.format == 'markdown'
        assert len(chunked.content_hash) == 64
        assert len(chunked.chunks) == 1

    def test_chunk_file_rejects_non_utf8(self) -> None:
        with pytest.raises(UnicodeDecodeError):
            TextChunker(100, 10).chunk_file('bad.txt', b'\xff\xfe\x00bad', 'text')
