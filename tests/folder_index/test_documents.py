"""Tests for DocumentCollector and document formatting."""

from __future__ import annotations

from pathlib import Path

from folder_index.schemas.documents import ChunkDocument, NodeDocument
from folder_index.services.documents import LABEL_MAX_CHARS, NODE_SNIPPET_MAX_CHARS, chunk_label
from tests.folder_index.pipeline import Pipeline


class TestCollect:
    """Which snapshots become documents, and with what linkage."""

    async def test_only_top_level_nodes_become_documents(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'mod.py').write_text(
            'class Outer:\n    def inner(self):\n        def closure():\n            pass\n\ndef free():\n    pass\n'
        )
        docs = await pipeline.collector.collect_node_documents(pipeline.folder)
        assert [d.symbol_name for d in docs] == ['Outer', 'free']
        assert all(isinstance(d, NodeDocument) for d in docs)

    async def test_builds_snapshots_on_demand(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1\n')
        (project / 'README.md').write_text('Project readme')
        assert await pipeline.snapshot_repository.list_ast_files('proj') == []

        docs = await pipeline.collector.collect(pipeline.folder)
        assert [d.kind for d in docs] == ['ast-node', 'text-chunk']
        assert len(pipeline.parser.parsed) == 1

    async def test_existing_snapshots_are_not_rebuilt(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1\n')
        await pipeline.snapshots.ensure_ast_snapshots(pipeline.folder)
        pipeline.parser.parsed.clear()

        await pipeline.collector.collect_node_documents(pipeline.folder)
        assert pipeline.parser.parsed == []

    async def test_node_document_linkage_and_content(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1\n')
        [doc] = await pipeline.collector.collect_node_documents(pipeline.folder)
        [stored_file] = await pipeline.snapshot_repository.list_ast_files('proj')

        assert doc.ast_file_id == stored_file.id
        assert doc.document_id == f'ast:{stored_file.id}:0'
        assert doc.folder_name == 'proj'
        assert doc.file_path == str(project / 'a.py')
        assert doc.content == '\n'.join([
            'Path: a.py',
            'Language: python',
            'Node: 0',
            'Type: function_definition',
            'Symbol: foo',
            'Span: (0,0)-(0,19)',
            'Snippet:',
            'def foo(): return 1',
        ])

    async def test_long_snippet_is_truncated_in_content(self, pipeline: Pipeline, project: Path) -> None:
        body = '\n'.join(f'    value_{i} = {i}' for i in range(200))
        (project / 'big.py').write_text(f'def big():\n{body}\n')
        [doc] = await pipeline.collector.collect_node_documents(pipeline.folder)
        snippet = doc.content.split('Snippet:\n', 1)[1]
        assert snippet.endswith('...')
        assert len(snippet) == NODE_SNIPPET_MAX_CHARS + 3
        assert len(doc.snippet) > NODE_SNIPPET_MAX_CHARS

    async def test_chunk_document_linkage_and_content(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'guide.md').write_text('# Guide\n\nRead   this\tcarefully.')
        [doc] = await pipeline.collector.collect_chunk_documents(pipeline.folder)
        [stored] = await pipeline.snapshot_repository.list_text_chunks('proj')

        assert isinstance(doc, ChunkDocument)
        assert doc.document_id == f'chunk:{stored.id}'
        assert doc.text_chunk_id == stored.id
        assert doc.label == '# Guide Read this carefully.'
        assert doc.original_content == '# Guide\n\nRead   this\tcarefully.'
        assert doc.content.splitlines()[:6] == [
            'Path: guide.md',
            'Format: markdown',
            'Chunk: 0',
            'Label: # Guide Read this carefully.',
            'Span: (0,0)-(2,22)',
            'Content:',
        ]

    async def test_empty_folder_yields_no_documents(self, pipeline: Pipeline) -> None:
        assert await pipeline.collector.collect(pipeline.folder) == []


class TestChunkLabel:
    def test_short_text_is_kept(self) -> None:
        assert chunk_label('  hello\n\nworld ') == 'hello world'

    def test_long_text_is_cut(self) -> None:
        label = chunk_label('x' * 80)
        assert label == 'x' * LABEL_MAX_CHARS + '...'
