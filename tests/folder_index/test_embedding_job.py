"""Tests for EmbeddingJobRunner: phases, cancellation, supersession and full-replace."""

from __future__ import annotations

import asyncio
from pathlib import Path

import numpy as np

from folder_index.schemas.embeddings import ChatResponse
from folder_index.schemas.progress import TaskProgressState
from tests.folder_index.pipeline import Pipeline
from tests.folder_index.fakes import FakeChatClient, FakeEmbeddingClient


async def _run(pipeline: Pipeline) -> TaskProgressState:
    job = pipeline.runner.start(pipeline.folder)
    await job.wait()
    return pipeline.progress.get('proj')


async def _row_count(pipeline: Pipeline) -> int:
    """Rows of every stage, pending included."""
    row = await pipeline.db.fetch_one('SELECT COUNT(*) AS n FROM embeddings')
    assert row is not None
    return row['n']


def _write_functions(project: Path, count: int) -> None:
    source = '\n\n'.join(f'def func_{i}():\n    return {i}' for i in range(count))
    (project / 'funcs.py').write_text(source + '\n')


class TestSuccessfulRun:
    """End-to-end runs against fake model clients."""

    async def test_single_function_yields_one_row(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1')
        state = await _run(pipeline)

        assert state.phase == 'completed'
        assert state.message == 'Initial embeddings ready'
        assert state.percent == 100
        [stored] = await pipeline.embeddings.list_embeddings('proj')
        assert stored.stage == 'initial'
        assert 'foo' in stored.row.content
        assert stored.row.metadata['type'] == 'ast-node'
        assert stored.row.metadata['symbol_name'] == 'foo'
        assert stored.row.metadata['summarized'] is False
        assert stored.row.document_type == 'ast-node'
        assert stored.row.ast_node_id is not None
        assert stored.row.text_chunk_id is None

    async def test_vector_is_stored_as_float32(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1')
        await _run(pipeline)
        [stored] = await pipeline.embeddings.list_embeddings('proj')

        vector = np.frombuffer(stored.row.vector, dtype='<f4')
        assert stored.row.dim == 4
        assert vector.tolist() == [float(len(stored.row.content)), 0.0, 0.5, -1.0]

    async def test_text_chunks_are_embedded_with_linkage(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'notes.md').write_text('Some notes about the build.')
        await _run(pipeline)
        [stored] = await pipeline.embeddings.list_embeddings('proj')
        [chunk] = await pipeline.snapshot_repository.list_text_chunks('proj')

        assert stored.row.document_type == 'text-chunk'
        assert stored.row.text_chunk_id == chunk.id
        assert stored.row.metadata['label'] == 'Some notes about the build.'
        assert stored.row.metadata['original_content'] == 'Some notes about the build.'

    async def test_documents_are_embedded_in_batches(self, pipeline: Pipeline, project: Path) -> None:
        _write_functions(project, 5)
        state = await _run(pipeline)

        assert state.total_files == 5
        assert state.processed_files == 5
        assert [len(call) for call in pipeline.models.embedding.calls] == [2, 2, 1]
        assert await pipeline.embeddings.count('proj') == 5

    async def test_progress_walks_through_phases(self, pipeline: Pipeline, project: Path) -> None:
        _write_functions(project, 3)
        seen: list[TaskProgressState] = []
        pipeline.progress.subscribe(lambda name, state: seen.append(state) if state is not None else None)
        await _run(pipeline)

        phases = [s.phase for s in seen]
        assert [p for i, p in enumerate(phases) if i == 0 or phases[i - 1] != p] == [
            'scheduled',
            'parsing',
            'embedding',
            'completed',
        ]
        assert [s.percent for s in seen[:3]] == [5, 10, 15]
        assert 'Embedding 2/3 documents' in [s.message for s in seen]

    async def test_completion_notifies_folder_observers(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1')
        notified: list[None] = []
        pipeline.events.subscribe(lambda: notified.append(None))
        await _run(pipeline)
        assert len(notified) == 1

    async def test_finished_job_leaves_registry(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1')
        await _run(pipeline)
        assert pipeline.runner.get_job('proj') is None


class TestSummaries:
    """Summary-based embeddings and their fallbacks."""

    async def test_summaries_replace_raw_content(self, pipeline: Pipeline, project: Path) -> None:
        _write_functions(project, 3)
        pipeline.models.chat = FakeChatClient()
        pipeline.models.summaries = True
        state = await _run(pipeline)

        assert state.phase == 'completed'
        assert state.total_tokens_output == 21
        rows = await pipeline.embeddings.list_embeddings('proj')
        assert all(r.row.content.startswith('summary of ') for r in rows)
        assert all(r.row.metadata['summarized'] is True for r in rows)
        assert 'func_0' in pipeline.models.chat.prompts[0]

    async def test_failed_summary_falls_back_to_content(self, pipeline: Pipeline, project: Path) -> None:
        _write_functions(project, 2)

        def reply(prompt: str) -> ChatResponse:
            if 'func_1' in prompt:
                raise RuntimeError('provider exploded')
            return ChatResponse(text='   ', output_tokens=None)

        pipeline.models.chat = FakeChatClient(reply)
        pipeline.models.summaries = True
        state = await _run(pipeline)

        assert state.phase == 'completed'
        assert state.total_tokens_output == 0
        rows = await pipeline.embeddings.list_embeddings('proj')
        assert [r.row.content.splitlines()[0] for r in rows] == ['Path: funcs.py', 'Path: funcs.py']

    async def test_missing_output_tokens_are_estimated(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1')
        pipeline.models.chat = FakeChatClient(lambda prompt: ChatResponse(text='abcdefgh', output_tokens=None))
        pipeline.models.summaries = True
        state = await _run(pipeline)
        assert state.total_tokens_output == 2

    async def test_progress_reports_summarizing(self, pipeline: Pipeline, project: Path) -> None:
        _write_functions(project, 3)
        pipeline.models.chat = FakeChatClient()
        pipeline.models.summaries = True
        messages: list[str | None] = []
        pipeline.progress.subscribe(lambda name, state: messages.append(state.message if state else None))
        await _run(pipeline)
        assert 'Summarizing 0/3 snippets' in messages
        assert 'Summarizing 2/3 snippets' in messages
        assert 'Summarizing 3/3 snippets' in messages


class TestEmptyFolder:
    async def test_no_documents_completes_without_rows(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'image.png').write_bytes(b'\x89PNG')
        state = await _run(pipeline)

        assert state.phase == 'completed'
        assert state.total_files == 0
        assert state.error is None
        assert state.message == 'No eligible documents detected'
        assert await _row_count(pipeline) == 0

    async def test_emptied_folder_drops_previous_rows(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1')
        await _run(pipeline)
        (project / 'a.py').unlink()

        state = await _run(pipeline)
        assert state.phase == 'completed'
        assert await _row_count(pipeline) == 0


class TestCancellation:
    """Cancelled jobs stop quietly and leave the served rows alone."""

    async def test_cancel_during_summaries_leaves_table_unchanged(self, pipeline: Pipeline, project: Path) -> None:
        _write_functions(project, 2)
        await _run(pipeline)
        before = [(e.id, e.row.content) for e in await pipeline.embeddings.list_embeddings('proj')]
        embed_calls = len(pipeline.models.embedding.calls)

        _write_functions(project, 4)
        pipeline.models.chat = FakeChatClient(on_call=lambda n: pipeline.runner.cancel('proj'))
        pipeline.models.summaries = True
        job = pipeline.runner.start(pipeline.folder)
        await job.wait()

        assert job.cancelled
        state = pipeline.progress.get('proj')
        assert state.phase == 'summarizing'
        assert state.message == 'Summarizing 0/4 snippets'
        assert state.job_id == job.job_id
        assert len(pipeline.models.embedding.calls) == embed_calls
        assert [(e.id, e.row.content) for e in await pipeline.embeddings.list_embeddings('proj')] == before
        assert await _row_count(pipeline) == len(before)

    async def test_fresh_start_after_cancel_runs_from_scratch(self, pipeline: Pipeline, project: Path) -> None:
        _write_functions(project, 3)
        pipeline.models.chat = FakeChatClient(on_call=lambda n: pipeline.runner.cancel('proj') if n == 1 else None)
        pipeline.models.summaries = True
        cancelled = pipeline.runner.start(pipeline.folder)
        await cancelled.wait()
        assert await _row_count(pipeline) == 0

        state = await _run(pipeline)
        assert state.phase == 'completed'
        assert state.job_id != cancelled.job_id
        assert await pipeline.embeddings.count('proj') == 3

    async def test_cancel_unknown_folder(self, pipeline: Pipeline) -> None:
        assert pipeline.runner.cancel('proj') is False

    async def test_cancel_during_embedding_discards_written_batches(self, pipeline: Pipeline, project: Path) -> None:
        _write_functions(project, 5)
        calls = 0
        client = pipeline.models.embedding
        original = client.embed_documents

        async def embed_then_cancel(texts):
            nonlocal calls
            calls += 1
            if calls == 2:
                pipeline.runner.cancel('proj')
            return await original(texts)

        client.embed_documents = embed_then_cancel
        job = pipeline.runner.start(pipeline.folder)
        await job.wait()

        assert pipeline.progress.get('proj').phase == 'embedding'
        assert await _row_count(pipeline) == 0


class TestSupersession:
    async def test_new_start_supersedes_running_job(self, pipeline: Pipeline, project: Path) -> None:
        _write_functions(project, 3)
        gate = asyncio.Event()
        pipeline.models.embedding = FakeEmbeddingClient(gate=gate)

        first = pipeline.runner.start(pipeline.folder)
        await pipeline.models.embedding.started.wait()
        second = pipeline.runner.start(pipeline.folder)
        assert first.cancelled
        assert pipeline.runner.get_job('proj') is second

        gate.set()
        await asyncio.gather(first.wait(), second.wait())

        state = pipeline.progress.get('proj')
        assert state.job_id == second.job_id
        assert state.phase == 'completed'
        assert await pipeline.embeddings.count('proj') == 3
        assert await _row_count(pipeline) == 3


class TestFullReplace:
    async def test_rerun_replaces_previous_rows(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1')
        (project / 'b.py').write_text('def bar(): return 2')
        await _run(pipeline)
        first_ids = {e.id for e in await pipeline.embeddings.list_embeddings('proj')}
        assert len(first_ids) == 2

        (project / 'b.py').unlink()
        await _run(pipeline)
        [stored] = await pipeline.embeddings.list_embeddings('proj')
        assert stored.id not in first_ids
        assert stored.row.relative_path == 'a.py'

    async def test_leftover_pending_rows_are_cleared(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1')
        await pipeline.db.execute(
            'INSERT INTO embeddings (folder_name, stage, document_type, file_path, relative_path, content,'
            " embedding, dim, metadata, created_at) VALUES ('proj', 'pending:old', 'ast-node', '/x', 'x',"
            " 'stale', x'00', 1, '{}', '2026-01-01T00:00:00+00:00')"
        )
        await _run(pipeline)
        assert await _row_count(pipeline) == 1


class TestFailures:
    """Errors end the job in the error phase with a readable message."""

    async def test_missing_embedding_model(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1')
        pipeline.models.embedding = None
        state = await _run(pipeline)

        assert state.phase == 'error'
        assert state.message == 'Failed to build embeddings'
        assert state.error == 'No embedding model providers found, please configure them in the indexer config.'
        assert await _row_count(pipeline) == 0
        assert pipeline.runner.get_job('proj') is None

    async def test_missing_chat_model_when_summaries_enabled(self, pipeline: Pipeline, project: Path) -> None:
        (project / 'a.py').write_text('def foo(): return 1')
        pipeline.models.summaries = True
        state = await _run(pipeline)
        assert state.phase == 'error'
        assert 'No chat model providers found' in (state.error or '')

    async def test_vector_count_mismatch_keeps_previous_rows(self, pipeline: Pipeline, project: Path) -> None:
        _write_functions(project, 3)
        await _run(pipeline)
        assert await pipeline.embeddings.count('proj') == 3

        pipeline.models.embedding = FakeEmbeddingClient(drop_last=True)
        _write_functions(project, 4)
        state = await _run(pipeline)

        assert state.phase == 'error'
        assert 'Embedding count mismatch' in (state.error or '')
        assert await _row_count(pipeline) == 3
