"""Embedding job: snapshots -> documents -> (summaries ->) vectors -> rows.

Phases: scheduled -> parsing -> [summarizing] -> embedding -> completed, or
error from any step. Cancellation is a flag checked at phase and batch
boundaries; a cancelled job stops silently and emits no further progress.

Persistence is full-replace: rows are written under the job's own pending
stage as each batch completes, and promoted to the 'initial' stage in one
transaction only when the whole run succeeds. Cancelled or failed runs
discard their pending rows, leaving the served set untouched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import more_itertools
import numpy as np
from local_lib.background_tasks import BackgroundTaskGroup
from local_lib.utils import Timer, humanize_seconds
from uuid6 import uuid7

from folder_index.clients.protocols import ChatClient, EmbeddingClient
from folder_index.repositories.embeddings import EmbeddingRepository
from folder_index.schemas.config import IndexerConfig
from folder_index.schemas.documents import ChunkDocument, Document, NodeDocument
from folder_index.schemas.embeddings import INITIAL_STAGE, EmbeddingRow, MetadataValue, pending_stage
from folder_index.schemas.folders import FolderRegistration
from folder_index.services.documents import DocumentCollector
from folder_index.services.folder_events import FolderEvents
from folder_index.services.models import ModelResolver
from folder_index.services.progress import ProgressBus
from folder_index.services.snapshots import SnapshotManager
from folder_index.services.summarization import summarize_documents

__all__ = [
    'EmbeddingJob',
    'EmbeddingJobRunner',
    'JobSettings',
]

logger = logging.getLogger(__name__)

# Coarse progress while totals are unknown
PERCENT_SCHEDULED = 5
PERCENT_PARSING = 10
PERCENT_SNAPSHOTS_READY = 15


@dataclass(frozen=True, slots=True)
class JobSettings:
    embedding_batch_size: int = 64
    summarization_batch_size: int = 8
    persist_chunk_size: int = 50

    @classmethod
    def from_config(cls, config: IndexerConfig) -> JobSettings:
        return cls(
            embedding_batch_size=config.embedding_batch_size,
            summarization_batch_size=config.summarization_batch_size,
            persist_chunk_size=config.persist_chunk_size,
        )


@dataclass(eq=False)
class EmbeddingJob:
    """Handle to one embedding run for a folder."""

    job_id: str
    folder_name: str
    cancelled: bool = False
    task: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def stage(self) -> str:
        """Stage tag of rows written by this job before promotion."""
        return pending_stage(self.job_id)

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()

    def cancel(self) -> None:
        self.cancelled = True

    async def wait(self) -> None:
        """Wait for the job to finish. Never raises the job's own errors."""
        if self.task is not None:
            await asyncio.wait([self.task])


class _JobCancelled(Exception):
    """Unwinds a cancelled job at the next boundary check."""


class EmbeddingJobRunner:
    """Owns at most one live embedding job per folder.

    Starting a job for a folder that already has one supersedes it: the old
    job is flagged cancelled and stops at its next batch boundary.
    """

    def __init__(
        self,
        *,
        snapshots: SnapshotManager,
        collector: DocumentCollector,
        embeddings: EmbeddingRepository,
        models: ModelResolver,
        progress: ProgressBus,
        events: FolderEvents,
        settings: JobSettings | None = None,
    ) -> None:
        self._snapshots = snapshots
        self._collector = collector
        self._embeddings = embeddings
        self._models = models
        self._progress = progress
        self._events = events
        self._settings = settings or JobSettings()
        self._jobs: dict[str, EmbeddingJob] = {}
        self._tasks = BackgroundTaskGroup('embed')

    def get_job(self, folder_name: str) -> EmbeddingJob | None:
        return self._jobs.get(folder_name)

    def start(self, folder: FolderRegistration) -> EmbeddingJob:
        """Schedule a fresh job for the folder, superseding any running one."""
        previous = self._jobs.get(folder.name)
        if previous is not None:
            previous.cancel()
            logger.info(f'[embed] {folder.name}: job {previous.job_id} superseded')

        job = EmbeddingJob(job_id=str(uuid7()), folder_name=folder.name)
        self._jobs[folder.name] = job
        now = datetime.now(UTC)
        self._progress.update(
            folder.name,
            phase='scheduled',
            job_id=job.job_id,
            total_files=0,
            processed_files=0,
            total_tokens_output=0,
            percent=PERCENT_SCHEDULED,
            message='Analyzing project files...',
            error=None,
            started_at=now,
        )
        job.task = self._tasks.submit(self._run_guarded(folder, job), name=f'embed-{folder.name}')
        return job

    def cancel(self, folder_name: str) -> bool:
        """Flag the folder's job cancelled. Returns False if none was alive."""
        job = self._jobs.pop(folder_name, None)
        if job is None:
            return False
        job.cancel()
        logger.info(f'[embed] {folder_name}: job {job.job_id} cancelled')
        return True

    async def close(self) -> None:
        """Cancel every job and wait for their tasks to unwind."""
        for job in self._jobs.values():
            job.cancel()
        self._jobs.clear()
        self._tasks.cancel_all()
        await self._tasks.drain()

    async def _run_guarded(self, folder: FolderRegistration, job: EmbeddingJob) -> None:
        """Top-level job wrapper: errors end in the 'error' phase, never escape."""
        try:
            await self.run(folder, job)
        except Exception as e:
            logger.exception(f'[embed] {folder.name}: job {job.job_id} failed')
            if not job.cancelled:
                self._progress.update(folder.name, phase='error', message='Failed to build embeddings', error=str(e))
        finally:
            if self._jobs.get(folder.name) is job:
                del self._jobs[folder.name]

    async def run(self, folder: FolderRegistration, job: EmbeddingJob) -> None:
        """Execute the pipeline for one job. Cancellation returns normally; other errors propagate."""
        timer = Timer()
        promoted = False
        try:
            promoted = await self._run_phases(folder, job)
        except _JobCancelled:
            logger.info(f'[embed] {folder.name}: job {job.job_id} stopped after {humanize_seconds(timer.elapsed())}')
        finally:
            if not promoted:
                await self._embeddings.delete_stage(folder.name, job.stage)
        if promoted:
            logger.info(f'[embed] {folder.name}: job {job.job_id} completed in {humanize_seconds(timer.elapsed())}')

    async def _run_phases(self, folder: FolderRegistration, job: EmbeddingJob) -> bool:
        """Returns True once this job's rows were promoted to the initial stage."""
        await self._embeddings.delete_pending(folder.name)

        self._report(job, phase='parsing', percent=PERCENT_PARSING, message='Analyzing project files...')
        ast_result, text_result = await asyncio.gather(
            self._snapshots.ensure_ast_snapshots(folder),
            self._snapshots.ensure_text_chunk_snapshots(folder),
        )
        self._check(job)
        logger.info(
            f'[embed] {folder.name}: snapshots ready '
            f'({ast_result.file_count} source files, {text_result.file_count} text files)'
        )
        self._report(job, percent=PERCENT_SNAPSHOTS_READY)

        documents = await self._collector.collect(folder)
        self._check(job)
        if not documents:
            await self._embeddings.delete_stage(folder.name, INITIAL_STAGE)
            self._report(
                job,
                phase='completed',
                total_files=0,
                processed_files=0,
                percent=100,
                message='No eligible documents detected',
            )
            self._events.notify_change()
            return False

        embedding_client = await self._models.resolve_embedding_client()
        chat_client = await self._models.resolve_chat_client() if self._models.summaries_enabled() else None
        self._check(job)

        if chat_client is not None:
            texts = await self._summarize(job, documents, chat_client)
        else:
            texts = [document.content for document in documents]

        await self._embed(job, documents, texts, embedding_client, summarized=chat_client is not None)
        self._check(job)

        await self._embeddings.promote(folder.name, job.stage)
        self._report(
            job,
            phase='completed',
            processed_files=len(documents),
            percent=100,
            message='Initial embeddings ready',
        )
        self._events.notify_change()
        return True

    async def _summarize(self, job: EmbeddingJob, documents: Sequence[Document], client: ChatClient) -> Sequence[str]:
        total = len(documents)
        summaries: list[str] = []
        tokens_output = 0
        self._report(
            job,
            phase='summarizing',
            total_files=total,
            processed_files=0,
            percent=0,
            message=f'Summarizing 0/{total} snippets',
        )
        for batch in more_itertools.chunked(documents, self._settings.summarization_batch_size):
            result = await summarize_documents(client, batch)
            self._check(job)
            summaries.extend(result.summaries)
            tokens_output += result.tokens_output
            self._report(
                job,
                processed_files=len(summaries),
                total_tokens_output=tokens_output,
                percent=_percent(len(summaries), total),
                message=f'Summarizing {len(summaries)}/{total} snippets',
            )
        return summaries

    async def _embed(
        self,
        job: EmbeddingJob,
        documents: Sequence[Document],
        texts: Sequence[str],
        client: EmbeddingClient,
        *,
        summarized: bool,
    ) -> None:
        total = len(documents)
        processed = 0
        self._report(
            job,
            phase='embedding',
            total_files=total,
            processed_files=0,
            percent=0,
            message=f'Embedding 0/{total} documents',
        )
        for batch in more_itertools.chunked(zip(documents, texts, strict=True), self._settings.embedding_batch_size):
            vectors = await client.embed_documents([text for _, text in batch])
            self._check(job)
            if len(vectors) != len(batch):
                raise ValueError(f'Embedding count mismatch: sent {len(batch)}, received {len(vectors)}')

            rows = [
                _to_row(document, text, vector, summarized=summarized)
                for (document, text), vector in zip(batch, vectors, strict=True)
            ]
            await self._embeddings.insert(rows, stage=job.stage, chunk_size=self._settings.persist_chunk_size)
            processed += len(batch)
            self._report(
                job,
                processed_files=processed,
                percent=_percent(processed, total),
                message=f'Embedding {processed}/{total} documents',
            )

    def _check(self, job: EmbeddingJob) -> None:
        if job.cancelled:
            raise _JobCancelled

    def _report(self, job: EmbeddingJob, **changes: Any) -> None:
        """Progress update; cancelled jobs stay frozen where they stopped."""
        if not job.cancelled:
            self._progress.update(job.folder_name, **changes)


def _percent(done: int, total: int) -> float:
    return round(done / total * 100, 1) if total else 100.0


def _to_row(document: Document, text: str, vector: Sequence[float], *, summarized: bool) -> EmbeddingRow:
    encoded = np.asarray(vector, dtype='<f4')
    metadata: dict[str, MetadataValue] = {
        'stage': INITIAL_STAGE,
        'type': document.kind,
        'summarized': summarized,
    }
    match document:
        case NodeDocument():
            metadata |= {
                'language': document.language,
                'node_type': document.node_type,
                'node_path': document.node_path,
                'symbol_name': document.symbol_name,
                'original_content': document.snippet,
            }
            linkage = {'ast_file_id': document.ast_file_id, 'ast_node_id': document.ast_node_id, 'text_chunk_id': None}
        case ChunkDocument():
            metadata |= {
                'format': document.format,
                'chunk_index': document.chunk_index,
                'label': document.label,
                'original_content': document.original_content,
            }
            linkage = {'ast_file_id': None, 'ast_node_id': None, 'text_chunk_id': document.text_chunk_id}

    return EmbeddingRow(
        folder_name=document.folder_name,
        file_path=document.file_path,
        relative_path=document.relative_path,
        document_type=document.kind,
        content=text,
        vector=encoded.tobytes(),
        dim=int(encoded.shape[0]),
        metadata=metadata,
        **linkage,
    )
