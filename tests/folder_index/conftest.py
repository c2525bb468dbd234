"""Shared fixtures: a temp database, a project directory and a wired pipeline."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from folder_index.repositories import (
    Database,
    EmbeddingRepository,
    FolderRepository,
    HashTreeRepository,
    SnapshotRepository,
)
from folder_index.schemas.config import IndexerConfig
from folder_index.schemas.folders import FolderRegistration
from folder_index.services.change_detector import ChangeDetector
from folder_index.services.chunking import TextChunker
from folder_index.services.documents import DocumentCollector
from folder_index.services.embedding_job import EmbeddingJobRunner, JobSettings
from folder_index.services.file_walker import IgnoreRules
from folder_index.services.folder_events import FolderEvents
from folder_index.services.progress import ProgressBus
from folder_index.services.snapshots import SnapshotManager
from tests.folder_index.fakes import CountingParser, FakeEmbeddingClient, FakeModelResolver
from tests.folder_index.pipeline import Pipeline


@pytest.fixture
async def db(tmp_path: Path) -> AsyncIterator[Database]:
    database = await Database.open(tmp_path / 'index.sqlite3')
    yield database
    await database.close()


@pytest.fixture
def rules() -> IgnoreRules:
    return IgnoreRules.from_config(IndexerConfig())


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / 'project'
    root.mkdir()
    return root


@pytest.fixture
async def folder(db: Database, project: Path) -> FolderRegistration:
    return await FolderRepository(db).add('proj', project)


@pytest.fixture
async def pipeline(db: Database, folder: FolderRegistration, rules: IgnoreRules) -> AsyncIterator[Pipeline]:
    hash_trees = HashTreeRepository(db)
    snapshot_repository = SnapshotRepository(db)
    embeddings = EmbeddingRepository(db)
    parser = CountingParser()
    snapshots = SnapshotManager(snapshot_repository, hash_trees, parser, TextChunker(200, 20), rules)
    collector = DocumentCollector(snapshot_repository, snapshots)
    models = FakeModelResolver(FakeEmbeddingClient())
    progress = ProgressBus()
    events = FolderEvents()
    runner = EmbeddingJobRunner(
        snapshots=snapshots,
        collector=collector,
        embeddings=embeddings,
        models=models,
        progress=progress,
        events=events,
        settings=JobSettings(embedding_batch_size=2, summarization_batch_size=2, persist_chunk_size=3),
    )
    detector = ChangeDetector(hash_trees, rules, poll_interval=3600)
    yield Pipeline(
        db=db,
        folder=folder,
        hash_trees=hash_trees,
        snapshot_repository=snapshot_repository,
        embeddings=embeddings,
        detector=detector,
        parser=parser,
        snapshots=snapshots,
        collector=collector,
        models=models,
        progress=progress,
        events=events,
        runner=runner,
    )
    await runner.close()
    await detector.stop()
