"""Folder index service - the long-lived facade over the pipeline.

Owns the database, change detector, snapshot cache, job runner and event
buses, and exposes folder registration and indexing control.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from folder_index.exceptions import FolderRegistrationError
from folder_index.paths import DATABASE_PATH
from folder_index.repositories import (
    Database,
    EmbeddingRepository,
    FolderRepository,
    HashTreeRepository,
    SnapshotRepository,
)
from folder_index.schemas.config import IndexerConfig
from folder_index.schemas.folders import FolderRegistration
from folder_index.schemas.hash_tree import FolderChange
from folder_index.schemas.progress import TaskProgressState
from folder_index.services.change_detector import ChangeDetector
from folder_index.services.chunking import TextChunker
from folder_index.services.documents import DocumentCollector
from folder_index.services.embedding_job import EmbeddingJob, EmbeddingJobRunner, JobSettings
from folder_index.services.file_walker import IgnoreRules
from folder_index.services.folder_events import FolderEvents
from folder_index.services.models import ModelResolver, ProviderModelResolver
from folder_index.services.parsing import ParserCapability, TreeSitterParser
from folder_index.services.progress import ProgressBus
from folder_index.services.snapshots import SnapshotManager

__all__ = [
    'FolderIndexService',
]

logger = logging.getLogger(__name__)


class FolderIndexService:
    """Registers folders, keeps their hash trees current, and runs embedding jobs.

    Build with create(); call start() to resume persisted folders and close()
    on shutdown.
    """

    def __init__(
        self,
        *,
        config: IndexerConfig,
        db: Database,
        folders: FolderRepository,
        embeddings: EmbeddingRepository,
        snapshot_repository: SnapshotRepository,
        detector: ChangeDetector,
        snapshots: SnapshotManager,
        runner: EmbeddingJobRunner,
        models: ModelResolver,
        progress: ProgressBus,
        events: FolderEvents,
    ) -> None:
        self._config = config
        self._db = db
        self._folders = folders
        self._embeddings = embeddings
        self._snapshot_repository = snapshot_repository
        self.detector = detector
        self.snapshots = snapshots
        self.runner = runner
        self._models = models
        self.progress = progress
        self.events = events

    @classmethod
    async def create(
        cls,
        config: IndexerConfig,
        *,
        database_path: Path | str = DATABASE_PATH,
        parser: ParserCapability | None = None,
        models: ModelResolver | None = None,
    ) -> FolderIndexService:
        """Open the database and wire every component."""
        db = await Database.open(database_path)
        rules = IgnoreRules.from_config(config)
        hash_trees = HashTreeRepository(db)
        snapshot_repository = SnapshotRepository(db)
        embeddings = EmbeddingRepository(db)
        progress = ProgressBus()
        events = FolderEvents()
        models = models or ProviderModelResolver(config)

        snapshots = SnapshotManager(
            snapshot_repository,
            hash_trees,
            parser or TreeSitterParser(),
            TextChunker(config.text_chunk_max_tokens, config.text_chunk_overlap_tokens),
            rules,
        )
        runner = EmbeddingJobRunner(
            snapshots=snapshots,
            collector=DocumentCollector(snapshot_repository, snapshots),
            embeddings=embeddings,
            models=models,
            progress=progress,
            events=events,
            settings=JobSettings.from_config(config),
        )
        return cls(
            config=config,
            db=db,
            folders=FolderRepository(db),
            embeddings=embeddings,
            snapshot_repository=snapshot_repository,
            detector=ChangeDetector(hash_trees, rules, poll_interval=config.poll_interval_seconds),
            snapshots=snapshots,
            runner=runner,
            models=models,
            progress=progress,
            events=events,
        )

    async def start(self) -> None:
        """Track every persisted folder; schedule the ones never embedded."""
        for folder in await self._folders.list_folders():
            if not folder.root_path.is_dir():
                logger.warning(f'[indexer] {folder.name}: {folder.root_path} is missing, not tracking')
                continue
            self._track(folder)
            if self.runner.get_job(folder.name) is None and not await self._embeddings.has_initial(folder.name):
                self.runner.start(folder)

    async def close(self) -> None:
        await self.runner.close()
        await self.detector.stop()
        await self._models.close()
        await self._db.close()

    # -- Registration --

    async def register_folder(self, name: str, path: Path | str) -> FolderRegistration:
        """Register a folder, index its tree and schedule its first embedding job.

        Raises:
            FolderRegistrationError: If the name is taken or the path is not a directory.
        """
        root = _resolve_directory(path)
        try:
            folder = await self._folders.add(name, root)
        except ValueError as e:
            raise FolderRegistrationError(str(e)) from e
        logger.info(f'[indexer] Registered {name} -> {root}')

        await self.detector.index_folder(folder)
        self._track(folder)
        if not await self._embeddings.has_initial(folder.name):
            self.runner.start(folder)
        self.events.notify_change()
        return folder

    async def update_folder(self, name: str, path: Path | str) -> FolderRegistration:
        """Re-point a folder at a new directory and rebuild from scratch.

        Raises:
            FolderRegistrationError: If the folder is unknown or the path is not a directory.
        """
        root = _resolve_directory(path)
        job = self.runner.get_job(name)
        self.cancel_indexing(name)
        if job is not None:
            # Its in-flight snapshot build still targets the old root; let it land before clearing
            await job.wait()
        folder = await self._folders.update_root(name, root)
        if folder is None:
            raise FolderRegistrationError(f"Folder '{name}' is not registered")
        await self._snapshot_repository.clear(name)
        await self.detector.index_folder(folder)
        self._track(folder)
        self.runner.start(folder)
        self.events.notify_change()
        return folder

    async def unregister_folder(self, name: str) -> bool:
        """Stop tracking a folder and delete all of its rows. Returns False if unknown."""
        job = self.runner.get_job(name)
        self.cancel_indexing(name)
        if job is not None:
            # A cancelled job still finishes its current snapshot build; let it land first
            await job.wait()
        await self.detector.untrack(name)
        deleted = await self._folders.delete(name)
        if deleted:
            self.events.notify_change()
        return deleted

    async def get_folder(self, name: str) -> FolderRegistration | None:
        return await self._folders.get(name)

    async def list_folders(self) -> Sequence[FolderRegistration]:
        return await self._folders.list_folders()

    # -- Indexing control --

    async def schedule_indexing(self, name: str) -> EmbeddingJob:
        """Start a fresh embedding job, superseding any running one.

        Raises:
            FolderRegistrationError: If the folder is unknown.
        """
        folder = await self._folders.get(name)
        if folder is None:
            raise FolderRegistrationError(f"Folder '{name}' is not registered")
        return self.runner.start(folder)

    def cancel_indexing(self, name: str) -> bool:
        """Cancel the folder's job and clear its progress. Returns False if no job was alive."""
        cancelled = self.runner.cancel(name)
        self.progress.clear(name)
        return cancelled

    def get_progress(self, name: str) -> TaskProgressState:
        return self.progress.get(name)

    async def embedding_count(self, name: str) -> int:
        return await self._embeddings.count(name)

    def _track(self, folder: FolderRegistration) -> None:
        already_tracked = any(f.name == folder.name for f in self.detector.tracked_folders)
        self.detector.track(folder)
        if self._config.reindex_on_change and not already_tracked:
            self.detector.subscribe(folder.name, self._on_folder_change)

    def _on_folder_change(self, change: FolderChange) -> None:
        folder = next((f for f in self.detector.tracked_folders if f.name == change.folder_name), None)
        if folder is not None:
            logger.info(f'[indexer] {change.folder_name} changed, re-indexing')
            self.runner.start(folder)


def _resolve_directory(path: Path | str) -> Path:
    root = Path(path).expanduser().resolve()
    if not root.is_dir():
        raise FolderRegistrationError(f'Not a directory: {root}')
    return root
