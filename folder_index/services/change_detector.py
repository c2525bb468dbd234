"""Change detection by periodic hash tree polling.

One asyncio task polls every tracked folder each interval: rebuild the tree,
diff it against the last persisted one, persist, and notify subscribers.
A tick that would overlap a still-running tick is skipped, not queued.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from collections.abc import Callable, Sequence

from local_lib.utils import Timer

from folder_index.repositories.hash_tree import HashTreeRepository
from folder_index.schemas.folders import FolderRegistration
from folder_index.schemas.hash_tree import FolderChange, HashTree, TreeDiff
from folder_index.services.file_walker import IgnoreRules
from folder_index.services.hash_tree import build_tree, diff_trees

__all__ = [
    'ChangeDetector',
    'ChangeListener',
]

logger = logging.getLogger(__name__)

type ChangeListener = Callable[[FolderChange], None]


class ChangeDetector:
    """Tracks folders and reports file-level changes between polls."""

    def __init__(
        self,
        repository: HashTreeRepository,
        rules: IgnoreRules,
        *,
        poll_interval: float = 10.0,
    ) -> None:
        self._repository = repository
        self._rules = rules
        self._poll_interval = poll_interval
        self._folders: dict[str, FolderRegistration] = {}
        self._listeners: defaultdict[str, list[ChangeListener]] = defaultdict(list)
        self._polling = False
        self._poll_task: asyncio.Task[None] | None = None

    @property
    def tracked_folders(self) -> Sequence[FolderRegistration]:
        return list(self._folders.values())

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def track(self, folder: FolderRegistration) -> None:
        """Add or re-point a folder and start the poll loop if needed."""
        self._folders[folder.name] = folder
        if not self.is_running:
            self._poll_task = asyncio.create_task(self._run_loop(), name='hash-tree-poll')
            logger.info(f'[hash-tree] Poll loop started (every {self._poll_interval}s)')

    async def untrack(self, folder_name: str) -> None:
        """Stop tracking a folder; the loop stops with the last folder."""
        self._folders.pop(folder_name, None)
        self._listeners.pop(folder_name, None)
        if not self._folders:
            await self.stop()

    def subscribe(self, folder_name: str, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners[folder_name].append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(folder_name)
            if listeners is not None and listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    async def build(self, folder: FolderRegistration) -> HashTree:
        """Build a fresh tree off the event loop."""
        return await asyncio.to_thread(build_tree, folder.root_path, self._rules)

    async def index_folder(self, folder: FolderRegistration) -> HashTree | None:
        """Build and persist a folder's tree without diffing. Failures are logged, not raised."""
        try:
            timer = Timer()
            tree = await self.build(folder)
            await self._repository.persist(folder.name, tree)
        except Exception:
            logger.exception(f'[hash-tree] Initial index of {folder.name} failed')
            return None
        logger.info(f'[hash-tree] Indexed {folder.name}: {len(tree.nodes)} nodes in {timer.elapsed_ms()}ms')
        return tree

    async def check_folder(self, folder: FolderRegistration) -> TreeDiff:
        """Rebuild, diff against the persisted tree, persist, and notify on changes."""
        tree = await self.build(folder)
        previous = await self._repository.load_tree(folder.name)
        diff = diff_trees(previous, tree)

        if previous is None or previous.root_hash != tree.root_hash or previous.root_path != tree.root_path:
            await self._repository.persist(folder.name, tree)
        else:
            await self._repository.touch_checked(folder.name)

        if diff.has_changes:
            logger.info(
                f'[hash-tree] {folder.name}: +{len(diff.added)} ~{len(diff.changed)} -{len(diff.deleted)}'
            )
            self._notify(FolderChange(folder_name=folder.name, root_hash=tree.root_hash, diff=diff))
        return diff

    async def poll_once(self) -> bool:
        """Check every tracked folder once, sequentially.

        Returns False without doing anything if a previous tick is still running.
        """
        if self._polling:
            logger.debug('[hash-tree] Previous poll still running, skipping tick')
            return False

        self._polling = True
        try:
            for folder in list(self._folders.values()):
                try:
                    await self.check_folder(folder)
                except Exception:
                    logger.exception(f'[hash-tree] Poll of {folder.name} failed')
        finally:
            self._polling = False
        return True

    async def stop(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info('[hash-tree] Poll loop stopped')

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            await self.poll_once()

    def _notify(self, change: FolderChange) -> None:
        for listener in list(self._listeners.get(change.folder_name, ())):
            try:
                listener(change)
            except Exception:
                logger.exception(f'[hash-tree] Change listener for {change.folder_name} failed')
