"""Build-once snapshot cache for AST and text chunk snapshots.

Concurrent callers for the same folder share one in-flight build task.
Existing snapshots are reused as long as every file's stored content hash
matches the folder's current hash tree; only stale, new or removed files
are re-processed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from local_lib.utils import Timer

from folder_index.repositories.hash_tree import HashTreeRepository
from folder_index.repositories.snapshots import SnapshotRepository
from folder_index.schemas.folders import FolderRegistration
from folder_index.schemas.snapshots import ChunkedFile, ParsedFile, SnapshotResult
from folder_index.services.chunking import TextChunker, detect_text_format
from folder_index.services.file_walker import IgnoreRules, iter_files, to_relative_path
from folder_index.services.hash_tree import hash_file
from folder_index.services.languages import detect_language, is_source_file
from folder_index.services.parsing import ParserCapability, parse_source

__all__ = [
    'SnapshotManager',
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _BuildPlan:
    """Which files a build must (re)process."""

    files: Mapping[str, Path]  # relative path -> absolute path, every current file
    stale: Sequence[str]  # new or changed
    removed: Sequence[str]  # snapshotted but gone
    hashes: Mapping[str, str]  # relative path -> current content hash
    existing_count: int

    @property
    def is_fresh(self) -> bool:
        return self.existing_count > 0 and not self.stale and not self.removed


class SnapshotManager:
    """Materializes AST and text chunk snapshots for registered folders."""

    def __init__(
        self,
        repository: SnapshotRepository,
        hash_trees: HashTreeRepository,
        parser: ParserCapability,
        chunker: TextChunker,
        rules: IgnoreRules,
    ) -> None:
        self._repository = repository
        self._hash_trees = hash_trees
        self._parser = parser
        self._chunker = chunker
        self._rules = rules
        self._ast_builds: dict[tuple[str, Path], asyncio.Task[SnapshotResult]] = {}
        self._text_builds: dict[tuple[str, Path], asyncio.Task[SnapshotResult]] = {}

    def is_building(self, folder_name: str) -> bool:
        return any(name == folder_name for name, _ in (*self._ast_builds, *self._text_builds))

    async def ensure_ast_snapshots(self, folder: FolderRegistration) -> SnapshotResult:
        """Return fresh AST snapshots for a folder, building at most once per folder at a time."""
        return await self._single_flight(self._ast_builds, folder, self._build_ast)

    async def ensure_text_chunk_snapshots(self, folder: FolderRegistration) -> SnapshotResult:
        """Return fresh text chunk snapshots for a folder, building at most once per folder at a time."""
        return await self._single_flight(self._text_builds, folder, self._build_text)

    async def _single_flight(
        self,
        registry: dict[tuple[str, Path], asyncio.Task[SnapshotResult]],
        folder: FolderRegistration,
        build: Callable[[FolderRegistration], Coroutine[Any, Any, SnapshotResult]],
    ) -> SnapshotResult:
        # Keyed by root too: a build still reading a folder's previous root is never joined
        key = (folder.name, folder.root_path)
        # Registered before the first await, so concurrent callers always find it
        task = registry.get(key)
        if task is None:
            task = asyncio.create_task(build(folder), name=f'snapshot-{folder.name}')
            registry[key] = task

            def _release(done: asyncio.Task[SnapshotResult]) -> None:
                if registry.get(key) is done:
                    del registry[key]

            task.add_done_callback(_release)
        # Shield: one caller being cancelled must not abort the shared build
        return await asyncio.shield(task)

    async def _build_ast(self, folder: FolderRegistration) -> SnapshotResult:
        timer = Timer()
        existing = await self._repository.ast_file_hashes(folder.name)
        plan = await self._plan(folder, existing, is_source_file)
        if plan.is_fresh:
            logger.debug(f'[snapshots] AST snapshots of {folder.name} are fresh ({plan.existing_count} files)')
            return SnapshotResult(created=False, file_count=plan.existing_count, item_count=0, parsed_files=0)

        parsed = await asyncio.to_thread(self._parse_files, [(rel, plan.files[rel]) for rel in plan.stale])
        full_rebuild = plan.existing_count == 0
        node_count = await self._repository.replace_ast_snapshots(
            folder.name,
            folder.root_path,
            parsed,
            replace_paths=None if full_rebuild else [*plan.stale, *plan.removed],
        )
        logger.info(
            f'[snapshots] AST {folder.name}: parsed {len(parsed)}/{len(plan.files)} files, '
            f'{node_count} nodes, removed {len(plan.removed)} in {timer.elapsed_ms()}ms'
        )
        file_count = len(await self._repository.ast_file_hashes(folder.name))
        return SnapshotResult(created=True, file_count=file_count, item_count=node_count, parsed_files=len(parsed))

    async def _build_text(self, folder: FolderRegistration) -> SnapshotResult:
        timer = Timer()
        existing = await self._repository.text_chunk_hashes(folder.name)
        plan = await self._plan(folder, existing, lambda p: detect_text_format(p) is not None)
        if plan.is_fresh:
            count = await self._repository.count_text_chunks(folder.name)
            file_count = await self._repository.count_chunked_files(folder.name)
            logger.debug(f'[snapshots] Text chunks of {folder.name} are fresh ({count} chunks)')
            return SnapshotResult(created=False, file_count=file_count, item_count=count, parsed_files=0)

        chunked, undecodable = await asyncio.to_thread(
            self._chunk_files, [(rel, plan.files[rel]) for rel in plan.stale]
        )
        full_rebuild = plan.existing_count == 0
        chunk_count = await self._repository.replace_text_chunks(
            folder.name,
            folder.root_path,
            chunked,
            unchunked_hashes={rel: plan.hashes[rel] for rel in undecodable if rel in plan.hashes},
            replace_paths=None if full_rebuild else [*plan.stale, *plan.removed],
        )
        logger.info(
            f'[snapshots] Text {folder.name}: chunked {len(chunked)}/{len(plan.files)} files, '
            f'{chunk_count} chunks, removed {len(plan.removed)} in {timer.elapsed_ms()}ms'
        )
        file_count = await self._repository.count_chunked_files(folder.name)
        return SnapshotResult(
            created=True,
            file_count=file_count,
            item_count=chunk_count,
            parsed_files=len(chunked) + len(undecodable),
        )

    async def _plan(
        self,
        folder: FolderRegistration,
        existing: Mapping[str, str],
        accept: Callable[[Path], bool],
    ) -> _BuildPlan:
        root = folder.root_path
        paths = await asyncio.to_thread(lambda: list(iter_files(root, self._rules, accept)))
        files = {to_relative_path(root, path): path for path in paths}
        current = await self._current_hashes(folder, files)
        stale = [rel for rel in files if rel not in current or existing.get(rel) != current[rel]]
        removed = [rel for rel in existing if rel not in files]
        return _BuildPlan(
            files=files, stale=stale, removed=removed, hashes=current, existing_count=len(existing)
        )

    async def _current_hashes(self, folder: FolderRegistration, files: Mapping[str, Path]) -> Mapping[str, str]:
        """Content hash per file, from the persisted hash tree where it knows the file."""
        tree_hashes = await self._hash_trees.load_file_hashes(folder.name) or {}
        missing = [rel for rel in files if rel not in tree_hashes]
        if not missing:
            return tree_hashes
        direct = await asyncio.to_thread(_hash_files, {rel: files[rel] for rel in missing})
        return {**tree_hashes, **direct}

    def _parse_files(self, files: Sequence[tuple[str, Path]]) -> Sequence[ParsedFile]:
        parsed: list[ParsedFile] = []
        for relative_path, path in files:
            language = detect_language(path)
            if language is None:
                continue
            try:
                source = path.read_bytes()
                parsed.append(parse_source(self._parser, relative_path, source, language))
            except Exception:
                logger.exception(f'[snapshots] Failed to parse {relative_path}')
        return parsed

    def _chunk_files(self, files: Sequence[tuple[str, Path]]) -> tuple[Sequence[ChunkedFile], Sequence[str]]:
        """Chunk each file. Returns the chunked files (blank ones with no chunks) and the non-UTF-8 paths."""
        chunked: list[ChunkedFile] = []
        undecodable: list[str] = []
        for relative_path, path in files:
            text_format = detect_text_format(path)
            if text_format is None:
                continue
            try:
                chunked.append(self._chunker.chunk_file(relative_path, path.read_bytes(), text_format))
            except UnicodeDecodeError:
                logger.debug(f'[snapshots] Skipping non-UTF-8 file {relative_path}')
                undecodable.append(relative_path)
            except OSError as e:
                logger.warning(f'[snapshots] Cannot read {relative_path}: {e}')
        return chunked, undecodable


def _hash_files(files: Mapping[str, Path]) -> Mapping[str, str]:
    hashes: dict[str, str] = {}
    for relative_path, path in files.items():
        try:
            hashes[relative_path] = hash_file(path)
        except OSError as e:
            logger.warning(f'[snapshots] Cannot hash {relative_path}: {e}')
    return hashes

