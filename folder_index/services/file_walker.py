"""Shared directory traversal policy.

Hashing, parsing and chunking all walk folders with the same rules so that
the hash tree and the snapshots agree on which files exist.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator, Set
from dataclasses import dataclass
from pathlib import Path

from folder_index.schemas.config import IndexerConfig

__all__ = [
    'IgnoreRules',
    'iter_files',
    'to_relative_path',
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IgnoreRules:
    """Names skipped entirely during traversal. Symlinks are always skipped."""

    directory_names: Set[str]
    file_names: Set[str]

    @classmethod
    def from_config(cls, config: IndexerConfig) -> IgnoreRules:
        return cls(
            directory_names=frozenset(config.ignored_directory_names),
            file_names=frozenset(config.ignored_file_names),
        )

    def skips(self, entry: os.DirEntry[str]) -> bool:
        if entry.is_symlink():
            return True
        if entry.is_dir(follow_symlinks=False):
            return entry.name in self.directory_names
        return entry.name in self.file_names


def to_relative_path(root: Path, path: Path) -> str:
    """'/'-separated path of path relative to root."""
    return path.relative_to(root).as_posix()


def iter_files(root: Path, rules: IgnoreRules, accept: Callable[[Path], bool] | None = None) -> Iterator[Path]:
    """Yield regular files under root in sorted order, honoring the ignore rules.

    Unreadable directories are logged and skipped.
    """
    try:
        with os.scandir(root) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        logger.warning(f'[walk] Cannot read directory {root}: {e}')
        return

    for entry in entries:
        if rules.skips(entry):
            continue
        path = Path(entry.path)
        if entry.is_dir(follow_symlinks=False):
            yield from iter_files(path, rules, accept)
        elif entry.is_file(follow_symlinks=False) and (accept is None or accept(path)):
            yield path
