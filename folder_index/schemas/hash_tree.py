"""Hash tree types for change detection.

The in-memory tree types are slotted dataclasses rather than Pydantic
models: a tree is rebuilt for every folder on every poll tick, so
construction cost matters more than validation.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Literal

from folder_index.schemas.base import JsonDatetime, StrictModel

__all__ = [
    'ROOT_RELATIVE_PATH',
    'FlatNode',
    'FolderChange',
    'HashTree',
    'NodeType',
    'PersistedFolderHash',
    'TreeDiff',
]

# Relative path of the folder root inside its own tree
ROOT_RELATIVE_PATH = '.'

type NodeType = Literal['file', 'directory']


@dataclass(frozen=True, slots=True)
class FlatNode:
    """One entry of a hash tree, addressed by its '/'-separated relative path."""

    path: str
    hash: str
    node_type: NodeType
    size: int | None = None

    @property
    def parent_path(self) -> str | None:
        if self.path == ROOT_RELATIVE_PATH:
            return None
        head, sep, _ = self.path.rpartition('/')
        return head if sep else ROOT_RELATIVE_PATH


@dataclass(frozen=True, slots=True)
class HashTree:
    """Content-addressed snapshot of a folder."""

    root_path: str
    root_hash: str
    nodes: Mapping[str, FlatNode]

    def file_hashes(self) -> Mapping[str, str]:
        """Relative path -> content hash, files only."""
        return {path: node.hash for path, node in self.nodes.items() if node.node_type == 'file'}


@dataclass(frozen=True, slots=True)
class TreeDiff:
    """File-level differences between two hash trees. Directories never appear."""

    added: Sequence[str]
    changed: Sequence[str]
    deleted: Sequence[str]

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.changed or self.deleted)


@dataclass(frozen=True, slots=True)
class FolderChange:
    """Notification payload delivered to change subscribers."""

    folder_name: str
    root_hash: str
    diff: TreeDiff


class PersistedFolderHash(StrictModel):
    """Root-hash row of a folder's last persisted tree."""

    folder_name: str
    root_path: str
    root_hash: str
    updated_at: JsonDatetime
    last_checked_at: JsonDatetime
