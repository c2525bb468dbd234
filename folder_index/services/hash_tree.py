"""Content-addressed hash tree construction and diffing.

File hash: SHA-256 of the raw bytes.
Directory hash: SHA-256 over 'directory', the directory's relative path and
its children's hashes sorted lexicographically, so the root hash depends only
on content and structure, never on filesystem iteration order.

build_tree is blocking; callers on the event loop run it via asyncio.to_thread.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from folder_index.schemas.hash_tree import ROOT_RELATIVE_PATH, FlatNode, HashTree, TreeDiff
from folder_index.services.file_walker import IgnoreRules

__all__ = [
    'build_tree',
    'diff_trees',
    'hash_bytes',
    'hash_file',
]

logger = logging.getLogger(__name__)

_DIRECTORY_TAG = b'directory'


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_file(path: Path) -> str:
    """SHA-256 of a file's contents. Raises OSError if unreadable."""
    return hash_bytes(path.read_bytes())


def build_tree(root: Path, rules: IgnoreRules) -> HashTree:
    """Hash every non-ignored entry under root.

    Unreadable files and directories are logged and left out of the tree.
    """
    nodes: dict[str, FlatNode] = {}
    root_hash = _hash_directory(root, ROOT_RELATIVE_PATH, rules, nodes)
    return HashTree(root_path=str(root), root_hash=root_hash, nodes=nodes)


def _hash_directory(path: Path, relative_path: str, rules: IgnoreRules, nodes: dict[str, FlatNode]) -> str:
    try:
        with os.scandir(path) as it:
            entries = list(it)
    except OSError as e:
        logger.warning(f'[hash-tree] Cannot read directory {path}: {e}')
        entries = []

    child_hashes: list[str] = []
    for entry in entries:
        if rules.skips(entry):
            continue
        child_relative = entry.name if relative_path == ROOT_RELATIVE_PATH else f'{relative_path}/{entry.name}'
        child_path = Path(entry.path)
        if entry.is_dir(follow_symlinks=False):
            child_hashes.append(_hash_directory(child_path, child_relative, rules, nodes))
        elif entry.is_file(follow_symlinks=False):
            try:
                data = child_path.read_bytes()
            except OSError as e:
                logger.warning(f'[hash-tree] Cannot read file {child_path}: {e}')
                continue
            file_hash = hash_bytes(data)
            nodes[child_relative] = FlatNode(path=child_relative, hash=file_hash, node_type='file', size=len(data))
            child_hashes.append(file_hash)

    digest = hashlib.sha256(_DIRECTORY_TAG)
    digest.update(relative_path.encode())
    for child_hash in sorted(child_hashes):
        digest.update(child_hash.encode())
    directory_hash = digest.hexdigest()
    nodes[relative_path] = FlatNode(path=relative_path, hash=directory_hash, node_type='directory')
    return directory_hash


def diff_trees(previous: HashTree | None, current: HashTree) -> TreeDiff:
    """Classify file paths as added, changed or deleted.

    previous=None means the folder was never indexed: every file is added.
    Directory entries influence hashes but are never reported.
    """
    previous_nodes = previous.nodes if previous is not None else {}
    added: list[str] = []
    changed: list[str] = []
    deleted: list[str] = []

    for path, node in current.nodes.items():
        if node.node_type != 'file':
            continue
        old = previous_nodes.get(path)
        if old is None or old.node_type != 'file':
            added.append(path)
        elif old.hash != node.hash:
            changed.append(path)

    for path, node in previous_nodes.items():
        if node.node_type != 'file':
            continue
        now = current.nodes.get(path)
        if now is None or now.node_type != 'file':
            deleted.append(path)

    return TreeDiff(added=sorted(added), changed=sorted(changed), deleted=sorted(deleted))
