"""Folder registration schema."""

from __future__ import annotations

from pathlib import Path

from folder_index.schemas.base import JsonDatetime, StrictModel

__all__ = [
    'FolderRegistration',
]


class FolderRegistration(StrictModel):
    """A folder tracked by the indexer.

    Names are unique; root_path is always absolute.
    """

    name: str
    root_path: Path
    created_at: JsonDatetime
