"""Shared async and timing helpers."""

from __future__ import annotations

from local_lib.background_tasks import BackgroundTaskGroup
from local_lib.utils import Timer, humanize_seconds

__all__ = [
    'BackgroundTaskGroup',
    'Timer',
    'humanize_seconds',
]
