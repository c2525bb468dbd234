"""Per-folder job progress with push notifications.

Every update merges into the folder's record and broadcasts the full
resulting state, never a diff, so late subscribers need no history.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from folder_index.schemas.progress import TaskProgressState

__all__ = [
    'ProgressBus',
    'ProgressListener',
]

logger = logging.getLogger(__name__)

# Receives (folder_name, state); state is None when the record was cleared
type ProgressListener = Callable[[str, TaskProgressState | None], None]


class ProgressBus:
    """Holds the latest TaskProgressState per folder and notifies subscribers."""

    def __init__(self) -> None:
        self._states: dict[str, TaskProgressState] = {}
        self._listeners: list[ProgressListener] = []

    def get(self, folder_name: str) -> TaskProgressState:
        """Current state, or a fresh idle state when nothing is recorded."""
        state = self._states.get(folder_name)
        if state is not None:
            return state
        now = datetime.now(UTC)
        return TaskProgressState(folder_name=folder_name, phase='idle', started_at=now, updated_at=now)

    def peek(self, folder_name: str) -> TaskProgressState | None:
        return self._states.get(folder_name)

    def update(self, folder_name: str, **changes: Any) -> TaskProgressState:
        """Merge changes into the folder's state and emit the full result."""
        state = self.get(folder_name).model_copy(update={**changes, 'updated_at': datetime.now(UTC)})
        self._states[folder_name] = state
        logger.debug(f'[progress] {folder_name}: {state.phase} {state.processed_files}/{state.total_files}')
        self._emit(folder_name, state)
        return state

    def clear(self, folder_name: str) -> None:
        """Drop the folder's record (cancel or dismiss) and notify subscribers."""
        if self._states.pop(folder_name, None) is not None:
            self._emit(folder_name, None)

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, folder_name: str, state: TaskProgressState | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(folder_name, state)
            except Exception:
                logger.exception(f'[progress] Listener failed for {folder_name}')
