"""Generic 'folder changed' signal for observers that refresh folder views."""

from __future__ import annotations

import logging
from collections.abc import Callable

__all__ = [
    'FolderEvents',
]

logger = logging.getLogger(__name__)


class FolderEvents:
    """Argument-less change signal fired on registration changes and job completion.

    A failing listener is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[], None]] = []

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify_change(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception('[events] Folder change listener failed')
