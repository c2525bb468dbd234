"""Exceptions raised by the folder index."""

from __future__ import annotations

__all__ = [
    'FolderIndexError',
    'FolderRegistrationError',
    'ModelConfigurationError',
]


class FolderIndexError(Exception):
    """Base class for folder index errors."""


class FolderRegistrationError(FolderIndexError):
    """Registration request rejected (duplicate name, missing directory, unknown folder)."""


class ModelConfigurationError(FolderIndexError):
    """No usable chat or embedding model is configured.

    The message is shown to the user as-is, so keep it readable.
    """
