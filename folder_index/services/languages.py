"""Source language detection by file extension."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from folder_index.schemas.snapshots import SupportedLanguage

__all__ = [
    'LANGUAGE_BY_EXTENSION',
    'detect_language',
    'is_source_file',
]

LANGUAGE_BY_EXTENSION: Mapping[str, SupportedLanguage] = {
    '.js': 'javascript',
    '.cjs': 'javascript',
    '.mjs': 'javascript',
    '.jsx': 'javascript',
    '.ts': 'typescript',
    '.mts': 'typescript',
    '.cts': 'typescript',
    '.tsx': 'tsx',
    '.py': 'python',
    '.rs': 'rust',
    '.css': 'css',
    '.scss': 'css',
    '.sass': 'css',
    '.less': 'css',
    '.html': 'html',
    '.htm': 'html',
}


def detect_language(path: Path) -> SupportedLanguage | None:
    return LANGUAGE_BY_EXTENSION.get(path.suffix.lower())


def is_source_file(path: Path) -> bool:
    return detect_language(path) is not None
