"""Source parsing with tree-sitter.

ParserCapability is the seam for swapping parsers: parse bytes into a
syntax tree and classify focus nodes. TreeSitterParser is the shipped
implementation; parse_source turns one file into a ParsedFile snapshot.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Mapping
from typing import Protocol

import tree_sitter
import tree_sitter_css
import tree_sitter_html
import tree_sitter_javascript
import tree_sitter_python
import tree_sitter_rust
import tree_sitter_typescript

from folder_index.schemas.snapshots import ParseDiagnostics, ParsedFile, SupportedLanguage
from folder_index.services import focus
from folder_index.services.focus import SyntaxNode
from folder_index.services.hash_tree import hash_bytes

__all__ = [
    'ParserCapability',
    'TreeSitterParser',
    'parse_source',
]

logger = logging.getLogger(__name__)

_GRAMMARS: Mapping[SupportedLanguage, Callable[[], object]] = {
    'javascript': tree_sitter_javascript.language,
    'typescript': tree_sitter_typescript.language_typescript,
    'tsx': tree_sitter_typescript.language_tsx,
    'python': tree_sitter_python.language,
    'rust': tree_sitter_rust.language,
    'css': tree_sitter_css.language,
    'html': tree_sitter_html.language,
}


class ParserCapability(Protocol):
    """Parses source and decides which nodes are worth keeping."""

    def parse(self, source: bytes, language: SupportedLanguage) -> SyntaxNode:
        """Parse source and return the root node of its syntax tree."""
        ...

    def is_focus_node(self, node: SyntaxNode, language: SupportedLanguage, source: bytes) -> bool: ...


class TreeSitterParser:
    """ParserCapability backed by the tree-sitter grammar wheels.

    Language objects are cached; a fresh Parser is created per call because
    parsing runs in worker threads and Parser instances are not thread-safe.
    """

    def parse(self, source: bytes, language: SupportedLanguage) -> SyntaxNode:
        parser = tree_sitter.Parser(_language(language))
        return parser.parse(source).root_node

    def is_focus_node(self, node: SyntaxNode, language: SupportedLanguage, source: bytes) -> bool:
        return focus.is_focus_node(node, language, source)


@functools.cache
def _language(language: SupportedLanguage) -> tree_sitter.Language:
    return tree_sitter.Language(_GRAMMARS[language]())


def parse_source(
    parser: ParserCapability,
    relative_path: str,
    source: bytes,
    language: SupportedLanguage,
) -> ParsedFile:
    """Parse one file into its focus-node snapshot. Blocking."""
    root = parser.parse(source, language)
    focus_nodes, error_count = focus.extract_focus_nodes(root, source, language, parser)
    if error_count:
        logger.debug(f'[parse] {relative_path}: {error_count} syntax errors')
    return ParsedFile(
        relative_path=relative_path,
        language=language,
        content_hash=hash_bytes(source),
        size=len(source),
        focus_nodes=focus_nodes,
        diagnostics=ParseDiagnostics(has_error=error_count > 0, error_count=error_count),
    )
