"""Focus node selection and symbol naming.

A focus node is a declaration worth embedding on its own: functions,
classes, methods, type declarations, and for markup/stylesheets any
multi-line node. Everything between two focus nodes is dropped, so a
filtered tree keeps only the declaration hierarchy.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence, Set
from typing import Protocol

from folder_index.schemas.snapshots import FocusNode, Position, SupportedLanguage

__all__ = [
    'MAIN_GUARD_SYMBOL',
    'MAX_SNIPPET_CHARS',
    'FocusClassifier',
    'SyntaxNode',
    'extract_focus_nodes',
    'infer_symbol_name',
    'is_focus_node',
    'is_main_guard',
]

MAIN_GUARD_SYMBOL = '__main__ guard'

# Stored snippet length; longer node text is cut and suffixed with '...'
MAX_SNIPPET_CHARS = 2000


class SyntaxNode(Protocol):
    """The subset of tree_sitter.Node the indexer relies on."""

    @property
    def type(self) -> str: ...
    @property
    def is_named(self) -> bool: ...
    @property
    def is_error(self) -> bool: ...
    @property
    def is_missing(self) -> bool: ...
    @property
    def start_byte(self) -> int: ...
    @property
    def end_byte(self) -> int: ...
    @property
    def start_point(self) -> tuple[int, int]: ...
    @property
    def end_point(self) -> tuple[int, int]: ...
    @property
    def children(self) -> Sequence[SyntaxNode]: ...
    @property
    def parent(self) -> SyntaxNode | None: ...

    def child_by_field_name(self, name: str, /) -> SyntaxNode | None: ...


class FocusClassifier(Protocol):
    def is_focus_node(self, node: SyntaxNode, language: SupportedLanguage, source: bytes) -> bool: ...


_JS_FOCUS_TYPES = frozenset({
    'function_declaration',
    'generator_function_declaration',
    'function_expression',
    'function',
    'arrow_function',
    'class_declaration',
    'class',
    'method_definition',
    'export_statement',
})

_TS_FOCUS_TYPES = _JS_FOCUS_TYPES | {
    'abstract_class_declaration',
    'interface_declaration',
    'enum_declaration',
    'type_alias_declaration',
    'method_signature',
    'abstract_method_signature',
    'function_signature',
}

FOCUS_TYPES: Mapping[SupportedLanguage, Set[str]] = {
    'python': frozenset({'function_definition', 'class_definition', 'decorated_definition'}),
    'javascript': _JS_FOCUS_TYPES,
    'typescript': _TS_FOCUS_TYPES,
    'tsx': _TS_FOCUS_TYPES,
    'rust': frozenset({'function_item', 'struct_item', 'enum_item', 'trait_item', 'impl_item', 'mod_item'}),
}

# Languages without declarations: any named multi-line node is a focus node
_MULTI_LINE_LANGUAGES: Set[SupportedLanguage] = frozenset({'css', 'html'})

# Anonymous functions take the name of what they are assigned to
_ANONYMOUS_FUNCTION_TYPES = frozenset({'arrow_function', 'function_expression', 'function', 'class'})
_BINDING_FIELDS = {
    'variable_declarator': 'name',
    'pair': 'key',
    'assignment_expression': 'left',
    'public_field_definition': 'name',
    'field_definition': 'property',
}


def is_main_guard(node: SyntaxNode, source: bytes) -> bool:
    """True for a Python `if __name__ == '__main__':` block."""
    if node.type != 'if_statement':
        return False
    condition = node.child_by_field_name('condition')
    if condition is None:
        return False
    text = _node_text(condition, source)
    return '__name__' in text and '__main__' in text


def is_focus_node(node: SyntaxNode, language: SupportedLanguage, source: bytes) -> bool:
    if not node.is_named or node.is_error:
        return False
    if language in _MULTI_LINE_LANGUAGES:
        return node.start_point[0] != node.end_point[0]
    if language == 'python' and is_main_guard(node, source):
        return True
    return node.type in FOCUS_TYPES.get(language, ())


def extract_focus_nodes(
    root: SyntaxNode,
    source: bytes,
    language: SupportedLanguage,
    classifier: FocusClassifier,
) -> tuple[Sequence[FocusNode], int]:
    """Filter a syntax tree down to its focus nodes.

    Returns:
        (top-level focus nodes, number of error or missing nodes in the tree)
    """
    error_count = 0

    def collect(node: SyntaxNode) -> list[FocusNode]:
        nonlocal error_count
        found: list[FocusNode] = []
        for child in node.children:
            if child.is_error or child.is_missing:
                error_count += 1
            if classifier.is_focus_node(child, language, source):
                found.append(_to_focus_node(child, source, language, collect(child)))
            else:
                found.extend(collect(child))
        return found

    nodes = collect(root)
    return nodes, error_count


def _to_focus_node(
    node: SyntaxNode,
    source: bytes,
    language: SupportedLanguage,
    children: Sequence[FocusNode],
) -> FocusNode:
    text = _node_text(node, source)
    snippet = text if len(text) <= MAX_SNIPPET_CHARS else text[:MAX_SNIPPET_CHARS] + '...'
    if language == 'python' and is_main_guard(node, source):
        symbol = MAIN_GUARD_SYMBOL
    else:
        symbol = _identifier(node, source) or infer_symbol_name(text, language)
    return FocusNode(
        type=node.type,
        symbol_name=symbol,
        start_byte=node.start_byte,
        end_byte=node.end_byte,
        start=Position(row=node.start_point[0], column=node.start_point[1]),
        end=Position(row=node.end_point[0], column=node.end_point[1]),
        snippet=snippet,
        children=children,
    )


def _identifier(node: SyntaxNode, source: bytes) -> str | None:
    """Name taken from the tree itself, when the grammar exposes one."""
    name = node.child_by_field_name('name')
    if name is not None:
        return _node_text(name, source)

    # Wrappers: decorated_definition (Python), export_statement (JS/TS)
    for field in ('definition', 'declaration'):
        inner = node.child_by_field_name(field)
        if inner is not None:
            return _identifier(inner, source)

    if node.type == 'impl_item':
        impl_type = node.child_by_field_name('type')
        return _node_text(impl_type, source) if impl_type is not None else None

    if node.type in _ANONYMOUS_FUNCTION_TYPES and node.parent is not None:
        field = _BINDING_FIELDS.get(node.parent.type)
        binding = node.parent.child_by_field_name(field) if field is not None else None
        if binding is not None:
            return _node_text(binding, source)

    return None


_CODE_SYMBOL_PATTERNS = (
    re.compile(r'^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?function\*?\s+([A-Za-z_$][\w$]*)'),
    re.compile(r'^\s*(?:export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+([A-Za-z_$][\w$]*)'),
    re.compile(r'^\s*(?:export\s+)?(?:declare\s+)?(?:interface|enum|type)\s+([A-Za-z_$][\w$]*)'),
    re.compile(r'^\s*(?:export\s+)?(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*[:=]'),
    re.compile(r'^\s*(?:async\s+)?def\s+([A-Za-z_]\w*)'),
    re.compile(r'^\s*(?:pub(?:\([^)]*\))?\s+)?(?:async\s+)?(?:unsafe\s+)?(?:fn|struct|enum|trait|mod)\s+([A-Za-z_]\w*)'),
    re.compile(r'^\s*impl(?:<[^>]*>)?\s+(?:[\w:<>, ]+?\s+for\s+)?([A-Za-z_][\w:]*)'),
    re.compile(r'^\s*(?:(?:static|get|set|async|public|private|protected|readonly)\s+)*([A-Za-z_$][\w$]*)\s*[(<]'),
)
_CSS_SELECTOR_PATTERN = re.compile(r'^\s*([^{]+?)\s*\{')
_HTML_TAG_PATTERN = re.compile(r'^\s*<([A-Za-z][\w-]*)')


def infer_symbol_name(text: str, language: SupportedLanguage) -> str | None:
    """Guess a symbol name from the first meaningful source line.

    Decorator lines are skipped so decorated Python definitions resolve to
    the function or class they wrap.
    """
    line = next((ln for ln in text.splitlines() if ln.strip() and not ln.lstrip().startswith('@')), '')
    if not line:
        return None

    if language == 'css':
        match = _CSS_SELECTOR_PATTERN.match(line)
        return match.group(1) if match else None
    if language == 'html':
        match = _HTML_TAG_PATTERN.match(line)
        return match.group(1) if match else None

    for pattern in _CODE_SYMBOL_PATTERNS:
        match = pattern.match(line)
        if match:
            return match.group(1)
    return None


def _node_text(node: SyntaxNode, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode('utf-8', errors='replace')
