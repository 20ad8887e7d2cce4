from __future__ import annotations

"""
Java Source Analysis Service.

Adapts the Tree-sitter Java grammar to the parse capability required by the
source registry: a full structural scan that reports the declared package,
the imports, the top-level type declarations with their exact source text,
and whether any method carries the 'public static main' entry signature.
Files with syntax errors are rejected with a structured problem list.
"""

import logging
from typing import Any, Iterator, List, Optional, Protocol, Tuple

from tree_sitter_language_pack import get_parser

from watchmerge.domain import constants as const
from watchmerge.domain.errors import ParserUnavailableError, SourceParseError
from watchmerge.domain.source_models import (
    ImportSpec,
    ParsedSource,
    ParseProblem,
    TypeDeclaration,
)

logger = logging.getLogger(__name__)


class SourceParser(Protocol):
    """Parse capability consumed by the source registry."""

    def parse(self, path: str) -> ParsedSource:
        ...

# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

class JavaSourceParser:
    """
    Tree-sitter backed implementation of the SourceParser capability.

    The underlying grammar parser is created lazily and reused for every file.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding
        self._parser: Any = None

    def parse(self, path: str) -> ParsedSource:
        """
        Read and parse one Java file.

        Args:
            path: Absolute path of the file.

        Returns:
            ParsedSource: Structured view of the compilation unit.

        Raises:
            OSError: If the file cannot be read.
            SourceParseError: If the file contains syntax errors, or
                              ParserUnavailableError if the grammar cannot be loaded.
        """
        with open(path, "rb") as f:
            source = f.read()
        return self.parse_bytes(source, path)

    def parse_bytes(self, source: bytes, path: str = "<memory>") -> ParsedSource:
        """
        Parse in-memory Java source.

        Args:
            source: Raw file bytes.
            path: Label used in error reports.

        Raises:
            SourceParseError: If the file contains syntax errors.
            ParserUnavailableError: If the Java grammar cannot be loaded or run.
        """
        try:
            tree = self._get_parser().parse(source)
        except Exception as e:
            # Library-level failure (grammar lookup or download, bindings)
            raise ParserUnavailableError(path, e) from e
        root = tree.root_node

        if root.has_error:
            raise SourceParseError(path, _collect_problems(root))

        namespace: Optional[str] = None
        imports: List[ImportSpec] = []
        declarations: List[TypeDeclaration] = []

        for node in root.named_children:
            if node.type == "package_declaration":
                namespace = _first_name(node, source)
            elif node.type == "import_declaration":
                spec = _import_spec(node, source)
                if spec is not None:
                    imports.append(spec)
            elif node.type in const.TYPE_DECLARATION_NODES:
                decl = _type_declaration(node, source, self.encoding)
                if decl is not None:
                    declarations.append(decl)

        has_entry = any(_is_entry_method(m, source) for m in _iter_nodes(root, "method_declaration"))

        logger.debug(
            f"Parsed {path}: package={namespace}, types={[d.name for d in declarations]}, "
            f"imports={len(imports)}, entry={has_entry}"
        )
        return ParsedSource(
            namespace=namespace,
            imports=tuple(imports),
            declarations=tuple(declarations),
            has_entry_point=has_entry,
        )

    def _get_parser(self) -> Any:
        if self._parser is None:
            self._parser = get_parser(const.PARSER_LANGUAGE)
        return self._parser

# -----------------------------------------------------------------------------
# PRIVATE HELPERS: TREE TRAVERSAL
# -----------------------------------------------------------------------------

def _text(node: Any, source: bytes, encoding: str = "utf-8") -> str:
    return source[node.start_byte:node.end_byte].decode(encoding, errors="replace")


def _iter_nodes(root: Any, node_type: str) -> Iterator[Any]:
    """Yield every descendant of 'root' with the given type, in source order."""
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == node_type:
            yield node
        stack.extend(reversed(node.children))


def _collect_problems(root: Any) -> List[ParseProblem]:
    """Gather ERROR and MISSING nodes, descending only into erroneous subtrees."""
    problems: List[ParseProblem] = []
    stack = [root]
    while stack:
        node = stack.pop()
        line, column = node.start_point[0] + 1, node.start_point[1] + 1
        if node.is_missing:
            problems.append(ParseProblem(line, column, f"Missing '{node.type}'"))
            continue
        if node.is_error:
            problems.append(ParseProblem(line, column, "Syntax error"))
            continue
        stack.extend(reversed([c for c in node.children if c.has_error or c.is_missing]))
    if not problems:
        problems.append(ParseProblem(1, 1, "Syntax error"))
    return problems


def _first_name(node: Any, source: bytes) -> Optional[str]:
    for child in node.named_children:
        if child.type in const.NAME_NODES:
            return _text(child, source)
    return None


def _modifier_tokens(node: Any) -> List[Any]:
    """Return the keyword/annotation children of the node's 'modifiers' list."""
    for child in node.children:
        if child.type == "modifiers":
            return list(child.children)
    return []

# -----------------------------------------------------------------------------
# PRIVATE HELPERS: DECLARATION EXTRACTION
# -----------------------------------------------------------------------------

def _import_spec(node: Any, source: bytes) -> Optional[ImportSpec]:
    name = _first_name(node, source)
    if name is None:
        return None
    child_types = {c.type for c in node.children}
    return ImportSpec(
        name=name,
        is_static="static" in child_types,
        is_wildcard="asterisk" in child_types,
    )


def _type_declaration(node: Any, source: bytes, encoding: str) -> Optional[TypeDeclaration]:
    name_node = node.child_by_field_name("name")
    if name_node is None:
        return None

    raw = source[node.start_byte:node.end_byte]
    span: Optional[Tuple[int, int]] = None
    for token in _modifier_tokens(node):
        if token.type == const.VISIBILITY_KEYWORD:
            start = token.start_byte - node.start_byte
            end = token.end_byte - node.start_byte
            # Swallow the whitespace separating the keyword from the next token
            while end < len(raw) and raw[end:end + 1] in (b" ", b"\t", b"\r", b"\n"):
                end += 1
            span = (
                len(raw[:start].decode(encoding, errors="replace")),
                len(raw[:end].decode(encoding, errors="replace")),
            )
            break

    return TypeDeclaration(
        name=_text(name_node, source, encoding),
        kind=node.type,
        text=raw.decode(encoding, errors="replace"),
        visibility_span=span,
    )


def _is_entry_method(node: Any, source: bytes) -> bool:
    name_node = node.child_by_field_name("name")
    if name_node is None or _text(name_node, source) != const.ENTRY_METHOD_NAME:
        return False
    modifiers = {t.type for t in _modifier_tokens(node)}
    return const.ENTRY_METHOD_MODIFIERS.issubset(modifiers)
