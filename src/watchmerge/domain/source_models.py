from __future__ import annotations

"""
Source Unit Domain Models.

Defines the in-memory representation of one tracked source file and the
structured parse result it is rebuilt from. Parse results are immutable;
the SourceUnit itself is updated in place on every successful re-parse.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

# -----------------------------------------------------------------------------
# PARSE RESULT MODELS
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class ParseProblem:
    """
    One syntax problem reported by the parser.

    Attributes:
        line: 1-based line number.
        column: 1-based column number.
        message: Human-readable description.
    """
    line: int
    column: int
    message: str

    def __str__(self) -> str:
        return f"{self.message} at {self.line}:{self.column}"


@dataclass(frozen=True)
class ImportSpec:
    """
    A single import declaration.

    Attributes:
        name: Dotted name as written, without the trailing '.*'.
        is_static: Whether the import is 'import static'.
        is_wildcard: Whether the import ends with '.*'.
    """
    name: str
    is_static: bool = False
    is_wildcard: bool = False

    @property
    def statement(self) -> str:
        """Render the import back to a Java statement."""
        keyword = "import static" if self.is_static else "import"
        suffix = ".*" if self.is_wildcard else ""
        return f"{keyword} {self.name}{suffix};"

    @property
    def sort_key(self) -> Tuple[bool, str, bool]:
        return (self.is_static, self.name, self.is_wildcard)


@dataclass(frozen=True)
class TypeDeclaration:
    """
    Full source text of one top-level type declaration.

    Attributes:
        name: Simple name of the declared type.
        kind: Grammar node type (class_declaration, enum_declaration...).
        text: Declaration source, from its first modifier to its closing brace.
        visibility_span: Character range of the 'public' modifier token inside
                         'text', trailing whitespace included. None if the
                         declaration is package-private.
    """
    name: str
    kind: str
    text: str
    visibility_span: Optional[Tuple[int, int]] = None

    def without_visibility(self) -> str:
        """Return the declaration text with its 'public' modifier removed."""
        if self.visibility_span is None:
            return self.text
        start, end = self.visibility_span
        return self.text[:start] + self.text[end:]


@dataclass(frozen=True)
class ParsedSource:
    """
    Structured result of parsing one compilation unit.

    Attributes:
        namespace: Declared package, or None for the default package.
        imports: Import declarations in source order.
        declarations: Top-level type declarations in source order.
        has_entry_point: Whether any method matches 'public static ... main'.
    """
    namespace: Optional[str] = None
    imports: Tuple[ImportSpec, ...] = ()
    declarations: Tuple[TypeDeclaration, ...] = ()
    has_entry_point: bool = False

    @property
    def primary_declaration(self) -> Optional[TypeDeclaration]:
        return self.declarations[0] if self.declarations else None

# -----------------------------------------------------------------------------
# SOURCE UNIT
# -----------------------------------------------------------------------------

@dataclass
class SourceUnit:
    """
    Registry record for one tracked source file.

    Always reflects the last successful parse of 'path'.

    Attributes:
        path: Absolute filesystem path, unique registry key.
        namespace: Declared package of the unit.
        type_name: Name of the first top-level type declaration.
        is_entry: Whether the unit declares the program entry point.
        parse_result: Last successful structured parse.
    """
    path: str
    namespace: Optional[str] = None
    type_name: Optional[str] = None
    is_entry: bool = False
    parse_result: ParsedSource = field(default_factory=ParsedSource)

    def apply(self, parsed: ParsedSource) -> None:
        """
        Reset the derived fields and rebuild them from a fresh parse result.

        Args:
            parsed: New parse result; replaces the previous one entirely.
        """
        self.namespace = None
        self.type_name = None
        self.is_entry = False

        self.parse_result = parsed
        self.namespace = parsed.namespace
        primary = parsed.primary_declaration
        if primary is not None:
            self.type_name = primary.name
        self.is_entry = parsed.has_entry_point

    @property
    def imports(self) -> Tuple[ImportSpec, ...]:
        return self.parse_result.imports

    @property
    def declaration(self) -> Optional[TypeDeclaration]:
        return self.parse_result.primary_declaration

    @property
    def qualified_name(self) -> Optional[str]:
        """Fully qualified name of the primary type, as other units import it."""
        if not self.type_name:
            return None
        if self.namespace:
            return f"{self.namespace}.{self.type_name}"
        return self.type_name
