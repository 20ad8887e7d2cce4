from __future__ import annotations

"""
Domain Constants.

Centralizes the Java-specific vocabulary used by the parser and the merge
engine, plus application-wide defaults.
"""

from typing import FrozenSet, List

CURRENT_CONFIG_VERSION = "1.0.0"

DEFAULT_SOURCE_EXTENSIONS: List[str] = [".java"]

# Directory names never worth watching in a Java workspace
DEFAULT_EXCLUDE_PATTERNS: List[str] = [
    r"^\.git$",
    r"^\.idea$",
    r"^\.vscode$",
    r"^target$",
    r"^build$",
    r"^out$",
    r"^node_modules$",
]

# Same layout as the historical "HH'h'mm:ss (dd/MM/yyyy)" stamp
DEFAULT_TIMESTAMP_FORMAT = "%Hh%M:%S (%d/%m/%Y)"
GENERATED_COMMENT_PREFIX = "// Last generated at "

# -----------------------------------------------------------------------------
# JAVA GRAMMAR VOCABULARY (Tree-sitter node types)
# -----------------------------------------------------------------------------

PARSER_LANGUAGE = "java"

ENTRY_METHOD_NAME = "main"
ENTRY_METHOD_MODIFIERS: FrozenSet[str] = frozenset({"public", "static"})
VISIBILITY_KEYWORD = "public"

TYPE_DECLARATION_NODES: FrozenSet[str] = frozenset({
    "class_declaration",
    "interface_declaration",
    "enum_declaration",
    "record_declaration",
    "annotation_type_declaration",
})

NAME_NODES: FrozenSet[str] = frozenset({"identifier", "scoped_identifier"})
