from __future__ import annotations

"""
Path Filtering and Classification.

Decides which files count as sources (a pure extension check) and which
directories are excluded from watching (regex match on any path component).
The merged output and its temporary siblings are never sources.
"""

import os
import re
from typing import Iterable, List, Optional, Sequence

from watchmerge.core.merge.writer import TEMP_SUFFIX, temp_prefix
from watchmerge.infra.fs import is_same_or_within

# -----------------------------------------------------------------------------
# REGEX HELPERS
# -----------------------------------------------------------------------------

def compile_patterns(patterns: Iterable[str]) -> List[re.Pattern]:
    """
    Compile raw regex strings, skipping invalid ones.

    Returns:
        List[re.Pattern]: Successfully compiled patterns.
    """
    out: List[re.Pattern] = []
    for p in patterns:
        try:
            out.append(re.compile(p))
        except re.error:
            continue
    return out


def matches_any(name: str, patterns: Sequence[re.Pattern]) -> bool:
    """Check whether a single path component matches any pattern."""
    return any(rx.search(name) for rx in patterns)

# -----------------------------------------------------------------------------
# CLASSIFICATION
# -----------------------------------------------------------------------------

class PathFilter:
    """
    Classifies absolute paths below a watched root.

    Args:
        root: Absolute root directory of the watch.
        extensions: Source file extensions, dot included.
        exclude_patterns: Regexes matched against each path component below root.
        output_path: Merged output file, excluded from sources.
    """

    def __init__(
            self,
            root: str,
            extensions: Sequence[str],
            exclude_patterns: Sequence[str] = (),
            output_path: Optional[str] = None,
    ) -> None:
        self.root = root
        self.extensions = tuple(e.lower() for e in extensions)
        self.exclude_rx = compile_patterns(exclude_patterns)
        self.output_path = output_path

    def is_source_file(self, path: str) -> bool:
        """Extension check, ignoring the merged output and its temp files."""
        if self.output_path:
            if path == self.output_path:
                return False
            name = os.path.basename(path)
            if (os.path.dirname(path) == os.path.dirname(self.output_path)
                    and name.startswith(temp_prefix(self.output_path))
                    and name.endswith(TEMP_SUFFIX)):
                return False
        return path.lower().endswith(self.extensions)

    def is_excluded(self, path: str) -> bool:
        """True if any component of 'path' below the root matches an exclusion."""
        if not self.exclude_rx or not is_same_or_within(path, self.root) or path == self.root:
            return False
        rel = os.path.relpath(path, self.root)
        return any(matches_any(part, self.exclude_rx) for part in rel.split(os.sep))
