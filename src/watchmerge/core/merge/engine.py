from __future__ import annotations

"""
Merge and Serialization Engine.

Synthesizes the single-file output from the current registry state:
selects the unique entry unit, computes the de-duplicated import section,
and concatenates the top-level type declarations behind it.

Output layout:
    import a.B;
    import c.D;
    <blank>
    <entry type, 'public' removed>
    <blank>
    <helper type>
    ...
    <blank>
    // Last generated at <timestamp>
"""

import enum
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TYPE_CHECKING

from watchmerge.core.merge.writer import write_output
from watchmerge.domain.constants import DEFAULT_TIMESTAMP_FORMAT, GENERATED_COMMENT_PREFIX
from watchmerge.domain.errors import AmbiguousEntryPointError
from watchmerge.domain.source_models import ImportSpec, SourceUnit

if TYPE_CHECKING:
    from watchmerge.core.merge.registry import SourceRegistry

logger = logging.getLogger(__name__)


class MergeStatus(enum.Enum):
    """Outcome of one merge pass."""
    WRITTEN = "written"
    NO_ENTRY = "no_entry"
    AMBIGUOUS_ENTRY = "ambiguous_entry"
    MISSING_DECLARATION = "missing_declaration"
    WRITE_FAILED = "write_failed"


# -----------------------------------------------------------------------------
# SELECTION HELPERS
# -----------------------------------------------------------------------------

def find_entry_unit(units: Iterable[SourceUnit]) -> Optional[SourceUnit]:
    """
    Locate the unique unit declaring the program entry point.

    Args:
        units: Units currently tracked by the registry.

    Returns:
        Optional[SourceUnit]: The entry unit, or None when no unit has one.

    Raises:
        AmbiguousEntryPointError: If two or more units declare an entry point.
    """
    entries = [u for u in units if u.is_entry]
    if len(entries) > 1:
        raise AmbiguousEntryPointError([u.path for u in entries])
    return entries[0] if entries else None


def collect_imports(units: Sequence[SourceUnit], sort: bool = True) -> List[ImportSpec]:
    """
    Union every unit's imports, minus those naming a type being merged.

    Once merged into one file, such types are local: importing them would
    be redundant or invalid. Static and wildcard imports are always kept.

    Args:
        units: Units contributing to the output.
        sort: Order the result (static imports last) for reproducible output.

    Returns:
        List[ImportSpec]: De-duplicated import declarations.
    """
    local_names = {u.qualified_name for u in units if u.qualified_name}

    seen: Dict[ImportSpec, None] = {}
    for unit in units:
        for imp in unit.imports:
            if not imp.is_static and not imp.is_wildcard and imp.name in local_names:
                continue
            seen.setdefault(imp, None)

    imports = list(seen)
    if sort:
        imports.sort(key=lambda i: i.sort_key)
    return imports


def find_shortest_namespace(units: Iterable[SourceUnit]) -> Optional[str]:
    """Pick the shortest declared package, ties broken lexicographically."""
    namespaces = [u.namespace for u in units if u.namespace]
    if not namespaces:
        return None
    return min(namespaces, key=lambda ns: (len(ns), ns))

# -----------------------------------------------------------------------------
# ENGINE
# -----------------------------------------------------------------------------

class MergeEngine:
    """
    Renders and writes the merged output for a registry snapshot.

    Args:
        output_path: Destination of the merged file.
        sort_imports: Emit imports in a deterministic order.
        atomic_write: Replace the output through a temporary file.
        strip_all_public: Also remove 'public' from helper types.
        timestamp_format: strftime format of the trailing generation comment.
        clock: Time source, injectable for tests.
    """

    def __init__(
            self,
            output_path: str,
            *,
            sort_imports: bool = True,
            atomic_write: bool = True,
            strip_all_public: bool = False,
            timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
            clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.output_path = output_path
        self.sort_imports = sort_imports
        self.atomic_write = atomic_write
        self.strip_all_public = strip_all_public
        self.timestamp_format = timestamp_format
        self._clock = clock

    def merge(self, registry: "SourceRegistry") -> MergeStatus:
        """
        Run one merge pass over the registry's current units.

        Args:
            registry: Registry holding the tracked source units.

        Returns:
            MergeStatus: What the pass did. Anything but WRITTEN leaves the
                         previous output file untouched.

        Raises:
            OutputWriteError: If the output cannot be persisted.
        """
        units = registry.units()

        try:
            entry = find_entry_unit(units)
        except AmbiguousEntryPointError as e:
            logger.warning(f"{e}. Merge skipped until only one remains.")
            return MergeStatus.AMBIGUOUS_ENTRY

        if entry is None:
            logger.debug("No main class tracked yet. Nothing to write.")
            return MergeStatus.NO_ENTRY

        if entry.declaration is None:
            logger.warning(f"Main class file {entry.path} has no top-level type declaration.")
            return MergeStatus.MISSING_DECLARATION

        content = self.render(entry, units)
        logger.info(f"Writing file {self.output_path}")
        logger.debug(f"Base package: {find_shortest_namespace(units)}")
        write_output(self.output_path, content, atomic=self.atomic_write)
        return MergeStatus.WRITTEN

    def render(self, entry: SourceUnit, units: Sequence[SourceUnit]) -> str:
        """
        Build the merged file content.

        Args:
            entry: The unit declaring the entry point.
            units: All tracked units, entry included.

        Returns:
            str: Complete text of the merged compilation unit.

        Raises:
            ValueError: If the entry unit has no type declaration.
        """
        entry_decl = entry.declaration
        if entry_decl is None:
            raise ValueError(f"Entry unit {entry.path} has no type declaration")

        parts: List[str] = [imp.statement + "\n" for imp in collect_imports(units, self.sort_imports)]
        parts.append("\n")
        parts.append(entry_decl.without_visibility())

        for unit in sorted(units, key=lambda u: u.path):
            if unit is entry or unit.declaration is None:
                continue
            decl = unit.declaration
            logger.debug(f"Appending {decl.kind} {decl.name} from {unit.path}")
            parts.append("\n\n")
            parts.append(decl.without_visibility() if self.strip_all_public else decl.text)
            parts.append("\n")

        parts.append("\n\n")
        parts.append(GENERATED_COMMENT_PREFIX + self._clock().strftime(self.timestamp_format))
        parts.append("\n")
        return "".join(parts)
