from __future__ import annotations

"""
Source Registry Service.

Owns the authoritative set of tracked source units, keyed by absolute path,
and triggers a merge pass after each mutation so that the output on disk
always reflects a fully processed event.
"""

import logging
from typing import Dict, List, Optional

from watchmerge.core.merge.engine import MergeEngine, MergeStatus
from watchmerge.core.parsing.java_parser import SourceParser
from watchmerge.domain.errors import OutputWriteError, SourceParseError
from watchmerge.domain.source_models import SourceUnit

logger = logging.getLogger(__name__)


class SourceRegistry:
    """
    Mapping of path to SourceUnit plus the add/modify/remove protocol.

    Not thread-safe: all mutations and merges happen on the thread running
    the watch loop.
    """

    def __init__(self, parser: SourceParser, engine: MergeEngine) -> None:
        self._parser = parser
        self._engine = engine
        self._units: Dict[str, SourceUnit] = {}

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    def units(self) -> List[SourceUnit]:
        """Snapshot of the tracked units in insertion order."""
        return list(self._units.values())

    def get(self, path: str) -> Optional[SourceUnit]:
        return self._units.get(path)

    def __contains__(self, path: object) -> bool:
        return path in self._units

    def __len__(self) -> int:
        return len(self._units)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add_or_replace(self, path: str, force_merge: bool = True) -> bool:
        """
        Parse 'path' and insert or replace its unit.

        Args:
            path: Absolute path of the source file.
            force_merge: Merge right away; callers batching several adds
                         pass False and call merge() once afterwards.

        Returns:
            bool: True if the file was parsed and stored. On failure any
                  previous unit is kept and no merge is forced.
        """
        logger.debug(f"Add source file {path}")
        if not self._parse_into(path):
            return False
        if force_merge:
            self.merge()
        return True

    def modify(self, path: str) -> bool:
        """
        Re-parse 'path' and merge, whether or not the parse succeeded.

        Returns:
            bool: True if the new content was parsed and stored.
        """
        logger.debug(f"Modify source file {path}")
        parsed = self._parse_into(path)
        self.merge()
        return parsed

    def remove(self, path: str) -> bool:
        """
        Forget the unit for 'path' and merge, even if nothing was tracked.

        Returns:
            bool: True if a unit was removed.
        """
        logger.debug(f"Delete source file {path}")
        removed = self._units.pop(path, None) is not None
        self.merge()
        return removed

    def merge(self) -> MergeStatus:
        """
        Run one merge pass over the current units.

        Write failures are logged here and do not propagate, so a full disk
        or a locked output never stops the watch.
        """
        try:
            return self._engine.merge(self)
        except OutputWriteError as e:
            logger.error(str(e), exc_info=e.cause)
            return MergeStatus.WRITE_FAILED

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _parse_into(self, path: str) -> bool:
        try:
            parsed = self._parser.parse(path)
        except SourceParseError as e:
            logger.error(f"Source parsing error: {e}")
            return False
        except OSError as e:
            logger.error(f"Source file io error on {path}: {e}")
            return False

        unit = self._units.get(path)
        if unit is None:
            unit = SourceUnit(path=path)
            self._units[path] = unit
        unit.apply(parsed)
        return True
