from __future__ import annotations

"""
Recursive Change Detector.

Maintains a live view of the paths under the watched root and translates
raw backend notifications into Created/Modified/Deleted events forwarded to
the source registry. Subdirectories are registered one by one on the
initial walk and on every directory creation, so recursion never depends
on the platform's native support.
"""

import enum
import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, List, Set

from watchmerge.core.merge.registry import SourceRegistry
from watchmerge.core.watch.filters import PathFilter
from watchmerge.core.watch.source import RawEvent, WatchHandle, WatchSource
from watchmerge.domain.errors import WatchMergeError, WatchRegistrationError, WatchSetupError
from watchmerge.infra.fs import is_same_or_within
from watchmerge.infra.logging import TRACE

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# NORMALIZED EVENTS
# -----------------------------------------------------------------------------

class ChangeKind(enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """A classified filesystem change carrying an absolute path."""
    kind: ChangeKind
    path: str
    is_directory: bool = False


_KIND_BY_EVENT_TYPE: Dict[str, ChangeKind] = {
    "created": ChangeKind.CREATED,
    "modified": ChangeKind.MODIFIED,
    "deleted": ChangeKind.DELETED,
}

# -----------------------------------------------------------------------------
# DETECTOR
# -----------------------------------------------------------------------------

class ChangeDetector:
    """
    Drives the watch loop for one root directory.

    Args:
        root: Directory to watch; normalized to an absolute path.
        source: Notification backend.
        registry: Registry receiving source file mutations.
        path_filter: Source recognition and directory exclusions.
    """

    def __init__(
            self,
            root: str,
            source: WatchSource,
            registry: SourceRegistry,
            path_filter: PathFilter,
    ) -> None:
        self.root = os.path.normpath(os.path.abspath(root))
        self._source = source
        self._registry = registry
        self._filter = path_filter

        self.key_to_path: Dict[WatchHandle, str] = {}
        self.watched_files: Set[str] = set()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def run(self) -> None:
        """
        Watch the root until every watched directory is gone.

        Raises:
            WatchSetupError: If the root itself cannot be watched.
        """
        self.start_watching()
        while self.key_to_path:
            self.process_batch(self._source.read_batch())
        logger.info("My watch is ended.")

    def start_watching(self) -> None:
        """
        Register the whole tree, track every file, then merge once.

        Raises:
            WatchSetupError: If the root is missing or cannot be registered.
        """
        if not os.path.isdir(self.root):
            raise WatchSetupError(self.root, FileNotFoundError("not a directory"))
        logger.info(f"Watching folder {self.root}")

        try:
            self._register_directory(self.root)
        except WatchRegistrationError as e:
            raise WatchSetupError(self.root, e.cause) from e

        self._register_tree(self.root)
        logger.debug(f"{len(self.watched_files)} files are watched at initialization.")
        self._registry.merge()

    def process_batch(self, batch: Iterable[RawEvent]) -> None:
        """
        Dispatch one batch of raw events, then re-arm the handles involved.

        Failures of a single event are logged and never leave this method.
        """
        touched: List[WatchHandle] = []
        for raw in batch:
            if raw.handle not in self.key_to_path:
                logger.log(TRACE, f"Dropping event from stale watch {raw.handle.directory}")
                continue
            if raw.handle not in touched:
                touched.append(raw.handle)
            for event in self.classify(raw):
                self._dispatch(event)

        for handle in touched:
            if handle in self.key_to_path and not self._source.rearm(handle):
                logger.info(f"Unregister path {self.key_to_path[handle]}")
                self._drop_handle(handle)

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def classify(self, raw: RawEvent) -> List[ChangeEvent]:
        """
        Map a backend event to normalized events with absolute paths.

        A move becomes a deletion of its source followed by a creation of its
        destination; unknown event types map to nothing.
        """
        base = self.key_to_path.get(raw.handle, raw.handle.directory)
        path = os.path.normpath(os.path.join(base, raw.name))
        logger.log(TRACE, f"Event kind : {raw.event_type} - File affected : {path}")

        if raw.event_type == "moved":
            events = [ChangeEvent(ChangeKind.DELETED, path, raw.is_directory)]
            if raw.dest_name:
                dest = os.path.normpath(os.path.join(base, raw.dest_name))
                events.append(ChangeEvent(ChangeKind.CREATED, dest, raw.is_directory))
            return events

        kind = _KIND_BY_EVENT_TYPE.get(raw.event_type)
        return [ChangeEvent(kind, path, raw.is_directory)] if kind is not None else []

    def _dispatch(self, event: ChangeEvent) -> None:
        if self._filter.is_excluded(event.path):
            return
        try:
            if event.kind is ChangeKind.CREATED:
                self.on_created(event.path, event.is_directory)
            elif event.kind is ChangeKind.DELETED:
                self.on_deleted(event.path)
            else:
                self.on_modified(event.path)
        except (OSError, WatchMergeError) as e:
            logger.error(f"Failed to process {event.kind.value} event on {event.path}: {e}", exc_info=True)

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------

    def on_created(self, path: str, is_directory: bool = False) -> None:
        if os.path.isdir(path):
            self._register_tree(path)
            self._registry.merge()
            return
        if is_directory:
            # Directory already gone again: its deletion event follows
            logger.debug(f"Directory {path} vanished before it could be watched")
            return

        is_source = self._filter.is_source_file(path)
        logger.log(TRACE, f"Added file {path} - is source? {is_source}")
        self.watched_files.add(path)
        if is_source:
            self._registry.add_or_replace(path, force_merge=True)

    def on_deleted(self, path: str) -> None:
        if path in self.watched_files:
            self.watched_files.discard(path)
            is_source = self._filter.is_source_file(path)
            logger.log(TRACE, f"Deleted file {path} - is source? {is_source}")
            if is_source:
                self._registry.remove(path)
            return

        # Not a tracked file: treat it as a directory and drop its whole subtree
        for tracked in sorted(p for p in self.watched_files if is_same_or_within(p, path)):
            self.watched_files.discard(tracked)
            is_source = self._filter.is_source_file(tracked)
            logger.log(TRACE, f"Deleted file {tracked} - is source? {is_source}")
            if is_source:
                self._registry.remove(tracked)

        for handle, directory in list(self.key_to_path.items()):
            if is_same_or_within(directory, path):
                logger.info(f"Unregister path {directory}")
                self._drop_handle(handle)

    def on_modified(self, path: str) -> None:
        if path not in self.watched_files:
            return
        is_source = self._filter.is_source_file(path)
        logger.log(TRACE, f"Modified file {path} - is source? {is_source}")
        if is_source:
            self._registry.modify(path)

    # -------------------------------------------------------------------------
    # Registration bookkeeping
    # -------------------------------------------------------------------------

    def _register_tree(self, start: str) -> None:
        """
        Walk 'start', registering each directory and tracking each file.

        Source files are added without merging; the caller merges once.
        Listing or registration failures skip the affected subtree.
        """
        def on_walk_error(err: OSError) -> None:
            logger.error(f"Cannot list directory {err.filename}: {err.strerror or err}")

        for dirpath, dirnames, filenames in os.walk(start, onerror=on_walk_error):
            dirpath = os.path.normpath(dirpath)
            if dirpath not in self.key_to_path.values():
                try:
                    self._register_directory(dirpath)
                except WatchRegistrationError as e:
                    logger.error(f"{e}. Skipping subtree.")
                    dirnames[:] = []
                    continue

            dirnames[:] = sorted(
                d for d in dirnames if not self._filter.is_excluded(os.path.join(dirpath, d))
            )
            for name in sorted(filenames):
                path = os.path.join(dirpath, name)
                is_source = self._filter.is_source_file(path)
                logger.log(TRACE, f"Added file {path} - is source? {is_source}")
                self.watched_files.add(path)
                if is_source:
                    self._registry.add_or_replace(path, force_merge=False)

    def _register_directory(self, directory: str) -> None:
        handle = self._source.register(directory)
        self.key_to_path[handle] = directory
        logger.debug(f"Registered watch on {directory}")

    def _drop_handle(self, handle: WatchHandle) -> None:
        self.key_to_path.pop(handle, None)
        self._source.unregister(handle)
