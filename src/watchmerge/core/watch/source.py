from __future__ import annotations

"""
Filesystem Notification Sources.

Isolates the blocking wait for filesystem events behind the WatchSource
interface so that the change detector never depends on a concrete backend.

WatchdogSource hands out one logical handle per registered directory but
backs them with a single recursive watchdog schedule per independent tree,
so a large tree costs one emitter (one inotify instance on Linux) instead
of one per directory. Events are routed to the handle of their parent
directory; events from directories nobody registered are dropped, which
keeps per-directory semantics. Observer threads only enqueue events, and
read_batch() routes them on the single thread running the watch loop.
"""

import errno
import logging
import os
import queue
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from watchmerge.domain.errors import WatchRegistrationError
from watchmerge.infra.fs import is_same_or_within

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# CONTRACT
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class WatchHandle:
    """
    Opaque registration token for one watched directory.

    Compared by identity so that re-registering a directory yields a new key.
    """
    directory: str
    backend: Any = field(default=None, repr=False)


@dataclass(frozen=True)
class RawEvent:
    """
    Backend notification before classification.

    Attributes:
        handle: Registration that observed the event.
        event_type: Backend event type ('created', 'modified', 'deleted',
                    'moved', or anything else to ignore).
        name: Affected path relative to the handle's directory.
        dest_name: Destination relative path for 'moved' events.
        is_directory: Backend hint about the affected entry.
    """
    handle: WatchHandle
    event_type: str
    name: str
    dest_name: Optional[str] = None
    is_directory: bool = False


class WatchSource(ABC):
    """Registration and blocking delivery of directory-level notifications."""

    @abstractmethod
    def register(self, directory: str) -> WatchHandle:
        """
        Start watching the direct children of 'directory'.

        Raises:
            WatchRegistrationError: If the directory cannot be watched.
        """

    @abstractmethod
    def unregister(self, handle: WatchHandle) -> None:
        """Cancel a registration. Unknown or dead handles are ignored."""

    @abstractmethod
    def read_batch(self, timeout: Optional[float] = None) -> List[RawEvent]:
        """
        Block until at least one event is available and return all pending ones.

        Args:
            timeout: Maximum wait in seconds; None waits forever.

        Returns:
            List[RawEvent]: Events in delivery order, empty on timeout.
        """

    @abstractmethod
    def rearm(self, handle: WatchHandle) -> bool:
        """Re-enable delivery for 'handle' after a batch; False if permanently invalid."""

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self) -> "WatchSource":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

# -----------------------------------------------------------------------------
# WATCHDOG BACKEND
# -----------------------------------------------------------------------------

class _TreeHandler(FileSystemEventHandler):
    """Forwards every event of one recursive schedule to the shared queue."""

    def __init__(self, sink: "queue.Queue[FileSystemEvent]") -> None:
        super().__init__()
        self._sink = sink

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._sink.put(event)


class WatchdogSource(WatchSource):
    """
    WatchSource backed by a watchdog Observer.

    Args:
        observer: Pre-built observer (e.g. a PollingObserver); defaults to
                  the platform's native observer.
    """

    def __init__(self, observer: Optional[Any] = None) -> None:
        self._queue: "queue.Queue[FileSystemEvent]" = queue.Queue()
        self._observer = observer if observer is not None else Observer()
        self._observer.daemon = True
        self._observer.start()

        # Logical registrations and the recursive schedules backing them
        self._handles: Dict[str, WatchHandle] = {}
        self._schedules: Dict[str, Any] = {}

    def register(self, directory: str) -> WatchHandle:
        directory = os.path.normpath(directory)
        if not os.path.isdir(directory):
            raise WatchRegistrationError(
                directory, FileNotFoundError(errno.ENOENT, "No such directory", directory)
            )

        watch = self._covering_schedule(directory)
        if watch is None:
            try:
                watch = self._observer.schedule(_TreeHandler(self._queue), directory, recursive=True)
            except OSError as e:
                raise WatchRegistrationError(directory, e) from e
            self._schedules[directory] = watch
            logger.debug(f"Scheduled recursive watch on {directory}")

        handle = WatchHandle(directory=directory, backend=watch)
        self._handles[directory] = handle
        return handle

    def unregister(self, handle: WatchHandle) -> None:
        if handle.backend is None:
            return
        if self._handles.get(handle.directory) is handle:
            del self._handles[handle.directory]

        watch = handle.backend
        handle.backend = None
        if not any(h.backend is watch for h in self._handles.values()):
            self._release_schedule(watch)

    def read_batch(self, timeout: Optional[float] = None) -> List[RawEvent]:
        while True:
            try:
                first = self._queue.get(timeout=timeout)
            except queue.Empty:
                return []

            pending = [first]
            while True:
                try:
                    pending.append(self._queue.get_nowait())
                except queue.Empty:
                    break

            routed = [raw for raw in (self._route(event) for event in pending) if raw is not None]
            if routed or timeout is not None:
                return routed

    def rearm(self, handle: WatchHandle) -> bool:
        # Native backends keep delivering until the directory itself is gone
        return handle.backend is not None and os.path.isdir(handle.directory)

    def close(self) -> None:
        self._observer.stop()
        self._observer.join()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _covering_schedule(self, directory: str) -> Optional[Any]:
        for root, watch in self._schedules.items():
            if is_same_or_within(directory, root):
                return watch
        return None

    def _release_schedule(self, watch: Any) -> None:
        for root, scheduled in list(self._schedules.items()):
            if scheduled is watch:
                del self._schedules[root]
                logger.debug(f"Releasing recursive watch on {root}")
        try:
            self._observer.unschedule(watch)
        except (KeyError, OSError) as e:
            logger.debug(f"Watch already released: {e!r}")

    def _route(self, event: FileSystemEvent) -> Optional[RawEvent]:
        """
        Attribute an event to the registered parent of the affected path.

        A move into a registered directory from an unregistered one becomes
        a creation; an event on a registered directory whose parent is not
        registered (the root itself) is reported with name '.'.
        """
        src = os.path.normpath(os.fsdecode(event.src_path))
        raw_dest = getattr(event, "dest_path", "") or ""
        dest = os.path.normpath(os.fsdecode(raw_dest)) if raw_dest else None

        parent = self._handles.get(os.path.dirname(src))
        if parent is not None:
            return RawEvent(
                handle=parent,
                event_type=event.event_type,
                name=os.path.relpath(src, parent.directory),
                dest_name=os.path.relpath(dest, parent.directory) if dest else None,
                is_directory=event.is_directory,
            )

        if event.event_type == "moved" and dest:
            dest_parent = self._handles.get(os.path.dirname(dest))
            if dest_parent is not None:
                return RawEvent(
                    handle=dest_parent,
                    event_type="created",
                    name=os.path.basename(dest),
                    is_directory=event.is_directory,
                )

        own = self._handles.get(src)
        if own is not None:
            return RawEvent(
                handle=own,
                event_type=event.event_type,
                name=".",
                dest_name=os.path.relpath(dest, own.directory) if dest else None,
                is_directory=event.is_directory,
            )
        return None
