from __future__ import annotations

"""
Global Pytest Configuration and Fixtures.

This module sets up the testing environment, including:
1. Path manipulation to ensure the 'src' directory is importable.
2. Test doubles for the parse capability, the merge engine and the
   filesystem notification backend.
3. Builders for small Java source trees.
"""

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Union

import pytest

# -----------------------------------------------------------------------------
# Path Configuration
# -----------------------------------------------------------------------------
_SRC_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if _SRC_PATH not in sys.path:
    sys.path.insert(0, _SRC_PATH)

from watchmerge.core.merge.engine import MergeEngine, MergeStatus  # noqa: E402
from watchmerge.core.watch.source import RawEvent, WatchHandle, WatchSource  # noqa: E402
from watchmerge.domain.errors import SourceParseError, WatchRegistrationError  # noqa: E402
from watchmerge.domain.source_models import ParsedSource, ParseProblem  # noqa: E402

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5)
FIXED_STAMP = "// Last generated at 03h04:05 (02/01/2024)"

# -----------------------------------------------------------------------------
# Java Samples
# -----------------------------------------------------------------------------
MAIN_JAVA = """package p;

import x.Y;
import p.Helper;

public class Main {
    public static void main(String[] args) {
        System.out.println(new Helper().greet());
    }
}
"""

HELPER_JAVA = """package p;

import x.Y;

public class Helper {
    String greet() {
        return "hi";
    }
}
"""

MAIN_WITHOUT_ENTRY_JAVA = """package p;

import x.Y;

public class Main {
    void run() {
    }
}
"""

BROKEN_JAVA = """package p;

public class Broken {
    void f( {
}
"""


# -----------------------------------------------------------------------------
# Test Doubles
# -----------------------------------------------------------------------------
class StaticParser:
    """Parse capability returning canned results keyed by path."""

    def __init__(self) -> None:
        self.results: Dict[str, Union[ParsedSource, Exception]] = {}
        self.calls: List[str] = []

    def set(self, path: str, result: Union[ParsedSource, Exception]) -> None:
        self.results[path] = result

    def fail(self, path: str) -> None:
        self.results[path] = SourceParseError(path, [ParseProblem(1, 1, "Syntax error")])

    def parse(self, path: str) -> ParsedSource:
        self.calls.append(path)
        result = self.results.get(path)
        if result is None:
            raise FileNotFoundError(path)
        if isinstance(result, Exception):
            raise result
        return result


class CountingEngine(MergeEngine):
    """MergeEngine recording the status of every pass."""

    def __init__(self, output_path: str, **kwargs) -> None:
        kwargs.setdefault("clock", lambda: FIXED_NOW)
        super().__init__(output_path, **kwargs)
        self.statuses: List[MergeStatus] = []

    def merge(self, registry) -> MergeStatus:
        status = super().merge(registry)
        self.statuses.append(status)
        return status


class FakeWatchSource(WatchSource):
    """
    Scripted WatchSource over real directories.

    Batches are callables evaluated when read, so they can reference handles
    registered after the script was written.
    """

    def __init__(self) -> None:
        self.handles: Dict[str, WatchHandle] = {}
        self.unregistered: List[str] = []
        self.fail_on: Set[str] = set()
        self.invalid: Set[str] = set()
        self.batches: List[Callable[[], List[RawEvent]]] = []
        self.closed = False

    def register(self, directory: str) -> WatchHandle:
        if directory in self.fail_on:
            raise WatchRegistrationError(directory, PermissionError("denied"))
        handle = WatchHandle(directory=directory)
        self.handles[directory] = handle
        return handle

    def unregister(self, handle: WatchHandle) -> None:
        self.unregistered.append(handle.directory)

    def read_batch(self, timeout: Optional[float] = None) -> List[RawEvent]:
        if not self.batches:
            raise RuntimeError("No more scripted events")
        return self.batches.pop(0)()

    def rearm(self, handle: WatchHandle) -> bool:
        return os.path.isdir(handle.directory) and handle.directory not in self.invalid

    def close(self) -> None:
        self.closed = True

    def event(self, directory: Union[str, Path], event_type: str, name: str,
              dest_name: Optional[str] = None, is_directory: bool = False) -> RawEvent:
        return RawEvent(
            handle=self.handles[str(directory)],
            event_type=event_type,
            name=name,
            dest_name=dest_name,
            is_directory=is_directory,
        )


# -----------------------------------------------------------------------------
# Shared Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def static_parser() -> StaticParser:
    return StaticParser()


@pytest.fixture
def fake_source() -> FakeWatchSource:
    return FakeWatchSource()


@pytest.fixture
def java_project(tmp_path: Path) -> Path:
    """
    Create a small watched tree.

    Structure:
    /project
      /src/p/Main.java          (entry point)
      /src/p/util/Helper.java
      README.md
      /target/Generated.java    (excluded directory)
    """
    root = tmp_path / "project"
    (root / "src" / "p" / "util").mkdir(parents=True)
    (root / "target").mkdir()

    (root / "src" / "p" / "Main.java").write_text(MAIN_JAVA, encoding="utf-8")
    (root / "src" / "p" / "util" / "Helper.java").write_text(HELPER_JAVA, encoding="utf-8")
    (root / "README.md").write_text("# Notes", encoding="utf-8")
    (root / "target" / "Generated.java").write_text(MAIN_JAVA, encoding="utf-8")
    return root
