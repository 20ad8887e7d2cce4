from __future__ import annotations

"""
Unit tests for the Change Detector.

The detector runs against a real directory tree and the real Java parser,
while notifications come from a scripted FakeWatchSource.
"""

import os
import shutil
from pathlib import Path
from typing import Tuple
from unittest.mock import patch

import pytest

from conftest import (
    HELPER_JAVA,
    MAIN_JAVA,
    MAIN_WITHOUT_ENTRY_JAVA,
    CountingEngine,
    FakeWatchSource,
)
from watchmerge.core.merge.engine import MergeStatus
from watchmerge.core.merge.registry import SourceRegistry
from watchmerge.core.parsing.java_parser import JavaSourceParser
from watchmerge.core.watch.detector import ChangeDetector, ChangeEvent, ChangeKind
from watchmerge.core.watch.filters import PathFilter
from watchmerge.core.watch.source import RawEvent, WatchHandle
from watchmerge.domain.constants import DEFAULT_EXCLUDE_PATTERNS
from watchmerge.domain.errors import WatchSetupError


def _wire(root: Path, source: FakeWatchSource, output: Path) -> Tuple[ChangeDetector, SourceRegistry, CountingEngine]:
    engine = CountingEngine(str(output))
    registry = SourceRegistry(JavaSourceParser(), engine)
    path_filter = PathFilter(str(root), [".java"], DEFAULT_EXCLUDE_PATTERNS, output_path=str(output))
    detector = ChangeDetector(str(root), source, registry, path_filter)
    return detector, registry, engine


@pytest.fixture
def output(tmp_path: Path) -> Path:
    return tmp_path / "Merged.java"


@pytest.fixture
def watching(java_project: Path, fake_source: FakeWatchSource, output: Path):
    """Detector that already completed its initial scan of java_project."""
    detector, registry, engine = _wire(java_project, fake_source, output)
    detector.start_watching()
    return detector, registry, engine


# -----------------------------------------------------------------------------
# Initialization
# -----------------------------------------------------------------------------

def test_initial_scan_registers_tree_and_merges_once(java_project, fake_source, output, watching) -> None:
    detector, registry, engine = watching
    src = java_project / "src"

    assert set(fake_source.handles) == {
        str(java_project), str(src), str(src / "p"), str(src / "p" / "util"),
    }
    assert set(detector.key_to_path.values()) == set(fake_source.handles)
    assert detector.watched_files == {
        str(java_project / "README.md"),
        str(src / "p" / "Main.java"),
        str(src / "p" / "util" / "Helper.java"),
    }
    assert len(registry) == 2
    assert engine.statuses == [MergeStatus.WRITTEN]


def test_initial_merge_output(watching, output) -> None:
    """Shared imports appear once and imports of merged types are dropped."""
    content = output.read_text(encoding="utf-8")

    assert content.count("import x.Y;") == 1
    assert "import p.Helper;" not in content
    assert content.startswith("import x.Y;\n\nclass Main {")
    assert "\n\npublic class Helper {" in content
    assert content.rstrip("\n").splitlines()[-1].startswith("// Last generated at ")


def test_missing_root_raises_setup_error(tmp_path, fake_source, output) -> None:
    detector, _, _ = _wire(tmp_path / "absent", fake_source, output)

    with pytest.raises(WatchSetupError):
        detector.start_watching()


def test_root_registration_failure_raises_setup_error(java_project, fake_source, output) -> None:
    fake_source.fail_on.add(str(java_project))
    detector, _, engine = _wire(java_project, fake_source, output)

    with pytest.raises(WatchSetupError):
        detector.start_watching()
    assert engine.statuses == []


def test_subtree_registration_failure_skips_subtree(java_project, fake_source, output) -> None:
    fake_source.fail_on.add(str(java_project / "src" / "p"))
    detector, registry, engine = _wire(java_project, fake_source, output)

    detector.start_watching()

    assert str(java_project / "src" / "p" / "util") not in fake_source.handles
    assert len(registry) == 0
    assert engine.statuses == [MergeStatus.NO_ENTRY]

# -----------------------------------------------------------------------------
# Created / Modified
# -----------------------------------------------------------------------------

def test_created_source_file_is_added_and_merged(java_project, fake_source, output, watching) -> None:
    detector, registry, engine = watching
    pkg = java_project / "src" / "p"
    (pkg / "Extra.java").write_text("package p;\n\nclass Extra {\n}\n", encoding="utf-8")

    detector.process_batch([fake_source.event(pkg, "created", "Extra.java")])

    assert str(pkg / "Extra.java") in registry
    assert engine.statuses == [MergeStatus.WRITTEN, MergeStatus.WRITTEN]
    assert "class Extra {" in output.read_text(encoding="utf-8")


def test_created_non_source_file_is_only_tracked(java_project, fake_source, watching) -> None:
    detector, registry, engine = watching
    (java_project / "notes.txt").write_text("x", encoding="utf-8")

    detector.process_batch([fake_source.event(java_project, "created", "notes.txt")])

    assert str(java_project / "notes.txt") in detector.watched_files
    assert len(registry) == 2
    assert engine.statuses == [MergeStatus.WRITTEN]


def test_created_directory_registers_subtree_with_single_merge(java_project, fake_source, watching) -> None:
    detector, registry, engine = watching
    src = java_project / "src"
    (src / "q" / "deep").mkdir(parents=True)
    (src / "q" / "Q.java").write_text("package q;\n\nclass Q {\n}\n", encoding="utf-8")
    (src / "q" / "deep" / "R.java").write_text("package q.deep;\n\nclass R {\n}\n", encoding="utf-8")

    detector.process_batch([fake_source.event(src, "created", "q")])

    assert str(src / "q") in fake_source.handles
    assert str(src / "q" / "deep") in fake_source.handles
    assert str(src / "q" / "deep" / "R.java") in registry
    assert engine.statuses == [MergeStatus.WRITTEN, MergeStatus.WRITTEN]


def test_created_excluded_directory_is_ignored(java_project, fake_source, watching) -> None:
    detector, registry, engine = watching
    (java_project / "build").mkdir()
    (java_project / "build" / "Gen.java").write_text(MAIN_JAVA, encoding="utf-8")

    detector.process_batch([fake_source.event(java_project, "created", "build")])

    assert str(java_project / "build") not in fake_source.handles
    assert engine.statuses == [MergeStatus.WRITTEN]


def test_created_directory_that_vanished_is_not_tracked_as_file(java_project, fake_source, watching) -> None:
    """A directory removed before its creation event is handled leaves no trace."""
    detector, registry, engine = watching
    files_before = set(detector.watched_files)
    handles_before = set(fake_source.handles)

    events = detector.classify(fake_source.event(java_project, "created", "tmpdir", is_directory=True))
    assert events == [ChangeEvent(ChangeKind.CREATED, str(java_project / "tmpdir"), True)]

    detector.process_batch([fake_source.event(java_project, "created", "tmpdir", is_directory=True)])

    assert detector.watched_files == files_before
    assert set(fake_source.handles) == handles_before
    assert len(registry) == 2
    assert engine.statuses == [MergeStatus.WRITTEN]


def test_modified_entry_losing_main_keeps_previous_output(java_project, fake_source, output, watching) -> None:
    detector, registry, engine = watching
    before = output.read_text(encoding="utf-8")
    main = java_project / "src" / "p" / "Main.java"
    main.write_text(MAIN_WITHOUT_ENTRY_JAVA, encoding="utf-8")

    detector.process_batch([fake_source.event(main.parent, "modified", "Main.java")])

    assert registry.get(str(main)).is_entry is False
    assert engine.statuses[-1] is MergeStatus.NO_ENTRY
    assert output.read_text(encoding="utf-8") == before


def test_modified_untracked_file_is_ignored(java_project, fake_source, watching) -> None:
    detector, registry, engine = watching
    pkg = java_project / "src" / "p"
    (pkg / "Late.java").write_text("class Late {}\n", encoding="utf-8")

    detector.process_batch([fake_source.event(pkg, "modified", "Late.java")])

    assert str(pkg / "Late.java") not in registry
    assert engine.statuses == [MergeStatus.WRITTEN]


def test_syntax_error_keeps_last_good_unit(java_project, fake_source, output, watching) -> None:
    detector, registry, engine = watching
    helper = java_project / "src" / "p" / "util" / "Helper.java"
    helper.write_text("package p;\nclass Helper {\n", encoding="utf-8")

    detector.process_batch([fake_source.event(helper.parent, "modified", "Helper.java")])

    assert registry.get(str(helper)).type_name == "Helper"
    assert engine.statuses == [MergeStatus.WRITTEN, MergeStatus.WRITTEN]
    assert 'return "hi";' in output.read_text(encoding="utf-8")

# -----------------------------------------------------------------------------
# Deleted / Moved
# -----------------------------------------------------------------------------

def test_deleted_source_file_is_removed(java_project, fake_source, output, watching) -> None:
    detector, registry, engine = watching
    helper = java_project / "src" / "p" / "util" / "Helper.java"
    helper.unlink()

    detector.process_batch([fake_source.event(helper.parent, "deleted", "Helper.java")])

    assert str(helper) not in registry
    assert str(helper) not in detector.watched_files
    assert "class Helper" not in output.read_text(encoding="utf-8")


def test_deleted_directory_drops_files_and_watches(java_project, fake_source, output, watching) -> None:
    detector, registry, engine = watching
    src = java_project / "src"
    before = output.read_text(encoding="utf-8")
    shutil.rmtree(src / "p")

    detector.process_batch([fake_source.event(src, "deleted", "p")])

    assert len(registry) == 0
    assert not any(p.startswith(str(src / "p")) for p in detector.watched_files)
    assert set(fake_source.unregistered) == {str(src / "p"), str(src / "p" / "util")}
    assert str(src) in detector.key_to_path.values()
    assert engine.statuses[-1] is MergeStatus.NO_ENTRY
    assert output.read_text(encoding="utf-8") == before


def test_deleted_directory_does_not_touch_sibling_with_common_prefix(tmp_path, fake_source, output) -> None:
    root = tmp_path / "tree"
    (root / "a").mkdir(parents=True)
    (root / "ab").mkdir()
    (root / "a" / "A.java").write_text("class A {}\n", encoding="utf-8")
    (root / "ab" / "B.java").write_text("class B {}\n", encoding="utf-8")
    detector, registry, _ = _wire(root, fake_source, output)
    detector.start_watching()
    shutil.rmtree(root / "a")

    detector.process_batch([fake_source.event(root, "deleted", "a")])

    assert str(root / "ab" / "B.java") in registry
    assert str(root / "ab" / "B.java") in detector.watched_files
    assert str(root / "ab") in detector.key_to_path.values()
    assert fake_source.unregistered == [str(root / "a")]


def test_moved_file_is_delete_then_create(java_project, fake_source, watching) -> None:
    detector, registry, _ = watching
    util = java_project / "src" / "p" / "util"
    (util / "Helper.java").rename(util / "Helper2.java")

    detector.process_batch([fake_source.event(util, "moved", "Helper.java", dest_name="Helper2.java")])

    assert str(util / "Helper.java") not in registry
    assert str(util / "Helper2.java") in registry


def test_classify_maps_event_types(java_project, fake_source, watching) -> None:
    detector, _, _ = watching
    root = str(java_project)

    assert detector.classify(fake_source.event(root, "created", "A.java")) == [
        ChangeEvent(ChangeKind.CREATED, os.path.join(root, "A.java")),
    ]
    assert detector.classify(fake_source.event(root, "moved", "A.java", dest_name="B.java")) == [
        ChangeEvent(ChangeKind.DELETED, os.path.join(root, "A.java")),
        ChangeEvent(ChangeKind.CREATED, os.path.join(root, "B.java")),
    ]
    assert detector.classify(fake_source.event(root, "closed", "A.java")) == []

# -----------------------------------------------------------------------------
# Handle lifecycle
# -----------------------------------------------------------------------------

def test_events_from_stale_handle_are_dropped(java_project, fake_source, watching) -> None:
    detector, registry, engine = watching
    stale = WatchHandle(directory=str(java_project))
    (java_project / "Stale.java").write_text("class Stale {}\n", encoding="utf-8")

    detector.process_batch([RawEvent(handle=stale, event_type="created", name="Stale.java")])

    assert str(java_project / "Stale.java") not in registry
    assert engine.statuses == [MergeStatus.WRITTEN]


def test_failed_rearm_unregisters_handle(java_project, fake_source, watching) -> None:
    detector, _, _ = watching
    util = str(java_project / "src" / "p" / "util")
    fake_source.invalid.add(util)

    detector.process_batch([fake_source.event(util, "modified", "Helper.java")])

    assert util not in detector.key_to_path.values()
    assert fake_source.unregistered == [util]


def test_run_ends_when_root_is_deleted(java_project, fake_source, output) -> None:
    detector, registry, engine = _wire(java_project, fake_source, output)

    def delete_root():
        shutil.rmtree(java_project)
        return [fake_source.event(java_project, "deleted", ".")]

    fake_source.batches.append(delete_root)

    detector.run()

    assert detector.key_to_path == {}
    assert detector.watched_files == set()
    assert len(registry) == 0
    assert engine.statuses[0] is MergeStatus.WRITTEN


def test_output_inside_root_is_never_a_source(java_project, fake_source) -> None:
    output = java_project / "Merged.java"
    detector, registry, engine = _wire(java_project, fake_source, output)
    detector.start_watching()

    detector.process_batch([fake_source.event(java_project, "created", "Merged.java")])

    assert output.exists()
    assert str(output) not in registry
    assert engine.statuses == [MergeStatus.WRITTEN]


def test_helper_added_after_start_is_merged(java_project, fake_source, output, watching) -> None:
    detector, _, _ = watching
    other = java_project / "src" / "p" / "Other.java"
    other.write_text(HELPER_JAVA.replace("Helper", "Other"), encoding="utf-8")

    detector.process_batch([fake_source.event(other.parent, "created", "Other.java")])

    content = output.read_text(encoding="utf-8")
    assert content.count("import x.Y;") == 1
    assert content.index("public class Other {") < content.index("public class Helper {")


def test_parser_library_failure_never_stops_the_watch(java_project, fake_source, output) -> None:
    """Grammar loading errors are logged per file while the loop keeps running."""
    detector, registry, engine = _wire(java_project, fake_source, output)
    main = java_project / "src" / "p" / "Main.java"

    def modify_main():
        return [fake_source.event(main.parent, "modified", "Main.java")]

    def delete_root():
        shutil.rmtree(java_project)
        return [fake_source.event(java_project, "deleted", ".")]

    fake_source.batches.extend([modify_main, delete_root])

    with patch("watchmerge.core.parsing.java_parser.get_parser", side_effect=RuntimeError("offline")):
        detector.run()

    assert detector.key_to_path == {}
    assert len(registry) == 0
    assert engine.statuses[0] is MergeStatus.NO_ENTRY
    assert not output.exists()
