from __future__ import annotations

"""
Domain Exception Hierarchy.

Every failure raised by the watch and merge layers derives from
WatchMergeError so that the event loop can trap them at a single boundary.
"""

from typing import List, Sequence

from watchmerge.domain.source_models import ParseProblem


class WatchMergeError(Exception):
    """Base class for all watchmerge failures."""


class SourceParseError(WatchMergeError):
    """
    Raised when a source file cannot be turned into a structured parse result.

    Attributes:
        path: File that failed to parse.
        problems: Structured list of syntax problems reported by the parser.
    """

    def __init__(self, path: str, problems: Sequence[ParseProblem]) -> None:
        self.path = path
        self.problems: List[ParseProblem] = list(problems)
        detail = "; ".join(str(p) for p in self.problems[:5]) or "unknown problem"
        if len(self.problems) > 5:
            detail += f" (+{len(self.problems) - 5} more)"
        super().__init__(f"Failed to parse '{path}': {detail}")


class AmbiguousEntryPointError(WatchMergeError):
    """Raised when more than one unit declares a program entry point."""

    def __init__(self, paths: Sequence[str]) -> None:
        self.paths = sorted(paths)
        super().__init__(f"Several main classes found: {', '.join(self.paths)}")


class OutputWriteError(WatchMergeError):
    """Raised when the merged output cannot be persisted."""

    def __init__(self, output_path: str, cause: BaseException) -> None:
        self.output_path = output_path
        self.cause = cause
        super().__init__(f"Could not write merged output '{output_path}': {cause}")


class WatchRegistrationError(WatchMergeError):
    """Raised when a directory cannot be registered with the watch backend."""

    def __init__(self, directory: str, cause: BaseException | None = None) -> None:
        self.directory = directory
        self.cause = cause
        msg = f"Cannot watch directory '{directory}'"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class WatchSetupError(WatchRegistrationError):
    """Raised when the watch cannot be established on the root directory."""


class ParserUnavailableError(SourceParseError):
    """
    Raised when the parsing library itself fails (grammar missing or not
    downloadable, binding error), independently of the file content.
    """

    def __init__(self, path: str, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(path, [ParseProblem(1, 1, f"Java parser unavailable ({type(cause).__name__}: {cause})")])
