from __future__ import annotations

"""
CLI Argument Definition and Mapping.

Defines the command-line schema and translates the parsed namespace into
configuration overrides understood by the validator.
"""

import argparse
from typing import Any, Dict, List, Optional

# -----------------------------------------------------------------------------
# ARGUMENT DEFINITION
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """
    Construct the argument parser for the watchmerge CLI.

    Returns:
        argparse.ArgumentParser: Configured parser instance.
    """
    p = argparse.ArgumentParser(
        prog="watchmerge",
        description=(
            "Watch a tree of Java sources and keep a single merged file "
            "up to date for single-file submission targets."
        ),
    )

    # --- Path Management ---
    p.add_argument(
        "root_path",
        nargs="?",
        default=None,
        help="Directory to watch (defaults to the last session or the current directory).",
    )
    p.add_argument(
        "-o", "--output",
        dest="output_path",
        default=None,
        help="Merged output file.",
    )

    # --- Source Discovery ---
    p.add_argument(
        "--ext",
        dest="source_extensions",
        default=None,
        help="Comma-separated source extensions (default: .java).",
    )
    p.add_argument(
        "--exclude",
        dest="exclude_patterns",
        default=None,
        help="Comma-separated regexes of directory names to skip.",
    )

    # --- Output Format ---
    p.add_argument(
        "--no-sort-imports",
        action="store_true",
        help="Keep imports in first-seen order instead of sorting them.",
    )
    p.add_argument(
        "--no-atomic",
        action="store_true",
        help="Overwrite the output in place instead of write-then-rename.",
    )
    p.add_argument(
        "--strip-all-public",
        action="store_true",
        help="Remove 'public' from helper types too, not only from the main class.",
    )

    # --- Configuration and Diagnostics ---
    p.add_argument(
        "--use-defaults",
        action="store_true",
        help="Ignore the persisted last session.",
    )
    p.add_argument(
        "--save-config",
        action="store_true",
        help="Persist the resolved configuration as the last session.",
    )
    p.add_argument(
        "--dump-config",
        action="store_true",
        help="Print the resolved configuration as JSON and exit.",
    )
    p.add_argument(
        "--log-file",
        dest="log_file",
        default=None,
        help="Also write logs to this rotating file.",
    )
    p.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Turn on debug logs.",
    )
    p.add_argument(
        "--trace",
        action="store_true",
        help="Log every filesystem event (implies --debug).",
    )

    return p

# -----------------------------------------------------------------------------
# ARGUMENT MAPPING
# -----------------------------------------------------------------------------

def args_to_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Translate the argparse Namespace into a configuration dictionary.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Dict[str, Any]: Configuration overrides subset. None values mean
                        "not given" and are skipped when merging.
    """
    overrides: Dict[str, Any] = {
        "root_path": args.root_path,
        "output_path": args.output_path,
        "log_file": args.log_file,
    }

    if args.source_extensions:
        overrides["source_extensions"] = _split_csv(args.source_extensions)
    if args.exclude_patterns:
        overrides["exclude_patterns"] = _split_csv(args.exclude_patterns)

    if args.no_sort_imports:
        overrides["sort_imports"] = False
    if args.no_atomic:
        overrides["atomic_write"] = False
    if args.strip_all_public:
        overrides["strip_all_public"] = True

    return overrides


def log_level_for(args: argparse.Namespace) -> str:
    """Resolve the logging level requested by the verbosity flags."""
    if args.trace:
        return "TRACE"
    if args.debug:
        return "DEBUG"
    return "INFO"

# -----------------------------------------------------------------------------
# HELPERS
# -----------------------------------------------------------------------------

def _split_csv(value: Optional[str]) -> Optional[List[str]]:
    """Convert a comma-separated string into a list of trimmed items."""
    if value is None:
        return None
    parts = [x.strip() for x in value.split(",")]
    return [x for x in parts if x]
