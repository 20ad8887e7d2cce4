from __future__ import annotations

"""
Command Line Interface (CLI) Application Controller.

Orchestrates the CLI lifecycle: logging bootstrap, layering of configuration
sources (defaults, persisted last session, CLI overrides), wiring of the
parser, merge engine, registry and change detector, and mapping of the watch
outcome to a process exit code.
"""

import json
import os
import sys
from typing import Any, Dict, List, Optional

from watchmerge.core.merge.engine import MergeEngine
from watchmerge.core.merge.registry import SourceRegistry
from watchmerge.core.parsing.java_parser import JavaSourceParser
from watchmerge.core.validator import validate_config
from watchmerge.core.watch.detector import ChangeDetector
from watchmerge.core.watch.filters import PathFilter
from watchmerge.core.watch.source import WatchdogSource, WatchSource
from watchmerge.domain.config import get_default_config, load_config, save_config
from watchmerge.domain.errors import WatchSetupError
from watchmerge.infra.fs import safe_mkdir
from watchmerge.infra.logging import LoggingConfig, configure_logging, get_logger, shutdown_logging
from watchmerge.interface.cli import args as cli_args

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_WATCH_FAILURE = 1
EXIT_BAD_INPUT = 2
EXIT_INTERRUPTED = 130

_MERGEABLE_KEYS = (
    "root_path", "output_path", "source_extensions", "exclude_patterns",
    "sort_imports", "atomic_write", "strip_all_public", "timestamp_format",
    "log_file",
)

# -----------------------------------------------------------------------------
# ENTRYPOINT ORCHESTRATOR
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """
    Execute the watch-and-merge CLI workflow.

    Args:
        argv: Optional list of command line arguments. Defaults to sys.argv.

    Returns:
        int: Process exit code.
    """
    parser = cli_args.build_parser()
    args = parser.parse_args(argv)

    # 1. Configuration hierarchy
    base_conf = get_default_config() if args.use_defaults else load_config()
    raw_conf = _merge_config(base_conf, cli_args.args_to_overrides(args))
    conf, warnings = validate_config(raw_conf, strict=False)

    # 2. Logging bootstrap
    configure_logging(LoggingConfig(
        level=cli_args.log_level_for(args),
        console=True,
        log_file=conf["log_file"] or None,
    ))
    try:
        return _execute(args, conf, warnings)
    finally:
        # Flush the queue listener before the interpreter exits
        shutdown_logging()


def _execute(args: Any, conf: Dict[str, Any], warnings: List[str]) -> int:
    for w in warnings:
        logger.warning(f"Configuration Constraint: {w}")

    if args.dump_config:
        print(json.dumps(conf, ensure_ascii=False, indent=2))
        return EXIT_OK

    # 3. Pre-flight verification
    if not os.path.isdir(conf["root_path"]):
        logger.error(f"Directory to watch does not exist: {conf['root_path']}")
        return EXIT_BAD_INPUT
    if not conf["output_path"]:
        logger.error("No output file given (use -o/--output).")
        return EXIT_BAD_INPUT
    ok, err = safe_mkdir(os.path.dirname(conf["output_path"]))
    if not ok:
        logger.error(f"Cannot create output directory: {err}")
        return EXIT_BAD_INPUT

    if args.save_config:
        save_config(conf)

    # 4. Watch loop
    logger.info(f"Output defined on : {conf['output_path']}")
    try:
        with WatchdogSource() as source:
            run_watch(conf, source)
    except WatchSetupError as e:
        logger.critical(f"Watcher error: {e}", exc_info=True)
        return EXIT_WATCH_FAILURE
    except KeyboardInterrupt:
        logger.warning("Watch interrupted by user.")
        return EXIT_INTERRUPTED

    return EXIT_OK


def run_watch(conf: Dict[str, Any], source: WatchSource) -> ChangeDetector:
    """
    Wire the session from a validated configuration and block until it ends.

    Args:
        conf: Output of validate_config().
        source: Notification backend.

    Returns:
        ChangeDetector: The detector, after its watch ended.
    """
    engine = MergeEngine(
        conf["output_path"],
        sort_imports=conf["sort_imports"],
        atomic_write=conf["atomic_write"],
        strip_all_public=conf["strip_all_public"],
        timestamp_format=conf["timestamp_format"],
    )
    registry = SourceRegistry(JavaSourceParser(), engine)
    path_filter = PathFilter(
        conf["root_path"],
        conf["source_extensions"],
        conf["exclude_patterns"],
        output_path=conf["output_path"],
    )
    detector = ChangeDetector(conf["root_path"], source, registry, path_filter)
    detector.run()
    return detector

# -----------------------------------------------------------------------------
# CONFIGURATION MERGING
# -----------------------------------------------------------------------------

def _merge_config(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow-merge known, non-None override values into the base configuration.
    """
    out = dict(base)
    for k in _MERGEABLE_KEYS:
        if overrides.get(k) is not None:
            out[k] = overrides[k]
    return out


if __name__ == "__main__":
    sys.exit(main())
