from __future__ import annotations

"""
Output Persistence Component.

Writes the merged compilation unit to disk. The default strategy writes a
temporary sibling file and renames it over the destination, so a failure
midway never corrupts the previously generated output.
"""

import logging
import os
import tempfile

from watchmerge.domain.errors import OutputWriteError

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


def temp_prefix(output_path: str) -> str:
    """Prefix of the temporary files created next to 'output_path'."""
    return f".{os.path.basename(output_path)}."


def write_output(output_path: str, content: str, atomic: bool = True) -> None:
    """
    Persist the merged content, replacing any previous output.

    Args:
        output_path: Destination file.
        content: Full text to write.
        atomic: Write through a temporary file and rename when True,
                overwrite the destination in place otherwise.

    Raises:
        OutputWriteError: If the content could not be persisted.
    """
    try:
        if atomic:
            _write_atomic(output_path, content)
        else:
            with open(output_path, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
    except OSError as e:
        raise OutputWriteError(output_path, e) from e


def _write_atomic(output_path: str, content: str) -> None:
    directory = os.path.dirname(os.path.abspath(output_path))
    fd, tmp_path = tempfile.mkstemp(
        prefix=temp_prefix(output_path),
        suffix=TEMP_SUFFIX,
        dir=directory,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as tmp:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, output_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            logger.debug(f"Temporary file {tmp_path} already gone")
        raise
