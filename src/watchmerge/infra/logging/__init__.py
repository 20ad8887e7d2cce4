from __future__ import annotations

from .config import TRACE, LoggingConfig
from .core import (
    configure_logging,
    get_logger,
    install_trace_level,
    parse_level,
    shutdown_logging,
)

__all__ = [
    "TRACE",
    "LoggingConfig",
    "configure_logging",
    "get_logger",
    "install_trace_level",
    "parse_level",
    "shutdown_logging",
]
