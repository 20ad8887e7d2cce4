from __future__ import annotations

"""
Configuration Domain Management.

Handles persistent storage of the last watch session using JSON in the
user data directory. Falls back to defaults on missing or corrupted state.
"""

import json
import logging
import os
from typing import Any, Dict

from watchmerge.domain.constants import (
    CURRENT_CONFIG_VERSION,
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_SOURCE_EXTENSIONS,
    DEFAULT_TIMESTAMP_FORMAT,
)
from watchmerge.infra.fs import get_user_data_dir

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"


def get_config_file() -> str:
    """Resolve the absolute path of the persisted state file."""
    return os.path.join(get_user_data_dir(), CONFIG_FILE_NAME)

# -----------------------------------------------------------------------------
# Configuration Models (Dict-based)
# -----------------------------------------------------------------------------
def get_default_config() -> Dict[str, Any]:
    """
    Generate the default runtime configuration for a watch session.

    Returns:
        Dict[str, Any]: Default configuration values.
    """
    return {
        # IO Paths
        "root_path": os.getcwd(),
        "output_path": "",

        # Source Discovery
        "source_extensions": list(DEFAULT_SOURCE_EXTENSIONS),
        "exclude_patterns": list(DEFAULT_EXCLUDE_PATTERNS),

        # Output Format
        "sort_imports": True,
        "atomic_write": True,
        "strip_all_public": False,
        "timestamp_format": DEFAULT_TIMESTAMP_FORMAT,

        # Diagnostics
        "log_file": "",
    }


def get_default_app_state() -> Dict[str, Any]:
    """
    Generate the complete default structure of config.json.

    Returns:
        Dict[str, Any]: Versioned state holding the last session.
    """
    return {
        "version": CURRENT_CONFIG_VERSION,
        "last_session": get_default_config(),
    }

# -----------------------------------------------------------------------------
# Persistence Logic
# -----------------------------------------------------------------------------
def load_app_state() -> Dict[str, Any]:
    """
    Load application state from disk.

    Returns:
        Dict[str, Any]: The loaded state or a default structure on failure.
    """
    default_state = get_default_app_state()
    config_file = get_config_file()

    if not os.path.exists(config_file):
        logger.debug("Config file not found. Returning defaults.")
        return default_state

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load config: {e}. Using defaults.")
        return default_state

    if not isinstance(data, dict):
        logger.warning("Corrupted config file. Resetting to defaults.")
        return default_state

    # Merge with defaults so that keys added in newer versions exist
    session = data.get("last_session")
    if isinstance(session, dict):
        default_state["last_session"].update(session)
    return default_state


def save_app_state(state: Dict[str, Any]) -> None:
    """
    Persist application state to disk.

    Args:
        state: The state dictionary to save.
    """
    config_file = get_config_file()
    try:
        os.makedirs(os.path.dirname(config_file), exist_ok=True)
        state["version"] = CURRENT_CONFIG_VERSION
        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(state, f, ensure_ascii=False, indent=4)
        logger.debug(f"Configuration saved to {config_file}")
    except OSError as e:
        logger.error(f"Failed to save configuration: {e}")

# -----------------------------------------------------------------------------
# Facade API
# -----------------------------------------------------------------------------
def load_config() -> Dict[str, Any]:
    """
    Retrieve the last session configuration layered over the defaults.
    """
    defaults = get_default_config()
    defaults.update(load_app_state().get("last_session", {}))
    return defaults


def save_config(config: Dict[str, Any]) -> None:
    """
    Save the provided config as the 'last_session'.
    """
    state = load_app_state()
    state["last_session"] = dict(config)
    save_app_state(state)
