from __future__ import annotations

"""
Configuration Validation Service.

Gatekeeper between untrusted configuration sources (persisted JSON, CLI
overrides) and the watch session. Coerces types, normalizes paths and
extensions, and drops exclusion patterns that are not valid regexes.
"""

import logging
import re
from typing import Any, Dict, List, Tuple

from watchmerge.domain.config import get_default_config
from watchmerge.domain.constants import DEFAULT_SOURCE_EXTENSIONS
from watchmerge.infra.fs import normalize_path

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def validate_config(
        config: Any,
        *,
        strict: bool = False,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Validate and normalize the provided configuration dictionary.

    Args:
        config: Raw configuration data (usually a dictionary).
        strict: If True, raise on type mismatch instead of coercing.

    Returns:
        Tuple[Dict[str, Any], List[str]]: The normalized configuration and
                                          a list of warnings.
    """
    warnings: List[str] = []
    defaults = get_default_config()

    if not isinstance(config, dict):
        msg = f"Invalid config type: expected dict, received {type(config).__name__}."
        if strict:
            raise TypeError(msg)
        warnings.append(f"{msg} Using defaults.")
        logger.warning(msg)
        return defaults, warnings

    merged: Dict[str, Any] = dict(defaults)
    merged.update(config)

    string_fields = ["root_path", "output_path", "timestamp_format", "log_file"]
    bool_fields = ["sort_imports", "atomic_write", "strip_all_public"]
    list_fields = ["source_extensions", "exclude_patterns"]

    for name in string_fields:
        merged[name] = _as_str(merged.get(name), defaults[name], name, warnings, strict)

    for name in bool_fields:
        merged[name] = _as_bool(merged.get(name), defaults[name], name, warnings, strict)

    for name in list_fields:
        merged[name] = _as_list_str(merged.get(name), defaults[name], name, warnings, strict)

    merged["root_path"] = normalize_path(merged["root_path"], defaults["root_path"])
    merged["output_path"] = normalize_path(merged["output_path"])
    merged["log_file"] = normalize_path(merged["log_file"])
    merged["source_extensions"] = _normalize_extensions(merged["source_extensions"], warnings, strict)
    merged["exclude_patterns"] = _check_patterns(merged["exclude_patterns"], warnings, strict)

    return merged, warnings


# -----------------------------------------------------------------------------
# PRIVATE HELPERS: TYPE COERCION
# -----------------------------------------------------------------------------

def _as_str(value: Any, fallback: str, field: str, warnings: List[str], strict: bool) -> str:
    if value is None:
        return fallback
    if isinstance(value, str):
        v = value.strip()
        return v if v else fallback

    msg = f"Invalid field '{field}': expected str, received {type(value).__name__}."
    if strict:
        raise TypeError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback


def _as_bool(value: Any, fallback: bool, field: str, warnings: List[str], strict: bool) -> bool:
    """Coerce booleans, 0/1 and yes/no style strings."""
    if isinstance(value, bool):
        return value
    if value is None:
        return fallback

    if not strict:
        if isinstance(value, (int, float)) and value in (0, 1):
            warnings.append(f"Field '{field}' converted from number {value} to bool.")
            return bool(value)
        if isinstance(value, str):
            s = value.strip().lower()
            if s in ("true", "1", "yes", "y", "on"):
                warnings.append(f"Field '{field}' converted from '{value}' to True.")
                return True
            if s in ("false", "0", "no", "n", "off"):
                warnings.append(f"Field '{field}' converted from '{value}' to False.")
                return False

    msg = f"Invalid field '{field}': expected bool, received {type(value).__name__}."
    if strict:
        raise TypeError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback


def _as_list_str(value: Any, fallback: List[str], field: str, warnings: List[str], strict: bool) -> List[str]:
    """Ensure a list of non-blank strings, accepting CSV strings when lenient."""
    if value is None:
        return list(fallback)

    if isinstance(value, str) and not strict:
        items = [x.strip() for x in value.split(",") if x.strip()]
        warnings.append(f"Field '{field}' converted from CSV string to list.")
        return items or list(fallback)

    if isinstance(value, list):
        out: List[str] = []
        for i, item in enumerate(value):
            if isinstance(item, str) and item.strip():
                out.append(item.strip())
            elif not isinstance(item, str):
                msg = f"Invalid item in '{field}[{i}]': expected str."
                if strict:
                    raise TypeError(msg)
                warnings.append(f"{msg} Item discarded.")
        return out

    msg = f"Invalid field '{field}': expected list[str], received {type(value).__name__}."
    if strict:
        raise TypeError(msg)
    warnings.append(f"{msg} Using fallback.")
    return list(fallback)


# -----------------------------------------------------------------------------
# PRIVATE HELPERS: DOMAIN NORMALIZATION
# -----------------------------------------------------------------------------

def _normalize_extensions(exts: List[str], warnings: List[str], strict: bool) -> List[str]:
    """Ensure extensions are dot-prefixed and lowercase."""
    out: List[str] = []
    for ext in exts:
        e = ext.strip().lower()
        if not e.startswith("."):
            if strict:
                raise ValueError(f"Invalid extension '{ext}': must start with '.'.")
            warnings.append(f"Extension '{ext}' corrected to '.{e}'.")
            e = "." + e
        if e not in out:
            out.append(e)
    return out or list(DEFAULT_SOURCE_EXTENSIONS)


def _check_patterns(patterns: List[str], warnings: List[str], strict: bool) -> List[str]:
    """Drop exclusion patterns that do not compile."""
    out: List[str] = []
    for p in patterns:
        try:
            re.compile(p)
        except re.error as e:
            if strict:
                raise ValueError(f"Invalid exclusion pattern '{p}': {e}") from e
            warnings.append(f"Exclusion pattern '{p}' discarded: {e}.")
            continue
        out.append(p)
    return out
