"""Utility functions for the RMDB console."""

from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import Iterable, List, Optional

from rmdbctl.constants import (
    _LOG_VERBOSE,
    CONTAINER_NAME_RE,
    ERROR_TOKENS,
    MAX_CONTAINER_NAME_LEN,
    TRUTHY,
)
from rmdbctl.exceptions import InvalidContainerName, ManagerError


def log(level: str, message: str) -> None:
    """Lightweight structured logging compatible with existing colour expectation."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower() in TRUTHY


def parse_int_env(name: str, default: str, min_val: int = 1, max_val: Optional[int] = None) -> int:
    raw = get_env(name, default)
    assert raw is not None
    try:
        value = int(raw)
    except ValueError:
        raise ManagerError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise ManagerError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise ManagerError(f"{name} must be <= {max_val} (got {value})")
    return value


def is_well_formed_container_name(name: str) -> bool:
    """Charset and length rules LXC itself enforces on a container name."""
    if not name or len(name) >= MAX_CONTAINER_NAME_LEN:
        return False
    if not CONTAINER_NAME_RE.match(name):
        return False
    return not (name.startswith("-") or name.endswith("-"))


def is_valid_container_name(token: str) -> bool:
    """Return True if a token from tool output can be a container name rather than noise.

    Rejects anything that is not well formed (empty, whitespace or ``:``, 50
    characters or more, leading/trailing hyphens), plus bare words that
    failing tools print on stdout (``Error``, ``Usage``, a ``NAME`` header, ...).
    """
    return is_well_formed_container_name(token) and token.lower() not in ERROR_TOKENS


def filter_container_names(lines: Iterable[str], accept=is_valid_container_name) -> List[str]:
    """Keep the lines that ``accept`` takes as names, in order, without duplicates."""
    seen = set()
    names: List[str] = []
    for raw in lines:
        token = raw.strip()
        if not accept(token) or token in seen:
            continue
        seen.add(token)
        names.append(token)
    return names


def require_container_name(name: str) -> str:
    if not is_well_formed_container_name(name):
        raise InvalidContainerName(
            f"Invalid container name '{name}'. Use letters, digits, '-' or '_' (max {MAX_CONTAINER_NAME_LEN - 1} chars)"
        )
    return name


def quote_path(path: Path) -> str:
    return shlex.quote(str(path))
