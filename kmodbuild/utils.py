"""Utility functions for kmodbuild."""

from __future__ import annotations

import os
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from kmodbuild.constants import _LOG_VERBOSE
from kmodbuild.exceptions import ConfigError

_verbose = _LOG_VERBOSE


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def log(level: str, message: str) -> None:
    """Lightweight structured logging compatible with existing colour expectation."""
    if level == "DEBUG" and not _verbose:
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


def log_hints(hints: List[str]) -> None:
    """Print numbered remediation steps under an error."""
    if not hints:
        return
    print("", flush=True)
    print("Troubleshooting steps:", flush=True)
    for idx, hint in enumerate(hints, start=1):
        print(f"{idx}. {hint}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def parse_int(name: str, raw: str, min_val: int = 1, max_val: Optional[int] = None) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise ConfigError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise ConfigError(f"{name} must be <= {max_val} (got {value})")
    return value


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def timestamp() -> str:
    """Suffix used for backup directories, e.g. 20250101-120000."""
    return time.strftime("%Y%m%d-%H%M%S")


def read_text(path: Path) -> str:
    """Return file contents, or an empty string when the file is unreadable."""
    try:
        return path.read_text(errors="replace")
    except OSError:
        return ""


def run(
    cmd: List[str],
    check: bool = True,
    privileged: bool = False,
    sudo: str = "sudo",
    **kwargs,
) -> subprocess.CompletedProcess:
    """Run command with logging, elevating through ``sudo`` when asked."""
    if privileged and sudo:
        cmd = [sudo] + list(cmd)
    log("DEBUG", f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, check=check, text=True, **kwargs)
    return result
