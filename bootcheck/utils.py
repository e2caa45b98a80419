"""Utility functions for bootcheck."""

from __future__ import annotations

import os
import random
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional

from bootcheck.constants import _LOG_VERBOSE, MAC_FIRST_OCTET, TRUTHY
from bootcheck.exceptions import CommandError, HarnessError


def log(level: str, message: str) -> None:
    """Lightweight structured logging with per-level colours."""
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
        raise HarnessError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise HarnessError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise HarnessError(f"{name} must be <= {max_val} (got {value})")
    return value


def kvm_available() -> bool:
    """Return True if /dev/kvm exists and can be opened."""
    kvm_path = Path("/dev/kvm")
    if not kvm_path.exists():
        return False
    try:
        fd = os.open(kvm_path, os.O_RDONLY)
    except OSError:
        return False
    else:
        os.close(fd)
        return True


def missing_tools(tools: Iterable[str]) -> List[str]:
    return [tool for tool in tools if shutil.which(tool) is None]


def ensure_directory(path: Path) -> None:
    """Create ``path`` and its parents; an existing directory is fine."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise HarnessError(f"Failed to create directory {path}: {exc}") from exc


def random_mac(rng: Optional[random.Random] = None) -> str:
    """Generate a random MAC with a locally administered, unicast first octet."""
    rng = rng or random
    octets = [MAC_FIRST_OCTET] + [rng.randrange(256) for _ in range(5)]
    return ":".join(f"{octet:02x}" for octet in octets)


def run(cmd: List[str], check: bool = True, **kwargs) -> subprocess.CompletedProcess:
    """Run command with logging, capturing its output.

    With ``check`` a non-zero exit, or an executable that cannot be started,
    raises CommandError.
    """
    log("DEBUG", f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, **kwargs)
    except OSError as exc:
        if check:
            raise CommandError(cmd, None, "", str(exc)) from exc
        return subprocess.CompletedProcess(cmd, 127, "", str(exc))
    if check and result.returncode != 0:
        raise CommandError(cmd, result.returncode, result.stdout or "", result.stderr or "")
    return result
