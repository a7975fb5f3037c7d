"""Utility functions for vm-disk-provisioner."""

from __future__ import annotations

import math
import os
import subprocess
import sys
from fractions import Fraction
from typing import List, Optional

from vmdisk.constants import (
    _LOG_VERBOSE,
    GIB,
    SIZE_RE,
    SIZE_UNITS,
)
from vmdisk.exceptions import ConfigurationError, InvalidSizeFormat


def log(level: str, message: str) -> None:
    """Coloured log line on stderr; stdout carries only rendered output."""
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
    print(f"{colour}[{level}]{reset} {message}", file=sys.stderr, flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)



def parse_int_env(name: str, default: str, min_val: int = 1, max_val: Optional[int] = None) -> int:
    raw = get_env(name, default)
    assert raw is not None
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise ConfigurationError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise ConfigurationError(f"{name} must be <= {max_val} (got {value})")
    return value


def parse_size(raw: str) -> int:
    """Convert a capacity string such as ``16G``, ``512MB`` or ``1.5GiB`` to bytes.

    Units are binary (1K = 1024). Fractional values are rounded up to a
    whole byte.
    """
    text = str(raw).strip()
    match = SIZE_RE.match(text)
    if not match:
        raise InvalidSizeFormat(
            f"Invalid disk size '{raw}'. Use a number with optional suffix: K, M, G, T (e.g. '16G')"
        )
    number, unit = match.groups()
    return math.ceil(Fraction(number) * SIZE_UNITS[unit.upper()])


def render_size(size: int) -> str:
    """Render *size* bytes with the largest unit that divides it exactly."""
    if size < 0:
        raise InvalidSizeFormat(f"Invalid disk size {size}: must not be negative")
    if size == 0:
        return "0"
    for unit, factor in sorted(SIZE_UNITS.items(), key=lambda item: item[1], reverse=True):
        if size % factor == 0:
            return f"{size // factor}{unit}"
    return str(size)  # pragma: no cover - factor 1 always divides


def gib_ceil(size: int) -> int:
    """Round *size* bytes up to whole GiB, for log messages."""
    return (size + GIB - 1) // GIB


def run(cmd: List[str], check: bool = True, **kwargs) -> subprocess.CompletedProcess:
    """Run command with logging."""
    log("DEBUG", f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, check=check, text=True, **kwargs)
    return result
