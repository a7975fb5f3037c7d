"""Mapping between disk formats and their file extensions."""

from __future__ import annotations

from typing import List

from vmdisk.constants import FORMAT_EXTENSIONS
from vmdisk.exceptions import UnsupportedExtension, UnsupportedFormat

_EXTENSION_FORMATS = {ext: fmt for fmt, ext in FORMAT_EXTENSIONS.items()}


def resolve_extension(fmt: str) -> str:
    """Return the file extension used for disk format *fmt*."""
    ext = FORMAT_EXTENSIONS.get(fmt.strip().lower())
    if ext is None:
        supported = ", ".join(sorted(FORMAT_EXTENSIONS))
        raise UnsupportedFormat(f"Unrecognized disk format '{fmt}'. Supported: {supported}")
    return ext


def resolve_format(extension: str) -> str:
    """Return the disk format stored in files with *extension* (leading dot optional)."""
    fmt = _EXTENSION_FORMATS.get(extension.strip().lower().lstrip("."))
    if fmt is None:
        raise UnsupportedExtension(f"Unrecognized file extension .{extension.lstrip('.')}")
    return fmt


def recognized_extensions() -> List[str]:
    return sorted(_EXTENSION_FORMATS)
