"""Read the true format and virtual size of an existing disk image."""

from __future__ import annotations

from pathlib import Path

from vmdisk.exceptions import InspectionFailed, ToolInvocationFailed
from vmdisk.imagetool import ImageTool
from vmdisk.models import DiskImage
from vmdisk.utils import log


def inspect_disk(tool: ImageTool, path: Path, fmt: str) -> DiskImage:
    """Return a :class:`DiskImage` for *path* interpreted as *fmt*.

    Corrupt or mis-declared images raise :class:`InspectionFailed`; there is
    no retry since the file will not repair itself.
    """
    try:
        size = tool.inspect(path, fmt)
    except InspectionFailed:
        raise
    except ToolInvocationFailed as exc:
        raise InspectionFailed(
            f"Could not read {fmt} image {path}: {exc}",
            returncode=exc.returncode,
            stderr=exc.stderr,
        ) from exc
    log("DEBUG", f"{path}: format={fmt}, virtual size={size} bytes")
    return DiskImage(path=path, format=fmt, virtual_size=size)
