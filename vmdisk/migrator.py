"""Convert a disk left behind in another format into the configured one."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from vmdisk.exceptions import OperationTimedOut, ToolInvocationFailed
from vmdisk.formats import recognized_extensions, resolve_format
from vmdisk.imagetool import ImageTool
from vmdisk.models import DiskSlot
from vmdisk.utils import log


def find_siblings(slot: DiskSlot) -> List[Path]:
    """Return files next to *slot* that hold the same disk in another format.

    Sorted by name so the pick is stable across filesystems.
    """
    if not slot.directory.is_dir():
        return []
    prefix = f"{slot.base_path.name}."
    candidates = set(recognized_extensions()) - {slot.extension}
    siblings = []
    for entry in slot.directory.iterdir():
        if not entry.name.startswith(prefix) or not entry.is_file():
            continue
        if entry.name[len(prefix):].lower() in candidates:
            siblings.append(entry)
    return sorted(siblings, key=lambda p: p.name)


def migrate(slot: DiskSlot, tool: ImageTool) -> Optional[Path]:
    """Convert a sibling image into ``slot.path`` when the target is missing.

    Returns the converted path, or ``None`` when nothing was converted. A
    failed conversion removes the partial target so the planner creates a
    fresh disk; the source image is never touched.
    """
    target = slot.path
    if target.exists():
        return None
    siblings = find_siblings(slot)
    if not siblings:
        return None

    source = siblings[0]
    source_fmt = resolve_format(source.name[len(slot.base_path.name) + 1:])
    names = ", ".join(str(p) for p in siblings)
    log("INFO", f"Other disk formats detected for {slot.desc} ({names}), converting {source}")
    try:
        tool.convert(source, source_fmt, target, slot.format, compress=slot.format == "qcow2")
    except ToolInvocationFailed as exc:
        log("DEBUG", str(exc))
        log("INFO", "Disk conversion failed, creating new disk image as fallback")
        target.unlink(missing_ok=True)
        return None
    except OperationTimedOut:
        target.unlink(missing_ok=True)
        raise
    log("SUCCESS", f"Converted {source} ({source_fmt}) to {target} ({slot.format})")
    return target
