"""Create or grow disk images to their configured size."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from vmdisk.constants import DEFAULT_DISK_SIZE
from vmdisk.exceptions import (
    DiskCreationFailed,
    DiskResizeFailed,
    InsufficientHostSpace,
    ToolInvocationFailed,
)
from vmdisk.imagetool import HostFilesystem, ImageTool
from vmdisk.inspector import inspect_disk
from vmdisk.models import DiskImage, DiskSlot, PlanAction, ProvisioningConfig
from vmdisk.utils import gib_ceil, log, parse_size, render_size


class CapacityPlanner:
    """Bring each slot's image to its requested virtual size.

    Sizes only ever grow. With ``cfg.allocate`` set, raw images are
    physically reserved and the host filesystem is checked for enough free
    space first; qcow2 images are always left to ``qemu-img``.
    """

    def __init__(
        self,
        cfg: ProvisioningConfig,
        tool: ImageTool,
        host: Optional[HostFilesystem] = None,
    ) -> None:
        self.cfg = cfg
        self.tool = tool
        self.host = host or HostFilesystem()

    @staticmethod
    def decide(current: Optional[int], requested: int) -> PlanAction:
        if current is None:
            return PlanAction.CREATE
        if requested > current:
            return PlanAction.GROW
        return PlanAction.KEEP

    @staticmethod
    def requested_size(slot: DiskSlot) -> int:
        if slot.size is None:
            return parse_size(DEFAULT_DISK_SIZE)
        return slot.size

    def current_size(self, slot: DiskSlot) -> Optional[int]:
        if not slot.path.exists():
            return None
        return inspect_disk(self.tool, slot.path, slot.format).virtual_size

    def ensure(self, slot: DiskSlot) -> DiskImage:
        requested = self.requested_size(slot)
        current = self.current_size(slot)
        action = self.decide(current, requested)

        if action is PlanAction.CREATE:
            log("INFO", f"Creating {slot.desc} ({render_size(requested)}, {slot.format}) at {slot.path}")
            self._create(slot, requested)
            return DiskImage(path=slot.path, format=slot.format, virtual_size=requested)

        assert current is not None
        if action is PlanAction.GROW:
            log("INFO", f"Resizing {slot.desc} from {gib_ceil(current)}G to {render_size(requested)} ..")
            self._grow(slot, current, requested)
            return DiskImage(path=slot.path, format=slot.format, virtual_size=requested)

        if requested < current:
            log(
                "INFO",
                f"{slot.desc} is {gib_ceil(current)}G, larger than the requested {render_size(requested)}; "
                "shrinking is not supported, keeping current size",
            )
        else:
            log("DEBUG", f"{slot.desc} already {render_size(current)}")
        return DiskImage(path=slot.path, format=slot.format, virtual_size=current)

    def _check_space(self, slot: DiskSlot, required: int, requested: int, resizing: bool) -> None:
        available = self.host.available_bytes(slot.directory)
        if required > available:
            raise InsufficientHostSpace(
                slot.desc,
                render_size(requested),
                slot.directory,
                required=required,
                available=available,
                available_gb=gib_ceil(available),
                resizing=resizing,
            )

    def _create(self, slot: DiskSlot, size: int) -> None:
        path = slot.path
        if slot.format == "qcow2":
            try:
                self.tool.create(path, slot.format, size)
            except ToolInvocationFailed as exc:
                raise DiskCreationFailed(
                    f"Could not create a {size} byte {slot.format} file for {slot.desc} ({path}): {exc}",
                    returncode=exc.returncode,
                    stderr=exc.stderr,
                ) from exc
            return

        if self.cfg.allocate:
            self._check_space(slot, size, size, resizing=False)
            if self._reserve(path, 0, size):
                return
        try:
            self.host.truncate_to_length(path, size)
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise DiskCreationFailed(
                f"Could not create a {render_size(size)} file for {slot.desc} ({path}): {exc}"
            ) from exc

    def _grow(self, slot: DiskSlot, current: int, size: int) -> None:
        path = slot.path
        if slot.format == "qcow2":
            try:
                self.tool.resize(path, slot.format, size)
            except ToolInvocationFailed as exc:
                raise DiskResizeFailed(
                    f"Could not resize {slot.desc} file ({path}) to {render_size(size)}: {exc}",
                    returncode=exc.returncode,
                    stderr=exc.stderr,
                ) from exc
            return

        if self.cfg.allocate:
            self._check_space(slot, size - current, size, resizing=True)
            if self._reserve(path, current, size - current):
                return
        try:
            self.host.truncate_to_length(path, size)
        except OSError as exc:
            raise DiskResizeFailed(
                f"Could not resize {slot.desc} file ({path}) to {render_size(size)}: {exc}"
            ) from exc

    def _reserve(self, path: Path, offset: int, length: int) -> bool:
        """Try fast allocation; ``False`` means fall back to truncation."""
        try:
            self.host.reserve_length(path, offset, length)
        except OSError as exc:
            log("DEBUG", f"Preallocation unavailable for {path} ({exc}); falling back to truncate")
            return False
        return True
