"""Sequential provisioning pipeline over the configured disk slots."""

from __future__ import annotations

from typing import List, Optional, Tuple

from vmdisk.constants import BOOT_MEDIA_ADDRESS, BOOT_MEDIA_BOOT_INDEX, BOOT_MEDIA_ID
from vmdisk.devices import validate_block_device
from vmdisk.imagetool import HostFilesystem, ImageTool, QemuImgTool
from vmdisk.inspector import inspect_disk
from vmdisk.migrator import find_siblings, migrate
from vmdisk.models import (
    AttachmentDescriptor,
    DiskImage,
    DiskSlot,
    PlanAction,
    ProvisioningConfig,
)
from vmdisk.planner import CapacityPlanner
from vmdisk.topology import TopologyBuilder, check_assignments
from vmdisk.utils import log, render_size


class DiskManager:
    """Provision every slot in order, then describe how the disks attach.

    Slots are handled one at a time. Free space is re-read for each slot so
    that several preallocated disks on one volume cannot jointly overcommit
    it. The first fatal error stops the run; disks already provisioned are
    left as they are.
    """

    def __init__(
        self,
        cfg: ProvisioningConfig,
        tool: Optional[ImageTool] = None,
        host: Optional[HostFilesystem] = None,
    ) -> None:
        self.cfg = cfg
        self.tool = tool or QemuImgTool(timeout=cfg.tool_timeout)
        self.host = host or HostFilesystem()
        self.planner = CapacityPlanner(cfg, self.tool, self.host)

    def active_slots(self) -> List[DiskSlot]:
        active = []
        for slot in self.cfg.slots:
            if slot.directory.is_dir():
                active.append(slot)
            else:
                log("DEBUG", f"Skipping {slot.desc}: {slot.directory} does not exist")
        return active

    def has_boot_media(self) -> bool:
        return self.cfg.boot_media is not None and self.cfg.boot_media.is_file()

    def preflight(self, slots: List[DiskSlot]) -> None:
        """Reject address, boot index or id collisions before any disk is touched."""
        entries = []
        if self.has_boot_media():
            entries.append((BOOT_MEDIA_ID, BOOT_MEDIA_ADDRESS, BOOT_MEDIA_BOOT_INDEX))
        entries += [(slot.id, slot.address, slot.boot_index) for slot in slots]
        entries += [(device.id, device.address, device.boot_index) for device in self.cfg.devices]
        check_assignments(entries)

    def provision_slot(self, slot: DiskSlot) -> DiskImage:
        migrate(slot, self.tool)
        return self.planner.ensure(slot)

    def provision(self) -> List[AttachmentDescriptor]:
        slots = self.active_slots()
        self.preflight(slots)

        builder = TopologyBuilder(self.cfg)
        if self.has_boot_media():
            assert self.cfg.boot_media is not None
            log("INFO", f"Boot media found at {self.cfg.boot_media}")
            builder.add_boot_media(self.cfg.boot_media)

        for slot in slots:
            image = self.provision_slot(slot)
            builder.add_disk(slot, image)

        for device in self.cfg.devices:
            validate_block_device(device.path)
            log("INFO", f"Passing through block device {device.path} as {device.id}")
            builder.add_device(device)

        descriptors = builder.build()
        log("SUCCESS", f"Storage ready: {len(descriptors)} attachment(s)")
        return descriptors

    def plan(self) -> List[Tuple[str, str]]:
        """Describe what :meth:`provision` would do without changing anything.

        Runs the same collision and device checks as :meth:`provision`.
        """
        slots = self.active_slots()
        self.preflight(slots)
        for device in self.cfg.devices:
            validate_block_device(device.path)

        steps: List[Tuple[str, str]] = []
        if self.has_boot_media():
            steps.append((BOOT_MEDIA_ID, f"attach boot media {self.cfg.boot_media}"))
        for slot in self.cfg.slots:
            if slot not in slots:
                steps.append((slot.desc, f"skip ({slot.directory} does not exist)"))
                continue
            requested = self.planner.requested_size(slot)
            if not slot.path.exists():
                siblings = find_siblings(slot)
                if siblings:
                    steps.append((slot.desc, f"convert {siblings[0]} to {slot.path}"))
                    continue
                steps.append((slot.desc, f"{PlanAction.CREATE.value} {slot.path} ({render_size(requested)})"))
                continue
            current = inspect_disk(self.tool, slot.path, slot.format).virtual_size
            action = self.planner.decide(current, requested)
            if action is PlanAction.GROW:
                steps.append(
                    (slot.desc, f"{action.value} {slot.path} from {render_size(current)} to {render_size(requested)}")
                )
            else:
                steps.append((slot.desc, f"{action.value} {slot.path} ({render_size(current)})"))
        for device in self.cfg.devices:
            steps.append((device.id, f"pass through {device.path}"))
        return steps
