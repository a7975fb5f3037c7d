"""Bus address and boot order assignment, and rendering of the result."""

from __future__ import annotations

import dataclasses
import string
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from xml.etree.ElementTree import Element, SubElement, tostring

from vmdisk.constants import (
    BOOT_MEDIA_ADDRESS,
    BOOT_MEDIA_BOOT_INDEX,
    BOOT_MEDIA_ID,
    PCI_SLOT_MAX,
    PCI_SLOT_MIN,
)
from vmdisk.exceptions import TopologyConflict
from vmdisk.models import (
    AttachmentDescriptor,
    DiskImage,
    DiskSlot,
    PassthroughDevice,
    ProvisioningConfig,
)


def _element_to_str(root: Element) -> str:
    """Serialize an ElementTree element to a pretty-printed XML string without declaration."""
    from xml.dom.minidom import parseString

    raw = tostring(root, encoding="unicode")
    return parseString(raw).documentElement.toprettyxml(indent="  ").strip()


def _hex(value: int) -> str:
    return f"0x{value:x}"


class TopologyBuilder:
    """Collect attachment descriptors in declaration order.

    Addresses and boot indices come from the slots themselves and are never
    reordered; only boot media is moved to the front with the top boot
    priority.
    """

    def __init__(self, cfg: ProvisioningConfig) -> None:
        self.cfg = cfg
        self._boot_media: Optional[AttachmentDescriptor] = None
        self._entries: List[AttachmentDescriptor] = []

    def add_boot_media(self, path: Path) -> AttachmentDescriptor:
        self._boot_media = AttachmentDescriptor(
            kind="cdrom",
            id=BOOT_MEDIA_ID,
            address=BOOT_MEDIA_ADDRESS,
            path=path,
            format="raw",
            cache=self.cfg.cache,
            io=self.cfg.io,
            discard=self.cfg.discard,
            rotation=self.cfg.rotation,
            boot_index=BOOT_MEDIA_BOOT_INDEX,
            readonly=True,
        )
        return self._boot_media

    def add_disk(self, slot: DiskSlot, image: DiskImage) -> AttachmentDescriptor:
        descriptor = AttachmentDescriptor(
            kind="disk",
            id=slot.id,
            address=slot.address,
            path=image.path,
            format=image.format,
            cache=self.cfg.cache,
            io=self.cfg.io,
            discard=self.cfg.discard,
            rotation=self.cfg.rotation,
            boot_index=slot.boot_index,
        )
        self._entries.append(descriptor)
        return descriptor

    def add_device(self, device: PassthroughDevice) -> AttachmentDescriptor:
        descriptor = AttachmentDescriptor(
            kind="device",
            id=device.id,
            address=device.address,
            path=device.path,
            format="raw",
            cache=self.cfg.cache,
            io=self.cfg.io,
            discard=self.cfg.discard,
            rotation=self.cfg.rotation,
            boot_index=device.boot_index,
        )
        self._entries.append(descriptor)
        return descriptor

    def build(self) -> List[AttachmentDescriptor]:
        descriptors = list(self._entries)
        if self._boot_media is not None:
            descriptors.insert(0, self._boot_media)
        check_assignments([(d.id, d.address, d.boot_index) for d in descriptors])
        return descriptors


def check_assignments(entries: Iterable[Tuple[str, int, int]]) -> None:
    """Raise :class:`TopologyConflict` unless ids, PCI slots and boot indices are unique.

    Each entry is ``(id, pci_slot, boot_index)``; PCI slots must also lie on
    the pcie.0 root bus range.
    """
    addresses: Dict[int, str] = {}
    boot_indices: Dict[int, str] = {}
    ids = set()
    for device_id, address, boot_index in entries:
        if not PCI_SLOT_MIN <= address <= PCI_SLOT_MAX:
            raise TopologyConflict(
                f"{device_id}: PCI address {_hex(address)} is outside {_hex(PCI_SLOT_MIN)}-{_hex(PCI_SLOT_MAX)}"
            )
        if address in addresses:
            raise TopologyConflict(
                f"{device_id}: PCI address {_hex(address)} is already used by {addresses[address]}"
            )
        if boot_index in boot_indices:
            raise TopologyConflict(
                f"{device_id}: boot index {boot_index} is already used by {boot_indices[boot_index]}"
            )
        if device_id in ids:
            raise TopologyConflict(f"Duplicate device id '{device_id}'")
        addresses[address] = device_id
        boot_indices[boot_index] = device_id
        ids.add(device_id)


def render_qemu_args(descriptors: List[AttachmentDescriptor]) -> List[str]:
    """Render descriptors as QEMU command-line arguments, order preserved."""
    args: List[str] = []
    for d in descriptors:
        controller = d.controller
        args += ["-device", f"virtio-scsi-pci,id={controller},bus=pcie.0,addr={_hex(d.address)}"]
        if d.kind == "cdrom":
            args += [
                "-drive",
                f"id=drive-{d.id},if=none,format={d.format},readonly=on,file={d.path}",
                "-device",
                f"scsi-cd,bus={controller}.0,drive=drive-{d.id},bootindex={d.boot_index}",
            ]
            continue
        args += [
            "-drive",
            f"file={d.path},if=none,id=drive-{d.id},format={d.format},cache={d.cache},"
            f"aio={d.io},discard={d.discard},detect-zeroes=on",
            "-device",
            f"scsi-hd,bus={controller}.0,channel=0,scsi-id=0,lun=0,drive=drive-{d.id},id={d.id},"
            f"rotation_rate={d.rotation},bootindex={d.boot_index}",
        ]
    return args


def _target_dev(position: int) -> str:
    letters = string.ascii_lowercase
    name = ""
    position += 1
    while position:
        position, rem = divmod(position - 1, 26)
        name = letters[rem] + name
    return f"sd{name}"


def render_disk_xml(descriptors: List[AttachmentDescriptor]) -> str:
    """Render descriptors as a libvirt ``<devices>`` fragment.

    Each descriptor gets its own virtio-scsi controller on the requested PCI
    slot. libvirt boot orders start at 1, so boot indices are shifted by one.
    """
    devices = Element("devices")
    for position, d in enumerate(descriptors):
        controller = SubElement(devices, "controller", type="scsi", index=str(position), model="virtio-scsi")
        SubElement(
            controller,
            "address",
            type="pci",
            domain="0x0000",
            bus="0x00",
            slot=f"0x{d.address:02x}",
            function="0x0",
        )

        disk_type = "block" if d.kind == "device" else "file"
        device = "cdrom" if d.kind == "cdrom" else "disk"
        disk = SubElement(devices, "disk", type=disk_type, device=device)
        driver_attrs = {"name": "qemu", "type": d.format}
        if d.kind != "cdrom":
            driver_attrs.update(cache=d.cache, io=d.io, discard=d.discard, detect_zeroes="on")
        SubElement(disk, "driver", **driver_attrs)
        if disk_type == "block":
            SubElement(disk, "source", dev=str(d.path))
        else:
            SubElement(disk, "source", file=str(d.path))
        target_attrs = {"dev": _target_dev(position), "bus": "scsi"}
        if d.kind != "cdrom":
            target_attrs["rotation_rate"] = str(d.rotation)
        SubElement(disk, "target", **target_attrs)
        SubElement(disk, "alias", name=f"ua-{d.id}")
        SubElement(disk, "boot", order=str(d.boot_index + 1))
        if d.readonly:
            SubElement(disk, "readonly")
        SubElement(disk, "address", type="drive", controller=str(position), bus="0", target="0", unit="0")
    return _element_to_str(devices)


def descriptors_to_dicts(descriptors: List[AttachmentDescriptor]) -> List[dict]:
    """Plain-data form of the descriptors for JSON output."""
    result = []
    for d in descriptors:
        data = dataclasses.asdict(d)
        data["path"] = str(d.path)
        data["address"] = _hex(d.address)
        data["controller"] = d.controller
        result.append(data)
    return result
