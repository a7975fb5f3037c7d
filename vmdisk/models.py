"""Data models for vm-disk-provisioner."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from vmdisk.formats import resolve_extension


@dataclass(frozen=True)
class DiskSlot:
    id: str
    index: int
    desc: str
    base_path: Path  # without extension
    size: Optional[int]  # bytes; None means "use the default"
    format: str
    address: int  # pcie.0 slot
    boot_index: int

    @property
    def extension(self) -> str:
        return resolve_extension(self.format)

    @property
    def path(self) -> Path:
        return self.base_path.parent / f"{self.base_path.name}.{self.extension}"

    @property
    def directory(self) -> Path:
        return self.base_path.parent


@dataclass(frozen=True)
class PassthroughDevice:
    id: str
    path: Path
    address: int
    boot_index: int


@dataclass
class DiskImage:
    path: Path
    format: str
    virtual_size: int


@dataclass(frozen=True)
class AttachmentDescriptor:
    kind: str  # "disk", "device" or "cdrom"
    id: str
    address: int
    path: Path
    format: str
    cache: str
    io: str
    discard: str
    rotation: int
    boot_index: int
    readonly: bool = False

    @property
    def controller(self) -> str:
        return f"hw-{self.id}"


class PlanAction(str, Enum):
    CREATE = "create"
    GROW = "grow"
    KEEP = "keep"


@dataclass
class ProvisioningConfig:
    storage_dir: Path
    disk_format: str
    allocate: bool
    cache: str = "none"
    io: str = "native"
    discard: str = "on"
    rotation: int = 1
    slots: List[DiskSlot] = field(default_factory=list)
    devices: List[PassthroughDevice] = field(default_factory=list)
    boot_media: Optional[Path] = None
    tool_timeout: Optional[float] = None
