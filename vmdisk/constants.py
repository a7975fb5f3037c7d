"""Global constants and default slot tables for vm-disk-provisioner."""

from __future__ import annotations

import os
import re
from pathlib import Path

DEFAULT_STORAGE_DIR = Path("/storage")
BOOT_MEDIA_NAME = "boot.img"
TRUTHY = {"1", "true", "yes", "on"}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in {"1", "true", "yes", "on"}

DEFAULT_DISK_SIZE = "16G"
DEFAULT_DISK_FORMAT = "raw"

GIB = 1024**3

# Binary prefixes; the optional "B" / "iB" tail is stripped before lookup.
SIZE_UNITS = {
    "": 1,
    "K": 1024,
    "M": 1024**2,
    "G": 1024**3,
    "T": 1024**4,
    "P": 1024**5,
    "E": 1024**6,
}
SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([KMGTPE]?)(?:I?B)?$", re.IGNORECASE)

# format -> file extension
FORMAT_EXTENSIONS = {
    "raw": "img",
    "qcow2": "qcow2",
}

DISK_IO_MODES = {"native", "threads", "io_uring"}
DISK_CACHE_MODES = {"none", "writeback", "writethrough", "directsync", "unsafe"}
DISK_DISCARD_MODES = {"on", "off", "unmap", "ignore"}

ALLOCATE_VALUES = TRUTHY | {"y", "allocate", "full", "falloc"}
SPARSE_VALUES = {"", "0", "false", "off", "n", "no", "sparse"}

# (id, desc, base path, boot index, pcie.0 slot); STORAGE is substituted for
# the primary disk at load time.
DISK_SLOT_TABLE = (
    ("userdata", "disk", None, 1, 0xA),
    ("userdata2", "disk2", Path("/storage2/data2"), 2, 0xB),
    ("userdata3", "disk3", Path("/storage3/data3"), 3, 0xC),
    ("userdata4", "disk4", Path("/storage4/data4"), 4, 0xD),
    ("userdata5", "disk5", Path("/storage5/data5"), 5, 0xE),
    ("userdata6", "disk6", Path("/storage6/data6"), 6, 0xF),
)
PRIMARY_DISK_NAME = "data"

# (env var, id, boot index, pcie.0 slot)
DEVICE_SLOT_TABLE = (
    ("DEVICE", "userdata7", 7, 0x6),
    ("DEVICE2", "userdata8", 8, 0x7),
    ("DEVICE3", "userdata9", 9, 0x8),
    ("DEVICE4", "userdata10", 10, 0x10),
    ("DEVICE5", "userdata11", 11, 0x11),
    ("DEVICE6", "userdata12", 12, 0x12),
)

BOOT_MEDIA_ID = "cdrom0"
BOOT_MEDIA_ADDRESS = 0x5
BOOT_MEDIA_BOOT_INDEX = 0

# Positional defaults for YAML layouts without explicit addresses.
LAYOUT_FIRST_ADDRESS = 0xA

PCI_SLOT_MIN = 0x01
PCI_SLOT_MAX = 0x1F
