"""Validation of host block devices passed through to the guest."""

from __future__ import annotations

from pathlib import Path

from vmdisk.exceptions import DeviceNotFound, NotABlockDevice


def validate_block_device(path: Path) -> Path:
    if not path.exists():
        raise DeviceNotFound(
            f"Device {path} cannot be found! Please add it to the 'devices' section of your compose file."
        )
    if not path.is_block_device():
        raise NotABlockDevice(f"{path} is not a block device; only block special files can be passed through.")
    return path
