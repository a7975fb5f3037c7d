"""Configuration loading and environment variable parsing for vm-disk-provisioner."""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vmdisk.constants import (
    ALLOCATE_VALUES,
    BOOT_MEDIA_NAME,
    DEFAULT_DISK_FORMAT,
    DEFAULT_STORAGE_DIR,
    DEVICE_SLOT_TABLE,
    DISK_CACHE_MODES,
    DISK_DISCARD_MODES,
    DISK_IO_MODES,
    DISK_SLOT_TABLE,
    LAYOUT_FIRST_ADDRESS,
    PRIMARY_DISK_NAME,
    SPARSE_VALUES,
)
from vmdisk.exceptions import ConfigurationError
from vmdisk.formats import resolve_extension
from vmdisk.models import DiskSlot, PassthroughDevice, ProvisioningConfig
from vmdisk.topology import check_assignments
from vmdisk.utils import get_env, log, parse_int_env, parse_size


def _choice(name: str, raw: Optional[str], default: str, allowed: Iterable[str]) -> str:
    value = (raw or default).strip().lower() or default
    if value not in allowed:
        supported = ", ".join(sorted(allowed))
        raise ConfigurationError(f"Unsupported {name} '{raw}'. Supported: {supported}")
    return value


def parse_format(raw: Optional[str]) -> str:
    fmt = (raw or DEFAULT_DISK_FORMAT).strip().lower() or DEFAULT_DISK_FORMAT
    resolve_extension(fmt)
    return fmt


def parse_allocate(raw: Any) -> bool:
    """Interpret the ALLOCATE setting; ``True`` selects physical preallocation."""
    if raw is None:
        return False
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value in SPARSE_VALUES or value.startswith("n"):
        return False
    if value in ALLOCATE_VALUES or value.startswith("y"):
        return True
    raise ConfigurationError(f"Invalid ALLOCATE '{raw}'. Use Y (preallocate) or N (sparse)")


def parse_size_setting(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ConfigurationError(f"Invalid disk size '{raw}'")
    if isinstance(raw, int):
        if raw < 0:
            raise ConfigurationError(f"Invalid disk size '{raw}': must not be negative")
        return raw
    text = str(raw).strip()
    if not text:
        return None
    return parse_size(text)


def parse_timeout(raw: Optional[str]) -> Optional[float]:
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"DISK_TOOL_TIMEOUT must be a number of seconds (got '{raw}')")
    if value <= 0:
        raise ConfigurationError(f"DISK_TOOL_TIMEOUT must be > 0 (got {raw})")
    return value


def _parse_address(raw: Any, label: str) -> int:
    if isinstance(raw, bool):
        raise ConfigurationError(f"{label}: invalid PCI address '{raw}'")
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip(), 0)
    except ValueError:
        raise ConfigurationError(f"{label}: invalid PCI address '{raw}'")


def _parse_positive_int(raw: Any, label: str, name: str = "boot_index") -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{label}: {name} must be an integer (got '{raw}')")
    if value < 1:
        raise ConfigurationError(f"{label}: {name} must be >= 1 (got {value})")
    return value


def parse_env() -> ProvisioningConfig:
    storage_dir = Path(get_env("STORAGE") or str(DEFAULT_STORAGE_DIR))
    disk_format = parse_format(get_env("DISK_FMT"))

    cache = _choice("DISK_CACHE", get_env("DISK_CACHE"), "none", DISK_CACHE_MODES)
    io = _choice("DISK_IO", get_env("DISK_IO"), "native", DISK_IO_MODES)
    discard = _choice("DISK_DISCARD", get_env("DISK_DISCARD"), "on", DISK_DISCARD_MODES)
    rotation = parse_int_env("DISK_ROTATION", "1", min_val=1, max_val=65535)
    allocate = parse_allocate(get_env("ALLOCATE"))
    tool_timeout = parse_timeout(get_env("DISK_TOOL_TIMEOUT"))

    slots: List[DiskSlot] = []
    for index, (slot_id, desc, base_path, boot_index, address) in enumerate(DISK_SLOT_TABLE, start=1):
        if base_path is None:
            base_path = storage_dir / PRIMARY_DISK_NAME
        size_var = f"{desc.upper()}_SIZE"
        slots.append(
            DiskSlot(
                id=slot_id,
                index=index,
                desc=desc,
                base_path=base_path,
                size=parse_size_setting(get_env(size_var)),
                format=disk_format,
                address=address,
                boot_index=boot_index,
            )
        )

    devices: List[PassthroughDevice] = []
    for env_name, device_id, boot_index, address in DEVICE_SLOT_TABLE:
        raw = (get_env(env_name) or "").strip()
        if not raw:
            continue
        devices.append(PassthroughDevice(id=device_id, path=Path(raw), address=address, boot_index=boot_index))

    return ProvisioningConfig(
        storage_dir=storage_dir,
        disk_format=disk_format,
        allocate=allocate,
        cache=cache,
        io=io,
        discard=discard,
        rotation=rotation,
        slots=slots,
        devices=devices,
        boot_media=storage_dir / BOOT_MEDIA_NAME,
        tool_timeout=tool_timeout,
    )


def load_layout(path: Path, base: ProvisioningConfig) -> ProvisioningConfig:
    """Overlay a YAML disk layout on top of *base*.

    A layout that lists ``disks`` or ``devices`` replaces the corresponding
    static table. Omitted addresses and boot indices are assigned in
    declaration order: disks from 0xa upwards, then devices. Ids, PCI slots
    and boot indices must be unique across the result.
    """
    if not path.exists():
        raise ConfigurationError(f"Disk layout missing: {path}")
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Disk layout {path} contains invalid YAML: {exc}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Disk layout {path} must be a YAML mapping, got {type(data).__name__}")

    unknown = set(data) - {"storage", "format", "allocate", "cache", "io", "discard", "rotation", "disks", "devices"}
    if unknown:
        log("WARN", f"Ignoring unknown disk layout keys: {', '.join(sorted(unknown))}")

    storage_dir = Path(data["storage"]) if data.get("storage") else base.storage_dir
    disk_format = parse_format(data.get("format")) if data.get("format") else base.disk_format
    allocate = parse_allocate(data["allocate"]) if "allocate" in data else base.allocate
    cache = _choice("cache", data.get("cache"), base.cache, DISK_CACHE_MODES)
    io = _choice("io", data.get("io"), base.io, DISK_IO_MODES)
    discard_raw = data.get("discard")
    if isinstance(discard_raw, bool):
        discard_raw = "on" if discard_raw else "off"
    discard = _choice("discard", discard_raw, base.discard, DISK_DISCARD_MODES)
    rotation = base.rotation
    if data.get("rotation") is not None:
        rotation = _parse_positive_int(data["rotation"], "layout", name="rotation")

    slots = base.slots
    if data.get("storage") or data.get("format"):
        slots = [_rebase_slot(slot, storage_dir, disk_format) for slot in base.slots]
    devices = base.devices

    next_address = LAYOUT_FIRST_ADDRESS
    next_boot = 1
    if "disks" in data:
        slots = []
        for n, entry in enumerate(_entries(data["disks"], "disks"), start=1):
            label = f"disks[{n - 1}]"
            if not entry.get("path"):
                raise ConfigurationError(f"{label}: 'path' is required")
            address = _parse_address(entry.get("address", next_address), label)
            boot_index = _parse_positive_int(entry.get("boot_index", next_boot), label)
            slots.append(
                DiskSlot(
                    id=str(entry.get("id") or ("userdata" if n == 1 else f"userdata{n}")),
                    index=n,
                    desc=str(entry.get("desc") or ("disk" if n == 1 else f"disk{n}")),
                    base_path=Path(entry["path"]),
                    size=parse_size_setting(entry.get("size")),
                    format=parse_format(entry["format"]) if entry.get("format") else disk_format,
                    address=address,
                    boot_index=boot_index,
                )
            )
            next_address = address + 1
            next_boot = boot_index + 1

    if "devices" in data:
        if "disks" not in data:
            next_address = max((s.address for s in slots), default=LAYOUT_FIRST_ADDRESS - 1) + 1
            next_boot = max((s.boot_index for s in slots), default=0) + 1
        devices = []
        for n, entry in enumerate(_entries(data["devices"], "devices"), start=1):
            label = f"devices[{n - 1}]"
            if not entry.get("path"):
                raise ConfigurationError(f"{label}: 'path' is required")
            address = _parse_address(entry.get("address", next_address), label)
            boot_index = _parse_positive_int(entry.get("boot_index", next_boot), label)
            devices.append(
                PassthroughDevice(
                    id=str(entry.get("id") or f"passthrough{n}"),
                    path=Path(entry["path"]),
                    address=address,
                    boot_index=boot_index,
                )
            )
            next_address = address + 1
            next_boot = boot_index + 1

    check_assignments(
        [(s.id, s.address, s.boot_index) for s in slots] + [(d.id, d.address, d.boot_index) for d in devices]
    )

    return dataclasses.replace(
        base,
        storage_dir=storage_dir,
        disk_format=disk_format,
        allocate=allocate,
        cache=cache,
        io=io,
        discard=discard,
        rotation=rotation,
        slots=slots,
        devices=devices,
        boot_media=storage_dir / BOOT_MEDIA_NAME,
    )


def _entries(raw: Any, key: str) -> List[Dict[str, Any]]:
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
        raise ConfigurationError(f"Disk layout '{key}' must be a list of mappings")
    return raw


def _rebase_slot(slot: DiskSlot, storage_dir: Path, disk_format: str) -> DiskSlot:
    base_path = slot.base_path
    if slot.index == 1:
        base_path = storage_dir / PRIMARY_DISK_NAME
    return dataclasses.replace(slot, base_path=base_path, format=disk_format)
