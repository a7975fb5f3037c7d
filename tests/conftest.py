"""Shared test fixtures: file-backed image tool and host filesystem doubles."""

from __future__ import annotations

import errno
import json
from pathlib import Path
from typing import List, Optional, Set

import pytest

from vmdisk.exceptions import ToolInvocationFailed
from vmdisk.imagetool import HostFilesystem, ImageTool
from vmdisk.models import DiskSlot, ProvisioningConfig

GIB = 1024**3


class FakeImageTool(ImageTool):
    """Image tool double.

    Raw images are plain sparse files. qcow2 images are small JSON files that
    record their virtual size, so inspection works without qemu-img.
    """

    def __init__(self, fail: Optional[Set[str]] = None) -> None:
        self.fail = set(fail or ())
        self.calls: List[tuple] = []

    def _maybe_fail(self, action: str) -> None:
        if action in self.fail:
            raise ToolInvocationFailed(f"{action} failed (exit 1): simulated", returncode=1, stderr="simulated")

    @staticmethod
    def write_image(path: Path, fmt: str, size: int) -> None:
        if fmt == "qcow2":
            path.write_text(json.dumps({"format": "qcow2", "virtual-size": size}))
        else:
            with open(path, "wb") as handle:
                handle.truncate(size)

    def inspect(self, path: Path, fmt: str) -> int:
        self.calls.append(("inspect", path, fmt))
        self._maybe_fail("inspect")
        if not path.exists():
            raise ToolInvocationFailed(f"Could not open '{path}'", returncode=1)
        if fmt == "qcow2":
            try:
                return int(json.loads(path.read_text())["virtual-size"])
            except (ValueError, KeyError, UnicodeDecodeError):
                raise ToolInvocationFailed(f"Image is not in qcow2 format: {path}", returncode=1)
        return path.stat().st_size

    def convert(self, src: Path, src_fmt: str, dst: Path, dst_fmt: str, compress: bool = False) -> None:
        self.calls.append(("convert", src, src_fmt, dst, dst_fmt, compress))
        if "convert" in self.fail:
            dst.write_bytes(b"partial")
        self._maybe_fail("convert")
        size = self.inspect(src, src_fmt)
        self.write_image(dst, dst_fmt, size)

    def create(self, path: Path, fmt: str, size: int) -> None:
        self.calls.append(("create", path, fmt, size))
        self._maybe_fail("create")
        self.write_image(path, fmt, size)

    def resize(self, path: Path, fmt: str, size: int) -> None:
        self.calls.append(("resize", path, fmt, size))
        self._maybe_fail("resize")
        self.write_image(path, fmt, size)

    def actions(self) -> List[str]:
        return [call[0] for call in self.calls]


class FakeHost(HostFilesystem):
    """Host filesystem double with a configurable amount of free space."""

    def __init__(self, available: int = 1024 * GIB, reserve_supported: bool = True) -> None:
        self.available = available
        self.reserve_supported = reserve_supported
        self.capacity_queries: List[Path] = []
        self.reservations: List[tuple] = []
        self.truncations: List[tuple] = []

    def available_bytes(self, directory: Path) -> int:
        self.capacity_queries.append(directory)
        return self.available

    def truncate_to_length(self, path: Path, size: int) -> None:
        self.truncations.append((path, size))
        super().truncate_to_length(path, size)

    def reserve_length(self, path: Path, offset: int, length: int) -> None:
        if not self.reserve_supported:
            raise OSError(errno.EOPNOTSUPP, "Operation not supported")
        self.reservations.append((path, offset, length))
        with open(path, "ab") as handle:
            handle.truncate(max(path.stat().st_size, offset + length))


@pytest.fixture
def fake_tool() -> FakeImageTool:
    return FakeImageTool()


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def make_config(tmp_path):
    """Build a ProvisioningConfig rooted in tmp_path."""

    def _make(**overrides) -> ProvisioningConfig:
        values = dict(
            storage_dir=tmp_path,
            disk_format="raw",
            allocate=False,
            boot_media=tmp_path / "boot.img",
        )
        values.update(overrides)
        return ProvisioningConfig(**values)

    return _make


@pytest.fixture
def make_slot(tmp_path):
    """Build a DiskSlot whose base path lives in tmp_path."""

    def _make(
        index: int = 1,
        fmt: str = "raw",
        size: Optional[int] = None,
        directory: Optional[Path] = None,
        name: str = "data",
    ) -> DiskSlot:
        suffix = "" if index == 1 else str(index)
        return DiskSlot(
            id=f"userdata{suffix}",
            index=index,
            desc=f"disk{suffix}",
            base_path=(directory or tmp_path) / name,
            size=size,
            format=fmt,
            address=0x9 + index,
            boot_index=index,
        )

    return _make


# All environment variables that parse_env() reads, cleared for a clean slate.
_PARSE_ENV_VARS = [
    "STORAGE",
    "DISK_FMT",
    "DISK_CACHE",
    "DISK_IO",
    "DISK_DISCARD",
    "DISK_ROTATION",
    "ALLOCATE",
    "DISK_TOOL_TIMEOUT",
    "DISK_LAYOUT",
    "DISK_SIZE",
    "DISK2_SIZE",
    "DISK3_SIZE",
    "DISK4_SIZE",
    "DISK5_SIZE",
    "DISK6_SIZE",
    "DEVICE",
    "DEVICE2",
    "DEVICE3",
    "DEVICE4",
    "DEVICE5",
    "DEVICE6",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Clear all environment variables that parse_env() reads."""
    for key in _PARSE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
