"""Image tooling and host filesystem primitives used by the provisioning pipeline.

``ImageTool`` is the seam the planner, migrator and inspector talk to.
``QemuImgTool`` implements it on top of ``qemu-img``; tests substitute
their own subclass.
"""

from __future__ import annotations

import errno
import json
import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from vmdisk.exceptions import OperationTimedOut, ToolInvocationFailed
from vmdisk.utils import log, run


class ImageTool:
    """Interface for querying, converting, creating and resizing disk images."""

    def inspect(self, path: Path, fmt: str) -> int:
        """Return the virtual size of *path* in bytes."""
        raise NotImplementedError

    def convert(self, src: Path, src_fmt: str, dst: Path, dst_fmt: str, compress: bool = False) -> None:
        raise NotImplementedError

    def create(self, path: Path, fmt: str, size: int) -> None:
        raise NotImplementedError

    def resize(self, path: Path, fmt: str, size: int) -> None:
        raise NotImplementedError


class QemuImgTool(ImageTool):
    def __init__(self, binary: str = "qemu-img", timeout: Optional[float] = None) -> None:
        self.binary = binary
        self.timeout = timeout

    def _invoke(self, args: List[str], action: str) -> subprocess.CompletedProcess:
        cmd = [self.binary, *args]
        try:
            result = run(cmd, check=False, capture_output=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise OperationTimedOut(f"{action} timed out after {self.timeout}s: {' '.join(cmd)}")
        except OSError as exc:
            raise ToolInvocationFailed(f"{action} failed: cannot execute {self.binary}: {exc}")
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            log("DEBUG", f"{self.binary} exited with {result.returncode}: {stderr}")
            raise ToolInvocationFailed(
                f"{action} failed (exit {result.returncode}): {stderr or 'no output'}",
                returncode=result.returncode,
                stderr=stderr,
            )
        return result

    def inspect(self, path: Path, fmt: str) -> int:
        result = self._invoke(
            ["info", "--output=json", "-f", fmt, str(path)],
            f"Inspecting {path}",
        )
        try:
            info = json.loads(result.stdout)
            return int(info["virtual-size"])
        except (ValueError, KeyError, TypeError) as exc:
            raise ToolInvocationFailed(f"Unexpected {self.binary} info output for {path}: {exc}")

    def convert(self, src: Path, src_fmt: str, dst: Path, dst_fmt: str, compress: bool = False) -> None:
        args = ["convert"]
        if compress:
            args.append("-c")
        args.extend(["-f", src_fmt, "-O", dst_fmt, "--", str(src), str(dst)])
        self._invoke(args, f"Converting {src} to {dst_fmt}")

    def create(self, path: Path, fmt: str, size: int) -> None:
        self._invoke(["create", "-f", fmt, "--", str(path), str(size)], f"Creating {path}")

    def resize(self, path: Path, fmt: str, size: int) -> None:
        self._invoke(["resize", "-f", fmt, str(path), str(size)], f"Resizing {path}")


class HostFilesystem:
    """Free-space queries and raw-file allocation on the host."""

    def available_bytes(self, directory: Path) -> int:
        return shutil.disk_usage(directory).free

    def truncate_to_length(self, path: Path, size: int) -> None:
        """Set the logical length of *path*, creating it when missing."""
        with open(path, "ab") as handle:
            handle.truncate(size)

    def reserve_length(self, path: Path, offset: int, length: int) -> None:
        """Physically allocate *length* bytes at *offset*.

        Raises ``OSError`` when the filesystem has no fast allocation support.
        """
        if not hasattr(os, "posix_fallocate"):
            raise OSError(errno.EOPNOTSUPP, "posix_fallocate is not available on this platform")
        fd = os.open(path, os.O_WRONLY | os.O_CREAT, 0o644)
        try:
            os.posix_fallocate(fd, offset, length)
        finally:
            os.close(fd)
