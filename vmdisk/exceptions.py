"""Custom exceptions for vm-disk-provisioner.

Every error carries a stable ``exit_code``; only :func:`vmdisk.cli.main`
turns it into a process exit status.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""

    exit_code = 1


class ConfigurationError(ManagerError):
    exit_code = 78


class InvalidSizeFormat(ConfigurationError):
    exit_code = 91


class UnsupportedFormat(ConfigurationError):
    exit_code = 88


class UnsupportedExtension(UnsupportedFormat):
    exit_code = 90


class TopologyConflict(ConfigurationError):
    """Two attachment descriptors claim the same bus address or id."""

    exit_code = 92


class InsufficientHostSpace(ManagerError):
    """Preallocation would need more bytes than the host filesystem has free."""

    def __init__(
        self,
        desc: str,
        target: str,
        directory: Path,
        required: int,
        available: int,
        available_gb: int,
        resizing: bool = False,
    ) -> None:
        self.desc = desc
        self.directory = directory
        self.required = required
        self.available = available
        self.shortfall = required - available
        self.resizing = resizing
        action = "resize" if resizing else "create"
        super().__init__(
            f"Not enough free space to {action} {desc} to {target} in {directory}, "
            f"it has only {available_gb} GB available ({self.shortfall} bytes short).\n"
            f"Specify a smaller {desc.upper()}_SIZE or disable preallocation with ALLOCATE=N."
        )

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return 84 if self.resizing else 86


class ToolInvocationFailed(ManagerError):
    """An external image-tool command exited unsuccessfully."""

    exit_code = 82

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "") -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class InspectionFailed(ToolInvocationFailed):
    exit_code = 83


class DiskResizeFailed(ToolInvocationFailed):
    exit_code = 85


class DiskCreationFailed(ToolInvocationFailed):
    exit_code = 87


class OperationTimedOut(ManagerError):
    """An image-tool call exceeded the configured timeout; safe to retry."""

    exit_code = 75


class DeviceValidationFailed(ManagerError):
    exit_code = 55


class DeviceNotFound(DeviceValidationFailed):
    exit_code = 55


class NotABlockDevice(DeviceValidationFailed):
    exit_code = 56
