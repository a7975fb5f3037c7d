"""Tests for vmdisk.imagetool module."""

from __future__ import annotations

import errno
import json
import subprocess
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from vmdisk.exceptions import OperationTimedOut, ToolInvocationFailed
from vmdisk.imagetool import HostFilesystem, ImageTool, QemuImgTool


def _completed(returncode: int = 0, stdout: str = "", stderr: str = ""):
    return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)


class TestImageToolInterface:
    def test_base_methods_are_abstract(self, tmp_path):
        tool = ImageTool()
        with pytest.raises(NotImplementedError):
            tool.inspect(tmp_path / "x.img", "raw")
        with pytest.raises(NotImplementedError):
            tool.create(tmp_path / "x.img", "raw", 1)


class TestQemuImgTool:
    def test_inspect_reads_virtual_size(self):
        output = json.dumps({"virtual-size": 10737418240, "format": "raw"})
        with patch("vmdisk.imagetool.run", return_value=_completed(stdout=output)) as mock_run:
            size = QemuImgTool().inspect(Path("/storage/data.img"), "raw")
        assert size == 10737418240
        cmd = mock_run.call_args.args[0]
        assert cmd == ["qemu-img", "info", "--output=json", "-f", "raw", "/storage/data.img"]
        assert mock_run.call_args.kwargs["check"] is False
        assert mock_run.call_args.kwargs["timeout"] is None

    def test_inspect_bad_json(self):
        with patch("vmdisk.imagetool.run", return_value=_completed(stdout="not json")):
            with pytest.raises(ToolInvocationFailed, match="Unexpected qemu-img info output"):
                QemuImgTool().inspect(Path("/storage/data.img"), "raw")

    def test_non_zero_exit_raises_with_stderr(self):
        failed = _completed(returncode=1, stderr="qemu-img: Image is not in qcow2 format\n")
        with patch("vmdisk.imagetool.run", return_value=failed):
            with pytest.raises(ToolInvocationFailed, match="not in qcow2 format") as exc:
                QemuImgTool().inspect(Path("/storage/data.qcow2"), "qcow2")
        assert exc.value.returncode == 1
        assert exc.value.stderr == "qemu-img: Image is not in qcow2 format"

    def test_timeout_raises_operation_timed_out(self):
        with patch("vmdisk.imagetool.run", side_effect=subprocess.TimeoutExpired(["qemu-img"], 5)):
            with pytest.raises(OperationTimedOut, match="timed out after 5"):
                QemuImgTool(timeout=5).resize(Path("/storage/data.qcow2"), "qcow2", 1024)

    def test_timeout_forwarded(self):
        with patch("vmdisk.imagetool.run", return_value=_completed()) as mock_run:
            QemuImgTool(timeout=30).create(Path("/s/data.qcow2"), "qcow2", 1024)
        assert mock_run.call_args.kwargs["timeout"] == 30

    def test_missing_binary(self):
        with patch("vmdisk.imagetool.run", side_effect=FileNotFoundError("qemu-img")):
            with pytest.raises(ToolInvocationFailed, match="cannot execute qemu-img"):
                QemuImgTool().create(Path("/s/data.qcow2"), "qcow2", 1024)

    def test_convert_compressed(self):
        with patch("vmdisk.imagetool.run", return_value=_completed()) as mock_run:
            QemuImgTool().convert(Path("/s/data.img"), "raw", Path("/s/data.qcow2"), "qcow2", compress=True)
        assert mock_run.call_args.args[0] == [
            "qemu-img", "convert", "-c", "-f", "raw", "-O", "qcow2", "--", "/s/data.img", "/s/data.qcow2",
        ]

    def test_convert_uncompressed(self):
        with patch("vmdisk.imagetool.run", return_value=_completed()) as mock_run:
            QemuImgTool().convert(Path("/s/data.qcow2"), "qcow2", Path("/s/data.img"), "raw")
        assert "-c" not in mock_run.call_args.args[0]

    def test_create_and_resize_commands(self):
        with patch("vmdisk.imagetool.run", return_value=_completed()) as mock_run:
            tool = QemuImgTool()
            tool.create(Path("/s/data.qcow2"), "qcow2", 17179869184)
            tool.resize(Path("/s/data.qcow2"), "qcow2", 34359738368)
        create_cmd = mock_run.call_args_list[0].args[0]
        resize_cmd = mock_run.call_args_list[1].args[0]
        assert create_cmd == ["qemu-img", "create", "-f", "qcow2", "--", "/s/data.qcow2", "17179869184"]
        assert resize_cmd == ["qemu-img", "resize", "-f", "qcow2", "/s/data.qcow2", "34359738368"]


class TestHostFilesystem:
    def test_available_bytes_uses_disk_usage(self, tmp_path):
        usage = SimpleNamespace(total=100, used=40, free=60)
        with patch("vmdisk.imagetool.shutil.disk_usage", return_value=usage) as mock_usage:
            assert HostFilesystem().available_bytes(tmp_path) == 60
        mock_usage.assert_called_once_with(tmp_path)

    def test_truncate_creates_sparse_file(self, tmp_path):
        path = tmp_path / "data.img"
        HostFilesystem().truncate_to_length(path, 4096)
        assert path.stat().st_size == 4096

    def test_truncate_grows_existing_file(self, tmp_path):
        path = tmp_path / "data.img"
        path.write_bytes(b"abc")
        HostFilesystem().truncate_to_length(path, 8192)
        assert path.stat().st_size == 8192
        assert path.read_bytes()[:3] == b"abc"

    def test_reserve_length_calls_fallocate(self, tmp_path):
        path = tmp_path / "data.img"
        with patch("vmdisk.imagetool.os.posix_fallocate", create=True) as mock_fallocate:
            HostFilesystem().reserve_length(path, 1024, 2048)
        assert path.exists()
        args = mock_fallocate.call_args.args
        assert args[1:] == (1024, 2048)

    def test_reserve_length_propagates_unsupported(self, tmp_path):
        path = tmp_path / "data.img"
        error = OSError(errno.EOPNOTSUPP, "Operation not supported")
        with patch("vmdisk.imagetool.os.posix_fallocate", create=True, side_effect=error):
            with pytest.raises(OSError):
                HostFilesystem().reserve_length(path, 0, 2048)
