"""Tests for vmdisk.formats module."""

from __future__ import annotations

import pytest

from vmdisk.exceptions import ConfigurationError, UnsupportedExtension, UnsupportedFormat
from vmdisk.formats import recognized_extensions, resolve_extension, resolve_format


class TestResolveExtension:
    def test_raw_uses_img(self):
        assert resolve_extension("raw") == "img"

    def test_qcow2(self):
        assert resolve_extension("qcow2") == "qcow2"

    @pytest.mark.parametrize("fmt", ["RAW", "Qcow2", " raw "])
    def test_case_insensitive(self, fmt):
        assert resolve_extension(fmt) in {"img", "qcow2"}

    @pytest.mark.parametrize("fmt", ["vmdk", "vhdx", "img", ""])
    def test_unknown_format_rejected(self, fmt):
        with pytest.raises(UnsupportedFormat, match="Unrecognized disk format"):
            resolve_extension(fmt)


class TestResolveFormat:
    def test_img_is_raw(self):
        assert resolve_format("img") == "raw"

    def test_leading_dot_and_case(self):
        assert resolve_format(".QCOW2") == "qcow2"

    @pytest.mark.parametrize("ext", ["raw", "vmdk", "iso", ""])
    def test_unknown_extension_rejected(self, ext):
        with pytest.raises(UnsupportedExtension, match="Unrecognized file extension"):
            resolve_format(ext)

    def test_unknown_extension_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            resolve_format("vdi")


class TestBijection:
    @pytest.mark.parametrize("fmt", ["raw", "qcow2"])
    def test_format_round_trip(self, fmt):
        assert resolve_format(resolve_extension(fmt)) == fmt

    def test_recognized_extensions(self):
        assert recognized_extensions() == ["img", "qcow2"]
