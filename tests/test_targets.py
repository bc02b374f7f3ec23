"""
Tests for platform and architecture parsing and host detection.
"""

import pytest

from tofudl.download import targets
from tofudl.download.targets import Architecture, Platform
from tofudl.exceptions import (
    InvalidArchitectureError,
    InvalidPlatformError,
    UnsupportedArchitectureError,
    UnsupportedPlatformError,
)

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]


def test_platform_parse():
    assert Platform.parse("linux") is Platform.LINUX
    assert Platform.parse("darwin") is Platform.MACOS
    assert Platform.parse("") is Platform.AUTO
    assert Platform.parse(None) is Platform.AUTO


@pytest.mark.parametrize("value", ["Linux", "linux64", "plan9", "../etc"])
def test_platform_parse_rejects_invalid(value):
    with pytest.raises(InvalidPlatformError):
        Platform.parse(value)


def test_architecture_parse():
    assert Architecture.parse("amd64") is Architecture.AMD64
    assert Architecture.parse("386") is Architecture.I386
    assert Architecture.parse("") is Architecture.AUTO


@pytest.mark.parametrize("value", ["AMD64", "x86_64", "riscv64"])
def test_architecture_parse_rejects_invalid(value):
    with pytest.raises(InvalidArchitectureError):
        Architecture.parse(value)


@pytest.mark.parametrize(
    "system, expected",
    [("Linux", Platform.LINUX), ("Darwin", Platform.MACOS), ("Windows", Platform.WINDOWS)],
)
def test_platform_auto_resolution(mocker, system, expected):
    mocker.patch.object(targets._host, "system", return_value=system)
    assert Platform.AUTO.resolve() is expected
    assert Platform.LINUX.resolve() is Platform.LINUX


def test_platform_auto_resolution_unsupported(mocker):
    mocker.patch.object(targets._host, "system", return_value="Haiku")
    with pytest.raises(UnsupportedPlatformError):
        Platform.AUTO.resolve()


@pytest.mark.parametrize(
    "machine, expected",
    [
        ("x86_64", Architecture.AMD64),
        ("AMD64", Architecture.AMD64),
        ("aarch64", Architecture.ARM64),
        ("arm64", Architecture.ARM64),
        ("i686", Architecture.I386),
        ("armv7l", Architecture.ARM),
    ],
)
def test_architecture_auto_resolution(mocker, machine, expected):
    mocker.patch.object(targets._host, "machine", return_value=machine)
    assert Architecture.AUTO.resolve() is expected


def test_architecture_auto_resolution_unsupported(mocker):
    mocker.patch.object(targets._host, "machine", return_value="s390x")
    with pytest.raises(UnsupportedArchitectureError):
        Architecture.AUTO.resolve()


def test_binary_name_per_platform():
    assert Platform.LINUX.binary_name == "tofu"
    assert Platform.WINDOWS.binary_name == "tofu.exe"
