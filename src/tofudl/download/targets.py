"""
Download Targets

Closed platform and architecture enumerations. Both carry an AUTO member that
is resolved against the running host at request time.
"""

import platform as _host
import re
from enum import Enum
from typing import Optional

from tofudl.constants import (
    ARCHITECTURE_REGEX_PATTERN,
    BINARY_NAME,
    PLATFORM_REGEX_PATTERN,
    WINDOWS_BINARY_SUFFIX,
)
from tofudl.exceptions import (
    InvalidArchitectureError,
    InvalidPlatformError,
    UnsupportedArchitectureError,
    UnsupportedPlatformError,
)

_PLATFORM_RX = re.compile(PLATFORM_REGEX_PATTERN)
_ARCHITECTURE_RX = re.compile(ARCHITECTURE_REGEX_PATTERN)

# platform.machine() values mapped to published architecture names
_MACHINE_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "armv6l": "arm",
    "arm": "arm",
}


class Platform(Enum):
    """Operating systems with published archives."""

    AUTO = ""
    WINDOWS = "windows"
    MACOS = "darwin"
    LINUX = "linux"
    FREEBSD = "freebsd"
    OPENBSD = "openbsd"
    SOLARIS = "solaris"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Platform":
        """
        Parse a platform name; an empty value means AUTO.

        Raises:
            InvalidPlatformError: If the name is malformed or not a known platform.
        """
        value = value or ""
        if not _PLATFORM_RX.fullmatch(value):
            raise InvalidPlatformError(value)
        try:
            return cls(value)
        except ValueError:
            raise InvalidPlatformError(value) from None

    @classmethod
    def current(cls) -> "Platform":
        """
        Detect the platform of the running host.

        Raises:
            UnsupportedPlatformError: If the host OS has no published archives.
        """
        system = _host.system().lower()
        try:
            detected = cls(system)
        except ValueError:
            raise UnsupportedPlatformError(system) from None
        if detected is cls.AUTO:
            raise UnsupportedPlatformError(system)
        return detected

    def resolve(self) -> "Platform":
        """Return the concrete platform, detecting the host when AUTO."""
        if self is Platform.AUTO:
            return Platform.current()
        return self

    @property
    def binary_name(self) -> str:
        """Name of the executable inside archives for this platform."""
        if self is Platform.WINDOWS:
            return BINARY_NAME + WINDOWS_BINARY_SUFFIX
        return BINARY_NAME

    def __str__(self) -> str:
        return self.value


class Architecture(Enum):
    """CPU architectures with published archives."""

    AUTO = ""
    I386 = "386"
    AMD64 = "amd64"
    ARM = "arm"
    ARM64 = "arm64"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Architecture":
        """
        Parse an architecture name; an empty value means AUTO.

        Raises:
            InvalidArchitectureError: If the name is malformed or not a known architecture.
        """
        value = value or ""
        if not _ARCHITECTURE_RX.fullmatch(value):
            raise InvalidArchitectureError(value)
        try:
            return cls(value)
        except ValueError:
            raise InvalidArchitectureError(value) from None

    @classmethod
    def current(cls) -> "Architecture":
        """
        Detect the CPU architecture of the running host.

        Raises:
            UnsupportedArchitectureError: If the machine type is not recognized.
        """
        machine = _host.machine()
        alias = _MACHINE_ALIASES.get(machine.lower())
        if alias is None:
            raise UnsupportedArchitectureError(machine)
        return cls(alias)

    def resolve(self) -> "Architecture":
        """Return the concrete architecture, detecting the host when AUTO."""
        if self is Architecture.AUTO:
            return Architecture.current()
        return self

    def __str__(self) -> str:
        return self.value
