"""
Release Builder

Assembles a signed release (archives, checksum manifest and detached
signature) and publishes it to an origin Mirror.
"""

import io
import tarfile
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from tofudl.constants import EXECUTABLE_PERMISSIONS, REGULAR_FILE_PERMISSIONS
from tofudl.exceptions import ReleaseBuilderError, TofuDLError
from tofudl.log_utils import logger
from tofudl.utils import calculate_sha256

from .core import archive_file_name, signature_file_name, sums_file_name
from .downloader import validate_artifact_name
from .mirror import Mirror
from .targets import Architecture, Platform
from .verification import GPGKeyRing
from .version import Version


@dataclass
class _ReleaseBinary:
    platform: Platform
    architecture: Architecture
    contents: bytes
    extra_files: Dict[str, bytes] = field(default_factory=dict)


def _add_file(tar: tarfile.TarFile, name: str, contents: bytes, mode: int, mtime: float) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(contents)
    info.mode = mode
    info.mtime = mtime
    info.type = tarfile.REGTYPE
    tar.addfile(info, io.BytesIO(contents))


def build_tar_gz(
    binary_name: str, binary: bytes, extra_files: Optional[Dict[str, bytes]] = None
) -> bytes:
    """
    Package a binary (mode 0755) and extra files (mode 0644) into a .tar.gz.

    Returns:
        bytes: The compressed archive.
    """
    buffer = io.BytesIO()
    mtime = time.time()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        _add_file(tar, binary_name, binary, EXECUTABLE_PERMISSIONS, mtime)
        for name, contents in (extra_files or {}).items():
            _add_file(tar, name, contents, REGULAR_FILE_PERMISSIONS, mtime)
    return buffer.getvalue()


def build_sums_file(artifacts: Dict[str, bytes]) -> bytes:
    """Render a SHA256SUMS manifest over `artifacts`, sorted by name."""
    lines = [
        f"{calculate_sha256(artifacts[name])}  {name}\n" for name in sorted(artifacts)
    ]
    return "".join(lines).encode("utf-8")


class ReleaseBuilder:
    """
    Write-once accumulator for a release.

    Binaries and artifacts are collected first; build() packages, signs and
    publishes them to a mirror. A builder can only be built once.
    """

    def __init__(self, private_key: Union[str, GPGKeyRing], passphrase: Optional[str] = None):
        """
        Parameters:
            private_key: ASCII-armored private key, or a key ring holding one, used to sign the manifest.
            passphrase: Passphrase for a protected private key.
        """
        if isinstance(private_key, GPGKeyRing):
            self.key_ring = private_key
        else:
            self.key_ring = GPGKeyRing(private_key, passphrase=passphrase)
        self._binaries: List[_ReleaseBinary] = []
        self._artifacts: Dict[str, bytes] = {}
        self._built = False

    def _ensure_open(self) -> None:
        if self._built:
            raise ReleaseBuilderError("release builder has already been built")

    def package_binary(
        self,
        platform: Platform,
        architecture: Architecture,
        contents: bytes,
        extra_files: Optional[Dict[str, bytes]] = None,
    ) -> None:
        """
        Queue a binary to be packaged as the archive for platform/architecture.

        AUTO values are resolved against the running host immediately.
        """
        self._ensure_open()
        self._binaries.append(
            _ReleaseBinary(
                platform=platform.resolve(),
                architecture=architecture.resolve(),
                contents=contents,
                extra_files=dict(extra_files or {}),
            )
        )

    def add_artifact(self, artifact_name: str, data: bytes) -> None:
        """Add a file to the release; it is listed in the checksum manifest."""
        self._ensure_open()
        validate_artifact_name(artifact_name)
        self._artifacts[artifact_name] = data

    def build(self, version: Union[Version, str], mirror: Mirror) -> None:
        """
        Package, sign and publish the release to `mirror`.

        Raises:
            InvalidVersionError: If the version is malformed.
            ReleaseBuilderError: If the builder was already built or publishing fails.
        """
        self._ensure_open()
        version = version if isinstance(version, Version) else Version(version)
        self._built = True

        for binary in self._binaries:
            name = archive_file_name(version, binary.platform, binary.architecture)
            self._artifacts[name] = build_tar_gz(
                binary.platform.binary_name, binary.contents, binary.extra_files
            )

        sums = build_sums_file(self._artifacts)
        try:
            signature = self.key_ring.sign_detached(sums)
        except TofuDLError as e:
            raise ReleaseBuilderError("cannot sign checksum file", str(e)) from e
        self._artifacts[sums_file_name(version)] = sums
        self._artifacts[signature_file_name(version)] = signature

        try:
            mirror.create_version(version)
        except TofuDLError as e:
            raise ReleaseBuilderError(
                f"failed to create version {version} on mirror", str(e)
            ) from e
        for artifact_name, data in self._artifacts.items():
            try:
                mirror.create_version_asset(version, artifact_name, data)
            except TofuDLError as e:
                raise ReleaseBuilderError(
                    f"cannot create version asset {artifact_name} in mirror", str(e)
                ) from e
        logger.info(
            f"Published version {version} with {len(self._artifacts)} artifact(s)"
        )
