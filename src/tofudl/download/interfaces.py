"""
Core Interfaces for the tofudl Download Subsystem

This module defines the Downloader capability set shared by the live
downloader, the caching downloader and the mirror, plus the option records
passed to it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Union

from tofudl.exceptions import InvalidOptionsError

from .nightly import NightlyID
from .targets import Architecture, Platform
from .version import Stability, Version, VersionWithArtifacts


@dataclass
class ListVersionsOptions:
    """Options for listing versions."""

    minimum_stability: Optional[Stability] = None
    """Only return versions at least this stable; all versions when None"""

    def __post_init__(self) -> None:
        if isinstance(self.minimum_stability, str):
            self.minimum_stability = Stability.parse(self.minimum_stability)


@dataclass
class DownloadOptions:
    """
    Options for downloading a binary.

    Platform and architecture default to AUTO (the running host). Version and
    minimum_stability are mutually exclusive; with neither set the newest
    listed version is chosen. Strings are accepted and parsed for every field.
    """

    platform: Union[Platform, str] = Platform.AUTO
    """Target operating system"""

    architecture: Union[Architecture, str] = Architecture.AUTO
    """Target CPU architecture"""

    version: Optional[Union[Version, str]] = None
    """Exact version to download"""

    minimum_stability: Optional[Union[Stability, str]] = None
    """Minimum stability when choosing the newest version"""

    nightly_id: Optional[Union[NightlyID, str]] = None
    """Nightly build to download; only used by download_nightly"""

    def __post_init__(self) -> None:
        if not isinstance(self.platform, Platform):
            self.platform = Platform.parse(self.platform)
        if not isinstance(self.architecture, Architecture):
            self.architecture = Architecture.parse(self.architecture)
        if isinstance(self.version, str):
            self.version = Version(self.version) if self.version else None
        if isinstance(self.minimum_stability, str):
            self.minimum_stability = Stability.parse(self.minimum_stability)
        if isinstance(self.nightly_id, str):
            self.nightly_id = NightlyID(self.nightly_id) if self.nightly_id else None

        if self.version is not None and self.minimum_stability is not None:
            raise InvalidOptionsError(
                "the stability and version constraints for download are mutually exclusive"
            )

    def list_options(self) -> ListVersionsOptions:
        return ListVersionsOptions(minimum_stability=self.minimum_stability)


class Downloader(ABC):
    """
    Abstract capability set for fetching released binaries.

    Implementations may decorate another Downloader (caching, mirroring), so
    every operation here must be safe to delegate.
    """

    @abstractmethod
    def list_versions(
        self, options: Optional[ListVersionsOptions] = None
    ) -> List[VersionWithArtifacts]:
        """
        List available versions, newest first.

        Parameters:
            options (Optional[ListVersionsOptions]): Optional stability filter.

        Returns:
            List[VersionWithArtifacts]: Versions sorted in descending order.
        """

    @abstractmethod
    def download_artifact(
        self, version: VersionWithArtifacts, artifact_name: str
    ) -> bytes:
        """
        Fetch a single artifact of a version without verification.

        Raises:
            NoSuchArtifactError: If the version does not list the artifact.
            InvalidOptionsError: If the artifact name is not a valid file name.
            RequestFailedError: If the artifact cannot be fetched.
        """

    @abstractmethod
    def verify_artifact(
        self, artifact_name: str, artifact: bytes, sums: bytes, signature: bytes
    ) -> None:
        """
        Verify an artifact against a signed checksum manifest.

        Raises:
            SignatureError: If the manifest signature is invalid or the artifact is not listed.
            ArtifactCorruptedError: If the artifact checksum does not match.
        """

    @abstractmethod
    def download_version(
        self,
        version: VersionWithArtifacts,
        platform: Platform = Platform.AUTO,
        architecture: Architecture = Architecture.AUTO,
    ) -> bytes:
        """
        Download, verify and extract the binary of a specific listed version.

        Returns:
            bytes: The extracted binary.
        """

    @abstractmethod
    def download(self, options: Optional[DownloadOptions] = None) -> bytes:
        """
        Choose a version according to the options and download its binary.

        Returns:
            bytes: The extracted binary.
        """

    @abstractmethod
    def download_nightly(self, options: Optional[DownloadOptions] = None) -> bytes:
        """
        Download the binary of a nightly build (the latest one unless options name one).

        Returns:
            bytes: The extracted binary.
        """
